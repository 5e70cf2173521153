from django.urls import path

from voting import views_elections, views_students

urlpatterns = [
    path("students/elections/", views_elections.elections_list, name="student-elections"),
    path("students/elections/results", views_elections.results_list, name="student-election-results-list"),
    path(
        "students/elections/<int:election_id>/ballot",
        views_elections.election_ballot,
        name="student-election-ballot",
    ),
    path(
        "students/elections/<int:election_id>/votes",
        views_elections.election_vote_submit,
        name="student-election-vote-submit",
    ),
    path(
        "students/elections/<int:election_id>/results",
        views_elections.election_results,
        name="student-election-results",
    ),
    path("students/votes/", views_elections.my_votes, name="student-votes"),
    path("students/me/stats", views_students.student_stats, name="student-stats"),
    path(
        "students/campus-participation",
        views_students.campus_participation,
        name="student-campus-participation",
    ),
]
