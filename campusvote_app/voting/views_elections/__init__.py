"""Student-facing election API views.

All public view functions are re-exported here so that ``voting.urls`` can
reference ``views_elections.<view_name>``.
"""

from voting.views_elections.detail import election_ballot, elections_list
from voting.views_elections.results import election_results, results_list
from voting.views_elections.vote import election_vote_submit, my_votes

__all__ = [
    "election_ballot",
    "election_results",
    "election_vote_submit",
    "elections_list",
    "my_votes",
    "results_list",
]
