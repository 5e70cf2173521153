"""Campus-wide participation statistics for a single student."""

from __future__ import annotations

import datetime
import logging
from collections.abc import Sequence

from django.conf import settings
from django.db.models import Count, Max
from django.utils import timezone

from voting.elections_eligibility import is_eligible
from voting.models import Ballot, Election, Student

logger = logging.getLogger(__name__)

IMPACT_SCORE_BASE = 50
IMPACT_SCORE_MAX = 200
EARLY_VOTE_WINDOW = datetime.timedelta(hours=24)
CONSECUTIVE_ELECTION_GAP = datetime.timedelta(days=30)


def campus_rank_and_percentile(*, elections_voted: int) -> dict[str, object]:
    active = Student.objects.active()
    total_students = active.count()
    if total_students == 0:
        return {"rank": 1, "percentile": 100.0, "total_students": 0}

    # Students without ballots never appear here, so they are never above anyone.
    students_with_more = (
        Ballot.objects.filter(voter__in=active)
        .values("voter")
        .annotate(elections_voted=Count("election", distinct=True))
        .filter(elections_voted__gt=elections_voted)
        .count()
    )

    percentile = round((total_students - students_with_more) / total_students * 100, 1)
    percentile = max(0.0, min(100.0, percentile))

    return {
        "rank": students_with_more + 1,
        "percentile": percentile,
        "total_students": total_students,
    }


def longest_consecutive_run(end_times: Sequence[datetime.datetime], *, gap: datetime.timedelta) -> int:
    """Length of the longest chain of elections whose end times are at most ``gap`` apart."""
    if not end_times:
        return 0

    ordered = sorted(end_times)
    longest = current = 1
    for previous, following in zip(ordered, ordered[1:]):
        if following - previous <= gap:
            current += 1
            longest = max(longest, current)
        else:
            current = 1
    return longest


def _is_special_election(title: str) -> bool:
    lowered = title.lower()
    return any(keyword in lowered for keyword in settings.ELECTION_SPECIAL_TITLE_KEYWORDS)


def compute_impact_score(*, voter: Student, now: datetime.datetime) -> int:
    ballots = list(Ballot.objects.for_voter(voter=voter).select_related("election"))
    voted_elections = {ballot.election_id: ballot.election for ballot in ballots}

    score = IMPACT_SCORE_BASE
    score += 10 * len(voted_elections)

    early_votes = sum(
        1
        for ballot in ballots
        if datetime.timedelta(0) <= ballot.voted_at - ballot.election.start_time <= EARLY_VOTE_WINDOW
    )
    score += 5 * early_votes

    closed_eligible_ids = {
        election.pk
        for election in Election.objects.visible()
        if election.current_status_at(now) == Election.CurrentStatus.closed
        and is_eligible(election=election, voter=voter)
    }
    if closed_eligible_ids and closed_eligible_ids <= voted_elections.keys():
        score += 3

    run = longest_consecutive_run(
        [election.end_time for election in voted_elections.values()],
        gap=CONSECUTIVE_ELECTION_GAP,
    )
    score += 2 * run

    score += 3 * sum(1 for election in voted_elections.values() if _is_special_election(election.title))

    return max(IMPACT_SCORE_BASE, min(IMPACT_SCORE_MAX, score))


def percentile_description(percentile: float) -> str:
    if percentile >= 95:
        return "Top 5% of active voters"
    if percentile >= 90:
        return "Top 10% of active voters"
    if percentile >= 75:
        return "Top 25% of active voters"
    if percentile >= 50:
        return "Above average voter"
    return "Active participant"


def compute_campus_stats(*, voter: Student, now: datetime.datetime | None = None) -> dict[str, object]:
    if now is None:
        now = timezone.now()

    elections_voted = Ballot.objects.for_voter(voter=voter).values("election").distinct().count()
    rank = campus_rank_and_percentile(elections_voted=elections_voted)
    impact_score = compute_impact_score(voter=voter, now=now)
    percentile = float(rank["percentile"])

    return {
        "elections_voted": elections_voted,
        "campus_rank": rank["rank"],
        "percentile": percentile,
        "total_students": rank["total_students"],
        "impact_score": impact_score,
        "campus_impact_score": round(impact_score / IMPACT_SCORE_MAX * 100, 1),
        "impact_description": percentile_description(percentile),
    }


def all_student_stats(*, now: datetime.datetime | None = None) -> list[dict[str, object]]:
    """Per-student participation table for every active student, most active first."""
    if now is None:
        now = timezone.now()

    last_votes = dict(
        Ballot.objects.values("voter").annotate(last_voted_at=Max("voted_at")).values_list("voter", "last_voted_at")
    )

    rows: list[dict[str, object]] = []
    for student in Student.objects.active().select_related("user").prefetch_related("organizations"):
        stats = compute_campus_stats(voter=student, now=now)
        last_voted_at = last_votes.get(student.pk)
        rows.append(
            {
                "student_pk": student.pk,
                "student_id": student.student_id,
                "name": student.full_name,
                "email": student.email,
                "elections_voted": stats["elections_voted"],
                "campus_rank": stats["campus_rank"],
                "percentile": stats["percentile"],
                "impact_score": stats["impact_score"],
                "campus_impact_score": stats["campus_impact_score"],
                "last_voted_at": last_voted_at.isoformat() if last_voted_at is not None else None,
            }
        )

    rows.sort(key=lambda row: row["elections_voted"], reverse=True)
    return rows
