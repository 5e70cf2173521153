from __future__ import annotations

import datetime
import logging

from django.db.models import Count
from django.utils import timezone

from voting.elections_eligibility import is_eligible
from voting.elections_errors import ResultsNotAvailableError
from voting.elections_tally import tally_candidates_from, tally_position
from voting.models import Ballot, Candidate, Election, Student

logger = logging.getLogger(__name__)


def _election_summary(election: Election, *, current_status: str) -> dict[str, object]:
    return {
        "id": election.pk,
        "title": election.title,
        "description": election.description,
        "type": election.type,
        "current_status": current_status,
        "start_time": election.start_time.isoformat(),
        "end_time": election.end_time.isoformat(),
    }


def compute_election_results(*, election: Election, now: datetime.datetime | None = None) -> dict[str, object]:
    """Build the results document for a closed election.

    Computed from the stored ballots on every call; nothing is cached.
    """
    if now is None:
        now = timezone.now()

    current_status = election.current_status_at(now)
    if current_status != Election.CurrentStatus.closed:
        raise ResultsNotAvailableError(
            "Results are available once the election has closed.",
            current_status=current_status,
        )

    ballots = Ballot.objects.for_election(election=election)
    vote_data_rows = list(ballots.values_list("vote_data", flat=True))
    counts = ballots.aggregate(total_votes=Count("id"), unique_voters=Count("voter", distinct=True))

    candidates_by_position = Candidate.objects.approved_by_position(election=election)
    positions = []
    for position in election.positions.order_by("sort_order", "id"):
        result = tally_position(
            position=position,
            ballots=vote_data_rows,
            candidates=tally_candidates_from(candidates_by_position.get(int(position.pk), [])),
        )
        if result.skipped:
            logger.warning(
                "Skipped %d unusable votes for position %s in election %s",
                result.skipped,
                position.pk,
                election.pk,
            )
        position_data = result.as_dict()
        position_data["position_description"] = position.description
        positions.append(position_data)

    return {
        "election": _election_summary(election, current_status=current_status),
        "total_votes": int(counts.get("total_votes") or 0),
        "unique_voters": int(counts.get("unique_voters") or 0),
        "positions": positions,
    }


def closed_election_summaries(*, voter: Student, now: datetime.datetime | None = None) -> list[dict[str, object]]:
    """Closed elections the voter was eligible for, newest first, with ballot counts."""
    if now is None:
        now = timezone.now()

    elections = (
        Election.objects.visible()
        .annotate(ballot_count=Count("ballots"))
        .order_by("-end_time", "id")
    )
    voted_ids = set(Ballot.objects.for_voter(voter=voter).values_list("election_id", flat=True))

    summaries: list[dict[str, object]] = []
    for election in elections:
        current_status = election.current_status_at(now)
        if current_status != Election.CurrentStatus.closed:
            continue
        if not is_eligible(election=election, voter=voter):
            continue
        summaries.append(
            {
                **_election_summary(election, current_status=current_status),
                "total_votes": int(election.ballot_count),
                "has_voted": election.pk in voted_ids,
            }
        )
    return summaries
