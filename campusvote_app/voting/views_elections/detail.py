"""Election listing and the ballot page data."""

import logging

from django.http import HttpRequest, JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_GET

from voting.elections_eligibility import eligible_elections_for, require_eligible
from voting.elections_errors import NotEligibleError
from voting.elections_services import ballot_for_voter
from voting.models import Ballot, Candidate, Election
from voting.views_elections._helpers import (
    _election_error_response,
    _election_not_found,
    _get_visible_election,
    _serialize_election,
)
from voting.views_utils import json_success, student_required

logger = logging.getLogger(__name__)


@require_GET
@student_required
def elections_list(request: HttpRequest) -> JsonResponse:
    student = request.student
    now = timezone.now()

    elections = eligible_elections_for(
        voter=student,
        elections=Election.objects.visible().order_by("start_time", "id"),
    )
    voted_ids = set(Ballot.objects.for_voter(voter=student).values_list("election_id", flat=True))

    return json_success(
        [_serialize_election(election, now=now, has_voted=election.pk in voted_ids) for election in elections]
    )


@require_GET
@student_required
def election_ballot(request: HttpRequest, election_id: int) -> JsonResponse:
    student = request.student
    now = timezone.now()

    election = _get_visible_election(election_id)
    if election is None:
        return _election_not_found()

    try:
        require_eligible(election=election, voter=student)
    except NotEligibleError as exc:
        return _election_error_response(exc)

    candidates_by_position = Candidate.objects.approved_by_position(election=election)
    positions = []
    for position in election.positions.order_by("sort_order", "id"):
        positions.append(
            {
                "id": position.pk,
                "field_key": position.field_key,
                "name": position.name,
                "description": position.description,
                "type": position.type,
                "max_selection": position.max_selection,
                "ranking_levels": position.ranking_levels,
                "allow_abstain": position.allow_abstain,
                "candidates": [
                    {
                        "id": candidate.pk,
                        "name": candidate.display_name,
                        "tagline": candidate.tagline,
                        "bio": candidate.bio,
                        "manifesto": candidate.manifesto,
                    }
                    for candidate in candidates_by_position.get(int(position.pk), [])
                ],
            }
        )

    existing = ballot_for_voter(election=election, voter=student)
    current_status = election.current_status_at(now)

    return json_success(
        {
            "election": _serialize_election(election, now=now, has_voted=existing is not None),
            "positions": positions,
            "can_vote": existing is None and current_status == Election.CurrentStatus.open,
            "ballot": (
                {
                    "vote_id": existing.pk,
                    "vote_data": existing.vote_data,
                    "voted_at": existing.voted_at.isoformat(),
                }
                if existing is not None
                else None
            ),
        }
    )
