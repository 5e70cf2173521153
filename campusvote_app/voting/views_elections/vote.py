"""Vote submission and the student's own ballot history."""

import json
import logging

from django.http import HttpRequest, JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_GET, require_POST

from voting.elections_services import ElectionError, cast_ballot, voter_ballot_history
from voting.views_elections._helpers import (
    _election_error_response,
    _election_not_found,
    _get_visible_election,
)
from voting.views_utils import json_error, json_server_error, json_success, parse_json_body, student_required

logger = logging.getLogger(__name__)


@require_POST
@student_required
def election_vote_submit(request: HttpRequest, election_id: int) -> JsonResponse:
    student = request.student

    election = _get_visible_election(election_id)
    if election is None:
        return _election_not_found()

    try:
        body = parse_json_body(request)
    except (ValueError, json.JSONDecodeError, UnicodeDecodeError) as exc:
        return json_error(f"Invalid request body: {exc}", status=400, error={"code": "bad_request"})

    votes = body.get("votes")
    if not isinstance(votes, dict):
        return json_error("votes must be an object keyed by position.", status=400, error={"code": "bad_request"})

    try:
        receipt = cast_ballot(election=election, voter=student, votes=votes)
    except ElectionError as exc:
        return _election_error_response(exc)
    except Exception as exc:
        logger.exception("Unexpected failure casting ballot in election %s", election.pk)
        return json_server_error(exc)

    return json_success(receipt.as_dict(), message="Your vote has been recorded.", status=201)


@require_GET
@student_required
def my_votes(request: HttpRequest) -> JsonResponse:
    now = timezone.now()
    history = [
        {
            "vote_id": ballot.pk,
            "election_id": ballot.election_id,
            "election_title": ballot.election.title,
            "current_status": ballot.election.current_status_at(now),
            "voted_at": ballot.voted_at.isoformat(),
        }
        for ballot in voter_ballot_history(voter=request.student)
    ]
    return json_success(history)
