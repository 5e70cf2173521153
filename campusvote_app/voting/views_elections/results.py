"""Closed-election results for students."""

import logging

from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_GET

from voting.elections_eligibility import require_eligible
from voting.elections_errors import NotEligibleError, ResultsNotAvailableError
from voting.elections_results import closed_election_summaries, compute_election_results
from voting.views_elections._helpers import _election_error_response, _election_not_found, _get_visible_election
from voting.views_utils import json_server_error, json_success, student_required

logger = logging.getLogger(__name__)


@require_GET
@student_required
def results_list(request: HttpRequest) -> JsonResponse:
    return json_success(closed_election_summaries(voter=request.student))


@require_GET
@student_required
def election_results(request: HttpRequest, election_id: int) -> JsonResponse:
    election = _get_visible_election(election_id)
    if election is None:
        return _election_not_found()

    try:
        require_eligible(election=election, voter=request.student)
    except NotEligibleError as exc:
        return _election_error_response(exc)

    try:
        results = compute_election_results(election=election)
    except ResultsNotAvailableError as exc:
        # Not an error for clients polling before the close.
        return json_success(
            {"available": False, "current_status": exc.current_status},
            message=str(exc),
        )
    except Exception as exc:
        logger.exception("Failed to compute results for election %s", election.pk)
        return json_server_error(exc)

    return json_success({"available": True, **results})
