"""Shared private helpers used across election view sub-modules."""

import datetime

from django.http import JsonResponse

from voting.elections_errors import ElectionError, InvalidBallotError
from voting.models import Election
from voting.views_utils import json_error


def _get_visible_election(election_id: int) -> Election | None:
    """Load a non-draft election by PK; drafts look the same as missing ones."""
    return Election.objects.visible().filter(pk=election_id).first()


def _election_not_found() -> JsonResponse:
    return json_error("Election not found.", status=404, error={"code": "not_found"})


def _election_error_response(exc: ElectionError) -> JsonResponse:
    error: dict[str, object] = {"code": exc.code}
    if isinstance(exc, InvalidBallotError):
        error["errors"] = [failure.as_dict() for failure in exc.failures]
    return json_error(str(exc), status=exc.status_code, error=error)


def _serialize_election(
    election: Election,
    *,
    now: datetime.datetime,
    has_voted: bool | None = None,
) -> dict[str, object]:
    data: dict[str, object] = {
        "id": election.pk,
        "title": election.title,
        "description": election.description,
        "type": election.type,
        "allow_write_in": election.allow_write_in,
        "allow_abstain": election.allow_abstain,
        "start_time": election.start_time.isoformat(),
        "end_time": election.end_time.isoformat(),
        "current_status": election.current_status_at(now),
    }
    if has_voted is not None:
        data["has_voted"] = has_voted
    return data
