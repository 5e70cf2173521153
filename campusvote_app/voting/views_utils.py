"""Shared view utilities: the JSON envelope, body parsing and student authentication."""

import json
import logging
from collections.abc import Callable
from functools import wraps

from django.conf import settings
from django.core.exceptions import ObjectDoesNotExist
from django.http import HttpRequest, HttpResponse, JsonResponse

from voting.models import Student

logger = logging.getLogger(__name__)


def json_success(data: object, *, message: str = "", status: int = 200) -> JsonResponse:
    return JsonResponse({"success": True, "message": message, "data": data}, status=status)


def json_error(message: str, *, status: int, error: dict[str, object] | None = None) -> JsonResponse:
    body: dict[str, object] = {"success": False, "message": message}
    if error is not None:
        body["error"] = error
    return JsonResponse(body, status=status)


def json_server_error(exc: Exception, *, message: str = "Something went wrong. Please try again.") -> JsonResponse:
    error: dict[str, object] = {"code": "server_error"}
    if settings.DEBUG:
        error["detail"] = str(exc)
    return json_error(message, status=500, error=error)


def parse_json_body(request: HttpRequest) -> dict[str, object]:
    """Decode a JSON object request body.

    Raises ValueError (json.JSONDecodeError included) for anything else.
    """
    raw = request.body.decode("utf-8") if request.body else "{}"
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object.")
    return data


def get_student(request: HttpRequest) -> Student | None:
    user = getattr(request, "user", None)
    if user is None or not user.is_authenticated:
        return None
    try:
        return user.student
    except ObjectDoesNotExist:
        return None


def student_required[**P](view_func: Callable[P, HttpResponse]) -> Callable[P, HttpResponse]:
    """Reject requests without a logged-in student with a 401 JSON body.

    The resolved Student is attached to the request as ``request.student``.
    """

    @wraps(view_func)
    def _wrapped(*args: P.args, **kwargs: P.kwargs) -> HttpResponse:
        request = args[0]
        student = get_student(request)
        if student is None:
            return json_error(
                "Authentication required.",
                status=401,
                error={"code": "authentication_required"},
            )
        request.student = student
        return view_func(*args, **kwargs)

    return _wrapped
