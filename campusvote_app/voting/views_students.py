import logging

from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_GET

from voting.elections_participation import AcademicYear, compute_campus_participation
from voting.elections_stats import compute_campus_stats
from voting.views_utils import json_error, json_server_error, json_success, student_required

logger = logging.getLogger(__name__)

_FALSE_VALUES = {"0", "false", "no", "off"}


@require_GET
@student_required
def student_stats(request: HttpRequest) -> JsonResponse:
    student = request.student
    try:
        stats = compute_campus_stats(voter=student)
    except Exception as exc:
        logger.exception("Failed to compute campus stats for student %s", student.pk)
        return json_server_error(exc)

    return json_success(
        {
            "student_id": student.student_id,
            "name": student.full_name,
            **stats,
        }
    )


@require_GET
@student_required
def campus_participation(request: HttpRequest) -> JsonResponse:
    year: AcademicYear | None = None
    raw_year = str(request.GET.get("year") or "").strip()
    if raw_year:
        try:
            year = AcademicYear.parse(raw_year)
        except ValueError as exc:
            return json_error(str(exc), status=400, error={"code": "bad_request"})

    include_trends = str(request.GET.get("include_trends", "true")).strip().lower() not in _FALSE_VALUES

    try:
        data = compute_campus_participation(year=year, include_trends=include_trends)
    except Exception as exc:
        logger.exception("Failed to compute campus participation for student %s", request.student.pk)
        return json_server_error(exc)

    logger.info("Campus participation for %s served to student %s", data["academic_year"], request.student.pk)
    return json_success(data, message="Campus participation data retrieved successfully.")
