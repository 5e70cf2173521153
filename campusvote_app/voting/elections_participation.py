"""Campus-wide turnout figures, bucketed by academic year.

An academic year runs from September 1 to the next September 1 and is
labelled "2025-2026". All figures count distinct voters among active
students, so no participation rate exceeds 100%.
"""

from __future__ import annotations

import datetime
import logging
from collections import defaultdict
from dataclasses import dataclass

from django.db.models import Count
from django.utils import timezone

from voting.models import Ballot, Election, Student

logger = logging.getLogger(__name__)

ACADEMIC_YEAR_START_MONTH = 9
RECENT_ELECTIONS_LIMIT = 5

# Singular label as stored on Student.class_level, and its plural for display.
CLASS_LEVELS: tuple[tuple[str, str], ...] = (
    ("Freshman", "Freshmen"),
    ("Sophomore", "Sophomores"),
    ("Junior", "Juniors"),
    ("Senior", "Seniors"),
)

# First matching keyword wins.
ELECTION_TYPE_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("sga", "SGA"),
    ("class council", "Class Council"),
    ("referendum", "Referendum"),
    ("royal", "Royal Court"),
)
OTHER_ELECTION_TYPE = "Other"


@dataclass(frozen=True)
class AcademicYear:
    start_year: int

    @classmethod
    def parse(cls, value: str) -> AcademicYear:
        start, sep, end = str(value).strip().partition("-")
        if not sep or not start.isdigit() or not end.isdigit() or int(end) != int(start) + 1:
            raise ValueError(f"Academic year must look like 2025-2026, got {value!r}.")
        return cls(start_year=int(start))

    @classmethod
    def containing(cls, moment: datetime.datetime) -> AcademicYear:
        local = timezone.localtime(moment)
        if local.month >= ACADEMIC_YEAR_START_MONTH:
            return cls(start_year=local.year)
        return cls(start_year=local.year - 1)

    @property
    def label(self) -> str:
        return f"{self.start_year}-{self.start_year + 1}"

    @property
    def starts_at(self) -> datetime.datetime:
        return timezone.make_aware(datetime.datetime(self.start_year, ACADEMIC_YEAR_START_MONTH, 1))

    @property
    def ends_at(self) -> datetime.datetime:
        """Exclusive upper bound."""
        return timezone.make_aware(datetime.datetime(self.start_year + 1, ACADEMIC_YEAR_START_MONTH, 1))

    def previous(self) -> AcademicYear:
        return AcademicYear(start_year=self.start_year - 1)


def participation_rate(voted: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(voted / total * 100, 1)


def trend_label(change: float) -> str:
    sign = "+" if change > 0 else ""
    return f"{sign}{change:.1f}%"


def election_type(title: str) -> str:
    lowered = title.lower()
    for keyword, label in ELECTION_TYPE_KEYWORDS:
        if keyword in lowered:
            return label
    return OTHER_ELECTION_TYPE


def _ballots_in(year: AcademicYear):
    return Ballot.objects.filter(
        voter__in=Student.objects.active(),
        voted_at__gte=year.starts_at,
        voted_at__lt=year.ends_at,
    )


def overall_participation(year: AcademicYear, *, include_trends: bool = True) -> dict[str, object]:
    total_eligible = Student.objects.active().count()
    total_voters = _ballots_in(year).values("voter").distinct().count()
    rate = participation_rate(total_voters, total_eligible)

    result: dict[str, object] = {
        "total_eligible_students": total_eligible,
        "total_voters": total_voters,
        "participation_rate": rate,
    }
    if not include_trends:
        return result

    last_rate = float(overall_participation(year.previous(), include_trends=False)["participation_rate"])
    change = round(rate - last_rate, 1)
    result["trend"] = trend_label(change)
    result["trend_direction"] = "up" if change > 0 else "down" if change < 0 else "stable"
    result["vs_last_year"] = {"participation_rate": last_rate, "change": change}
    return result


def _class_level_counts(year: AcademicYear) -> tuple[dict[str, int], dict[str, int]]:
    totals = {
        row["class_level"]: row["total"]
        for row in Student.objects.active().exclude(class_level="").values("class_level").annotate(total=Count("id"))
    }
    voted = {
        row["voter__class_level"]: row["voted"]
        for row in _ballots_in(year)
        .values("voter__class_level")
        .annotate(voted=Count("voter", distinct=True))
    }
    return totals, voted


def participation_by_class_year(year: AcademicYear) -> list[dict[str, object]]:
    totals, voted = _class_level_counts(year)
    _, last_voted = _class_level_counts(year.previous())

    result: list[dict[str, object]] = []
    for class_level, plural in CLASS_LEVELS:
        total = totals.get(class_level, 0)
        if total == 0:
            continue
        voted_count = voted.get(class_level, 0)
        percentage = participation_rate(voted_count, total)
        # The class is compared against its own size today; enrollment history is not kept.
        last_percentage = participation_rate(last_voted.get(class_level, 0), total)
        result.append(
            {
                "label": plural,
                "voted": voted_count,
                "total": total,
                "percentage": percentage,
                "trend": trend_label(round(percentage - last_percentage, 1)),
            }
        )

    result.sort(key=lambda row: row["percentage"], reverse=True)
    return result


def _closed_elections_in(year: AcademicYear, *, now: datetime.datetime) -> list[Election]:
    elections = (
        Election.objects.visible()
        .filter(start_time__gte=year.starts_at, start_time__lt=year.ends_at)
        .order_by("-end_time", "id")
    )
    return [e for e in elections if e.current_status_at(now) == Election.CurrentStatus.closed]


def participation_by_election_type(year: AcademicYear, *, now: datetime.datetime) -> list[dict[str, object]]:
    total_eligible = Student.objects.active().count()

    election_ids_by_type: dict[str, list[int]] = defaultdict(list)
    for election in _closed_elections_in(year, now=now):
        election_ids_by_type[election_type(election.title)].append(int(election.pk))

    result: list[dict[str, object]] = []
    for type_label, election_ids in election_ids_by_type.items():
        voted = (
            Ballot.objects.filter(election_id__in=election_ids, voter__in=Student.objects.active())
            .values("voter")
            .distinct()
            .count()
        )
        result.append(
            {
                "type": type_label,
                "elections": len(election_ids),
                "voted": voted,
                "total": total_eligible,
                "percentage": participation_rate(voted, total_eligible),
            }
        )

    result.sort(key=lambda row: (-row["percentage"], row["type"]))
    return result


def recent_elections(
    year: AcademicYear,
    *,
    now: datetime.datetime,
    limit: int = RECENT_ELECTIONS_LIMIT,
) -> list[dict[str, object]]:
    total_eligible = Student.objects.active().count()
    elections = _closed_elections_in(year, now=now)[:limit]

    voters_by_election = dict(
        Ballot.objects.filter(election__in=elections, voter__in=Student.objects.active())
        .values("election")
        .annotate(voted=Count("voter", distinct=True))
        .values_list("election", "voted")
    )

    return [
        {
            "election_id": election.pk,
            "title": election.title,
            "voted": voters_by_election.get(election.pk, 0),
            "total_eligible": total_eligible,
            "participation_rate": participation_rate(voters_by_election.get(election.pk, 0), total_eligible),
            "ended_at": election.end_time.isoformat(),
        }
        for election in elections
    ]


def compute_campus_participation(
    *,
    year: AcademicYear | None = None,
    include_trends: bool = True,
    now: datetime.datetime | None = None,
) -> dict[str, object]:
    if now is None:
        now = timezone.now()
    if year is None:
        year = AcademicYear.containing(now)

    logger.debug("Computing campus participation for %s", year.label)
    return {
        "academic_year": year.label,
        "overall": overall_participation(year, include_trends=include_trends),
        "by_class_year": participation_by_class_year(year),
        "by_election_type": participation_by_election_type(year, now=now),
        "recent_elections": recent_elections(year, now=now),
    }
