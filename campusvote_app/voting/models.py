from __future__ import annotations

import datetime
import logging
from typing import override

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

logger = logging.getLogger(__name__)


class BallotType(models.TextChoices):
    single = "single", "Single choice"
    multiple = "multiple", "Multiple choice"
    ranked = "ranked", "Ranked choice"


class Organization(models.Model):
    name = models.CharField(max_length=255, unique=True)

    class Meta:
        ordering = ("name", "id")

    def __str__(self) -> str:
        return self.name


class StudentQuerySet(models.QuerySet["Student"]):
    def active(self) -> StudentQuerySet:
        return self.filter(
            enrollment_status=Student.EnrollmentStatus.active,
            user__is_active=True,
        )


class Student(models.Model):
    """Voter identity as supplied by the campus directory.

    Only the attributes eligibility rules look at are stored here; login,
    profile editing and verification live in django.contrib.auth.
    """

    class EnrollmentStatus(models.TextChoices):
        active = "Active", "Active"
        inactive = "Inactive", "Inactive"
        graduated = "Graduated", "Graduated"
        suspended = "Suspended", "Suspended"

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="student")
    student_id = models.CharField(max_length=64, unique=True)
    department = models.CharField(max_length=255, blank=True, default="")
    class_level = models.CharField(max_length=64, blank=True, default="")
    enrollment_status = models.CharField(
        max_length=16,
        choices=EnrollmentStatus.choices,
        default=EnrollmentStatus.active,
    )
    organizations = models.ManyToManyField(Organization, blank=True, related_name="students")

    objects = StudentQuerySet.as_manager()

    class Meta:
        ordering = ("student_id", "id")

    def __str__(self) -> str:
        return self.student_id

    @property
    def full_name(self) -> str:
        full_name = str(self.user.get_full_name() or "").strip()
        return full_name or str(self.user.get_username())

    @property
    def email(self) -> str:
        return str(self.user.email or "").strip()

    def organization_ids(self) -> set[int]:
        # Iterating .all() keeps prefetch_related("organizations") effective.
        return {int(org.pk) for org in self.organizations.all()}


def election_current_status(
    *,
    now: datetime.datetime,
    start_time: datetime.datetime | None,
    end_time: datetime.datetime | None,
    status: str,
) -> str:
    """Derive Upcoming/Open/Closed from the clock and the stored lifecycle status.

    Must be recomputed per request; never store the result.
    """
    if status in {Election.Status.closed, Election.Status.archived}:
        return Election.CurrentStatus.closed

    if start_time is not None and now < start_time:
        return Election.CurrentStatus.upcoming

    if end_time is not None and now > end_time:
        return Election.CurrentStatus.closed

    if (
        status == Election.Status.active
        and start_time is not None
        and end_time is not None
        and start_time <= now <= end_time
    ):
        return Election.CurrentStatus.open

    return Election.CurrentStatus.closed


class ElectionQuerySet(models.QuerySet):
    def visible(self) -> ElectionQuerySet:
        """Exclude drafts, which students never see.

        Uses the raw string because the queryset is defined before Election.
        """
        return self.exclude(status="draft")


class Election(models.Model):
    class Status(models.TextChoices):
        draft = "draft", "Draft"
        active = "active", "Active"
        closed = "closed", "Closed"
        archived = "archived", "Archived"

    class CurrentStatus(models.TextChoices):
        upcoming = "Upcoming", "Upcoming"
        open = "Open", "Open"
        closed = "Closed", "Closed"

    _ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
        "draft": frozenset({"active"}),
        "active": frozenset({"closed"}),
        "closed": frozenset({"archived"}),
        "archived": frozenset(),
    }

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")

    # Ballot-structure defaults; each Position carries its own effective rules.
    type = models.CharField(max_length=16, choices=BallotType.choices, default=BallotType.single)
    max_selection = models.PositiveSmallIntegerField(blank=True, null=True, validators=[MinValueValidator(1)])
    ranking_levels = models.PositiveSmallIntegerField(blank=True, null=True, validators=[MinValueValidator(1)])
    allow_write_in = models.BooleanField(default=False)
    allow_abstain = models.BooleanField(default=False)

    is_universal = models.BooleanField(default=False)
    eligible_groups = models.JSONField(
        blank=True,
        default=dict,
        help_text=(
            "Optional keys: departments, class_levels, organizations (ids), manual (student ids). "
            "Any single match grants eligibility."
        ),
    )

    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.draft)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ElectionQuerySet.as_manager()

    class Meta:
        ordering = ("-start_time", "id")
        constraints = [
            models.CheckConstraint(
                condition=Q(start_time__lt=F("end_time")),
                name="election_start_before_end",
            ),
        ]

    def __str__(self) -> str:
        return self.title

    @override
    def clean(self) -> None:
        super().clean()
        if self.start_time and self.end_time and self.start_time >= self.end_time:
            raise ValidationError({"end_time": "End time must be after the start time."})

    def current_status_at(self, now: datetime.datetime) -> str:
        return election_current_status(
            now=now,
            start_time=self.start_time,
            end_time=self.end_time,
            status=self.status,
        )

    @property
    def current_status(self) -> str:
        return self.current_status_at(timezone.now())

    def transition_to(self, new_status: str) -> None:
        allowed = self._ALLOWED_TRANSITIONS.get(str(self.status), frozenset())
        if new_status not in allowed:
            raise ValidationError(f"Cannot move election from {self.status!r} to {new_status!r}.")

        old_status = self.status
        self.status = new_status
        self.save(update_fields=["status", "updated_at"])
        logger.info("Election %s moved from %s to %s", self.pk, old_status, new_status)


class Position(models.Model):
    election = models.ForeignKey(Election, on_delete=models.CASCADE, related_name="positions")
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    type = models.CharField(max_length=16, choices=BallotType.choices, default=BallotType.single)
    max_selection = models.PositiveSmallIntegerField(
        blank=True,
        null=True,
        validators=[MinValueValidator(1)],
        help_text="Only meaningful for multiple-choice positions.",
    )
    ranking_levels = models.PositiveSmallIntegerField(
        blank=True,
        null=True,
        validators=[MinValueValidator(1)],
        help_text="Only meaningful for ranked-choice positions.",
    )
    allow_abstain = models.BooleanField(default=False)
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ("sort_order", "id")
        constraints = [
            models.CheckConstraint(
                condition=Q(max_selection__isnull=True) | Q(type="multiple"),
                name="position_max_selection_multiple_only",
            ),
            models.CheckConstraint(
                condition=Q(ranking_levels__isnull=True) | Q(type="ranked"),
                name="position_ranking_levels_ranked_only",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.election_id})"

    @override
    def clean(self) -> None:
        super().clean()
        errors: dict[str, str] = {}
        if self.max_selection is not None and self.type != BallotType.multiple:
            errors["max_selection"] = "Max selection only applies to multiple-choice positions."
        if self.ranking_levels is not None and self.type != BallotType.ranked:
            errors["ranking_levels"] = "Ranking levels only apply to ranked-choice positions."
        if errors:
            raise ValidationError(errors)

    @property
    def field_key(self) -> str:
        return f"position_{self.pk}"

    @property
    def abstain_key(self) -> str:
        return f"position_{self.pk}_abstain"


class CandidateQuerySet(models.QuerySet["Candidate"]):
    def approved(self) -> CandidateQuerySet:
        return self.filter(approved=True)

    def approved_by_position(self, *, election: Election) -> dict[int, list[Candidate]]:
        """Approved candidates of an election, grouped by position id.

        This is the single lookup both ballot validation and tallying use.
        """
        by_position: dict[int, list[Candidate]] = {}
        rows = (
            self.approved()
            .filter(election=election)
            .select_related("student__user")
            .order_by("position_id", "id")
        )
        for candidate in rows:
            by_position.setdefault(int(candidate.position_id), []).append(candidate)
        return by_position


class Candidate(models.Model):
    # Denormalized from position.election so the per-election uniqueness
    # invariant can be a database constraint.
    election = models.ForeignKey(Election, on_delete=models.CASCADE, related_name="candidates")
    position = models.ForeignKey(Position, on_delete=models.CASCADE, related_name="candidates")
    student = models.ForeignKey(Student, on_delete=models.PROTECT, related_name="candidacies")
    approved = models.BooleanField(default=False)
    tagline = models.CharField(max_length=255, blank=True, default="")
    bio = models.TextField(blank=True, default="")
    manifesto = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    objects = CandidateQuerySet.as_manager()

    class Meta:
        ordering = ("position", "id")
        constraints = [
            models.UniqueConstraint(
                fields=["election", "student"],
                name="uniq_candidate_election_student",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.student_id} ({self.position_id})"

    @override
    def clean(self) -> None:
        super().clean()
        if self.position_id is None or self.student_id is None:
            return

        election_id = self.position.election_id
        if self.election_id is not None and self.election_id != election_id:
            raise ValidationError({"position": "Position belongs to a different election."})

        duplicate = (
            Candidate.objects.filter(election_id=election_id, student_id=self.student_id)
            .exclude(pk=self.pk)
            .exists()
        )
        if duplicate:
            raise ValidationError({"student": "This student is already a candidate in this election."})

    @override
    def save(self, *args, **kwargs) -> None:
        if self.election_id is None and self.position_id is not None:
            self.election_id = self.position.election_id
        super().save(*args, **kwargs)

    @property
    def display_name(self) -> str:
        return self.student.full_name


class BallotQuerySet(models.QuerySet["Ballot"]):
    def for_election(self, *, election: Election) -> BallotQuerySet:
        return self.filter(election=election)

    def for_voter(self, *, voter: Student) -> BallotQuerySet:
        return self.filter(voter=voter)


class Ballot(models.Model):
    election = models.ForeignKey(Election, on_delete=models.PROTECT, related_name="ballots")
    voter = models.ForeignKey(Student, on_delete=models.PROTECT, related_name="ballots")

    # Keyed by "position_<id>" and optionally "position_<id>_abstain".
    vote_data = models.JSONField(blank=True, default=dict)
    voted_at = models.DateTimeField(default=timezone.now)

    objects = BallotQuerySet.as_manager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["election", "voter"],
                name="uniq_ballot_election_voter",
            ),
        ]
        indexes = [
            models.Index(fields=["election", "voted_at"], name="ballot_el_at"),
        ]

    def __str__(self) -> str:
        return f"ballot:{self.election_id}:{self.voter_id}"

    @override
    def save(self, *args, **kwargs) -> None:
        if not self._state.adding:
            raise ValueError("Ballots are immutable once cast")
        super().save(*args, **kwargs)


class AuditLogEntry(models.Model):
    election = models.ForeignKey(Election, on_delete=models.CASCADE, related_name="audit_log")
    timestamp = models.DateTimeField(auto_now_add=True)
    event_type = models.CharField(max_length=64)
    payload = models.JSONField(blank=True, default=dict)
    is_public = models.BooleanField(default=False)

    class Meta:
        verbose_name_plural = "Audit log entries"
        ordering = ("timestamp", "id")
        indexes = [
            models.Index(fields=["election", "timestamp"], name="audit_el_ts"),
        ]

    def __str__(self) -> str:
        return f"{self.election_id}:{self.event_type}"
