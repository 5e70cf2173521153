from __future__ import annotations

import datetime
import logging
from collections.abc import Mapping
from dataclasses import dataclass

import post_office.mail
from django.conf import settings
from django.db import IntegrityError, connection, transaction
from django.db.models import QuerySet
from django.template.loader import render_to_string
from django.utils import timezone

from voting.elections_ballots import (
    Abstention,
    MalformedSelectionError,
    Selection,
    build_vote_data,
    has_any_selection,
    validate_ballot,
)
from voting.elections_eligibility import require_eligible
from voting.elections_errors import (
    AlreadyVotedError,
    BallotFailure,
    ElectionError,
    ElectionNotOpenError,
    InvalidBallotError,
    NoSelectionMadeError,
    NotEligibleError,
    ResultsNotAvailableError,
)
from voting.models import AuditLogEntry, Ballot, Candidate, Election, Student

logger = logging.getLogger(__name__)

__all__ = [
    "AlreadyVotedError",
    "BallotFailure",
    "CastReceipt",
    "ElectionError",
    "ElectionNotOpenError",
    "InvalidBallotError",
    "MalformedSelectionError",
    "NoSelectionMadeError",
    "NotEligibleError",
    "ResultsNotAvailableError",
    "approved_candidate_ids_by_position",
    "ballot_for_voter",
    "cast_ballot",
    "send_vote_receipt_email",
    "voter_ballot_history",
]


@dataclass(frozen=True)
class CastReceipt:
    ballot_id: int
    election_id: int
    voted_at: datetime.datetime

    def as_dict(self) -> dict[str, object]:
        return {
            "vote_id": self.ballot_id,
            "election_id": self.election_id,
            "voted_at": self.voted_at.isoformat(),
        }


def approved_candidate_ids_by_position(*, election: Election) -> dict[int, set[int]]:
    return {
        position_id: {int(c.pk) for c in candidates}
        for position_id, candidates in Candidate.objects.approved_by_position(election=election).items()
    }


def ballot_for_voter(*, election: Election, voter: Student) -> Ballot | None:
    return Ballot.objects.for_election(election=election).filter(voter=voter).first()


def voter_ballot_history(*, voter: Student) -> QuerySet[Ballot]:
    return Ballot.objects.for_voter(voter=voter).select_related("election").order_by("-voted_at", "-id")


def _record_rejection(*, election: Election, voter: Student | None, error: ElectionError) -> None:
    payload: dict[str, object] = {
        "voter_id": voter.pk if voter is not None else None,
        "code": error.code,
    }
    if isinstance(error, InvalidBallotError):
        payload["errors"] = [f.as_dict() for f in error.failures]
    try:
        with transaction.atomic():
            AuditLogEntry.objects.create(
                election=election,
                event_type="ballot_rejected",
                payload=payload,
                is_public=False,
            )
    except Exception:
        logger.exception("Failed to record ballot_rejected for election %s", election.pk)


def send_vote_receipt_email(*, election: Election, voter: Student, receipt: CastReceipt) -> None:
    email = voter.email
    if not email:
        return

    context = {
        "voter_name": voter.full_name,
        "student_id": voter.student_id,
        "election_id": election.pk,
        "election_title": election.title,
        "vote_id": receipt.ballot_id,
        "voted_at": receipt.voted_at.strftime("%Y-%m-%d %H:%M %Z").strip(),
    }
    post_office.mail.send(
        recipients=[email],
        sender=settings.DEFAULT_FROM_EMAIL,
        subject=settings.ELECTION_VOTE_RECEIPT_EMAIL_SUBJECT.format(election_title=election.title),
        message=render_to_string("voting/email/vote_receipt.txt", context),
        render_on_delivery=False,
    )


def _after_cast(*, election: Election, voter: Student, receipt: CastReceipt) -> None:
    # Runs after commit; the ballot is durable whatever happens here.
    try:
        with transaction.atomic():
            AuditLogEntry.objects.create(
                election=election,
                event_type="ballot_cast",
                payload={"ballot_id": receipt.ballot_id, "voter_id": voter.pk},
                is_public=False,
            )
    except Exception:
        logger.exception("Failed to record ballot_cast for ballot %s", receipt.ballot_id)

    if not settings.ELECTION_VOTE_RECEIPT_EMAIL_ENABLED:
        return
    try:
        send_vote_receipt_email(election=election, voter=voter, receipt=receipt)
    except Exception:
        logger.exception("Failed to queue vote receipt email for ballot %s", receipt.ballot_id)


def _apply_statement_timeout() -> None:
    timeout_ms = int(settings.ELECTION_CAST_STATEMENT_TIMEOUT_MS or 0)
    if timeout_ms <= 0 or connection.vendor != "postgresql":
        return
    with connection.cursor() as cursor:
        cursor.execute(f"SET LOCAL statement_timeout = {timeout_ms}")


def _check_cast_preconditions(
    *,
    election: Election,
    voter: Student,
    votes: Mapping[str, object],
    now: datetime.datetime,
) -> dict[int, Selection | Abstention]:
    if election.current_status_at(now) != Election.CurrentStatus.open:
        raise ElectionNotOpenError("This election is not open for voting.")

    require_eligible(election=election, voter=voter)

    if Ballot.objects.for_election(election=election).filter(voter=voter).exists():
        raise AlreadyVotedError("You have already voted in this election.")

    selections = validate_ballot(
        positions=election.positions.all(),
        votes=votes,
        approved_candidate_ids_by_position=approved_candidate_ids_by_position(election=election),
    )

    if not has_any_selection(selections):
        raise NoSelectionMadeError("Select at least one candidate before submitting your ballot.")

    return selections


def cast_ballot(
    *,
    election: Election,
    voter: Student,
    votes: Mapping[str, object],
    now: datetime.datetime | None = None,
) -> CastReceipt:
    """Validate and durably record one voter's ballot.

    Either returns a receipt for a committed ballot or raises an ElectionError
    subclass; no partial ballot is ever left behind. The database uniqueness
    constraint decides concurrent duplicates.
    """
    if now is None:
        now = timezone.now()

    try:
        selections = _check_cast_preconditions(election=election, voter=voter, votes=votes, now=now)
    except ElectionError as exc:
        logger.info("Rejected ballot for election %s voter %s: %s", election.pk, voter.pk, exc.code)
        _record_rejection(election=election, voter=voter, error=exc)
        raise

    vote_data = build_vote_data(selections)

    try:
        with transaction.atomic():
            _apply_statement_timeout()
            ballot = Ballot.objects.create(
                election=election,
                voter=voter,
                vote_data=vote_data,
                voted_at=now,
            )
    except IntegrityError:
        if Ballot.objects.for_election(election=election).filter(voter=voter).exists():
            logger.info("Concurrent duplicate ballot for election %s voter %s", election.pk, voter.pk)
            duplicate = AlreadyVotedError("You have already voted in this election.")
            _record_rejection(election=election, voter=voter, error=duplicate)
            raise duplicate from None
        raise

    receipt = CastReceipt(ballot_id=int(ballot.pk), election_id=int(election.pk), voted_at=ballot.voted_at)
    logger.info("Ballot %s cast in election %s", receipt.ballot_id, receipt.election_id)

    transaction.on_commit(lambda: _after_cast(election=election, voter=voter, receipt=receipt))
    return receipt
