from __future__ import annotations

import datetime
import threading
from unittest import skipUnless
from unittest.mock import patch

from django.db import connection
from django.test import TestCase, TransactionTestCase, override_settings
from django.utils import timezone
from post_office.models import Email

from voting.elections_services import (
    AlreadyVotedError,
    ElectionNotOpenError,
    InvalidBallotError,
    NoSelectionMadeError,
    NotEligibleError,
    ballot_for_voter,
    cast_ballot,
    voter_ballot_history,
)
from voting.models import AuditLogEntry, Ballot, BallotType, Election
from voting.tests.utils_test_data import (
    make_candidate,
    make_closed_election,
    make_election,
    make_position,
    make_student,
)


class CastBallotTests(TestCase):
    def setUp(self) -> None:
        self.election = make_election(title="Spring Council")
        self.president = make_position(self.election, name="President", sort_order=0)
        self.senators = make_position(
            self.election,
            name="Senators",
            type=BallotType.multiple,
            max_selection=2,
            allow_abstain=True,
            sort_order=1,
        )
        self.alice = make_candidate(self.president, name="Alice Able")
        self.bob = make_candidate(self.president, name="Bob Baker")
        self.sen1 = make_candidate(self.senators)
        self.sen2 = make_candidate(self.senators)
        self.voter = make_student(email="voter@campus.example", first_name="Vera", last_name="Voter")

    def _votes(self) -> dict[str, object]:
        return {
            self.president.field_key: {"candidate_id": self.alice.pk},
            self.senators.field_key: [self.sen1.pk, self.sen2.pk],
        }

    def test_cast_records_ballot_and_receipt(self) -> None:
        with self.captureOnCommitCallbacks(execute=True):
            receipt = cast_ballot(election=self.election, voter=self.voter, votes=self._votes())

        ballot = Ballot.objects.get(pk=receipt.ballot_id)
        self.assertEqual(ballot.voter, self.voter)
        self.assertEqual(
            ballot.vote_data,
            {
                self.president.field_key: {"candidate_id": self.alice.pk},
                self.senators.field_key: {"candidate_ids": [self.sen1.pk, self.sen2.pk]},
            },
        )
        self.assertEqual(receipt.election_id, self.election.pk)
        self.assertEqual(receipt.as_dict()["vote_id"], ballot.pk)
        self.assertEqual(ballot_for_voter(election=self.election, voter=self.voter), ballot)
        self.assertEqual(list(voter_ballot_history(voter=self.voter)), [ballot])

    def test_commit_side_effects_record_audit_and_queue_receipt_email(self) -> None:
        with self.captureOnCommitCallbacks(execute=True):
            receipt = cast_ballot(election=self.election, voter=self.voter, votes=self._votes())

        entry = AuditLogEntry.objects.get(election=self.election, event_type="ballot_cast")
        self.assertEqual(entry.payload["ballot_id"], receipt.ballot_id)
        self.assertFalse(entry.is_public)

        email = Email.objects.get()
        self.assertEqual(email.to, ["voter@campus.example"])
        self.assertEqual(email.subject, "Your vote in Spring Council was recorded")
        self.assertIn("Vera Voter", email.message)
        self.assertIn(str(receipt.ballot_id), email.message)

    @override_settings(ELECTION_VOTE_RECEIPT_EMAIL_ENABLED=False)
    def test_receipt_email_can_be_disabled(self) -> None:
        with self.captureOnCommitCallbacks(execute=True):
            cast_ballot(election=self.election, voter=self.voter, votes=self._votes())

        self.assertFalse(Email.objects.exists())
        self.assertTrue(AuditLogEntry.objects.filter(event_type="ballot_cast").exists())

    def test_email_failure_does_not_undo_the_ballot(self) -> None:
        with (
            patch("post_office.mail.send", side_effect=RuntimeError("smtp down")),
            self.assertLogs("voting.elections_services", level="ERROR") as logs,
            self.captureOnCommitCallbacks(execute=True),
        ):
            receipt = cast_ballot(election=self.election, voter=self.voter, votes=self._votes())

        self.assertTrue(Ballot.objects.filter(pk=receipt.ballot_id).exists())
        self.assertIn("vote receipt email", "\n".join(logs.output))

    def test_not_open_is_checked_before_eligibility(self) -> None:
        now = timezone.now()
        upcoming = make_election(
            is_universal=False,
            start=now + datetime.timedelta(days=1),
            end=now + datetime.timedelta(days=2),
        )

        with self.assertRaises(ElectionNotOpenError):
            cast_ballot(election=upcoming, voter=self.voter, votes={})

    def test_closed_election_rejects_ballots(self) -> None:
        with self.assertRaises(ElectionNotOpenError):
            cast_ballot(election=make_closed_election(), voter=self.voter, votes=self._votes())

    def test_ineligible_voter_is_rejected_and_audited(self) -> None:
        restricted = make_election(is_universal=False, eligible_groups={"departments": ["Biology"]})

        with self.assertRaises(NotEligibleError):
            cast_ballot(election=restricted, voter=self.voter, votes={})

        entry = AuditLogEntry.objects.get(election=restricted, event_type="ballot_rejected")
        self.assertEqual(entry.payload["code"], "not_eligible")
        self.assertFalse(Ballot.objects.filter(election=restricted).exists())

    def test_second_cast_is_already_voted(self) -> None:
        cast_ballot(election=self.election, voter=self.voter, votes=self._votes())

        with self.assertRaises(AlreadyVotedError):
            cast_ballot(election=self.election, voter=self.voter, votes=self._votes())

        self.assertEqual(Ballot.objects.filter(election=self.election, voter=self.voter).count(), 1)

    def test_already_voted_is_checked_before_ballot_validation(self) -> None:
        cast_ballot(election=self.election, voter=self.voter, votes=self._votes())

        with self.assertRaises(AlreadyVotedError):
            cast_ballot(election=self.election, voter=self.voter, votes={"garbage": True})

    def test_invalid_ballot_reports_failures_and_writes_nothing(self) -> None:
        votes = {
            self.president.field_key: {"candidate_id": self.sen1.pk},
            self.senators.field_key: [self.sen1.pk, self.sen1.pk],
        }

        with self.assertRaises(InvalidBallotError) as ctx:
            cast_ballot(election=self.election, voter=self.voter, votes=votes)

        self.assertEqual(
            [(f.position, f.reason) for f in ctx.exception.failures],
            [("President", "not-approved-candidate"), ("Senators", "duplicate-candidate")],
        )
        self.assertFalse(Ballot.objects.exists())
        entry = AuditLogEntry.objects.get(event_type="ballot_rejected")
        self.assertEqual(len(entry.payload["errors"]), 2)

    def test_unapproved_candidate_is_rejected(self) -> None:
        pending = make_candidate(self.president, approved=False)

        with self.assertRaises(InvalidBallotError):
            cast_ballot(
                election=self.election,
                voter=self.voter,
                votes={self.president.field_key: pending.pk},
            )

    def test_ballot_without_any_selection_is_rejected(self) -> None:
        election = make_election()
        position = make_position(election, allow_abstain=True)
        make_candidate(position)

        with self.assertRaises(NoSelectionMadeError):
            cast_ballot(election=election, voter=self.voter, votes={position.abstain_key: True})

        self.assertFalse(Ballot.objects.filter(election=election).exists())

    def test_empty_rankings_on_required_position_are_rejected(self) -> None:
        ranked = make_position(self.election, name="Chair", type=BallotType.ranked, sort_order=2)
        make_candidate(ranked)
        votes = {**self._votes(), ranked.field_key: {"rankings": []}}

        with self.assertRaises(InvalidBallotError) as ctx:
            cast_ballot(election=self.election, voter=self.voter, votes=votes)

        self.assertEqual(
            [(f.position, f.reason) for f in ctx.exception.failures],
            [("Chair", "missing-required-selection")],
        )
        self.assertFalse(Ballot.objects.exists())

    def test_empty_candidate_ids_on_required_position_are_rejected(self) -> None:
        votes = {self.president.field_key: {"candidate_id": self.alice.pk}}
        required = make_position(self.election, name="Treasurer", type=BallotType.multiple, max_selection=2)
        make_candidate(required)
        votes[required.field_key] = {"candidate_ids": []}

        with self.assertRaises(InvalidBallotError) as ctx:
            cast_ballot(election=self.election, voter=self.voter, votes=votes)

        self.assertEqual([f.reason for f in ctx.exception.failures], ["missing-required-selection"])

    def test_empty_candidate_ids_with_abstain_allowed_store_nothing(self) -> None:
        votes = {self.president.field_key: self.alice.pk, self.senators.field_key: {"candidate_ids": []}}

        receipt = cast_ballot(election=self.election, voter=self.voter, votes=votes)

        self.assertEqual(
            Ballot.objects.get(pk=receipt.ballot_id).vote_data,
            {self.president.field_key: {"candidate_id": self.alice.pk}},
        )

    def test_ballot_of_only_empty_selections_is_rejected(self) -> None:
        election = make_election()
        position = make_position(election, type=BallotType.multiple, max_selection=2, allow_abstain=True)
        make_candidate(position)

        with self.assertRaises(NoSelectionMadeError):
            cast_ballot(election=election, voter=self.voter, votes={position.field_key: {"candidate_ids": []}})

        self.assertFalse(Ballot.objects.filter(election=election).exists())

    def test_explicit_abstention_is_stored(self) -> None:
        votes = {
            self.president.field_key: self.bob.pk,
            self.senators.abstain_key: True,
        }

        receipt = cast_ballot(election=self.election, voter=self.voter, votes=votes)

        self.assertEqual(
            Ballot.objects.get(pk=receipt.ballot_id).vote_data,
            {
                self.president.field_key: {"candidate_id": self.bob.pk},
                self.senators.abstain_key: True,
            },
        )

    def test_unique_constraint_violation_becomes_already_voted(self) -> None:
        Ballot.objects.create(election=self.election, voter=self.voter, vote_data={})

        # Simulate a concurrent insert that landed after the pre-check.
        with patch(
            "voting.elections_services._check_cast_preconditions",
            return_value={},
        ):
            with self.assertRaises(AlreadyVotedError):
                cast_ballot(election=self.election, voter=self.voter, votes=self._votes())

        self.assertEqual(Ballot.objects.filter(election=self.election, voter=self.voter).count(), 1)
        entry = AuditLogEntry.objects.get(election=self.election, event_type="ballot_rejected")
        self.assertEqual(entry.payload["code"], "already_voted")
        self.assertEqual(entry.payload["voter_id"], self.voter.pk)


class CastBallotCommitTests(TransactionTestCase):
    def test_sequential_casts_leave_exactly_one_ballot(self) -> None:
        election = make_election()
        position = make_position(election)
        candidate = make_candidate(position)
        voter = make_student()
        votes = {position.field_key: candidate.pk}

        outcomes: list[str] = []
        for _ in range(2):
            try:
                cast_ballot(election=election, voter=voter, votes=votes)
            except AlreadyVotedError:
                outcomes.append("already_voted")
            else:
                outcomes.append("cast")

        self.assertEqual(outcomes, ["cast", "already_voted"])
        self.assertEqual(Ballot.objects.filter(election=election).count(), 1)
        # Outside a transaction the after-commit hook runs immediately.
        self.assertEqual(AuditLogEntry.objects.filter(election=election, event_type="ballot_cast").count(), 1)
        self.assertEqual(Election.objects.get(pk=election.pk).ballots.count(), 1)

    @skipUnless(connection.vendor == "postgresql", "needs row-level locking from PostgreSQL")
    def test_racing_casts_leave_exactly_one_ballot(self) -> None:
        election = make_election()
        position = make_position(election)
        candidate = make_candidate(position)
        voter = make_student()
        votes = {position.field_key: candidate.pk}

        barrier = threading.Barrier(2)
        outcomes: list[str] = []
        lock = threading.Lock()

        def cast() -> None:
            try:
                barrier.wait(timeout=5)
                cast_ballot(election=election, voter=voter, votes=votes)
            except AlreadyVotedError:
                outcome = "already_voted"
            else:
                outcome = "cast"
            finally:
                connection.close()
            with lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=cast) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        self.assertEqual(sorted(outcomes), ["already_voted", "cast"])
        self.assertEqual(Ballot.objects.filter(election=election).count(), 1)
