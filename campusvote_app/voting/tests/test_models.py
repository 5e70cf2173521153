from __future__ import annotations

import datetime

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.test import SimpleTestCase, TestCase
from django.utils import timezone

from voting.models import Ballot, Candidate, Election, election_current_status
from voting.tests.utils_test_data import make_candidate, make_election, make_position, make_student


class ElectionCurrentStatusTests(SimpleTestCase):
    def setUp(self) -> None:
        self.now = timezone.now()
        self.start = self.now - datetime.timedelta(hours=1)
        self.end = self.now + datetime.timedelta(hours=1)

    def _status(self, *, now: datetime.datetime | None = None, status: str = Election.Status.active) -> str:
        return election_current_status(now=now or self.now, start_time=self.start, end_time=self.end, status=status)

    def test_active_inside_window_is_open(self) -> None:
        self.assertEqual(self._status(), Election.CurrentStatus.open)
        self.assertEqual(self._status(now=self.start), Election.CurrentStatus.open)
        self.assertEqual(self._status(now=self.end), Election.CurrentStatus.open)

    def test_before_start_is_upcoming(self) -> None:
        self.assertEqual(
            self._status(now=self.start - datetime.timedelta(seconds=1)),
            Election.CurrentStatus.upcoming,
        )

    def test_after_end_is_closed(self) -> None:
        self.assertEqual(self._status(now=self.end + datetime.timedelta(seconds=1)), Election.CurrentStatus.closed)

    def test_closed_or_archived_status_wins_over_the_clock(self) -> None:
        self.assertEqual(self._status(status=Election.Status.closed), Election.CurrentStatus.closed)
        self.assertEqual(
            self._status(now=self.start - datetime.timedelta(days=1), status=Election.Status.archived),
            Election.CurrentStatus.closed,
        )

    def test_draft_inside_window_is_not_open(self) -> None:
        self.assertEqual(self._status(status=Election.Status.draft), Election.CurrentStatus.closed)


class ElectionModelTests(TestCase):
    def test_transitions_follow_the_lifecycle(self) -> None:
        election = make_election(status=Election.Status.draft)

        election.transition_to(Election.Status.active)
        election.transition_to(Election.Status.closed)
        election.transition_to(Election.Status.archived)
        election.refresh_from_db()
        self.assertEqual(election.status, Election.Status.archived)

        with self.assertRaises(ValidationError):
            election.transition_to(Election.Status.active)

    def test_cannot_skip_from_draft_to_closed(self) -> None:
        election = make_election(status=Election.Status.draft)

        with self.assertRaises(ValidationError):
            election.transition_to(Election.Status.closed)

    def test_clean_requires_start_before_end(self) -> None:
        now = timezone.now()
        election = Election(title="Backwards", start_time=now, end_time=now - datetime.timedelta(hours=1))

        with self.assertRaises(ValidationError):
            election.clean()

    def test_visible_excludes_drafts(self) -> None:
        draft = make_election(status=Election.Status.draft)
        active = make_election()

        visible = set(Election.objects.visible().values_list("id", flat=True))
        self.assertIn(active.pk, visible)
        self.assertNotIn(draft.pk, visible)


class CandidateModelTests(TestCase):
    def test_election_is_filled_from_position(self) -> None:
        election = make_election()
        candidate = make_candidate(make_position(election))

        self.assertEqual(candidate.election_id, election.pk)

    def test_student_cannot_run_twice_in_one_election(self) -> None:
        election = make_election()
        president = make_position(election, name="President")
        treasurer = make_position(election, name="Treasurer")
        first = make_candidate(president)

        duplicate = Candidate(position=treasurer, student=first.student)
        with self.assertRaises(ValidationError):
            duplicate.clean()

        with self.assertRaises(IntegrityError), transaction.atomic():
            duplicate.save()

    def test_position_must_belong_to_the_candidate_election(self) -> None:
        position = make_position(make_election())
        other = make_election(title="Other")

        candidate = Candidate(position=position, election=other, student=make_student())
        with self.assertRaises(ValidationError):
            candidate.clean()


class BallotModelTests(TestCase):
    def test_ballots_cannot_be_updated(self) -> None:
        ballot = Ballot.objects.create(election=make_election(), voter=make_student(), vote_data={})

        ballot.vote_data = {"position_1": {"candidate_id": 1}}
        with self.assertRaisesMessage(ValueError, "immutable"):
            ballot.save()

    def test_one_ballot_per_voter_per_election(self) -> None:
        election = make_election()
        voter = make_student()
        Ballot.objects.create(election=election, voter=voter, vote_data={})

        with self.assertRaises(IntegrityError), transaction.atomic():
            Ballot.objects.create(election=election, voter=voter, vote_data={})
