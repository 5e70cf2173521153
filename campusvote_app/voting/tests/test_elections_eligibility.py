from __future__ import annotations

from django.test import TestCase

from voting.elections_eligibility import eligible_elections_for, is_eligible, require_eligible
from voting.elections_errors import NotEligibleError
from voting.models import Election, Organization
from voting.tests.utils_test_data import make_election, make_student


class ElectionEligibilityTests(TestCase):
    def setUp(self) -> None:
        self.voter = make_student(department="Computer Science", class_level="Junior")

    def _restricted(self, **groups) -> Election:
        return make_election(is_universal=False, eligible_groups=groups)

    def test_universal_election_admits_everyone(self) -> None:
        self.assertTrue(is_eligible(election=make_election(is_universal=True), voter=self.voter))

    def test_department_match_ignores_case_and_whitespace(self) -> None:
        election = self._restricted(departments=[" computer science ", "Biology"])

        self.assertTrue(is_eligible(election=election, voter=self.voter))

    def test_class_level_match(self) -> None:
        self.assertTrue(is_eligible(election=self._restricted(class_levels=["Junior"]), voter=self.voter))
        self.assertFalse(is_eligible(election=self._restricted(class_levels=["Senior"]), voter=self.voter))

    def test_manual_ids_tolerate_strings(self) -> None:
        election = self._restricted(manual=[str(self.voter.pk), "not-an-id"])

        with self.assertLogs("voting.elections_eligibility", level="WARNING"):
            self.assertTrue(is_eligible(election=election, voter=self.voter))

    def test_organization_overlap(self) -> None:
        chess = Organization.objects.create(name="Chess Club")
        drama = Organization.objects.create(name="Drama Society")
        self.voter.organizations.add(chess)

        self.assertTrue(is_eligible(election=self._restricted(organizations=[chess.pk]), voter=self.voter))
        self.assertFalse(is_eligible(election=self._restricted(organizations=[drama.pk]), voter=self.voter))

    def test_no_matching_group_is_not_eligible(self) -> None:
        election = self._restricted(departments=["Biology"], class_levels="Junior")

        self.assertFalse(is_eligible(election=election, voter=self.voter))

    def test_missing_voter_is_never_eligible(self) -> None:
        self.assertFalse(is_eligible(election=make_election(is_universal=True), voter=None))

    def test_drafts_can_be_evaluated(self) -> None:
        draft = make_election(status=Election.Status.draft, is_universal=True)

        self.assertTrue(is_eligible(election=draft, voter=self.voter))

    def test_eligible_elections_for_filters(self) -> None:
        open_to_all = make_election(is_universal=True)
        biology_only = self._restricted(departments=["Biology"])

        self.assertEqual(
            eligible_elections_for(voter=self.voter, elections=[open_to_all, biology_only]),
            [open_to_all],
        )

    def test_require_eligible_raises(self) -> None:
        with self.assertRaises(NotEligibleError) as ctx:
            require_eligible(election=self._restricted(), voter=self.voter)

        self.assertEqual(ctx.exception.code, "not_eligible")
        self.assertEqual(ctx.exception.status_code, 403)
