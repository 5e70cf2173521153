from __future__ import annotations

from django.test import TestCase

from voting.elections_errors import ResultsNotAvailableError
from voting.elections_results import closed_election_summaries, compute_election_results
from voting.models import Ballot, BallotType, Election
from voting.tests.utils_test_data import (
    make_candidate,
    make_closed_election,
    make_election,
    make_position,
    make_student,
)


class ComputeElectionResultsTests(TestCase):
    def test_open_election_results_are_not_available(self) -> None:
        election = make_election()

        with self.assertRaises(ResultsNotAvailableError) as ctx:
            compute_election_results(election=election)

        self.assertEqual(ctx.exception.current_status, Election.CurrentStatus.open)

    def test_closed_election_tallies_every_position_in_order(self) -> None:
        election = make_closed_election(title="Student Government")
        treasurer = make_position(election, name="Treasurer", sort_order=2)
        president = make_position(election, name="President", sort_order=1)
        chair = make_position(election, name="Chair", type=BallotType.ranked, sort_order=3)
        alice = make_candidate(president, name="Alice Able")
        bob = make_candidate(president, name="Bob Baker")
        tom = make_candidate(treasurer, name="Tom Till")
        make_candidate(treasurer, approved=False)
        carl = make_candidate(chair)
        dana = make_candidate(chair)

        Ballot.objects.create(
            election=election,
            voter=make_student(),
            vote_data={
                president.field_key: {"candidate_id": alice.pk},
                treasurer.field_key: {"candidate_id": tom.pk},
                chair.field_key: {"rankings": [{"candidate_id": dana.pk, "rank": 1}]},
            },
        )
        Ballot.objects.create(
            election=election,
            voter=make_student(),
            vote_data={
                president.field_key: {"candidate_id": alice.pk},
                treasurer.abstain_key: True,
                chair.field_key: {"rankings": [{"candidate_id": carl.pk, "rank": 1}]},
            },
        )
        Ballot.objects.create(
            election=election,
            voter=make_student(),
            vote_data={president.field_key: {"candidate_id": bob.pk}},
        )

        results = compute_election_results(election=election)

        self.assertEqual(results["total_votes"], 3)
        self.assertEqual(results["unique_voters"], 3)
        self.assertEqual(results["election"]["current_status"], "Closed")
        self.assertEqual([p["position_name"] for p in results["positions"]], ["President", "Treasurer", "Chair"])

        president_result, treasurer_result, chair_result = results["positions"]
        self.assertEqual(president_result["winners"], [alice.pk])
        self.assertEqual(president_result["candidates"][0]["candidate_name"], "Alice Able")
        self.assertEqual(president_result["candidates"][0]["percentage"], 66.67)

        self.assertEqual(treasurer_result["total_votes"], 2)
        self.assertEqual(treasurer_result["abstentions"], 1)
        self.assertEqual(treasurer_result["valid_votes"], 1)
        self.assertEqual([c["candidate_id"] for c in treasurer_result["candidates"]], [tom.pk])

        # One first choice each: the lower id (carl) is eliminated on the tie.
        self.assertEqual(chair_result["winners"], [dana.pk])
        self.assertIn("rounds", chair_result)
        self.assertNotIn("rounds", president_result)

    def test_results_are_recomputed_on_each_call(self) -> None:
        election = make_closed_election()
        position = make_position(election)
        candidate = make_candidate(position)

        self.assertEqual(compute_election_results(election=election)["positions"][0]["winners"], [])

        Ballot.objects.create(
            election=election,
            voter=make_student(),
            vote_data={position.field_key: {"candidate_id": candidate.pk}},
        )
        self.assertEqual(compute_election_results(election=election)["positions"][0]["winners"], [candidate.pk])


class ClosedElectionSummariesTests(TestCase):
    def test_lists_closed_eligible_elections_with_counts(self) -> None:
        voter = make_student(department="History")
        closed = make_closed_election(title="Fall Council")
        make_closed_election(title="Biology", is_universal=False, eligible_groups={"departments": ["Biology"]})
        make_closed_election(title="Draft", status=Election.Status.draft)
        make_election(title="Still open")
        Ballot.objects.create(election=closed, voter=voter, vote_data={})
        Ballot.objects.create(election=closed, voter=make_student(), vote_data={})

        summaries = closed_election_summaries(voter=voter)

        self.assertEqual([s["title"] for s in summaries], ["Fall Council"])
        self.assertEqual(summaries[0]["total_votes"], 2)
        self.assertTrue(summaries[0]["has_voted"])
