import csv
import json
from typing import override

from django.core.management.base import BaseCommand, CommandError

from voting.elections_errors import ResultsNotAvailableError
from voting.elections_results import compute_election_results
from voting.models import Election

CSV_COLUMNS = (
    "position_id",
    "position_name",
    "candidate_id",
    "candidate_name",
    "votes",
    "percentage",
    "rank",
    "winner",
)


class Command(BaseCommand):
    help = "Print the results of a closed election as JSON or CSV."

    @override
    def add_arguments(self, parser) -> None:
        parser.add_argument("election_id", type=int)
        parser.add_argument(
            "--format",
            choices=("json", "csv"),
            default="json",
            help="Output format (default: json).",
        )

    @override
    def handle(self, *args, **options) -> None:
        election_id: int = int(options["election_id"])
        output_format: str = str(options.get("format") or "json")

        election = Election.objects.filter(pk=election_id).first()
        if election is None:
            raise CommandError(f"Election {election_id} does not exist.")

        try:
            results = compute_election_results(election=election)
        except ResultsNotAvailableError as exc:
            raise CommandError(f"{exc} Current status: {exc.current_status}.") from exc

        if output_format == "json":
            self.stdout.write(json.dumps(results, indent=2, sort_keys=True))
            return

        writer = csv.writer(self.stdout)
        writer.writerow(CSV_COLUMNS)
        for position in results["positions"]:
            winners = set(position["winners"])
            for candidate in position["candidates"]:
                writer.writerow(
                    [
                        position["position_id"],
                        position["position_name"],
                        candidate["candidate_id"],
                        candidate["candidate_name"],
                        candidate["votes"],
                        f"{candidate['percentage']:.2f}",
                        candidate["rank"],
                        "yes" if candidate["candidate_id"] in winners else "no",
                    ]
                )
