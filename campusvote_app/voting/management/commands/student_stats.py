import csv
import json
from typing import override

from django.core.management.base import BaseCommand

from voting.elections_stats import all_student_stats

CSV_COLUMNS = (
    "student_id",
    "name",
    "email",
    "elections_voted",
    "campus_rank",
    "percentile",
    "impact_score",
    "campus_impact_score",
    "last_voted_at",
)


class Command(BaseCommand):
    help = "Print participation stats for every active student, most active first."

    @override
    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--format",
            choices=("json", "csv"),
            default="csv",
            help="Output format (default: csv).",
        )

    @override
    def handle(self, *args, **options) -> None:
        rows = all_student_stats()

        if options.get("format") == "json":
            self.stdout.write(json.dumps(rows, indent=2))
            return

        writer = csv.writer(self.stdout)
        writer.writerow(CSV_COLUMNS)
        for row in rows:
            writer.writerow(["" if row[column] is None else row[column] for column in CSV_COLUMNS])
