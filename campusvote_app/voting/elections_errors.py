from __future__ import annotations

from dataclasses import asdict, dataclass


class ElectionError(Exception):
    code = "election_error"
    status_code = 400


class NotEligibleError(ElectionError):
    code = "not_eligible"
    status_code = 403


class ElectionNotOpenError(ElectionError):
    code = "election_not_open"
    status_code = 403


class AlreadyVotedError(ElectionError):
    code = "already_voted"
    status_code = 409


@dataclass(frozen=True)
class BallotFailure:
    position_id: int
    position: str
    reason: str
    message: str

    def as_dict(self) -> dict[str, object]:
        return asdict(self)


class InvalidBallotError(ElectionError):
    code = "invalid_ballot"
    status_code = 422

    def __init__(self, failures: list[BallotFailure]) -> None:
        self.failures = list(failures)
        if self.failures:
            first = self.failures[0]
            message = f"{first.position}: {first.message}"
            if len(self.failures) > 1:
                message += f" (and {len(self.failures) - 1} more)"
        else:
            message = "Ballot is invalid."
        super().__init__(message)


class NoSelectionMadeError(ElectionError):
    code = "no_selection_made"
    status_code = 422


class ResultsNotAvailableError(ElectionError):
    code = "results_not_available"
    status_code = 200

    def __init__(self, message: str, *, current_status: str) -> None:
        super().__init__(message)
        self.current_status = current_status
