"""Ballot structure: parsing submitted selections and validating them per position.

A submitted ballot is a mapping keyed by ``position_<id>`` (plain ``"<id>"``
keys are accepted too) with an optional ``position_<id>_abstain`` flag. Each
per-position value is parsed into a tagged selection chosen by the position's
declared type, then checked against the position's rules and its approved
candidates.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum

from voting.elections_errors import BallotFailure, InvalidBallotError
from voting.models import BallotType, Position

logger = logging.getLogger(__name__)


class RejectionReason(StrEnum):
    not_approved_candidate = "not-approved-candidate"
    too_many_selections = "too-many-selections"
    duplicate_rank = "duplicate-rank"
    duplicate_candidate = "duplicate-candidate"
    invalid_rank = "invalid-rank"
    missing_required_selection = "missing-required-selection"
    abstain_not_allowed = "abstain-not-allowed"
    malformed_selection = "malformed-selection"


class MalformedSelectionError(ValueError):
    def __init__(self, message: str, *, reason: RejectionReason = RejectionReason.malformed_selection) -> None:
        super().__init__(message)
        self.reason = reason


@dataclass(frozen=True)
class SingleChoice:
    candidate_id: int

    def to_vote_data(self) -> dict[str, object]:
        return {"candidate_id": self.candidate_id}


@dataclass(frozen=True)
class MultipleChoice:
    candidate_ids: tuple[int, ...]

    def to_vote_data(self) -> dict[str, object]:
        return {"candidate_ids": list(self.candidate_ids)}


@dataclass(frozen=True)
class RankedEntry:
    candidate_id: int
    rank: int


@dataclass(frozen=True)
class RankedChoice:
    rankings: tuple[RankedEntry, ...]

    def to_vote_data(self) -> dict[str, object]:
        ordered = sorted(self.rankings, key=lambda e: (e.rank, e.candidate_id))
        return {"rankings": [{"candidate_id": e.candidate_id, "rank": e.rank} for e in ordered]}


@dataclass(frozen=True)
class Abstention:
    # False when the voter simply left an optional position empty.
    explicit: bool


type Selection = SingleChoice | MultipleChoice | RankedChoice


@dataclass(frozen=True)
class ValidationResult:
    position_id: int
    position_name: str
    reason: RejectionReason | None = None
    message: str = ""
    selection: Selection | Abstention | None = None

    @property
    def ok(self) -> bool:
        return self.reason is None

    def as_failure(self) -> BallotFailure:
        return BallotFailure(
            position_id=self.position_id,
            position=self.position_name,
            reason=str(self.reason or ""),
            message=self.message,
        )


def _coerce_id(value: object) -> int:
    # bool is an int subclass; a stray true/false is never a candidate id.
    if isinstance(value, bool):
        raise MalformedSelectionError(f"Invalid candidate id: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise MalformedSelectionError(f"Invalid candidate id: {value!r}")


def _coerce_rank(value: object) -> int:
    if isinstance(value, bool):
        raise MalformedSelectionError(f"Invalid rank: {value!r}", reason=RejectionReason.invalid_rank)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise MalformedSelectionError(f"Invalid rank: {value!r}", reason=RejectionReason.invalid_rank)


def _parse_single(raw: object) -> SingleChoice:
    if isinstance(raw, Mapping):
        if "candidate_id" not in raw:
            raise MalformedSelectionError("Expected a candidate_id.")
        return SingleChoice(candidate_id=_coerce_id(raw["candidate_id"]))
    if isinstance(raw, list):
        if len(raw) != 1:
            raise MalformedSelectionError("Select exactly one candidate.")
        return SingleChoice(candidate_id=_coerce_id(raw[0]))
    return SingleChoice(candidate_id=_coerce_id(raw))


def _parse_multiple(raw: object) -> MultipleChoice:
    if isinstance(raw, Mapping):
        if "candidate_ids" not in raw:
            raise MalformedSelectionError("Expected candidate_ids.")
        raw = raw["candidate_ids"]

    if not isinstance(raw, list):
        return MultipleChoice(candidate_ids=(_coerce_id(raw),))

    ids: list[int] = []
    for item in raw:
        if isinstance(item, Mapping):
            if "candidate_id" not in item:
                raise MalformedSelectionError("Expected a candidate_id.")
            ids.append(_coerce_id(item["candidate_id"]))
        else:
            ids.append(_coerce_id(item))
    return MultipleChoice(candidate_ids=tuple(ids))


def _parse_ranked(raw: object) -> RankedChoice:
    if isinstance(raw, Mapping) and "rankings" in raw:
        raw = raw["rankings"]

    entries: list[RankedEntry] = []
    if isinstance(raw, Mapping):
        # Older ballots stored rankings as {candidate_id: rank}.
        for candidate_id, rank in raw.items():
            entries.append(RankedEntry(candidate_id=_coerce_id(candidate_id), rank=_coerce_rank(rank)))
        return RankedChoice(rankings=tuple(entries))

    if not isinstance(raw, list):
        raise MalformedSelectionError("Expected a list of rankings.")

    for index, item in enumerate(raw):
        if isinstance(item, Mapping):
            if "candidate_id" not in item:
                raise MalformedSelectionError("Expected a candidate_id.")
            rank = _coerce_rank(item["rank"]) if item.get("rank") is not None else index + 1
            entries.append(RankedEntry(candidate_id=_coerce_id(item["candidate_id"]), rank=rank))
        else:
            entries.append(RankedEntry(candidate_id=_coerce_id(item), rank=index + 1))
    return RankedChoice(rankings=tuple(entries))


def parse_selection(position_type: str, raw: object) -> Selection:
    """Parse one position's submitted value into the variant for its type.

    Raises MalformedSelectionError when the value has the wrong shape.
    """
    match position_type:
        case BallotType.single:
            return _parse_single(raw)
        case BallotType.multiple:
            return _parse_multiple(raw)
        case BallotType.ranked:
            return _parse_ranked(raw)
    raise MalformedSelectionError(f"Unknown position type: {position_type!r}")


def is_absent(raw: object) -> bool:
    return raw is None or raw == "" or raw == [] or raw == {}


def is_empty_selection(selection: Selection) -> bool:
    match selection:
        case MultipleChoice(candidate_ids=()):
            return True
        case RankedChoice(rankings=()):
            return True
    return False


def _failure(position: Position, reason: RejectionReason, message: str) -> ValidationResult:
    return ValidationResult(
        position_id=int(position.pk),
        position_name=str(position.name),
        reason=reason,
        message=message,
    )


def _accepted(position: Position, selection: Selection | Abstention) -> ValidationResult:
    return ValidationResult(
        position_id=int(position.pk),
        position_name=str(position.name),
        selection=selection,
    )


def _no_selection(position: Position) -> ValidationResult:
    if position.allow_abstain:
        return _accepted(position, Abstention(explicit=False))
    return _failure(
        position,
        RejectionReason.missing_required_selection,
        f"You must make a selection for {position.name}.",
    )


def _check_approved(position: Position, candidate_ids: Iterable[int], approved: set[int]) -> ValidationResult | None:
    unknown = sorted({cid for cid in candidate_ids if cid not in approved})
    if unknown:
        return _failure(
            position,
            RejectionReason.not_approved_candidate,
            f"Candidate {unknown[0]} is not an approved candidate for {position.name}.",
        )
    return None


def validate_position_vote(
    position: Position,
    submitted: object,
    approved_candidate_ids: Iterable[int],
    *,
    abstain: bool = False,
) -> ValidationResult:
    approved = {int(cid) for cid in approved_candidate_ids}

    if abstain:
        if not position.allow_abstain:
            return _failure(
                position,
                RejectionReason.abstain_not_allowed,
                f"Abstaining is not allowed for {position.name}.",
            )
        return _accepted(position, Abstention(explicit=True))

    if is_absent(submitted):
        return _no_selection(position)

    try:
        selection = parse_selection(str(position.type), submitted)
    except MalformedSelectionError as exc:
        return _failure(position, exc.reason, f"{position.name}: {exc}")

    # {"candidate_ids": []} and {"rankings": []} select nobody.
    if is_empty_selection(selection):
        return _no_selection(position)

    match selection:
        case SingleChoice(candidate_id=candidate_id):
            rejected = _check_approved(position, [candidate_id], approved)
            if rejected is not None:
                return rejected

        case MultipleChoice(candidate_ids=candidate_ids):
            if len(set(candidate_ids)) != len(candidate_ids):
                return _failure(
                    position,
                    RejectionReason.duplicate_candidate,
                    f"A candidate was selected more than once for {position.name}.",
                )
            if position.max_selection and len(candidate_ids) > position.max_selection:
                return _failure(
                    position,
                    RejectionReason.too_many_selections,
                    f"You can only select up to {position.max_selection} candidate(s) for {position.name}.",
                )
            rejected = _check_approved(position, candidate_ids, approved)
            if rejected is not None:
                return rejected

        case RankedChoice(rankings=rankings):
            if any(entry.rank < 1 for entry in rankings):
                return _failure(
                    position,
                    RejectionReason.invalid_rank,
                    f"Ranks must be positive integers for {position.name}.",
                )
            if any(n > 1 for n in Counter(e.candidate_id for e in rankings).values()):
                return _failure(
                    position,
                    RejectionReason.duplicate_candidate,
                    f"A candidate was ranked more than once for {position.name}.",
                )
            if any(n > 1 for n in Counter(e.rank for e in rankings).values()):
                return _failure(
                    position,
                    RejectionReason.duplicate_rank,
                    f"The same rank was used more than once for {position.name}.",
                )
            if position.ranking_levels and len(rankings) > position.ranking_levels:
                return _failure(
                    position,
                    RejectionReason.too_many_selections,
                    f"You can only rank up to {position.ranking_levels} candidate(s) for {position.name}.",
                )
            rejected = _check_approved(position, (e.candidate_id for e in rankings), approved)
            if rejected is not None:
                return rejected

    return _accepted(position, selection)


def _submitted_value(votes: Mapping[str, object], position: Position) -> object:
    if position.field_key in votes:
        return votes[position.field_key]
    return votes.get(str(position.pk))


def _abstain_requested(votes: Mapping[str, object], position: Position) -> bool:
    return votes.get(position.abstain_key) is True


def validate_ballot(
    *,
    positions: Iterable[Position],
    votes: Mapping[str, object],
    approved_candidate_ids_by_position: Mapping[int, Iterable[int]],
) -> dict[int, Selection | Abstention]:
    """Validate every position of a ballot and return the typed selections.

    All positions are checked so the caller can report every problem at once.
    Raises InvalidBallotError if any position fails.
    """
    accepted: dict[int, Selection | Abstention] = {}
    failures: list[BallotFailure] = []

    for position in positions:
        result = validate_position_vote(
            position,
            _submitted_value(votes, position),
            approved_candidate_ids_by_position.get(int(position.pk), ()),
            abstain=_abstain_requested(votes, position),
        )
        if result.ok and result.selection is not None:
            accepted[int(position.pk)] = result.selection
        else:
            failures.append(result.as_failure())

    if failures:
        raise InvalidBallotError(failures)

    return accepted


def has_any_selection(selections: Mapping[int, Selection | Abstention]) -> bool:
    return any(
        not isinstance(selection, Abstention) and not is_empty_selection(selection)
        for selection in selections.values()
    )


def build_vote_data(selections: Mapping[int, Selection | Abstention]) -> dict[str, object]:
    """Serialize validated selections into the stored ``vote_data`` shape.

    Positions left empty store nothing; explicit abstentions store the flag.
    """
    vote_data: dict[str, object] = {}
    for position_id, selection in sorted(selections.items()):
        if isinstance(selection, Abstention):
            if selection.explicit:
                vote_data[f"position_{position_id}_abstain"] = True
            continue
        vote_data[f"position_{position_id}"] = selection.to_vote_data()
    return vote_data
