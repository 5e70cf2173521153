"""Per-position tallying, including instant-runoff for ranked positions.

Everything here is pure: ballots come in as ``vote_data`` mappings and the
approved candidates are passed explicitly, so results depend only on the
inputs and never on ballot order.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import asdict, dataclass, field
from enum import StrEnum

from django.conf import settings

from voting.elections_ballots import (
    MalformedSelectionError,
    MultipleChoice,
    RankedChoice,
    SingleChoice,
    parse_selection,
)
from voting.models import BallotType, Candidate, Position

logger = logging.getLogger(__name__)


class WinnerStatus(StrEnum):
    determined = "determined"
    no_votes = "no_votes"
    safety_limit_exceeded = "safety_limit_exceeded"


@dataclass(frozen=True)
class TallyCandidate:
    candidate_id: int
    name: str
    tagline: str = ""


def tally_candidates_from(candidates: Iterable[Candidate]) -> list[TallyCandidate]:
    return [
        TallyCandidate(candidate_id=int(c.pk), name=c.display_name, tagline=str(c.tagline or ""))
        for c in candidates
    ]


@dataclass(frozen=True)
class CandidateTally:
    candidate_id: int
    candidate_name: str
    candidate_tagline: str
    votes: int
    percentage: float
    rank: int


@dataclass(frozen=True)
class RunoffRound:
    round: int
    votes: dict[int, int]
    total: int
    majority: int
    exhausted: int = 0
    elected: int | None = None
    eliminated: int | None = None

    def as_dict(self) -> dict[str, object]:
        return {
            "round": self.round,
            "votes": [{"candidate_id": cid, "votes": n} for cid, n in sorted(self.votes.items())],
            "total": self.total,
            "majority": self.majority,
            "exhausted": self.exhausted,
            "elected": self.elected,
            "eliminated": self.eliminated,
        }


@dataclass(frozen=True)
class PositionResult:
    position_id: int
    position_name: str
    position_type: str
    total_votes: int
    abstentions: int
    valid_votes: int
    candidates: tuple[CandidateTally, ...]
    winners: tuple[int, ...]
    winner_status: WinnerStatus
    rounds: tuple[RunoffRound, ...] = field(default=())
    skipped: int = 0

    def as_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "position_id": self.position_id,
            "position_name": self.position_name,
            "position_type": self.position_type,
            "total_votes": self.total_votes,
            "abstentions": self.abstentions,
            "valid_votes": self.valid_votes,
            "candidates": [asdict(c) for c in self.candidates],
            "winners": list(self.winners),
            "winner_status": str(self.winner_status),
        }
        if self.position_type == BallotType.ranked:
            data["rounds"] = [r.as_dict() for r in self.rounds]
        return data


def _percentage(votes: int, valid: int) -> float:
    if valid <= 0:
        return 0.0
    return round(votes / valid * 100, 2)


def _ranked_tallies(
    counts: Mapping[int, int],
    candidates: Sequence[TallyCandidate],
    *,
    valid: int,
) -> tuple[CandidateTally, ...]:
    """Order by votes then id; ties share a rank (1, 1, 3 ...)."""
    ordered = sorted(candidates, key=lambda c: (-counts.get(c.candidate_id, 0), c.candidate_id))
    tallies: list[CandidateTally] = []
    for candidate in ordered:
        votes = counts.get(candidate.candidate_id, 0)
        above = sum(1 for other in candidates if counts.get(other.candidate_id, 0) > votes)
        tallies.append(
            CandidateTally(
                candidate_id=candidate.candidate_id,
                candidate_name=candidate.name,
                candidate_tagline=candidate.tagline,
                votes=votes,
                percentage=_percentage(votes, valid),
                rank=1 + above,
            )
        )
    return tuple(tallies)


def instant_runoff(
    preferences: Sequence[Sequence[int]],
    candidate_ids: Iterable[int],
    *,
    max_rounds: int,
) -> tuple[int | None, WinnerStatus, tuple[RunoffRound, ...]]:
    """Run instant-runoff elimination over ordered preference lists.

    Each round a ballot counts for its highest-preferred surviving candidate.
    A strict majority of the round's counted ballots wins; otherwise exactly
    one candidate with the fewest votes is eliminated, lowest id first on a
    tie. The last remaining candidate wins outright.
    """
    remaining = set(candidate_ids)
    rounds: list[RunoffRound] = []
    if not remaining or not any(preferences):
        return None, WinnerStatus.no_votes, ()

    for round_number in range(1, max_rounds + 1):
        counts = dict.fromkeys(remaining, 0)
        exhausted = 0
        for ranking in preferences:
            top = next((cid for cid in ranking if cid in remaining), None)
            if top is None:
                exhausted += 1
            else:
                counts[top] += 1

        total = sum(counts.values())
        majority = total // 2 + 1
        if total == 0:
            return None, WinnerStatus.no_votes, tuple(rounds)

        leader = min(remaining, key=lambda cid: (-counts[cid], cid))
        if len(remaining) == 1 or counts[leader] >= majority:
            rounds.append(
                RunoffRound(
                    round=round_number,
                    votes=counts,
                    total=total,
                    majority=majority,
                    exhausted=exhausted,
                    elected=leader,
                )
            )
            return leader, WinnerStatus.determined, tuple(rounds)

        fewest = min(counts.values())
        eliminated = min(cid for cid in remaining if counts[cid] == fewest)
        rounds.append(
            RunoffRound(
                round=round_number,
                votes=counts,
                total=total,
                majority=majority,
                exhausted=exhausted,
                eliminated=eliminated,
            )
        )
        remaining.discard(eliminated)

    logger.warning("Instant runoff stopped after %d rounds without a winner", max_rounds)
    return None, WinnerStatus.safety_limit_exceeded, tuple(rounds)


def tally_position(
    *,
    position: Position,
    ballots: Iterable[Mapping[str, object]],
    candidates: Iterable[TallyCandidate],
    max_rounds: int | None = None,
) -> PositionResult:
    """Tally one position from stored ``vote_data`` mappings.

    Values that cannot be parsed, or that name no approved candidate of the
    position, are skipped for this position and logged.
    """
    if max_rounds is None:
        max_rounds = int(settings.ELECTION_IRV_MAX_ROUNDS)

    position_id = int(position.pk)
    position_type = str(position.type)
    key = f"position_{position_id}"
    abstain_key = f"position_{position_id}_abstain"

    candidate_list = sorted(candidates, key=lambda c: c.candidate_id)
    known = {c.candidate_id for c in candidate_list}
    counts: dict[int, int] = dict.fromkeys(known, 0)
    preferences: list[list[int]] = []

    total = 0
    abstentions = 0
    skipped = 0

    for vote_data in ballots:
        if key not in vote_data and abstain_key not in vote_data:
            continue

        if vote_data.get(abstain_key) is True:
            total += 1
            abstentions += 1
            continue

        raw = vote_data.get(key)
        if raw is None:
            continue

        try:
            selection = parse_selection(position_type, raw)
        except MalformedSelectionError as exc:
            skipped += 1
            logger.warning("Skipping malformed vote for position %s: %s", position_id, exc)
            continue

        match selection:
            case SingleChoice(candidate_id=candidate_id):
                chosen = [candidate_id] if candidate_id in known else []
            case MultipleChoice(candidate_ids=candidate_ids):
                chosen = sorted({cid for cid in candidate_ids if cid in known})
            case RankedChoice(rankings=rankings):
                ordered = sorted(
                    (e for e in rankings if e.candidate_id in known and e.rank >= 1),
                    key=lambda e: (e.rank, e.candidate_id),
                )
                chosen = list(dict.fromkeys(e.candidate_id for e in ordered))
            case _:
                chosen = []

        if not chosen:
            skipped += 1
            logger.warning("Skipping vote for position %s with no approved candidate", position_id)
            continue

        total += 1
        if position_type == BallotType.ranked:
            preferences.append(chosen)
            counts[chosen[0]] += 1
        elif position_type == BallotType.multiple:
            for cid in chosen:
                counts[cid] += 1
        else:
            counts[chosen[0]] += 1

    valid = total - abstentions
    tallies = _ranked_tallies(counts, candidate_list, valid=valid)

    rounds: tuple[RunoffRound, ...] = ()
    if position_type == BallotType.ranked:
        winner, winner_status, rounds = instant_runoff(preferences, known, max_rounds=max_rounds)
        winners: tuple[int, ...] = (winner,) if winner is not None else ()
    else:
        seats = 1
        if position_type == BallotType.multiple:
            seats = int(position.max_selection or 1)
        winners = tuple(t.candidate_id for t in tallies if t.votes > 0)[:seats]
        winner_status = WinnerStatus.determined if winners else WinnerStatus.no_votes

    return PositionResult(
        position_id=position_id,
        position_name=str(position.name),
        position_type=position_type,
        total_votes=total,
        abstentions=abstentions,
        valid_votes=valid,
        candidates=tallies,
        winners=winners,
        winner_status=winner_status,
        rounds=rounds,
        skipped=skipped,
    )
