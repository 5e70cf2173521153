import logging
from collections.abc import Iterable, Mapping

from voting.elections_errors import NotEligibleError
from voting.models import Election, Student

logger = logging.getLogger(__name__)

NOT_ELIGIBLE_MESSAGE = "You are not eligible to vote in this election."


def _group_values(groups: Mapping[str, object], key: str) -> list[object]:
    values = groups.get(key)
    if not isinstance(values, list):
        return []
    return values


def _normalized_labels(values: Iterable[object]) -> set[str]:
    return {str(v).strip().casefold() for v in values if str(v).strip()}


def _int_ids(values: Iterable[object]) -> set[int]:
    """Coerce ids from election JSON; legacy rows store some of them as strings."""
    ids: set[int] = set()
    for value in values:
        if isinstance(value, bool):
            continue
        try:
            ids.add(int(str(value).strip()))
        except (TypeError, ValueError):
            logger.warning("Ignoring non-integer id %r in eligible_groups", value)
    return ids


def is_eligible(*, election: Election, voter: Student | None) -> bool:
    """Return True when any single eligibility predicate matches.

    Does not look at the election status, so it is safe to call for drafts.
    """
    if voter is None:
        return False

    if election.is_universal:
        return True

    groups = election.eligible_groups if isinstance(election.eligible_groups, Mapping) else {}

    department = str(voter.department or "").strip().casefold()
    if department and department in _normalized_labels(_group_values(groups, "departments")):
        return True

    class_level = str(voter.class_level or "").strip().casefold()
    if class_level and class_level in _normalized_labels(_group_values(groups, "class_levels")):
        return True

    if voter.pk is not None and int(voter.pk) in _int_ids(_group_values(groups, "manual")):
        return True

    organization_ids = _int_ids(_group_values(groups, "organizations"))
    if organization_ids and voter.pk is not None:
        return bool(organization_ids & voter.organization_ids())

    return False


def eligible_elections_for(*, voter: Student, elections: Iterable[Election]) -> list[Election]:
    return [election for election in elections if is_eligible(election=election, voter=voter)]


def require_eligible(*, election: Election, voter: Student | None) -> None:
    if not is_eligible(election=election, voter=voter):
        raise NotEligibleError(NOT_ELIGIBLE_MESSAGE)
