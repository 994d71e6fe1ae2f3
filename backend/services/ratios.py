from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable


@dataclass(frozen=True)
class StaffingTargets:
    required: int | None
    preferred: int | None
    class_group_id: Any | None = None


def teachers_needed(enrollment: int | None, ratio: int | None) -> int | None:
    """Teachers needed for ``enrollment`` children at ``ratio`` children per teacher.

    Returns None (no target, which is not the same as zero) when either value
    is missing or the ratio is not positive. 13 children at 1:8 need 2.
    """

    if enrollment is None or ratio is None:
        return None
    if int(ratio) <= 0:
        return None
    return -(-int(enrollment) // int(ratio))


def _age_sort_key(group: Any) -> tuple[int, float, str]:
    min_age = getattr(group, "min_age", None)
    if min_age is None:
        return (1, 0.0, str(getattr(group, "id", "")))
    return (0, float(min_age), str(getattr(group, "id", "")))


def authoritative_class_group(groups: Iterable[Any]) -> Any | None:
    """The youngest group (lowest min_age) drives the ratio; ties go to the lowest id.

    Groups without a min_age sort after every group that has one.
    """

    candidates = list(groups)
    if not candidates:
        return None
    return min(candidates, key=_age_sort_key)


def staffing_targets(enrollment: int | None, groups: Iterable[Any]) -> StaffingTargets:
    group = authoritative_class_group(groups)
    if group is None:
        return StaffingTargets(required=None, preferred=None)

    required = teachers_needed(enrollment, getattr(group, "required_ratio", None))
    preferred = None
    if getattr(group, "preferred_ratio", None) is not None:
        preferred = teachers_needed(enrollment, group.preferred_ratio)
    return StaffingTargets(required=required, preferred=preferred, class_group_id=getattr(group, "id", None))
