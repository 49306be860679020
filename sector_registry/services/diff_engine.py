from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from sector_registry.services.feature_mapper import PROPERTY_FIELDS

GEOMETRY_FIELD = "geometry"
GEOMETRY_UPDATED = "Geometry updated"


def to_audit_text(value: Any) -> Optional[str]:
    """Canonical text snapshot of a column value for the audit trail."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


@dataclass(frozen=True)
class FieldChange:
    field: str
    old_value: Optional[str]
    new_value: Optional[str]


@dataclass
class SectorDiff:
    changes: List[FieldChange] = field(default_factory=list)
    assignments: Dict[str, Any] = field(default_factory=dict)
    geometry_changed: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.assignments


def sector_state(sector: Any) -> Dict[str, Any]:
    """Current values of every diffable column."""
    return {spec.column: getattr(sector, spec.column) for spec in PROPERTY_FIELDS}


def compute_diff(current: Mapping[str, Any], proposed: Mapping[str, Any]) -> SectorDiff:
    """
    Compare a proposed partial update against the stored state.

    Fields missing from `proposed` are untouched and equal values are
    dropped. Geometry is never compared: its presence always counts as a
    change and is reported as one coarse entry, after the field changes.
    """
    diff = SectorDiff()

    for column, new in proposed.items():
        if column == GEOMETRY_FIELD:
            continue
        old = current.get(column)
        if old == new:
            continue
        diff.assignments[column] = new
        diff.changes.append(FieldChange(column, to_audit_text(old), to_audit_text(new)))

    if proposed.get(GEOMETRY_FIELD) is not None:
        diff.assignments[GEOMETRY_FIELD] = proposed[GEOMETRY_FIELD]
        diff.changes.append(FieldChange(GEOMETRY_FIELD, None, GEOMETRY_UPDATED))
        diff.geometry_changed = True

    return diff
