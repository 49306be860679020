# sector_registry/services/filters.py

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, List, Mapping, Optional

from sqlalchemy import Select, String, cast, func, or_
from sqlalchemy.future import select

from sector_registry.core.config import settings
from sector_registry.models.sector import Sector

# largest value a LIMIT / OFFSET bind fits in (signed 64-bit)
MAX_BIGINT = 2**63 - 1


@dataclass
class CompiledQuery:
    """Paginated row statement plus a count statement with the same predicates."""

    rows: Select
    count: Select
    limit: int
    offset: int


# -----------------------------------------------------
# PERMISSIVE PARAMETER PARSING
# -----------------------------------------------------
def _text(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    value = str(raw).strip()
    return value or None


def _number(raw: Any) -> Optional[Decimal]:
    value = _text(raw)
    if value is None:
        return None
    try:
        number = Decimal(value)
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def _non_negative_int(raw: Any, default: int) -> int:
    number = _number(raw)
    if number is None:
        return default
    return min(max(int(number), 0), MAX_BIGINT)


# -----------------------------------------------------
# COMPILER
# -----------------------------------------------------
def build_predicates(params: Mapping[str, Any]) -> List[Any]:
    """
    WHERE clauses for the recognized filters; unknown keys are ignored.

    Values are always bound parameters, never part of the SQL text.
    """
    predicates: List[Any] = []

    division = _text(params.get("division"))
    if division:
        predicates.append(Sector.division == division)

    office = _text(params.get("office"))
    if office:
        predicates.append(Sector.office.icontains(office, autoescape=True))

    min_area = _number(params.get("minArea"))
    if min_area is not None:
        predicates.append(Sector.design_a_f >= min_area)

    max_area = _number(params.get("maxArea"))
    if max_area is not None:
        predicates.append(Sector.design_a_f <= max_area)

    search = _text(params.get("search"))
    if search:
        predicates.append(
            or_(
                Sector.canal_name.icontains(search, autoescape=True),
                Sector.office.icontains(search, autoescape=True),
                Sector.name_ar.icontains(search, autoescape=True),
                cast(Sector.no_nemra, String).icontains(search, autoescape=True),
            )
        )

    return predicates


def compile_filters(
    params: Mapping[str, Any], default_limit: Optional[int] = None
) -> CompiledQuery:
    limit = _non_negative_int(
        params.get("limit"),
        settings.DEFAULT_PAGE_LIMIT if default_limit is None else default_limit,
    )
    offset = _non_negative_int(params.get("offset"), 0)
    predicates = build_predicates(params)

    rows = (
        select(Sector)
        .where(*predicates)
        .order_by(Sector.division, Sector.canal_name, Sector.id)
        .limit(limit)
        .offset(offset)
    )
    count = select(func.count()).select_from(Sector).where(*predicates)
    return CompiledQuery(rows=rows, count=count, limit=limit, offset=offset)


def compile_division_query(
    division: str, limit: Any = None, offset: Any = None
) -> CompiledQuery:
    """Listing for one division, ordered by canal name."""
    limit = _non_negative_int(limit, settings.DIVISION_PAGE_LIMIT)
    offset = _non_negative_int(offset, 0)
    predicate = Sector.division == division

    rows = (
        select(Sector)
        .where(predicate)
        .order_by(Sector.canal_name, Sector.id)
        .limit(limit)
        .offset(offset)
    )
    count = select(func.count()).select_from(Sector).where(predicate)
    return CompiledQuery(rows=rows, count=count, limit=limit, offset=offset)
