# sector_registry/services/feature_mapper.py

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sector_registry.core.exceptions import ValidationError
from sector_registry.models.geometry import GEOJSON_PRECISION
from sector_registry.models.sector import DIVISIONS

INTEGER = "integer"
DECIMAL = "decimal"
TEXT = "text"

# returned by coerce_value when the raw input cannot be parsed
ABSENT = object()


@dataclass(frozen=True)
class FieldSpec:
    column: str
    external: str
    kind: str
    scale: Optional[int] = None


# -----------------------------------------------------
# EXTERNAL PROPERTY SCHEMA (order = output order)
# -----------------------------------------------------
PROPERTY_FIELDS = (
    FieldSpec("objectid_1", "OBJECTID_1", INTEGER),
    FieldSpec("objectid", "OBJECTID", INTEGER),
    FieldSpec("feature_id", "Id", INTEGER),
    FieldSpec("no_nemra", "No_Nemra", INTEGER),
    FieldSpec("canal_name", "Canal_Name", TEXT),
    FieldSpec("office", "Office", TEXT),
    FieldSpec("division", "Division", TEXT),
    FieldSpec("name_ar", "Name_AR", TEXT),
    FieldSpec("design_a_f", "Design_A_F", DECIMAL, 2),
    FieldSpec("remarks_1", "Remarks_1", TEXT),
    FieldSpec("shape_leng", "Shape_Leng", DECIMAL, 6),
    FieldSpec("shape_le_1", "Shape_Le_1", DECIMAL, 6),
    FieldSpec("shape_area", "Shape_Area", DECIMAL, 6),
)

TIMESTAMP_FIELDS = ("created_at", "updated_at")
ACTOR_FIELDS = ("created_by", "updated_by")

# allow-list for updates: external and internal names, division excluded
UPDATABLE_FIELDS: Dict[str, FieldSpec] = {}
for _spec in PROPERTY_FIELDS:
    if _spec.column != "division":
        UPDATABLE_FIELDS[_spec.external] = _spec
        UPDATABLE_FIELDS[_spec.column] = _spec

_DIVISION_SPEC = next(s for s in PROPERTY_FIELDS if s.column == "division")


# -----------------------------------------------------
# VALUE COERCION
# -----------------------------------------------------
def _to_decimal(raw: Any) -> Optional[Decimal]:
    if isinstance(raw, bool):
        return None
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return None
    return value if value.is_finite() else None


def coerce_value(spec: FieldSpec, raw: Any) -> Any:
    """
    Parse a weakly typed input value for one column.

    None stays None (an explicit clear). Unparseable numbers come back as
    ABSENT so callers can drop them instead of failing the request.
    """
    if raw is None:
        return None

    if spec.kind == INTEGER:
        value = _to_decimal(raw)
        if value is None or value != value.to_integral_value():
            return ABSENT
        return int(value)

    if spec.kind == DECIMAL:
        value = _to_decimal(raw)
        if value is None:
            return ABSENT
        try:
            return value.quantize(Decimal(1).scaleb(-spec.scale), rounding=ROUND_HALF_UP)
        except InvalidOperation:
            return ABSENT

    return str(raw)


def normalize_division(raw: Any) -> Optional[str]:
    if raw is None or str(raw).strip() == "":
        return None
    value = str(raw).strip().capitalize()
    if value not in DIVISIONS:
        raise ValidationError(f"Invalid division '{raw}'. Expected one of: {', '.join(DIVISIONS)}")
    return value


def _lookup(props: Mapping[str, Any], spec: FieldSpec):
    if spec.external in props:
        return True, props[spec.external]
    if spec.column in props:
        return True, props[spec.column]
    return False, None


def _parse_timestamp(raw: Any) -> Optional[datetime]:
    if raw is None or isinstance(raw, datetime):
        return raw
    try:
        return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        return None


def _parse_int(raw: Any) -> Optional[int]:
    if raw is None:
        return None
    value = coerce_value(FieldSpec("", "", INTEGER), raw)
    return None if value is ABSENT else value


# -----------------------------------------------------
# GEOMETRY VALIDATION
# -----------------------------------------------------
def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_position(position: Any):
    if not isinstance(position, (list, tuple)) or len(position) not in (2, 3):
        raise ValidationError("Invalid geometry: positions must be [longitude, latitude]")
    if not all(_is_number(c) for c in position):
        raise ValidationError("Invalid geometry: coordinates must be numbers")
    lon, lat = position[0], position[1]
    if not (-180 <= lon <= 180 and -90 <= lat <= 90):
        raise ValidationError("Invalid geometry: coordinates outside longitude/latitude range")


def _check_polygon(polygon: Any):
    if not isinstance(polygon, (list, tuple)) or not polygon:
        raise ValidationError("Invalid geometry: a polygon needs at least one ring")
    for ring in polygon:
        if not isinstance(ring, (list, tuple)) or len(ring) < 4:
            raise ValidationError("Invalid geometry: rings need at least four positions")
        for position in ring:
            _check_position(position)
        if list(ring[0]) != list(ring[-1]):
            raise ValidationError("Invalid geometry: rings must be closed")


def _as_lists(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [_as_lists(v) for v in value]
    return value


def validate_geometry(geometry: Any) -> Dict[str, Any]:
    """
    Structurally validate Polygon / MultiPolygon GeoJSON.

    Returns a MultiPolygon (a Polygon becomes a one-member MultiPolygon).
    """
    if not isinstance(geometry, Mapping):
        raise ValidationError("Invalid geometry: expected a GeoJSON geometry object")

    geometry_type = geometry.get("type")
    coordinates = geometry.get("coordinates")

    if geometry_type == "Polygon":
        polygons = [coordinates]
    elif geometry_type == "MultiPolygon":
        polygons = coordinates
    else:
        raise ValidationError(f"Invalid geometry: unsupported type '{geometry_type}'")

    if not isinstance(polygons, (list, tuple)) or not polygons:
        raise ValidationError("Invalid geometry: no coordinates")
    for polygon in polygons:
        _check_polygon(polygon)

    return {"type": "MultiPolygon", "coordinates": _as_lists(polygons)}


def _rounded(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [_rounded(v) for v in value]
    if _is_number(value):
        return round(float(value), GEOJSON_PRECISION)
    return value


def same_geometry(a: Optional[Mapping[str, Any]], b: Optional[Mapping[str, Any]]) -> bool:
    """Equal at the coordinate precision the store reads geometry back with."""
    if a is None or b is None:
        return a is b
    return a.get("type") == b.get("type") and _rounded(a.get("coordinates")) == _rounded(
        b.get("coordinates")
    )


# -----------------------------------------------------
# RECORD -> FEATURE
# -----------------------------------------------------
def to_feature(sector: Any) -> Dict[str, Any]:
    properties: Dict[str, Any] = {"id": sector.id}
    for spec in PROPERTY_FIELDS:
        properties[spec.external] = getattr(sector, spec.column)
    for name in TIMESTAMP_FIELDS + ACTOR_FIELDS:
        properties[name] = getattr(sector, name, None)

    return {
        "type": "Feature",
        "id": sector.id,
        "geometry": sector.geometry,
        "properties": properties,
    }


def pagination(total: int, limit: int, offset: int, returned: int) -> Dict[str, Any]:
    return {
        "total": total,
        "limit": limit,
        "offset": offset,
        "hasMore": offset + returned < total,
    }


def to_feature_collection(
    sectors: Iterable[Any], total: int, limit: int, offset: int
) -> Dict[str, Any]:
    features: List[Dict[str, Any]] = [to_feature(s) for s in sectors]
    return {
        "type": "FeatureCollection",
        "features": features,
        "pagination": pagination(total, limit, offset, len(features)),
    }


# -----------------------------------------------------
# FEATURE -> RECORD
# -----------------------------------------------------
def feature_to_record(feature: Mapping[str, Any]) -> Dict[str, Any]:
    """Inverse of to_feature: every sector column, store-assigned ones included."""
    props = feature.get("properties") or {}
    record: Dict[str, Any] = {"id": _parse_int(feature.get("id", props.get("id")))}

    for spec in PROPERTY_FIELDS:
        _, raw = _lookup(props, spec)
        value = coerce_value(spec, raw)
        record[spec.column] = None if value is ABSENT else value

    record["geometry"] = (
        validate_geometry(feature["geometry"]) if feature.get("geometry") is not None else None
    )
    for name in TIMESTAMP_FIELDS:
        record[name] = _parse_timestamp(props.get(name))
    for name in ACTOR_FIELDS:
        record[name] = _parse_int(props.get(name))
    return record


def prepare_create(payload: Any) -> Dict[str, Any]:
    """
    Column values for a new sector from a Feature or a flat mapping.

    Division and geometry are required; other properties are coerced and
    dropped when unparseable. Unknown property names are ignored.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("Invalid sector payload")

    if isinstance(payload.get("properties"), Mapping):
        props = payload["properties"]
    else:
        props = payload
    geometry = payload.get("geometry")

    _, raw_division = _lookup(props, _DIVISION_SPEC)
    division = normalize_division(raw_division)
    if division is None or geometry is None:
        raise ValidationError("Division and geometry are required")

    values: Dict[str, Any] = {}
    for spec in PROPERTY_FIELDS:
        if spec is _DIVISION_SPEC:
            continue
        found, raw = _lookup(props, spec)
        if not found:
            continue
        value = coerce_value(spec, raw)
        if value is not ABSENT:
            values[spec.column] = value

    values["division"] = division
    values["geometry"] = validate_geometry(geometry)
    return values


def prepare_update(fields: Any) -> Dict[str, Any]:
    """
    Proposed column values for an update.

    Only allow-listed names (plus geometry) are accepted; anything else,
    division included, is rejected before the store is touched.
    """
    if not isinstance(fields, Mapping):
        raise ValidationError("Invalid update payload")

    rejected = sorted(str(k) for k in fields if k != "geometry" and k not in UPDATABLE_FIELDS)
    if rejected:
        raise ValidationError(f"Fields cannot be updated: {', '.join(rejected)}")

    # "Office" and "office" name the same column
    columns = [UPDATABLE_FIELDS[k].column for k in fields if k != "geometry"]
    duplicated = sorted({c for c in columns if columns.count(c) > 1})
    if duplicated:
        raise ValidationError(f"Fields given more than once: {', '.join(duplicated)}")

    proposed: Dict[str, Any] = {}
    for key, raw in fields.items():
        if key == "geometry":
            if raw is not None:
                proposed["geometry"] = validate_geometry(raw)
            continue

        spec = UPDATABLE_FIELDS[key]
        value = coerce_value(spec, raw)
        if value is not ABSENT:
            proposed[spec.column] = value
    return proposed
