import json

from geoalchemy2 import Geometry
from sqlalchemy import Text, func
from sqlalchemy.types import TypeDecorator

# decimal digits ST_AsGeoJSON keeps when reading coordinates back
GEOJSON_PRECISION = 9


class PostGISGeoJSON(Geometry):
    """
    PostGIS geometry column exchanged as GeoJSON text.

    Writes go through ST_GeomFromGeoJSON (forced to multi + the column SRID),
    reads through ST_AsGeoJSON, so no WKB decoding happens in Python.
    """

    cache_ok = True

    def bind_expression(self, bindvalue):
        return func.ST_Multi(func.ST_SetSRID(func.ST_GeomFromGeoJSON(bindvalue), self.srid))

    def column_expression(self, col):
        return func.ST_AsGeoJSON(col, GEOJSON_PRECISION, type_=self)

    def bind_processor(self, dialect):
        return None

    def result_processor(self, dialect, coltype):
        def process(value):
            if isinstance(value, str):
                return json.loads(value)
            return value

        return process


class GeoJSONGeometry(TypeDecorator):
    """
    GeoJSON geometry column.

    MultiPolygon / SRID 4326 PostGIS geometry on PostgreSQL; plain GeoJSON
    text elsewhere (used by the test-suite on sqlite).
    """

    impl = Text
    cache_ok = True

    def __init__(self, geometry_type: str = "MULTIPOLYGON", srid: int = 4326):
        super().__init__()
        self.geometry_type = geometry_type
        self.srid = srid

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(
                PostGISGeoJSON(geometry_type=self.geometry_type, srid=self.srid)
            )
        return dialect.type_descriptor(Text())

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return json.dumps(value)

    def process_result_value(self, value, dialect):
        if isinstance(value, str):
            return json.loads(value)
        return value
