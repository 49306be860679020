from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)

from sector_registry.core.db import Base
from sector_registry.models.geometry import GeoJSONGeometry

DIVISIONS = ("East", "West", "North", "South")


class Sector(Base):
    __tablename__ = "sectors"

    id = Column(Integer, primary_key=True)

    # legacy import identifiers, provenance only
    objectid_1 = Column(Integer, nullable=True)
    objectid = Column(Integer, nullable=True)
    feature_id = Column(Integer, nullable=True)
    no_nemra = Column(Integer, nullable=True)

    canal_name = Column(String(255), nullable=True)
    office = Column(String(255), nullable=True)
    division = Column(String(50), nullable=False)
    name_ar = Column(String(255), nullable=True)
    design_a_f = Column(Numeric(10, 2), nullable=True)
    remarks_1 = Column(Text, nullable=True)

    shape_leng = Column(Numeric(15, 6), nullable=True)
    shape_le_1 = Column(Numeric(15, 6), nullable=True)
    shape_area = Column(Numeric(15, 6), nullable=True)

    geometry = Column(GeoJSONGeometry("MULTIPOLYGON", srid=4326), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "division IN ('East', 'West', 'North', 'South')", name="ck_sectors_division"
        ),
        Index("idx_sectors_division", "division"),
    )
