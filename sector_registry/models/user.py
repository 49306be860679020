from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String, func
from sector_registry.core.db import Base

USER_ROLES = ("admin", "editor", "viewer")


class User(Base):
    """Accounts are managed by the auth service; kept here for FKs and history joins."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    username = Column(String(50), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=True)
    full_name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default="viewer")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("role IN ('admin', 'editor', 'viewer')", name="ck_users_role"),
    )
