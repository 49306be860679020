from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text, func

from sector_registry.core.db import Base

AUDIT_ACTIONS = ("INSERT", "UPDATE", "DELETE")


class ChangeHistoryEntry(Base):
    """One audit row per changed field (or per coarse create/delete event)."""

    __tablename__ = "change_history"

    id = Column(Integer, primary_key=True)
    sector_id = Column(
        Integer, ForeignKey("sectors.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    action = Column(String(20), nullable=False)
    field_name = Column(String(100), nullable=False)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    changed_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "action IN ('INSERT', 'UPDATE', 'DELETE')", name="ck_change_history_action"
        ),
    )
