from sqlalchemy import Column, DateTime, Index, Integer, String, Text

from rentaly.config import SCHEMA
from rentaly.models.base import Base, JSONDocument


class OutboxEvent(Base):
    """
    Side effect recorded inside a booking transaction and delivered later.

    Rows are written with status ``pending`` in the same transaction as the
    state change that caused them. A dispatcher claims a row by moving it to
    ``sending``, then to ``sent``, back to ``pending`` after a failed attempt,
    or to ``failed`` after too many attempts.
    """

    __tablename__ = "outbox_events"
    __table_args__ = (
        Index("ix_outbox_events_status_created", "status", "created_at"),
        {"schema": SCHEMA},
    )

    id = Column(String(36), primary_key=True)
    event_type = Column(String(64), nullable=False)
    aggregate_id = Column(String(64), nullable=False, index=True)
    payload = Column(JSONDocument, nullable=False)
    status = Column(String(16), nullable=False, default="pending")
    attempt_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
