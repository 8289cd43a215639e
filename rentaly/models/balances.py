from sqlalchemy import Column, DateTime, Numeric, String

from rentaly.config import SCHEMA
from rentaly.models.base import Base, JSONDocument


class OwnerBalance(Base):
    """
    Per-owner money counters.

    Rows are only changed with SQL delta expressions (``col = col + :delta``),
    never by writing a value computed in application memory. ``pending_balance``
    may go negative after cancellations; that is reported, not prevented.
    """

    __tablename__ = "owner_balances"
    __table_args__ = {"schema": SCHEMA}

    owner_id = Column(String(64), primary_key=True)
    pending_balance = Column(Numeric(14, 2), nullable=False, default=0)
    available_balance = Column(Numeric(14, 2), nullable=False, default=0)
    total_earnings = Column(Numeric(14, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class EarningsHistory(Base):
    """
    Rolling realised-earnings aggregates for one owner and one asset bucket.

    ``daily`` holds 30 values and ``monthly`` 12, oldest first; ``yearly`` is a
    list of {"year", "earnings"} objects sorted by year. Amounts are two-decimal
    strings such as "1234.50".
    """

    __tablename__ = "earnings_history"
    __table_args__ = {"schema": SCHEMA}

    owner_id = Column(String(64), primary_key=True)
    bucket = Column(String(16), primary_key=True)  # properties | vehicles
    daily = Column(JSONDocument, nullable=False)
    daily_last = Column(String(10), nullable=True)  # YYYY-MM-DD of the newest daily slot
    monthly = Column(JSONDocument, nullable=False)
    monthly_last = Column(String(7), nullable=True)  # YYYY-MM of the newest monthly slot
    yearly = Column(JSONDocument, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
