from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric

from cashledger.models.base import Base, utcnow


class UserCashBoxSettings(Base):
    """Per-operator cash box policy, created with defaults on first read."""

    __tablename__ = "user_cash_box_settings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    default_opening_amount = Column(Numeric(12, 2), nullable=False, default=0)
    allow_negative_balance = Column(Boolean, nullable=False, default=False)
    # 0 means no limit on manual withdrawals
    max_withdrawal_amount = Column(Numeric(12, 2), nullable=False, default=0)
    require_closing_count = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
