from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, Numeric, SmallInteger, String, Text
from sqlalchemy.orm import relationship

from cashledger.models.base import Base, utcnow


class LedgerTransaction(Base):
    """
    Immutable ledger row. `amount` is a magnitude; `direction` is +1 for
    credits and -1 for debits, so the signed value is `direction * amount`.
    """

    __tablename__ = "ledger_transactions"
    __table_args__ = (
        CheckConstraint("direction IN (1, -1)", name="ck_ledger_transactions_direction"),
        CheckConstraint("amount >= 0", name="ck_ledger_transactions_amount"),
    )

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="RESTRICT"), nullable=False, index=True)
    transaction_type = Column(String(30), nullable=False, index=True)
    direction = Column(SmallInteger, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    balance_before = Column(Numeric(12, 2), nullable=False)
    balance_after = Column(Numeric(12, 2), nullable=False)
    reference_type = Column(String(30), nullable=False)
    # Business record id, or the correlation id shared by both legs of a transfer
    reference_id = Column(String(64), nullable=True, index=True)
    counterparty_account_id = Column(Integer, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True)
    description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    account = relationship("Account", foreign_keys=[account_id])

    @property
    def signed_amount(self):
        return self.amount * self.direction


Index("ix_ledger_transactions_account_created", LedgerTransaction.account_id, LedgerTransaction.created_at)
Index("ix_ledger_transactions_reference", LedgerTransaction.reference_type, LedgerTransaction.reference_id)
