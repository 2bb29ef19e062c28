from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text

from cashledger.core.ledger_types import AccountKind, CashBoxStatus
from cashledger.models.base import Base, utcnow


class Account(Base):
    """
    Anything that holds a balance and accepts ledger transactions.

    Cash boxes and money boxes share one table so that account ids are unique
    across both kinds. `current_amount` is only ever written by the ledger
    service together with a ledger row.
    """

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String(20), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    current_amount = Column(Numeric(12, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    # Optimistic concurrency: concurrent writers of the same row raise StaleDataError
    version_id = Column(Integer, nullable=False)

    __mapper_args__ = {
        "polymorphic_on": kind,
        "version_id_col": version_id,
    }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} name={self.name!r} amount={self.current_amount}>"


class CashBox(Account):
    """Per-operator till with an open -> closed lifecycle."""

    owner_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    status = Column(String(20), nullable=True, index=True)
    initial_amount = Column(Numeric(12, 2), nullable=True)
    opened_at = Column(DateTime, nullable=True)
    opened_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    closed_at = Column(DateTime, nullable=True)
    closed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    close_reason = Column(Text, nullable=True)
    # Operator's physical count at close; informational only
    closing_amount = Column(Numeric(12, 2), nullable=True)
    closing_variance = Column(Numeric(12, 2), nullable=True)

    __mapper_args__ = {"polymorphic_identity": AccountKind.cash_box.value}

    @property
    def is_open(self) -> bool:
        return self.status == CashBoxStatus.open.value


class MoneyBox(Account):
    """Shared treasury pool; always open, no owner."""

    __mapper_args__ = {"polymorphic_identity": AccountKind.money_box.value}


# At most one open cash box per operator
Index(
    "uq_accounts_open_cash_box_owner",
    CashBox.owner_user_id,
    unique=True,
    sqlite_where=CashBox.status == CashBoxStatus.open.value,
    postgresql_where=CashBox.status == CashBoxStatus.open.value,
)

# Money box names are lookup keys
Index(
    "uq_accounts_money_box_name",
    Account.name,
    unique=True,
    sqlite_where=Account.kind == AccountKind.money_box.value,
    postgresql_where=Account.kind == AccountKind.money_box.value,
)
