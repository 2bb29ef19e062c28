from .base import Base
from .user import User
from .account import Account, CashBox, MoneyBox
from .ledger_transaction import LedgerTransaction
from .cash_box_settings import UserCashBoxSettings

__all__ = ["Base", "User", "Account", "CashBox", "MoneyBox", "LedgerTransaction", "UserCashBoxSettings"]
