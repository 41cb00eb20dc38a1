from __future__ import annotations

from .errors import AccountNotFound, InvalidOrder
from .ledger import LedgerStore
from .models import TransactionsPage

MAX_PAGE_LIMIT = 500


class TransactionHistoryReader:
    def __init__(self, ledger: LedgerStore) -> None:
        self._ledger = ledger

    def get_transactions(self, user_id: int, limit: int = 50, offset: int = 0) -> TransactionsPage:
        if limit < 1 or limit > MAX_PAGE_LIMIT:
            raise InvalidOrder(f"limit must be between 1 and {MAX_PAGE_LIMIT}")
        if offset < 0:
            raise InvalidOrder("offset must not be negative")
        if self._ledger.get_account(user_id) is None:
            raise AccountNotFound(user_id)
        rows, total = self._ledger.list_transactions(user_id, limit, offset)
        return TransactionsPage(transactions=rows, total=total, limit=limit, offset=offset)
