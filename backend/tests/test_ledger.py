from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from pathlib import Path

import pytest

from papertrade.errors import AccountExists, InvalidOrder
from papertrade.ledger import LedgerStore


def test_open_account_persists_across_instances(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "ledger.sqlite"
    first = LedgerStore(db_path)
    opened = first.open_account(11, Decimal("2500.75"))
    assert opened.balance == Decimal("2500.75")
    assert db_path.exists()

    second = LedgerStore(db_path)
    account = second.get_account(11)
    assert account is not None
    assert account.balance == Decimal("2500.75")
    assert second.get_account(12) is None


def test_open_account_twice_is_rejected(ledger: LedgerStore) -> None:
    ledger.open_account(1, Decimal("10"))
    with pytest.raises(AccountExists):
        ledger.open_account(1, Decimal("99"))
    assert ledger.get_account(1).balance == Decimal("10")


def test_find_or_create_stock_is_idempotent(ledger: LedgerStore) -> None:
    first = ledger.find_or_create_stock("HBL", name="Habib Bank")
    second = ledger.find_or_create_stock("HBL")
    assert first.id == second.id
    assert second.name == "Habib Bank"
    assert second.market_type == "REG"
    assert ledger.count_stocks() == 1


def test_concurrent_find_or_create_converges_on_one_row(ledger: LedgerStore) -> None:
    with ThreadPoolExecutor(max_workers=20) as pool:
        stocks = list(pool.map(lambda _: ledger.find_or_create_stock("ENGRO"), range(40)))
    assert {stock.id for stock in stocks} == {stocks[0].id}
    assert ledger.count_stocks("ENGRO") == 1


def test_write_transaction_commits_on_success(ledger: LedgerStore, funded_user: int) -> None:
    stock = ledger.find_or_create_stock("UBL")

    def _apply(txn):
        account = txn.set_balance(Decimal("900.00"))
        position = txn.save_position(5, Decimal("20"))
        transaction = txn.append_transaction("BUY", 5, Decimal("20"), Decimal("100"))
        return account, position, transaction

    account, position, transaction = ledger.with_account_and_position(funded_user, stock.id, _apply)
    assert account.balance == Decimal("900.00")
    assert position.quantity == 5
    assert transaction.id > 0
    assert ledger.get_account(funded_user).balance == Decimal("900.00")
    assert ledger.list_positions(funded_user)[0].symbol == "UBL"


def test_write_transaction_rolls_back_on_error(ledger: LedgerStore, funded_user: int) -> None:
    stock = ledger.find_or_create_stock("UBL")

    class _Boom(Exception):
        pass

    def _apply(txn):
        txn.set_balance(Decimal("1.00"))
        txn.save_position(5, Decimal("20"))
        txn.append_transaction("BUY", 5, Decimal("20"), Decimal("100"))
        raise _Boom()

    with pytest.raises(_Boom):
        ledger.with_account_and_position(funded_user, stock.id, _apply)

    assert ledger.get_account(funded_user).balance == Decimal("1000.00")
    assert ledger.list_positions(funded_user) == []
    assert ledger.count_transactions(funded_user) == 0


def test_save_position_rejects_non_positive_quantity(ledger: LedgerStore, funded_user: int) -> None:
    stock = ledger.find_or_create_stock("MCB")
    with pytest.raises(ValueError):
        ledger.with_account_and_position(funded_user, stock.id, lambda txn: txn.save_position(0, Decimal("1")))


def test_position_upsert_keeps_created_at(ledger: LedgerStore, funded_user: int) -> None:
    stock = ledger.find_or_create_stock("MCB")
    created = ledger.with_account_and_position(funded_user, stock.id, lambda txn: txn.save_position(1, Decimal("5")))
    updated = ledger.with_account_and_position(funded_user, stock.id, lambda txn: txn.save_position(3, Decimal("6")))
    assert updated.created_at == created.created_at
    assert updated.quantity == 3
    assert updated.avg_price == Decimal("6")


def test_delete_position_removes_row(ledger: LedgerStore, funded_user: int) -> None:
    stock = ledger.find_or_create_stock("FFC")
    ledger.with_account_and_position(funded_user, stock.id, lambda txn: txn.save_position(2, Decimal("7")))
    ledger.with_account_and_position(funded_user, stock.id, lambda txn: txn.delete_position())
    assert ledger.list_positions(funded_user) == []


@pytest.mark.parametrize("balance", [Decimal("NaN"), Decimal("Infinity"), Decimal("-Infinity"), Decimal("-0.01")])
def test_open_account_rejects_unusable_balance_without_writing(ledger: LedgerStore, balance: Decimal) -> None:
    with pytest.raises(InvalidOrder):
        ledger.open_account(21, balance)
    assert ledger.get_account(21) is None
    ledger.open_account(21, Decimal("5"))
    assert ledger.get_account(21).balance == Decimal("5")
