from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from papertrade.ledger import LedgerStore
from scripts.open_account import main


@pytest.fixture
def ledger_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("PAPERTRADE_CONFIG_PATH", str(tmp_path / "absent.json"))
    return tmp_path / "cli.sqlite"


def _run(monkeypatch: pytest.MonkeyPatch, *args: str) -> int:
    monkeypatch.setattr(sys, "argv", ["open_account.py", *args])
    return main()


def test_cli_opens_account(ledger_file: Path, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    assert _run(monkeypatch, "7", "--balance", "2500.50", "--ledger", str(ledger_file)) == 0
    assert "[done] user_id=7 balance=2500.50" in capsys.readouterr().out
    assert LedgerStore(ledger_file).get_account(7).balance == Decimal("2500.50")


@pytest.mark.parametrize("raw", ["NaN", "Infinity", "-5"])
def test_cli_reports_unusable_balance(ledger_file: Path, monkeypatch: pytest.MonkeyPatch, capsys, raw: str) -> None:
    assert _run(monkeypatch, "7", "--balance", raw, "--ledger", str(ledger_file)) == 1
    assert "[error] VALIDATION_ERROR" in capsys.readouterr().err
    assert LedgerStore(ledger_file).get_account(7) is None


def test_cli_reports_unparseable_balance(ledger_file: Path, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    assert _run(monkeypatch, "7", "--balance", "lots", "--ledger", str(ledger_file)) == 2
    assert "[error] invalid balance: lots" in capsys.readouterr().err
