from __future__ import annotations

import argparse
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from papertrade.errors import TradingError
from papertrade.store import TradingStore


def main() -> int:
    parser = argparse.ArgumentParser(description="Provision a paper-trading cash account in the local ledger.")
    parser.add_argument("user_id", type=int, help="User id the account belongs to.")
    parser.add_argument("--balance", default="", help="Starting cash balance, defaults to the configured initial balance.")
    parser.add_argument("--ledger", default="", help="Ledger sqlite path, defaults to PAPERTRADE_LEDGER_PATH or ~/.papertrade/ledger.sqlite.")
    args = parser.parse_args()

    balance: Decimal | None = None
    if args.balance.strip():
        try:
            balance = Decimal(args.balance.strip())
        except InvalidOperation:
            print(f"[error] invalid balance: {args.balance}", file=sys.stderr)
            return 2

    store = TradingStore(ledger_path=args.ledger.strip() or None)
    try:
        account = store.open_account(args.user_id, balance)
    except TradingError as exc:
        print(f"[error] {exc.code}: {exc.message}", file=sys.stderr)
        return 1
    print(f"[done] user_id={account.user_id} balance={account.balance} ledger={store.ledger.db_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
