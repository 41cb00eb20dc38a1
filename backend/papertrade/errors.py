from __future__ import annotations


class TradingError(Exception):
    code = "TRADING_ERROR"
    status_code = 400

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        self.message = message


class PricingUnavailable(TradingError):
    code = "PRICING_UNAVAILABLE"
    status_code = 404

    def __init__(self, symbol: str) -> None:
        super().__init__(f"Pricing information for stock '{symbol}' not available.")
        self.symbol = symbol


class AccountNotFound(TradingError):
    code = "ACCOUNT_NOT_FOUND"
    status_code = 404

    def __init__(self, user_id: int) -> None:
        super().__init__(f"User with ID {user_id} not found.")
        self.user_id = user_id


class AccountExists(TradingError):
    code = "ACCOUNT_EXISTS"
    status_code = 409

    def __init__(self, user_id: int) -> None:
        super().__init__(f"User with ID {user_id} already has an account.")
        self.user_id = user_id


class InsufficientFunds(TradingError):
    code = "INSUFFICIENT_FUNDS"

    def __init__(self) -> None:
        super().__init__("Insufficient balance.")


class NoPosition(TradingError):
    code = "NO_POSITION"

    def __init__(self, symbol: str) -> None:
        super().__init__(f"You do not own any shares of '{symbol}'.")
        self.symbol = symbol


class InsufficientShares(TradingError):
    code = "INSUFFICIENT_SHARES"

    def __init__(self, owned: int, requested: int) -> None:
        super().__init__(f"Insufficient shares. You own {owned} shares but tried to sell {requested}.")
        self.owned = owned
        self.requested = requested


class InvalidOrder(TradingError):
    code = "VALIDATION_ERROR"
    status_code = 422


class StorageConflict(TradingError):
    code = "STORAGE_CONFLICT"
    status_code = 409

    def __init__(self, message: str = "Ledger is busy, please retry.") -> None:
        super().__init__(message)
