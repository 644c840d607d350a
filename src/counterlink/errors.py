"""
Error taxonomy for the wallet / session / transaction core.

Every domain error derives from CounterLinkError and carries an exit_code
used by the CLI. Failures of the increment write path are classified into
a FailureKind by classify_failure(); that function is the only place where
wallet and node error texts are matched, so the rules can be replaced by
structured codes once a transport provides them.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .chain.config import ChainConfig


USER_REJECTED = 4001
UNAUTHORIZED = 4100
UNSUPPORTED_METHOD = 4200
UNRECOGNIZED_CHAIN = 4902


class CounterLinkError(RuntimeError):
    exit_code: int = 1


class InitializationError(CounterLinkError):
    exit_code = 2


class WalletNotFoundError(CounterLinkError):
    exit_code = 3

    def __init__(self, message: str = "No compatible wallet found. Please install or configure a wallet to continue.") -> None:
        super().__init__(message)


class NoAccountsReturnedError(CounterLinkError):
    exit_code = 3

    def __init__(self, message: str = "No accounts found") -> None:
        super().__init__(message)


class NotConnectedError(CounterLinkError):
    exit_code = 3

    def __init__(self, message: str = "Please connect your wallet first") -> None:
        super().__init__(message)


class WrongNetworkError(CounterLinkError):
    exit_code = 4

    def __init__(self, expected: str, actual: Optional[str] = None) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Wrong network. Please switch to {expected}.")


class SwitchRejectedError(CounterLinkError):
    exit_code = 4


class SwitchFailedError(CounterLinkError):
    exit_code = 4


class ContractNotInitializedError(CounterLinkError):
    exit_code = 5

    def __init__(self, message: str = "Contract not initialized") -> None:
        super().__init__(message)


class ContractReadError(CounterLinkError):
    exit_code = 5


class ContractNotFoundError(ContractReadError):
    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__(
            f"No contract found at {address}. Please check the contract deployment."
        )


class SimulationFailedError(CounterLinkError):
    exit_code = 6

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Contract call failed: {reason}")


class GasEstimationError(CounterLinkError):
    """Gas estimation failed; callers fall back to a fixed gas quantity."""


class SubmissionError(CounterLinkError):
    exit_code = 6

    def __init__(self, cause: str, code: Optional[int] = None) -> None:
        self.cause = cause
        self.code = code
        super().__init__(cause)


class ReceiptFailedOnChainError(CounterLinkError):
    exit_code = 7

    def __init__(self, tx_hash: str, gas_used: Optional[int] = None) -> None:
        self.tx_hash = tx_hash
        self.gas_used = gas_used
        super().__init__("Transaction failed on chain")


class TransactionPendingError(CounterLinkError):
    exit_code = 6

    def __init__(self, message: str = "A transaction is already pending. Wait for it to confirm before sending another.") -> None:
        super().__init__(message)


class TransactionAbandonedError(CounterLinkError):
    exit_code = 7

    def __init__(self, tx_hash: Optional[str]) -> None:
        self.tx_hash = tx_hash
        super().__init__(f"Stopped waiting for {tx_hash}: the session was reloaded")


class IncrementFailedError(CounterLinkError):
    exit_code = 6

    def __init__(self, kind: "FailureKind", message: str) -> None:
        self.kind = kind
        super().__init__(message)


# ============ Classification ============


class FailureKind(str, Enum):
    WRONG_NETWORK = "wrong_network"
    USER_REJECTED = "user_rejected"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    GAS = "gas"
    NETWORK = "network"
    OTHER = "other"


def classify_failure(exc: BaseException) -> FailureKind:
    """
    Map a write-path failure onto a FailureKind.

    Structured signals (exception type, EIP-1193 code) are checked first;
    the remaining rules are best-effort substring matches on the message.
    """
    if isinstance(exc, WrongNetworkError):
        return FailureKind.WRONG_NETWORK

    if getattr(exc, "code", None) == USER_REJECTED:
        return FailureKind.USER_REJECTED

    text = str(exc)
    if "User denied" in text or "User rejected" in text:
        return FailureKind.USER_REJECTED
    if "insufficient funds" in text or "insufficient balance" in text:
        return FailureKind.INSUFFICIENT_FUNDS
    if "gas" in text:
        return FailureKind.GAS
    if "Internal JSON-RPC error" in text:
        return FailureKind.NETWORK
    return FailureKind.OTHER


def describe_failure(
    kind: FailureKind,
    exc: BaseException,
    chain: Optional["ChainConfig"] = None,
) -> str:
    """Return the user-facing message for a classified failure."""
    if kind is FailureKind.WRONG_NETWORK:
        return str(exc)
    if kind is FailureKind.USER_REJECTED:
        return "Transaction was rejected by user"
    if kind is FailureKind.INSUFFICIENT_FUNDS:
        symbol = chain.native_currency.symbol if chain else "funds"
        return (
            "Insufficient funds to pay for transaction fees. "
            f"Please add more {symbol} to your wallet."
        )
    if kind is FailureKind.GAS:
        return "Transaction failed due to gas issues. Please try again."
    if kind is FailureKind.NETWORK:
        return "Network error occurred. Please check your connection and try again."
    return str(exc) or "Transaction failed. Please try again."
