__all__ = [
    # Context
    "DappContext",
    # Chain
    "ChainConfig",
    "NativeCurrency",
    "POLYGON_AMOY",
    "ProviderClient",
    "Receipt",
    "SubmissionResult",
    "RpcError",
    # Session
    "NetworkSnapshot",
    "Session",
    "SessionStore",
    # Wallet
    "ConnectionManager",
    "ConnectionState",
    "LocalKeyWallet",
    "ReadOnlyTransport",
    "WalletTransport",
    # Transactions
    "PendingTransaction",
    "TransactionController",
    "TxStatus",
    # Errors
    "CounterLinkError",
    "ContractNotFoundError",
    "ContractNotInitializedError",
    "ContractReadError",
    "FailureKind",
    "IncrementFailedError",
    "InitializationError",
    "NoAccountsReturnedError",
    "NotConnectedError",
    "ReceiptFailedOnChainError",
    "SimulationFailedError",
    "SubmissionError",
    "SwitchFailedError",
    "SwitchRejectedError",
    "TransactionAbandonedError",
    "TransactionPendingError",
    "WalletNotFoundError",
    "WrongNetworkError",
]

from .chain.config import POLYGON_AMOY, ChainConfig, NativeCurrency
from .chain.provider import ProviderClient, Receipt, SubmissionResult
from .chain.rpc import RpcError
from .context import DappContext
from .errors import (
    ContractNotFoundError,
    ContractNotInitializedError,
    ContractReadError,
    CounterLinkError,
    FailureKind,
    IncrementFailedError,
    InitializationError,
    NoAccountsReturnedError,
    NotConnectedError,
    ReceiptFailedOnChainError,
    SimulationFailedError,
    SubmissionError,
    SwitchFailedError,
    SwitchRejectedError,
    TransactionAbandonedError,
    TransactionPendingError,
    WalletNotFoundError,
    WrongNetworkError,
)
from .session import NetworkSnapshot, Session, SessionStore
from .transaction import PendingTransaction, TransactionController, TxStatus
from .wallet.connection import ConnectionManager, ConnectionState
from .wallet.local import LocalKeyWallet
from .wallet.transport import ReadOnlyTransport, WalletTransport
