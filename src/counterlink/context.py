"""
DappContext - explicitly constructed composition root.

Owns one ProviderClient, SessionStore, ConnectionManager and
TransactionController and exposes the entry points a presentation layer
calls. Nothing happens at import or construction time: initialize()
bootstraps, aclose() tears down.

    async with DappContext(POLYGON_AMOY, address, wallet=wallet) as ctx:
        await ctx.connect()
        await ctx.increment_counter()
        await asyncio.wait_for(ctx.await_receipt(), timeout=120)
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Callable, Optional

import httpx

from .chain.config import ChainConfig
from .chain.provider import ProviderClient, Receipt, SubmissionResult
from .chain.rpc import RpcError
from .errors import CounterLinkError, InitializationError
from .session import Session, SessionStore
from .transaction import DEFAULT_RECEIPT_POLL_INTERVAL, PendingTransaction, TransactionController
from .wallet.connection import DEFAULT_POLL_INTERVAL, ConnectionManager
from .wallet.transport import WalletTransport

logger = logging.getLogger(__name__)


class DappContext:
    def __init__(
        self,
        chain: ChainConfig,
        contract_address: Optional[str] = None,
        abi: Optional[list[dict[str, Any]]] = None,
        wallet: Optional[WalletTransport] = None,
        *,
        expected_wallet_kind: str = "local",
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        receipt_poll_interval: float = DEFAULT_RECEIPT_POLL_INTERVAL,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.chain = chain
        self.store = SessionStore()
        self.provider = ProviderClient(
            chain,
            contract_address=contract_address,
            abi=abi,
            wallet=wallet,
            expected_wallet_kind=expected_wallet_kind,
            http_transport=http_transport,
        )
        self.connection = ConnectionManager(
            self.provider,
            self.store,
            poll_interval=poll_interval,
            on_chain_changed=self.reload,
            on_account_changed=self._account_changed,
        )
        self.transactions = TransactionController(
            self.provider,
            self.store,
            self.connection,
            receipt_poll_interval=receipt_poll_interval,
        )
        self.reload_count = 0

    # ============ Lifecycle ============

    async def initialize(self) -> Session:
        """
        Bootstrap the session.

        Raises:
            InitializationError: If the provider cannot be initialized
        """
        async with self.store.busy():
            self.store.commit(error=None)
            try:
                await self.provider.initialize()
            except InitializationError as exc:
                logger.error("Initialization failed: %s", exc)
                self.store.commit(error=str(exc))
                raise
            await self._bootstrap()
        return self.store.snapshot

    async def _bootstrap(self) -> None:
        await self.connection.restore()
        await self.transactions.refresh_counter()
        self.store.mark_initialized()
        self.connection.start_polling()

    async def reload(self, chain_id: Optional[str] = None) -> None:
        """Discard every in-flight assumption and bootstrap a fresh session."""
        self.reload_count += 1
        logger.warning("Reloading session (chain now %s)", chain_id)
        await self.connection.aclose()
        self.transactions.abandon()
        self.store.reset()
        await self._bootstrap()

    async def aclose(self) -> None:
        await self.connection.aclose()
        await self.provider.aclose()

    async def __aenter__(self) -> "DappContext":
        try:
            await self.initialize()
        except BaseException:
            await self.aclose()
            raise
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _account_changed(self, account: Optional[str]) -> None:
        await self.transactions.refresh_counter()

    # ============ Presentation contract ============

    @property
    def session(self) -> Session:
        return self.store.snapshot

    @property
    def pending_transaction(self) -> PendingTransaction:
        return self.transactions.pending

    def subscribe(self, listener: Callable[[Session], None]) -> Callable[[], None]:
        return self.store.subscribe(listener)

    def is_wallet_available(self) -> bool:
        return self.provider.is_wallet_available()

    async def connect(self) -> str:
        return await self.connection.connect()

    async def disconnect(self) -> None:
        await self.connection.disconnect()

    async def switch_network(self) -> None:
        await self.connection.switch_network()

    async def increment_counter(self) -> SubmissionResult:
        return await self.transactions.increment_counter()

    async def await_receipt(self, tx_hash: Optional[str] = None) -> Receipt:
        return await self.transactions.await_receipt(tx_hash)

    def reset_transaction(self) -> None:
        self.transactions.reset()

    async def refresh_counter(self) -> int:
        return await self.transactions.refresh_counter()

    async def get_balance(self, address: Optional[str] = None) -> Decimal:
        """Balance of ``address`` (default: active account); 0 when it cannot be read."""
        account = address or self.session.account
        if not account:
            return Decimal(0)
        try:
            return await self.provider.get_balance(account)
        except (RpcError, CounterLinkError) as exc:
            logger.warning("Failed to get balance: %s", exc)
            return Decimal(0)

    async def get_receipt(self, tx_hash: str) -> Optional[Receipt]:
        try:
            return await self.provider.get_receipt(tx_hash)
        except (RpcError, CounterLinkError) as exc:
            logger.warning("Failed to get transaction receipt: %s", exc)
            return None

    def transaction_url(self, tx_hash: str) -> str:
        return self.chain.transaction_url(tx_hash)

    def address_url(self, address: str) -> str:
        return self.chain.address_url(address)
