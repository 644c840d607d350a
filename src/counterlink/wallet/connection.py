"""
Connection Manager - wallet connection, network checks, reconciliation.

Observed wallet state reaches the session through one transition function,
_apply_accounts(), whether it was pushed by an ``accountsChanged`` event or
pulled by the periodic reconciliation poll. A ``chainChanged`` event is not
patched into the session: it is escalated to the reload hook.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from ..chain.config import ChainConfig
from ..chain.provider import ProviderClient
from ..chain.rpc import RpcError
from ..errors import (
    CounterLinkError,
    NoAccountsReturnedError,
    SwitchFailedError,
    SwitchRejectedError,
    UNRECOGNIZED_CHAIN,
    USER_REJECTED,
    WalletNotFoundError,
    WrongNetworkError,
)
from ..session import NetworkSnapshot, SessionStore
from ..utils import same_address
from .transport import ACCOUNTS_CHANGED, CHAIN_CHANGED, WalletTransport

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.0

Hook = Callable[..., Union[None, Awaitable[None]]]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    WRONG_NETWORK = "wrong_network"
    CORRECT_NETWORK = "correct_network"


async def _call_hook(hook: Optional[Hook], *args: Any) -> None:
    if hook is None:
        return
    result = hook(*args)
    if inspect.isawaitable(result):
        await result


class ConnectionManager:
    """
    Args:
        provider: Initialized ProviderClient
        store: Session store to publish into
        poll_interval: Seconds between reconciliation passes
        on_chain_changed: Reload hook, called with the new hex chain id
        on_account_changed: Called with the new account after it changes
    """

    def __init__(
        self,
        provider: ProviderClient,
        store: SessionStore,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        on_chain_changed: Optional[Hook] = None,
        on_account_changed: Optional[Hook] = None,
    ) -> None:
        self._provider = provider
        self._store = store
        self._poll_interval = poll_interval
        self._on_chain_changed = on_chain_changed
        self._on_account_changed = on_account_changed
        self._state = ConnectionState.DISCONNECTED
        self._lock = asyncio.Lock()
        self._epoch = 0
        self._listening = False
        self._user_disconnected = False
        self._poll_task: Optional[asyncio.Task] = None

    @property
    def chain(self) -> ChainConfig:
        return self._provider.chain

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def listening(self) -> bool:
        return self._listening

    @property
    def polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def _wallet(self) -> WalletTransport:
        if not self._provider.is_wallet_available():
            raise WalletNotFoundError()
        return self._provider.wallet

    # ============ User actions ============

    async def connect(self) -> str:
        """
        Request account access and publish the connected session.

        Returns:
            The active account (first account returned by the wallet)

        Raises:
            WalletNotFoundError: No usable wallet
            NoAccountsReturnedError: The wallet returned an empty list
            RpcError: The wallet refused the request
        """
        async with self._store.busy():
            self._store.commit(error=None)
            previous = self._state
            try:
                wallet = self._wallet()
                self._state = ConnectionState.CONNECTING
                accounts = await wallet.request_accounts()
                if not accounts:
                    raise NoAccountsReturnedError()

                async with self._lock:
                    self._user_disconnected = False
                    await self._connect_locked(accounts[0])
            except (CounterLinkError, RpcError) as exc:
                if self._state is ConnectionState.CONNECTING:
                    self._state = previous
                logger.error("Wallet connection failed: %s", exc)
                self._store.commit(error=str(exc))
                raise

        await _call_hook(self._on_account_changed, accounts[0])
        return accounts[0]

    async def disconnect(self) -> None:
        """Forget the account and stop listening. Never fails."""
        async with self._lock:
            self._user_disconnected = True
            self._disconnect_locked()
            self._store.commit(error=None)

    async def switch_network(self) -> None:
        """
        Ask the wallet to switch to the configured chain, adding it first if unknown.

        Raises:
            WalletNotFoundError: No usable wallet
            SwitchRejectedError: The user declined a prompt
            SwitchFailedError: Any other wallet failure
        """
        async with self._store.busy():
            self._store.commit(error=None)
            try:
                await self._switch_network()
            except CounterLinkError as exc:
                logger.error("Network switch failed: %s", exc)
                self._store.commit(error=str(exc))
                raise

            if self._store.snapshot.connected:
                snapshot = await self.current_network()
                if snapshot is not None:
                    self._publish_network(snapshot)

    async def _switch_network(self) -> None:
        wallet = self._wallet()
        chain = self.chain
        try:
            await wallet.switch_chain(chain.chain_id_hex)
            return
        except RpcError as exc:
            if exc.code == USER_REJECTED:
                raise SwitchRejectedError(f"Switch to {chain.chain_name} was rejected") from exc
            if exc.code != UNRECOGNIZED_CHAIN:
                raise SwitchFailedError(f"Failed to switch to {chain.chain_name} network") from exc

        logger.info("Wallet does not know %s, requesting to add it", chain.chain_name)
        try:
            await wallet.add_chain(chain.to_add_chain_params())
        except RpcError as exc:
            if exc.code == USER_REJECTED:
                raise SwitchRejectedError(f"Adding {chain.chain_name} was rejected") from exc
            raise SwitchFailedError(f"Failed to add {chain.chain_name} network") from exc

    # ============ Network checks ============

    async def validate_network(self) -> None:
        """
        Raises:
            WrongNetworkError: If the wallet is not on the configured chain
        """
        chain_id = await self._provider.get_chain_id()
        matches = self.chain.matches(chain_id)
        if self._store.snapshot.connected:
            self._publish_network(self._snapshot_for(chain_id))
        if not matches:
            raise WrongNetworkError(self.chain.chain_name, chain_id)

    async def current_network(self) -> Optional[NetworkSnapshot]:
        """Snapshot of the wallet's network, or None if it cannot be read."""
        try:
            chain_id = await self._provider.get_chain_id()
        except (RpcError, CounterLinkError) as exc:
            logger.warning("Failed to get current network: %s", exc)
            return None
        return self._snapshot_for(chain_id)

    def _snapshot_for(self, chain_id: str) -> NetworkSnapshot:
        return NetworkSnapshot(
            chain_id=chain_id,
            is_correct_network=self.chain.matches(chain_id),
            expected_network=self.chain.chain_name,
        )

    def _publish_network(self, snapshot: NetworkSnapshot) -> None:
        self._store.commit(network=snapshot)
        self._state = (
            ConnectionState.CORRECT_NETWORK
            if snapshot.is_correct_network
            else ConnectionState.WRONG_NETWORK
        )

    # ============ Reconciliation ============

    async def restore(self) -> Optional[str]:
        """Adopt an account the wallet already authorized, without prompting."""
        if not self._provider.is_wallet_available():
            return None
        try:
            accounts = await self._provider.wallet.get_accounts()
        except RpcError as exc:
            logger.info("No accounts found or user denied access: %s", exc)
            return None
        await self._apply_accounts(accounts, source="restore")
        return self._store.snapshot.account

    async def reconcile(self) -> None:
        """One poll pass: re-read the wallet's accounts and correct drift."""
        if not self._provider.is_wallet_available():
            return
        epoch = self._epoch
        accounts = await self._provider.wallet.get_accounts()
        await self._apply_accounts(accounts, source="poll", observed_epoch=epoch)

    async def _apply_accounts(
        self, accounts: list[str], source: str, observed_epoch: Optional[int] = None
    ) -> None:
        """
        The single transition function for externally observed account lists.

        ``observed_epoch`` is the epoch at which a polled list was read. It is
        compared under the lock: a list read before any transition that has
        since been applied is discarded.
        """
        changed_to: Optional[str] = None

        async with self._lock:
            if observed_epoch is not None and observed_epoch != self._epoch:
                logger.debug("Discarding %s result from epoch %s", source, observed_epoch)
                return
            session = self._store.snapshot
            if not accounts:
                if session.connected or self._listening:
                    logger.info("Wallet reports no accounts (%s), disconnecting", source)
                    self._disconnect_locked()
                return

            account = accounts[0]
            if self._user_disconnected:
                return
            if session.connected and same_address(session.account, account):
                if source == "event":
                    await self._revalidate_locked()
                return

            logger.info("Active account is now %s (%s)", account, source)
            await self._connect_locked(account)
            changed_to = account

        await _call_hook(self._on_account_changed, changed_to)

    async def _connect_locked(self, account: str) -> None:
        self._epoch += 1
        snapshot = await self.current_network()
        self._store.commit(connected=True, account=account, network=snapshot)
        if snapshot is None:
            self._state = ConnectionState.CONNECTING
        else:
            self._publish_network(snapshot)
        self._register_listeners()

    async def _revalidate_locked(self) -> None:
        snapshot = await self.current_network()
        if snapshot is not None:
            self._publish_network(snapshot)

    def _disconnect_locked(self) -> None:
        self._epoch += 1
        self._unregister_listeners()
        self._store.commit(connected=False, account=None, network=None)
        self._state = ConnectionState.DISCONNECTED

    # ============ Wallet events ============

    def _register_listeners(self) -> None:
        if self._listening or not self._provider.is_wallet_available():
            return
        wallet = self._provider.wallet
        wallet.on(ACCOUNTS_CHANGED, self._handle_accounts_changed)
        wallet.on(CHAIN_CHANGED, self._handle_chain_changed)
        self._listening = True

    def _unregister_listeners(self) -> None:
        if not self._listening:
            return
        wallet = self._provider.wallet
        if wallet is not None:
            wallet.remove_listener(ACCOUNTS_CHANGED, self._handle_accounts_changed)
            wallet.remove_listener(CHAIN_CHANGED, self._handle_chain_changed)
        self._listening = False

    async def _handle_accounts_changed(self, accounts: list[str]) -> None:
        await self._apply_accounts(list(accounts or []), source="event")

    async def _handle_chain_changed(self, chain_id: str) -> None:
        logger.warning("Wallet switched to chain %s; reloading session", chain_id)
        await _call_hook(self._on_chain_changed, chain_id)

    # ============ Polling ============

    def start_polling(self) -> None:
        if self.polling or not self._provider.is_wallet_available():
            return
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())

    async def stop_polling(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            try:
                await self.reconcile()
            except (RpcError, CounterLinkError) as exc:
                logger.debug("Reconciliation pass failed: %s", exc)

    async def aclose(self) -> None:
        """Stop polling and drop wallet listeners; the session is left as is."""
        await self.stop_polling()
        async with self._lock:
            self._unregister_listeners()
            self._state = ConnectionState.DISCONNECTED
            self._user_disconnected = False
