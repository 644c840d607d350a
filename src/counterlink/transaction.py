"""
Transaction Controller - drives one increment through its lifecycle.

    IDLE -> PENDING -> CONFIRMED | FAILED -> (reset) -> IDLE

Only one attempt exists at a time. A new increment_counter() while an
attempt is being submitted or is PENDING is rejected with
TransactionPendingError; starting after CONFIRMED / FAILED replaces the
previous attempt.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .chain.provider import (
    FALLBACK_GAS_LIMIT,
    ProviderClient,
    Receipt,
    SubmissionResult,
    gas_limit_for,
)
from .chain.rpc import RpcError
from .errors import (
    ContractNotInitializedError,
    ContractReadError,
    CounterLinkError,
    GasEstimationError,
    IncrementFailedError,
    NotConnectedError,
    ReceiptFailedOnChainError,
    TransactionAbandonedError,
    TransactionPendingError,
    classify_failure,
    describe_failure,
)
from .session import SessionStore
from .wallet.connection import ConnectionManager

logger = logging.getLogger(__name__)

DEFAULT_RECEIPT_POLL_INTERVAL = 2.0


class TxStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class PendingTransaction:
    tx_hash: Optional[str] = None
    status: TxStatus = TxStatus.IDLE
    error: Optional[str] = None
    gas_used: Optional[int] = None
    gas_limit: Optional[int] = None


class TransactionController:
    def __init__(
        self,
        provider: ProviderClient,
        store: SessionStore,
        connection: ConnectionManager,
        receipt_poll_interval: float = DEFAULT_RECEIPT_POLL_INTERVAL,
    ) -> None:
        self._provider = provider
        self._store = store
        self._connection = connection
        self._receipt_poll_interval = receipt_poll_interval
        self._pending = PendingTransaction()
        self._submitting = False
        self._generation = 0

    @property
    def pending(self) -> PendingTransaction:
        return self._pending

    @property
    def status(self) -> TxStatus:
        return self._pending.status

    @property
    def busy(self) -> bool:
        return self._submitting or self._pending.status is TxStatus.PENDING

    # ============ Submission ============

    async def increment_counter(self) -> SubmissionResult:
        """
        Submit one increment from the connected account.

        Returns:
            The submission result; the attempt is then PENDING

        Raises:
            TransactionPendingError: Another attempt is in flight
            NotConnectedError: No active account
            IncrementFailedError: The attempt failed before broadcast
        """
        if self.busy:
            raise TransactionPendingError()

        session = self._store.snapshot
        if not session.connected or not session.account:
            exc = NotConnectedError()
            self._store.commit(error=str(exc))
            raise exc

        account = session.account
        generation = self._generation
        self._submitting = True
        self._pending = PendingTransaction()
        try:
            async with self._store.busy():
                self._store.commit(error=None)
                try:
                    result = await self._submit(account)
                except (CounterLinkError, RpcError) as exc:
                    if generation != self._generation:
                        logger.warning("Session reloaded while submitting; dropping failure: %s", exc)
                        raise
                    kind = classify_failure(exc)
                    message = describe_failure(kind, exc, self._provider.chain)
                    logger.error("Counter increment failed (%s): %s", kind.value, exc)
                    self._pending = PendingTransaction(status=TxStatus.FAILED, error=message)
                    self._store.commit(error=message)
                    raise IncrementFailedError(kind, message) from exc
        finally:
            if generation == self._generation:
                self._submitting = False

        if generation != self._generation:
            logger.warning("Session reloaded while submitting %s; not tracking it", result.tx_hash)
            return result

        self._pending = PendingTransaction(
            tx_hash=result.tx_hash,
            status=TxStatus.PENDING,
            gas_limit=result.gas_limit,
        )
        return result

    async def _submit(self, account: str) -> SubmissionResult:
        await self._connection.validate_network()

        try:
            estimate = await self._provider.estimate_increment_gas(account)
        except GasEstimationError as exc:
            logger.warning("%s; using default gas limit %s", exc, FALLBACK_GAS_LIMIT)
            estimate = FALLBACK_GAS_LIMIT

        gas_price = await self._provider.get_gas_price()
        gas_limit = gas_limit_for(estimate)
        logger.debug("Sending increment with gas=%s gasPrice=%s", gas_limit, gas_price)
        return await self._provider.send_increment(account, gas_limit, gas_price)

    # ============ Confirmation ============

    async def await_receipt(self, tx_hash: Optional[str] = None) -> Receipt:
        """
        Poll until the pending transaction is mined.

        No timeout is imposed here; bound the wait with asyncio.wait_for().

        Raises:
            ReceiptFailedOnChainError: The receipt carries a failure status
            TransactionAbandonedError: The session was reloaded meanwhile
        """
        pending = self._pending
        tx_hash = tx_hash or pending.tx_hash
        if pending.status is not TxStatus.PENDING or tx_hash != pending.tx_hash:
            raise ValueError(f"No pending transaction {tx_hash}")

        generation = self._generation
        while True:
            try:
                receipt = await self._provider.get_receipt(tx_hash)
            except RpcError as exc:
                logger.warning("Failed to get transaction receipt: %s", exc)
                receipt = None
            if generation != self._generation:
                raise TransactionAbandonedError(tx_hash)
            if receipt is not None:
                break
            await asyncio.sleep(self._receipt_poll_interval)

        if not receipt.success:
            message = "Transaction failed on chain"
            self._pending = PendingTransaction(
                tx_hash=tx_hash,
                status=TxStatus.FAILED,
                error=message,
                gas_used=receipt.gas_used,
                gas_limit=pending.gas_limit,
            )
            self._store.commit(error=message)
            raise ReceiptFailedOnChainError(tx_hash, receipt.gas_used)

        self._pending = PendingTransaction(
            tx_hash=tx_hash,
            status=TxStatus.CONFIRMED,
            gas_used=receipt.gas_used,
            gas_limit=pending.gas_limit,
        )
        logger.info("Transaction %s confirmed, gas used %s", tx_hash, receipt.gas_used)
        if receipt.new_count is not None:
            self._store.commit_counter(receipt.new_count)
        await self.refresh_counter()
        return receipt

    async def increment_and_confirm(self) -> Receipt:
        await self.increment_counter()
        return await self.await_receipt()

    def reset(self) -> None:
        """
        Return to IDLE from CONFIRMED or FAILED.

        Raises:
            TransactionPendingError: A broadcast transaction cannot be withdrawn
        """
        if self.busy:
            raise TransactionPendingError("A pending transaction cannot be reset")
        self._pending = PendingTransaction()

    def abandon(self) -> None:
        """Drop the current attempt unconditionally (session reload)."""
        self._generation += 1
        self._submitting = False
        self._pending = PendingTransaction()

    # ============ Reads ============

    async def refresh_counter(self) -> int:
        """
        Re-read the counter into the session. Read failures are logged only.

        Returns:
            The session's counter value after the refresh
        """
        try:
            value = await self._provider.read_counter()
        except (ContractNotInitializedError, ContractReadError) as exc:
            logger.warning("Failed to refresh counter value: %s", exc)
        else:
            self._store.commit_counter(value)
        return self._store.snapshot.counter_value
