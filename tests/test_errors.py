"""Unit tests for failure classification."""

from __future__ import annotations

import pytest

from counterlink.chain.config import POLYGON_AMOY
from counterlink.chain.rpc import RpcError
from counterlink.errors import (
    ContractNotFoundError,
    ContractReadError,
    CounterLinkError,
    FailureKind,
    SimulationFailedError,
    SubmissionError,
    WrongNetworkError,
    classify_failure,
    describe_failure,
)


class TestClassifyFailure:
    def test_wrong_network_by_type(self) -> None:
        exc = WrongNetworkError("Polygon Amoy Testnet", "0x1")
        assert classify_failure(exc) is FailureKind.WRONG_NETWORK

    def test_structured_rejection_code(self) -> None:
        assert classify_failure(SubmissionError("denied", code=4001)) is FailureKind.USER_REJECTED
        assert classify_failure(RpcError("nope", code=4001)) is FailureKind.USER_REJECTED

    @pytest.mark.parametrize(
        "text, kind",
        [
            ("MetaMask Tx Signature: User denied transaction signature.", FailureKind.USER_REJECTED),
            ("User rejected the request.", FailureKind.USER_REJECTED),
            ("insufficient funds for gas * price + value", FailureKind.INSUFFICIENT_FUNDS),
            ("sender has insufficient balance", FailureKind.INSUFFICIENT_FUNDS),
            ("intrinsic gas too low", FailureKind.GAS),
            ("Internal JSON-RPC error: connection reset", FailureKind.NETWORK),
            ("nonce too low", FailureKind.OTHER),
        ],
    )
    def test_message_rules(self, text: str, kind: FailureKind) -> None:
        assert classify_failure(SubmissionError(text)) is kind

    def test_insufficient_funds_beats_gas(self) -> None:
        # the node text mentions gas but the cause is the balance
        exc = SubmissionError("insufficient funds for gas")
        assert classify_failure(exc) is FailureKind.INSUFFICIENT_FUNDS


class TestDescribeFailure:
    def test_texts(self) -> None:
        exc = SubmissionError("whatever")
        assert describe_failure(FailureKind.USER_REJECTED, exc) == "Transaction was rejected by user"
        assert "Please add more MATIC" in describe_failure(
            FailureKind.INSUFFICIENT_FUNDS, exc, POLYGON_AMOY
        )
        assert "gas issues" in describe_failure(FailureKind.GAS, exc)
        assert "Network error occurred" in describe_failure(FailureKind.NETWORK, exc)

    def test_other_keeps_original_message(self) -> None:
        exc = SimulationFailedError("Counter: paused")
        assert describe_failure(FailureKind.OTHER, exc) == "Contract call failed: Counter: paused"

    def test_wrong_network_message(self) -> None:
        exc = WrongNetworkError("Polygon Amoy Testnet", "0x1")
        assert describe_failure(FailureKind.WRONG_NETWORK, exc) == (
            "Wrong network. Please switch to Polygon Amoy Testnet."
        )


class TestHierarchy:
    def test_exit_codes(self) -> None:
        assert CounterLinkError.exit_code == 1
        assert WrongNetworkError("x").exit_code == 4

    def test_contract_not_found_is_read_error(self) -> None:
        exc = ContractNotFoundError("0x5FbDB2315678afecb367f032d93F642f64180aa3")
        assert isinstance(exc, ContractReadError)
        assert "No contract found" in str(exc)
