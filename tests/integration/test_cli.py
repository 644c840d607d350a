"""
CLI integration tests using Click's test runner.

Tests verify that the CLI commands work end-to-end via the Click
CliRunner, without requiring network access: chain interaction is routed
to a fake node through an httpx.MockTransport.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest
from click.testing import CliRunner
from eth_abi import encode

from counterlink.cli import VERSION, cli
from counterlink.wallet.keys import generate_eoa, save_private_key

CONTRACT = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
TX_HASH = "0x" + "cd" * 32

CLEAN_KEYS = (
    "PRIVATE_KEY",
    "COUNTER_CONTRACT_ADDRESS",
    "POLYGON_AMOY_RPC_URL",
    "COUNTER_ABI_PATH",
    "COUNTERLINK_POLL_INTERVAL",
)


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def counterlink_home(tmp_path: Path):
    """Point ~/.counterlink at a temp directory with a clean environment."""
    home = tmp_path / ".counterlink"
    home.mkdir()
    env = {k: v for k, v in os.environ.items() if k not in CLEAN_KEYS}
    with patch.dict(os.environ, env, clear=True):
        with patch("counterlink.wallet.keys.COUNTERLINK_ENV", home / ".env"), \
             patch("counterlink.config.COUNTERLINK_ENV", home / ".env"):
            yield home


@pytest.fixture()
def wallet(counterlink_home: Path) -> tuple[str, str]:
    """Generate and save a wallet to the temp counterlink home."""
    private_key, address = generate_eoa()
    save_private_key(private_key, counterlink_home / ".env")
    return private_key, address


@pytest.fixture()
def fake_node():
    """Route every RPC client the CLI creates to an in-memory node."""
    state = {"counter": 41, "sent": []}

    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        method, params = payload["method"], payload["params"]
        result = None
        if method == "eth_getCode":
            result = "0x6080"
        elif method == "eth_call":
            if params[0]["data"] == "0xa87d942c":
                result = "0x" + encode(["uint256"], [state["counter"]]).hex()
            else:
                result = "0x"
        elif method == "eth_estimateGas":
            result = hex(50_000)
        elif method == "eth_gasPrice":
            result = hex(30 * 10**9)
        elif method == "eth_getTransactionCount":
            result = "0x0"
        elif method == "eth_getBalance":
            result = hex(10**18)
        elif method == "eth_sendRawTransaction":
            state["sent"].append(params[0])
            state["counter"] += 1
            result = TX_HASH
        elif method == "eth_getTransactionReceipt":
            result = {
                "transactionHash": TX_HASH,
                "status": "0x1",
                "gasUsed": hex(43_000),
                "blockNumber": "0x10",
                "logs": [],
            }
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": result})

    transport = httpx.MockTransport(handler)
    real_client = httpx.AsyncClient

    def client_factory(*args, **kwargs):
        kwargs["transport"] = transport
        return real_client(*args, **kwargs)

    with patch("counterlink.chain.rpc.httpx.AsyncClient", side_effect=client_factory):
        yield state


class TestVersionAndInfo:
    """Test basic CLI commands that don't require a wallet."""

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert VERSION in result.output

    def test_banner_without_command(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, [])
        assert result.exit_code == 0
        assert "C O U N T E R L I N K" in result.output
        assert "increment" in result.output

    def test_info(self, runner: CliRunner, wallet: tuple[str, str]) -> None:
        result = runner.invoke(cli, ["--contract", CONTRACT, "info"])
        assert result.exit_code == 0
        assert "Polygon Amoy Testnet (80002 / 0x13882)" in result.output
        assert CONTRACT in result.output
        assert wallet[1] in result.output

    def test_info_rpc_override(self, runner: CliRunner, counterlink_home: Path) -> None:
        result = runner.invoke(cli, ["--rpc-url", "https://amoy.example/rpc", "info"])
        assert result.exit_code == 0
        assert "https://amoy.example/rpc" in result.output
        assert "not initialized" in result.output


class TestWallet:
    """Key creation and identity display."""

    def test_keygen(self, runner: CliRunner, counterlink_home: Path) -> None:
        result = runner.invoke(cli, ["keygen"])
        assert result.exit_code == 0
        assert "Address:" in result.output
        assert (counterlink_home / ".env").exists()

    def test_keygen_keeps_existing(self, runner: CliRunner, wallet: tuple[str, str]) -> None:
        result = runner.invoke(cli, ["keygen"])
        assert result.exit_code != 0
        assert wallet[1] in result.output

    def test_whoami_with_wallet(self, runner: CliRunner, wallet: tuple[str, str]) -> None:
        result = runner.invoke(cli, ["whoami"])
        assert result.exit_code == 0
        assert f"Address: {wallet[1]}" in result.output

    def test_whoami_without_wallet(self, runner: CliRunner, counterlink_home: Path) -> None:
        result = runner.invoke(cli, ["whoami"])
        assert result.exit_code != 0
        assert "No wallet found" in result.output

    def test_whoami_from_process_env(self, runner: CliRunner, counterlink_home: Path) -> None:
        private_key, address = generate_eoa()
        result = runner.invoke(cli, ["whoami"], env={"PRIVATE_KEY": private_key[2:]})
        assert result.exit_code == 0
        assert address in result.output


class TestChainCommands:
    """Commands that talk to the (fake) node."""

    def test_count(self, runner: CliRunner, counterlink_home: Path, fake_node: dict) -> None:
        result = runner.invoke(cli, ["--contract", CONTRACT, "count"])
        assert result.exit_code == 0, result.output
        assert "Counter: 41" in result.output

    def test_count_without_contract(self, runner: CliRunner, counterlink_home: Path, fake_node: dict) -> None:
        result = runner.invoke(cli, ["count"])
        assert result.exit_code == 5
        assert "Contract not initialized" in result.output

    def test_status(self, runner: CliRunner, wallet: tuple[str, str], fake_node: dict) -> None:
        result = runner.invoke(cli, ["--contract", CONTRACT, "status", "--yes"])
        assert result.exit_code == 0, result.output
        assert "Connected:  False" in result.output
        assert "Counter:    41" in result.output

    def test_increment(self, runner: CliRunner, wallet: tuple[str, str], fake_node: dict) -> None:
        result = runner.invoke(cli, ["--contract", CONTRACT, "increment", "--yes"])
        assert result.exit_code == 0, result.output
        assert TX_HASH in result.output
        assert "SUCCESS" in result.output
        assert "Counter:  42" in result.output
        assert len(fake_node["sent"]) == 1

    def test_receipt(self, runner: CliRunner, counterlink_home: Path, fake_node: dict) -> None:
        result = runner.invoke(cli, ["--contract", CONTRACT, "receipt", TX_HASH])
        assert result.exit_code == 0, result.output
        assert "0xcdcdcdcd...cdcdcdcd" in result.output
        assert "confirmed" in result.output
        assert "Gas used: 43000" in result.output
        assert f"/tx/{TX_HASH}" in result.output

    def test_receipt_rejects_malformed_hash(self, runner: CliRunner, counterlink_home: Path) -> None:
        result = runner.invoke(cli, ["receipt", "0x1234"])
        assert result.exit_code == 2
        assert "not a transaction hash" in result.output

    def test_increment_declined(self, runner: CliRunner, wallet: tuple[str, str], fake_node: dict) -> None:
        result = runner.invoke(cli, ["--contract", CONTRACT, "increment"], input="n\n")
        assert result.exit_code != 0
        assert fake_node["sent"] == []

    def test_increment_without_wallet(self, runner: CliRunner, counterlink_home: Path, fake_node: dict) -> None:
        result = runner.invoke(cli, ["--contract", CONTRACT, "increment", "--yes"])
        assert result.exit_code == 3
        assert "No compatible wallet" in result.output
