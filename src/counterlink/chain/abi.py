"""
ABI Loader and codec for the counter contract.

The built-in COUNTER_ABI describes the deployed contract; a compiled
artifact (Hardhat ``{"abi": [...]}`` JSON, or a bare ABI list) can be loaded
instead with load_abi().
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_hash.auto import keccak


COUNTER_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "getCount",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "count",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "increment",
        "inputs": [],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
    {
        "type": "event",
        "name": "CounterIncremented",
        "anonymous": False,
        "inputs": [
            {"name": "newCount", "type": "uint256", "indexed": False},
            {"name": "incrementedBy", "type": "address", "indexed": True},
        ],
    },
]

# Error(string) revert payload selector
_ERROR_STRING_SELECTOR = "0x08c379a0"


@lru_cache(maxsize=16)
def _load_abi_cached(path: str) -> tuple[str, ...]:
    with Path(path).open("r", encoding="utf-8") as f:
        artifact = json.load(f)

    abi = artifact.get("abi") if isinstance(artifact, dict) else artifact
    if not isinstance(abi, list):
        raise ValueError(f"No ABI found in {path}")
    # entries are cached as JSON text so callers always get fresh dicts
    return tuple(json.dumps(entry) for entry in abi)


def load_abi(path: Path | str) -> list[dict[str, Any]]:
    """
    Load a contract ABI from a compiled artifact.

    Args:
        path: JSON file holding either ``{"abi": [...]}`` or a bare ABI list

    Returns:
        ABI as a list of dicts

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file holds no ABI
    """
    resolved = Path(path).expanduser().resolve()
    if not resolved.exists():
        raise FileNotFoundError(f"ABI not found: {resolved}")
    return [json.loads(entry) for entry in _load_abi_cached(str(resolved))]


def _find_entry(abi: list, kind: str, name: str) -> dict[str, Any]:
    for entry in abi:
        if entry.get("type") == kind and entry.get("name") == name:
            return entry
    raise ValueError(f"{kind.capitalize()} {name} not found in ABI")


def has_function(abi: list, function_name: str) -> bool:
    return any(
        entry.get("type") == "function" and entry.get("name") == function_name
        for entry in abi
    )


def _signature(entry: dict[str, Any]) -> str:
    input_types = [inp["type"] for inp in entry.get("inputs", [])]
    return f"{entry['name']}({','.join(input_types)})"


def function_selector(abi: list, function_name: str) -> str:
    """0x-prefixed 4-byte selector of an ABI function."""
    entry = _find_entry(abi, "function", function_name)
    # NOTE: Keccak-256 != SHA3-256 (NIST). Never use hashlib.sha3_256 here.
    return "0x" + keccak(_signature(entry).encode("utf-8"))[:4].hex()


def event_topic(abi: list, event_name: str) -> str:
    """0x-prefixed topic0 of an ABI event."""
    entry = _find_entry(abi, "event", event_name)
    return "0x" + keccak(_signature(entry).encode("utf-8")).hex()


def encode_function_call(abi: list, function_name: str, args: Optional[list] = None) -> str:
    """
    ABI-encode a function call.

    Returns:
        0x-prefixed hex encoded calldata
    """
    entry = _find_entry(abi, "function", function_name)
    input_types = [inp["type"] for inp in entry.get("inputs", [])]
    encoded_args = encode(input_types, args) if args else b""
    return function_selector(abi, function_name) + encoded_args.hex()


def _hex_to_bytes(data: str) -> bytes:
    return bytes.fromhex(data[2:] if data.startswith("0x") else data)


def decode_function_result(abi: list, function_name: str, data: str) -> Any:
    """
    ABI-decode a function call result.

    Returns:
        Decoded result (single value or tuple), None for functions without outputs
    """
    entry = _find_entry(abi, "function", function_name)
    output_types = [out["type"] for out in entry.get("outputs", [])]
    if not output_types:
        return None

    decoded = decode(output_types, _hex_to_bytes(data))
    if len(decoded) == 1:
        return decoded[0]
    return decoded


def decode_event_log(abi: list, event_name: str, log: dict[str, Any]) -> Optional[dict[str, Any]]:
    """
    Decode a receipt log entry for ``event_name``.

    Returns:
        Mapping of argument name to value, or None if the log is another event
    """
    topics = [t.lower() for t in log.get("topics") or []]
    if not topics or topics[0] != event_topic(abi, event_name):
        return None

    entry = _find_entry(abi, "event", event_name)
    indexed = [inp for inp in entry["inputs"] if inp.get("indexed")]
    plain = [inp for inp in entry["inputs"] if not inp.get("indexed")]

    values: dict[str, Any] = {}
    for inp, topic in zip(indexed, topics[1:]):
        values[inp["name"]] = decode([inp["type"]], _hex_to_bytes(topic))[0]

    data = log.get("data") or "0x"
    if plain:
        decoded = decode([inp["type"] for inp in plain], _hex_to_bytes(data))
        for inp, value in zip(plain, decoded):
            values[inp["name"]] = value
    return values


def decode_revert_reason(data: Any) -> Optional[str]:
    """Extract the message of an ``Error(string)`` revert payload."""
    if isinstance(data, dict):
        data = data.get("data")
    if not isinstance(data, str) or not data.lower().startswith(_ERROR_STRING_SELECTOR):
        return None
    try:
        return decode(["string"], _hex_to_bytes(data[len(_ERROR_STRING_SELECTOR):]))[0]
    except (DecodingError, ValueError):
        return None
