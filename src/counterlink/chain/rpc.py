"""
JSON-RPC Client.

Lightweight alternative to web3.py: uses httpx for HTTP transport.
Node errors and transport failures are both raised as RpcError, which has
the same shape as an EIP-1193 provider error (code, message, data).
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class RpcError(RuntimeError):
    """
    A JSON-RPC or wallet request failure.

    Attributes:
        code: Numeric error code (JSON-RPC or EIP-1193), if any
        message: Error message
        data: Extra error data (e.g. revert payload), if any
    """

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data

    @classmethod
    def from_payload(cls, error: Any) -> "RpcError":
        if isinstance(error, dict):
            return cls(
                str(error.get("message", "RPC error")),
                code=error.get("code"),
                data=error.get("data"),
            )
        return cls(f"RPC error: {error}")


def validate_rpc_url(url: str) -> httpx.URL:
    """
    Parse an RPC endpoint URL.

    Raises:
        ValueError: If the URL is not an absolute http(s) URL
    """
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError) as exc:
        raise ValueError(f"Invalid RPC URL {url!r}: {exc}") from exc
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise ValueError(f"Invalid RPC URL {url!r}: expected an http(s) endpoint")
    return parsed


class RpcClient:
    """Async JSON-RPC 2.0 client bound to one endpoint."""

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = str(validate_rpc_url(url))
        self._ids = itertools.count(1)
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def call(self, method: str, params: Optional[list] = None) -> Any:
        """
        Make a JSON-RPC call.

        Args:
            method: RPC method name (e.g., "eth_call")
            params: RPC parameters

        Returns:
            Result field from the RPC response

        Raises:
            RpcError: If the node returns an error or the request fails
        """
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": next(self._ids),
        }

        try:
            response = await self._client.post(self.url, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            logger.debug("RPC %s to %s failed: %s", method, self.url, exc)
            raise RpcError(f"Internal JSON-RPC error: {exc}") from exc
        except ValueError as exc:
            raise RpcError(f"Internal JSON-RPC error: invalid response body ({exc})") from exc

        if "error" in data:
            raise RpcError.from_payload(data["error"])

        return data.get("result")

    async def aclose(self) -> None:
        await self._client.aclose()
