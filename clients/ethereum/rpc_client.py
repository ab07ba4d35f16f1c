"""
Ethereum JSON-RPC Client

Minimal async JSON-RPC client for the reads the liquidity flow needs:

- ``eth_getBalance``           native balance of an account
- ``eth_call`` balanceOf       ERC-20 selector 0x70a08231
- ``eth_call`` allowance       ERC-20 selector 0xdd62ed3e

Calls are read-only and evaluated against the ``latest`` block. Amounts are
returned as Python ints in base units.

Usage:
    async with EthereumRPCClient() as client:
        wei = await client.get_balance("0xdef...")
        usdc = await client.erc20_balance_of("0xa0b8...", "0xdef...")
"""

import aiohttp
import asyncio
import itertools
import time
from typing import Any, List, Optional

from core.config import ADDRESS_PATTERN, settings
from core.errors import NetworkError
from core.logging import get_logger, log_api_request, log_api_response


BALANCE_OF_SELECTOR = "0x70a08231"
ALLOWANCE_SELECTOR = "0xdd62ed3e"


def encode_address(address: str) -> str:
    """
    ABI-encode an address as one 32-byte word (hex, no prefix).

    Raises:
        ValueError: If ``address`` is not a 20-byte hex address

    Example:
        >>> encode_address("0x00000000000000000000000000000000000000ff")[-4:]
        '00ff'
    """
    if not address or not ADDRESS_PATTERN.match(address):
        raise ValueError(f"Invalid address: {address}")
    return address[2:].lower().rjust(64, "0")


def encode_call(selector: str, *addresses: str) -> str:
    return selector + "".join(encode_address(a) for a in addresses)


def decode_uint(value: Optional[str]) -> int:
    """
    Decode a hex quantity or a 32-byte return word.

    An empty result (``"0x"``) decodes to 0, as returned by calls to
    addresses without code.
    """
    if value is None:
        raise ValueError("Empty RPC result")
    if value in ("0x", ""):
        return 0
    return int(value, 16)


class EthereumRPCClient:
    """
    Async JSON-RPC client over aiohttp.

    Attributes:
        url: JSON-RPC endpoint
        session: aiohttp ClientSession for HTTP requests
        logger: Logger instance for debugging
    """

    SOURCE = "rpc"

    def __init__(self, url: str = None, timeout: float = None):
        self.url = url or settings.rpc_url
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.logger = get_logger(__name__)
        self.session: Optional[aiohttp.ClientSession] = None
        self._ids = itertools.count(1)

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        self.session = aiohttp.ClientSession()
        self.logger.debug("EthereumRPCClient session created")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.debug("EthereumRPCClient session closed")

    # ============================================
    # JSON-RPC Request Handler
    # ============================================

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        """
        Send one JSON-RPC request and return its ``result``.

        No retries: a failed read fails the whole balance set, and the
        dashboard decides whether to try again.

        Raises:
            NetworkError: Transport failure, HTTP error or JSON-RPC error object
        """
        if not self.session:
            raise RuntimeError("Client session not initialized. Use 'async with' statement.")

        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        log_api_request(self.SOURCE, method, {"params": params})
        started = time.monotonic()

        try:
            async with self.session.post(
                self.url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                log_api_response(self.SOURCE, method, resp.status, time.monotonic() - started)
                if resp.status != 200:
                    text = await resp.text()
                    self.logger.error(f"HTTP {resp.status} on {method}: {text}")
                    raise NetworkError(f"HTTP {resp.status} on {method}")
                body = await resp.json()

        except asyncio.TimeoutError:
            self.logger.error(f"Timeout on {method}")
            raise NetworkError(f"timeout on {method}")

        except aiohttp.ClientError as e:
            self.logger.error(f"Request failed on {method}: {e}")
            raise NetworkError(str(e)) from e

        error = body.get("error")
        if error:
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            self.logger.error(f"JSON-RPC error on {method}: {message}")
            raise NetworkError(message)
        return body.get("result")

    # ============================================
    # Reads
    # ============================================

    async def get_balance(self, account: str) -> int:
        encode_address(account)
        return decode_uint(await self._rpc("eth_getBalance", [account, "latest"]))

    async def call(self, to: str, data: str) -> str:
        return await self._rpc("eth_call", [{"to": to, "data": data}, "latest"])

    async def erc20_balance_of(self, token: str, account: str) -> int:
        data = encode_call(BALANCE_OF_SELECTOR, account)
        return decode_uint(await self.call(token, data))

    async def erc20_allowance(self, token: str, owner: str, spender: str) -> int:
        data = encode_call(ALLOWANCE_SELECTOR, owner, spender)
        return decode_uint(await self.call(token, data))
