"""
Ethereum Chain Connector

This module implements the ChainQuery interface over Ethereum JSON-RPC.

Structure:
    clients/ethereum/
    ├── __init__.py          # This file (EthereumChainQuery class)
    └── rpc_client.py        # JSON-RPC client with aiohttp
"""

from typing import Optional

from core.errors import NetworkError
from core.interfaces import ChainQuery
from core.logging import get_logger
from .rpc_client import EthereumRPCClient


class EthereumChainQuery(ChainQuery):
    """
    On-chain reads for the balance resolver.

    Raises NetworkError on any failure, including malformed addresses and
    undecodable results.

    Example:
        >>> chain = EthereumChainQuery()
        >>> await chain.initialize()
        >>> await chain.allowance(token, owner, spender)
        115792089237316195423570985008687907853269984665640564039457584007913129639935
    """

    name = "ethereum"

    def __init__(self, client: Optional[EthereumRPCClient] = None):
        self.client = client
        self._owns_client = client is None
        self.logger = get_logger(__name__)

    async def initialize(self) -> None:
        if self.client is not None and self.client.session is not None:
            return
        self.logger.info("Initializing Ethereum chain connector...")
        if self.client is None:
            self.client = EthereumRPCClient()
        await self.client.__aenter__()
        self.logger.info(f"✓ Ethereum chain connector initialized ({self.client.url})")

    async def shutdown(self) -> None:
        if self.client and self._owns_client:
            await self.client.__aexit__(None, None, None)
            self.logger.info("✓ Ethereum chain connector shut down")

    def _client(self) -> EthereumRPCClient:
        if self.client is None:
            raise NetworkError(f"{self.name} connector not initialized")
        return self.client

    async def balance_of(self, token_address: str, account: str) -> int:
        try:
            return await self._client().erc20_balance_of(token_address, account)
        except ValueError as e:
            raise NetworkError(f"balanceOf {token_address}: {e}") from e

    async def allowance(self, token_address: str, owner: str, spender: str) -> int:
        try:
            return await self._client().erc20_allowance(token_address, owner, spender)
        except ValueError as e:
            raise NetworkError(f"allowance {token_address}: {e}") from e

    async def native_balance(self, account: str) -> int:
        try:
            return await self._client().get_balance(account)
        except ValueError as e:
            raise NetworkError(f"eth_getBalance {account}: {e}") from e


__all__ = ["EthereumChainQuery", "EthereumRPCClient"]
