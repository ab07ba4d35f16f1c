"""
Remote collaborators of the dashboard core.

- uniswap: MarketDataAPI over the Uniswap v2 subgraph
- ethereum: ChainQuery over Ethereum JSON-RPC
"""
