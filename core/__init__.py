"""
Core Package

Transport-agnostic building blocks of the pair dashboard:
- interfaces: MarketDataAPI / ChainQuery contracts and FetchResult
- schemas: Pydantic models (SelectionKey, PairSnapshot, FetchState, ...)
- errors: Error taxonomy surfaced in Error states
- config / logging: Settings and logger setup
"""
