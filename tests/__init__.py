"""
Test Suite

Contains the unit tests for the pair dashboard core.

Structure:
- tests/fakes.py: In-memory MarketDataAPI / ChainQuery collaborators and sample data
- tests/unit/: Tests for individual components (selection, aggregation, pipelines, clients, API)

Uses pytest with pytest-asyncio for testing async functionality.
"""
