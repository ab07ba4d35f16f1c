"""
FastAPI Application Package

HTTP and WebSocket adapter of the pair dashboard: selection, refresh
triggers, FetchState exposure and diagnostics.
"""
