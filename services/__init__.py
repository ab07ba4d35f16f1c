"""
Services Package

Async orchestration of the dashboard: selection tracking, fetch cycles,
balance resolution, the single-writer aggregator and the controller.
"""
