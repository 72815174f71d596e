"""
Data layer for the prop opportunity engine.

Provides:
- Odds-API.io client (upcoming events, per-event player prop odds)
- Quota-aware odds cache with in-memory and SQLite storage
- Fetch-and-scan pipeline feeding the detectors
"""
from .pipeline import OpportunityPipeline, ScanReport, PLAYER_PROPS_MARKET

__all__ = [
    # Pipeline
    "OpportunityPipeline",
    "ScanReport",
    "PLAYER_PROPS_MARKET",
]
