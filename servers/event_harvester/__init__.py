"""
Event Harvester

Periodically harvests event listings from heterogeneous public sources
(calendar pages, JSON endpoints, RSS feeds, script-rendered pages):
- Runs per-source adapters with bounded concurrency and per-source deadlines
- Normalizes and validates raw candidates into canonical events
- Stores events idempotently and keeps a per-source health ledger

Run with: python -m servers.event_harvester
"""

__version__ = "1.0.0"
