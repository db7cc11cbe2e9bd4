"""
Heartbeat production and ingestion.

Modules:
    emitter: Motion events to rate-controlled heartbeats
    ingest: Validator-gated path into the presence store

Example:
    >>> from presence_guard.heartbeat import HeartbeatEmitter, HeartbeatIngestor
    >>> ingestor = HeartbeatIngestor(validator, store)
    >>> emitter = HeartbeatEmitter("user-1", sink=ingestor)
"""

from presence_guard.heartbeat.emitter import HeartbeatEmitter, HeartbeatSink
from presence_guard.heartbeat.ingest import HeartbeatIngestor

__all__ = [
    "HeartbeatEmitter",
    "HeartbeatSink",
    "HeartbeatIngestor",
]
