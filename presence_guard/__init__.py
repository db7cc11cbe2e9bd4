"""
Presence Guard liveness and escalation engine.

Monitors whether watched people remain active, based on heartbeats derived
from device motion, and escalates through alert levels ending in
notifications to their contacts when the heartbeats go silent for too long.

This package provides:
- Data models for heartbeats, presence state, cooldowns and audit entries
- Capability interfaces for the presence store, notifier and friend directory
- The heartbeat emitter, anti-spoofing validator, alert classifier,
  escalation scheduler and notification dispatcher
- Configuration management and storage adapters (in-memory, Redis)
"""

__version__ = "0.1.0"
