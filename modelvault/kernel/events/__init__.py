"""
Append-only audit logging.
"""

from modelvault.kernel.events.event_store import EventStore

__all__ = [
    "EventStore",
]
