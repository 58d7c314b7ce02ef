"""Persistence layer — event log and state storage."""

from peerreview.persistence.event_log import EventLog, EventRecord, EventKind
from peerreview.persistence.state_store import StateStore

__all__ = ["EventLog", "EventRecord", "EventKind", "StateStore"]
