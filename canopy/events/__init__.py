"""Event sourcing: append-only event store, state projection, and the event log."""

from canopy.events.log import EventLog
from canopy.events.projector import StateProjector
from canopy.events.store import EventStore

__all__ = ["EventLog", "EventStore", "StateProjector"]
