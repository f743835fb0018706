from .rehydrator import AggregateRehydrator
from .repository import EventSourcedRepository, SaveResult
from .seeding import SeedEvent, seed_events, seed_from_json
from .snapshots import EveryNEventsStrategy

__all__ = [
    "AggregateRehydrator",
    "EventSourcedRepository",
    "EveryNEventsStrategy",
    "SaveResult",
    "SeedEvent",
    "seed_events",
    "seed_from_json",
]
