from .policy import SchedulingPolicy
from .scheduler import CommandScheduler, command_etag
from .trigger import (
    CommandFailure,
    CommandTriggerEngine,
    EventStorePreconditionVerifier,
    IPreconditionVerifier,
    TriggerResult,
)
from .worker import TriggerWorker

__all__ = [
    "CommandFailure",
    "CommandScheduler",
    "CommandTriggerEngine",
    "EventStorePreconditionVerifier",
    "IPreconditionVerifier",
    "SchedulingPolicy",
    "TriggerResult",
    "TriggerWorker",
    "command_etag",
]
