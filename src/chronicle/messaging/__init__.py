from .envelope import MessageEnvelope, ScheduledCommandMessage
from .memory import InMemoryQueue, InMemoryQueueMessage
from .receiver import ReceiverSettings, ScheduledCommandQueueReceiver
from .sender import QueueCommandDispatcher
from .serialization import EnvelopeSerializer

__all__ = [
    "EnvelopeSerializer",
    "InMemoryQueue",
    "InMemoryQueueMessage",
    "MessageEnvelope",
    "QueueCommandDispatcher",
    "ReceiverSettings",
    "ScheduledCommandMessage",
    "ScheduledCommandQueueReceiver",
]
