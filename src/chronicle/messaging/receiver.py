"""ScheduledCommandQueueReceiver — bridges an at-least-once queue to the trigger engine."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from inspect import isawaitable
from typing import TYPE_CHECKING

from ..correlation import correlation_scope, get_correlation_id
from ..exceptions import DeserializationError, TransportDeliveryError
from ..instrumentation import get_hook_registry
from ..ports.scheduling import CommandSelector
from .serialization import EnvelopeSerializer

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from ..ports.messaging import IQueueMessage, IQueueTransport
    from ..scheduling.trigger import CommandTriggerEngine
    from .envelope import ScheduledCommandMessage

    MessageListener = Callable[[ScheduledCommandMessage], Awaitable[None] | None]
    ErrorListener = Callable[[Exception], Awaitable[None] | None]

logger = logging.getLogger("chronicle.messaging")


@dataclass(frozen=True, slots=True)
class ReceiverSettings:
    """Configuration for :class:`ScheduledCommandQueueReceiver`.

    Attributes:
        visibility_timeout: Seconds a message may be handled before it is
            abandoned to redelivery. Match the transport's own timeout.
        wait_time_seconds: Long-poll wait per receive call.
        max_messages: Messages requested per receive call.
        max_concurrency: Messages handled at the same time.
    """

    visibility_timeout: float = 30.0
    wait_time_seconds: int = 20
    max_messages: int = 10
    max_concurrency: int = 1

    def __post_init__(self) -> None:
        if self.visibility_timeout <= 0:
            raise ValueError("visibility_timeout must be > 0")
        if self.wait_time_seconds < 0:
            raise ValueError("wait_time_seconds must be >= 0")
        if self.max_messages < 1 or self.max_concurrency < 1:
            raise ValueError("max_messages and max_concurrency must be >= 1")


class ScheduledCommandQueueReceiver:
    """Receives scheduled-command messages and triggers the matching commands.

    A message only names a command (aggregate id, sequence number, due
    time). For each one the receiver triggers the aggregate's due commands
    and completes the message when they all applied, or when the named
    command was already resolved by an earlier delivery. Anything else
    (retries pending, undecodable bodies, errors, timeouts) leaves the
    message for the transport to redeliver; the receiver never fails a
    command on its own.
    """

    idle_delay = 1.0

    def __init__(
        self,
        engine: CommandTriggerEngine,
        transport: IQueueTransport | None = None,
        *,
        settings: ReceiverSettings | None = None,
        serializer: EnvelopeSerializer | None = None,
    ) -> None:
        self._engine = engine
        self._transport = transport
        self._settings = settings or ReceiverSettings()
        self._serializer = serializer or EnvelopeSerializer()
        self._message_listeners: list[MessageListener] = []
        self._error_listeners: list[ErrorListener] = []
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._semaphore = asyncio.Semaphore(self._settings.max_concurrency)

    # ── Listeners ────────────────────────────────────────────────

    def on_message(self, listener: MessageListener) -> None:
        """Observe every decoded message before it is handled."""
        self._message_listeners.append(listener)

    def on_error(self, listener: ErrorListener) -> None:
        """Observe transport and handling errors."""
        self._error_listeners.append(listener)

    # ── Handling ─────────────────────────────────────────────────

    async def handle(self, message: IQueueMessage) -> bool:
        """Handle one delivery; returns True when the message was completed."""
        try:
            envelope, command_message = self._serializer.decode_command(message.body)
        except DeserializationError as e:
            await self._report(
                TransportDeliveryError(
                    f"Undecodable message {message.message_id}: {e}",
                    message.message_id,
                ),
                cause=e,
            )
            return False

        await self._notify(command_message)
        try:
            return bool(
                await asyncio.wait_for(
                    get_hook_registry().execute_all(
                        "receiver.message",
                        {
                            "message.id": message.message_id,
                            "message.delivery_count": message.delivery_count,
                            "aggregate.id": command_message.aggregate_id,
                            "schedule.sequence_number": command_message.sequence_number,
                            "correlation_id": envelope.correlation_id
                            or get_correlation_id(),
                        },
                        lambda: self._handle_internal(
                            message, command_message, envelope.correlation_id
                        ),
                    ),
                    timeout=self._settings.visibility_timeout,
                )
            )
        except asyncio.TimeoutError as e:
            await self._report(
                TransportDeliveryError(
                    f"Handling of message {message.message_id} timed out after "
                    f"{self._settings.visibility_timeout}s",
                    message.message_id,
                ),
                cause=e,
            )
        except Exception as e:  # noqa: BLE001
            await self._report(
                TransportDeliveryError(
                    f"Handling of message {message.message_id} failed: {e}",
                    message.message_id,
                ),
                cause=e,
            )
        return False

    async def _handle_internal(
        self,
        message: IQueueMessage,
        command_message: ScheduledCommandMessage,
        correlation_id: str | None,
    ) -> bool:
        with correlation_scope(correlation_id):
            return await self._complete_if_resolved(message, command_message)

    async def _complete_if_resolved(
        self, message: IQueueMessage, command_message: ScheduledCommandMessage
    ) -> bool:
        aggregate_id = command_message.aggregate_id
        due_time = command_message.due_time
        if due_time is not None and due_time > self._engine.clock.now():
            logger.debug(
                "Message %s for %s arrived before its due time %s",
                message.message_id,
                aggregate_id,
                due_time.isoformat(),
            )
            return False

        # Select by the current time: a retry may have pushed the record's due
        # time past the one this message carries.
        result = await self._engine.trigger(
            CommandSelector.due(self._engine.clock.now()).for_aggregate(aggregate_id)
        )
        if not result.has_failures and result.successful_commands:
            await message.complete()
            logger.debug(
                "Completed message %s on success for %s", message.message_id, aggregate_id
            )
            return True

        resolved = await self._engine.store.find_resolved(
            aggregate_id, command_message.sequence_number
        )
        if resolved is not None:
            await message.complete()
            logger.debug(
                "Completed message %s: command #%d for %s was already %s",
                message.message_id,
                command_message.sequence_number,
                aggregate_id,
                resolved.status.value,
            )
            return True

        logger.debug(
            "Leaving message %s (delivery %d) for redelivery",
            message.message_id,
            message.delivery_count,
        )
        return False

    async def _notify(self, command_message: ScheduledCommandMessage) -> None:
        for listener in list(self._message_listeners):
            try:
                result = listener(command_message)
                if isawaitable(result):
                    await result
            except Exception:
                logger.exception("Message listener failed")

    async def _report(
        self, error: Exception, *, cause: BaseException | None = None
    ) -> None:
        if cause is not None and cause is not error:
            error.__cause__ = cause
        logger.warning("%s", error, exc_info=cause or error)
        for listener in list(self._error_listeners):
            try:
                result = listener(error)
                if isawaitable(result):
                    await result
            except Exception:
                logger.exception("Error listener failed")

    # ── Receive loop ─────────────────────────────────────────────

    async def receive_once(self) -> int:
        """Receive one batch and handle it; returns how many were completed."""
        _, completed = await self._receive_batch()
        return completed

    async def _receive_batch(self) -> tuple[int, int]:
        if self._transport is None:
            raise TransportDeliveryError("No transport is configured for receiving")
        messages = await self._transport.receive(
            max_messages=self._settings.max_messages,
            wait_time_seconds=self._settings.wait_time_seconds,
        )
        if not messages:
            return 0, 0
        outcomes = await asyncio.gather(
            *(self._handle_bounded(message) for message in messages)
        )
        return len(messages), sum(1 for completed in outcomes if completed)

    async def _handle_bounded(self, message: IQueueMessage) -> bool:
        async with self._semaphore:
            return await self.handle(message)

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("ScheduledCommandQueueReceiver started")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError, asyncio.TimeoutError):
                await asyncio.wait_for(self._task, timeout=5.0)
            self._task = None
        logger.info("ScheduledCommandQueueReceiver stopped")

    async def _run_loop(self) -> None:
        while self._running:
            try:
                received, _ = await self._receive_batch()
                if not received and self._settings.wait_time_seconds == 0:
                    await asyncio.sleep(self.idle_delay)
            except TransportDeliveryError as e:
                await self._report(e)
                await asyncio.sleep(1)
            except Exception as e:  # noqa: BLE001
                await self._report(
                    TransportDeliveryError(f"Receive loop error: {e}"), cause=e
                )
                await asyncio.sleep(1)

    @property
    def is_running(self) -> bool:
        return self._running
