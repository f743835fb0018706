"""CommandTriggerEngine — applies due scheduled commands and partitions the outcome."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, cast, runtime_checkable

from ..clock import SystemClock
from ..correlation import get_correlation_id
from ..exceptions import (
    AggregateNotFoundError,
    ConcurrencyError,
    DeserializationError,
    DomainError,
)
from ..instrumentation import get_hook_registry
from ..ports.scheduling import CommandSelector
from .policy import SchedulingPolicy

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from ..clock import Clock
    from ..domain.commands import CommandRegistry
    from ..event_sourcing.repository import EventSourcedRepository
    from ..ports.event_store import IEventStore
    from ..ports.scheduling import (
        DeliveryPrecondition,
        IScheduledCommandStore,
        ScheduledCommand,
    )

logger = logging.getLogger("chronicle.scheduling")

# Failures recorded against the command; anything else aborts the pass.
COMMAND_FAILURES = (DomainError, ConcurrencyError, DeserializationError)


@dataclass(frozen=True)
class CommandFailure:
    """A scheduled command that failed in a trigger pass, with its error."""

    record: ScheduledCommand
    error: str
    exception: BaseException | None = None


@dataclass
class TriggerResult:
    """Outcome of one trigger pass.

    - ``successful_commands``: applied and marked applied in this pass.
    - ``failed_commands``: permanently failed in this pass.
    - ``retrying_commands``: failed, but still scheduled for another attempt.
    - ``deferred_commands``: precondition not met yet, still scheduled.
    """

    successful_commands: list[ScheduledCommand] = field(default_factory=list)
    failed_commands: list[CommandFailure] = field(default_factory=list)
    retrying_commands: list[CommandFailure] = field(default_factory=list)
    deferred_commands: list[ScheduledCommand] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed_commands or self.retrying_commands)

    @property
    def is_empty(self) -> bool:
        return not (
            self.successful_commands
            or self.failed_commands
            or self.retrying_commands
            or self.deferred_commands
        )


@runtime_checkable
class IPreconditionVerifier(Protocol):
    """Decides whether a delivery precondition holds."""

    async def is_satisfied(self, precondition: DeliveryPrecondition) -> bool:
        ...


class EventStorePreconditionVerifier(IPreconditionVerifier):
    """Satisfied once the referenced stream contains the referenced sequence number."""

    def __init__(self, event_store: IEventStore) -> None:
        self._event_store = event_store

    async def is_satisfied(self, precondition: DeliveryPrecondition) -> bool:
        event = await self._event_store.get_event(
            precondition.aggregate_id, precondition.sequence_number
        )
        return event is not None


class CommandTriggerEngine:
    """
    Selects scheduled commands, applies them through the repositories and
    records each outcome with a conditional update.

    For every selected record, in due-time then sequence order:

    1. an unmet delivery precondition defers it (or fails it once the
       policy's maximum precondition wait is exceeded);
    2. otherwise the command is hydrated, applied to the latest aggregate
       (created first for constructor commands) and saved;
    3. domain, validation, conflict and decoding failures count as an
       attempt; the policy decides between a retry and a permanent failure.

    Records resolved concurrently by another worker are left out of the
    result. Unexpected (infrastructure) errors abort the pass and propagate.
    """

    def __init__(
        self,
        store: IScheduledCommandStore,
        repositories: Iterable[EventSourcedRepository[Any]],
        commands: CommandRegistry,
        *,
        clock: Clock | None = None,
        policy: SchedulingPolicy | None = None,
        precondition_verifier: IPreconditionVerifier | None = None,
    ) -> None:
        self._store = store
        self._repositories = {
            repository.aggregate_type.aggregate_type_name(): repository
            for repository in repositories
        }
        self._commands = commands
        self._clock = clock or SystemClock()
        self._policy = policy or SchedulingPolicy()
        self._precondition_verifier = precondition_verifier

    @property
    def store(self) -> IScheduledCommandStore:
        return self._store

    @property
    def clock(self) -> Clock:
        return self._clock

    async def trigger(self, selector: CommandSelector) -> TriggerResult:
        registry = get_hook_registry()
        return cast(
            "TriggerResult",
            await registry.execute_all(
                "scheduler.trigger",
                {
                    "selector.due_before": selector.due_before,
                    "selector.aggregate_id": selector.aggregate_id,
                    "selector.aggregate_type": selector.aggregate_type,
                    "correlation_id": get_correlation_id(),
                },
                lambda: self._trigger_internal(selector),
            ),
        )

    async def trigger_due(self) -> TriggerResult:
        """Trigger everything due at the engine clock's current time."""
        return await self.trigger(CommandSelector.due(self._clock.now()))

    async def _trigger_internal(self, selector: CommandSelector) -> TriggerResult:
        result = TriggerResult()
        records = await self._store.query(selector)
        for record in records:
            await self._process(record, result)
        if not result.is_empty:
            logger.info(
                "Trigger pass: %d applied, %d failed, %d retrying, %d deferred",
                len(result.successful_commands),
                len(result.failed_commands),
                len(result.retrying_commands),
                len(result.deferred_commands),
            )
        return result

    async def _process(self, record: ScheduledCommand, result: TriggerResult) -> None:
        precondition = record.delivery_precondition
        if precondition is not None and not await self._verify(record, precondition):
            now = self._clock.now()
            if not self._policy.precondition_expired(record, now):
                result.deferred_commands.append(record)
                return
            error = (
                f"Precondition {precondition.aggregate_id}#"
                f"{precondition.sequence_number} was not satisfied in time"
            )
            await self._fail(record, error, None, now, result)
            return

        try:
            await get_hook_registry().execute_all(
                f"scheduler.apply.{record.command_name}",
                {
                    "command.type": record.command_name,
                    "aggregate.type": record.aggregate_type,
                    "aggregate.id": record.aggregate_id,
                    "schedule.sequence_number": record.sequence_number,
                    "correlation_id": record.correlation_id or get_correlation_id(),
                },
                lambda: self._apply(record),
            )
        except COMMAND_FAILURES as e:
            await self._record_failure(record, e, result)
            return

        now = self._clock.now()
        if await self._store.mark_applied(
            record.aggregate_id, record.sequence_number, now
        ):
            logger.info(
                "Applied scheduled %s to %s %s (#%d)",
                record.command_name,
                record.aggregate_type,
                record.aggregate_id,
                record.sequence_number,
            )
            result.successful_commands.append(
                record.model_copy(
                    update={"applied_time": now, "attempts": record.attempts + 1}
                )
            )
        else:
            logger.warning(
                "Scheduled %s #%d for %s was resolved concurrently",
                record.command_name,
                record.sequence_number,
                record.aggregate_id,
            )

    async def _verify(
        self, record: ScheduledCommand, precondition: DeliveryPrecondition
    ) -> bool:
        verifier = self._precondition_verifier
        if verifier is None:
            repository = self._repositories.get(record.aggregate_type)
            if repository is None:
                # Let the apply step record the missing repository as a failure.
                return True
            verifier = EventStorePreconditionVerifier(repository.event_store)
        return await verifier.is_satisfied(precondition)

    def _repository_for(self, record: ScheduledCommand) -> EventSourcedRepository[Any]:
        repository = self._repositories.get(record.aggregate_type)
        if repository is None:
            raise DeserializationError(
                f"No repository is registered for aggregate type "
                f"'{record.aggregate_type}'"
            )
        return repository

    async def _apply(self, record: ScheduledCommand) -> None:
        repository = self._repository_for(record)
        command = self._commands.hydrate(record.command_name, record.command_body)
        aggregate = await repository.get_latest(record.aggregate_id)
        if aggregate is None:
            if not command.creates_aggregate:
                raise AggregateNotFoundError(record.aggregate_type, record.aggregate_id)
            aggregate = repository.create(record.aggregate_id)
        elif command.etag is not None and aggregate.has_etag(command.etag):
            # Another pass saved it but has not marked the record yet.
            logger.info(
                "Scheduled %s #%d for %s already applied (etag %s)",
                record.command_name,
                record.sequence_number,
                record.aggregate_id,
                command.etag,
            )
            return
        aggregate.apply(command)
        saved = await repository.save(aggregate)
        saved.raise_for_error()

    async def _record_failure(
        self, record: ScheduledCommand, exc: Exception, result: TriggerResult
    ) -> None:
        now = self._clock.now()
        error = str(exc) or type(exc).__name__
        attempts = record.attempts + 1
        retry = self._policy.should_retry(attempts)
        updated = await self._store.record_attempt(
            record.aggregate_id,
            record.sequence_number,
            error=error,
            next_due_time=self._policy.next_due_time(now, attempts) if retry else None,
        )
        if updated is None:
            logger.warning(
                "Scheduled %s #%d for %s was resolved concurrently",
                record.command_name,
                record.sequence_number,
                record.aggregate_id,
            )
            return
        if retry:
            logger.info(
                "Scheduled %s #%d for %s failed (attempt %d of %d): %s",
                record.command_name,
                record.sequence_number,
                record.aggregate_id,
                updated.attempts,
                self._policy.max_attempts,
                error,
            )
            result.retrying_commands.append(CommandFailure(updated, error, exc))
            return
        await self._fail(updated, error, exc, now, result)

    async def _fail(
        self,
        record: ScheduledCommand,
        error: str,
        exc: BaseException | None,
        now: datetime,
        result: TriggerResult,
    ) -> None:
        if not await self._store.mark_failed(
            record.aggregate_id, record.sequence_number, now, error
        ):
            logger.warning(
                "Scheduled %s #%d for %s was resolved concurrently",
                record.command_name,
                record.sequence_number,
                record.aggregate_id,
            )
            return
        logger.warning(
            "Scheduled %s #%d for %s permanently failed: %s",
            record.command_name,
            record.sequence_number,
            record.aggregate_id,
            error,
        )
        failed = record.model_copy(
            update={"final_attempt_time": now, "last_error": error}
        )
        result.failed_commands.append(CommandFailure(failed, error, exc))
