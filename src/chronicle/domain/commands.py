"""AggregateCommand base class and the registry used to hydrate scheduled commands."""

from __future__ import annotations

import uuid
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..correlation import get_correlation_id
from ..exceptions import DeserializationError, UnknownCommandError
from .validation import ValidationResult


class AggregateCommand(BaseModel):
    """
    Base for commands applied to a single event-sourced aggregate.

    A command validates itself against current aggregate state in
    :meth:`validate_against` and, once accepted, calls the aggregate's
    event-producing methods in :meth:`enact`.

    Set ``creates_aggregate = True`` on commands that may be applied to an
    id with no stream yet (constructor commands); the trigger engine then
    builds a fresh aggregate instead of failing with
    :class:`~chronicle.exceptions.AggregateNotFoundError`.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    type_name: ClassVar[str | None] = None
    creates_aggregate: ClassVar[bool] = False

    command_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    actor: str | None = None
    etag: str | None = None
    correlation_id: str | None = Field(default_factory=get_correlation_id)

    @classmethod
    def command_name(cls) -> str:
        return cls.type_name or cls.__name__

    def validate_against(self, aggregate: Any) -> ValidationResult:
        """Check the command against *aggregate* state. Override to add rules."""
        return ValidationResult.success()

    def enact(self, aggregate: Any) -> None:
        """Record the events this command produces on *aggregate*."""
        raise NotImplementedError(
            f"{type(self).__name__} must implement enact(aggregate)"
        )

    def body(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class CommandRegistry:
    """Registry for ``command_name: str`` → command class.

    Scheduled commands are stored by name and JSON body; the trigger engine
    uses this registry to turn them back into typed commands.
    """

    def __init__(self) -> None:
        self._registry: dict[str, type[AggregateCommand]] = {}

    def register(
        self, command_class: type[AggregateCommand], *, name: str | None = None
    ) -> type[AggregateCommand]:
        self._registry[name or command_class.command_name()] = command_class
        return command_class

    def get(self, command_name: str) -> type[AggregateCommand] | None:
        return self._registry.get(command_name)

    def has(self, command_name: str) -> bool:
        return command_name in self._registry

    def hydrate(self, command_name: str, body: dict[str, Any]) -> AggregateCommand:
        """Rebuild a command from its stored name and body.

        Raises:
            UnknownCommandError: *command_name* is not registered.
            DeserializationError: *body* does not validate.
        """
        command_class = self.get(command_name)
        if command_class is None:
            raise UnknownCommandError(command_name)
        try:
            return command_class.model_validate(body)
        except ValidationError as e:
            raise DeserializationError(
                f"Cannot hydrate command '{command_name}': {e}"
            ) from e

    def list_registered(self) -> list[str]:
        return list(self._registry.keys())

