"""Validation outcome of a command checked against aggregate state."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ValidationResult:
    """Messages keyed by the field (or rule) that produced them.

    Commands build one fluently::

        return ValidationResult().require(
            self.amount >= 0, "amount", "You cannot make a withdrawal for a negative amount."
        )
    """

    errors: dict[str, list[str]] = field(default_factory=dict)

    @classmethod
    def success(cls) -> ValidationResult:
        return cls()

    @classmethod
    def failure(cls, errors: dict[str, list[str]]) -> ValidationResult:
        return cls({name: list(messages) for name, messages in errors.items()})

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def messages(self) -> list[str]:
        """Every message, in the order the rules were checked."""
        return [message for messages in self.errors.values() for message in messages]

    def require(self, condition: bool, name: str, message: str) -> ValidationResult:
        """Record *message* under *name* when *condition* does not hold."""
        if not condition:
            self.errors.setdefault(name, []).append(message)
        return self

    def merge(self, other: ValidationResult) -> ValidationResult:
        merged = ValidationResult.failure(self.errors)
        for name, messages in other.errors.items():
            merged.errors.setdefault(name, []).extend(messages)
        return merged

    def __bool__(self) -> bool:
        return self.is_valid
