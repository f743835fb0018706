"""Aggregates, events and commands shared by the test suite."""

from __future__ import annotations

from decimal import Decimal

from pydantic import Field

from chronicle.domain import (
    AggregateCommand,
    CommandRegistry,
    DomainEvent,
    EventSourcedAggregate,
    ValidationResult,
)
from chronicle.exceptions import DomainError

# ── Order ────────────────────────────────────────────────────────────


class CustomerInfoChanged(DomainEvent):
    customer_name: str


class ItemAdded(DomainEvent):
    product: str
    quantity: int = 1


class OrderCancelled(DomainEvent):
    reason: str = ""


class Order(EventSourcedAggregate):
    customer_name: str = ""
    items: list[str] = Field(default_factory=list)
    cancelled: bool = False

    def change_customer_info(self, customer_name: str) -> None:
        self.record(CustomerInfoChanged(customer_name=customer_name))

    def add_item(self, product: str, quantity: int = 1) -> None:
        if self.cancelled:
            raise DomainError("Cannot add items to a cancelled order.")
        self.record(ItemAdded(product=product, quantity=quantity))

    def cancel(self, reason: str = "") -> None:
        if self.cancelled:
            raise DomainError("The order is already cancelled.")
        self.record(OrderCancelled(reason=reason))


@Order.applies(CustomerInfoChanged)
def _customer_info_changed(order: Order, event: CustomerInfoChanged) -> None:
    order.customer_name = event.customer_name


@Order.applies(ItemAdded)
def _item_added(order: Order, event: ItemAdded) -> None:
    order.items.extend([event.product] * event.quantity)


@Order.applies(OrderCancelled)
def _order_cancelled(order: Order, event: OrderCancelled) -> None:
    order.cancelled = True


class CreateOrder(AggregateCommand):
    creates_aggregate = True

    customer_name: str

    def enact(self, aggregate: Order) -> None:
        aggregate.change_customer_info(self.customer_name)


class ChangeCustomerInfo(AggregateCommand):
    customer_name: str

    def enact(self, aggregate: Order) -> None:
        aggregate.change_customer_info(self.customer_name)


class AddItem(AggregateCommand):
    product: str
    quantity: int = 1

    def validate_against(self, aggregate: Order) -> ValidationResult:
        return ValidationResult().require(
            self.quantity > 0, "quantity", "Quantity must be positive."
        )

    def enact(self, aggregate: Order) -> None:
        aggregate.add_item(self.product, self.quantity)


class CancelOrder(AggregateCommand):
    reason: str = ""

    def enact(self, aggregate: Order) -> None:
        aggregate.cancel(self.reason)


# ── Checking account ─────────────────────────────────────────────────


class FundsDeposited(DomainEvent):
    amount: Decimal


class FundsWithdrawn(DomainEvent):
    amount: Decimal


class CheckingAccount(EventSourcedAggregate):
    stream_name = "checking-account"

    balance: Decimal = Decimal("0")


@CheckingAccount.applies(FundsDeposited)
def _funds_deposited(account: CheckingAccount, event: FundsDeposited) -> None:
    account.balance += event.amount


@CheckingAccount.applies(FundsWithdrawn)
def _funds_withdrawn(account: CheckingAccount, event: FundsWithdrawn) -> None:
    account.balance -= event.amount


class MakeDeposit(AggregateCommand):
    creates_aggregate = True

    amount: Decimal

    def enact(self, aggregate: CheckingAccount) -> None:
        aggregate.record(FundsDeposited(amount=self.amount))


class MakeWithdrawal(AggregateCommand):
    amount: Decimal

    def validate_against(self, aggregate: CheckingAccount) -> ValidationResult:
        return ValidationResult().require(
            self.amount >= 0,
            "amount",
            "You cannot make a withdrawal for a negative amount.",
        )

    def enact(self, aggregate: CheckingAccount) -> None:
        if aggregate.balance < self.amount:
            raise DomainError("Insufficient funds.")
        aggregate.record(FundsWithdrawn(amount=self.amount))


def command_registry() -> CommandRegistry:
    registry = CommandRegistry()
    for command in (
        CreateOrder,
        ChangeCustomerInfo,
        AddItem,
        CancelOrder,
        MakeDeposit,
        MakeWithdrawal,
    ):
        registry.register(command)
    return registry
