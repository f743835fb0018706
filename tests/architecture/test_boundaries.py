from pytest_archon import archrule


def test_domain_isolation() -> None:
    """
    Domain layer should be self-contained.
    It must not import from adapters, persistence, messaging or the services built on it.
    """
    (
        archrule("domain_isolation")
        .match("chronicle.domain*")
        .should_not_import("chronicle.adapters*")
        .should_not_import("chronicle.persistence*")
        .should_not_import("chronicle.messaging*")
        .should_not_import("chronicle.scheduling*")
        .should_not_import("chronicle.event_sourcing*")
        .check("chronicle")
    )


def test_ports_layering() -> None:
    """
    Ports (interfaces) should not depend on Adapters (implementations).
    """
    (
        archrule("ports_layering")
        .match("chronicle.ports*")
        .should_not_import("chronicle.adapters*")
        .should_not_import("chronicle.persistence*")
        .should_not_import("chronicle.messaging*")
        .should_not_import("chronicle.scheduling*")
        .should_not_import("chronicle.event_sourcing*")
        .check("chronicle")
    )


def test_event_sourcing_independence() -> None:
    """
    The repository works against ports only; storage and delivery are plugged in.
    """
    (
        archrule("event_sourcing_independence")
        .match("chronicle.event_sourcing*")
        .should_not_import("chronicle.adapters*")
        .should_not_import("chronicle.persistence*")
        .should_not_import("chronicle.messaging*")
        .should_not_import("chronicle.scheduling*")
        .check("chronicle")
    )


def test_scheduling_independence() -> None:
    """
    Scheduling must not know which store or queue carries its records.
    """
    (
        archrule("scheduling_independence")
        .match("chronicle.scheduling*")
        .should_not_import("chronicle.adapters*")
        .should_not_import("chronicle.persistence*")
        .should_not_import("chronicle.messaging*")
        .check("chronicle")
    )


def test_persistence_layering() -> None:
    """
    Persistence implements ports; it never reaches into services or messaging.
    """
    (
        archrule("persistence_layering")
        .match("chronicle.persistence*")
        .should_not_import("chronicle.messaging*")
        .should_not_import("chronicle.event_sourcing*")
        .should_not_import("chronicle.scheduling*")
        .check("chronicle")
    )


def test_messaging_no_persistence() -> None:
    """Messaging must not import persistence or the in-memory adapters."""
    (
        archrule("messaging_independence")
        .match("chronicle.messaging*")
        .should_not_import("chronicle.persistence*")
        .should_not_import("chronicle.adapters*")
        .check("chronicle")
    )
