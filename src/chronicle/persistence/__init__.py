"""Durable storage adapters for the event store, snapshots and scheduled commands."""
