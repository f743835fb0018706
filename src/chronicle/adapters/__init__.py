"""Adapters for chronicle ports."""
