"""Automation registry: definitions, aggregates and schedule state."""

from flowsmith.registry.base import AutomationRegistry
from flowsmith.registry.inmemory import InMemoryRegistry

__all__ = ["AutomationRegistry", "InMemoryRegistry"]
