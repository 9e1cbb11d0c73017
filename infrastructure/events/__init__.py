"""Post-commit event delivery."""
from .inmemory import InMemoryEventBus

__all__ = ["InMemoryEventBus"]
