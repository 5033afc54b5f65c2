from __future__ import annotations

from .guards import InMemoryRateLimiter, InMemoryTurnLock, build_guards
from .orchestrator import ChatOrchestrator

__all__ = ["ChatOrchestrator", "InMemoryRateLimiter", "InMemoryTurnLock", "build_guards"]
