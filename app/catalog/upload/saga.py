from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import structlog

logger = structlog.get_logger(__name__)

Compensation = Callable[[], Awaitable[None]]


@dataclass(slots=True)
class CompensationLog:
    """Ordered undo steps for a multi-step upload, unwound newest first."""

    steps: list[tuple[str, Compensation]] = field(default_factory=list)

    def record(self, name: str, compensate: Compensation) -> None:
        self.steps.append((name, compensate))

    def clear(self) -> None:
        self.steps.clear()

    async def unwind(self) -> list[str]:
        failed: list[str] = []
        while self.steps:
            name, compensate = self.steps.pop()
            try:
                await compensate()
            except Exception as exc:
                failed.append(name)
                logger.warning(
                    "catalog_compensation_failed",
                    step=name,
                    error_type=type(exc).__name__,
                )
        return failed
