"""
Minimal saga runner for multi-record writes over a store with per-row atomicity.

Steps run in order. Each step's action receives the results of the steps
before it. When a critical step fails, the compensations of the steps that
already completed run in reverse order and a ``ProvisioningError`` carrying the
original error is raised. A compensation that itself fails is logged and never
replaces the original error. A non-critical step's failure is logged and the
saga carries on without its result.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Optional

import structlog

from app.core.errors import ProvisioningError

log = structlog.get_logger()

Action = Callable[[dict[str, Any]], Awaitable[Any]]
Compensation = Callable[[Any], Awaitable[Any]]


@dataclass
class SagaStep:
    name: str
    action: Action
    compensate: Optional[Compensation] = None
    critical: bool = True


class Saga:
    def __init__(self, name: str):
        self.name = name
        self._steps: list[SagaStep] = []

    def step(
        self,
        name: str,
        action: Action,
        compensate: Optional[Compensation] = None,
        *,
        critical: bool = True,
    ) -> "Saga":
        self._steps.append(SagaStep(name, action, compensate, critical))
        return self

    async def run(self) -> dict[str, Any]:
        """Run every step. Returns results keyed by step name (skipped steps are absent)."""
        results: dict[str, Any] = {}
        completed: list[SagaStep] = []

        for step in self._steps:
            try:
                results[step.name] = await step.action(results)
            except Exception as exc:
                if not step.critical:
                    log.warning(
                        "saga.step_skipped", saga=self.name, step=step.name, error=repr(exc)
                    )
                    continue
                log.error("saga.step_failed", saga=self.name, step=step.name, error=repr(exc))
                await self._compensate(completed, results)
                raise ProvisioningError(step.name, exc) from exc
            completed.append(step)

        return results

    async def _compensate(self, completed: list[SagaStep], results: dict[str, Any]) -> None:
        for step in reversed(completed):
            if step.compensate is None:
                continue
            try:
                await step.compensate(results[step.name])
            except Exception as exc:
                log.error(
                    "saga.compensation_failed",
                    saga=self.name,
                    step=step.name,
                    error=repr(exc),
                )
