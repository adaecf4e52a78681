"""Execution Budget — iteration cap and wall-clock limit for one agent invocation.

Invariants:
    - Only the AgentRunner mutates a budget (start, record_iteration)
    - Time is measured on a monotonic clock (immune to wall-clock jumps)
    - time_exceeded() is strict: elapsed > max_elapsed_ms
    - Checked cooperatively once per iteration, never mid-stream

Design Decisions:
    - Injectable clock: tests drive elapsed time without sleeping
    - Presets mirror the two runner flavours: short interactive chat and
      effectively-unbounded autonomous runs guarded only by the time limit
"""

import time
from dataclasses import dataclass, field
from typing import Callable

from app.core.domain_types import RunMode

INTERACTIVE_MAX_ITERATIONS = 5
INTERACTIVE_MAX_ELAPSED_MS = 10 * 60 * 1000
AUTONOMOUS_MAX_ITERATIONS = 1000
AUTONOMOUS_MAX_ELAPSED_MS = 30 * 60 * 1000


@dataclass
class ExecutionBudget:
    """Per-invocation limits. started_at is in clock seconds."""
    max_iterations: int
    max_elapsed_ms: int
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    started_at: float = 0.0
    iterations_used: int = 0

    def start(self) -> None:
        self.started_at = self.clock()
        self.iterations_used = 0

    def elapsed_ms(self) -> int:
        return int((self.clock() - self.started_at) * 1000)

    def time_exceeded(self) -> bool:
        return self.elapsed_ms() > self.max_elapsed_ms

    def iterations_exhausted(self) -> bool:
        return self.iterations_used >= self.max_iterations

    def record_iteration(self) -> int:
        self.iterations_used += 1
        return self.iterations_used


def budget_for_mode(
    mode: RunMode,
    *,
    interactive: tuple[int, int] = (
        INTERACTIVE_MAX_ITERATIONS, INTERACTIVE_MAX_ELAPSED_MS,
    ),
    autonomous: tuple[int, int] = (
        AUTONOMOUS_MAX_ITERATIONS, AUTONOMOUS_MAX_ELAPSED_MS,
    ),
    clock: Callable[[], float] = time.monotonic,
) -> ExecutionBudget:
    """Build a fresh (unstarted) budget from (max_iterations, max_elapsed_ms) presets."""
    iterations, elapsed_ms = (
        autonomous if mode == RunMode.AUTONOMOUS else interactive
    )
    return ExecutionBudget(
        max_iterations=iterations, max_elapsed_ms=elapsed_ms, clock=clock,
    )
