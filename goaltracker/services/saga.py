from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional
import logging

logger = logging.getLogger(__name__)

Action = Callable[[], Awaitable[Any]]


@dataclass
class SagaStep:
    name: str
    action: Action
    compensate: Optional[Action] = None


@dataclass
class SagaResult:
    ok: bool
    completed: List[str] = field(default_factory=list)
    failed_step: Optional[str] = None
    error: Optional[str] = None
    compensated: List[str] = field(default_factory=list)
    compensation_errors: List[str] = field(default_factory=list)
    results: dict = field(default_factory=dict)

    @property
    def partial(self) -> bool:
        return not self.ok and bool(self.completed) and len(self.compensated) < len(self.completed)


class Saga:
    """Runs remote writes in order, undoing finished ones when a later one fails.

    Steps without a compensation are left as they are; the result records
    which steps landed so callers can surface the inconsistency.
    """

    def __init__(self, name: str):
        self.name = name
        self.steps: List[SagaStep] = []

    def step(self, name: str, action: Action, compensate: Optional[Action] = None) -> "Saga":
        self.steps.append(SagaStep(name, action, compensate))
        return self

    async def run(self) -> SagaResult:
        result = SagaResult(ok=True)
        done: List[SagaStep] = []
        for step in self.steps:
            try:
                result.results[step.name] = await step.action()
            except Exception as e:
                logger.error(f"[Saga] {self.name}: step '{step.name}' failed: {e}")
                result.ok = False
                result.failed_step = step.name
                result.error = str(e)
                break
            done.append(step)
            result.completed.append(step.name)

        if result.ok:
            return result

        for step in reversed(done):
            if step.compensate is None:
                continue
            try:
                await step.compensate()
                result.compensated.append(step.name)
            except Exception as e:
                logger.error(f"[Saga] {self.name}: compensating '{step.name}' failed: {e}")
                result.compensation_errors.append(f"{step.name}: {e}")
        if result.partial:
            logger.warning(
                f"[Saga] {self.name} left partial writes: {', '.join(result.completed)}"
            )
        return result
