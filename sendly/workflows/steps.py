"""Per-run step checkpoints so a retried run resumes after its last completed step."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sendly.db.models.newsletter_run import WorkflowStep

logger = logging.getLogger(__name__)

_MISSING = object()


class StepStore(ABC):
    """Persistence for ``(run_id, step_name) -> result`` checkpoints."""

    @abstractmethod
    async def load(self, run_id: str, step_name: str) -> Any:
        """Return the stored result, or ``_MISSING`` when the step never completed."""
        raise NotImplementedError

    @abstractmethod
    async def save(self, run_id: str, step_name: str, result: Any) -> None:
        raise NotImplementedError


class InMemoryStepStore(StepStore):
    def __init__(self) -> None:
        self._results: dict[tuple[str, str], Any] = {}

    async def load(self, run_id: str, step_name: str) -> Any:
        return self._results.get((run_id, step_name), _MISSING)

    async def save(self, run_id: str, step_name: str, result: Any) -> None:
        self._results.setdefault((run_id, step_name), result)


class SqlAlchemyStepStore(StepStore):
    """Checkpoints in ``workflow_steps``; each save commits on its own."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def load(self, run_id: str, step_name: str) -> Any:
        async with self._session_maker() as session:
            result = await session.execute(
                select(WorkflowStep).where(
                    WorkflowStep.run_id == run_id, WorkflowStep.step_name == step_name
                )
            )
            step = result.scalar_one_or_none()
        if step is None:
            return _MISSING
        return step.result

    async def save(self, run_id: str, step_name: str, result: Any) -> None:
        async with self._session_maker() as session:
            session.add(WorkflowStep(run_id=run_id, step_name=step_name, result=result))
            try:
                await session.commit()
            except IntegrityError:
                # A concurrent attempt checkpointed first; its result wins.
                await session.rollback()
                logger.warning(
                    "Step already checkpointed",
                    extra={"run_id": run_id, "step": step_name},
                )


class StepRunner:
    """Runs named steps of one run, memoizing each completed step's result.

    Results must be JSON-serialisable. A step that raises stores nothing and is
    re-executed on the next attempt.
    """

    def __init__(self, run_id: str, store: StepStore) -> None:
        self.run_id = run_id
        self._store = store
        self.executed: list[str] = []

    async def run(self, name: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        stored = await self._store.load(self.run_id, name)
        if stored is not _MISSING:
            logger.info("Step replayed", extra={"run_id": self.run_id, "step": name})
            return stored

        result = await fn()
        await self._store.save(self.run_id, name, result)
        self.executed.append(name)
        logger.info("Step completed", extra={"run_id": self.run_id, "step": name})
        return result
