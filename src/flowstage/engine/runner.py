# src/flowstage/engine/runner.py
"""Stage runner: a minimal host that triggers a stage until its input drains.

Invocations are independent units of work. With ``max_workers > 1`` they
run concurrently on a thread pool; each gets its own session, and the
repository's lock keeps acquisitions isolated.

A fatal invocation error stops the run: the failing session has already
rolled back and returned its input, and the error is re-raised once every
in-flight invocation has finished.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from threading import Lock

from flowstage.core.logging import get_logger
from flowstage.core.repository import FlowRepository
from flowstage.stages.base import BaseStage, ProcessContext, StageInitializationContext

logger = get_logger(__name__)


@dataclass(frozen=True)
class RunSummary:
    """What a run did.

    Attributes:
        invocations: Number of on_trigger calls that returned normally
        routed: Records per relationship name after the run
        pending: Records still on the input queue
    """

    invocations: int
    routed: dict[str, int]
    pending: int


class StageRunner:
    """Drive a stage against a repository.

    Usage:
        runner = StageRunner(SampleStage(), repository, max_workers=4)
        summary = runner.run()
    """

    def __init__(
        self,
        stage: BaseStage,
        repository: FlowRepository,
        *,
        max_workers: int = 1,
        context: ProcessContext | None = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.stage = stage
        self.repository = repository
        self.max_workers = max_workers
        self.context = context if context is not None else ProcessContext(properties=dict(stage.config))
        self._session_factory = stage.session_factory(repository)
        self._count_lock = Lock()
        self._invocations = 0

        stage.initialize(
            StageInitializationContext(
                identifier=stage.identifier,
                logger=get_logger(f"flowstage.stage.{stage.identifier}").bind(stage=stage.identifier),
            )
        )

    def trigger(self) -> None:
        """Run exactly one invocation.

        Raises:
            Exception: Whatever fatal error the stage propagated
        """
        self.stage.on_trigger(self.context, self._session_factory)
        with self._count_lock:
            self._invocations += 1

    def run(self, max_invocations: int | None = None) -> RunSummary:
        """Trigger until the input queue is empty or ``max_invocations`` is reached.

        Raises:
            Exception: The first fatal invocation error
        """
        budget = max_invocations if max_invocations is not None else -1
        start = self._invocations
        if self.max_workers == 1:
            while budget != 0 and self.repository.pending_count:
                self.trigger()
                budget -= 1
        else:
            self._run_pooled(budget)

        summary = RunSummary(
            invocations=self._invocations - start,
            routed={name: len(self.repository.queued(name)) for name in self.repository.relationship_names()},
            pending=self.repository.pending_count,
        )
        logger.info(
            "Stage run finished",
            stage=self.stage.identifier,
            invocations=summary.invocations,
            routed=summary.routed,
            pending=summary.pending,
        )
        return summary

    def _run_pooled(self, budget: int) -> None:
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="flowstage") as pool:
            while budget != 0 and self.repository.pending_count:
                batch = self.repository.pending_count if budget < 0 else min(budget, self.repository.pending_count)
                futures: list[Future[None]] = [pool.submit(self.trigger) for _ in range(batch)]
                # Every invocation finishes so its session closes cleanly
                wait(futures)
                for future in futures:
                    error = future.exception()
                    if error is not None:
                        raise error
                if budget > 0:
                    budget -= batch
