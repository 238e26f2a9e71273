from __future__ import annotations

import logging
from typing import Any, ClassVar, Optional, Tuple, Type

from ..common.event_bus import EventBus
from ..common.job_store import JobStateError, JobStore
from ..models import Job, JobStatus


class StageFailure(Exception):
    """A handled upstream outcome that ends the job.

    ``job_error`` is stored on the job record; ``notice`` travels on the
    failure event to the requestor.
    """

    def __init__(self, job_error: str, notice: Optional[str] = None) -> None:
        super().__init__(job_error)
        self.job_error = job_error
        self.notice = notice or job_error


class Stage:
    """Event handler that owns one step of a job's lifeline.

    Subclasses name the status they move the job into (``status``), the
    failure event they raise (``failure_event``, or None for no event) and
    implement ``process``.
    """

    name: ClassVar[str] = "stage"
    subscribes: ClassVar[Tuple[str, ...]] = ()
    status: ClassVar[Optional[JobStatus]] = None
    failure_event: ClassVar[Optional[Type[Any]]] = None
    # Fixed text sent to the requestor for unexpected errors; None forwards the message.
    failure_notice: ClassVar[Optional[str]] = None

    def __init__(self, jobs: JobStore, bus: EventBus) -> None:
        self.jobs = jobs
        self.bus = bus
        self.logger = logging.getLogger(f"titledoctor.stages.{self.name}")

    def register(self) -> None:
        for topic in self.subscribes:
            self.bus.subscribe(topic, self)

    async def __call__(self, event: Any) -> None:
        await self.handle(event)

    async def handle(self, event: Any) -> None:
        try:
            if await self.begin(event.job_id) is None:
                return
            await self.process(event)
        except StageFailure as exc:
            self.logger.warning("Job %s: %s", event.job_id, exc.job_error)
            await self.fail(event, exc.job_error, exc.notice)
        except JobStateError as exc:
            self.logger.info("Job %s changed underneath %s; dropping: %s", event.job_id, self.name, exc)
        except Exception as exc:
            self.logger.error("Job %s failed in %s: %s", event.job_id, self.name, exc)
            await self.fail(event, str(exc), self.failure_notice or str(exc))

    async def process(self, event: Any) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def begin(self, job_id: str) -> Optional[Job]:
        """Move the job into this stage's status; None means a stale delivery."""
        try:
            return await self.jobs.advance(job_id, self.status)
        except JobStateError as exc:
            self.logger.info("Skipping %s for job %s: %s", self.name, job_id, exc)
            return None

    async def fail(self, event: Any, job_error: str, notice: str) -> None:
        try:
            await self.jobs.fail(event.job_id, job_error)
        except JobStateError as exc:
            self.logger.info("Job %s not marked failed: %s", event.job_id, exc)
            return
        if self.failure_event is not None:
            await self.bus.publish(self.failure_event(job_id=event.job_id, email=event.email, error=notice))

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"{type(self).__name__}(subscribes={self.subscribes!r})"
