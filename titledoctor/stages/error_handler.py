from __future__ import annotations

from typing import Optional, Union

from ..common.event_bus import EventBus
from ..common.events import FAILURE_TOPICS, ChannelFailed, ErrorNotified, VideosFailed
from ..common.job_store import JobStore
from ..providers.mailer import ResendMailer
from ..report import FAILURE_SUBJECT, UNKNOWN_ERROR, render_failure_notice
from .base import Stage


class ErrorNotifier(Stage):
    """Best-effort failure notice to the requestor.

    Never changes job status and never raises; the failing stage has already
    marked the job failed.
    """

    name = "error_handler"
    subscribes = FAILURE_TOPICS

    def __init__(self, jobs: JobStore, bus: EventBus, mailer: Optional[ResendMailer]) -> None:
        super().__init__(jobs, bus)
        self.mailer = mailer

    async def handle(self, event: Union[ChannelFailed, VideosFailed]) -> None:
        error = event.error or UNKNOWN_ERROR
        self.logger.info("Notifying %s about job %s: %s", event.email, event.job_id, error)
        if self.mailer is None:
            self.logger.warning("No email provider configured; skipping failure notice for job %s", event.job_id)
            return
        if await self._already_notified(event.job_id):
            self.logger.info("Failure notice for job %s already sent; skipping", event.job_id)
            return

        try:
            delivery_id = await self.mailer.send(event.email, FAILURE_SUBJECT, render_failure_notice(error))
        except Exception as exc:
            self.logger.error("Failure notice for job %s not delivered: %s", event.job_id, exc)
            return

        try:
            await self.jobs.record_notice(event.job_id, delivery_id)
        except Exception as exc:
            self.logger.warning("Could not record failure notice on job %s: %s", event.job_id, exc)

        try:
            await self.bus.publish(ErrorNotified(job_id=event.job_id, email=event.email, delivery_id=delivery_id))
        except Exception as exc:
            self.logger.error("Could not publish error-notified for job %s: %s", event.job_id, exc)
            return
        self.logger.info("Failure notice for job %s sent (%s)", event.job_id, delivery_id)

    async def _already_notified(self, job_id: str) -> bool:
        try:
            job = await self.jobs.get(job_id)
        except Exception as exc:
            self.logger.warning("Could not read job %s before notifying: %s", job_id, exc)
            return False
        return job is not None and job.error_notified
