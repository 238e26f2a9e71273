from __future__ import annotations

from ..common.event_bus import EventBus
from ..common.events import TITLES_READY, EmailSent, TitlesReady
from ..common.job_store import JobStore
from ..models import JobStatus, utcnow
from ..providers.mailer import ResendMailer
from ..report import render_report, report_subject
from .base import Stage


class EmailNotifier(Stage):
    """Final stage: mail the report and close the job.

    A rejected delivery marks the job failed without raising a failure event,
    so no notice goes out for a report that could not be sent.
    """

    name = "send_email"
    subscribes = (TITLES_READY,)
    status = JobStatus.SENDING_EMAIL
    failure_event = None

    def __init__(self, jobs: JobStore, bus: EventBus, mailer: ResendMailer) -> None:
        super().__init__(jobs, bus)
        self.mailer = mailer

    async def process(self, event: TitlesReady) -> None:
        body = render_report(event.channel_name, event.improved_titles)
        delivery_id = await self.mailer.send(event.email, report_subject(event.channel_name), body)

        await self.jobs.advance(
            event.job_id,
            JobStatus.COMPLETED,
            email_sent=True,
            email_id=delivery_id,
            completed_at=utcnow(),
        )
        await self.bus.publish(EmailSent(job_id=event.job_id, email=event.email, delivery_id=delivery_id))
        self.logger.info("Job %s report delivered (%s)", event.job_id, delivery_id)
