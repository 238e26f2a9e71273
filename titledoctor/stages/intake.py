from __future__ import annotations

import logging
import re
from typing import Any

from ..common.event_bus import EventBus
from ..common.events import Submitted
from ..common.job_store import JobStore
from ..models import Job

logger = logging.getLogger("titledoctor.stages.intake")

# local-part@domain.tld, no whitespace anywhere
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

ACCEPTED_MESSAGE = (
    "Your request has been queued. You will get an email soon with improved "
    "suggestions for your youtube videos"
)


class SubmissionError(ValueError):
    """Rejected submission; the message is safe to show the client."""


def validate_submission(channel: Any, email: Any) -> tuple[str, str]:
    if not isinstance(channel, str) or not isinstance(email, str) or not channel.strip() or not email:
        raise SubmissionError("Missing required fields: channel and email")
    if not EMAIL_PATTERN.match(email):
        raise SubmissionError("Invalid email format")
    return channel.strip(), email


class Intake:
    """Creates queued jobs and announces them on the ``submitted`` topic."""

    name = "intake"

    def __init__(self, jobs: JobStore, bus: EventBus) -> None:
        self.jobs = jobs
        self.bus = bus

    async def submit(self, channel: Any, email: Any) -> Job:
        channel, email = validate_submission(channel, email)
        job = await self.jobs.create(Job.create(channel=channel, email=email))
        await self.bus.publish(Submitted(job_id=job.job_id, channel=job.channel, email=job.email))
        logger.info("Queued job %s for %s", job.job_id, channel)
        return job
