from __future__ import annotations

from ..common.event_bus import EventBus
from ..common.events import SUBMITTED, ChannelFailed, ChannelResolved, Submitted
from ..common.job_store import JobStore
from ..models import JobStatus
from ..providers.youtube_api import YouTubeAPIClient
from .base import Stage, StageFailure


class ChannelResolver(Stage):
    """``@handle`` or free-text channel reference -> canonical channel id."""

    name = "resolve_channel"
    subscribes = (SUBMITTED,)
    status = JobStatus.RESOLVING_CHANNEL
    failure_event = ChannelFailed
    failure_notice = "Failed to resolve channel. Please try again"

    def __init__(self, jobs: JobStore, bus: EventBus, youtube: YouTubeAPIClient) -> None:
        super().__init__(jobs, bus)
        self.youtube = youtube

    async def process(self, event: Submitted) -> None:
        self.logger.info("Resolving channel %r for job %s", event.channel, event.job_id)
        channel = await self.youtube.resolve_channel(event.channel)
        if channel is None:
            raise StageFailure("Channel not found")

        # Status stays resolving_channel; the fetcher advances it.
        await self.jobs.update(event.job_id, channel_id=channel.channel_id, channel_name=channel.title)
        await self.bus.publish(
            ChannelResolved(
                job_id=event.job_id,
                channel_id=channel.channel_id,
                channel_name=channel.title,
                email=event.email,
            )
        )
        self.logger.info("Job %s resolved %r to %s", event.job_id, event.channel, channel.channel_id)
