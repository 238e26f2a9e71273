from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, List

from ..common.event_bus import EventBus
from ..common.events import CHANNEL_RESOLVED, ChannelResolved, VideosFailed, VideosFetched
from ..common.job_store import JobStore
from ..models import JobStatus, Video
from ..providers.youtube_api import SearchVideo, YouTubeAPIClient
from .base import Stage, StageFailure

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def select_videos(found: Iterable[SearchVideo], channel_id: str, limit: int) -> List[Video]:
    """Newest first, only the resolved channel's uploads, at most ``limit``."""
    own = [item for item in found if item.channel_id == channel_id]
    own.sort(key=lambda item: item.published_at or _EPOCH, reverse=True)
    return [
        Video(
            video_id=item.video_id,
            title=item.title,
            url=Video.watch_url(item.video_id),
            published_at=item.published_at,
            thumbnail=item.thumbnail,
        )
        for item in own[:limit]
    ]


class VideoFetcher(Stage):
    name = "fetch_videos"
    subscribes = (CHANNEL_RESOLVED,)
    status = JobStatus.FETCHING_VIDEOS
    failure_event = VideosFailed
    failure_notice = "Failed to fetch videos. Please try again later"

    def __init__(
        self,
        jobs: JobStore,
        bus: EventBus,
        youtube: YouTubeAPIClient,
        *,
        search_results: int = 10,
        max_videos: int = 5,
    ) -> None:
        super().__init__(jobs, bus)
        self.youtube = youtube
        self.search_results = search_results
        self.max_videos = max_videos

    async def process(self, event: ChannelResolved) -> None:
        self.logger.info("Fetching videos for job %s (channel %s)", event.job_id, event.channel_id)
        found = await self.youtube.recent_videos(event.channel_id, max_results=self.search_results)
        if not found:
            raise StageFailure("No videos found", "No videos found for this channel")

        videos = select_videos(found, event.channel_id, self.max_videos)
        if not videos:
            raise StageFailure("No videos found", "No recent videos found for this channel")

        await self.jobs.advance(event.job_id, JobStatus.VIDEOS_FETCHED, videos=videos)
        await self.bus.publish(
            VideosFetched(
                job_id=event.job_id,
                channel_name=event.channel_name,
                email=event.email,
                videos=videos,
            )
        )
        self.logger.info("Job %s fetched %d videos", event.job_id, len(videos))
