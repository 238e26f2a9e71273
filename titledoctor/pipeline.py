"""Builds the bus, job store, provider clients and stages from one Settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from .common.event_bus import EventBus
from .common.job_store import JobStore, StateStore, build_state_store
from .config import Settings
from .models import Job
from .providers.gemini import GeminiClient
from .providers.mailer import ResendMailer
from .providers.youtube_api import YouTubeAPIClient
from .stages.base import Stage
from .stages.error_handler import ErrorNotifier
from .stages.fetch_videos import VideoFetcher
from .stages.generate_titles import TitleGenerator
from .stages.intake import Intake
from .stages.resolve_channel import ChannelResolver
from .stages.send_email import EmailNotifier

logger = logging.getLogger("titledoctor.pipeline")


@dataclass
class Pipeline:
    settings: Settings
    jobs: JobStore
    bus: EventBus
    intake: Intake
    stages: List[Stage] = field(default_factory=list)
    providers: List[Any] = field(default_factory=list)

    async def start(self) -> None:
        await self.jobs.state.start()
        await self.bus.start()
        logger.info(
            "Pipeline started: bus=%s store=%s stages=%s",
            self.bus.mode,
            self.jobs.backend,
            ", ".join(stage.name for stage in self.stages),
        )

    async def stop(self) -> None:
        await self.bus.stop()
        for provider in self.providers:
            close = getattr(provider, "aclose", None)
            if close is not None:
                await close()
        await self.jobs.state.stop()
        logger.info("Pipeline stopped")

    async def submit(self, channel: Any, email: Any) -> Job:
        return await self.intake.submit(channel, email)

    async def join(self) -> None:
        await self.bus.join()


def build_pipeline(
    settings: Settings,
    *,
    youtube: Optional[YouTubeAPIClient] = None,
    gemini: Optional[GeminiClient] = None,
    mailer: Optional[ResendMailer] = None,
    state: Optional[StateStore] = None,
    bus: Optional[EventBus] = None,
) -> Pipeline:
    """Wire every stage; injected clients and backends replace the configured ones."""
    http = {"timeout": settings.http_timeout, "attempts": settings.upstream_attempts}
    owned: List[Any] = []
    if youtube is None:
        youtube = YouTubeAPIClient(settings.youtube_api_key, **http)
        owned.append(youtube)
    if gemini is None:
        gemini = GeminiClient(settings.gemini_api_key, model=settings.gemini_model, **http)
        owned.append(gemini)
    if mailer is None:
        mailer = ResendMailer(settings.resend_api_key, settings.mail_from, **http)
        owned.append(mailer)

    jobs = JobStore(state if state is not None else build_state_store(settings))
    bus = bus if bus is not None else EventBus(nats_url=settings.nats_url or None)

    stages: List[Stage] = [
        ChannelResolver(jobs, bus, youtube),
        VideoFetcher(
            jobs,
            bus,
            youtube,
            search_results=settings.search_results,
            max_videos=settings.max_videos,
        ),
        TitleGenerator(jobs, bus, gemini),
        EmailNotifier(jobs, bus, mailer),
        ErrorNotifier(jobs, bus, mailer),
    ]
    for stage in stages:
        stage.register()

    return Pipeline(
        settings=settings,
        jobs=jobs,
        bus=bus,
        intake=Intake(jobs, bus),
        stages=stages,
        providers=owned,
    )
