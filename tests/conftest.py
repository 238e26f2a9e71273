from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

from titledoctor.common.event_bus import EventBus
from titledoctor.common.job_store import JobStore, MemoryStateStore
from titledoctor.config import Settings
from titledoctor.providers.gemini import GenerationError
from titledoctor.providers.mailer import DeliveryError
from titledoctor.providers.youtube_api import ChannelRef, SearchVideo


class FakeYouTube:
    """Stands in for YouTubeAPIClient; channels keyed by the exact reference."""

    def __init__(
        self,
        channels: Optional[Dict[str, ChannelRef]] = None,
        videos: Optional[Dict[str, List[SearchVideo]]] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.channels = channels or {}
        self.videos = videos or {}
        self.error = error
        self.resolved: List[str] = []
        self.fetched: List[str] = []

    async def resolve_channel(self, reference: str) -> Optional[ChannelRef]:
        self.resolved.append(reference)
        if self.error is not None:
            raise self.error
        return self.channels.get(reference)

    async def recent_videos(self, channel_id: str, *, max_results: int = 10) -> List[SearchVideo]:
        self.fetched.append(channel_id)
        if self.error is not None:
            raise self.error
        return list(self.videos.get(channel_id, []))[:max_results]


class FakeGemini:
    def __init__(self, reply: Optional[str] = None, error: Optional[Exception] = None) -> None:
        self.reply = reply
        self.error = error
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if not self.reply:
            raise GenerationError("Empty response from Gemini")
        return self.reply


class FakeMailer:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: List[Dict[str, str]] = []

    async def send(self, to: str, subject: str, text: str) -> str:
        if self.fail:
            raise DeliveryError("Email send failed")
        self.sent.append({"to": to, "subject": subject, "text": text})
        return f"email_{len(self.sent)}"


def search_video(idx: int, channel_id: str = "UC123", title: Optional[str] = None) -> SearchVideo:
    return SearchVideo(
        video_id=f"vid{idx}",
        title=title or f"Video number {idx}",
        channel_id=channel_id,
        published_at=datetime(2024, 5, 1, tzinfo=timezone.utc) + timedelta(days=idx),
        thumbnail=f"https://i.ytimg.com/vi/vid{idx}/default.jpg",
    )


def gemini_reply(count: int, fenced: bool = True) -> str:
    results = [
        {
            "viral": f"I Tried This {idx} Times And It Changed Everything!",
            "viralReason": "Curiosity and a number",
            "seo": f"How To Edit Videos Faster - Tutorial Part {idx}",
            "seoReason": "Search-friendly keywords",
            "professional": "A Practical Guide to Faster Video Editing Workflows for Busy Creators",
            "professionalReason": "Clean and brand-safe",
            "thumbnailTexts": ["EDIT FASTER", "10X SPEED", "STOP WASTING TIME"],
        }
        for idx in range(1, count + 1)
    ]
    body = json.dumps({"results": results}, indent=2)
    return f"```json\n{body}\n```" if fenced else body


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        youtube_api_key="yt-key",
        gemini_api_key="gemini-key",
        resend_api_key="resend-key",
        state_backend="memory",
        public_dir=tmp_path,
    )


@pytest.fixture
def jobs() -> JobStore:
    return JobStore(MemoryStateStore())


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def published(bus: EventBus) -> List[Any]:
    """Every event the bus accepts, in publish order."""
    seen: List[Any] = []
    original = bus.publish

    async def recording_publish(event):
        seen.append(event)
        return await original(event)

    bus.publish = recording_publish  # type: ignore[method-assign]
    return seen


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def fakes() -> SimpleNamespace:
    return SimpleNamespace(
        youtube=FakeYouTube,
        gemini=FakeGemini,
        mailer=FakeMailer,
        search_video=search_video,
        gemini_reply=gemini_reply,
        channel=ChannelRef,
    )
