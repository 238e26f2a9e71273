"""Data model for title-improvement jobs."""

from __future__ import annotations

import secrets
import string
import time
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    QUEUED = "queued"
    RESOLVING_CHANNEL = "resolving_channel"
    FETCHING_VIDEOS = "fetching_videos"
    VIDEOS_FETCHED = "videos_fetched"
    GENERATING_TITLES = "generating_titles"
    TITLES_READY = "titles_ready"
    SENDING_EMAIL = "sending_email"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


# Forward path of the pipeline; FAILED sits outside it and is reachable from anywhere.
STATUS_ORDER: List[JobStatus] = [
    JobStatus.QUEUED,
    JobStatus.RESOLVING_CHANNEL,
    JobStatus.FETCHING_VIDEOS,
    JobStatus.VIDEOS_FETCHED,
    JobStatus.GENERATING_TITLES,
    JobStatus.TITLES_READY,
    JobStatus.SENDING_EMAIL,
    JobStatus.COMPLETED,
]
TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

# Fields that may still change once a job is terminal.
BOOKKEEPING_FIELDS = frozenset({"error_notified", "error_notice_id", "updated_at"})

VARIANT_STYLES = ("viral", "seo", "professional")

_ID_ALPHABET = string.ascii_lowercase + string.digits


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_job_id() -> str:
    """Time-prefixed id with a random base36 suffix: ``job_<ms>_<9 chars>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"job_{int(time.time() * 1000)}_{suffix}"


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Video(_Record):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    video_id: str = Field(alias="videoId")
    title: str
    url: str
    published_at: Optional[datetime] = Field(default=None, alias="publishedAt")
    thumbnail: Optional[str] = None

    @classmethod
    def watch_url(cls, video_id: str) -> str:
        return f"https://www.youtube.com/watch?v={video_id}"


class TitleVariant(_Record):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    style: str
    title: str
    reason: str = ""
    score: int = Field(ge=50, le=100)


class ImprovedTitle(_Record):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    original: str
    variants: List[TitleVariant]
    recommended: str
    thumbnail_texts: List[str] = Field(default_factory=list, alias="thumbnailTexts")
    url: str

    def variant(self, style: str) -> Optional[TitleVariant]:
        return next((v for v in self.variants if v.style == style), None)

    @property
    def primary(self) -> TitleVariant:
        chosen = self.variant(self.recommended)
        return chosen if chosen is not None else self.variants[0]

    @property
    def improved_title(self) -> str:
        return self.primary.title

    @property
    def rationale(self) -> str:
        return self.primary.reason

    @property
    def score(self) -> int:
        return self.primary.score


class Job(_Record):
    """Durable per-job record shared by every stage."""

    job_id: str = Field(alias="jobId")
    channel: str
    email: str
    status: JobStatus = JobStatus.QUEUED
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    channel_id: Optional[str] = Field(default=None, alias="channelId")
    channel_name: Optional[str] = Field(default=None, alias="channelName")
    videos: Optional[List[Video]] = None
    improved_titles: Optional[List[ImprovedTitle]] = Field(default=None, alias="improvedTitles")

    error: Optional[str] = None
    completed_at: Optional[datetime] = Field(default=None, alias="completedAt")
    email_sent: bool = Field(default=False, alias="emailSent")
    email_id: Optional[str] = Field(default=None, alias="emailId")

    error_notified: bool = Field(default=False, alias="errorNotified")
    error_notice_id: Optional[str] = Field(default=None, alias="errorNoticeId")

    @classmethod
    def create(cls, channel: str, email: str) -> "Job":
        return cls(job_id=new_job_id(), channel=channel, email=email)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal
