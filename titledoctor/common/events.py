"""Event contracts, envelopes and the typed events exchanged between stages."""

from __future__ import annotations

import datetime
import json
import os
import uuid
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional, Type, Union

from jsonschema import ValidationError, validate

from ..models import ImprovedTitle, Video

SUBMITTED = "submitted"
CHANNEL_RESOLVED = "channel-resolved"
CHANNEL_FAILED = "channel-failed"
VIDEOS_FETCHED = "videos-fetched"
VIDEOS_FAILED = "videos-failed"
TITLES_READY = "titles-ready"
EMAIL_SENT = "email-sent"
ERROR_NOTIFIED = "error-notified"

FAILURE_TOPICS = (CHANNEL_FAILED, VIDEOS_FAILED)


class InvalidEvent(ValueError):
    """Raised when a payload does not satisfy its topic contract."""


def _contracts_dir() -> Path:
    """Directory holding ``topics.json`` and the JSON schemas.

    ``TITLEDOCTOR_CONTRACTS_DIR`` wins when it points at a directory; otherwise
    the contracts bundled with the package are used.
    """
    env_dir = os.environ.get("TITLEDOCTOR_CONTRACTS_DIR")
    if env_dir and os.path.isdir(env_dir):
        return Path(env_dir)
    return Path(__file__).resolve().parents[1] / "contracts"


@lru_cache(maxsize=None)
def _read_json(path: str) -> Dict[str, Any]:
    with open(path, encoding="utf-8") as handle:
        return json.load(handle)


def topics() -> List[str]:
    return list(_read_json(str(_contracts_dir() / "topics.json"))["topics"])


def load_schema(topic: str) -> Dict[str, Any]:
    """Loads the JSON schema for a given event topic.

    Raises:
        KeyError: If the topic is not declared in ``topics.json``.
    """
    base = _contracts_dir()
    registry = _read_json(str(base / "topics.json"))
    if topic not in registry["topics"]:
        raise KeyError(f"Unknown topic: {topic}")
    return _read_json(str(base / registry["topics"][topic]["schema"]))


def validate_payload(topic: str, payload: Dict[str, Any]) -> None:
    try:
        schema = load_schema(topic)
    except KeyError as exc:
        raise InvalidEvent(str(exc)) from exc
    try:
        validate(instance=payload, schema=schema)
    except ValidationError as exc:
        raise InvalidEvent(f"{topic}: {exc.message}") from exc


def envelope(
    topic: str,
    payload: Dict[str, Any],
    correlation_id: Optional[str] = None,
    source: str = "titledoctor",
) -> Dict[str, Any]:
    """Creates and validates a new event envelope around ``payload``."""
    env: Dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "topic": topic,
        "ts": datetime.datetime.now(datetime.timezone.utc).isoformat().replace("+00:00", "Z"),
        "version": "v1",
        "source": source,
        "payload": payload,
    }
    if correlation_id:
        env["correlation_id"] = correlation_id
    try:
        validate(instance=env, schema=_read_json(str(_contracts_dir() / "schemas" / "envelope.schema.json")))
    except ValidationError as exc:
        raise InvalidEvent(f"envelope: {exc.message}") from exc
    validate_payload(topic, payload)
    return env


@dataclass(frozen=True)
class Submitted:
    topic: ClassVar[str] = SUBMITTED

    job_id: str
    channel: str
    email: str

    def to_payload(self) -> Dict[str, Any]:
        return {"jobId": self.job_id, "channel": self.channel, "email": self.email}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Submitted":
        return cls(job_id=payload["jobId"], channel=payload["channel"], email=payload["email"])


@dataclass(frozen=True)
class ChannelResolved:
    topic: ClassVar[str] = CHANNEL_RESOLVED

    job_id: str
    channel_id: str
    channel_name: str
    email: str

    def to_payload(self) -> Dict[str, Any]:
        return {
            "jobId": self.job_id,
            "channelId": self.channel_id,
            "channelName": self.channel_name,
            "email": self.email,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ChannelResolved":
        return cls(
            job_id=payload["jobId"],
            channel_id=payload["channelId"],
            channel_name=payload["channelName"],
            email=payload["email"],
        )


@dataclass(frozen=True)
class _StageFailed:
    job_id: str
    email: str
    error: str

    def to_payload(self) -> Dict[str, Any]:
        return {"jobId": self.job_id, "email": self.email, "error": self.error}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]):
        return cls(job_id=payload["jobId"], email=payload["email"], error=payload["error"])


@dataclass(frozen=True)
class ChannelFailed(_StageFailed):
    topic: ClassVar[str] = CHANNEL_FAILED


@dataclass(frozen=True)
class VideosFailed(_StageFailed):
    topic: ClassVar[str] = VIDEOS_FAILED


@dataclass(frozen=True)
class VideosFetched:
    topic: ClassVar[str] = VIDEOS_FETCHED

    job_id: str
    channel_name: str
    email: str
    videos: List[Video] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "jobId": self.job_id,
            "channelName": self.channel_name,
            "videos": [video.to_dict() for video in self.videos],
            "email": self.email,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "VideosFetched":
        return cls(
            job_id=payload["jobId"],
            channel_name=payload["channelName"],
            email=payload["email"],
            videos=[Video.model_validate(item) for item in payload["videos"]],
        )


@dataclass(frozen=True)
class TitlesReady:
    topic: ClassVar[str] = TITLES_READY

    job_id: str
    channel_name: str
    email: str
    improved_titles: List[ImprovedTitle] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "jobId": self.job_id,
            "channelName": self.channel_name,
            "improvedTitles": [item.to_dict() for item in self.improved_titles],
            "email": self.email,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "TitlesReady":
        return cls(
            job_id=payload["jobId"],
            channel_name=payload["channelName"],
            email=payload["email"],
            improved_titles=[ImprovedTitle.model_validate(item) for item in payload["improvedTitles"]],
        )


@dataclass(frozen=True)
class _Delivered:
    job_id: str
    email: str
    delivery_id: str

    def to_payload(self) -> Dict[str, Any]:
        return {"jobId": self.job_id, "email": self.email, "deliveryId": self.delivery_id}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]):
        return cls(job_id=payload["jobId"], email=payload["email"], delivery_id=payload["deliveryId"])


@dataclass(frozen=True)
class EmailSent(_Delivered):
    topic: ClassVar[str] = EMAIL_SENT


@dataclass(frozen=True)
class ErrorNotified(_Delivered):
    topic: ClassVar[str] = ERROR_NOTIFIED


Event = Union[
    Submitted,
    ChannelResolved,
    ChannelFailed,
    VideosFetched,
    VideosFailed,
    TitlesReady,
    EmailSent,
    ErrorNotified,
]

EVENT_TYPES: Dict[str, Type[Any]] = {
    cls.topic: cls
    for cls in (
        Submitted,
        ChannelResolved,
        ChannelFailed,
        VideosFetched,
        VideosFailed,
        TitlesReady,
        EmailSent,
        ErrorNotified,
    )
}


def encode(event: Event, source: str = "titledoctor") -> Dict[str, Any]:
    return envelope(event.topic, event.to_payload(), correlation_id=event.job_id, source=source)


def decode(env: Dict[str, Any]) -> Event:
    """Turn a received envelope back into its typed event.

    Raises:
        InvalidEvent: unknown topic, or a payload that breaks its contract.
    """
    topic = env.get("topic")
    payload = env.get("payload")
    event_type = EVENT_TYPES.get(topic or "")
    if event_type is None:
        raise InvalidEvent(f"Unknown topic: {topic}")
    if not isinstance(payload, dict):
        raise InvalidEvent(f"{topic}: payload must be an object")
    validate_payload(topic, payload)
    try:
        return event_type.from_payload(payload)
    except (KeyError, ValueError) as exc:
        raise InvalidEvent(f"{topic}: {exc}") from exc
