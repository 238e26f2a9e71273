"""Durable job state: key-value backends plus the guarded Job repository."""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

import nats
from nats.js.errors import KeyNotFoundError

from ..models import (
    BOOKKEEPING_FIELDS,
    STATUS_ORDER,
    Job,
    JobStatus,
    utcnow,
)

logger = logging.getLogger("titledoctor.jobs")


class JobStateError(RuntimeError):
    """Base class for refused job-state writes."""


class JobNotFound(JobStateError):
    pass


class JobTerminalError(JobStateError):
    pass


class InvalidTransition(JobStateError):
    pass


class StateStore:
    """Minimal key-value capability the job store is built on."""

    async def start(self) -> None:
        return None

    async def stop(self) -> None:
        return None

    async def get(self, key: str) -> Optional[Dict[str, Any]]:  # pragma: no cover - interface
        raise NotImplementedError

    async def set(self, key: str, value: Dict[str, Any]) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class MemoryStateStore(StateStore):
    name = "memory"

    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Any]] = {}

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        self._data[key] = copy.deepcopy(value)


class JsonFileStateStore(StateStore):
    """All records in one JSON document, replaced atomically on every write."""

    name = "file"

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._data: Dict[str, Dict[str, Any]] = {}
        self._write_lock = asyncio.Lock()
        self._loaded = False

    async def start(self) -> None:
        self._load()

    def _load(self) -> None:
        if self._loaded:
            return
        if self.path.exists():
            with self.path.open("r", encoding="utf-8") as handle:
                loaded = json.load(handle)
            if not isinstance(loaded, dict):
                raise ValueError(f"{self.path} does not hold a JSON object")
            self._data = loaded
            logger.info("Loaded %d job records from %s", len(self._data), self.path)
        self._loaded = True

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        self._load()
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        self._load()
        async with self._write_lock:
            self._data[key] = copy.deepcopy(value)
            snapshot = copy.deepcopy(self._data)
            await asyncio.to_thread(self._persist, snapshot)

    def _persist(self, data: Dict[str, Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=str(self.path.parent), prefix=".jobs-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


class NatsKeyValueStore(StateStore):
    """JetStream key-value bucket; records outlive this process."""

    name = "nats"

    def __init__(self, nats_url: str, bucket: str) -> None:
        self.nats_url = nats_url
        self.bucket = bucket
        self._nc = None
        self._kv = None

    async def start(self) -> None:
        if self._kv is not None:
            return
        self._nc = await nats.connect(self.nats_url, max_reconnect_attempts=-1)
        js = self._nc.jetstream()
        self._kv = await js.create_key_value(bucket=self.bucket)
        logger.info("Job store using JetStream bucket %s at %s", self.bucket, self.nats_url)

    async def stop(self) -> None:
        if self._nc is not None:
            try:
                await self._nc.drain()
            except Exception as exc:
                logger.warning("NATS drain failed during shutdown: %s", exc)
        self._nc = None
        self._kv = None

    def _bucket(self):
        if self._kv is None:
            raise RuntimeError("NatsKeyValueStore.start() has not been awaited")
        return self._kv

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            entry = await self._bucket().get(key)
        except KeyNotFoundError:
            return None
        if not entry.value:
            return None
        return json.loads(entry.value.decode("utf-8"))

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        await self._bucket().put(key, json.dumps(value).encode("utf-8"))


def ensure_transition(current: JobStatus, target: JobStatus) -> None:
    """Allow only forward moves along the pipeline, or a jump to FAILED."""
    if current.is_terminal:
        raise JobTerminalError(f"Job is {current.value}; cannot move to {target.value}")
    if target is JobStatus.FAILED:
        return
    if STATUS_ORDER.index(target) <= STATUS_ORDER.index(current):
        raise InvalidTransition(f"Invalid transition: {current.value} -> {target.value}")


class JobStore:
    """Read-merge-write access to job records keyed by the bare job id.

    There is no compare-and-swap underneath; callers rely on the event bus
    running one handler per job at a time.
    """

    def __init__(self, state: StateStore) -> None:
        self.state = state

    @property
    def backend(self) -> str:
        return getattr(self.state, "name", type(self.state).__name__)

    async def create(self, job: Job) -> Job:
        if await self.state.get(job.job_id) is not None:
            raise JobStateError(f"Job {job.job_id} already exists")
        await self.state.set(job.job_id, job.to_dict())
        logger.info("Job %s created for channel %r", job.job_id, job.channel)
        return job

    async def get(self, job_id: str) -> Optional[Job]:
        record = await self.state.get(job_id)
        return Job.model_validate(record) if record is not None else None

    async def require(self, job_id: str) -> Job:
        job = await self.get(job_id)
        if job is None:
            raise JobNotFound(f"Job {job_id} not found")
        return job

    async def update(self, job_id: str, **changes: Any) -> Job:
        """Merge ``changes`` (Job field names) into the stored record."""
        record = await self.state.get(job_id)
        if record is None:
            raise JobNotFound(f"Job {job_id} not found")
        current = Job.model_validate(record)

        if "status" in changes:
            ensure_transition(current.status, JobStatus(changes["status"]))
        elif current.is_terminal and not set(changes) <= BOOKKEEPING_FIELDS:
            raise JobTerminalError(f"Job {job_id} is {current.status.value}; record is frozen")

        changes.setdefault("updated_at", utcnow())
        updated = Job.model_validate({**current.model_dump(), **changes})
        # Unknown keys already in the record survive the merge.
        await self.state.set(job_id, {**record, **updated.to_dict()})
        return updated

    async def advance(self, job_id: str, status: JobStatus, **changes: Any) -> Job:
        job = await self.update(job_id, status=status, **changes)
        logger.info("Job %s -> %s", job_id, status.value)
        return job

    async def fail(self, job_id: str, error: str) -> Job:
        job = await self.update(job_id, status=JobStatus.FAILED, error=error)
        logger.warning("Job %s failed: %s", job_id, error)
        return job

    async def record_notice(self, job_id: str, delivery_id: str) -> Job:
        return await self.update(job_id, error_notified=True, error_notice_id=delivery_id)


def build_state_store(settings) -> StateStore:  # type: ignore[no-untyped-def]
    backend = settings.state_backend
    if backend == "memory":
        return MemoryStateStore()
    if backend == "file":
        return JsonFileStateStore(settings.state_path)
    if backend == "nats":
        return NatsKeyValueStore(settings.nats_url, settings.kv_bucket)
    raise ValueError(f"Unknown state backend: {backend}")
