from dataclasses import replace

import pytest

from titledoctor.common.job_store import MemoryStateStore
from titledoctor.models import JobStatus
from titledoctor.pipeline import build_pipeline


def _topics(pipeline):
    return [env["topic"] for env in reversed(pipeline.bus.recent(50))]


@pytest.fixture
def build(settings, fakes):
    def _build(youtube=None, gemini=None, mailer=None):
        return build_pipeline(
            settings,
            youtube=youtube or fakes.youtube(),
            gemini=gemini or fakes.gemini(reply=fakes.gemini_reply(3)),
            mailer=mailer or fakes.mailer(),
            state=MemoryStateStore(),
        )

    return _build


@pytest.mark.asyncio
async def test_report_is_delivered_for_a_known_channel(build, fakes):
    youtube = fakes.youtube(
        channels={"@exampleChannel": fakes.channel("UC123", "Example Channel")},
        videos={"UC123": [fakes.search_video(i) for i in range(1, 4)]},
    )
    mailer = fakes.mailer()
    pipeline = build(youtube=youtube, mailer=mailer)
    await pipeline.start()

    job = await pipeline.submit("@exampleChannel", "a@b.com")
    await pipeline.join()

    stored = await pipeline.jobs.require(job.job_id)
    assert stored.status is JobStatus.COMPLETED
    assert stored.email_sent is True
    assert len(stored.videos) == 3
    assert len(stored.improved_titles) == 3
    assert _topics(pipeline) == ["submitted", "channel-resolved", "videos-fetched", "titles-ready", "email-sent"]
    assert [mail["subject"] for mail in mailer.sent] == ["Viral Title Ideas for Example Channel"]
    assert (await pipeline.jobs.state.get(job.job_id))["emailSent"] is True
    await pipeline.stop()


@pytest.mark.asyncio
async def test_unknown_channel_fails_and_notifies(build, fakes):
    mailer = fakes.mailer()
    pipeline = build(mailer=mailer)
    await pipeline.start()

    job = await pipeline.submit("NoSuchChannelXYZ", "a@b.com")
    await pipeline.join()

    stored = await pipeline.jobs.require(job.job_id)
    assert stored.status is JobStatus.FAILED
    assert stored.error == "Channel not found"
    assert stored.error_notified is True
    assert _topics(pipeline) == ["submitted", "channel-failed", "error-notified"]
    assert mailer.sent[0]["to"] == "a@b.com"
    assert "Channel not found" in mailer.sent[0]["text"]
    await pipeline.stop()


@pytest.mark.asyncio
async def test_channel_without_videos_fails_with_original_email(build, fakes):
    youtube = fakes.youtube(channels={"@quiet": fakes.channel("UCquiet", "Quiet")})
    pipeline = build(youtube=youtube)
    await pipeline.start()

    job = await pipeline.submit("@quiet", "someone@example.org")
    await pipeline.join()

    stored = await pipeline.jobs.require(job.job_id)
    assert stored.status is JobStatus.FAILED
    assert "No videos found" in stored.error
    failed = [env for env in pipeline.bus.recent(50) if env["topic"] == "videos-failed"]
    assert len(failed) == 1
    assert failed[0]["payload"]["email"] == "someone@example.org"
    await pipeline.stop()


@pytest.mark.asyncio
async def test_jobs_progress_independently(build, fakes):
    youtube = fakes.youtube(
        channels={"@one": fakes.channel("UC1", "One"), "@two": fakes.channel("UC2", "Two")},
        videos={"UC1": [fakes.search_video(1, "UC1")], "UC2": [fakes.search_video(2, "UC2")]},
    )
    pipeline = build(youtube=youtube, gemini=fakes.gemini(reply=fakes.gemini_reply(1)))
    await pipeline.start()

    jobs = [await pipeline.submit(channel, "a@b.com") for channel in ("@one", "@two", "@missing")]
    await pipeline.join()

    statuses = [(await pipeline.jobs.require(job.job_id)).status for job in jobs]
    assert statuses == [JobStatus.COMPLETED, JobStatus.COMPLETED, JobStatus.FAILED]
    await pipeline.stop()


def test_pipeline_refuses_missing_credentials(settings):
    with pytest.raises(ValueError):
        build_pipeline(replace(settings, gemini_api_key=""), state=MemoryStateStore())
