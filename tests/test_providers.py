import json

import httpx
import pytest
from tenacity import wait_none

from titledoctor.providers.gemini import GeminiClient, GenerationError
from titledoctor.providers.mailer import DeliveryError, ResendMailer
from titledoctor.providers.youtube_api import YouTubeAPIClient, YouTubeAPIError


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_handle_lookup_uses_channels_endpoint():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/channels")
        assert request.url.params["forHandle"] == "exampleChannel"
        assert request.url.params["key"] == "yt-key"
        return httpx.Response(200, json={"items": [{"id": "UC123", "snippet": {"title": "Example"}}]})

    client = YouTubeAPIClient("yt-key", client=_client(handler))
    channel = await client.resolve_channel("@exampleChannel")
    assert channel.channel_id == "UC123"
    assert channel.title == "Example"


@pytest.mark.asyncio
async def test_free_text_lookup_takes_first_search_hit():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/search")
        assert request.url.params["type"] == "channel"
        assert request.url.params["q"] == "Some Channel"
        return httpx.Response(
            200,
            json={
                "items": [
                    {"id": {"channelId": "UCfirst"}, "snippet": {"title": "First"}},
                    {"id": {"channelId": "UCsecond"}, "snippet": {"title": "Second"}},
                ]
            },
        )

    client = YouTubeAPIClient("yt-key", client=_client(handler))
    channel = await client.resolve_channel("Some Channel")
    assert channel.channel_id == "UCfirst"


@pytest.mark.asyncio
async def test_no_match_resolves_to_none():
    client = YouTubeAPIClient("yt-key", client=_client(lambda request: httpx.Response(200, json={"items": []})))
    assert await client.resolve_channel("@nobody") is None
    assert await client.resolve_channel("NoSuchChannelXYZ") is None


@pytest.mark.asyncio
async def test_recent_videos_maps_search_items():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["order"] == "date"
        assert request.url.params["channelId"] == "UC123"
        return httpx.Response(
            200,
            json={
                "items": [
                    {
                        "id": {"videoId": "abc"},
                        "snippet": {
                            "title": "First upload",
                            "channelId": "UC123",
                            "publishedAt": "2024-05-02T10:00:00Z",
                            "thumbnails": {"default": {"url": "https://i.ytimg.com/abc.jpg"}},
                        },
                    },
                    {"id": {"playlistId": "PL1"}, "snippet": {"title": "not a video"}},
                ]
            },
        )

    client = YouTubeAPIClient("yt-key", client=_client(handler))
    videos = await client.recent_videos("UC123", max_results=10)
    assert len(videos) == 1
    assert videos[0].video_id == "abc"
    assert videos[0].published_at.year == 2024
    assert videos[0].thumbnail == "https://i.ytimg.com/abc.jpg"


@pytest.mark.asyncio
async def test_youtube_error_body_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"error": {"code": 403, "message": "quotaExceeded"}})

    client = YouTubeAPIClient("yt-key", client=_client(handler))
    with pytest.raises(YouTubeAPIError, match="quotaExceeded"):
        await client.resolve_channel("@demo")


def test_clients_refuse_empty_keys():
    with pytest.raises(ValueError):
        YouTubeAPIClient("")
    with pytest.raises(ValueError):
        GeminiClient("")
    with pytest.raises(ValueError):
        ResendMailer("", "from@example.com")


@pytest.mark.asyncio
async def test_gemini_posts_prompt_and_returns_text():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/models/gemini-2.5-flash:generateContent")
        assert request.url.params["key"] == "gm-key"
        body = json.loads(request.content)
        assert body == {"contents": [{"parts": [{"text": "hello"}]}]}
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": '{"results": []}'}]}}]})

    client = GeminiClient("gm-key", client=_client(handler))
    assert await client.generate("hello") == '{"results": []}'


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response, message",
    [
        (httpx.Response(400, json={"error": {"message": "API key not valid"}}), "API key not valid"),
        (httpx.Response(200, json={"candidates": []}), "Empty response"),
        (httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "  "}]}}]}), "Empty response"),
    ],
)
async def test_gemini_failures_raise_generation_error(response, message):
    client = GeminiClient("gm-key", client=_client(lambda request: response))
    with pytest.raises(GenerationError, match=message):
        await client.generate("hello")


@pytest.mark.asyncio
async def test_resend_sends_plain_text_and_returns_id():
    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == "https://api.resend.com/emails"
        assert request.headers["Authorization"] == "Bearer rs-key"
        body = json.loads(request.content)
        assert body == {
            "from": "onboarding@resend.dev",
            "to": ["a@b.com"],
            "subject": "Hi",
            "text": "Body",
        }
        return httpx.Response(200, json={"id": "email-123"})

    mailer = ResendMailer("rs-key", "onboarding@resend.dev", client=_client(handler))
    assert await mailer.send("a@b.com", "Hi", "Body") == "email-123"


@pytest.mark.asyncio
async def test_resend_rejection_raises_delivery_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"statusCode": 422, "message": "Invalid `to` field"})

    mailer = ResendMailer("rs-key", "onboarding@resend.dev", client=_client(handler))
    with pytest.raises(DeliveryError, match="Invalid `to` field"):
        await mailer.send("a@b.com", "Hi", "Body")


@pytest.mark.asyncio
async def test_transport_errors_are_retried_when_configured():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) < 3:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"id": "email-1"})

    mailer = ResendMailer("rs-key", "from@example.com", attempts=3, client=_client(handler))
    mailer.retry_wait = wait_none()
    assert await mailer.send("a@b.com", "Hi", "Body") == "email-1"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_single_attempt_is_the_default():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    mailer = ResendMailer("rs-key", "from@example.com", client=_client(handler))
    with pytest.raises(httpx.ConnectError):
        await mailer.send("a@b.com", "Hi", "Body")
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_timeouts_use_the_configured_limit_and_surface_after_one_attempt():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.extensions["timeout"])
        raise httpx.ReadTimeout("timed out", request=request)

    client = YouTubeAPIClient("yt-key", timeout=2.5, client=_client(handler))
    with pytest.raises(httpx.ReadTimeout):
        await client.resolve_channel("@demo")
    assert len(calls) == 1
    assert calls[0]["read"] == 2.5
    assert calls[0]["connect"] == 2.5
