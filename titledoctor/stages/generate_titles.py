"""Title generation: prompt construction, response parsing and scoring."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Sequence

from ..common.event_bus import EventBus
from ..common.events import VIDEOS_FETCHED, TitlesReady, VideosFailed, VideosFetched
from ..common.job_store import JobStore
from ..models import VARIANT_STYLES, ImprovedTitle, JobStatus, TitleVariant, Video
from ..providers.gemini import GeminiClient, GenerationError
from .base import Stage

ENGAGEMENT_KEYWORDS = ("secret", "mistake", "truth", "hack", "power", "insane", "crazy")
_KEYWORD_RE = re.compile("|".join(ENGAGEMENT_KEYWORDS), re.IGNORECASE)
_DIGIT_RE = re.compile(r"\d")
_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)

PROMPT_TEMPLATE = """You are a YouTube growth expert.

For EACH video title below, generate:

1. VIRAL title (emotional, curiosity-driven)
2. SEO title (keyword-rich, searchable)
3. PROFESSIONAL title (brand-safe, clean)

Also:
- Give ONE LINE reason for each title
- Suggest 3 thumbnail texts (MAX 4 words each)
- Do NOT repeat original title

Titles:
{titles}

Return STRICT JSON ONLY in this exact format, one result per title, in order:

{{
  "results": [
    {{
      "viral": "",
      "viralReason": "",
      "seo": "",
      "seoReason": "",
      "professional": "",
      "professionalReason": "",
      "thumbnailTexts": ["", "", ""]
    }}
  ]
}}
"""


def viral_score(title: str) -> int:
    score = 50
    if _DIGIT_RE.search(title):
        score += 10
    if len(title) < 60:
        score += 10
    if "!" in title or "?" in title:
        score += 10
    if _KEYWORD_RE.search(title):
        score += 10
    return min(score, 100)


def build_prompt(videos: Sequence[Video]) -> str:
    titles = "\n".join(f'{idx}. "{video.title}"' for idx, video in enumerate(videos, start=1))
    return PROMPT_TEMPLATE.format(titles=titles)


def strip_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def parse_response(text: str) -> List[Dict[str, Any]]:
    """The ``results`` list from a model reply, fenced or not.

    Raises:
        GenerationError: empty reply, invalid JSON, or no ``results`` list.
    """
    cleaned = strip_fences(text or "")
    if not cleaned:
        raise GenerationError("Empty response from Gemini")
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise GenerationError(f"Could not parse generated titles: {exc.msg}") from exc
    results = parsed.get("results") if isinstance(parsed, dict) else None
    if not isinstance(results, list):
        raise GenerationError("Generated titles are missing a results list")
    return results


def choose_recommended(variants: Sequence[TitleVariant]) -> str:
    """Highest score wins; ties go to the earlier style in VARIANT_STYLES."""
    best = max(variants, key=lambda v: (v.score, -VARIANT_STYLES.index(v.style)))
    return best.style


def improve(video: Video, result: Any) -> ImprovedTitle:
    if not isinstance(result, dict):
        raise GenerationError(f"Generated entry for {video.title!r} is not an object")
    variants: List[TitleVariant] = []
    for style in VARIANT_STYLES:
        title = result.get(style)
        if not isinstance(title, str) or not title.strip():
            raise GenerationError(f"Generated entry for {video.title!r} has no {style} title")
        title = title.strip()
        reason = result.get(f"{style}Reason")
        variants.append(
            TitleVariant(
                style=style,
                title=title,
                reason=reason.strip() if isinstance(reason, str) else "",
                score=viral_score(title),
            )
        )
    thumbnails = result.get("thumbnailTexts") or []
    return ImprovedTitle(
        original=video.title,
        variants=variants,
        recommended=choose_recommended(variants),
        thumbnail_texts=[str(t).strip() for t in thumbnails if isinstance(t, str) and t.strip()],
        url=video.url,
    )


def pair_results(videos: Sequence[Video], results: Sequence[Any]) -> List[ImprovedTitle]:
    # zip() pairs in order and stops at the shorter list.
    improved = [improve(video, result) for video, result in zip(videos, results)]
    if not improved:
        raise GenerationError("No titles were generated")
    return improved


class TitleGenerator(Stage):
    name = "generate_titles"
    subscribes = (VIDEOS_FETCHED,)
    status = JobStatus.GENERATING_TITLES
    failure_event = VideosFailed

    def __init__(self, jobs: JobStore, bus: EventBus, gemini: GeminiClient) -> None:
        super().__init__(jobs, bus)
        self.gemini = gemini

    async def process(self, event: VideosFetched) -> None:
        self.logger.info("Generating titles for job %s (%d videos)", event.job_id, len(event.videos))
        text = await self.gemini.generate(build_prompt(event.videos))
        improved = pair_results(event.videos, parse_response(text))
        if len(improved) != len(event.videos):
            self.logger.warning(
                "Job %s: %d results for %d videos", event.job_id, len(improved), len(event.videos)
            )

        await self.jobs.advance(event.job_id, JobStatus.TITLES_READY, improved_titles=improved)
        await self.bus.publish(
            TitlesReady(
                job_id=event.job_id,
                channel_name=event.channel_name,
                email=event.email,
                improved_titles=improved,
            )
        )
        self.logger.info("Job %s has %d improved titles", event.job_id, len(improved))
