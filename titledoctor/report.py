"""Plain-text email bodies. Pure functions, no delivery concerns."""

from __future__ import annotations

from typing import List, Sequence

from .models import ImprovedTitle

RULE = "=" * 60
DIVIDER = "-" * 60

FAILURE_SUBJECT = "Request Failed - YouTube Title Processor"
UNKNOWN_ERROR = "Unknown error occurred"

_STYLE_LABELS = {
    "viral": "VIRAL TITLE",
    "seo": "SEO TITLE",
    "professional": "PROFESSIONAL TITLE",
}


def report_subject(channel_name: str) -> str:
    return f"Viral Title Ideas for {channel_name}"


def render_report(channel_name: str, improved_titles: Sequence[ImprovedTitle]) -> str:
    lines: List[str] = ["YouTube Title Doctor Report", f"Channel: {channel_name}", RULE, ""]

    for idx, item in enumerate(improved_titles, start=1):
        lines.append(f"Video {idx}")
        lines.append(f"Original: {item.original}")
        lines.append("")
        for variant in item.variants:
            label = _STYLE_LABELS.get(variant.style, variant.style.upper())
            if variant.style == item.recommended and len(item.variants) > 1:
                label += " (recommended)"
            lines.append(f"{label}:")
            lines.append(variant.title)
            if variant.reason:
                lines.append(f"Why: {variant.reason}")
            lines.append(f"Score: {variant.score}/100")
            lines.append("")
        if item.thumbnail_texts:
            lines.append("THUMBNAIL TEXT IDEAS:")
            lines.extend(f"- {text}" for text in item.thumbnail_texts)
        lines.append(f"Video: {item.url}")
        lines.append(DIVIDER)
        lines.append("")

    if any(len(item.variants) > 1 for item in improved_titles):
        lines.append("SUMMARY")
        for idx, item in enumerate(improved_titles, start=1):
            lines.append(f"{idx}. {item.improved_title} ({item.recommended}, {item.score}/100)")
        lines.append("")

    return "\n".join(lines)


def render_failure_notice(error: str) -> str:
    return (
        "Hello,\n\n"
        "We encountered an issue while processing your YouTube title improvement request.\n\n"
        "Error Details:\n"
        f"{error or UNKNOWN_ERROR}\n\n"
        "Please try again later or contact support if the issue persists.\n\n"
        "Best regards,\n"
        "Viral YouTube Title Processor\n"
    )
