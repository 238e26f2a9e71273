from __future__ import annotations

from typing import Any, Dict, Optional

from .base import HTTPProvider, error_message


class GenerationError(RuntimeError):
    """Raised when the generation service returns nothing usable."""


class GeminiClient(HTTPProvider):
    API_BASE = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gemini-2.5-flash",
        api_base: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        if not api_key:
            raise ValueError("Gemini API key is required")
        super().__init__(**kwargs)
        self.api_key = api_key
        self.model = model
        self.api_base = (api_base or self.API_BASE).rstrip("/")

    @property
    def endpoint(self) -> str:
        return f"{self.api_base}/models/{self.model}:generateContent"

    async def generate(self, prompt: str) -> str:
        """Single-turn generateContent call; returns the first candidate's text."""
        payload = {"contents": [{"parts": [{"text": prompt}]}]}
        response = await self._request(
            "POST",
            self.endpoint,
            params={"key": self.api_key},
            headers={"content-type": "application/json"},
            json=payload,
        )
        if response.status_code >= 300:
            raise GenerationError(error_message(response, "Gemini API error"))
        try:
            data = response.json()
        except ValueError as exc:
            raise GenerationError("Gemini returned a non-JSON body") from exc
        text = _candidate_text(data)
        if not text.strip():
            raise GenerationError("Empty response from Gemini")
        return text


def _candidate_text(data: Dict[str, Any]) -> str:
    candidates = data.get("candidates") if isinstance(data, dict) else None
    if not candidates:
        return ""
    content = (candidates[0] or {}).get("content") or {}
    parts = content.get("parts") or [{}]
    return str((parts[0] or {}).get("text") or "")


__all__ = ["GeminiClient", "GenerationError"]
