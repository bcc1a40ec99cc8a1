import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import requests
from openai import OpenAI, OpenAIError

from config import Settings
from errors import UpstreamError
from schemas import ChatTurn

logger = logging.getLogger("chatbot.llm")

NO_RESPONSE = "No response."
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
SUMMARY_PROMPT = "Summarize this document clearly:\n\n{text}"


@dataclass
class LLMReply:
    text: str
    model: Optional[str] = None
    finish_reason: Optional[str] = None


# -----------------------------------------------------
# RESPONSE NORMALIZATION
# -----------------------------------------------------
def _get(obj: Any, key: str, default=None):
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _first(items):
    if isinstance(items, (list, tuple)) and items:
        return items[0]
    return None


def normalize_llm_response(raw: Any) -> LLMReply:
    """
    Map every known provider response shape to an ``LLMReply``.

    Understands OpenAI SDK objects and dicts (``choices[0].message.content``
    or legacy ``choices[0].text``), Gemini ``candidates[0].content.parts``,
    and flat ``output_text`` / ``text`` / ``reply`` keys.
    """
    if raw is None:
        raise UpstreamError("Empty response from language model")

    model = _get(raw, "model") or _get(raw, "modelVersion")

    choice = _first(_get(raw, "choices"))
    if choice is not None:
        message = _get(choice, "message")
        text = _get(message, "content") if message is not None else _get(choice, "text")
        return LLMReply(
            text=(text or "").strip() or NO_RESPONSE,
            model=model,
            finish_reason=_get(choice, "finish_reason"),
        )

    candidates = _get(raw, "candidates")
    if candidates is not None:
        candidate = _first(candidates)
        parts = _get(_get(candidate, "content") or {}, "parts") or []
        text = "".join(_get(p, "text") or "" for p in parts)
        return LLMReply(
            text=text.strip() or NO_RESPONSE,
            model=model,
            finish_reason=_get(candidate, "finishReason") if candidate is not None else None,
        )

    for key in ("output_text", "text", "reply"):
        text = _get(raw, key)
        if isinstance(text, str):
            return LLMReply(text=text.strip() or NO_RESPONSE, model=model)

    raise UpstreamError("Unrecognized response from language model")


# -----------------------------------------------------
# ROLE MAPPING
# -----------------------------------------------------
def to_openai_messages(turns: Sequence[ChatTurn], system_prompt: Optional[str] = None) -> List[Dict[str, str]]:
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.extend({"role": t.role, "content": t.content} for t in turns)
    return messages


def to_gemini_payload(turns: Sequence[ChatTurn], system_prompt: Optional[str] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "contents": [
            {
                "role": "model" if t.role == "assistant" else "user",
                "parts": [{"text": t.content}],
            }
            for t in turns
        ]
    }
    if system_prompt:
        payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
    return payload


# -----------------------------------------------------
# CLIENT
# -----------------------------------------------------
class LLMClient:
    """Chat + summarization against the configured provider (openai | gemini)."""

    def __init__(self, settings: Settings, openai_client: Optional[OpenAI] = None):
        self.settings = settings
        self.provider = settings.llm_provider
        if self.provider not in {"openai", "gemini"}:
            raise ValueError(f"Unsupported LLM provider: {self.provider}")
        self._openai = openai_client

    @property
    def openai(self) -> OpenAI:
        if self._openai is None:
            self._openai = OpenAI(api_key=self.settings.openai_api_key)
        return self._openai

    @property
    def model(self) -> str:
        if self.provider == "gemini":
            return self.settings.gemini_model
        return self.settings.openai_model

    def generate(self, turns: Sequence[ChatTurn], system_prompt: Optional[str] = None) -> LLMReply:
        attempts = self.settings.llm_max_retries
        last_error: Optional[Exception] = None
        for attempt in range(attempts):
            try:
                if self.provider == "gemini":
                    raw = self._call_gemini(turns, system_prompt)
                else:
                    raw = self._call_openai(turns, system_prompt)
                return normalize_llm_response(raw)
            except (OpenAIError, requests.RequestException) as e:
                last_error = e
                logger.error(f"{self.provider} error (attempt {attempt + 1}/{attempts}): {e}")
                if attempt + 1 < attempts:
                    time.sleep(self.settings.llm_retry_delay)
        raise UpstreamError(f"{self.provider} request failed: {last_error}")

    def summarize(self, text: str) -> Optional[str]:
        turn = ChatTurn(role="user", content=SUMMARY_PROMPT.format(text=text))
        reply = self.generate([turn])
        if reply.text == NO_RESPONSE:
            return None
        return reply.text

    def _call_openai(self, turns, system_prompt):
        return self.openai.chat.completions.create(
            model=self.settings.openai_model,
            messages=to_openai_messages(turns, system_prompt),
        )

    def _call_gemini(self, turns, system_prompt):
        if not self.settings.gemini_api_key:
            raise UpstreamError("GEMINI_API_KEY is not configured")
        resp = requests.post(
            GEMINI_URL.format(model=self.settings.gemini_model),
            params={"key": self.settings.gemini_api_key},
            json=to_gemini_payload(turns, system_prompt),
            timeout=self.settings.request_timeout,
        )
        # HTTPError is a RequestException, so generate() retries and wraps it
        resp.raise_for_status()
        return resp.json()
