import os
from typing import Optional

import requests

BACKEND_URL = os.getenv("BACKEND_URL", "http://localhost:8000").rstrip("/")
TIMEOUT = 120


def _error_text(resp) -> str:
    try:
        return resp.json().get("error") or resp.text
    except ValueError:
        return resp.text


def call_chat(user_id: str, messages: list, base_url: str = BACKEND_URL):
    """Send the new turns to the chat endpoint and return the reply text."""
    resp = requests.post(
        f"{base_url}/api/chat",
        json={"userId": user_id, "messages": messages},
        timeout=TIMEOUT,
    )
    if resp.status_code != 200:
        raise RuntimeError(f"Backend error {resp.status_code}: {_error_text(resp)}")
    return resp.json().get("reply", "")


def call_upload(name: str, data: bytes, content_type: str, base_url: str = BACKEND_URL):
    resp = requests.post(
        f"{base_url}/api/upload",
        files={"file": (name, data, content_type)},
        timeout=TIMEOUT,
    )
    if resp.status_code != 200:
        raise RuntimeError(f"Upload failed {resp.status_code}: {_error_text(resp)}")
    return resp.json()


def clear_server_memory(user_id: str, base_url: str = BACKEND_URL) -> int:
    resp = requests.delete(f"{base_url}/api/memory/{user_id}", timeout=TIMEOUT)
    resp.raise_for_status()
    return resp.json().get("deleted", 0)


def compose_user_message(text: Optional[str], upload: Optional[dict] = None) -> str:
    """
    Build the chat turn for a send.

    Typed text comes first. An uploaded file adds a line naming it, followed
    by its AI summary when the backend produced one, so a file sent without
    any text still becomes a non-empty message.
    """
    text = (text or "").strip()
    if not upload:
        return text
    file_name = upload.get("file_name") or "file"
    summary = upload.get("ai_summary")
    if summary:
        note = f"Attached file '{file_name}' summary:\n{summary}"
    else:
        note = f"Attached file '{file_name}'"
    return f"{text}\n\n{note}".strip()
