"""
llm.py — thin OpenAI chat-completions client shared by the assistant and
EagleView extraction. Uses requests directly; no SDK.

Never raises: callers get {"ok": False, "error": ...} and decide on a fallback.
"""

import re
import json
import logging

import requests

from portal.core.secrets import get_key

log = logging.getLogger("lava.llm")

CHAT_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_TIMEOUT = 30


def is_available() -> bool:
    return bool(get_key("openai"))


def chat(messages: list, model: str = "gpt-4o-mini", temperature: float = 0.3,
         max_tokens: int = 200, timeout: int = DEFAULT_TIMEOUT) -> dict:
    """One chat completion. Returns {"ok": True, "text": str} on success."""
    api_key = get_key("openai")
    if not api_key:
        return {"ok": False, "error": "OPENAI_API_KEY not configured"}
    try:
        resp = requests.post(
            CHAT_URL,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            json={
                "model": model,
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
            timeout=timeout,
        )
        resp.raise_for_status()
        text = resp.json()["choices"][0]["message"]["content"] or ""
    except requests.RequestException as e:
        log.warning("OpenAI %s call failed: %s", model, e)
        return {"ok": False, "error": str(e)}
    except (KeyError, IndexError, ValueError) as e:
        log.warning("OpenAI %s returned an unexpected body: %s", model, e)
        return {"ok": False, "error": f"Unexpected response: {e}"}
    return {"ok": True, "text": text}


def extract_json(text: str) -> dict | None:
    """First {...} object in a model reply, tolerating ``` fences and chatter."""
    if not text:
        return None
    text = re.sub(r"^```\w*\n?|```$", "", text.strip()).strip()
    match = re.search(r"\{[\s\S]*\}", text)
    if not match:
        return None
    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
