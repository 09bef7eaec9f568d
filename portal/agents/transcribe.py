"""
transcribe.py — Speech-to-text via OpenAI Whisper.

Used by voice memos, quick capture and the /api/transcribe route.
"""

import logging

import requests

from portal.core.secrets import get_key

log = logging.getLogger("lava.transcribe")

WHISPER_URL = "https://api.openai.com/v1/audio/transcriptions"
WHISPER_MODEL = "whisper-1"


def is_available() -> bool:
    return bool(get_key("openai"))


def transcribe(audio_bytes: bytes, filename: str = "audio.webm",
               language: str = None, prompt: str = None) -> dict:
    """Returns {"ok": True, "text": ...} or {"ok": False, "error": ...}."""
    api_key = get_key("openai")
    if not api_key:
        return {"ok": False, "error": "OPENAI_API_KEY not configured"}
    if not audio_bytes:
        return {"ok": False, "error": "No audio file provided"}

    form = {"model": WHISPER_MODEL, "response_format": "json"}
    if language:
        form["language"] = language
    if prompt:
        form["prompt"] = prompt

    log.info("Transcribing %s (%d bytes)", filename, len(audio_bytes))
    try:
        resp = requests.post(
            WHISPER_URL,
            headers={"Authorization": f"Bearer {api_key}"},
            data=form,
            files={"file": (filename or "audio.webm", audio_bytes)},
            timeout=60,
        )
        if not resp.ok:
            try:
                message = resp.json().get("error", {}).get("message")
            except ValueError:
                message = None
            log.warning("Whisper error %s: %s", resp.status_code, message or resp.text[:200])
            return {"ok": False, "error": message or "Transcription failed"}
        text = resp.json().get("text") or ""
    except requests.RequestException as e:
        log.warning("Whisper request failed: %s", e)
        return {"ok": False, "error": str(e)}
    except ValueError as e:
        return {"ok": False, "error": f"Bad response from whisper: {e}"}

    log.info("Transcription complete: %s...", text[:50])
    return {"ok": True, "text": text}
