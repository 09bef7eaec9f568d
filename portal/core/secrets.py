"""
secrets.py — every credential the LAVA portal reads, in one registry.

Railway env vars:
  OPENAI_API_KEY        — Whisper transcription, assistant intent parsing, EagleView vision
  TWILIO_ACCOUNT_SID    — SMS notifications
  TWILIO_AUTH_TOKEN     — SMS notifications
  TWILIO_PHONE_NUMBER   — SMS sender number
  GMAIL_ADDRESS         — Outbound customer email sender
  GMAIL_PASSWORD        — Gmail app password
  DASH_USER             — Basic Auth username shown in the login prompt
  APP_PASSWORD          — Fallback staff password when none is stored in settings
  SECRET_KEY            — Flask session signing key
  PUBLIC_BASE_URL       — Base URL for portal links and file URLs

A feature (sms, email, transcription...) is live only when every key that
lists it is set. Email and SMS fall back to demo mode otherwise.
Values are never logged; sensitive ones are not even masked.
"""

import os
import logging

log = logging.getLogger("lava.secrets")

# name → env var, description, features it unlocks
_REGISTRY = {
    "openai":          {"env": "OPENAI_API_KEY", "sensitive": True,
                        "desc": "OpenAI key (whisper, assistant, EagleView)",
                        "features": ["transcription", "assistant", "eagleview"]},
    "twilio_sid":      {"env": "TWILIO_ACCOUNT_SID", "desc": "Twilio account SID",
                        "features": ["sms"]},
    "twilio_token":    {"env": "TWILIO_AUTH_TOKEN", "sensitive": True,
                        "desc": "Twilio auth token", "features": ["sms"]},
    "twilio_phone":    {"env": "TWILIO_PHONE_NUMBER", "desc": "Twilio sender number",
                        "features": ["sms"]},
    "gmail_address":   {"env": "GMAIL_ADDRESS", "desc": "Gmail sender for customer email",
                        "features": ["email"]},
    "gmail_password":  {"env": "GMAIL_PASSWORD", "sensitive": True,
                        "desc": "Gmail app password", "features": ["email"]},
    "dash_user":       {"env": "DASH_USER", "default": "lava",
                        "desc": "Username shown in the Basic Auth prompt", "features": []},
    "app_password":    {"env": "APP_PASSWORD", "sensitive": True,
                        "desc": "Staff password used until one is saved in settings",
                        "features": []},
    "secret_key":      {"env": "SECRET_KEY", "sensitive": True, "required": True,
                        "default": "lava-portal-dev", "desc": "Flask session signing key",
                        "features": []},
    "public_base_url": {"env": "PUBLIC_BASE_URL", "desc": "Base URL for portal and file links",
                        "features": []},
}


def get_key(name: str) -> str:
    """Value for a registry name: env var, then the entry's default, else ''."""
    entry = _REGISTRY.get(name)
    if entry is None:
        log.warning("Unknown secret requested: %s", name)
        return ""
    return os.environ.get(entry["env"]) or entry.get("default", "")


def mask(value: str) -> str:
    if not value:
        return "(not set)"
    if len(value) <= 12:
        return f"{value[:4]}****"
    return f"{value[:8]}****({len(value)} chars)"


def _features(values: dict) -> dict:
    needs = {}
    for name, entry in _REGISTRY.items():
        for feature in entry["features"]:
            needs.setdefault(feature, []).append(name)
    return {feature: all(values[n] for n in names) for feature, names in needs.items()}


def validate_all() -> dict:
    """Which secrets are set and which features are live. Never returns raw values."""
    values = {name: get_key(name) for name in _REGISTRY}
    secrets = {}
    for name, entry in _REGISTRY.items():
        val = values[name]
        if entry.get("sensitive"):
            shown = "set" if val else "not set"
        else:
            shown = mask(val)
        secrets[name] = {"env": entry["env"], "desc": entry["desc"], "set": bool(val),
                         "masked": shown, "required": entry.get("required", False),
                         "features": entry["features"]}

    warnings = [f"Required secret missing: {s['env']} ({s['desc']})"
                for s in secrets.values() if s["required"] and not s["set"]]
    configured = sum(1 for s in secrets.values() if s["set"])
    return {
        "secrets": secrets,
        "features": _features(values),
        "total": len(secrets),
        "set": configured,
        "missing": len(secrets) - configured,
        "warnings": warnings,
    }


def startup_check() -> dict:
    """Log what is configured at boot. Email and SMS without keys run in demo mode."""
    report = validate_all()
    log.info("Secrets: %d/%d configured", report["set"], report["total"])
    for warning in report["warnings"]:
        log.warning(warning)
    if not os.environ.get("SECRET_KEY"):
        log.warning("SECRET_KEY not set; sessions use the development key")

    live = sorted(f for f, on in report["features"].items() if on)
    demo = [f for f in ("email", "sms") if not report["features"].get(f)]
    log.info("Live integrations: %s", ", ".join(live) or "none")
    if demo:
        log.info("Demo mode (logged, not sent): %s", ", ".join(demo))
    return report
