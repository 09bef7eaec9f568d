"""External service integrations.

Modules:
    llm            — OpenAI chat completions (shared)
    transcribe     — Whisper speech-to-text for voice memos and capture
    assistant      — Voice command parser for the field crew
    search_agent   — Natural-language search across records
    eagleview      — Roof measurements from EagleView reports (vision)
    notify_agent   — Customer email/SMS and portal links
"""
