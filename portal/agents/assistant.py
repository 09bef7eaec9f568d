"""
assistant.py — Voice command parser for the field crew.

A spoken command ("show me the calendar", "find info on Johnson", "take a
picture") becomes an intent dict:

    {"action": "navigate|search|capture|create|info|schedule|unknown",
     "target": ..., "query": ..., "params": {...}, "confidence": 0.0-1.0}

Common phrasings are matched locally. Anything the local rules are not
confident about goes to gpt-4o-mini with the client list as context.
execute_intent() then turns the intent into a spoken/displayed response.
"""

import re
import logging

from portal.agents import llm
from portal.core.db import today
from portal.crm import clients, jobs

log = logging.getLogger("lava.assistant")

LOCAL_CONFIDENCE = 0.8
MAX_PROMPT_CLIENTS = 50
MAX_RESULTS = 5

NAME_PATTERN = re.compile(
    r"(?:info|find|look up|show me|about|on|for)\s+(?:the\s+)?([a-z]+(?:\s+[a-z]+)?)",
    re.IGNORECASE)

ROUTES = {
    "calendar": "/calendar/",
    "dashboard": "/",
    "packets": "/packets/",
    "clients": "/clients/",
    "jobs": "/jobs/",
    "media": "/media/",
    "inspections": "/inspections/",
    "crew": "/crew/",
    "reports": "/reports/",
}

CREATE_ROUTES = {
    "packet": "/packets/builder",
    "inspection": "/inspections/form",
    "job": "/jobs/new",
    "client": "/clients/?new=true",
}

SYSTEM_PROMPT = """You are a voice assistant for LAVA Roofing, a roofing company CRM app.
Parse the user's command into a structured intent.

Available clients: {clients}

Return JSON only with this structure:
{{
  "action": "navigate|search|capture|create|info|schedule|unknown",
  "target": "client|packet|inspection|job|calendar|dashboard|media",
  "query": "search term or client name if mentioned",
  "params": {{}},
  "confidence": 0.0-1.0
}}

Action types:
- navigate: Go to a page (calendar, packets, jobs, clients, dashboard)
- search: Find clients, jobs, or records
- capture: Take photo, video, or voice note
- create: Create new packet, inspection, job, or client
- info: Get information about a specific client or job
- schedule: Check or create calendar events

Examples:
"Show me the calendar" -> {{"action":"navigate","target":"calendar","confidence":0.95}}
"Find info on Johnson" -> {{"action":"info","target":"client","query":"Johnson","confidence":0.9}}
"Take a picture" -> {{"action":"capture","target":"media","params":{{"type":"photo"}},"confidence":0.95}}
"What jobs are scheduled this week" -> {{"action":"schedule","target":"job","query":"this week","confidence":0.85}}"""

UNKNOWN = {"action": "unknown", "confidence": 0.5}
ERROR_TEXT = "Sorry, I had trouble with that. Please try again."


def _has(cmd: str, *words) -> bool:
    return any(w in cmd for w in words)


def parse_local_intent(command: str, client_list: list = None) -> dict | None:
    """Rule-based intent for the commands crews say most. None if nothing matches."""
    cmd = (command or "").lower()

    if _has(cmd, "calendar", "schedule"):
        return {"action": "navigate", "target": "calendar", "confidence": 0.9}
    if _has(cmd, "dashboard", "home"):
        return {"action": "navigate", "target": "dashboard", "confidence": 0.9}
    if "packet" in cmd and _has(cmd, "show", "go", "open"):
        return {"action": "navigate", "target": "packets", "confidence": 0.9}
    if "client" in cmd and _has(cmd, "show", "list", "all"):
        return {"action": "navigate", "target": "clients", "confidence": 0.9}
    if "job" in cmd and _has(cmd, "show", "list"):
        return {"action": "navigate", "target": "jobs", "confidence": 0.9}

    if _has(cmd, "photo", "picture"):
        return {"action": "capture", "target": "media", "params": {"type": "photo"}, "confidence": 0.95}
    if "video" in cmd:
        return {"action": "capture", "target": "media", "params": {"type": "video"}, "confidence": 0.95}
    if _has(cmd, "voice", "memo"):
        return {"action": "capture", "target": "media", "params": {"type": "voice"}, "confidence": 0.95}

    if _has(cmd, "info", "find", "look up", "show me"):
        match = NAME_PATTERN.search(cmd)
        if match:
            query = match.group(1)
            for c in client_list or []:
                if query in (c.get("name") or "").lower():
                    return {"action": "info", "target": "client", "query": query,
                            "clientId": c["id"], "confidence": 0.85}
            return {"action": "search", "target": "client", "query": query, "confidence": 0.7}

    if "today" in cmd and _has(cmd, "schedule", "jobs"):
        return {"action": "schedule", "target": "job", "query": "today", "confidence": 0.9}
    return None


def parse_intent(command: str) -> dict:
    client_list = clients.list_clients()
    local = parse_local_intent(command, client_list)
    if local and local["confidence"] > LOCAL_CONFIDENCE:
        return local
    if not llm.is_available():
        return local or dict(UNKNOWN)

    names = ", ".join(c["name"] for c in client_list[:MAX_PROMPT_CLIENTS]) or "None loaded"
    result = llm.chat(
        [{"role": "system", "content": SYSTEM_PROMPT.format(clients=names)},
         {"role": "user", "content": command}],
        model="gpt-4o-mini", temperature=0.3, max_tokens=200,
    )
    if result.get("ok"):
        intent = llm.extract_json(result["text"])
        if intent and intent.get("action"):
            log.debug("Model intent for %r: %s", command, intent)
            return intent
        log.warning("Model reply had no usable intent: %r", result["text"][:120])
    return local or dict(UNKNOWN)


# ── Execution ─────────────────────────────────────────────────────────────────

def _plural(n: int, word: str) -> str:
    return f"{n} {word}{'s' if n != 1 else ''}"


def _navigate(intent: dict) -> dict:
    target = intent.get("target") or ""
    route = ROUTES.get(target)
    if not route:
        return {"text": f"I couldn't find the {target} page."}
    return {"text": f"Opening {target}...", "speech": f"Opening {target}",
            "target": target, "route": route}


def _search(intent: dict) -> dict:
    query = intent.get("query") or ""
    if intent.get("target") != "client":
        return {"text": f"Searching for {query}..."}
    matches = clients.list_clients(query)
    if not matches:
        return {"text": f'No clients found matching "{query}"',
                "speech": f"No clients found matching {query}", "results": []}
    word = "client" if len(matches) == 1 else "clients"
    return {
        "text": f'Found {len(matches)} {word} matching "{query}"',
        "speech": f"Found {len(matches)} {word}",
        "results": [{"id": c["id"], "name": c["name"], "address": c.get("address") or "",
                     "route": f"/clients/view?id={c['id']}"} for c in matches[:MAX_RESULTS]],
    }


def _capture(intent: dict) -> dict:
    kind = (intent.get("params") or {}).get("type") or "photo"
    return {"text": f"Opening camera for {kind}...", "speech": "Opening camera",
            "target": kind}


def _info(intent: dict) -> dict:
    query = (intent.get("query") or "").lower()
    client = clients.get_client(intent.get("clientId")) if intent.get("clientId") else None
    if not client and query:
        client = next((c for c in clients.list_clients()
                       if query in (c["name"] or "").lower()), None)
    if not client:
        return {"text": f'I couldn\'t find a client matching "{intent.get("query") or ""}"',
                "speech": "I couldn't find that client"}
    packets = client.get("total_packets") or 0
    speech = f"{client['name']}. {client.get('address') or 'No address on file'}. {packets} packets."
    return {
        "text": f"Here's info for {client['name']}",
        "speech": speech,
        "route": f"/clients/view?id={client['id']}",
        "results": [{
            "id": client["id"],
            "name": client["name"],
            "address": client.get("address") or "",
            "phone": client.get("phone") or "",
            "email": client.get("email") or "",
            "totalPackets": packets,
            "totalInspections": client.get("total_inspections") or 0,
            "totalMedia": client.get("total_media") or 0,
        }],
    }


def _schedule(intent: dict) -> dict:
    day = today()
    todays = jobs.list_jobs(start_date=day, end_date=day)
    if not todays:
        return {"text": "No jobs scheduled for today.", "speech": "No jobs scheduled for today",
                "route": ROUTES["calendar"], "results": []}
    summary = f"You have {_plural(len(todays), 'job')} scheduled today"
    return {
        "text": summary + ".",
        "speech": summary,
        "results": [{"id": j["id"], "title": j["title"] or j.get("client_name") or "Job",
                     "time": j["scheduled_time"] or "All day", "address": j["address"] or "",
                     "route": f"/jobs/view?id={j['id']}"} for j in todays],
    }


def _create(intent: dict) -> dict:
    target = intent.get("target") or ""
    route = CREATE_ROUTES.get(target)
    if not route:
        return {"text": "I'm not sure how to create that."}
    return {"text": f"Creating new {target}...", "speech": f"Creating new {target}",
            "target": target, "route": route}


_HANDLERS = {
    "navigate": _navigate,
    "search": _search,
    "capture": _capture,
    "info": _info,
    "schedule": _schedule,
    "create": _create,
}


def execute_intent(intent: dict) -> dict:
    action = (intent or {}).get("action") or "unknown"
    handler = _HANDLERS.get(action)
    if handler is None:
        response = {
            "text": "I'm not sure how to help with that. Try asking me to show clients, "
                    "take a photo, or check the schedule.",
            "speech": "I'm not sure how to help with that.",
        }
    else:
        response = handler(intent)
    response["action"] = action
    response.setdefault("speech", response["text"])
    return response


def process_command(command: str) -> dict:
    """Parse and execute one spoken command. Always returns a response dict."""
    if not command or not command.strip():
        return {"action": "unknown", "text": ERROR_TEXT, "speech": ERROR_TEXT}
    try:
        intent = parse_intent(command.strip())
        response = execute_intent(intent)
    except Exception as e:
        log.error("Assistant failed on %r: %s", command, e, exc_info=True)
        return {"action": "error", "text": ERROR_TEXT, "speech": ERROR_TEXT, "error": str(e)}
    response["intent"] = intent
    return response
