# routes_ai.py
# Natural-language search and the voice assistant.
# Loaded by dashboard.py via load_module()

from flask import request

from portal.agents import assistant, search_agent
from portal.api.dashboard import bp, auth_required, ok, fail, body
from portal.core.security import rate_limit


@bp.route("/api/search")
@auth_required
@rate_limit("ai")
def api_search():
    return ok(**search_agent.search(request.args.get("q", "")))


@bp.route("/api/search/suggestions")
@auth_required
def api_search_suggestions():
    return ok(suggestions=search_agent.suggestions())


@bp.route("/api/assistant", methods=["POST"])
@auth_required
@rate_limit("ai")
def api_assistant():
    command = body().get("command") or ""
    if not command.strip():
        return fail("command is required")
    return ok(response=assistant.process_command(command))
