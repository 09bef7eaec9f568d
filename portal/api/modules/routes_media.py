# routes_media.py
# Media library, quick capture, voice memos, and transcription.
# Loaded by dashboard.py via load_module()

import json
import base64
import binascii

from flask import request

from portal.agents import transcribe as transcriber
from portal.api.dashboard import (bp, auth_required, api_errors, ok, fail, not_found,
                                  body, uploaded_file)
from portal.core.security import rate_limit
from portal.crm import capture, media, voice_memos


def _form_tags() -> list:
    raw = request.form.get("tags") or ""
    if raw.startswith("["):
        return json.loads(raw)
    return [t.strip() for t in raw.split(",") if t.strip()]


def _decode(data: str) -> bytes:
    """Bytes from a base64 string or data URL."""
    try:
        return base64.b64decode(data.split(",", 1)[-1])
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid file data: {e}") from e


# ═══════════════════════════════════════════════════════════════════════════════
# Media library
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route("/api/media")
@auth_required
def api_media_list():
    args = request.args
    if args.get("linked_type") and args.get("linked_id"):
        if args.get("slot"):
            item = media.get_by_slot(args["linked_type"], args["linked_id"], args["slot"])
            return ok(media=[item] if item else [])
        return ok(media=media.get_for_record(args["linked_type"], args["linked_id"]))
    if args.get("tags"):
        return ok(media=media.search_by_tags(args["tags"].split(",")))
    if args.get("address"):
        return ok(media=media.get_by_address(args["address"]))
    return ok(media=media.search(args.get("q", "")))


@bp.route("/api/media/addresses")
@auth_required
def api_media_addresses():
    return ok(addresses=media.unique_addresses())


@bp.route("/api/media", methods=["POST"])
@auth_required
@rate_limit("upload")
@api_errors
def api_media_upload():
    files = [f for f in request.files.getlist("files") + request.files.getlist("file") if f.filename]
    if not files:
        return fail("No file uploaded")
    opts = {
        "address": request.form.get("address", ""),
        "linked_type": request.form.get("linked_type") or "general",
        "linked_id": request.form.get("linked_id") or None,
        "caption": request.form.get("caption", ""),
        "tags": _form_tags(),
        "client_id": request.form.get("client_id") or None,
    }
    if len(files) == 1:
        f = files[0]
        item = media.upload(f.read(), f.filename, f.mimetype, slot=request.form.get("slot") or None,
                            **opts)
        return ok(media=item), 201
    result = media.upload_multiple(
        [{"data": f.read(), "filename": f.filename, "mime_type": f.mimetype} for f in files],
        slot=request.form.get("slot") or None, **opts)
    return ok(**result), 201


@bp.route("/api/media/<media_id>")
@auth_required
def api_media_get(media_id):
    item = media.get_media(media_id)
    if not item:
        return not_found("Media not found")
    return ok(media=item)


@bp.route("/api/media/<media_id>", methods=["PUT"])
@auth_required
@api_errors
def api_media_update(media_id):
    return ok(media=media.update(media_id, body()))


@bp.route("/api/media/<media_id>", methods=["DELETE"])
@auth_required
def api_media_delete(media_id):
    if not media.delete(media_id):
        return not_found("Media not found")
    return ok()


# ═══════════════════════════════════════════════════════════════════════════════
# Quick capture
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route("/api/capture", methods=["POST"])
@auth_required
@rate_limit("upload")
@api_errors
def api_capture_save():
    """Batch save. JSON items carry base64 ``data``; multipart sends ``files``."""
    if request.files:
        items = [{"type": capture.detect_file_type(f.filename, f.mimetype),
                  "data": f.read(), "mime_type": f.mimetype}
                 for f in request.files.getlist("files") if f.filename]
        client_id = request.form.get("client_id")
        note = request.form.get("note", "")
    else:
        data = body()
        items = [dict(item, data=_decode(item.get("data") or "")) for item in data.get("items") or []]
        client_id = data.get("client_id")
        note = data.get("note", "")
    if not items:
        return fail("Nothing to save")
    return ok(**capture.save_batch(client_id, items, note)), 201


@bp.route("/api/capture/detect-clients", methods=["POST"])
@auth_required
def api_capture_detect_clients():
    return ok(clients=capture.detect_client_names(body().get("transcript", "")))


# ═══════════════════════════════════════════════════════════════════════════════
# Voice memos + transcription
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route("/api/voice-memos")
@auth_required
def api_voice_memos_list():
    return ok(memos=voice_memos.list_memos(
        client_id=request.args.get("client_id"), job_id=request.args.get("job_id"),
        limit=request.args.get("limit", 50, type=int)))


@bp.route("/api/voice-memos", methods=["POST"])
@auth_required
@rate_limit("upload")
@api_errors
def api_voice_memo_save():
    upload = uploaded_file("file") or uploaded_file("audio")
    if not upload:
        return fail("No audio uploaded")
    memo = voice_memos.save(
        upload[0],
        client_id=request.form.get("client_id") or None,
        job_id=request.form.get("job_id") or None,
        duration_seconds=request.form.get("duration_seconds", type=int),
        recorded_by=request.form.get("recorded_by") or None,
        transcribe=request.form.get("transcribe", "true").lower() != "false",
    )
    return ok(memo=memo), 201


@bp.route("/api/voice-memos/<memo_id>", methods=["PUT"])
@auth_required
@api_errors
def api_voice_memo_update(memo_id):
    return ok(memo=voice_memos.update_transcript(memo_id, body().get("transcript", "")))


@bp.route("/api/voice-memos/<memo_id>", methods=["DELETE"])
@auth_required
def api_voice_memo_delete(memo_id):
    if not voice_memos.delete(memo_id):
        return not_found("Voice memo not found")
    return ok()


@bp.route("/api/transcribe", methods=["POST"])
@auth_required
@rate_limit("ai")
def api_transcribe():
    upload = uploaded_file("file")
    if not upload:
        return fail("No audio uploaded")
    data, filename, _mime = upload
    result = transcriber.transcribe(data, filename=filename,
                                    language=request.form.get("language") or None,
                                    prompt=request.form.get("prompt") or None)
    if not result.get("ok"):
        return fail(result.get("error") or "Transcription failed", 502)
    return ok(text=result["text"])
