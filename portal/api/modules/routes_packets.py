# routes_packets.py
# Packets (photos, estimate, EagleView, PDF) and inspections.
# Loaded by dashboard.py via load_module()

import os

from flask import request, send_file

from portal.agents import eagleview
from portal.api.dashboard import (bp, auth_required, api_errors, ok, fail, not_found,
                                  body, uploaded_file)
from portal.core.security import rate_limit
from portal.crm import inspections, jobs, packets, signatures
from portal.forms import estimate as estimate_form


def _photo_upload():
    upload = uploaded_file("photo") or uploaded_file("file")
    if not upload:
        raise ValueError("No photo uploaded")
    return upload[0]


# ═══════════════════════════════════════════════════════════════════════════════
# Packets
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route("/api/packets")
@auth_required
def api_packets_list():
    return ok(packets=packets.list_packets())


@bp.route("/api/packets", methods=["POST"])
@auth_required
@api_errors
def api_packets_save():
    packet_id = packets.save_packet(body())
    return ok(id=packet_id, packet=packets.get_packet(packet_id))


@bp.route("/api/packets/<packet_id>")
@auth_required
def api_packet_get(packet_id):
    packet = packets.get_packet(packet_id)
    if not packet:
        return not_found("Packet not found")
    packet["signature"] = signatures.get_for_packet(packet_id)
    return ok(packet=packet)


@bp.route("/api/packets/<packet_id>", methods=["PUT"])
@auth_required
@api_errors
def api_packet_update(packet_id):
    if not packets.get_packet(packet_id):
        return not_found("Packet not found")
    data = dict(body(), id=packet_id)
    packets.save_packet(data)
    return ok(packet=packets.get_packet(packet_id))


@bp.route("/api/packets/<packet_id>", methods=["DELETE"])
@auth_required
def api_packet_delete(packet_id):
    if not packets.delete_packet(packet_id):
        return not_found("Packet not found")
    return ok()


@bp.route("/api/packets/<packet_id>/photos/<slot_id>", methods=["POST"])
@auth_required
@rate_limit("upload")
@api_errors
def api_packet_photo_upload(packet_id, slot_id):
    zoom = request.form.get("zoom", 1, type=float)
    position = None
    if request.form.get("x") is not None and request.form.get("y") is not None:
        position = {"x": request.form.get("x", type=float), "y": request.form.get("y", type=float)}
    photo = packets.upload_photo(packet_id, slot_id, _photo_upload(), position=position, zoom=zoom)
    return ok(photo=photo)


@bp.route("/api/packets/<packet_id>/photos/<slot_id>", methods=["PUT"])
@auth_required
def api_packet_photo_position(packet_id, slot_id):
    data = body()
    if not packets.update_photo_position(packet_id, slot_id, data.get("position"), data.get("zoom")):
        return not_found("Photo not found")
    return ok()


@bp.route("/api/packets/<packet_id>/photos/<slot_id>", methods=["DELETE"])
@auth_required
def api_packet_photo_delete(packet_id, slot_id):
    if not packets.delete_photo(packet_id, slot_id):
        return not_found("Photo not found")
    return ok()


@bp.route("/api/packets/<packet_id>/estimate", methods=["POST"])
@auth_required
@rate_limit("upload")
@api_errors
def api_packet_estimate(packet_id):
    upload = uploaded_file("file")
    if not upload:
        return fail("No estimate uploaded")
    data, _filename, mime_type = upload
    estimate = packets.set_estimate(packet_id, data, mime_type, amount=request.form.get("amount"))
    return ok(estimate=estimate)


@bp.route("/api/packets/<packet_id>/estimate", methods=["DELETE"])
@auth_required
def api_packet_estimate_delete(packet_id):
    if not estimate_form.remove_from_packet(packet_id):
        return not_found("No estimate on this packet")
    return ok()


@bp.route("/api/packets/<packet_id>/eagleview", methods=["POST"])
@auth_required
@rate_limit("ai")
@api_errors
def api_packet_eagleview(packet_id):
    """Extract measurements from an uploaded report, or store posted JSON as-is."""
    if not packets.get_packet(packet_id):
        return not_found("Packet not found")
    upload = uploaded_file("file")
    if upload:
        data, _filename, mime_type = upload
        result = eagleview.extract(data, mime_type)
        if not result.get("ok"):
            return fail(result.get("error") or "Extraction failed", 502)
        report = result["data"]
    else:
        report = body().get("eagleview") or body()
    config = packets.set_eagleview(packet_id, report)
    return ok(eagleview=config["eagleview"], fields=eagleview.packet_fields(report))


@bp.route("/api/packets/<packet_id>/pdf")
@auth_required
@api_errors
def api_packet_pdf(packet_id):
    result = packets.render_pdf(packet_id)
    return send_file(result["path"], mimetype="application/pdf", as_attachment=True,
                     download_name=os.path.basename(result["path"]))


@bp.route("/api/packets/<packet_id>/job", methods=["POST"])
@auth_required
@api_errors
def api_packet_create_job(packet_id):
    return ok(job=jobs.create_from_packet(packet_id)), 201


@bp.route("/api/packets/<packet_id>/signature")
@auth_required
def api_packet_signature(packet_id):
    sig = signatures.get_for_packet(packet_id)
    return ok(signed=sig is not None, signature=sig)


# ═══════════════════════════════════════════════════════════════════════════════
# Inspections
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route("/api/inspections")
@auth_required
def api_inspections_list():
    return ok(inspections=inspections.list_inspections())


@bp.route("/api/inspections", methods=["POST"])
@auth_required
@api_errors
def api_inspections_save():
    inspection_id = inspections.save_inspection(body())
    return ok(id=inspection_id, inspection=inspections.get_inspection(inspection_id))


@bp.route("/api/inspections/<inspection_id>")
@auth_required
def api_inspection_get(inspection_id):
    inspection = inspections.get_inspection(inspection_id)
    if not inspection:
        return not_found("Inspection not found")
    return ok(inspection=inspection)


@bp.route("/api/inspections/<inspection_id>", methods=["PUT"])
@auth_required
@api_errors
def api_inspection_update(inspection_id):
    if not inspections.get_inspection(inspection_id):
        return not_found("Inspection not found")
    inspections.save_inspection(dict(body(), id=inspection_id))
    return ok(inspection=inspections.get_inspection(inspection_id))


@bp.route("/api/inspections/<inspection_id>", methods=["DELETE"])
@auth_required
def api_inspection_delete(inspection_id):
    if not inspections.delete_inspection(inspection_id):
        return not_found("Inspection not found")
    return ok()


@bp.route("/api/inspections/<inspection_id>/complete", methods=["POST"])
@auth_required
@api_errors
def api_inspection_complete(inspection_id):
    return ok(inspection=inspections.complete_inspection(inspection_id))


@bp.route("/api/inspections/<inspection_id>/photos", methods=["POST"])
@auth_required
@rate_limit("upload")
@api_errors
def api_inspection_photo_upload(inspection_id):
    photo = inspections.upload_photo(inspection_id, request.form.get("category") or "",
                                     _photo_upload(), caption=request.form.get("caption", ""))
    return ok(photo=photo)


@bp.route("/api/inspections/photos/<photo_id>", methods=["PUT"])
@auth_required
def api_inspection_photo_caption(photo_id):
    if not inspections.update_caption(photo_id, body().get("caption", "")):
        return not_found("Photo not found")
    return ok()


@bp.route("/api/inspections/photos/<photo_id>", methods=["DELETE"])
@auth_required
def api_inspection_photo_delete(photo_id):
    if not inspections.delete_photo(photo_id):
        return not_found("Photo not found")
    return ok()


@bp.route("/api/inspections/<inspection_id>/pdf")
@auth_required
@api_errors
def api_inspection_pdf(inspection_id):
    result = inspections.render_pdf(inspection_id)
    return send_file(result["path"], mimetype="application/pdf", as_attachment=True,
                     download_name=os.path.basename(result["path"]))
