"""
Estimate page — the contractor's price sheet shown inside a packet.

Uploaded as a screenshot or a PDF; always stored as a single WebP image.
"""

import logging

from portal.core import storage
from portal.crm import packets
from portal.forms import images

log = logging.getLogger("lava.estimate")

ACCEPTED_TYPES = ("image/png", "image/jpeg", "image/jpg", "image/webp", "application/pdf")


def estimate_path(packet_id: str) -> str:
    return f"{packets.BUCKET}/{packet_id}/estimate.webp"


def process_estimate(data: bytes, mime_type: str) -> bytes:
    """WebP bytes of the estimate, page 1 only for PDFs."""
    mime_type = (mime_type or "").lower()
    if mime_type not in ACCEPTED_TYPES:
        raise ValueError("Please upload a PNG, JPG, or PDF file")
    if mime_type == "application/pdf":
        page = images.pdf_first_page(data)
        return images.image_to_webp(page, max_edge=images.ESTIMATE_MAX_EDGE,
                                    quality=images.WEBP_QUALITY)
    return images.compress_to_webp(data, max_edge=images.ESTIMATE_MAX_EDGE,
                                   quality=images.WEBP_QUALITY)


def attach_to_packet(packet_id: str, data: bytes, mime_type: str, amount=None) -> dict:
    if not packets.get_packet(packet_id):
        raise LookupError(f"Packet {packet_id} not found")
    webp = process_estimate(data, mime_type)
    path = storage.upload(estimate_path(packet_id), webp, content_type="image/webp")
    estimate = {
        "storage_path": path,
        "url": storage.public_url(path),
        "amount": float(amount) if amount not in (None, "") else None,
    }
    packets.update_config(packet_id, estimate=estimate)
    log.info("Estimate attached (%d KB)", len(webp) // 1024, extra={"packet_id": packet_id})
    return estimate


def remove_from_packet(packet_id: str) -> bool:
    packet = packets.get_packet(packet_id)
    if not packet or not (packet["config"] or {}).get("estimate"):
        return False
    storage.remove(estimate_path(packet_id))
    packets.update_config(packet_id, estimate=None)
    return True
