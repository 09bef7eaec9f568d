"""
LAVA Packet & Inspection PDF Generator
========================================
Printable copies of a customer packet and of an inspection report, drawn
directly on a reportlab canvas.

Usage:
    from portal.forms.packet_pdf import generate_packet_pdf
    result = generate_packet_pdf(packets.get_packet(pid), "/tmp/packet.pdf")
"""

import io
import os
import base64
import logging
from datetime import datetime

from reportlab.lib.pagesizes import letter
from reportlab.lib.colors import Color, HexColor
from reportlab.lib.utils import simpleSplit, ImageReader
from reportlab.pdfgen import canvas

from portal.core import storage

log = logging.getLogger("lava.pdf")

# ── Colors (LAVA branding) ──
LAVA_RED = HexColor("#c2410c")
DARK     = HexColor("#1f2937")
BLACK    = HexColor("#000000")
WHITE    = HexColor("#FFFFFF")
GRAY     = HexColor("#555555")
RULE     = HexColor("#d1d5db")
ALT_ROW  = Color(0.96, 0.96, 0.97)

COMPANY = {
    "name":  "LAVA Roofing",
    "line1": "Honolulu, Hawaii",
    "web":   "lavaroofing.com",
}

PRODUCT_NAMES = {
    "standing-seam": "Standing Seam Metal Roof",
    "shingles": "Architectural Shingles",
    "brava": "Brava Synthetic Tile",
}

SLOT_LABELS = {
    "aerialImg": "Aerial View",
    "diagramImg": "Roof Diagram",
    "ssImg1": "Standing Seam",
    "ssImg2": "Standing Seam",
    "mlImg1": "Metal Profile",
    "mlImg2": "Metal Profile",
    "aboutImg": "About LAVA Roofing",
}

EAGLEVIEW_ROWS = (
    ("totalRoofArea", "Total Roof Area"),
    ("roofFacets", "Roof Facets"),
    ("predominantPitch", "Predominant Pitch"),
    ("ridgesHips", "Ridges / Hips"),
    ("valleys", "Valleys"),
    ("eaves", "Eaves"),
    ("rakes", "Rakes"),
    ("flashings", "Flashings"),
    ("propertyAddress", "Property Address"),
    ("reportDate", "Report Date"),
)

INSPECTION_SECTIONS = (
    ("concerns", "Customer Concerns"),
    ("roof", "Roof Details"),
    ("findings", "Findings"),
    ("recommendation", "Recommendation"),
    ("wrapup", "Wrap-up"),
)

PAGE_W, PAGE_H = letter  # 612 x 792
MARGIN_L = 40
MARGIN_R = 40
MARGIN_T = 40
MARGIN_B = 50
CONTENT_W = PAGE_W - MARGIN_L - MARGIN_R


def slot_label(slot_id: str) -> str:
    if slot_id in SLOT_LABELS:
        return SLOT_LABELS[slot_id]
    if slot_id.startswith("workImg"):
        return "Our Work"
    return slot_id.replace("_", " ").replace("-", " ").title()


def _stored_image(path: str):
    """ImageReader for a bucket object, or None when it can't be read."""
    if not path or not storage.exists(path):
        return None
    try:
        return ImageReader(io.BytesIO(storage.download(path)))
    except OSError as e:
        log.warning("Skipping unreadable image %s: %s", path, e)
        return None


def _data_url_image(data_url: str):
    if not data_url:
        return None
    encoded = data_url.split(",", 1)[-1]
    try:
        return ImageReader(io.BytesIO(base64.b64decode(encoded)))
    except (ValueError, OSError) as e:
        log.warning("Signature image unreadable: %s", e)
        return None


def _draw_header(c, title: str, subtitle: str = ""):
    """Brand bar across the top. Returns the y below it."""
    y = PAGE_H - MARGIN_T
    c.setFillColor(LAVA_RED)
    c.rect(MARGIN_L, y - 30, CONTENT_W, 30, fill=1, stroke=0)
    c.setFillColor(WHITE)
    c.setFont("Helvetica-Bold", 14)
    c.drawString(MARGIN_L + 10, y - 20, COMPANY["name"].upper())
    c.setFont("Helvetica", 9)
    c.drawRightString(PAGE_W - MARGIN_R - 10, y - 19, COMPANY["web"])

    y -= 56
    c.setFillColor(DARK)
    c.setFont("Helvetica-Bold", 18)
    c.drawString(MARGIN_L, y, title)
    if subtitle:
        y -= 16
        c.setFont("Helvetica", 10)
        c.setFillColor(GRAY)
        c.drawString(MARGIN_L, y, subtitle[:90])
    return y - 20


def _draw_footer(c, page_num: int):
    y = MARGIN_B - 20
    c.setStrokeColor(RULE)
    c.setLineWidth(0.5)
    c.line(MARGIN_L, y + 12, PAGE_W - MARGIN_R, y + 12)
    c.setFont("Helvetica", 7.5)
    c.setFillColor(GRAY)
    c.drawString(MARGIN_L, y, f"{COMPANY['name']} | {COMPANY['line1']}")
    c.drawRightString(PAGE_W - MARGIN_R, y, f"Page {page_num}")


def _draw_image_box(c, img, x, y_top, max_w, max_h):
    """Fit img inside the box anchored at its top-left. Returns the bottom y."""
    iw, ih = img.getSize()
    scale = min(max_w / iw, max(max_h, 1) / ih, 1.0)
    w, h = iw * scale, ih * scale
    c.drawImage(img, x + (max_w - w) / 2, y_top - h, width=w, height=h,
                preserveAspectRatio=True, mask="auto")
    return y_top - h


def _draw_wrapped(c, text: str, x, y, width, font="Helvetica", size=10, leading=13):
    c.setFont(font, size)
    for line in simpleSplit(str(text), font, size, width):
        if y < MARGIN_B + 20:
            break
        c.drawString(x, y, line)
        y -= leading
    return y


def _draw_kv_table(c, y, rows, label_w=170):
    """Two-column label/value table with alternating row shading."""
    row_h = 18
    for idx, (label, value) in enumerate(rows):
        if idx % 2 == 1:
            c.setFillColor(ALT_ROW)
            c.rect(MARGIN_L, y - row_h, CONTENT_W, row_h, fill=1, stroke=0)
        c.setFillColor(DARK)
        c.setFont("Helvetica-Bold", 9)
        c.drawString(MARGIN_L + 6, y - 12, label)
        c.setFont("Helvetica", 9)
        c.setFillColor(BLACK)
        text = "-" if value in (None, "") else str(value)
        c.drawString(MARGIN_L + label_w, y - 12, text[:80])
        y -= row_h
    c.setStrokeColor(RULE)
    c.line(MARGIN_L, y, PAGE_W - MARGIN_R, y)
    return y - 10


# ── Packet ────────────────────────────────────────────────────────────────────

def _cover_page(c, packet):
    fields = packet.get("fields") or {}
    config = packet.get("config") or {}
    product = packet.get("product_type") or config.get("productType") or ""
    y = _draw_header(c, "Roofing Proposal", "Prepared for")

    c.setFillColor(BLACK)
    c.setFont("Helvetica-Bold", 22)
    c.drawString(MARGIN_L, y - 10, (packet.get("customer_name") or "Homeowner")[:40])
    y -= 34
    c.setFont("Helvetica", 12)
    c.setFillColor(GRAY)
    c.drawString(MARGIN_L, y, (packet.get("customer_address") or "")[:80])
    y -= 30

    created = (packet.get("created_at") or "")[:10] or datetime.now().strftime("%Y-%m-%d")
    rows = [
        ("Roof System", PRODUCT_NAMES.get(product, product or "-")),
        ("Proposal Date", created),
    ]
    for key, label in (("roofArea", "Roof Area"), ("pitch", "Pitch"),
                       ("customerPhone", "Phone"), ("customerEmail", "Email")):
        if fields.get(key):
            rows.append((label, fields[key]))
    y = _draw_kv_table(c, y, rows)

    cover = (packet.get("photos") or {}).get("aerialImg")
    img = _stored_image(cover["storage_path"]) if cover else None
    if img:
        _draw_image_box(c, img, MARGIN_L, y - 10, CONTENT_W, y - MARGIN_B - 30)


def _photo_pages(c, packet, page_num):
    fields = packet.get("fields") or {}
    for slot_id, photo in sorted((packet.get("photos") or {}).items()):
        if slot_id == "aerialImg":
            continue
        img = _stored_image(photo.get("storage_path"))
        if not img:
            continue
        c.showPage()
        page_num += 1
        y = _draw_header(c, slot_label(slot_id))
        bottom = _draw_image_box(c, img, MARGIN_L, y, CONTENT_W, y - MARGIN_B - 80)
        caption = fields.get(f"{slot_id}Caption") or fields.get(slot_id.replace("Img", "Caption"))
        if caption:
            c.setFillColor(GRAY)
            _draw_wrapped(c, caption, MARGIN_L, bottom - 18, CONTENT_W, size=10)
        _draw_footer(c, page_num)
    return page_num


def _estimate_page(c, estimate, page_num):
    img = _stored_image(estimate.get("storage_path"))
    if not img:
        return page_num
    c.showPage()
    page_num += 1
    amount = estimate.get("amount")
    subtitle = f"Total: ${float(amount):,.2f}" if amount not in (None, "") else ""
    y = _draw_header(c, "Estimate", subtitle)
    _draw_image_box(c, img, MARGIN_L, y, CONTENT_W, y - MARGIN_B - 20)
    _draw_footer(c, page_num)
    return page_num


def _eagleview_page(c, report, page_num):
    c.showPage()
    page_num += 1
    y = _draw_header(c, "Roof Measurements", "From EagleView aerial report")
    _draw_kv_table(c, y, [(label, report.get(key)) for key, label in EAGLEVIEW_ROWS])
    _draw_footer(c, page_num)
    return page_num


def _signature_block(c, signature, page_num):
    c.showPage()
    page_num += 1
    y = _draw_header(c, "Acceptance")
    c.setFillColor(BLACK)
    y = _draw_wrapped(c, "By signing below the customer accepts this proposal.",
                      MARGIN_L, y, CONTENT_W)
    y -= 20
    img = _data_url_image(signature.get("signature_data"))
    if img:
        y = _draw_image_box(c, img, MARGIN_L, y, 240, 90) - 6
    c.setStrokeColor(DARK)
    c.line(MARGIN_L, y, MARGIN_L + 260, y)
    c.setFont("Helvetica", 9)
    c.setFillColor(GRAY)
    c.drawString(MARGIN_L, y - 12, signature.get("signer_name") or "")
    c.drawString(MARGIN_L, y - 24, f"Signed {(signature.get('signed_at') or '')[:10]}")
    _draw_footer(c, page_num)
    return page_num


def generate_packet_pdf(packet: dict, output_path: str) -> dict:
    """Render a packet (as returned by packets.get_packet, plus an optional
    ``signature`` key) to output_path.
    """
    config = packet.get("config") or {}
    os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)

    c = canvas.Canvas(output_path, pagesize=letter)
    c.setTitle(f"Proposal - {packet.get('customer_name') or packet.get('id')}")
    c.setAuthor(COMPANY["name"])

    _cover_page(c, packet)
    _draw_footer(c, 1)
    pages = _photo_pages(c, packet, 1)
    if config.get("estimate"):
        pages = _estimate_page(c, config["estimate"], pages)
    if config.get("eagleview"):
        pages = _eagleview_page(c, config["eagleview"], pages)
    if packet.get("signature"):
        pages = _signature_block(c, packet["signature"], pages)
    c.save()

    log.info("Packet PDF generated: %s (%d pages)", output_path, pages,
             extra={"packet_id": packet.get("id")})
    return {"ok": True, "path": output_path, "pages": pages}


# ── Inspection ────────────────────────────────────────────────────────────────

def _section_rows(section) -> list:
    if isinstance(section, dict):
        rows = []
        for key, value in section.items():
            if isinstance(value, list):
                value = ", ".join(str(v) for v in value)
            elif isinstance(value, bool):
                value = "Yes" if value else "No"
            rows.append((key.replace("_", " ").capitalize(), value))
        return rows
    return [("Notes", section)] if section else []


def generate_inspection_pdf(inspection: dict, output_path: str) -> dict:
    os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
    c = canvas.Canvas(output_path, pagesize=letter)
    c.setTitle(f"Inspection - {inspection.get('customer_name') or inspection.get('id')}")
    c.setAuthor(COMPANY["name"])

    page_num = 1
    y = _draw_header(c, "Roof Inspection Report", inspection.get("customer_address") or "")
    y = _draw_kv_table(c, y, [
        ("Customer", inspection.get("customer_name")),
        ("Phone", inspection.get("customer_phone")),
        ("Email", inspection.get("customer_email")),
        ("Inspection Date", inspection.get("inspection_date")),
        ("Inspector", inspection.get("inspector_name")),
        ("Status", (inspection.get("status") or "draft").capitalize()),
    ])

    for key, title in INSPECTION_SECTIONS:
        rows = _section_rows(inspection.get(key))
        if not rows:
            continue
        if y - 30 - 18 * len(rows) < MARGIN_B:
            _draw_footer(c, page_num)
            c.showPage()
            page_num += 1
            y = _draw_header(c, "Roof Inspection Report")
        c.setFillColor(LAVA_RED)
        c.setFont("Helvetica-Bold", 12)
        c.drawString(MARGIN_L, y - 4, title)
        y = _draw_kv_table(c, y - 12, rows)
    _draw_footer(c, page_num)

    for category, photos in (inspection.get("photos") or {}).items():
        for photo in photos:
            img = _stored_image(photo.get("storage_path"))
            if not img:
                continue
            c.showPage()
            page_num += 1
            y = _draw_header(c, category.replace("_", " ").title())
            bottom = _draw_image_box(c, img, MARGIN_L, y, CONTENT_W, y - MARGIN_B - 80)
            if photo.get("caption"):
                c.setFillColor(GRAY)
                _draw_wrapped(c, photo["caption"], MARGIN_L, bottom - 18, CONTENT_W)
            _draw_footer(c, page_num)
    c.save()

    log.info("Inspection PDF generated: %s (%d pages)", output_path, page_num)
    return {"ok": True, "path": output_path, "pages": page_num}
