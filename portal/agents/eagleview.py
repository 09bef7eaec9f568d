"""
eagleview.py — Pull roof measurements out of an EagleView report.

The report (PDF or a screenshot of it) is reduced to one image and sent to
gpt-4o vision. The reply is a flat dict with the REPORT_KEYS below; any key
the model could not read is None.
"""

import base64
import logging

from PIL import Image, UnidentifiedImageError

from portal.agents import llm
from portal.forms import images

log = logging.getLogger("lava.eagleview")

VISION_MODEL = "gpt-4o"
MAX_EDGE = 2000

REPORT_KEYS = ("totalRoofArea", "roofFacets", "predominantPitch", "ridgesHips", "valleys",
               "eaves", "rakes", "flashings", "propertyAddress", "reportDate")

# report key → packet text field
FIELD_MAP = {
    "totalRoofArea": "roofArea",
    "roofFacets": "roofFacets",
    "predominantPitch": "pitch",
    "ridgesHips": "ridgesHips",
    "propertyAddress": "customerAddress",
}

PROMPT = """Analyze this EagleView roof report image and extract the following information. Return ONLY a JSON object with these exact keys (use null if not found):

{
    "totalRoofArea": "total roof area in sq ft (e.g., '2,847 sq ft')",
    "roofFacets": "number of roof facets (e.g., '12 facets')",
    "predominantPitch": "main roof pitch (e.g., '4/12')",
    "ridgesHips": "total ridges and hips length (e.g., '245 ft')",
    "valleys": "total valleys length if shown",
    "eaves": "total eaves length if shown",
    "rakes": "total rakes length if shown",
    "flashings": "flashing details if shown",
    "propertyAddress": "property address if visible",
    "reportDate": "report date if visible"
}

Only return the JSON object, no other text."""


def _report_image(data: bytes, mime_type: str) -> bytes:
    """WebP bytes of the page we send to the model."""
    if (mime_type or "").lower() == "application/pdf":
        return images.image_to_webp(images.pdf_first_page(data), max_edge=MAX_EDGE)
    return images.compress_to_webp(data, max_edge=MAX_EDGE)


def extract(data: bytes, mime_type: str) -> dict:
    """Returns {"ok": True, "data": {key: value-or-None}} or {"ok": False, "error": ...}."""
    if not data:
        return {"ok": False, "error": "No report uploaded"}
    if not llm.is_available():
        return {"ok": False, "error": "OPENAI_API_KEY not configured"}
    try:
        image = _report_image(data, mime_type)
    except (ValueError, UnidentifiedImageError, Image.DecompressionBombError) as e:
        return {"ok": False, "error": str(e)}

    data_url = "data:image/webp;base64," + base64.b64encode(image).decode("ascii")
    result = llm.chat(
        [{"role": "user", "content": [
            {"type": "text", "text": PROMPT},
            {"type": "image_url", "image_url": {"url": data_url, "detail": "high"}},
        ]}],
        model=VISION_MODEL, temperature=0, max_tokens=1000, timeout=90,
    )
    if not result.get("ok"):
        return result

    parsed = llm.extract_json(result["text"])
    if parsed is None:
        log.warning("EagleView reply was not JSON: %r", result["text"][:200])
        return {"ok": False, "error": "Could not parse report data"}
    report = {k: (parsed.get(k) or None) for k in REPORT_KEYS}
    found = sum(1 for v in report.values() if v)
    log.info("EagleView extraction: %d/%d fields", found, len(REPORT_KEYS))
    return {"ok": True, "data": report}


def packet_fields(report: dict) -> dict:
    """Packet text fields filled from a report, skipping empty values."""
    return {field: report[key] for key, field in FIELD_MAP.items() if report.get(key)}
