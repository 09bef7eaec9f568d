"""Tests for packets, slot photos, estimates, image helpers and the PDF generator."""

import io

import pytest
from PIL import Image
from pypdf import PdfReader

from conftest import make_image
from portal.core import storage
from portal.crm import clients, inspections, packets, signatures
from portal.forms import estimate, images, packet_pdf

SIGNATURE_PNG = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg=="


def _pdf_pages(path):
    with open(path, "rb") as f:
        return len(PdfReader(io.BytesIO(f.read())).pages)


# ═══════════════════════════════════════════════════════════════════════════════
# IMAGES
# ═══════════════════════════════════════════════════════════════════════════════

class TestImages:
    def test_fit_within(self):
        assert images.fit_within(800, 600, 1200) == (800, 600)
        assert images.fit_within(2400, 1200, 1200) == (1200, 600)
        assert images.fit_within(1000, 3000, 1500) == (500, 1500)

    def test_compress_to_webp_resizes(self):
        webp = images.compress_to_webp(make_image(3000, 1500))
        with Image.open(io.BytesIO(webp)) as img:
            assert img.format == "WEBP"
            assert img.size == (1200, 600)

    def test_compress_keeps_small_size(self, png_bytes):
        with Image.open(io.BytesIO(images.compress_to_webp(png_bytes))) as img:
            assert img.size == (64, 48)

    def test_compress_rejects_non_image(self):
        with pytest.raises(ValueError):
            images.compress_to_webp(b"not an image")

    def test_is_image(self):
        assert images.is_image("image/heic")
        assert not images.is_image("video/mp4")
        assert not images.is_image("")

    def test_pdf_first_page(self, pdf_bytes):
        page = images.pdf_first_page(pdf_bytes, resolution=36)
        assert page.width > 0 and page.height > page.width

    def test_pdf_first_page_bad_pdf(self):
        with pytest.raises(ValueError):
            images.pdf_first_page(b"not a pdf")


# ═══════════════════════════════════════════════════════════════════════════════
# PACKETS
# ═══════════════════════════════════════════════════════════════════════════════

class TestPackets:
    def test_list_newest_first(self):
        a = packets.save_packet({"customer_name": "A"})
        b = packets.save_packet({"customer_name": "B"})
        assert [p["id"] for p in packets.list_packets()] == [b, a]

    def test_save_defaults(self):
        pid = packets.save_packet({"fields": {"customerName": "Nalu"}})
        packet = packets.get_packet(pid)
        assert packet["customer_name"] == "Nalu"
        assert packet["product_type"] == "standing-seam"
        assert packet["photos"] == {}

    def test_update_keeps_existing_values(self, sample_packet):
        packets.save_packet({"id": sample_packet["id"], "config": {"productType": "brava"},
                             "product_type": "brava"})
        packet = packets.get_packet(sample_packet["id"])
        assert packet["customer_name"] == "Keoni Kahale"
        assert packet["fields"]["customerPhone"] == "808-555-0142"
        assert packet["product_type"] == "brava"

    def test_update_without_product_keeps_it(self):
        pid = packets.save_packet({"customer_name": "Ana", "product_type": "shingles"})
        packets.save_packet({"id": pid, "fields": {"customerName": "Ana", "customerPhone": "808"}})
        assert packets.get_packet(pid)["product_type"] == "shingles"

    def test_put_fields_keeps_product(self, client):
        pid = packets.save_packet({"customer_name": "Ana", "product_type": "brava"})
        r = client.put(f"/api/packets/{pid}", json={"fields": {"customerName": "Ana"}})
        assert r.status_code == 200
        assert packets.get_packet(pid)["product_type"] == "brava"

    def test_get_missing(self):
        assert packets.get_packet("nope") is None

    def test_update_config_merges_and_drops(self, sample_packet):
        packets.update_config(sample_packet["id"], a=1, b=2)
        config = packets.update_config(sample_packet["id"], a=None, c=3)
        assert config == {"b": 2, "c": 3}

    def test_update_config_missing(self):
        with pytest.raises(LookupError):
            packets.update_config("nope", a=1)

    def test_delete_removes_objects(self, sample_packet, jpeg_bytes):
        packets.upload_photo(sample_packet["id"], "aerialImg", jpeg_bytes)
        assert packets.delete_packet(sample_packet["id"]) is True
        assert storage.list_objects(f"packets/{sample_packet['id']}/") == []
        assert clients.get_client(sample_packet["client_id"])["total_packets"] == 0
        assert packets.delete_packet(sample_packet["id"]) is False

    def test_set_eagleview(self, sample_packet):
        packets.set_eagleview(sample_packet["id"], {"totalRoofArea": "2,450 sq ft"})
        assert packets.get_packet(sample_packet["id"])["config"]["eagleview"]["totalRoofArea"] == "2,450 sq ft"


class TestPacketPhotos:
    def test_upload_stores_webp(self, sample_packet, jpeg_bytes):
        photo = packets.upload_photo(sample_packet["id"], "ssImg1", jpeg_bytes)
        assert photo["storage_path"] == f"packets/{sample_packet['id']}/ssImg1.webp"
        stored = packets.get_packet(sample_packet["id"])["photos"]["ssImg1"]
        assert stored["position"] == {"x": 50, "y": 50}
        assert stored["zoom"] == 1
        with Image.open(io.BytesIO(storage.download(photo["storage_path"]))) as img:
            assert img.format == "WEBP"

    def test_upload_replaces_slot(self, sample_packet, jpeg_bytes, png_bytes):
        packets.upload_photo(sample_packet["id"], "ssImg1", jpeg_bytes)
        packets.upload_photo(sample_packet["id"], "ssImg1", png_bytes, position={"x": 10, "y": 20}, zoom=1.5)
        photos = packets.get_packet(sample_packet["id"])["photos"]
        assert list(photos) == ["ssImg1"]
        assert photos["ssImg1"]["position"] == {"x": 10, "y": 20}
        assert photos["ssImg1"]["zoom"] == 1.5

    def test_upload_missing_packet(self, jpeg_bytes):
        with pytest.raises(LookupError):
            packets.upload_photo("nope", "ssImg1", jpeg_bytes)

    def test_upload_not_an_image(self, sample_packet):
        with pytest.raises(ValueError):
            packets.upload_photo(sample_packet["id"], "ssImg1", b"garbage")

    def test_update_position(self, sample_packet, jpeg_bytes):
        packets.upload_photo(sample_packet["id"], "ssImg1", jpeg_bytes)
        assert packets.update_photo_position(sample_packet["id"], "ssImg1", zoom=2)
        assert packets.get_packet(sample_packet["id"])["photos"]["ssImg1"]["zoom"] == 2
        assert not packets.update_photo_position(sample_packet["id"], "ssImg1")
        assert not packets.update_photo_position(sample_packet["id"], "other", zoom=2)

    def test_delete_photo(self, sample_packet, jpeg_bytes):
        photo = packets.upload_photo(sample_packet["id"], "ssImg1", jpeg_bytes)
        assert packets.delete_photo(sample_packet["id"], "ssImg1")
        assert not storage.exists(photo["storage_path"])
        assert not packets.delete_photo(sample_packet["id"], "ssImg1")


# ═══════════════════════════════════════════════════════════════════════════════
# ESTIMATE
# ═══════════════════════════════════════════════════════════════════════════════

class TestEstimate:
    def test_rejects_unknown_type(self):
        with pytest.raises(ValueError, match="PNG, JPG, or PDF"):
            estimate.process_estimate(b"x", "text/plain")

    def test_image_resized_to_estimate_edge(self):
        webp = estimate.process_estimate(make_image(2800, 1400, fmt="PNG"), "image/png")
        with Image.open(io.BytesIO(webp)) as img:
            assert img.format == "WEBP"
            assert img.size == (1400, 700)

    def test_pdf_rasterised(self, pdf_bytes):
        webp = estimate.process_estimate(pdf_bytes, "application/pdf")
        with Image.open(io.BytesIO(webp)) as img:
            assert img.format == "WEBP"

    def test_attach_sets_config(self, sample_packet, jpeg_bytes):
        result = estimate.attach_to_packet(sample_packet["id"], jpeg_bytes, "image/jpeg", amount="18500")
        assert result["storage_path"] == f"packets/{sample_packet['id']}/estimate.webp"
        assert result["amount"] == 18500.0
        config = packets.get_packet(sample_packet["id"])["config"]
        assert config["estimate"] == result

    def test_attach_blank_amount(self, sample_packet, jpeg_bytes):
        assert packets.set_estimate(sample_packet["id"], jpeg_bytes, "image/jpeg", amount="")["amount"] is None

    def test_attach_missing_packet(self, jpeg_bytes):
        with pytest.raises(LookupError):
            estimate.attach_to_packet("nope", jpeg_bytes, "image/jpeg")

    def test_remove(self, sample_packet, jpeg_bytes):
        estimate.attach_to_packet(sample_packet["id"], jpeg_bytes, "image/jpeg")
        assert estimate.remove_from_packet(sample_packet["id"]) is True
        assert "estimate" not in packets.get_packet(sample_packet["id"])["config"]
        assert not storage.exists(estimate.estimate_path(sample_packet["id"]))
        assert estimate.remove_from_packet(sample_packet["id"]) is False


# ═══════════════════════════════════════════════════════════════════════════════
# PDF GENERATION
# ═══════════════════════════════════════════════════════════════════════════════

class TestPacketPdf:
    def test_slot_labels(self):
        assert packet_pdf.slot_label("aerialImg") == "Aerial View"
        assert packet_pdf.slot_label("workImg3") == "Our Work"
        assert packet_pdf.slot_label("gutter_detail") == "Gutter Detail"

    def test_cover_only(self, sample_packet):
        result = packets.render_pdf(sample_packet["id"])
        assert result["ok"] is True
        assert result["pages"] == 1
        assert _pdf_pages(result["path"]) == 1

    def test_full_packet(self, sample_packet, jpeg_bytes):
        pid = sample_packet["id"]
        packets.upload_photo(pid, "aerialImg", jpeg_bytes)
        packets.upload_photo(pid, "ssImg1", jpeg_bytes)
        packets.upload_photo(pid, "workImg1", jpeg_bytes)
        packets.set_estimate(pid, jpeg_bytes, "image/jpeg", amount=12000)
        packets.set_eagleview(pid, {"totalRoofArea": "2,450 sq ft", "valleys": None})
        signatures.save_signature(pid, "Keoni Kahale", SIGNATURE_PNG)

        result = packets.render_pdf(pid)
        # cover + 2 photo pages + estimate + eagleview + signature
        assert result["pages"] == 6
        assert _pdf_pages(result["path"]) == 6
        assert result["path"].endswith(f"packet_{pid}.pdf")

    def test_missing_photo_object_skipped(self, sample_packet, jpeg_bytes):
        photo = packets.upload_photo(sample_packet["id"], "ssImg1", jpeg_bytes)
        storage.remove(photo["storage_path"])
        assert packets.render_pdf(sample_packet["id"])["pages"] == 1

    def test_render_missing_packet(self):
        with pytest.raises(LookupError):
            packets.render_pdf("nope")

    def test_inspection_pdf(self, jpeg_bytes):
        iid = inspections.save_inspection({
            "customer_name": "Ana Lee",
            "roof": {"type": "shingle", "layers": 2, "leaks": True},
            "findings": {"notes": "Cracked flashing"},
            "recommendation": {"action": "Replace", "items": ["flashing", "underlayment"]},
        })
        inspections.upload_photo(iid, "damage", jpeg_bytes, caption="North slope")
        result = inspections.render_pdf(iid)
        assert result["ok"] is True
        assert result["pages"] == 2
        assert _pdf_pages(result["path"]) == 2

    def test_section_rows(self):
        rows = packet_pdf._section_rows({"leaks": False, "items": ["a", "b"]})
        assert rows == [("Leaks", "No"), ("Items", "a, b")]
        assert packet_pdf._section_rows("free text") == [("Notes", "free text")]
        assert packet_pdf._section_rows({}) == []
