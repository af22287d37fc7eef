import io
import os

import pytest
from werkzeug.datastructures import FileStorage

from conftest import image_bytes
from utils.evidence import (
    EvidenceFile,
    EvidenceSelection,
    EvidenceStoreError,
    LocalEvidenceStore,
    content_matches_type,
    evidence_from_upload,
    evidence_path,
)


def _png(name="photo.png"):
    return EvidenceFile(filename=name, content_type="image/png", data=image_bytes("PNG"))


def _pdf(name="report.pdf"):
    return EvidenceFile(filename=name, content_type="application/pdf", data=b"%PDF-1.4\n%fake\n")


class TestEvidenceSelection:
    def test_six_files_on_empty_selection_rejected_as_batch(self):
        selection = EvidenceSelection()
        rejections = selection.add([_png(f"p{i}.png") for i in range(6)])
        assert selection.accepted == []
        assert len(rejections) == 1
        assert rejections[0].reason == "You can attach at most 5 files"
        assert rejections[0].filename is None

    def test_batch_over_limit_leaves_previous_files(self):
        selection = EvidenceSelection()
        assert selection.add([_png("a.png"), _png("b.png"), _pdf()]) == []
        rejections = selection.add([_png("c.png"), _png("d.png"), _png("e.png")])
        assert len(rejections) == 1
        assert [f.filename for f in selection.accepted] == ["a.png", "b.png", "report.pdf"]

    def test_fills_to_exactly_five(self):
        selection = EvidenceSelection()
        selection.add([_png("a.png"), _png("b.png"), _png("c.png")])
        assert selection.add([_png("d.png"), _pdf()]) == []
        assert selection.remaining_slots == 0

    def test_disallowed_type_rejected_individually(self):
        selection = EvidenceSelection()
        gif = EvidenceFile(filename="anim.gif", content_type="image/gif", data=b"GIF89a")
        rejections = selection.add([gif, _png()])
        assert [r.filename for r in rejections] == ["anim.gif"]
        assert "not allowed" in rejections[0].reason
        assert len(selection.accepted) == 1

    def test_oversized_file_rejected(self):
        selection = EvidenceSelection(max_bytes=8)
        rejections = selection.add([_pdf()])
        assert rejections[0].reason.startswith("File exceeds")
        assert selection.accepted == []

    def test_file_at_size_limit_accepted(self):
        report = _pdf()
        selection = EvidenceSelection(max_bytes=report.size)
        assert selection.add([report]) == []
        assert selection.accepted == [report]

    def test_file_one_byte_over_limit_rejected(self):
        report = _pdf()
        selection = EvidenceSelection(max_bytes=report.size - 1)
        assert len(selection.add([report])) == 1

    def test_empty_file_rejected(self):
        selection = EvidenceSelection()
        empty = EvidenceFile(filename="blank.png", content_type="image/png", data=b"")
        assert selection.add([empty])[0].reason == "Empty file"

    def test_spoofed_content_rejected(self):
        selection = EvidenceSelection()
        fake = EvidenceFile(filename="fake.jpg", content_type="image/jpeg", data=image_bytes("PNG"))
        rejections = selection.add([fake])
        assert rejections[0].reason == "File content does not match its type"

    def test_previously_attached_counts_toward_limit(self):
        selection = EvidenceSelection(previously_attached=4)
        rejections = selection.add([_png("a.png"), _png("b.png")])
        assert len(rejections) == 1
        assert selection.add([_png("a.png")]) == []
        assert selection.remaining_slots == 0

    def test_remove(self):
        selection = EvidenceSelection()
        selection.add([_png("a.png"), _png("b.png")])
        removed = selection.remove(0)
        assert removed.filename == "a.png"
        assert selection.remaining_slots == 4


class TestContentSniffing:
    def test_matching_types(self):
        assert content_matches_type(image_bytes("PNG"), "image/png")
        assert content_matches_type(image_bytes("JPEG"), "image/jpeg")
        assert content_matches_type(image_bytes("WEBP"), "image/webp")
        assert content_matches_type(b"%PDF-1.7 ...", "application/pdf")

    def test_mismatched_types(self):
        assert not content_matches_type(b"hello", "application/pdf")
        assert not content_matches_type(b"not an image", "image/png")


class TestUploadConversion:
    def test_from_file_storage(self):
        upload = FileStorage(stream=io.BytesIO(image_bytes("JPEG")), filename="../../road photo.jpg", content_type="image/jpg")
        item = evidence_from_upload(upload)
        assert item.filename == "road_photo.jpg"
        assert item.content_type == "image/jpeg"
        assert item.extension == "jpg"

    def test_content_type_guessed_from_name(self):
        upload = FileStorage(
            stream=io.BytesIO(b"%PDF-1.4"),
            filename="notice.pdf",
            content_type="application/octet-stream",
        )
        assert evidence_from_upload(upload).content_type == "application/pdf"


class TestLocalEvidenceStore:
    def test_upload_and_delete(self, tmp_path):
        store = LocalEvidenceStore(str(tmp_path))
        url = store.upload("CIV-ABC123/one.png", b"data", "image/png")
        assert url == "/complaints/evidence/CIV-ABC123/one.png"
        stored = store.resolve("CIV-ABC123/one.png")
        assert open(stored, "rb").read() == b"data"
        store.delete("CIV-ABC123/one.png")
        assert not os.path.exists(stored)

    def test_traversal_rejected(self, tmp_path):
        store = LocalEvidenceStore(str(tmp_path / "evidence"))
        with pytest.raises(EvidenceStoreError):
            store.upload("../escape.png", b"data", "image/png")

    def test_missing_file(self, tmp_path):
        store = LocalEvidenceStore(str(tmp_path))
        with pytest.raises(FileNotFoundError):
            store.resolve("CIV-ABC123/missing.png")

    def test_evidence_path_convention(self):
        path = evidence_path("ANON-XYZ789", _pdf())
        tracking_id, filename = path.split("/")
        assert tracking_id == "ANON-XYZ789"
        assert filename.endswith(".pdf")
        assert len(filename) == len("0" * 32 + ".pdf")
