"""Evidence selection rules and the local evidence store."""
import io
import mimetypes
import os
import uuid
from dataclasses import dataclass, field
from typing import Iterable, List

from flask import current_app
from PIL import Image, UnidentifiedImageError
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

ALLOWED_EVIDENCE_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "application/pdf": "pdf",
}
PIL_FORMATS = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
    "image/webp": "WEBP",
}
DEFAULT_MAX_EVIDENCE_FILES = 5
DEFAULT_MAX_EVIDENCE_BYTES = 10 * 1024 * 1024


class EvidenceStoreError(Exception):
    """Raised when the evidence store cannot write or remove a file."""


@dataclass
class EvidenceFile:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return ALLOWED_EVIDENCE_TYPES.get(self.content_type, "bin")


@dataclass
class EvidenceRejection:
    reason: str
    filename: str | None = None

    def to_dict(self) -> dict:
        return {"filename": self.filename, "reason": self.reason}


def _resolve_content_type(filename: str, declared: str | None) -> str:
    content_type = (declared or "").split(";")[0].strip().lower()
    if not content_type or content_type == "application/octet-stream":
        guessed, _ = mimetypes.guess_type(filename or "")
        content_type = (guessed or "").lower()
    if content_type == "image/jpg":
        content_type = "image/jpeg"
    return content_type


def evidence_from_upload(upload: FileStorage) -> EvidenceFile:
    filename = secure_filename(upload.filename or "") or "evidence"
    data = upload.read()
    upload.stream.seek(0)
    return EvidenceFile(
        filename=filename,
        content_type=_resolve_content_type(upload.filename or "", upload.mimetype),
        data=data,
    )


def content_matches_type(data: bytes, content_type: str) -> bool:
    if content_type == "application/pdf":
        return data.startswith(b"%PDF-")
    expected = PIL_FORMATS.get(content_type)
    if not expected:
        return False
    try:
        with Image.open(io.BytesIO(data)) as img:
            detected = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return False
    return detected == expected


@dataclass
class EvidenceSelection:
    """Accepted evidence for one draft, grown one batch at a time."""

    max_files: int = DEFAULT_MAX_EVIDENCE_FILES
    max_bytes: int = DEFAULT_MAX_EVIDENCE_BYTES
    accepted: List[EvidenceFile] = field(default_factory=list)
    # Files the client already holds but did not resend with this batch.
    previously_attached: int = 0

    @property
    def attached_count(self) -> int:
        return self.previously_attached + len(self.accepted)

    @property
    def remaining_slots(self) -> int:
        return max(0, self.max_files - self.attached_count)

    def check_file(self, item: EvidenceFile) -> EvidenceRejection | None:
        if item.content_type not in ALLOWED_EVIDENCE_TYPES:
            return EvidenceRejection("File type not allowed (JPG, PNG, WebP or PDF only)", item.filename)
        if item.size == 0:
            return EvidenceRejection("Empty file", item.filename)
        if item.size > self.max_bytes:
            limit_mb = self.max_bytes // (1024 * 1024)
            return EvidenceRejection(f"File exceeds the {limit_mb}MB limit", item.filename)
        if not content_matches_type(item.data, item.content_type):
            return EvidenceRejection("File content does not match its type", item.filename)
        return None

    def add(self, files: Iterable[EvidenceFile]) -> List[EvidenceRejection]:
        """Accept what passes; an over-limit batch is refused as a whole."""
        batch = list(files)
        if self.attached_count + len(batch) > self.max_files:
            return [EvidenceRejection(f"You can attach at most {self.max_files} files")]
        rejections: List[EvidenceRejection] = []
        for item in batch:
            rejection = self.check_file(item)
            if rejection:
                rejections.append(rejection)
                continue
            self.accepted.append(item)
        return rejections

    def remove(self, index: int) -> EvidenceFile:
        return self.accepted.pop(index)


class LocalEvidenceStore:
    """Writes evidence under ``root/<tracking_id>/`` and hands back public URLs."""

    def __init__(self, root: str, base_url: str = "/complaints/evidence") -> None:
        self.root = os.path.abspath(root)
        self.base_url = base_url.rstrip("/")

    def _absolute(self, path: str) -> str:
        abs_path = os.path.abspath(os.path.join(self.root, path))
        if not abs_path.startswith(self.root + os.sep):
            raise EvidenceStoreError("Evidence path rejected: outside the evidence root")
        return abs_path

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        target = self._absolute(path)
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(target, "wb") as handle:
                handle.write(data)
        except OSError as exc:
            raise EvidenceStoreError(f"Unable to store evidence: {exc}") from exc
        return self.public_url(path)

    def delete(self, path: str) -> None:
        target = self._absolute(path)
        try:
            if os.path.isfile(target):
                os.remove(target)
        except OSError as exc:
            raise EvidenceStoreError(f"Unable to remove evidence: {exc}") from exc

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def resolve(self, path: str) -> str:
        target = self._absolute(path)
        if not os.path.isfile(target):
            raise FileNotFoundError(path)
        return target


def evidence_path(tracking_id: str, item: EvidenceFile) -> str:
    return f"{tracking_id}/{uuid.uuid4().hex}.{item.extension}"


def get_evidence_store():
    return current_app.extensions["evidence_store"]


def build_selection() -> EvidenceSelection:
    return EvidenceSelection(
        max_files=int(current_app.config.get("MAX_EVIDENCE_FILES", DEFAULT_MAX_EVIDENCE_FILES)),
        max_bytes=int(current_app.config.get("MAX_EVIDENCE_BYTES", DEFAULT_MAX_EVIDENCE_BYTES)),
    )
