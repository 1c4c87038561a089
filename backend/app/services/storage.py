import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from uuid import uuid4

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from ..config import get_settings
from ..exceptions import InvalidEvidence

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".gif"}


@dataclass
class EvidenceFile:
    filename: str
    content: bytes
    content_type: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.content


async def read_upload(upload: UploadFile | None, *, max_bytes: int | None = None) -> EvidenceFile | None:
    """Read an upload without buffering more than ``max_bytes`` + 1 bytes of it."""
    if upload is None:
        return None
    if max_bytes is None:
        max_bytes = get_settings().max_evidence_bytes
    if upload.size is not None and upload.size > max_bytes:
        raise InvalidEvidence("Evidence file is too large")

    content = await upload.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise InvalidEvidence("Evidence file is too large")
    if not content:
        return None
    return EvidenceFile(
        filename=upload.filename or "evidence",
        content=content,
        content_type=upload.content_type,
    )


class EvidenceStorage(Protocol):
    async def upload(self, evidence: EvidenceFile, *, folder: str) -> str: ...


class LocalEvidenceStorage:
    """Stores evidence files on disk and returns the public URL they are served under."""

    def __init__(self, root: str, base_url: str, max_bytes: int) -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self.max_bytes = max_bytes

    async def upload(self, evidence: EvidenceFile, *, folder: str) -> str:
        if len(evidence.content) > self.max_bytes:
            raise InvalidEvidence("Evidence file is too large")

        extension = Path(evidence.filename).suffix.lower()
        if extension not in ALLOWED_EXTENSIONS:
            raise InvalidEvidence("Evidence must be an image")

        name = f"{uuid4().hex}{extension}"
        target = self.root / folder / name
        await run_in_threadpool(self._write, target, evidence.content)
        logger.info("Stored evidence %s (%s bytes)", target, len(evidence.content))
        return f"{self.base_url}/{folder}/{name}"

    @staticmethod
    def _write(target: Path, content: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)


def get_evidence_storage() -> EvidenceStorage:
    settings = get_settings()
    return LocalEvidenceStorage(
        root=settings.evidence_dir,
        base_url=settings.evidence_base_url,
        max_bytes=settings.max_evidence_bytes,
    )
