"""
Document Acquirer - resolves file references to bytes and container kind

References are storage keys (<project_id>/<upload_id>/<filename>) or
absolute http(s) URLs. Failures for a single file become warnings; only an
unreachable storage backend aborts the run.
"""

import os
import logging
import mimetypes
from dataclasses import dataclass
from typing import List, Optional, Tuple
from urllib.parse import urlparse, unquote

import httpx

from models.enums import FileKind
from services.error_types import DocumentAcquisitionError, UnsupportedFileError
from services.storage import get_storage

logger = logging.getLogger(__name__)

RESOLVE_FROM_UPLOADS = "__resolve_from_uploads__"

IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp"}
PDF_EXTENSIONS = {"pdf"}

CONTENT_TYPE_KINDS = {
    "application/pdf": FileKind.pdf,
    "image/jpeg": FileKind.image,
    "image/png": FileKind.image,
    "image/gif": FileKind.image,
    "image/webp": FileKind.image,
}


@dataclass
class AcquiredDocument:
    """A file ready for the pipeline"""
    reference: str
    kind: FileKind
    content: Optional[bytes] = None
    public_url: Optional[str] = None

    @property
    def name(self) -> str:
        return file_name(self.reference)

    @property
    def size_bytes(self) -> int:
        return len(self.content) if self.content else 0


def file_name(reference: str) -> str:
    path = urlparse(reference).path if is_remote(reference) else reference
    return unquote(path.rstrip("/").split("/")[-1]) or reference


def file_extension(reference: str) -> str:
    return os.path.splitext(file_name(reference))[1].lstrip(".").lower()


def is_remote(reference: str) -> bool:
    return reference.startswith(("http://", "https://"))


def detect_kind(reference: str, content_type: Optional[str] = None) -> FileKind:
    """
    Container kind from the file extension, falling back to the content type.

    Raises:
        UnsupportedFileError: neither signal names a supported kind
    """
    ext = file_extension(reference)
    if ext in PDF_EXTENSIONS:
        return FileKind.pdf
    if ext in IMAGE_EXTENSIONS:
        return FileKind.image

    guessed = content_type or mimetypes.guess_type(file_name(reference))[0]
    if guessed:
        kind = CONTENT_TYPE_KINDS.get(guessed.split(";")[0].strip().lower())
        if kind:
            return kind

    raise UnsupportedFileError(f"Unsupported file type: {ext or 'unknown'}", {"reference": reference})


class DocumentAcquirer:
    """Fetch uploaded plan files from storage or over HTTP"""

    def __init__(self, storage=None, http_timeout: float = 30.0):
        self._storage = storage
        self.http_timeout = http_timeout

    @property
    def storage(self):
        return self._storage or get_storage()

    def resolve_references(
        self,
        project_id: str,
        file_urls: List[str],
        upload_ids: Optional[List[str]] = None,
        resolve_from_project: bool = False
    ) -> List[str]:
        """
        Final list of references for a run.

        Upload ids expand to every file stored under <project_id>/<upload_id>/.
        The placeholder reference, an empty list, or `resolve_from_project`
        expand to every supported file stored under the project.
        """
        references = [u for u in file_urls if u and u != RESOLVE_FROM_UPLOADS]

        for upload_id in upload_ids or []:
            found = self.storage.list(f"{project_id}/{upload_id}")
            logger.info(f"Upload {upload_id} resolved to {len(found)} file(s)")
            references.extend(found)

        wants_project = resolve_from_project or RESOLVE_FROM_UPLOADS in file_urls or not references
        if wants_project and not upload_ids:
            found = [r for r in self.storage.list(project_id) if self._is_supported(r)]
            logger.info(f"Project {project_id} uploads resolved to {len(found)} file(s)")
            references.extend(found)

        # Keep order, drop repeats
        return list(dict.fromkeys(references))

    @staticmethod
    def _is_supported(reference: str) -> bool:
        return file_extension(reference) in IMAGE_EXTENSIONS | PDF_EXTENSIONS

    def acquire(self, reference: str) -> Tuple[Optional[AcquiredDocument], Optional[str]]:
        """
        Acquire one file.

        Returns:
            (document, None) on success or (None, warning) when the file is
            skipped

        Raises:
            StorageError: the storage backend itself is unreachable
        """
        name = file_name(reference)
        try:
            kind = detect_kind(reference)
        except UnsupportedFileError as e:
            logger.warning(f"Skipping {name}: {e}")
            return None, e.message

        public_url = reference if is_remote(reference) else self.storage.public_url(reference)

        # Images go to vision by URL; bytes are only needed when no URL exists
        if kind == FileKind.image and public_url:
            return AcquiredDocument(reference=reference, kind=kind, public_url=public_url), None

        try:
            content = self._download(reference)
        except DocumentAcquisitionError as e:
            logger.warning(f"Failed to download {name}: {e}")
            return None, f"Failed to download file: {name}"

        logger.info(f"Acquired {name} ({kind.value}, {len(content)} bytes)")
        return AcquiredDocument(reference=reference, kind=kind, content=content, public_url=public_url), None

    def _download(self, reference: str) -> bytes:
        if not is_remote(reference):
            return self.storage.read(reference)

        try:
            response = httpx.get(reference, timeout=self.http_timeout, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise DocumentAcquisitionError(f"HTTP download failed: {e}", {"reference": reference})
        if not response.content:
            raise DocumentAcquisitionError("Empty response body", {"reference": reference})
        return response.content


document_acquirer = DocumentAcquirer()
