"""
Tests for storage access and document acquisition
"""

from unittest.mock import patch, MagicMock

import httpx
import pytest
from botocore.exceptions import ClientError

from models.enums import FileKind
from services.document_acquirer import DocumentAcquirer, detect_kind, RESOLVE_FROM_UPLOADS
from services.error_types import StorageError, DocumentAcquisitionError, UnsupportedFileError
from services.storage import StorageService, S3StorageService


class TestDetectKind:

    @pytest.mark.parametrize("reference,kind", [
        ("p/u/plans.PDF", FileKind.pdf),
        ("p/u/photo.jpeg", FileKind.image),
        ("p/u/scan.webp", FileKind.image),
        ("https://cdn.example.com/files/plan.png?sig=abc", FileKind.image),
    ])
    def test_by_extension(self, reference, kind):
        assert detect_kind(reference) == kind

    def test_content_type_fallback(self):
        assert detect_kind("p/u/blob", "application/pdf; charset=binary") == FileKind.pdf

    def test_unsupported(self):
        with pytest.raises(UnsupportedFileError) as exc_info:
            detect_kind("p/u/plans.dwg")
        assert exc_info.value.message == "Unsupported file type: dwg"


class TestStorageService:

    def test_round_trip_and_listing(self, storage):
        storage.save("proj-1/up-1/a.pdf", b"%PDF-a")
        storage.save("proj-1/up-2/b.png", b"png")
        assert storage.read("proj-1/up-1/a.pdf") == b"%PDF-a"
        assert storage.list("proj-1") == ["proj-1/up-1/a.pdf", "proj-1/up-2/b.png"]
        assert storage.list("proj-1/up-2") == ["proj-1/up-2/b.png"]
        assert storage.list("nope") == []

    def test_missing_file(self, storage):
        with pytest.raises(DocumentAcquisitionError):
            storage.read("proj-1/up-1/missing.pdf")

    def test_unmounted_root(self, tmp_path):
        with pytest.raises(StorageError):
            StorageService(str(tmp_path / "not-there")).read("a.pdf")

    def test_path_escape_rejected(self, storage):
        with pytest.raises(DocumentAcquisitionError):
            storage.read("../../etc/passwd")

    def test_public_url(self, storage, public_storage):
        assert storage.public_url("p/u/a b.pdf") is None
        assert public_storage.public_url("p/u/a b.pdf") == "https://files.example.com/p/u/a%20b.pdf"


class TestS3StorageService:

    @pytest.fixture
    def s3(self):
        with patch("services.storage.boto3.client") as client_factory:
            client_factory.return_value = MagicMock()
            yield S3StorageService()

    def test_read(self, s3):
        body = MagicMock()
        body.read.return_value = b"%PDF"
        s3.s3_client.get_object.return_value = {"Body": body}
        assert s3.read("p/u/a.pdf") == b"%PDF"

    def test_missing_key(self, s3):
        s3.s3_client.get_object.side_effect = ClientError({"Error": {"Code": "NoSuchKey"}}, "GetObject")
        with pytest.raises(DocumentAcquisitionError):
            s3.read("p/u/a.pdf")

    def test_bucket_unreachable(self, s3):
        s3.s3_client.get_object.side_effect = ClientError({"Error": {"Code": "AccessDenied"}}, "GetObject")
        with pytest.raises(StorageError):
            s3.read("p/u/a.pdf")


class TestDocumentAcquirer:

    def test_pdf_is_downloaded(self, storage):
        storage.save("proj-1/up-1/plans.pdf", b"%PDF-1.4")
        document, warning = DocumentAcquirer(storage).acquire("proj-1/up-1/plans.pdf")
        assert warning is None
        assert document.kind == FileKind.pdf
        assert document.content == b"%PDF-1.4"
        assert document.name == "plans.pdf"

    def test_image_with_public_url_not_downloaded(self, public_storage):
        document, _ = DocumentAcquirer(public_storage).acquire("proj-1/up-1/plan.png")
        assert document.content is None
        assert document.public_url == "https://files.example.com/proj-1/up-1/plan.png"

    def test_image_without_public_url_is_read(self, storage, png_bytes):
        storage.save("proj-1/up-1/plan.png", png_bytes)
        document, _ = DocumentAcquirer(storage).acquire("proj-1/up-1/plan.png")
        assert document.content == png_bytes

    def test_unsupported_file_warns(self, storage):
        document, warning = DocumentAcquirer(storage).acquire("proj-1/up-1/model.dwg")
        assert document is None
        assert warning == "Unsupported file type: dwg"

    def test_missing_file_warns(self, storage):
        document, warning = DocumentAcquirer(storage).acquire("proj-1/up-1/gone.pdf")
        assert document is None
        assert warning == "Failed to download file: gone.pdf"

    def test_storage_outage_raises(self, tmp_path):
        acquirer = DocumentAcquirer(StorageService(str(tmp_path / "not-mounted")))
        with pytest.raises(StorageError):
            acquirer.acquire("proj-1/up-1/plans.pdf")

    def test_http_reference(self, storage):
        response = httpx.Response(200, content=b"%PDF-remote", request=httpx.Request("GET", "https://x/p.pdf"))
        with patch("services.document_acquirer.httpx.get", return_value=response):
            document, _ = DocumentAcquirer(storage).acquire("https://x/p.pdf")
        assert document.content == b"%PDF-remote"
        assert document.public_url == "https://x/p.pdf"

    def test_http_failure_warns(self, storage):
        with patch("services.document_acquirer.httpx.get", side_effect=httpx.ConnectError("refused")):
            document, warning = DocumentAcquirer(storage).acquire("https://x/p.pdf")
        assert document is None
        assert warning == "Failed to download file: p.pdf"


class TestResolveReferences:

    @pytest.fixture
    def acquirer(self, storage):
        storage.save("proj-1/up-1/a.pdf", b"a")
        storage.save("proj-1/up-2/b.png", b"b")
        storage.save("proj-1/up-2/readme.txt", b"c")
        return DocumentAcquirer(storage)

    def test_explicit_references_kept(self, acquirer):
        assert acquirer.resolve_references("proj-1", ["x/y.pdf", "x/y.pdf"]) == ["x/y.pdf"]

    def test_upload_ids(self, acquirer):
        assert acquirer.resolve_references("proj-1", [RESOLVE_FROM_UPLOADS], ["up-2"]) == [
            "proj-1/up-2/b.png", "proj-1/up-2/readme.txt"
        ]

    def test_placeholder_resolves_project(self, acquirer):
        assert acquirer.resolve_references("proj-1", [RESOLVE_FROM_UPLOADS]) == [
            "proj-1/up-1/a.pdf", "proj-1/up-2/b.png"
        ]

    def test_resolve_flag_appends_project_uploads(self, acquirer):
        refs = acquirer.resolve_references("proj-1", ["x/y.pdf"], resolve_from_project=True)
        assert refs == ["x/y.pdf", "proj-1/up-1/a.pdf", "proj-1/up-2/b.png"]
