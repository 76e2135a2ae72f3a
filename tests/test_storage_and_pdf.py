import io

import pytest
from PIL import Image

from kyc_workflow.core import settings
from kyc_workflow.core.errors import DependencyError, ValidationError
from kyc_workflow.helpers.response_builder import STREAM_CHUNK_SIZE, stream_file
from kyc_workflow.services.pdf_conversion_service import PdfConversionService
from kyc_workflow.services.storage_service import LocalStorageBackend, resolve_content_type, validate_upload


def image_bytes(fmt="PNG", color="red", mode="RGB"):
    buffer = io.BytesIO()
    Image.new(mode, (40, 30), color).save(buffer, format=fmt)
    return buffer.getvalue()


def test_generic_content_type_is_sniffed():
    assert resolve_content_type(image_bytes("JPEG"), "upload", "application/octet-stream") == "image/jpeg"
    assert resolve_content_type(b"%PDF-1.7 ...", "upload", None) == "application/pdf"
    assert resolve_content_type(b"????", "scan.tiff", "application/octet-stream") == "image/tiff"
    assert resolve_content_type(b"????", "scan.png", "image/png") == "image/png"


def test_validate_upload_limits(monkeypatch):
    monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE", 10)
    with pytest.raises(ValidationError):
        validate_upload(b"", "a.png", "image/png")
    with pytest.raises(ValidationError):
        validate_upload(b"0" * 11, "a.png", "image/png")
    with pytest.raises(ValidationError):
        validate_upload(b"0" * 5, "a.exe", "application/x-msdownload")
    assert validate_upload(b"0" * 5, "a.png", "image/png") == "image/png"


async def test_local_backend_round_trip(tmp_path):
    backend = LocalStorageBackend(str(tmp_path))
    stored = await backend.save(b"abc", "pan.png", "image/png", folder="user-1/personal")

    assert stored.url.startswith("user-1/personal/")
    assert stored.url.endswith(".png")
    assert stored.size == 3
    assert await backend.read(stored.url) == b"abc"

    await backend.delete(stored.url)
    with pytest.raises(DependencyError):
        await backend.read(stored.url)


async def test_local_backend_refuses_paths_outside_root(tmp_path):
    backend = LocalStorageBackend(str(tmp_path / "uploads"))
    with pytest.raises(ValidationError):
        await backend.read("../secrets.txt")


async def test_merge_to_pdf_skips_pdf_inputs(tmp_path):
    service = PdfConversionService(str(tmp_path))
    files = [
        ("front.png", "image/png", image_bytes("PNG")),
        ("back.jpg", "image/jpeg", image_bytes("JPEG", "blue")),
        ("palette.png", "image/png", image_bytes("PNG", mode="P")),
        ("statement.pdf", "application/pdf", b"%PDF-1.4"),
    ]

    path, skipped = await service.merge_to_pdf(files, "personal_user-1")

    assert skipped == ["statement.pdf"]
    assert path.parent == tmp_path
    assert path.read_bytes().startswith(b"%PDF")


async def test_merge_to_pdf_without_images_fails(tmp_path):
    service = PdfConversionService(str(tmp_path))
    with pytest.raises(ValidationError):
        await service.merge_to_pdf([("broken.png", "image/png", b"not an image")], "personal_user-1")


class FakeRequest:
    def __init__(self, disconnect_after=None):
        self.checks = 0
        self.disconnect_after = disconnect_after

    async def is_disconnected(self):
        self.checks += 1
        return self.disconnect_after is not None and self.checks > self.disconnect_after


async def test_stream_file_reads_in_chunks(tmp_path):
    path = tmp_path / "merged.pdf"
    payload = b"%PDF-1.4\n" + b"x" * (STREAM_CHUNK_SIZE * 2 + 10)
    path.write_bytes(payload)

    chunks = [chunk async for chunk in stream_file(FakeRequest(), str(path))]

    assert [len(c) for c in chunks] == [STREAM_CHUNK_SIZE, STREAM_CHUNK_SIZE, len(payload) - 2 * STREAM_CHUNK_SIZE]
    assert b"".join(chunks) == payload


async def test_stream_file_stops_when_client_disconnects(tmp_path):
    path = tmp_path / "merged.pdf"
    path.write_bytes(b"y" * (STREAM_CHUNK_SIZE * 3))

    chunks = [chunk async for chunk in stream_file(FakeRequest(disconnect_after=1), str(path))]

    assert len(chunks) == 1
