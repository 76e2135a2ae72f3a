import asyncio
import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from kyc_workflow.core import settings
from kyc_workflow.core.errors import DependencyError, ValidationError
from kyc_workflow.core.supabase_client import get_supabase_client

logger = logging.getLogger(__name__)

ALLOWED_TYPES = {
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/tiff",
    "application/pdf",
}

EXTENSION_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
    ".pdf": "application/pdf",
}


@dataclass
class StoredFile:
    url: str
    file_name: str
    size: int
    mime_type: str


def resolve_content_type(contents: bytes, filename: str, declared: Optional[str]) -> str:
    """Trust the declared type unless it is generic; then sniff the header."""
    content_type = declared or "application/octet-stream"
    if content_type not in ("application/octet-stream", "text/plain"):
        return content_type

    header = contents[:12]
    if header.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if header.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if header[0:4] == b"RIFF" and header[8:12] == b"WEBP":
        return "image/webp"
    if header.startswith(b"%PDF"):
        return "application/pdf"
    if header[:4] in (b"II*\x00", b"MM\x00*"):
        return "image/tiff"
    ext = os.path.splitext(filename or "")[1].lower()
    return EXTENSION_TYPES.get(ext, content_type)


def validate_upload(contents: bytes, filename: str, declared: Optional[str]) -> str:
    """Return the resolved content type or raise ValidationError."""
    if not filename:
        raise ValidationError.for_field("file", "Invalid file")
    size = len(contents)
    if size == 0:
        raise ValidationError.for_field("file", "Empty file uploaded")
    if size > settings.MAX_UPLOAD_SIZE:
        raise ValidationError.for_field(
            "file", f"File size {size} exceeds limit of {settings.MAX_UPLOAD_SIZE} bytes"
        )
    content_type = resolve_content_type(contents, filename, declared)
    if content_type not in ALLOWED_TYPES:
        raise ValidationError.for_field(
            "file",
            f"File type {content_type} not allowed. Allowed types: {', '.join(sorted(ALLOWED_TYPES))}",
        )
    return content_type


def _unique_name(original_filename: str) -> str:
    ext = os.path.splitext(original_filename)[1]
    return f"{uuid.uuid4()}{ext}"


class StorageBackend:
    async def save(self, contents: bytes, filename: str, content_type: str, folder: str) -> StoredFile:
        raise NotImplementedError

    async def delete(self, url: str) -> None:
        raise NotImplementedError

    async def read(self, url: str) -> bytes:
        raise NotImplementedError


class LocalStorageBackend(StorageBackend):
    """Files under UPLOAD_DIR; the url is the path relative to that root."""

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or settings.UPLOAD_DIR)

    def _path(self, url: str) -> Path:
        path = (self.root / url).resolve()
        if self.root.resolve() not in path.parents:
            raise ValidationError.for_field("url", "File reference outside the upload directory")
        return path

    async def save(self, contents: bytes, filename: str, content_type: str, folder: str) -> StoredFile:
        relative = f"{folder}/{_unique_name(filename)}"
        path = self._path(relative)
        try:
            await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(path.write_bytes, contents)
        except OSError as e:
            logger.error(f"Local storage write failed for {relative}: {e}")
            raise DependencyError("Failed to store file", details={"file_name": filename}) from e
        logger.info(f"Stored {filename} at {relative}")
        return StoredFile(url=relative, file_name=filename, size=len(contents), mime_type=content_type)

    async def delete(self, url: str) -> None:
        path = self._path(url)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            logger.error(f"Local storage delete failed for {url}: {e}")
            raise DependencyError("Failed to delete file", details={"url": url}) from e
        logger.info(f"Deleted file {url}")

    async def read(self, url: str) -> bytes:
        path = self._path(url)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as e:
            raise DependencyError("Stored file is missing", details={"url": url}) from e
        except OSError as e:
            logger.error(f"Local storage read failed for {url}: {e}")
            raise DependencyError("Failed to read file", details={"url": url}) from e


class SupabaseStorageBackend(StorageBackend):
    """Objects in a Supabase storage bucket; the url is the object path."""

    def __init__(self, bucket: Optional[str] = None, client=None):
        self.bucket = bucket or settings.SUPABASE_BUCKET
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    def _extract_path(self, url: str) -> str:
        if not url.startswith("http"):
            return url
        parts = url.split(f"/{self.bucket}/")
        if len(parts) > 1:
            return parts[1].split("?")[0]
        return url.split("/sign/")[-1].split("?")[0]

    async def save(self, contents: bytes, filename: str, content_type: str, folder: str) -> StoredFile:
        file_path = f"{folder}/{_unique_name(filename)}"
        try:
            res = await asyncio.to_thread(
                self.client.storage.from_(self.bucket).upload,
                file_path,
                contents,
                {"content-type": content_type},
            )
        except DependencyError:
            raise
        except Exception as e:
            logger.error(f"Supabase upload error for file {filename} (content_type={content_type}): {e}")
            raise DependencyError("Supabase upload failed", details={"file_name": filename}) from e
        if isinstance(res, dict) and res.get("error"):
            logger.error(f"Supabase upload returned an error for {filename}: {res}")
            raise DependencyError("Supabase upload failed", details={"file_name": filename})
        logger.info(f"Successfully uploaded {filename} to {file_path}")
        return StoredFile(url=file_path, file_name=filename, size=len(contents), mime_type=content_type)

    async def delete(self, url: str) -> None:
        path = self._extract_path(url)
        try:
            await asyncio.to_thread(self.client.storage.from_(self.bucket).remove, [path])
        except DependencyError:
            raise
        except Exception as e:
            logger.error(f"Supabase delete error for {path}: {e}")
            raise DependencyError("Failed to delete file", details={"url": url}) from e
        logger.info(f"Deleted file {path} from Supabase")

    async def read(self, url: str) -> bytes:
        path = self._extract_path(url)
        try:
            return await asyncio.to_thread(self.client.storage.from_(self.bucket).download, path)
        except DependencyError:
            raise
        except Exception as e:
            logger.error(f"Supabase download error for {path}: {e}")
            raise DependencyError("Failed to read file", details={"url": url}) from e


def build_storage_backend(kind: Optional[str] = None) -> StorageBackend:
    kind = (kind or settings.STORAGE_BACKEND).lower()
    if kind == "supabase":
        return SupabaseStorageBackend()
    if kind == "local":
        return LocalStorageBackend()
    raise ValueError(f"Unknown STORAGE_BACKEND '{kind}'")


class StorageService:
    """Holds the configured backend; tests swap it with ``use_backend``."""

    def __init__(self, backend: Optional[StorageBackend] = None):
        self._backend = backend

    @property
    def backend(self) -> StorageBackend:
        if self._backend is None:
            self._backend = build_storage_backend()
        return self._backend

    def use_backend(self, backend: StorageBackend) -> None:
        self._backend = backend

    async def save(self, contents: bytes, filename: str, content_type: Optional[str], folder: str) -> StoredFile:
        resolved = validate_upload(contents, filename, content_type)
        return await self.backend.save(contents, filename, resolved, folder)

    async def delete(self, url: str) -> None:
        await self.backend.delete(url)

    async def read(self, url: str) -> bytes:
        return await self.backend.read(url)


storage_service = StorageService()
