import asyncio
import logging
import zipfile
from typing import AsyncIterator, Awaitable, Callable, Iterable, List, Tuple

from beanie.odm.fields import PydanticObjectId
from starlette.requests import Request

logger = logging.getLogger(__name__)

STREAM_CHUNK_SIZE = 64 * 1024


def convert_objectid(obj):
    """Convert PydanticObjectId fields to strings."""
    if isinstance(obj, dict):
        return {key: convert_objectid(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [convert_objectid(item) for item in obj]
    elif isinstance(obj, PydanticObjectId):
        return str(obj)
    return obj


def content_disposition(filename: str) -> str:
    safe = (filename or "download").replace('"', "")
    return f'attachment; filename="{safe}"'


class _ZipSink:
    """Write-only target for ZipFile; buffered bytes are drained by the stream."""

    def __init__(self):
        self._chunks: List[bytes] = []

    def write(self, data: bytes) -> int:
        self._chunks.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        pass

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


async def stream_zip(
    request: Request,
    entries: Iterable[Tuple[str, str]],
    read: Callable[[str], Awaitable[bytes]],
) -> AsyncIterator[bytes]:
    """Yield a ZIP archive of ``(archive_name, file_url)`` entries.

    Files are fetched one at a time; the stream stops early if the client
    goes away.
    """
    sink = _ZipSink()
    with zipfile.ZipFile(sink, mode="w", compression=zipfile.ZIP_DEFLATED) as archive:
        for archive_name, file_url in entries:
            if await request.is_disconnected():
                logger.info("Client disconnected during ZIP download; stopping")
                return
            contents = await read(file_url)
            await asyncio.to_thread(archive.writestr, archive_name, contents)
            data = sink.drain()
            for start in range(0, len(data), STREAM_CHUNK_SIZE):
                yield data[start:start + STREAM_CHUNK_SIZE]
    tail = sink.drain()
    if tail:
        yield tail


async def stream_file(request: Request, path: str) -> AsyncIterator[bytes]:
    # disk reads run in a worker thread so a large PDF does not stall the loop
    handle = await asyncio.to_thread(open, path, "rb")
    try:
        while True:
            if await request.is_disconnected():
                logger.info("Client disconnected during file download; stopping")
                return
            chunk = await asyncio.to_thread(handle.read, STREAM_CHUNK_SIZE)
            if not chunk:
                return
            yield chunk
    finally:
        handle.close()
