import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import UploadFile

from elibrary.exceptions import DependencyError, ValidationError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class StagedFile:
    """An uploaded file written to the local upload directory."""

    path: Path
    filename: str
    content_type: str

    @property
    def subtype(self) -> str:
        # "image/png" -> "png", "application/pdf" -> "pdf"
        return self.content_type.split("/")[-1]


@dataclass(frozen=True)
class BookUploads:
    cover_image: Optional[StagedFile] = None
    file: Optional[StagedFile] = None

    def staged(self) -> list[StagedFile]:
        return [f for f in (self.cover_image, self.file) if f is not None]

    def require_all(self) -> None:
        if self.cover_image is None or self.file is None:
            raise ValidationError("Cover image and book file are required")


def _is_present(upload: Optional[UploadFile]) -> bool:
    # browsers send an empty part with no filename for an untouched file input
    return upload is not None and bool(upload.filename)


def _remove_partial(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.error(f"Error deleting partial upload {path}: {exc}")


async def stage_upload(upload: UploadFile, directory: str | Path, max_bytes: int) -> StagedFile:
    directory = Path(directory)
    filename = uuid.uuid4().hex
    path = directory / filename

    written = 0
    try:
        await asyncio.to_thread(directory.mkdir, parents=True, exist_ok=True)
        out = await asyncio.to_thread(path.open, "wb")
        try:
            while chunk := await upload.read(CHUNK_SIZE):
                written += len(chunk)
                if written > max_bytes:
                    raise ValidationError(f"{upload.filename} exceeds the {max_bytes} byte upload limit")
                await asyncio.to_thread(out.write, chunk)
        finally:
            await asyncio.to_thread(out.close)
    except OSError as exc:
        _remove_partial(path)
        logger.error(f"Error staging upload {upload.filename} in {directory}: {exc}")
        raise DependencyError("Error while receiving the files") from exc
    except BaseException:
        _remove_partial(path)
        raise

    return StagedFile(
        path=path,
        filename=filename,
        content_type=upload.content_type or "application/octet-stream",
    )


async def discard(*files: Optional[StagedFile]) -> None:
    """Delete staged files concurrently. Failures are logged, never raised."""
    targets = [f for f in files if f is not None]
    results = await asyncio.gather(
        *(asyncio.to_thread(f.path.unlink) for f in targets),
        return_exceptions=True,
    )
    for staged, result in zip(targets, results):
        if isinstance(result, Exception):
            logger.error(f"Error deleting temporary file {staged.path}: {result}")


@asynccontextmanager
async def staged_book_uploads(
    cover_image: Optional[UploadFile],
    file: Optional[UploadFile],
    directory: str | Path,
    max_bytes: int,
) -> AsyncIterator[BookUploads]:
    """Stage the supplied book files and remove them on every exit path."""
    staged: list[StagedFile] = []
    try:
        slots = {}
        for name, upload in (("cover_image", cover_image), ("file", file)):
            if _is_present(upload):
                slots[name] = await stage_upload(upload, directory, max_bytes)
                staged.append(slots[name])
        yield BookUploads(**slots)
    finally:
        await discard(*staged)
