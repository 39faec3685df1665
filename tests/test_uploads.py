import asyncio
import io

import pytest
from starlette.datastructures import Headers, UploadFile

from elibrary.exceptions import DependencyError, ValidationError
from elibrary.uploads import BookUploads, StagedFile, discard, stage_upload, staged_book_uploads


def _upload(content=b"data", filename="cover.png", content_type="image/png"):
    return UploadFile(
        file=io.BytesIO(content),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


def test_stage_upload_writes_request_scoped_file(tmp_path):
    staged = asyncio.run(stage_upload(_upload(b"cover bytes"), tmp_path, max_bytes=1024))
    assert staged.path.parent == tmp_path
    assert staged.path.read_bytes() == b"cover bytes"
    assert staged.filename != "cover.png"
    assert staged.subtype == "png"


def test_stage_upload_enforces_limit(tmp_path):
    with pytest.raises(ValidationError):
        asyncio.run(stage_upload(_upload(b"x" * 100), tmp_path, max_bytes=10))
    assert list(tmp_path.iterdir()) == []


def test_require_all():
    cover = StagedFile(path=None, filename="a", content_type="image/png")
    with pytest.raises(ValidationError):
        BookUploads(cover_image=cover).require_all()
    BookUploads(cover_image=cover, file=cover).require_all()


def test_staged_book_uploads_cleans_up_on_error(tmp_path):
    async def run():
        async with staged_book_uploads(_upload(), _upload(b"%PDF", "b.pdf", "application/pdf"), tmp_path, 1024) as uploads:
            assert uploads.cover_image.path.exists()
            assert uploads.file.subtype == "pdf"
            raise RuntimeError("upload failed")

    with pytest.raises(RuntimeError):
        asyncio.run(run())
    assert list(tmp_path.iterdir()) == []


def test_staged_book_uploads_skips_empty_parts(tmp_path):
    async def run():
        async with staged_book_uploads(None, _upload(filename=""), tmp_path, 1024) as uploads:
            return uploads

    uploads = asyncio.run(run())
    assert uploads.staged() == []


def test_discard_logs_missing_files(tmp_path, caplog):
    gone = StagedFile(path=tmp_path / "missing", filename="missing", content_type="image/png")
    asyncio.run(discard(gone))
    assert "Error deleting temporary file" in caplog.text


def test_stage_upload_filesystem_error_is_a_dependency_error(tmp_path):
    blocker = tmp_path / "uploads"
    blocker.write_bytes(b"")
    with pytest.raises(DependencyError):
        asyncio.run(stage_upload(_upload(), blocker, max_bytes=1024))
    assert blocker.read_bytes() == b""
