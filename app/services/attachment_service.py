"""Attachment storage for chat uploads.

Turns uploaded files into stored files with a stable public URL. The service
knows nothing about rooms or messages: it validates what was uploaded, writes the
bytes under the uploads directory and reports ``(url, original name, mime, size)``
for each file so the chat service can record them as messages.
"""

import asyncio
import logging
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from app.core.config import settings
from app.exceptions.base import StorageError, ValidationError
from app.exceptions.chat import FileTooLargeError, UnsupportedFileTypeError

logger = logging.getLogger(__name__)

UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|]')
MAX_BASE_LENGTH = 60
MAX_EXT_LENGTH = 16
# Column widths of chat_messages.file_name and file_mime
MAX_ORIGINAL_NAME_LENGTH = 255
MAX_MIME_LENGTH = 100
READ_CHUNK_SIZE = 1024 * 1024


class Upload(Protocol):
    """Shape of an incoming upload (``fastapi.UploadFile`` satisfies it)."""

    filename: str | None
    content_type: str | None

    async def read(self, size: int = -1) -> bytes: ...


@dataclass(frozen=True)
class StoredFile:
    """A persisted upload, ready to be attached to a message."""

    url: str
    original_name: str
    mime_type: str | None
    size: int
    stored_name: str
    path: Path

    @property
    def is_image(self) -> bool:
        return (self.mime_type or "").startswith("image/")


def _wide_letter_count(text: str) -> int:
    # Latin-1 mojibake never contains letters above U+00FF
    return sum(1 for ch in text if ord(ch) > 0xFF and ch.isalpha())


def normalize_original_name(name: str | None) -> str:
    """Repair filenames whose UTF-8 bytes were decoded as latin-1.

    Multipart parsers commonly hand over non-ASCII names as mojibake. The
    re-decoded name is only adopted when it looks better than the raw one:
    fewer replacement characters, or more letters outside latin-1.
    """
    raw = (name or "").strip()
    if not raw:
        return "file"

    try:
        converted = raw.encode("latin-1").decode("utf-8", errors="replace")
    except UnicodeEncodeError:
        return raw

    if converted.count("\ufffd") < raw.count("\ufffd"):
        return converted
    if _wide_letter_count(converted) > _wide_letter_count(raw):
        return converted
    return raw


def safe_base_name(name: str) -> tuple[str, str]:
    """Split ``name`` into a filesystem-safe base and extension."""
    leaf = name.replace("\\", "/").rsplit("/", 1)[-1]
    base, ext = os.path.splitext(leaf)

    cleaned = re.sub(r"\s+", "_", base)
    cleaned = UNSAFE_CHARS.sub("", cleaned).rstrip(".")[:MAX_BASE_LENGTH]
    ext = UNSAFE_CHARS.sub("", re.sub(r"\s+", "", ext))[:MAX_EXT_LENGTH]

    return cleaned or "file", ext


def clip_original_name(name: str) -> str:
    """Shorten ``name`` to fit the message column, keeping its extension."""
    if len(name) <= MAX_ORIGINAL_NAME_LENGTH:
        return name
    base, ext = os.path.splitext(name)
    ext = ext[:MAX_EXT_LENGTH]
    return base[: MAX_ORIGINAL_NAME_LENGTH - len(ext)] + ext


def is_allowed_type(filename: str, mime_type: str | None) -> bool:
    """Images and plain text only."""
    mime = (mime_type or "").lower()
    return mime.startswith("image/") or mime == "text/plain" or filename.lower().endswith(".txt")


class AttachmentService:
    """Validates and persists chat uploads."""

    def __init__(
        self,
        upload_dir: str | Path | None = None,
        url_prefix: str | None = None,
        max_size: int | None = None,
        max_files: int | None = None,
    ):
        self.upload_dir = Path(upload_dir or settings.upload_dir)
        self.url_prefix = "/" + (url_prefix or settings.uploads_url_prefix).strip("/")
        self.max_size = max_size or settings.max_upload_size
        self.max_files = max_files or settings.max_files_per_upload

    async def store(self, uploads: list[Upload]) -> list[StoredFile]:
        """Validate and persist a batch of uploads.

        Every file is validated before anything is written, so a rejected batch
        leaves no files behind. If a write fails midway, the files already
        written for this batch are removed.

        Raises:
            ValidationError: Empty batch or too many files
            UnsupportedFileTypeError: A file is neither an image nor text
            FileTooLargeError: A file exceeds the size limit
            StorageError: The uploads directory could not be written
        """
        if not uploads:
            raise ValidationError("No files were uploaded")
        if len(uploads) > self.max_files:
            raise ValidationError(
                f"At most {self.max_files} files can be uploaded at once",
                details={"max_files": self.max_files, "received": len(uploads)},
            )

        pending = []
        for upload in uploads:
            original_name = normalize_original_name(upload.filename)
            if not is_allowed_type(original_name, upload.content_type):
                raise UnsupportedFileTypeError(original_name, upload.content_type)
            data = await self._read_limited(upload, original_name)
            mime_type = upload.content_type[:MAX_MIME_LENGTH] if upload.content_type else None
            pending.append((clip_original_name(original_name), mime_type, data))

        stored: list[StoredFile] = []
        try:
            for original_name, mime_type, data in pending:
                stored.append(await self._persist(original_name, mime_type, data))
        except StorageError:
            await self.discard(stored)
            raise

        logger.info(f"Stored {len(stored)} upload(s) in {self.upload_dir}")
        return stored

    async def discard(self, files: list[StoredFile]) -> None:
        """Remove stored files whose messages could not be recorded."""
        loop = asyncio.get_running_loop()
        for stored in files:
            try:
                await loop.run_in_executor(None, lambda p=stored.path: p.unlink(missing_ok=True))
            except OSError as e:
                logger.warning(f"Failed to remove orphaned upload {stored.path}: {str(e)}")

    def public_url(self, stored_name: str) -> str:
        return f"{self.url_prefix}/{stored_name}"

    def list_files(self) -> list[dict]:
        """List stored uploads, newest first."""
        if not self.upload_dir.is_dir():
            return []

        entries = [p for p in self.upload_dir.iterdir() if p.is_file() and not p.name.startswith(".")]
        entries.sort(key=lambda p: p.name, reverse=True)
        return [{"name": p.name, "url": self.public_url(p.name), "size": p.stat().st_size} for p in entries]

    def resolve(self, stored_name: str) -> Path | None:
        """Map a stored filename to its path, refusing anything outside the uploads directory."""
        safe_name = Path(stored_name).name
        if not safe_name or safe_name != stored_name:
            return None

        path = self.upload_dir / safe_name
        return path if path.is_file() else None

    async def _read_limited(self, upload: Upload, original_name: str) -> bytes:
        chunks = []
        total = 0
        while True:
            chunk = await upload.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            total += len(chunk)
            if total > self.max_size:
                raise FileTooLargeError(original_name, self.max_size)
            chunks.append(chunk)
        return b"".join(chunks)

    async def _persist(self, original_name: str, mime_type: str | None, data: bytes) -> StoredFile:
        base, ext = safe_base_name(original_name)
        loop = asyncio.get_running_loop()
        try:
            path = await loop.run_in_executor(None, self._write_exclusive, base, ext, data)
        except OSError as e:
            logger.error(f"Failed to store upload {original_name}: {str(e)}")
            raise StorageError("Failed to store uploaded file", details={"filename": original_name}) from e

        return StoredFile(
            url=self.public_url(path.name),
            original_name=original_name,
            mime_type=mime_type,
            size=len(data),
            stored_name=path.name,
            path=path,
        )

    def _write_exclusive(self, base: str, ext: str, data: bytes) -> Path:
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        stamp = int(time.time() * 1000)

        attempt = 0
        while True:
            suffix = f"_{attempt}" if attempt else ""
            path = self.upload_dir / f"{stamp}{suffix}_{base}{ext}"
            try:
                with open(path, "xb") as fh:
                    fh.write(data)
                return path
            except FileExistsError:
                attempt += 1


def get_attachment_service() -> AttachmentService:
    """Attachment service configured from settings."""
    return AttachmentService()
