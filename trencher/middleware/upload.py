"""
Trencher — Upload Middleware Factory
======================================

What:  Builds the upload stage of a route chain: parses the multipart body,
       stores accepted files on disk and exposes the plain fields.
How:   ``configure_upload(UploadConfig(...))`` returns an ``UploadStage``
       bound to one destination folder and one set of accepted field names.
       Each file is streamed to ``<folder>/<token>-<ms>.<ext>`` with aiofiles.
Who:   Inserted by the route engine before the validation gate whenever the
       route's ``UploadConfig`` names at least one file field.
When:  Per request, before validation and before the controller.

Failure policy:
    Any upload problem (file under a field that was not declared, file over
    the size limit, I/O error, unparseable multipart body) aborts the chain
    with an INTERNAL_SERVER error (HTTP 500) and the generic message
    ``UPLOAD_FAILURE_MESSAGE``. The reason is only logged. Nothing is retried.
    Declared file fields that are simply missing from the request are fine.

Directory handling:
    The destination folder is created on demand (recursive, idempotent) and
    never cleaned up by Trencher.
"""

import logging
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

import aiofiles
from pydantic import BaseModel, Field, field_validator
from starlette.datastructures import UploadFile

from trencher.config import settings
from trencher.exceptions import TrencherError

if TYPE_CHECKING:
    from trencher.routing.context import RequestContext

logger = logging.getLogger(__name__)

TOKEN_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
TOKEN_LENGTH = 7
CHUNK_SIZE = 64 * 1024
UPLOAD_FAILURE_MESSAGE = "File upload failed."


class UploadConfig(BaseModel):
    """
    Upload configuration for one resource or route.

    Attributes:
        folder:           Destination directory for stored files.
        file_field_names: Form fields allowed to carry files, in order.
        max_file_size:    Per-file limit in bytes.
    """

    folder: str = Field(default_factory=lambda: settings.upload_folder)
    file_field_names: Tuple[str, ...] = ()
    max_file_size: int = Field(default_factory=lambda: settings.max_file_size, gt=0)

    model_config = {"frozen": True}

    @field_validator("file_field_names", mode="before")
    @classmethod
    def coerce_field_names(cls, v):
        if isinstance(v, str):
            return (v,)
        return tuple(v)

    @property
    def enabled(self) -> bool:
        return bool(self.file_field_names)


@dataclass(frozen=True)
class UploadedFileDescriptor:
    """A file stored by the upload stage during the current request."""

    field_name: str
    original_name: str
    generated_name: str
    destination_folder: str
    path: str
    content_type: Optional[str]
    size: int


def _random_token(length: int = TOKEN_LENGTH) -> str:
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def generate_filename(original_name: str) -> str:
    """
    Build a stored filename: ``<base-36 token>-<ms timestamp>.<extension>``.

    The extension is the last dot-separated segment of ``original_name``,
    taken verbatim. A name without a dot therefore yields the whole name as
    its "extension" (``"README"`` → ``"x1y2z3a-1700000000000.README"``).
    """
    extension = original_name.split(".")[-1]
    timestamp_ms = int(time.time() * 1000)
    return f"{_random_token()}-{timestamp_ms}.{extension}"


def _upload_failure(reason: str, field: Optional[str] = None, **context) -> TrencherError:
    """The reason and context are logged; the error only names the field."""
    logger.error("Upload failed: %s (field=%s) %s", reason, field, context)
    metadata = {"stage": "upload"}
    if field is not None:
        metadata["field"] = field
    return TrencherError.internal_server(message=UPLOAD_FAILURE_MESSAGE, metadata=metadata)


def _discard(path: Path) -> None:
    if path.is_file():
        path.unlink()


class UploadStage:
    """
    Chain stage that stores the files of a multipart request.

    Non-multipart requests (JSON, urlencoded) pass straight through.
    """

    def __init__(self, config: UploadConfig):
        self.config = config
        self.folder = Path(config.folder)
        self.accepted = frozenset(config.file_field_names)

    def __repr__(self) -> str:
        return f"UploadStage(folder={self.config.folder!r}, fields={list(self.config.file_field_names)!r})"

    async def __call__(self, ctx: "RequestContext", call_next):
        if not ctx.is_multipart:
            return await call_next()

        try:
            form = await ctx.form()
        except Exception as e:
            logger.error("Could not parse multipart body for %s %s: %s", ctx.method, ctx.path, e)
            raise _upload_failure("malformed multipart body", error=str(e)) from e

        stored: Dict[str, List[UploadedFileDescriptor]] = {}
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                if not value.filename:
                    # Empty file input; treated as absent.
                    continue
                if key not in self.accepted:
                    raise _upload_failure("Unexpected field", field=key)
                descriptor = await self.store_file(key, value)
                stored.setdefault(key, []).append(descriptor)
            else:
                ctx.data.setdefault(key, value)

        for key, descriptors in stored.items():
            ctx.files.setdefault(key, []).extend(descriptors)
            # Controllers receive the stored location in place of the upload.
            ctx.data[key] = descriptors[0].path if len(descriptors) == 1 else [d.path for d in descriptors]

        return await call_next()

    async def store_file(self, field_name: str, upload: UploadFile) -> UploadedFileDescriptor:
        """
        Stream one upload to the destination folder.

        Raises:
            TrencherError (INTERNAL_SERVER) on size overflow or OS errors.
            The partially written file is removed first.
        """
        generated_name = generate_filename(upload.filename)
        destination = self.folder / generated_name
        size = 0

        try:
            self.folder.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(destination, "wb") as out:
                while True:
                    chunk = await upload.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > self.config.max_file_size:
                        raise _upload_failure(
                            "File too large",
                            field=field_name,
                            max_file_size=self.config.max_file_size,
                        )
                    await out.write(chunk)
        except TrencherError:
            _discard(destination)
            raise
        except OSError as e:
            logger.error("Failed to store upload at %s: %s", destination, e)
            _discard(destination)
            raise _upload_failure("could not write file", field=field_name, os_error=str(e)) from e

        logger.info("Stored upload %s → %s (%d bytes)", field_name, destination, size)
        return UploadedFileDescriptor(
            field_name=field_name,
            original_name=upload.filename,
            generated_name=generated_name,
            destination_folder=str(self.folder),
            path=str(destination),
            content_type=upload.content_type,
            size=size,
        )


def configure_upload(config: Optional[UploadConfig] = None, **kwargs) -> UploadStage:
    """
    Create an upload stage.

    Accepts either an ``UploadConfig`` or its fields as keyword arguments:
        configure_upload(folder="public/avatars", file_field_names=["avatar"])
    """
    if config is None:
        config = UploadConfig(**kwargs)
    return UploadStage(config)
