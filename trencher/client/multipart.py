"""
Trencher — Multipart Preparation Pipeline
===========================================

What:  Turns a payload that mixes plain values and file-picker results into
       a transport-ready multipart body plus its headers.
How:   1. Partition: a value is a file field iff its first asset exposes a
          ``uri`` (``{"assets": [{"uri": ...}]}`` or a ``PickerResult``).
       2. Normalise each file for the target platform:
            web      → ``NormalizedFile`` (decoded bytes + name + type)
            android  → ``NativeFileRef`` ``{uri, type, name}``
            ios      → ``NativeFileRef`` with the ``file://`` prefix removed
          PDFs (declared MIME type or ``.pdf`` URI) and images are handled
          separately; PDFs that are neither data URIs nor in-memory bytes
          raise INTERNAL_LIBRARY before any network call.
       3. Append files and non-None plain values in payload key order.
       4. Return the body with ``Content-Type: multipart/form-data``.
Who:   ``MultipartApiRequestsHelper`` pipes every POST/PUT/PATCH body
       through ``prepare_data``.

Known quirk (kept on purpose):
    A value shaped like a picker result whose first asset has no ``uri`` is
    not a file field. It falls through to the plain fields and is sent as
    a JSON-encoded object.
"""

import base64
import binascii
import json
import logging
import mimetypes
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from trencher.client.urls import build_full_url
from trencher.config import Platform, settings
from trencher.exceptions import TrencherError

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"
DEFAULT_BINARY_TYPE = "application/octet-stream"
MULTIPART_CONTENT_TYPE = "multipart/form-data"


# ══════════════════════════════════════════════════════════════════════════
# Payload shapes
# ══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class FileAsset:
    """
    One picked file.

    ``uri`` is a data URI (web pickers), a ``file://`` URI (native pickers)
    or any other locator. ``content`` holds bytes already in memory.
    """

    uri: Optional[str]
    mime_type: Optional[str] = None
    name: Optional[str] = None
    content: Optional[bytes] = None

    @classmethod
    def from_mapping(cls, data: Mapping) -> "FileAsset":
        return cls(
            uri=data.get("uri"),
            mime_type=data.get("mimeType") or data.get("mime_type") or data.get("type"),
            name=data.get("name") or data.get("fileName"),
            content=data.get("content"),
        )


@dataclass(frozen=True)
class PickerResult:
    """Explicit form of a file-picker result: ``{"assets": [...]}``."""

    assets: Sequence[FileAsset]


@dataclass(frozen=True)
class FileField:
    param_name: str
    asset: FileAsset


@dataclass(frozen=True)
class NormalizedFile:
    """Web representation: decoded bytes ready for upload."""

    name: str
    content_type: str
    content: bytes


@dataclass(frozen=True)
class NativeFileRef:
    """Native representation: a ``{uri, type, name}`` record."""

    uri: str
    type: str
    name: str

    def read_bytes(self) -> bytes:
        return Path(self.uri.removeprefix("file://")).read_bytes()


NormalizedUpload = Union[NormalizedFile, NativeFileRef]


# ══════════════════════════════════════════════════════════════════════════
# Partitioning
# ══════════════════════════════════════════════════════════════════════════

def _first_asset(value: Any) -> Optional[FileAsset]:
    if isinstance(value, Mapping):
        assets = value.get("assets")
    else:
        assets = getattr(value, "assets", None)
    if not assets or isinstance(assets, (str, bytes)):
        return None
    first = assets[0]
    if isinstance(first, FileAsset):
        return first
    if isinstance(first, Mapping):
        return FileAsset.from_mapping(first)
    return None


def is_file_field(value: Any) -> bool:
    """The one file-marker check: the value's first asset has a ``uri``."""
    asset = _first_asset(value)
    return asset is not None and bool(asset.uri)


def get_files_from_data(data: Mapping) -> List[FileField]:
    """File fields of ``data``, in key order."""
    return [FileField(key, _first_asset(value)) for key, value in data.items() if is_file_field(value)]


def get_data_without_files(data: Mapping) -> Dict[str, Any]:
    """Everything in ``data`` that is not a file field, in key order."""
    return {key: value for key, value in data.items() if not is_file_field(value)}


# ══════════════════════════════════════════════════════════════════════════
# Normalisation
# ══════════════════════════════════════════════════════════════════════════

def _resolve_platform(platform: Optional[Union[Platform, str]]) -> Platform:
    return Platform(platform) if platform is not None else settings.client_platform


def _guess_type(uri: Optional[str]) -> Optional[str]:
    if not uri:
        return None
    return mimetypes.guess_type(uri)[0]


def _decode_data_uri(uri: str) -> Tuple[str, bytes]:
    """``data:<type>;base64,<payload>`` → (type, bytes)."""
    header, _, encoded = uri.partition(",")
    media_type = header[len("data:"):].split(";")[0] or DEFAULT_BINARY_TYPE
    try:
        return media_type, base64.b64decode(encoded, validate=False)
    except (binascii.Error, ValueError) as e:
        raise TrencherError.internal_library(
            message="Could not decode base64 file content.",
            metadata={"media_type": media_type},
        ) from e


def _basename(uri: str) -> str:
    return uri.rstrip("/").split("/")[-1]


def _native_ref(uri: str, file_type: str, platform: Platform) -> NativeFileRef:
    name = _basename(uri)
    if platform is Platform.IOS:
        uri = uri.removeprefix("file://")
    return NativeFileRef(uri=uri, type=file_type, name=name)


def is_pdf(asset: FileAsset) -> bool:
    return asset.mime_type == PDF_MIME_TYPE or _guess_type(asset.uri) == PDF_MIME_TYPE


def normalize_image_file(
    asset: FileAsset,
    param_name: Optional[str] = None,
    platform: Optional[Union[Platform, str]] = None,
) -> NormalizedUpload:
    """
    Normalise an image for the target platform.

    Web: the data URI is decoded into a ``NormalizedFile`` named after the
    asset (or ``<param_name><ext>``). Native: a ``NativeFileRef`` whose type
    is guessed from the URI.
    """
    platform = _resolve_platform(platform)
    if platform is not Platform.WEB:
        return _native_ref(asset.uri, _guess_type(asset.uri) or DEFAULT_BINARY_TYPE, platform)

    if asset.uri.startswith("data:"):
        image_type, content = _decode_data_uri(asset.uri)
    elif asset.content is not None:
        image_type = asset.mime_type or _guess_type(asset.uri) or DEFAULT_BINARY_TYPE
        content = asset.content
    else:
        raise TrencherError.internal_library(
            message="This file format is not supported for images.",
            metadata={"param_name": param_name},
        )
    extension = mimetypes.guess_extension(image_type) or ""
    name = asset.name or f"{param_name or 'upload'}{extension}"
    return NormalizedFile(name=name, content_type=image_type, content=content)


def normalize_pdf_file(
    asset: FileAsset,
    param_name: Optional[str] = None,
    platform: Optional[Union[Platform, str]] = None,
) -> NormalizedUpload:
    """
    Normalise a PDF for the target platform.

    Raises:
        TrencherError (INTERNAL_LIBRARY): web asset that is neither a data
        URI nor in-memory bytes.
    """
    platform = _resolve_platform(platform)
    if platform is not Platform.WEB:
        return _native_ref(asset.uri, _guess_type(asset.uri) or PDF_MIME_TYPE, platform)

    file_type = asset.mime_type or PDF_MIME_TYPE
    if asset.uri.startswith("data:"):
        _, content = _decode_data_uri(asset.uri)
    elif asset.content is not None:
        content = asset.content
    else:
        raise TrencherError.internal_library(
            message="This file format is not supported by PDF.",
            metadata={"param_name": param_name},
        )
    name = asset.name or param_name or "unnamed.pdf"
    return NormalizedFile(name=name, content_type=file_type, content=content)


def normalize_file(field: FileField, platform: Optional[Union[Platform, str]] = None) -> NormalizedUpload:
    if is_pdf(field.asset):
        return normalize_pdf_file(field.asset, field.param_name, platform)
    return normalize_image_file(field.asset, field.param_name, platform)


# ══════════════════════════════════════════════════════════════════════════
# Multipart body
# ══════════════════════════════════════════════════════════════════════════

def _field_value(value: Any) -> Union[str, bytes]:
    if isinstance(value, (str, bytes)):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


class FormData:
    """Ordered multipart entries; the same name may appear more than once."""

    def __init__(self, entries: Iterable[Tuple[str, Any]] = ()):
        self._entries: List[Tuple[str, Any]] = list(entries)

    def append(self, name: str, value: Any) -> None:
        self._entries.append((name, value))

    def keys(self) -> List[str]:
        return [name for name, _ in self._entries]

    def items(self) -> List[Tuple[str, Any]]:
        return list(self._entries)

    def get(self, name: str, default: Any = None) -> Any:
        for entry_name, value in self._entries:
            if entry_name == name:
                return value
        return default

    def get_all(self, name: str) -> List[Any]:
        return [value for entry_name, value in self._entries if entry_name == name]

    @property
    def file_entries(self) -> List[Tuple[str, NormalizedUpload]]:
        return [(n, v) for n, v in self._entries if isinstance(v, (NormalizedFile, NativeFileRef))]

    @property
    def plain_entries(self) -> List[Tuple[str, Any]]:
        return [(n, v) for n, v in self._entries if not isinstance(v, (NormalizedFile, NativeFileRef))]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def __contains__(self, name: str) -> bool:
        return any(entry_name == name for entry_name, _ in self._entries)

    def to_httpx(self) -> Dict[str, Any]:
        """
        Keyword arguments for an httpx request.

        Every entry goes through ``files=``, so the body is always
        multipart/form-data and parts keep their order. Plain values are
        ``(None, value)`` parts, which httpx writes without a filename.
        """
        parts: List[Tuple[str, tuple]] = []
        for name, value in self._entries:
            if isinstance(value, NativeFileRef):
                parts.append((name, (value.name, value.read_bytes(), value.type)))
            elif isinstance(value, NormalizedFile):
                parts.append((name, (value.name, value.content, value.content_type)))
            else:
                parts.append((name, (None, _field_value(value))))
        return {"files": parts}


def get_multipart_headers() -> Dict[str, str]:
    return {"Content-Type": MULTIPART_CONTENT_TYPE}


def construct_form_data(
    files: Sequence[FileField],
    data_without_files: Mapping,
    platform: Optional[Union[Platform, str]] = None,
    key_order: Optional[Sequence[str]] = None,
) -> FormData:
    """
    Normalise ``files`` and append them with the non-None plain values.

    Entries follow ``key_order`` when given (the payload's key order),
    otherwise files come first, then plain values.
    """
    entries: List[Tuple[str, Any]] = [(f.param_name, normalize_file(f, platform)) for f in files]
    entries.extend((key, value) for key, value in data_without_files.items() if value is not None)

    if key_order is not None:
        position = {key: index for index, key in enumerate(key_order)}
        entries.sort(key=lambda entry: position.get(entry[0], len(position)))
    return FormData(entries)


@dataclass
class PreparedRequestPayload:
    """Multipart body + headers for one outgoing request; consumable once."""

    form_data: FormData
    headers: Dict[str, str] = field(default_factory=get_multipart_headers)
    consumed: bool = False

    @property
    def plain_fields(self) -> Dict[str, Any]:
        return dict(self.form_data.plain_entries)

    @property
    def file_fields(self) -> List[Tuple[str, NormalizedUpload]]:
        return self.form_data.file_entries

    def consume(self) -> Dict[str, Any]:
        """
        Hand the body to the transport.

        The transport completes ``headers["Content-Type"]`` with the part
        boundary, so the header itself is not forwarded.

        Raises:
            TrencherError (INTERNAL_LIBRARY) when called a second time.
        """
        if self.consumed:
            raise TrencherError.internal_library(message="Prepared request payload was already sent.")
        self.consumed = True
        return self.form_data.to_httpx()


def prepare_data(
    payload: Optional[Mapping],
    platform: Optional[Union[Platform, str]] = None,
) -> PreparedRequestPayload:
    """
    Build the multipart body for ``payload``.

    ``None`` values are dropped; field order follows ``payload``'s key order.
    Unsupported files raise before anything is sent.
    """
    payload = payload or {}
    files = get_files_from_data(payload)
    plain = get_data_without_files(payload)
    form_data = construct_form_data(files, plain, platform, key_order=list(payload))
    logger.debug(
        "Prepared multipart payload: %d file(s), %d plain field(s)",
        len(form_data.file_entries),
        len(form_data.plain_entries),
    )
    return PreparedRequestPayload(form_data=form_data)


def prepare_entity_images(
    entity: Mapping,
    image_property_names: Iterable[str],
    base_url: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Copy ``entity`` with stored image paths turned into picker-shaped values.

    ``{"avatar": "uploads/a.png"}`` → ``{"avatar": {"assets": [{"uri": "<base>/uploads/a.png"}]}}``
    Falsy image values are left untouched.
    """
    base = base_url if base_url is not None else settings.api_base_url
    entity_copy = dict(entity)
    for name in image_property_names:
        if entity_copy.get(name):
            entity_copy[name] = {"assets": [{"uri": build_full_url(base, str(entity_copy[name]))}]}
    return entity_copy
