"""Blob storage for timeseries payloads, columnar files and exports.

:class:`LocalBlobStore` keeps objects under a filesystem root with a JSON
metadata sidecar per object. Download links for exports are signed with
HMAC-SHA256 and carry an absolute expiry.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Protocol
from urllib.parse import parse_qs, quote, unquote, urlencode, urlsplit

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac

from drivepipe.exceptions import BlobNotFoundError, ConfigError

_logger = logging.getLogger(__name__)

_METADATA_SUFFIX = ".meta.json"


@dataclass(frozen=True)
class BlobInfo:
    """Stored object description."""

    path: str
    size: int
    content_type: str = "application/octet-stream"
    metadata: dict[str, str] = field(default_factory=dict)


class BlobStore(Protocol):
    """Structural blob-store interface used by pipeline components."""

    async def read(self, path: str) -> bytes: ...

    async def write(
        self,
        path: str,
        data: bytes,
        *,
        content_type: str = "application/octet-stream",
        metadata: Mapping[str, str] | None = None,
    ) -> BlobInfo: ...

    async def exists(self, path: str) -> bool: ...

    async def info(self, path: str) -> BlobInfo: ...

    def signed_url(self, path: str, *, expires_in: float) -> str: ...


def _normalize(path: str) -> str:
    posix = PurePosixPath(path.strip().lstrip("/"))
    if not posix.parts or ".." in posix.parts:
        raise ValueError(f"Invalid blob path: {path!r}")
    return posix.as_posix()


def _sign(secret: bytes, message: str) -> str:
    mac = hmac.HMAC(secret, hashes.SHA256())
    mac.update(message.encode("utf-8"))
    return mac.finalize().hex()


def _signing_message(path: str, expires: int) -> str:
    return f"{path}\n{expires}"


def verify_signed_url(url: str, secret: str, *, now: float | None = None) -> str:
    """Validate a signed download URL and return the blob path it grants.

    Raises
    ------
    PermissionError
        If the signature is wrong, missing, or expired.
    """
    parts = urlsplit(url)
    query = parse_qs(parts.query)
    expires_values = query.get("expires")
    signature_values = query.get("signature")
    if not expires_values or not signature_values:
        raise PermissionError("Signed URL is missing expires/signature")

    try:
        expires = int(expires_values[0])
    except ValueError as exc:
        raise PermissionError("Signed URL has a malformed expiry") from exc

    current = time.time() if now is None else now
    if current > expires:
        raise PermissionError("Signed URL has expired")

    path = unquote(parts.path).lstrip("/")
    mac = hmac.HMAC(secret.encode("utf-8"), hashes.SHA256())
    mac.update(_signing_message(path, expires).encode("utf-8"))
    try:
        mac.verify(bytes.fromhex(signature_values[0]))
    except (InvalidSignature, ValueError) as exc:
        raise PermissionError("Signed URL signature mismatch") from exc
    return path


class LocalBlobStore:
    """Filesystem-backed blob store.

    Parameters
    ----------
    root : str or Path
        Directory that holds all objects.
    signing_secret : str
        HMAC key for download links. Signing without one raises
        :class:`ConfigError`.
    base_url : str
        Public URL prefix of signed links.
    """

    def __init__(
        self,
        root: str | Path,
        *,
        signing_secret: str = "",
        base_url: str = "https://storage.drivepipe.local",
    ) -> None:
        self._root = Path(root)
        self._signing_secret = signing_secret
        self._base_url = base_url.rstrip("/")

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, path: str) -> Path:
        return self._root / _normalize(path)

    def _read_sync(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise BlobNotFoundError(path)
        return target.read_bytes()

    def _write_sync(self, path: str, data: bytes, content_type: str, metadata: dict[str, str]) -> BlobInfo:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        sidecar = target.with_name(target.name + _METADATA_SUFFIX)
        sidecar.write_text(
            json.dumps({"contentType": content_type, "metadata": metadata}, sort_keys=True),
            encoding="utf-8",
        )
        return BlobInfo(path=_normalize(path), size=len(data), content_type=content_type, metadata=metadata)

    def _info_sync(self, path: str) -> BlobInfo:
        target = self._resolve(path)
        if not target.is_file():
            raise BlobNotFoundError(path)
        sidecar = target.with_name(target.name + _METADATA_SUFFIX)
        content_type = "application/octet-stream"
        metadata: dict[str, str] = {}
        if sidecar.is_file():
            stored = json.loads(sidecar.read_text(encoding="utf-8"))
            content_type = str(stored.get("contentType") or content_type)
            metadata = {str(k): str(v) for k, v in (stored.get("metadata") or {}).items()}
        return BlobInfo(
            path=_normalize(path),
            size=target.stat().st_size,
            content_type=content_type,
            metadata=metadata,
        )

    async def read(self, path: str) -> bytes:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read_sync, path)

    async def write(
        self,
        path: str,
        data: bytes,
        *,
        content_type: str = "application/octet-stream",
        metadata: Mapping[str, str] | None = None,
    ) -> BlobInfo:
        loop = asyncio.get_running_loop()
        info = await loop.run_in_executor(
            None,
            self._write_sync,
            path,
            data,
            content_type,
            dict(metadata or {}),
        )
        _logger.debug("Blob written path=%s size=%d", info.path, info.size)
        return info

    async def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    async def info(self, path: str) -> BlobInfo:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._info_sync, path)

    def signed_url(self, path: str, *, expires_in: float, now: float | None = None) -> str:
        """Return a download link for *path* valid for *expires_in* seconds."""
        if not self._signing_secret:
            raise ConfigError("signing_secret is required to sign download URLs")
        normalized = _normalize(path)
        current = time.time() if now is None else now
        expires = int(current + expires_in)
        signature = _sign(self._signing_secret.encode("utf-8"), _signing_message(normalized, expires))
        query = urlencode({"expires": expires, "signature": signature})
        return f"{self._base_url}/{quote(normalized)}?{query}"
