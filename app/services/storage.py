import time
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from urllib.parse import parse_qs, urlencode, urlparse

import httpx

from app.core.config import Settings
from app.core.errors import ActivityRejectedError, TransientActivityError
from app.core.logging import get_logger
from app.core.security import sign, verify_signature

logger = get_logger(__name__)


class ObjectStorage(ABC):
    @abstractmethod
    async def exists(self, container: str, path: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def copy_from_url(self, source_url: str, container: str, path: str) -> str:
        """Copy ``source_url`` into ``container/path`` and return the stored object's URL."""
        raise NotImplementedError

    @abstractmethod
    def signed_url(self, container: str, path: str, ttl_seconds: int) -> str:
        raise NotImplementedError

    @abstractmethod
    def is_signed_url(self, url: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def read_text(self, url: str) -> str | None:
        """Return the text of an object this storage owns, or None for foreign URLs."""
        raise NotImplementedError


def _safe_relative(container: str, path: str) -> PurePosixPath:
    relative = PurePosixPath(container) / PurePosixPath(path.lstrip("/"))
    if ".." in relative.parts:
        raise ValueError(f"Invalid storage path: {path}")
    return relative


def _retryable_status(status_code: int) -> bool:
    return status_code in {408, 429} or status_code >= 500


class LocalObjectStorage(ObjectStorage):
    """Filesystem-backed storage that hands out HMAC-signed, expiring URLs."""

    def __init__(
        self,
        *,
        root: Path,
        public_base_url: str,
        secret_key: str,
        download_timeout_seconds: float = 300,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")
        self.secret_key = secret_key
        self.download_timeout_seconds = download_timeout_seconds
        self.transport = transport

    def _file(self, container: str, path: str) -> Path:
        return self.root / _safe_relative(container, path)

    def _url(self, container: str, path: str) -> str:
        return f"{self.public_base_url}/{_safe_relative(container, path)}"

    def _owned_relative(self, url: str) -> PurePosixPath | None:
        if not url.startswith(self.public_base_url + "/"):
            return None
        raw_path = urlparse(url).path
        base_path = urlparse(self.public_base_url).path.rstrip("/")
        relative = raw_path[len(base_path):].lstrip("/")
        if not relative:
            return None
        owned = PurePosixPath(relative)
        if ".." in owned.parts:
            raise ValueError(f"Invalid storage path: {relative}")
        return owned

    async def exists(self, container: str, path: str) -> bool:
        return self._file(container, path).is_file()

    async def copy_from_url(self, source_url: str, container: str, path: str) -> str:
        owned = self._owned_relative(source_url)
        target = self._file(container, path)
        target.parent.mkdir(parents=True, exist_ok=True)
        if owned is not None:
            source_file = self.root / owned
            if not source_file.is_file():
                raise ActivityRejectedError(f"Stored object not found: {owned}")
            target.write_bytes(source_file.read_bytes())
            return self._url(container, path)

        try:
            async with httpx.AsyncClient(
                timeout=self.download_timeout_seconds,
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                async with client.stream("GET", source_url) as response:
                    if response.status_code >= 400:
                        message = f"Download of {source_url} failed with HTTP {response.status_code}"
                        if _retryable_status(response.status_code):
                            raise TransientActivityError(message)
                        raise ActivityRejectedError(message)
                    with target.open("wb") as handle:
                        async for chunk in response.aiter_bytes():
                            handle.write(chunk)
        except httpx.TransportError as exc:
            raise TransientActivityError(f"Download of {source_url} failed: {exc}") from exc

        logger.info("stored object", extra={"extra": {"container": container, "path": path}})
        return self._url(container, path)

    def signed_url(self, container: str, path: str, ttl_seconds: int) -> str:
        relative = str(_safe_relative(container, path))
        expiry = int(time.time()) + ttl_seconds
        signature = sign(f"{relative}:{expiry}", self.secret_key)
        return f"{self.public_base_url}/{relative}?{urlencode({'se': expiry, 'sig': signature})}"

    def is_signed_url(self, url: str) -> bool:
        try:
            relative = self._owned_relative(url)
        except ValueError:
            return False
        if relative is None:
            return False
        query = parse_qs(urlparse(url).query)
        expiry = (query.get("se") or [""])[0]
        signature = (query.get("sig") or [""])[0]
        if not expiry.isdigit() or not signature:
            return False
        if int(expiry) < int(time.time()):
            return False
        return verify_signature(f"{relative}:{expiry}", signature, self.secret_key)

    async def read_text(self, url: str) -> str | None:
        relative = self._owned_relative(url)
        if relative is None:
            return None
        file_path = self.root / relative
        if not file_path.is_file():
            return None
        return file_path.read_text(encoding="utf-8")


def build_object_storage(settings: Settings) -> ObjectStorage:
    return LocalObjectStorage(
        root=settings.storage_root,
        public_base_url=settings.storage_public_base_url,
        secret_key=settings.secret_key,
        download_timeout_seconds=settings.media_download_timeout_seconds,
    )
