"""
Verified HTTP retrieval on aiohttp.

- Only http/https URLs
- Redirects followed manually, at most MAX_REDIRECTS hops, original headers on every hop
- Buffered mode for small JSON/text bodies with content-type checks
- Streaming mode writes to a file while hashing the bytes as received
  (before any gzip decoding) and counting them
- Partial output is removed when a streamed transfer fails

No retries: a failed request surfaces as a TransferError subclass.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import zlib
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any
from urllib.parse import urljoin, urlsplit

import aiohttp
import orjson

from nativeprebuild import __version__
from nativeprebuild.errors import (
    ContentTypeMismatchError,
    DecompressionError,
    HTTPStatusError,
    MetadataParseError,
    NetworkError,
    RedirectLoopError,
    TransferError,
    UnsupportedSchemeError,
)

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 5
CHUNK_SIZE = 64 * 1024
DEFAULT_CONNECT_TIMEOUT_S = 30.0
USER_AGENT = f"native-prebuild/{__version__}"

GZIP_MEDIA_TYPES = frozenset({"application/gzip", "application/x-gzip"})
GZIP_ENCODINGS = frozenset({"gzip", "x-gzip"})


class ContentCategory(str, Enum):
    """Expected kind of a buffered response body."""

    JSON = "json"
    TEXT = "text"


@dataclass(frozen=True)
class TransferResult:
    """Outcome of a successful transfer.

    Attributes:
        url: Final URL after redirects.
        content_type: Media type of the final response.
        size: Bytes received (before decompression).
        sha256: Hex SHA256 of the received bytes.
        redirects: Number of redirect hops followed.
        body: Buffered body (None for streamed transfers).
    """

    url: str
    content_type: str
    size: int
    sha256: str
    redirects: int = 0
    body: bytes | None = None


def media_type(content_type: str | None) -> str:
    """Content-Type without parameters, lowercased."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def matches_category(media: str, expect: ContentCategory) -> bool:
    """Check a media type against an expected content category.

    Release downloads are served as application/octet-stream, so that
    counts as text for checksum siblings.
    """
    if expect == ContentCategory.JSON:
        return media == "application/json" or media.endswith("+json")
    return media.startswith("text/") or media == "application/octet-stream"


class _GzipStream:
    """Incremental gunzip that follows concatenated gzip members.

    A decompressobj stops at the end of the first member; whatever follows
    is fed to a fresh one, the way the gzip module reads multi-member files.
    """

    def __init__(self) -> None:
        self._member = zlib.decompressobj(16 + zlib.MAX_WBITS)

    def feed(self, data: bytes) -> bytes:
        out = []
        while data:
            if self._member.eof:
                self._member = zlib.decompressobj(16 + zlib.MAX_WBITS)
            out.append(self._member.decompress(data))
            data = self._member.unused_data if self._member.eof else b""
        return b"".join(out)

    def finish(self) -> bytes:
        """Flush the last member; raises zlib.error if it is incomplete."""
        tail = self._member.flush()
        if not self._member.eof:
            raise zlib.error("truncated gzip stream")
        return tail


def gunzip(data: bytes) -> bytes:
    """Decompress a complete, possibly multi-member, gzip body."""
    stream = _GzipStream()
    return stream.feed(data) + stream.finish()


def _check_scheme(url: str) -> None:
    scheme = urlsplit(url).scheme.lower()
    if scheme not in ("http", "https"):
        msg = f"Unsupported URL scheme {scheme!r}: {url}"
        raise UnsupportedSchemeError(msg)


def _remove_partial(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove partial download", extra={"path": str(path), "error": str(e)})


class TransferEngine:
    """Async HTTP client for release metadata, checksums and artifacts.

    Usage:
        async with TransferEngine() as engine:
            data = await engine.fetch_json(url)
    """

    def __init__(
        self,
        *,
        max_redirects: int = MAX_REDIRECTS,
        connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S,
        user_agent: str = USER_AGENT,
    ) -> None:
        """
        Initialize the engine.

        Args:
            max_redirects: Redirect hop cap.
            connect_timeout_s: Socket connect timeout. There is no total
                timeout; artifacts can be large.
            user_agent: User-Agent header value.
        """
        self._max_redirects = max_redirects
        self._connect_timeout_s = connect_timeout_s
        self._user_agent = user_agent
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> TransferEngine:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=None, sock_connect=self._connect_timeout_s)
            # Digests are computed over wire bytes, so no transparent decoding.
            self._session = aiohttp.ClientSession(timeout=timeout, auto_decompress=False)
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def transfer(
        self,
        url: str,
        headers: Mapping[str, str] | None = None,
        *,
        sink: Path | None = None,
        expect: ContentCategory | None = None,
        decompress: bool | None = None,
    ) -> TransferResult:
        """
        Retrieve a URL, following redirects.

        Args:
            url: http(s) URL.
            headers: Request headers, sent on every hop.
            sink: File to stream the body into; None buffers in memory.
            expect: Content category required of a buffered body.
            decompress: Gunzip the stream before the sink. None decides from
                the response Content-Type/Content-Encoding.

        Returns:
            TransferResult.

        Raises:
            UnsupportedSchemeError: URL is not http(s).
            RedirectLoopError: More than max_redirects hops.
            HTTPStatusError: 404, redirect without Location, or other status.
            ContentTypeMismatchError: Buffered body has the wrong type.
            DecompressionError: Corrupt gzip stream.
            NetworkError: Connection-level failure.
        """
        request_headers = {
            "User-Agent": self._user_agent,
            "Accept-Encoding": "identity",
            **(headers or {}),
        }
        current = url
        hops = 0
        session = await self._get_session()

        while True:
            _check_scheme(current)
            try:
                async with session.get(
                    current,
                    headers=request_headers,
                    allow_redirects=False,
                ) as response:
                    status = response.status

                    if 300 <= status < 400:
                        location = response.headers.get("Location")
                        if not location:
                            msg = f"Redirect {status} without Location header from {current}"
                            raise HTTPStatusError(msg, status, current)
                        hops += 1
                        if hops > self._max_redirects:
                            msg = f"Too many redirects (>{self._max_redirects}) starting at {url}"
                            raise RedirectLoopError(msg, hops)
                        next_url = urljoin(current, location)
                        logger.debug(
                            "Following redirect",
                            extra={"status": status, "hop": hops, "url": next_url},
                        )
                        current = next_url
                        continue

                    if status == 404:
                        raise HTTPStatusError(f"Not found: {current}", status, current)
                    if status != 200:
                        raise HTTPStatusError(f"Unexpected status {status} from {current}", status, current)

                    if sink is None:
                        return await self._buffer(response, current, hops, expect)
                    return await self._stream(response, current, hops, sink, decompress)
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                msg = f"Request to {current} failed: {e or type(e).__name__}"
                raise NetworkError(msg) from e

    async def _buffer(
        self,
        response: aiohttp.ClientResponse,
        url: str,
        hops: int,
        expect: ContentCategory | None,
    ) -> TransferResult:
        media = media_type(response.headers.get("Content-Type"))
        if expect is not None and not matches_category(media, expect):
            msg = f"Expected {expect.value} content from {url}, got {media or 'no content type'}"
            raise ContentTypeMismatchError(msg)

        raw = await response.read()
        body = raw
        if response.headers.get("Content-Encoding", "").lower() in GZIP_ENCODINGS:
            try:
                body = gunzip(raw)
            except zlib.error as e:
                raise DecompressionError(f"Corrupt gzip body from {url}: {e}") from e

        return TransferResult(
            url=url,
            content_type=media,
            size=len(raw),
            sha256=hashlib.sha256(raw).hexdigest(),
            redirects=hops,
            body=body,
        )

    async def _stream(
        self,
        response: aiohttp.ClientResponse,
        url: str,
        hops: int,
        sink: Path,
        decompress: bool | None,
    ) -> TransferResult:
        media = media_type(response.headers.get("Content-Type"))
        if decompress is None:
            encoding = response.headers.get("Content-Encoding", "").lower()
            decompress = media in GZIP_MEDIA_TYPES or encoding in GZIP_ENCODINGS

        decompressor = _GzipStream() if decompress else None
        hasher = hashlib.sha256()
        size = 0

        try:
            sink.parent.mkdir(parents=True, exist_ok=True)
            with sink.open("wb") as f:
                async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                    hasher.update(chunk)
                    size += len(chunk)
                    f.write(decompressor.feed(chunk) if decompressor else chunk)
                if decompressor is not None:
                    f.write(decompressor.finish())
        except BaseException as e:
            response.close()
            _remove_partial(sink)
            if isinstance(e, zlib.error):
                raise DecompressionError(f"Corrupt gzip stream from {url}: {e}") from e
            if isinstance(e, OSError) and not isinstance(e, aiohttp.ClientError):
                raise TransferError(f"Cannot write {sink}: {e}") from e
            raise

        digest = hasher.hexdigest()
        logger.debug(
            "Transfer complete",
            extra={"url": url, "bytes": size, "sha256": digest, "decompressed": bool(decompressor)},
        )
        return TransferResult(
            url=url,
            content_type=media,
            size=size,
            sha256=digest,
            redirects=hops,
        )

    async def fetch_json(self, url: str, headers: Mapping[str, str] | None = None) -> Any:
        """Fetch and decode a JSON document.

        Raises:
            MetadataParseError: Body is not valid JSON.
        """
        result = await self.transfer(url, headers, expect=ContentCategory.JSON)
        try:
            return orjson.loads(result.body or b"")
        except orjson.JSONDecodeError as e:
            raise MetadataParseError(f"Malformed JSON from {result.url}: {e}") from e

    async def fetch_text(self, url: str, headers: Mapping[str, str] | None = None) -> str:
        """Fetch a small plain-text document (UTF-8)."""
        result = await self.transfer(url, headers, expect=ContentCategory.TEXT)
        try:
            return (result.body or b"").decode("utf-8")
        except UnicodeDecodeError as e:
            raise ContentTypeMismatchError(f"Body from {result.url} is not UTF-8 text") from e

    async def download(
        self,
        url: str,
        dest: Path,
        headers: Mapping[str, str] | None = None,
        *,
        decompress: bool | None = None,
    ) -> TransferResult:
        """Stream a URL into a file."""
        return await self.transfer(url, headers, sink=dest, decompress=decompress)

