"""
Checksum-verified downloads.

The checksum sibling is fetched first; the payload is trusted only if its
received byte count equals the published asset size and its SHA256 equals
the published digest. A payload that fails verification is deleted.
"""

from __future__ import annotations

import logging
import string
from typing import TYPE_CHECKING

from nativeprebuild.errors import (
    ChecksumFormatError,
    ChecksumLengthError,
    ChecksumMismatchError,
    SizeMismatchError,
)

if TYPE_CHECKING:
    from pathlib import Path

    from nativeprebuild.release.models import RemoteAsset
    from nativeprebuild.transfer.engine import TransferEngine, TransferResult

logger = logging.getLogger(__name__)

SHA256_HEX_LENGTH = 64
_HEX_DIGITS = frozenset(string.hexdigits.lower())


def parse_checksum(text: str) -> str:
    """Normalize checksum text to a lowercase hex digest.

    Raises:
        ChecksumLengthError: Not exactly 64 characters after trimming.
        ChecksumFormatError: Not hexadecimal.
    """
    digest = text.strip().lower()
    if len(digest) != SHA256_HEX_LENGTH:
        msg = f"Checksum must be {SHA256_HEX_LENGTH} characters, got {len(digest)}"
        raise ChecksumLengthError(msg)
    if not _HEX_DIGITS.issuperset(digest):
        msg = f"Checksum is not a hex digest: {digest!r}"
        raise ChecksumFormatError(msg)
    return digest


def check_result(result: TransferResult, *, expected_size: int, expected_sha256: str) -> None:
    """
    Compare a finished transfer against the published size and digest.

    Raises:
        SizeMismatchError: Received byte count differs.
        ChecksumMismatchError: Digest differs.
    """
    if result.size != expected_size:
        msg = f"Size mismatch for {result.url}: expected {expected_size} bytes, got {result.size}"
        raise SizeMismatchError(msg, expected_size, result.size)

    actual = result.sha256.lower()
    if actual != expected_sha256.lower():
        msg = f"SHA256 mismatch for {result.url}: expected {expected_sha256}, got {actual}"
        raise ChecksumMismatchError(msg, expected_sha256, actual)


async def download_verified(
    engine: TransferEngine,
    asset: RemoteAsset,
    checksum_url: str,
    dest: Path,
    *,
    decompress: bool | None = None,
) -> TransferResult:
    """
    Download an asset and verify it against its checksum sibling.

    Args:
        engine: Transfer engine.
        asset: Release asset to download.
        checksum_url: URL of the asset's .sha256sum sibling.
        dest: Destination file.
        decompress: Passed through to the engine.

    Returns:
        TransferResult of the payload download.

    Raises:
        TransferError: Checksum or payload transfer failed.
        VerificationError: Checksum malformed, or size/digest mismatch.
    """
    expected = parse_checksum(await engine.fetch_text(checksum_url))

    result = await engine.download(asset.browser_download_url, dest, decompress=decompress)
    try:
        check_result(result, expected_size=asset.size, expected_sha256=expected)
    except (SizeMismatchError, ChecksumMismatchError) as e:
        logger.warning(
            "Verification failed, removing download",
            extra={"asset": asset.name, "path": str(dest), "error": str(e)},
        )
        try:
            dest.unlink(missing_ok=True)
        except OSError as cleanup_error:
            logger.warning(
                "Could not remove unverified download",
                extra={"path": str(dest), "error": str(cleanup_error)},
            )
        raise

    logger.info(
        "Verified download",
        extra={"asset": asset.name, "path": str(dest), "bytes": result.size, "sha256": result.sha256},
    )
    return result
