"""HTTP transfer, checksum verification and archive staging."""

from nativeprebuild.transfer.engine import (
    MAX_REDIRECTS,
    ContentCategory,
    TransferEngine,
    TransferResult,
    matches_category,
    media_type,
)
from nativeprebuild.transfer.extract import extract_archive, stage_minbuild
from nativeprebuild.transfer.verify import check_result, download_verified, parse_checksum

__all__ = [
    "MAX_REDIRECTS",
    "ContentCategory",
    "TransferEngine",
    "TransferResult",
    "check_result",
    "download_verified",
    "extract_archive",
    "matches_category",
    "media_type",
    "parse_checksum",
    "stage_minbuild",
]
