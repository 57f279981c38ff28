"""Minbuild archive staging."""

from __future__ import annotations

import logging
import tarfile
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from nativeprebuild.errors import ArchiveExtractionError
from nativeprebuild.transfer.verify import download_verified

if TYPE_CHECKING:
    from nativeprebuild.release.models import MinbuildArtifact
    from nativeprebuild.transfer.engine import TransferEngine

logger = logging.getLogger(__name__)


def extract_archive(archive: Path, target: Path) -> int:
    """Extract a gzip tarball into target.

    Members are filtered with tarfile's "data" filter, so absolute paths,
    parent-directory escapes and special files are rejected.

    Returns:
        Number of members extracted.

    Raises:
        ArchiveExtractionError: Archive unreadable or a member rejected.
    """
    try:
        target.mkdir(parents=True, exist_ok=True)
        with tarfile.open(archive, "r:gz") as tar:
            members = tar.getmembers()
            tar.extractall(target, filter="data")
    except (tarfile.TarError, OSError) as e:
        msg = f"Cannot extract {archive.name} into {target}: {e}"
        raise ArchiveExtractionError(msg) from e
    return len(members)


async def stage_minbuild(
    engine: TransferEngine,
    minbuild: MinbuildArtifact,
    target: Path,
) -> int:
    """
    Download, verify and extract the minbuild archive into target.

    The archive is kept gzip-compressed on disk (tarfile reads it) and the
    scratch copy is removed whatever the outcome.

    Returns:
        Number of members extracted.

    Raises:
        ArchiveExtractionError: Scratch space unusable or archive rejected.
    """
    try:
        with tempfile.TemporaryDirectory(prefix="native-prebuild-") as scratch:
            archive = Path(scratch) / minbuild.asset.name
            await download_verified(
                engine,
                minbuild.asset,
                minbuild.checksum_url,
                archive,
                decompress=False,
            )
            count = extract_archive(archive, target)
    except OSError as e:
        # Scratch directory could not be created or cleaned up
        msg = f"Cannot stage {minbuild.asset.name}: {e}"
        raise ArchiveExtractionError(msg) from e

    logger.info(
        "Staged minbuild",
        extra={"asset": minbuild.asset.name, "target": str(target), "members": count},
    )
    return count
