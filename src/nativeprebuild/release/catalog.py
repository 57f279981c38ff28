"""
Release asset catalog.

Fetches the release for the configured version from the GitHub releases API
and classifies its assets into:
- checksum siblings (<name>.sha256sum, exactly 64 bytes)
- compatible binary candidates (ranked, most-preferred first)
- the optional minbuild archive

Binaries and the minbuild without a checksum sibling are dropped.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import TYPE_CHECKING

from pydantic import ValidationError

from nativeprebuild.artifacts.compat import is_suitable
from nativeprebuild.artifacts.naming import (
    CHECKSUM_SUFFIX,
    ArtifactNameGrammar,
    ParsedArtifactName,
    minbuild_name,
)
from nativeprebuild.artifacts.ranking import rank_candidates
from nativeprebuild.errors import MetadataParseError, ReleaseUnavailableError
from nativeprebuild.release.models import (
    Candidate,
    MinbuildArtifact,
    ReleaseMetadata,
    ReleaseResolution,
    RemoteAsset,
)

if TYPE_CHECKING:
    from nativeprebuild.config import PackageConfig
    from nativeprebuild.host.fingerprint import PlatformFingerprint
    from nativeprebuild.transfer.engine import TransferEngine

logger = logging.getLogger(__name__)

GITHUB_MEDIA_TYPE = "application/vnd.github+json"
TOKEN_ENV = "GITHUB_TOKEN"
CHECKSUM_SIZE = 64

BINARY_CONTENT_TYPES = frozenset(
    {
        "application/octet-stream",
        "application/x-sharedlib",
        "application/x-elf",
        "application/x-msdownload",
        "application/x-dosexec",
        "binary/octet-stream",
    }
)
GZIP_CONTENT_TYPES = frozenset(
    {
        "application/gzip",
        "application/x-gzip",
        "application/x-gtar",
    }
)


def release_url(api_host: str, owner: str, repo: str, version: str) -> str:
    """URL of the releases-by-tag endpoint for v{version}."""
    return f"{api_host.rstrip('/')}/repos/{owner}/{repo}/releases/tags/v{version}"


def metadata_headers(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Headers for the metadata request; adds a bearer token when available."""
    env = os.environ if environ is None else environ
    headers = {"Accept": GITHUB_MEDIA_TYPE}
    token = env.get(TOKEN_ENV, "").strip()
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def parse_release(data: object) -> ReleaseMetadata:
    """Validate a decoded releases API body.

    Raises:
        MetadataParseError: Body is not a release object.
        ReleaseUnavailableError: Release is a draft, a prerelease or has no assets.
    """
    if not isinstance(data, dict):
        msg = f"Release metadata must be an object, got {type(data).__name__}"
        raise MetadataParseError(msg)
    try:
        metadata = ReleaseMetadata.model_validate(data)
    except ValidationError as e:
        msg = f"Malformed release metadata: {e.error_count()} validation errors"
        raise MetadataParseError(msg) from e

    if metadata.draft:
        raise ReleaseUnavailableError(f"Release {metadata.tag_name} is a draft")
    if metadata.prerelease:
        raise ReleaseUnavailableError(f"Release {metadata.tag_name} is a prerelease")
    if not metadata.assets:
        raise ReleaseUnavailableError(f"Release {metadata.tag_name} has no assets")
    return metadata


def _binary_type_ok(asset: RemoteAsset, compressed: bool) -> bool:
    allowed = GZIP_CONTENT_TYPES if compressed else BINARY_CONTENT_TYPES
    return asset.media_type in allowed


def classify_assets(
    metadata: ReleaseMetadata,
    *,
    grammar: ArtifactNameGrammar,
    fingerprint: PlatformFingerprint | None,
    requires_native_api: bool,
    build_only: bool = False,
) -> ReleaseResolution:
    """
    Classify release assets.

    Each usable asset is tried as a checksum sibling first, then as a binary
    (unless build_only), then as the minbuild archive.

    Args:
        metadata: Validated release metadata.
        grammar: Name grammar for the local version/ABI/architecture.
        fingerprint: Local fingerprint (may be None in build-only mode).
        requires_native_api: Enforce the native-API rule.
        build_only: Skip binary classification.

    Returns:
        ReleaseResolution with ranked candidates.
    """
    checksums: dict[str, str] = {}
    binaries: list[tuple[RemoteAsset, ParsedArtifactName, bool]] = []
    minbuild: RemoteAsset | None = None
    minbuild_asset_name = minbuild_name(grammar.version)

    for asset in metadata.assets:
        if not asset.is_usable:
            continue

        if asset.name.endswith(CHECKSUM_SUFFIX):
            if asset.size == CHECKSUM_SIZE:
                checksums[asset.name[: -len(CHECKSUM_SUFFIX)]] = asset.browser_download_url
            continue

        if not build_only and fingerprint is not None:
            decoded = grammar.parse_asset_name(asset.name)
            if decoded is not None:
                parsed, binary = decoded
                if not _binary_type_ok(asset, binary.compressed):
                    logger.debug(
                        "Skipping binary with unexpected content type",
                        extra={"asset": asset.name, "content_type": asset.media_type},
                    )
                    continue
                if is_suitable(parsed, fingerprint, requires_native_api=requires_native_api):
                    binaries.append((asset, parsed, binary.compressed))
                continue

        if asset.name == minbuild_asset_name and asset.media_type in GZIP_CONTENT_TYPES:
            minbuild = asset

    candidates = []
    for asset, parsed, compressed in binaries:
        checksum_url = checksums.get(asset.name)
        if checksum_url is None:
            logger.debug("Dropping binary without checksum", extra={"asset": asset.name})
            continue
        candidates.append(
            Candidate(
                asset=asset,
                parsed=parsed,
                checksum_url=checksum_url,
                compressed=compressed,
            )
        )

    minbuild_artifact = None
    if minbuild is not None:
        checksum_url = checksums.get(minbuild.name)
        if checksum_url is None:
            logger.debug("Dropping minbuild without checksum", extra={"asset": minbuild.name})
        else:
            minbuild_artifact = MinbuildArtifact(asset=minbuild, checksum_url=checksum_url)

    return ReleaseResolution(
        minbuild=minbuild_artifact,
        candidates=tuple(rank_candidates(candidates)),
    )


class AssetCatalog:
    """Fetches and classifies the release for one package version."""

    def __init__(
        self,
        engine: TransferEngine,
        config: PackageConfig,
        fingerprint: PlatformFingerprint | None,
        *,
        build_only: bool = False,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        """
        Initialize the catalog.

        Args:
            engine: Transfer engine for the metadata request.
            config: Package configuration.
            fingerprint: Local fingerprint; unused in build-only mode.
            build_only: Only look for the minbuild archive.
            environ: Environment for the API token (defaults to os.environ).
        """
        self._engine = engine
        self._config = config
        self._fingerprint = fingerprint
        self._build_only = build_only
        self._environ = environ

    @property
    def url(self) -> str:
        return release_url(
            self._config.api_host,
            self._config.owner,
            self._config.repo,
            self._config.version,
        )

    async def resolve(self) -> ReleaseResolution:
        """
        Fetch and classify the release.

        Raises:
            TransferError: Metadata request failed.
            MetadataParseError: Body is not valid release metadata.
            ReleaseUnavailableError: Draft, prerelease or no assets.
        """
        if not self._build_only and self._fingerprint is None:
            msg = "A platform fingerprint is required to classify binaries"
            raise ValueError(msg)

        logger.info("Fetching release metadata", extra={"url": self.url})
        data = await self._engine.fetch_json(self.url, metadata_headers(self._environ))
        metadata = parse_release(data)

        fingerprint = self._fingerprint
        grammar = ArtifactNameGrammar(
            self._config.version,
            fingerprint.module_abi if fingerprint else "",
            (fingerprint.architecture or "") if fingerprint else "",
        )
        resolution = classify_assets(
            metadata,
            grammar=grammar,
            fingerprint=fingerprint,
            requires_native_api=self._config.uses_native_api,
            build_only=self._build_only,
        )
        logger.info(
            "Release classified",
            extra={
                "tag": metadata.tag_name,
                "assets": len(metadata.assets),
                "candidates": len(resolution.candidates),
                "minbuild": resolution.minbuild is not None,
            },
        )
        return resolution
