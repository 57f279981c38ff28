"""Release catalog types.

RemoteAsset and ReleaseMetadata validate the GitHub releases API payload
(asset entries individually, so one bad entry does not hide the rest);
the remaining dataclasses are the classified view of one release.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from nativeprebuild.artifacts.naming import ParsedArtifactName

logger = logging.getLogger(__name__)


class RemoteAsset(BaseModel):
    """One asset of a GitHub release.

    Attributes:
        name: Asset filename.
        browser_download_url: Public download URL.
        content_type: Content type recorded at upload.
        size: Size in bytes.
        state: Upload state ("uploaded" when complete).
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = ""
    browser_download_url: str = ""
    content_type: str = ""
    size: int = Field(default=0, ge=0)
    state: str = ""

    @property
    def is_usable(self) -> bool:
        """Only complete, non-empty, addressable assets are considered."""
        return (
            self.state == "uploaded"
            and self.size > 0
            and bool(self.name)
            and bool(self.browser_download_url)
        )

    @property
    def media_type(self) -> str:
        """Content type without parameters, lowercased."""
        return self.content_type.split(";", 1)[0].strip().lower()


class ReleaseMetadata(BaseModel):
    """Subset of the releases-by-tag response used for resolution."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    tag_name: str | None = None
    draft: bool = False
    prerelease: bool = False
    assets: list[RemoteAsset] = Field(default_factory=list)

    @field_validator("assets", mode="before")
    @classmethod
    def drop_malformed_assets(cls, v: Any) -> Any:
        """Validate assets one by one; a malformed entry is skipped, not fatal."""
        if not isinstance(v, list):
            return v
        assets: list[RemoteAsset] = []
        for index, raw in enumerate(v):
            try:
                assets.append(RemoteAsset.model_validate(raw))
            except ValidationError as e:
                logger.debug(
                    "Skipping malformed release asset",
                    extra={"index": index, "errors": e.error_count()},
                )
        return assets


@dataclass(frozen=True)
class Candidate:
    """A compatible binary with a verifiable checksum.

    Attributes:
        asset: Release asset.
        parsed: Decoded artifact name.
        checksum_url: URL of the <name>.sha256sum sibling.
        compressed: Asset is gzip-compressed for transport.
    """

    asset: RemoteAsset
    parsed: ParsedArtifactName
    checksum_url: str
    compressed: bool = False

    @property
    def name(self) -> str:
        """Asset filename."""
        return self.asset.name


@dataclass(frozen=True)
class MinbuildArtifact:
    """Bulk archive of pre-staged build inputs.

    Attributes:
        asset: Release asset (v{version}-minbuild.tar.gz).
        checksum_url: URL of the checksum sibling.
    """

    asset: RemoteAsset
    checksum_url: str


@dataclass(frozen=True)
class ReleaseResolution:
    """Classified release: optional minbuild plus ranked binaries.

    Attributes:
        minbuild: Minbuild archive, if the release has one with a checksum.
        candidates: Compatible binaries, most-preferred first.
    """

    minbuild: MinbuildArtifact | None = None
    candidates: tuple[Candidate, ...] = field(default_factory=tuple)

    @property
    def best(self) -> Candidate | None:
        """Most-preferred candidate, if any."""
        return self.candidates[0] if self.candidates else None
