"""Release metadata retrieval and asset classification."""

from nativeprebuild.release.catalog import (
    AssetCatalog,
    classify_assets,
    metadata_headers,
    parse_release,
    release_url,
)
from nativeprebuild.release.models import (
    Candidate,
    MinbuildArtifact,
    ReleaseMetadata,
    ReleaseResolution,
    RemoteAsset,
)

__all__ = [
    "AssetCatalog",
    "Candidate",
    "MinbuildArtifact",
    "ReleaseMetadata",
    "ReleaseResolution",
    "RemoteAsset",
    "classify_assets",
    "metadata_headers",
    "parse_release",
    "release_url",
]
