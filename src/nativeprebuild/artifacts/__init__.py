"""Artifact naming, compatibility and ranking."""

from nativeprebuild.artifacts.compat import (
    is_suitable,
    loose_version_satisfies,
    normalize_runtime_version,
    os_version_satisfies,
)
from nativeprebuild.artifacts.naming import (
    BINARY_SUFFIXES,
    ArtifactNameGrammar,
    BinaryName,
    ParsedArtifactName,
    build_artifact_name,
    checksum_name,
    minbuild_name,
    split_binary_name,
)
from nativeprebuild.artifacts.ranking import rank_candidates, rank_key

__all__ = [
    "BINARY_SUFFIXES",
    "ArtifactNameGrammar",
    "BinaryName",
    "ParsedArtifactName",
    "build_artifact_name",
    "checksum_name",
    "is_suitable",
    "loose_version_satisfies",
    "minbuild_name",
    "normalize_runtime_version",
    "os_version_satisfies",
    "rank_candidates",
    "rank_key",
    "split_binary_name",
]
