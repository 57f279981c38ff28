"""Artifact filename grammar.

Binary artifact names encode everything needed to decide compatibility:

    v{version}-m{module_abi}-n{native_api}-{os}_{os_major}.{os_minor}-{libc}_{libc_major}.{libc_minor}[.{libc_patch}]-{arch}{suffix}

Example:
    v1.4.0-mcp312-n8-linux_5.4-glibc_2.28-x64.so.gz

Package version, module ABI and architecture must equal the local values
exactly; the remaining fields are captured and compared by the
compatibility filter.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from nativeprebuild.host.fingerprint import Version

BINARY_SUFFIXES: tuple[str, ...] = (".so", ".pyd")
COMPRESSED_SUFFIX = ".gz"
CHECKSUM_SUFFIX = ".sha256sum"


@dataclass(frozen=True)
class ParsedArtifactName:
    """Fields decoded from an artifact name.

    Attributes:
        native_api: Stable-ABI level the binary was built against.
        os_name: OS name.
        os_version: Minimum OS version (major.minor).
        libc_name: C runtime family.
        libc_version: Minimum C runtime version (patch 0 when absent).
    """

    native_api: int
    os_name: str
    os_version: Version
    libc_name: str
    libc_version: Version


@dataclass(frozen=True)
class BinaryName:
    """An asset name split into grammar stem and suffix.

    Attributes:
        stem: Name without binary/compression suffix.
        suffix: Binary suffix (".so" or ".pyd").
        compressed: True when the name ends in ".gz".
    """

    stem: str
    suffix: str
    compressed: bool


def split_binary_name(name: str) -> BinaryName | None:
    """Split off a recognized binary suffix (optionally gzip-compressed).

    Returns:
        BinaryName, or None if the name is not a binary artifact.
    """
    compressed = name.endswith(COMPRESSED_SUFFIX)
    base = name[: -len(COMPRESSED_SUFFIX)] if compressed else name
    for suffix in BINARY_SUFFIXES:
        if base.endswith(suffix) and len(base) > len(suffix):
            return BinaryName(stem=base[: -len(suffix)], suffix=suffix, compressed=compressed)
    return None


def minbuild_name(version: str) -> str:
    """Name of the bulk prebuilt-sources archive for a version."""
    return f"v{version}-minbuild.tar.gz"


def checksum_name(name: str) -> str:
    """Name of the checksum sibling for an asset."""
    return f"{name}{CHECKSUM_SUFFIX}"


def build_artifact_name(
    *,
    version: str,
    module_abi: str,
    native_api: int,
    os_name: str,
    os_version: Version,
    libc_name: str,
    libc_version: Version,
    architecture: str,
) -> str:
    """Build the canonical artifact stem (no suffix).

    The libc patch is written only when non-zero.
    """
    libc = f"{libc_version.major}.{libc_version.minor}"
    if libc_version.patch:
        libc = f"{libc}.{libc_version.patch}"
    return (
        f"v{version}-m{module_abi}-n{native_api}"
        f"-{os_name}_{os_version.major}.{os_version.minor}"
        f"-{libc_name}_{libc}"
        f"-{architecture}"
    )


class ArtifactNameGrammar:
    """Matcher for artifact stems built for one local version/ABI/arch."""

    def __init__(self, version: str, module_abi: str, architecture: str) -> None:
        """Compile the matcher.

        Args:
            version: Local package version (matched literally).
            module_abi: Local interpreter ABI tag (matched literally).
            architecture: Local architecture (matched literally).
        """
        self.version = version
        self.module_abi = module_abi
        self.architecture = architecture
        self._pattern = re.compile(
            r"^v" + re.escape(version)
            + r"-m" + re.escape(module_abi)
            + r"-n(?P<native_api>\d+)"
            + r"-(?P<os_name>[A-Za-z0-9]+)_(?P<os_major>\d+)\.(?P<os_minor>\d+)"
            + r"-(?P<libc_name>[A-Za-z0-9]+)_(?P<libc_major>\d+)\.(?P<libc_minor>\d+)"
            + r"(?:\.(?P<libc_patch>\d+))?"
            + r"-" + re.escape(architecture)
            + r"$"
        )

    def parse(self, stem: str) -> ParsedArtifactName | None:
        """Decode a stem, or None when it is not an artifact for this host."""
        match = self._pattern.match(stem)
        if match is None:
            return None
        return ParsedArtifactName(
            native_api=int(match.group("native_api")),
            os_name=match.group("os_name"),
            os_version=Version(int(match.group("os_major")), int(match.group("os_minor"))),
            libc_name=match.group("libc_name"),
            libc_version=Version(
                int(match.group("libc_major")),
                int(match.group("libc_minor")),
                int(match.group("libc_patch") or 0),
            ),
        )

    def parse_asset_name(self, name: str) -> tuple[ParsedArtifactName, BinaryName] | None:
        """Split the suffix off an asset name and decode the stem."""
        binary = split_binary_name(name)
        if binary is None:
            return None
        parsed = self.parse(binary.stem)
        if parsed is None:
            return None
        return parsed, binary
