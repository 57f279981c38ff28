"""Platform fingerprint types.

A fingerprint is computed once per run by the detector and never mutated.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# major.minor with optional .patch; anything after is ignored (e.g. "6.8.0-45-generic")
VERSION_PATTERN = re.compile(r"(?P<major>\d+)\.(?P<minor>\d+)(?:\.(?P<patch>\d+))?")


class PlatformFamily(str, Enum):
    """OS family, each with its own detection strategy."""

    LINUX = "linux"
    DARWIN = "darwin"
    WINDOWS = "win32"
    FREEBSD = "freebsd"
    UNKNOWN = "unknown"

    @classmethod
    def from_name(cls, name: str) -> PlatformFamily:
        """Map an OS name (sys.platform style) to a family."""
        name = name.lower()
        if name.startswith("linux"):
            return cls.LINUX
        if name == "darwin":
            return cls.DARWIN
        if name in ("win32", "windows", "cygwin"):
            return cls.WINDOWS
        if name.startswith("freebsd"):
            return cls.FREEBSD
        return cls.UNKNOWN


@dataclass(frozen=True, order=True)
class Version:
    """Numeric major.minor.patch version.

    Attributes:
        major: Major component.
        minor: Minor component.
        patch: Patch component (0 when not given).
    """

    major: int
    minor: int
    patch: int = 0

    def __str__(self) -> str:
        """Return dotted form, patch omitted when zero."""
        if self.patch:
            return f"{self.major}.{self.minor}.{self.patch}"
        return f"{self.major}.{self.minor}"

    @classmethod
    def parse(cls, text: str | None) -> Version | None:
        """Find the first major.minor[.patch] in text.

        Returns:
            Parsed Version, or None when text has no version.
        """
        if not text:
            return None
        match = VERSION_PATTERN.search(text)
        if match is None:
            return None
        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor")),
            patch=int(match.group("patch") or 0),
        )


@dataclass(frozen=True)
class PlatformFingerprint:
    """What native artifacts the current host can load.

    Attributes:
        os_name: OS name as used in artifact names (e.g. "linux", "win32").
        family: Platform family driving family-specific rules.
        os_version: OS version, None if undetectable.
        libc_name: C runtime family (e.g. "glibc", "musl", "msvc").
        libc_version: Single C runtime version, None if undetectable.
        libc_versions: All installed runtime versions (win32 only).
        architecture: Normalized CPU architecture (e.g. "x64", "arm64").
        module_abi: Interpreter ABI tag (e.g. "cp312"), matched exactly.
        native_api: Highest stable-ABI level the interpreter loads.
    """

    os_name: str
    family: PlatformFamily
    os_version: Version | None
    libc_name: str | None
    libc_version: Version | None
    architecture: str | None
    module_abi: str
    native_api: int
    libc_versions: frozenset[Version] = field(default_factory=frozenset)

    @property
    def is_complete(self) -> bool:
        """Check whether every axis needed for resolution is known."""
        if not self.architecture or self.os_version is None or not self.libc_name:
            return False
        if self.family == PlatformFamily.WINDOWS:
            return bool(self.libc_versions)
        return self.libc_version is not None

    def missing_axes(self) -> list[str]:
        """List the axes that could not be determined."""
        missing: list[str] = []
        if not self.architecture:
            missing.append("architecture")
        if self.os_version is None:
            missing.append("os_version")
        if not self.libc_name:
            missing.append("libc")
        elif self.family == PlatformFamily.WINDOWS:
            if not self.libc_versions:
                missing.append("libc_version")
        elif self.libc_version is None:
            missing.append("libc_version")
        return missing

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "os_name": self.os_name,
            "family": self.family.value,
            "os_version": str(self.os_version) if self.os_version else None,
            "libc_name": self.libc_name,
            "libc_version": str(self.libc_version) if self.libc_version else None,
            "libc_versions": sorted(str(v) for v in self.libc_versions),
            "architecture": self.architecture,
            "module_abi": self.module_abi,
            "native_api": self.native_api,
            "complete": self.is_complete,
        }
