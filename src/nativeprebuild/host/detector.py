"""Host platform detection.

One strategy per PlatformFamily, each answering two questions through
external probes: which OS version is this, and which C runtime does it
provide. Unmatched probe output means "unknown", never a guess; an
unknown axis leaves the fingerprint incomplete and the orchestrator
falls back to building from source.
"""

from __future__ import annotations

import logging
import platform
import re
import sys
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from nativeprebuild.host.fingerprint import PlatformFamily, PlatformFingerprint, Version
from nativeprebuild.host.probes import ProbeFn, run_probe

if TYPE_CHECKING:
    from nativeprebuild.config import RunOptions

logger = logging.getLogger(__name__)

# name or name_major.minor[.patch]; names may contain underscores (x86_64)
OVERRIDE_PATTERN = re.compile(
    r"^(?P<name>[A-Za-z0-9_]+?)(?:_(?P<version>\d+\.\d+(?:\.\d+)?))?$"
)

ARCH_ALIASES: dict[str, str] = {
    "x86_64": "x64",
    "amd64": "x64",
    "x64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv8l": "arm64",
    "i386": "ia32",
    "i486": "ia32",
    "i586": "ia32",
    "i686": "ia32",
    "x86": "ia32",
    "ia32": "ia32",
    "armv7l": "arm",
    "armv6l": "arm",
    "arm": "arm",
}

IMPLEMENTATION_TAGS: dict[str, str] = {
    "cpython": "cp",
    "pypy": "pp",
}

# Signatures for the secondary libc probe (ldd --version)
GLIBC_SIGNATURE = re.compile(r"GLIBC|GNU libc|GNU C Library", re.I)
GLIBC_VERSION_LINE = re.compile(r"^ldd .*?(\d+\.\d+(?:\.\d+)?)\s*$", re.M)
MUSL_SIGNATURE = re.compile(r"\bmusl\b", re.I)
MUSL_VERSION_LINE = re.compile(r"^Version\s+(\d+\.\d+(?:\.\d+)?)", re.M)

# reg query output line: "    Version    REG_SZ    v14.38.33130.00"
RUNTIME_VERSION_LINE = re.compile(r"^\s*Version\s+REG_SZ\s+v?(\d+\.\d+(?:\.\d+)?)", re.M | re.I)
RUNTIME_REGISTRY_KEY = r"HKLM\SOFTWARE\Microsoft\VisualStudio\14.0\VC\Runtimes"


@dataclass(frozen=True)
class LibcInfo:
    """Detected C runtime.

    Attributes:
        name: Runtime family name, None if unknown.
        version: Single version (all families but win32).
        versions: Every installed runtime version (win32).
    """

    name: str | None
    version: Version | None = None
    versions: frozenset[Version] = field(default_factory=frozenset)


class DetectionStrategy(Protocol):
    """Family-specific OS and libc detection."""

    def os_version(self) -> Version | None:
        """Detect the OS version."""
        ...

    def libc(self, os_version: Version | None) -> LibcInfo:
        """Detect the C runtime."""
        ...


def parse_override(value: str) -> tuple[str, Version | None]:
    """Split an override like "musl_1.2.3" into name and version.

    Raises:
        ValueError: If the override is not name[_major.minor[.patch]].
    """
    match = OVERRIDE_PATTERN.match(value.strip())
    if match is None:
        msg = f"Invalid override {value!r}: expected name or name_major.minor[.patch]"
        raise ValueError(msg)
    return match.group("name"), Version.parse(match.group("version"))


def normalize_architecture(machine: str) -> str | None:
    """Map a machine string to the architecture names used in artifacts."""
    machine = machine.strip().lower()
    if not machine:
        return None
    return ARCH_ALIASES.get(machine, machine)


def detect_module_abi() -> str:
    """Interpreter ABI tag in wheel style, e.g. "cp312"."""
    impl = sys.implementation.name
    tag = IMPLEMENTATION_TAGS.get(impl, impl)
    return f"{tag}{sys.version_info.major}{sys.version_info.minor}"


def detect_native_api() -> int:
    """Highest stable-ABI (abi3) level this interpreter loads."""
    return sys.version_info.minor


class LinuxStrategy:
    """Kernel release for the OS, glibc or musl for the C runtime."""

    def __init__(self, probe: ProbeFn) -> None:
        self._probe = probe

    def os_version(self) -> Version | None:
        return Version.parse(self._probe(["uname", "-r"]))

    def libc(self, os_version: Version | None) -> LibcInfo:
        # Primary: getconf reports "glibc 2.36" on glibc systems only
        output = self._probe(["getconf", "GNU_LIBC_VERSION"])
        if output and "glibc" in output.lower():
            version = Version.parse(output)
            if version is not None:
                return LibcInfo(name="glibc", version=version)

        output = self._probe(["ldd", "--version"], accept_failure=True)
        if not output:
            return LibcInfo(name=None)
        return parse_ldd_output(output)


class DarwinStrategy:
    """macOS: libSystem is versioned with the OS."""

    LIBC_NAME = "libsystem"

    def __init__(self, probe: ProbeFn) -> None:
        self._probe = probe

    def os_version(self) -> Version | None:
        return Version.parse(self._probe(["sw_vers", "-productVersion"]))

    def libc(self, os_version: Version | None) -> LibcInfo:
        return LibcInfo(name=self.LIBC_NAME, version=os_version)


class FreeBSDStrategy:
    """FreeBSD: libc is part of the base system and shares its version."""

    LIBC_NAME = "libc"

    def __init__(self, probe: ProbeFn) -> None:
        self._probe = probe

    def os_version(self) -> Version | None:
        return Version.parse(self._probe(["uname", "-r"]))

    def libc(self, os_version: Version | None) -> LibcInfo:
        return LibcInfo(name=self.LIBC_NAME, version=os_version)


class WindowsStrategy:
    """Windows: several MSVC runtimes may be installed side by side."""

    LIBC_NAME = "msvc"

    def __init__(self, probe: ProbeFn) -> None:
        self._probe = probe
        self._runtimes: frozenset[Version] | None = None

    def os_version(self) -> Version | None:
        return Version.parse(self._probe(["cmd", "/c", "ver"]))

    def installed_runtimes(self) -> frozenset[Version]:
        """Enumerate installed runtimes once; later calls reuse the result."""
        if self._runtimes is None:
            output = self._probe(["reg", "query", RUNTIME_REGISTRY_KEY, "/s", "/v", "Version"])
            self._runtimes = parse_runtime_registry(output or "")
            logger.debug(
                "Enumerated MSVC runtimes",
                extra={"versions": sorted(str(v) for v in self._runtimes)},
            )
        return self._runtimes

    def libc(self, os_version: Version | None) -> LibcInfo:
        versions = self.installed_runtimes()
        newest = max(versions) if versions else None
        return LibcInfo(name=self.LIBC_NAME, version=newest, versions=versions)


class UnknownStrategy:
    """Unsupported OS: nothing can be determined."""

    def os_version(self) -> Version | None:
        return None

    def libc(self, os_version: Version | None) -> LibcInfo:
        return LibcInfo(name=None)


def parse_ldd_output(output: str) -> LibcInfo:
    """Classify `ldd --version` output as glibc or musl.

    glibc prints "ldd (GNU libc) 2.36" on its first line; musl prints
    "musl libc (x86_64)" followed by "Version 1.2.4".
    """
    if MUSL_SIGNATURE.search(output):
        match = MUSL_VERSION_LINE.search(output)
        return LibcInfo(name="musl", version=Version.parse(match.group(1)) if match else None)

    if GLIBC_SIGNATURE.search(output):
        match = GLIBC_VERSION_LINE.search(output)
        return LibcInfo(name="glibc", version=Version.parse(match.group(1)) if match else None)

    return LibcInfo(name=None)


def parse_runtime_registry(output: str) -> frozenset[Version]:
    """Collect every runtime version listed in `reg query` output."""
    versions = set()
    for match in RUNTIME_VERSION_LINE.finditer(output):
        version = Version.parse(match.group(1))
        if version is not None:
            versions.add(version)
    return frozenset(versions)


def current_os_name() -> str:
    """sys.platform without version suffixes ("freebsd14" -> "freebsd")."""
    family = PlatformFamily.from_name(sys.platform)
    return sys.platform if family == PlatformFamily.UNKNOWN else family.value


class FingerprintDetector:
    """Builds the PlatformFingerprint for this run.

    Overrides replace detection for their axis. A libc or platform override
    carrying only a name keeps the auto-detected version (when the detected
    runtime has the same name); an architecture override ignores any version.
    """

    def __init__(
        self,
        *,
        arch_override: str | None = None,
        libc_override: str | None = None,
        platform_override: str | None = None,
        probe: ProbeFn = run_probe,
        os_name: str | None = None,
        machine: str | None = None,
        module_abi: str | None = None,
        native_api: int | None = None,
    ) -> None:
        self._arch_override = arch_override or None
        self._libc_override = libc_override or None
        self._platform_override = platform_override or None
        self._probe = probe
        self._os_name = os_name
        self._machine = machine
        self._module_abi = module_abi
        self._native_api = native_api
        self._strategies: dict[PlatformFamily, DetectionStrategy] = {}

    @classmethod
    def from_options(cls, options: RunOptions, **kwargs: object) -> FingerprintDetector:
        """Create a detector honoring the run's override options."""
        return cls(
            arch_override=options.arch,
            libc_override=options.libc,
            platform_override=options.platform,
            **kwargs,  # type: ignore[arg-type]
        )

    def strategy_for(self, family: PlatformFamily) -> DetectionStrategy:
        """Get (and keep) the strategy instance for a family."""
        if family not in self._strategies:
            strategy: DetectionStrategy
            if family == PlatformFamily.LINUX:
                strategy = LinuxStrategy(self._probe)
            elif family == PlatformFamily.DARWIN:
                strategy = DarwinStrategy(self._probe)
            elif family == PlatformFamily.WINDOWS:
                strategy = WindowsStrategy(self._probe)
            elif family == PlatformFamily.FREEBSD:
                strategy = FreeBSDStrategy(self._probe)
            else:
                strategy = UnknownStrategy()
            self._strategies[family] = strategy
        return self._strategies[family]

    def detect(self) -> PlatformFingerprint:
        """Detect the fingerprint.

        Raises:
            ValueError: If an override value is malformed.
        """
        os_name = self._os_name or current_os_name()
        os_version: Version | None = None
        if self._platform_override:
            os_name, os_version = parse_override(self._platform_override)
            os_name = os_name.lower()

        family = PlatformFamily.from_name(os_name)
        if family != PlatformFamily.UNKNOWN:
            os_name = family.value
        strategy = self.strategy_for(family)

        if os_version is None:
            os_version = strategy.os_version()

        libc = self._detect_libc(strategy, os_version)
        architecture = self._detect_architecture()

        fingerprint = PlatformFingerprint(
            os_name=os_name,
            family=family,
            os_version=os_version,
            libc_name=libc.name,
            libc_version=libc.version,
            libc_versions=libc.versions,
            architecture=architecture,
            module_abi=self._module_abi or detect_module_abi(),
            native_api=self._native_api if self._native_api is not None else detect_native_api(),
        )
        logger.info("Detected platform", extra=fingerprint.to_dict())
        return fingerprint

    def _detect_libc(self, strategy: DetectionStrategy, os_version: Version | None) -> LibcInfo:
        if not self._libc_override:
            return strategy.libc(os_version)

        name, version = parse_override(self._libc_override)
        name = name.lower()
        if version is not None:
            return LibcInfo(name=name, version=version, versions=frozenset({version}))

        detected = strategy.libc(os_version)
        if detected.name != name:
            logger.warning(
                "libc override has no version and differs from detected runtime",
                extra={"override": name, "detected": detected.name},
            )
            return LibcInfo(name=name)
        return detected

    def _detect_architecture(self) -> str | None:
        if self._arch_override:
            name, _ = parse_override(self._arch_override)
            return normalize_architecture(name)
        return normalize_architecture(self._machine if self._machine is not None else platform.machine())
