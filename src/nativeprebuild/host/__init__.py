"""Host platform fingerprinting."""

from nativeprebuild.host.detector import (
    FingerprintDetector,
    LibcInfo,
    normalize_architecture,
    parse_ldd_output,
    parse_override,
    parse_runtime_registry,
)
from nativeprebuild.host.fingerprint import PlatformFamily, PlatformFingerprint, Version
from nativeprebuild.host.probes import run_probe

__all__ = [
    "FingerprintDetector",
    "LibcInfo",
    "PlatformFamily",
    "PlatformFingerprint",
    "Version",
    "normalize_architecture",
    "parse_ldd_output",
    "parse_override",
    "parse_runtime_registry",
    "run_probe",
]
