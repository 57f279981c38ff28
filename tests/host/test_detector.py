"""Tests for FingerprintDetector and per-family detection strategies."""

from __future__ import annotations

from collections.abc import Sequence

import pytest

from nativeprebuild.config import RunOptions
from nativeprebuild.host.detector import (
    RUNTIME_REGISTRY_KEY,
    FingerprintDetector,
    LibcInfo,
    normalize_architecture,
    parse_ldd_output,
    parse_override,
    parse_runtime_registry,
)
from nativeprebuild.host.fingerprint import PlatformFamily, Version

GLIBC_LDD = """ldd (Ubuntu GLIBC 2.35-0ubuntu3.6) 2.35
Copyright (C) 2022 Free Software Foundation, Inc.
This is free software; see the source for copying conditions.
Written by Roland McGrath and Ulrich Drepper.
"""

MUSL_LDD = """musl libc (x86_64)
Version 1.2.4
Dynamic Program Loader
Usage: ldd [options] [--] pathname
"""

REG_QUERY = r"""
HKEY_LOCAL_MACHINE\SOFTWARE\Microsoft\VisualStudio\14.0\VC\Runtimes\x64
    Version    REG_SZ    v14.38.33130.00

HKEY_LOCAL_MACHINE\SOFTWARE\Microsoft\VisualStudio\14.0\VC\Runtimes\X86
    Version    REG_SZ    v14.29.30139.00

End of search: 2 match(es) found.
"""


class FakeProbe:
    """Probe double answering from a command -> output table."""

    def __init__(self, outputs: dict[tuple[str, ...], str | None]) -> None:
        self.outputs = outputs
        self.calls: list[tuple[tuple[str, ...], bool]] = []

    def __call__(self, argv: Sequence[str], *, accept_failure: bool = False) -> str | None:
        key = tuple(argv)
        self.calls.append((key, accept_failure))
        return self.outputs.get(key)

    def count(self, argv: Sequence[str]) -> int:
        return sum(1 for key, _ in self.calls if key == tuple(argv))


def _linux_probe(extra: dict[tuple[str, ...], str | None] | None = None) -> FakeProbe:
    outputs: dict[tuple[str, ...], str | None] = {
        ("uname", "-r"): "5.15.0-91-generic\n",
        ("getconf", "GNU_LIBC_VERSION"): "glibc 2.35\n",
    }
    outputs.update(extra or {})
    return FakeProbe(outputs)


def _detector(
    probe: FakeProbe,
    os_name: str = "linux",
    machine: str = "x86_64",
    **kwargs: str,
) -> FingerprintDetector:
    return FingerprintDetector(
        probe=probe,
        os_name=os_name,
        machine=machine,
        module_abi="cp312",
        native_api=12,
        **kwargs,
    )


class TestParseOverride:
    """Override values are name[_major.minor[.patch]]."""

    def test_name_only(self) -> None:
        assert parse_override("musl") == ("musl", None)

    def test_name_with_version(self) -> None:
        assert parse_override("glibc_2.28") == ("glibc", Version(2, 28))
        assert parse_override("musl_1.2.3") == ("musl", Version(1, 2, 3))

    def test_name_containing_underscore(self) -> None:
        """Architecture names such as x86_64 are not split."""
        assert parse_override("x86_64") == ("x86_64", None)

    @pytest.mark.parametrize("value", ["", "glibc-2.28", "lin ux", "musl_1.2.3.4"])
    def test_malformed(self, value: str) -> None:
        with pytest.raises(ValueError, match="Invalid override"):
            parse_override(value)


class TestNormalizeArchitecture:
    @pytest.mark.parametrize(
        ("machine", "expected"),
        [
            ("x86_64", "x64"),
            ("AMD64", "x64"),
            ("aarch64", "arm64"),
            ("arm64", "arm64"),
            ("i686", "ia32"),
            ("armv7l", "arm"),
            ("riscv64", "riscv64"),
        ],
    )
    def test_aliases(self, machine: str, expected: str) -> None:
        assert normalize_architecture(machine) == expected

    def test_empty(self) -> None:
        assert normalize_architecture("") is None


class TestParseLddOutput:
    def test_glibc(self) -> None:
        assert parse_ldd_output(GLIBC_LDD) == LibcInfo(name="glibc", version=Version(2, 35))

    def test_musl(self) -> None:
        assert parse_ldd_output(MUSL_LDD) == LibcInfo(name="musl", version=Version(1, 2, 4))

    def test_unrecognized(self) -> None:
        assert parse_ldd_output("something else entirely") == LibcInfo(name=None)


class TestParseRuntimeRegistry:
    def test_collects_all_versions(self) -> None:
        assert parse_runtime_registry(REG_QUERY) == frozenset(
            {Version(14, 38, 33130), Version(14, 29, 30139)}
        )

    def test_empty_output(self) -> None:
        assert parse_runtime_registry("") == frozenset()


class TestLinuxDetection:
    def test_glibc_via_getconf(self) -> None:
        probe = _linux_probe()
        fp = _detector(probe).detect()

        assert fp.family == PlatformFamily.LINUX
        assert fp.os_name == "linux"
        assert fp.os_version == Version(5, 15, 0)
        assert fp.libc_name == "glibc"
        assert fp.libc_version == Version(2, 35)
        assert fp.architecture == "x64"
        assert fp.module_abi == "cp312"
        assert fp.native_api == 12
        assert fp.is_complete
        assert probe.count(["ldd", "--version"]) == 0

    def test_musl_via_ldd_fallback(self) -> None:
        """musl has no getconf GNU_LIBC_VERSION; ldd exits non-zero but prints its version."""
        probe = _linux_probe(
            {("getconf", "GNU_LIBC_VERSION"): None, ("ldd", "--version"): MUSL_LDD}
        )
        fp = _detector(probe).detect()

        assert fp.libc_name == "musl"
        assert fp.libc_version == Version(1, 2, 4)
        assert (("ldd", "--version"), True) in probe.calls

    def test_no_libc_probe_output(self) -> None:
        probe = _linux_probe({("getconf", "GNU_LIBC_VERSION"): None})
        fp = _detector(probe).detect()

        assert fp.libc_name is None
        assert not fp.is_complete
        assert "libc" in fp.missing_axes()


class TestOtherFamilies:
    def test_darwin_libc_tracks_os(self) -> None:
        probe = FakeProbe({("sw_vers", "-productVersion"): "14.4.1\n"})
        fp = _detector(probe, os_name="darwin", machine="arm64").detect()

        assert fp.family == PlatformFamily.DARWIN
        assert fp.os_version == Version(14, 4, 1)
        assert fp.libc_name == "libsystem"
        assert fp.libc_version == Version(14, 4, 1)
        assert fp.architecture == "arm64"

    def test_freebsd(self) -> None:
        probe = FakeProbe({("uname", "-r"): "14.0-RELEASE\n"})
        fp = _detector(probe, os_name="freebsd14", machine="amd64").detect()

        assert fp.os_name == "freebsd"
        assert fp.libc_name == "libc"
        assert fp.libc_version == Version(14, 0)

    def test_windows_runtime_set(self) -> None:
        reg = ("reg", "query", RUNTIME_REGISTRY_KEY, "/s", "/v", "Version")
        probe = FakeProbe(
            {
                ("cmd", "/c", "ver"): "Microsoft Windows [Version 10.0.22631.4317]\n",
                reg: REG_QUERY,
            }
        )
        detector = _detector(probe, os_name="win32", machine="AMD64")
        fp = detector.detect()

        assert fp.family == PlatformFamily.WINDOWS
        assert fp.libc_name == "msvc"
        assert fp.libc_versions == frozenset({Version(14, 38, 33130), Version(14, 29, 30139)})
        assert fp.libc_version == Version(14, 38, 33130)
        assert fp.is_complete

        detector.detect()
        assert probe.count(reg) == 1

    def test_unknown_os(self) -> None:
        fp = _detector(FakeProbe({}), os_name="sunos5").detect()

        assert fp.family == PlatformFamily.UNKNOWN
        assert fp.os_name == "sunos5"
        assert not fp.is_complete


class TestOverrides:
    def test_arch_override(self) -> None:
        fp = _detector(_linux_probe(), arch_override="aarch64").detect()
        assert fp.architecture == "arm64"

    def test_platform_override_sets_name_and_version(self) -> None:
        probe = _linux_probe()
        fp = _detector(probe, platform_override="linux_4.19").detect()

        assert fp.os_version == Version(4, 19)
        assert probe.count(["uname", "-r"]) == 0

    def test_platform_override_name_only_detects_version(self) -> None:
        fp = _detector(_linux_probe(), platform_override="linux").detect()
        assert fp.os_version == Version(5, 15, 0)

    def test_libc_override_with_version(self) -> None:
        probe = _linux_probe()
        fp = _detector(probe, libc_override="musl_1.2.3").detect()

        assert fp.libc_name == "musl"
        assert fp.libc_version == Version(1, 2, 3)
        assert probe.count(["getconf", "GNU_LIBC_VERSION"]) == 0

    def test_libc_override_same_name_keeps_detected_version(self) -> None:
        fp = _detector(_linux_probe(), libc_override="glibc").detect()
        assert fp.libc_name == "glibc"
        assert fp.libc_version == Version(2, 35)

    def test_libc_override_other_name_has_no_version(self) -> None:
        fp = _detector(_linux_probe(), libc_override="musl").detect()
        assert fp.libc_name == "musl"
        assert fp.libc_version is None
        assert not fp.is_complete

    def test_malformed_override_raises(self) -> None:
        with pytest.raises(ValueError):
            _detector(_linux_probe(), libc_override="glibc-2.28").detect()

    def test_from_options(self) -> None:
        options = RunOptions(arch="arm64", libc="musl_1.2.4", platform="linux_6.1")
        detector = FingerprintDetector.from_options(
            options,
            probe=FakeProbe({}),
            os_name="linux",
            machine="x86_64",
            module_abi="cp312",
            native_api=12,
        )
        fp = detector.detect()

        assert fp.architecture == "arm64"
        assert fp.libc_name == "musl"
        assert fp.libc_version == Version(1, 2, 4)
        assert fp.os_version == Version(6, 1)
        assert fp.is_complete
