"""Tests for Version, PlatformFamily and PlatformFingerprint."""

from __future__ import annotations

from nativeprebuild.host.fingerprint import PlatformFamily, PlatformFingerprint, Version


def _fingerprint(**overrides: object) -> PlatformFingerprint:
    fields: dict[str, object] = {
        "os_name": "linux",
        "family": PlatformFamily.LINUX,
        "os_version": Version(5, 15, 0),
        "libc_name": "glibc",
        "libc_version": Version(2, 36),
        "architecture": "x64",
        "module_abi": "cp312",
        "native_api": 12,
    }
    fields.update(overrides)
    return PlatformFingerprint(**fields)  # type: ignore[arg-type]


class TestVersionParse:
    """Version.parse() extracts major.minor[.patch] from free text."""

    def test_parse_full(self) -> None:
        assert Version.parse("2.36.1") == Version(2, 36, 1)

    def test_parse_without_patch(self) -> None:
        assert Version.parse("2.28") == Version(2, 28, 0)

    def test_parse_embedded(self) -> None:
        """Kernel releases and tool output carry extra text."""
        assert Version.parse("5.15.0-91-generic") == Version(5, 15, 0)
        assert Version.parse("glibc 2.36") == Version(2, 36)
        assert Version.parse("Microsoft Windows [Version 10.0.22631.4317]") == Version(10, 0, 22631)

    def test_parse_none_and_garbage(self) -> None:
        assert Version.parse(None) is None
        assert Version.parse("") is None
        assert Version.parse("no digits here") is None
        assert Version.parse("14") is None

    def test_str_omits_zero_patch(self) -> None:
        assert str(Version(2, 28)) == "2.28"
        assert str(Version(1, 2, 4)) == "1.2.4"

    def test_ordering(self) -> None:
        assert Version(2, 36) > Version(2, 28, 9)
        assert max({Version(14, 29), Version(14, 38), Version(14, 0)}) == Version(14, 38)


class TestPlatformFamily:
    """PlatformFamily.from_name() maps OS names to families."""

    def test_known_names(self) -> None:
        assert PlatformFamily.from_name("linux") == PlatformFamily.LINUX
        assert PlatformFamily.from_name("darwin") == PlatformFamily.DARWIN
        assert PlatformFamily.from_name("win32") == PlatformFamily.WINDOWS

    def test_versioned_freebsd(self) -> None:
        """sys.platform on FreeBSD carries the major version."""
        assert PlatformFamily.from_name("freebsd14") == PlatformFamily.FREEBSD

    def test_unknown(self) -> None:
        assert PlatformFamily.from_name("sunos5") == PlatformFamily.UNKNOWN


class TestFingerprintCompleteness:
    """is_complete gates the prebuilt path."""

    def test_complete_linux(self) -> None:
        fp = _fingerprint()
        assert fp.is_complete
        assert fp.missing_axes() == []

    def test_missing_architecture(self) -> None:
        fp = _fingerprint(architecture=None)
        assert not fp.is_complete
        assert fp.missing_axes() == ["architecture"]

    def test_missing_libc_version(self) -> None:
        fp = _fingerprint(libc_version=None)
        assert not fp.is_complete
        assert "libc_version" in fp.missing_axes()

    def test_windows_needs_runtime_set(self) -> None:
        fp = _fingerprint(
            os_name="win32",
            family=PlatformFamily.WINDOWS,
            os_version=Version(10, 0),
            libc_name="msvc",
            libc_version=Version(14, 38),
        )
        assert not fp.is_complete

        fp = _fingerprint(
            os_name="win32",
            family=PlatformFamily.WINDOWS,
            os_version=Version(10, 0),
            libc_name="msvc",
            libc_version=None,
            libc_versions=frozenset({Version(14, 38)}),
        )
        assert fp.is_complete

    def test_to_dict_is_json_friendly(self) -> None:
        data = _fingerprint().to_dict()
        assert data["os_version"] == "5.15"
        assert data["libc_version"] == "2.36"
        assert data["family"] == "linux"
        assert data["complete"] is True
