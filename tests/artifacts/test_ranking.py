"""Tests for candidate ranking."""

from __future__ import annotations

import random

from nativeprebuild.artifacts.naming import ParsedArtifactName
from nativeprebuild.artifacts.ranking import rank_candidates, rank_key
from nativeprebuild.host.fingerprint import Version
from nativeprebuild.release.models import Candidate, RemoteAsset


def _candidate(
    name: str,
    *,
    native_api: int = 8,
    os_version: Version = Version(5, 4),
    libc_version: Version = Version(2, 28),
) -> Candidate:
    return Candidate(
        asset=RemoteAsset(
            name=name,
            browser_download_url=f"https://example.invalid/{name}",
            content_type="application/octet-stream",
            size=100,
            state="uploaded",
        ),
        parsed=ParsedArtifactName(
            native_api=native_api,
            os_name="linux",
            os_version=os_version,
            libc_name="glibc",
            libc_version=libc_version,
        ),
        checksum_url=f"https://example.invalid/{name}.sha256sum",
    )


class TestRankKey:
    def test_native_api_dominates(self) -> None:
        newer_api = _candidate("a", native_api=9, os_version=Version(4, 0))
        newer_os = _candidate("b", native_api=8, os_version=Version(6, 0))
        assert rank_key(newer_api.parsed) < rank_key(newer_os.parsed)

    def test_libc_patch_breaks_ties(self) -> None:
        a = _candidate("a", libc_version=Version(2, 28, 1))
        b = _candidate("b", libc_version=Version(2, 28, 0))
        assert rank_key(a.parsed) < rank_key(b.parsed)


class TestRankCandidates:
    def test_prefers_higher_libc_minor(self) -> None:
        ten = _candidate("ten", libc_version=Version(2, 10))
        twelve = _candidate("twelve", libc_version=Version(2, 12))
        assert [c.name for c in rank_candidates([ten, twelve])] == ["twelve", "ten"]

    def test_full_order(self) -> None:
        candidates = [
            _candidate("os54", os_version=Version(5, 4)),
            _candidate("api9", native_api=9),
            _candidate("os60", os_version=Version(6, 0)),
            _candidate("os515", os_version=Version(5, 15)),
            _candidate("libc231", libc_version=Version(2, 31)),
        ]
        ranked = [c.name for c in rank_candidates(candidates)]
        assert ranked == ["api9", "os60", "os515", "libc231", "os54"]

    def test_reverse_and_resort_is_stable(self) -> None:
        """Re-sorting a reversed ranking reproduces it, ties included."""
        rng = random.Random(7)
        candidates = [
            _candidate(
                f"c{i}",
                native_api=rng.choice([7, 8]),
                os_version=Version(rng.choice([4, 5]), rng.choice([4, 15])),
                libc_version=Version(2, rng.choice([17, 28]), rng.choice([0, 1])),
            )
            for i in range(40)
        ]
        ranked = rank_candidates(candidates)
        keys = [rank_key(c.parsed) for c in ranked]
        assert keys == sorted(keys)

        resorted = rank_candidates(list(reversed(ranked)))
        assert [rank_key(c.parsed) for c in resorted] == keys

        # Equal keys keep input order
        for a, b in zip(ranked, ranked[1:], strict=False):
            if rank_key(a.parsed) == rank_key(b.parsed):
                assert candidates.index(a) < candidates.index(b)

    def test_repeatable(self) -> None:
        candidates = [_candidate(f"c{i}") for i in range(5)]
        assert rank_candidates(candidates) == rank_candidates(candidates)
        assert [c.name for c in rank_candidates(candidates)] == [f"c{i}" for i in range(5)]
