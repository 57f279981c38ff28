"""Preference order for compatible binary candidates.

Only candidates that already passed the compatibility filter are ranked,
so OS name and libc family are the same across the set being sorted.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from nativeprebuild.artifacts.naming import ParsedArtifactName
    from nativeprebuild.release.models import Candidate

C = TypeVar("C", bound="Candidate")


def rank_key(parsed: ParsedArtifactName) -> tuple[int, int, int, int, int, int]:
    """Sort key, smaller is more preferred.

    Order: native API, OS major, OS minor, libc major, libc minor, libc
    patch, each descending.
    """
    return (
        -parsed.native_api,
        -parsed.os_version.major,
        -parsed.os_version.minor,
        -parsed.libc_version.major,
        -parsed.libc_version.minor,
        -parsed.libc_version.patch,
    )


def rank_candidates(candidates: Iterable[C]) -> list[C]:
    """Order candidates most-preferred first.

    sorted() is stable, so candidates with identical keys keep their input
    order and repeated calls on the same input give the same result.
    """
    return sorted(candidates, key=lambda c: rank_key(c.parsed))
