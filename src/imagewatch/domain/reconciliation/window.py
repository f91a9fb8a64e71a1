"""Bounded selection of the most recent tags per source."""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Sequence

    from imagewatch.domain.model import TaggedImage

DEFAULT_TAG_WINDOW: Final[int] = 20


def select_tag_window(
    images: Sequence[TaggedImage],
    limit: int = DEFAULT_TAG_WINDOW,
) -> list[TaggedImage]:
    """Return the first ``limit`` images in registry order.

    The registry's order is trusted to approximate recency and is never
    re-sorted. Registries that list lexically (most distribution-spec
    implementations) therefore yield an arbitrary window of ``limit`` tags rather
    than the newest ones.
    """

    if limit <= 0:
        raise ValueError("Tag window limit must be positive")
    return list(images[:limit])
