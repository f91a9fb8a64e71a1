"""Fill in digests for listed tags and fold them into a digest -> tag map."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from logging import getLogger
from typing import TYPE_CHECKING, Final

from imagewatch.domain.errors import RegistryCallError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from imagewatch.domain.model import DigestTagMap, RegistrySource, TaggedImage
    from imagewatch.domain.ports.registry import RegistryClient

    from .deadline import Deadline

log = getLogger(__name__)

MAX_DIGEST_WORKERS: Final[int] = 16


def resolve_digests(
    source: RegistrySource,
    images: Sequence[TaggedImage],
    client: RegistryClient,
    *,
    deadline: Deadline,
    max_workers: int = 1,
) -> DigestTagMap:
    """Return ``digest -> tag`` for ``images``, resolving missing digests via ``client``.

    A tag whose lookup fails is logged and dropped; the remaining tags still
    resolve. When several tags point at the same digest the last one in
    enumeration order is kept, also when lookups run on a worker pool.
    """

    pending = [index for index, image in enumerate(images) if image.digest is None]
    if max_workers > 1 and len(pending) > 1:
        resolved = _resolve_concurrently(
            source, images, pending, client, deadline=deadline, max_workers=max_workers
        )
    else:
        resolved = {
            index: _resolve_one(source, images[index].tag, client, deadline=deadline)
            for index in pending
        }

    digest_tag_map: DigestTagMap = {}
    for index, image in enumerate(images):
        digest = image.digest if image.digest is not None else resolved.get(index)
        if digest is None:
            continue
        # Re-inserting moves the digest to the position of its latest tag.
        digest_tag_map.pop(digest, None)
        digest_tag_map[digest] = image.tag
    return digest_tag_map


def _resolve_concurrently(
    source: RegistrySource,
    images: Sequence[TaggedImage],
    pending: list[int],
    client: RegistryClient,
    *,
    deadline: Deadline,
    max_workers: int,
) -> dict[int, str | None]:
    workers = min(max_workers, MAX_DIGEST_WORKERS, len(pending))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="digest") as executor:
        futures = {
            index: executor.submit(
                _resolve_one, source, images[index].tag, client, deadline=deadline
            )
            for index in pending
        }
        return {index: future.result() for index, future in futures.items()}


def _resolve_one(
    source: RegistrySource,
    tag: str,
    client: RegistryClient,
    *,
    deadline: Deadline,
) -> str | None:
    deadline.check(f"resolving digest for {source.repository}:{tag}")
    try:
        return client.resolve_digest(source, tag, deadline=deadline)
    except RegistryCallError as exc:
        log.warning(
            "Dropping tag after digest lookup failed: correlation_id=%s, repository=%s, "
            "tag=%s, error=%s",
            source.correlation_id,
            source.repository,
            tag,
            exc,
        )
        return None
