from __future__ import annotations

import logging
from itertools import islice
from typing import Any, Dict, Iterator, Mapping

from .ports import RemoteStore

LOGGER = logging.getLogger(__name__)


def iter_chunks(payload: Mapping[str, Any], chunk_size: int) -> Iterator[Dict[str, Any]]:
    """Yield consecutive sub-mappings of at most ``chunk_size`` keys, in insertion order."""

    if chunk_size < 1:
        raise ValueError("chunk_size must be 1 or greater")
    items = iter(payload.items())
    while True:
        chunk = dict(islice(items, chunk_size))
        if not chunk:
            return
        yield chunk


class BatchWriter:
    """Submit an id -> payload mapping to the store as sequential PATCH chunks.

    PATCH merges keys under the node, so re-sending a chunk is harmless. The
    first failing chunk propagates its error and the remaining chunks are not
    sent; chunks already sent stay written.
    """

    def __init__(self, store: RemoteStore, chunk_size: int = 50) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be 1 or greater")
        self._store = store
        self._chunk_size = chunk_size

    def write(self, node: str, payload: Mapping[str, Any]) -> int:
        written = 0
        for chunk in iter_chunks(payload, self._chunk_size):
            self._store.patch(node, chunk)
            written += len(chunk)
            LOGGER.info("Chunk of %s records sent to %s", len(chunk), node)
        return written
