from __future__ import annotations

import logging
from typing import FrozenSet, Iterable, List, MutableMapping, Tuple

from .repository import REPOSITORY_ENV_KEYS

LOG = logging.getLogger(__name__)


class EnvironmentScrubber:
    """Removes repository-derived entries from every tracked environment mapping.

    Each mapping is scrubbed of the ``RESTIC_*`` repository keys plus whatever
    extra keys it was tracked with, so pass-through entries only leave the
    mapping they were written into. Only the first call to :meth:`scrub` does
    any work, so it is safe to call from several ``finally`` blocks.
    """

    def __init__(self, keys: Iterable[str] = REPOSITORY_ENV_KEYS) -> None:
        self._keys: FrozenSet[str] = frozenset(keys)
        self._tracked: List[Tuple[MutableMapping[str, str], FrozenSet[str]]] = []
        self.scrubbed = False

    def track(self, mapping: MutableMapping[str, str], extra_keys: Iterable[str] = ()) -> MutableMapping[str, str]:
        keys = self._keys | frozenset(extra_keys)
        for index, (existing, existing_keys) in enumerate(self._tracked):
            if existing is mapping:
                self._tracked[index] = (existing, existing_keys | keys)
                return mapping
        self._tracked.append((mapping, keys))
        return mapping

    def scrub(self) -> bool:
        if self.scrubbed:
            return False

        LOG.info("Cleaning up environment variables...")
        for mapping, keys in self._tracked:
            for key in keys:
                mapping.pop(key, None)
        self._tracked.clear()
        self.scrubbed = True
        LOG.info("Environment cleanup completed")
        return True
