"""
Policy exception lists.

One file per preserve policy (DISCARD_LCPY.lst, DISCARD_BILL.lst, ...)
accumulates the keys of items kept back by that policy, so staff can review
why an item never left the discard location. Lists only grow during a cycle;
merging a key that is already listed changes nothing.
"""

import logging
from collections.abc import Mapping
from pathlib import Path

from discards.models.failure import PersistenceError
from discards.models.item import ItemKey
from discards.models.policy import Policy
from discards.services.ledger import write_lines_atomic

logger = logging.getLogger(__name__)


class PolicyListStore:
    """Exception list files under one directory."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def path_for(self, policy: Policy) -> Path:
        return self.directory / policy.list_name

    def read(self, policy: Policy) -> set[str]:
        """Keys already listed for `policy`."""
        path = self.path_for(policy)
        if not path.exists():
            return set()
        try:
            return {line.strip() for line in path.read_text(encoding="utf-8").splitlines() if line.strip()}
        except OSError as e:
            raise PersistenceError(str(path), detail=str(e)) from e

    def merge(self, buckets: Mapping[Policy, set[ItemKey]]) -> dict[str, int]:
        """
        Add bucketed keys to each policy's list.

        Returns:
            Dict mapping list file name to the number of newly listed keys
        """
        added: dict[str, int] = {}
        for policy, keys in buckets.items():
            listed = self.read(policy)
            new_keys = {str(key) for key in keys} - listed
            added[policy.list_name] = len(new_keys)
            if not new_keys:
                continue
            write_lines_atomic(self.path_for(policy), sorted(listed | new_keys))
            logger.debug("Listed %d new items in %s", len(new_keys), policy.list_name)
        return added
