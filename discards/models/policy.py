"""
Policy Codec — Composite Preserve Policies Over Item Flags.

A preserve policy is a combination of disqualification bits. An item matches
a policy only when it carries ALL of the policy's bits; a matching item must
not be discarded.

INVARIANTS:
- Buckets are not partitions: an item can match several policies and is
  recorded under each of them
- Bucketing iterates the caller's policy list in order, so last-copy with a
  title hold is reported as its own composite ahead of last-copy alone
- Matching never mutates a mask
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from discards.models.item import ItemFlag, ItemKey


@dataclass(frozen=True)
class Policy:
    """A named preserve policy and the exception list it is recorded in."""

    name: str
    mask: ItemFlag
    list_name: str

    def matches(self, item_mask: ItemFlag) -> bool:
        """Check if an item mask carries every bit of this policy."""
        return matches(item_mask, self.mask)


def matches(item_mask: int, policy_mask: int) -> bool:
    """True iff every bit of `policy_mask` is set in `item_mask`."""
    return (item_mask & policy_mask) == policy_mask


LAST_COPY_TITLE_HOLD = Policy("last copy with title hold", ItemFlag.LCPY | ItemFlag.HTIT, "DISCARD_LCHT.lst")
LAST_COPY = Policy("last copy", ItemFlag.LCPY, "DISCARD_LCPY.lst")
WITH_BILLS = Policy("bills", ItemFlag.BILL, "DISCARD_BILL.lst")
ON_ORDER = Policy("on order", ItemFlag.ORDR, "DISCARD_ORDR.lst")
SERIAL_CONTROL = Policy("serial control", ItemFlag.SCTL, "DISCARD_SCTL.lst")
COPY_HOLD = Policy("copy hold", ItemFlag.HCPY, "DISCARD_HCPY.lst")

# Order matters for reporting only
DEFAULT_PRESERVE_POLICIES: tuple[Policy, ...] = (
    LAST_COPY_TITLE_HOLD,
    LAST_COPY,
    WITH_BILLS,
    ON_ORDER,
    SERIAL_CONTROL,
    COPY_HOLD,
)


def bucket_items(
    masks: Mapping[ItemKey, ItemFlag],
    policies: Sequence[Policy] = DEFAULT_PRESERVE_POLICIES,
) -> dict[Policy, set[ItemKey]]:
    """
    Group items under every preserve policy they match.

    Returns:
        Dict with one entry per policy, in the caller's policy order.
        Policies nothing matched map to an empty set.
    """
    buckets: dict[Policy, set[ItemKey]] = {policy: set() for policy in policies}
    for policy in policies:
        for key, mask in masks.items():
            if policy.matches(mask):
                buckets[policy].add(key)
    return buckets


def is_preserved(mask: ItemFlag, policies: Iterable[Policy] = DEFAULT_PRESERVE_POLICIES) -> bool:
    """Check if any preserve policy matches the mask."""
    return any(policy.matches(mask) for policy in policies)


def discardable_items(
    masks: Mapping[ItemKey, ItemFlag],
    policies: Sequence[Policy] = DEFAULT_PRESERVE_POLICIES,
) -> set[ItemKey]:
    """Items that match none of the preserve policies."""
    return {key for key, mask in masks.items() if not is_preserved(mask, policies)}
