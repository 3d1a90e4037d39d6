from discards.models.card import (
    LEDGER_FIELD_COUNT,
    NEVER_CONVERTED,
    CardHealth,
    DiscardCard,
    is_never,
)
from discards.models.failure import (
    CatalogUnavailableError,
    ConcurrentRunError,
    FailureDetail,
    FailureKind,
    InvalidInputError,
    KnownError,
    PersistenceError,
    PredicateQueryError,
)
from discards.models.item import ItemFlag, ItemKey, LocationRecord, parse_keys
from discards.models.policy import (
    DEFAULT_PRESERVE_POLICIES,
    Policy,
    bucket_items,
    discardable_items,
    is_preserved,
    matches,
)
from discards.models.summary import RunSummary

__all__ = [
    "DEFAULT_PRESERVE_POLICIES",
    "LEDGER_FIELD_COUNT",
    "NEVER_CONVERTED",
    "CardHealth",
    "CatalogUnavailableError",
    "ConcurrentRunError",
    "DiscardCard",
    "FailureDetail",
    "FailureKind",
    "InvalidInputError",
    "ItemFlag",
    "ItemKey",
    "KnownError",
    "LocationRecord",
    "PersistenceError",
    "Policy",
    "PredicateQueryError",
    "RunSummary",
    "bucket_items",
    "discardable_items",
    "is_never",
    "is_preserved",
    "matches",
    "parse_keys",
]
