"""
Catalog gateway client.

Talks JSON to the catalog RPC gateway that fronts the library system's
selection tools. Every request carries a timeout; a timed-out predicate query
is handled exactly like any other failed predicate query.
"""

import logging
from collections.abc import Sequence
from datetime import date
from typing import TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from discards.catalog.base import CatalogQueryAdapter
from discards.models.failure import CatalogUnavailableError, PredicateQueryError
from discards.models.item import ItemKey, LocationRecord, parse_keys

logger = logging.getLogger(__name__)

USER_AGENT = "Discards/1.0"
DEFAULT_TIMEOUT = 30.0

ResponseT = TypeVar("ResponseT", bound=BaseModel)


class KeyListResponse(BaseModel):
    """Response carrying canonical item keys."""

    keys: list[str]


class LocationPayload(BaseModel):
    key: str
    location: str


class LocationListResponse(BaseModel):
    records: list[LocationPayload]


class ProfileCardsResponse(BaseModel):
    """Raw discard-profile report lines."""

    records: list[str]


class HttpCatalog(CatalogQueryAdapter):
    """
    Live catalog adapter.

    Args:
        base_url: Gateway root, e.g. http://ils-gateway:8080/catalog
        timeout: Per-request timeout in seconds
        client: Optional httpx client for connection reuse (and tests)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.Client | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(
            base_url=base_url,
            headers={"User-Agent": USER_AGENT},
            timeout=timeout,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HttpCatalog":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    def _request(self, method: str, path: str, model: type[ResponseT], **kwargs: object) -> ResponseT:
        """
        Send one request and validate the JSON body.

        Raises:
            httpx.HTTPError: On transport failure, timeout or error status
            ValidationError: If the body does not match `model`
        """
        response = self._client.request(method, path, **kwargs)  # type: ignore[arg-type]
        response.raise_for_status()
        return model.model_validate(response.json())

    def _predicate(self, check: str, path: str, items: Sequence[ItemKey]) -> list[ItemKey]:
        """POST candidate keys to a predicate endpoint and parse the matches."""
        if not items:
            return []
        try:
            body = self._request("POST", path, KeyListResponse, json={"keys": [str(item) for item in items]})
            return parse_keys(body.keys)
        except httpx.TimeoutException as e:
            logger.error("Catalog %s query timed out after %s", check, e)
            raise PredicateQueryError(check, detail=f"timeout: {e}") from e
        except httpx.HTTPError as e:
            raise PredicateQueryError(check, detail=str(e)) from e
        except (ValidationError, ValueError) as e:
            raise PredicateQueryError(check, detail=f"malformed response: {e}") from e

    # =========================================================================
    # QUERIES
    # =========================================================================

    def charges_for_patron(self, patron_key: str, before: date) -> list[ItemKey]:
        try:
            body = self._request(
                "POST",
                "/charges",
                KeyListResponse,
                json={"patron_key": patron_key, "before": before.strftime("%Y%m%d")},
            )
            return parse_keys(body.keys)
        except httpx.HTTPError as e:
            raise CatalogUnavailableError(f"charges for {patron_key}", detail=str(e)) from e
        except (ValidationError, ValueError) as e:
            raise CatalogUnavailableError(f"charges for {patron_key}", detail=f"malformed response: {e}") from e

    def sibling_locations(self, items: Sequence[ItemKey]) -> list[LocationRecord]:
        if not items:
            return []
        try:
            body = self._request(
                "POST",
                "/items/locations",
                LocationListResponse,
                json={"keys": [str(item) for item in items]},
            )
            return [LocationRecord(ItemKey.parse(record.key), record.location) for record in body.records]
        except httpx.TimeoutException as e:
            logger.error("Catalog last_copy query timed out after %s", e)
            raise PredicateQueryError("last_copy", detail=f"timeout: {e}") from e
        except httpx.HTTPError as e:
            raise PredicateQueryError("last_copy", detail=str(e)) from e
        except (ValidationError, ValueError) as e:
            raise PredicateQueryError("last_copy", detail=f"malformed response: {e}") from e

    def billed_items(self, items: Sequence[ItemKey]) -> list[ItemKey]:
        return self._predicate("bills", "/items/billed", items)

    def ordered_items(self, items: Sequence[ItemKey]) -> list[ItemKey]:
        return self._predicate("orders", "/items/ordered", items)

    def serial_controlled_items(self, items: Sequence[ItemKey]) -> list[ItemKey]:
        return self._predicate("serial_control", "/items/serial-controlled", items)

    def title_held_items(self, items: Sequence[ItemKey]) -> list[ItemKey]:
        return self._predicate("title_holds", "/items/title-holds", items)

    def copy_held_items(self, items: Sequence[ItemKey]) -> list[ItemKey]:
        return self._predicate("copy_holds", "/items/copy-holds", items)

    def items_at_location(self, location: str) -> list[ItemKey]:
        try:
            body = self._request("GET", "/items/at-location", KeyListResponse, params={"location": location})
            return parse_keys(body.keys)
        except httpx.HTTPError as e:
            raise CatalogUnavailableError(f"items at {location}", detail=str(e)) from e
        except (ValidationError, ValueError) as e:
            raise CatalogUnavailableError(f"items at {location}", detail=f"malformed response: {e}") from e

    def discard_profile_cards(self) -> list[str]:
        try:
            body = self._request("GET", "/cards/discard-profile", ProfileCardsResponse)
            return body.records
        except httpx.HTTPError as e:
            raise CatalogUnavailableError("discard profile cards", detail=str(e)) from e
        except ValidationError as e:
            raise CatalogUnavailableError("discard profile cards", detail=f"malformed response: {e}") from e
