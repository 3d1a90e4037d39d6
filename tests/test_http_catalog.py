"""Tests for the catalog gateway client."""

import json
from collections.abc import Iterator
from datetime import date

import httpx
import pytest
import respx

from discards.catalog.http import HttpCatalog
from discards.models.failure import CatalogUnavailableError, PredicateQueryError
from discards.models.item import ItemKey, LocationRecord

BASE_URL = "http://catalog.test"

STAGED = ItemKey("100", "1", "1")
SHELVED = ItemKey("100", "1", "2")


@pytest.fixture
def catalog() -> Iterator[HttpCatalog]:
    with HttpCatalog(BASE_URL, timeout=5.0) as client:
        yield client


class TestPredicateQueries:
    @respx.mock
    def test_billed_items(self, catalog: HttpCatalog) -> None:
        route = respx.post(f"{BASE_URL}/items/billed").mock(
            return_value=httpx.Response(200, json={"keys": ["100|1|1|"]})
        )

        result = catalog.billed_items([STAGED, SHELVED])

        assert result == [STAGED]
        assert json.loads(route.calls.last.request.content) == {"keys": ["100|1|1|", "100|1|2|"]}

    @pytest.mark.parametrize(
        ("method", "path"),
        [
            ("ordered_items", "/items/ordered"),
            ("serial_controlled_items", "/items/serial-controlled"),
            ("title_held_items", "/items/title-holds"),
            ("copy_held_items", "/items/copy-holds"),
        ],
    )
    @respx.mock
    def test_predicate_endpoints(self, catalog: HttpCatalog, method: str, path: str) -> None:
        respx.post(f"{BASE_URL}{path}").mock(return_value=httpx.Response(200, json={"keys": ["100|1|2|"]}))

        assert getattr(catalog, method)([STAGED]) == [SHELVED]

    @respx.mock(assert_all_called=False)
    def test_empty_candidates_skip_request(self, catalog: HttpCatalog) -> None:
        route = respx.post(f"{BASE_URL}/items/billed")

        assert catalog.billed_items([]) == []
        assert not route.called

    @respx.mock
    def test_error_status_raises_predicate_error(self, catalog: HttpCatalog) -> None:
        respx.post(f"{BASE_URL}/items/billed").mock(return_value=httpx.Response(500))

        with pytest.raises(PredicateQueryError) as exc_info:
            catalog.billed_items([STAGED])

        assert exc_info.value.check == "bills"

    @respx.mock
    def test_timeout_raises_predicate_error(self, catalog: HttpCatalog) -> None:
        respx.post(f"{BASE_URL}/items/copy-holds").mock(side_effect=httpx.ReadTimeout("slow"))

        with pytest.raises(PredicateQueryError) as exc_info:
            catalog.copy_held_items([STAGED])

        assert exc_info.value.check == "copy_holds"
        assert (exc_info.value.detail or "").startswith("timeout")

    @respx.mock
    def test_malformed_body_raises_predicate_error(self, catalog: HttpCatalog) -> None:
        respx.post(f"{BASE_URL}/items/ordered").mock(return_value=httpx.Response(200, json={"items": []}))

        with pytest.raises(PredicateQueryError, match="orders"):
            catalog.ordered_items([STAGED])

    @respx.mock
    def test_malformed_key_raises_predicate_error(self, catalog: HttpCatalog) -> None:
        respx.post(f"{BASE_URL}/items/ordered").mock(return_value=httpx.Response(200, json={"keys": ["100|"]}))

        with pytest.raises(PredicateQueryError):
            catalog.ordered_items([STAGED])


class TestLocations:
    @respx.mock
    def test_sibling_locations(self, catalog: HttpCatalog) -> None:
        respx.post(f"{BASE_URL}/items/locations").mock(
            return_value=httpx.Response(
                200,
                json={
                    "records": [
                        {"key": "100|1|1|", "location": "DISCARD"},
                        {"key": "100|1|2|", "location": "STACKS"},
                    ]
                },
            )
        )

        records = catalog.sibling_locations([STAGED])

        assert records == [LocationRecord(STAGED, "DISCARD"), LocationRecord(SHELVED, "STACKS")]

    @respx.mock
    def test_last_copy_candidates_over_gateway(self, catalog: HttpCatalog) -> None:
        respx.post(f"{BASE_URL}/items/locations").mock(
            return_value=httpx.Response(
                200,
                json={"records": [{"key": "200|1|1|", "location": "DISCARD"}]},
            )
        )

        assert catalog.last_viable_copy_candidates([ItemKey("200", "1", "1")]) == {ItemKey("200", "1", "1")}

    @respx.mock
    def test_location_failure_is_last_copy_failure(self, catalog: HttpCatalog) -> None:
        respx.post(f"{BASE_URL}/items/locations").mock(return_value=httpx.Response(502))

        with pytest.raises(PredicateQueryError) as exc_info:
            catalog.sibling_locations([STAGED])

        assert exc_info.value.check == "last_copy"

    @respx.mock
    def test_items_at_location(self, catalog: HttpCatalog) -> None:
        route = respx.get(f"{BASE_URL}/items/at-location").mock(
            return_value=httpx.Response(200, json={"keys": ["100|1|1|"]})
        )

        assert catalog.items_at_location("DISCARD") == [STAGED]
        assert route.calls.last.request.url.params["location"] == "DISCARD"


class TestCardQueries:
    @respx.mock
    def test_charges_for_patron(self, catalog: HttpCatalog) -> None:
        route = respx.post(f"{BASE_URL}/charges").mock(
            return_value=httpx.Response(200, json={"keys": ["100|1|1|"]})
        )

        result = catalog.charges_for_patron("1234", before=date(2024, 3, 5))

        assert result == [STAGED]
        assert json.loads(route.calls.last.request.content) == {"patron_key": "1234", "before": "20240305"}

    @respx.mock
    def test_charges_failure_is_catalog_unavailable(self, catalog: HttpCatalog) -> None:
        respx.post(f"{BASE_URL}/charges").mock(return_value=httpx.Response(503))

        with pytest.raises(CatalogUnavailableError) as exc_info:
            catalog.charges_for_patron("1234", before=date(2024, 3, 5))

        assert exc_info.value.exit_code == 4

    @respx.mock
    def test_discard_profile_cards(self, catalog: HttpCatalog) -> None:
        line = "WOO-DISCARD1|1234|DISCARD|20230101|20240101|15|0|0|OK|"
        respx.get(f"{BASE_URL}/cards/discard-profile").mock(
            return_value=httpx.Response(200, json={"records": [line]})
        )

        assert catalog.discard_profile_cards() == [line]

    @respx.mock
    def test_discard_profile_timeout(self, catalog: HttpCatalog) -> None:
        respx.get(f"{BASE_URL}/cards/discard-profile").mock(side_effect=httpx.ConnectTimeout("down"))

        with pytest.raises(CatalogUnavailableError):
            catalog.discard_profile_cards()


class TestClientLifecycle:
    def test_shared_client_is_not_closed(self) -> None:
        client = httpx.Client(base_url=BASE_URL)

        with HttpCatalog(BASE_URL, client=client):
            pass

        assert not client.is_closed
        client.close()

    def test_owned_client_is_closed(self) -> None:
        catalog = HttpCatalog(BASE_URL)
        catalog.close()

        assert catalog._client.is_closed
