"""
Catalog query adapters.

`HttpCatalog` is the live gateway client; `InMemoryCatalog` serves fixture
data so the classifier, scanner and orchestrator can run deterministically.
"""

from discards.catalog.base import CatalogQueryAdapter
from discards.catalog.http import HttpCatalog
from discards.catalog.memory import InMemoryCatalog

__all__ = [
    "CatalogQueryAdapter",
    "HttpCatalog",
    "InMemoryCatalog",
]
