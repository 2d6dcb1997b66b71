"""
Read-only catalog sources.

The engine only needs one thing from the surrounding application: the
complete current list of items, in store order. Sources wrap whatever
backs that list (a JSON export, an HTTP endpoint, an in-memory list) and
translate every access failure into CatalogUnavailableError.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import requests

from .errors import CatalogUnavailableError
from .models import CatalogItem

logger = logging.getLogger(__name__)

CATALOG_URL = os.environ.get("CATALOG_URL")
CATALOG_TIMEOUT = float(os.environ.get("CATALOG_TIMEOUT", "10"))


class CatalogSource(ABC):
    """Supplies the full set of catalog items."""

    @abstractmethod
    def fetch_all_items(self) -> List[CatalogItem]:
        """
        Return every item currently in the catalog.

        Raises:
            CatalogUnavailableError: If the backing store cannot be read.
        """


class InMemoryCatalog(CatalogSource):
    """Catalog backed by a list of items or item dicts."""

    def __init__(self, items: Iterable[Union[CatalogItem, Dict[str, Any]]] = ()):
        self._items = [_coerce(i) for i in items]

    def fetch_all_items(self) -> List[CatalogItem]:
        return list(self._items)


class JsonFileCatalog(CatalogSource):
    """Catalog read from a JSON export: a list of items or {"items": [...]}."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def fetch_all_items(self) -> List[CatalogItem]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, ValueError) as e:
            raise CatalogUnavailableError(f"Could not read catalog {self.path}: {e}") from e

        items = parse_items(payload)
        logger.info(f"Loaded {len(items)} items from {self.path}")
        return items


class HttpCatalog(CatalogSource):
    """Catalog fetched with a GET from a JSON endpoint."""

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None):
        self.url = url or CATALOG_URL
        if not self.url:
            raise ValueError("HttpCatalog requires a URL (argument or CATALOG_URL)")
        self.timeout = timeout or CATALOG_TIMEOUT

    def fetch_all_items(self) -> List[CatalogItem]:
        try:
            response = requests.get(self.url, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as e:
            raise CatalogUnavailableError(f"Catalog request to {self.url} failed: {e}") from e
        except ValueError as e:
            raise CatalogUnavailableError(f"Catalog at {self.url} returned invalid JSON: {e}") from e

        items = parse_items(payload)
        logger.info(f"Fetched {len(items)} items from {self.url}")
        return items


def parse_items(payload: Any) -> List[CatalogItem]:
    """
    Turn a decoded JSON payload into catalog items.

    Accepts a list of documents, {"items": [...]}, or a mapping of
    document id to document (the id is filled in from the key).
    """
    if isinstance(payload, dict) and "items" in payload:
        payload = payload["items"]

    if isinstance(payload, dict):
        documents = []
        for doc_id, doc in payload.items():
            if isinstance(doc, dict):
                documents.append({"id": doc_id, **doc})
        payload = documents

    if not isinstance(payload, list):
        raise CatalogUnavailableError(
            f"Unexpected catalog payload of type {type(payload).__name__}"
        )

    return [CatalogItem.from_dict(doc) for doc in payload if isinstance(doc, dict)]


def open_catalog(location: str, timeout: Optional[float] = None) -> CatalogSource:
    """Pick a catalog source for a URL or file path."""
    if location.startswith(("http://", "https://")):
        return HttpCatalog(location, timeout=timeout)
    return JsonFileCatalog(location)


def _coerce(item: Union[CatalogItem, Dict[str, Any]]) -> CatalogItem:
    if isinstance(item, CatalogItem):
        return item
    return CatalogItem.from_dict(item)
