"""
Error taxonomy for the item-similarity search engine.

All failures are raised to the immediate caller. The engine never retries
and never falls back silently; the caller decides whether to offer a retry.
"""


class SearchError(Exception):
    """Base class for every error raised by lostfound_search."""


class ImageLoadError(SearchError):
    """The input image could not be decoded, read, or downloaded."""


class UnsupportedSourceError(SearchError, TypeError):
    """The caller passed something that is neither image bytes nor a loadable location."""


class CatalogUnavailableError(SearchError):
    """The catalog store could not be queried."""
