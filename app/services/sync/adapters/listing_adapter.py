"""Listing source adapter boundary.

The listing source publishes the tournament schedule as paginated HTML.
Scraping it is not this service's job: a deployment plugs in any object
that satisfies ``ListingSource`` and returns structured ``SourceEvent``
records per page. The class is named in settings (LISTING_SOURCE_CLASS,
a dotted path) and instantiated without arguments.

Example:
    LISTING_SOURCE_CLASS=my_scrapers.trackwrestling.ScheduleReader
"""
import importlib
import logging
from typing import Optional, Protocol, runtime_checkable

from app.core.config import settings
from app.services.sync.types import ListingPage

logger = logging.getLogger(__name__)


@runtime_checkable
class ListingSource(Protocol):
    """Paginated reader over the listing source's event schedule."""

    async def fetch_page(self, page_index: int) -> ListingPage:
        """Events on page ``page_index`` (0-based). An empty page ends pagination."""
        ...


def load_listing_source(dotted_path: str) -> ListingSource:
    """
    Import and instantiate a listing source class.

    Args:
        dotted_path: ``package.module.ClassName``

    Raises:
        ImportError: Module or class cannot be found
        TypeError: The object does not implement ListingSource
    """
    module_path, _, class_name = dotted_path.rpartition(".")
    if not module_path:
        raise ImportError(f"Invalid listing source path: {dotted_path!r}")

    module = importlib.import_module(module_path)
    try:
        source_class = getattr(module, class_name)
    except AttributeError:
        raise ImportError(f"{module_path} has no attribute {class_name}")

    source = source_class()
    if not isinstance(source, ListingSource):
        raise TypeError(f"{dotted_path} does not implement fetch_page()")
    return source


def get_listing_source() -> Optional[ListingSource]:
    """Configured listing source, or None when LISTING_SOURCE_CLASS is unset."""
    if not settings.LISTING_SOURCE_CLASS:
        return None
    source = load_listing_source(settings.LISTING_SOURCE_CLASS)
    logger.info(f"Using listing source {settings.LISTING_SOURCE_CLASS}")
    return source
