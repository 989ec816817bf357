"""
Pagination aggregation for multi-page platform listings

Two listing styles are covered:

- Continuation token: each page carries an opaque handle to the next one.
  Aggregation stops when a page has no handle OR returns no items, since
  some platforms echo a stale handle indefinitely.
- Offset/limit: the first page reports a total; the offset grows by the page
  size until the total is reached or an empty page arrives early.

Page fetchers are coroutines so the adapters can run blocking library calls
through their retry-wrapped request helper.
"""

from typing import Any, Awaitable, Callable, List, Optional

from .logger import get_logger


logger = get_logger(__name__)


async def collect_continuation(
    fetch_page: Callable[[Optional[Any]], Awaitable[Any]],
    get_items: Callable[[Any], List[Any]],
    get_token: Callable[[Any], Optional[Any]],
) -> List[Any]:
    """
    Merge a continuation-token listing into one list

    Args:
        fetch_page: Coroutine returning a page; called with None for the first page,
                    then with the token extracted from the previous page
        get_items: Extracts the item list from a page
        get_token: Extracts the next-page token from a page, None when absent

    Returns:
        Items from every non-empty page in order
    """
    page = await fetch_page(None)
    items = list(get_items(page) or [])
    token = get_token(page) if items else None
    pages = 1

    while token:
        page = await fetch_page(token)
        page_items = get_items(page) or []
        if not page_items:
            break
        items.extend(page_items)
        token = get_token(page)
        pages += 1

    logger.debug(f"Aggregated {len(items)} items over {pages} continuation pages")
    return items


async def collect_offset(
    fetch_page: Callable[[int, int], Awaitable[Any]],
    get_items: Callable[[Any], List[Any]],
    get_total: Callable[[Any], int],
    page_size: int,
) -> List[Any]:
    """
    Merge an offset/limit listing into one list

    Args:
        fetch_page: Coroutine called with (offset, limit)
        get_items: Extracts the item list from a page
        get_total: Extracts the total item count; only the first page's value is used
        page_size: Number of items requested per page

    Returns:
        Items from every page in order
    """
    page = await fetch_page(0, page_size)
    items = list(get_items(page) or [])
    total = get_total(page) or 0
    offset = page_size

    while offset < total:
        page = await fetch_page(offset, page_size)
        page_items = get_items(page) or []
        if not page_items:
            logger.debug(f"Empty page at offset {offset} before reported total {total}")
            break
        items.extend(page_items)
        offset += page_size

    return items
