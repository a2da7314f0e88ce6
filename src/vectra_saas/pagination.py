"""
Walkers over paged and checkpointed endpoints.

Two shapes of multi-request fetch exist in the API:

- List endpoints return ``{"results": [...], "next": <url or null>}``.
  ``walk_pages`` follows ``next`` until it is null.
- Event streams return ``{"events": [...], "remaining_count": n,
  "next_checkpoint": c}``. ``walk_events`` keeps asking from the last
  checkpoint until ``remaining_count`` reaches zero.

Cursor and checkpoint state is local to each walk, so concurrent walks
on the same client never interfere. Results are accumulated in arrival
order; a failure on any page propagates and the partial result is
dropped.
"""

from typing import Any, AsyncIterator, Mapping

import structlog

from vectra_saas.config import ApiVariant
from vectra_saas.exceptions import PaginationError
from vectra_saas.gateway import ApiGateway
from vectra_saas.models import EventPage, Page, parse_response
from vectra_saas.query import relative_path, with_query

logger = structlog.get_logger(__name__)


def first_page_path(
    path: str,
    params: Mapping[str, Any] | None = None,
    start_page: bool = True,
) -> str:
    """
    Build the first request of a paginated walk.

    ``/detections`` + ``{"state": "active"}`` gives
    ``/detections?page=1&state=active``; with no params only ``?page=1``
    is appended.
    """
    query: dict[str, Any] = {"page": 1} if start_page else {}
    if params:
        query.update(params)
    return with_query(path, query)


async def iter_pages(
    gateway: ApiGateway,
    path: str,
    params: Mapping[str, Any] | None = None,
    start_page: bool = True,
) -> AsyncIterator[list[dict[str, Any]]]:
    """
    Yield the ``results`` of each page of a list endpoint.

    Raises:
        PaginationError: If the server hands back a cursor already visited
        UnexpectedResponseError: If a page is not a list envelope
    """
    next_path: str | None = first_page_path(path, params, start_page)
    seen: set[str] = set()
    page_number = 0

    while next_path is not None:
        if next_path in seen:
            raise PaginationError(f"Cursor repeated while paging {path}: {next_path}")
        seen.add(next_path)

        data = await gateway.fetch_json(next_path)
        page = parse_response(Page, data, next_path)
        page_number += 1

        logger.debug(
            "Fetched page",
            path=path,
            page=page_number,
            count=len(page.results),
            has_next=page.next is not None,
        )

        yield page.results

        next_path = relative_path(page.next) if page.next else None


async def walk_pages(
    gateway: ApiGateway,
    path: str,
    params: Mapping[str, Any] | None = None,
    start_page: bool = True,
) -> list[dict[str, Any]]:
    """Fetch every page of a list endpoint and concatenate the results."""
    results: list[dict[str, Any]] = []
    pages = 0
    async for page_results in iter_pages(gateway, path, params, start_page):
        results.extend(page_results)
        pages += 1

    logger.info("Fetched all pages", path=path, pages=pages, count=len(results))
    return results


def event_page_path(topic: str, checkpoint: int, variant: ApiVariant) -> str:
    return with_query(
        topic,
        {"limit": variant.event_page_limit, variant.checkpoint_param: checkpoint},
    )


async def iter_events(
    gateway: ApiGateway,
    topic: str,
    checkpoint: int = 0,
    variant: ApiVariant = ApiVariant(),
) -> AsyncIterator[EventPage]:
    """
    Yield each page of an event stream, starting at ``checkpoint``.

    Raises:
        PaginationError: If the server reports remaining events without
            advancing the checkpoint
        UnexpectedResponseError: If a page is not an event envelope
    """
    while True:
        page_path = event_page_path(topic, checkpoint, variant)
        data = await gateway.fetch_json(page_path)
        page = parse_response(EventPage, data, page_path)

        logger.debug(
            "Fetched events",
            topic=topic,
            checkpoint=checkpoint,
            count=len(page.events),
            remaining=page.remaining_count,
            next_checkpoint=page.next_checkpoint,
        )

        yield page

        if page.exhausted:
            break
        if page.next_checkpoint is None or page.next_checkpoint == checkpoint:
            raise PaginationError(
                f"Checkpoint did not advance on {topic} at {checkpoint} "
                f"with {page.remaining_count} events remaining"
            )
        checkpoint = page.next_checkpoint


async def walk_events(
    gateway: ApiGateway,
    topic: str,
    checkpoint: int = 0,
    variant: ApiVariant = ApiVariant(),
) -> list[dict[str, Any]]:
    """Fetch every event from ``checkpoint`` to the head of the stream."""
    events: list[dict[str, Any]] = []
    async for page in iter_events(gateway, topic, checkpoint, variant):
        events.extend(page.events)

    logger.info("Fetched all events", topic=topic, start=checkpoint, count=len(events))
    return events


async def latest_checkpoint(
    gateway: ApiGateway,
    topic: str,
    variant: ApiVariant = ApiVariant(),
) -> int | None:
    """
    Resolve the current head checkpoint of an event stream.

    Asking from a checkpoint beyond any real one makes the server report
    its head in ``next_checkpoint``; a second call from that position
    returns the settled latest checkpoint.
    """
    far_path = event_page_path(topic, variant.probe_checkpoint, variant)
    data = await gateway.fetch_json(far_path)
    head = parse_response(EventPage, data, far_path).next_checkpoint
    if head is None:
        return None

    head_path = event_page_path(topic, head, variant)
    data = await gateway.fetch_json(head_path)
    return parse_response(EventPage, data, head_path).next_checkpoint
