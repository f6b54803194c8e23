from __future__ import annotations

import asyncio
import json
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    TypeVar,
)

import httpx

from .errors import TransientFailure


T = TypeVar("T")
R = TypeVar("R")

USER_AGENT = "tax-appeal-comps"


def build_async_client(
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
        follow_redirects=True,
        transport=transport,
    )


async def get_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    source: str,
    params: Optional[Mapping[str, Any]] = None,
    headers: Optional[Mapping[str, str]] = None,
) -> Any:
    """GET ``url`` and decode JSON, raising TransientFailure tagged with ``source``."""

    try:
        response = await client.get(url, params=params, headers=headers)
    except httpx.TimeoutException as exc:
        raise TransientFailure(source, f"timeout: {exc}") from exc
    except httpx.HTTPError as exc:
        raise TransientFailure(source, f"{type(exc).__name__}: {exc}") from exc
    if response.status_code >= 400:
        raise TransientFailure(
            source, f"HTTP {response.status_code}: {response.text[:500]}"
        )
    try:
        return response.json()
    except (json.JSONDecodeError, ValueError) as exc:
        raise TransientFailure(source, f"invalid JSON: {exc}") from exc


def chunked(seq: Iterable[T], n: int) -> Iterable[List[T]]:
    n = max(int(n), 1)
    buf: List[T] = []
    for it in seq:
        buf.append(it)
        if len(buf) >= n:
            yield buf
            buf = []
    if buf:
        yield buf


async def gather_in_batches(
    items: Sequence[T],
    fn: Callable[[T], Awaitable[R]],
    batch_size: int,
) -> Dict[T, R]:
    """Run ``fn`` over ``items`` one fixed-size group at a time.

    Each group is awaited jointly before the next starts. Exceptions
    propagate; the remaining groups are not started.
    """

    results: Dict[T, R] = {}
    for batch in chunked(items, batch_size):
        answers = await asyncio.gather(*(fn(item) for item in batch))
        for item, answer in zip(batch, answers):
            results[item] = answer
    return results
