from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Awaitable, Iterable, Optional, Sequence

from playwright.async_api import Page

from ..errors import RaceFailure


logger = logging.getLogger(__name__)

# Losing candidates are left running; hold a reference until they finish so they are not GC'd mid-flight.
_BACKGROUND: set[asyncio.Future] = set()


async def race_first_settled(awaitables: Iterable[Awaitable[Any]], *, labels: Optional[Sequence[str]] = None) -> int:
    """
    Start every awaitable and return the index of the first one to settle.

    First *settled* wins, not first *successful*: if the earliest candidate to finish raised,
    the race fails with `RaceFailure` even though a later candidate might still succeed.

    Losers are not cancelled. They run to completion in the background and their outcome
    (result or exception) is retrieved and discarded.
    """
    loop = asyncio.get_running_loop()
    winner: asyncio.Future[int] = loop.create_future()

    def _settle(index: int, task: asyncio.Future) -> None:
        if task.cancelled():
            exc: Optional[BaseException] = asyncio.CancelledError()
        else:
            exc = task.exception()

        if winner.done():
            if exc is not None:
                logger.debug("Discarding late race failure (candidate=%d): %r", index, exc)
            return

        if exc is None:
            winner.set_result(index)
            return

        label = labels[index] if labels is not None and index < len(labels) else None
        err = RaceFailure(label, index)
        err.__cause__ = exc
        winner.set_exception(err)

    started = 0
    for index, aw in enumerate(awaitables):
        task = asyncio.ensure_future(aw)
        _BACKGROUND.add(task)
        task.add_done_callback(_BACKGROUND.discard)
        task.add_done_callback(functools.partial(_settle, index))
        started += 1

    if not started:
        winner.cancel()
        raise ValueError("race_first_settled() needs at least one awaitable")

    return await winner


async def wait_for_any_selector(
    page: Page,
    selectors: Sequence[str],
    *,
    state: str = "visible",
    timeout: Optional[float] = None,
) -> str:
    """
    Wait for several selectors at once and return whichever settles first.
    """
    if not selectors:
        raise ValueError("wait_for_any_selector() needs at least one selector")

    index = await race_first_settled(
        (page.wait_for_selector(s, state=state, timeout=timeout) for s in selectors),
        labels=list(selectors),
    )
    logger.debug("Selector race won by %r", selectors[index])
    return selectors[index]
