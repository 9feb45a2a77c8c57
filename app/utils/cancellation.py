import asyncio
from typing import Awaitable, Optional, TypeVar
from app.errors import SearchCancelled, SearchTimeout

T = TypeVar("T")


async def run_cancellable(
    awaitable: Awaitable[T],
    cancel_event: Optional[asyncio.Event] = None,
    timeout: Optional[float] = None,
) -> T:
    """
    Await `awaitable` as a task that is cancelled when `cancel_event` is set
    or `timeout` seconds elapse. No partial result is ever returned.

    Raises:
        SearchCancelled: cancel_event was set first
        SearchTimeout: the timeout elapsed first
    """
    task = asyncio.ensure_future(awaitable)
    waiters = {task}
    cancel_waiter = None
    if cancel_event is not None:
        cancel_waiter = asyncio.ensure_future(cancel_event.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        if cancel_waiter is not None and not cancel_waiter.done():
            cancel_waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass

    if cancel_waiter is not None and cancel_waiter in done:
        raise SearchCancelled("Search cancelled by caller")
    raise SearchTimeout(f"Search exceeded {timeout} seconds")
