# core/concurrency.py

import asyncio
from typing import Any, Awaitable, Callable, Dict, Mapping

from core.logging_config import logger


async def gather_fail_closed(
    checks: Mapping[str, Callable[[], Awaitable[Any]]],
    defaults: Mapping[str, Any],
    context: str = "",
) -> Dict[str, Any]:
    """
    Run independent checks concurrently and collect their results by name.

    A check that raises is replaced by its entry in `defaults`; one failure
    never aborts the others, and this function itself never raises.
    Completion order is undefined; the result is assembled once all finish.

    Example:
        await gather_fail_closed(
            {"is_admin": lambda: resolver.is_admin(uid)},
            {"is_admin": False},
        )
    """
    names = list(checks.keys())
    outcomes = await asyncio.gather(
        *(_invoke(checks[name]) for name in names),
        return_exceptions=True,
    )

    results: Dict[str, Any] = {}
    for name, outcome in zip(names, outcomes):
        if isinstance(outcome, BaseException):
            logger.error(f"Check '{name}' failed{f' for {context}' if context else ''}: {outcome}")
            results[name] = defaults.get(name)
        else:
            results[name] = outcome
    return results


async def _invoke(factory: Callable[[], Awaitable[Any]]) -> Any:
    # Calling the factory inside the coroutine keeps synchronous raises contained
    return await factory()
