from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

from ..domain.errors import PersistenceConflict
from ..domain.repositories import UnitOfWork

logger = logging.getLogger(__name__)

T = TypeVar("T")

UnitOfWorkFactory = Callable[[], UnitOfWork]


async def run_in_transaction(
    uow_factory: UnitOfWorkFactory,
    work: Callable[[UnitOfWork], Awaitable[T]],
    *,
    attempts: int = 1,
    name: str = "transaction",
) -> T:
    """
    Run ``work`` inside a fresh unit of work. A PersistenceConflict aborts the
    transaction without leaving partial state, so the whole call is replayed
    from scratch up to ``attempts`` times.
    """
    for attempt in range(1, attempts + 1):
        try:
            async with uow_factory() as uow:
                return await work(uow)
        except PersistenceConflict:
            if attempt >= attempts:
                logger.error("%s gave up after %d conflicting attempts", name, attempt)
                raise
            logger.warning("%s conflicted, retrying (attempt %d/%d)", name, attempt + 1, attempts)
    raise AssertionError("unreachable")  # pragma: no cover
