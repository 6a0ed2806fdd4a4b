# src/taskgate/tasks/optimistic.py

"""
Optimistic mutation.

apply -> remote -> (confirm | revert). A mutation, once issued, always
resolves: either the remote call succeeds and `confirm` runs, or it fails and
`revert` restores the snapshot taken by `apply`.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from ..core.errors import MutationError, StoreError

logger = logging.getLogger(__name__)

S = TypeVar("S")  # snapshot taken before the local change
R = TypeVar("R")  # remote result


@dataclass(slots=True)
class OptimisticMutation(Generic[S, R]):
    label: str
    apply: Callable[[], S]
    remote: Callable[[], Awaitable[R]]
    revert: Callable[[S], None]
    confirm: Callable[[R], None] | None = None

    async def run(self) -> R:
        snapshot = self.apply()
        try:
            result = await self.remote()
        except StoreError as e:
            self.revert(snapshot)
            logger.info("%s failed, rolled back: %s", self.label, e)
            raise MutationError(f"{self.label} failed: {e}") from e
        except BaseException:
            # Cancellation or a bug: still never leave the optimistic value behind.
            self.revert(snapshot)
            raise

        if self.confirm is not None:
            self.confirm(result)
        logger.debug("%s confirmed", self.label)
        return result


async def run_optimistic(
        label: str,
        *,
        apply: Callable[[], S],
        remote: Callable[[], Awaitable[R]],
        revert: Callable[[S], None],
        confirm: Callable[[R], None] | None = None,
) -> R:
    return await OptimisticMutation(
        label=label, apply=apply, remote=remote, revert=revert, confirm=confirm
    ).run()
