"""
Optimistic command.

WHAT: Apply a local change, run the remote call, then either reconcile
the local state with the server's answer or undo the local change.

WHY: Views show the user's action immediately and must not be left
showing something the server refused. Keeping the three steps in one
object means a failure path can never forget to roll back.

HOW: apply() runs synchronously before the await; compensate() runs
only if the remote call raises, and the error is re-raised afterwards.
"""

import logging
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OptimisticCommand(Generic[T]):
    """
    One optimistic local change backed by a remote call.

    Example:
        command = OptimisticCommand(
            apply=lambda: thread.append(pending),
            execute=lambda: client.post_comment(proposal_id, text),
            compensate=lambda: thread.remove(pending),
            reconcile=lambda saved: thread.replace(pending, saved),
            name="post_comment",
        )
        saved = await command.run()
    """

    def __init__(
        self,
        apply: Callable[[], Any],
        execute: Callable[[], Awaitable[T]],
        compensate: Callable[[], Any],
        reconcile: Optional[Callable[[T], Any]] = None,
        name: str = "command",
    ):
        self._apply = apply
        self._execute = execute
        self._compensate = compensate
        self._reconcile = reconcile
        self.name = name
        self.applied = False
        self.compensated = False

    async def run(self) -> T:
        """
        Run the command.

        Returns:
            Result of the remote call

        Raises:
            Whatever the remote call raised, after the local change was undone
        """
        self._apply()
        self.applied = True
        try:
            result = await self._execute()
        except BaseException:
            logger.warning(f"Optimistic {self.name} failed, rolling back local change")
            self._compensate()
            self.compensated = True
            raise
        if self._reconcile is not None:
            self._reconcile(result)
        return result
