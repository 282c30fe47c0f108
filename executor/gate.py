"""Reject-don't-queue admission gate for execution sessions."""

from __future__ import annotations


class ExecutionGate:
    """Counting gate with a fixed number of slots.

    try_acquire() never blocks: when every slot is taken it returns False and
    the caller must report the rejection instead of waiting. With the default
    capacity of one this enforces a single execution at a time.

    The gate is only touched from the event loop thread, so no lock is held.
    """

    def __init__(self, capacity: int = 1) -> None:
        if capacity < 1:
            raise ValueError("Gate capacity must be at least 1")
        self.capacity = capacity
        self._active = 0

    @property
    def active(self) -> int:
        """Number of slots currently held."""
        return self._active

    @property
    def is_busy(self) -> bool:
        return self._active >= self.capacity

    def try_acquire(self) -> bool:
        """Take a slot if one is free; return whether it was taken."""
        if self.is_busy:
            return False
        self._active += 1
        return True

    def release(self) -> None:
        """Return a slot taken by try_acquire().

        Raises:
            RuntimeError: If no slot is held
        """
        if self._active == 0:
            raise RuntimeError("ExecutionGate released more times than acquired")
        self._active -= 1
