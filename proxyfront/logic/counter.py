"""Counter logic components, two layout-compatible versions."""

from __future__ import annotations

import logging

from proxyfront.abi import MAX_UINT256
from proxyfront.errors import Revert
from proxyfront.host import ExecutionContext
from proxyfront.logic.base import LogicComponent, external

logger = logging.getLogger(__name__)

# Storage layout (append-only across versions)
COUNT_SLOT = 0
INITIALIZED_SLOT = 1
DEPOSITS_SLOT = 2


class CounterV1(LogicComponent):
    """Counter with one-shot initializer and a deposit tally."""

    VERSION = "counter-v1"

    @external("initialize(uint256)")
    def initialize(self, context: ExecutionContext, start: int) -> None:
        storage = context.storage
        if storage.load_int(INITIALIZED_SLOT):
            raise Revert("Already initialized")
        storage.store_int(INITIALIZED_SLOT, 1)
        storage.store_int(COUNT_SLOT, start)
        context.emit("Initialized", start=start)

    @external("increment()", returns=("uint256",))
    def increment(self, context: ExecutionContext) -> int:
        count = context.storage.load_int(COUNT_SLOT) + 1
        if count > MAX_UINT256:
            raise Revert("Counter overflow")
        context.storage.store_int(COUNT_SLOT, count)
        context.emit("Incremented", count=count, caller=context.sender)
        return count

    @external("count()", returns=("uint256",))
    def count(self, context: ExecutionContext) -> int:
        return context.storage.load_int(COUNT_SLOT)

    @external("deposit()", returns=("uint256",))
    def deposit(self, context: ExecutionContext) -> int:
        total = context.storage.load_int(DEPOSITS_SLOT) + context.value
        if total > MAX_UINT256:
            raise Revert("Deposit overflow")
        context.storage.store_int(DEPOSITS_SLOT, total)
        return total

    @external("deposits()", returns=("uint256",))
    def deposits(self, context: ExecutionContext) -> int:
        return context.storage.load_int(DEPOSITS_SLOT)

    @external("fail(string)")
    def fail(self, context: ExecutionContext, message: str) -> None:
        raise Revert(message)

    @external("whoami()", returns=("address", "address"))
    def whoami(self, context: ExecutionContext) -> tuple[str, str]:
        """Return (sender, storage owner) as seen by running code."""
        return context.sender, context.address

    @external("version()", returns=("string",))
    def version(self, context: ExecutionContext) -> str:
        return self.VERSION


class CounterV2(CounterV1):
    """Adds decrement and reset on the same layout."""

    VERSION = "counter-v2"

    @external("decrement()", returns=("uint256",))
    def decrement(self, context: ExecutionContext) -> int:
        count = context.storage.load_int(COUNT_SLOT)
        if count == 0:
            raise Revert("Counter underflow")
        context.storage.store_int(COUNT_SLOT, count - 1)
        context.emit("Decremented", count=count - 1, caller=context.sender)
        return count - 1

    @external("reset()")
    def reset(self, context: ExecutionContext) -> None:
        context.storage.store_int(COUNT_SLOT, 0)
        logger.debug(f"Counter at {context.address} reset by {context.sender}")
