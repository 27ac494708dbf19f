"""Execution host: deploys code and runs calls in atomic, nestable frames."""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from proxyfront.abi import MAX_UINT256, ZERO_ADDRESS, encode_call, to_address, to_hex
from proxyfront.errors import (
    CallDepthError,
    InvalidValueError,
    Revert,
    StaticWriteError,
    UnknownCodeKindError,
)
from proxyfront.schemas import CallOutcome, LogEntry
from proxyfront.state import StateStore, StorageView

logger = logging.getLogger(__name__)

# Nested frames allowed below an external call
MAX_CALL_DEPTH = 64


def check_value(value: int) -> int:
    """Reject attached values that are negative or wider than a uint256."""
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= MAX_UINT256:
        raise InvalidValueError(value)
    return value


class CodeHandler(Protocol):
    """Executable code living at an address.

    Returns the call's return data, or raises Revert to report failure.
    Handlers may also define ``construct(context, *args)``, run once at deploy.
    """

    def __call__(self, context: ExecutionContext, payload: bytes) -> bytes: ...


@dataclass
class ExecutionContext:
    """What running code sees: whose storage, whose code, who called, with what."""

    host: ExecutionHost
    address: str
    code_address: str
    sender: str
    value: int = 0
    static: bool = False
    depth: int = 0

    @property
    def storage(self) -> StorageView:
        """Storage of ``address``; read-only inside a static evaluation."""
        return StorageView(self.host.state, self.address, readonly=self.static)

    def has_code(self, address: str) -> bool:
        return self.host.has_code(address)

    def call(self, target: str, payload: bytes = b"", value: int = 0) -> CallOutcome:
        """Call another account with this account as sender."""
        target = to_address(target)
        return self.host._run_nested(
            ExecutionContext(
                host=self.host,
                address=target,
                code_address=target,
                sender=self.address,
                value=value,
                static=self.static,
                depth=self.depth + 1,
            ),
            payload,
        )

    def delegate(self, target: str, payload: bytes = b"", value: int | None = None) -> CallOutcome:
        """Run another account's code against this account's storage.

        The original sender is preserved; ``value`` defaults to this frame's value.
        """
        return self.host._run_nested(
            ExecutionContext(
                host=self.host,
                address=self.address,
                code_address=to_address(target),
                sender=self.sender,
                value=self.value if value is None else value,
                static=self.static,
                depth=self.depth + 1,
            ),
            payload,
        )

    def static_call(self, target: str, payload: bytes = b"") -> CallOutcome:
        """Call another account in read-only mode."""
        target = to_address(target)
        return self.host._run_nested(
            ExecutionContext(
                host=self.host,
                address=target,
                code_address=target,
                sender=self.address,
                static=True,
                depth=self.depth + 1,
            ),
            payload,
        )

    def emit(self, name: str, **args: Any) -> None:
        """Append an event attributed to the storage owner."""
        if self.static:
            raise StaticWriteError(self.address)
        self.host.state.append_event(self.address, name, args)


class ExecutionHost:
    """Runs code against a shared StateStore with all-or-nothing call semantics.

    External entry points (deploy, transact) raise on failure after rolling back
    everything the call wrote. Nested calls made by running code return a
    CallOutcome instead, rolling back only their own frame.
    """

    def __init__(self, state: StateStore | None = None, max_depth: int = MAX_CALL_DEPTH):
        self.state = state if state is not None else StateStore()
        self.max_depth = max_depth
        self._factories: dict[str, Callable[[], CodeHandler]] = {}
        self._handlers: dict[str, CodeHandler] = {}
        # One external invocation runs at a time; nested frames re-enter.
        self._lock = threading.RLock()

    # --- Code registry ---

    def register(self, kind: str, factory: Callable[[], CodeHandler]) -> None:
        """Register a code kind that can be deployed by name."""
        self._factories[kind] = factory
        self._handlers.pop(kind, None)

    @property
    def kinds(self) -> list[str]:
        return sorted(self._factories)

    def _handler(self, kind: str) -> CodeHandler:
        if kind not in self._handlers:
            factory = self._factories.get(kind)
            if factory is None:
                raise UnknownCodeKindError(f"No code registered under kind '{kind}'")
            self._handlers[kind] = factory()
        return self._handlers[kind]

    def has_code(self, address: str) -> bool:
        return self.state.code_kind(to_address(address)) is not None

    def code_kind(self, address: str) -> str | None:
        return self.state.code_kind(to_address(address))

    @staticmethod
    def compute_address(sender: str, nonce: int) -> str:
        """Derive a deployment address from the deployer and its nonce."""
        digest = hashlib.sha256(f"{to_address(sender)}:{nonce}".encode("utf-8")).hexdigest()
        return "0x" + digest[-40:]

    # --- External entry points ---

    def deploy(self, kind: str, *args: Any, sender: str, value: int = 0) -> str:
        """Deploy code of a registered kind and run its constructor.

        Args:
            kind: Registered code kind
            *args: Constructor arguments
            sender: Deploying account
            value: Value attached to construction

        Returns:
            Address of the new code
        """
        sender = to_address(sender)
        check_value(value)
        handler = self._handler(kind)

        with self._lock, self.state.savepoint():
            address = self.compute_address(sender, self.state.next_nonce(sender))
            self.state.put_code(address, kind)
            construct = getattr(handler, "construct", None)
            if construct is not None:
                context = ExecutionContext(
                    host=self,
                    address=address,
                    code_address=address,
                    sender=sender,
                    value=value,
                )
                construct(context, *args)

        logger.info(f"Deployed {kind} at {address} (sender={sender})")
        return address

    def transact(self, target: str, payload: bytes = b"", *, sender: str, value: int = 0) -> bytes:
        """Invoke an account; raise on failure with every write rolled back.

        Returns:
            The callee's return data
        """
        target = to_address(target)
        context = ExecutionContext(
            host=self,
            address=target,
            code_address=target,
            sender=to_address(sender),
            value=value,
        )

        with self._lock, self.state.savepoint():
            return self._execute(context, payload)

    def static_call(self, target: str, payload: bytes = b"", *, sender: str = ZERO_ADDRESS) -> bytes:
        """Evaluate a call in read-only mode; any write attempt fails."""
        target = to_address(target)
        context = ExecutionContext(
            host=self,
            address=target,
            code_address=target,
            sender=to_address(sender),
            static=True,
        )

        with self._lock:
            return self._execute(context, payload)

    # --- Frames ---

    def _execute(self, context: ExecutionContext, payload: bytes) -> bytes:
        if context.depth > self.max_depth:
            raise CallDepthError(context.depth)
        check_value(context.value)

        kind = self.state.code_kind(context.code_address)
        if kind is None:
            # Plain account: nothing to run.
            return b""

        logger.debug(
            f"Frame depth={context.depth} kind={kind} code={context.code_address} "
            f"storage={context.address} sender={context.sender} payload={to_hex(payload[:4])}"
        )
        return bytes(self._handler(kind)(context, payload))

    def _run_nested(self, context: ExecutionContext, payload: bytes) -> CallOutcome:
        try:
            with self.state.savepoint():
                data = self._execute(context, payload)
        except Revert as e:
            logger.debug(f"Nested frame at depth {context.depth} reverted: {e}")
            return CallOutcome(success=False, return_data=e.data)
        except Exception as e:
            # Frame already rolled back; report the fault as a plain revert.
            logger.debug(f"Nested frame at depth {context.depth} faulted: {e!r}", exc_info=True)
            reason = f"{type(e).__name__}: {e}"
            return CallOutcome(success=False, return_data=encode_call("Error(string)", reason))
        return CallOutcome(success=True, return_data=data)

    # --- Reads ---

    def view(self, address: str) -> StorageView:
        """Read-only view of an account's storage."""
        return StorageView(self.state, to_address(address), readonly=True)

    def storage_at(self, address: str, slot: int) -> bytes:
        return self.view(address).load(slot)

    def events(
        self,
        emitter: str | None = None,
        name: str | None = None,
        since: int = 0,
    ) -> list[LogEntry]:
        """Query emitted events in order."""
        if emitter is not None:
            emitter = to_address(emitter)
        return [LogEntry(**entry) for entry in self.state.events(emitter, name, since)]
