"""Base class for logic components: selector dispatch over decorated methods."""

from __future__ import annotations

import logging
from typing import Any, Callable

from proxyfront import abi
from proxyfront.errors import Revert, UnknownFunctionError
from proxyfront.host import ExecutionContext

logger = logging.getLogger(__name__)


def external(signature: str, returns: tuple[str, ...] = ()) -> Callable:
    """Expose a method under a call signature.

    Example:
        @external("increment()", returns=("uint256",))
        def increment(self, context): ...
    """
    abi.parse_signature(signature)

    def decorator(func: Callable) -> Callable:
        func._external = (signature, tuple(returns))  # type: ignore[attr-defined]
        return func

    return decorator


class LogicComponent:
    """Swappable code reached through a proxy's forwarder.

    Methods receive the execution context first; when reached through a proxy,
    ``context.storage`` is the proxy's storage and ``context.sender`` the
    proxy's caller. Fields are laid out sequentially from slot 0.
    """

    def __init__(self):
        self._functions: dict[bytes, tuple[Callable[..., Any], list[str], tuple[str, ...], str]] = {}
        for name in dir(type(self)):
            spec = getattr(getattr(type(self), name), "_external", None)
            if spec is None:
                continue
            signature, returns = spec
            _, types = abi.parse_signature(signature)
            self._functions[abi.selector(signature)] = (getattr(self, name), types, returns, signature)

    @property
    def signatures(self) -> list[str]:
        return sorted(entry[3] for entry in self._functions.values())

    def __call__(self, context: ExecutionContext, payload: bytes) -> bytes:
        entry = None
        if len(payload) >= abi.SELECTOR_SIZE:
            entry = self._functions.get(payload[:abi.SELECTOR_SIZE])
        if entry is None:
            return self.fallback(context, payload)

        method, types, returns, signature = entry
        try:
            args = abi.decode(types, payload[abi.SELECTOR_SIZE:])
        except abi.AbiError as e:
            raise Revert(f"Bad arguments for {signature}: {e}") from e

        result = method(context, *args)
        if not returns:
            return b""
        values = result if len(returns) > 1 else (result,)
        return abi.encode(returns, values)

    def fallback(self, context: ExecutionContext, payload: bytes) -> bytes:
        """Handle payloads matching no exposed function."""
        raise UnknownFunctionError(payload[:abi.SELECTOR_SIZE])
