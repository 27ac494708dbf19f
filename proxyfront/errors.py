"""Failure taxonomy for the proxy front and its execution host.

Every error carries ``data``: the ABI-encoded revert payload a caller observes.
Errors abort the whole operation they occur in; the host rolls back any state
written during that operation before the error reaches the caller.
"""

from __future__ import annotations

from proxyfront.abi import encode_call, to_hex


class Revert(Exception):
    """A call failed. ``data`` is the revert payload relayed to the caller."""

    def __init__(self, message: str = "", data: bytes | None = None):
        super().__init__(message)
        self.message = message
        self.data = data if data is not None else encode_call("Error(string)", message)


class UnauthorizedError(Revert):
    """Caller is not the administrator on an admin-gated operation."""

    def __init__(self, caller: str):
        self.caller = caller
        super().__init__(
            f"Caller {caller} is not the proxy admin",
            encode_call("Unauthorized(address)", caller),
        )


class NotAContractError(Revert):
    """Proposed logic address has no executable code."""

    def __init__(self, address: str):
        self.address = address
        super().__init__(
            f"Address {address} has no code",
            encode_call("NotAContract(address)", address),
        )


class ZeroAdminError(Revert):
    """Proposed administrator is the zero address."""

    def __init__(self):
        super().__init__("New admin is the zero address", encode_call("ZeroAdmin()"))


class NoImplementationError(Revert):
    """Fallback invoked while the implementation slot is unset."""

    def __init__(self):
        super().__init__("No implementation installed", encode_call("NoImplementation()"))


class InitializationError(Revert):
    """The setup call made at construction reported failure."""

    def __init__(self, reason: bytes):
        self.reason = reason
        super().__init__(
            f"Initialization call failed: {to_hex(reason)}",
            encode_call("InitializationFailed(bytes)", reason),
        )


class SetupCallFailedError(Revert):
    """The call made after an upgrade reported failure."""

    def __init__(self, reason: bytes):
        self.reason = reason
        super().__init__(
            f"Upgrade setup call failed: {to_hex(reason)}",
            encode_call("SetupCallFailed(bytes)", reason),
        )


class CallReverted(Revert):
    """A forwarded call failed; ``data`` is the logic's revert payload, verbatim."""

    def __init__(self, data: bytes):
        super().__init__(f"Forwarded call reverted: {to_hex(data)}", data)


class StaticWriteError(Revert):
    """State write attempted inside a read-only evaluation."""

    def __init__(self, account: str):
        self.account = account
        super().__init__(
            f"Write to {account} in a read-only context",
            encode_call("StaticWrite(address)", account),
        )


class CallDepthError(Revert):
    """Nested calls exceeded the host's depth limit."""

    def __init__(self, depth: int):
        self.depth = depth
        super().__init__(
            f"Call depth {depth} exceeds limit",
            encode_call("CallDepthExceeded(uint256)", depth),
        )


class UnknownFunctionError(Revert):
    """A logic component received a selector it does not implement."""

    def __init__(self, selector: bytes):
        self.selector = selector
        super().__init__(
            f"Unknown function selector {to_hex(selector)}",
            encode_call("UnknownFunction(bytes)", selector),
        )


class InvalidValueError(Revert):
    """Attached value is negative or does not fit in a uint256."""

    def __init__(self, value: int):
        self.value = value
        super().__init__(f"Attached value out of range: {value}")


class UnknownCodeKindError(LookupError):
    """No code factory is registered under the requested kind."""

    pass
