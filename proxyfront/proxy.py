"""Upgradeable proxy front: admin-gated logic swaps plus a transparent forwarder."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from proxyfront import abi, slots
from proxyfront.abi import ZERO_ADDRESS, to_address
from proxyfront.errors import (
    CallReverted,
    InitializationError,
    NoImplementationError,
    NotAContractError,
    Revert,
    SetupCallFailedError,
    UnauthorizedError,
    ZeroAdminError,
)
from proxyfront.host import ExecutionContext, ExecutionHost
from proxyfront.schemas import LogEntry, ProxyState

logger = logging.getLogger(__name__)

PROXY_KIND = "proxy"

UPGRADE_TO = "upgradeTo(address)"
UPGRADE_TO_AND_CALL = "upgradeToAndCall(address,bytes)"
CHANGE_ADMIN = "changeAdmin(address)"

UPGRADED_EVENT = "Upgraded"
ADMIN_CHANGED_EVENT = "AdminChanged"


def get_implementation(context: ExecutionContext) -> str:
    return slots.get_address(context.storage, slots.IMPLEMENTATION_SLOT)


def get_admin(context: ExecutionContext) -> str:
    return slots.get_address(context.storage, slots.ADMIN_SLOT)


def _decode_args(types: list[str], args: bytes) -> tuple:
    try:
        return abi.decode(types, args)
    except abi.AbiError as e:
        raise Revert(f"Malformed admin call arguments: {e}") from e


class UpgradeableProxy:
    """Code for the address-stable front.

    Three admin selectors are handled here; every other payload is delegated
    to the current implementation, so the implementation's code runs against
    the proxy's storage. The proxy only ever writes its two fixed slots.
    """

    def __init__(self):
        self._routes: dict[bytes, Callable[[ExecutionContext, bytes], bytes]] = {
            abi.selector(UPGRADE_TO): self._upgrade_to,
            abi.selector(UPGRADE_TO_AND_CALL): self._upgrade_to_and_call,
            abi.selector(CHANGE_ADMIN): self._change_admin,
        }

    def construct(
        self,
        context: ExecutionContext,
        initial_logic: str,
        initial_admin: str,
        setup_payload: bytes = b"",
    ) -> None:
        """Install the first implementation and admin, then run the optional setup call.

        The admin is not checked against zero here; changeAdmin does check.
        """
        self._set_implementation(context, initial_logic)
        admin = to_address(initial_admin)
        slots.set_address(context.storage, slots.ADMIN_SLOT, admin)
        context.emit(ADMIN_CHANGED_EVENT, previous_admin=ZERO_ADDRESS, new_admin=admin)

        if setup_payload:
            outcome = context.delegate(initial_logic, setup_payload, context.value)
            if not outcome.success:
                raise InitializationError(outcome.return_data)

    def __call__(self, context: ExecutionContext, payload: bytes) -> bytes:
        route = None
        if len(payload) >= abi.SELECTOR_SIZE:
            route = self._routes.get(payload[:abi.SELECTOR_SIZE])
        if route is not None:
            return route(context, payload[abi.SELECTOR_SIZE:])
        return self._forward(context, payload)

    # --- Forwarder ---

    def _forward(self, context: ExecutionContext, payload: bytes) -> bytes:
        implementation = get_implementation(context)
        if implementation == ZERO_ADDRESS:
            raise NoImplementationError()

        outcome = context.delegate(implementation, payload, context.value)
        if not outcome.success:
            raise CallReverted(outcome.return_data)
        return outcome.return_data

    # --- Admin surface ---

    def _require_admin(self, context: ExecutionContext) -> None:
        if context.sender != get_admin(context):
            raise UnauthorizedError(context.sender)

    def _set_implementation(self, context: ExecutionContext, new_logic: str) -> None:
        new_logic = to_address(new_logic)
        if not context.has_code(new_logic):
            raise NotAContractError(new_logic)
        slots.set_address(context.storage, slots.IMPLEMENTATION_SLOT, new_logic)
        context.emit(UPGRADED_EVENT, implementation=new_logic)

    def _upgrade_to(self, context: ExecutionContext, args: bytes) -> bytes:
        self._require_admin(context)
        (new_logic,) = _decode_args(["address"], args)
        self._set_implementation(context, new_logic)
        logger.info(f"Proxy {context.address} upgraded to {new_logic}")
        return b""

    def _upgrade_to_and_call(self, context: ExecutionContext, args: bytes) -> bytes:
        self._require_admin(context)
        new_logic, payload = _decode_args(["address", "bytes"], args)
        self._set_implementation(context, new_logic)
        logger.info(f"Proxy {context.address} upgraded to {new_logic} (with call)")

        if payload:
            outcome = context.delegate(new_logic, payload, context.value)
            if not outcome.success:
                raise SetupCallFailedError(outcome.return_data)
        return b""

    def _change_admin(self, context: ExecutionContext, args: bytes) -> bytes:
        self._require_admin(context)
        (new_admin,) = _decode_args(["address"], args)
        if new_admin == ZERO_ADDRESS:
            raise ZeroAdminError()

        previous_admin = get_admin(context)
        slots.set_address(context.storage, slots.ADMIN_SLOT, new_admin)
        context.emit(ADMIN_CHANGED_EVENT, previous_admin=previous_admin, new_admin=new_admin)
        logger.info(f"Proxy {context.address} admin changed {previous_admin} -> {new_admin}")
        return b""


@dataclass
class ProxyHandle:
    """Caller-side handle on a deployed proxy."""

    host: ExecutionHost
    address: str

    @classmethod
    def deploy(
        cls,
        host: ExecutionHost,
        logic: str,
        admin: str,
        setup_payload: bytes = b"",
        *,
        sender: str,
        value: int = 0,
    ) -> ProxyHandle:
        """Deploy a new proxy front and return a handle on it."""
        address = host.deploy(PROXY_KIND, logic, admin, setup_payload, sender=sender, value=value)
        return cls(host=host, address=address)

    @property
    def implementation(self) -> str:
        return slots.get_address(self.host.view(self.address), slots.IMPLEMENTATION_SLOT)

    @property
    def admin(self) -> str:
        return slots.get_address(self.host.view(self.address), slots.ADMIN_SLOT)

    def state(self) -> ProxyState:
        return ProxyState(address=self.address, implementation=self.implementation, admin=self.admin)

    def call(self, payload: bytes, *, sender: str, value: int = 0) -> bytes:
        """Send an arbitrary payload through the proxy."""
        return self.host.transact(self.address, payload, sender=sender, value=value)

    def static_call(self, payload: bytes, *, sender: str = ZERO_ADDRESS) -> bytes:
        return self.host.static_call(self.address, payload, sender=sender)

    def upgrade_to(self, new_logic: str, *, sender: str) -> None:
        self.call(abi.encode_call(UPGRADE_TO, new_logic), sender=sender)

    def upgrade_to_and_call(self, new_logic: str, payload: bytes, *, sender: str, value: int = 0) -> None:
        self.call(abi.encode_call(UPGRADE_TO_AND_CALL, new_logic, payload), sender=sender, value=value)

    def change_admin(self, new_admin: str, *, sender: str) -> None:
        self.call(abi.encode_call(CHANGE_ADMIN, new_admin), sender=sender)

    def events(self, name: str | None = None) -> list[LogEntry]:
        return self.host.events(emitter=self.address, name=name)
