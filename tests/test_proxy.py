"""Tests for the upgradeable proxy front."""

import pytest

from proxyfront import slots
from proxyfront.abi import MAX_UINT256, ZERO_ADDRESS, decode, encode_call
from proxyfront.errors import (
    CallReverted,
    InitializationError,
    InvalidValueError,
    NoImplementationError,
    NotAContractError,
    Revert,
    SetupCallFailedError,
    UnauthorizedError,
    UnknownFunctionError,
    ZeroAdminError,
)
from proxyfront.host import ExecutionHost
from proxyfront.logic.base import LogicComponent, external
from proxyfront.proxy import (
    CHANGE_ADMIN,
    UPGRADE_TO,
    UPGRADE_TO_AND_CALL,
    ProxyHandle,
)

from conftest import ADMIN, ALICE, MALLORY, NEW_ADMIN

NOBODY = "0x" + "99" * 20


def count_of(proxy: ProxyHandle) -> int:
    return decode(["uint256"], proxy.static_call(encode_call("count()")))[0]


class TestConstruction:
    """Test one-time initialization."""

    def test_installs_logic_and_admin(self, host, logic_a):
        """Construction stores exactly the given values."""
        proxy = ProxyHandle.deploy(host, logic_a, ADMIN, sender=ALICE)
        assert proxy.implementation == logic_a
        assert proxy.admin == ADMIN

    def test_values_live_in_fixed_slots(self, host, logic_a):
        """Both values sit in the reserved slots and nowhere else."""
        proxy = ProxyHandle.deploy(host, logic_a, ADMIN, sender=ALICE)
        stored = host.state.slots(proxy.address)
        assert set(stored) == {slots.IMPLEMENTATION_SLOT, slots.ADMIN_SLOT}

    def test_construction_events(self, host, logic_a):
        """Construction records the initial logic and admin."""
        proxy = ProxyHandle.deploy(host, logic_a, ADMIN, sender=ALICE)
        assert [e.args for e in proxy.events("Upgraded")] == [{"implementation": logic_a}]
        assert [e.args for e in proxy.events("AdminChanged")] == [
            {"previous_admin": ZERO_ADDRESS, "new_admin": ADMIN}
        ]

    def test_logic_without_code_rejected(self, host):
        """Initial logic must have code."""
        with pytest.raises(NotAContractError):
            ProxyHandle.deploy(host, NOBODY, ADMIN, sender=ALICE)

    def test_zero_admin_accepted_at_construction(self, host, logic_a):
        """Construction does not validate the admin against zero."""
        proxy = ProxyHandle.deploy(host, logic_a, ZERO_ADDRESS, sender=ALICE)
        assert proxy.admin == ZERO_ADDRESS

        with pytest.raises(UnauthorizedError):
            proxy.upgrade_to(logic_a, sender=ALICE)

    def test_setup_payload_runs_against_proxy_storage(self, host, logic_a):
        """Setup call initializes the proxy's storage, not the logic's."""
        proxy = ProxyHandle.deploy(
            host, logic_a, ADMIN, encode_call("initialize(uint256)", 41), sender=ALICE,
        )
        assert count_of(proxy) == 41
        assert host.view(logic_a).load_int(0) == 0
        assert len(proxy.events("Initialized")) == 1

    def test_setup_call_receives_value(self, host, logic_a):
        """Value attached to construction reaches the setup call."""
        proxy = ProxyHandle.deploy(host, logic_a, ADMIN, encode_call("deposit()"), sender=ALICE, value=25)
        assert decode(["uint256"], proxy.static_call(encode_call("deposits()")))[0] == 25

    def test_failed_setup_rolls_back_everything(self, host, logic_a):
        """A failing setup call aborts construction with nothing observable."""
        with pytest.raises(InitializationError) as exc_info:
            ProxyHandle.deploy(host, logic_a, ADMIN, encode_call("fail(string)", "setup"), sender=ALICE)

        assert exc_info.value.reason == encode_call("Error(string)", "setup")
        address = ExecutionHost.compute_address(ALICE, 0)
        assert not host.has_code(address)
        assert host.state.slots(address) == {}
        assert host.events(emitter=address) == []

    def test_no_reinitialization_path(self, proxy, logic_a):
        """No admin selector re-runs construction; other payloads are forwarded."""
        proxy.call(encode_call("initialize(uint256)", 1), sender=ALICE)
        with pytest.raises(CallReverted):
            proxy.call(encode_call("initialize(uint256)", 2), sender=ADMIN)
        assert count_of(proxy) == 1
        assert proxy.implementation == logic_a


class TestForwarding:
    """Test the fallback path."""

    def test_forwards_to_logic(self, proxy):
        """Unrecognized payloads reach the logic and return its bytes."""
        result = proxy.call(encode_call("increment()"), sender=ALICE)
        assert decode(["uint256"], result) == (1,)
        assert count_of(proxy) == 1

    def test_transparent_return_data(self, host, proxy, logic_a):
        """Proxy and direct call return identical bytes for the same state."""
        payload = encode_call("version()")
        assert proxy.call(payload, sender=ALICE) == host.transact(logic_a, payload, sender=ALICE)

    def test_transparent_revert_data(self, host, proxy, logic_a):
        """Logic failures are relayed with the logic's exact revert data."""
        payload = encode_call("fail(string)", "custom reason")
        with pytest.raises(Revert) as direct:
            host.transact(logic_a, payload, sender=ALICE)
        with pytest.raises(CallReverted) as relayed:
            proxy.call(payload, sender=ALICE)
        assert relayed.value.data == direct.value.data

    def test_unknown_function_relayed(self, proxy):
        """A selector unknown to the logic fails through the proxy."""
        with pytest.raises(CallReverted) as exc_info:
            proxy.call(encode_call("decrement()"), sender=ALICE)
        assert exc_info.value.data == UnknownFunctionError(encode_call("decrement()")[:4]).data

    def test_short_payload_forwarded(self, proxy):
        """Payloads shorter than a selector go to the logic too."""
        with pytest.raises(CallReverted):
            proxy.call(b"\x01", sender=ALICE)

    def test_sender_and_storage_context(self, proxy):
        """Logic sees the original caller and the proxy as storage owner."""
        result = proxy.call(encode_call("whoami()"), sender=ALICE)
        assert decode(["address", "address"], result) == (ALICE, proxy.address)

    def test_value_forwarded(self, proxy):
        """Attached value reaches the logic."""
        proxy.call(encode_call("deposit()"), sender=ALICE, value=7)
        proxy.call(encode_call("deposit()"), sender=ALICE, value=5)
        assert decode(["uint256"], proxy.static_call(encode_call("deposits()")))[0] == 12

    def test_failed_forward_rolls_back(self, host, proxy):
        """State written before a logic failure is discarded."""

        class WriteThenFail(LogicComponent):
            @external("go()")
            def go(self, context):
                context.storage.store_int(0, 999)
                raise Revert("late failure")

        host.register("write-then-fail", WriteThenFail)
        broken = host.deploy("write-then-fail", sender=ADMIN)
        proxy.upgrade_to(broken, sender=ADMIN)

        with pytest.raises(CallReverted):
            proxy.call(encode_call("go()"), sender=ALICE)
        assert host.view(proxy.address).load_int(0) == 0

    def test_admin_may_use_fallback(self, proxy):
        """The admin's non-admin payloads are forwarded like anyone's."""
        assert decode(["uint256"], proxy.call(encode_call("increment()"), sender=ADMIN)) == (1,)

    def test_no_implementation(self, host, proxy):
        """Running proxy code against storage with no implementation fails."""

        class Borrower(LogicComponent):
            @external("borrow(address,bytes)")
            def borrow(self, context, target, payload):
                outcome = context.delegate(target, payload)
                if not outcome.success:
                    raise Revert(data=outcome.return_data)

        host.register("borrower", Borrower)
        borrower = host.deploy("borrower", sender=ALICE)

        with pytest.raises(Revert) as exc_info:
            host.transact(
                borrower,
                encode_call("borrow(address,bytes)", proxy.address, encode_call("count()")),
                sender=ALICE,
            )
        assert exc_info.value.data == NoImplementationError().data


class TestUpgrade:
    """Test upgradeTo."""

    def test_admin_upgrades(self, proxy, logic_b):
        """Admin swaps the logic; later calls reach the new logic."""
        proxy.call(encode_call("increment()"), sender=ALICE)
        proxy.upgrade_to(logic_b, sender=ADMIN)

        assert proxy.implementation == logic_b
        assert decode(["uint256"], proxy.call(encode_call("decrement()"), sender=ALICE)) == (0,)

    def test_upgrade_emits_once(self, proxy, logic_b):
        """Exactly one Upgraded event with the new logic."""
        proxy.upgrade_to(logic_b, sender=ADMIN)
        upgraded = [e.args["implementation"] for e in proxy.events("Upgraded")]
        assert upgraded.count(logic_b) == 1

    def test_storage_survives_upgrade(self, proxy, logic_b):
        """Logic fields persist across upgrades; only code changes."""
        proxy.call(encode_call("initialize(uint256)", 10), sender=ALICE)
        proxy.upgrade_to(logic_b, sender=ADMIN)
        assert count_of(proxy) == 10
        assert decode(["string"], proxy.call(encode_call("version()"), sender=ALICE)) == ("counter-v2",)

    def test_non_admin_rejected(self, proxy, logic_b, logic_a):
        """Non-admins see UnauthorizedError and nothing changes."""
        with pytest.raises(UnauthorizedError) as exc_info:
            proxy.upgrade_to(logic_b, sender=MALLORY)
        assert exc_info.value.caller == MALLORY
        assert proxy.implementation == logic_a
        assert proxy.events("Upgraded")[-1].args == {"implementation": logic_a}

    def test_no_code_rejected(self, proxy, logic_a):
        """Target without code is rejected."""
        with pytest.raises(NotAContractError):
            proxy.upgrade_to(NOBODY, sender=ADMIN)
        assert proxy.implementation == logic_a

    def test_non_admin_checked_before_arguments(self, proxy):
        """Malformed admin payloads from non-admins still fail as unauthorized."""
        from proxyfront.abi import selector

        with pytest.raises(UnauthorizedError):
            proxy.call(selector(UPGRADE_TO) + b"\x01", sender=MALLORY)

    def test_malformed_admin_arguments(self, proxy):
        """Malformed arguments from the admin revert."""
        from proxyfront.abi import selector

        with pytest.raises(Revert):
            proxy.call(selector(UPGRADE_TO) + b"\x01", sender=ADMIN)

    def test_raw_payload_matches_handle(self, proxy, logic_b):
        """Admin selectors work when sent as raw payloads."""
        proxy.call(encode_call(UPGRADE_TO, logic_b), sender=ADMIN)
        assert proxy.implementation == logic_b


class TestUpgradeAndCall:
    """Test upgradeToAndCall."""

    def test_upgrade_and_initialize(self, host, proxy, logic_b):
        """The setup call runs against the proxy's storage after the swap."""
        proxy.upgrade_to_and_call(logic_b, encode_call("initialize(uint256)", 3), sender=ADMIN)
        assert proxy.implementation == logic_b
        assert count_of(proxy) == 3
        assert host.view(logic_b).load_int(0) == 0

    def test_empty_payload_makes_no_call(self, proxy, logic_b):
        """Empty payload just upgrades."""
        proxy.upgrade_to_and_call(logic_b, b"", sender=ADMIN)
        assert proxy.implementation == logic_b
        assert proxy.events("Initialized") == []

    def test_value_reaches_setup_call(self, proxy, logic_b):
        """The admin's attached value is passed to the setup call."""
        proxy.upgrade_to_and_call(logic_b, encode_call("deposit()"), sender=ADMIN, value=9)
        assert decode(["uint256"], proxy.static_call(encode_call("deposits()")))[0] == 9

    def test_failed_setup_rolls_back_upgrade(self, proxy, logic_a, logic_b):
        """A failing setup call undoes the swap and its event."""
        events_before = proxy.events()
        with pytest.raises(SetupCallFailedError) as exc_info:
            proxy.upgrade_to_and_call(logic_b, encode_call("fail(string)", "bad setup"), sender=ADMIN)

        assert exc_info.value.reason == encode_call("Error(string)", "bad setup")
        assert proxy.implementation == logic_a
        assert proxy.events() == events_before

    def test_non_admin_rejected(self, proxy, logic_a, logic_b):
        """Non-admins cannot upgrade-and-call."""
        with pytest.raises(UnauthorizedError):
            proxy.upgrade_to_and_call(logic_b, encode_call("reset()"), sender=MALLORY)
        assert proxy.implementation == logic_a

    def test_no_code_rejected(self, proxy):
        """Target without code is rejected."""
        with pytest.raises(NotAContractError):
            proxy.upgrade_to_and_call(NOBODY, b"", sender=ADMIN)

    def test_setup_may_reenter_proxy(self, host, proxy):
        """A setup call that calls back into the proxy sees the new logic."""

        class Reentrant(LogicComponent):
            @external("reenter()")
            def reenter(self, context):
                outcome = context.call(context.address, encode_call("version()"))
                if not outcome.success:
                    raise Revert(data=outcome.return_data)
                context.storage.store(3, decode(["string"], outcome.return_data)[0].encode().ljust(32, b"\x00"))

            @external("version()", returns=("string",))
            def version(self, context):
                return "reentrant"

        host.register("reentrant", Reentrant)
        target = host.deploy("reentrant", sender=ADMIN)
        proxy.upgrade_to_and_call(target, encode_call("reenter()"), sender=ADMIN)

        assert host.view(proxy.address).load(3).rstrip(b"\x00") == b"reentrant"


class TestChangeAdmin:
    """Test changeAdmin."""

    def test_admin_transfers(self, proxy, logic_b):
        """New admin gains control; old admin loses it."""
        proxy.change_admin(NEW_ADMIN, sender=ADMIN)
        assert proxy.admin == NEW_ADMIN

        with pytest.raises(UnauthorizedError):
            proxy.upgrade_to(logic_b, sender=ADMIN)
        proxy.upgrade_to(logic_b, sender=NEW_ADMIN)
        assert proxy.implementation == logic_b

    def test_event_carries_previous_and_new(self, proxy):
        """AdminChanged records both identities."""
        proxy.change_admin(NEW_ADMIN, sender=ADMIN)
        assert proxy.events("AdminChanged")[-1].args == {"previous_admin": ADMIN, "new_admin": NEW_ADMIN}

    def test_zero_admin_rejected(self, proxy):
        """The zero address can never become admin through changeAdmin."""
        with pytest.raises(ZeroAdminError):
            proxy.change_admin(ZERO_ADDRESS, sender=ADMIN)
        assert proxy.admin == ADMIN

    def test_non_admin_rejected(self, proxy):
        """Non-admins cannot transfer administration."""
        with pytest.raises(UnauthorizedError):
            proxy.change_admin(MALLORY, sender=MALLORY)
        assert proxy.admin == ADMIN

    def test_logic_cannot_touch_admin_slot_by_accident(self, proxy):
        """Logic writes to its own fields never alter the admin."""
        for _ in range(5):
            proxy.call(encode_call("increment()"), sender=ALICE)
        assert proxy.admin == ADMIN


class TestScenarios:
    """End-to-end lifecycles."""

    def test_upgrade_lifecycle(self, host, logic_a, logic_b):
        """Construct, forward, upgrade, forward, reject a non-admin upgrade."""
        logic_c = host.deploy("counter-v1", sender=ALICE)
        proxy = ProxyHandle.deploy(host, logic_a, ADMIN, sender=ADMIN)

        assert decode(["string"], proxy.call(encode_call("version()"), sender=ALICE)) == ("counter-v1",)

        proxy.upgrade_to(logic_b, sender=ADMIN)
        assert [e.args["implementation"] for e in proxy.events("Upgraded")] == [logic_a, logic_b]
        assert decode(["string"], proxy.call(encode_call("version()"), sender=ALICE)) == ("counter-v2",)

        with pytest.raises(UnauthorizedError):
            proxy.upgrade_to(logic_c, sender=MALLORY)
        assert proxy.implementation == logic_b

    def test_failed_initialization_scenario(self, host, logic_a):
        """Construction whose setup fails leaves no proxy values behind."""
        with pytest.raises(InitializationError):
            ProxyHandle.deploy(host, logic_a, ADMIN, encode_call("fail(string)", "x"), sender=ADMIN)

        ghost = ProxyHandle(host=host, address=ExecutionHost.compute_address(ADMIN, 1))
        assert ghost.implementation == ZERO_ADDRESS
        assert ghost.admin == ZERO_ADDRESS

    def test_admin_selectors_distinct(self):
        """The three admin signatures have distinct selectors."""
        from proxyfront.abi import selector

        assert len({selector(UPGRADE_TO), selector(UPGRADE_TO_AND_CALL), selector(CHANGE_ADMIN)}) == 3


class Brittle(LogicComponent):
    """Logic whose code fails with an ordinary Python exception."""

    @external("boom()")
    def boom(self, context):
        context.storage.store_int(0, 99)
        raise KeyError("x")


@pytest.fixture
def brittle_logic(host):
    host.register("brittle", Brittle)
    return host.deploy("brittle", sender=ADMIN)


KEY_ERROR_DATA = encode_call("Error(string)", "KeyError: 'x'")


class TestLogicFaults:
    """Test that any logic failure maps onto the proxy's error taxonomy."""

    def test_faulting_setup_raises_initialization_error(self, host, brittle_logic):
        """A setup call that crashes aborts construction like a revert."""
        with pytest.raises(InitializationError) as exc_info:
            ProxyHandle.deploy(host, brittle_logic, ADMIN, encode_call("boom()"), sender=ALICE)

        assert exc_info.value.reason == KEY_ERROR_DATA
        address = ExecutionHost.compute_address(ALICE, 0)
        assert not host.has_code(address)
        assert host.state.slots(address) == {}

    def test_faulting_upgrade_setup_raises_setup_call_failed(self, proxy, logic_a, brittle_logic):
        """A crashing upgrade setup call undoes the swap."""
        with pytest.raises(SetupCallFailedError) as exc_info:
            proxy.upgrade_to_and_call(brittle_logic, encode_call("boom()"), sender=ADMIN)

        assert exc_info.value.reason == KEY_ERROR_DATA
        assert proxy.implementation == logic_a
        assert count_of(proxy) == 0

    def test_faulting_forward_raises_call_reverted(self, proxy, brittle_logic):
        """A crashing forwarded call is relayed as CallReverted."""
        proxy.upgrade_to(brittle_logic, sender=ADMIN)
        with pytest.raises(CallReverted) as exc_info:
            proxy.call(encode_call("boom()"), sender=ALICE)

        assert exc_info.value.data == KEY_ERROR_DATA
        assert proxy.state().implementation == brittle_logic

    def test_counter_overflow_relayed(self, host, logic_a):
        """Overflowing logic arithmetic reverts through the proxy."""
        proxy = ProxyHandle.deploy(
            host, logic_a, ADMIN, encode_call("initialize(uint256)", MAX_UINT256), sender=ADMIN,
        )
        with pytest.raises(CallReverted) as exc_info:
            proxy.call(encode_call("increment()"), sender=ALICE)

        assert exc_info.value.data == encode_call("Error(string)", "Counter overflow")
        assert count_of(proxy) == MAX_UINT256

    @pytest.mark.parametrize("value", [-1, MAX_UINT256 + 1])
    def test_out_of_range_value_rejected(self, host, proxy, logic_a, value):
        """Invalid attached values are refused on calls and construction."""
        with pytest.raises(InvalidValueError):
            proxy.call(encode_call("deposit()"), sender=ALICE, value=value)
        with pytest.raises(InvalidValueError):
            ProxyHandle.deploy(host, logic_a, ADMIN, encode_call("deposit()"), sender=ALICE, value=value)
        assert decode(["uint256"], proxy.static_call(encode_call("deposits()")))[0] == 0
