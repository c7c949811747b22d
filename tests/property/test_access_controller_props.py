from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from share_guard.firewall.base import AccessController

addresses = st.one_of(
    st.ip_addresses(v=4).map(str),
    st.ip_addresses(v=6).map(str),
)


class _Recorder(AccessController):
    def __init__(self):
        super().__init__("recorder")
        self.calls = []

    def _apply_block(self, address):
        self.calls.append(("block", address))

    def _apply_unblock(self, address):
        self.calls.append(("unblock", address))


@settings(max_examples=75, suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(
    ops=st.lists(
        st.tuples(st.sampled_from(["block", "unblock"]), addresses), max_size=40
    )
)
def test_cache_matches_model_and_backend_sees_only_transitions(ops):
    controller = _Recorder()
    model: set[str] = set()
    expected_calls = []

    for op, raw in ops:
        address = str(raw)
        if op == "block":
            changed = controller.block(address)
            assert changed is (address not in model)
            if changed:
                expected_calls.append(("block", address))
            model.add(address)
        else:
            changed = controller.unblock(address)
            assert changed is (address in model)
            if changed:
                expected_calls.append(("unblock", address))
            model.discard(address)

    assert controller.blocked_addresses() == sorted(model)
    assert controller.calls == expected_calls


@settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(address=st.ip_addresses(v=6))
def test_ipv6_spellings_share_one_entry(address):
    controller = _Recorder()
    controller.block(address.exploded)
    assert controller.block(address.compressed) is False
    assert controller.is_blocked(str(address))
