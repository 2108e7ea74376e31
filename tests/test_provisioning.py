import pytest

from capi_provider.apis import wellknown
from capi_provider.cloudprovider.provisioning import ProvisioningAttempt, ProvisioningPhase, unclaimed_unit_selector
from capi_provider.core.exceptions import ProvisioningError
from capi_provider.core.polling import PollTimeoutError
from capi_provider.providers.units import UnitProvider


def _attempt():
    return ProvisioningAttempt(claim_name="claim-1", group_name="md-1", group_namespace="default", original_replicas=2)


def test_unclaimed_selector_excludes_members_and_other_groups():
    selector = unclaimed_unit_selector("md-1")
    assert selector.matches({wellknown.DEPLOYMENT_NAME_LABEL: "md-1"})
    assert not selector.matches({wellknown.DEPLOYMENT_NAME_LABEL: "md-1", wellknown.NODE_POOL_MEMBER_LABEL: ""})
    assert not selector.matches({wellknown.DEPLOYMENT_NAME_LABEL: "md-2"})


def test_attempt_walks_requested_discovered_bound(store, factory, fast_poll):
    factory.unit("md-1-a", group="md-1")
    attempt = _attempt()

    unit = attempt.await_unit(UnitProvider(store), fast_poll)
    attempt.bound()

    assert unit.name == "md-1-a"
    assert attempt.unit is unit
    assert [phase for phase, _ in attempt.history] == [
        ProvisioningPhase.REQUESTED,
        ProvisioningPhase.DISCOVERED,
        ProvisioningPhase.BOUND,
    ]
    assert attempt.group_key == "default/md-1"


def test_attempt_only_sees_units_in_group_namespace(store, factory, fast_poll):
    factory.unit("md-1-a", group="md-1", namespace="elsewhere")
    with pytest.raises(PollTimeoutError):
        _attempt().await_unit(UnitProvider(store), fast_poll)


def test_terminal_phases_reject_further_transitions():
    attempt = _attempt()
    attempt.rolled_back()
    assert attempt.phase is ProvisioningPhase.ROLLED_BACK
    with pytest.raises(ProvisioningError):
        attempt.bound()


def test_cannot_bind_before_discovery():
    with pytest.raises(ProvisioningError):
        _attempt().bound()


def test_attempt_skips_units_marked_or_deleting(store, factory, fast_poll):
    factory.unit("md-1-a", group="md-1", annotations={wellknown.DELETE_MACHINE_ANNOTATION: "now"})
    deleting = factory.unit("md-1-b", group="md-1", finalizers=["machine.cluster.x-k8s.io"])
    store.delete(deleting)
    units = UnitProvider(store)

    with pytest.raises(PollTimeoutError):
        _attempt().await_unit(units, fast_poll)

    factory.unit("md-1-c", group="md-1")
    assert _attempt().await_unit(units, fast_poll).name == "md-1-c"
