"""Tests for the CNI step converging across runs."""
from __future__ import annotations

import pytest

from kubenode.core.models import NodeRole, StepOutcome
from kubenode.tasks.network_plugin import CNI_STEP


@pytest.fixture
def cp_context(context):
    return context.evolve(role=NodeRole.CONTROL_PLANE, advertise_address="10.0.0.5")


def test_slow_status_is_resumed_on_next_run(make_sequencer, cp_context, host) -> None:
    host.cni.ready = False
    first = make_sequencer([CNI_STEP]).run(cp_context)

    host.cni.ready = True
    second = make_sequencer([CNI_STEP]).run(cp_context)
    third = make_sequencer([CNI_STEP]).run(cp_context)

    assert first.warnings[0].step_id == "install-cni"
    assert second.outcome_of("install-cni") == StepOutcome.SUCCESS
    assert third.outcome_of("install-cni") == StepOutcome.NOOP
    assert host.cni.hubble is True
    assert host.cni.install_calls == ["1.17.2"]


def test_failed_install_with_leftover_daemonset_is_resumed(make_sequencer, cp_context, host) -> None:
    host.cni.install_fails = True
    first = make_sequencer([CNI_STEP]).run(cp_context)

    host.cni.install_fails = False
    second = make_sequencer([CNI_STEP]).run(cp_context)

    assert first.failing_step.step_id == "install-cni"
    assert second.outcome_of("install-cni") == StepOutcome.SUCCESS
    assert host.cni.hubble is True
    assert len(host.cni.install_calls) == 1


def test_hubble_not_required_when_disabled(make_sequencer, cp_context, host, settings) -> None:
    settings.cni.enable_hubble = False
    host.cni.installed = True

    report = make_sequencer([CNI_STEP]).run(cp_context)

    assert report.outcome_of("install-cni") == StepOutcome.NOOP
    assert host.cni.hubble is False
