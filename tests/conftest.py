"""Shared fixtures for the kubenode test suite."""
from __future__ import annotations

from typing import List

import pytest

from kubenode.core.engine import Sequencer
from kubenode.core.host import Host
from kubenode.core.models import ProvisioningContext
from kubenode.core.settings import AppSettings
from kubenode.core.state import config as global_config
from tests.fakes import make_host


@pytest.fixture(autouse=True)
def quiet_mode(monkeypatch: pytest.MonkeyPatch) -> None:
    """Disable sub-step spinners so console output stays plain."""
    monkeypatch.setattr(global_config, "VERBOSE", False)


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings()


@pytest.fixture
def host(settings: AppSettings) -> Host:
    return make_host(settings)


@pytest.fixture
def context(settings: AppSettings) -> ProvisioningContext:
    return ProvisioningContext(
        kubernetes_version_channel=settings.kubernetes.version_channel,
        cni_version=settings.cni.version,
    )


class SleepRecorder:
    """Stands in for time.sleep and remembers the requested delays."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_sequencer(host: Host, settings: AppSettings, sleeper: SleepRecorder):
    def _make(steps, target_host: Host = None) -> Sequencer:
        return Sequencer(steps, target_host or host, settings, sleep=sleeper)

    return _make
