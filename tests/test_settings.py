"""Tests for the configuration loader."""
from __future__ import annotations

import pytest

from kubenode.core.errors import ConfigurationError
from kubenode.core.settings import load_settings

ENV_KEYS = (
    "KUBENODE_K8S_VERSION",
    "KUBENODE_POD_CIDR",
    "KUBENODE_CNI_VERSION",
    "KUBENODE_ROLE",
    "KUBENODE_LOG_FILE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults_without_file(tmp_path) -> None:
    settings = load_settings(tmp_path / "missing.yaml")

    assert settings.kubernetes.version_channel == "v1.31"
    assert settings.kubernetes.pod_network_cidr == "10.0.0.0/16"
    assert settings.cni.version == "1.17.2"
    assert settings.node.probe_addresses == ["1.1.1.1", "8.8.8.8"]
    assert settings.retry.attempts == 3
    assert settings.retry.base_delay == 2.0


def test_file_overrides_defaults(tmp_path) -> None:
    path = tmp_path / "kubenode.yaml"
    path.write_text(
        "kubernetes:\n"
        "  version_channel: '1.32'\n"
        "  pod_network_cidr: 10.244.0.0/16\n"
        "cni:\n"
        "  enable_hubble: false\n"
        "  unknown_key: ignored\n"
    )

    settings = load_settings(path)

    assert settings.kubernetes.version_channel == "v1.32"
    assert settings.kubernetes.pod_network_cidr == "10.244.0.0/16"
    assert settings.cni.enable_hubble is False
    assert settings.cni.version == "1.17.2"


def test_environment_overrides_file(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "kubenode.yaml"
    path.write_text("cni:\n  version: 1.16.0\nnode:\n  role: worker\n")
    monkeypatch.setenv("KUBENODE_CNI_VERSION", "1.17.3")
    monkeypatch.setenv("KUBENODE_ROLE", "1")

    settings = load_settings(path)

    assert settings.cni.version == "1.17.3"
    assert settings.node.role == "1"


def test_malformed_yaml(tmp_path) -> None:
    path = tmp_path / "kubenode.yaml"
    path.write_text("kubernetes: [unclosed\n")

    with pytest.raises(ConfigurationError):
        load_settings(path)


@pytest.mark.parametrize("content", ["- a\n- b\n", "kubernetes: v1.31\n"])
def test_non_mapping_rejected(tmp_path, content) -> None:
    path = tmp_path / "kubenode.yaml"
    path.write_text(content)

    with pytest.raises(ConfigurationError):
        load_settings(path)


def test_retry_attempts_must_be_positive(tmp_path) -> None:
    path = tmp_path / "kubenode.yaml"
    path.write_text("retry:\n  attempts: 0\n")

    with pytest.raises(ConfigurationError):
        load_settings(path)


def test_numeric_strings_are_converted(tmp_path) -> None:
    path = tmp_path / "kubenode.yaml"
    path.write_text(
        "retry:\n  attempts: '5'\n  base_delay: 1\n"
        "cni:\n  enable_hubble: 'no'\n"
        "node:\n  role: 1\n"
    )

    settings = load_settings(path)

    assert settings.retry.attempts == 5
    assert settings.retry.base_delay == 1.0
    assert settings.cni.enable_hubble is False
    assert settings.node.role == "1"


@pytest.mark.parametrize(
    "content, field",
    [
        ("retry:\n  attempts: three\n", "retry.attempts"),
        ("retry:\n  attempts: 2.5\n", "retry.attempts"),
        ("cni:\n  enable_hubble: maybe\n", "cni.enable_hubble"),
        ("node:\n  probe_addresses: 1.1.1.1\n", "node.probe_addresses"),
        ("kubernetes:\n  pod_network_cidr:\n", "kubernetes.pod_network_cidr"),
    ],
)
def test_wrongly_typed_values_are_configuration_errors(tmp_path, content, field) -> None:
    path = tmp_path / "kubenode.yaml"
    path.write_text(content)

    with pytest.raises(ConfigurationError, match=field):
        load_settings(path)


def test_unquoted_float_channel_is_rejected(tmp_path) -> None:
    path = tmp_path / "kubenode.yaml"
    path.write_text("kubernetes:\n  version_channel: 1.30\n")

    with pytest.raises(ConfigurationError, match="quote"):
        load_settings(path)


def test_quoted_channel_keeps_trailing_zero(tmp_path) -> None:
    path = tmp_path / "kubenode.yaml"
    path.write_text("kubernetes:\n  version_channel: '1.30'\n")

    assert load_settings(path).kubernetes.version_channel == "v1.30"
