"""Tests for the typer command-line surface."""
from __future__ import annotations

import logging

import pytest
from typer.testing import CliRunner

from kubenode import main
from kubenode.core.locking import single_instance
from kubenode.core.settings import AppSettings
from kubenode.utils.logger import sys_logger
from tests.fakes import make_host

runner = CliRunner()


@pytest.fixture
def cli_env(tmp_path, monkeypatch: pytest.MonkeyPatch):
    """Fake host, temp log/lock/config paths and no role from the environment."""
    host = make_host(AppSettings())
    monkeypatch.setattr(main, "local_host", lambda settings: host)
    monkeypatch.setenv("KUBENODE_LOG_FILE", str(tmp_path / "kubenode.log"))
    monkeypatch.delenv("KUBENODE_ROLE", raising=False)

    yield host, tmp_path

    for handler in list(sys_logger.handlers):
        if isinstance(handler, logging.FileHandler):
            sys_logger.removeHandler(handler)
            handler.close()


def _args(tmp_path, *extra):
    return ["-q", "-c", str(tmp_path / "kubenode.yaml"), "provision",
            "--lock-file", str(tmp_path / "kubenode.lock"), *extra]


def test_show_config(tmp_path) -> None:
    result = runner.invoke(main.app, ["-c", str(tmp_path / "none.yaml"), "show-config"])

    assert result.exit_code == 0
    assert "pod_network_cidr: 10.0.0.0/16" in result.output
    assert "kubenode - Kubernetes Node Provisioner" not in result.output


def test_provision_control_plane_prints_join_command(cli_env) -> None:
    host, tmp_path = cli_env

    result = runner.invoke(main.app, _args(tmp_path, "--role", "1"))

    assert result.exit_code == 0, result.output
    assert "kubeadm join" in result.output
    assert host.system.current_hostname == "master"
    assert (tmp_path / "kubenode.log").read_text().count("START step=") > 0


def test_provision_worker_without_signal(cli_env) -> None:
    host, tmp_path = cli_env

    result = runner.invoke(main.app, _args(tmp_path), input="")

    assert result.exit_code == 0, result.output
    assert "Worker node ready" in result.output
    assert host.cluster.init_calls == []


def test_provision_failure_exit_code(cli_env) -> None:
    host, tmp_path = cli_env
    host.system.privileged = False

    result = runner.invoke(main.app, _args(tmp_path, "--role", "1"))

    assert result.exit_code == 1
    assert "preflight-privilege" in result.output
    assert host.files.writes == []
    assert not (tmp_path / "kubenode.log").exists()
    assert not (tmp_path / "kubenode.lock").exists()


def test_provision_refuses_concurrent_run(cli_env) -> None:
    host, tmp_path = cli_env

    with single_instance(str(tmp_path / "kubenode.lock")):
        result = runner.invoke(main.app, _args(tmp_path, "--role", "1"))

    assert result.exit_code == main.EXIT_LOCKED
    assert host.packages.calls == []


def test_bad_config_file(cli_env) -> None:
    host, tmp_path = cli_env
    (tmp_path / "kubenode.yaml").write_text("retry: [oops\n")

    result = runner.invoke(main.app, _args(tmp_path))

    assert result.exit_code == 1
    assert "Configuration error" in result.output


def test_verify_on_worker(cli_env) -> None:
    host, tmp_path = cli_env

    result = runner.invoke(main.app, ["-q", "-c", str(tmp_path / "kubenode.yaml"), "verify"])

    assert result.exit_code == 0, result.output
    assert "verify-nodes" in result.output


def test_wrongly_typed_config_value_is_reported(cli_env) -> None:
    host, tmp_path = cli_env
    (tmp_path / "kubenode.yaml").write_text("retry:\n  attempts: often\n")

    result = runner.invoke(main.app, _args(tmp_path))

    assert result.exit_code == 1
    assert "retry.attempts" in result.output
    assert host.packages.calls == []
