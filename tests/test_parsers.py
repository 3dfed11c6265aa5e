"""Tests for the small parsers feeding the host collaborators."""
from __future__ import annotations

import pytest

from kubenode.core.errors import HostEnvironmentError, IntegrityError, ProvisioningError
from kubenode.core.models import NodeRole
from kubenode.tasks.network_plugin import cli_arch, extract_binary
from kubenode.tasks.role_selection import resolve_role
from kubenode.utils.downloader import parse_checksum
from kubenode.utils.kubeadm import parse_join_command
from kubenode.utils.linux import parse_os_release, parse_route_source
from tests.fakes import JOIN, cilium_archive

JOIN_OUTPUT = (
    "kubeadm join 10.0.0.5:6443 --token abcdef.0123456789abcdef "
    "--discovery-token-ca-cert-hash sha256:" + "f" * 64 + " \n"
)


@pytest.mark.parametrize(
    "signal, expected",
    [
        ("1", NodeRole.CONTROL_PLANE),
        (" 1\n", NodeRole.CONTROL_PLANE),
        ("", NodeRole.WORKER),
        (None, NodeRole.WORKER),
        ("2", NodeRole.WORKER),
        ("11", NodeRole.WORKER),
        ("master", NodeRole.WORKER),
    ],
)
def test_resolve_role(signal, expected) -> None:
    assert resolve_role(signal, "1") is expected


def test_parse_join_command() -> None:
    assert parse_join_command(JOIN_OUTPUT) == JOIN


def test_parse_join_command_rejects_garbage() -> None:
    with pytest.raises(ProvisioningError):
        parse_join_command("error: cluster unreachable")


def test_join_credential_repr_hides_secret() -> None:
    text = repr(JOIN)

    assert "0123456789abcdef" not in text
    assert "abcdef.****" in text
    assert JOIN.command.startswith("kubeadm join 10.0.0.5:6443 --token abcdef.0123456789abcdef")


def test_parse_os_release() -> None:
    facts = parse_os_release(
        '# comment\nNAME="Ubuntu"\nID=ubuntu\nID_LIKE=debian\nPRETTY_NAME="Ubuntu 24.04.1 LTS"\n\n'
    )

    assert facts == {
        "NAME": "Ubuntu",
        "ID": "ubuntu",
        "ID_LIKE": "debian",
        "PRETTY_NAME": "Ubuntu 24.04.1 LTS",
    }


def test_parse_route_source() -> None:
    output = "1.1.1.1 via 192.168.1.1 dev eth0 src 192.168.1.20 uid 0 \n    cache \n"

    assert parse_route_source(output) == "192.168.1.20"
    assert parse_route_source("RTNETLINK answers: Network is unreachable") is None


@pytest.mark.parametrize("machine, arch", [("x86_64", "amd64"), ("aarch64", "arm64"), ("ARM64", "arm64")])
def test_cli_arch(machine, arch) -> None:
    assert cli_arch(machine) == arch


def test_cli_arch_unsupported() -> None:
    with pytest.raises(HostEnvironmentError):
        cli_arch("riscv64")


def test_extract_binary() -> None:
    assert extract_binary(cilium_archive(b"payload"), "cilium") == b"payload"


def test_extract_binary_missing_member() -> None:
    with pytest.raises(IntegrityError):
        extract_binary(cilium_archive(), "hubble")


def test_parse_checksum() -> None:
    assert parse_checksum("ABC123  cilium-linux-amd64.tar.gz\n") == "abc123"

    with pytest.raises(HostEnvironmentError):
        parse_checksum("  \n")
