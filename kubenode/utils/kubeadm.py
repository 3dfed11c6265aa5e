import os
import re
from typing import List

from kubenode.core.errors import ProvisioningError, TransientNetworkError
from kubenode.core.models import JoinCredential
from kubenode.utils.command import CommandResult, run_command

_JOIN_RE = re.compile(
    r"kubeadm\s+join\s+(?P<endpoint>\S+)\s+.*?--token\s+(?P<token>\S+)"
    r"\s+.*?--discovery-token-ca-cert-hash\s+(?P<hash>\S+)",
    re.DOTALL,
)

VERSION_COMMANDS = {
    "kubeadm": ("kubeadm", "version", "-o", "short"),
    "kubelet": ("kubelet", "--version"),
    "kubectl": ("kubectl", "version", "--client"),
}


def parse_join_command(output: str) -> JoinCredential:
    """Parses 'kubeadm token create --print-join-command' output."""
    match = _JOIN_RE.search(output)
    if not match:
        raise ProvisioningError("Unexpected join command output from kubeadm")
    return JoinCredential(
        token=match.group("token"),
        ca_cert_hash=match.group("hash"),
        control_plane_endpoint=match.group("endpoint"),
    )


class KubeadmClusterAPI:
    """Cluster API capability backed by kubeadm and kubectl."""

    def __init__(self, admin_kubeconfig: str = "/etc/kubernetes/admin.conf"):
        self.admin_kubeconfig = admin_kubeconfig

    def _kubectl(self, *args: str) -> CommandResult:
        env = {**os.environ, "KUBECONFIG": self.admin_kubeconfig}
        return run_command(["kubectl", *args], env=env)

    def is_initialized(self) -> bool:
        return os.path.exists(self.admin_kubeconfig)

    def init(self, pod_network_cidr: str, advertise_address: str) -> str:
        """Initializes the control plane. Returns the admin kubeconfig path."""
        run_command([
            "kubeadm", "init",
            f"--pod-network-cidr={pod_network_cidr}",
            f"--apiserver-advertise-address={advertise_address}",
        ]).check()
        return self.admin_kubeconfig

    def issue_join_token(self) -> JoinCredential:
        res = run_command(["kubeadm", "token", "create", "--print-join-command"])
        if res.failed:
            # The API server may still be settling right after init
            raise TransientNetworkError(f"Token creation failed: {res.stderr.strip()[-200:]}")
        return parse_join_command(res.stdout)

    def query_nodes(self) -> List[str]:
        res = self._kubectl("get", "nodes", "--no-headers").check()
        return [line for line in res.stdout.splitlines() if line.strip()]

    def component_version(self, component: str) -> str:
        """First line of the component's version output. Raises CommandError on failure."""
        res = run_command(list(VERSION_COMMANDS[component])).check()
        lines = [line for line in res.stdout.splitlines() if line.strip()]
        return lines[0].strip() if lines else ""
