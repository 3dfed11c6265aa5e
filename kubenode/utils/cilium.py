import os
import subprocess

from kubenode.utils.command import CommandResult, run_command


class CiliumCLI:
    """Installs and queries the Cilium CNI through its CLI."""

    def __init__(self, binary: str = "/usr/local/bin/cilium",
                 kubeconfig: str = "/etc/kubernetes/admin.conf"):
        self.binary = binary
        self.kubeconfig = kubeconfig

    def _env(self) -> dict:
        return {**os.environ, "KUBECONFIG": self.kubeconfig}

    def _run(self, *args: str, timeout: float = None) -> CommandResult:
        return run_command([self.binary, *args], env=self._env(), timeout=timeout)

    def _has_object(self, kind: str, name: str) -> bool:
        return not run_command(["kubectl", "-n", "kube-system", "get", kind, name], env=self._env()).failed

    def is_installed(self) -> bool:
        return self._has_object("daemonset", "cilium")

    def is_ready(self) -> bool:
        """Single status probe, no waiting."""
        return not self._run("status").failed

    def hubble_enabled(self) -> bool:
        return self._has_object("deployment", "hubble-relay")

    def install(self, version: str) -> None:
        self._run("install", "--version", version).check()

    def wait_ready(self, timeout: int) -> bool:
        try:
            res = self._run("status", "--wait", "--wait-duration", f"{timeout}s", timeout=timeout + 30)
        except subprocess.TimeoutExpired:
            return False
        return not res.failed

    def enable_hubble(self) -> None:
        self._run("hubble", "enable").check()
