import os
import platform
import pwd
import re
import socket
from dataclasses import dataclass
from typing import Dict, List, Optional

from kubenode.utils.command import run_command

_ROUTE_SRC = re.compile(r"\bsrc\s+(\d{1,3}(?:\.\d{1,3}){3})\b")


@dataclass(frozen=True)
class InvokingUser:
    name: str
    uid: int
    gid: int
    home: str


def parse_os_release(content: str) -> Dict[str, str]:
    """Parses /etc/os-release KEY=value lines (values may be quoted)."""
    facts = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        facts[key.strip()] = value.strip().strip('"').strip("'")
    return facts


def parse_route_source(output: str) -> Optional[str]:
    """Extracts the 'src' address from 'ip route get' output."""
    match = _ROUTE_SRC.search(output)
    return match.group(1) if match else None


class LinuxSystem:
    """Kernel, swap, sysctl, hostname and network facts of the local host."""

    def __init__(self, os_release_path: str = "/etc/os-release"):
        self.os_release_path = os_release_path

    # --- PRIVILEGE / IDENTITY ---

    def is_privileged(self) -> bool:
        return os.geteuid() == 0

    def os_release(self) -> Dict[str, str]:
        try:
            with open(self.os_release_path, "r") as f:
                return parse_os_release(f.read())
        except FileNotFoundError:
            return {}

    def machine(self) -> str:
        return platform.machine()

    def invoking_user(self) -> InvokingUser:
        """The user behind sudo if any, otherwise the effective user."""
        name = os.environ.get("SUDO_USER")
        entry = None
        if name:
            try:
                entry = pwd.getpwnam(name)
            except KeyError:
                entry = None
        if entry is None:
            entry = pwd.getpwuid(os.geteuid())
        return InvokingUser(entry.pw_name, entry.pw_uid, entry.pw_gid, entry.pw_dir)

    # --- KERNEL MODULES ---

    def is_module_loaded(self, module: str) -> bool:
        res = run_command(["lsmod"])
        if res.failed:
            return False
        return any(line.split()[0] == module for line in res.stdout.splitlines()[1:] if line.strip())

    def load_module(self, module: str) -> None:
        run_command(["modprobe", module]).check()

    # --- SWAP ---

    def active_swap(self) -> List[str]:
        res = run_command(["swapon", "--show=NAME", "--noheadings"])
        if res.failed:
            return []
        return [line.strip() for line in res.stdout.splitlines() if line.strip()]

    def disable_swap(self) -> None:
        run_command(["swapoff", "-a"]).check()

    # --- SYSCTL ---

    def sysctl_value(self, key: str) -> Optional[str]:
        res = run_command(["sysctl", "-n", key])
        if res.failed:
            return None
        return res.stdout.strip()

    def reload_sysctl(self) -> None:
        # --system loads settings from all system configuration files
        run_command(["sysctl", "--system"]).check()

    # --- HOSTNAME ---

    def hostname(self) -> str:
        return socket.gethostname()

    def set_hostname(self, name: str) -> None:
        run_command(["hostnamectl", "set-hostname", name]).check()

    # --- NETWORK ---

    def route_source_address(self, target: str) -> Optional[str]:
        res = run_command(["ip", "route", "get", target])
        if res.failed:
            return None
        return parse_route_source(res.stdout)

    def host_addresses(self) -> List[str]:
        res = run_command(["hostname", "-I"])
        if res.failed:
            return []
        return res.stdout.split()
