import re
from typing import Optional

from kubenode.core.errors import HostEnvironmentError
from kubenode.utils.command import run_command

_RUNC_OPTIONS_HEADER = re.compile(r"^(?P<indent>[ \t]*)\[plugins\..*runtimes\.runc\.options\][ \t]*$", re.MULTILINE)


def _field_re(field: str):
    return re.compile(rf"^(?P<prefix>[ \t]*{re.escape(field)}[ \t]*=[ \t]*)(?P<value>true|false)\b", re.MULTILINE)


def cgroup_flag(content: str, field: str = "SystemdCgroup") -> Optional[bool]:
    """Current value of the cgroup driver flag, or None if the field is absent."""
    match = _field_re(field).search(content)
    if not match:
        return None
    return match.group("value") == "true"


def set_cgroup_flag(content: str, value: bool, field: str = "SystemdCgroup") -> str:
    """
    Returns content with the cgroup driver flag set to value. Nothing else changes.
    An absent field is added under the runc options table.
    """
    literal = "true" if value else "false"
    pattern = _field_re(field)
    if pattern.search(content):
        return pattern.sub(lambda m: f"{m.group('prefix')}{literal}", content)

    header = _RUNC_OPTIONS_HEADER.search(content)
    if not header:
        raise HostEnvironmentError(f"Neither '{field}' nor the runc options table found in runtime config")
    indent = header.group("indent") + "  "
    insert_at = header.end()
    return f"{content[:insert_at]}\n{indent}{field} = {literal}{content[insert_at:]}"


class ContainerdRuntime:
    """Generates containerd's stock configuration."""

    def default_config(self) -> str:
        return run_command(["containerd", "config", "default"]).check().stdout
