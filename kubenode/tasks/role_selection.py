from typing import Callable, Optional

from kubenode.core.decorators import automated_step
from kubenode.core.host import Host
from kubenode.core.models import NodeRole, ProvisioningContext, Step, StepResult
from kubenode.core.settings import AppSettings
from kubenode.utils.logger import sys_logger

RoleSignal = Callable[[], Optional[str]]


def resolve_role(signal: Optional[str], marker: str) -> NodeRole:
    """
    Only the exact marker selects the control plane.
    Anything else, including no input at all, selects worker.
    """
    if signal is not None and str(signal).strip() == marker:
        return NodeRole.CONTROL_PLANE
    return NodeRole.WORKER


def hostname_for(role: NodeRole, settings: AppSettings) -> str:
    if role == NodeRole.CONTROL_PLANE:
        return settings.node.control_plane_hostname
    return settings.node.worker_hostname


def role_selection_step(read_signal: RoleSignal) -> Step:
    """
    Builds the RoleSelector step. The operator signal is read at most once,
    the first time the step is reached.
    """
    cache = {}

    def _signal() -> Optional[str]:
        if "value" not in cache:
            cache["value"] = read_signal()
        return cache["value"]

    def resolve(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> ProvisioningContext:
        role = resolve_role(_signal(), settings.node.control_plane_marker)
        sys_logger.info(f"Role resolved to '{role.value}'")
        return ctx.evolve(role=role, hostname=hostname_for(role, settings))

    def hostname_matches(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> bool:
        return host.system.hostname() == ctx.hostname

    @automated_step("Set Hostname")
    def apply(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> StepResult:
        host.system.set_hostname(ctx.hostname)
        return StepResult.success(f"{ctx.require_role().value} node, hostname set to '{ctx.hostname}'")

    return Step(
        id="select-role",
        description="Select node role and set hostname",
        component="RoleSelector",
        apply=apply,
        check=hostname_matches,
        resolver=resolve,
    )
