from typing import List

from kubenode.core.decorators import automated_step
from kubenode.core.errors import ProvisioningError, VerificationWarning
from kubenode.core.host import Host
from kubenode.core.models import ProvisioningContext, Step, StepResult
from kubenode.core.settings import AppSettings


def _version_step(component: str) -> Step:
    @automated_step(f"Verify {component}")
    def apply(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> StepResult:
        try:
            version = host.cluster.component_version(component)
        except ProvisioningError as e:
            raise VerificationWarning(f"{component} not found or failed to run: {e}") from e
        return StepResult.success(version or f"{component} responded")

    return Step(
        id=f"verify-{component}",
        description=f"Verify {component}",
        component="Verifier",
        apply=apply,
    )


@automated_step("Verify Nodes")
def verify_nodes(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> StepResult:
    """
    Lists cluster nodes. NotReady right after bootstrap is normal while the CNI converges.
    """
    try:
        nodes = host.cluster.query_nodes()
    except ProvisioningError as e:
        raise VerificationWarning(f"Node query failed: {e}") from e
    if not nodes:
        raise VerificationWarning("Node query returned no nodes")

    summary = "; ".join(" ".join(line.split()[:2]) for line in nodes)
    return StepResult.success(f"{len(nodes)} node(s): {summary}")


NODES_STEP = Step(
    id="verify-nodes",
    description="Query cluster node membership",
    component="Verifier",
    apply=verify_nodes,
    control_plane_only=True,
)

VERIFY_STEPS: List[Step] = [
    _version_step("kubeadm"),
    _version_step("kubelet"),
    _version_step("kubectl"),
    NODES_STEP,
]
