from typing import List

from kubenode.core.models import Step
from kubenode.tasks.cluster_bootstrap import ADDRESS_STEP, INIT_STEP, KUBECONFIG_STEP
from kubenode.tasks.container_runtime import RUNTIME_STEP
from kubenode.tasks.join_token import JOIN_TOKEN_STEP
from kubenode.tasks.kube_components import COMPONENTS_STEP
from kubenode.tasks.network_plugin import CLI_STEP, CNI_STEP
from kubenode.tasks.node_preparation import KERNEL_MODULES_STEP, PACKAGES_STEP, SWAP_STEP, SYSCTL_STEP
from kubenode.tasks.preflight import OS_FAMILY_STEP, PRIVILEGE_STEP
from kubenode.tasks.role_selection import RoleSignal, role_selection_step
from kubenode.tasks.verification import VERIFY_STEPS

PREFLIGHT_STEPS: List[Step] = [PRIVILEGE_STEP, OS_FAMILY_STEP]

SYSTEM_STEPS: List[Step] = [
    PACKAGES_STEP,
    KERNEL_MODULES_STEP,
    SWAP_STEP,
    SYSCTL_STEP,
    # --- Runtime & Kubernetes ---
    RUNTIME_STEP,
    COMPONENTS_STEP,
]

# Skipped on workers
CONTROL_PLANE_STEPS: List[Step] = [
    ADDRESS_STEP,
    INIT_STEP,
    KUBECONFIG_STEP,
    CLI_STEP,
    CNI_STEP,
    JOIN_TOKEN_STEP,
]


def provision_steps(read_role_signal: RoleSignal) -> List[Step]:
    """The full, statically ordered provisioning sequence."""
    return [
        *PREFLIGHT_STEPS,
        role_selection_step(read_role_signal),
        *SYSTEM_STEPS,
        *CONTROL_PLANE_STEPS,
        *VERIFY_STEPS,
    ]


def verify_steps() -> List[Step]:
    """Read-only sequence: preflight then verification."""
    return [*PREFLIGHT_STEPS, *VERIFY_STEPS]
