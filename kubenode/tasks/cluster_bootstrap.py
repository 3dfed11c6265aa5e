from pathlib import Path
from typing import Iterable

from kubenode.core.decorators import automated_step, automated_substep
from kubenode.core.errors import HostEnvironmentError
from kubenode.core.host import Host
from kubenode.core.models import ProvisioningContext, Step, StepResult, SubTaskResult
from kubenode.core.settings import AppSettings
from kubenode.tasks import fail
from kubenode.utils.logger import sys_logger


def detect_advertise_address(system, probe_addresses: Iterable[str]) -> str:
    """
    Fallback chain, in order: route source toward each probe address,
    then the first address the host enumerates.
    """
    for target in probe_addresses:
        address = system.route_source_address(target)
        if address:
            sys_logger.info(f"Advertise address {address} (route toward {target})")
            return address
        sys_logger.warning(f"No route source toward {target}")

    addresses = system.host_addresses()
    if addresses:
        sys_logger.info(f"Advertise address {addresses[0]} (host address enumeration)")
        return addresses[0]

    raise HostEnvironmentError("Could not determine the advertise address automatically")


def user_kubeconfig_path(home: str) -> str:
    return str(Path(home) / ".kube" / "config")


# --- ADDRESS DETECTION ---

def resolve_advertise_address(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> ProvisioningContext:
    return ctx.evolve(advertise_address=detect_advertise_address(host.system, settings.node.probe_addresses))


@automated_step("Detect Advertise Address")
def report_advertise_address(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> StepResult:
    return StepResult.noop(f"Detected private IP: {ctx.require_advertise_address()}")


# --- CLUSTER INIT ---

def cluster_initialized(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> bool:
    return host.cluster.is_initialized()


@automated_step("Initialize Control Plane")
def initialize_cluster(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> StepResult:
    """
    Runs kubeadm init with the configured pod CIDR and the detected advertise address.
    """
    address = ctx.require_advertise_address()
    cidr = settings.kubernetes.pod_network_cidr
    credential = host.cluster.init(cidr, address)
    return StepResult.success(f"Control plane initialized on {address} (pod CIDR {cidr}), credential at {credential}")


# --- ADMIN CREDENTIAL ---

def admin_kubeconfig_staged(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> bool:
    user = host.system.invoking_user()
    target = user_kubeconfig_path(user.home)
    admin = host.files.read(settings.kubernetes.admin_kubeconfig)
    if admin is None or host.files.read(target) != admin:
        return False
    return host.files.owner(target) == (user.uid, user.gid)


@automated_substep("Copy Admin Kubeconfig")
def _copy_kubeconfig(host: Host, source: str, target: str, uid: int, gid: int) -> SubTaskResult:
    content = host.files.read(source)
    if content is None:
        raise HostEnvironmentError(f"{source} not found after cluster initialization")

    host.files.make_directory(str(Path(target).parent), uid=uid, gid=gid)
    changed = host.files.write(target, content, mode=0o600)
    return SubTaskResult(success=True, changed=changed, message=f"Copied to {target}")


@automated_substep("Fix Kubeconfig Ownership")
def _fix_ownership(host: Host, target: str, uid: int, gid: int) -> SubTaskResult:
    host.files.chown(target, uid, gid)
    if host.files.owner(target) != (uid, gid):
        return SubTaskResult(success=False, message=f"Ownership of {target} not applied")
    return SubTaskResult(success=True, changed=True, message=f"Owned by {uid}:{gid}")


@automated_step("Stage Admin Kubeconfig")
def stage_admin_kubeconfig(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> StepResult:
    """
    Copies the admin credential into the invoking user's ~/.kube/config, owned by that user.
    """
    user = host.system.invoking_user()
    target = user_kubeconfig_path(user.home)

    _copy_kubeconfig(host, settings.kubernetes.admin_kubeconfig, target, user.uid, user.gid)

    s2 = _fix_ownership(host, target, user.uid, user.gid)
    if not s2.success: return fail(s2)

    return StepResult.success(f"Admin kubeconfig staged for '{user.name}' at {target}")


ADDRESS_STEP = Step(
    id="detect-advertise-address",
    description="Detect the API server advertise address",
    component="ClusterBootstrapper",
    apply=report_advertise_address,
    resolver=resolve_advertise_address,
    control_plane_only=True,
)

INIT_STEP = Step(
    id="initialize-cluster",
    description="Initialize the cluster control plane",
    component="ClusterBootstrapper",
    apply=initialize_cluster,
    check=cluster_initialized,
    control_plane_only=True,
)

KUBECONFIG_STEP = Step(
    id="stage-admin-kubeconfig",
    description="Stage the admin kubeconfig for the invoking user",
    component="ClusterBootstrapper",
    apply=stage_admin_kubeconfig,
    check=admin_kubeconfig_staged,
    control_plane_only=True,
)
