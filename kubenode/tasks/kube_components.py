from pathlib import Path
from typing import List

from kubenode.core.decorators import automated_step, automated_substep
from kubenode.core.host import Host
from kubenode.core.models import ProvisioningContext, Step, StepResult, SubTaskResult
from kubenode.core.settings import AppSettings, KubernetesSettings
from kubenode.tasks import fail

SOURCES_LIST = "/etc/apt/sources.list.d/kubernetes.list"


def repo_line(k8s: KubernetesSettings, channel: str) -> str:
    return f"deb [signed-by={k8s.keyring_path}] {k8s.repo_base_url}/{channel}/deb/ /\n"


def matches_channel(version: str, channel: str) -> bool:
    """'1.31.2-1.1' belongs to channel 'v1.31'."""
    return version.startswith(f"{channel.lstrip('v')}.")


def components_installed(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> bool:
    k8s = settings.kubernetes
    held = set(host.packages.held())
    for pkg in k8s.packages:
        if not host.packages.is_installed(pkg):
            return False
        if not matches_channel(host.packages.installed_version(pkg), ctx.kubernetes_version_channel):
            return False
        if pkg not in held:
            return False
    return host.services.is_enabled(k8s.agent_service)


# --- SUB-STEPS ---

@automated_substep("Configure Kubernetes Repository")
def _add_repository(host: Host, k8s: KubernetesSettings, channel: str) -> SubTaskResult:
    """
    Registers the signing key and the pkgs.k8s.io source for the pinned channel.
    """
    line = repo_line(k8s, channel)
    repo_changed = host.files.read(SOURCES_LIST) != line

    if repo_changed or not host.files.exists(k8s.keyring_path):
        key_url = f"{k8s.repo_base_url}/{channel}/deb/Release.key"
        armored = host.downloader.fetch(key_url)
        host.files.make_directory(str(Path(k8s.keyring_path).parent))
        host.packages.dearmor_key(armored, k8s.keyring_path)

    host.files.write(SOURCES_LIST, line)
    msg = f"Repository set to {channel}" if repo_changed else f"Repository already on {channel}"
    return SubTaskResult(success=True, changed=repo_changed, message=msg)


@automated_substep("Install Kubernetes Packages")
def _install_packages(host: Host, packages: List[str]) -> SubTaskResult:
    host.packages.update()
    host.packages.install(packages)
    return SubTaskResult(success=True, changed=True, message=", ".join(packages))


@automated_substep("Hold Kubernetes Packages")
def _hold_packages(host: Host, packages: List[str]) -> SubTaskResult:
    host.packages.hold(packages)
    missing = set(packages) - set(host.packages.held())
    if missing:
        return SubTaskResult(success=False, message=f"Hold not set for: {', '.join(sorted(missing))}")
    return SubTaskResult(success=True, changed=True, message="Held against automatic upgrade")


@automated_substep("Enable Node Agent")
def _enable_agent(host: Host, service: str) -> SubTaskResult:
    host.services.enable(service, now=True)
    return SubTaskResult(success=True, changed=True, message=f"{service} enabled")


# --- MAIN TASK ---

@automated_step("Install Kubernetes Components")
def install_kubernetes_components(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> StepResult:
    """
    Installs kubeadm, kubelet and kubectl from the pinned channel, holds them and enables the kubelet.
    """
    k8s = settings.kubernetes
    channel = ctx.kubernetes_version_channel

    _add_repository(host, k8s, channel)
    _install_packages(host, k8s.packages)

    s3 = _hold_packages(host, k8s.packages)
    if not s3.success: return fail(s3)

    _enable_agent(host, k8s.agent_service)

    return StepResult.success(f"{', '.join(k8s.packages)} installed from {channel} and held")


COMPONENTS_STEP = Step(
    id="kube-components",
    description="Install kubeadm, kubelet and kubectl",
    component="ComponentInstaller",
    apply=install_kubernetes_components,
    check=components_installed,
)
