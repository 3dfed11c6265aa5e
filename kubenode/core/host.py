from dataclasses import dataclass
from pathlib import Path
from typing import Any

from kubenode.core.settings import AppSettings
from kubenode.utils.apt import AptPackageManager
from kubenode.utils.cilium import CiliumCLI
from kubenode.utils.containerd import ContainerdRuntime
from kubenode.utils.downloader import HttpDownloader
from kubenode.utils.files import LocalFiles
from kubenode.utils.kubeadm import KubeadmClusterAPI
from kubenode.utils.linux import LinuxSystem
from kubenode.utils.systemd import SystemdServiceManager


@dataclass
class Host:
    """
    Collaborators through which steps touch the host.
    Tests substitute in-memory doubles for every field.
    """
    system: Any
    files: Any
    packages: Any
    services: Any
    downloader: Any
    cluster: Any
    cni: Any
    runtime: Any


def local_host(settings: AppSettings) -> Host:
    """Wires the real collaborators for the machine we are running on."""
    admin_conf = settings.kubernetes.admin_kubeconfig
    return Host(
        system=LinuxSystem(),
        files=LocalFiles(),
        packages=AptPackageManager(),
        services=SystemdServiceManager(),
        downloader=HttpDownloader(timeout=settings.cni.download_timeout),
        cluster=KubeadmClusterAPI(admin_kubeconfig=admin_conf),
        cni=CiliumCLI(
            binary=str(Path(settings.cni.install_dir) / settings.cni.binary),
            kubeconfig=admin_conf,
        ),
        runtime=ContainerdRuntime(),
    )
