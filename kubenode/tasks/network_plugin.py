import io
import tarfile
from pathlib import Path

from kubenode.core.decorators import automated_step, automated_substep
from kubenode.core.errors import HostEnvironmentError, IntegrityError
from kubenode.core.host import Host
from kubenode.core.models import ProvisioningContext, Step, StepResult, SubTaskResult
from kubenode.core.settings import AppSettings, CniSettings
from kubenode.utils.downloader import parse_checksum

ARCHITECTURES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}


def cli_arch(machine: str) -> str:
    try:
        return ARCHITECTURES[machine.lower()]
    except KeyError:
        raise HostEnvironmentError(f"Unsupported architecture '{machine}' for the CNI CLI") from None


def extract_binary(archive: bytes, name: str) -> bytes:
    """Returns the member called name from a .tar.gz archive held in memory."""
    with tarfile.open(fileobj=io.BytesIO(archive), mode="r:gz") as tar:
        for member in tar.getmembers():
            if member.isfile() and Path(member.name).name == name:
                return tar.extractfile(member).read()
    raise IntegrityError(f"'{name}' not found in downloaded archive")


def binary_path(cni: CniSettings) -> str:
    return str(Path(cni.install_dir) / cni.binary)


# --- CLI ---

def cli_installed(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> bool:
    return host.files.exists(binary_path(settings.cni))


@automated_substep("Resolve CNI CLI Release")
def _resolve_release(host: Host, cni: CniSettings) -> SubTaskResult:
    version = host.downloader.fetch_text(cni.stable_url)
    if not version:
        raise HostEnvironmentError(f"Empty release identifier from {cni.stable_url}")
    return SubTaskResult(success=True, message=version, data=version)


@automated_substep("Download & Verify CNI CLI")
def _download(host: Host, url: str) -> SubTaskResult:
    archive = host.downloader.fetch(url)
    expected = parse_checksum(host.downloader.fetch(f"{url}.sha256sum").decode("utf-8"))

    if not host.downloader.verify(archive, expected):
        # Supply-chain integrity failure: never installed, never retried
        raise IntegrityError(f"Checksum mismatch for {url}")
    return SubTaskResult(success=True, message=f"sha256 {expected[:12]}... verified", data=archive)


@automated_substep("Install CNI CLI Binary")
def _install_binary(host: Host, archive: bytes, cni: CniSettings) -> SubTaskResult:
    target = binary_path(cni)
    host.files.write_bytes(target, extract_binary(archive, cni.binary), mode=0o755)
    return SubTaskResult(success=True, changed=True, message=f"Installed to {target}")


@automated_step("Install CNI CLI")
def install_cni_cli(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> StepResult:
    """
    Fetches the stable cilium CLI for this architecture, checks its sha256 and installs it.
    """
    cni = settings.cni
    arch = cli_arch(host.system.machine())

    version = _resolve_release(host, cni).data

    url = cni.release_url.format(version=version, arch=arch)
    archive = _download(host, url).data
    _install_binary(host, archive, cni)

    return StepResult.success(f"cilium CLI {version} ({arch}) installed")


# --- CNI ---

def cni_converged(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> bool:
    """Installed, reporting healthy, and with Hubble on when it is wanted."""
    if not host.cni.is_installed() or not host.cni.is_ready():
        return False
    return host.cni.hubble_enabled() or not settings.cni.enable_hubble


@automated_substep("Install CNI Into Cluster")
def _install_cni(host: Host, version: str) -> SubTaskResult:
    if host.cni.is_installed():
        return SubTaskResult(success=True, message="cilium already installed")

    host.cni.install(version)
    return SubTaskResult(success=True, changed=True, message=f"cilium {version} installed")


@automated_substep("Wait For CNI Status")
def _wait_ready(host: Host, timeout: int) -> SubTaskResult:
    ready = host.cni.wait_ready(timeout)
    msg = "cilium status OK" if ready else f"cilium not ready within {timeout}s"
    return SubTaskResult(success=True, message=msg, data=ready)


@automated_substep("Enable Hubble")
def _enable_hubble(host: Host) -> SubTaskResult:
    if host.cni.hubble_enabled():
        return SubTaskResult(success=True, message="Hubble already enabled")

    host.cni.enable_hubble()
    return SubTaskResult(success=True, changed=True, message="Hubble enabled")


@automated_step("Install CNI")
def install_cni(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> StepResult:
    """
    Installs cilium at the pinned version (once), polls its status and enables Hubble.
    Convergence lags cluster init, so a timeout is a warning only; the next run resumes from the status wait.
    """
    cni = settings.cni

    _install_cni(host, ctx.cni_version)

    s2 = _wait_ready(host, cni.status_timeout)
    if not s2.data:
        hint = " Re-run provision once it converges to enable Hubble." if cni.enable_hubble else ""
        return StepResult.warning(f"cilium {ctx.cni_version} installed but not ready within {cni.status_timeout}s.{hint}")

    if cni.enable_hubble:
        _enable_hubble(host)

    return StepResult.success(f"cilium {ctx.cni_version} installed and healthy")


CLI_STEP = Step(
    id="install-cni-cli",
    description="Install the cilium CLI",
    component="NetworkPluginInstaller",
    apply=install_cni_cli,
    check=cli_installed,
    control_plane_only=True,
)

CNI_STEP = Step(
    id="install-cni",
    description="Install the cilium CNI",
    component="NetworkPluginInstaller",
    apply=install_cni,
    check=cni_converged,
    control_plane_only=True,
)
