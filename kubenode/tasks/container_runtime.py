from kubenode.core.decorators import automated_step, automated_substep
from kubenode.core.host import Host
from kubenode.core.models import ProvisioningContext, Step, StepResult, SubTaskResult
from kubenode.core.settings import AppSettings
from kubenode.tasks import fail
from kubenode.utils.containerd import cgroup_flag, set_cgroup_flag


def runtime_configured(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> bool:
    rt = settings.runtime
    if not host.packages.is_installed(rt.package):
        return False
    content = host.files.read(rt.config_path)
    if content is None or cgroup_flag(content, rt.cgroup_field) != rt.systemd_cgroup:
        return False
    return host.services.is_active(rt.service) and host.services.is_enabled(rt.service)


# --- SUB-STEPS ---

@automated_substep("Install Container Runtime Package")
def _install_runtime(host: Host, package: str) -> SubTaskResult:
    if host.packages.is_installed(package):
        return SubTaskResult(success=True, message=f"{package} already installed")

    host.packages.update()
    host.packages.install([package])
    return SubTaskResult(success=True, changed=True, message=f"{package} installed")


@automated_substep("Configure Container Runtime (config.toml)")
def _configure_runtime(host: Host, config_path: str, field: str, value: bool) -> SubTaskResult:
    """
    Generates the default config if none exists, then toggles the cgroup driver flag only.
    """
    content = host.files.read(config_path)
    generated = content is None
    if generated:
        content = host.runtime.default_config()

    patched = set_cgroup_flag(content, value, field)
    changed = host.files.write(config_path, patched)

    if generated:
        msg = f"Default config generated ({field}={str(value).lower()})"
    elif changed:
        msg = f"Config patched ({field}={str(value).lower()})"
    else:
        msg = "Config already correct"
    return SubTaskResult(success=True, changed=changed, message=msg)


@automated_substep("Restart Container Runtime Service")
def _restart_service(host: Host, service: str) -> SubTaskResult:
    host.services.restart(service)
    host.services.enable(service)

    if not host.services.is_active(service):
        return SubTaskResult(success=False, message=f"{service} is not active after restart")
    return SubTaskResult(success=True, changed=True, message="Service restarted & enabled")


# --- MAIN TASK ---

@automated_step("Install & Configure Container Runtime")
def configure_container_runtime(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> StepResult:
    """
    Full pipeline to set up containerd as the CRI, using the systemd cgroup driver like the kubelet.
    A node without a healthy runtime cannot proceed, so every failure here is fatal.
    """
    rt = settings.runtime

    _install_runtime(host, rt.package)
    _configure_runtime(host, rt.config_path, rt.cgroup_field, rt.systemd_cgroup)

    s3 = _restart_service(host, rt.service)
    if not s3.success: return fail(s3)

    return StepResult.success(f"{rt.package} installed, configured ({rt.cgroup_field}) & running")


RUNTIME_STEP = Step(
    id="container-runtime",
    description="Install and configure the container runtime",
    component="RuntimeConfigurator",
    apply=configure_container_runtime,
    check=runtime_configured,
)
