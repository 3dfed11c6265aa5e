import re
from typing import Dict, List, Tuple

from kubenode.core.decorators import automated_step, automated_substep
from kubenode.core.errors import HostEnvironmentError
from kubenode.core.host import Host
from kubenode.core.models import ProvisioningContext, Step, StepResult, SubTaskResult
from kubenode.core.settings import AppSettings
from kubenode.tasks import fail

# Active (non comment) mount table lines mentioning swap
SWAP_LINE = re.compile(r"^[^#].*\bswap\b")


def render_modules_file(modules: List[str]) -> str:
    return "\n".join(modules) + "\n"


def render_sysctl_file(params: Dict[str, str]) -> str:
    return "\n".join(f"{key} = {value}" for key, value in params.items()) + "\n"


def strip_swap_entries(fstab: str) -> Tuple[str, int]:
    """Removes active swap entries. Returns the new content and the number of removed lines."""
    kept, removed = [], 0
    for line in fstab.splitlines():
        if SWAP_LINE.search(line.strip()):
            removed += 1
        else:
            kept.append(line)
    return "\n".join(kept) + "\n", removed


# --- SYSTEM PACKAGES ---

def prerequisites_installed(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> bool:
    return all(host.packages.is_installed(pkg) for pkg in settings.system.prerequisites)


@automated_substep("Refresh Package Index")
def _refresh_packages(host: Host, upgrade: bool) -> SubTaskResult:
    host.packages.update()
    if upgrade:
        host.packages.upgrade()
        return SubTaskResult(success=True, changed=True, message="Index updated, packages upgraded")
    return SubTaskResult(success=True, changed=True, message="Index updated")


@automated_substep("Install Prerequisites")
def _install_prerequisites(host: Host, packages: List[str]) -> SubTaskResult:
    host.packages.install(packages)
    return SubTaskResult(success=True, changed=True, message=", ".join(packages))


@automated_substep("Distribution Upgrade")
def _dist_upgrade(host: Host) -> SubTaskResult:
    host.packages.update()
    host.packages.dist_upgrade()
    return SubTaskResult(success=True, changed=True, message="dist-upgrade applied")


@automated_step("System Packages")
def prepare_packages(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> StepResult:
    """
    Refreshes the package index, upgrades the system, installs the HTTPS/GPG prerequisites
    and finishes with a dist-upgrade pass.
    """
    _refresh_packages(host, settings.system.upgrade_packages)
    _install_prerequisites(host, settings.system.prerequisites)
    if settings.system.dist_upgrade:
        _dist_upgrade(host)
    return StepResult.success("System packages up to date, prerequisites installed")


# --- KERNEL MODULES ---

def modules_active(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> bool:
    modules = settings.system.kernel_modules
    declared = host.files.read(settings.system.modules_file) or ""
    declared_set = {line.strip() for line in declared.splitlines() if line.strip()}
    return set(modules) <= declared_set and all(host.system.is_module_loaded(m) for m in modules)


@automated_substep("Persist Kernel Modules")
def _persist_modules(host: Host, path: str, modules: List[str]) -> SubTaskResult:
    changed = host.files.write(path, render_modules_file(modules))
    msg = f"{path} written" if changed else f"{path} already up to date"
    return SubTaskResult(success=True, changed=changed, message=msg)


@automated_substep("Load Kernel Modules")
def _load_modules(host: Host, modules: List[str]) -> SubTaskResult:
    loaded = []
    for mod in modules:
        if not host.system.is_module_loaded(mod):
            host.system.load_module(mod)
            loaded.append(mod)

    missing = [mod for mod in modules if not host.system.is_module_loaded(mod)]
    if missing:
        return SubTaskResult(success=False, message=f"Modules still not active: {', '.join(missing)}")
    return SubTaskResult(success=True, changed=bool(loaded),
                         message=f"Loaded: {', '.join(loaded)}" if loaded else "All modules already active")


@automated_step("Kernel Modules")
def configure_kernel_modules(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> StepResult:
    """
    Declares the module set for load-on-boot, then activates it for the current session.
    """
    modules = settings.system.kernel_modules

    _persist_modules(host, settings.system.modules_file, modules)

    s2 = _load_modules(host, modules)
    if not s2.success: return fail(s2)

    return StepResult.success(f"Modules loaded & persisted: {', '.join(modules)}")


# --- SWAP ---

def swap_disabled(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> bool:
    if host.system.active_swap():
        return False
    fstab = host.files.read(settings.system.fstab_path) or ""
    return not any(SWAP_LINE.search(line.strip()) for line in fstab.splitlines())


@automated_substep("Disable Swap (Runtime)")
def _disable_swap_runtime(host: Host) -> SubTaskResult:
    devices = host.system.active_swap()
    if not devices:
        return SubTaskResult(success=True, message="Swap already disabled")

    host.system.disable_swap()
    if host.system.active_swap():
        return SubTaskResult(success=False, message="Swap still active after swapoff")
    return SubTaskResult(success=True, changed=True, message=f"Deactivated: {', '.join(devices)}")


@automated_substep("Disable Swap (Fstab)")
def _disable_swap_fstab(host: Host, fstab_path: str) -> SubTaskResult:
    current = host.files.read(fstab_path)
    if current is None:
        raise HostEnvironmentError(f"{fstab_path} not found")

    new_content, removed = strip_swap_entries(current)
    if not removed:
        return SubTaskResult(success=True, message=f"{fstab_path} has no swap entries")

    host.files.write(fstab_path, new_content)
    return SubTaskResult(success=True, changed=True, message=f"Removed {removed} swap entr{'y' if removed == 1 else 'ies'}")


@automated_step("Disable Swap")
def disable_swap(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> StepResult:
    """
    Turns swap off for this session and drops it from the mount table for the next boot.
    """
    s1 = _disable_swap_runtime(host)
    if not s1.success: return fail(s1)

    _disable_swap_fstab(host, settings.system.fstab_path)

    return StepResult.success("Swap disabled (runtime & fstab)")


# --- SYSCTL ---

def sysctl_applied(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> bool:
    for path, params in settings.system.sysctl_files.items():
        if host.files.read(path) != render_sysctl_file(params):
            return False
        for key, value in params.items():
            if host.system.sysctl_value(key) != str(value):
                return False
    return True


@automated_substep("Write Sysctl Files")
def _write_sysctl_files(host: Host, files: Dict[str, Dict[str, str]]) -> SubTaskResult:
    written = [path for path, params in files.items() if host.files.write(path, render_sysctl_file(params))]
    return SubTaskResult(success=True, changed=bool(written),
                         message=f"Written: {', '.join(written)}" if written else "Files already up to date")


@automated_substep("Apply Sysctl Parameters")
def _apply_sysctl(host: Host, files: Dict[str, Dict[str, str]]) -> SubTaskResult:
    host.system.reload_sysctl()

    wrong = []
    for params in files.values():
        for key, value in params.items():
            current = host.system.sysctl_value(key)
            if current != str(value):
                wrong.append(f"{key}={current}")
    if wrong:
        return SubTaskResult(success=False, message=f"Parameters not applied: {', '.join(wrong)}")
    return SubTaskResult(success=True, changed=True, message="sysctl --system reloaded")


@automated_step("Configure Sysctl")
def configure_sysctl(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> StepResult:
    """
    Persists forwarding/bridge-netfilter settings and applies them immediately.
    """
    files = settings.system.sysctl_files

    _write_sysctl_files(host, files)

    s2 = _apply_sysctl(host, files)
    if not s2.success: return fail(s2)

    count = sum(len(params) for params in files.values())
    return StepResult.success(f"Applied {count} sysctl parameters")


PACKAGES_STEP = Step(
    id="system-packages",
    description="Update system packages and install prerequisites",
    component="SystemConfigurator",
    apply=prepare_packages,
    check=prerequisites_installed,
)

KERNEL_MODULES_STEP = Step(
    id="kernel-modules",
    description="Load and persist kernel modules",
    component="SystemConfigurator",
    apply=configure_kernel_modules,
    check=modules_active,
)

SWAP_STEP = Step(
    id="disable-swap",
    description="Disable swap",
    component="SystemConfigurator",
    apply=disable_swap,
    check=swap_disabled,
)

SYSCTL_STEP = Step(
    id="sysctl",
    description="Configure sysctl networking parameters",
    component="SystemConfigurator",
    apply=configure_sysctl,
    check=sysctl_applied,
)
