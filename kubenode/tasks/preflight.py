from kubenode.core.decorators import automated_step
from kubenode.core.errors import HostEnvironmentError, PrivilegeError
from kubenode.core.models import ProvisioningContext, Step, StepResult
from kubenode.core.host import Host
from kubenode.core.settings import AppSettings


@automated_step("Check Privileges")
def check_privileges(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> StepResult:
    """
    Refuses to go on without root. Nothing has been touched at this point.
    """
    if not host.system.is_privileged():
        raise PrivilegeError("Please run as root (e.g. sudo kubenode provision)")
    return StepResult.noop("Running as root")


@automated_step("Check OS Family")
def check_os_family(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> StepResult:
    """
    Accepts distributions whose ID or ID_LIKE names a supported family.
    """
    facts = host.system.os_release()
    if not facts:
        raise HostEnvironmentError("Cannot read /etc/os-release")

    families = {facts.get("ID", "").lower(), *facts.get("ID_LIKE", "").lower().split()}
    supported = {name.lower() for name in settings.system.supported_os}
    if not families & supported:
        raise HostEnvironmentError(
            f"Unsupported OS '{facts.get('PRETTY_NAME', facts.get('ID', 'unknown'))}' "
            f"(supported: {', '.join(sorted(supported))})"
        )

    return StepResult.noop(facts.get("PRETTY_NAME", facts.get("ID", "")))


PRIVILEGE_STEP = Step(
    id="preflight-privilege",
    description="Verify root privileges",
    component="PreflightChecker",
    apply=check_privileges,
)

OS_FAMILY_STEP = Step(
    id="preflight-os",
    description="Verify OS family",
    component="PreflightChecker",
    apply=check_os_family,
)
