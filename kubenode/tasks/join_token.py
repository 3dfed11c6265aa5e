from kubenode.core.decorators import automated_step
from kubenode.core.host import Host
from kubenode.core.models import ProvisioningContext, Step, StepResult
from kubenode.core.settings import AppSettings
from kubenode.utils.logger import sys_logger


@automated_step("Issue Join Token")
def issue_join_token(ctx: ProvisioningContext, host: Host, settings: AppSettings) -> StepResult:
    """
    Creates a fresh join credential. Every run legitimately issues a new one.
    The credential only travels in the report; the file log sees the redacted token.
    """
    credential = host.cluster.issue_join_token()
    sys_logger.info(f"Join token {credential.redacted_token} issued for {credential.control_plane_endpoint}")
    return StepResult.success(
        f"Join command issued for {credential.control_plane_endpoint} (token {credential.redacted_token})",
        data=credential,
    )


JOIN_TOKEN_STEP = Step(
    id="issue-join-token",
    description="Issue a worker join command",
    component="JoinTokenIssuer",
    apply=issue_join_token,
    control_plane_only=True,
)
