"""
Failure taxonomy and the classifier that turns exceptions into StepResults.
The Sequencer is the only place that acts on the classification (retry/abort).
"""
import subprocess
from typing import Optional

import requests

from kubenode.core.models import StepResult


class ProvisioningError(Exception):
    """Base class for every failure raised by a provisioning step."""


class PrivilegeError(ProvisioningError):
    """Not running with the required rights."""


class HostEnvironmentError(ProvisioningError):
    """Unsupported OS family, architecture or missing expected path."""


class ConfigurationError(ProvisioningError):
    """Invalid settings file or a configuration path that cannot be written."""


class TransientNetworkError(ProvisioningError):
    """Download, timeout or DNS failure. Retried by the Sequencer."""


class IntegrityError(ProvisioningError):
    """Checksum mismatch on a downloaded artifact. Never retried."""


class StateConflictError(ProvisioningError):
    """Desired state already reached by other means (e.g. cluster already initialized)."""


class VerificationWarning(ProvisioningError):
    """Post-success check failed. Reported only."""


class CommandError(ProvisioningError):
    """A host command exited non-zero."""

    def __init__(self, command: str, returncode: int, stdout: str = "", stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        detail = (stderr or stdout).strip()
        if len(detail) > 200:
            detail = detail[-200:]
        super().__init__(f"'{command}' exited with {returncode}: {detail}" if detail
                         else f"'{command}' exited with {returncode}")


_FATAL = (PrivilegeError, HostEnvironmentError, ConfigurationError, IntegrityError, CommandError)
_TRANSIENT = (
    TransientNetworkError,
    requests.ConnectionError,
    requests.Timeout,
    subprocess.TimeoutExpired,
)


def classify(exc: BaseException) -> Optional[StepResult]:
    """
    Maps a known failure to a StepResult.
    Returns None for unexpected exceptions so the caller can log the traceback.
    """
    if isinstance(exc, StateConflictError):
        return StepResult.noop(str(exc))
    if isinstance(exc, VerificationWarning):
        return StepResult.warning(str(exc))
    if isinstance(exc, _TRANSIENT):
        return StepResult.recoverable(f"Transient network error: {exc}", retryable=True)
    if isinstance(exc, _FATAL):
        return StepResult.fatal(f"{type(exc).__name__}: {exc}")
    if isinstance(exc, ProvisioningError):
        return StepResult.fatal(str(exc))
    if isinstance(exc, OSError):
        # Permission or filesystem errors: retrying without remediation never succeeds
        return StepResult.fatal(f"Filesystem error: {exc}")
    return None
