from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, List, Optional


class NodeRole(str, Enum):
    CONTROL_PLANE = "control-plane"
    WORKER = "worker"


class StepOutcome(str, Enum):
    SUCCESS = "SUCCESS"  # Step performed a mutation successfully
    NOOP = "NOOP"  # Desired end-state already held, nothing changed
    SKIPPED = "SKIPPED"  # Step is gated out for the current role
    RECOVERABLE = "RECOVERABLE"  # Failed, may be retried (or only reported)
    FATAL = "FATAL"  # Failed, blocking execution


@dataclass(frozen=True)
class StepResult:
    """
    Typed outcome of a single step.
    A RECOVERABLE result with retryable=False is a warning: reported, never blocking.
    """
    outcome: StepOutcome
    message: str = ""
    retryable: bool = False
    data: Optional[Any] = None  # Payload for the report (e.g. the join credential)

    @classmethod
    def success(cls, message: str = "", data: Any = None) -> "StepResult":
        return cls(StepOutcome.SUCCESS, message, data=data)

    @classmethod
    def noop(cls, message: str = "") -> "StepResult":
        return cls(StepOutcome.NOOP, message)

    @classmethod
    def skipped(cls, message: str = "") -> "StepResult":
        return cls(StepOutcome.SKIPPED, message)

    @classmethod
    def recoverable(cls, message: str, retryable: bool = True) -> "StepResult":
        return cls(StepOutcome.RECOVERABLE, message, retryable=retryable)

    @classmethod
    def warning(cls, message: str) -> "StepResult":
        return cls(StepOutcome.RECOVERABLE, message, retryable=False)

    @classmethod
    def fatal(cls, message: str) -> "StepResult":
        return cls(StepOutcome.FATAL, message)

    @property
    def is_fatal(self) -> bool:
        return self.outcome == StepOutcome.FATAL

    @property
    def is_warning(self) -> bool:
        return self.outcome == StepOutcome.RECOVERABLE and not self.retryable


@dataclass
class SubTaskResult:
    """Lightweight result object for internal sub-steps."""
    success: bool
    message: str
    changed: bool = False
    data: Optional[Any] = None


@dataclass(frozen=True)
class JoinCredential:
    token: str
    ca_cert_hash: str
    control_plane_endpoint: str

    @property
    def command(self) -> str:
        return (
            f"kubeadm join {self.control_plane_endpoint} --token {self.token} "
            f"--discovery-token-ca-cert-hash {self.ca_cert_hash}"
        )

    @property
    def redacted_token(self) -> str:
        token_id, _, _ = self.token.partition(".")
        return f"{token_id}.****"

    def __repr__(self) -> str:
        return (
            f"JoinCredential(token='{self.redacted_token}', "
            f"control_plane_endpoint='{self.control_plane_endpoint}')"
        )


@dataclass(frozen=True)
class ProvisioningContext:
    """
    Host facts threaded through every step.
    Frozen: only context resolvers produce an updated copy, and only the Sequencer keeps it.
    """
    kubernetes_version_channel: str
    cni_version: str
    role: Optional[NodeRole] = None
    hostname: Optional[str] = None
    advertise_address: Optional[str] = None

    @property
    def is_control_plane(self) -> bool:
        return self.role == NodeRole.CONTROL_PLANE

    def require_role(self) -> NodeRole:
        if self.role is None:
            raise RuntimeError("Node role accessed before role selection")
        return self.role

    def require_advertise_address(self) -> str:
        if not self.advertise_address:
            raise RuntimeError("Advertise address accessed before detection")
        return self.advertise_address

    def evolve(self, **changes) -> "ProvisioningContext":
        return replace(self, **changes)


@dataclass(frozen=True)
class Step:
    """
    Declarative description of one provisioning step.

    resolver: context-mutating hook, runs before the idempotency check and returns the new context.
    check: reports whether the desired end-state already holds (None means always apply).
    control_plane_only: gated out (SKIPPED) on the worker path.
    """
    id: str
    description: str
    component: str
    apply: Callable[..., StepResult]
    check: Optional[Callable[..., bool]] = None
    resolver: Optional[Callable[..., ProvisioningContext]] = None
    control_plane_only: bool = False


@dataclass(frozen=True)
class StepRecord:
    step_id: str
    description: str
    component: str
    result: StepResult
    attempts: int = 1


@dataclass
class RunReport:
    """Ordered list of step outcomes for one run."""
    records: List[StepRecord] = field(default_factory=list)
    context: Optional[ProvisioningContext] = None

    def add(self, record: StepRecord) -> None:
        self.records.append(record)

    @property
    def failed(self) -> bool:
        return any(r.result.is_fatal for r in self.records)

    @property
    def failing_step(self) -> Optional[StepRecord]:
        for record in self.records:
            if record.result.is_fatal:
                return record
        return None

    @property
    def warnings(self) -> List[StepRecord]:
        return [r for r in self.records if r.result.is_warning]

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0

    @property
    def join_credential(self) -> Optional[JoinCredential]:
        for record in self.records:
            if isinstance(record.result.data, JoinCredential):
                return record.result.data
        return None

    def outcome_of(self, step_id: str) -> Optional[StepOutcome]:
        for record in self.records:
            if record.step_id == step_id:
                return record.result.outcome
        return None
