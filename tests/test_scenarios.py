"""End-to-end runs of the provisioning sequence against an in-memory host."""
from __future__ import annotations

from kubenode.core.errors import TransientNetworkError
from kubenode.core.models import JoinCredential, NodeRole, StepOutcome
from kubenode.core.registry import provision_steps
from tests.fakes import default_responses, make_host

CONTROL_PLANE_IDS = {
    "detect-advertise-address",
    "initialize-cluster",
    "stage-admin-kubeconfig",
    "install-cni-cli",
    "install-cni",
    "issue-join-token",
}
# Components that legitimately act on every run
ALWAYS_ACT = {"JoinTokenIssuer", "Verifier"}


def _signal(value):
    reads = []

    def read():
        reads.append(value)
        return value

    read.reads = reads
    return read


def test_control_plane_happy_path(make_sequencer, context, host) -> None:
    """Marker input, all collaborators healthy: no fatal step, join credential, exit 0."""
    report = make_sequencer(provision_steps(_signal("1"))).run(context)

    assert report.exit_code == 0
    assert not report.warnings
    assert report.context.role == NodeRole.CONTROL_PLANE
    assert report.context.hostname == "master"
    assert report.context.advertise_address == "10.0.0.5"
    credential = report.join_credential
    assert isinstance(credential, JoinCredential)
    assert credential.token and credential.ca_cert_hash
    assert host.cluster.init_calls == [("10.0.0.0/16", "10.0.0.5")]
    assert host.cni.install_calls == ["1.17.2"]
    assert host.cni.hubble is True
    assert all(report.outcome_of(step_id) == StepOutcome.SUCCESS
               for step_id in CONTROL_PLANE_IDS - {"detect-advertise-address"})


def test_host_state_after_control_plane_run(make_sequencer, context, host, settings) -> None:
    make_sequencer(provision_steps(_signal("1"))).run(context)

    files = host.files
    assert files.read(settings.system.modules_file) == "overlay\nbr_netfilter\n"
    assert "swap" not in files.read(settings.system.fstab_path).replace("# /old.swap none swap", "")
    assert host.system.swap == []
    assert host.system.sysctl["net.ipv4.ip_forward"] == "1"
    assert host.system.sysctl["net.bridge.bridge-nf-call-iptables"] == "1"
    assert "SystemdCgroup = true" in files.read(settings.runtime.config_path)
    assert host.services.is_active("containerd")
    assert host.packages.holds == {"kubelet", "kubeadm", "kubectl"}
    assert host.services.is_enabled("kubelet")
    assert files.read("/home/ops/.kube/config") == files.read(settings.kubernetes.admin_kubeconfig)
    assert files.owner("/home/ops/.kube/config") == (1000, 1000)
    assert files.exists("/usr/local/bin/cilium")


def test_second_run_only_reports_noop_or_skipped(make_sequencer, context, host) -> None:
    """Re-running on a provisioned host changes nothing."""
    make_sequencer(provision_steps(_signal("1"))).run(context)
    writes_before = list(host.files.writes)
    mutations_before = list(host.packages.mutations())

    report = make_sequencer(provision_steps(_signal("1"))).run(context)

    for record in report.records:
        if record.component in ALWAYS_ACT:
            continue
        assert record.result.outcome in (StepOutcome.NOOP, StepOutcome.SKIPPED), record
    assert host.files.writes == writes_before
    assert host.packages.mutations() == mutations_before
    assert len(host.cluster.init_calls) == 1
    assert report.context.advertise_address == "10.0.0.5"


def test_second_worker_run_is_idempotent(make_sequencer, context, host) -> None:
    make_sequencer(provision_steps(_signal(""))).run(context)

    report = make_sequencer(provision_steps(_signal(""))).run(context)

    assert all(r.result.outcome in (StepOutcome.NOOP, StepOutcome.SKIPPED)
               for r in report.records if r.component not in ALWAYS_ACT)


def test_empty_role_input_provisions_a_worker(make_sequencer, context, host) -> None:
    """Empty input selects worker; bootstrap, CNI and token steps never run."""
    report = make_sequencer(provision_steps(_signal(""))).run(context)

    assert report.exit_code == 0
    assert report.context.role == NodeRole.WORKER
    assert host.system.current_hostname == "worker"
    for step_id in CONTROL_PLANE_IDS | {"verify-nodes"}:
        assert report.outcome_of(step_id) == StepOutcome.SKIPPED
    assert host.cluster.init_calls == []
    assert host.cluster.token_calls == 0
    assert host.cni.install_calls == []
    assert host.system.route_queries == []
    assert report.join_credential is None


def test_role_signal_is_read_once(make_sequencer, context) -> None:
    signal = _signal("1")
    make_sequencer(provision_steps(signal)).run(context)
    assert signal.reads == ["1"]


def test_privilege_failure_stops_before_any_mutation(make_sequencer, context, settings) -> None:
    """No root: only the privilege check runs, nothing is written, exit non-zero."""
    host = make_host(settings, privileged=False)
    signal = _signal("1")

    report = make_sequencer(provision_steps(signal), target_host=host).run(context)

    assert [r.step_id for r in report.records] == ["preflight-privilege"]
    assert report.exit_code != 0
    assert "PrivilegeError" in report.failing_step.result.message
    assert host.files.writes == []
    assert host.packages.calls == []
    assert signal.reads == []


def test_unsupported_os_is_fatal(make_sequencer, context, host) -> None:
    host.system.release = {"ID": "fedora", "PRETTY_NAME": "Fedora Linux 40"}

    report = make_sequencer(provision_steps(_signal("1"))).run(context)

    assert report.failing_step.step_id == "preflight-os"
    assert "Fedora" in report.failing_step.result.message


def test_corrupted_cli_download_aborts_without_install(make_sequencer, context, settings) -> None:
    """A checksum mismatch is an IntegrityError: no retry, no binary, run aborted."""
    host = make_host(settings)
    responses = default_responses(settings)
    release = settings.cni.release_url.format(version="v0.18.3", arch="amd64")
    responses[release] = b"tampered archive"
    host.downloader.responses = responses

    report = make_sequencer(provision_steps(_signal("1")), target_host=host).run(context)

    failing = report.failing_step
    assert failing.step_id == "install-cni-cli"
    assert "IntegrityError" in failing.result.message
    assert failing.attempts == 1
    assert not host.files.exists("/usr/local/bin/cilium")
    assert report.outcome_of("install-cni") is None
    assert host.cni.install_calls == []
    assert report.exit_code == 1


def test_download_retry_is_bounded(make_sequencer, context, host, settings, sleeper) -> None:
    """Three transient failures in a row escalate to fatal after exactly three attempts."""
    host.downloader.responses[settings.cni.stable_url] = TransientNetworkError("connection reset")

    report = make_sequencer(provision_steps(_signal("1"))).run(context)

    failing = report.failing_step
    assert failing.step_id == "install-cni-cli"
    assert failing.attempts == 3
    assert host.downloader.count(settings.cni.stable_url) == 3
    assert sleeper.delays == [2.0, 4.0]


def test_cni_slow_to_converge_is_a_warning(make_sequencer, context, host) -> None:
    host.cni.ready = False

    report = make_sequencer(provision_steps(_signal("1"))).run(context)

    assert report.exit_code == 0
    assert [r.step_id for r in report.warnings] == ["install-cni"]
    assert host.cni.hubble is False
    assert report.join_credential is not None


def test_runtime_restart_failure_is_fatal(make_sequencer, context, host) -> None:
    host.services.restart_fails = True

    report = make_sequencer(provision_steps(_signal(""))).run(context)

    assert report.failing_step.step_id == "container-runtime"
    assert report.outcome_of("kube-components") is None


def test_verification_failures_are_warnings(make_sequencer, context, host) -> None:
    del host.cluster.versions["kubelet"]

    report = make_sequencer(provision_steps(_signal("1"))).run(context)

    assert report.exit_code == 0
    assert [r.step_id for r in report.warnings] == ["verify-kubelet"]
