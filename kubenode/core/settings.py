import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union, get_args, get_origin

import yaml
from dotenv import load_dotenv

from kubenode.core.errors import ConfigurationError

# Load env vars if present
load_dotenv()


# --- DATACLASSES (SCHEMA) ---

@dataclass
class KubernetesSettings:
    """Kubernetes package channel and cluster bootstrap parameters."""
    version_channel: str = "v1.31"
    pod_network_cidr: str = "10.0.0.0/16"
    packages: List[str] = field(default_factory=lambda: ["kubelet", "kubeadm", "kubectl"])
    keyring_path: str = "/etc/apt/keyrings/kubernetes-apt-keyring.gpg"
    repo_base_url: str = "https://pkgs.k8s.io/core:/stable:"
    admin_kubeconfig: str = "/etc/kubernetes/admin.conf"
    agent_service: str = "kubelet"


@dataclass
class SystemSettings:
    """OS level prerequisites."""
    kernel_modules: List[str] = field(default_factory=lambda: ["overlay", "br_netfilter"])
    modules_file: str = "/etc/modules-load.d/k8s.conf"
    sysctl_files: Dict[str, Dict[str, str]] = field(default_factory=lambda: {
        "/etc/sysctl.d/99-k8s-ipforward.conf": {
            "net.ipv4.ip_forward": "1",
        },
        "/etc/sysctl.d/99-k8s-brnetfilter.conf": {
            "net.bridge.bridge-nf-call-ip6tables": "1",
            "net.bridge.bridge-nf-call-iptables": "1",
        },
    })
    fstab_path: str = "/etc/fstab"
    prerequisites: List[str] = field(
        default_factory=lambda: ["apt-transport-https", "ca-certificates", "curl", "gpg"]
    )
    upgrade_packages: bool = True
    dist_upgrade: bool = True
    supported_os: List[str] = field(default_factory=lambda: ["debian", "ubuntu"])


@dataclass
class RuntimeSettings:
    """Container runtime (containerd) parameters."""
    package: str = "containerd"
    service: str = "containerd"
    config_path: str = "/etc/containerd/config.toml"
    cgroup_field: str = "SystemdCgroup"
    systemd_cgroup: bool = True


@dataclass
class CniSettings:
    """Cilium CLI and CNI parameters."""
    version: str = "1.17.2"
    stable_url: str = "https://raw.githubusercontent.com/cilium/cilium-cli/main/stable.txt"
    release_url: str = (
        "https://github.com/cilium/cilium-cli/releases/download/{version}/cilium-linux-{arch}.tar.gz"
    )
    install_dir: str = "/usr/local/bin"
    binary: str = "cilium"
    status_timeout: int = 300
    download_timeout: int = 60
    enable_hubble: bool = True


@dataclass
class NodeSettings:
    """Role selection and address detection."""
    role: Optional[str] = None
    control_plane_marker: str = "1"
    control_plane_hostname: str = "master"
    worker_hostname: str = "worker"
    probe_addresses: List[str] = field(default_factory=lambda: ["1.1.1.1", "8.8.8.8"])


@dataclass
class RetrySettings:
    attempts: int = 3
    base_delay: float = 2.0


@dataclass
class LoggingSettings:
    log_file: str = "/var/log/kubenode/kubenode.log"


@dataclass
class AppSettings:
    """Root configuration object."""
    kubernetes: KubernetesSettings = field(default_factory=KubernetesSettings)
    system: SystemSettings = field(default_factory=SystemSettings)
    runtime: RuntimeSettings = field(default_factory=RuntimeSettings)
    cni: CniSettings = field(default_factory=CniSettings)
    node: NodeSettings = field(default_factory=NodeSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# --- LOADER LOGIC ---

_BOOL_WORDS = {"true": True, "yes": True, "on": True, "1": True,
               "false": False, "no": False, "off": False, "0": False}


def _coerce(value: Any, expected: Any, where: str) -> Any:
    """
    Checks value against a field annotation, converting only where nothing is lost:
    numeric strings to numbers, integers to strings. Floats never become strings
    (an unquoted 1.30 would turn into '1.3').
    """
    origin = get_origin(expected)
    if origin is Union:
        if value is None:
            return None
        options = [t for t in get_args(expected) if t is not type(None)]
        return _coerce(value, options[0], where)

    if origin is list:
        if not isinstance(value, list):
            raise ConfigurationError(f"'{where}' must be a list, got {type(value).__name__}")
        (item,) = get_args(expected)
        return [_coerce(v, item, f"{where}[{i}]") for i, v in enumerate(value)]

    if origin is dict:
        if not isinstance(value, dict):
            raise ConfigurationError(f"'{where}' must be a mapping, got {type(value).__name__}")
        _, item = get_args(expected)
        return {str(k): _coerce(v, item, f"{where}.{k}") for k, v in value.items()}

    if expected is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in _BOOL_WORDS:
            return _BOOL_WORDS[value.strip().lower()]
        raise ConfigurationError(f"'{where}' must be true or false, got {value!r}")

    if expected in (int, float):
        if isinstance(value, str):
            try:
                return expected(value.strip())
            except ValueError:
                raise ConfigurationError(f"'{where}' must be a number, got {value!r}") from None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigurationError(f"'{where}' must be a number, got {value!r}")
        if expected is int and isinstance(value, float) and not value.is_integer():
            raise ConfigurationError(f"'{where}' must be a whole number, got {value!r}")
        return expected(value)

    if expected is str:
        if isinstance(value, str):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        raise ConfigurationError(f"'{where}' must be a string, got {value!r} (quote it in YAML, e.g. \"v1.30\")")

    return value


def _build(schema, values: Dict[str, Any], section: str):
    """Instantiates a section dataclass from known keys, type-checked against the schema."""
    known = {f.name: f.type for f in fields(schema)}
    return schema(**{
        k: _coerce(v, known[k], f"{section}.{k}") for k, v in values.items() if k in known
    })


def _normalize_channel(version: str) -> str:
    version = str(version).strip()
    return version if version.startswith("v") else f"v{version}"


def load_settings(config_path: Union[str, Path, None] = "kubenode.yaml") -> AppSettings:
    """
    Loads configuration merging: Defaults (Schema) < YAML File (Config) < Environment Vars (Overrides).
    """

    # 1. Load YAML Config
    file_config: Dict[str, Any] = {}
    if config_path:
        path = Path(config_path)
        if path.exists():
            try:
                with open(path, "r") as f:
                    file_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Failed to parse {config_path}: {e}") from e
            if not isinstance(file_config, dict):
                raise ConfigurationError(f"{config_path} must contain a mapping at the top level")

    # 2. Load Environment Variables
    # We manually map only the keys that make sense to override via ENV
    env_config = {
        "kubernetes": {
            "version_channel": os.getenv("KUBENODE_K8S_VERSION"),
            "pod_network_cidr": os.getenv("KUBENODE_POD_CIDR"),
        },
        "cni": {
            "version": os.getenv("KUBENODE_CNI_VERSION"),
        },
        "node": {
            "role": os.getenv("KUBENODE_ROLE"),
        },
        "logging": {
            "log_file": os.getenv("KUBENODE_LOG_FILE"),
        },
    }

    # Cleanup: We remove None/Empty keys from ENV dictionaries
    def clean_none(d: Union[Dict, None]):
        if not isinstance(d, dict):
            return d
        return {k: clean_none(v) for k, v in d.items() if v is not None and v != {}}

    env_config = clean_none(env_config)

    # 3. Merge Logic (Priority: Env > File > Defaults)
    sections = {}
    for section in fields(AppSettings):
        file_section = file_config.get(section.name) or {}
        if not isinstance(file_section, dict):
            raise ConfigurationError(f"Section '{section.name}' must be a mapping")
        merged = {**file_section, **env_config.get(section.name, {})}
        sections[section.name] = _build(section.default_factory, merged, section.name)

    settings = AppSettings(**sections)
    settings.kubernetes.version_channel = _normalize_channel(settings.kubernetes.version_channel)

    if settings.retry.attempts < 1:
        raise ConfigurationError("retry.attempts must be at least 1")

    return settings
