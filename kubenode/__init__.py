"""kubenode - single host Kubernetes node provisioning."""

__version__ = "0.1.0"
