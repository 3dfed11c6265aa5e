class RuntimeConfig:
    """
    Process-wide switches set once by the CLI callback and read by the decorators.
    """
    VERBOSE: bool = True
    CONFIG_FILE: str = "kubenode.yaml"
    LOCK_FILE: str = "/run/kubenode.lock"


config = RuntimeConfig()
