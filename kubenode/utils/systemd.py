from kubenode.utils.command import run_command


class SystemdServiceManager:
    """Service-manager capability backed by systemctl."""

    def enable(self, service: str, now: bool = False) -> None:
        cmd = ["systemctl", "enable", service]
        if now:
            cmd.insert(2, "--now")
        run_command(cmd).check()

    def restart(self, service: str) -> None:
        run_command(["systemctl", "restart", service]).check()

    def is_active(self, service: str) -> bool:
        return not run_command(["systemctl", "is-active", "--quiet", service]).failed

    def is_enabled(self, service: str) -> bool:
        return not run_command(["systemctl", "is-enabled", "--quiet", service]).failed
