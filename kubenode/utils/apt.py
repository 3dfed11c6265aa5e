from typing import Iterable, List

from kubenode.utils.command import CommandResult, run_command

_NONINTERACTIVE = "DEBIAN_FRONTEND=noninteractive"


def _apt(args: str) -> CommandResult:
    return run_command(f"{_NONINTERACTIVE} apt-get {args} </dev/null")


class AptPackageManager:
    """Package-manager capability backed by apt-get/dpkg/apt-mark."""

    def update(self) -> None:
        _apt("update -y").check()

    def upgrade(self) -> None:
        _apt("upgrade -y").check()

    def dist_upgrade(self) -> None:
        _apt("dist-upgrade -y").check()

    def install(self, packages: Iterable[str]) -> None:
        pkg_str = " ".join(packages)
        _apt(f"install -y {pkg_str}").check()

    def hold(self, packages: Iterable[str]) -> None:
        run_command(["apt-mark", "hold", *packages]).check()

    def is_installed(self, package: str) -> bool:
        res = run_command(["dpkg-query", "-W", "-f=${Status}", package])
        return not res.failed and "install ok installed" in res.stdout

    def installed_version(self, package: str) -> str:
        res = run_command(["dpkg-query", "-W", "-f=${Version}", package])
        return "" if res.failed else res.stdout.strip()

    def held(self) -> List[str]:
        res = run_command(["apt-mark", "showhold"])
        if res.failed:
            return []
        return [line.strip() for line in res.stdout.splitlines() if line.strip()]

    def dearmor_key(self, armored: bytes, dest: str) -> None:
        """Converts an ASCII armored GPG key into a binary keyring at dest."""
        run_command(["gpg", "--batch", "--yes", "--dearmor", "-o", dest],
                    input_text=armored.decode("utf-8")).check()
