import shlex
import subprocess
from dataclasses import dataclass
from typing import List, Optional, Union

from kubenode.core.errors import CommandError
from kubenode.utils.logger import sys_logger


@dataclass
class CommandResult:
    command: str
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def failed(self) -> bool:
        return self.returncode != 0

    @property
    def result(self) -> str:
        """stdout, with stderr appended on failure for a complete picture."""
        if self.failed:
            return f"{self.stdout}\nError: {self.stderr}"
        return self.stdout

    def check(self) -> "CommandResult":
        if self.failed:
            raise CommandError(self.command, self.returncode, self.stdout, self.stderr)
        return self


def run_command(
        cmd: Union[str, List[str]],
        input_text: Optional[str] = None,
        timeout: Optional[float] = None,
        env: Optional[dict] = None,
) -> CommandResult:
    """
    Runs a command on the local host.

    Strings containing shell operators run through the shell, everything else is
    split with shlex. A missing executable is reported as exit code 127.
    subprocess.TimeoutExpired propagates so the caller's classifier can mark it transient.
    """
    if isinstance(cmd, list):
        display = " ".join(shlex.quote(c) for c in cmd)
        args, use_shell = cmd, False
    else:
        display = cmd
        use_shell = any(op in cmd for op in ("|", "&&", "||", ">", "$("))
        args = cmd if use_shell else shlex.split(cmd)

    sys_logger.debug(f"EXEC {display}")
    try:
        proc = subprocess.run(
            args,
            shell=use_shell,
            input=input_text,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            universal_newlines=True,
            timeout=timeout,
            env=env,
        )
    except FileNotFoundError as e:
        sys_logger.warning(f"EXEC {display} -> not found ({e})")
        return CommandResult(display, 127, "", str(e))

    if proc.returncode != 0:
        sys_logger.warning(f"EXEC {display} -> rc={proc.returncode} stderr={proc.stderr.strip()[-200:]}")
    return CommandResult(display, proc.returncode, proc.stdout, proc.stderr)
