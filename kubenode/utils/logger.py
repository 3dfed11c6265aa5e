import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.theme import Theme

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# File logger: every step, sub-step and command ends up here
sys_logger = logging.getLogger("kubenode")
sys_logger.addHandler(logging.NullHandler())


def setup_file_logging(log_file: str, level: int = logging.INFO) -> Optional[Path]:
    """
    Attaches a file handler to the system logger.
    Returns the log path, or None if the file cannot be opened.
    """
    path = Path(log_file)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
    except OSError:
        return None

    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    for existing in list(sys_logger.handlers):
        if isinstance(existing, logging.FileHandler):
            sys_logger.removeHandler(existing)
            existing.close()
    sys_logger.addHandler(handler)
    sys_logger.setLevel(level)
    return path


class NodeLogger:
    def __init__(self):
        self.custom_theme = Theme({
            "success": "bold green",
            "error": "bold red",
            "skip": "bold cyan",
            "warning": "bold yellow",
            "info": "dim white"
        })
        self.console = Console(theme=self.custom_theme)


logger = NodeLogger()
