import datetime
import hashlib
import os
import tempfile
from pathlib import Path
from typing import Optional, Tuple

from kubenode.utils.logger import sys_logger

BACKUP_DIR = "/var/backups/kubenode"


def _digest(content: str) -> str:
    return hashlib.md5(content.encode("utf-8")).hexdigest()


class LocalFiles:
    """
    File operations on the local host.
    Writes are idempotent (content hash), atomic (temp file + rename) and keep a
    versioned backup of the file they replace. OSError propagates to the caller.
    """

    def __init__(self, backup_dir: str = BACKUP_DIR):
        self.backup_dir = Path(backup_dir)

    def exists(self, path: str) -> bool:
        return Path(path).exists()

    def read(self, path: str) -> Optional[str]:
        """Returns the file content, or None if it does not exist."""
        p = Path(path)
        if not p.is_file():
            return None
        return p.read_text(encoding="utf-8")

    def write(self, path: str, content: str, mode: int = 0o644) -> bool:
        """
        Writes content to path. Returns True if the file changed.
        """
        current = self.read(path)
        if current is not None and _digest(current) == _digest(content):
            return False

        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)

        if current is not None:
            self._backup(target)

        fd, tmp_path = tempfile.mkstemp(dir=str(target.parent), prefix=f".{target.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.chmod(tmp_path, mode)
            os.replace(tmp_path, target)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

        sys_logger.info(f"WRITE {path} ({len(content)} bytes)")
        return True

    def write_bytes(self, path: str, content: bytes, mode: int = 0o755) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(target.parent), prefix=f".{target.name}.")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
            os.chmod(tmp_path, mode)
            os.replace(tmp_path, target)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
        sys_logger.info(f"WRITE {path} ({len(content)} bytes)")

    def owner(self, path: str) -> Optional[Tuple[int, int]]:
        p = Path(path)
        if not p.exists():
            return None
        st = p.stat()
        return st.st_uid, st.st_gid

    def chown(self, path: str, uid: int, gid: int) -> None:
        os.chown(path, uid, gid)

    def make_directory(self, path: str, uid: Optional[int] = None, gid: Optional[int] = None) -> None:
        p = Path(path)
        p.mkdir(parents=True, exist_ok=True)
        if uid is not None and gid is not None:
            os.chown(p, uid, gid)

    def _backup(self, target: Path) -> Path:
        """Copies target to the backup dir as _etc_fstab.<timestamp>.bak."""
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        safe_filename = str(target).replace("/", "_")
        timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
        backup_path = self.backup_dir / f"{safe_filename}.{timestamp}.bak"
        backup_path.write_bytes(target.read_bytes())
        sys_logger.info(f"BACKUP {target} -> {backup_path}")
        return backup_path
