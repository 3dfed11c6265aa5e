import hashlib

import requests

from kubenode.core.errors import HostEnvironmentError, TransientNetworkError
from kubenode.utils.logger import sys_logger


def sha256_hex(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()


def parse_checksum(text: str) -> str:
    """Extracts the digest from 'sha256sum' output ("<hex>  <filename>")."""
    parts = text.strip().split()
    if not parts:
        raise HostEnvironmentError("Empty checksum file")
    return parts[0].lower()


class HttpDownloader:
    """Downloader capability backed by requests."""

    def __init__(self, timeout: float = 60, session: requests.Session = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self, url: str) -> bytes:
        """
        Returns the body of url.
        Connection problems and 5xx answers are transient, 4xx answers are not.
        """
        sys_logger.info(f"FETCH {url}")
        try:
            response = self.session.get(url, timeout=self.timeout, allow_redirects=True)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransientNetworkError(f"{url}: {e}") from e

        if response.status_code >= 500:
            raise TransientNetworkError(f"{url}: HTTP {response.status_code}")
        if response.status_code >= 400:
            raise HostEnvironmentError(f"{url}: HTTP {response.status_code}")
        return response.content

    def fetch_text(self, url: str) -> str:
        return self.fetch(url).decode("utf-8").strip()

    def verify(self, payload: bytes, checksum: str) -> bool:
        return sha256_hex(payload) == checksum.strip().lower()
