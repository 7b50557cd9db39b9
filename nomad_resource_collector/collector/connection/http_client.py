"""
Thin JSON-over-HTTP layer shared by the metrics and orchestrator clients.
"""

from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter

from nomad_resource_collector.common.exception import TransportError, DecodeError
from nomad_resource_collector.common.logging import get_logger

logger = get_logger(__name__)

USER_AGENT = "nomad-resource-collector/0.1.0"

# requests' own default per-host pool size
DEFAULT_POOL_SIZE = 10


def normalize_address(address: str) -> str:
    """Prefix a bare host:port with http:// and drop any trailing slash."""
    address = str(address).strip().rstrip("/")
    if "://" not in address:
        address = f"http://{address}"
    return address


class JsonHttpClient:
    """Issues GET requests and decodes JSON bodies, always with a timeout.

    Read-only and safe to share between collection threads.
    """

    def __init__(self, timeout: float = 10.0, session: Optional[requests.Session] = None,
                 pool_size: int = DEFAULT_POOL_SIZE):
        self.timeout = timeout
        if session is None:
            session = requests.Session()
            # one pooled connection per concurrent worker hitting the same host
            adapter = HTTPAdapter(pool_maxsize=max(pool_size, DEFAULT_POOL_SIZE))
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self.session = session
        self.session.headers["User-Agent"] = USER_AGENT

    def get_json(self, base_url: str, path: str, params: Optional[Dict[str, str]] = None,
                 headers: Optional[Dict[str, str]] = None, allow_missing: bool = False) -> Any:
        """GET base_url + path and return the decoded JSON body.

        Raises TransportError on connection failures, timeouts and non-2xx
        responses, DecodeError when the body is not JSON. With allow_missing a
        404 returns None instead.
        """
        url = f"{normalize_address(base_url)}{path}"
        try:
            response = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise TransportError(f"GET {url} timed out after {self.timeout}s: {e}")
        except requests.exceptions.RequestException as e:
            raise TransportError(f"GET {url} failed: {e}")

        if allow_missing and response.status_code == 404:
            logger.debug(f"GET {url} returned 404, treating as absent")
            return None

        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise TransportError(f"GET {url} returned HTTP {response.status_code}: {e}")

        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(f"GET {url} returned invalid JSON: {e}")

    def close(self):
        self.session.close()
