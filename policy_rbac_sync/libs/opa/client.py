"""
OPA Sync Client

Pushes ACL entries into the OPA data API (full replace) and removes them
(full delete). TLS verification is configured per client and never changed
process-wide.
"""

import logging
import time
import warnings
from typing import NamedTuple, Optional, Tuple
from urllib.parse import quote

import requests
import urllib3

from ..core.constants import NetworkConstants
from ..core.utils import Deadline, mask_sensitive_info, validate_url
from ..rbac.acl import AclEntry

logger = logging.getLogger(__name__)


class SyncResult(NamedTuple):
    """Outcome of one sync call"""
    operation: str
    key: str
    success: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
    body: str = ""


class OPAClient:
    """Client for the OPA /v1/data/acls document"""

    JSON_HEADERS = {'Content-type': 'application/json'}

    def __init__(self, base_url: str = NetworkConstants.DEFAULT_OPA_URL,
                 timeout: float = NetworkConstants.DEFAULT_TIMEOUT,
                 verify_tls: bool = False, ca_cert: Optional[str] = None,
                 retries: int = NetworkConstants.DEFAULT_RETRIES,
                 backoff_factor: float = NetworkConstants.DEFAULT_BACKOFF_FACTOR,
                 session: Optional[requests.Session] = None):
        """
        Initialize OPA client

        Args:
            base_url: OPA server URL, e.g. https://localhost:8181
            timeout: Per-request timeout in seconds
            verify_tls: Whether to verify the server certificate
            ca_cert: CA bundle used for verification (optional)
            retries: Retries for connection errors, timeouts and 502/503/504 responses
            backoff_factor: Delay before the first retry, doubled for each further retry
            session: Pre-built requests session (optional)
        """
        validate_url(base_url)
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.verify_tls = verify_tls
        self.ca_cert = ca_cert or None
        self.retries = retries
        self.backoff_factor = backoff_factor

        self.session = session or self._build_session()
        # TLS settings apply to this session only
        self.session.verify = (self.ca_cert or True) if verify_tls else False

        if not verify_tls:
            logger.warning(f"TLS verification is disabled for OPA endpoint {mask_sensitive_info(self.base_url)}")

    @staticmethod
    def _build_session() -> requests.Session:
        session = requests.Session()
        session.headers.update({'User-Agent': NetworkConstants.USER_AGENT})
        return session

    def acl_url(self, key: str) -> str:
        """URL of one ACL entry"""
        return f"{self.base_url}{NetworkConstants.ACL_DATA_PATH}/{quote(key, safe='')}"

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number attempt (1-based)"""
        return self.backoff_factor * (2 ** (attempt - 1))

    def _send(self, method: str, url: str, key: str, data: Optional[str],
              timeout: Optional[float]) -> Tuple[SyncResult, bool]:
        """Send one request, returning its result and whether it may be retried"""
        try:
            with warnings.catch_warnings():
                if not self.verify_tls:
                    warnings.simplefilter('ignore', urllib3.exceptions.InsecureRequestWarning)
                response = self.session.request(method, url, data=data, headers=self.JSON_HEADERS, timeout=timeout)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            logger.warning(f"{method} {key} to OPA failed: {e}")
            return SyncResult(operation=method, key=key, success=False, error=str(e)), True
        except requests.exceptions.RequestException as e:
            logger.error(f"{method} {key} to OPA failed: {e}")
            return SyncResult(operation=method, key=key, success=False, error=str(e)), False

        body = response.text
        if not response.ok:
            logger.warning(f"{method} {key} to OPA returned HTTP {response.status_code}: {body}")
            result = SyncResult(operation=method, key=key, success=False, status_code=response.status_code,
                                error=f"HTTP {response.status_code}", body=body)
            return result, response.status_code in NetworkConstants.RETRY_STATUS_CODES

        logger.debug(f"{method} {key} to OPA succeeded with HTTP {response.status_code}")
        return SyncResult(operation=method, key=key, success=True, status_code=response.status_code, body=body), False

    def _request(self, method: str, url: str, key: str, data: Optional[str] = None,
                 deadline: Optional[Deadline] = None) -> SyncResult:
        """
        Send a request, retrying transient failures within the deadline.

        Every attempt gets the smaller of the client timeout and the remaining
        budget. No retry starts once the budget cannot cover its backoff.

        Raises:
            ReconcileTimeoutError: If the deadline has passed before the first attempt
        """
        result = None
        for attempt in range(self.retries + 1):
            if attempt:
                delay = self.backoff_delay(attempt)
                if deadline is not None:
                    remaining = deadline.remaining()
                    if deadline.expired() or (remaining is not None and remaining <= delay):
                        logger.warning(f"Not retrying {method} {key}: reconciliation deadline reached")
                        break
                logger.info(f"Retrying {method} {key} in {delay:.1f}s (attempt {attempt + 1}/{self.retries + 1})")
                time.sleep(delay)

            timeout = deadline.timeout(self.timeout) if deadline else self.timeout
            result, retryable = self._send(method, url, key, data, timeout)
            if result.success or not retryable:
                break

        if not result.success:
            logger.error(f"{method} {key} to OPA failed: {result.error}")
        return result

    def upsert(self, entry: AclEntry, deadline: Optional[Deadline] = None) -> SyncResult:
        """
        Replace the ACL entry in OPA with the given rules

        Failures are logged and returned, never raised.
        """
        payload = entry.to_json()
        logger.info(f"Updating ACL entry {entry.key} in OPA ({len(entry.rules)} rules)")
        logger.debug(f"ACL entry {entry.key} payload: {payload}")
        return self._request(NetworkConstants.HTTPMethod.PUT.value, self.acl_url(entry.key), entry.key,
                             data=payload, deadline=deadline)

    def remove(self, entry: AclEntry, deadline: Optional[Deadline] = None) -> SyncResult:
        """
        Delete the ACL entry from OPA

        The rule list (empty when purging) is sent as the request body.
        Failures are logged and returned, never raised.
        """
        logger.info(f"Removing ACL entry {entry.key} from OPA")
        return self._request(NetworkConstants.HTTPMethod.DELETE.value, self.acl_url(entry.key), entry.key,
                             data=entry.to_json(), deadline=deadline)

    def get_acls(self, deadline: Optional[Deadline] = None) -> SyncResult:
        """Fetch the whole ACL document for inspection"""
        url = f"{self.base_url}{NetworkConstants.ACL_DATA_PATH}?pretty"
        return self._request(NetworkConstants.HTTPMethod.GET.value, url, "acls", deadline=deadline)

    def close(self) -> None:
        """Close the underlying HTTP session"""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
