"""
Core Utilities

Common utility functions used across the Policy RBAC Sync controller.
"""

import logging
import re
import threading
import time
from typing import Optional, Tuple, Type

import urllib3
from kubernetes.client.rest import ApiException

from .constants import ErrorMessages
from .exceptions import (
    ConfigurationError, ObjectStoreError, PolicySyncError, ReconcileTimeoutError, ResourceNotFoundError
)

logger = logging.getLogger(__name__)

_TRUE_STRINGS = ("1", "t", "T", "TRUE", "true", "True")
_FALSE_STRINGS = ("0", "f", "F", "FALSE", "false", "False")


def setup_logging(debug: bool = False) -> None:
    """
    Set up logging configuration for the application.

    Args:
        debug: Enable debug logging level
    """
    level = logging.DEBUG if debug else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)

    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # The kubernetes client logs full request bodies at DEBUG
    logging.getLogger("kubernetes").setLevel(logging.INFO)

    if debug:
        logger.debug("Debug mode enabled")


def disable_ssl_warnings() -> None:
    """Disable urllib3 insecure request warnings when TLS verification is skipped"""
    urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)


def parse_bool(value: str) -> bool:
    """
    Parse a boolean string the way Kubernetes controllers do.

    Accepts 1, t, T, TRUE, true, True, 0, f, F, FALSE, false, False.

    Args:
        value: String to parse

    Returns:
        bool: Parsed value

    Raises:
        ValueError: If the string is not a recognised boolean
    """
    if value in _TRUE_STRINGS:
        return True
    if value in _FALSE_STRINGS:
        return False
    raise ValueError(f"invalid boolean string: {value!r}")


def parse_policy_ref(ref: str) -> Tuple[str, str]:
    """
    Split a NAMESPACE/NAME policy reference.

    Args:
        ref: Reference in NAMESPACE/NAME form

    Returns:
        Tuple of (namespace, name)

    Raises:
        ConfigurationError: If the reference is malformed
    """
    parts = (ref or "").split("/")
    if len(parts) != 2 or not all(parts):
        raise ConfigurationError(ErrorMessages.INVALID_POLICY_REF.format(ref=ref))

    namespace, name = parts
    validate_namespace(namespace)
    return namespace, name


def validate_namespace(namespace: str) -> bool:
    """
    Validate if the provided string is a valid Kubernetes namespace.

    Args:
        namespace: Kubernetes namespace to validate

    Returns:
        bool: True if valid namespace

    Raises:
        ConfigurationError: If namespace is invalid
    """
    if not namespace or not isinstance(namespace, str):
        raise ConfigurationError("Namespace cannot be empty")

    # Must be lowercase alphanumeric with hyphens, max 63 chars
    if not re.match(r'^[a-z0-9]([-a-z0-9]*[a-z0-9])?$', namespace):
        raise ConfigurationError(f"Invalid Kubernetes namespace format: {namespace}")

    if len(namespace) > 63:
        raise ConfigurationError(f"Namespace too long (max 63 chars): {namespace}")

    return True


def validate_url(url: str) -> bool:
    """
    Validate an http(s) endpoint URL.

    Raises:
        ConfigurationError: If URL is invalid
    """
    if not url or not isinstance(url, str):
        raise ConfigurationError("URL cannot be empty")

    if not re.match(r'^https?:\/\/[a-zA-Z0-9.-]+(?:\:[0-9]+)?(?:\/.*)?$', url):
        raise ConfigurationError(f"Invalid URL format: {url}")

    return True


def mask_sensitive_info(text: str) -> str:
    """
    Mask credentials embedded in text for logging.

    Args:
        text: Text to mask

    Returns:
        Text with bearer tokens, basic auth and URL userinfo masked
    """
    if not text:
        return text

    masked_text = re.sub(r'Bearer [A-Za-z0-9+/=_.-]+', 'Bearer ***MASKED***', text)
    masked_text = re.sub(r'Basic [A-Za-z0-9+/=]+', 'Basic ***MASKED***', masked_text)
    masked_text = re.sub(r'sha256~[A-Za-z0-9_-]+', 'sha256~***MASKED***', masked_text)
    # user:password@host
    masked_text = re.sub(r'(https?://)[^/@\s]+@', r'\1***MASKED***@', masked_text)

    return masked_text


def handle_ssl_error(error: Exception, exception_class: Type[PolicySyncError]) -> None:
    """
    Centralized SSL error handling with user-friendly messages

    Args:
        error: The caught exception
        exception_class: The specific exception class to raise

    Raises:
        PolicySyncError: Appropriate error type with user-friendly message
    """
    error_str = str(error)

    if "certificate verify failed" in error_str or "CERTIFICATE_VERIFY_FAILED" in error_str:
        raise exception_class(ErrorMessages.SSL_CERT_VERIFICATION_FAILED) from error
    elif "SSLError" in error_str or "SSL:" in error_str:
        raise exception_class(ErrorMessages.SSL_CONNECTION_ERROR.format(error=error)) from error
    else:
        raise exception_class(f"Connection error: {error}") from error


def handle_api_error(error: ApiException, context: str) -> None:
    """
    Translate a Kubernetes ApiException into the controller's error types

    Args:
        error: The caught ApiException
        context: Description of the failed operation, e.g. "get Policy default/p1"

    Raises:
        ResourceNotFoundError: For HTTP 404
        ObjectStoreError: For any other failure
    """
    status = getattr(error, "status", None)

    if status == 404:
        raise ResourceNotFoundError(f"Failed to {context}: not found") from error
    if status == 401:
        raise ObjectStoreError(f"Failed to {context}: {ErrorMessages.UNAUTHORIZED}", status=status) from error
    if status == 403:
        raise ObjectStoreError(f"Failed to {context}: {ErrorMessages.FORBIDDEN}", status=status) from error

    reason = getattr(error, "reason", None) or error
    raise ObjectStoreError(f"Failed to {context}: {reason}", status=status) from error


class Deadline:
    """
    Time budget shared by every blocking call of one reconciliation.

    The deadline also carries an optional stop event so that a shutdown
    aborts an in-flight reconciliation at its next blocking call.
    """

    def __init__(self, seconds: Optional[float] = None, stop_event: Optional[threading.Event] = None):
        self.expires_at = time.monotonic() + seconds if seconds else None
        self.stop_event = stop_event

    def remaining(self) -> Optional[float]:
        """Seconds left, or None when unbounded"""
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - time.monotonic())

    def expired(self) -> bool:
        if self.stop_event is not None and self.stop_event.is_set():
            return True
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def timeout(self, cap: Optional[float] = None) -> Optional[float]:
        """
        Timeout to pass to the next blocking call.

        Args:
            cap: Upper bound for this call (e.g. the HTTP timeout)

        Returns:
            The smaller of cap and the remaining budget, or None if both are unbounded

        Raises:
            ReconcileTimeoutError: If the deadline has already passed or a stop was requested
        """
        if self.stop_event is not None and self.stop_event.is_set():
            raise ReconcileTimeoutError("Reconciliation aborted: shutdown requested")

        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise ReconcileTimeoutError("Reconciliation deadline exceeded")

        if remaining is None:
            return cap
        if cap is None:
            return remaining
        return min(cap, remaining)


def handle_transport_error(error: urllib3.exceptions.HTTPError, context: str) -> None:
    """
    Translate a connection-level failure of the Kubernetes client

    Unreachable API servers, timeouts and broken connections surface from the
    client as urllib3 errors rather than ApiException.

    Raises:
        ObjectStoreError: Always, without an HTTP status
    """
    raise ObjectStoreError(f"Failed to {context}: {mask_sensitive_info(str(error))}") from error
