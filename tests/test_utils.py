"""
Core Utility Tests
"""

import threading
import time
from unittest.mock import patch

import pytest
from kubernetes.client.rest import ApiException

from policy_rbac_sync.libs.core.constants import ErrorMessages
from policy_rbac_sync.libs.core.exceptions import (
    AuthenticationError, ConfigurationError, ObjectStoreError, ReconcileTimeoutError, ResourceNotFoundError
)
from policy_rbac_sync.libs.core.utils import (
    Deadline, handle_api_error, handle_ssl_error, mask_sensitive_info, parse_bool, parse_policy_ref,
    validate_namespace, validate_url
)


class TestParseBool:
    """Test boolean string parsing"""

    @pytest.mark.parametrize("value", ["1", "t", "T", "TRUE", "true", "True"])
    def test_true_strings(self, value):
        assert parse_bool(value) is True

    @pytest.mark.parametrize("value", ["0", "f", "F", "FALSE", "false", "False"])
    def test_false_strings(self, value):
        assert parse_bool(value) is False

    @pytest.mark.parametrize("value", ["yes", "no", "tRuE", "", "2"])
    def test_other_strings_are_rejected(self, value):
        with pytest.raises(ValueError):
            parse_bool(value)


class TestValidation:
    """Test input validation helpers"""

    def test_parse_policy_ref(self):
        assert parse_policy_ref("default/p1") == ("default", "p1")

    @pytest.mark.parametrize("ref", ["p1", "default/", "/p1", "a/b/c", "", "Bad/p1"])
    def test_parse_policy_ref_rejects_malformed(self, ref):
        with pytest.raises(ConfigurationError):
            parse_policy_ref(ref)

    def test_valid_namespace(self):
        assert validate_namespace("open-cluster-management") is True

    def test_namespace_too_long(self):
        with pytest.raises(ConfigurationError, match="too long"):
            validate_namespace("a" * 64)

    @pytest.mark.parametrize("url", ["https://localhost:8181", "http://opa.opa.svc", "https://10.0.0.1:8181/base"])
    def test_valid_urls(self, url):
        assert validate_url(url) is True

    @pytest.mark.parametrize("url", ["", "localhost:8181", "ftp://opa"])
    def test_invalid_urls(self, url):
        with pytest.raises(ConfigurationError):
            validate_url(url)


class TestMasking:
    """Test sensitive information masking"""

    def test_bearer_token_is_masked(self):
        assert mask_sensitive_info("Authorization: Bearer abc.def") == "Authorization: Bearer ***MASKED***"

    def test_openshift_token_is_masked(self):
        assert "sha256~secret" not in mask_sensitive_info("token sha256~secret")

    def test_url_credentials_are_masked(self):
        assert mask_sensitive_info("https://admin:pw@opa:8181") == "https://***MASKED***@opa:8181"

    def test_empty_text(self):
        assert mask_sensitive_info("") == ""


class TestErrorTranslation:
    """Test translation of client errors into controller errors"""

    def test_not_found(self):
        with pytest.raises(ResourceNotFoundError) as exc_info:
            handle_api_error(ApiException(status=404, reason="Not Found"), "get Policy default/p1")

        assert exc_info.value.status == 404
        assert "get Policy default/p1" in str(exc_info.value)

    def test_forbidden(self):
        with pytest.raises(ObjectStoreError) as exc_info:
            handle_api_error(ApiException(status=403, reason="Forbidden"), "list PlacementBindings in default")

        assert not isinstance(exc_info.value, ResourceNotFoundError)
        assert exc_info.value.status == 403
        assert ErrorMessages.FORBIDDEN in str(exc_info.value)

    def test_server_error(self):
        with pytest.raises(ObjectStoreError, match="Internal Server Error") as exc_info:
            handle_api_error(ApiException(status=500, reason="Internal Server Error"), "get Policy default/p1")

        assert exc_info.value.status == 500

    def test_ssl_certificate_error(self):
        with pytest.raises(AuthenticationError) as exc_info:
            handle_ssl_error(Exception("[SSL: CERTIFICATE_VERIFY_FAILED] certificate verify failed"),
                             AuthenticationError)

        assert "SSL certificate verification failed" in str(exc_info.value)

    def test_generic_connection_error(self):
        with pytest.raises(AuthenticationError, match="Connection error"):
            handle_ssl_error(Exception("Connection refused"), AuthenticationError)


class TestDeadline:
    """Test reconciliation deadlines"""

    def test_unbounded_deadline_returns_cap(self):
        deadline = Deadline()

        assert deadline.timeout(100) == 100
        assert deadline.timeout() is None
        assert deadline.expired() is False

    def test_bounded_deadline_caps_timeout(self):
        deadline = Deadline(5)

        assert 0 < deadline.timeout(100) <= 5
        assert deadline.timeout(1) == 1

    def test_expired_deadline_raises(self):
        with patch('policy_rbac_sync.libs.core.utils.time') as mock_time:
            mock_time.monotonic.side_effect = [0.0, 10.0]
            deadline = Deadline(5)

            with pytest.raises(ReconcileTimeoutError, match="deadline exceeded"):
                deadline.timeout(100)

    def test_stop_event_raises(self):
        stop_event = threading.Event()
        deadline = Deadline(60, stop_event)
        stop_event.set()

        assert deadline.expired() is True
        with pytest.raises(ReconcileTimeoutError, match="shutdown"):
            deadline.timeout(100)

    def test_remaining_decreases(self):
        deadline = Deadline(60)
        first = deadline.remaining()
        time.sleep(0.01)

        assert deadline.remaining() < first
