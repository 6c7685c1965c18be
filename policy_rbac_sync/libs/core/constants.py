"""
Constants Module

Centralized constants for the Policy RBAC Sync controller to eliminate magic
strings and improve maintainability.
"""

from enum import Enum


class KubernetesConstants:
    """Kubernetes and Open Cluster Management resource constants"""

    DEFAULT_NAMESPACE = "default"

    # API groups
    POLICY_API_GROUP = "policy.open-cluster-management.io"
    PLACEMENT_RULE_API_GROUP = "apps.open-cluster-management.io"

    POLICY_API_VERSION = "v1"
    PLACEMENT_RULE_API_VERSION = "v1"

    # Annotation that opts a Policy into RBAC processing
    PROCESS_FOR_RBAC_ANNOTATION = "policy.open-cluster-management.io/process-for-rbac"

    CONTROLLER_NAME = "policy-rbac-sync"

    class Kind(str, Enum):
        """Resource kinds handled by the controller"""
        POLICY = "Policy"
        PLACEMENT_BINDING = "PlacementBinding"
        PLACEMENT_RULE = "PlacementRule"
        CONFIGURATION_POLICY = "ConfigurationPolicy"

        def __str__(self) -> str:
            return self.value

    class Plural(str, Enum):
        """Plural resource names used with the CustomObjectsApi"""
        POLICIES = "policies"
        PLACEMENT_BINDINGS = "placementbindings"
        PLACEMENT_RULES = "placementrules"

        def __str__(self) -> str:
            return self.value


class PolicyFields:
    """Field names inside Policy and ConfigurationPolicy documents"""

    POLICY_TEMPLATES = "policy-templates"
    OBJECT_TEMPLATES = "object-templates"
    OBJECT_DEFINITION = "objectDefinition"
    PLACEMENT_REF = "placementRef"
    SUBJECTS = "subjects"
    DECISIONS = "decisions"
    CLUSTER_NAME = "clusterName"
    ROLE_REF = "roleRef"


class NetworkConstants:
    """Network-related constants for the OPA sync channel"""

    DEFAULT_OPA_URL = "https://localhost:8181"
    ACL_DATA_PATH = "/v1/data/acls"

    # Timeouts (seconds)
    DEFAULT_TIMEOUT = 100
    DEFAULT_RECONCILE_TIMEOUT = 300

    # Retry settings
    DEFAULT_RETRIES = 3
    DEFAULT_BACKOFF_FACTOR = 0.5
    RETRY_STATUS_CODES = (502, 503, 504)

    USER_AGENT = "policy-rbac-sync/1.0"

    class HTTPMethod(str, Enum):
        """HTTP methods used by the sync client"""
        GET = "GET"
        PUT = "PUT"
        DELETE = "DELETE"

        def __str__(self) -> str:
            return self.value


class ControllerConstants:
    """Reconciliation behaviour constants"""

    class SubjectMode(str, Enum):
        """How role-binding subjects are turned into ACL rules"""
        FIRST = "first"
        EXPAND = "expand"

        def __str__(self) -> str:
            return self.value

    DEFAULT_KEY_SEPARATOR = ""

    # Watch loop requeue settings
    MAX_REQUEUE_ATTEMPTS = 5
    REQUEUE_BASE_DELAY = 1.0
    REQUEUE_MAX_DELAY = 60.0
    WATCH_TIMEOUT_SECONDS = 300

    # Event reasons
    EVENT_REASON_SYNC_FAILED = "RbacSyncFailed"
    EVENT_REASON_TEMPLATE_MALFORMED = "RbacTemplateMalformed"


class FileConstants:
    """File-related constants"""

    DEFAULT_CONFIG_FILE = "policy-rbac-sync-config.yaml"


class ErrorMessages:
    """Centralized error messages"""

    SSL_CERT_VERIFICATION_FAILED = (
        "SSL certificate verification failed. The endpoint appears to use self-signed certificates. "
        "Use --skip-tls (Kubernetes API) or set opa.verify_tls to false (OPA) to bypass verification."
    )
    SSL_CONNECTION_ERROR = "SSL connection error occurred: {error}"

    UNAUTHORIZED = (
        "Unauthorized (401). Verify that your kubeconfig or service account token is valid."
    )
    FORBIDDEN = (
        "Forbidden (403). The controller's service account lacks permissions for the requested resource."
    )

    NOT_AUTHENTICATED = "Kubernetes client not configured. Configure authentication first."
    INVALID_POLICY_REF = "Invalid policy reference '{ref}'. Expected NAMESPACE/NAME."
