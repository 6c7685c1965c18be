"""
Object Store

Typed read access to Policy, PlacementBinding and PlacementRule resources,
plus Kubernetes Event recording on Policies.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import urllib3
from kubernetes import client
from kubernetes.client.rest import ApiException

from .constants import KubernetesConstants
from .utils import Deadline, handle_api_error, handle_transport_error

logger = logging.getLogger(__name__)


class PolicyStore:
    """Reads Open Cluster Management resources through the CustomObjectsApi"""

    def __init__(self, custom_api: client.CustomObjectsApi):
        """
        Initialize the store

        Args:
            custom_api: Kubernetes CustomObjectsApi client
        """
        self.custom_api = custom_api

    @staticmethod
    def _request_kwargs(deadline: Optional[Deadline]) -> Dict[str, Any]:
        if deadline is None:
            return {}
        timeout = deadline.timeout()
        return {'_request_timeout': timeout} if timeout is not None else {}

    def get_policy(self, namespace: str, name: str, deadline: Deadline = None) -> Dict[str, Any]:
        """
        Get a Policy by identity

        Raises:
            ResourceNotFoundError: If the Policy does not exist
            ObjectStoreError: For any other read failure
        """
        try:
            return self.custom_api.get_namespaced_custom_object(
                group=KubernetesConstants.POLICY_API_GROUP,
                version=KubernetesConstants.POLICY_API_VERSION,
                namespace=namespace,
                plural=KubernetesConstants.Plural.POLICIES.value,
                name=name,
                **self._request_kwargs(deadline)
            )
        except ApiException as e:
            handle_api_error(e, f"get Policy {namespace}/{name}")
        except urllib3.exceptions.HTTPError as e:
            handle_transport_error(e, f"get Policy {namespace}/{name}")

    def list_placement_bindings(self, namespace: str, deadline: Deadline = None) -> List[Dict[str, Any]]:
        """
        List PlacementBindings in a namespace

        Raises:
            ObjectStoreError: If listing fails
        """
        logger.debug(f"Getting the placement bindings in namespace {namespace}")
        try:
            result = self.custom_api.list_namespaced_custom_object(
                group=KubernetesConstants.POLICY_API_GROUP,
                version=KubernetesConstants.POLICY_API_VERSION,
                namespace=namespace,
                plural=KubernetesConstants.Plural.PLACEMENT_BINDINGS.value,
                **self._request_kwargs(deadline)
            )
        except ApiException as e:
            handle_api_error(e, f"list PlacementBindings in {namespace}")
        except urllib3.exceptions.HTTPError as e:
            handle_transport_error(e, f"list PlacementBindings in {namespace}")

        return result.get('items') or []

    def get_placement_rule(self, namespace: str, name: str, deadline: Deadline = None) -> Dict[str, Any]:
        """
        Get a PlacementRule by identity

        Raises:
            ResourceNotFoundError: If the PlacementRule does not exist
            ObjectStoreError: For any other read failure
        """
        try:
            return self.custom_api.get_namespaced_custom_object(
                group=KubernetesConstants.PLACEMENT_RULE_API_GROUP,
                version=KubernetesConstants.PLACEMENT_RULE_API_VERSION,
                namespace=namespace,
                plural=KubernetesConstants.Plural.PLACEMENT_RULES.value,
                name=name,
                **self._request_kwargs(deadline)
            )
        except ApiException as e:
            handle_api_error(e, f"get PlacementRule {namespace}/{name}")
        except urllib3.exceptions.HTTPError as e:
            handle_transport_error(e, f"get PlacementRule {namespace}/{name}")


class EventRecorder:
    """Records core/v1 Events against Policy objects"""

    def __init__(self, core_api: client.CoreV1Api, component: str = KubernetesConstants.CONTROLLER_NAME):
        self.core_api = core_api
        self.component = component

    def record(self, policy: Dict[str, Any], event_type: str, reason: str, message: str) -> bool:
        """
        Create an Event referencing the given Policy.

        Event recording is best effort: failures are logged and reported via
        the return value.

        Args:
            policy: Policy object as returned by PolicyStore.get_policy
            event_type: "Normal" or "Warning"
            reason: Short CamelCase reason
            message: Human readable message

        Returns:
            bool: True if the Event was created
        """
        metadata = policy.get('metadata') or {}
        namespace = metadata.get('namespace', KubernetesConstants.DEFAULT_NAMESPACE)
        name = metadata.get('name', '')
        now = datetime.now(timezone.utc)

        event = client.CoreV1Event(
            metadata=client.V1ObjectMeta(generate_name=f"{name}.", namespace=namespace),
            involved_object=client.V1ObjectReference(
                api_version=policy.get('apiVersion',
                                       f"{KubernetesConstants.POLICY_API_GROUP}/{KubernetesConstants.POLICY_API_VERSION}"),
                kind=KubernetesConstants.Kind.POLICY.value,
                name=name,
                namespace=namespace,
                uid=metadata.get('uid'),
                resource_version=metadata.get('resourceVersion')
            ),
            reason=reason,
            message=message,
            type=event_type,
            source=client.V1EventSource(component=self.component),
            first_timestamp=now,
            last_timestamp=now,
            count=1
        )

        try:
            self.core_api.create_namespaced_event(namespace=namespace, body=event)
            logger.debug(f"Recorded {event_type} event {reason} on policy {namespace}/{name}")
            return True
        except ApiException as e:
            logger.warning(f"Failed to record event {reason} on policy {namespace}/{name}: {e.reason}")
            return False
        except urllib3.exceptions.HTTPError as e:
            logger.warning(f"Failed to record event {reason} on policy {namespace}/{name}: {e}")
            return False