"""
Policy Watcher

Watches Policy resources and reconciles each changed or deleted Policy.
Events are processed one at a time on a single worker, so reconciliations of
the same Policy never overlap.
"""

import logging
import threading
import time
from typing import Any, Dict, Optional, Tuple

import urllib3
from kubernetes import client, watch
from kubernetes.client.rest import ApiException

from ..core.constants import ControllerConstants, KubernetesConstants
from ..core.exceptions import PolicySyncError
from .reconciler import PolicyReconciler

logger = logging.getLogger(__name__)

PolicyKey = Tuple[str, str]


class PolicyWatcher:
    """Event loop turning Policy watch events into reconciliations"""

    HANDLED_EVENTS = ("ADDED", "MODIFIED", "DELETED")

    def __init__(self, reconciler: PolicyReconciler, custom_api: client.CustomObjectsApi,
                 namespace: Optional[str] = None,
                 max_attempts: int = ControllerConstants.MAX_REQUEUE_ATTEMPTS,
                 base_delay: float = ControllerConstants.REQUEUE_BASE_DELAY,
                 max_delay: float = ControllerConstants.REQUEUE_MAX_DELAY,
                 watch_timeout: int = ControllerConstants.WATCH_TIMEOUT_SECONDS):
        """
        Initialize the watcher

        Args:
            reconciler: Reconciler invoked for each event
            custom_api: Kubernetes CustomObjectsApi client
            namespace: Watch a single namespace (optional, defaults to all)
            max_attempts: Reconciliation attempts per Policy before giving up
            base_delay: First requeue delay in seconds, doubled per attempt
            max_delay: Upper bound for the requeue delay
            watch_timeout: Server-side watch timeout, bounds how long requeues wait
        """
        self.reconciler = reconciler
        self.custom_api = custom_api
        self.namespace = namespace or None
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.watch_timeout = watch_timeout

        self.resource_version = None
        self.stop_event = threading.Event()
        self._watch = None
        self._attempts: Dict[PolicyKey, int] = {}
        self._requeue: Dict[PolicyKey, float] = {}

    def _list_function(self):
        if self.namespace:
            return self.custom_api.list_namespaced_custom_object, {'namespace': self.namespace}
        return self.custom_api.list_cluster_custom_object, {}

    def handle(self, namespace: str, name: str) -> bool:
        """
        Reconcile one Policy, scheduling a requeue on failure

        Returns:
            bool: True if the reconciliation succeeded
        """
        key = (namespace, name)
        self._requeue.pop(key, None)

        try:
            self.reconciler.reconcile(namespace, name, stop_event=self.stop_event)
        except PolicySyncError as e:
            attempts = self._attempts.get(key, 0) + 1
            if attempts >= self.max_attempts:
                logger.error(f"Giving up on policy {namespace}/{name} after {attempts} attempts: {e}")
                self._attempts.pop(key, None)
                return False

            delay = min(self.base_delay * (2 ** (attempts - 1)), self.max_delay)
            logger.error(f"Reconciliation of policy {namespace}/{name} failed, requeueing in {delay:.1f}s: {e}")
            self._attempts[key] = attempts
            self._requeue[key] = time.monotonic() + delay
            return False

        self._attempts.pop(key, None)
        return True

    def process_requeues(self) -> int:
        """
        Reconcile every Policy whose requeue delay has passed

        Returns:
            int: Number of Policies reconciled
        """
        now = time.monotonic()
        due = [key for key, due_at in self._requeue.items() if due_at <= now]
        for namespace, name in due:
            if self.stop_event.is_set():
                break
            self.handle(namespace, name)
        return len(due)

    def pending_requeues(self) -> Dict[PolicyKey, float]:
        return dict(self._requeue)

    def handle_event(self, event: Dict[str, Any]) -> bool:
        """
        Process one watch event

        Returns:
            bool: False if the watch must be restarted from scratch
        """
        event_type = event.get('type')
        obj = event.get('object') or {}

        if event_type == 'ERROR':
            code = obj.get('code')
            logger.warning(f"Watch error event: {obj.get('message', obj)}")
            if code == 410:
                self.resource_version = None
            return False

        metadata = obj.get('metadata') or {}
        if metadata.get('resourceVersion'):
            self.resource_version = metadata['resourceVersion']

        if event_type not in self.HANDLED_EVENTS:
            logger.debug(f"Ignoring watch event type {event_type}")
            return True

        namespace = metadata.get('namespace')
        name = metadata.get('name')
        if not namespace or not name:
            logger.warning(f"Ignoring {event_type} event without namespace/name")
            return True

        logger.debug(f"Policy {namespace}/{name} {event_type.lower()}")
        self.handle(namespace, name)
        return True

    def watch_once(self) -> None:
        """Run one watch stream until it times out, errors or is stopped"""
        list_function, kwargs = self._list_function()
        self._watch = watch.Watch()

        try:
            for event in self._watch.stream(
                    list_function,
                    group=KubernetesConstants.POLICY_API_GROUP,
                    version=KubernetesConstants.POLICY_API_VERSION,
                    plural=KubernetesConstants.Plural.POLICIES.value,
                    resource_version=self.resource_version,
                    timeout_seconds=self.watch_timeout,
                    **kwargs):
                if self.stop_event.is_set():
                    break
                if not self.handle_event(event):
                    break
                self.process_requeues()
        except ApiException as e:
            if e.status == 410:
                logger.info("Watch resource version expired, restarting from the latest state")
                self.resource_version = None
            else:
                logger.error(f"Policy watch failed: {e.reason}")
                self.stop_event.wait(self.base_delay)
        except urllib3.exceptions.HTTPError as e:
            logger.error(f"Policy watch connection failed: {e}")
            self.stop_event.wait(self.base_delay)
        finally:
            self._watch.stop()

    def run(self) -> None:
        """Watch Policies until stop() is called"""
        scope = f"namespace {self.namespace}" if self.namespace else "all namespaces"
        logger.info(f"Watching policies in {scope}")

        while not self.stop_event.is_set():
            self.watch_once()
            self.process_requeues()

        logger.info("Policy watcher stopped")

    def stop(self) -> None:
        """Request the watch loop and any in-flight reconciliation to stop"""
        self.stop_event.set()
        if self._watch is not None:
            self._watch.stop()
