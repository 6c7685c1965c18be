"""
Policy Reconciler

Drives one reconciliation of a Policy: fetch it, decide whether RBAC sync is
enabled, resolve placement, extract role bindings, and push or purge the ACL
entry in OPA.
"""

import logging
import threading
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional

from ..core.constants import ControllerConstants, KubernetesConstants
from ..core.exceptions import ResourceNotFoundError, SyncError
from ..core.store import EventRecorder, PolicyStore
from ..core.utils import Deadline, parse_bool
from ..opa.client import OPAClient, SyncResult
from ..placement.resolver import PlacementResolver
from ..rbac.acl import AclAggregator, AclEntry
from ..rbac.extractor import RBACExtractor, TemplateExtraction, TemplateOutcome, describe_extractions

logger = logging.getLogger(__name__)


class ReconcileState(str, Enum):
    """Terminal state of a reconciliation"""
    PURGED = "purged"
    DISABLED = "disabled"
    SYNCED = "synced"

    def __str__(self) -> str:
        return self.value


class ReconcileResult(NamedTuple):
    """Outcome of a reconciliation that did not need a requeue"""
    namespace: str
    name: str
    state: ReconcileState
    entry: Optional[AclEntry] = None
    sync: Optional[SyncResult] = None
    clusters: Optional[List[str]] = None
    extractions: Optional[List[TemplateExtraction]] = None

    @property
    def sync_failed(self) -> bool:
        return self.sync is not None and not self.sync.success


def rbac_sync_enabled(policy: Dict[str, Any]) -> bool:
    """
    Check the process-for-rbac annotation.

    Only a value parsing as boolean true enables sync; a missing, false or
    unparseable value disables it.
    """
    annotations = (policy.get('metadata') or {}).get('annotations') or {}
    value = annotations.get(KubernetesConstants.PROCESS_FOR_RBAC_ANNOTATION)
    if value is None:
        return False

    try:
        return parse_bool(value)
    except ValueError:
        logger.warning(f"Ignoring unparseable {KubernetesConstants.PROCESS_FOR_RBAC_ANNOTATION} value: {value!r}")
        return False


class PolicyReconciler:
    """Reconciles Policy objects into OPA ACL entries"""

    def __init__(self, store: PolicyStore, opa_client: OPAClient,
                 resolver: Optional[PlacementResolver] = None,
                 extractor: Optional[RBACExtractor] = None,
                 aggregator: Optional[AclAggregator] = None,
                 recorder: Optional[EventRecorder] = None,
                 reconcile_timeout: Optional[float] = None,
                 requeue_on_sync_failure: bool = False):
        """
        Initialize the reconciler with dependency injection

        Args:
            store: Object store for Policies and placement resources
            opa_client: Sync client for the OPA ACL document
            resolver: Placement resolver (defaults to one over store)
            extractor: RBAC extractor (defaults to ConfigurationPolicy extraction)
            aggregator: ACL aggregator (defaults to plain namespace+name keys)
            recorder: Event recorder for sync failures (optional)
            reconcile_timeout: Overall time budget per reconciliation in seconds
            requeue_on_sync_failure: Raise SyncError on a failed upsert so the caller requeues
        """
        self.store = store
        self.opa_client = opa_client
        self.resolver = resolver or PlacementResolver(store)
        self.extractor = extractor or RBACExtractor()
        self.aggregator = aggregator or AclAggregator()
        self.recorder = recorder
        self.reconcile_timeout = reconcile_timeout
        self.requeue_on_sync_failure = requeue_on_sync_failure

    def reconcile(self, namespace: str, name: str,
                  stop_event: Optional[threading.Event] = None) -> ReconcileResult:
        """
        Reconcile one Policy.

        Args:
            namespace: Policy namespace
            name: Policy name
            stop_event: Set to abort at the next blocking call (optional)

        Returns:
            ReconcileResult describing what was done

        Raises:
            ObjectStoreError: If reading the Policy or its placement fails (requeue)
            ReconcileTimeoutError: If the deadline passes or a stop is requested (requeue)
            SyncError: If the upsert fails and requeue_on_sync_failure is set
        """
        logger.info(f"Reconciling policy {namespace}/{name}")
        deadline = Deadline(self.reconcile_timeout, stop_event)

        try:
            policy = self.store.get_policy(namespace, name, deadline=deadline)
        except ResourceNotFoundError:
            logger.info(f"Policy {namespace}/{name} not found, may have been deleted; removing its ACL entry")
            entry = self.aggregator.empty_entry(namespace, name)
            sync = self.opa_client.remove(entry, deadline=deadline)
            return ReconcileResult(namespace, name, ReconcileState.PURGED, entry=entry, sync=sync)

        if not rbac_sync_enabled(policy):
            logger.debug(f"Policy {namespace}/{name} is not annotated for RBAC processing")
            return ReconcileResult(namespace, name, ReconcileState.DISABLED)

        logger.info(f"Detected annotation for processing RBAC on policy {namespace}/{name}")

        clusters = self.resolver.resolve_clusters(namespace, name, deadline=deadline)

        extractions = self.extractor.extract(policy)
        triples = self.extractor.extract_triples(policy, extractions)
        logger.debug(f"Policy {namespace}/{name} templates: {describe_extractions(extractions)}")
        self._report_malformed(policy, extractions)

        entry = self.aggregator.build_entry(namespace, name, clusters, triples)
        sync = self.opa_client.upsert(entry, deadline=deadline)

        if not sync.success:
            self._record(policy, "Warning", ControllerConstants.EVENT_REASON_SYNC_FAILED,
                         f"Failed to sync ACL entry {entry.key} to OPA: {sync.error}")
            if self.requeue_on_sync_failure:
                raise SyncError(f"Failed to sync ACL entry {entry.key} for policy {namespace}/{name}: {sync.error}")

        logger.info(f"Completed the reconciliation of policy {namespace}/{name}")
        return ReconcileResult(namespace, name, ReconcileState.SYNCED, entry=entry, sync=sync,
                               clusters=clusters, extractions=extractions)

    def _report_malformed(self, policy: Dict[str, Any], extractions: List[TemplateExtraction]) -> None:
        errors = [f"template {extraction.index}: {error}"
                  for extraction in extractions if extraction.outcome == TemplateOutcome.MALFORMED
                  for error in extraction.errors]
        if errors:
            self._record(policy, "Warning", ControllerConstants.EVENT_REASON_TEMPLATE_MALFORMED,
                         "Malformed RBAC templates: " + "; ".join(errors))

    def _record(self, policy: Dict[str, Any], event_type: str, reason: str, message: str) -> None:
        if self.recorder is not None:
            self.recorder.record(policy, event_type, reason, message)
