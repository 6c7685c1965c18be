"""
Placement Resolver

Maps a Policy to the managed clusters it is placed on by following
PlacementBinding -> PlacementRule -> decision chains.
"""

import logging
from typing import Any, Dict, List

from ..core.constants import KubernetesConstants, PolicyFields
from ..core.store import PolicyStore
from ..core.utils import Deadline

logger = logging.getLogger(__name__)


class PlacementResolver:
    """Resolves the ordered list of managed clusters a Policy is bound to"""

    def __init__(self, store: PolicyStore):
        """
        Initialize placement resolver

        Args:
            store: Object store used to read bindings and placement rules
        """
        self.store = store

    @staticmethod
    def subject_matches(subject: Dict[str, Any], policy_name: str) -> bool:
        """Check whether a binding subject references the named Policy by group, kind and name"""
        return (subject.get('apiGroup') == KubernetesConstants.POLICY_API_GROUP
                and subject.get('kind') == KubernetesConstants.Kind.POLICY.value
                and subject.get('name') == policy_name)

    @staticmethod
    def targets_placement_rule(binding: Dict[str, Any]) -> bool:
        """Check whether a PlacementBinding's placementRef points at a PlacementRule"""
        placement_ref = binding.get(PolicyFields.PLACEMENT_REF) or {}
        return (placement_ref.get('apiGroup') == KubernetesConstants.PLACEMENT_RULE_API_GROUP
                and placement_ref.get('kind') == KubernetesConstants.Kind.PLACEMENT_RULE.value)

    def resolve_clusters(self, namespace: str, policy_name: str, deadline: Deadline = None) -> List[str]:
        """
        Resolve the managed clusters a Policy is placed on.

        Cluster names are returned in encounter order (bindings in list order,
        decisions in list order) and are not deduplicated: a cluster decided
        by two PlacementRules bound to the same Policy appears twice.

        Args:
            namespace: Policy namespace
            policy_name: Policy name
            deadline: Optional reconciliation deadline

        Returns:
            List of managed cluster names

        Raises:
            ObjectStoreError: If listing bindings or reading a PlacementRule fails,
                including a referenced PlacementRule that does not exist
        """
        managed_clusters = []

        for binding in self.store.list_placement_bindings(namespace, deadline=deadline):
            binding_name = (binding.get('metadata') or {}).get('name', '')

            # Every matching subject entry triggers its own lookup
            for subject in binding.get(PolicyFields.SUBJECTS) or []:
                if not self.subject_matches(subject, policy_name):
                    continue

                logger.debug(f"Found {KubernetesConstants.Kind.PLACEMENT_BINDING.value} {namespace}/{binding_name} "
                             f"for policy {policy_name}")

                if not self.targets_placement_rule(binding):
                    logger.debug(f"Placement binding {namespace}/{binding_name} does not reference a PlacementRule")
                    continue

                rule_name = binding[PolicyFields.PLACEMENT_REF].get('name', '')
                placement_rule = self.store.get_placement_rule(namespace, rule_name, deadline=deadline)

                decisions = (placement_rule.get('status') or {}).get(PolicyFields.DECISIONS) or []
                clusters = [decision.get(PolicyFields.CLUSTER_NAME, '') for decision in decisions]
                logger.debug(f"PlacementRule {namespace}/{rule_name} decisions: {clusters}")

                managed_clusters.extend(clusters)

        logger.info(f"Policy {namespace}/{policy_name} is placed on clusters: {managed_clusters}")
        return managed_clusters
