"""
ACL Aggregator

Combines resolved managed clusters with extracted role-binding triples into a
keyed ACL entry, the unit synchronized into OPA.
"""

import json
import logging
from typing import Dict, List, NamedTuple

from ..core.constants import ControllerConstants
from ..core.exceptions import ConfigurationError
from .extractor import RoleBindingTriple

logger = logging.getLogger(__name__)


class AclRule(NamedTuple):
    """One subject x managed cluster x namespace x role fact"""
    subject: str
    managed_cluster: str
    namespace: str
    role: str

    def to_dict(self) -> Dict[str, str]:
        """Wire representation stored in OPA"""
        return {
            'user': self.subject,
            'managedcluster': self.managed_cluster,
            'namespace': self.namespace,
            'role': self.role
        }


class AclEntry(NamedTuple):
    """All ACL rules derived from one Policy"""
    key: str
    rules: List[AclRule]

    def to_json(self) -> str:
        """
        Serialize the rule list as the request body.

        Output is compact and field-ordered so identical entries always
        produce byte-identical bodies.
        """
        return json.dumps([rule.to_dict() for rule in self.rules], separators=(',', ':'))


def make_key(namespace: str, name: str, separator: str = ControllerConstants.DEFAULT_KEY_SEPARATOR) -> str:
    """
    Build the ACL entry key for a Policy.

    With the default empty separator the key is the plain concatenation
    namespace + name, so policies ab/c and a/bc share a key. A separator that
    cannot appear in Kubernetes names, such as "_", makes keys unique.
    """
    return f"{namespace}{separator}{name}"


class AclAggregator:
    """Builds ACL entries from clusters and role-binding triples"""

    def __init__(self, key_separator: str = ControllerConstants.DEFAULT_KEY_SEPARATOR,
                 subject_mode: str = ControllerConstants.SubjectMode.FIRST.value):
        """
        Initialize the aggregator

        Args:
            key_separator: Separator placed between namespace and name in entry keys
            subject_mode: 'first' uses only the first subject of each triple,
                'expand' emits one rule per subject

        Raises:
            ConfigurationError: If subject_mode is unknown
        """
        try:
            self.subject_mode = ControllerConstants.SubjectMode(subject_mode)
        except ValueError:
            raise ConfigurationError(f"Unknown subject mode: {subject_mode}")
        self.key_separator = key_separator

    def subjects_for(self, triple: RoleBindingTriple) -> List[str]:
        if self.subject_mode == ControllerConstants.SubjectMode.EXPAND:
            return list(triple.subjects)
        # A binding without subjects still yields one rule with an empty subject
        return [triple.subjects[0] if triple.subjects else ""]

    def empty_entry(self, namespace: str, name: str) -> AclEntry:
        """Entry with no rules, used to purge a deleted Policy"""
        return AclEntry(key=make_key(namespace, name, self.key_separator), rules=[])

    def build_entry(self, namespace: str, name: str, clusters: List[str],
                    triples: List[RoleBindingTriple]) -> AclEntry:
        """
        Build the ACL entry for a Policy.

        Rules are the Cartesian product of clusters (outer loop) and triples
        (inner loop). Nothing is filtered or deduplicated.

        Args:
            namespace: Policy namespace
            name: Policy name
            clusters: Resolved managed cluster names
            triples: Extracted role-binding triples in template order

        Returns:
            AclEntry for the Policy
        """
        rules = [
            AclRule(subject=subject, managed_cluster=cluster, namespace=triple.namespace, role=triple.role)
            for cluster in clusters
            for triple in triples
            for subject in self.subjects_for(triple)
        ]

        entry = AclEntry(key=make_key(namespace, name, self.key_separator), rules=rules)
        logger.debug(f"Built ACL entry {entry.key} with {len(rules)} rules "
                     f"({len(clusters)} clusters x {len(triples)} role bindings)")
        return entry
