"""
RBAC Libraries

Extracts role bindings from Policies and aggregates them into ACL entries.
"""

from .acl import AclAggregator, AclEntry, AclRule, make_key
from .extractor import RBACExtractor, RoleBindingTriple, TemplateExtraction, TemplateOutcome

__all__ = [
    'AclAggregator',
    'AclEntry',
    'AclRule',
    'make_key',
    'RBACExtractor',
    'RoleBindingTriple',
    'TemplateExtraction',
    'TemplateOutcome'
]
