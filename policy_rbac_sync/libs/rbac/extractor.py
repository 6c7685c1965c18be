"""
RBAC Extractor

Walks the policy templates embedded in a Policy and recovers role-binding
(subjects, role, namespace) triples from ConfigurationPolicy object templates.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional

import yaml

from ..core.constants import KubernetesConstants, PolicyFields

logger = logging.getLogger(__name__)


class TemplateOutcome(str, Enum):
    """Result of processing one policy template"""
    PARSED = "parsed"
    SKIPPED_WRONG_KIND = "skipped_wrong_kind"
    MALFORMED = "malformed"

    def __str__(self) -> str:
        return self.value


class RoleBindingTriple(NamedTuple):
    """Role binding facts extracted from one object template"""
    subjects: List[str]
    role: str
    namespace: str

    @classmethod
    def empty(cls) -> 'RoleBindingTriple':
        """Default triple used in place of a document that could not be read"""
        return cls(subjects=[], role="", namespace="")


class TemplateExtraction(NamedTuple):
    """Extraction result for one policy template"""
    index: int
    outcome: TemplateOutcome
    triples: List[RoleBindingTriple]
    errors: List[str]


class MalformedDocumentError(ValueError):
    """Raised internally when an embedded document has an unexpected shape"""


def load_document(definition: Any) -> Dict[str, Any]:
    """
    Read an embedded object definition as a mapping.

    Definitions returned by the Kubernetes API are already mappings; raw
    JSON or YAML strings are also accepted.

    Raises:
        MalformedDocumentError: If the definition is not a mapping
    """
    if isinstance(definition, (str, bytes)):
        try:
            definition = yaml.safe_load(definition)
        except yaml.YAMLError as e:
            raise MalformedDocumentError(f"cannot parse embedded document: {e}")

    if not isinstance(definition, dict):
        raise MalformedDocumentError(f"embedded document is a {type(definition).__name__}, not a mapping")

    return definition


def _string_field(value: Any, field: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise MalformedDocumentError(f"{field} must be a string")
    return value


def parse_role_binding(definition: Any) -> RoleBindingTriple:
    """
    Read an object definition as a RoleBinding

    Raises:
        MalformedDocumentError: If the document does not have RoleBinding shape
    """
    document = load_document(definition)

    subjects = document.get(PolicyFields.SUBJECTS) or []
    if not isinstance(subjects, list):
        raise MalformedDocumentError("subjects must be a list")

    subject_names = []
    for subject in subjects:
        if not isinstance(subject, dict):
            raise MalformedDocumentError("subject entries must be mappings")
        subject_names.append(_string_field(subject.get('name'), "subjects[].name"))

    role_ref = document.get(PolicyFields.ROLE_REF) or {}
    metadata = document.get('metadata') or {}
    if not isinstance(role_ref, dict) or not isinstance(metadata, dict):
        raise MalformedDocumentError("roleRef and metadata must be mappings")

    return RoleBindingTriple(
        subjects=subject_names,
        role=_string_field(role_ref.get('name'), "roleRef.name"),
        namespace=_string_field(metadata.get('namespace'), "metadata.namespace")
    )


class RBACExtractor:
    """Extracts role-binding triples from a Policy's templates"""

    def __init__(self, template_kind: str = KubernetesConstants.Kind.CONFIGURATION_POLICY.value):
        """
        Initialize the extractor

        Args:
            template_kind: Policy template kind whose object templates are inspected
        """
        self.template_kind = template_kind

    @staticmethod
    def policy_templates(policy: Dict[str, Any]) -> List[Any]:
        """Return the raw policy-templates list of a Policy"""
        spec = policy.get('spec') or {}
        templates = spec.get(PolicyFields.POLICY_TEMPLATES) if isinstance(spec, dict) else None
        return templates if isinstance(templates, list) else []

    def extract_template(self, index: int, template: Any) -> TemplateExtraction:
        """
        Process one policy template.

        Object templates that cannot be read still contribute an empty triple so
        the rule count stays clusters x object templates; the template is then
        reported as malformed.
        """
        definition = template.get(PolicyFields.OBJECT_DEFINITION) if isinstance(template, dict) else None

        try:
            document = load_document(definition)
        except MalformedDocumentError as e:
            logger.warning(f"Policy template {index} is malformed: {e}")
            return TemplateExtraction(index, TemplateOutcome.MALFORMED, [], [str(e)])

        kind = document.get('kind')
        if kind != self.template_kind:
            logger.debug(f"Policy template {index} has kind {kind!r}, skipping")
            return TemplateExtraction(index, TemplateOutcome.SKIPPED_WRONG_KIND, [], [])

        spec = document.get('spec') or {}
        object_templates = (spec.get(PolicyFields.OBJECT_TEMPLATES) or []) if isinstance(spec, dict) else None
        if not isinstance(object_templates, list):
            error = f"spec.{PolicyFields.OBJECT_TEMPLATES} must be a list"
            logger.warning(f"Policy template {index} is malformed: {error}")
            return TemplateExtraction(index, TemplateOutcome.MALFORMED, [], [error])

        triples = []
        errors = []
        for object_index, object_template in enumerate(object_templates):
            object_definition = (object_template.get(PolicyFields.OBJECT_DEFINITION)
                                 if isinstance(object_template, dict) else None)
            try:
                triple = parse_role_binding(object_definition)
            except MalformedDocumentError as e:
                errors.append(f"object template {object_index}: {e}")
                logger.warning(f"Policy template {index} object template {object_index} is malformed: {e}")
                triple = RoleBindingTriple.empty()

            logger.debug(f"Subjects: {triple.subjects} Role: {triple.role} Namespace: {triple.namespace}")
            triples.append(triple)

        outcome = TemplateOutcome.MALFORMED if errors else TemplateOutcome.PARSED
        return TemplateExtraction(index, outcome, triples, errors)

    def extract(self, policy: Dict[str, Any]) -> List[TemplateExtraction]:
        """
        Process every policy template of a Policy in order

        Returns:
            One TemplateExtraction per policy template
        """
        return [self.extract_template(index, template)
                for index, template in enumerate(self.policy_templates(policy))]

    def extract_triples(self, policy: Dict[str, Any],
                        extractions: Optional[List[TemplateExtraction]] = None) -> List[RoleBindingTriple]:
        """
        Flatten the triples of every ConfigurationPolicy template in template order

        Args:
            policy: Policy object
            extractions: Previously computed extractions (optional)
        """
        if extractions is None:
            extractions = self.extract(policy)
        return [triple for extraction in extractions for triple in extraction.triples]


def describe_extractions(extractions: List[TemplateExtraction]) -> str:
    """Summarize outcomes for logging, e.g. 'parsed=1 skipped_wrong_kind=2 malformed=0'"""
    counts = {outcome: 0 for outcome in TemplateOutcome}
    for extraction in extractions:
        counts[extraction.outcome] += 1
    return " ".join(f"{outcome.value}={count}" for outcome, count in counts.items())
