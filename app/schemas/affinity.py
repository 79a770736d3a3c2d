"""Placement affinity facts.

Mirrors the ``core/v1`` affinity types that matter to placement rules. Only
the ``requiredDuringSchedulingIgnoredDuringExecution`` halves are modelled;
every field except :attr:`NodeSelector.terms`, :attr:`Requirement.key`,
:attr:`Requirement.operator` and :attr:`PodAffinityTerm.topology_key` is
optional, and ``None`` always means "absent in the source object".
"""

from typing import Dict, List, Optional

from schemas.metadata import FactModel


class Requirement(FactModel):
    """``key <operator> values`` - shared by node and label selectors."""

    key: str
    operator: str
    values: Optional[List[str]] = None


class NodeSelectorTerm(FactModel):
    match_expressions: Optional[List[Requirement]] = None
    match_fields: Optional[List[Requirement]] = None


class NodeSelector(FactModel):
    terms: List[NodeSelectorTerm]  # required once the selector exists, may be empty


class NodeAffinity(FactModel):
    required: Optional[NodeSelector] = None


class LabelSelector(FactModel):
    match_expressions: Optional[List[Requirement]] = None
    match_labels: Optional[Dict[str, str]] = None


class PodAffinityTerm(FactModel):
    label_selector: Optional[LabelSelector] = None
    namespace_selector: Optional[LabelSelector] = None
    namespaces: Optional[List[str]] = None
    topology_key: str


class PodAffinity(FactModel):
    """Used for both ``pod_affinity`` and ``pod_anti_affinity``."""

    required: Optional[List[PodAffinityTerm]] = None


class Affinity(FactModel):
    node_affinity: Optional[NodeAffinity] = None
    pod_affinity: Optional[PodAffinity] = None
    pod_anti_affinity: Optional[PodAffinity] = None
