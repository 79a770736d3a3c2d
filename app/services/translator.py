"""Projection of raw Kubernetes objects onto input facts.

Every function here is pure: it reads the camelCase JSON mapping the API
server sent and builds the matching fact model. An optional sub-structure is
only visited when its key is present and not ``null``; otherwise the fact
field stays ``None``. Empty optional lists and maps collapse to ``None`` as
well, with one exception: :attr:`NodeSelector.terms` is required, so a present
node selector always gets a (possibly empty) list.

Unknown keys are ignored. Input that is structurally wrong (an object where a
list is expected, a requirement without ``key`` ...) raises
:class:`TranslationSkip` instead of producing a partial fact.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, TypeVar

from pydantic import ValidationError

from schemas.affinity import (
    Affinity,
    LabelSelector,
    NodeAffinity,
    NodeSelector,
    NodeSelectorTerm,
    PodAffinity,
    PodAffinityTerm,
    Requirement,
)
from schemas.facts import Fact, HostFact, HostSpec, WorkloadFact, WorkloadSpec
from schemas.metadata import ResourceMeta, WorkloadMeta
from services.errors import TranslationSkip

__all__ = [
    "translate",
    "translate_workload",
    "translate_host",
    "translate_metadata",
    "translate_affinity",
    "translate_requirement",
    "translate_label_selector",
    "translate_node_selector_term",
    "translate_pod_affinity_term",
]

Resource = Mapping[str, Any]
T = TypeVar("T")

_REQUIRED = "requiredDuringSchedulingIgnoredDuringExecution"


# ------------------------------------------------------------------ checks --
def _object(value: Any, path: str) -> Resource:
    if not isinstance(value, Mapping):
        raise TranslationSkip(
            f"{path}: expected an object, got {type(value).__name__}"
        )
    return value


def _string(value: Any, path: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise TranslationSkip(
            f"{path}: expected a string, got {type(value).__name__}"
        )
    return value


def _required_string(obj: Resource, key: str, path: str) -> str:
    value = _string(obj.get(key), f"{path}.{key}")
    if value is None:
        raise TranslationSkip(f"{path}.{key}: required field is missing")
    return value


def _list(value: Any, path: str) -> List[Any]:
    if not isinstance(value, list):
        raise TranslationSkip(f"{path}: expected a list, got {type(value).__name__}")
    return value


def _strings(value: Any, path: str) -> Optional[List[str]]:
    if value is None:
        return None
    result: List[str] = []
    for i, item in enumerate(_list(value, path)):
        text = _string(item, f"{path}[{i}]")
        if text is None:
            raise TranslationSkip(f"{path}[{i}]: null entry in a string list")
        result.append(text)
    return result or None


def _string_map(value: Any, path: str) -> Optional[Dict[str, str]]:
    if value is None:
        return None
    result: Dict[str, str] = {}
    for k, v in _object(value, path).items():
        text = _string(v, f"{path}.{k}")
        if text is None:
            raise TranslationSkip(f"{path}.{k}: null value in a string map")
        result[str(k)] = text
    return result or None


def _optional(
    value: Any, path: str, fn: Callable[[Resource, str], T]
) -> Optional[T]:
    """Translate an optional object; ``None`` stays ``None``, ``{}`` does not."""
    if value is None:
        return None
    return fn(_object(value, path), path)


def _each(
    value: Any, path: str, fn: Callable[[Resource, str], T]
) -> Optional[List[T]]:
    """Translate every entry of an optional list, keeping source order."""
    if value is None:
        return None
    result = [
        fn(_object(item, f"{path}[{i}]"), f"{path}[{i}]")
        for i, item in enumerate(_list(value, path))
    ]
    return result or None


# --------------------------------------------------------- shared helpers --
def translate_requirement(raw: Resource, path: str = "requirement") -> Requirement:
    """Node selector and label selector requirements share one shape."""
    return Requirement(
        key=_required_string(raw, "key", path),
        operator=_required_string(raw, "operator", path),
        values=_strings(raw.get("values"), f"{path}.values"),
    )


def translate_label_selector(
    raw: Resource, path: str = "labelSelector"
) -> LabelSelector:
    return LabelSelector(
        match_expressions=_each(
            raw.get("matchExpressions"),
            f"{path}.matchExpressions",
            translate_requirement,
        ),
        match_labels=_string_map(raw.get("matchLabels"), f"{path}.matchLabels"),
    )


def translate_node_selector_term(
    raw: Resource, path: str = "nodeSelectorTerm"
) -> NodeSelectorTerm:
    return NodeSelectorTerm(
        match_expressions=_each(
            raw.get("matchExpressions"),
            f"{path}.matchExpressions",
            translate_requirement,
        ),
        match_fields=_each(
            raw.get("matchFields"), f"{path}.matchFields", translate_requirement
        ),
    )


def translate_pod_affinity_term(
    raw: Resource, path: str = "podAffinityTerm"
) -> PodAffinityTerm:
    return PodAffinityTerm(
        label_selector=_optional(
            raw.get("labelSelector"),
            f"{path}.labelSelector",
            translate_label_selector,
        ),
        namespace_selector=_optional(
            raw.get("namespaceSelector"),
            f"{path}.namespaceSelector",
            translate_label_selector,
        ),
        namespaces=_strings(raw.get("namespaces"), f"{path}.namespaces"),
        topology_key=_required_string(raw, "topologyKey", path),
    )


# --------------------------------------------------------------- affinity --
def _node_selector(raw: Resource, path: str) -> NodeSelector:
    terms = _each(
        raw.get("nodeSelectorTerms"),
        f"{path}.nodeSelectorTerms",
        translate_node_selector_term,
    )
    return NodeSelector(terms=terms or [])


def _node_affinity(raw: Resource, path: str) -> NodeAffinity:
    return NodeAffinity(
        required=_optional(raw.get(_REQUIRED), f"{path}.{_REQUIRED}", _node_selector)
    )


def _pod_affinity(raw: Resource, path: str) -> PodAffinity:
    return PodAffinity(
        required=_each(
            raw.get(_REQUIRED), f"{path}.{_REQUIRED}", translate_pod_affinity_term
        )
    )


def translate_affinity(raw: Resource, path: str = "affinity") -> Affinity:
    return Affinity(
        node_affinity=_optional(
            raw.get("nodeAffinity"), f"{path}.nodeAffinity", _node_affinity
        ),
        pod_affinity=_optional(
            raw.get("podAffinity"), f"{path}.podAffinity", _pod_affinity
        ),
        pod_anti_affinity=_optional(
            raw.get("podAntiAffinity"), f"{path}.podAntiAffinity", _pod_affinity
        ),
    )


# --------------------------------------------------------------- metadata --
def _meta_fields(raw: Resource) -> Dict[str, Optional[str]]:
    return {
        "name": _string(raw.get("name"), "metadata.name"),
        "cluster_name": _string(raw.get("clusterName"), "metadata.clusterName"),
        "namespace": _string(raw.get("namespace"), "metadata.namespace"),
        "uid": _string(raw.get("uid"), "metadata.uid"),
    }


def translate_metadata(raw: Resource) -> ResourceMeta:
    return ResourceMeta(**_meta_fields(raw))


def _workload_metadata(raw: Resource) -> WorkloadMeta:
    return WorkloadMeta(
        **_meta_fields(raw),
        labels=_string_map(raw.get("labels"), "metadata.labels"),
    )


def _section(resource: Resource, key: str) -> Resource:
    return _optional(resource.get(key), key, lambda raw, _: raw) or {}


def _name_of(resource: Any) -> Optional[str]:
    if isinstance(resource, Mapping):
        meta = resource.get("metadata")
        if isinstance(meta, Mapping) and isinstance(meta.get("name"), str):
            return meta["name"]
    return None


# ------------------------------------------------------------ fact kinds --
def translate_workload(resource: Resource) -> WorkloadFact:
    """Pod JSON -> :class:`WorkloadFact`. A pod without ``spec`` is fine."""
    try:
        meta = _section(_object(resource, "pod"), "metadata")
        spec = _section(resource, "spec")
        return WorkloadFact(
            metadata=_workload_metadata(meta),
            spec=WorkloadSpec(
                node_name=_string(spec.get("nodeName"), "spec.nodeName"),
                affinity=_optional(
                    spec.get("affinity"), "spec.affinity", translate_affinity
                ),
            ),
        )
    except TranslationSkip as exc:
        raise TranslationSkip(exc.reason, kind="Pod", name=_name_of(resource)) from exc
    except ValidationError as exc:
        raise TranslationSkip(str(exc), kind="Pod", name=_name_of(resource)) from exc


def translate_host(resource: Resource) -> HostFact:
    """Node JSON -> :class:`HostFact`."""
    try:
        meta = _section(_object(resource, "node"), "metadata")
        spec = _section(resource, "spec")
        return HostFact(
            metadata=translate_metadata(meta),
            spec=HostSpec(pod_cidr=_string(spec.get("podCIDR"), "spec.podCIDR")),
        )
    except TranslationSkip as exc:
        raise TranslationSkip(exc.reason, kind="Node", name=_name_of(resource)) from exc
    except ValidationError as exc:
        raise TranslationSkip(str(exc), kind="Node", name=_name_of(resource)) from exc


TRANSLATORS: Dict[str, Callable[[Resource], Fact]] = {
    "Pod": translate_workload,
    "Node": translate_host,
}


def translate(resource: Resource, kind: Optional[str] = None) -> Fact:
    """Translate any supported object, dispatching on ``kind``.

    List responses of the API omit ``kind`` on their items, so callers that
    know what they watch pass it explicitly.
    """
    if kind is None and isinstance(resource, Mapping):
        kind = resource.get("kind")
    fn = TRANSLATORS.get(kind) if isinstance(kind, str) else None
    if fn is None:
        raise TranslationSkip(f"unsupported kind {kind!r}", name=_name_of(resource))
    return fn(resource)
