"""
Kubernetes Object Helpers

Helpers for working with resource objects as plain dictionaries:
scope detection, namespace injection, annotation access, cleanup of empty
fields and apply-order sorting.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from ..core.constants import CertManagerConstants, KubernetesConstants

logger = logging.getLogger(__name__)

# Keys whose empty map is meaningful and must survive cleanup
PRESERVE_EMPTY_KEYS = frozenset([CertManagerConstants.SELFSIGNED_KEY])


def get_kind(obj: Dict[str, Any]) -> str:
    return obj.get('kind') or ""


def get_name(obj: Dict[str, Any]) -> str:
    return (obj.get('metadata') or {}).get('name') or ""


def is_kind(obj: Dict[str, Any], *kinds: str) -> bool:
    """Check whether an object has one of the given kinds"""
    return get_kind(obj) in kinds


def is_webhook_configuration(obj: Dict[str, Any]) -> bool:
    """Check whether an object is a validating or mutating webhook configuration"""
    return is_kind(obj, *KubernetesConstants.Kind.get_webhook_kinds())


def find(objects: List[Dict[str, Any]], predicate: Callable[[Dict[str, Any]], bool]) -> List[Dict[str, Any]]:
    """Return the objects matching a predicate, in order"""
    return [obj for obj in objects if predicate(obj)]


def find_first(objects: List[Dict[str, Any]], kind: str, name: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Return the first object of a kind (and name, when given)"""
    for obj in objects:
        if get_kind(obj) == kind and (name is None or get_name(obj) == name):
            return obj
    return None


def operator_name(objects: List[Dict[str, Any]]) -> str:
    """
    Name identifying the operator among a set of objects

    Returns:
        str: First Deployment name, else first ServiceAccount name, else "operator"
    """
    for kind in (KubernetesConstants.Kind.DEPLOYMENT, KubernetesConstants.Kind.SERVICE_ACCOUNT):
        found = find_first(objects, kind)
        if found and get_name(found):
            return get_name(found)
    return CertManagerConstants.DEFAULT_OPERATOR_NAME


def is_cluster_scoped(kind: str) -> bool:
    """
    Determine if a resource kind is cluster-scoped

    Uses Kubernetes naming conventions:
    1. Resources starting with "Cluster" are cluster-scoped
    2. Resources ending with "Class" are cluster-scoped
    3. CSI, webhook configuration, volume attachment and node resources are cluster-scoped
    4. A fixed list of well-known global kinds is cluster-scoped

    Args:
        kind: Kubernetes resource kind

    Returns:
        True if cluster-scoped, False otherwise (custom resources default to namespaced)
    """
    if not kind:
        return False

    # ClusterServiceVersion lives in a namespace despite its prefix
    if kind == KubernetesConstants.Kind.CSV:
        return False

    if kind.startswith('Cluster') or kind.endswith('Class') or kind.startswith('CSI'):
        return True

    if 'WebhookConfiguration' in kind or 'VolumeAttachment' in kind or kind.startswith('Node'):
        return True

    return kind in KubernetesConstants.CLUSTER_SCOPED_KINDS


def is_namespaced(kind: str) -> bool:
    """Determine if a resource kind is namespace-scoped"""
    return bool(kind) and not is_cluster_scoped(kind)


def set_namespace(obj: Dict[str, Any], namespace: str) -> Dict[str, Any]:
    """Set metadata.namespace in place and return the object"""
    obj.setdefault('metadata', {})['namespace'] = namespace
    return obj


def get_annotation(obj: Dict[str, Any], key: str) -> Optional[str]:
    return ((obj.get('metadata') or {}).get('annotations') or {}).get(key)


def set_annotation(obj: Dict[str, Any], key: str, value: str) -> Dict[str, Any]:
    """Set an annotation in place, creating the annotations map if needed"""
    metadata = obj.setdefault('metadata', {})
    if metadata.get('annotations') is None:
        metadata['annotations'] = {}
    metadata['annotations'][key] = value
    return obj


def clean(obj: Dict[str, Any]) -> Dict[str, Any]:
    """
    Remove empty fields from an object, recursively

    None values, empty maps, empty lists and empty strings are dropped.
    Empty strings inside lists are kept (apiGroups: [""] is the core API
    group), as are 0 and False.

    Args:
        obj: Resource object

    Returns:
        A cleaned copy; the input is not modified
    """
    return _clean_map(obj)


def _clean_map(obj: Dict[str, Any]) -> Dict[str, Any]:
    result = {}
    for key, value in obj.items():
        if key in PRESERVE_EMPTY_KEYS and value == {}:
            result[key] = {}
            continue
        cleaned = _clean_value(value)
        if cleaned is not None:
            result[key] = cleaned
    return result


def _clean_value(value: Any) -> Any:
    if value is None:
        return None

    if isinstance(value, dict):
        cleaned = _clean_map(value)
        return cleaned or None

    if isinstance(value, list):
        items = []
        for item in value:
            if item == "":
                items.append("")
                continue
            cleaned = _clean_value(item)
            if cleaned is not None:
                items.append(cleaned)
        return items or None

    if isinstance(value, str) and value == "":
        return None

    return value


def apply_priority(obj: Dict[str, Any]) -> int:
    """Get the apply-order priority of an object's kind"""
    return KubernetesConstants.APPLY_PRIORITY.get(
        get_kind(obj), KubernetesConstants.DEFAULT_APPLY_PRIORITY
    )


def sort_for_apply(objects: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Stable sort of objects into apply order

    Namespace < CRD < ServiceAccount < Role < RoleBinding < ClusterRole <
    ClusterRoleBinding < Deployment < Service < Issuer/ClusterIssuer <
    Certificate < webhook configurations < everything else.

    Args:
        objects: Resource objects

    Returns:
        New sorted list; objects of the same priority keep their relative order
    """
    return sorted(objects, key=apply_priority)
