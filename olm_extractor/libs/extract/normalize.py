"""
Name Normalization

Replaces generated RBAC and webhook configuration names
("<csv>-<sa>-<hash>", "<name>.v1.2.3-...") with short deterministic names
derived from the operator deployment.
"""

import logging
import re
from typing import Any, Dict, List, Tuple

from ..core.constants import CertManagerConstants, KubernetesConstants, OLMConstants, WebhookConstants
from . import kube

logger = logging.getLogger(__name__)

Kind = KubernetesConstants.Kind

GENERATED_NAME_RE = re.compile(OLMConstants.GENERATED_NAME_PATTERN)

# Name suffix per renamed kind
RBAC_SUFFIXES = {
    Kind.ROLE: "role",
    Kind.ROLE_BINDING: "rolebinding",
    Kind.CLUSTER_ROLE: "clusterrole",
    Kind.CLUSTER_ROLE_BINDING: "clusterrolebinding",
}

# Kind a binding's roleRef points at
ROLE_REF_KINDS = {
    Kind.ROLE_BINDING: Kind.ROLE,
    Kind.CLUSTER_ROLE_BINDING: Kind.CLUSTER_ROLE,
}

WEBHOOK_SUFFIXES = {
    Kind.VALIDATING_WEBHOOK: WebhookConstants.VALIDATING_NAME_SUFFIX,
    Kind.MUTATING_WEBHOOK: WebhookConstants.MUTATING_NAME_SUFFIX,
}


def is_generated_name(name: str) -> bool:
    """Check whether a name carries a generated hash suffix"""
    return bool(name) and GENERATED_NAME_RE.match(name) is not None


def _numbered(name: str, count: int) -> str:
    return name if count == 0 else f"{name}-{count}"


def build_name_mapping(objects: List[Dict[str, Any]]) -> Dict[Tuple[str, str], str]:
    """
    Map (kind, generated name) to normalized RBAC names

    The first object of each kind gets "<base>-<suffix>", later ones
    "<base>-<suffix>-1", "<base>-<suffix>-2" and so on.

    Args:
        objects: Synthesized objects

    Returns:
        Mapping from (kind, old name) to new name
    """
    base = kube.operator_name(objects)
    counters = {kind: 0 for kind in RBAC_SUFFIXES}
    mapping = {}

    for obj in objects:
        kind = kube.get_kind(obj)
        name = kube.get_name(obj)
        if kind not in RBAC_SUFFIXES or not is_generated_name(name):
            continue
        key = (kind, name)
        if key in mapping:
            continue
        mapping[key] = _numbered(f"{base}-{RBAC_SUFFIXES[kind]}", counters[kind])
        counters[kind] += 1

    return mapping


def normalize_names(objects: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Rename generated RBAC and webhook configuration names in place

    Binding roleRefs follow their renamed roles. Webhook configurations whose
    names look generated (hash suffix or a ".v<version>" component) become
    "<deployment>-validating-webhook" / "<deployment>-mutating-webhook".

    Args:
        objects: Synthesized objects

    Returns:
        The same list, with names rewritten
    """
    mapping = build_name_mapping(objects)

    for obj in objects:
        kind = kube.get_kind(obj)
        metadata = obj.get('metadata') or {}

        new_name = mapping.get((kind, metadata.get('name')))
        if new_name:
            logger.debug(f"Renaming {kind} {metadata.get('name')} to {new_name}")
            metadata['name'] = new_name

        ref_kind = ROLE_REF_KINDS.get(kind)
        role_ref = obj.get('roleRef')
        if ref_kind and isinstance(role_ref, dict):
            new_ref = mapping.get((ref_kind, role_ref.get('name')))
            if new_ref:
                role_ref['name'] = new_ref

    _normalize_webhook_names(objects)
    return objects


def _normalize_webhook_names(objects: List[Dict[str, Any]]) -> None:
    deployment = kube.find_first(objects, Kind.DEPLOYMENT)
    prefix = kube.get_name(deployment) if deployment else ""
    prefix = prefix or CertManagerConstants.DEFAULT_OPERATOR_NAME

    used = {(kube.get_kind(obj), kube.get_name(obj)) for obj in objects if kube.is_webhook_configuration(obj)}

    for obj in objects:
        kind = kube.get_kind(obj)
        name = kube.get_name(obj)
        if kind not in WEBHOOK_SUFFIXES:
            continue
        if not is_generated_name(name) and '.v' not in name:
            continue

        candidate = f"{prefix}{WEBHOOK_SUFFIXES[kind]}"
        count = 0
        while (kind, _numbered(candidate, count)) in used:
            count += 1
        new_name = _numbered(candidate, count)

        used.discard((kind, name))
        used.add((kind, new_name))
        obj['metadata']['name'] = new_name
        logger.debug(f"Renaming {kind} {name} to {new_name}")
