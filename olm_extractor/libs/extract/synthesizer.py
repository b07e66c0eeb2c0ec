"""
Manifest Synthesizer

Turns a ClusterServiceVersion and the remaining bundle objects into the
objects a plain cluster needs to run the operator: Namespace, CRDs, RBAC,
Deployments, webhook Services and webhook configurations.
"""

import copy
import hashlib
import json
import logging
from typing import Any, Dict, List, Optional

from ..bundle.loader import Bundle
from ..core.constants import (
    ErrorMessages,
    KubernetesConstants,
    OLMConstants,
    WebhookConstants,
)
from ..core.exceptions import ExtractionError
from . import kube
from .templates import ManifestTemplates

logger = logging.getLogger(__name__)

Kind = KubernetesConstants.Kind
WebhookType = OLMConstants.WebhookType


def webhook_service_name(deployment_name: str) -> str:
    """Name of the Service fronting a webhook deployment"""
    return f"{deployment_name}{WebhookConstants.SERVICE_SUFFIX}"


def webhook_port(description: Dict[str, Any]) -> int:
    """Declared container port of a webhook description, or the default port"""
    return description.get('containerPort') or WebhookConstants.DEFAULT_PORT


def generate_name(base: str, *parts: Any) -> str:
    """
    Generate a unique name the way the packaging runtime does: <base>-<hash>

    Args:
        base: Name prefix
        *parts: Values the hash is computed from

    Returns:
        str: Deterministic generated name
    """
    digest = hashlib.sha256(json.dumps(parts, sort_keys=True, default=str).encode('utf-8')).hexdigest()
    return f"{base}-{digest[:OLMConstants.GENERATED_HASH_LENGTH]}"


def normalize_rules(rules: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """
    Default the API group of rules that name resources but no group

    Kubernetes requires apiGroups even for core resources, where it is [""].

    Args:
        rules: Policy rules

    Returns:
        Copied rules with apiGroups filled in
    """
    normalized = []
    for rule in rules or []:
        rule = copy.deepcopy(rule)
        if rule.get('resources') and not rule.get('apiGroups'):
            rule['apiGroups'] = [KubernetesConstants.CORE_API_GROUP]
        normalized.append(rule)
    return normalized


class ManifestSynthesizer:
    """Synthesizes installable objects from a bundle"""

    def __init__(self, namespace: str):
        """
        Initialize the synthesizer

        Args:
            namespace: Target namespace of the installation
        """
        self.namespace = namespace

    def synthesize(self, bundle: Bundle) -> List[Dict[str, Any]]:
        """
        Build the installable object set of a bundle

        Objects are returned in logical order: Namespace, CRDs, RBAC,
        Deployments, webhook Services, webhook configurations, then the
        remaining bundle objects.

        Args:
            bundle: Loaded bundle

        Returns:
            List of resource objects

        Raises:
            ExtractionError: If the bundle has no CSV or an unsupported install strategy
        """
        if not bundle.csv:
            raise ExtractionError(str(ErrorMessages.ExtractError.NO_CSV))

        csv = bundle.csv
        objects: List[Dict[str, Any]] = []

        if self.namespace != KubernetesConstants.DEFAULT_NAMESPACE:
            objects.append(ManifestTemplates.namespace_template(self.namespace))

        objects.extend(self.crds(bundle.crds, csv))
        objects.extend(self.install_strategy(csv))
        objects.extend(self.webhook_services(csv))
        objects.extend(self.webhooks(csv))
        objects.extend(self.other_resources(bundle.objects))

        logger.info(f"Synthesized {len(objects)} objects from {bundle.name}")
        return objects

    def _webhook_definitions(self, csv: Dict[str, Any]) -> List[Dict[str, Any]]:
        return (csv.get('spec') or {}).get('webhookdefinitions') or []

    def crds(self, crds: List[Dict[str, Any]], csv: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Copy CRDs, patching in conversion webhook configuration where declared

        Only apiextensions.k8s.io/v1 CRDs are patched; v1beta1 CRDs pass through.
        """
        conversions = self._conversion_webhooks(csv)
        result = []

        for crd in crds:
            crd = copy.deepcopy(crd)
            name = kube.get_name(crd)
            conversion = conversions.get(name)
            if conversion and crd.get('apiVersion') == KubernetesConstants.APIVersion.APIEXTENSIONS_V1:
                crd.setdefault('spec', {})['conversion'] = conversion
                logger.debug(f"Patched conversion webhook into CRD {name}")
            result.append(crd)

        return result

    def _conversion_webhooks(self, csv: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
        conversions = {}
        for description in self._webhook_definitions(csv):
            if description.get('type') != WebhookType.CONVERSION:
                continue
            for crd_name in description.get('conversionCRDs') or []:
                conversions[crd_name] = self._conversion_config(description)
        return conversions

    def _conversion_config(self, description: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'strategy': 'Webhook',
            'webhook': {
                'clientConfig': {
                    'service': {
                        'namespace': self.namespace,
                        'name': webhook_service_name(description.get('deploymentName', "")),
                        'path': description.get('webhookPath'),
                        'port': webhook_port(description)
                    }
                },
                'conversionReviewVersions': description.get('admissionReviewVersions')
            }
        }

    def install_strategy(self, csv: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Convert the deployment install strategy into RBAC objects and Deployments

        Raises:
            ExtractionError: If the strategy is not the deployment strategy
        """
        strategy = (csv.get('spec') or {}).get('install') or {}
        strategy_name = strategy.get('strategy') or ""
        if strategy_name and strategy_name != OLMConstants.DEPLOYMENT_STRATEGY:
            raise ExtractionError(
                str(ErrorMessages.ExtractError.UNSUPPORTED_STRATEGY).format(strategy=strategy_name)
            )

        spec = strategy.get('spec') or {}
        objects = self.rbac(kube.get_name(csv), spec)

        for dep_spec in spec.get('deployments') or []:
            objects.append(self.deployment(dep_spec))

        return objects

    def rbac(self, csv_name: str, strategy_spec: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Build RBAC objects for every service account of the install strategy

        Objects are grouped per service account in first-seen order: the
        ServiceAccount, then its Roles, RoleBindings, ClusterRoles and
        ClusterRoleBindings.
        """
        groups: Dict[str, Dict[str, List[Dict[str, Any]]]] = {}

        def group_for(sa_name: str) -> Dict[str, List[Dict[str, Any]]]:
            if sa_name not in groups:
                groups[sa_name] = {
                    'service_accounts': [ManifestTemplates.service_account_template(sa_name, self.namespace)],
                    'roles': [], 'role_bindings': [], 'cluster_roles': [], 'cluster_role_bindings': []
                }
            return groups[sa_name]

        for permission in strategy_spec.get('permissions') or []:
            sa_name = permission.get('serviceAccountName', "")
            group = group_for(sa_name)
            name = generate_name(f"{csv_name}-{sa_name}", csv_name, permission)
            group['roles'].append(
                ManifestTemplates.role_template(name, self.namespace, normalize_rules(permission.get('rules')))
            )
            group['role_bindings'].append(
                ManifestTemplates.role_binding_template(name, self.namespace, name, sa_name)
            )

        for permission in strategy_spec.get('clusterPermissions') or []:
            sa_name = permission.get('serviceAccountName', "")
            group = group_for(sa_name)
            name = generate_name(f"{csv_name}-{sa_name}", csv_name, permission)
            group['cluster_roles'].append(
                ManifestTemplates.cluster_role_template(name, normalize_rules(permission.get('rules')))
            )
            group['cluster_role_bindings'].append(
                ManifestTemplates.cluster_role_binding_template(name, name, sa_name, self.namespace)
            )

        objects = []
        for sa_name, group in groups.items():
            logger.debug(f"Generated {len(group['roles'])} Roles and {len(group['cluster_roles'])} "
                         f"ClusterRoles for service account {sa_name}")
            for section in ('service_accounts', 'roles', 'role_bindings', 'cluster_roles', 'cluster_role_bindings'):
                objects.extend(group[section])
        return objects

    def deployment(self, dep_spec: Dict[str, Any]) -> Dict[str, Any]:
        """Build a Deployment from an install strategy deployment spec"""
        spec = copy.deepcopy(dep_spec.get('spec') or {})
        template = spec.setdefault('template', {})
        if template.get('metadata') is None:
            template['metadata'] = {}
        template['metadata']['namespace'] = self.namespace

        return ManifestTemplates.deployment_template(
            dep_spec.get('name', ""), self.namespace, dep_spec.get('label'), spec
        )

    def webhook_services(self, csv: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Build one Service per distinct webhook deployment"""
        deployments = {
            dep.get('name'): dep
            for dep in ((((csv.get('spec') or {}).get('install') or {}).get('spec') or {}).get('deployments') or [])
        }
        seen = set()
        services = []

        for description in self._webhook_definitions(csv):
            deployment_name = description.get('deploymentName')
            if not deployment_name or deployment_name in seen:
                continue
            seen.add(deployment_name)

            port = webhook_port(description)
            target_port = description.get('targetPort')
            services.append(ManifestTemplates.webhook_service_template(
                webhook_service_name(deployment_name),
                self.namespace,
                port,
                target_port if target_port is not None else port,
                self._service_selector(deployment_name, deployments.get(deployment_name))
            ))

        return services

    def _service_selector(self, deployment_name: str, dep_spec: Optional[Dict[str, Any]]) -> Dict[str, str]:
        match_labels = (((dep_spec or {}).get('spec') or {}).get('selector') or {}).get('matchLabels')
        if match_labels:
            return dict(match_labels)
        return {KubernetesConstants.NAME_LABEL: deployment_name}

    def webhooks(self, csv: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Build webhook configurations from validating and mutating descriptions

        Conversion descriptions are skipped; they are folded into the CRDs.
        CA bundles are left empty.
        """
        objects = []
        for description in self._webhook_definitions(csv):
            webhook_type = description.get('type')
            if webhook_type == WebhookType.VALIDATING:
                kind = str(Kind.VALIDATING_WEBHOOK)
            elif webhook_type == WebhookType.MUTATING:
                kind = str(Kind.MUTATING_WEBHOOK)
            else:
                continue

            objects.append(ManifestTemplates.webhook_configuration_template(
                kind, description.get('generateName', ""), [self._webhook_entry(description)]
            ))
        return objects

    def _webhook_entry(self, description: Dict[str, Any]) -> Dict[str, Any]:
        entry = {
            'name': description.get('generateName'),
            'rules': copy.deepcopy(description.get('rules')),
            'failurePolicy': description.get('failurePolicy'),
            'matchPolicy': description.get('matchPolicy'),
            'objectSelector': copy.deepcopy(description.get('objectSelector')),
            'sideEffects': description.get('sideEffects'),
            'timeoutSeconds': description.get('timeoutSeconds'),
            'admissionReviewVersions': description.get('admissionReviewVersions'),
            'clientConfig': {
                'service': {
                    'name': webhook_service_name(description.get('deploymentName', "")),
                    'namespace': self.namespace,
                    'path': description.get('webhookPath'),
                    'port': webhook_port(description)
                }
            }
        }
        if description.get('type') == WebhookType.MUTATING:
            entry['reinvocationPolicy'] = description.get('reinvocationPolicy')
        return entry

    def other_resources(self, objects: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Copy the remaining bundle objects, setting the namespace of namespaced kinds"""
        result = []
        for obj in objects:
            if kube.is_kind(obj, Kind.CSV, Kind.CRD):
                continue
            obj = copy.deepcopy(obj)
            if kube.is_namespaced(kube.get_kind(obj)):
                kube.set_namespace(obj, self.namespace)
            result.append(obj)
        return result


def synthesize(bundle: Bundle, namespace: str) -> List[Dict[str, Any]]:
    """Build the installable object set of a bundle for a namespace"""
    return ManifestSynthesizer(namespace).synthesize(bundle)
