"""
Manifest Templates

Builders for the resource objects synthesized by the extraction pipeline.
"""

from typing import Any, Dict, List, Optional

from ..core.constants import (
    CertManagerConstants,
    KubernetesConstants,
    OpenShiftConstants,
    WebhookConstants,
)

Kind = KubernetesConstants.Kind
APIVersion = KubernetesConstants.APIVersion


class ManifestTemplates:
    """Templates for Kubernetes manifests"""

    @staticmethod
    def namespace_template(name: str) -> Dict[str, Any]:
        """Namespace manifest template"""
        return {
            'apiVersion': str(APIVersion.CORE_V1),
            'kind': str(Kind.NAMESPACE),
            'metadata': {
                'name': name
            }
        }

    @staticmethod
    def service_account_template(name: str, namespace: str) -> Dict[str, Any]:
        """ServiceAccount manifest template"""
        return {
            'apiVersion': str(APIVersion.CORE_V1),
            'kind': str(Kind.SERVICE_ACCOUNT),
            'metadata': {
                'name': name,
                'namespace': namespace
            }
        }

    @staticmethod
    def role_template(name: str, namespace: str, rules: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Role manifest template"""
        return {
            'apiVersion': str(APIVersion.RBAC_V1),
            'kind': str(Kind.ROLE),
            'metadata': {
                'name': name,
                'namespace': namespace
            },
            'rules': rules
        }

    @staticmethod
    def cluster_role_template(name: str, rules: List[Dict[str, Any]]) -> Dict[str, Any]:
        """ClusterRole manifest template"""
        return {
            'apiVersion': str(APIVersion.RBAC_V1),
            'kind': str(Kind.CLUSTER_ROLE),
            'metadata': {
                'name': name
            },
            'rules': rules
        }

    @staticmethod
    def role_binding_template(name: str, namespace: str, role_name: str,
                              service_account_name: str) -> Dict[str, Any]:
        """RoleBinding manifest template"""
        return {
            'apiVersion': str(APIVersion.RBAC_V1),
            'kind': str(Kind.ROLE_BINDING),
            'metadata': {
                'name': name,
                'namespace': namespace
            },
            'roleRef': {
                'apiGroup': KubernetesConstants.RBAC_API_GROUP,
                'kind': str(Kind.ROLE),
                'name': role_name
            },
            'subjects': [{
                'kind': str(Kind.SERVICE_ACCOUNT),
                'name': service_account_name,
                'namespace': namespace
            }]
        }

    @staticmethod
    def cluster_role_binding_template(name: str, role_name: str, service_account_name: str,
                                      namespace: str) -> Dict[str, Any]:
        """ClusterRoleBinding manifest template"""
        return {
            'apiVersion': str(APIVersion.RBAC_V1),
            'kind': str(Kind.CLUSTER_ROLE_BINDING),
            'metadata': {
                'name': name
            },
            'roleRef': {
                'apiGroup': KubernetesConstants.RBAC_API_GROUP,
                'kind': str(Kind.CLUSTER_ROLE),
                'name': role_name
            },
            'subjects': [{
                'kind': str(Kind.SERVICE_ACCOUNT),
                'name': service_account_name,
                'namespace': namespace
            }]
        }

    @staticmethod
    def deployment_template(name: str, namespace: str, labels: Optional[Dict[str, str]],
                            spec: Dict[str, Any]) -> Dict[str, Any]:
        """Deployment manifest template"""
        return {
            'apiVersion': str(APIVersion.APPS_V1),
            'kind': str(Kind.DEPLOYMENT),
            'metadata': {
                'name': name,
                'namespace': namespace,
                'labels': labels or {}
            },
            'spec': spec
        }

    @staticmethod
    def webhook_service_template(name: str, namespace: str, port: int, target_port: Any,
                                 selector: Dict[str, str]) -> Dict[str, Any]:
        """Service manifest template exposing a webhook server over HTTPS"""
        return {
            'apiVersion': str(APIVersion.CORE_V1),
            'kind': str(Kind.SERVICE),
            'metadata': {
                'name': name,
                'namespace': namespace
            },
            'spec': {
                'ports': [ManifestTemplates.webhook_port_template(port, target_port)],
                'selector': selector
            }
        }

    @staticmethod
    def webhook_port_template(port: int, target_port: Any = None) -> Dict[str, Any]:
        """Service port entry for a webhook server"""
        return {
            'name': WebhookConstants.PORT_NAME,
            'port': port,
            'targetPort': target_port if target_port is not None else port,
            'protocol': WebhookConstants.PROTOCOL
        }

    @staticmethod
    def webhook_configuration_template(kind: str, name: str,
                                       webhooks: List[Dict[str, Any]]) -> Dict[str, Any]:
        """ValidatingWebhookConfiguration / MutatingWebhookConfiguration manifest template"""
        return {
            'apiVersion': str(APIVersion.ADMISSION_V1),
            'kind': kind,
            'metadata': {
                'name': name
            },
            'webhooks': webhooks
        }

    @staticmethod
    def certificate_template(name: str, namespace: str, service_name: str,
                             issuer_name: str, issuer_kind: str) -> Dict[str, Any]:
        """cert-manager Certificate manifest template for a webhook service"""
        return {
            'apiVersion': CertManagerConstants.API_VERSION,
            'kind': str(Kind.CERTIFICATE),
            'metadata': {
                'name': name,
                'namespace': namespace
            },
            'spec': {
                'secretName': f"{service_name}{WebhookConstants.TLS_SECRET_SUFFIX}",
                'dnsNames': [
                    f"{service_name}.{namespace}.svc",
                    f"{service_name}.{namespace}.svc.cluster.local"
                ],
                'issuerRef': {
                    'kind': issuer_kind,
                    'name': issuer_name
                }
            }
        }

    @staticmethod
    def selfsigned_issuer_template(name: str, namespace: str) -> Dict[str, Any]:
        """cert-manager self-signed Issuer manifest template"""
        return {
            'apiVersion': CertManagerConstants.API_VERSION,
            'kind': str(Kind.ISSUER),
            'metadata': {
                'name': name,
                'namespace': namespace
            },
            'spec': {
                CertManagerConstants.SELFSIGNED_KEY: {}
            }
        }

    @staticmethod
    def ca_bundle_config_map_template(name: str, namespace: str) -> Dict[str, Any]:
        """ConfigMap the OpenShift service CA operator fills with its CA bundle"""
        return {
            'apiVersion': str(APIVersion.CORE_V1),
            'kind': str(Kind.CONFIG_MAP),
            'metadata': {
                'name': name,
                'namespace': namespace,
                'annotations': {
                    OpenShiftConstants.INJECT_CABUNDLE_ANNOTATION: "true"
                }
            }
        }
