"""
Constants Module

Centralized constants for the OLM bundle extractor to eliminate magic strings
and improve maintainability.
"""

from enum import Enum, IntEnum


class BaseStrEnum(str, Enum):
    """Base enum class that inherits from str"""

    def __str__(self) -> str:
        """Return the enum value as string"""
        return self.value

    def __repr__(self) -> str:
        """Return a detailed representation of the enum"""
        return f"{self.__class__.__name__}.{self.name}"


class KubernetesConstants:
    """Kubernetes-related constants with enum-based structure"""

    # Namespace that never gets its own Namespace object
    DEFAULT_NAMESPACE = "default"

    # API Group constants
    RBAC_API_GROUP = "rbac.authorization.k8s.io"
    CORE_API_GROUP = ""  # Core API group (empty string)

    # Label constants
    NAME_LABEL = "app.kubernetes.io/name"

    # Namespace validation (DNS-1123 label)
    NAMESPACE_PATTERN = r'^[a-z0-9]([-a-z0-9]*[a-z0-9])?$'
    NAMESPACE_MAX_LENGTH = 63

    class Kind(BaseStrEnum):
        """Resource kinds handled by the extraction pipeline"""
        NAMESPACE = "Namespace"
        CRD = "CustomResourceDefinition"
        SERVICE_ACCOUNT = "ServiceAccount"
        ROLE = "Role"
        ROLE_BINDING = "RoleBinding"
        CLUSTER_ROLE = "ClusterRole"
        CLUSTER_ROLE_BINDING = "ClusterRoleBinding"
        DEPLOYMENT = "Deployment"
        SERVICE = "Service"
        CONFIG_MAP = "ConfigMap"
        ISSUER = "Issuer"
        CLUSTER_ISSUER = "ClusterIssuer"
        CERTIFICATE = "Certificate"
        VALIDATING_WEBHOOK = "ValidatingWebhookConfiguration"
        MUTATING_WEBHOOK = "MutatingWebhookConfiguration"
        CSV = "ClusterServiceVersion"

        @classmethod
        def get_webhook_kinds(cls) -> list:
            """Get admission webhook configuration kinds"""
            return [cls.VALIDATING_WEBHOOK, cls.MUTATING_WEBHOOK]

        @classmethod
        def get_issuer_kinds(cls) -> list:
            """Get cert-manager issuer kinds"""
            return [cls.ISSUER, cls.CLUSTER_ISSUER]

    class APIVersion(BaseStrEnum):
        """API versions of the objects synthesized by the pipeline"""
        CORE_V1 = "v1"
        APPS_V1 = "apps/v1"
        RBAC_V1 = "rbac.authorization.k8s.io/v1"
        APIEXTENSIONS_V1 = "apiextensions.k8s.io/v1"
        APIEXTENSIONS_V1BETA1 = "apiextensions.k8s.io/v1beta1"
        ADMISSION_V1 = "admissionregistration.k8s.io/v1"

    # Apply order: lower values are created first
    APPLY_PRIORITY = {
        Kind.NAMESPACE: 1,
        Kind.CRD: 2,
        Kind.SERVICE_ACCOUNT: 3,
        Kind.ROLE: 4,
        Kind.ROLE_BINDING: 5,
        Kind.CLUSTER_ROLE: 6,
        Kind.CLUSTER_ROLE_BINDING: 7,
        Kind.DEPLOYMENT: 8,
        Kind.SERVICE: 9,
        Kind.ISSUER: 10,
        Kind.CLUSTER_ISSUER: 10,
        Kind.CERTIFICATE: 11,
        Kind.VALIDATING_WEBHOOK: 12,
        Kind.MUTATING_WEBHOOK: 12,
    }
    DEFAULT_APPLY_PRIORITY = 13

    # Cluster-scoped kinds that the prefix/suffix rules do not cover
    CLUSTER_SCOPED_KINDS = frozenset([
        "Namespace",
        "CustomResourceDefinition",
        "PersistentVolume",
        "APIService",
        "TokenReview",
        "SelfSubjectAccessReview",
        "SelfSubjectRulesReview",
        "SubjectAccessReview",
        "CertificateSigningRequest",
        "FlowSchema",
        "PriorityLevelConfiguration",
        "VolumeAttachment",
        "ConsoleYAMLSample",
        "ConsoleQuickStart",
        "ConsoleCLIDownload",
        "ConsoleLink",
        "SecurityContextConstraints",
    ])


class OLMConstants:
    """Operator Lifecycle Manager descriptor constants"""

    DEPLOYMENT_STRATEGY = "deployment"

    # Matches generated names such as "<csv>-<sa>-<hash>" or "<name>-op-<hash>"
    GENERATED_NAME_PATTERN = r'^(.+?)-(op-)?([a-zA-Z0-9]{30,})$'
    GENERATED_HASH_LENGTH = 32

    BUNDLE_MANIFESTS_DIR = "manifests"
    BUNDLE_METADATA_DIR = "metadata"
    BUNDLE_ANNOTATIONS_FILE = "annotations.yaml"

    class WebhookType(BaseStrEnum):
        """Webhook definition types found in a ClusterServiceVersion"""
        VALIDATING = "ValidatingAdmissionWebhook"
        MUTATING = "MutatingAdmissionWebhook"
        CONVERSION = "ConversionWebhook"

    class BundleAnnotation(BaseStrEnum):
        """Keys of metadata/annotations.yaml"""
        PACKAGE = "operators.operatorframework.io.bundle.package.v1"
        CHANNELS = "operators.operatorframework.io.bundle.channels.v1"
        DEFAULT_CHANNEL = "operators.operatorframework.io.bundle.channel.default.v1"


class WebhookConstants:
    """Webhook service and certificate naming conventions"""

    SERVICE_SUFFIX = "-webhook-service"
    CERT_SUFFIX = "-cert"
    TLS_SECRET_SUFFIX = "-tls"
    PORT_NAME = "https"
    DEFAULT_PORT = 443
    PROTOCOL = "TCP"
    VALIDATING_NAME_SUFFIX = "-validating-webhook"
    MUTATING_NAME_SUFFIX = "-mutating-webhook"


class CertManagerConstants:
    """cert-manager integration constants"""

    API_VERSION = "cert-manager.io/v1"
    INJECT_CA_ANNOTATION = "cert-manager.io/inject-ca-from"
    DEFAULT_ISSUER_KIND = "Issuer"
    SELFSIGNED_SUFFIX = "-selfsigned"
    SELFSIGNED_KEY = "selfSigned"
    DEFAULT_OPERATOR_NAME = "operator"


class OpenShiftConstants:
    """OpenShift service CA integration constants"""

    CA_CONFIGMAP_SUFFIX = "-ca"
    INJECT_CABUNDLE_ANNOTATION = "service.beta.openshift.io/inject-cabundle"
    INJECT_CABUNDLE_FROM_ANNOTATION = "service.ca.openshift.io/inject-cabundle-from"


class CAProviderName(BaseStrEnum):
    """Supported CA injection providers"""
    CERT_MANAGER = "cert-manager"
    OPENSHIFT = "openshift"


class CatalogConstants:
    """File-based catalog constants"""

    CONFIGS_DIR = "configs"
    LAYER_PREFIXES = ["/configs/"]

    class Schema(BaseStrEnum):
        """File-based catalog schema names"""
        PACKAGE = "olm.package"
        CHANNEL = "olm.channel"
        BUNDLE = "olm.bundle"

    class FileExtension(BaseStrEnum):
        """Catalog file extensions that are decoded"""
        JSON = ".json"
        YAML = ".yaml"
        YML = ".yml"


class RegistryConstants:
    """Container registry constants"""

    DEFAULT_REGISTRY = "docker.io"
    DOCKER_HUB_API_HOST = "registry-1.docker.io"
    DOCKER_HUB_ALIASES = frozenset([
        "docker.io",
        "index.docker.io",
        "registry-1.docker.io",
        "registry.hub.docker.com",
    ])
    DEFAULT_TAG = "latest"
    OFFICIAL_REPO_PREFIX = "library/"
    DEFAULT_PLATFORM = ("linux", "amd64")

    TEMP_DIR_PREFIX = "bundle-extract-"
    DIR_PERMISSIONS = 0o750

    CREDENTIAL_HELPER_PREFIX = "docker-credential-"
    LOGIN_HINT = (
        "Ensure you have authenticated with 'docker login' or credentials are in "
        "~/.docker/config.json"
    )

    class MediaType(BaseStrEnum):
        """Manifest media types accepted from registries"""
        OCI_INDEX = "application/vnd.oci.image.index.v1+json"
        OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
        DOCKER_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
        DOCKER_MANIFEST = "application/vnd.docker.distribution.manifest.v2+json"

        @classmethod
        def get_index_types(cls) -> list:
            """Get media types that describe multi-platform indexes"""
            return [cls.OCI_INDEX, cls.DOCKER_LIST]

        @classmethod
        def get_accept_header(cls) -> str:
            """Get the Accept header value for manifest requests"""
            return ", ".join(str(media_type) for media_type in cls)


class KRMConstants:
    """KRM function ResourceList constants"""

    RESOURCE_LIST_API_VERSION = "config.kubernetes.io/v1"
    RESOURCE_LIST_KIND = "ResourceList"
    FUNCTION_CONFIG_KIND = "Extractor"

    class Severity(BaseStrEnum):
        """Result severities reported back to the caller"""
        ERROR = "error"
        WARNING = "warning"
        INFO = "info"


class EnvironmentConstants:
    """Environment variable binding constants"""

    ENV_PREFIX = "BUNDLE_EXTRACT_"
    TRUE_VALUES = frozenset(["1", "true", "yes", "on"])
    FALSE_VALUES = frozenset(["0", "false", "no", "off"])


class NetworkConstants:
    """Network-related constants with enum-based structure"""

    DEFAULT_TIMEOUT = 30
    LAYER_DOWNLOAD_TIMEOUT = 300
    DEFAULT_BUFFER_SIZE = 65536
    USER_AGENT = "olm-extractor/1.0"

    class HTTPStatus(IntEnum):
        """HTTP status codes handled by the registry client"""
        OK = 200
        UNAUTHORIZED = 401
        FORBIDDEN = 403
        NOT_FOUND = 404

        def __str__(self) -> str:
            """Return a human-readable description of the status code"""
            descriptions = {
                200: "OK",
                401: "Unauthorized",
                403: "Forbidden",
                404: "Not Found",
            }
            return f"{self.value} {descriptions.get(self.value, 'Unknown')}"

    class HTTPHeader(BaseStrEnum):
        """Standard HTTP header names"""
        AUTHORIZATION = "Authorization"
        USER_AGENT = "User-Agent"
        ACCEPT = "Accept"
        CONTENT_TYPE = "Content-Type"
        WWW_AUTHENTICATE = "WWW-Authenticate"


class ErrorMessages:
    """Centralized error message templates"""

    class RegistryError(BaseStrEnum):
        """Image retrieval error message templates"""
        PULL_FAILED = "failed to pull image {image}: {error}"
        NO_MATCHING_LAYERS = "no layers found containing paths: {prefixes}"
        ILLEGAL_PATH = "illegal file path in tar: {name}"
        INVALID_REFERENCE = "failed to parse image reference \"{image}\": {error}"

    class CatalogError(BaseStrEnum):
        """Catalog resolution error message templates"""
        PACKAGE_NOT_FOUND = "package \"{package}\" not found in catalog"
        NO_DEFAULT_CHANNEL = (
            "package \"{package}\" has no defaultChannel and --channel was not specified"
        )
        CHANNEL_NOT_FOUND = "channel \"{channel}\" not found for package \"{package}\""
        VERSION_NOT_FOUND = (
            "version \"{version}\" not found in channel \"{channel}\" (available: {available})"
        )
        CHANNEL_EMPTY = "channel \"{channel}\" has no entries"
        BUNDLE_NOT_FOUND = "bundle \"{bundle}\" not found in catalog"
        BUNDLE_NO_IMAGE = "bundle \"{bundle}\" has no image reference"
        RESOLVE_FAILED = "failed to resolve bundle from catalog: {error}"

    class ExtractError(BaseStrEnum):
        """Manifest synthesis error message templates"""
        NO_CSV = "bundle does not contain a ClusterServiceVersion"
        UNSUPPORTED_STRATEGY = "unsupported install strategy: {strategy}"
        CONFIGURE_WEBHOOK_FAILED = "failed to configure webhook {webhook}: {error}"
        ENSURE_SERVICE_FAILED = "failed to ensure service {service} for webhook {webhook}: {error}"
        INVALID_WEBHOOK_PORT = "invalid service port {port!r}"

    class ConfigError(BaseStrEnum):
        """Configuration-related error message templates"""
        EMPTY_NAMESPACE = "namespace cannot be empty"
        INVALID_NAMESPACE = "Invalid Kubernetes namespace format: {namespace}"
        NAMESPACE_TOO_LONG = "Kubernetes namespace exceeds maximum length of {max_length}: {namespace}"
        CONFIG_FILE_NOT_FOUND = "Configuration file not found: {config_path}"
        UNKNOWN_CA_PROVIDER = "unknown CA provider: {provider} (expected one of: {choices})"
        INVALID_ISSUER_KIND = "invalid issuer kind: {kind} (expected one of: {choices})"
        INVALID_BOOLEAN = "invalid boolean value for {name}: {value}"

    class FilterError(BaseStrEnum):
        """Filter expression error message templates"""
        INVALID_INCLUDE = "invalid include expression \"{expression}\": {error}"
        INVALID_EXCLUDE = "invalid exclude expression \"{expression}\": {error}"

    class KRMError(BaseStrEnum):
        """ResourceList error message templates"""
        UNEXPECTED_API_VERSION = "unexpected APIVersion: got \"{got}\", want \"{want}\""
        UNEXPECTED_KIND = "unexpected Kind: got \"{got}\", want \"{want}\""
        MISSING_FUNCTION_CONFIG = "functionConfig is required but not provided"
        MISSING_FUNCTION_CONFIG_KIND = "functionConfig.kind is required"
        UNSUPPORTED_FUNCTION_CONFIG = "unsupported functionConfig kind: \"{kind}\" (expected \"{expected}\")"


class FileConstants:
    """File and directory related constants"""

    DEFAULT_CONFIG_FILE = "bundle-extract.yaml"
    HELP_DIR_NAME = "help"
    HELP_FILE_SUFFIX = "_help.txt"
