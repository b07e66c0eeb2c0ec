"""
Configuration Management

Builds the extractor configuration from command line flags, BUNDLE_EXTRACT_*
environment variables and an optional YAML configuration file.
"""

import logging
import os
from io import StringIO
from pathlib import Path
from typing import Any, Dict, Mapping, NamedTuple, Optional, Tuple

import yaml
from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap, CommentedSeq

from .constants import (
    CAProviderName, EnvironmentConstants, ErrorMessages, FileConstants, KubernetesConstants
)
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class RegistryConfig(NamedTuple):
    """Registry authentication and connection options"""
    insecure: bool = False
    username: str = ""
    password: str = ""


class CertManagerConfig(NamedTuple):
    """Webhook CA injection options"""
    enabled: bool = True
    issuer_name: str = ""
    issuer_kind: str = ""
    provider: str = str(CAProviderName.CERT_MANAGER)


class ExtractorConfig(NamedTuple):
    """Complete configuration of one extraction run"""
    namespace: str = ""
    include: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()
    temp_dir: str = ""
    catalog: str = ""
    channel: str = ""
    cert_manager: CertManagerConfig = CertManagerConfig()
    registry: RegistryConfig = RegistryConfig()


# Flat settings keyed by command line flag name, with their value types
SETTINGS: Dict[str, type] = {
    'source': str,
    'namespace': str,
    'include': list,
    'exclude': list,
    'temp-dir': str,
    'catalog': str,
    'channel': str,
    'cert-manager-enabled': bool,
    'cert-manager-issuer-name': str,
    'cert-manager-issuer-kind': str,
    'ca-provider': str,
    'registry-insecure': bool,
    'registry-username': str,
    'registry-password': str,
}


def env_var_name(setting: str) -> str:
    """
    Get the environment variable bound to a setting

    Args:
        setting: Flag name such as "registry-password"

    Returns:
        Environment variable name such as "BUNDLE_EXTRACT_REGISTRY_PASSWORD"
    """
    return EnvironmentConstants.ENV_PREFIX + setting.upper().replace('-', '_')


def parse_bool(value: Any, name: str = "value") -> bool:
    """
    Parse a boolean flag or environment value

    Args:
        value: Raw value (bool or string)
        name: Setting name for error messages

    Returns:
        Parsed boolean

    Raises:
        ConfigurationError: If the value is not a recognised boolean
    """
    if isinstance(value, bool):
        return value

    normalized = str(value).strip().lower()
    if normalized in EnvironmentConstants.TRUE_VALUES:
        return True
    if normalized in EnvironmentConstants.FALSE_VALUES:
        return False

    raise ConfigurationError(
        str(ErrorMessages.ConfigError.INVALID_BOOLEAN).format(name=name, value=value)
    )


def load_environment(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """
    Read settings from BUNDLE_EXTRACT_* environment variables

    Repeatable settings are newline separated.

    Args:
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Dict of settings present in the environment
    """
    environ = os.environ if environ is None else environ
    settings = {}

    for setting, value_type in SETTINGS.items():
        name = env_var_name(setting)
        if name not in environ:
            continue

        raw = environ[name]
        if value_type is bool:
            settings[setting] = parse_bool(raw, name)
        elif value_type is list:
            settings[setting] = [line.strip() for line in raw.splitlines() if line.strip()]
        else:
            settings[setting] = raw

        logger.debug(f"Setting {setting} taken from environment variable {name}")

    return settings


def spec_to_settings(spec: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Flatten an Extractor-style spec (config file or KRM functionConfig)

    Args:
        spec: Nested mapping with source, catalog, certManager and registry sections

    Returns:
        Dict of flat settings present in the spec
    """
    settings: Dict[str, Any] = {}

    def put(key: str, value: Any) -> None:
        if value is not None:
            settings[key] = value

    put('source', spec.get('source'))
    put('namespace', spec.get('namespace'))
    put('include', spec.get('include'))
    put('exclude', spec.get('exclude'))
    put('temp-dir', spec.get('tempDir'))

    catalog = spec.get('catalog') or {}
    put('catalog', catalog.get('source'))
    put('channel', catalog.get('channel'))

    cert_manager = spec.get('certManager') or {}
    put('cert-manager-enabled', cert_manager.get('enabled'))
    put('cert-manager-issuer-name', cert_manager.get('issuerName'))
    put('cert-manager-issuer-kind', cert_manager.get('issuerKind'))
    put('ca-provider', cert_manager.get('provider'))

    registry = spec.get('registry') or {}
    put('registry-insecure', registry.get('insecure'))
    put('registry-username', registry.get('username'))
    put('registry-password', registry.get('password'))

    return settings


def settings_to_config(settings: Mapping[str, Any]) -> ExtractorConfig:
    """
    Build and validate an ExtractorConfig from flat settings

    The namespace itself is validated separately so that callers can
    report it with their own context.

    Args:
        settings: Flat settings keyed by flag name

    Returns:
        ExtractorConfig

    Raises:
        ConfigurationError: If the CA provider or issuer kind is not supported
    """
    provider = settings.get('ca-provider') or str(CAProviderName.CERT_MANAGER)
    provider_choices = [str(p) for p in CAProviderName]
    if provider not in provider_choices:
        raise ConfigurationError(
            str(ErrorMessages.ConfigError.UNKNOWN_CA_PROVIDER).format(
                provider=provider, choices=', '.join(provider_choices)
            )
        )

    issuer_kind = settings.get('cert-manager-issuer-kind') or ""
    issuer_kinds = [str(k) for k in KubernetesConstants.Kind.get_issuer_kinds()]
    if issuer_kind and issuer_kind not in issuer_kinds:
        raise ConfigurationError(
            str(ErrorMessages.ConfigError.INVALID_ISSUER_KIND).format(
                kind=issuer_kind, choices=', '.join(issuer_kinds)
            )
        )

    enabled = settings.get('cert-manager-enabled')

    return ExtractorConfig(
        namespace=settings.get('namespace') or "",
        include=tuple(settings.get('include') or ()),
        exclude=tuple(settings.get('exclude') or ()),
        temp_dir=settings.get('temp-dir') or "",
        catalog=settings.get('catalog') or "",
        channel=settings.get('channel') or "",
        cert_manager=CertManagerConfig(
            enabled=True if enabled is None else parse_bool(enabled, 'cert-manager-enabled'),
            issuer_name=settings.get('cert-manager-issuer-name') or "",
            issuer_kind=issuer_kind,
            provider=provider,
        ),
        registry=RegistryConfig(
            insecure=parse_bool(settings.get('registry-insecure') or False, 'registry-insecure'),
            username=settings.get('registry-username') or "",
            password=settings.get('registry-password') or "",
        ),
    )


class ConfigManager:
    """Manages configuration loading, merging and validation"""

    # Configuration file schema - same shape as the KRM Extractor spec
    CONFIG_SCHEMA = {
        'source': {'type': str, 'required': False},
        'namespace': {'type': str, 'required': False},
        'include': {'type': list, 'required': False},
        'exclude': {'type': list, 'required': False},
        'tempDir': {'type': str, 'required': False},
        'catalog': {
            'type': dict,
            'required': False,
            'fields': {
                'source': {'type': str, 'required': True},
                'channel': {'type': str, 'required': False}
            }
        },
        'certManager': {
            'type': dict,
            'required': False,
            'fields': {
                'enabled': {'type': bool, 'required': False},
                'issuerName': {'type': str, 'required': False},
                'issuerKind': {'type': str, 'required': False,
                               'choices': ['Issuer', 'ClusterIssuer']},
                'provider': {'type': str, 'required': False,
                             'choices': [str(p) for p in CAProviderName]}
            }
        },
        'registry': {
            'type': dict,
            'required': False,
            'fields': {
                'insecure': {'type': bool, 'required': False},
                'username': {'type': str, 'required': False},
                'password': {'type': str, 'required': False}
            }
        },
    }

    def __init__(self):
        """Initialize configuration manager"""
        self.config_data = {}
        self.config_file_path = None

    def load_config(self, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from YAML file

        Args:
            config_path: Path to configuration file

        Returns:
            Dict containing configuration data

        Raises:
            ConfigurationError: If configuration file cannot be loaded or is invalid
        """
        config_file = Path(config_path)

        if not config_file.exists():
            raise ConfigurationError(
                str(ErrorMessages.ConfigError.CONFIG_FILE_NOT_FOUND).format(config_path=config_path)
            )

        if not config_file.is_file():
            raise ConfigurationError(f"Configuration path is not a file: {config_path}")

        try:
            with open(config_file, 'r') as f:
                self.config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file {config_path}: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Failed to load configuration from {config_path}: {e}") from e

        self.config_file_path = config_path
        logger.info(f"Successfully loaded configuration from {config_path}")

        self._validate_config()

        return self.config_data

    def _validate_config(self) -> None:
        """
        Validate configuration structure and values

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not isinstance(self.config_data, dict):
            raise ConfigurationError("Configuration must be a dictionary")

        self._validate_against_schema(self.config_data, self.CONFIG_SCHEMA, "config")

    def _validate_against_schema(self, data: Dict[str, Any], schema: Dict[str, Any], path: str = "") -> None:
        """
        Validate data against schema definition

        Args:
            data: Data to validate
            schema: Schema definition
            path: Current path for error reporting

        Raises:
            ConfigurationError: If data doesn't match schema
        """
        for key, field_schema in schema.items():
            current_path = f"{path}.{key}" if path else key

            if key in data:
                value = data[key]

                # Skip None values for optional fields
                if value is None and not field_schema.get('required', False):
                    continue

                expected_type = field_schema['type']
                if not isinstance(value, expected_type):
                    type_name = expected_type.__name__
                    raise ConfigurationError(f"{current_path} must be a {type_name}")

                if 'choices' in field_schema:
                    if value not in field_schema['choices']:
                        choices_str = ', '.join(f"'{c}'" for c in field_schema['choices'])
                        raise ConfigurationError(f"{current_path} must be one of: {choices_str}")

                # Recursively validate nested dictionaries
                if expected_type == dict and 'fields' in field_schema:
                    self._validate_against_schema(value, field_schema['fields'], current_path)

            elif field_schema.get('required', False):
                raise ConfigurationError(f"Required field {current_path} is missing")

    def get_config(self) -> Dict[str, Any]:
        """
        Get current configuration data

        Returns:
            Dict containing configuration data
        """
        return self.config_data.copy()

    def get_value(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by key

        Args:
            key: Configuration key (supports dot notation like 'certManager.issuerName')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self.config_data

        try:
            for k in key.split('.'):
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def build_settings(
        self,
        cli_settings: Mapping[str, Any],
        environ: Optional[Mapping[str, str]] = None
    ) -> Dict[str, Any]:
        """
        Merge settings by precedence: flags > environment > config file

        Args:
            cli_settings: Settings from command line flags; None means "not given"
            environ: Environment mapping (defaults to os.environ)

        Returns:
            Merged flat settings
        """
        settings = spec_to_settings(self.config_data)
        settings.update(load_environment(environ))
        settings.update({key: value for key, value in cli_settings.items() if value is not None})
        return settings

    def build_config(
        self,
        cli_settings: Mapping[str, Any],
        environ: Optional[Mapping[str, str]] = None
    ) -> ExtractorConfig:
        """
        Build the run configuration from all configuration sources

        Args:
            cli_settings: Settings from command line flags
            environ: Environment mapping (defaults to os.environ)

        Returns:
            ExtractorConfig
        """
        return settings_to_config(self.build_settings(cli_settings, environ))

    def get_config_template_content(self) -> str:
        """
        Generate configuration template content as string without file I/O

        Returns:
            str: YAML configuration template content with comments
        """
        yaml_processor = YAML()
        yaml_processor.width = 4096
        yaml_processor.indent(mapping=2, sequence=4, offset=2)

        template = CommentedMap()
        template["source"] = "example-operator:1.0.0"
        template['namespace'] = "operators"
        template['include'] = CommentedSeq()
        template['exclude'] = CommentedSeq()
        template['tempDir'] = ""

        catalog = CommentedMap()
        catalog['source'] = "quay.io/example/catalog:latest"
        catalog['channel'] = ""
        template['catalog'] = catalog

        cert_manager = CommentedMap()
        cert_manager['enabled'] = True
        cert_manager['issuerName'] = ""
        cert_manager['issuerKind'] = "Issuer"
        cert_manager['provider'] = str(CAProviderName.CERT_MANAGER)
        template['certManager'] = cert_manager

        registry = CommentedMap()
        registry['insecure'] = False
        registry['username'] = ""
        registry['password'] = ""
        template['registry'] = registry

        template.yaml_set_start_comment(
            "Bundle Extract Configuration File\n"
            "Values here are overridden by BUNDLE_EXTRACT_* environment variables and flags"
        )
        template.yaml_set_comment_before_after_key(
            'include', before="jq expressions; an object is kept if any include is true"
        )
        template.yaml_set_comment_before_after_key(
            'catalog', before="Remove this section to read 'source' as a bundle image or directory"
        )
        cert_manager.yaml_add_eol_comment("empty name generates a self-signed Issuer", 'issuerName')
        registry.yaml_add_eol_comment("defaults to docker/podman auth files", 'username')

        stream = StringIO()
        yaml_processor.dump(template, stream)
        return stream.getvalue()

    def generate_config_template(self, output_path: Optional[str] = None) -> str:
        """
        Write the configuration template file

        Args:
            output_path: File to write (defaults to bundle-extract.yaml)

        Returns:
            str: Path to the written file

        Raises:
            ConfigurationError: If the file cannot be written
        """
        config_file = Path(output_path or FileConstants.DEFAULT_CONFIG_FILE)

        try:
            config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(config_file, 'w') as f:
                f.write(self.get_config_template_content())
        except OSError as e:
            raise ConfigurationError(f"Failed to write configuration file: {e}") from e

        logger.info(f"Configuration file written: {config_file}")
        return str(config_file)

