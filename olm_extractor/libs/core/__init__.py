"""
Core Libraries

Shared configuration, credentials, constants and utilities for the bundle
extractor.
"""

from .auth import DefaultKeychain, RegistryCredentials, StaticKeychain, build_keychain
from .config import CertManagerConfig, ConfigManager, ExtractorConfig, RegistryConfig
from .constants import (
    CAProviderName, CatalogConstants, CertManagerConstants, ErrorMessages, FileConstants,
    KRMConstants, KubernetesConstants, NetworkConstants, OLMConstants, RegistryConstants
)
from .exceptions import (
    ExtractorError, ConfigurationError, AuthenticationError, NetworkError, RegistryError,
    ExtractionError, CatalogError, BundleLoadError, FilterError, TransformationError, ParsingError
)
from .protocols import ConfigProvider, HelpProvider, Keychain, LayerSource, ObjectPredicate
from .utils import (
    setup_logging, validate_namespace, parse_package_reference, format_bytes,
    handle_api_error, mask_sensitive_info
)

__all__ = [
    # Main classes
    'ConfigManager',
    'DefaultKeychain',
    'StaticKeychain',
    'RegistryCredentials',
    'build_keychain',
    # Configuration
    'ExtractorConfig',
    'CertManagerConfig',
    'RegistryConfig',
    # Constants
    'CAProviderName',
    'CatalogConstants',
    'CertManagerConstants',
    'ErrorMessages',
    'FileConstants',
    'KRMConstants',
    'KubernetesConstants',
    'NetworkConstants',
    'OLMConstants',
    'RegistryConstants',
    # Exceptions
    'ExtractorError',
    'ConfigurationError',
    'AuthenticationError',
    'NetworkError',
    'RegistryError',
    'ExtractionError',
    'CatalogError',
    'BundleLoadError',
    'FilterError',
    'TransformationError',
    'ParsingError',
    # Protocols
    'ConfigProvider',
    'HelpProvider',
    'Keychain',
    'LayerSource',
    'ObjectPredicate',
    # Utilities
    'setup_logging',
    'validate_namespace',
    'parse_package_reference',
    'format_bytes',
    'handle_api_error',
    'mask_sensitive_info'
]
