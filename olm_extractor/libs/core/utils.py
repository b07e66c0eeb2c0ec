"""
Core Utilities

Common utility functions used across the OLM bundle extractor.
"""

import logging
import re
import sys
from typing import Optional, Tuple, Type

from .constants import ErrorMessages, KubernetesConstants
from .exceptions import AuthenticationError, ConfigurationError, ExtractorError, NetworkError


def setup_logging(debug: bool = False) -> None:
    """
    Set up logging configuration for the application.

    All log records go to stderr because stdout carries the rendered
    manifest stream. ERROR and above use a separate handler so they are
    still emitted when the general level is raised.

    Args:
        debug: Enable debug logging level
    """
    level = logging.DEBUG if debug else logging.WARNING

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # DEBUG, INFO and WARNING
    info_handler = logging.StreamHandler(sys.stderr)
    info_handler.setLevel(level)
    info_handler.setFormatter(formatter)
    info_handler.addFilter(lambda record: record.levelno < logging.ERROR)

    # ERROR and CRITICAL only
    error_handler = logging.StreamHandler(sys.stderr)
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)

    root_logger.addHandler(info_handler)
    root_logger.addHandler(error_handler)

    if debug:
        logger = logging.getLogger(__name__)
        logger.debug("Debug mode enabled")


def mask_sensitive_info(text: str, password: Optional[str] = None) -> str:
    """
    Mask sensitive information in text for logging and debug output.

    Args:
        text: Text to mask
        password: Registry password or token to mask (optional)

    Returns:
        Text with sensitive information masked
    """
    if not text:
        return text

    masked_text = text

    if password and password in masked_text:
        masked_text = masked_text.replace(password, "***MASKED***")

    # Mask bearer tokens
    masked_text = re.sub(r'Bearer [A-Za-z0-9+/=_.-]+', 'Bearer ***MASKED***', masked_text)

    # Mask basic auth tokens
    masked_text = re.sub(r'Basic [A-Za-z0-9+/=]+', 'Basic ***MASKED***', masked_text)

    return masked_text


class ValidationConfig:
    """
    Configuration-driven validation patterns.

    Centralizes validation patterns, error messages, and constraints.
    """

    NAMESPACE = {
        'pattern': KubernetesConstants.NAMESPACE_PATTERN,
        'error': ErrorMessages.ConfigError.INVALID_NAMESPACE,
        'empty_error': ErrorMessages.ConfigError.EMPTY_NAMESPACE,
        'name': 'Namespace',
        'max_length': KubernetesConstants.NAMESPACE_MAX_LENGTH,
        'description': 'Kubernetes namespace (lowercase alphanumeric with hyphens)'
    }


def _validate_with_config(value: str, config: dict) -> bool:
    """
    Generic validation using configuration-driven approach.

    Args:
        value: The string to validate
        config: Validation configuration dictionary

    Returns:
        bool: True if validation passes

    Raises:
        ConfigurationError: If validation fails
    """
    if not value or not isinstance(value, str):
        raise ConfigurationError(str(config['empty_error']))

    # Length is checked first so overly long values get the clearer message
    if 'max_length' in config and len(value) > config['max_length']:
        raise ConfigurationError(
            str(ErrorMessages.ConfigError.NAMESPACE_TOO_LONG).format(
                max_length=config['max_length'], namespace=value
            )
        )

    _validate_input(value, config['pattern'], str(config['error']), config['name'])

    return True


def _validate_input(value: str, pattern: str, error_template: str, name: str) -> bool:
    """
    Private helper function to validate input against a regex pattern.

    Args:
        value: The string to validate
        pattern: The regex pattern to match against
        error_template: Error message template from ErrorMessages enum
        name: The name of the field being validated (for error messages)

    Returns:
        bool: True if validation passes

    Raises:
        ConfigurationError: If validation fails
    """
    if not re.match(pattern, value):
        raise ConfigurationError(error_template.format(**{name.lower(): value}))

    return True


def validate_namespace(namespace: str) -> bool:
    """
    Validate if the provided string is a valid Kubernetes namespace.

    Args:
        namespace: Kubernetes namespace to validate

    Returns:
        bool: True if valid namespace

    Raises:
        ConfigurationError: If namespace is empty or invalid
    """
    return _validate_with_config(namespace, ValidationConfig.NAMESPACE)


def parse_package_reference(reference: str) -> Tuple[str, str]:
    """
    Split a "package[:version]" reference.

    Args:
        reference: Package reference, e.g. "prometheus:0.56.0"

    Returns:
        Tuple of (package name, version); version is "" when absent
    """
    name, _, version = reference.partition(':')
    return name, version


def format_bytes(bytes_count: int) -> str:
    """
    Format byte count into human-readable string.

    Args:
        bytes_count: Number of bytes

    Returns:
        str: Human-readable byte count (e.g., "1.5 MB")
    """
    if bytes_count == 0:
        return "0 B"

    units = ['B', 'KB', 'MB', 'GB', 'TB']
    unit_index = 0
    size = float(bytes_count)

    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1

    return f"{size:.1f} {units[unit_index]}"


def handle_api_error(
    error: Exception,
    context: str = "",
    exception_class: Optional[Type[ExtractorError]] = None
) -> None:
    """
    Inspect a transport exception and raise the matching extractor error.

    Args:
        error: The caught exception to analyze and handle
        context: Optional context information for better error messages
        exception_class: The specific exception class to raise (defaults based on error type)

    Raises:
        ExtractorError: Appropriate error type with the context prepended
    """
    error_str = str(error).lower()

    if exception_class is None:
        if any(indicator in error_str for indicator in ["unauthorized", "401", "forbidden", "403"]):
            exception_class = AuthenticationError
        else:
            exception_class = NetworkError

    context_msg = f"{context}: " if context else ""

    if "certificate verify failed" in error_str or "certificate_verify_failed" in error_str:
        raise exception_class(
            f"{context_msg}TLS certificate verification failed; "
            f"use --registry-insecure for registries with self-signed certificates"
        ) from error

    raise exception_class(f"{context_msg}{error}") from error
