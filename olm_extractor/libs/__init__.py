"""
Bundle Extract Library

Renders OLM operator bundles as plain Kubernetes manifests.
"""

__version__ = "1.0.0"
__author__ = "OLMv1 Project"

# Core libraries
from .core import (
    ConfigManager, ExtractorConfig,
    ExtractorError, ConfigurationError, AuthenticationError, NetworkError, RegistryError,
    ExtractionError, CatalogError, BundleLoadError, FilterError, TransformationError, ParsingError
)

# Pipeline
from .bundle import Bundle, load_bundle
from .extract.transform import apply_transformations, extract_manifests
from .pipeline import run_pipeline

# Rendering
from .render import ResourceList, render_yaml

# Main application and help
from .help_manager import HelpManager
from .main_app import BundleExtractor, main

__all__ = [
    # Core
    'ConfigManager',
    'ExtractorConfig',
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
    # Pipeline
    'Bundle',
    'load_bundle',
    'extract_manifests',
    'apply_transformations',
    'run_pipeline',
    # Rendering
    'ResourceList',
    'render_yaml',
    # Main
    'HelpManager',
    'BundleExtractor',
    'main'
]
