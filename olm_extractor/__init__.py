"""
Bundle Extract

Extracts the installable Kubernetes manifests of an OLM operator bundle,
taken from a directory, a bundle image or a file-based catalog, so that the
operator can be installed without OLM.
"""

__version__ = "1.0.0"
__author__ = "OLMv1 Project"

from .libs import (
    ConfigManager, ExtractorConfig, ExtractorError,
    Bundle, load_bundle, extract_manifests, apply_transformations, run_pipeline,
    ResourceList, render_yaml,
    HelpManager, BundleExtractor, main
)

__all__ = [
    'ConfigManager',
    'ExtractorConfig',
    'ExtractorError',
    'Bundle',
    'load_bundle',
    'extract_manifests',
    'apply_transformations',
    'run_pipeline',
    'ResourceList',
    'render_yaml',
    'HelpManager',
    'BundleExtractor',
    'main'
]
