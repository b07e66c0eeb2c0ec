"""
Extraction Libraries

Turns a bundle into plain Kubernetes objects: synthesis, name normalization,
filtering and apply ordering. The pipeline stages live in extract.transform,
which is imported directly because it depends on cainjection.
"""

from .filter import ResourceFilter
from .kube import clean, sort_for_apply
from .normalize import normalize_names
from .synthesizer import ManifestSynthesizer, synthesize
from .templates import ManifestTemplates

__all__ = [
    'ResourceFilter',
    'clean',
    'sort_for_apply',
    'normalize_names',
    'ManifestSynthesizer',
    'synthesize',
    'ManifestTemplates'
]
