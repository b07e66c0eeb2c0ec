"""
Rendering Libraries

Writes extracted objects as a YAML stream or a KRM ResourceList.
"""

from .krm import ResourceList, execute
from .yaml_renderer import render_yaml

__all__ = [
    'ResourceList',
    'execute',
    'render_yaml'
]
