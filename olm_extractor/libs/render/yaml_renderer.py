"""
YAML Renderer

Writes resource objects as a multi-document YAML stream.
"""

import logging
from typing import Any, Dict, Iterable, TextIO

import yaml

from ..extract.kube import clean

logger = logging.getLogger(__name__)

YAML_INDENT = 2


class ManifestDumper(yaml.SafeDumper):
    """SafeDumper without anchors/aliases and with indented block sequences"""

    def ignore_aliases(self, data: Any) -> bool:
        return True

    def increase_indent(self, flow: bool = False, indentless: bool = False):
        return super().increase_indent(flow, False)


def dump_yaml(data: Any) -> str:
    """Dump one document in block style, preserving key order"""
    return yaml.dump(
        data,
        Dumper=ManifestDumper,
        default_flow_style=False,
        sort_keys=False,
        indent=YAML_INDENT,
        allow_unicode=True,
    )


def render_yaml(objects: Iterable[Dict[str, Any]], stream: TextIO) -> int:
    """
    Write cleaned objects to a stream, separated by "---"

    Args:
        objects: Resource objects
        stream: Output stream

    Returns:
        int: Number of documents written
    """
    count = 0
    for obj in objects:
        stream.write("---\n")
        stream.write(dump_yaml(clean(obj)))
        count += 1

    logger.debug(f"Rendered {count} documents")
    return count
