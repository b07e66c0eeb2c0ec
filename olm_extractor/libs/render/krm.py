"""
KRM Function Support

Reads a ResourceList with an Extractor functionConfig, runs the extraction
pipeline and writes a ResourceList with the generated items. Pipeline
failures are reported as error results on the written list.
"""

import logging
from typing import Any, Dict, List, Optional, TextIO, Tuple

import yaml

from ..core.config import ExtractorConfig, settings_to_config, spec_to_settings
from ..core.constants import ErrorMessages, KRMConstants
from ..core.exceptions import ConfigurationError, ExtractorError, ParsingError
from ..extract.kube import clean
from ..pipeline import run_pipeline
from ..registry.retriever import LayerSourceFactory, default_layer_source
from .yaml_renderer import dump_yaml

logger = logging.getLogger(__name__)

Severity = KRMConstants.Severity


class ResourceList:
    """KRM ResourceList envelope"""

    def __init__(self, items: Optional[List[Dict[str, Any]]] = None,
                 function_config: Optional[Dict[str, Any]] = None):
        self.items = items if items is not None else []
        self.function_config = function_config
        self.results: List[Dict[str, str]] = []

    def add_result(self, message: str, severity: str) -> None:
        self.results.append({'message': message, 'severity': str(severity)})

    def add_error(self, message: str) -> None:
        logger.error(message)
        self.add_result(message, Severity.ERROR)

    def add_warning(self, message: str) -> None:
        self.add_result(message, Severity.WARNING)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form; functionConfig and results are omitted when empty"""
        data: Dict[str, Any] = {
            'apiVersion': KRMConstants.RESOURCE_LIST_API_VERSION,
            'kind': KRMConstants.RESOURCE_LIST_KIND,
            'items': self.items,
        }
        if self.function_config:
            data['functionConfig'] = self.function_config
        if self.results:
            data['results'] = self.results
        return data


def read_resource_list(stream: TextIO) -> ResourceList:
    """
    Read and validate a ResourceList

    Args:
        stream: Input stream (usually stdin)

    Returns:
        ResourceList

    Raises:
        ParsingError: If the input is not a ResourceList
    """
    try:
        data = yaml.safe_load(stream.read())
    except yaml.YAMLError as e:
        raise ParsingError(f"failed to unmarshal ResourceList: {e}") from e

    if not isinstance(data, dict):
        raise ParsingError("failed to unmarshal ResourceList: input is not a mapping")

    api_version = data.get('apiVersion') or ""
    if api_version != KRMConstants.RESOURCE_LIST_API_VERSION:
        raise ParsingError(str(ErrorMessages.KRMError.UNEXPECTED_API_VERSION).format(
            got=api_version, want=KRMConstants.RESOURCE_LIST_API_VERSION
        ))

    kind = data.get('kind') or ""
    if kind != KRMConstants.RESOURCE_LIST_KIND:
        raise ParsingError(str(ErrorMessages.KRMError.UNEXPECTED_KIND).format(
            got=kind, want=KRMConstants.RESOURCE_LIST_KIND
        ))

    return ResourceList(items=data.get('items') or [], function_config=data.get('functionConfig'))


def write_resource_list(resource_list: ResourceList, stream: TextIO) -> None:
    """Write a ResourceList as a single YAML document"""
    stream.write(dump_yaml(resource_list.to_dict()))


def extract_function_config(resource_list: ResourceList) -> Dict[str, Any]:
    """
    Get the Extractor spec of a ResourceList

    Raises:
        ParsingError: If the functionConfig is missing or not an Extractor
    """
    function_config = resource_list.function_config
    if not function_config:
        raise ParsingError(str(ErrorMessages.KRMError.MISSING_FUNCTION_CONFIG))

    kind = function_config.get('kind') if isinstance(function_config, dict) else None
    if not kind:
        raise ParsingError(str(ErrorMessages.KRMError.MISSING_FUNCTION_CONFIG_KIND))

    if kind != KRMConstants.FUNCTION_CONFIG_KIND:
        raise ParsingError(str(ErrorMessages.KRMError.UNSUPPORTED_FUNCTION_CONFIG).format(
            kind=kind, expected=KRMConstants.FUNCTION_CONFIG_KIND
        ))

    spec = function_config.get('spec') or {}
    if not isinstance(spec, dict):
        raise ParsingError("failed to decode Extractor: spec must be a mapping")
    return spec


def spec_to_config(spec: Dict[str, Any]) -> Tuple[ExtractorConfig, str]:
    """
    Convert an Extractor spec to a run configuration and its source

    Raises:
        ConfigurationError: If the spec is incomplete or invalid
    """
    settings = spec_to_settings(spec)
    source = settings.get('source') or ""
    if not source:
        raise ConfigurationError("spec.source is required")
    return settings_to_config(settings), source


def execute(input_stream: TextIO, output_stream: TextIO,
            layer_source_factory: LayerSourceFactory = default_layer_source) -> ResourceList:
    """
    Run the extractor as a KRM function

    Args:
        input_stream: ResourceList input
        output_stream: ResourceList output
        layer_source_factory: Builds the registry-pull capability

    Returns:
        The ResourceList written to the output stream

    Raises:
        ParsingError: If the input ResourceList or functionConfig is malformed
    """
    resource_list = read_resource_list(input_stream)
    spec = extract_function_config(resource_list)

    output = ResourceList()

    try:
        config, source = spec_to_config(spec)
    except ExtractorError as e:
        output.add_error(f"invalid configuration: {e}")
        write_resource_list(output, output_stream)
        return output

    try:
        objects = run_pipeline(source, config, layer_source_factory)
    except ExtractorError as e:
        output.add_error(str(e))
        write_resource_list(output, output_stream)
        return output

    output.items = [clean(obj) for obj in objects]
    if not output.items:
        output.add_warning("no objects left after filtering")
    write_resource_list(output, output_stream)
    return output
