"""
File-Based Catalog Parser

Decodes file-based catalog (FBC) content into packages, channels and
bundle entries. JSON files may hold concatenated documents or NDJSON;
YAML files may hold multiple documents.
"""

import json
import logging
import os
from typing import Any, Dict, List, NamedTuple, Tuple

import yaml

from ..core.constants import CatalogConstants
from ..core.exceptions import ParsingError

logger = logging.getLogger(__name__)


class Package(NamedTuple):
    """olm.package entry"""
    name: str
    default_channel: str = ""


class ChannelEntry(NamedTuple):
    """Bundle reference inside an olm.channel"""
    name: str
    replaces: str = ""


class Channel(NamedTuple):
    """olm.channel entry; entries keep their source order"""
    package: str
    name: str
    entries: Tuple[ChannelEntry, ...] = ()


class BundleEntry(NamedTuple):
    """olm.bundle entry"""
    name: str
    package: str = ""
    image: str = ""


class CatalogIndex(NamedTuple):
    """Declarative index loaded from a catalog directory"""
    packages: Dict[str, Package]
    channels: Dict[Tuple[str, str], Channel]
    bundles: Dict[str, BundleEntry]


class FBCParser:
    """Parses file-based catalog documents"""

    def parse_json_stream(self, text_body: str) -> List[Dict[str, Any]]:
        """
        Parse a stream of JSON documents

        Handles both NDJSON and pretty-printed documents written back to back.

        Args:
            text_body: Raw JSON text content

        Returns:
            List of parsed JSON objects

        Raises:
            ParsingError: If the content is not valid JSON
        """
        decoder = json.JSONDecoder()
        items = []
        position = 0
        length = len(text_body)

        while True:
            while position < length and text_body[position].isspace():
                position += 1
            if position >= length:
                break
            try:
                item, position = decoder.raw_decode(text_body, position)
            except json.JSONDecodeError as e:
                raise ParsingError(f"invalid JSON at offset {position}: {e}") from e
            items.append(item)

        return items

    def parse_yaml_stream(self, text_body: str) -> List[Dict[str, Any]]:
        """
        Parse a multi-document YAML stream

        Args:
            text_body: Raw YAML text content

        Returns:
            List of non-empty documents

        Raises:
            ParsingError: If the content is not valid YAML
        """
        try:
            return [doc for doc in yaml.safe_load_all(text_body) if doc]
        except yaml.YAMLError as e:
            raise ParsingError(f"invalid YAML: {e}") from e

    def filter_by_schema(self, items: List[Dict[str, Any]], schema: str) -> List[Dict[str, Any]]:
        """
        Filter items by schema type

        Args:
            items: List of parsed documents
            schema: Schema type to filter by (e.g., 'olm.package', 'olm.channel', 'olm.bundle')

        Returns:
            List of items matching the schema
        """
        filtered = [item for item in items if isinstance(item, dict) and item.get('schema') == schema]
        logger.debug(f"Filtered {len(filtered)} items with schema '{schema}' from {len(items)} total items")
        return filtered

    def parse_file(self, path: str) -> List[Dict[str, Any]]:
        """
        Parse one catalog file according to its extension

        Args:
            path: File path

        Returns:
            Parsed documents; files with other extensions yield nothing

        Raises:
            ParsingError: If the file cannot be read or decoded
        """
        extension = os.path.splitext(path)[1].lower()
        if extension not in [str(ext) for ext in CatalogConstants.FileExtension]:
            return []

        try:
            with open(path, 'r', encoding='utf-8') as f:
                content = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise ParsingError(f"failed to read {path}: {e}") from e

        try:
            if extension == CatalogConstants.FileExtension.JSON:
                return self.parse_json_stream(content)
            return self.parse_yaml_stream(content)
        except ParsingError as e:
            raise ParsingError(f"failed to parse {path}: {e}") from e

    def load_directory(self, root: str) -> CatalogIndex:
        """
        Load every catalog file below a directory

        Files are visited in sorted path order so that index contents,
        including channel entry order, are deterministic.

        Args:
            root: Catalog directory

        Returns:
            CatalogIndex

        Raises:
            ParsingError: If any catalog file is malformed
        """
        documents = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            for filename in sorted(filenames):
                documents.extend(self.parse_file(os.path.join(dirpath, filename)))

        index = self.build_index(documents)
        logger.info(f"Loaded catalog with {len(index.packages)} packages, "
                    f"{len(index.channels)} channels and {len(index.bundles)} bundles")
        return index

    def build_index(self, documents: List[Dict[str, Any]]) -> CatalogIndex:
        """
        Build a CatalogIndex from parsed documents

        Args:
            documents: Parsed catalog documents (unknown schemas are ignored)

        Returns:
            CatalogIndex
        """
        packages = {}
        for item in self.filter_by_schema(documents, CatalogConstants.Schema.PACKAGE):
            package = Package(name=item.get('name', ""), default_channel=item.get('defaultChannel') or "")
            packages[package.name] = package

        channels = {}
        for item in self.filter_by_schema(documents, CatalogConstants.Schema.CHANNEL):
            entries = tuple(
                ChannelEntry(name=entry.get('name', ""), replaces=entry.get('replaces') or "")
                for entry in item.get('entries') or []
                if isinstance(entry, dict)
            )
            channel = Channel(package=item.get('package', ""), name=item.get('name', ""), entries=entries)
            channels[(channel.package, channel.name)] = channel

        bundles = {}
        for item in self.filter_by_schema(documents, CatalogConstants.Schema.BUNDLE):
            bundle = BundleEntry(
                name=item.get('name', ""),
                package=item.get('package', ""),
                image=item.get('image') or ""
            )
            bundles[bundle.name] = bundle

        return CatalogIndex(packages=packages, channels=channels, bundles=bundles)
