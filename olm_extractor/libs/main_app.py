"""
Main Application

Command line front end of the bundle extractor: runs the extraction
pipeline, acts as a KRM function, and generates configuration templates.
"""

import argparse
import logging
import sys
from typing import Any, Dict, List, Optional, TextIO

from .core import ConfigManager, setup_logging
from .core.config import SETTINGS, parse_bool, settings_to_config
from .core.constants import CAProviderName, EnvironmentConstants, KubernetesConstants
from .core.exceptions import ConfigurationError, ExtractorError
from .core.protocols import ConfigProvider, HelpProvider
from .help_manager import HelpManager
from .pipeline import run_pipeline
from .registry.retriever import LayerSourceFactory, default_layer_source
from .render.krm import ResourceList, execute as execute_krm
from .render.yaml_renderer import render_yaml

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


class BundleExtractor:
    """Main application orchestrator for the bundle-extract tool"""

    def __init__(
        self,
        config_provider: Optional[ConfigProvider] = None,
        help_provider: Optional[HelpProvider] = None,
        layer_source_factory: LayerSourceFactory = default_layer_source,
        debug: bool = False
    ):
        """
        Initialize the extractor with dependency injection

        Args:
            config_provider: Configuration provider (defaults to ConfigManager)
            help_provider: Help manager (defaults to HelpManager)
            layer_source_factory: Builds the registry-pull capability
            debug: Enable debug logging
        """
        self.debug = debug
        self.config_manager = config_provider or ConfigManager()
        self.help_manager = help_provider or HelpManager()
        self.layer_source_factory = layer_source_factory

    def load_config(self, config_path: str) -> Dict[str, Any]:
        """Load a configuration file; its values rank below environment and flags"""
        return self.config_manager.load_config(config_path)

    def generate_config(self, output_path: Optional[str] = None) -> str:
        """Write the configuration template and return its path"""
        return self.config_manager.generate_config_template(output_path)

    def run(self, cli_settings: Dict[str, Any], stream: TextIO,
            environ: Optional[Dict[str, str]] = None) -> int:
        """
        Extract a bundle and render it as a YAML stream

        Args:
            cli_settings: Flat settings from command line flags
            stream: Output stream for the manifests
            environ: Environment mapping (defaults to os.environ)

        Returns:
            int: Number of documents written

        Raises:
            ExtractorError: If configuration or any pipeline stage fails
        """
        settings = self.config_manager.build_settings(cli_settings, environ)

        source = settings.get('source') or ""
        if not source:
            raise ConfigurationError("a bundle path, image or package reference is required")

        if not settings.get('namespace'):
            raise ConfigurationError(
                f"--namespace is required (or set {EnvironmentConstants.ENV_PREFIX}NAMESPACE)"
            )

        config = settings_to_config(settings)
        objects = run_pipeline(source, config, self.layer_source_factory)
        return render_yaml(objects, stream)

    def krm(self, input_stream: TextIO, output_stream: TextIO) -> ResourceList:
        """Run as a KRM function; pipeline errors end up in the output results"""
        return execute_krm(input_stream, output_stream, self.layer_source_factory)


def _bool_argument(value: str) -> bool:
    try:
        return parse_bool(value)
    except ConfigurationError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure argument parser with subcommands.

    Uses parent parsers to share the flags common to all commands.
    """
    # Common parser: arguments shared by ALL commands
    common_parser = argparse.ArgumentParser(add_help=False)
    common_parser.add_argument(
        '--debug', action='store_true', help='Enable debug logging'
    )
    common_parser.add_argument(
        '--examples', action='store_true',
        help='Show usage examples for this command'
    )

    # Registry parser: arguments shared by commands that pull images
    registry_parser = argparse.ArgumentParser(add_help=False)
    registry_parser.add_argument(
        '--registry-insecure', action='store_const', const=True, default=None,
        help='Allow plain HTTP and self-signed certificates for registries'
    )
    registry_parser.add_argument('--registry-username', help='Registry username')
    registry_parser.add_argument('--registry-password', help='Registry password or token')

    # Main parser with custom help override
    parser = argparse.ArgumentParser(
        prog='bundle-extract',
        description='Bundle Extract - Render OLM operator bundles as plain Kubernetes manifests',
        add_help=False
    )
    parser.add_argument(
        '-h', '--help',
        action='store_true',
        help='Show this help message and exit'
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    run_parser = subparsers.add_parser(
        'run',
        parents=[common_parser, registry_parser],
        help='Extract manifests from a bundle',
        description=(
            'Extract installable manifests from a bundle directory, bundle image, '
            'or package[:version] in a catalog'
        )
    )
    run_parser.add_argument(
        'source', nargs='?', default=None,
        help='Bundle directory, bundle image, or package[:version] with --catalog'
    )
    run_parser.add_argument('-n', '--namespace', help='Target namespace')
    run_parser.add_argument(
        '--include', action='append', default=None,
        help='jq expression selecting objects to keep (repeatable)'
    )
    run_parser.add_argument(
        '--exclude', action='append', default=None,
        help='jq expression selecting objects to drop (repeatable)'
    )
    run_parser.add_argument('--temp-dir', help='Root directory for temporary files')
    run_parser.add_argument('--catalog', help='Catalog image or directory to resolve the package from')
    run_parser.add_argument('--channel', help='Catalog channel (defaults to the package default channel)')
    run_parser.add_argument(
        '--cert-manager-enabled', nargs='?', const=True, default=None, type=_bool_argument,
        metavar='BOOL', help='Configure webhook CA injection (default: true)'
    )
    run_parser.add_argument('--cert-manager-issuer-name', help='Existing issuer to reference')
    run_parser.add_argument(
        '--cert-manager-issuer-kind',
        choices=[str(k) for k in KubernetesConstants.Kind.get_issuer_kinds()],
        help='Kind of the existing issuer'
    )
    run_parser.add_argument(
        '--ca-provider', choices=[str(p) for p in CAProviderName],
        help='CA injection provider (default: cert-manager)'
    )
    run_parser.add_argument('--config', help='Configuration file path')

    _ = subparsers.add_parser(
        'krm',
        parents=[common_parser],
        help='Run as a KRM function',
        description='Read a ResourceList from stdin and write the extracted ResourceList to stdout'
    )

    generate_parser = subparsers.add_parser(
        'generate-config',
        parents=[common_parser],
        help='Generate configuration template',
        description='Generate a configuration template file for bundle-extract run --config'
    )
    generate_parser.add_argument('--output', help='File to write (prints to stdout when omitted)')

    return parser


def cli_settings_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Collect flag values as flat settings; flags not given are None

    Args:
        args: Parsed run arguments

    Returns:
        Dict keyed by flag name
    """
    return {
        setting: getattr(args, setting.replace('-', '_'), None)
        for setting in SETTINGS
    }


def handle_examples(command_name: str) -> bool:
    """Handle examples flag for any command. Returns True if examples were shown."""
    help_manager = HelpManager()
    help_manager.show_help(f"{command_name.replace('-', '_')}_examples")
    return True


def handle_run_command(args: argparse.Namespace, extractor: BundleExtractor) -> None:
    """Handle run command execution."""
    if args.config:
        extractor.load_config(args.config)

    extractor.run(cli_settings_from_args(args), sys.stdout)


def handle_krm_command(args: argparse.Namespace, extractor: BundleExtractor) -> None:
    """Handle krm command execution."""
    extractor.krm(sys.stdin, sys.stdout)


def handle_generate_config_command(args: argparse.Namespace, extractor: BundleExtractor) -> None:
    """
    Handle generate-config command.
    Prints the template to stdout unless --output is given.
    """
    if not args.output:
        print(extractor.config_manager.get_config_template_content(), end='')
        return

    config_file = extractor.generate_config(args.output)
    print(f"Configuration template generated: {config_file}", file=sys.stderr)


# Command dispatcher mapping
COMMAND_HANDLERS = {
    'run': handle_run_command,
    'krm': handle_krm_command,
    'generate-config': handle_generate_config_command,
}


def handle_early_exit_flags(args: argparse.Namespace, argv: List[str]) -> bool:
    """Handle early-exit flags like --help and --examples"""
    if not argv:
        HelpManager().show_help()
        return True

    # Show main_help.txt when --help is used without a subcommand
    if getattr(args, 'help', False) and not args.command:
        HelpManager().show_help()
        return True

    if getattr(args, 'examples', False) and args.command:
        return handle_examples(args.command)

    return False


def dispatch_command(args: argparse.Namespace, extractor: BundleExtractor) -> None:
    """Dispatch to the appropriate command handler"""
    handler = COMMAND_HANDLERS.get(args.command)
    if handler is None:
        raise ConfigurationError(f"unknown command: {args.command}")
    handler(args, extractor)


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point with unified execution flow"""
    argv = sys.argv[1:] if argv is None else argv

    # Step 1: Parse arguments
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    # Step 2: Handle early-exit flags like --help and --examples
    if handle_early_exit_flags(args, argv):
        return

    # Step 3: Validate command was specified
    if not args.command:
        print("Error: No command specified. Use --help for usage information.", file=sys.stderr)
        sys.exit(EXIT_FAILURE)

    # Step 4: Set up logging before any I/O
    debug = getattr(args, 'debug', False)
    setup_logging(debug)

    # Step 5: Dispatch to the command handler
    try:
        dispatch_command(args, BundleExtractor(debug=debug))
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.", file=sys.stderr)
        sys.exit(EXIT_INTERRUPTED)
    except ExtractorError as e:
        logger.debug(f"Command {args.command} failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    main()
