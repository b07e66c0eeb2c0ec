"""
Help Manager

Serves the help and example texts stored in the package help/ directory.
"""

from pathlib import Path
from typing import List, Optional

from .core.constants import FileConstants


class HelpManager:
    """Manages help text and documentation"""

    def __init__(self, help_dir: Optional[Path] = None):
        self.help_dir = help_dir or Path(__file__).parent.parent / FileConstants.HELP_DIR_NAME

    def get_help(self, command: str) -> str:
        """Get help text for a specific command"""
        # Help files use underscores, commands use dashes
        command_file = command.replace('-', '_')
        help_file = self.help_dir / f"{command_file}{FileConstants.HELP_FILE_SUFFIX}"

        if help_file.exists():
            return help_file.read_text(encoding='utf-8')
        return f"No help available for command: {command}"

    def get_main_help(self) -> str:
        """Get main help text"""
        return self.get_help("main")

    def get_examples(self) -> str:
        """Get examples help text"""
        return self.get_help("examples")

    def list_available_commands(self) -> List[str]:
        """List commands that have a help file, excluding main and example pages"""
        commands = []
        for help_file in self.help_dir.glob(f"*{FileConstants.HELP_FILE_SUFFIX}"):
            command = help_file.stem[:-len("_help")]
            if command != "main" and not command.endswith("examples"):
                commands.append(command.replace('_', '-'))
        return sorted(commands)

    def show_help(self, command: Optional[str] = None) -> None:
        """Show help for command or main help if no command specified"""
        if command is None:
            print(self.get_main_help())
        else:
            print(self.get_help(command))

    def show_examples(self) -> None:
        """Show examples help"""
        print(self.get_examples())
