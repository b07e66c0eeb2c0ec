"""
Tar Extraction

Path-safe extraction of image layer archives. Every entry goes through
extract_tar_entry, which refuses anything that would land outside the
target directory.
"""

import logging
import os
import shutil
import tarfile
from typing import List

from ..core.constants import ErrorMessages, RegistryConstants
from ..core.exceptions import ExtractionError

logger = logging.getLogger(__name__)


def _illegal_path(name: str) -> ExtractionError:
    return ExtractionError(str(ErrorMessages.RegistryError.ILLEGAL_PATH).format(name=name))


def is_within_directory(target_dir: str, path: str) -> bool:
    """
    Check that a cleaned path is the target directory or strictly inside it

    Args:
        target_dir: Extraction root
        path: Candidate path

    Returns:
        bool: True if the path cannot escape the extraction root
    """
    clean_dir = os.path.normpath(target_dir)
    clean_path = os.path.normpath(path)
    return clean_path == clean_dir or clean_path.startswith(clean_dir + os.sep)


def extract_tar_entry(archive: tarfile.TarFile, member: tarfile.TarInfo, target_dir: str) -> None:
    """
    Extract a single tar entry into the target directory

    Directories, regular files (keeping the header mode bits) and symlinks
    are supported; every other entry type is skipped.

    Args:
        archive: Open tar archive containing the member
        member: Entry to extract
        target_dir: Extraction root

    Raises:
        ExtractionError: If the entry path is absolute or escapes the target directory
    """
    if os.path.isabs(member.name):
        raise _illegal_path(member.name)

    target = os.path.normpath(os.path.join(target_dir, member.name))
    if not is_within_directory(target_dir, target):
        raise _illegal_path(member.name)

    # Symlinked parents created by earlier entries must not redirect writes
    real_root = os.path.realpath(target_dir)
    if not is_within_directory(real_root, os.path.realpath(os.path.dirname(target))):
        logger.debug(f"Skipping {member.name}: parent directory resolves outside {target_dir}")
        return

    try:
        if member.isdir():
            os.makedirs(target, mode=RegistryConstants.DIR_PERMISSIONS, exist_ok=True)
        elif member.isreg():
            _extract_file(archive, member, target)
        elif member.issym():
            _extract_symlink(member, target)
        else:
            logger.debug(f"Skipping unsupported tar entry type for {member.name}")
    except OSError as e:
        raise ExtractionError(f"failed to extract {member.name}: {e}") from e


def _extract_file(archive: tarfile.TarFile, member: tarfile.TarInfo, target: str) -> None:
    os.makedirs(os.path.dirname(target), mode=RegistryConstants.DIR_PERMISSIONS, exist_ok=True)

    # Replace instead of writing through a symlink left by an earlier layer
    if os.path.islink(target):
        os.remove(target)

    source = archive.extractfile(member)
    if source is None:
        return

    flags = os.O_CREAT | os.O_WRONLY | os.O_TRUNC
    with source, os.fdopen(os.open(target, flags, member.mode & 0o7777), 'wb') as destination:
        shutil.copyfileobj(source, destination)


def _extract_symlink(member: tarfile.TarInfo, target: str) -> None:
    os.makedirs(os.path.dirname(target), mode=RegistryConstants.DIR_PERMISSIONS, exist_ok=True)

    try:
        os.remove(target)
    except FileNotFoundError:
        pass

    os.symlink(member.linkname, target)


def extract_archive(archive: tarfile.TarFile, target_dir: str) -> int:
    """
    Extract every entry of an archive

    Args:
        archive: Open tar archive
        target_dir: Extraction root

    Returns:
        int: Number of entries processed

    Raises:
        ExtractionError: On the first unsafe or unreadable entry
    """
    count = 0
    try:
        for member in archive:
            extract_tar_entry(archive, member, target_dir)
            count += 1
    except tarfile.TarError as e:
        raise ExtractionError(f"failed to read tar header: {e}") from e

    return count


def _strip_entry_name(name: str) -> str:
    return name[2:] if name.startswith('./') else name


def layer_contains_relevant_paths(archive: tarfile.TarFile, prefixes: List[str]) -> bool:
    """
    Check archive headers for any entry below one of the prefixes

    Only headers are read; no content is written to disk.

    Args:
        archive: Open tar archive
        prefixes: Path prefixes such as "/configs/"

    Returns:
        bool: True if at least one entry matches
    """
    try:
        names = archive.getnames()
    except tarfile.TarError as e:
        raise ExtractionError(f"failed to read tar header: {e}") from e

    for name in names:
        entry = _strip_entry_name(name)
        for prefix in prefixes:
            if entry.startswith(prefix) or entry.startswith(prefix.lstrip('/')):
                return True

    return False


def has_all_required_content(target_dir: str, prefixes: List[str]) -> bool:
    """
    Check whether every prefix already exists below the target directory

    Args:
        target_dir: Extraction root
        prefixes: Path prefixes such as "/configs/"

    Returns:
        bool: True if all prefixes are present on disk
    """
    return all(
        os.path.exists(os.path.join(target_dir, prefix.strip('/')))
        for prefix in prefixes
    )
