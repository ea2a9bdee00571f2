"""Extraction of zipped recordings.

A zipped recording ``run1.zip`` contains a top-level ``run1/`` directory
holding ``state.tlog`` and the bundled resources. It is unpacked next to
the archive into ``run1_extracted/`` (or ``run1_extracted(1)/`` and so on
if that exists) and the log root becomes ``run1_extracted/run1``.
"""

import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Union

from fs.copy import copy_fs
from fs.errors import CreateFailed, FSError
from fs.osfs import OSFS
from fs.zipfs import ZipFS

from logplay.errors import ConfigurationError, NotFoundError
from logplay.logging import get_logger

log = get_logger('archive')

ARCHIVE_SUFFIX = '.zip'


@dataclass
class ExtractedRecording:
    """Where a zipped recording was unpacked."""
    destination: Path
    log_path: Path
    files: List[str] = field(default_factory=list)


def unique_directory_path(base: Path) -> Path:
    """``base`` if free, else ``base(1)``, ``base(2)``, ..."""
    if not base.exists():
        return base
    n = 1
    while True:
        candidate = base.with_name(f"{base.name}({n})")
        if not candidate.exists():
            return candidate
        n += 1


def extract_recording(archive_path: Union[str, Path]) -> ExtractedRecording:
    """Unpack a zipped recording next to the archive.

    Raises:
        ConfigurationError: If the path is not a .zip file
        NotFoundError: If the archive is missing or cannot be extracted
    """
    archive_path = Path(archive_path)
    if archive_path.suffix.lower() != ARCHIVE_SUFFIX:
        raise ConfigurationError(f"Please specify a zip file, got [{archive_path}]")
    if not archive_path.is_file():
        raise NotFoundError(f"Recording archive [{archive_path}] does not exist")

    stem = archive_path.with_suffix('')
    destination = unique_directory_path(stem.with_name(stem.name + '_extracted'))

    try:
        with ZipFS(str(archive_path)) as src, OSFS(str(destination), create=True) as dst:
            copy_fs(src, dst)
            files = sorted(dst.walk.files())
    except (CreateFailed, FSError, zipfile.BadZipFile) as e:
        remove_extracted(destination)
        raise NotFoundError(f"Failed to extract recording to [{destination}]: {e}") from e

    log.info("Extracted recording to [%s]", destination)
    return ExtractedRecording(
        destination=destination,
        log_path=destination / stem.name,
        files=files,
    )


def remove_extracted(destination: Union[str, Path]) -> None:
    """Delete an extraction directory and everything in it."""
    destination = Path(destination)
    if not destination.exists():
        return
    with OSFS(str(destination.parent)) as parent:
        parent.removetree(destination.name)
    log.debug("Removed extracted recording [%s]", destination)
