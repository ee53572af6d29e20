"""
Backup and restore of the Portainer server data directory.

Archives are gzip tarballs rooted at the data directory name, so archives
made with ``tar -czf backup.tar.gz -C <root> data`` restore the same way.
"""

import shutil
import tarfile
import tempfile
from datetime import datetime
from pathlib import Path, PurePosixPath

from portainer_setup.config import get_logger
from portainer_setup.errors import BackupNotFoundError, InvalidArchiveError

logger = get_logger("backup")

ARCHIVE_PREFIX = "portainer-data-"
ARCHIVE_SUFFIX = ".tar.gz"
TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"


def archive_name(now: datetime | None = None) -> str:
    return f"{ARCHIVE_PREFIX}{(now or datetime.now()).strftime(TIMESTAMP_FORMAT)}{ARCHIVE_SUFFIX}"


def create_backup(data_dir: Path, backups_dir: Path, now: datetime | None = None) -> Path:
    """Archive ``data_dir`` into a timestamped tarball inside ``backups_dir``.

    A second backup within the same second gets a ``-N`` counter instead of
    replacing the first. A failed write leaves no partial archive behind.

    Returns:
        Path of the new archive
    """
    backups_dir.mkdir(parents=True, exist_ok=True)
    data_dir.mkdir(parents=True, exist_ok=True)

    name = archive_name(now)
    archive = backups_dir / name
    counter = 1
    while archive.exists():
        archive = backups_dir / name.replace(ARCHIVE_SUFFIX, f"-{counter}{ARCHIVE_SUFFIX}")
        counter += 1

    try:
        with tarfile.open(archive, "x:gz") as tar:
            tar.add(data_dir, arcname=data_dir.name)
    except Exception:
        archive.unlink(missing_ok=True)
        raise

    logger.info("Created backup", archive=str(archive), source=str(data_dir))
    return archive


def _archive_order(path: Path) -> tuple[str, int]:
    stem = path.name[len(ARCHIVE_PREFIX) : -len(ARCHIVE_SUFFIX)]
    if stem.count("-") > 1:
        stamp, _, counter = stem.rpartition("-")
        if counter.isdigit():
            return stamp, int(counter)
    return stem, 0


def list_backups(backups_dir: Path) -> list[Path]:
    """Existing archives, oldest first."""
    if not backups_dir.exists():
        return []
    return sorted(backups_dir.glob(f"{ARCHIVE_PREFIX}*{ARCHIVE_SUFFIX}"), key=_archive_order)


def validate_archive(archive: Path, root_name: str) -> None:
    """Check that ``archive`` is a readable tarball holding only ``root_name/``.

    Raises:
        BackupNotFoundError: If the file does not exist.
        InvalidArchiveError: If it is not a tarball or has members outside the root.
    """
    if not archive.is_file():
        raise BackupNotFoundError(archive)
    if not tarfile.is_tarfile(archive):
        raise InvalidArchiveError(f"Not a tar archive: {archive}")

    with tarfile.open(archive, "r:*") as tar:
        names = tar.getnames()

    if not names:
        raise InvalidArchiveError(f"Archive is empty: {archive}")

    for name in names:
        parts = PurePosixPath(name).parts
        if parts and parts[0] == ".":
            parts = parts[1:]
        if not parts or parts[0] != root_name or ".." in parts or name.startswith("/"):
            raise InvalidArchiveError(
                f"Archive member '{name}' is outside '{root_name}/'; refusing to restore"
            )


def restore_backup(archive: Path, data_dir: Path) -> None:
    """Replace ``data_dir`` with the contents of ``archive``.

    The archive is extracted into a staging directory beside ``data_dir`` and
    only swapped in once extraction has completed.
    """
    validate_archive(archive, data_dir.name)

    staging = Path(tempfile.mkdtemp(prefix=".restore-", dir=data_dir.parent))
    try:
        with tarfile.open(archive, "r:*") as tar:
            tar.extractall(staging, filter="data")

        restored = staging / data_dir.name
        if not restored.is_dir():
            raise InvalidArchiveError(f"Archive does not contain a '{data_dir.name}' directory")

        # The replaced tree goes into staging and is removed with it.
        if data_dir.exists():
            data_dir.rename(staging / f"{data_dir.name}.previous")
        restored.rename(data_dir)
        logger.info("Restored data directory", archive=str(archive), target=str(data_dir))
    finally:
        shutil.rmtree(staging, ignore_errors=True)
