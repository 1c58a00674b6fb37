"""
Artifact storage adapters.

Defines the narrow ArtifactStore interface the export service hands finished
workbooks to, and LocalArtifactStore, which persists artifacts under a root
directory with an optional folder prefix.

Example:
    store = LocalArtifactStore("/srv/exports", prefix="reports/daily")
    with open("/tmp/report.xlsx", "rb") as fh:
        descriptor = store.store(fh, "Report_20240102_20240103_120506.xlsx")
    print(descriptor.access_uri)
"""

import logging
import os
import shutil
from pathlib import Path
from typing import BinaryIO, Protocol, runtime_checkable

from sheetstream.exceptions.export_exceptions import StorageError
from sheetstream.models.export_models import ArtifactDescriptor

logger = logging.getLogger(__name__)

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

COPY_CHUNK_SIZE = 8 * 1024 * 1024


@runtime_checkable
class ArtifactStore(Protocol):
    """Persists finished workbook streams."""

    def store(self, stream: BinaryIO, name: str) -> ArtifactDescriptor:
        """
        Persist a workbook stream under a name.

        Args:
            stream: Readable binary stream positioned at the start of the workbook.
            name: File name of the artifact.

        Returns:
            ArtifactDescriptor for the stored artifact.

        Raises:
            StorageError: If the artifact cannot be stored.
        """
        ...


def normalize_prefix(prefix: str | None) -> str:
    """
    Normalize a folder prefix to "a/b/" form.

    Backslashes become forward slashes, empty segments are dropped and a
    trailing slash is added. Blank prefixes, or prefixes made only of
    slashes, normalize to "".

    Args:
        prefix: Raw prefix.

    Returns:
        The normalized prefix.

    Raises:
        ValueError: If the prefix contains ".." segments.
    """
    if prefix is None:
        return ""

    segments = [segment.strip() for segment in prefix.replace("\\", "/").split("/")]
    segments = [segment for segment in segments if segment and segment != "."]
    if ".." in segments:
        raise ValueError(f"Prefix must not contain '..': {prefix!r}")
    if not segments:
        return ""
    return "/".join(segments) + "/"


class LocalArtifactStore:
    """
    Stores artifacts as files under a root directory.

    The root directory is created on first use; concurrent exports creating
    it at the same time is harmless.

    Attributes:
        root_dir: Directory artifacts are written under.
        prefix: Normalized folder prefix prepended to artifact names.
        overwrite: Whether an existing artifact with the same name is replaced.
    """

    def __init__(
        self,
        root_dir: str | Path,
        prefix: str | None = None,
        overwrite: bool = False,
    ) -> None:
        """
        Initialize the LocalArtifactStore.

        Args:
            root_dir: Directory artifacts are written under.
            prefix: Optional folder prefix (e.g., "exports/reports").
            overwrite: Whether to replace existing artifacts.
        """
        self.root_dir = Path(root_dir)
        self.prefix = normalize_prefix(prefix)
        self.overwrite = overwrite

    def _prepare_target(self, artifact_name: str) -> Path:
        target = self.root_dir / artifact_name

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(artifact_name=artifact_name, reason=str(e)) from e

        if not os.access(str(target.parent), os.W_OK):
            raise StorageError(artifact_name=artifact_name, reason="Permission denied")

        return target

    def _remove_partial(self, target: Path) -> None:
        try:
            target.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove partial artifact %s: %s", target, e)

    def store(self, stream: BinaryIO, name: str) -> ArtifactDescriptor:
        """
        Copy a workbook stream to <root_dir>/<prefix><name>.

        Args:
            stream: Readable binary stream.
            name: File name of the artifact.

        Returns:
            ArtifactDescriptor with a file:// access URI.

        Raises:
            StorageError: If the artifact cannot be written.
        """
        artifact_name = f"{self.prefix}{name}"
        target = self._prepare_target(artifact_name)

        # "xb" fails if the artifact already exists.
        try:
            fh = open(target, "wb" if self.overwrite else "xb")
        except FileExistsError as e:
            raise StorageError(
                artifact_name=artifact_name,
                reason="Artifact already exists and overwrite is False",
            ) from e
        except OSError as e:
            raise StorageError(artifact_name=artifact_name, reason=str(e)) from e

        try:
            with fh:
                shutil.copyfileobj(stream, fh, COPY_CHUNK_SIZE)
        except OSError as e:
            self._remove_partial(target)
            raise StorageError(artifact_name=artifact_name, reason=str(e)) from e
        except BaseException:
            self._remove_partial(target)
            raise

        resolved = target.resolve()
        size = resolved.stat().st_size
        logger.info("Stored artifact %s (%d bytes)", resolved, size)

        return ArtifactDescriptor(
            name=artifact_name,
            location=str(resolved.parent),
            access_uri=resolved.as_uri(),
            size_bytes=size,
            content_type=XLSX_CONTENT_TYPE,
        )
