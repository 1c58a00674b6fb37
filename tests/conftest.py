"""
Test fixtures and utilities for the export service tests.

This module provides shared fixtures including temporary directories,
in-memory artifact stores, sample records and service instances configured
with a small row cap so that splitting can be exercised cheaply.
"""

import io
import tempfile
from collections.abc import Generator
from datetime import date, datetime, timezone
from pathlib import Path
from typing import BinaryIO

import pytest

from sheetstream.adapters.calamine_adapter import CalamineAdapter
from sheetstream.adapters.storage_adapter import XLSX_CONTENT_TYPE
from sheetstream.config import ExportSettings
from sheetstream.exceptions.export_exceptions import StorageError
from sheetstream.models.export_models import ArtifactDescriptor, ColumnDataType, ColumnDefinition, ExportOptions
from sheetstream.services.export_service import ExcelExportService
from sheetstream.services.row_limits import RowLimiter

SMALL_ROW_CAP = 6
SMALL_DATA_ROWS = SMALL_ROW_CAP - 1

CREATED_AT = datetime(2024, 1, 3, 12, 5, 6, tzinfo=timezone.utc)
DATA_DATE = date(2024, 1, 2)
REPORT_FILE_NAME = "Report_20240102_20240103_120506.xlsx"


class InMemoryArtifactStore:
    """
    ArtifactStore keeping artifacts in a dict.

    Attributes:
        artifacts: Stored bytes by artifact name, in store order.
    """

    def __init__(self) -> None:
        self.artifacts: dict[str, bytes] = {}

    def store(self, stream: BinaryIO, name: str) -> ArtifactDescriptor:
        data = stream.read()
        self.artifacts[name] = data
        return ArtifactDescriptor(
            name=name,
            location="memory",
            access_uri=f"memory://{name}",
            size_bytes=len(data),
            content_type=XLSX_CONTENT_TYPE,
        )

    def open(self, name: str) -> io.BytesIO:
        """Return a stored artifact as a seekable stream."""
        return io.BytesIO(self.artifacts[name])


class FailingArtifactStore(InMemoryArtifactStore):
    """InMemoryArtifactStore that fails on the n-th store call (1-based)."""

    def __init__(self, fail_on: int = 1) -> None:
        super().__init__()
        self.fail_on = fail_on
        self.calls = 0

    def store(self, stream: BinaryIO, name: str) -> ArtifactDescriptor:
        self.calls += 1
        if self.calls == self.fail_on:
            raise StorageError(artifact_name=name, reason="disk full")
        return super().store(stream, name)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for test files.

    Yields:
        Path to the temporary directory.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def scratch_dir(temp_dir: Path) -> Path:
    """
    Directory for in-progress workbooks.

    Returns:
        Path to an empty scratch directory.
    """
    path = temp_dir / "scratch"
    path.mkdir()
    return path


@pytest.fixture
def settings(temp_dir: Path, scratch_dir: Path) -> ExportSettings:
    """
    Create settings pointing at the temporary directory.

    Returns:
        ExportSettings with a small row cap.
    """
    return ExportSettings(
        output_dir=str(temp_dir / "exports"),
        max_rows_per_sheet=SMALL_ROW_CAP,
        temp_dir=str(scratch_dir),
    )


@pytest.fixture
def memory_store() -> InMemoryArtifactStore:
    """
    Create an in-memory artifact store.

    Returns:
        InMemoryArtifactStore instance.
    """
    return InMemoryArtifactStore()


@pytest.fixture
def export_service(memory_store: InMemoryArtifactStore, settings: ExportSettings) -> ExcelExportService:
    """
    Create an ExcelExportService storing in memory with a 5-data-row cap.

    Returns:
        ExcelExportService instance.
    """
    return ExcelExportService(
        artifact_store=memory_store,
        row_limiter=RowLimiter(SMALL_ROW_CAP),
        settings=settings,
    )


@pytest.fixture
def local_export_service(settings: ExportSettings) -> ExcelExportService:
    """
    Create an ExcelExportService storing artifacts on disk.

    Returns:
        ExcelExportService writing to settings.output_dir.
    """
    return ExcelExportService(settings=settings)


@pytest.fixture
def calamine_adapter() -> CalamineAdapter:
    """
    Create a CalamineAdapter instance for testing.

    Returns:
        CalamineAdapter instance.
    """
    return CalamineAdapter()


@pytest.fixture
def columns() -> list[ColumnDefinition]:
    """
    Return column definitions for a people export.

    Returns:
        List of column definitions.
    """
    return [
        ColumnDefinition(field_name="name", title="Name"),
        ColumnDefinition(field_name="age", title="Age", data_type=ColumnDataType.NUMBER),
        ColumnDefinition(field_name="department", title="Department"),
    ]


@pytest.fixture
def grouped_columns() -> list[ColumnDefinition]:
    """
    Return column definitions grouped by category.

    Returns:
        List of column definitions with one group column.
    """
    return [
        ColumnDefinition(field_name="category", title="Category", group=True),
        ColumnDefinition(field_name="item", title="Item"),
        ColumnDefinition(field_name="amount", title="Amount", data_type=ColumnDataType.CURRENCY),
    ]


@pytest.fixture
def sample_records() -> list[dict]:
    """
    Return sample records for export tests.

    Returns:
        List of records keyed by field name.
    """
    return [
        {"name": "Alice", "age": 30, "department": "Engineering"},
        {"name": "Bob", "age": 25, "department": "Marketing"},
        {"name": "Charlie", "age": 35, "department": "Sales"},
        {"name": "Diana", "age": 28, "department": "Engineering"},
        {"name": "Eve", "age": 32, "department": "Marketing"},
    ]


def make_records(count: int) -> list[dict]:
    """Build count numbered records matching the columns fixture."""
    return [{"name": f"Person {i}", "age": i, "department": "Ops"} for i in range(1, count + 1)]


@pytest.fixture
def sample_artifact(
    local_export_service: ExcelExportService,
    columns: list[ColumnDefinition],
    settings: ExportSettings,
) -> Path:
    """
    Export 7 records split across two worksheets to disk.

    Returns:
        Path to the stored artifact, with sheets "People" (5 rows) and
        "People (2)" (2 rows).
    """
    result = local_export_service.export(
        make_records(7),
        columns,
        "Report",
        ExportOptions(sheet_name="People", data_date=DATA_DATE, split_into_multiple_sheets=True),
        created_at=CREATED_AT,
    )
    assert result.success, result.message
    return Path(settings.output_dir) / REPORT_FILE_NAME
