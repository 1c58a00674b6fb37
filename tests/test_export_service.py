"""
Tests for the ExcelExportService.

Tests the split strategies, artifact naming, failure reporting and
cancellation of the export orchestrator. The service fixtures use a row cap
of 6 (5 data rows per worksheet).
"""

import asyncio
import threading
from collections.abc import AsyncIterator, Iterator, Mapping
from pathlib import Path

import openpyxl
import pytest
from conftest import (
    CREATED_AT,
    DATA_DATE,
    REPORT_FILE_NAME,
    SMALL_DATA_ROWS,
    FailingArtifactStore,
    InMemoryArtifactStore,
    make_records,
)

from sheetstream.config import ExportSettings
from sheetstream.exceptions.export_exceptions import StyleBuildError
from sheetstream.models.export_models import (
    ColumnDefinition,
    ExportOptions,
    ExportRequest,
    ExportResult,
    ExportStatus,
)
from sheetstream.services.export_service import ExcelExportService
from sheetstream.services.row_limits import RowLimiter
from sheetstream.services.style_catalog import StyleCatalog
from sheetstream.utils.cursor import OneShotSource

SINGLE = ExportOptions(data_date=DATA_DATE)
MULTI_SHEET = ExportOptions(data_date=DATA_DATE, split_into_multiple_sheets=True)
MULTI_FILE = ExportOptions(data_date=DATA_DATE, split_into_multiple_files=True)


def run_export(
    service: ExcelExportService,
    records,
    columns: list[ColumnDefinition],
    options: ExportOptions = SINGLE,
    **kwargs,
) -> ExportResult:
    return service.export(records, columns, "Report", options, created_at=CREATED_AT, **kwargs)


def sheet_rows(store: InMemoryArtifactStore, name: str) -> list[int]:
    """Data rows per worksheet of a stored artifact."""
    workbook = openpyxl.load_workbook(store.open(name))
    return [worksheet.max_row - 1 for worksheet in workbook.worksheets]


def failing_records(after: int) -> Iterator[dict]:
    yield from make_records(after)
    raise ConnectionError("cursor closed by server")


class ExplodingRecord(Mapping):
    """Mapping that fails on any lookup."""

    def __getitem__(self, key):
        raise RuntimeError("lookup exploded")

    def __iter__(self):
        raise RuntimeError("lookup exploded")

    def __len__(self) -> int:
        return 1

    def __contains__(self, key) -> bool:
        raise RuntimeError("lookup exploded")


class TestSingleSheetExport:
    """Tests for exports with both split options off."""

    def test_export(
        self,
        export_service: ExcelExportService,
        memory_store: InMemoryArtifactStore,
        columns: list[ColumnDefinition],
        sample_records: list[dict],
    ) -> None:
        """Test exporting records into a single worksheet."""
        result = run_export(export_service, sample_records, columns)

        assert result.success
        assert result.status == ExportStatus.SUCCEEDED
        assert result.file_name == REPORT_FILE_NAME
        assert result.rows_written == 5
        assert result.sheets_written == 1
        assert result.error_code is None
        assert result.processing_time_ms is not None

        assert len(result.artifacts) == 1
        artifact = result.artifacts[0]
        assert artifact.name == REPORT_FILE_NAME
        assert artifact.sheet_names == ["Sheet1"]
        assert artifact.rows_written == 5
        assert list(memory_store.artifacts) == [REPORT_FILE_NAME]

        worksheet = openpyxl.load_workbook(memory_store.open(REPORT_FILE_NAME)).active
        assert [cell.value for cell in worksheet[1]] == ["Name", "Age", "Department"]
        assert [cell.value for cell in worksheet[2]] == ["Alice", 30, "Engineering"]
        assert [cell.value for cell in worksheet[6]] == ["Eve", 32, "Marketing"]

    def test_exactly_at_cap(
        self,
        export_service: ExcelExportService,
        memory_store: InMemoryArtifactStore,
        columns: list[ColumnDefinition],
    ) -> None:
        """Test that a sheet accepts exactly max_data_rows records."""
        result = run_export(export_service, make_records(SMALL_DATA_ROWS), columns)

        assert result.success
        assert sheet_rows(memory_store, REPORT_FILE_NAME) == [SMALL_DATA_ROWS]

    def test_one_past_cap_fails(
        self,
        export_service: ExcelExportService,
        memory_store: InMemoryArtifactStore,
        scratch_dir: Path,
        columns: list[ColumnDefinition],
    ) -> None:
        """Test that one record more than a sheet holds fails without truncating."""
        result = run_export(export_service, make_records(SMALL_DATA_ROWS + 1), columns)

        assert not result.success
        assert result.status == ExportStatus.FAILED
        assert result.error_code == "ROW_LIMIT_EXCEEDED"
        assert result.details["max_data_rows"] == SMALL_DATA_ROWS
        assert result.artifacts == []
        assert memory_store.artifacts == {}
        assert list(scratch_dir.iterdir()) == []

    def test_empty_source(
        self,
        export_service: ExcelExportService,
        memory_store: InMemoryArtifactStore,
        columns: list[ColumnDefinition],
    ) -> None:
        """Test that an empty source still produces a workbook with a header row."""
        result = run_export(export_service, [], columns)

        assert result.success
        assert result.rows_written == 0
        worksheet = openpyxl.load_workbook(memory_store.open(REPORT_FILE_NAME)).active
        assert worksheet.max_row == 1
        assert worksheet["A1"].value == "Name"

    def test_default_data_date(
        self,
        export_service: ExcelExportService,
        columns: list[ColumnDefinition],
        sample_records: list[dict],
    ) -> None:
        """Test that the data date defaults to the creation date."""
        result = run_export(export_service, sample_records, columns, ExportOptions())

        assert result.file_name == "Report_20240103_20240103_120506.xlsx"

    def test_custom_sheet_name(
        self,
        export_service: ExcelExportService,
        columns: list[ColumnDefinition],
        sample_records: list[dict],
    ) -> None:
        """Test that the configured sheet name is used."""
        result = run_export(export_service, sample_records, columns, ExportOptions(sheet_name="People"))

        assert result.artifacts[0].sheet_names == ["People"]

    def test_long_sheet_name_cut_at_apostrophe(
        self,
        export_service: ExcelExportService,
        columns: list[ColumnDefinition],
        sample_records: list[dict],
    ) -> None:
        """Test that a long sheet name whose 31st character is an apostrophe still exports."""
        options = ExportOptions(sheet_name="A" * 30 + "'bc")

        result = run_export(export_service, sample_records, columns, options)

        assert result.success, result.message
        assert result.artifacts[0].sheet_names == ["A" * 30]


class TestMultiSheetExport:
    """Tests for exports split across worksheets."""

    def test_one_past_cap(
        self,
        export_service: ExcelExportService,
        memory_store: InMemoryArtifactStore,
        columns: list[ColumnDefinition],
    ) -> None:
        """Test that cap + 1 records yield two worksheets holding cap and 1 rows."""
        result = run_export(export_service, make_records(SMALL_DATA_ROWS + 1), columns, MULTI_SHEET)

        assert result.success
        assert len(result.artifacts) == 1
        assert result.artifacts[0].name == REPORT_FILE_NAME
        assert result.artifacts[0].sheet_names == ["Sheet1", "Sheet1 (2)"]
        assert result.sheets_written == 2
        assert sheet_rows(memory_store, REPORT_FILE_NAME) == [SMALL_DATA_ROWS, 1]

    def test_exact_multiple_of_cap(
        self,
        export_service: ExcelExportService,
        memory_store: InMemoryArtifactStore,
        columns: list[ColumnDefinition],
    ) -> None:
        """Test that no empty trailing worksheet is added."""
        result = run_export(export_service, make_records(SMALL_DATA_ROWS * 2), columns, MULTI_SHEET)

        assert sheet_rows(memory_store, REPORT_FILE_NAME) == [SMALL_DATA_ROWS, SMALL_DATA_ROWS]
        assert result.rows_written == SMALL_DATA_ROWS * 2

    def test_rows_preserved_in_order(
        self,
        export_service: ExcelExportService,
        memory_store: InMemoryArtifactStore,
        columns: list[ColumnDefinition],
    ) -> None:
        """Test that every record appears exactly once, in order, across worksheets."""
        records = make_records(13)

        run_export(export_service, records, columns, MULTI_SHEET)

        workbook = openpyxl.load_workbook(memory_store.open(REPORT_FILE_NAME))
        names = [
            row[0]
            for worksheet in workbook.worksheets
            for row in worksheet.iter_rows(min_row=2, values_only=True)
        ]
        assert names == [record["name"] for record in records]
        for worksheet in workbook.worksheets:
            assert worksheet["A1"].value == "Name"
            assert worksheet.freeze_panes == "A2"
            assert worksheet.auto_filter.ref == "A1:C1"


class TestMultiFileExport:
    """Tests for exports split across files."""

    @pytest.mark.parametrize(("record_count", "file_count"), [(0, 1), (1, 1), (5, 1), (6, 2), (10, 2), (11, 3)])
    def test_file_count(
        self,
        export_service: ExcelExportService,
        memory_store: InMemoryArtifactStore,
        columns: list[ColumnDefinition],
        record_count: int,
        file_count: int,
    ) -> None:
        """Test that N records produce ceil(N / C) artifacts holding every record."""
        result = run_export(export_service, make_records(record_count), columns, MULTI_FILE)

        assert result.success
        assert len(result.artifacts) == file_count
        assert result.rows_written == record_count
        assert sum(sum(sheet_rows(memory_store, a.name)) for a in result.artifacts) == record_count

    def test_single_file_not_suffixed(
        self,
        export_service: ExcelExportService,
        columns: list[ColumnDefinition],
    ) -> None:
        """Test that a multi-file export producing one artifact keeps the plain name."""
        result = run_export(export_service, make_records(SMALL_DATA_ROWS), columns, MULTI_FILE)

        assert [a.name for a in result.artifacts] == [REPORT_FILE_NAME]

    def test_parts_suffixed_from_one(
        self,
        export_service: ExcelExportService,
        memory_store: InMemoryArtifactStore,
        columns: list[ColumnDefinition],
    ) -> None:
        """Test that all parts are suffixed _part01, _part02, ... when there are several."""
        result = run_export(export_service, make_records(11), columns, MULTI_FILE)

        assert [a.name for a in result.artifacts] == [
            "Report_20240102_20240103_120506_part01.xlsx",
            "Report_20240102_20240103_120506_part02.xlsx",
            "Report_20240102_20240103_120506_part03.xlsx",
        ]
        assert [a.rows_written for a in result.artifacts] == [5, 5, 1]
        assert list(memory_store.artifacts) == [a.name for a in result.artifacts]

    def test_both_flags_prefer_files(
        self,
        export_service: ExcelExportService,
        memory_store: InMemoryArtifactStore,
        columns: list[ColumnDefinition],
    ) -> None:
        """Test that with both flags set, cap + 1 records yield two single-sheet files."""
        options = ExportOptions(
            data_date=DATA_DATE,
            split_into_multiple_sheets=True,
            split_into_multiple_files=True,
        )

        result = run_export(export_service, make_records(SMALL_DATA_ROWS + 1), columns, options)

        assert [a.name for a in result.artifacts] == [
            "Report_20240102_20240103_120506_part01.xlsx",
            "Report_20240102_20240103_120506_part02.xlsx",
        ]
        for artifact in result.artifacts:
            assert artifact.sheet_names == ["Sheet1"]
        assert sheet_rows(memory_store, result.artifacts[1].name) == [1]

    def test_storage_failure_keeps_earlier_parts(
        self,
        settings: ExportSettings,
        scratch_dir: Path,
        columns: list[ColumnDefinition],
    ) -> None:
        """Test that parts stored before a storage failure are reported."""
        store = FailingArtifactStore(fail_on=2)
        service = ExcelExportService(artifact_store=store, row_limiter=RowLimiter(6), settings=settings)

        result = run_export(service, make_records(11), columns, MULTI_FILE)

        assert not result.success
        assert result.error_code == "STORAGE_ERROR"
        assert [a.name for a in result.artifacts] == ["Report_20240102_20240103_120506_part01.xlsx"]
        assert result.rows_written == 5
        assert list(scratch_dir.iterdir()) == []


class TestExportFailures:
    """Tests for failures reported as structured results."""

    def test_blank_base_name(self, export_service: ExcelExportService, columns: list[ColumnDefinition]) -> None:
        """Test that a blank base name fails with NAMING_FAILED."""
        result = export_service.export([], columns, "   ")

        assert not result.success
        assert result.error_code == "NAMING_FAILED"
        assert result.file_name is None

    def test_two_group_columns(self, export_service: ExcelExportService) -> None:
        """Test that two group columns fail with INVALID_COLUMNS."""
        columns = [
            ColumnDefinition(field_name="a", title="A", group=True),
            ColumnDefinition(field_name="b", title="B", group=True),
        ]

        result = export_service.export([], columns, "Report")

        assert result.error_code == "INVALID_COLUMNS"

    def test_upstream_fault(
        self,
        export_service: ExcelExportService,
        memory_store: InMemoryArtifactStore,
        scratch_dir: Path,
        columns: list[ColumnDefinition],
    ) -> None:
        """Test that a failing source aborts the export and removes the temp file."""
        result = run_export(export_service, failing_records(after=3), columns)

        assert result.status == ExportStatus.FAILED
        assert result.error_code == "UPSTREAM_SOURCE_FAULT"
        assert "cursor closed by server" in result.message
        assert memory_store.artifacts == {}
        assert list(scratch_dir.iterdir()) == []

    def test_upstream_fault_keeps_persisted_parts(
        self,
        export_service: ExcelExportService,
        columns: list[ColumnDefinition],
    ) -> None:
        """Test that parts persisted before a source failure are reported."""
        result = run_export(export_service, failing_records(after=7), columns, MULTI_FILE)

        assert result.error_code == "UPSTREAM_SOURCE_FAULT"
        assert [a.name for a in result.artifacts] == ["Report_20240102_20240103_120506_part01.xlsx"]
        assert result.rows_written == 5

    def test_consumed_source(self, export_service: ExcelExportService, columns: list[ColumnDefinition]) -> None:
        """Test that exporting an already consumed one-shot source fails."""
        source = OneShotSource(make_records(2))
        list(source)

        result = run_export(export_service, source, columns)

        assert result.error_code == "UPSTREAM_SOURCE_FAULT"

    def test_unconvertible_value(
        self,
        export_service: ExcelExportService,
        columns: list[ColumnDefinition],
    ) -> None:
        """Test that a value that does not fit its column fails with WRITE_ERROR."""
        result = run_export(export_service, [{"name": "Alice", "age": "thirty"}], columns)

        assert result.error_code == "WRITE_ERROR"
        assert result.artifacts == []

    def test_unexpected_error_wrapped(
        self,
        export_service: ExcelExportService,
        columns: list[ColumnDefinition],
    ) -> None:
        """Test that unexpected exceptions are reported as WRITE_ERROR."""
        result = run_export(export_service, [ExplodingRecord()], columns)

        assert result.status == ExportStatus.FAILED
        assert result.error_code == "WRITE_ERROR"
        assert "lookup exploded" in result.message

    @pytest.mark.parametrize("options", [SINGLE, MULTI_FILE])
    def test_style_failure_removes_temp_file(
        self,
        memory_store: InMemoryArtifactStore,
        settings: ExportSettings,
        scratch_dir: Path,
        columns: list[ColumnDefinition],
        options: ExportOptions,
    ) -> None:
        """Test that a workbook whose styles cannot be built leaves no temp file behind."""

        class BrokenStyleCatalog(StyleCatalog):
            def register(self, workbook, header_background_color=None, header_text_color=None):
                raise StyleBuildError("no fonts available")

        service = ExcelExportService(
            artifact_store=memory_store,
            style_catalog=BrokenStyleCatalog(),
            row_limiter=RowLimiter(6),
            settings=settings,
        )

        result = run_export(service, make_records(1), columns, options)

        assert result.status == ExportStatus.FAILED
        assert result.error_code == "STYLE_BUILD_FAILED"
        assert memory_store.artifacts == {}
        assert list(scratch_dir.iterdir()) == []


class TestCancellation:
    """Tests for cooperative cancellation."""

    def test_cancelled_before_start(
        self,
        export_service: ExcelExportService,
        memory_store: InMemoryArtifactStore,
        scratch_dir: Path,
        columns: list[ColumnDefinition],
        sample_records: list[dict],
    ) -> None:
        """Test that a set cancel signal stops the export before any record is written."""
        cancel = threading.Event()
        cancel.set()

        result = run_export(export_service, sample_records, columns, cancel_event=cancel)

        assert not result.success
        assert result.status == ExportStatus.CANCELLED
        assert result.error_code == "CANCELLED"
        assert memory_store.artifacts == {}
        assert list(scratch_dir.iterdir()) == []

    def test_cancelled_source_not_pulled(
        self,
        export_service: ExcelExportService,
        columns: list[ColumnDefinition],
    ) -> None:
        """Test that a set cancel signal is seen before the next record is pulled."""
        pulled = []
        cancel = threading.Event()
        cancel.set()

        def records() -> Iterator[dict]:
            for record in make_records(3):
                pulled.append(record)
                yield record

        result = run_export(export_service, records(), columns, cancel_event=cancel)

        assert result.status == ExportStatus.CANCELLED
        assert pulled == []

    def test_cancelled_mid_export_keeps_parts(
        self,
        export_service: ExcelExportService,
        columns: list[ColumnDefinition],
    ) -> None:
        """Test that cancelling during the second file keeps the first one."""
        cancel = threading.Event()

        def records() -> Iterator[dict]:
            for i, record in enumerate(make_records(12), start=1):
                if i == 7:
                    cancel.set()
                yield record

        result = run_export(export_service, records(), columns, MULTI_FILE, cancel_event=cancel)

        assert result.status == ExportStatus.CANCELLED
        assert [a.name for a in result.artifacts] == ["Report_20240102_20240103_120506_part01.xlsx"]
        assert result.rows_written == 5
        assert result.details == {"rows_written": 5}


class TestAsyncExport:
    """Tests for asynchronous record sources."""

    @pytest.mark.asyncio
    async def test_async_source(
        self,
        export_service: ExcelExportService,
        memory_store: InMemoryArtifactStore,
        columns: list[ColumnDefinition],
    ) -> None:
        """Test exporting an async iterable split across worksheets."""

        async def records() -> AsyncIterator[dict]:
            for record in make_records(7):
                await asyncio.sleep(0)
                yield record

        result = await export_service.export_async(records(), columns, "Report", MULTI_SHEET, created_at=CREATED_AT)

        assert result.success
        assert sheet_rows(memory_store, REPORT_FILE_NAME) == [5, 2]

    @pytest.mark.asyncio
    async def test_asyncio_event_cancel(
        self,
        export_service: ExcelExportService,
        columns: list[ColumnDefinition],
    ) -> None:
        """Test that an asyncio.Event works as the cancel signal."""
        cancel = asyncio.Event()
        cancel.set()

        result = await export_service.export_async(make_records(3), columns, "Report", cancel_event=cancel)

        assert result.status == ExportStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_task_cancellation_propagates(
        self,
        export_service: ExcelExportService,
        memory_store: InMemoryArtifactStore,
        scratch_dir: Path,
        columns: list[ColumnDefinition],
    ) -> None:
        """Test that cancelling the export task re-raises CancelledError after cleanup."""
        started = asyncio.Event()

        async def stalled() -> AsyncIterator[dict]:
            yield make_records(1)[0]
            started.set()
            await asyncio.Event().wait()
            yield make_records(2)[1]

        task = asyncio.create_task(export_service.export_async(stalled(), columns, "Report"))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert memory_store.artifacts == {}
        assert list(scratch_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_export_request(
        self,
        export_service: ExcelExportService,
        memory_store: InMemoryArtifactStore,
        columns: list[ColumnDefinition],
        sample_records: list[dict],
    ) -> None:
        """Test exporting the records carried by an ExportRequest."""
        request = ExportRequest(base_name="Report", columns=columns, records=sample_records)

        result = await export_service.export_request(request)

        assert result.success
        assert result.rows_written == len(sample_records)
        assert len(memory_store.artifacts) == 1


class TestLocalArtifacts:
    """Tests for exports stored on disk and read back."""

    def test_export_and_read_back(
        self,
        local_export_service: ExcelExportService,
        settings: ExportSettings,
        columns: list[ColumnDefinition],
        sample_records: list[dict],
    ) -> None:
        """Test storing an artifact locally and reading it back through the service."""
        result = run_export(local_export_service, sample_records, columns)

        artifact = result.artifacts[0]
        path = Path(settings.output_dir) / REPORT_FILE_NAME
        assert path.exists()
        assert artifact.access_uri == path.resolve().as_uri()
        assert artifact.size_bytes == path.stat().st_size

        info = local_export_service.get_artifact_info(str(path))
        assert info.sheet_count == 1
        assert info.sheets[0].row_count == 6

        data = local_export_service.read_artifact_sheet(str(path))
        assert data.headers == ["Name", "Age", "Department"]
        assert data.rows[0] == ["Alice", 30, "Engineering"]
        assert data.row_count == 5

    def test_second_export_with_same_name_fails(
        self,
        local_export_service: ExcelExportService,
        columns: list[ColumnDefinition],
        sample_records: list[dict],
    ) -> None:
        """Test that an existing artifact is not overwritten by default."""
        assert run_export(local_export_service, sample_records, columns).success

        result = run_export(local_export_service, sample_records, columns)

        assert result.error_code == "STORAGE_ERROR"
