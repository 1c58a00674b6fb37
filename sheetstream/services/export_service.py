"""
Core export service layer.

This module provides the ExcelExportService class which drives a streaming
export: it resolves the artifact name, walks the record source exactly once
through a lookahead cursor, decides between a single workbook, several
worksheets or several files, and hands each finished workbook to the
artifact store before starting the next.

The service is the single entry point for both the FastAPI and MCP
interfaces and never raises for export failures; every call returns an
ExportResult.

Example:
    service = ExcelExportService()

    result = service.export(
        records=[{"category": "A", "amount": 10}, {"category": "A", "amount": 20}],
        columns=[
            ColumnDefinition(field_name="category", title="Category", group=True),
            ColumnDefinition(field_name="amount", title="Amount", data_type="Number"),
        ],
        base_name="Sales",
    )
    for artifact in result.artifacts:
        print(artifact.name, artifact.access_uri)
"""

import asyncio
import logging
import os
import tempfile
import time
from collections.abc import AsyncIterable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from sheetstream.adapters.calamine_adapter import CalamineAdapter
from sheetstream.adapters.storage_adapter import ArtifactStore, LocalArtifactStore
from sheetstream.adapters.xlsxwriter_adapter import WorkbookAssembler, WorksheetWriter, validate_columns
from sheetstream.config import ExportSettings, get_settings
from sheetstream.exceptions.export_exceptions import (
    ExcelExportError,
    ExportCancelledError,
    StorageError,
    WriterError,
)
from sheetstream.models.export_models import (
    ArtifactDescriptor,
    ColumnDefinition,
    ExportOptions,
    ExportRequest,
    ExportResult,
    ExportStatus,
    SheetData,
    WorkbookInfo,
)
from sheetstream.services.naming_service import XLSX_EXTENSION, FileNamingService
from sheetstream.services.row_limits import RowLimiter
from sheetstream.services.style_catalog import StyleCatalog
from sheetstream.utils.cursor import AsyncLookaheadCursor

logger = logging.getLogger(__name__)

Record = Mapping[str, Any]
RecordSource = Iterable[Record] | AsyncIterable[Record]


class CancelSignal(Protocol):
    """Anything with is_set(), e.g. asyncio.Event or threading.Event."""

    def is_set(self) -> bool: ...


@dataclass
class _ExportProgress:
    """Artifacts persisted so far by one export call."""

    artifacts: list[ArtifactDescriptor] = field(default_factory=list)

    @property
    def rows_written(self) -> int:
        return sum(artifact.rows_written for artifact in self.artifacts)

    @property
    def sheets_written(self) -> int:
        return sum(len(artifact.sheet_names) for artifact in self.artifacts)


class ExcelExportService:
    """
    Streaming export orchestrator.

    The service uses:
        - StyleCatalog: Style part of every workbook
        - WorkbookAssembler: Streaming XlsxWriter workbook assembly
        - RowLimiter: Per-worksheet data row cap
        - FileNamingService: Artifact file names
        - ArtifactStore: Persistence of finished workbooks
        - CalamineAdapter: Reading stored artifacts back

    Each call owns its own cursor, writer and temporary file; nothing is
    shared between concurrent calls except the stateless collaborators.

    Attributes:
        style_catalog: StyleCatalog instance.
        naming_service: FileNamingService instance.
        artifact_store: ArtifactStore receiving finished workbooks.
        row_limiter: RowLimiter instance.
        read_adapter: CalamineAdapter for artifact reads.
        temp_dir: Directory for in-progress workbooks (None = system default).
    """

    def __init__(
        self,
        artifact_store: ArtifactStore | None = None,
        naming_service: FileNamingService | None = None,
        style_catalog: StyleCatalog | None = None,
        row_limiter: RowLimiter | None = None,
        read_adapter: CalamineAdapter | None = None,
        settings: ExportSettings | None = None,
    ) -> None:
        """
        Initialize the ExcelExportService.

        Args:
            artifact_store: Optional ArtifactStore. If None, creates a
                LocalArtifactStore from settings.
            naming_service: Optional FileNamingService.
            style_catalog: Optional StyleCatalog.
            row_limiter: Optional RowLimiter. If None, uses the configured
                max_rows_per_sheet.
            read_adapter: Optional CalamineAdapter.
            settings: Optional settings. If None, uses get_settings().
        """
        settings = settings or get_settings()
        self.artifact_store = artifact_store or LocalArtifactStore(
            settings.output_dir,
            prefix=settings.artifact_prefix,
            overwrite=settings.overwrite_artifacts,
        )
        self.naming_service = naming_service or FileNamingService()
        self.style_catalog = style_catalog or StyleCatalog()
        self.row_limiter = row_limiter or RowLimiter(settings.max_rows_per_sheet)
        self.read_adapter = read_adapter or CalamineAdapter()
        self.temp_dir = settings.temp_dir

    def export(
        self,
        records: RecordSource,
        columns: Sequence[ColumnDefinition],
        base_name: str,
        options: ExportOptions | None = None,
        cancel_event: CancelSignal | None = None,
        created_at: datetime | None = None,
    ) -> ExportResult:
        """
        Export records synchronously.

        Runs export_async() on a fresh event loop, so it must not be called
        from inside a running loop; use export_async() there.

        Args:
            records: Iterable or async iterable of field-keyed records,
                consumed exactly once.
            columns: Output columns, in order.
            base_name: Logical name of the export.
            options: Export options. Defaults to ExportOptions().
            cancel_event: Optional signal checked before each record.
            created_at: Creation timestamp (UTC). Defaults to now.

        Returns:
            ExportResult describing the persisted artifacts or the failure.
        """
        return asyncio.run(
            self.export_async(
                records,
                columns,
                base_name,
                options=options,
                cancel_event=cancel_event,
                created_at=created_at,
            )
        )

    async def export_async(
        self,
        records: RecordSource,
        columns: Sequence[ColumnDefinition],
        base_name: str,
        options: ExportOptions | None = None,
        cancel_event: CancelSignal | None = None,
        created_at: datetime | None = None,
    ) -> ExportResult:
        """
        Export records as one or more workbooks.

        Strategy:
            - Both split flags off: one workbook, one worksheet. More records
              than a worksheet holds fails with ROW_LIMIT_EXCEEDED.
            - split_into_multiple_sheets: one workbook, a new worksheet
              whenever the current one is full.
            - split_into_multiple_files (wins over sheets): one workbook per
              full worksheet, each persisted before the next is started.
              Parts are suffixed _part01, _part02, ... only when there is
              more than one.

        Args:
            records: Iterable or async iterable of field-keyed records,
                consumed exactly once.
            columns: Output columns, in order.
            base_name: Logical name of the export.
            options: Export options. Defaults to ExportOptions().
            cancel_event: Optional signal checked before each record.
            created_at: Creation timestamp (UTC). Defaults to now.

        Returns:
            ExportResult. On failure, artifacts persisted before the failure
            are still listed.
        """
        start_time = time.time()
        options = options or ExportOptions()
        created_at = created_at or datetime.now(timezone.utc)
        progress = _ExportProgress()
        file_name: str | None = None

        try:
            validate_columns(columns)
            data_date = options.data_date or created_at.date()
            file_name = self.naming_service.compose_name(base_name, data_date, created_at)

            logger.info(
                "Starting export %s (sheets=%s, files=%s, max_data_rows=%d)",
                file_name,
                options.split_into_multiple_sheets,
                options.split_into_multiple_files,
                self.row_limiter.max_data_rows,
            )

            cursor: AsyncLookaheadCursor[Record] = AsyncLookaheadCursor(records)

            if options.split_into_multiple_files:
                await self._export_multiple_files(cursor, columns, options, file_name, progress, cancel_event)
            else:
                await self._export_single_file(cursor, columns, options, file_name, progress, cancel_event)

        except ExportCancelledError as e:
            logger.info("Export %s cancelled after %d artifacts", file_name, len(progress.artifacts))
            return self._result(progress, file_name, start_time, e, ExportStatus.CANCELLED)
        except ExcelExportError as e:
            logger.error("Export %s failed: %s", file_name, e.message)
            return self._result(progress, file_name, start_time, e, ExportStatus.FAILED)
        except asyncio.CancelledError:
            logger.info("Export %s task cancelled", file_name)
            raise
        except Exception as e:
            logger.exception("Unexpected failure during export %s", file_name)
            error = WriterError(file_name=file_name, operation="export", reason=str(e))
            return self._result(progress, file_name, start_time, error, ExportStatus.FAILED)

        logger.info(
            "Finished export %s: %d rows in %d artifacts",
            file_name,
            progress.rows_written,
            len(progress.artifacts),
        )
        return self._result(progress, file_name, start_time)

    async def export_request(
        self,
        request: ExportRequest,
        cancel_event: CancelSignal | None = None,
    ) -> ExportResult:
        """
        Export the records carried by an ExportRequest.

        Args:
            request: ExportRequest from the REST or MCP interface.
            cancel_event: Optional cancel signal.

        Returns:
            ExportResult.
        """
        return await self.export_async(
            request.records,
            request.columns,
            request.base_name,
            options=request.options,
            cancel_event=cancel_event,
        )

    async def _export_single_file(
        self,
        cursor: AsyncLookaheadCursor[Record],
        columns: Sequence[ColumnDefinition],
        options: ExportOptions,
        file_name: str,
        progress: _ExportProgress,
        cancel_event: CancelSignal | None,
    ) -> None:
        assembler = self._new_assembler(columns, options)
        try:
            self._open(assembler, file_name)
            writer = assembler.add_worksheet()
            await self._fill_sheet(cursor, writer, cancel_event, progress)

            if options.split_into_multiple_sheets:
                while await cursor.has_next():
                    self._check_cancelled(cancel_event, progress)
                    writer = assembler.add_worksheet()
                    logger.debug("Worksheet full, continuing on %r", writer.name)
                    await self._fill_sheet(cursor, writer, cancel_event, progress)
            else:
                self.row_limiter.check_overflow(await cursor.has_next(), sheet_name=writer.name)

            self._persist(assembler, file_name, progress)
        finally:
            assembler.discard()

    async def _export_multiple_files(
        self,
        cursor: AsyncLookaheadCursor[Record],
        columns: Sequence[ColumnDefinition],
        options: ExportOptions,
        file_name: str,
        progress: _ExportProgress,
        cancel_event: CancelSignal | None,
    ) -> None:
        part = 0
        while True:
            part += 1
            assembler = self._new_assembler(columns, options)
            try:
                self._open(assembler, file_name)
                writer = assembler.add_worksheet()
                await self._fill_sheet(cursor, writer, cancel_event, progress)

                has_more = await cursor.has_next()
                if part == 1 and not has_more:
                    artifact_name = file_name
                else:
                    artifact_name = self.naming_service.with_part_suffix(file_name, part)

                self._persist(assembler, artifact_name, progress)
            finally:
                assembler.discard()

            if not has_more:
                return
            self._check_cancelled(cancel_event, progress)

    async def _fill_sheet(
        self,
        cursor: AsyncLookaheadCursor[Record],
        writer: WorksheetWriter,
        cancel_event: CancelSignal | None,
        progress: _ExportProgress,
    ) -> None:
        """Write records into one worksheet until it is full or the source ends."""
        while not self.row_limiter.is_full(writer.rows_written):
            self._check_cancelled(cancel_event, progress)
            if not await cursor.has_next():
                return
            record = await cursor.take_next()
            writer.write_record(record)

    def _check_cancelled(self, cancel_event: CancelSignal | None, progress: _ExportProgress) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ExportCancelledError(rows_written=progress.rows_written)

    def _new_assembler(self, columns: Sequence[ColumnDefinition], options: ExportOptions) -> WorkbookAssembler:
        return WorkbookAssembler(
            columns,
            options,
            style_catalog=self.style_catalog,
            tmpdir=self.temp_dir,
        )

    def _open(self, assembler: WorkbookAssembler, file_name: str) -> None:
        """Open the assembler on a fresh temporary file."""
        try:
            fd, temp_path = tempfile.mkstemp(
                prefix="sheetstream-",
                suffix=XLSX_EXTENSION,
                dir=self.temp_dir,
            )
            os.close(fd)
        except OSError as e:
            raise WriterError(file_name=file_name, operation="create temporary file", reason=str(e)) from e

        assembler.open(temp_path)

    def _persist(self, assembler: WorkbookAssembler, artifact_name: str, progress: _ExportProgress) -> None:
        """Close the workbook and stream it to the artifact store."""
        assembler.close()

        try:
            with open(assembler.path, "rb") as stream:
                descriptor = self.artifact_store.store(stream, artifact_name)
        except ExcelExportError:
            raise
        except Exception as e:
            raise StorageError(artifact_name=artifact_name, reason=str(e)) from e

        descriptor = descriptor.model_copy(
            update={
                "sheet_names": list(assembler.sheet_names),
                "rows_written": assembler.rows_written,
            }
        )
        progress.artifacts.append(descriptor)
        logger.info(
            "Persisted %s: %d rows in %d sheets",
            descriptor.name,
            descriptor.rows_written,
            len(descriptor.sheet_names),
        )

    def _result(
        self,
        progress: _ExportProgress,
        file_name: str | None,
        start_time: float,
        error: ExcelExportError | None = None,
        status: ExportStatus = ExportStatus.SUCCEEDED,
    ) -> ExportResult:
        processing_time = (time.time() - start_time) * 1000

        return ExportResult(
            success=error is None,
            status=status,
            file_name=file_name,
            artifacts=progress.artifacts,
            rows_written=progress.rows_written,
            sheets_written=progress.sheets_written,
            error_code=error.error_code if error else None,
            message=error.message if error else None,
            details=error.details if error else None,
            processing_time_ms=round(processing_time, 2),
        )

    def get_artifact_info(self, file_path: str) -> WorkbookInfo:
        """
        Get metadata about a stored artifact.

        Raises:
            FileNotFoundError: If the file does not exist.
            ReadError: If the file cannot be read.
        """
        return self.read_adapter.get_workbook_info(file_path)

    def read_artifact_sheet(
        self,
        file_path: str,
        sheet_name: str | None = None,
        sheet_index: int | None = None,
    ) -> SheetData:
        """
        Read one worksheet of a stored artifact.

        Raises:
            FileNotFoundError: If the file does not exist.
            SheetNotFoundError: If the sheet does not exist.
            ReadError: If the file cannot be read.
        """
        return self.read_adapter.read_sheet(
            file_path=file_path,
            sheet_name=sheet_name,
            sheet_index=sheet_index,
        )
