"""
FastAPI application for the export service.

This module provides the REST API endpoints for streaming exports using
FastAPI. Records posted to /export are written to one or more XLSX
artifacts in the configured artifact store; stored artifacts can be
inspected and read back through the /artifacts endpoints.

API Endpoints:
    - GET /health: Health check
    - POST /export: Export records to XLSX artifacts
    - GET /artifacts/info: Get artifact workbook metadata
    - GET /artifacts/sheet: Read a worksheet of an artifact

Example:
    To run the server:
        uvicorn sheetstream.main:app --reload

    Or programmatically:
        from sheetstream.main import run_server
        run_server()
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Annotated, Any

import uvicorn
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sheetstream import __version__
from sheetstream.config import configure_logging
from sheetstream.exceptions.export_exceptions import ExcelExportError
from sheetstream.models.export_models import (
    ExportErrorResponse,
    ExportRequest,
    ExportResult,
    ExportStatus,
    SheetData,
    WorkbookInfo,
)
from sheetstream.services.export_service import ExcelExportService

export_service: ExcelExportService | None = None

STATUS_CODE_MAP = {
    "FILE_NOT_FOUND": 404,
    "SHEET_NOT_FOUND": 404,
    "READ_ERROR": 400,
    "INVALID_COLUMNS": 400,
    "NAMING_FAILED": 400,
    "ROW_LIMIT_EXCEEDED": 422,
    "UPSTREAM_SOURCE_FAULT": 422,
    "CANCELLED": 409,
    "STYLE_BUILD_FAILED": 500,
    "WRITE_ERROR": 500,
    "STORAGE_ERROR": 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Configures logging and initializes the export service on startup.

    Args:
        app: The FastAPI application instance.
    """
    global export_service
    configure_logging()
    export_service = ExcelExportService()
    yield
    export_service = None


app = FastAPI(
    title="Streaming XLSX Export Service",
    description="""
    Streaming record-to-XLSX export service supporting both REST API and MCP (Model Context Protocol).

    ## Features

    - **Streaming writes**: XlsxWriter in constant-memory mode, one row in memory at a time
    - **Row limit handling**: Split across worksheets or files when a sheet is full
    - **Adjacency grouping**: Consecutive rows sharing a key become collapsible outline blocks
    - **Typed columns**: Numbers, dates, booleans, currency and percentages with styles
    - **Read-back**: Inspect stored artifacts using python-calamine
    """,
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_service() -> ExcelExportService:
    """
    Get the export service instance.

    Returns:
        The global ExcelExportService instance.

    Raises:
        HTTPException: If the service is not initialized.
    """
    if export_service is None:
        raise HTTPException(
            status_code=503,
            detail="Export service is not initialized",
        )
    return export_service


def export_failure_response(result: ExportResult) -> JSONResponse:
    """
    Convert a failed ExportResult to an HTTP response.

    The full result is returned so that artifacts persisted before the
    failure stay visible to the caller.

    Args:
        result: The failed or cancelled ExportResult.

    Returns:
        JSONResponse with a status code derived from the error code.
    """
    if result.status == ExportStatus.CANCELLED:
        status_code = 409
    else:
        status_code = STATUS_CODE_MAP.get(result.error_code or "", 500)

    return JSONResponse(
        status_code=status_code,
        content=result.model_dump(mode="json"),
    )


@app.get(
    "/health",
    tags=["System"],
    summary="Health check",
    response_model=dict,
)
async def health_check() -> dict[str, Any]:
    """
    Check the health status of the service.

    Returns:
        Dictionary containing status and timestamp.
    """
    return {
        "status": "healthy",
        "service": "Streaming XLSX Export Service",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.post(
    "/export",
    tags=["Export"],
    summary="Export records to XLSX",
    response_model=ExportResult,
    responses={
        400: {"model": ExportResult, "description": "Invalid columns or name"},
        409: {"model": ExportResult, "description": "Export cancelled"},
        422: {"model": ExportResult, "description": "Row limit exceeded"},
        500: {"model": ExportResult, "description": "Write or storage error"},
    },
)
async def export_records(request: ExportRequest) -> ExportResult | JSONResponse:
    """
    Export records to one or more XLSX artifacts.

    Records are streamed into workbooks in order. When a worksheet is full
    the export continues on a new worksheet or in a new file, depending on
    the split options; with both off, the export fails instead of
    truncating.

    Args:
        request: ExportRequest containing columns, records and options.

    Returns:
        ExportResult describing the stored artifacts.
    """
    service = get_service()

    result = await service.export_request(request)
    if not result.success:
        return export_failure_response(result)
    return result


@app.get(
    "/artifacts/info",
    tags=["Artifacts"],
    summary="Get artifact information",
    response_model=WorkbookInfo,
    responses={
        404: {"model": ExportErrorResponse, "description": "File not found"},
        400: {"model": ExportErrorResponse, "description": "Unreadable file"},
    },
)
async def get_artifact_info(
    file_path: Annotated[str, Query(description="Path to the stored artifact")],
) -> WorkbookInfo:
    """
    Get metadata about a stored artifact.

    Args:
        file_path: Path to the artifact on the server.

    Returns:
        WorkbookInfo containing sheet names and row counts.

    Raises:
        HTTPException: If the file is not found or unreadable.
    """
    service = get_service()

    try:
        return service.get_artifact_info(file_path)
    except ExcelExportError as e:
        raise HTTPException(
            status_code=STATUS_CODE_MAP.get(e.error_code, 400),
            detail=e.to_dict(),
        ) from e


@app.get(
    "/artifacts/sheet",
    tags=["Artifacts"],
    summary="Read artifact worksheet",
    response_model=SheetData,
    responses={
        404: {"model": ExportErrorResponse, "description": "File or sheet not found"},
        400: {"model": ExportErrorResponse, "description": "Unreadable file"},
    },
)
async def read_artifact_sheet(
    file_path: Annotated[str, Query(description="Path to the stored artifact")],
    sheet_name: Annotated[str | None, Query(description="Sheet name")] = None,
    sheet_index: Annotated[int | None, Query(description="Sheet index (0-based)")] = None,
) -> SheetData:
    """
    Read one worksheet of a stored artifact.

    Args:
        file_path: Path to the artifact on the server.
        sheet_name: Name of the sheet. If None, uses sheet_index or first sheet.
        sheet_index: Index of the sheet (0-based). Used if sheet_name is None.

    Returns:
        SheetData with the header row split off.

    Raises:
        HTTPException: If the file or sheet is not found.
    """
    service = get_service()

    try:
        return service.read_artifact_sheet(
            file_path=file_path,
            sheet_name=sheet_name,
            sheet_index=sheet_index,
        )
    except ExcelExportError as e:
        raise HTTPException(
            status_code=STATUS_CODE_MAP.get(e.error_code, 400),
            detail=e.to_dict(),
        ) from e


def run_server(
    host: str = "0.0.0.0",
    port: int = 8000,
    reload: bool = False,
) -> None:
    """
    Run the FastAPI server.

    Args:
        host: Host to bind to. Defaults to "0.0.0.0".
        port: Port to listen on. Defaults to 8000.
        reload: Whether to enable auto-reload. Defaults to False.

    Example:
        from sheetstream.main import run_server
        run_server(host="127.0.0.1", port=8080)
    """
    uvicorn.run(
        "sheetstream.main:app",
        host=host,
        port=port,
        reload=reload,
    )


if __name__ == "__main__":
    run_server()
