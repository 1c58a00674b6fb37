"""
MCP (Model Context Protocol) server for export operations.

This module implements an MCP server that exposes the export service as
tools that can be called by AI agents. It provides the same functionality
as the REST API but through the MCP protocol.

MCP Tools:
    - export_records: Export records to one or more XLSX artifacts
    - get_artifact_info: Get metadata about a stored artifact
    - read_artifact_sheet: Read a worksheet of a stored artifact

Example:
    To run the MCP server:
        python -m sheetstream.mcp_server

    Or programmatically:
        from sheetstream.mcp_server import run_mcp_server
        run_mcp_server()
"""

import asyncio
import json
import logging
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    TextContent,
    Tool,
)
from pydantic import ValidationError

from sheetstream.config import configure_logging
from sheetstream.exceptions.export_exceptions import ExcelExportError
from sheetstream.models.export_models import ColumnDataType, ExportRequest, PredefinedStyle
from sheetstream.services.export_service import ExcelExportService

logger = logging.getLogger(__name__)

_COLUMN_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "field_name": {
            "type": "string",
            "description": "Record key the value is read from (case-insensitive)",
        },
        "title": {
            "type": "string",
            "description": "Header text",
        },
        "data_type": {
            "type": "string",
            "enum": [data_type.value for data_type in ColumnDataType],
            "description": "Declared type of the column values (default: 'String')",
        },
        "width": {
            "type": "number",
            "description": "Column width in characters",
        },
        "style": {
            "type": "string",
            "enum": [style.value for style in PredefinedStyle],
            "description": "Style overriding the type-implied style",
        },
        "number_format": {
            "type": "string",
            "description": "Number format code (e.g., '0.000')",
        },
        "hidden": {
            "type": "boolean",
            "description": "Whether the column is hidden (default: false)",
        },
        "group": {
            "type": "boolean",
            "description": "Group adjacent rows sharing this column's value (at most one column)",
        },
    },
    "required": ["field_name", "title"],
}


class MCPExportServer:
    """
    MCP server implementation for export operations.

    This class wraps the ExcelExportService and exposes it through the MCP
    protocol, allowing AI agents to export records and inspect the stored
    artifacts using standardized tool calls.

    The server implements:
        - list_tools: Returns available export operations as MCP tools
        - call_tool: Executes a specific export operation

    Attributes:
        service: The underlying ExcelExportService instance.
        server: The MCP Server instance.

    Example:
        mcp_server = MCPExportServer()
        await mcp_server.run()
    """

    def __init__(self, service: ExcelExportService | None = None) -> None:
        """
        Initialize the MCP Export Server.

        Args:
            service: Optional ExcelExportService instance. If None, creates a new one.
        """
        self.service = service or ExcelExportService()
        self.server = Server("sheetstream-mcp-server")
        self._setup_handlers()

    def _setup_handlers(self) -> None:
        """Set up MCP request handlers."""

        @self.server.list_tools()
        async def list_tools() -> list[Tool]:
            """Return the list of available export tools."""
            return self._get_tools()

        @self.server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            """Execute a tool and return the result."""
            result = await self._execute_tool(name, arguments)
            return [TextContent(type="text", text=json.dumps(result, default=str, indent=2))]

    def _get_tools(self) -> list[Tool]:
        """
        Get the list of available export tools.

        Returns:
            List of MCP Tool definitions.
        """
        return [
            Tool(
                name="export_records",
                description=(
                    "Export records to XLSX. Each record is an object keyed by field name. "
                    "When a worksheet is full the export continues on a new worksheet or "
                    "in a new file if the corresponding split option is set. Returns the "
                    "stored artifacts."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "base_name": {
                            "type": "string",
                            "description": "Logical name of the export, used for the file name",
                        },
                        "columns": {
                            "type": "array",
                            "items": _COLUMN_SCHEMA,
                            "description": "Output columns, in order",
                        },
                        "records": {
                            "type": "array",
                            "items": {"type": "object"},
                            "description": "Records to export, in order",
                        },
                        "options": {
                            "type": "object",
                            "properties": {
                                "sheet_name": {
                                    "type": "string",
                                    "description": "Base worksheet name (default: 'Sheet1')",
                                },
                                "locale": {
                                    "type": "string",
                                    "description": "Locale of the data (default: 'en_US')",
                                },
                                "freeze_header": {
                                    "type": "boolean",
                                    "description": "Freeze the header row (default: true)",
                                },
                                "auto_filter": {
                                    "type": "boolean",
                                    "description": "Add an auto-filter over the header (default: true)",
                                },
                                "data_date": {
                                    "type": "string",
                                    "description": "Date the data refers to, YYYY-MM-DD (default: today, UTC)",
                                },
                                "split_into_multiple_sheets": {
                                    "type": "boolean",
                                    "description": "Continue on new worksheets when a sheet is full",
                                },
                                "split_into_multiple_files": {
                                    "type": "boolean",
                                    "description": "Continue in new files when a sheet is full",
                                },
                                "header_background_color": {
                                    "type": "string",
                                    "description": "Header fill color as hex (e.g., '#1F4E78')",
                                },
                                "header_text_color": {
                                    "type": "string",
                                    "description": "Header font color as hex (e.g., 'FFFFFF')",
                                },
                            },
                        },
                    },
                    "required": ["base_name", "columns", "records"],
                },
            ),
            Tool(
                name="get_artifact_info",
                description=(
                    "Get metadata about a stored XLSX artifact including file size, "
                    "sheet names and row counts."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "file_path": {
                            "type": "string",
                            "description": "Path to the stored artifact",
                        },
                    },
                    "required": ["file_path"],
                },
            ),
            Tool(
                name="read_artifact_sheet",
                description=(
                    "Read a worksheet of a stored XLSX artifact. Returns the header row "
                    "and the data rows."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "file_path": {
                            "type": "string",
                            "description": "Path to the stored artifact",
                        },
                        "sheet_name": {
                            "type": "string",
                            "description": "Name of the sheet to read (optional, defaults to first sheet)",
                        },
                        "sheet_index": {
                            "type": "integer",
                            "description": "Index of the sheet (0-based, used if sheet_name not provided)",
                        },
                    },
                    "required": ["file_path"],
                },
            ),
        ]

    async def _execute_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """
        Execute a tool by name with the given arguments.

        Args:
            name: The name of the tool to execute.
            arguments: The arguments to pass to the tool.

        Returns:
            Dictionary containing the tool execution result.
        """
        try:
            if name == "export_records":
                request = ExportRequest(
                    base_name=arguments["base_name"],
                    columns=arguments["columns"],
                    records=arguments.get("records", []),
                    options=arguments.get("options") or {},
                )
                result = await self.service.export_request(request)
                if result.success:
                    return {"success": True, "data": result.model_dump()}
                return {
                    "success": False,
                    "error": {
                        "error_code": result.error_code,
                        "message": result.message,
                        "details": result.details,
                    },
                    "data": result.model_dump(),
                }

            elif name == "get_artifact_info":
                result = self.service.get_artifact_info(arguments["file_path"])
                return {"success": True, "data": result.model_dump()}

            elif name == "read_artifact_sheet":
                result = self.service.read_artifact_sheet(
                    file_path=arguments["file_path"],
                    sheet_name=arguments.get("sheet_name"),
                    sheet_index=arguments.get("sheet_index"),
                )
                return {"success": True, "data": result.model_dump()}

            else:
                return {
                    "success": False,
                    "error": {
                        "error_code": "UNKNOWN_TOOL",
                        "message": f"Unknown tool: {name}",
                    },
                }

        except ExcelExportError as e:
            return {
                "success": False,
                "error": e.to_dict(),
            }
        except (ValidationError, KeyError) as e:
            return {
                "success": False,
                "error": {
                    "error_code": "INVALID_ARGUMENTS",
                    "message": str(e),
                },
            }
        except Exception as e:
            logger.exception("Tool %s failed", name)
            return {
                "success": False,
                "error": {
                    "error_code": "INTERNAL_ERROR",
                    "message": str(e),
                },
            }

    async def run(self) -> None:
        """
        Run the MCP server using stdio transport.

        This method starts the server and blocks until it is terminated.
        It uses stdin/stdout for communication with the MCP client.
        """
        async with stdio_server() as (read_stream, write_stream):
            await self.server.run(
                read_stream,
                write_stream,
                self.server.create_initialization_options(),
            )


def run_mcp_server() -> None:
    """
    Run the MCP export server.

    This is the entry point for running the MCP server from the command line.
    Logging goes to stderr since stdout carries the protocol.

    Example:
        python -m sheetstream.mcp_server
    """
    configure_logging()
    server = MCPExportServer()
    asyncio.run(server.run())


if __name__ == "__main__":
    run_mcp_server()
