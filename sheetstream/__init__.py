"""
sheetstream: Streaming record-to-XLSX export service.

This package turns arbitrarily long, forward-only record sources into Excel
workbooks without holding the records in memory, and exposes the exporter
through both OpenAPI (REST via FastAPI) and MCP (Model Context Protocol)
interfaces.

Architecture:
    - Service layer orchestrating single-sheet, multi-sheet and multi-file exports
    - XlsxWriter in constant_memory mode for streaming writes
    - python-calamine for reading stored artifacts back
    - Pluggable artifact stores behind a narrow interface
"""

__version__ = "0.1.0"
