"""
Adapters for workbook assembly, storage and read-back.

- WorkbookAssembler / WorksheetWriter: Streaming writes using XlsxWriter
- LocalArtifactStore: Filesystem persistence behind the ArtifactStore interface
- CalamineAdapter: Reading stored artifacts using python-calamine (Rust-based)
"""

from sheetstream.adapters.calamine_adapter import CalamineAdapter
from sheetstream.adapters.storage_adapter import ArtifactStore, LocalArtifactStore
from sheetstream.adapters.xlsxwriter_adapter import WorkbookAssembler, WorksheetWriter

__all__ = [
    "ArtifactStore",
    "CalamineAdapter",
    "LocalArtifactStore",
    "WorkbookAssembler",
    "WorksheetWriter",
]
