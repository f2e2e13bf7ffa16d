"""Generation API client and result sinks."""

from .client import ExportSink, GenerationClient, HistorySink, HttpGenerationClient
from .sinks import JsonBankExportSink, JsonHistorySink

__all__ = [
    "ExportSink",
    "GenerationClient",
    "HistorySink",
    "HttpGenerationClient",
    "JsonBankExportSink",
    "JsonHistorySink",
]
