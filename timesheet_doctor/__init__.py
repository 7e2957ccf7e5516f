"""timesheet-doctor: attendance spreadsheet ingestion and anomaly review."""

__version__ = "0.3.0"
