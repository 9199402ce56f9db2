from __future__ import annotations

class PhotoExporterError(Exception):
    """Base exception for the application."""

class ValidationError(PhotoExporterError):
    """Raised when an export description is malformed before submission."""

class NoTargetsError(PhotoExporterError):
    """Raised when an export is submitted without any target images."""

class ExportBusyError(PhotoExporterError):
    """Raised when an export is submitted while another one is running."""

class EngineFault(PhotoExporterError):
    """Raised when the processing engine reports a render/write failure."""

class CancelledByUser(PhotoExporterError):
    """Raised when the engine acknowledges a user cancellation."""
