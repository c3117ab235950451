"""Custom Exceptions for the VoSync application."""

from typing import Optional


class VoSyncError(Exception):
    """Base class for exceptions in this module."""
    pass

class ConfigurationError(VoSyncError):
    """Exception raised for errors in configuration loading."""
    pass

class FileSystemError(VoSyncError):
    """Exception raised for file system related errors (permissions, not found etc)."""
    pass

class SubtitleParseError(VoSyncError):
    """Exception raised when a subtitle file yields no usable entries."""
    pass

class FormattingError(VoSyncError):
    """Exception raised for errors during subtitle serialization."""
    pass

class EncoderError(VoSyncError):
    """
    Exception raised when the external encoder exits with a nonzero status.

    The encoder's own diagnostic output is kept verbatim in `stderr`.
    """

    def __init__(self, message: str, stderr: Optional[str] = None):
        super().__init__(message)
        self.stderr = stderr or ""

class EncoderTimeoutError(EncoderError):
    """Exception raised when an encoder call exceeds its timeout."""
    pass

class SliceError(VoSyncError):
    """Exception raised when voiceover slicing cannot start at all."""
    pass

class StitchError(VoSyncError):
    """Exception raised when the final voiceover track cannot be produced."""

    def __init__(self, message: str, stderr: Optional[str] = None):
        super().__init__(message)
        self.stderr = stderr or ""

class TransitionError(VoSyncError):
    """Exception raised when every step of the clip concatenation ladder failed."""

    def __init__(self, message: str, stderr: Optional[str] = None):
        super().__init__(message)
        self.stderr = stderr or ""

class SyncCancelledError(VoSyncError):
    """Exception raised when a run is cancelled before it completes."""
    pass
