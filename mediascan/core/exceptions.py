"""Exceptions for media probing, thumbnail rendering and scan control."""

from typing import Optional


# ffprobe exceptions
class FFProbeError(Exception):
    """Base exception for ffprobe errors."""

    pass


class FFProbeNotFoundError(FFProbeError):
    """Raised when ffprobe binary is not found."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class FFProbeExecutionError(FFProbeError):
    """Raised when ffprobe command execution fails."""

    def __init__(
        self,
        message: str,
        returncode: Optional[int] = None,
        stderr: Optional[str] = None,
    ):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class FFProbeParseError(FFProbeError):
    """Raised when parsing ffprobe output fails."""

    pass


# ffmpeg exceptions
class FFmpegError(Exception):
    """Base exception for ffmpeg errors."""

    pass


class FFmpegNotFoundError(FFmpegError):
    """Raised when ffmpeg binary is not found."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class FFmpegExecutionError(FFmpegError):
    """Raised when ffmpeg command execution fails."""

    def __init__(
        self,
        message: str,
        returncode: Optional[int] = None,
        stderr: Optional[str] = None,
    ):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


# scan exceptions
class ScanError(Exception):
    """Base exception for scan errors."""

    def __init__(self, message: str, scan_id: Optional[str] = None):
        super().__init__(message)
        self.scan_id = scan_id


class ScanCancelledError(ScanError):
    """Raised at a control checkpoint once cancellation was requested.

    This is a control-flow signal rather than a failure: it unwinds the
    metadata phase so the catalog is never touched.
    """

    def __init__(self, scan_id: Optional[str] = None):
        super().__init__("Scan was cancelled", scan_id=scan_id)


class ScanInProgressError(ScanError):
    """Raised when a scan is requested while another one is running."""

    pass


class InvalidScanIdError(ScanError):
    """Raised when a control request targets a scan that is not active."""

    def __init__(self, scan_id: Optional[str] = None):
        super().__init__("invalid scan id", scan_id=scan_id)


class ScanSealedError(ScanError):
    """Raised when pause or cancel arrives after the catalog write has begun."""

    def __init__(self, scan_id: Optional[str] = None):
        super().__init__(
            "Scan is saving and can no longer be paused or cancelled",
            scan_id=scan_id,
        )
