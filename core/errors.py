"""
Errors raised by the rebuild pipeline
"""


class RebuildError(Exception):
    """Base class for every failure that ends a rebuild run"""

    def __init__(self, operation: str, target: str, cause=None):
        self.operation = operation
        self.target = target
        self.cause = cause
        message = f"{operation} failed for {target}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class SourceNotFound(RebuildError):
    """Source folder is missing or not a directory"""


class DestinationInvalid(RebuildError):
    """Destination drive is missing, not ready or not allowed"""


class ManifestScanFailed(RebuildError):
    """Enumerating the source tree failed"""


class DirectoryCreateFailed(RebuildError):
    """Mirroring a source directory on the target failed"""


class FileCopyIOFailed(RebuildError):
    """Reading, writing or flushing a file failed mid-copy"""

    def __init__(self, operation: str, target: str, cause=None, source: str = None):
        self.source = source
        super().__init__(operation, target, cause)


class FormatError(RebuildError):
    """Base class for format stage failures"""


class BackendLaunchFailed(FormatError):
    """The format tool process could not be started"""


class FormatVerificationFailed(FormatError):
    """Neither the primary nor the fallback format produced a verified volume"""


class CleanupFailed(FormatError):
    """Removing leftover entries from the freshly formatted root failed"""
