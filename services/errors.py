# --- START OF FILE services/errors.py ---
"""
Exceptions raised by the extraction services.

Validation and filesystem failures abort the current submission only; the HTTP
bridge maps each class to a status code (see bridge/extension_interface.py).
"""


class ArtifactExtractorError(Exception):
    """Base class for all extractor errors."""
    status_code = 500


class ProjectRootNotSetError(ArtifactExtractorError):
    """A write was requested before any project root was configured."""
    status_code = 400

    def __init__(self, message: str = "Project root not set. Please set project root first."):
        super().__init__(message)


class PathTraversalError(ArtifactExtractorError):
    """The candidate path is absolute or escapes the project root."""
    status_code = 400

    def __init__(self, path: str, reason: str = "path traversal not allowed"):
        self.path = path
        super().__init__(f"Invalid file path {path!r}: {reason}")


class FileAlreadyExistsError(ArtifactExtractorError, FileExistsError):
    """Destination exists and the caller did not opt into overwriting."""
    status_code = 409

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"File already exists and overwrite is disabled: {path}")


class UnwritableRootError(ArtifactExtractorError):
    """The project root cannot be created or written to."""
    status_code = 500

    def __init__(self, path: str, cause: Exception | None = None):
        self.path = path
        detail = f": {cause}" if cause else ""
        super().__init__(f"Failed to set project root '{path}'{detail}")


class MalformedContentError(ArtifactExtractorError):
    """Content cannot be processed at all (e.g. bytes that are not UTF-8 text)."""
    status_code = 422

# --- END OF FILE services/errors.py ---
