"""Exception hierarchy for resolving and injecting Maven libraries.

Probe and mirror-selection problems never surface here; they are logged and
downgraded where they happen. What remains are the failures a caller of
``LibraryResolver.add_dependency`` has to react to.
"""

__all__ = [
    "MavenLoaderError",
    "ResolutionError",
    "TransferError",
    "ChecksumError",
    "ArtifactNotFoundError",
    "InjectionUnsupportedError",
]


class MavenLoaderError(RuntimeError):
    """Base exception for library resolution and injection failures."""


class ResolutionError(MavenLoaderError):
    """Raised when a coordinate or one of its transitive dependencies cannot be resolved.

    ``trail`` lists the coordinates from the requested dependency down to the
    node that failed; the underlying error is chained as ``__cause__``.
    """

    def __init__(self, message: str, *, trail=()) -> None:
        self.trail = tuple(str(node) for node in trail)
        if len(self.trail) > 1:
            message = f"{message} (via {' -> '.join(self.trail)})"
        super().__init__(message)


class TransferError(ResolutionError):
    """Raised when a repository cannot be reached after all retries."""


class ChecksumError(ResolutionError):
    """Raised when a downloaded file fails checksum verification."""


class ArtifactNotFoundError(MavenLoaderError, FileNotFoundError):
    """Raised when an artifact file to be loaded is missing on disk."""


class InjectionUnsupportedError(MavenLoaderError):
    """Raised when the interpreter's import machinery cannot take a new code source."""
