from __future__ import annotations
"""Error taxonomy shared by the generation services, the pipeline and the API.

Every error carries a ``retriable`` flag (consulted by the generation
service retry loop) and the HTTP status the API layer answers with.
"""


class SceneSmithError(Exception):
    """Base error with retriable flag and HTTP mapping."""

    retriable: bool = False
    http_status: int = 500

    def __init__(self, message: str, *, retriable: bool | None = None):
        super().__init__(message)
        self.message = message
        if retriable is not None:
            self.retriable = retriable


class ConfigurationError(SceneSmithError):
    """A required provider credential or setting is missing."""

    http_status = 503


class ValidationError(SceneSmithError):
    """Malformed request, rejected before any generation starts."""

    http_status = 200


class NotFoundError(SceneSmithError):
    """Referenced project/scene/asset missing or not owned by the caller."""

    http_status = 404


class ProviderError(SceneSmithError):
    """Base for failures reported by an external generation provider."""

    http_status = 502


class ProviderRejected(ProviderError):
    """Bad prompt/model combination; never retried."""


class ProviderTimeout(ProviderError):
    """Provider job or request exceeded its deadline."""

    retriable = True


class TransientNetworkError(ProviderError):
    """Connection failure or 5xx/429-class response."""

    retriable = True


class StorageError(SceneSmithError):
    """Download or upload of a generated artifact failed."""

    retriable = True
    http_status = 502


class DownloadFailed(StorageError):
    pass


class UploadFailed(StorageError):
    pass


class PersistenceWarning(SceneSmithError):
    """Database write failed after the artifact was safely stored.

    Logged, never raised to the client.
    """


class PipelineCancelled(SceneSmithError):
    """Run aborted by the caller at a stage boundary."""

    http_status = 409


class PipelineTimeout(SceneSmithError):
    """Run exceeded the configured wall-clock ceiling."""

    http_status = 504


class MediaProcessingError(SceneSmithError):
    """FFmpeg/ffprobe failed on a local media file."""

    http_status = 500


class SceneGenerationError(SceneSmithError):
    """One or more scenes did not produce a clip; the run cannot be stitched."""

    http_status = 502
