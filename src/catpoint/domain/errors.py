"""Error taxonomy for the security core and its collaborators."""


class SecurityError(Exception):
    """Base class for all catpoint errors."""

    pass


class InvalidArgumentError(SecurityError, ValueError):
    """Raised before any mutation when a core operation gets a bad argument."""

    pass


class CollaboratorFailure(SecurityError):
    """Raised by a repository or classifier implementation.

    The core never retries and never wraps these; they reach the caller
    unchanged.
    """

    pass


class RepositoryError(CollaboratorFailure):
    """Persistence failed (read, write or unknown sensor)."""

    pass


class ClassifierError(CollaboratorFailure):
    """Image classification could not produce a verdict."""

    pass
