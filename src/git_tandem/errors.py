"""Exception hierarchy shared by the synchronization engine and its collaborators."""


class TandemError(Exception):
    """Base class for every error raised by Git Tandem."""


class GitError(TandemError):
    """A git subprocess exited with a non-zero status.

    Attributes:
        returncode (int | None): The exit code of the git process.
        stderr (str): The verbatim standard error output.
    """

    def __init__(self, message: str, returncode: int | None = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class ConfigError(TandemError):
    """Required identity or authentication fields are missing."""


class ValidationError(TandemError):
    """A sync request names an invalid repository or violates the topology invariants."""


class RemoteError(TandemError):
    """A push, pull, clone or fetch was rejected by the remote or the network."""


class FilesystemError(TandemError):
    """Copying or deleting entries while mirroring a working tree failed."""


class CommitError(TandemError):
    """A commit was rejected (for example, nothing to commit)."""
