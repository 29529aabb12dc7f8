"""Custom exceptions for depreview."""


class DepReviewError(Exception):
    """Base exception for all depreview errors."""


class GitCommandError(DepReviewError):
    """Raised when a git subprocess exits with a non-zero status."""

    def __init__(self, cmd: list[str], returncode: int, stderr: str):
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"git command failed (exit {returncode}): {stderr}")


class VersionNotResolvedError(DepReviewError):
    """Raised when no unique release commit can be found for a version."""

    def __init__(self, name: str, version: str):
        self.name = name
        self.version = version
        super().__init__(f"release commit not found in the repository for {name}:{version}")


class ManifestNotFoundError(DepReviewError):
    """Raised when a package manifest cannot be located inside a checkout."""


class NotAnUpdateError(DepReviewError):
    """Raised when a dependency change is an addition, removal or no-op."""


class DowngradeError(NotAnUpdateError):
    """Raised when a dependency change moves to an older version."""

    def __init__(self, name: str, old_version: str, new_version: str):
        self.name = name
        self.old_version = old_version
        self.new_version = new_version
        super().__init__(
            f"dependency change for {name} is a downgrade ({old_version} -> {new_version})"
        )


class GraphError(DepReviewError):
    """Raised when a resolved dependency graph is missing a required node."""


class CacheError(DepReviewError):
    """Raised when the update-review cache is in an inconsistent state."""


class RegistryError(DepReviewError):
    """Raised when the package registry returns an unusable response."""


class AdvisoryDatabaseError(DepReviewError):
    """Raised when the advisory database cannot be loaded."""
