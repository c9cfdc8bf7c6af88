"""Exception hierarchy for release-tools."""


class ReleaseToolsError(Exception):
    """Base class for all release-tools errors."""


class DeployOrderError(ReleaseToolsError):
    """Deploy order cannot be computed for a release."""


class CycleError(DeployOrderError):
    """The resolvable dependency graph contains a cycle."""

    def __init__(self, path: list[str] | None = None):
        self.path = path or []
        message = "circular dependency detected"
        if self.path:
            message += f": {' -> '.join(self.path)}"
        super().__init__(message)


class ParseError(DeployOrderError, ValueError):
    """A stored list field could not be decoded."""

    def __init__(self, field: str, raw: str, reason: str = ""):
        self.field = field
        self.raw = raw
        message = f"cannot decode {field}: {raw!r}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class ReleaseNotFoundError(ReleaseToolsError, KeyError):
    """No release exists with the given id."""

    def __str__(self) -> str:
        return f"Release not found: {self.args[0]}" if self.args else "Release not found"


class RepoNotFoundError(ReleaseToolsError, KeyError):
    """No release repository exists with the given id."""

    def __str__(self) -> str:
        return f"Repo not found: {self.args[0]}" if self.args else "Repo not found"


class InvalidApprovalTypeError(ReleaseToolsError, ValueError):
    """Approval type is neither 'dev' nor 'qa'."""


class NotContributorError(ReleaseToolsError):
    """User is not a contributor to the repository."""


class AlreadyConfirmedError(ReleaseToolsError):
    """User has already confirmed the repository."""


class CorruptRecordError(ReleaseToolsError, ValueError):
    """A stored row holds a value that cannot be decoded."""


class IntegrationError(ReleaseToolsError):
    """An external API returned an unexpected response."""


class ArgoCDError(IntegrationError):
    """ArgoCD API error."""


class MattermostError(IntegrationError):
    """Mattermost API error."""
