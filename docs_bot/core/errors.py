"""Error taxonomy shared by the governance pipeline and its upstream clients."""


class DocsBotError(Exception):
    """Base class for Docs Bot errors."""


class NotFoundError(DocsBotError):
    """An upstream resource does not exist (HTTP 404).

    Callers branch on this explicitly; it is never logged as an error.
    """


class UpstreamError(DocsBotError):
    """A non-404 failure from GitHub or Microsoft Graph."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ConfigurationError(DocsBotError):
    """Required credentials or assets are missing; the component cannot be built."""


class MergeError(DocsBotError):
    """An approval table merge violated its calling contract."""


class ApprovalTableNotFoundError(MergeError):
    """The body has no approval table and creation was not requested."""

    def __init__(self, message: str = "Approval table not found in PR body."):
        super().__init__(message)
