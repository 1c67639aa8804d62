"""
Exception types raised by RepoLens services.

Route handlers translate these into `{"error": ...}` JSON bodies; see main.py.
"""


class RepoLensError(Exception):
    """Base class for errors with an HTTP status attached."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidRepoUrlError(RepoLensError):
    status_code = 400


class GitHubAPIError(RepoLensError):
    """GitHub answered with an error; `github_status` keeps the upstream code."""

    def __init__(self, message: str, github_status: int | None = None):
        if github_status in (401, 403, 404):
            status = github_status
        else:
            status = 502
        super().__init__(message, status)
        self.github_status = github_status


class LLMError(RepoLensError):
    status_code = 502

    def __init__(self, message: str, details: object = None):
        super().__init__(message)
        self.details = details


class LLMQuotaExceededError(LLMError):
    status_code = 429
