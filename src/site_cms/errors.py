"""Error taxonomy shared by the store, engine and request boundaries."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from site_cms.engine.revert import RevertStep


class CmsError(Exception):
    pass


class AuthorizationError(CmsError):
    """Missing or mismatched shared secret, or operator not on the allow-list."""


class UnknownActionError(CmsError):
    def __init__(self, tag: object) -> None:
        super().__init__(f"Unknown action: {tag}")
        self.tag = tag


class StoreError(CmsError):
    pass


class ExpectedSingleRowError(StoreError):
    def __init__(self, table: str, matched: int) -> None:
        super().__init__(
            f"expected a single row in {table}, matched {matched}"
        )
        self.table = table
        self.matched = matched


class RemoteRepositoryError(CmsError):
    def __init__(self, status: int, body: str) -> None:
        super().__init__(f"repository API error {status}: {body[:200]}")
        self.status = status
        self.body = body


class RevertError(CmsError):
    pass


class RevertIncompleteError(RevertError):
    """A revert step failed after earlier steps were already committed."""

    def __init__(self, completed: list["RevertStep"], failed_path: str, cause: Exception) -> None:
        done = ", ".join(step.path for step in completed) or "none"
        super().__init__(
            f"revert stopped at {failed_path}: {cause} (already reverted: {done})"
        )
        self.completed = completed
        self.failed_path = failed_path
        self.cause = cause


class InterpreterParseError(CmsError):
    pass


class TranscriptionError(CmsError):
    pass


class MessagingError(CmsError):
    pass


class NetworkError(CmsError):
    pass
