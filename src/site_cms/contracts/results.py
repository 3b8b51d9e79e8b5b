from dataclasses import dataclass
from typing import Any

UNKNOWN_ACTION = "unknown_action"
STORE_FAILURE = "store"
STORE_UNAVAILABLE = "store_unavailable"


@dataclass(frozen=True)
class ActionResult:
    success: bool
    result: Any = None
    error: str | None = None
    error_kind: str | None = None
    mirror_commit: str | None = None

    @classmethod
    def failed(cls, error: str, error_kind: str = STORE_FAILURE) -> "ActionResult":
        return cls(success=False, error=error, error_kind=error_kind)

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "result": self.result}
        return {"success": False, "error": self.error}
