import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from site_cms.contracts.actions import Action, action_to_dict
from site_cms.contracts.pending_lifecycle import PendingState, validate_transition
from site_cms.contracts.results import ActionResult
from site_cms.engine.dispatcher import ActionDispatcher
from site_cms.store.sqlite_store import PENDING_TABLE, ContentStore

logger = logging.getLogger(__name__)

EXPIRED_MESSAGE = "Preview expired. Please resend your request."


@dataclass(frozen=True)
class PendingOutcome:
    state: PendingState
    pending_id: str
    result: ActionResult | None = None
    description: str = ""

    @property
    def expired(self) -> bool:
        return self.state is PendingState.EXPIRED


class PendingActions:
    """Staged actions awaiting operator confirmation, one per conversation.

    The one-hour TTL is only applied by ``cleanup_expired``; rows can
    outlive it until that pass runs. Lookup and delete are not locked, so
    two confirmations racing on the same id may both dispatch.
    """

    def __init__(
        self,
        store: ContentStore,
        dispatcher: ActionDispatcher,
        ttl_seconds: int = 3600,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._ttl = timedelta(seconds=ttl_seconds)

    async def propose(self, conversation_id: str, action: Action, description: str) -> str:
        await self._store.delete(PENDING_TABLE, eq={"conversation_id": str(conversation_id)})
        row = await self._store.insert(
            PENDING_TABLE,
            {
                "conversation_id": str(conversation_id),
                "action_data": action_to_dict(action),
                "description": description,
            },
        )
        logger.info("Staged %s for conversation %s as %s", action.tag, conversation_id, row["id"])
        return row["id"]

    async def get(self, pending_id: str) -> dict[str, Any] | None:
        rows = await self._store.select(PENDING_TABLE, eq={"id": pending_id}, limit=1)
        return rows[0] if rows else None

    async def confirm(self, pending_id: str) -> PendingOutcome:
        pending = await self.get(pending_id)
        if pending is None:
            state = validate_transition(PendingState.PROPOSED, PendingState.EXPIRED)
            return PendingOutcome(state=state, pending_id=pending_id)

        try:
            result = await self._dispatcher.execute(pending["action_data"])
        finally:
            await self._store.delete(PENDING_TABLE, eq={"id": pending_id})

        state = validate_transition(PendingState.PROPOSED, PendingState.CONFIRMED)
        return PendingOutcome(
            state=state,
            pending_id=pending_id,
            result=result,
            description=pending.get("description", ""),
        )

    async def cancel(self, pending_id: str) -> PendingOutcome:
        await self._store.delete(PENDING_TABLE, eq={"id": pending_id})
        state = validate_transition(PendingState.PROPOSED, PendingState.CANCELLED)
        return PendingOutcome(state=state, pending_id=pending_id)

    async def clear_conversation(self, conversation_id: str) -> int:
        removed = await self._store.delete(
            PENDING_TABLE, eq={"conversation_id": str(conversation_id)}
        )
        return len(removed)

    async def cleanup_expired(self, now: datetime | None = None) -> int:
        cutoff = (now or datetime.now(timezone.utc)) - self._ttl
        removed = await self._store.delete(
            PENDING_TABLE, lt={"created_at": cutoff.isoformat(timespec="microseconds")}
        )
        if removed:
            logger.info("Removed %d expired pending actions", len(removed))
        return len(removed)
