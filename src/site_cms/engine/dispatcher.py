import logging
from typing import Any, Awaitable, Callable

from site_cms.contracts.actions import (
    Action,
    AddEvent,
    AddGalleryImage,
    AddInitiative,
    AddProgram,
    AddTeamMember,
    GetStatus,
    RemoveGalleryImage,
    RemoveInitiative,
    RemoveProgram,
    RemoveTeamMember,
    Undo,
    UpdateEvent,
    UpdateProgram,
    UpdateSection,
    UpdateSectionField,
    UpdateStat,
    UpdateTeamMember,
    parse_action,
)
from site_cms.contracts.results import (
    STORE_UNAVAILABLE,
    UNKNOWN_ACTION,
    ActionResult,
)
from site_cms.engine.history import HistoryLog
from site_cms.engine.mirror import SnapshotMirror
from site_cms.engine.slug import slugify
from site_cms.errors import CmsError, StoreError, UnknownActionError
from site_cms.render.revalidate import Revalidator
from site_cms.store.sqlite_store import (
    SECTION_TABLE,
    STATUS_COLLECTIONS,
    ContentStore,
    utc_now,
)

logger = logging.getLogger(__name__)

STORE_NOT_CONFIGURED = "Store not configured"


class ActionDispatcher:
    """Applies one typed action to the content store.

    Section edits capture a pre-image in the history log first. Every
    successful action is followed by a revalidation signal and a snapshot
    commit, neither of which can turn the result into a failure.
    """

    def __init__(
        self,
        store: ContentStore | None,
        history: HistoryLog | None = None,
        mirror: SnapshotMirror | None = None,
        revalidator: Revalidator | None = None,
    ) -> None:
        self._store = store
        self._history = history or (HistoryLog(store) if store is not None else None)
        self._mirror = mirror
        self._revalidator = revalidator
        self._handlers: dict[type, Callable[[Any], Awaitable[Any]]] = {
            UpdateSection: self._update_section,
            UpdateSectionField: self._update_section_field,
            AddTeamMember: self._add_team_member,
            UpdateTeamMember: self._update_team_member,
            RemoveTeamMember: self._remove_team_member,
            AddGalleryImage: self._add_gallery_image,
            RemoveGalleryImage: self._remove_gallery_image,
            AddProgram: self._add_program,
            UpdateProgram: self._update_program,
            RemoveProgram: self._remove_program,
            AddEvent: self._add_event,
            UpdateEvent: self._update_event,
            UpdateStat: self._update_stat,
            AddInitiative: self._add_initiative,
            RemoveInitiative: self._remove_initiative,
            Undo: self._undo,
            GetStatus: self._get_status,
        }

    @property
    def store_available(self) -> bool:
        return self._store is not None

    async def execute(self, action: Action | dict[str, Any]) -> ActionResult:
        if self._store is None:
            return ActionResult.failed(STORE_NOT_CONFIGURED, STORE_UNAVAILABLE)

        if isinstance(action, dict):
            try:
                action = parse_action(action)
            except UnknownActionError as exc:
                return ActionResult.failed(str(exc), UNKNOWN_ACTION)

        handler = self._handlers.get(type(action))
        if handler is None:
            return ActionResult.failed(f"Unknown action: {action.tag}", UNKNOWN_ACTION)

        try:
            result = await handler(action)
        except CmsError as exc:
            logger.error("CMS action %s failed: %s", action.tag, exc)
            return ActionResult.failed(str(exc))
        except Exception as exc:
            logger.exception("CMS action %s crashed", action.tag)
            return ActionResult.failed(str(exc) or type(exc).__name__)

        if self._revalidator is not None:
            await self._revalidator.signal()

        mirror_commit = None
        if self._mirror is not None:
            ref = await self._mirror.publish(action)
            mirror_commit = ref.sha if ref else None

        return ActionResult(success=True, result=result, mirror_commit=mirror_commit)

    async def _next_sort_order(self, table: str) -> int:
        rows = await self._store.select(table, order_by="sort_order", descending=True, limit=1)
        if not rows:
            return 1
        return (rows[0].get("sort_order") or 0) + 1

    async def _insert_ordered(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        # Read-then-insert: concurrent adds may assign the same sort_order.
        values["sort_order"] = await self._next_sort_order(table)
        return await self._store.insert(table, values)

    async def _update_section(self, action: UpdateSection) -> dict[str, Any]:
        previous = await self._store.select(SECTION_TABLE, eq={"section": action.section}, limit=1)
        if previous:
            await self._history.record(SECTION_TABLE, previous[0]["id"], previous[0])
        return await self._store.update(
            SECTION_TABLE,
            {"content": action.content, "updated_at": utc_now()},
            eq={"section": action.section},
            single=True,
        )

    async def _update_section_field(self, action: UpdateSectionField) -> dict[str, Any]:
        current = await self._store.select_single(SECTION_TABLE, eq={"section": action.section})
        await self._history.record(SECTION_TABLE, current["id"], current)
        content = {**(current.get("content") or {}), action.field: action.value}
        return await self._store.update(
            SECTION_TABLE,
            {"content": content, "updated_at": utc_now()},
            eq={"section": action.section},
            single=True,
        )

    async def _add_team_member(self, action: AddTeamMember) -> dict[str, Any]:
        return await self._insert_ordered(
            "team_members",
            {"name": action.name, "role": action.role, "image_url": action.image_url or None},
        )

    async def _update_team_member(self, action: UpdateTeamMember) -> dict[str, Any]:
        return await self._store.update(
            "team_members", action.updates or {}, ilike={"name": action.name}, single=True
        )

    async def _remove_team_member(self, action: RemoveTeamMember) -> list[dict[str, Any]]:
        return await self._store.delete("team_members", ilike={"name": action.name}, single=True)

    async def _add_gallery_image(self, action: AddGalleryImage) -> dict[str, Any]:
        return await self._insert_ordered(
            "gallery_images",
            {"src": action.src, "alt": action.alt or "", "caption": action.caption or ""},
        )

    async def _remove_gallery_image(self, action: RemoveGalleryImage) -> list[dict[str, Any]]:
        return await self._store.delete(
            "gallery_images", ilike={"caption": action.caption}, single=True
        )

    async def _add_program(self, action: AddProgram) -> dict[str, Any]:
        return await self._insert_ordered(
            "programs",
            {
                "title": action.title,
                "description": action.description or "",
                "tags": action.tags or [],
                "image_url": action.image_url or None,
                "image_alt": action.image_alt or "",
            },
        )

    async def _update_program(self, action: UpdateProgram) -> dict[str, Any]:
        return await self._store.update(
            "programs", action.updates or {}, ilike={"title": action.title}, single=True
        )

    async def _remove_program(self, action: RemoveProgram) -> list[dict[str, Any]]:
        return await self._store.delete("programs", ilike={"title": action.title}, single=True)

    async def _add_event(self, action: AddEvent) -> dict[str, Any]:
        if action.event is not None and not isinstance(action.event, dict):
            raise StoreError("add_event requires event to be an object")
        event = dict(action.event or {})
        event["slug"] = slugify(event.get("title"))
        return await self._insert_ordered("events", event)

    async def _update_event(self, action: UpdateEvent) -> dict[str, Any]:
        return await self._store.update(
            "events", action.updates or {}, eq={"slug": action.slug}, single=True
        )

    async def _update_stat(self, action: UpdateStat) -> dict[str, Any]:
        values: dict[str, Any] = {"value": action.value}
        if action.suffix is not None:
            values["suffix"] = action.suffix
        if action.prefix is not None:
            values["prefix"] = action.prefix
        return await self._store.update("stats", values, ilike={"label": action.label}, single=True)

    async def _add_initiative(self, action: AddInitiative) -> dict[str, Any]:
        return await self._insert_ordered(
            "initiatives", {"title": action.title, "detail": action.detail or ""}
        )

    async def _remove_initiative(self, action: RemoveInitiative) -> list[dict[str, Any]]:
        return await self._store.delete("initiatives", ilike={"title": action.title}, single=True)

    async def _undo(self, action: Undo) -> dict[str, str]:
        return await self._history.undo()

    async def _get_status(self, action: GetStatus) -> dict[str, int]:
        return {table: await self._store.count(table) for table in STATUS_COLLECTIONS}
