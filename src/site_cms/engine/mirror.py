import json
import logging
from dataclasses import dataclass

from site_cms.contracts.actions import Action
from site_cms.github.client import CommitRef, GitHubClient
from site_cms.store.sqlite_store import ContentStore

logger = logging.getLogger(__name__)

TABLE_BY_ACTION: dict[str, str] = {
    "update_section": "site_content",
    "update_section_field": "site_content",
    "add_team_member": "team_members",
    "update_team_member": "team_members",
    "remove_team_member": "team_members",
    "add_gallery_image": "gallery_images",
    "remove_gallery_image": "gallery_images",
    "add_program": "programs",
    "update_program": "programs",
    "remove_program": "programs",
    "add_event": "events",
    "update_event": "events",
    "update_stat": "stats",
    "add_initiative": "initiatives",
    "remove_initiative": "initiatives",
}

COMMIT_PREFIX = "cms:"


@dataclass(frozen=True)
class MirrorFailure:
    action: str
    table: str
    error: str


def snapshot_path(table: str) -> str:
    return f"data/{table}.json"


def describe(action: Action) -> str:
    desc = action.tag.replace("_", " ")
    section = getattr(action, "section", None)
    if section:
        desc += f" ({section})"
    for name in ("field", "name", "title", "slug", "label"):
        value = getattr(action, name, None)
        if value:
            desc += f" → {value}"
    return desc


class SnapshotMirror:
    """Commits a full copy of the mutated collection after each change.

    Publishing never raises. Failed attempts are logged and kept in
    ``failures`` so the primary write is never affected.
    """

    def __init__(self, store: ContentStore, repo: GitHubClient, max_attempts: int = 1) -> None:
        self._store = store
        self._repo = repo
        self._max_attempts = max(1, max_attempts)
        self.failures: list[MirrorFailure] = []

    async def publish(self, action: Action) -> CommitRef | None:
        table = TABLE_BY_ACTION.get(action.tag)
        if table is None:
            return None

        last_error = ""
        for attempt in range(1, self._max_attempts + 1):
            try:
                rows = await self._store.select(table, order_by="id")
                content = json.dumps(rows, indent=2, ensure_ascii=False) + "\n"
                return await self._repo.commit_file(
                    snapshot_path(table), content, f"{COMMIT_PREFIX} {describe(action)}"
                )
            except Exception as exc:
                last_error = str(exc)
                logger.warning(
                    "Snapshot commit for %s failed (attempt %d/%d): %s",
                    table,
                    attempt,
                    self._max_attempts,
                    exc,
                )
        self.failures.append(MirrorFailure(action=action.tag, table=table, error=last_error))
        return None
