from dataclasses import dataclass, fields
from typing import Any, ClassVar, Union

from site_cms.errors import UnknownActionError


@dataclass(frozen=True)
class UpdateSection:
    tag: ClassVar[str] = "update_section"
    section: str | None = None
    content: dict[str, Any] | None = None


@dataclass(frozen=True)
class UpdateSectionField:
    tag: ClassVar[str] = "update_section_field"
    section: str | None = None
    field: str | None = None
    value: Any = None


@dataclass(frozen=True)
class AddTeamMember:
    tag: ClassVar[str] = "add_team_member"
    name: str | None = None
    role: str | None = None
    image_url: str | None = None


@dataclass(frozen=True)
class UpdateTeamMember:
    tag: ClassVar[str] = "update_team_member"
    name: str | None = None
    updates: dict[str, Any] | None = None


@dataclass(frozen=True)
class RemoveTeamMember:
    tag: ClassVar[str] = "remove_team_member"
    name: str | None = None


@dataclass(frozen=True)
class AddGalleryImage:
    tag: ClassVar[str] = "add_gallery_image"
    src: str | None = None
    alt: str | None = None
    caption: str | None = None


@dataclass(frozen=True)
class RemoveGalleryImage:
    tag: ClassVar[str] = "remove_gallery_image"
    caption: str | None = None


@dataclass(frozen=True)
class AddProgram:
    tag: ClassVar[str] = "add_program"
    title: str | None = None
    description: str | None = None
    tags: list[str] | None = None
    image_url: str | None = None
    image_alt: str | None = None


@dataclass(frozen=True)
class UpdateProgram:
    tag: ClassVar[str] = "update_program"
    title: str | None = None
    updates: dict[str, Any] | None = None


@dataclass(frozen=True)
class RemoveProgram:
    tag: ClassVar[str] = "remove_program"
    title: str | None = None


@dataclass(frozen=True)
class AddEvent:
    tag: ClassVar[str] = "add_event"
    event: dict[str, Any] | None = None


@dataclass(frozen=True)
class UpdateEvent:
    tag: ClassVar[str] = "update_event"
    slug: str | None = None
    updates: dict[str, Any] | None = None


@dataclass(frozen=True)
class UpdateStat:
    tag: ClassVar[str] = "update_stat"
    label: str | None = None
    value: Any = None
    suffix: str | None = None
    prefix: str | None = None


@dataclass(frozen=True)
class AddInitiative:
    tag: ClassVar[str] = "add_initiative"
    title: str | None = None
    detail: str | None = None


@dataclass(frozen=True)
class RemoveInitiative:
    tag: ClassVar[str] = "remove_initiative"
    title: str | None = None


@dataclass(frozen=True)
class Undo:
    tag: ClassVar[str] = "undo"


@dataclass(frozen=True)
class GetStatus:
    tag: ClassVar[str] = "get_status"


@dataclass(frozen=True)
class Unknown:
    """Interpreter verdict for a message it could not map to an action."""

    tag: ClassVar[str] = "unknown"
    message: str = ""


Action = Union[
    UpdateSection,
    UpdateSectionField,
    AddTeamMember,
    UpdateTeamMember,
    RemoveTeamMember,
    AddGalleryImage,
    RemoveGalleryImage,
    AddProgram,
    UpdateProgram,
    RemoveProgram,
    AddEvent,
    UpdateEvent,
    UpdateStat,
    AddInitiative,
    RemoveInitiative,
    Undo,
    GetStatus,
    Unknown,
]

ACTION_TYPES: dict[str, type] = {
    cls.tag: cls
    for cls in (
        UpdateSection,
        UpdateSectionField,
        AddTeamMember,
        UpdateTeamMember,
        RemoveTeamMember,
        AddGalleryImage,
        RemoveGalleryImage,
        AddProgram,
        UpdateProgram,
        RemoveProgram,
        AddEvent,
        UpdateEvent,
        UpdateStat,
        AddInitiative,
        RemoveInitiative,
        Undo,
        GetStatus,
        Unknown,
    )
}


def parse_action(payload: dict[str, Any]) -> Action:
    """Build the typed action for ``payload["action"]``.

    Only the tag is validated. Missing fields stay ``None`` and surface as
    store errors once the action is executed.
    """
    tag = payload.get("action")
    cls = ACTION_TYPES.get(tag) if isinstance(tag, str) else None
    if cls is None:
        raise UnknownActionError(tag)
    kwargs = {f.name: payload.get(f.name) for f in fields(cls) if f.name in payload}
    if cls is Unknown:
        kwargs["message"] = str(kwargs.get("message") or "")
    return cls(**kwargs)


def action_to_dict(action: Action) -> dict[str, Any]:
    data: dict[str, Any] = {"action": action.tag}
    for f in fields(action):
        value = getattr(action, f.name)
        if value is not None:
            data[f.name] = value
    return data
