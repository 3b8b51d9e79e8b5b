import json
import re
from typing import Any

from site_cms.contracts.actions import Action, Unknown, UpdateSection, UpdateSectionField, parse_action
from site_cms.errors import UnknownActionError

_NUMBER = re.compile(r"^-?\d+(\.\d+)?$")

SET_USAGE = "Usage: /set <section>.<field> <value>"
REPLACE_USAGE = "Usage: /replace <section> <json-object>"
APPLY_USAGE = "Usage: /apply <json> where json is a single CMS action"


def parse_maybe_json(value_text: str) -> Any:
    value = value_text.strip()
    if not value:
        return ""
    looks_json = (
        value.startswith(("{", "[", '"'))
        or value in ("true", "false", "null")
        or _NUMBER.match(value) is not None
    )
    if not looks_json:
        return value
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


def parse_power_command(text: str) -> Action | None:
    """Parse ``/set``, ``/replace`` and ``/apply`` without the interpreter."""
    stripped = text.strip()
    if not stripped.startswith("/"):
        return None

    if stripped.startswith("/set "):
        path, _, value_text = stripped[len("/set "):].strip().partition(" ")
        section, dot, field = path.partition(".")
        if not value_text or not dot or not section or not field:
            return Unknown(message=SET_USAGE)
        return UpdateSectionField(section=section, field=field, value=parse_maybe_json(value_text))

    if stripped.startswith("/replace "):
        section, _, json_text = stripped[len("/replace "):].strip().partition(" ")
        content = parse_maybe_json(json_text)
        if not section or not isinstance(content, dict):
            return Unknown(message=REPLACE_USAGE)
        return UpdateSection(section=section, content=content)

    if stripped.startswith("/apply "):
        payload = parse_maybe_json(stripped[len("/apply "):])
        if not isinstance(payload, dict):
            return Unknown(message=APPLY_USAGE)
        try:
            return parse_action(payload)
        except UnknownActionError as exc:
            return Unknown(message=str(exc))

    return None
