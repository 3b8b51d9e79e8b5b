import html
import json
import logging
from typing import Any

import httpx

from site_cms.contracts.actions import Action
from site_cms.errors import MessagingError
from site_cms.transport import send

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


def escape_html(value: str) -> str:
    return html.escape(value, quote=True)


def code_inline(value: str) -> str:
    return f"<code>{escape_html(value)}</code>"


def truncate(value: str, limit: int = 140) -> str:
    text = value.strip()
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def summarize_action(action: Action) -> str:
    tag = action.tag
    if tag == "update_section_field":
        value = truncate(json.dumps(action.value, ensure_ascii=False))
        return f"• Set {code_inline(f'{action.section}.{action.field}')} = {code_inline(value)}"
    if tag == "update_section":
        return f"• Replace section {code_inline(str(action.section))} (object)"
    if tag == "add_team_member":
        return f"• Add team member: <b>{escape_html(str(action.name))}</b> ({escape_html(str(action.role))})"
    if tag in ("update_team_member", "remove_team_member"):
        verb = "Update" if tag.startswith("update") else "Remove"
        return f"• {verb} team member: <b>{escape_html(str(action.name))}</b>"
    if tag in ("add_program", "update_program", "remove_program"):
        verb = tag.split("_")[0].capitalize()
        return f"• {verb} programme: <b>{escape_html(str(action.title))}</b>"
    if tag in ("add_initiative", "remove_initiative"):
        verb = tag.split("_")[0].capitalize()
        return f"• {verb} initiative: <b>{escape_html(str(action.title))}</b>"
    if tag in ("add_gallery_image", "remove_gallery_image"):
        verb = tag.split("_")[0].capitalize()
        return f"• {verb} gallery image: <b>{escape_html(str(action.caption or action.tag))}</b>"
    if tag == "add_event":
        event = action.event if isinstance(action.event, dict) else {}
        title = event.get("title") or "event"
        return f"• Add event: <b>{escape_html(str(title))}</b>"
    if tag == "update_event":
        return f"• Update event: {code_inline(str(action.slug))}"
    if tag == "update_stat":
        return f"• Update stat: <b>{escape_html(str(action.label))}</b> = {code_inline(str(action.value))}"
    if tag == "undo":
        return "• Undo last change"
    if tag == "get_status":
        return "• Status"
    return f"• Unknown: {escape_html(truncate(getattr(action, 'message', '')))}"


class TelegramClient:
    """Outbound side of the chat bot. Send failures are logged, not raised."""

    def __init__(self, token: str, http: httpx.AsyncClient | None = None) -> None:
        self._token = token
        self._http = http or httpx.AsyncClient(timeout=30.0)

    @property
    def _api(self) -> str:
        return f"{TELEGRAM_API_URL}/bot{self._token}"

    async def _post(self, method: str, payload: dict[str, Any]) -> bool:
        if not self._token:
            logger.error("Telegram %s skipped: TELEGRAM_BOT_TOKEN missing", method)
            return False
        response = await send(self._http, "POST", f"{self._api}/{method}", json=payload)
        if not response.is_success:
            logger.error("Telegram %s failed: %s %s", method, response.status_code, response.text[:200])
            return False
        return True

    async def send_text(
        self,
        chat_id: int | str,
        text: str,
        buttons: list[list[dict[str, str]]] | None = None,
    ) -> bool:
        payload: dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        if buttons:
            payload["reply_markup"] = {"inline_keyboard": buttons}
        return await self._post("sendMessage", payload)

    async def send_confirmation(self, chat_id: int | str, text: str, pending_id: str) -> bool:
        buttons = [
            [
                {"text": "✅ Yes, Commit", "callback_data": f"commit:{pending_id}"},
                {"text": "❌ No, Cancel", "callback_data": f"cancel:{pending_id}"},
            ]
        ]
        return await self.send_text(chat_id, text, buttons)

    async def answer_callback(self, callback_id: str, text: str = "") -> bool:
        return await self._post("answerCallbackQuery", {"callback_query_id": callback_id, "text": text})

    async def get_file_bytes(self, file_id: str) -> tuple[str, bytes]:
        if not self._token:
            raise MessagingError("TELEGRAM_BOT_TOKEN missing")
        response = await send(self._http, "GET", f"{self._api}/getFile", params={"file_id": file_id})
        if not response.is_success:
            raise MessagingError(f"Telegram getFile failed ({response.status_code})")
        file_path = (response.json().get("result") or {}).get("file_path")
        if not file_path:
            raise MessagingError("Telegram getFile missing file_path")
        download = await send(
            self._http, "GET", f"{TELEGRAM_API_URL}/file/bot{self._token}/{file_path}"
        )
        if not download.is_success:
            raise MessagingError(f"Telegram file download failed ({download.status_code})")
        return file_path, download.content

    async def aclose(self) -> None:
        await self._http.aclose()
