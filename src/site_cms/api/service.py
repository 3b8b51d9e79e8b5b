import base64
import logging
import re
from datetime import datetime, timezone
from typing import Any

import httpx

from site_cms.api.commands import parse_power_command
from site_cms.config import CmsConfig
from site_cms.contracts.actions import Action, GetStatus, Undo, Unknown
from site_cms.contracts.results import STORE_UNAVAILABLE, UNKNOWN_ACTION, ActionResult
from site_cms.engine.dispatcher import STORE_NOT_CONFIGURED, ActionDispatcher
from site_cms.engine.history import HistoryLog
from site_cms.engine.mirror import SnapshotMirror
from site_cms.engine.pending import EXPIRED_MESSAGE, PendingActions
from site_cms.engine.revert import RevertResult, find_last_cms_commit, revert_commit
from site_cms.engine.slug import slugify
from site_cms.errors import AuthorizationError, CmsError, RevertIncompleteError
from site_cms.github.client import GitHubClient
from site_cms.llm.interpreter import CommandInterpreter
from site_cms.llm.transcribe import transcribe_voice
from site_cms.messaging.telegram import TelegramClient, code_inline, escape_html, summarize_action
from site_cms.render.revalidate import Revalidator
from site_cms.store.sqlite_store import ContentStore

logger = logging.getLogger(__name__)

HELP_TEXT = "\n".join(
    [
        "<b>Hold It Down Website Bot</b>",
        "",
        "📝 <b>Text</b>: “Update hero subtitle to …”",
        "🖼️ <b>Photo</b>: send image + caption describing the change",
        "🎙️ <b>Voice</b>: send a voice note describing the change",
        "",
        "<b>Commands</b>",
        f"• {code_inline('/status')} content counts and last commit",
        f"• {code_inline('/undo')} undo the last section edit",
        f"• {code_inline('/revert')} revert the last CMS commit",
        f"• {code_inline('/reset')} clear the pending preview",
        "",
        "<b>Power commands</b>",
        "• " + code_inline('/set hero.badge "..."'),
        "• " + code_inline('/replace hero {"badge":"..."}'),
        "• " + code_inline('/apply {"action":"..."}'),
        "",
        "After you send a request you get a <b>Preview</b> with ✅ Commit / ❌ Cancel.",
    ]
)

_MEDIA_MIME = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "gif": "image/gif",
    "ogg": "audio/ogg",
    "oga": "audio/ogg",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "m4a": "audio/mp4",
}


MEDIA_UPLOAD_DIR = "public/media/telegram"

# Captions that ask for the photo itself to be published on the site.
_WANTS_UPLOAD = re.compile(
    r"(use this|use this photo|use this image|set as hero|make.*hero|add to gallery|upload)",
    re.IGNORECASE,
)


def wants_upload(caption: str) -> bool:
    return bool(caption) and _WANTS_UPLOAD.search(caption) is not None


def media_repo_path(caption: str, file_path: str) -> str:
    ext = file_path.rsplit(".", 1)[-1].lower() if "." in file_path else "bin"
    day = datetime.now(timezone.utc).date().isoformat()
    return f"{MEDIA_UPLOAD_DIR}/{day}-{slugify(caption)}.{ext}"


def guess_mime(file_path: str) -> str:
    ext = file_path.rsplit(".", 1)[-1].lower() if "." in file_path else ""
    return _MEDIA_MIME.get(ext, "application/octet-stream")


def status_code_for(result: ActionResult) -> int:
    if result.success:
        return 200
    if result.error_kind == UNKNOWN_ACTION:
        return 400
    if result.error_kind == STORE_UNAVAILABLE:
        return 503
    return 500


class CmsService:
    """Request boundaries of the CMS: programmatic API and chat webhook."""

    def __init__(
        self,
        config: CmsConfig,
        dispatcher: ActionDispatcher,
        pending: PendingActions | None,
        repo: GitHubClient,
        messenger: TelegramClient,
        interpreter: CommandInterpreter,
        http: httpx.AsyncClient,
    ) -> None:
        self._config = config
        self.dispatcher = dispatcher
        self.pending = pending
        self.repo = repo
        self.messenger = messenger
        self.interpreter = interpreter
        self._http = http

    async def aclose(self) -> None:
        await self._http.aclose()

    def _require_api_secret(self, authorization: str | None) -> None:
        secret = self._config.cms_api_secret
        if not secret or authorization != f"Bearer {secret}":
            raise AuthorizationError("Unauthorized")

    def _require_webhook_secret(self, token: str | None) -> None:
        expected = self._config.effective_webhook_secret
        if expected and token != expected:
            raise AuthorizationError("Unauthorized")

    def _is_admin(self, user_id: Any) -> bool:
        return user_id is not None and str(user_id) in self._config.admin_ids

    async def handle_cms_request(
        self, authorization: str | None, body: dict | None
    ) -> tuple[int, dict]:
        try:
            self._require_api_secret(authorization)
        except AuthorizationError as exc:
            return 401, {"error": str(exc)}
        if body is None:
            return 400, {"success": False, "error": "invalid json"}

        result = await self.dispatcher.execute(body)
        return status_code_for(result), result.to_dict()

    async def handle_maintenance(self, authorization: str | None) -> tuple[int, dict]:
        try:
            self._require_api_secret(authorization)
        except AuthorizationError as exc:
            return 401, {"error": str(exc)}
        if self.pending is None:
            return 503, {"success": False, "error": STORE_NOT_CONFIGURED}
        removed = await self.maintenance()
        return 200, {"success": True, "result": {"expired_removed": removed}}

    async def maintenance(self) -> int:
        if self.pending is None:
            return 0
        return await self.pending.cleanup_expired()

    async def handle_webhook(self, secret_token: str | None, update: dict | None) -> tuple[int, dict]:
        try:
            self._require_webhook_secret(secret_token)
        except AuthorizationError as exc:
            return 401, {"error": str(exc)}

        # Past the secret check every update is acknowledged with 200.
        try:
            update = update or {}
            if update.get("callback_query"):
                await self._handle_callback(update["callback_query"])
            elif update.get("message"):
                await self._handle_message(update["message"])
        except Exception as exc:
            logger.exception("Telegram webhook error")
            return 200, {"ok": False, "error": str(exc)}
        return 200, {"ok": True}

    async def _handle_callback(self, callback: dict) -> None:
        data = str(callback.get("data") or "")
        chat_id = (callback.get("message") or {}).get("chat", {}).get("id")
        from_id = (callback.get("from") or {}).get("id")
        if chat_id is None or not self._is_admin(from_id):
            return

        callback_id = str(callback.get("id", ""))
        if data.startswith("commit:"):
            await self._confirm(chat_id, callback_id, data[len("commit:"):].strip())
        elif data.startswith("cancel:"):
            if self.pending is not None:
                await self.pending.cancel(data[len("cancel:"):].strip())
            await self.messenger.answer_callback(callback_id, "Cancelled")
            await self.messenger.send_text(chat_id, "❌ Cancelled. Send a new request when ready.")
        elif data.startswith("undo:"):
            await self.messenger.answer_callback(callback_id, "Reverting...")
            await self._revert(chat_id, data[len("undo:"):].strip())
        else:
            await self.messenger.answer_callback(callback_id, "Unknown action")

    async def _confirm(self, chat_id: Any, callback_id: str, pending_id: str) -> None:
        if self.pending is None:
            await self.messenger.answer_callback(callback_id, STORE_NOT_CONFIGURED)
            return
        outcome = await self.pending.confirm(pending_id)
        if outcome.expired:
            await self.messenger.answer_callback(callback_id, "Expired. Please resend your request.")
            await self.messenger.send_text(chat_id, f"⏱️ {EXPIRED_MESSAGE}")
            return

        await self.messenger.answer_callback(callback_id, "Committing...")
        await self._report_result(chat_id, outcome.result, outcome.description)

    async def _report_result(self, chat_id: Any, result: ActionResult, description: str = "") -> None:
        if not result.success:
            await self.messenger.send_text(chat_id, f"❌ Failed: {code_inline(result.error or 'unknown error')}")
            return

        payload = result.result
        if isinstance(payload, dict) and "message" in payload:
            await self.messenger.send_text(chat_id, escape_html(str(payload["message"])))
        else:
            lines = ["✅ <b>Committed</b>"]
            if description:
                lines.append(description)
            await self.messenger.send_text(chat_id, "\n".join(lines))

        if result.mirror_commit:
            sha = result.mirror_commit
            buttons = [[{"text": "↩️ Undo", "callback_data": f"undo:{sha}"}]]
            if self._config.site_url:
                buttons.append([{"text": "View Live Site", "url": self._config.site_url}])
            await self.messenger.send_text(
                chat_id,
                f"🚀 Deploy triggered by commit {code_inline(sha[:7])} (~1–2 min).",
                buttons,
            )

    async def _handle_message(self, message: dict) -> None:
        chat = message.get("chat") or {}
        chat_id = chat.get("id")
        from_id = (message.get("from") or {}).get("id")
        if chat_id is None:
            return

        if not self._is_admin(from_id):
            if chat.get("type") == "private":
                reason = "Not authorized." if self._config.admin_ids else "Admin IDs not configured on the server."
                await self.messenger.send_text(
                    chat_id,
                    f"{reason}\n\nYour Telegram user id: {code_inline(str(from_id))}\n"
                    "Add it to <code>TELEGRAM_ADMIN_IDS</code> (comma-separated).",
                )
            return

        text = str(message.get("text") or message.get("caption") or "").strip()
        photos = message.get("photo") or []
        voice = message.get("voice") or message.get("audio")
        if not text and not photos and not voice:
            return

        try:
            await self._handle_operator_message(chat_id, text, photos, voice)
        except CmsError as exc:
            logger.error("Chat request failed: %s", exc)
            await self.messenger.send_text(chat_id, f"❌ Failed: {code_inline(str(exc))}")

    async def _handle_operator_message(
        self, chat_id: Any, text: str, photos: list[dict], voice: dict | None
    ) -> None:
        if text in ("/help", "/start"):
            await self.messenger.send_text(chat_id, HELP_TEXT)
            return
        if text == "/status":
            await self._send_status(chat_id)
            return
        if text == "/undo":
            await self._report_result(chat_id, await self.dispatcher.execute(Undo()))
            return
        if text == "/revert":
            await self._revert_last(chat_id)
            return
        if text == "/reset":
            if self.pending is not None:
                await self.pending.clear_conversation(str(chat_id))
            await self.messenger.send_text(chat_id, "✅ Cleared pending previews.")
            return

        action = parse_power_command(text) if text else None
        if action is None:
            action = await self._interpret(chat_id, text, photos, voice)
            if action is None:
                return

        if isinstance(action, Unknown):
            await self.messenger.send_text(
                chat_id,
                "🤔 I’m not sure what to change.\n\n"
                f"{escape_html(action.message)}\n\nTry {code_inline('/help')}.",
            )
            return
        if isinstance(action, GetStatus):
            await self._send_status(chat_id)
            return
        if isinstance(action, Undo):
            await self._report_result(chat_id, await self.dispatcher.execute(action))
            return

        await self._propose(chat_id, action)

    async def _interpret(
        self, chat_id: Any, text: str, photos: list[dict], voice: dict | None
    ) -> Action | None:
        if voice:
            file_path, audio = await self.messenger.get_file_bytes(str(voice["file_id"]))
            transcript = await transcribe_voice(self._http, self._config, audio, guess_mime(file_path))
            await self.messenger.send_text(chat_id, f"🎙️ Heard: {escape_html(transcript)}")
            return await self.interpreter.interpret(f"{text}\n\n{transcript}".strip())

        if photos:
            if not text:
                await self.messenger.send_text(
                    chat_id, "Send a caption with your photo describing what to change."
                )
                return None
            largest = max(photos, key=lambda photo: photo.get("file_size") or 0)
            file_path, image = await self.messenger.get_file_bytes(str(largest["file_id"]))
            prompt = text
            if wants_upload(text):
                public_path = await self._upload_media(chat_id, text, file_path, image)
                prompt = f"{text}\n\nUploaded media path you may reference: {public_path}"
            data_url = f"data:{guess_mime(file_path)};base64,{base64.b64encode(image).decode('ascii')}"
            return await self.interpreter.interpret(prompt, image_data_url=data_url)

        return await self.interpreter.interpret(text)

    async def _upload_media(self, chat_id: Any, caption: str, file_path: str, data: bytes) -> str:
        """Commit an operator photo under ``public/`` and return its site path."""
        repo_path = media_repo_path(caption, file_path)
        ref = await self.repo.put_file(repo_path, data, f"telegram: upload media ({repo_path})")
        public_path = repo_path[len("public"):]
        logger.info("Uploaded media %s as %s", repo_path, ref.sha[:7])
        lines = [
            "<b>Uploaded</b> media to the repo.",
            f"Path: {code_inline(public_path)}",
            f"SHA: {code_inline(ref.sha[:7])}",
        ]
        if ref.url:
            lines.append(f"Commit: {escape_html(ref.url)}")
        await self.messenger.send_text(chat_id, "\n".join(lines))
        return public_path

    async def _propose(self, chat_id: Any, action: Action) -> None:
        if self.pending is None:
            await self.messenger.send_text(chat_id, f"⚠️ {STORE_NOT_CONFIGURED}.")
            return
        description = summarize_action(action)
        pending_id = await self.pending.propose(str(chat_id), action, description)
        preview = f"📝 <b>Preview</b>\n\n{description}\n\n<b>Ready to commit?</b>"
        await self.messenger.send_confirmation(chat_id, preview, pending_id)

    async def _send_status(self, chat_id: Any) -> None:
        lines = ["<b>Status</b>"]
        if not self.dispatcher.store_available:
            lines.append(f"Content store: {STORE_NOT_CONFIGURED.lower()}")
        else:
            expired = await self.maintenance()
            result = await self.dispatcher.execute(GetStatus())
            if result.success:
                lines.extend(f"• {table}: {count}" for table, count in result.result.items())
            else:
                lines.append(f"Content store error: {code_inline(result.error or '')}")
            if expired:
                lines.append(f"Expired previews removed: {expired}")

        try:
            last = find_last_cms_commit(await self.repo.list_commits(10))
        except CmsError as exc:
            lines.append(f"Repository: {code_inline(str(exc))}")
        else:
            if last is None:
                lines.append("Last CMS commit: (none found)")
            else:
                lines.append(f"Last CMS commit: {code_inline(last.sha[:7])}")
        await self.messenger.send_text(chat_id, "\n".join(lines))

    async def _revert_last(self, chat_id: Any) -> None:
        last = find_last_cms_commit(await self.repo.list_commits(20))
        if last is None:
            await self.messenger.send_text(chat_id, "No recent CMS commit found to undo.")
            return
        await self._revert(chat_id, last.sha)

    async def _revert(self, chat_id: Any, sha: str) -> RevertResult | None:
        try:
            result = await revert_commit(self.repo, sha)
        except RevertIncompleteError as exc:
            done = ", ".join(code_inline(step.path) for step in exc.completed) or "none"
            await self.messenger.send_text(
                chat_id,
                f"⚠️ Revert of {code_inline(sha[:7])} stopped at {code_inline(exc.failed_path)}.\n"
                f"Already reverted: {done}",
            )
            return None
        except CmsError as exc:
            logger.error("Revert of %s failed: %s", sha[:7], exc)
            await self.messenger.send_text(chat_id, f"❌ Revert failed: {code_inline(str(exc))}")
            return None
        files = ", ".join(code_inline(path) for path in result.reverted_files)
        await self.messenger.send_text(chat_id, f"Reverted {code_inline(sha[:7])}.\nFiles: {files}")
        return result


def build_service(config: CmsConfig, transport: httpx.AsyncBaseTransport | None = None) -> CmsService:
    http = httpx.AsyncClient(transport=transport, timeout=30.0)
    repo = GitHubClient(config, http=http)
    store = ContentStore(config.db_path) if config.store_configured else None
    dispatcher = ActionDispatcher(
        store,
        history=HistoryLog(store, limit=config.history_limit) if store is not None else None,
        mirror=SnapshotMirror(store, repo, config.mirror_max_attempts) if store is not None else None,
        revalidator=Revalidator(config.revalidate_url, config.cms_api_secret, http=http),
    )
    pending = (
        PendingActions(store, dispatcher, config.pending_ttl_seconds) if store is not None else None
    )
    return CmsService(
        config,
        dispatcher=dispatcher,
        pending=pending,
        repo=repo,
        messenger=TelegramClient(config.telegram_bot_token, http=http),
        interpreter=CommandInterpreter(config, http=http),
        http=http,
    )
