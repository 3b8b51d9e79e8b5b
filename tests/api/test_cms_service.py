import base64
import json
import shutil
import tempfile
import unittest
from pathlib import Path

import httpx

from site_cms.api.service import build_service
from site_cms.config import CmsConfig
from site_cms.store.sqlite_store import ContentStore

ADMIN_ID = 100
CHAT_ID = 555


class FakeRemotes:
    """Routes every outbound call of the service to canned responses."""

    def __init__(self) -> None:
        self.telegram: list[tuple[str, dict]] = []
        self.github: list[httpx.Request] = []
        self.llm_reply = '{"action": "get_status"}'
        self.commits = [{"sha": "c0ffee1234", "commit": {"message": "cms: add initiative → Food bank"}}]
        self.commit_detail = {"sha": "c0ffee1234", "parents": [], "files": []}
        self.llm_requests: list[dict] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        path = request.url.path
        if host == "api.telegram.org" and path.startswith("/file/"):
            return httpx.Response(200, content=b"\xff\xd8jpeg-bytes")
        if host == "api.telegram.org":
            method = path.rsplit("/", 1)[-1]
            payload = json.loads(request.content) if request.content else dict(request.url.params)
            self.telegram.append((method, payload))
            if method == "getFile":
                return httpx.Response(200, json={"ok": True, "result": {"file_path": "photos/file_1.jpg"}})
            return httpx.Response(200, json={"ok": True, "result": {}})
        if host == "api.github.com":
            self.github.append(request)
            if request.method == "GET" and "/contents/" in path:
                return httpx.Response(404, json={"message": "Not Found"})
            if request.method == "PUT":
                return httpx.Response(201, json={"commit": {"sha": "abc1234def", "html_url": "u"}})
            if path.endswith("/commits"):
                return httpx.Response(200, json=self.commits)
            return httpx.Response(200, json=self.commit_detail)
        if host == "openrouter.ai":
            self.llm_requests.append(json.loads(request.content))
            return httpx.Response(200, json={"choices": [{"message": {"content": self.llm_reply}}]})
        return httpx.Response(404)

    def messages(self) -> list[dict]:
        return [payload for method, payload in self.telegram if method == "sendMessage"]

    def callbacks(self) -> list[dict]:
        return [payload for method, payload in self.telegram if method == "answerCallbackQuery"]


class CmsServiceTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.db_path = str(Path(self.tmpdir) / "content.db")
        ContentStore(self.db_path).init_schema()
        self.remotes = FakeRemotes()
        self.config = CmsConfig(
            db_path=self.db_path,
            cms_api_secret="s3cret",
            admin_ids=(str(ADMIN_ID),),
            telegram_bot_token="tok",
            github_token="gh",
            openrouter_api_key="or",
        )
        self.service = build_service(self.config, transport=httpx.MockTransport(self.remotes.handler))

    async def asyncTearDown(self):
        await self.service.aclose()

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def _message(self, text, user_id=ADMIN_ID, chat_type="private"):
        return {"message": {"chat": {"id": CHAT_ID, "type": chat_type}, "from": {"id": user_id}, "text": text}}

    def _callback(self, data, user_id=ADMIN_ID):
        return {
            "callback_query": {
                "id": "cb1",
                "data": data,
                "from": {"id": user_id},
                "message": {"chat": {"id": CHAT_ID}},
            }
        }

    async def _preview_id(self):
        keyboard = self.remotes.messages()[-1]["reply_markup"]["inline_keyboard"]
        return keyboard[0][0]["callback_data"].split(":", 1)[1]

    async def test_cms_request_requires_bearer_secret(self):
        status, payload = await self.service.handle_cms_request(None, {"action": "get_status"})
        self.assertEqual(status, 401)

        status, _ = await self.service.handle_cms_request("Bearer wrong", {"action": "get_status"})
        self.assertEqual(status, 401)

    async def test_cms_request_status_codes(self):
        auth = "Bearer s3cret"

        status, payload = await self.service.handle_cms_request(auth, {"action": "get_status"})
        self.assertEqual(status, 200)
        self.assertEqual(payload["result"]["events"], 0)

        status, payload = await self.service.handle_cms_request(auth, {"action": "teleport"})
        self.assertEqual((status, payload), (400, {"success": False, "error": "Unknown action: teleport"}))

        status, _ = await self.service.handle_cms_request(auth, None)
        self.assertEqual(status, 400)

        status, payload = await self.service.handle_cms_request(auth, {"action": "remove_program", "title": "x"})
        self.assertEqual(status, 500)
        self.assertFalse(payload["success"])

    async def test_cms_request_without_store_is_unavailable(self):
        service = build_service(
            CmsConfig(db_path="", cms_api_secret="s3cret"),
            transport=httpx.MockTransport(self.remotes.handler),
        )

        status, payload = await service.handle_cms_request("Bearer s3cret", {"action": "get_status"})
        await service.aclose()

        self.assertEqual(status, 503)
        self.assertEqual(payload["error"], "Store not configured")

    async def test_cms_request_commits_snapshot(self):
        status, payload = await self.service.handle_cms_request(
            "Bearer s3cret", {"action": "add_initiative", "title": "Food bank", "detail": "Fridays"}
        )

        self.assertEqual(status, 200)
        self.assertEqual(payload["result"]["sort_order"], 1)
        put = [r for r in self.remotes.github if r.method == "PUT"][0]
        self.assertTrue(put.url.path.endswith("/contents/data/initiatives.json"))
        self.assertEqual(json.loads(put.content)["message"], "cms: add initiative → Food bank")

    async def test_webhook_rejects_wrong_secret(self):
        status, _ = await self.service.handle_webhook("nope", self._message("/help"))

        self.assertEqual(status, 401)
        self.assertEqual(self.remotes.telegram, [])

    async def test_non_admin_gets_their_user_id(self):
        status, payload = await self.service.handle_webhook("s3cret", self._message("hello", user_id=7))

        self.assertEqual((status, payload), (200, {"ok": True}))
        text = self.remotes.messages()[0]["text"]
        self.assertIn("Not authorized.", text)
        self.assertIn("<code>7</code>", text)

    async def test_non_admin_in_group_is_ignored(self):
        await self.service.handle_webhook("s3cret", self._message("hello", user_id=7, chat_type="group"))

        self.assertEqual(self.remotes.telegram, [])

    async def test_help(self):
        await self.service.handle_webhook("s3cret", self._message("/help"))

        self.assertIn("Power commands", self.remotes.messages()[0]["text"])

    async def test_preview_then_commit(self):
        self.remotes.llm_reply = '{"action": "add_initiative", "title": "Food bank", "detail": "Fridays"}'

        await self.service.handle_webhook("s3cret", self._message("add a food bank initiative"))

        preview = self.remotes.messages()[-1]
        self.assertIn("Preview", preview["text"])
        self.assertIn("Food bank", preview["text"])
        pending_id = await self._preview_id()
        self.assertEqual(await ContentStore(self.db_path).count("initiatives"), 0)

        status, _ = await self.service.handle_webhook("s3cret", self._callback(f"commit:{pending_id}"))

        self.assertEqual(status, 200)
        self.assertEqual(self.remotes.callbacks()[-1]["text"], "Committing...")
        texts = [m["text"] for m in self.remotes.messages()]
        self.assertTrue(any("Committed" in text for text in texts))
        deploy = self.remotes.messages()[-1]
        self.assertIn("abc1234", deploy["text"])
        self.assertEqual(
            deploy["reply_markup"]["inline_keyboard"][0][0]["callback_data"], "undo:abc1234def"
        )
        rows = await ContentStore(self.db_path).select("initiatives")
        self.assertEqual([row["title"] for row in rows], ["Food bank"])

    async def test_confirming_twice_reports_expiry(self):
        await self.service.handle_webhook("s3cret", self._message('/set hero.badge "CIC"'))
        pending_id = await self._preview_id()

        await self.service.handle_webhook("s3cret", self._callback(f"commit:{pending_id}"))
        await self.service.handle_webhook("s3cret", self._callback(f"commit:{pending_id}"))

        self.assertIn("Expired", self.remotes.callbacks()[-1]["text"])
        self.assertIn("Preview expired", self.remotes.messages()[-1]["text"])

    async def test_power_command_failure_is_reported(self):
        await self.service.handle_webhook("s3cret", self._message('/set hero.badge "CIC"'))
        pending_id = await self._preview_id()

        await self.service.handle_webhook("s3cret", self._callback(f"commit:{pending_id}"))

        self.assertIn("❌ Failed", self.remotes.messages()[-1]["text"])

    async def test_malformed_updates_are_reported_after_commit(self):
        store = ContentStore(self.db_path)
        await store.insert("team_members", {"name": "Ada", "role": "Chair"})
        await self.service.handle_webhook(
            "s3cret",
            self._message('/apply {"action": "update_team_member", "name": "Ada", "updates": "make her treasurer"}'),
        )
        pending_id = await self._preview_id()

        status, payload = await self.service.handle_webhook("s3cret", self._callback(f"commit:{pending_id}"))

        self.assertEqual((status, payload), (200, {"ok": True}))
        self.assertEqual(self.remotes.callbacks()[-1]["text"], "Committing...")
        self.assertIn("❌ Failed", self.remotes.messages()[-1]["text"])
        member = await store.select_single("team_members", eq={"name": "Ada"})
        self.assertEqual(member["role"], "Chair")

    async def test_photo_with_publish_caption_is_uploaded_first(self):
        self.remotes.llm_reply = '{"action": "update_section_field", "section": "hero", "field": "image", "value": "x"}'
        message = self._message("")
        message["message"].pop("text")
        message["message"]["caption"] = "Use this as the hero image"
        message["message"]["photo"] = [
            {"file_id": "small", "file_size": 10},
            {"file_id": "big", "file_size": 900},
        ]

        await self.service.handle_webhook("s3cret", message)

        self.assertIn(("getFile", {"file_id": "big"}), self.remotes.telegram)
        put = [r for r in self.remotes.github if r.method == "PUT"][0]
        self.assertRegex(
            put.url.path,
            r"/contents/public/media/telegram/\d{4}-\d{2}-\d{2}-use-this-as-the-hero-image\.jpg$",
        )
        self.assertEqual(base64.b64decode(json.loads(put.content)["content"]), b"\xff\xd8jpeg-bytes")
        uploaded = [m["text"] for m in self.remotes.messages() if "Uploaded" in m["text"]]
        self.assertEqual(len(uploaded), 1)
        self.assertIn("<code>abc1234</code>", uploaded[0])
        prompt = json.dumps(self.remotes.llm_requests[-1])
        self.assertIn("Uploaded media path you may reference: /media/telegram/", prompt)
        self.assertIn("Preview", self.remotes.messages()[-1]["text"])

    async def test_photo_with_plain_caption_is_not_uploaded(self):
        message = self._message("")
        message["message"].pop("text")
        message["message"]["caption"] = "what is in this picture"
        message["message"]["photo"] = [{"file_id": "only", "file_size": 10}]

        await self.service.handle_webhook("s3cret", message)

        self.assertEqual([r for r in self.remotes.github if r.method == "PUT"], [])
        self.assertEqual(len(self.remotes.llm_requests), 1)

    async def test_cancel_discards_preview(self):
        await self.service.handle_webhook("s3cret", self._message('/apply {"action": "add_initiative", "title": "A"}'))
        pending_id = await self._preview_id()

        await self.service.handle_webhook("s3cret", self._callback(f"cancel:{pending_id}"))

        self.assertIn("Cancelled", self.remotes.messages()[-1]["text"])
        self.assertIsNone(await self.service.pending.get(pending_id))

    async def test_callback_from_non_admin_is_ignored(self):
        await self.service.handle_webhook("s3cret", self._callback("commit:whatever", user_id=7))

        self.assertEqual(self.remotes.telegram, [])

    async def test_status_lists_counts_and_last_commit(self):
        await self.service.handle_webhook("s3cret", self._message("/status"))

        text = self.remotes.messages()[-1]["text"]
        self.assertIn("• events: 0", text)
        self.assertIn("<code>c0ffee1</code>", text)

    async def test_undo_callback_with_unrevertable_commit(self):
        await self.service.handle_webhook("s3cret", self._callback("undo:c0ffee1234"))

        self.assertIn("Revert failed", self.remotes.messages()[-1]["text"])

    async def test_unknown_interpretation_explains(self):
        self.remotes.llm_reply = '{"action": "unknown", "message": "Which section?"}'

        await self.service.handle_webhook("s3cret", self._message("make it nicer"))

        self.assertIn("Which section?", self.remotes.messages()[-1]["text"])

    async def test_maintenance_requires_secret_and_cleans_up(self):
        status, _ = await self.service.handle_maintenance(None)
        self.assertEqual(status, 401)

        status, payload = await self.service.handle_maintenance("Bearer s3cret")
        self.assertEqual((status, payload["result"]["expired_removed"]), (200, 0))


if __name__ == "__main__":
    unittest.main()
