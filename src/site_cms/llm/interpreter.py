import json
import logging
import re

import httpx

from site_cms.config import CmsConfig
from site_cms.contracts.actions import Action, Unknown, parse_action
from site_cms.errors import InterpreterParseError, UnknownActionError
from site_cms.llm.openrouter import call_openrouter
from site_cms.llm.prompts import SYSTEM_PROMPT, build_user_content

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```(?:json)?\n?")
_FENCE_CLOSE = re.compile(r"\n?```$")


def parse_action_json(raw: str) -> Action:
    text = raw.strip()
    if text.startswith("```"):
        text = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", text))
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as error:
        raise InterpreterParseError("interpreter output must be valid JSON") from error
    if not isinstance(payload, dict):
        raise InterpreterParseError("interpreter output must be a JSON object")
    try:
        return parse_action(payload)
    except UnknownActionError as error:
        raise InterpreterParseError(str(error)) from error


class CommandInterpreter:
    """Turns an operator message into exactly one structured action."""

    def __init__(self, config: CmsConfig, http: httpx.AsyncClient | None = None) -> None:
        self._api_key = config.openrouter_api_key
        self._model = config.interpreter_model
        self._http = http or httpx.AsyncClient(timeout=60.0)

    async def interpret(
        self,
        text: str,
        image_data_url: str | None = None,
        image_url: str | None = None,
    ) -> Action:
        if not self._api_key:
            return Unknown(message="OpenRouter API key not configured")

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_user_content(text, image_data_url, image_url)},
        ]
        response = await call_openrouter(self._http, messages, self._model, self._api_key)
        if not response["success"]:
            logger.error("Interpreter call failed: %s", response["error"])
            return Unknown(message="Failed to parse command. Please try rephrasing.")
        if not response["content"]:
            return Unknown(message="No response from AI")

        try:
            return parse_action_json(response["content"])
        except InterpreterParseError as exc:
            logger.warning("Interpreter returned unusable output: %s", exc)
            return Unknown(message="Failed to parse command. Please try rephrasing.")

    async def aclose(self) -> None:
        await self._http.aclose()
