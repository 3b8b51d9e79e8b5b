import base64

import httpx

from site_cms.config import CmsConfig
from site_cms.errors import TranscriptionError
from site_cms.llm.openrouter import call_openrouter
from site_cms.llm.prompts import TRANSCRIBE_PROMPT


async def transcribe_voice(
    http: httpx.AsyncClient,
    config: CmsConfig,
    audio: bytes,
    mime_type: str = "audio/ogg",
) -> str:
    data_url = f"data:{mime_type};base64,{base64.b64encode(audio).decode('ascii')}"
    messages = [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": TRANSCRIBE_PROMPT},
                {"type": "image_url", "image_url": {"url": data_url}},
            ],
        }
    ]
    response = await call_openrouter(
        http,
        messages,
        config.interpreter_model,
        config.openrouter_api_key,
        temperature=0,
        max_tokens=500,
    )
    if not response["success"]:
        raise TranscriptionError(response["error"])
    if not response["content"]:
        raise TranscriptionError("empty transcription")
    return response["content"]
