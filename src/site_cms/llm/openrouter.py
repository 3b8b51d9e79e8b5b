from typing import Any

import httpx

from site_cms.transport import send

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


async def call_openrouter(
    http: httpx.AsyncClient,
    messages: list[dict[str, Any]],
    model: str,
    api_key: str,
    temperature: float = 0.1,
    max_tokens: int = 1000,
    site_url: str = "https://holditdown.org",
    site_name: str = "Hold It Down CMS Bot",
) -> dict[str, Any]:
    if not api_key:
        return {
            "success": False,
            "error": "OpenRouter API key not configured",
            "content": "",
            "model": model,
        }

    response = await send(
        http,
        "POST",
        f"{OPENROUTER_BASE_URL}/chat/completions",
        headers={
            "Authorization": f"Bearer {api_key}",
            "HTTP-Referer": site_url,
            "X-Title": site_name,
        },
        json={
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        },
    )
    if not response.is_success:
        return {
            "success": False,
            "error": f"HTTP {response.status_code}: {response.text[:200]}",
            "content": "",
            "model": model,
        }

    data = response.json()
    content = (data.get("choices") or [{}])[0].get("message", {}).get("content") or ""
    return {
        "success": True,
        "content": content.strip(),
        "model": model,
    }
