import os
from dataclasses import dataclass, field


@dataclass(frozen=True)
class CmsConfig:
    db_path: str = ".site_cms/content.db"
    cms_api_secret: str = ""
    webhook_secret: str = ""
    admin_ids: tuple[str, ...] = field(default_factory=tuple)
    telegram_bot_token: str = ""
    github_token: str = ""
    github_owner: str = "holditdowncic"
    github_repo: str = "hold"
    github_branch: str = "main"
    openrouter_api_key: str = ""
    interpreter_model: str = "google/gemini-3-flash-preview"
    site_url: str = "https://www.holditdown.uk"
    revalidate_url: str = ""
    pending_ttl_seconds: int = 3600
    history_limit: int = 50
    mirror_max_attempts: int = 1
    host: str = "127.0.0.1"
    port: int = 8000

    @property
    def store_configured(self) -> bool:
        return bool(self.db_path)

    @property
    def effective_webhook_secret(self) -> str:
        return self.webhook_secret or self.cms_api_secret


def _parse_admin_ids(raw: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def get_cms_config() -> CmsConfig:
    return CmsConfig(
        db_path=os.getenv("SITE_CMS_DB_PATH", ".site_cms/content.db"),
        cms_api_secret=os.getenv("CMS_API_SECRET", ""),
        webhook_secret=os.getenv("TELEGRAM_WEBHOOK_SECRET", ""),
        admin_ids=_parse_admin_ids(os.getenv("TELEGRAM_ADMIN_IDS", "")),
        telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN", ""),
        github_token=os.getenv("GITHUB_TOKEN", ""),
        github_owner=os.getenv("GITHUB_OWNER", "holditdowncic"),
        github_repo=os.getenv("GITHUB_REPO", "hold"),
        github_branch=os.getenv("GITHUB_BRANCH", "main"),
        openrouter_api_key=os.getenv("OPENROUTER_API_KEY", ""),
        interpreter_model=os.getenv(
            "SITE_CMS_INTERPRETER_MODEL", "google/gemini-3-flash-preview"
        ),
        site_url=os.getenv("SITE_URL", "https://www.holditdown.uk"),
        revalidate_url=os.getenv("REVALIDATE_URL", ""),
        pending_ttl_seconds=int(os.getenv("SITE_CMS_PENDING_TTL_SECONDS", "3600")),
        history_limit=int(os.getenv("SITE_CMS_HISTORY_LIMIT", "50")),
        mirror_max_attempts=int(os.getenv("SITE_CMS_MIRROR_MAX_ATTEMPTS", "1")),
        host=os.getenv("SITE_CMS_HOST", "127.0.0.1"),
        port=int(os.getenv("SITE_CMS_PORT", "8000")),
    )
