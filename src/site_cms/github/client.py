import base64
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from site_cms.config import CmsConfig
from site_cms.errors import RemoteRepositoryError
from site_cms.transport import send

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"


@dataclass(frozen=True)
class RepoFile:
    path: str
    sha: str
    content: bytes

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")


@dataclass(frozen=True)
class CommitRef:
    sha: str
    url: str | None = None


@dataclass(frozen=True)
class CommitSummary:
    sha: str
    message: str
    url: str | None = None


@dataclass(frozen=True)
class ChangedFile:
    filename: str
    status: str
    previous_filename: str | None = None


@dataclass(frozen=True)
class CommitDetail:
    sha: str
    parent_sha: str | None
    files: list[ChangedFile] = field(default_factory=list)


class GitHubClient:
    """Contents and commits API of a single repository branch."""

    def __init__(
        self,
        config: CmsConfig,
        http: httpx.AsyncClient | None = None,
        base_url: str = GITHUB_API_URL,
    ) -> None:
        self._token = config.github_token
        self._branch = config.github_branch
        self._repo_url = f"{base_url}/repos/{config.github_owner}/{config.github_repo}"
        self._http = http or httpx.AsyncClient(timeout=30.0)

    @property
    def branch(self) -> str:
        return self._branch

    async def aclose(self) -> None:
        await self._http.aclose()

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github.v3+json",
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if not self._token:
            raise RemoteRepositoryError(0, "GITHUB_TOKEN not configured")
        return await send(
            self._http, method, f"{self._repo_url}{path}", headers=self._headers(), **kwargs
        )

    def _check(self, response: httpx.Response) -> Any:
        if not response.is_success:
            raise RemoteRepositoryError(response.status_code, response.text)
        return response.json()

    async def get_file(self, path: str, ref: str | None = None) -> RepoFile | None:
        params = {"ref": ref or self._branch}
        response = await self._request("GET", f"/contents/{path}", params=params)
        if response.status_code == 404:
            return None
        data = self._check(response)
        content = base64.b64decode(data.get("content", "").replace("\n", ""))
        return RepoFile(path=path, sha=data["sha"], content=content)

    async def put_file(
        self,
        path: str,
        content: bytes | str,
        message: str,
        sha: str | None = None,
    ) -> CommitRef:
        raw = content.encode("utf-8") if isinstance(content, str) else content
        body = {
            "message": message,
            "content": base64.b64encode(raw).decode("ascii"),
            "branch": self._branch,
        }
        if sha:
            body["sha"] = sha
        data = self._check(await self._request("PUT", f"/contents/{path}", json=body))
        return _commit_ref(data)

    async def delete_file(self, path: str, sha: str, message: str) -> CommitRef:
        body = {"message": message, "sha": sha, "branch": self._branch}
        data = self._check(await self._request("DELETE", f"/contents/{path}", json=body))
        return _commit_ref(data)

    async def commit_file(self, path: str, content: bytes | str, message: str) -> CommitRef:
        existing = await self.get_file(path)
        ref = await self.put_file(path, content, message, sha=existing.sha if existing else None)
        logger.info("Committed %s as %s", path, ref.sha[:7])
        return ref

    async def list_commits(self, limit: int = 20) -> list[CommitSummary]:
        params = {"sha": self._branch, "per_page": limit}
        data = self._check(await self._request("GET", "/commits", params=params))
        return [
            CommitSummary(
                sha=item["sha"],
                message=item.get("commit", {}).get("message", ""),
                url=item.get("html_url"),
            )
            for item in data
        ]

    async def get_commit(self, sha: str) -> CommitDetail:
        data = self._check(await self._request("GET", f"/commits/{sha}"))
        parents = data.get("parents") or []
        files = data.get("files")
        return CommitDetail(
            sha=data.get("sha", sha),
            parent_sha=parents[0]["sha"] if parents else None,
            files=[
                ChangedFile(
                    filename=item["filename"],
                    status=item.get("status", "modified"),
                    previous_filename=item.get("previous_filename"),
                )
                for item in files or []
            ],
        )


def _commit_ref(data: dict[str, Any]) -> CommitRef:
    commit = data.get("commit") or {}
    return CommitRef(sha=commit.get("sha", ""), url=commit.get("html_url"))
