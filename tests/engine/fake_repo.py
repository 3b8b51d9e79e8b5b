import hashlib

from site_cms.errors import RemoteRepositoryError
from site_cms.github.client import ChangedFile, CommitDetail, CommitRef, CommitSummary, RepoFile


def _blob_sha(content: bytes) -> str:
    return hashlib.sha1(content).hexdigest()


class FakeRepository:
    """In-memory stand-in for GitHubClient with real commit history."""

    branch = "main"

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.commits: list[dict] = []
        self.fail_on_path: str | None = None
        self.writes = 0

    def commit_changes(self, changes: dict[str, bytes | None], message: str) -> str:
        parent = self.commits[-1]["sha"] if self.commits else None
        changed = []
        for path, content in changes.items():
            if content is None:
                self.files.pop(path, None)
                changed.append(ChangedFile(filename=path, status="removed"))
            else:
                status = "modified" if path in self.files else "added"
                self.files[path] = content
                changed.append(ChangedFile(filename=path, status=status))
        sha = hashlib.sha1(f"{len(self.commits)}:{message}".encode()).hexdigest()
        self.commits.append(
            {"sha": sha, "parent": parent, "message": message, "files": changed, "tree": dict(self.files)}
        )
        return sha

    def _tree(self, ref: str | None) -> dict[str, bytes]:
        if ref is None:
            return self.files
        for commit in self.commits:
            if commit["sha"] == ref:
                return commit["tree"]
        raise RemoteRepositoryError(404, f"no commit {ref}")

    async def get_file(self, path: str, ref: str | None = None) -> RepoFile | None:
        content = self._tree(ref).get(path)
        if content is None:
            return None
        return RepoFile(path=path, sha=_blob_sha(content), content=content)

    async def put_file(self, path, content, message, sha=None) -> CommitRef:
        if path == self.fail_on_path:
            raise RemoteRepositoryError(409, "conflict")
        raw = content.encode("utf-8") if isinstance(content, str) else content
        current = self.files.get(path)
        if current is not None and sha != _blob_sha(current):
            raise RemoteRepositoryError(409, "sha does not match")
        self.writes += 1
        return CommitRef(sha=self.commit_changes({path: raw}, message))

    async def delete_file(self, path, sha, message) -> CommitRef:
        if path == self.fail_on_path:
            raise RemoteRepositoryError(409, "conflict")
        current = self.files.get(path)
        if current is None or sha != _blob_sha(current):
            raise RemoteRepositoryError(409, "sha does not match")
        self.writes += 1
        return CommitRef(sha=self.commit_changes({path: None}, message))

    async def commit_file(self, path, content, message) -> CommitRef:
        existing = await self.get_file(path)
        return await self.put_file(path, content, message, sha=existing.sha if existing else None)

    async def list_commits(self, limit: int = 20) -> list[CommitSummary]:
        newest = list(reversed(self.commits))[:limit]
        return [CommitSummary(sha=c["sha"], message=c["message"]) for c in newest]

    async def get_commit(self, sha: str) -> CommitDetail:
        for commit in self.commits:
            if commit["sha"] == sha:
                return CommitDetail(sha=sha, parent_sha=commit["parent"], files=list(commit["files"]))
        raise RemoteRepositoryError(404, "not found")
