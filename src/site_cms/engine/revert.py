"""Commit revert as a sequence of single-file commits.

Each changed file of the target commit is inverted in its own commit. A
failing step stops the sequence; the steps already committed stay in place
and are reported on the raised ``RevertIncompleteError``.
"""

import logging
from dataclasses import dataclass, field

from site_cms.engine.mirror import COMMIT_PREFIX
from site_cms.errors import RevertError, RevertIncompleteError
from site_cms.github.client import ChangedFile, CommitRef, CommitSummary, GitHubClient

logger = logging.getLogger(__name__)

REVERT_PREFIX = f"{COMMIT_PREFIX} revert"


@dataclass(frozen=True)
class RevertStep:
    path: str
    operation: str
    commit_sha: str


@dataclass
class RevertResult:
    sha: str
    steps: list[RevertStep] = field(default_factory=list)

    @property
    def reverted_files(self) -> list[str]:
        return list(dict.fromkeys(step.path for step in self.steps))

    @property
    def commits(self) -> list[str]:
        return [step.commit_sha for step in self.steps]


async def revert_commit(repo: GitHubClient, sha: str) -> RevertResult:
    detail = await repo.get_commit(sha)
    if not detail.parent_sha:
        raise RevertError(f"commit {sha[:7]} has no parent to revert to")
    if not detail.files:
        raise RevertError(f"commit {sha[:7]} has no changed files")

    result = RevertResult(sha=sha)
    message = f"{REVERT_PREFIX} {sha[:7]}"
    for changed in detail.files:
        try:
            steps = await _revert_file(repo, changed, detail.parent_sha, message)
        except Exception as exc:
            logger.error("Revert of %s stopped at %s: %s", sha[:7], changed.filename, exc)
            raise RevertIncompleteError(list(result.steps), changed.filename, exc) from exc
        result.steps.extend(steps)

    logger.info("Reverted %s in %d commits", sha[:7], len(result.steps))
    return result


async def _revert_file(
    repo: GitHubClient, changed: ChangedFile, parent_sha: str, message: str
) -> list[RevertStep]:
    if changed.status == "added":
        ref = await _delete(repo, changed.filename, message)
        return [RevertStep(changed.filename, "delete", ref.sha)]

    if changed.status == "removed":
        ref = await _restore(repo, changed.filename, parent_sha, message)
        return [RevertStep(changed.filename, "restore", ref.sha)]

    if changed.status == "renamed":
        steps = []
        ref = await _delete(repo, changed.filename, message)
        steps.append(RevertStep(changed.filename, "delete", ref.sha))
        if changed.previous_filename:
            ref = await _restore(repo, changed.previous_filename, parent_sha, message)
            steps.append(RevertStep(changed.previous_filename, "restore", ref.sha))
        return steps

    ref = await _restore(repo, changed.filename, parent_sha, message)
    return [RevertStep(changed.filename, "restore", ref.sha)]


async def _delete(repo: GitHubClient, path: str, message: str) -> CommitRef:
    current = await repo.get_file(path)
    if current is None:
        raise RevertError(f"{path} does not exist on {repo.branch}")
    return await repo.delete_file(path, current.sha, f"{message} ({path})")


async def _restore(repo: GitHubClient, path: str, parent_sha: str, message: str) -> CommitRef:
    previous = await repo.get_file(path, ref=parent_sha)
    if previous is None:
        raise RevertError(f"{path} is missing from parent {parent_sha[:7]}")
    current = await repo.get_file(path)
    return await repo.put_file(
        path,
        previous.content,
        f"{message} ({path})",
        sha=current.sha if current else None,
    )


def find_last_cms_commit(commits: list[CommitSummary]) -> CommitSummary | None:
    for commit in commits:
        if commit.message.startswith(COMMIT_PREFIX) and not commit.message.startswith(REVERT_PREFIX):
            return commit
    return None
