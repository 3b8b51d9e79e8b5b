import unittest

from fake_repo import FakeRepository

from site_cms.engine.revert import RevertStep, find_last_cms_commit, revert_commit
from site_cms.errors import RevertError, RevertIncompleteError
from site_cms.github.client import ChangedFile, CommitSummary


class RevertCommitTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.repo = FakeRepository()
        self.repo.commit_changes(
            {"data/stats.json": b'[{"value": 1}]\n', "data/events.json": b"[]\n"},
            "initial",
        )

    async def test_modified_and_removed_files_restored_in_separate_commits(self):
        sha = self.repo.commit_changes(
            {"data/stats.json": b'[{"value": 2}]\n', "data/events.json": None},
            "cms: update stat → Members",
        )
        before = len(self.repo.commits)

        result = await revert_commit(self.repo, sha)

        self.assertEqual(len(self.repo.commits) - before, 2)
        self.assertEqual(len(result.commits), 2)
        self.assertEqual(self.repo.files["data/stats.json"], b'[{"value": 1}]\n')
        self.assertEqual(self.repo.files["data/events.json"], b"[]\n")
        self.assertEqual(set(result.reverted_files), {"data/stats.json", "data/events.json"})
        self.assertTrue(self.repo.commits[-1]["message"].startswith(f"cms: revert {sha[:7]}"))

    async def test_added_file_is_deleted(self):
        sha = self.repo.commit_changes({"data/programs.json": b"[]\n"}, "cms: add program → Boxing")

        result = await revert_commit(self.repo, sha)

        self.assertNotIn("data/programs.json", self.repo.files)
        self.assertEqual(result.steps[0].operation, "delete")

    async def test_renamed_file_moves_back(self):
        self.repo.files["data/new.json"] = self.repo.files.pop("data/events.json")
        sha = self.repo.commit_changes({}, "cms: rename")
        self.repo.commits[-1]["files"] = [
            ChangedFile(filename="data/new.json", status="renamed", previous_filename="data/events.json")
        ]

        result = await revert_commit(self.repo, sha)

        self.assertNotIn("data/new.json", self.repo.files)
        self.assertEqual(self.repo.files["data/events.json"], b"[]\n")
        self.assertEqual([step.operation for step in result.steps], ["delete", "restore"])

    async def test_root_commit_cannot_be_reverted(self):
        root = self.repo.commits[0]["sha"]

        with self.assertRaises(RevertError):
            await revert_commit(self.repo, root)

    async def test_partial_failure_reports_completed_steps(self):
        sha = self.repo.commit_changes(
            {"data/stats.json": b"[]\n", "data/events.json": b'[{"title": "x"}]\n'},
            "cms: two files",
        )
        self.repo.fail_on_path = "data/events.json"

        with self.assertRaises(RevertIncompleteError) as ctx:
            await revert_commit(self.repo, sha)

        self.assertEqual(ctx.exception.failed_path, "data/events.json")
        self.assertEqual([step.path for step in ctx.exception.completed], ["data/stats.json"])
        self.assertTrue(all(isinstance(step, RevertStep) for step in ctx.exception.completed))
        self.assertEqual(self.repo.files["data/stats.json"], b'[{"value": 1}]\n')


class FindLastCmsCommitTests(unittest.TestCase):
    def test_skips_reverts_and_foreign_commits(self):
        commits = [
            CommitSummary(sha="a", message="cms: revert 1234567 (data/stats.json)"),
            CommitSummary(sha="b", message="Fix typo in footer"),
            CommitSummary(sha="c", message="cms: add event → spring-gala"),
            CommitSummary(sha="d", message="cms: update stat → Members"),
        ]

        self.assertEqual(find_last_cms_commit(commits).sha, "c")

    def test_none_when_no_cms_commit(self):
        self.assertIsNone(find_last_cms_commit([CommitSummary(sha="a", message="init")]))


if __name__ == "__main__":
    unittest.main()
