"""Tests for bulk clone, pull, status and tree views."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

import yaml

from muno.exceptions import BulkOperationError, ValidationError
from muno.models import NodeType, RepoState

from .fakes import FakeGit, build_navigator, make_git_dir, write_yaml


class BulkTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name).resolve()
        self.git = FakeGit()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def write_root(self, nodes: list[dict]) -> Path:
        return write_yaml(self.root / "muno.yaml", {"workspace": {"name": "org"}, "nodes": nodes})


class LargeWorkspaceCloneTests(BulkTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.lazy = [f"service-{index:03d}" for index in range(490)]
        self.eager = [f"team{index}-monorepo" for index in range(10)]
        nodes = [{"name": name, "url": f"https://example.com/{name}.git"} for name in self.lazy + self.eager]
        self.config = self.write_root(nodes)

    def test_only_eager_repositories_are_cloned(self) -> None:
        result = build_navigator(self.config, self.git).clone_lazy_repos("/", recursive=True)

        self.assertTrue(result.ok)
        self.assertEqual(result.succeeded, sorted(f"/{name}" for name in self.eager))
        self.assertEqual(len(result.skipped), 490)
        self.assertEqual(len(self.git.clones), 10)
        self.assertFalse((self.root / "repos" / "service-000").exists())

    def test_previously_requested_lazy_repositories_stay(self) -> None:
        make_git_dir(self.root / "repos" / "service-007")

        result = build_navigator(self.config, self.git).clone_lazy_repos("/", recursive=True)

        self.assertEqual(len(result.skipped), 489)
        self.assertNotIn("/service-007", result.skipped)

    def test_include_lazy_clones_everything(self) -> None:
        result = build_navigator(self.config, self.git).clone_lazy_repos("/", include_lazy=True)

        self.assertEqual(len(result.succeeded), 500)
        self.assertEqual(result.skipped, [])


class CloneBehaviourTests(BulkTestCase):
    def test_failures_are_collected_without_aborting_siblings(self) -> None:
        config = self.write_root(
            [
                {"name": "good-meta", "url": "https://example.com/good-meta.git"},
                {"name": "bad-meta", "url": "https://example.com/bad-meta.git"},
                {"name": "other-meta", "url": "https://example.com/other-meta.git"},
            ]
        )
        self.git.failing_urls.add("https://example.com/bad-meta.git")

        result = build_navigator(config, self.git).clone_lazy_repos("/")

        self.assertFalse(result.ok)
        self.assertEqual(result.succeeded, ["/good-meta", "/other-meta"])
        self.assertEqual([failure.path for failure in result.failed], ["/bad-meta"])
        self.assertIn("2 succeeded, 1 failed", result.summary())
        self.assertIn("repository not found", str(BulkOperationError(result)))

    def test_recursion_follows_configs_inside_cloned_repositories(self) -> None:
        platform = "https://example.com/platform-monorepo.git"
        config = self.write_root([{"name": "platform-monorepo", "url": platform}])
        self.git.repo_files[platform] = {
            "muno.yaml": yaml.safe_dump(
                {
                    "workspace": {"name": "platform"},
                    "nodes": [
                        {"name": "core-meta", "url": "https://example.com/core-meta.git"},
                        {"name": "widget", "url": "https://example.com/widget.git"},
                    ],
                }
            )
        }

        shallow = build_navigator(config, self.git).clone_lazy_repos("/")
        self.assertEqual(shallow.succeeded, ["/platform-monorepo"])
        self.assertEqual(self.git.cloned_urls, [platform])

        deep = build_navigator(config, self.git).clone_lazy_repos("/", recursive=True)
        self.assertEqual(deep.succeeded, ["/platform-monorepo/core-meta"])
        self.assertEqual(deep.skipped, ["/platform-monorepo/widget"])

    def test_explicit_start_node_is_cloned_even_when_lazy(self) -> None:
        config = self.write_root([{"name": "widget", "url": "https://example.com/widget.git"}])

        result = build_navigator(config, self.git).clone_lazy_repos("/widget")

        self.assertEqual(result.succeeded, ["/widget"])


class PullAndStatusTests(BulkTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.config = self.write_root(
            [
                {"name": "api", "url": "https://example.com/api.git"},
                {"name": "web", "url": "https://example.com/web.git"},
                {"name": "docs", "url": "https://example.com/docs.git"},
            ]
        )
        make_git_dir(self.root / "repos" / "api")
        make_git_dir(self.root / "repos" / "web")

    def test_pull_collects_timeouts(self) -> None:
        self.git.failing_pulls.add("web")

        result = build_navigator(self.config, self.git).pull("/")

        self.assertEqual(result.succeeded, ["/api"])
        self.assertEqual([failure.path for failure in result.failed], ["/web"])
        self.assertIn("timed out", result.failed[0].error)
        self.assertEqual(result.skipped, ["/docs"])
        self.assertEqual({call["timeout"] for call in self.git.pulls}, {120})

    def test_status_marks_dirty_repositories(self) -> None:
        self.git.dirty.add("web")

        statuses = {item.path: item for item in build_navigator(self.config, self.git).status("/")}

        self.assertEqual(statuses["/"].type, NodeType.ROOT)
        self.assertEqual(statuses["/api"].state, RepoState.CLONED)
        self.assertEqual(statuses["/api"].branch, "main")
        self.assertEqual(statuses["/web"].state, RepoState.MODIFIED)
        self.assertEqual(statuses["/docs"].state, RepoState.MISSING)
        self.assertTrue(statuses["/docs"].lazy)
        self.assertIsNone(statuses["/docs"].branch)

    def test_tree_view_never_clones(self) -> None:
        view = build_navigator(self.config, self.git).tree("/", depth=1)

        self.assertEqual([child.node.name for child in view.children], ["api", "web", "docs"])
        self.assertEqual(self.git.clones, [])


class ClonePoolTests(BulkTestCase):
    def test_parallel_clones_are_capped(self) -> None:
        git = FakeGit(clone_delay=0.05)
        names = [f"svc{index:02d}-meta" for index in range(12)]
        config = self.write_root([{"name": name, "url": f"https://example.com/{name}.git"} for name in names])

        result = build_navigator(config, git, {"behavior": {"max_parallel_clones": 3}}).clone_lazy_repos("/")

        self.assertEqual(len(result.succeeded), 12)
        self.assertLessEqual(git.peak_clones, 3)
        self.assertGreater(git.peak_clones, 1)

    def test_failed_config_host_skips_only_its_subtree(self) -> None:
        broken = "https://example.com/platform-monorepo.git"
        healthy = "https://example.com/team0-monorepo.git"
        config = self.write_root(
            [
                {"name": "platform-monorepo", "url": broken},
                {"name": "team0-monorepo", "url": healthy},
            ]
        )
        self.git.failing_urls.add(broken)
        self.git.repo_files[broken] = {
            "muno.yaml": yaml.safe_dump({"nodes": [{"name": "lost-meta", "url": "https://example.com/lost-meta.git"}]})
        }
        self.git.repo_files[healthy] = {
            "muno.yaml": yaml.safe_dump({"nodes": [{"name": "core-meta", "url": "https://example.com/core-meta.git"}]})
        }

        result = build_navigator(config, self.git).clone_lazy_repos("/", recursive=True)

        self.assertEqual([failure.path for failure in result.failed], ["/platform-monorepo"])
        self.assertEqual(result.succeeded, ["/team0-monorepo", "/team0-monorepo/core-meta"])
        self.assertNotIn("https://example.com/lost-meta.git", self.git.cloned_urls)
        self.assertFalse((self.root / "repos" / "platform-monorepo").exists())

    def test_interrupted_clone_leaves_nothing_behind(self) -> None:
        url = "https://example.com/widget.git"
        config = self.write_root([{"name": "widget", "url": url}])
        self.git.interrupted_urls.add(url)
        navigator = build_navigator(config, self.git)

        result = navigator.clone_lazy_repos("/widget")

        self.assertEqual([failure.path for failure in result.failed], ["/widget"])
        self.assertIn("timed out", result.failed[0].error)
        self.assertFalse((self.root / "repos" / "widget").exists())
        self.assertEqual(navigator.list_children("/")[0].state, RepoState.MISSING)

        self.git.interrupted_urls.clear()
        retry = navigator.clone_lazy_repos("/widget")
        self.assertEqual(retry.succeeded, ["/widget"])


class AbsentDelegatedConfigTests(BulkTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.config = self.write_root(
            [
                {"name": "api", "url": "https://example.com/api.git"},
                {"name": "team", "config": "repos/platform/team.yaml"},
            ]
        )
        make_git_dir(self.root / "repos" / "api")

    def test_tree_shows_the_config_node_as_a_leaf(self) -> None:
        view = build_navigator(self.config, self.git).tree("/")

        team = view.children[1]
        self.assertEqual([child.node.name for child in view.children], ["api", "team"])
        self.assertEqual(team.node.state, RepoState.MISSING)
        self.assertEqual(team.children, [])

    def test_recursive_pull_still_pulls_cloned_repositories(self) -> None:
        result = build_navigator(self.config, self.git).pull("/", recursive=True)

        self.assertTrue(result.ok)
        self.assertEqual(result.succeeded, ["/api"])
        self.assertEqual(result.skipped, ["/team"])

    def test_recursive_status_reports_the_config_node_missing(self) -> None:
        statuses = {item.path: item for item in build_navigator(self.config, self.git).status("/", recursive=True)}

        self.assertEqual(statuses["/api"].state, RepoState.CLONED)
        self.assertEqual(statuses["/team"].state, RepoState.MISSING)
        self.assertEqual(statuses["/team"].type, NodeType.CONFIG)


class ReadOnlyViewTests(BulkTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.config = self.write_root(
            [
                {"name": "core-meta", "url": "https://example.com/core-meta.git"},
                {"name": "platform", "url": "https://example.com/platform.git"},
            ]
        )

    def test_views_do_not_clone_missing_repositories(self) -> None:
        navigator = build_navigator(self.config, self.git)

        view = navigator.tree("/core-meta")
        statuses = navigator.status("/core-meta")
        node = navigator.resolve("/platform/svc", clone=False)

        self.assertEqual(view.node.state, RepoState.MISSING)
        self.assertEqual(statuses[0].state, RepoState.MISSING)
        self.assertEqual(node.path, "/platform")
        self.assertEqual(self.git.clones, [])

    def test_resolve_clones_by_default(self) -> None:
        build_navigator(self.config, self.git).resolve("/core-meta")

        self.assertEqual(self.git.cloned_urls, ["https://example.com/core-meta.git"])


class CommitAndPushTests(BulkTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.config = self.write_root(
            [
                {"name": "api", "url": "https://example.com/api.git"},
                {"name": "web", "url": "https://example.com/web.git"},
                {"name": "docs", "url": "https://example.com/docs.git"},
                {"name": "team", "config": "team.yaml"},
            ]
        )
        write_yaml(
            self.root / "team.yaml",
            {"workspace": {"name": "team"}, "nodes": [{"name": "tools", "url": "https://example.com/tools.git"}]},
        )
        make_git_dir(self.root / "repos" / "api")
        make_git_dir(self.root / "repos" / "web")
        make_git_dir(self.root / "repos" / "team" / "repos" / "tools")

    def test_commit_skips_clean_repositories(self) -> None:
        self.git.dirty.update({"api", "tools"})

        result = build_navigator(self.config, self.git).commit("/", "Bump versions")

        self.assertTrue(result.ok)
        self.assertEqual(result.succeeded, ["/api"])
        self.assertEqual(result.skipped, ["/docs", "/web"])
        self.assertEqual(self.git.commits, [{"path": self.root / "repos" / "api", "message": "Bump versions"}])

    def test_recursive_commit_reaches_delegated_levels(self) -> None:
        self.git.dirty.update({"api", "tools"})

        result = build_navigator(self.config, self.git).commit("/", "Bump versions", recursive=True)

        self.assertEqual(result.succeeded, ["/api", "/team/tools"])

    def test_commit_requires_a_message(self) -> None:
        with self.assertRaises(ValidationError):
            build_navigator(self.config, self.git).commit("/", "  ")

    def test_push_collects_failures(self) -> None:
        self.git.failing_pushes.add("web")

        result = build_navigator(self.config, self.git).push("/")

        self.assertEqual(result.succeeded, ["/api"])
        self.assertEqual([failure.path for failure in result.failed], ["/web"])
        self.assertIn("rejected", result.failed[0].error)
        self.assertEqual(result.skipped, ["/docs"])
        self.assertNotIn(self.root / "repos" / "team" / "repos" / "tools", self.git.pushes)


if __name__ == "__main__":
    unittest.main()
