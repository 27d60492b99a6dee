"""Tests for layered configuration values."""

from __future__ import annotations

import copy
import unittest

from muno.defaults import load_defaults
from muno.exceptions import ValidationError
from muno.resolver import (
    ConfigResolver,
    deep_merge,
    get_by_path,
    is_node_specific,
    parse_config_overrides,
    set_by_path,
)
from muno.tree_config import NodeDefinition


class DeepMergeTests(unittest.TestCase):
    def test_merge_is_idempotent_and_preserves_keys(self) -> None:
        dst = {"a": {"b": 1, "c": 2}, "x": 1}
        src = {"a": {"b": 5}, "y": {"z": 1}}

        once = deep_merge(copy.deepcopy(dst), src)
        twice = deep_merge(deep_merge(copy.deepcopy(dst), src), src)

        self.assertEqual(once, {"a": {"b": 5, "c": 2}, "x": 1, "y": {"z": 1}})
        self.assertEqual(once, twice)

    def test_scalar_replaces_map(self) -> None:
        self.assertEqual(deep_merge({"a": {"b": 1}}, {"a": 3}), {"a": 3})


class PathAccessTests(unittest.TestCase):
    def test_set_then_get(self) -> None:
        data = set_by_path({}, "git.remote.name", "upstream")

        self.assertEqual(get_by_path(data, "git.remote.name"), "upstream")
        self.assertEqual(data, {"git": {"remote": {"name": "upstream"}}})

    def test_missing_or_scalar_intermediate_returns_default(self) -> None:
        data = {"a": 1}

        self.assertIsNone(get_by_path(data, "a.b"))
        self.assertEqual(get_by_path(data, "z.y", "fallback"), "fallback")


class ParseConfigOverridesTests(unittest.TestCase):
    def test_coerces_ints_and_bools(self) -> None:
        result = parse_config_overrides(["git.clone_timeout=600", "behavior.interactive=false"])

        self.assertEqual(result, {"git": {"clone_timeout": 600}, "behavior": {"interactive": False}})

    def test_numeric_hint_falls_back_to_string(self) -> None:
        self.assertEqual(parse_config_overrides(["git.shallow_depth=deep"]), {"git": {"shallow_depth": "deep"}})

    def test_values_without_hint_stay_strings(self) -> None:
        result = parse_config_overrides([" workspace.name = demo ", "git.default_branch=42"])

        self.assertEqual(result, {"workspace": {"name": "demo"}, "git": {"default_branch": "42"}})

    def test_malformed_entries_raise(self) -> None:
        with self.assertRaises(ValidationError):
            parse_config_overrides(["git.clone_timeout"])
        with self.assertRaises(ValidationError):
            parse_config_overrides(["=value"])

    def test_node_specific_keys(self) -> None:
        self.assertTrue(is_node_specific("git.default_branch"))
        self.assertTrue(is_node_specific("fetch"))
        self.assertFalse(is_node_specific("git.clone_timeout"))


class ConfigResolverTests(unittest.TestCase):
    def setUp(self) -> None:
        self.defaults = load_defaults().as_dict()

    def test_precedence_cli_node_workspace_defaults(self) -> None:
        resolver = ConfigResolver(
            defaults=self.defaults,
            workspace={"git": {"default_remote": "upstream", "clone_timeout": 10}},
            cli={"git": {"clone_timeout": 99}},
        )
        node = NodeDefinition(name="api", url="u", overrides={"git": {"default_remote": "fork", "clone_timeout": 50}})

        self.assertEqual(resolver.get_value("git.default_remote"), "upstream")
        self.assertEqual(resolver.get_value("git.default_remote", node), "fork")
        self.assertEqual(resolver.get_value("git.clone_timeout", node), 99)
        self.assertEqual(resolver.get_value("git.pull_timeout", node), 120)

    def test_resolve_does_not_mutate_layers(self) -> None:
        resolver = ConfigResolver(defaults=self.defaults)
        merged = resolver.resolve()
        merged["git"]["clone_timeout"] = 1

        self.assertEqual(resolver.defaults["git"]["clone_timeout"], 300)

    def test_default_branch_sources(self) -> None:
        resolver = ConfigResolver(defaults=self.defaults, workspace={"git": {"default_branch": "develop"}})
        pinned = NodeDefinition(name="a", url="u", default_branch="release")
        overridden = NodeDefinition(name="b", url="u", overrides={"git": {"default_branch": "trunk"}})

        self.assertEqual(resolver.get_default_branch(), "develop")
        self.assertEqual(resolver.get_default_branch(pinned), "release")
        self.assertEqual(resolver.get_default_branch(overridden), "trunk")

    def test_default_branch_falls_back_to_main(self) -> None:
        resolver = ConfigResolver(workspace={"git": {"default_branch": 5}})

        self.assertEqual(resolver.get_default_branch(), "main")

    def test_split_cli_overrides(self) -> None:
        resolver = ConfigResolver(cli={"git": {"default_branch": "dev", "clone_timeout": 5}, "fetch": "eager"})

        workspace_scope, node_scope = resolver.split_cli_overrides()

        self.assertEqual(workspace_scope, {"git": {"clone_timeout": 5}})
        self.assertEqual(node_scope, {"git": {"default_branch": "dev"}, "fetch": "eager"})
        self.assertEqual(resolver.cli_fetch(), "eager")


if __name__ == "__main__":
    unittest.main()
