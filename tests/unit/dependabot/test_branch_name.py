"""
Unit tests for update branch naming.

Why: Branch names are the only link between repeated runs of the same
     update; they must be stable, legal git refs and bounded in length.

What: Tests get_branch_name_for_update and the ref sanitizers.

How: Calls the pure functions directly with representative inputs.
"""

import re

import pytest

from src.dependabot.branch_name import (
    MAX_BRANCH_NAME_LENGTH,
    get_branch_name_for_update,
    sanitize_dependency_name,
    sanitize_ref_name,
)
from src.dependabot.models import DependencyRef

LODASH = DependencyRef(name="lodash", version="4.17.21")


class TestSanitizeRefName:
    """Test git ref sanitization."""

    @pytest.mark.parametrize(
        "ref,expected",
        [
            ("feature/.hidden", "feature/dot-hidden"),
            ("a..b", "a.b"),
            ("a//b", "a/b"),
            ("name.", "name"),
            ("a b~c^d:e", "abcde"),
            ("/leading", "leading"),
            ("ok/(name){1}", "ok/(name){1}"),
        ],
    )
    def test_sanitize_ref_name(self, ref: str, expected: str) -> None:
        """Test illegal characters and sequences are removed."""
        assert sanitize_ref_name(ref) == expected

    def test_sanitize_dependency_name(self) -> None:
        """Test package name characters illegal in refs are replaced."""
        assert sanitize_dependency_name("@types/node") == "types/node"
        assert sanitize_dependency_name("org.example:artifact") == "org.example-artifact"
        assert sanitize_dependency_name("pkg[extra]") == "pkg-extra-"


class TestGetBranchNameForUpdate:
    """Test deterministic branch name generation."""

    def test_single_dependency(self) -> None:
        """Test a single dependency names the branch after itself."""
        name = get_branch_name_for_update("npm", "main", "/", None, [LODASH])

        assert name == "dependabot/npm/main/lodash-4.17.21"

    def test_is_pure(self) -> None:
        """Test identical inputs always yield the same name."""
        args = ("npm", "main", "/src", "frontend", [LODASH])

        assert get_branch_name_for_update(*args) == get_branch_name_for_update(*args)

    def test_directory_is_included(self) -> None:
        """Test non-root directories become part of the name."""
        name = get_branch_name_for_update("npm", "main", "/src/app/", None, [LODASH])

        assert name == "dependabot/npm/main/src/app/lodash-4.17.21"

    def test_target_branch_with_slashes(self) -> None:
        """Test target branches keep their hierarchy."""
        name = get_branch_name_for_update("npm", "release/1.x", None, None, [LODASH])

        assert name == "dependabot/npm/release/1.x/lodash-4.17.21"

    def test_scoped_package(self) -> None:
        """Test scoped npm package names are sanitized."""
        dependency = DependencyRef(name="@types/node", version="20.1.0")

        name = get_branch_name_for_update("npm", "main", "/", None, [dependency])

        assert name == "dependabot/npm/main/types/node-20.1.0"

    def test_removed_dependency(self) -> None:
        """Test a dependency without a new version is marked removed."""
        dependency = DependencyRef(name="left-pad", version=None)

        name = get_branch_name_for_update("npm", "main", "/", None, [dependency])

        assert name == "dependabot/npm/main/left-pad-removed"

    def test_group_uses_digest(self) -> None:
        """Test grouped updates use the group name and a dependency digest."""
        dependencies = [LODASH, DependencyRef(name="react", version="18.2.0")]

        name = get_branch_name_for_update("npm", "main", "/", "frontend", dependencies)

        assert re.fullmatch(r"dependabot/npm/main/frontend-[0-9a-f]{10}", name)

    def test_multiple_dependencies_digest_is_order_independent(self) -> None:
        """Test the digest does not depend on dependency order."""
        react = DependencyRef(name="react", version="18.2.0")

        first = get_branch_name_for_update("npm", "main", "/", None, [LODASH, react])
        second = get_branch_name_for_update("npm", "main", "/", None, [react, LODASH])

        assert first == second
        assert re.fullmatch(r"dependabot/npm/main/all-[0-9a-f]{10}", first)

    def test_different_versions_produce_different_names(self) -> None:
        """Test a new version of the same dependency gets a new branch."""
        newer = DependencyRef(name="lodash", version="4.17.22")

        assert get_branch_name_for_update(
            "npm", "main", "/", None, [LODASH]
        ) != get_branch_name_for_update("npm", "main", "/", None, [newer])

    def test_custom_separator(self) -> None:
        """Test the configured separator replaces slashes."""
        name = get_branch_name_for_update("npm", "main", "/", None, [LODASH], "-")

        assert name == "dependabot-npm-main-lodash-4.17.21"

    def test_none_separator_defaults_to_slash(self) -> None:
        """Test an unset separator behaves like the default."""
        name = get_branch_name_for_update("npm", "main", "/", None, [LODASH], None)

        assert name == "dependabot/npm/main/lodash-4.17.21"

    def test_long_names_are_truncated(self) -> None:
        """Test over-long names are shortened with a distinguishing digest."""
        first = DependencyRef(name="a" * 80, version="1.0.0")
        second = DependencyRef(name="a" * 80, version="2.0.0")

        name_a = get_branch_name_for_update(
            "npm", "main", "/", None, [first], max_length=40
        )
        name_b = get_branch_name_for_update(
            "npm", "main", "/", None, [second], max_length=40
        )

        assert len(name_a) <= 40
        assert name_a.startswith("dependabot/npm/main/")
        assert re.search(r"-[0-9a-f]{10}$", name_a)
        assert name_a != name_b

    def test_default_length_limit(self) -> None:
        """Test the default limit leaves room for the refs/heads/ prefix."""
        dependency = DependencyRef(name="x" * 400, version="1.0.0")

        name = get_branch_name_for_update("npm", "main", "/", None, [dependency])

        assert len(name) <= MAX_BRANCH_NAME_LENGTH
        assert len("refs/heads/" + name) <= 256

    def test_long_directory_is_shortened(self) -> None:
        """Test an over-long directory cannot push the name past the limit."""
        name = get_branch_name_for_update(
            "npm", "main", "/" + "x" * 300, None, [LODASH]
        )

        assert len(name) <= MAX_BRANCH_NAME_LENGTH
        assert name.startswith("dependabot/npm/main/xxx")
        assert re.search(r"/lodash-4\.17\.21-[0-9a-f]{10}$", name)
        assert "//" not in name
        assert "/-" not in name

    def test_long_directories_stay_distinct(self) -> None:
        """Test directories differing only past the cut get different names."""
        first = get_branch_name_for_update(
            "npm", "main", "/" + "x" * 300 + "/a", None, [LODASH]
        )
        second = get_branch_name_for_update(
            "npm", "main", "/" + "x" * 300 + "/b", None, [LODASH]
        )

        assert first != second

    @pytest.mark.parametrize("separator", [" ", "~", ":", "^"])
    def test_illegal_separator_falls_back_to_slash(self, separator: str) -> None:
        """Test separators git forbids in refs are not used."""
        name = get_branch_name_for_update(
            "npm", "main", "/", None, [LODASH], separator
        )

        assert name == "dependabot/npm/main/lodash-4.17.21"

    def test_long_name_with_custom_separator(self) -> None:
        """Test truncation keeps the custom separator intact."""
        dependency = DependencyRef(name="y" * 300, version="1.0.0")

        name = get_branch_name_for_update(
            "npm", "main", "/", None, [dependency], "_"
        )

        assert len(name) <= MAX_BRANCH_NAME_LENGTH
        assert name.startswith("dependabot_npm_main_yyy")
        assert "/" not in name

    def test_no_dependencies(self) -> None:
        """Test an update without dependencies or group falls back to all."""
        name = get_branch_name_for_update("npm", "main", "/", None, [])

        assert name == "dependabot/npm/main/all"

    def test_group_without_dependencies(self) -> None:
        """Test an empty group still gets a stable digest segment."""
        name = get_branch_name_for_update("npm", "main", "/", "frontend", [])

        assert name == "dependabot/npm/main/frontend-d41d8cd98f"
        assert name == get_branch_name_for_update("npm", "main", "/", "frontend", [])
