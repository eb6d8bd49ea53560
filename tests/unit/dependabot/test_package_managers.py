"""Unit tests for package ecosystem to package manager conversion."""

import pytest

from src.dependabot.package_managers import (
    convert_package_ecosystem_to_package_manager,
)


@pytest.mark.parametrize(
    "ecosystem,expected",
    [
        ("npm", "npm_and_yarn"),
        ("yarn", "npm_and_yarn"),
        ("pnpm", "npm_and_yarn"),
        ("github-actions", "github_actions"),
        ("gitsubmodule", "submodules"),
        ("gomod", "go_modules"),
        ("mix", "hex"),
        ("devcontainer", "devcontainers"),
        ("pipenv", "pip"),
        ("pip-compile", "pip"),
        ("poetry", "pip"),
        ("NPM", "npm_and_yarn"),
        ("nuget", "nuget"),
        ("bundler", "bundler"),
    ],
)
def test_convert_package_ecosystem(ecosystem: str, expected: str) -> None:
    """Test ecosystems and aliases map to updater package managers."""
    assert convert_package_ecosystem_to_package_manager(ecosystem) == expected
