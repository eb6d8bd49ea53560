"""Mapping between dependabot.yml package ecosystems and updater package managers."""

PACKAGE_MANAGERS = {
    "devcontainer": "devcontainers",
    "github-actions": "github_actions",
    "gitsubmodule": "submodules",
    "gomod": "go_modules",
    "mix": "hex",
    "npm": "npm_and_yarn",
    # Aliases
    "pipenv": "pip",
    "pip-compile": "pip",
    "poetry": "pip",
    "pnpm": "npm_and_yarn",
    "yarn": "npm_and_yarn",
}


def convert_package_ecosystem_to_package_manager(package_ecosystem: str) -> str:
    """Convert a package ecosystem name into the updater's package manager name.

    Unknown ecosystems are returned unchanged.
    """
    if not package_ecosystem:
        return package_ecosystem
    return PACKAGE_MANAGERS.get(package_ecosystem.lower(), package_ecosystem)
