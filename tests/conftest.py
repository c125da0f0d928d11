"""
Shared pytest configuration.

Required settings are provided through the environment before any
application module is imported.
"""

import os

import pytest

TEST_ENV = {
    "GITHUB_USERNAME": "github-bot",
    "GITHUB_USER_EMAIL": "github-bot@example.com",
    "GITHUB_TOKEN": "ghp_test_token_value",
    "GITHUB_WEBHOOK_SECRET": "github-secret",
    "GITCODE_USERNAME": "gitcode-bot",
    "GITCODE_USER_EMAIL": "gitcode-bot@example.com",
    "GITCODE_TOKEN": "gc_test_token_value",
    "GITCODE_WEBHOOK_SECRET": "gitcode-secret",
    "GITCODE_BOT_USERNAME": "cherry-bot",
    "REPO_CONFIG_PATH": "does-not-exist.yaml",
}

for _key, _value in TEST_ENV.items():
    os.environ.setdefault(_key, _value)


@pytest.fixture
def settings(tmp_path):
    """Settings with an isolated workspace root."""
    from cherrybot.config import load_settings

    overrides = {key.lower(): value for key, value in TEST_ENV.items()}
    return load_settings(workspace_root=str(tmp_path / "workspaces"), **overrides)
