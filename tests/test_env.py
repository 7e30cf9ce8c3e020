import os

import pytest

from minyanmap.core import env


@pytest.fixture(autouse=True)
def _fresh_env_cache():
    env.get_project_root.cache_clear()
    env.load_dotenv_if_present.cache_clear()
    yield
    env.get_project_root.cache_clear()
    env.load_dotenv_if_present.cache_clear()


def test_pinned_project_root_anchors_relative_paths(tmp_path, monkeypatch):
    monkeypatch.setenv("MINYANMAP_PROJECT_ROOT", str(tmp_path))

    assert env.get_project_root() == tmp_path.resolve()
    assert env.resolve_project_path(".cache/minyanmap") == (tmp_path / ".cache" / "minyanmap").resolve()
    assert env.resolve_project_path(tmp_path / "abs") == tmp_path / "abs"


def test_explicit_env_file_is_loaded_without_overriding(tmp_path, monkeypatch):
    env_file = tmp_path / "local.env"
    env_file.write_text("MINYANMAP_TEST_TOKEN=from-file\nMINYANMAP_TEST_LEVEL=DEBUG\n", encoding="utf-8")
    monkeypatch.setenv("MINYANMAP_ENV_FILE", str(env_file))
    monkeypatch.setenv("MINYANMAP_TEST_LEVEL", "WARNING")
    monkeypatch.delenv("MINYANMAP_TEST_TOKEN", raising=False)

    assert env.load_dotenv_if_present() == env_file.resolve()
    assert env.get_project_root() == tmp_path.resolve()

    assert os.environ["MINYANMAP_TEST_TOKEN"] == "from-file"
    assert os.environ["MINYANMAP_TEST_LEVEL"] == "WARNING"
    # Set by python-dotenv, not monkeypatch, so remove it by hand.
    os.environ.pop("MINYANMAP_TEST_TOKEN", None)


def test_missing_env_file_is_ignored(tmp_path, monkeypatch):
    monkeypatch.setenv("MINYANMAP_ENV_FILE", str(tmp_path / "absent.env"))
    assert env.load_dotenv_if_present() is None
