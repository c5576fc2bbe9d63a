"""Tests for environment settings and the permission template loader."""

import pytest
import yaml

from pto_access.config.permission_templates import PermissionTemplatesLoader, get_permission_templates_loader
from pto_access.config.settings import AccessSettings, get_settings, reset_settings
from pto_access.constants.roles import Role


@pytest.fixture
def write_templates(tmp_path):
    def _write(config: dict):
        path = tmp_path / "permission_templates.yml"
        with open(path, "w") as f:
            yaml.dump(config, f)
        return str(path)
    return _write


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ("AUTH_JWKS_URL", "PERMISSION_CACHE_STALE_WINDOW_SECONDS", "API_VERSION"):
            monkeypatch.delenv(name, raising=False)

        settings = AccessSettings.from_env()

        assert settings.jwks_url is None
        assert settings.cache_stale_window_seconds == 2.0
        assert settings.api_version == "v1"

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("AUTH_JWKS_URL", "https://auth.example/.well-known/jwks.json")
        monkeypatch.setenv("PERMISSION_CACHE_MAX_ENTRIES", "10")
        monkeypatch.setenv("DATASTORE_TIMEOUT_SECONDS", "0.5")

        settings = AccessSettings.from_env()

        assert settings.jwks_url == "https://auth.example/.well-known/jwks.json"
        assert settings.cache_max_entries == 10
        assert settings.datastore_timeout_seconds == 0.5

    def test_invalid_number_falls_back_to_default(self, monkeypatch):
        monkeypatch.setenv("AUTH_CLOCK_SKEW_SECONDS", "soon")
        assert AccessSettings.from_env().clock_skew_seconds == 30

    def test_singleton_reset(self, monkeypatch):
        reset_settings()
        monkeypatch.setenv("API_VERSION", "v2")
        try:
            assert get_settings().api_version == "v2"
            assert get_settings() is get_settings()
        finally:
            reset_settings()


class TestPermissionTemplatesLoader:
    def test_bundled_templates_load(self):
        loader = get_permission_templates_loader()
        template = loader.get_template("can_delete_events")

        assert template.module_name == "events"
        assert template.default_min_role is Role.BOARD_MEMBER
        keys = [t.permission_key for t in loader.get_templates()]
        assert len(keys) == len(set(keys))

    def test_custom_file(self, write_templates):
        path = write_templates(
            {"modules": {"library": {"can_lend_books": {"name": "Lend books", "default_min_role": "volunteer"}}}}
        )

        loader = PermissionTemplatesLoader(path)

        assert [t.permission_key for t in loader.get_templates()] == ["can_lend_books"]
        assert loader.get_template("can_lend_books").permission_name == "Lend books"

    def test_invalid_role_rejected(self, write_templates):
        path = write_templates({"modules": {"library": {"can_lend_books": {"default_min_role": "librarian"}}}})
        with pytest.raises(ValueError):
            PermissionTemplatesLoader(path)

    def test_duplicate_key_rejected(self, write_templates):
        path = write_templates(
            {
                "modules": {
                    "a": {"can_x": {"default_min_role": "admin"}},
                    "b": {"can_x": {"default_min_role": "admin"}},
                }
            }
        )
        with pytest.raises(ValueError, match="Duplicate"):
            PermissionTemplatesLoader(path)
