"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from sonnun.config import ConfigError, SonnunConfig, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch):
    for var in (
        "SONNUN_DB",
        "SONNUN_EXCERPT_LIMIT",
        "SONNUN_LOG_LEVEL",
        "SONNUN_MAX_DOCUMENT_SIZE",
        "SONNUN_SIGNING_PRIVATE_KEY",
        "SONNUN_SIGNING_PUBLIC_KEY",
    ):
        monkeypatch.delenv(var, raising=False)


class TestSonnunConfig:
    def test_defaults(self):
        config = SonnunConfig()

        assert config.database_path == "sonnun.db"
        assert config.excerpt_limit == 50
        assert config.log_level == "WARNING"
        assert config.signing_key_b64 is None

    def test_log_level_normalized(self):
        assert SonnunConfig(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ConfigError, match="log level"):
            SonnunConfig(log_level="chatty")

    def test_negative_excerpt_limit(self):
        with pytest.raises(ConfigError):
            SonnunConfig(excerpt_limit=-1)

    def test_path_database(self, tmp_path: Path):
        assert SonnunConfig(database_path=tmp_path / "x.db").database_path == str(tmp_path / "x.db")

    def test_from_dict_coerces_ints(self):
        config = SonnunConfig.from_dict({"excerpt_limit": "5", "max_document_size": 1024})

        assert config.excerpt_limit == 5
        assert config.max_document_size == 1024

    def test_from_dict_rejects_bad_int(self):
        with pytest.raises(ConfigError, match="excerpt_limit"):
            SonnunConfig.from_dict({"excerpt_limit": "many"})

    def test_from_dict_unknown_keys(self):
        with pytest.raises(ConfigError, match="Unknown configuration keys"):
            SonnunConfig.from_dict({"database": "x.db"})

    def test_to_dict_omits_signing_key(self):
        config = SonnunConfig(signing_key_b64="c2VjcmV0", public_key_b64="cHVibGlj")
        data = config.to_dict()

        assert "signing_key_b64" not in data
        assert data["public_key_b64"] == "cHVibGlj"
        assert "c2VjcmV0" not in repr(config)


class TestLoading:
    def test_from_yaml(self, tmp_path: Path):
        path = tmp_path / "sonnun.yaml"
        path.write_text("database_path: essays.db\nexcerpt_limit: 10\n", encoding="utf-8")

        config = SonnunConfig.from_yaml(path)

        assert config.database_path == "essays.db"
        assert config.excerpt_limit == 10

    def test_empty_yaml(self, tmp_path: Path):
        path = tmp_path / "sonnun.yaml"
        path.write_text("", encoding="utf-8")

        assert SonnunConfig.from_yaml(path) == SonnunConfig()

    def test_yaml_must_be_mapping(self, tmp_path: Path):
        path = tmp_path / "sonnun.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="mapping"):
            SonnunConfig.from_yaml(path)

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("SONNUN_DB", ":memory:")
        monkeypatch.setenv("SONNUN_EXCERPT_LIMIT", "7")

        config = SonnunConfig.from_env()

        assert config.database_path == ":memory:"
        assert config.excerpt_limit == 7

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        path = tmp_path / "sonnun.yaml"
        path.write_text("database_path: file.db\nlog_level: INFO\n", encoding="utf-8")
        monkeypatch.setenv("SONNUN_DB", "env.db")

        config = load_config(path)

        assert config.database_path == "env.db"
        assert config.log_level == "INFO"

    def test_load_without_file(self):
        assert load_config() == SonnunConfig()
