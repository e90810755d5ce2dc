"""Tests for YAML configuration loading."""

import pytest

from pls_editor import ConfigError, EditorConfig, load_config


class TestLoadConfig:
    def test_defaults(self):
        config = load_config()
        assert config == EditorConfig()
        assert config.list_retry_attempts == 3
        assert config.default_language == "en-US"

    def test_from_dict(self):
        config = load_config({"default_language": "de-DE", "probe_timeout": 2})
        assert config.default_language == "de-DE"
        assert config.probe_timeout == 2

    def test_from_string(self):
        config = load_config("list_retry_delay: 0.5\nprobe_lexicon_urls: false\n")
        assert config.list_retry_delay == 0.5
        assert config.probe_lexicon_urls is False

    def test_from_file(self, tmp_path):
        path = tmp_path / "editor.yaml"
        path.write_text("database: stores.db\nmax_settings_backups: 5\n")
        config = load_config(path)
        assert config.database == "stores.db"
        assert config.max_settings_backups == 5

    def test_empty_document(self):
        assert load_config("\n") == EditorConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_yaml(self):
        with pytest.raises(ConfigError, match="Invalid YAML") as exc:
            load_config("default_language: [en\nprobe_timeout: 1\n")
        assert exc.value.line is not None

    def test_root_not_mapping(self):
        with pytest.raises(ConfigError, match="must be a mapping"):
            load_config("- a\n- b\n")

    def test_unknown_keys(self):
        with pytest.raises(ConfigError, match="Unknown configuration keys: colour"):
            load_config({"colour": "blue"})

    @pytest.mark.parametrize("data", [
        {"list_retry_attempts": "3"},
        {"list_retry_attempts": True},
        {"probe_lexicon_urls": 1},
        {"default_language": 5},
    ])
    def test_wrong_types(self, data):
        with pytest.raises(ConfigError, match="must be"):
            load_config(data)

    def test_attempts_at_least_one(self):
        with pytest.raises(ConfigError, match="at least 1"):
            load_config({"list_retry_attempts": 0})


class TestEditorConfig:
    def test_lexicon_url(self):
        config = EditorConfig(lexicon_base_url="https://host/lexicons/")
        assert config.lexicon_url("main.xml") == "https://host/lexicons/main.xml"
