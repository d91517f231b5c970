"""Tests for configuration loading."""

import pytest
from pydantic import ValidationError

from scene_forge.config import Config, ProviderConfig
from scene_forge.models.schemas import BatchKind


class TestDefaults:
    def test_defaults(self):
        config = Config()
        assert config.provider.provider == "google"
        assert config.provider.image_model == "gemini-2.5-flash-image"
        assert config.provider.text_model == "gemini-2.5-flash"
        assert config.provider.request_timeout is None
        assert config.retry.max_attempts == 10
        assert config.retry.base_delay == 5.0

    @pytest.mark.parametrize(
        "kind, seconds",
        [
            (BatchKind.VARIANTS, 6.0),
            (BatchKind.RANDOM_SET, 6.0),
            (BatchKind.EXTRACTION, 6.0),
            (BatchKind.CHARACTER, 1.5),
            (BatchKind.CONTINUATION, 2.0),
        ],
    )
    def test_pacing_per_kind(self, kind, seconds):
        assert Config().pacing.for_kind(kind) == seconds

    def test_load_without_file_uses_defaults(self):
        assert Config.load() == Config()


class TestValidation:
    def test_invalid_provider(self):
        with pytest.raises(ValidationError, match="Provider must be one of"):
            ProviderConfig(provider="anthropic")

    def test_provider_is_case_insensitive(self):
        assert ProviderConfig(provider="OpenRouter").provider == "openrouter"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            Config(logging={"level": "LOUD"})

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            ProviderConfig(request_timeout=0)


class TestYaml:
    def test_from_yaml_with_env_substitution(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MY_KEY", "secret")
        path = tmp_path / "config.yaml"
        path.write_text(
            "provider:\n"
            "  api_key: ${MY_KEY}\n"
            "  request_timeout: 90\n"
            "retry:\n"
            "  max_attempts: 3\n"
            "pacing:\n"
            "  character: 0\n"
        )

        config = Config.from_yaml(path)

        assert config.provider.api_key == "secret"
        assert config.provider.request_timeout == 90
        assert config.retry.max_attempts == 3
        assert config.pacing.character == 0

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert Config.from_yaml(path) == Config()

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Config.load(tmp_path / "nope.yaml")

    def test_found_in_working_directory(self, tmp_path):
        (tmp_path / "config.yaml").write_text("output_dir: ./renders\n")
        assert Config.find_config() is not None
        assert Config.load().output_dir == "./renders"

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("SCENE_FORGE_RETRY__MAX_ATTEMPTS", "4")
        assert Config().retry.max_attempts == 4


class TestApiKeys:
    def test_configured_key_wins(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "env")
        assert ProviderConfig(api_key=" conf ").resolve_api_key() == "conf"

    def test_google_env_fallbacks(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_API_KEY", "google")
        assert ProviderConfig().resolve_api_key() == "google"
        monkeypatch.setenv("GEMINI_API_KEY", "gemini")
        assert ProviderConfig().resolve_api_key() == "gemini"

    def test_configured_key_belongs_to_configured_provider(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "gemini")
        provider = ProviderConfig(provider="openrouter", api_key="or-key")
        assert provider.resolve_api_key() == "or-key"
        assert provider.resolve_api_key("google") == "gemini"

    def test_missing_key(self):
        assert ProviderConfig().resolve_api_key("openrouter") is None
