"""Tests for settings loading."""

from agentbridge.core.config import Settings, get_project_root


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("AGENTBRIDGE_LLM__PROVIDER", raising=False)
        settings = Settings()
        assert settings.llm.provider == "openai"
        assert settings.agent.max_iterations == 20
        assert settings.agent.include_usage is False
        assert settings.azure.api_version == "2024-08-01-preview"
        assert settings.tools_modules == []

    def test_load_yaml(self, tmp_path):
        config = tmp_path / "settings.yaml"
        config.write_text(
            "llm:\n"
            "  provider: anthropic\n"
            "  model: claude-3-5-haiku-latest\n"
            "  thinking_budget: 2048\n"
            "agent:\n"
            "  max_iterations: 8\n"
            "tools_modules:\n"
            "  - agentbridge.tools.builtin_tools\n"
        )

        settings = Settings.load(config)

        assert settings.llm.provider == "anthropic"
        assert settings.llm.model == "claude-3-5-haiku-latest"
        assert settings.llm.thinking_budget == 2048
        assert settings.agent.max_iterations == 8
        assert settings.tools_modules == ["agentbridge.tools.builtin_tools"]

    def test_missing_file_uses_defaults(self, tmp_path):
        settings = Settings.load(tmp_path / "nope.yaml")
        assert settings.agent.max_iterations == 20

    def test_empty_file(self, tmp_path):
        config = tmp_path / "settings.yaml"
        config.write_text("")
        assert Settings.load(config).llm.provider == "openai"

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("AGENTBRIDGE_LLM__PROVIDER", "xai")
        monkeypatch.setenv("AGENTBRIDGE_AGENT__INCLUDE_USAGE", "true")
        monkeypatch.setenv("AGENTBRIDGE_XAI_API_KEY", "xai-test")

        settings = Settings()

        assert settings.llm.provider == "xai"
        assert settings.agent.include_usage is True
        assert settings.xai_api_key == "xai-test"


class TestProjectRoot:
    def test_finds_pyproject(self, tmp_path, monkeypatch):
        (tmp_path / "pyproject.toml").write_text("[project]\nname = 'x'\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)
        assert get_project_root() == tmp_path
