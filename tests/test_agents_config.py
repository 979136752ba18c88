"""Tests for agents_config module."""

from unittest.mock import patch

import pytest

from taskplan.lib.agents_config import (
    AgentsConfig,
    DEFAULT_STAGE_COMMANDS,
    check_binary_available,
    get_stage_command,
    load_agents_config,
)


class TestLoadAgentsConfig:
    """Tests for load_agents_config()."""

    def test_returns_defaults_when_no_work_dir(self):
        assert load_agents_config(None).stages == DEFAULT_STAGE_COMMANDS

    def test_returns_defaults_when_file_missing(self, tmp_path):
        assert load_agents_config(tmp_path).stages == DEFAULT_STAGE_COMMANDS

    def test_loads_custom_config(self, tmp_path):
        (tmp_path / "agents.yaml").write_text(
            "stages:\n"
            "  group: llm -m gpt-4o {prompt}\n"
        )
        config = load_agents_config(tmp_path)
        assert config.stages["group"] == "llm -m gpt-4o {prompt}"
        # Other stages keep their defaults
        assert config.stages["extract"] == DEFAULT_STAGE_COMMANDS["extract"]

    def test_unknown_stage_ignored(self, tmp_path, caplog):
        (tmp_path / "agents.yaml").write_text("stages:\n  review: codex\n")
        config = load_agents_config(tmp_path)
        assert "review" not in config.stages
        assert "Ignoring unknown stage 'review'" in caplog.text

    def test_handles_invalid_yaml(self, tmp_path):
        (tmp_path / "agents.yaml").write_text("stages: [unclosed\n")
        assert load_agents_config(tmp_path).stages == DEFAULT_STAGE_COMMANDS

    def test_handles_non_mapping(self, tmp_path):
        (tmp_path / "agents.yaml").write_text("- just\n- a list\n")
        assert load_agents_config(tmp_path).stages == DEFAULT_STAGE_COMMANDS


class TestGetStageCommand:
    """Tests for get_stage_command()."""

    def test_prompt_via_stdin_by_default(self):
        result = get_stage_command(AgentsConfig(), "extract", "the prompt")
        assert result.cmd[0] == "claude"
        assert result.prompt_via_stdin is True
        assert "the prompt" not in result.cmd
        assert result.get_stdin_input("the prompt") == "the prompt"
        assert result.output_format == "json"

    def test_prompt_via_arg_when_in_template(self):
        config = AgentsConfig(stages={"group": "llm -m gpt-4o {prompt}"})
        result = get_stage_command(config, "group", "group these")
        assert result.cmd == ["llm", "-m", "gpt-4o", "group these"]
        assert result.prompt_via_stdin is False
        assert result.get_stdin_input("group these") is None
        assert result.output_format is None

    def test_prompt_with_braces_is_not_reformatted(self):
        config = AgentsConfig(stages={"expand": "tool {prompt}"})
        result = get_stage_command(config, "expand", 'return {"subtasks": []}')
        assert result.cmd[1] == 'return {"subtasks": []}'

    def test_output_format_equals_form(self):
        config = AgentsConfig(stages={"extract": "claude -p --output-format=json"})
        assert get_stage_command(config, "extract", "x").output_format == "json"

    def test_raises_on_unknown_stage(self):
        with pytest.raises(ValueError, match="Unknown stage"):
            get_stage_command(AgentsConfig(), "review", "x")

    def test_logs_unsubstituted_variables(self, caplog):
        config = AgentsConfig(stages={"group": "tool --dir {worktree}"})
        get_stage_command(config, "group", "x")
        assert "unsubstituted" in caplog.text


class TestCheckBinaryAvailable:

    @patch("taskplan.lib.agents_config.shutil.which", return_value="/usr/bin/claude")
    def test_found(self, mock_which):
        assert check_binary_available(AgentsConfig(), "group") is True
        mock_which.assert_called_with("claude")

    @patch("taskplan.lib.agents_config.shutil.which", return_value=None)
    def test_missing(self, mock_which):
        assert check_binary_available(AgentsConfig(), "group") is False

    def test_unknown_stage(self):
        assert check_binary_available(AgentsConfig(), "review") is False
