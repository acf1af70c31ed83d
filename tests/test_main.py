"""CLI wiring: flags, REPL loop and exit handling with faked I/O."""

import logging

from click.testing import CliRunner

import bedrock_assistant.main as main_module
from bedrock_assistant.errors import ConfigError
from bedrock_assistant.messages import Text, Turn


class ScriptedSession:
    def __init__(self, inputs):
        self.inputs = list(inputs)

    def prompt(self, message):
        if not self.inputs:
            raise EOFError
        item = self.inputs.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class FakeAdapter:
    instances = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.calls = []
        FakeAdapter.instances.append(self)

    def converse(self, system, turns, tool_config=None):
        self.calls.append(("converse", turns[-1].text))
        return Turn.assistant(Text(f"echo: {turns[-1].text}"))

    def converse_stream(self, system, turns, tool_config=None):
        raise AssertionError("streaming not expected with --non-stream")

    def generate_images(self, request):
        raise AssertionError("no images expected")


def _patch(monkeypatch, tmp_path, inputs):
    FakeAdapter.instances = []
    monkeypatch.setattr(main_module, "LLMAdapter", FakeAdapter)
    monkeypatch.setattr(main_module, "build_prompt_session", lambda history: ScriptedSession(inputs))
    monkeypatch.setattr(main_module, "setup_logger",
                        lambda name, verbose=False: logging.getLogger(name))
    monkeypatch.setattr(main_module, "CONFIG_DIR", tmp_path / "home")


def test_non_stream_session(monkeypatch, tmp_path, clean_env):
    _patch(monkeypatch, tmp_path, ["   ", "hello there"])

    result = CliRunner().invoke(main_module.cli, [
        "--non-stream", "--region", "eu-west-3", "--chat-model", "my-model",
        "-d", str(tmp_path),
    ])

    assert result.exit_code == 0, result.output
    assert "Bedrock Assistant" in result.output
    assert "Enter something!" in result.output
    assert "echo: hello there" in result.output
    assert "Goodbye" in result.output
    adapter = FakeAdapter.instances[0]
    assert adapter.kwargs["region"] == "eu-west-3"
    assert adapter.kwargs["model"] == "my-model"
    assert adapter.calls == [("converse", "hello there")]


def test_ctrl_c_at_prompt_exits_cleanly(monkeypatch, tmp_path, clean_env):
    _patch(monkeypatch, tmp_path, [KeyboardInterrupt()])

    result = CliRunner().invoke(main_module.cli, ["--non-stream", "-d", str(tmp_path)])

    assert result.exit_code == 0
    assert "Goodbye" in result.output
    assert FakeAdapter.instances[0].calls == []


def test_config_error_exits_with_status_1(monkeypatch, tmp_path, clean_env):
    _patch(monkeypatch, tmp_path, [])

    def failing_load(project_dir):
        raise ConfigError("Configuration value 'region' must not be empty")

    monkeypatch.setattr(main_module.Config, "load", staticmethod(failing_load))

    result = CliRunner().invoke(main_module.cli, ["-d", str(tmp_path)])

    assert result.exit_code == 1
    assert "must not be empty" in result.output
