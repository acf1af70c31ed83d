"""Shared fixtures for bedrock-assistant tests."""

import base64
import io
import os

import pytest
from PIL import Image

import bedrock_assistant.config as config_module
from bedrock_assistant.config import (
    CHAT_MODEL_KEY, IMAGE_MODEL_KEY, PYTHON_KEY, REGION_KEY, VERBOSE_KEY,
)
from bedrock_assistant.engine import ConversationEngine
from bedrock_assistant.messages import ToolResult, Turn
from bedrock_assistant.streaming import (
    ContentBlockDelta, MessageStart, MessageStop, StopReason, TextDelta,
)
from bedrock_assistant.tools import ToolKind, ToolRegistry


@pytest.fixture
def tmp_dir(tmp_path):
    """Provide a temporary directory and cd into it."""
    orig = os.getcwd()
    os.chdir(tmp_path)
    yield tmp_path
    os.chdir(orig)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Unset assistant env vars and point the global config dir at tmp_path."""
    for key in (REGION_KEY, CHAT_MODEL_KEY, IMAGE_MODEL_KEY, PYTHON_KEY, VERBOSE_KEY):
        # setenv first so the variable is removed again on teardown even if a
        # .env file sets it during the test.
        monkeypatch.setenv(key, "placeholder")
        monkeypatch.delenv(key)
    home = tmp_path / "home"
    monkeypatch.setattr(config_module, "CONFIG_DIR", home)
    monkeypatch.setattr(config_module, "CONFIG_FILE", home / "config.yml")
    return monkeypatch


def make_png_b64(size=(4, 4), color=(255, 0, 0)):
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


@pytest.fixture
def png_b64():
    return make_png_b64()


class FakeClient:
    """Model client that replays scripted turns or event lists.

    Each script item is a Turn (non-streaming), a list of events (streaming)
    or an exception instance to raise.
    """

    def __init__(self, script=()):
        self.script = list(script)
        self.requests = []

    def _next(self, turns):
        self.requests.append(tuple(turns))
        if not self.script:
            raise AssertionError("model called more times than scripted")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def converse(self, system, turns, tool_config=None):
        return self._next(turns)

    def converse_stream(self, system, turns, tool_config=None):
        item = self._next(turns)
        if isinstance(item, Turn):
            raise AssertionError("streaming request got a non-streaming script item")
        yield from item


class RecordingSink:
    def __init__(self):
        self.calls = []

    def __getattr__(self, name):
        def record(*args):
            self.calls.append((name,) + args)
        return record

    def named(self, name):
        return [call[1:] for call in self.calls if call[0] == name]


class StubExecutor:
    """Executor stand-in that records calls and returns canned results."""

    def __init__(self, text="ok", error=False, raises=None):
        self.text = text
        self.error = error
        self.raises = raises
        self.calls = []

    def __call__(self, tool_use_id, input):
        self.calls.append((tool_use_id, input))
        if self.raises is not None:
            raise self.raises
        if self.error:
            return ToolResult.error(tool_use_id, self.text)
        return ToolResult.success(tool_use_id, self.text)


@pytest.fixture
def stub_registry():
    executors = {kind: StubExecutor(text=f"{kind.value} done") for kind in ToolKind}
    return ToolRegistry(executors), executors


def build_engine(script, registry, **kwargs):
    client = FakeClient(script)
    sink = RecordingSink()
    params = {"stream": False}
    params.update(kwargs)
    engine = ConversationEngine(client, registry, sink=sink, **params)
    return engine, client, sink


def text_stream(text, reason=StopReason.END_TURN):
    return [MessageStart(), ContentBlockDelta(0, TextDelta(text)), MessageStop(reason)]
