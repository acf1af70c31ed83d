"""Conversation engine: request flow, tool round-trip and failure handling."""

import threading

from conftest import StubExecutor, build_engine, make_png_b64, text_stream
from bedrock_assistant.engine import EngineState
from bedrock_assistant.errors import ProtocolError, TransportError, UnknownToolError
from bedrock_assistant.llm import UNANSWERED_TOOL_USE, turns_to_messages
from bedrock_assistant.messages import Role, Text, ToolResult, ToolResultStatus, ToolUse, Turn
from bedrock_assistant.streaming import (
    ContentBlockDelta, ContentBlockStart, MessageStart, MessageStop, StopReason,
    TextDelta, ToolUseDelta, ToolUseStart,
)
from bedrock_assistant.tools import ToolKind, ToolRegistry
from bedrock_assistant.tools.generate_image import ImageGenerationResponse


class FakeImageModel:
    def __init__(self):
        self.requests = []

    def generate_images(self, request):
        self.requests.append(request)
        return ImageGenerationResponse([make_png_b64()])


def test_plain_text_request(stub_registry):
    registry, executors = stub_registry
    engine, client, sink = build_engine([Turn.assistant(Text("Hello!"))], registry)

    outcome = engine.submit("hi")

    assert outcome.ok
    assert outcome.text == "Hello!"
    assert [t.role for t in engine.transcript] == [Role.USER, Role.ASSISTANT]
    assert sink.named("assistant_text") == [("Hello!",)]
    assert all(not e.calls for e in executors.values())
    assert engine.state is EngineState.IDLE


def test_generate_image_round_trip(tmp_dir):
    image_model = FakeImageModel()
    registry = ToolRegistry.create(image_model)
    tool_use = ToolUse("tu_1", "GENERATE_IMAGE", {"prompt": "a cute cat", "path": "./out"})
    engine, client, sink = build_engine(
        [Turn.assistant(tool_use), Turn.assistant(Text("Your cat is ready."))], registry)

    outcome = engine.submit("Generate a cute cat image in ./out")

    transcript = engine.transcript
    assert len(transcript) == 4
    assert transcript[0] == Turn.user_text("Generate a cute cat image in ./out")
    assert transcript[1].tool_uses == [tool_use]
    assert transcript[2].results[0].status is ToolResultStatus.SUCCESS
    assert transcript[2].results[0].id == "tu_1"
    assert transcript[3] == Turn.assistant(Text("Your cat is ready."))
    assert (tmp_dir / "out" / "tu_1-0.png").exists()
    assert outcome.text == "Your cat is ready."
    # Follow-up request carried the tool results.
    assert len(client.requests) == 2
    assert client.requests[1] == transcript[:3]
    assert sink.named("tool_use") == [("GENERATE_IMAGE", tool_use.input)]


def test_tool_failure_still_gets_follow_up(tmp_dir):
    registry = ToolRegistry.create(FakeImageModel())
    missing = tmp_dir / "missing.txt"
    engine, client, sink = build_engine(
        [Turn.assistant(ToolUse("tu_1", "READ_FILE", {"path": str(missing)})),
         Turn.assistant(Text("That file does not exist."))], registry)

    outcome = engine.submit("read missing.txt")

    assert outcome.ok
    result = engine.transcript[2].results[0]
    assert result.id == "tu_1" and result.is_error
    assert "missing.txt" in result.text
    assert not missing.exists()
    assert len(client.requests) == 2
    assert client.requests[1][2].results == [result]
    assert engine.transcript[3].text == "That file does not exist."
    name, reported, _elapsed = sink.named("tool_result")[0]
    assert name == "READ_FILE" and reported.is_error


def test_unknown_tool_aborts_without_follow_up(stub_registry):
    registry, executors = stub_registry
    engine, client, sink = build_engine(
        [Turn.assistant(ToolUse("tu_1", "RUN_CODE", {"code": "1"}),
                        ToolUse("tu_2", "FORMAT_DISK", {}))], registry)

    outcome = engine.submit("do things")

    assert isinstance(outcome.error, UnknownToolError)
    assert len(engine.transcript) == 2
    assert len(client.requests) == 1
    # No tool ran, not even the known one before it.
    assert executors[ToolKind.RUN_CODE].calls == []
    assert sink.named("error") == [("The requested tool with name FORMAT_DISK does not exist",)]
    assert engine.state is EngineState.IDLE


def test_request_after_unknown_tool_answers_the_orphaned_tool_uses(stub_registry):
    registry, _ = stub_registry
    engine, client, _ = build_engine(
        [Turn.assistant(ToolUse("tu_1", "RUN_CODE", {"code": "1"}),
                        ToolUse("tu_2", "FORMAT_DISK", {})),
         Turn.assistant(Text("Sorry, I cannot do that."))], registry)

    engine.submit("do things")
    outcome = engine.submit("second")

    assert outcome.text == "Sorry, I cannot do that."
    messages = turns_to_messages("SYS", client.requests[1])
    assert [m["role"] for m in messages] == ["system", "user", "assistant", "tool", "tool", "user"]
    assert [m["tool_call_id"] for m in messages[3:5]] == ["tu_1", "tu_2"]
    assert all(m["content"] == UNANSWERED_TOOL_USE for m in messages[3:5])
    assert messages[5] == {"role": "user", "content": "second"}


def test_transport_failure_keeps_transcript_and_engine_usable(stub_registry):
    registry, _ = stub_registry
    engine, client, sink = build_engine(
        [TransportError("connection refused"), Turn.assistant(Text("back online"))], registry)

    failed = engine.submit("first")
    assert not failed.ok
    assert isinstance(failed.error, TransportError)
    assert engine.transcript == (Turn.user_text("first"),)
    assert sink.named("error") == [("connection refused",)]

    ok = engine.submit("second")
    assert ok.text == "back online"
    assert len(engine.transcript) == 3


def test_transport_failure_on_follow_up_keeps_results(stub_registry):
    registry, _ = stub_registry
    engine, _, _ = build_engine(
        [Turn.assistant(ToolUse("tu_1", "RUN_CODE", {"code": "1"})), TransportError("timeout")],
        registry)

    outcome = engine.submit("run it")

    assert not outcome.ok
    assert [t.role for t in engine.transcript] == [Role.USER, Role.ASSISTANT, Role.USER]
    assert engine.transcript[2].is_tool_result


def test_follow_up_tool_use_is_not_resolved(stub_registry):
    registry, executors = stub_registry
    engine, client, _ = build_engine(
        [Turn.assistant(ToolUse("tu_1", "RUN_CODE", {"code": "1"})),
         Turn.assistant(Text("One more:"), ToolUse("tu_2", "RUN_CODE", {"code": "2"}))],
        registry)

    outcome = engine.submit("run twice")

    assert len(engine.transcript) == 4
    assert engine.transcript[3] == Turn.assistant(Text("One more:"))
    assert len(executors[ToolKind.RUN_CODE].calls) == 1
    assert outcome.text == "One more:"


def test_results_keep_tool_use_order(stub_registry):
    registry, _ = stub_registry
    uses = [ToolUse("a", "RUN_CODE", {"code": "1"}),
            ToolUse("b", "READ_FILE", {"path": "x"}),
            ToolUse("c", "GENERATE_IMAGE", {"prompt": "p", "path": "."})]
    engine, _, sink = build_engine([Turn.assistant(*uses), Turn.assistant(Text("done"))], registry)

    outcome = engine.submit("all three")

    assert [r.id for r in engine.transcript[2].results] == ["a", "b", "c"]
    assert [r.id for r in outcome.tool_results] == ["a", "b", "c"]
    assert [call[0] for call in sink.named("tool_result")] == [
        "RUN_CODE", "READ_FILE", "GENERATE_IMAGE",
    ]


def test_parallel_dispatch_runs_concurrently_and_keeps_order():
    barrier = threading.Barrier(2, timeout=5)

    def waiting_executor(tool_use_id, input):
        barrier.wait()
        return ToolResult.success(tool_use_id, f"ran {input['code']}")

    executors = {kind: StubExecutor() for kind in ToolKind}
    executors[ToolKind.RUN_CODE] = waiting_executor
    registry = ToolRegistry(executors)
    engine, _, _ = build_engine(
        [Turn.assistant(ToolUse("x", "RUN_CODE", {"code": "1"}),
                        ToolUse("y", "RUN_CODE", {"code": "2"})),
         Turn.assistant(Text("ok"))],
        registry, tool_parallelism=2)

    engine.submit("parallel")

    results = engine.transcript[2].results
    assert [r.id for r in results] == ["x", "y"]
    assert [r.text for r in results] == ["ran 1", "ran 2"]


def test_streaming_tool_round_trip(stub_registry):
    registry, executors = stub_registry
    tool_events = [
        MessageStart(),
        ContentBlockDelta(0, TextDelta("Let me check.")),
        ContentBlockStart(1, ToolUseStart("tu_1", "READ_FILE")),
        ContentBlockDelta(1, ToolUseDelta('{"path": ')),
        ContentBlockDelta(1, ToolUseDelta('"notes.txt"}')),
        MessageStop(StopReason.TOOL_USE),
    ]
    engine, _, sink = build_engine(
        [tool_events, text_stream("It says hi.")], registry, stream=True)

    outcome = engine.submit("what is in notes.txt?")

    assert outcome.text == "It says hi."
    assert engine.transcript[1] == Turn.assistant(
        Text("Let me check."), ToolUse("tu_1", "READ_FILE", {"path": "notes.txt"}))
    assert executors[ToolKind.READ_FILE].calls == [("tu_1", {"path": "notes.txt"})]
    assert sink.named("assistant_delta") == [("Let me check.",), ("It says hi.",)]
    assert sink.named("tool_use_started") == [("READ_FILE",)]
    assert sink.named("tool_input_delta") == [('{"path": ',), ('"notes.txt"}',)]
    assert len(sink.named("assistant_done")) == 2


def test_submit_can_override_stream_mode(stub_registry):
    registry, _ = stub_registry
    engine, _, _ = build_engine([text_stream("streamed")], registry, stream=False)

    assert engine.submit("hi", stream=True).text == "streamed"


def test_stream_without_stop_is_protocol_error(stub_registry):
    registry, _ = stub_registry
    engine, _, sink = build_engine(
        [[MessageStart(), ContentBlockDelta(0, TextDelta("cut off"))]], registry, stream=True)

    outcome = engine.submit("hi")

    assert isinstance(outcome.error, ProtocolError)
    assert engine.transcript == (Turn.user_text("hi"),)
    assert len(sink.named("error")) == 1


def test_stream_with_two_messages_is_protocol_error(stub_registry):
    registry, _ = stub_registry
    engine, _, _ = build_engine(
        [text_stream("one") + text_stream("two")], registry, stream=True)

    assert isinstance(engine.submit("hi").error, ProtocolError)
