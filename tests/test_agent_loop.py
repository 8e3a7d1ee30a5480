import unittest
from dataclasses import dataclass

from agent.agent import CONTINUE_PROMPT, OBSERVATION_FOOTER, Agent, format_observation, is_truncated
from agent.config import AgentConfig, TelemetryConfig
from agent.exceptions import ProviderConnectionError
from agent.messages import ChatMessage, ExecutionResult, StreamDelta, ToolCall
from agent.telemetry import Telemetry
from tools.base_tool import Tool, ToolContext, ToolKind, ToolParameter
from tools.executor import ToolExecutor
from tools.tool_registry import ToolRegistry


@dataclass
class NoteArgs:
    text: str


class NoteTool(Tool):
    name = "note"
    description = "Records a note."
    kind = ToolKind.RELAY
    parameters = (ToolParameter("text", "string", True, "Note text"),)
    args_type = NoteArgs
    seen: list = []

    async def execute(self, args, context):
        NoteTool.seen.append(args.text)
        return {"noted": args.text}


class FakeClient:
    """Streams scripted replies, each split into the given chunks."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.requests = []

    async def stream_chat(self, model, messages, temperature=0.7):
        self.requests.append(list(messages))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        chunks = reply if isinstance(reply, list) else [reply]
        for chunk in chunks:
            if isinstance(chunk, StreamDelta):
                yield chunk
            else:
                yield StreamDelta(content=chunk)


class AgentLoopTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        NoteTool.seen = []

    def _agent(self, replies, max_steps=25):
        config = AgentConfig(max_steps=max_steps)
        self.client = FakeClient(replies)
        executor = ToolExecutor(ToolRegistry([NoteTool]), config.tool_execution)
        return Agent(config, client=self.client, executor=executor)

    async def _run(self, agent, **kwargs):
        messages = [ChatMessage("user", "hello")]
        return [e async for e in agent.run(messages, ToolContext(), **kwargs)]


class TestAgentLoop(AgentLoopTestCase):
    async def test_plain_answer_finishes_in_one_step(self):
        agent = self._agent([["Hel", "lo ", "there"]])
        events = await self._run(agent)

        self.assertEqual([e.content for e in events if e.type == "content"], ["Hel", "lo ", "there"])
        self.assertEqual(events[-1].type, "done")
        self.assertEqual(events[-1].content, "Hello there")
        self.assertEqual(len(self.client.requests), 1)
        self.assertEqual(self.client.requests[0][0].role, "system")

    async def test_reasoning_is_streamed_separately(self):
        agent = self._agent([[StreamDelta(reasoning="thinking"), StreamDelta(content="ok")]])
        events = await self._run(agent)
        self.assertEqual([(e.type, e.content) for e in events[:2]], [("reasoning", "thinking"), ("content", "ok")])

    async def test_tool_calls_feed_observations_back(self):
        agent = self._agent([
            'Noting. <tool name="note"><arg name="text">first</arg></tool>'
            '<tool name="note"><arg name="text">second</arg></tool>',
            "All noted.",
        ])
        events = await self._run(agent)

        self.assertEqual(NoteTool.seen, ["first", "second"])
        starts = [e.args for e in events if e.type == "tool_start"]
        self.assertEqual(starts, [{"text": "first"}, {"text": "second"}])
        results = [e for e in events if e.type == "tool_result"]
        self.assertTrue(all(r.success for r in results))
        self.assertEqual(events[-1].content, "All noted.")

        second_request = self.client.requests[1]
        self.assertEqual(second_request[-2].role, "assistant")
        observation = second_request[-1].content
        self.assertIn("[TOOL OBSERVATION - note]", observation)
        self.assertEqual(observation.count("[END OBSERVATION]"), 2)
        self.assertTrue(observation.endswith(OBSERVATION_FOOTER))

    async def test_failed_tool_is_reported_as_observation(self):
        agent = self._agent(['<tool name="missing"></tool>', "Sorry."])
        events = await self._run(agent)
        result = next(e for e in events if e.type == "tool_result")
        self.assertFalse(result.success)
        self.assertIn("Error: Unknown tool: missing", self.client.requests[1][-1].content)

    async def test_truncated_call_is_continued_once(self):
        agent = self._agent([
            'Sure. <tool name="note"><arg name="text">hel',
            'lo</arg></tool>',
            "Done.",
        ])
        telemetry = Telemetry(TelemetryConfig(enabled=False), turn_id="t1")
        events = await self._run(agent, telemetry=telemetry)

        self.assertEqual(NoteTool.seen, ["hello"])
        self.assertEqual(len([e for e in events if e.type == "tool_start"]), 1)
        self.assertEqual(events[-1].content, "Done.")
        continuation_request = self.client.requests[1]
        self.assertEqual(continuation_request[-1].content, CONTINUE_PROMPT)
        self.assertEqual(len(self.client.requests), 3)
        summary = telemetry.summary()
        self.assertEqual(summary.outcome, "done")
        self.assertEqual(summary.steps, 3)
        self.assertEqual(summary.tool_steps, 1)
        self.assertEqual(summary.continuations, 1)

    async def test_step_ceiling_stops_the_turn(self):
        reply = '<tool name="note"><arg name="text">again</arg></tool>'
        agent = self._agent([reply] * 3, max_steps=2)
        events = await self._run(agent)

        self.assertEqual(events[-1].type, "error")
        self.assertEqual(events[-1].error, "Agent reached maximum steps limit")
        self.assertEqual(len(self.client.requests), 2)
        self.assertNotIn("done", [e.type for e in events])

    async def test_closed_output_stops_before_next_generation(self):
        agent = self._agent(['<tool name="note"><arg name="text">x</arg></tool>', "never"])
        closed = False
        events = []
        async for event in agent.run([ChatMessage("user", "hi")], ToolContext(), is_closed=lambda: closed):
            events.append(event)
            if event.type == "tool_result":
                closed = True

        self.assertEqual(len(self.client.requests), 1)
        self.assertNotIn("done", [e.type for e in events])

    async def test_provider_failure_becomes_error_event(self):
        agent = self._agent([ProviderConnectionError("unreachable")])
        events = await self._run(agent)
        self.assertEqual([(e.type, e.error) for e in events], [("error", "unreachable")])


class TestTruncationDetection(unittest.TestCase):
    def test_complete_text_is_not_truncated(self):
        self.assertFalse(is_truncated("plain text"))
        self.assertFalse(is_truncated('<tool name="a"><arg name="b">c</arg></tool>'))
        self.assertFalse(is_truncated("a < b"))

    def test_open_markers_are_truncated(self):
        self.assertTrue(is_truncated('<tool name="a">'))
        self.assertTrue(is_truncated('<tool name="a"><arg name="b">val'))

    def test_partial_marker_at_end_is_truncated(self):
        for tail in ("<", "<to", "<tool", '<tool name="a', "</", "</too", "<ar", '<arg name="x'):
            with self.subTest(tail=tail):
                self.assertTrue(is_truncated("text " + tail))


def test_format_observation():
    ok = format_observation(ToolCall("note", {}), ExecutionResult(True, {"a": 1}))
    assert ok == '[TOOL OBSERVATION - note]\n{\n  "a": 1\n}\n[END OBSERVATION]'
    failed = format_observation(ToolCall("note", {}), ExecutionResult(False, error="boom"))
    assert failed == "[TOOL OBSERVATION - note]\nError: boom\n[END OBSERVATION]"
