import json
from pathlib import Path

from agent.config import TelemetryConfig
from agent.telemetry import Telemetry


def test_telemetry_records_events(tmp_path: Path):
    config = TelemetryConfig(enabled=True, log_dir=str(tmp_path))
    telemetry = Telemetry(config, turn_id="turn123")

    telemetry.record_generation(
        model="gpt-4o-mini",
        content_chars=120,
        reasoning_chars=40,
        latency_ms=321.0,
    )
    telemetry.record_tool_call(
        tool_name="create_object",
        args={"className": "Part"},
        duration_ms=4.2,
    )
    telemetry.record_iteration(iteration=1, decision="tools", duration_ms=400.0)
    telemetry.finalize("done", steps=2, tool_steps=1, continuations=0)

    summary = telemetry.summary()
    assert summary.total_iterations == 1
    assert summary.outcome == "done"
    assert [m.tool_name for m in summary.tool_calls] == ["create_object"]

    log_path = tmp_path / "turn123.jsonl"
    assert log_path.exists()
    records = [json.loads(line) for line in log_path.read_text().strip().splitlines()]
    assert [r["event"] for r in records] == ["generation", "tool_call", "loop_iteration", "turn_summary"]
    assert all(r["turn_id"] == "turn123" for r in records)
    assert records[-1]["generations"][0]["reasoning_chars"] == 40
    assert (records[-1]["steps"], records[-1]["tool_steps"], records[-1]["continuations"]) == (2, 1, 0)


def test_telemetry_disabled_no_log(tmp_path: Path):
    config = TelemetryConfig(enabled=False, log_dir=str(tmp_path))
    telemetry = Telemetry(config, turn_id="turn456")
    telemetry.record_generation(
        model="gpt-4o-mini",
        content_chars=1,
        reasoning_chars=0,
        latency_ms=1.0,
    )
    telemetry.finalize("done")
    assert not (tmp_path / "turn456.jsonl").exists()
    assert telemetry.summary().generations == []


class _RecordingSpan:
    def __init__(self, name, spans):
        self.name = name
        self.attributes = {}
        spans.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def set_attribute(self, key, value):
        self.attributes[key] = value


class _RecordingTracer:
    def __init__(self):
        self.spans = []

    def start_as_current_span(self, name):
        return _RecordingSpan(name, self.spans)


def test_spans_carry_flattened_attributes(tmp_path: Path):
    telemetry = Telemetry(TelemetryConfig(enabled=True, log_dir=str(tmp_path)), turn_id="turn789")
    tracer = _RecordingTracer()
    telemetry._tracer = tracer

    telemetry.record_tool_call(tool_name="create_file", args={"path": "a.lua"}, duration_ms=1.0)

    span = tracer.spans[0]
    assert span.name == "tool_call"
    assert span.attributes["turn_id"] == "turn789"
    assert span.attributes["args"] == '{"path": "a.lua"}'
    assert "error" not in span.attributes
