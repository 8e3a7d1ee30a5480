from pathlib import Path

import pytest

from agent.exceptions import PromptTemplateError
from prompts.template_engine import PromptTemplateEngine


def _write(directory: Path, name: str, text: str) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    (directory / name).write_text(text, encoding="utf-8")


def test_includes_and_variables(tmp_path: Path):
    _write(tmp_path / "default", "main.md", "Hi {{name}}.\n{{include:rules.md}}")
    _write(tmp_path / "default", "rules.md", "Rule for {{name}}, {{missing}}done")
    engine = PromptTemplateEngine(str(tmp_path))
    assert engine.render("main.md", {"name": "Ada"}) == "Hi Ada.\nRule for Ada, done"


def test_profile_falls_back_to_default(tmp_path: Path):
    _write(tmp_path / "default", "main.md", "{{include:rules.md}}")
    _write(tmp_path / "default", "rules.md", "default rules")
    _write(tmp_path / "terse", "rules.md", "terse rules")
    engine = PromptTemplateEngine(str(tmp_path), profile="terse")
    assert engine.render("main.md", {}) == "terse rules"
    assert engine.list_templates() == ["main.md", "rules.md"]


def test_circular_include_raises(tmp_path: Path):
    _write(tmp_path / "default", "a.md", "{{include:b.md}}")
    _write(tmp_path / "default", "b.md", "{{include:a.md}}")
    with pytest.raises(PromptTemplateError, match="a.md -> b.md -> a.md"):
        PromptTemplateEngine(str(tmp_path)).render("a.md", {})


def test_missing_template_and_profile(tmp_path: Path):
    _write(tmp_path / "default", "main.md", "{{include:absent.md}}")
    with pytest.raises(PromptTemplateError):
        PromptTemplateEngine(str(tmp_path)).render("main.md", {})
    with pytest.raises(PromptTemplateError):
        PromptTemplateEngine(str(tmp_path), profile="nope")


def test_bundled_system_prompt_renders():
    engine = PromptTemplateEngine()
    text = engine.render(
        "agent.system.main.md",
        {"current_time": "now", "tool_descriptions": "TOOLS", "project_context": ""},
    )
    assert "TOOLS" in text
    assert '<tool name="TOOL_NAME">' in text
    assert "{{" not in text
