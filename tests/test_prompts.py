"""Prompt template loading and structured log formatting."""
import json
import logging

import pytest

from contentflow.core.logging import JsonLineFormatter
from contentflow.prompts.loader import get_system_prompt, load_prompts, render_prompt


def test_search_prompts_exist_for_v1():
    assert "user" in load_prompts("search_refine", version="v1")
    assert "user" in load_prompts("search_answer", version="v1")
    assert "[No speech detected]" in get_system_prompt("transcribe", version="v1")


def test_render_fills_placeholders():
    text = render_prompt("search_answer", version="v1", query="fix tap", context="Title: T\n\nContent: c")
    assert "User Query: fix tap" in text
    assert "Content: c" in text
    assert "<<" not in text


def test_missing_role_and_version_raise():
    with pytest.raises(ValueError):
        get_system_prompt("search_refine", version="v1")
    with pytest.raises(FileNotFoundError):
        load_prompts("search_refine", version="v999")


def test_json_line_formatter_renders_extra_fields():
    record = logging.LogRecord("contentflow.test", logging.INFO, __file__, 1, "job_done", (), None)
    record.job_id = "j1"
    record.chunks = 3
    line = json.loads(JsonLineFormatter().format(record))
    assert line["event"] == "job_done"
    assert line["level"] == "INFO"
    assert line["logger"] == "contentflow.test"
    assert line["job_id"] == "j1"
    assert line["chunks"] == 3
    assert "msg" not in line and "args" not in line
