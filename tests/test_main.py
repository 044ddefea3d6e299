"""
Tests for the command line entry point
"""

import json

from research_qa.main import main


def _cli_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LLM_PROVIDER", "disabled")
    monkeypatch.delenv("GUARDRAILS_PATH", raising=False)


def test_empty_question_exits_with_error(monkeypatch, tmp_path, capsys):
    _cli_env(monkeypatch, tmp_path)
    assert main(["--database-url", "sqlite://", "answer", "   "]) == 1
    captured = capsys.readouterr()
    assert "Invalid question" in captured.err
    assert captured.out == ""


def test_unknown_question_exits_with_error(monkeypatch, tmp_path, capsys):
    _cli_env(monkeypatch, tmp_path)
    assert main(["--database-url", "sqlite://", "refresh", "missing"]) == 1
    assert "Question not found: missing" in capsys.readouterr().err


def test_answer_with_empty_library_prints_question(monkeypatch, tmp_path, capsys):
    _cli_env(monkeypatch, tmp_path)
    assert main(["--database-url", "sqlite://", "answer", "Is mitochondrial function impaired?"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["status"] == "unanswered"
    assert payload["findings"] == []
