import json

import pytest

from taskpilot.errors import ConfigurationError
from taskpilot.validation.gate import ValidationGate, ValidationResult, load_validation_rules
from taskpilot.validation.markup import check_tag_balance
from taskpilot.validation.review import review_edit


def test_balanced_markup_with_void_and_self_closing_tags():
    html = """<!DOCTYPE html>
<html>
  <head><meta charset="utf-8"><link rel="x"></head>
  <body>
    <!-- <div> inside a comment -->
    <img src="a.png"><br/>
    <my-widget value="a > b" />
    <script>if (a < b) { document.write("<p>"); }</script>
  </body>
</html>
"""
    assert check_tag_balance(html) == []


def test_unclosed_and_stray_tags_are_reported():
    assert check_tag_balance("<div>\n<span>\n</span>\n") == ["Unclosed tag <div> opened at line 1."]
    assert check_tag_balance("</p>") == ["Line 1: closing tag </p> has no matching opening tag."]


def test_mismatch_stops_at_first_problem():
    diagnostics = check_tag_balance("<ul>\n<li>\n</ul>\n</li>\n")
    assert diagnostics == ["Line 3: found </ul> but <li> (line 2) is still open."]


def test_case_sensitivity():
    assert check_tag_balance("<Item></item>") == []
    assert check_tag_balance("<Item></item>", case_sensitive=True) != []


def test_review_edit_flags_bracket_mismatch():
    assert review_edit("a.ts", "function f() { return [1]; }") == "[Syntax check] Structure looks balanced."
    note = review_edit("a.ts", "function f() { return [1;")
    assert note.startswith("[Syntax check] CRITICAL: bracket mismatch in a.ts")
    assert "found 1 '{' and 0 '}'" in note


def test_feedback_text():
    assert ValidationResult(valid=True).feedback("a.py") == ""
    feedback = ValidationResult(valid=False, diagnostics=["boom"]).feedback("a.py")
    assert feedback.startswith("CRITICAL: validation failed for a.py:\n  boom\n")
    assert "fix these problems" in feedback


def test_load_rules_from_json(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text(json.dumps({"rules": {"go": "go vet {path}", ".ts": None}}), encoding="utf-8")
    assert load_validation_rules(path) == {".go": ["go", "vet", "{path}"], ".ts": None}


def test_load_rules_from_yaml(tmp_path):
    pytest.importorskip("yaml")
    path = tmp_path / "rules.yaml"
    path.write_text(".rs:\n  - rustfmt\n  - --check\n  - \"{path}\"\n", encoding="utf-8")
    assert load_validation_rules(path) == {".rs": ["rustfmt", "--check", "{path}"]}


def test_load_rules_rejects_bad_input(tmp_path):
    with pytest.raises(ConfigurationError):
        load_validation_rules(tmp_path / "missing.json")
    path = tmp_path / "rules.json"
    path.write_text('{"py": 3}', encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_validation_rules(path)


@pytest.mark.asyncio
async def test_gate_checks_markup_in_process(tmp_path):
    gate = ValidationGate(tmp_path)
    result = await gate.validate("page.html", "<div><p></div>")
    assert not result.valid
    assert "still open" in result.diagnostics[0]


@pytest.mark.asyncio
async def test_gate_skips_when_checker_is_missing(tmp_path):
    gate = ValidationGate(tmp_path, rules={".py": ["definitely-missing-binary-xyz", "{path}"]})
    result = await gate.validate("mod.py", "x = (")
    assert result.valid
    assert "not installed" in result.skipped


@pytest.mark.asyncio
async def test_gate_compiles_python(tmp_path):
    (tmp_path / "good.py").write_text("x = 1\n", encoding="utf-8")
    (tmp_path / "bad.py").write_text("x = (\n", encoding="utf-8")
    gate = ValidationGate(tmp_path)
    assert (await gate.validate("good.py", "x = 1\n")).valid
    bad = await gate.validate("bad.py", "x = (\n")
    assert not bad.valid
    assert bad.diagnostics


@pytest.mark.asyncio
async def test_gate_ignores_unknown_extensions_and_disabled_rules(tmp_path):
    gate = ValidationGate(tmp_path, rules={".py": None})
    assert (await gate.validate("notes.txt", "anything")).valid
    assert (await gate.validate("bad.py", "x = (")).valid
