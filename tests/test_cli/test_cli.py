"""
CLI テスト — Typer CliRunner によるサブコマンドの結合テスト

各テストは tmp_path を記録ディレクトリとして使う。
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from ruamel.yaml import YAML
from typer.testing import CliRunner

from stepforge.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _clean_env():
    """STEPFORGE_* 環境変数の影響を受けないようにする。"""
    env = {k: v for k, v in os.environ.items() if not k.startswith("STEPFORGE_")}
    with patch.dict(os.environ, env, clear=True):
        yield


@pytest.fixture
def invoke(tmp_path: Path):
    """--cache-dir に tmp_path を付けてコマンドを実行するヘルパー。"""
    def _invoke(*args: str):
        return runner.invoke(app, [*args, "--cache-dir", str(tmp_path)])
    return _invoke


def _add_click(invoke, xpath: str = "/html/body/div/button", **extra: str):
    args = [
        "add-step",
        "--url", extra.get("url", "https://example.com/login"),
        "--action", extra.get("action", "click login"),
        "--method", extra.get("method", "click"),
        "--xpath", xpath,
        "--request-id", extra.get("request_id", "cli"),
    ]
    if "arg" in extra:
        args += ["--arg", extra["arg"]]
    return invoke(*args)


class TestAddAndList:
    """add-step / list-steps のテスト。"""

    def test_add_then_list(self, invoke):
        result = _add_click(invoke)
        assert result.exit_code == 0, result.output
        assert "ステップを記録しました: click (click login)" in result.output

        result = invoke("list-steps")
        assert result.exit_code == 0, result.output
        assert "  1. click() /html/body/div/button  [cli] https://example.com/login" in result.output
        assert "合計: 1 ステップ" in result.output

    def test_steps_persist_between_invocations(self, invoke):
        """CLI の各実行で記録がリセットされないこと。"""
        _add_click(invoke, action="first")
        _add_click(invoke, action="second", method="fill", arg="hello")

        result = invoke("list-steps")
        assert "合計: 2 ステップ" in result.output
        assert "fill(hello)" in result.output

    def test_list_empty(self, invoke):
        result = invoke("list-steps")
        assert result.exit_code == 0
        assert "合計: 0 ステップ" in result.output


class TestGenerate:
    """generate コマンドのテスト。"""

    def test_empty_store_prints_skeleton(self, invoke):
        result = invoke("generate")
        assert result.exit_code == 0, result.output
        assert "page.goto('')" in result.output
        assert "page.locator" not in result.output

    def test_generate_python(self, invoke):
        _add_click(invoke)
        result = invoke("generate", "--language", "python")
        assert result.exit_code == 0, result.output
        assert "page.goto('https://example.com/login')" in result.output
        assert "page.locator('xpath=//body/div/button').click()" in result.output

    def test_generate_typescript(self, invoke):
        _add_click(invoke)
        result = invoke("generate", "-l", "typescript")
        assert result.exit_code == 0, result.output
        assert "await page.locator('xpath=//body/div/button').click();" in result.output

    def test_generate_to_file(self, invoke, tmp_path: Path):
        _add_click(invoke)
        out = tmp_path / "out" / "test_login.py"
        result = invoke("generate", "-o", str(out))

        assert result.exit_code == 0, result.output
        assert "コードを生成しました" in result.output
        code = out.read_text(encoding="utf-8")
        assert code.startswith("from playwright.sync_api import sync_playwright")
        assert code.endswith("    run()\n")

    def test_other_framework_uses_stub_conversion(self, invoke, caplog):
        """スタブ LLM での変換は生成コードをそのまま返し、警告を出すこと。"""
        _add_click(invoke)
        native = invoke("generate").output
        with caplog.at_level(logging.WARNING, logger="stepforge.cli"):
            converted = invoke("generate", "--framework", "cypress", "--model", "stub-model")
        assert converted.exit_code == 0, converted.output
        assert native in converted.output
        warnings = [r for r in caplog.records if r.name == "stepforge.cli"]
        assert len(warnings) == 1
        assert warnings[0].levelno == logging.WARNING
        assert "cypress" in warnings[0].getMessage()

    def test_native_framework_does_not_warn(self, invoke, caplog):
        _add_click(invoke)
        with caplog.at_level(logging.WARNING, logger="stepforge.cli"):
            result = invoke("generate", "--framework", "Playwright")
        assert result.exit_code == 0, result.output
        assert not [r for r in caplog.records if r.name == "stepforge.cli"]

    def test_unsupported_language(self, invoke):
        result = invoke("generate", "--language", "java")
        assert result.exit_code == 1
        assert "Unsupported language: java" in result.output

    def test_language_from_env(self, invoke):
        _add_click(invoke)
        with patch.dict(os.environ, {"STEPFORGE_LANGUAGE": "typescript"}):
            result = invoke("generate")
        assert "await page.goto('https://example.com/login');" in result.output


class TestExportClearReset:
    """export / clear / reset のテスト。"""

    def test_export_yaml(self, invoke, tmp_path: Path):
        _add_click(invoke, method="fill", arg="hello")
        out = tmp_path / "steps.yaml"

        result = invoke("export", "-o", str(out))
        assert result.exit_code == 0, result.output
        assert "1 ステップを出力しました" in result.output

        with open(out, encoding="utf-8") as f:
            document = YAML(typ="safe").load(f)
        step = document["steps"][0]
        assert step["requestId"] == "cli"
        assert step["data"]["playwrightCommand"] == {"method": "fill", "args": ["hello"]}
        assert step["data"]["xpaths"] == ["/html/body/div/button"]
        assert document["source"].endswith("action_recorder.json")

    def test_clear_by_request_id(self, invoke):
        _add_click(invoke, action="a", request_id="keep")
        _add_click(invoke, action="b", request_id="drop")
        _add_click(invoke, action="c", request_id="drop")

        result = invoke("clear", "drop")
        assert result.exit_code == 0, result.output
        assert "2 ステップを削除しました: drop" in result.output

        listing = invoke("list-steps").output
        assert "合計: 1 ステップ" in listing
        assert "[keep]" in listing

    def test_reset(self, invoke):
        _add_click(invoke)
        result = invoke("reset")
        assert result.exit_code == 0, result.output
        assert "記録をリセットしました" in result.output
        assert "合計: 0 ステップ" in invoke("list-steps").output

    def test_corrupt_store_reports_error(self, invoke, tmp_path: Path):
        """書き込み先が壊れている場合はエラー終了すること。"""
        (tmp_path / "action_recorder.json").write_text("{broken", encoding="utf-8")
        result = _add_click(invoke)
        assert result.exit_code == 1
        assert "エラー:" in result.output
