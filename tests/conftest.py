"""
テスト共通フィクスチャ・Hypothesis ストラテジー定義

全テストモジュールで共有するフィクスチャとデータ生成器を提供する。
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest
from hypothesis import strategies as st

from stepforge.cache import ActionRecorder
from stepforge.core.logline import LogLine


# ---------------------------------------------------------------------------
# ログ収集
# ---------------------------------------------------------------------------

class LogCollector:
    """LogLine を蓄積するテスト用ログコールバック。"""

    def __init__(self) -> None:
        self.lines: list[LogLine] = []

    def __call__(self, line: LogLine) -> None:
        self.lines.append(line)

    def messages(self, level: int | None = None) -> list[str]:
        """記録されたメッセージを返す（level 指定時はそのレベルのみ）。"""
        return [
            line.message
            for line in self.lines
            if level is None or line.level == level
        ]

    def find(self, message: str) -> LogLine:
        """メッセージが一致する最初のログ行を返す。"""
        for line in self.lines:
            if line.message == message:
                return line
        raise AssertionError(f"ログ行が見つかりません: {message}")


# ---------------------------------------------------------------------------
# pytest フィクスチャ
# ---------------------------------------------------------------------------

@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    """記録ファイル用の一時ディレクトリ（未作成）。"""
    return tmp_path / "cache"


@pytest.fixture
def log_lines() -> LogCollector:
    """ログ行を蓄積するコールバック。"""
    return LogCollector()


@pytest.fixture
def recorder(cache_dir: Path, log_lines: LogCollector) -> ActionRecorder:
    """空の ActionRecorder インスタンス。"""
    return ActionRecorder(logger=log_lines, cache_dir=cache_dir, lock_timeout=0.2)


def make_step(**overrides: Any) -> dict[str, Any]:
    """add_action_step 用のキーワード引数を生成する。

    Returns:
        既定値に overrides を上書きした辞書
    """
    step: dict[str, Any] = {
        "url": "https://example.com/login",
        "action": "click the login button",
        "previous_selectors": [],
        "playwright_command": {"method": "click", "args": []},
        "component_string": "<button>Login</button>",
        "xpaths": ["/html/body/div/button"],
        "new_step_string": "clicked login",
        "completed": True,
        "request_id": "req-1",
    }
    step.update(overrides)
    return step


@pytest.fixture
def step_kwargs() -> Callable[..., dict[str, Any]]:
    """make_step をフィクスチャとして提供する。"""
    return make_step


# ---------------------------------------------------------------------------
# Hypothesis ストラテジー（ファクトリ関数）
# ---------------------------------------------------------------------------

def make_key_fields_strategy():
    """ステップ識別キー（url, action, previousSelectors）を生成するストラテジー。"""
    return st.fixed_dictionaries({
        "url": st.from_regex(r"https?://[a-z]+\.[a-z]+(/[a-z]*)?", fullmatch=True),
        "action": st.text(min_size=1, max_size=30),
        "previousSelectors": st.lists(st.text(max_size=20), max_size=3),
    })


@pytest.fixture
def key_fields_st():
    """キー辞書ストラテジーをフィクスチャとして提供する。"""
    return make_key_fields_strategy()
