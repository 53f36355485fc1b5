"""
CodeGenerator — 記録済みステップから Playwright テストコードを生成

ActionRecorder に記録されたステップをタイムスタンプ順に並べ、
Python / TypeScript の Playwright スクリプトに変換する。
Playwright 以外のテストフレームワークが指定された場合は、
生成したコードを LLM 変換（convert_playwright_code_to_framework）に渡す。

主な機能:
  - 言語別スケルトン（import・ブラウザ起動・遷移・終了処理）の出力
  - 各ステップの XPath を Playwright セレクタに変換
  - click / fill / press / type / scrollIntoView の1行への変換
  - 未知のコマンド・XPath の無いステップは出力せずに読み飛ばす
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Mapping, Optional, Sequence

from ..ai import StubLlmProvider, convert_playwright_code_to_framework
from ..core.config import NATIVE_FRAMEWORK
from ..core.logline import LoggerCallback, LogLine, aux, emit, stdlib_logger
from .selectors import escape_string, xpath_to_playwright_selector

if TYPE_CHECKING:
    from ..ai import LlmClient, LlmProvider
    from ..cache import ActionRecorder, ActionRecorderEntry

_CATEGORY = "action"

Converter = Callable[
    [str, str, "LlmClient", str, Optional[LoggerCallback]],
    Awaitable[str],
]


# ---------------------------------------------------------------------------
# エラー定義
# ---------------------------------------------------------------------------

class UnsupportedLanguageError(ValueError):
    """生成対象外の言語が指定された場合のエラー。"""

    def __init__(self, language: str) -> None:
        self.language = language
        super().__init__(f"Unsupported language: {language}")


# ---------------------------------------------------------------------------
# 言語別テンプレート
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LanguageTemplate:
    """言語ごとのスケルトンと文テンプレート。

    Attributes:
        header: 先頭部分（{url} を含む）
        footer: 終了処理部分
        indent: ステップ行のインデント
        statements: コマンド名 → 文テンプレート（{selector}, {arg} を含む）
    """

    header: tuple[str, ...]
    footer: tuple[str, ...]
    indent: str
    statements: Mapping[str, str]


PYTHON_TEMPLATE = LanguageTemplate(
    header=(
        "from playwright.sync_api import sync_playwright",
        "",
        "def run():",
        "    with sync_playwright() as p:",
        "        browser = p.chromium.launch(headless=False)",
        "        context = browser.new_context()",
        "        page = context.new_page()",
        "",
        "        page.goto('{url}')",
        "",
    ),
    footer=(
        "",
        "        context.close()",
        "        browser.close()",
        "",
        "if __name__ == '__main__':",
        "    run()",
    ),
    indent="        ",
    statements={
        "click": "page.locator('{selector}').click()",
        "fill": "page.locator('{selector}').fill('{arg}')",
        "press": "page.keyboard.press('{arg}')",
        "type": "page.locator('{selector}').type('{arg}')",
        "scrollIntoView": "page.locator('{selector}').scroll_into_view_if_needed()",
    },
)

TYPESCRIPT_TEMPLATE = LanguageTemplate(
    header=(
        "import { chromium } from '@playwright/test';",
        "",
        "async function run() {",
        "  const browser = await chromium.launch({ headless: false });",
        "  const context = await browser.newContext();",
        "  const page = await context.newPage();",
        "",
        "  await page.goto('{url}');",
        "",
    ),
    footer=(
        "",
        "  await context.close();",
        "  await browser.close();",
        "}",
        "",
        "run().catch(console.error);",
    ),
    indent="  ",
    statements={
        "click": "await page.locator('{selector}').click();",
        "fill": "await page.locator('{selector}').fill('{arg}');",
        "press": "await page.keyboard.press('{arg}');",
        "type": "await page.locator('{selector}').type('{arg}');",
        "scrollIntoView": "await page.locator('{selector}').scrollIntoViewIfNeeded();",
    },
)

TEMPLATES: dict[str, LanguageTemplate] = {
    "python": PYTHON_TEMPLATE,
    "typescript": TYPESCRIPT_TEMPLATE,
}


def get_template(language: str) -> LanguageTemplate:
    """言語名に対応するテンプレートを返す。

    Raises:
        UnsupportedLanguageError: 対応していない言語の場合
    """
    template = TEMPLATES.get(language.strip().lower())
    if template is None:
        raise UnsupportedLanguageError(language)
    return template


# ---------------------------------------------------------------------------
# CodeGenerator 本体
# ---------------------------------------------------------------------------

class CodeGenerator:
    """記録済みステップからテストコードを生成するジェネレーター。

    使用例::

        recorder = ActionRecorder()
        generator = CodeGenerator(action_recorder=recorder)
        code = await generator.generate_code("python", "playwright")
    """

    def __init__(
        self,
        action_recorder: Optional[ActionRecorder] = None,
        logger: Optional[LoggerCallback] = None,
        llm_provider: Optional[LlmProvider] = None,
        model_name: str = "gpt-4o",
        converter: Optional[Converter] = None,
    ) -> None:
        """CodeGenerator を初期化する。

        Args:
            action_recorder: 記録済みステップの取得元（None の場合は記録なし扱い）
            logger: ログコールバック
            llm_provider: フレームワーク変換に使う LLM プロバイダ
            model_name: 変換に使うモデル名
            converter: フレームワーク変換関数（テスト時に差し替え可能）
        """
        self.action_recorder = action_recorder
        self.logger: LoggerCallback = logger or stdlib_logger(__name__)
        self.llm_provider: LlmProvider = llm_provider or StubLlmProvider()
        self.model_name = model_name
        self._converter: Converter = converter or convert_playwright_code_to_framework

    def _log(self, message: str, level: int = logging.INFO, **auxiliary: object) -> None:
        emit(self.logger, LogLine(
            category=_CATEGORY,
            message=message,
            level=level,
            auxiliary={key: aux(value) for key, value in auxiliary.items()} or None,
        ))

    async def _get_recorded_actions(self) -> list[ActionRecorderEntry]:
        """記録済みステップをタイムスタンプ順で取得する。"""
        if self.action_recorder is None:
            self._log("no actions recorded")
            return []

        actions = await self.action_recorder.get_all_actions()
        sorted_actions = sorted(actions, key=lambda entry: entry.timestamp or 0)
        self._log(
            "getting url from actions",
            actions=", ".join(entry.data.url for entry in sorted_actions),
        )
        return sorted_actions

    async def generate_code(self, language: str, test_framework: str) -> str:
        """記録済みステップからテストコードを生成する。

        Args:
            language: 生成言語（python / typescript）
            test_framework: 出力テストフレームワーク（playwright 以外は LLM で変換）

        Returns:
            生成されたソースコード

        Raises:
            UnsupportedLanguageError: 対応していない言語の場合
        """
        # ステップを読む前に言語を検証する
        template = get_template(language)

        actions = await self._get_recorded_actions()
        code = self._build_code(template, actions)

        framework = test_framework.strip()
        if framework.lower() == NATIVE_FRAMEWORK:
            return code

        client = self.llm_provider.get_client(self.model_name)
        request_id = uuid.uuid4().hex
        self._log(
            f"converting generated code to {framework}",
            requestId=request_id,
            model=self.model_name,
        )
        return await self._converter(code, framework, client, request_id, self.logger)

    def render_code(self, language: str, actions: Sequence[ActionRecorderEntry]) -> str:
        """取得済みステップから Playwright コードを生成する（変換なし）。

        Raises:
            UnsupportedLanguageError: 対応していない言語の場合
        """
        template = get_template(language)
        sorted_actions = sorted(actions, key=lambda entry: entry.timestamp or 0)
        return self._build_code(template, sorted_actions)

    def _build_code(
        self,
        template: LanguageTemplate,
        actions: Sequence[ActionRecorderEntry],
    ) -> str:
        """スケルトンとステップ行を組み立てる。"""
        url = actions[0].data.url if actions else ""
        lines = [line.replace("{url}", escape_string(url or "")) for line in template.header]

        for entry in actions:
            line = self._action_to_line(template, entry)
            if line:
                lines.append(f"{template.indent}{line}")

        lines.extend(template.footer)
        return "\n".join(lines)

    def _action_to_line(self, template: LanguageTemplate, entry: ActionRecorderEntry) -> str:
        """単一ステップをコード行に変換する。

        Returns:
            コード行（空文字列の場合はスキップ）
        """
        data = entry.data
        if not data.xpaths:
            return ""

        command = data.playwright_command
        statement = template.statements.get(command.method)
        if statement is None:
            self._log(
                "skipping unsupported playwright command",
                level=logging.DEBUG,
                method=command.method,
            )
            return ""

        selector = xpath_to_playwright_selector(data.xpaths[0])
        arg = command.args[0] if command.args else ""
        return statement.format(
            selector=escape_string(selector),
            arg=escape_string(arg),
        )
