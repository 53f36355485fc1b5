"""
Playwright コードのフレームワーク変換

生成済みの Playwright コードを LLM に渡し、指定されたテストフレームワークの
コードに書き換える。LLM クライアントの例外は呼び出し元へそのまま伝播させる。
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Optional

from ..core.logline import LoggerCallback, LogLine, aux, emit
from .client import LlmClient
from .prompts import CONVERT_SYSTEM_PROMPT, CONVERT_USER_TEMPLATE

_CATEGORY = "inference"

# レスポンス全体を囲む ```lang ... ``` を取り除く
_FENCE_RE = re.compile(r"^\s*```[\w+#.-]*[ \t]*\n(?P<body>.*?)\n?```\s*$", re.DOTALL)


class ConversionError(Exception):
    """フレームワーク変換の結果が使えない場合のエラー。"""


def strip_code_fence(text: str) -> str:
    """Markdown のコードフェンスで囲まれていれば中身だけを返す。"""
    match = _FENCE_RE.match(text)
    if match:
        return match.group("body")
    return text


async def convert_playwright_code_to_framework(
    playwright_code: str,
    target_framework: str,
    llm_client: LlmClient,
    request_id: str,
    logger: Optional[LoggerCallback] = None,
) -> str:
    """Playwright コードを指定フレームワークのコードに変換する。

    Args:
        playwright_code: 変換元の Playwright コード
        target_framework: 変換先のテストフレームワーク名
        llm_client: 変換に使う LLM クライアント
        request_id: 相関 ID（ログ用）
        logger: ログコールバック

    Returns:
        変換後のコード

    Raises:
        ConversionError: LLM のレスポンスが空の場合
    """
    emit(logger, LogLine(
        category=_CATEGORY,
        message=f"converting playwright code to {target_framework}",
        level=logging.INFO,
        auxiliary={
            "requestId": aux(request_id),
            "codeLength": aux(len(playwright_code)),
        },
    ))

    user_prompt = CONVERT_USER_TEMPLATE.format(
        framework=target_framework,
        code=playwright_code,
    )

    # クライアントはブロッキング呼び出しのためスレッドで実行する
    raw_response = await asyncio.to_thread(
        llm_client.generate, CONVERT_SYSTEM_PROMPT, user_prompt,
    )

    converted = strip_code_fence(raw_response or "").strip("\n")
    if not converted.strip():
        raise ConversionError(
            f"{target_framework} への変換結果が空です (requestId={request_id})"
        )

    emit(logger, LogLine(
        category=_CATEGORY,
        message=f"converted playwright code to {target_framework}",
        level=logging.INFO,
        auxiliary={
            "requestId": aux(request_id),
            "codeLength": aux(len(converted)),
        },
    ))
    return converted
