"""
AI モジュール

生成済み Playwright コードを LLM で他のテストフレームワークに変換する。

- convert_playwright_code_to_framework: フレームワーク変換
- LlmClient / LlmProvider: LLM クライアントの Protocol 定義
- StubLlmProvider: オフライン用スタブ
"""

from .client import LlmClient, LlmProvider, StubLlmProvider  # noqa: F401
from .convert import (  # noqa: F401
    ConversionError,
    convert_playwright_code_to_framework,
    strip_code_fence,
)

__all__ = [
    "ConversionError",
    "LlmClient",
    "LlmProvider",
    "StubLlmProvider",
    "convert_playwright_code_to_framework",
    "strip_code_fence",
]
