"""
codegen パッケージ — 記録済みステップからのテストコード生成

- CodeGenerator: Python / TypeScript の Playwright コード生成
- xpath_to_playwright_selector: XPath → Playwright セレクタ変換
"""

from __future__ import annotations

from .generator import CodeGenerator, UnsupportedLanguageError, get_template
from .selectors import xpath_to_playwright_selector

__all__ = [
    "CodeGenerator",
    "UnsupportedLanguageError",
    "get_template",
    "xpath_to_playwright_selector",
]
