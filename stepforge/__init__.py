"""
stepforge — ブラウザ操作の記録とテストコード生成

自動操作エンジンが実行した操作ステップをファイルに記録し、
Playwright（Python / TypeScript）のテストコードとして再生成する。
Playwright 以外のテストフレームワークへは LLM で変換する。

主な構成:
  - cache: ファイルベースの記録ストア（BaseCache, ActionRecorder）
  - codegen: テストコード生成（CodeGenerator）
  - ai: LLM によるフレームワーク変換
  - core: ログ・設定
  - cli: コマンドラインインターフェース
"""

from __future__ import annotations

from .cache import ActionRecorder, BaseCache, PlaywrightCommand
from .codegen import CodeGenerator, UnsupportedLanguageError

__version__ = "0.1.0"

__all__ = [
    "ActionRecorder",
    "BaseCache",
    "CodeGenerator",
    "PlaywrightCommand",
    "UnsupportedLanguageError",
    "__version__",
]
