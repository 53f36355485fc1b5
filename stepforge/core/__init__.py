"""
core パッケージ — 横断的な基盤機能

- logline: 構造化ログ行とベストエフォート出力
- config: 環境変数・CLI からの設定読み込み
"""

from __future__ import annotations

from .config import StepforgeConfig, apply_overrides, load_config_from_env
from .logline import AuxiliaryValue, LoggerCallback, LogLine, aux, emit, stdlib_logger

__all__ = [
    "AuxiliaryValue",
    "LogLine",
    "LoggerCallback",
    "StepforgeConfig",
    "apply_overrides",
    "aux",
    "emit",
    "load_config_from_env",
    "stdlib_logger",
]
