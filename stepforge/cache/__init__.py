"""
cache パッケージ — ファイルベースの記録ストア

- BaseCache: アドバイザリロック付きのキー/値ストア
- ActionRecorder: 操作ステップの記録エンジン
"""

from __future__ import annotations

from .action_recorder import (
    ActionRecorder,
    ActionRecorderEntry,
    ActionStepData,
    PlaywrightCommand,
)
from .base_cache import (
    BaseCache,
    CacheEntry,
    CacheError,
    CacheIOError,
    CacheLockError,
    create_hash,
)

__all__ = [
    "ActionRecorder",
    "ActionRecorderEntry",
    "ActionStepData",
    "BaseCache",
    "CacheEntry",
    "CacheError",
    "CacheIOError",
    "CacheLockError",
    "PlaywrightCommand",
    "create_hash",
]
