"""
stepforge 設定 — 環境変数・CLI 引数からの設定読み込み

環境変数または CLI オプションでレコーダーとコード生成の動作を制御する。
CLI オプション > 環境変数 > デフォルト値 の優先順位で適用される。

環境変数一覧:
  STEPFORGE_CACHE_DIR       : 記録ファイルのディレクトリ（デフォルト: tmp/.cache）
  STEPFORGE_CACHE_FILE      : 記録ファイル名（デフォルト: action_recorder.json）
  STEPFORGE_LOCK_TIMEOUT    : ロック取得の待ち時間・秒（デフォルト: 1.0）
  STEPFORGE_MODEL           : 変換に使う LLM モデル名（デフォルト: gpt-4o）
  STEPFORGE_LANGUAGE        : 生成言語（python/typescript, デフォルト: python）
  STEPFORGE_TEST_FRAMEWORK  : 出力テストフレームワーク（デフォルト: playwright）
  STEPFORGE_LOG_LEVEL       : ログレベル（デフォルト: WARNING）
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# 環境変数キー定数
# ---------------------------------------------------------------------------

_ENV_CACHE_DIR = "STEPFORGE_CACHE_DIR"
_ENV_CACHE_FILE = "STEPFORGE_CACHE_FILE"
_ENV_LOCK_TIMEOUT = "STEPFORGE_LOCK_TIMEOUT"
_ENV_MODEL = "STEPFORGE_MODEL"
_ENV_LANGUAGE = "STEPFORGE_LANGUAGE"
_ENV_TEST_FRAMEWORK = "STEPFORGE_TEST_FRAMEWORK"
_ENV_LOG_LEVEL = "STEPFORGE_LOG_LEVEL"

SUPPORTED_LANGUAGES = ("python", "typescript")
NATIVE_FRAMEWORK = "playwright"
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# ---------------------------------------------------------------------------
# 設定データクラス
# ---------------------------------------------------------------------------

@dataclass
class StepforgeConfig:
    """レコーダー・コード生成の実行時設定。

    Attributes:
        cache_dir: 記録ファイルのディレクトリ
        cache_file: 記録ファイル名
        lock_timeout: ロック取得の待ち時間（秒）
        model_name: フレームワーク変換に使う LLM モデル名
        language: 生成言語
        test_framework: 出力テストフレームワーク
        log_level: ログレベル名
    """

    cache_dir: str = str(Path("tmp") / ".cache")
    cache_file: str = "action_recorder.json"
    lock_timeout: float = 1.0
    model_name: str = "gpt-4o"
    language: str = "python"
    test_framework: str = NATIVE_FRAMEWORK
    log_level: str = "WARNING"


# ---------------------------------------------------------------------------
# 環境変数からの読み込み
# ---------------------------------------------------------------------------

def load_config_from_env() -> StepforgeConfig:
    """環境変数から StepforgeConfig を生成する。

    設定されていない環境変数はデフォルト値を使用する。
    不正な値は警告を出して無視する。

    Returns:
        環境変数から読み込んだ設定
    """
    config = StepforgeConfig()

    if _ENV_CACHE_DIR in os.environ:
        config.cache_dir = os.environ[_ENV_CACHE_DIR]

    if _ENV_CACHE_FILE in os.environ:
        config.cache_file = os.environ[_ENV_CACHE_FILE]

    if _ENV_LOCK_TIMEOUT in os.environ:
        try:
            timeout = float(os.environ[_ENV_LOCK_TIMEOUT])
        except ValueError:
            logger.warning("%s の値が不正です: %s", _ENV_LOCK_TIMEOUT, os.environ[_ENV_LOCK_TIMEOUT])
        else:
            if timeout > 0:
                config.lock_timeout = timeout
            else:
                logger.warning("%s は正の値である必要があります: %s", _ENV_LOCK_TIMEOUT, timeout)

    if _ENV_MODEL in os.environ:
        config.model_name = os.environ[_ENV_MODEL]

    if _ENV_LANGUAGE in os.environ:
        val = os.environ[_ENV_LANGUAGE].strip().lower()
        if val in SUPPORTED_LANGUAGES:
            config.language = val
        else:
            logger.warning("%s の値が不正です: %s", _ENV_LANGUAGE, val)

    if _ENV_TEST_FRAMEWORK in os.environ:
        val = os.environ[_ENV_TEST_FRAMEWORK].strip()
        if val:
            config.test_framework = val

    if _ENV_LOG_LEVEL in os.environ:
        val = os.environ[_ENV_LOG_LEVEL].strip().upper()
        if val in _LOG_LEVELS:
            config.log_level = val
        else:
            logger.warning("%s の値が不正です: %s", _ENV_LOG_LEVEL, val)

    logger.debug("設定を読み込みました: %s", config)
    return config


def apply_overrides(config: StepforgeConfig, **overrides: Any) -> StepforgeConfig:
    """CLI オプションなどの上書き値を StepforgeConfig に適用する。

    値が None の項目は上書きしない。

    Args:
        config: ベースとなる設定（環境変数から読み込み済み）
        **overrides: フィールド名と上書き値

    Returns:
        上書きが適用された設定
    """
    for name, value in overrides.items():
        if value is None:
            continue
        if not hasattr(config, name):
            raise AttributeError(f"未知の設定項目です: {name}")
        setattr(config, name, value)
    return config
