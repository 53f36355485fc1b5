"""
LogLine — 構造化ログ行とベストエフォート出力

各コンポーネントはログ出力先としてコールバック（LogLine を受け取る関数）を受け取る。
コールバックの失敗は呼び出し元の制御フローに一切影響させない。

主な機能:
  - LogLine / AuxiliaryValue: 構造化ログ行の Pydantic モデル
  - stdlib_logger: 標準 logging へ転送するデフォルトコールバック
  - emit: コールバックの例外を呼び出し元へ伝播させない fire-and-forget 出力
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Any, Callable, Literal, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# ログ行モデル
# ---------------------------------------------------------------------------

AuxType = Literal["string", "object", "integer", "float", "boolean"]


class AuxiliaryValue(BaseModel):
    """ログ行に添付する補助情報の1項目。"""

    value: str = Field(..., description="文字列化された値")
    type: AuxType = Field(default="string", description="元の値の種別")


class LogLine(BaseModel):
    """構造化ログ行。

    level には標準 logging のレベル値（logging.INFO 等）を使用する。
    """

    category: str = Field(..., description="ログカテゴリ（コンポーネント名）")
    message: str = Field(..., description="ログメッセージ")
    level: int = Field(default=logging.INFO, description="logging レベル値")
    auxiliary: Optional[dict[str, AuxiliaryValue]] = Field(
        default=None, description="補助情報"
    )


LoggerCallback = Callable[[LogLine], Any]


def aux(value: Any, type_: AuxType | None = None) -> AuxiliaryValue:
    """値から AuxiliaryValue を生成する。

    dict / list は JSON 文字列に変換し、type を "object" とする。

    Args:
        value: 添付する値
        type_: 種別の明示指定（省略時は値から推定）

    Returns:
        生成された AuxiliaryValue
    """
    if type_ is None:
        if isinstance(value, bool):
            type_ = "boolean"
        elif isinstance(value, int):
            type_ = "integer"
        elif isinstance(value, float):
            type_ = "float"
        elif isinstance(value, (dict, list, tuple)):
            type_ = "object"
        else:
            type_ = "string"

    if isinstance(value, (dict, list, tuple)):
        text = json.dumps(value, ensure_ascii=False)
    elif isinstance(value, bool):
        text = "true" if value else "false"
    else:
        text = str(value)
    return AuxiliaryValue(value=text, type=type_)


# ---------------------------------------------------------------------------
# デフォルトコールバック
# ---------------------------------------------------------------------------

def stdlib_logger(name: str = "stepforge") -> LoggerCallback:
    """標準 logging に転送する LogLine コールバックを生成する。

    Args:
        name: 転送先ロガー名

    Returns:
        LogLine を受け取るコールバック
    """
    target = logging.getLogger(name)

    def _log(line: LogLine) -> None:
        if not target.isEnabledFor(line.level):
            return
        if line.auxiliary:
            details = " ".join(
                f"{key}={item.value}" for key, item in line.auxiliary.items()
            )
            target.log(line.level, "[%s] %s (%s)", line.category, line.message, details)
        else:
            target.log(line.level, "[%s] %s", line.category, line.message)

    return _log


# ---------------------------------------------------------------------------
# ベストエフォート出力
# ---------------------------------------------------------------------------

# 完了前の非同期コールバックへの参照
_pending_tasks: set[asyncio.Future] = set()


def _report_task_failure(task: asyncio.Future) -> None:
    """非同期コールバックの失敗を debug ログに残す。"""
    _pending_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("非同期ログコールバックが失敗しました: %s", exc)


def emit(callback: Optional[LoggerCallback], line: LogLine) -> None:
    """LogLine をコールバックへ送る（失敗しても呼び出し元へ伝播しない）。

    コールバックが awaitable を返した場合は実行中のイベントループに
    タスクとして登録し、完了を待たない。

    Args:
        callback: ログコールバック（None の場合は何もしない）
        line: 出力するログ行
    """
    if callback is None:
        return

    try:
        result = callback(line)
    except Exception as exc:
        logger.debug("ログコールバックが失敗しました: %s", exc)
        return

    if not inspect.isawaitable(result):
        return

    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # ループ外では実行できないため破棄する
        if inspect.iscoroutine(result):
            result.close()
        return

    task = asyncio.ensure_future(result)
    _pending_tasks.add(task)
    task.add_done_callback(_report_task_failure)
