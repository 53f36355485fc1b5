"""
ActionRecorder — ブラウザ操作ステップの記録エンジン

自動操作エンジンが実行した操作（Playwright コマンドと要素の XPath 候補）を
BaseCache 上に記録し、テストコード生成のためにタイムスタンプ順で取り出す。

主な機能:
  - 操作ステップの追加（url, action, previousSelectors をキーに使用）
  - 操作ステップの取得・削除
  - リクエスト ID 単位の一括削除
  - 全ステップのタイムスタンプ順取得

レコーダーはセッション単位で使う想定のため、生成時に記録ファイルを空にする。
"""

from __future__ import annotations

import logging
import traceback
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..core.logline import LoggerCallback
from .base_cache import BaseCache, CacheEntry, CacheError, CacheLockError

DEFAULT_RECORDER_FILE = "action_recorder.json"


# ---------------------------------------------------------------------------
# 記録データモデル
# ---------------------------------------------------------------------------

class PlaywrightCommand(BaseModel):
    """再生対象の Playwright プリミティブコマンド。

    method は click / fill / press / type / scrollIntoView のいずれかを想定する。
    """

    method: str = Field(..., description="コマンド名")
    args: list[str] = Field(default_factory=list, description="コマンド引数")

    @field_validator("args", mode="before")
    @classmethod
    def _stringify_args(cls, v: Any) -> Any:
        """引数を文字列に揃える。"""
        if v is None:
            return []
        if isinstance(v, (list, tuple)):
            return [str(item) for item in v]
        return v


class ActionStepData(BaseModel):
    """記録された1ステップのペイロード。

    ファイル上は camelCase のキーで保存する。
    """

    model_config = ConfigDict(populate_by_name=True)

    url: str = Field(default="", description="操作時のページ URL")
    playwright_command: PlaywrightCommand = Field(..., alias="playwrightCommand")
    component_string: str = Field(default="", alias="componentString")
    xpaths: list[str] = Field(default_factory=list, description="要素の XPath 候補（先頭が正）")
    new_step_string: str = Field(default="", alias="newStepString")
    completed: bool = Field(default=False, description="記録時に操作が完了したか")
    previous_selectors: list[str] = Field(default_factory=list, alias="previousSelectors")
    action: str = Field(default="", description="操作の説明")


class ActionRecorderEntry(CacheEntry):
    """ActionRecorder が保存するエントリ。"""

    data: ActionStepData


# ---------------------------------------------------------------------------
# ActionRecorder 本体
# ---------------------------------------------------------------------------

class ActionRecorder(BaseCache):
    """操作ステップを記録し、コード生成向けに取り出すレコーダー。"""

    category = "action_recorder"

    def __init__(
        self,
        logger: Optional[LoggerCallback] = None,
        cache_dir: Optional[Union[str, Path]] = None,
        cache_file: Optional[str] = None,
        reset_on_init: bool = True,
        lock_timeout: float = 1.0,
    ) -> None:
        """ActionRecorder を初期化する。

        reset_on_init=True の場合はここで同期的にロックを待つ（最大で lock_timeout の2倍）。
        イベントループ内で生成するときは ActionRecorder.create() を使うこと。

        Args:
            logger: ログコールバック
            cache_dir: 記録ファイルのディレクトリ
            cache_file: 記録ファイル名（省略時は action_recorder.json）
            reset_on_init: True の場合、既存の記録を破棄する
            lock_timeout: ロック取得の待ち時間（秒）
        """
        file_name = cache_file or DEFAULT_RECORDER_FILE
        super().__init__(
            logger=logger,
            cache_dir=cache_dir,
            cache_file=file_name,
            lock_timeout=lock_timeout,
        )
        self.log(
            f"initializing action recorder at {self.cache_dir} with file {file_name}",
        )
        if reset_on_init:
            self.reset_cache_blocking()

    @classmethod
    async def create(
        cls,
        logger: Optional[LoggerCallback] = None,
        cache_dir: Optional[Union[str, Path]] = None,
        cache_file: Optional[str] = None,
        reset_on_init: bool = True,
        lock_timeout: float = 1.0,
    ) -> ActionRecorder:
        """イベントループをブロックせずに ActionRecorder を生成する。

        リセットは reset_cache() を await して行う。引数は __init__ と同じ。
        """
        recorder = cls(
            logger=logger,
            cache_dir=cache_dir,
            cache_file=cache_file,
            reset_on_init=False,
            lock_timeout=lock_timeout,
        )
        if reset_on_init:
            await recorder.reset_cache()
        return recorder

    @staticmethod
    def _key_fields(url: str, action: str, previous_selectors: Sequence[str]) -> dict[str, Any]:
        """ステップを識別するキー辞書を作る。"""
        return {
            "url": url,
            "action": action,
            "previousSelectors": list(previous_selectors),
        }

    async def add_action_step(
        self,
        *,
        url: str,
        action: str,
        previous_selectors: Sequence[str],
        playwright_command: Union[PlaywrightCommand, Mapping[str, Any]],
        component_string: str,
        xpaths: Sequence[str],
        new_step_string: str,
        completed: bool,
        request_id: str,
    ) -> None:
        """操作ステップを記録する。同じキーのステップは data を上書きする。

        Raises:
            CacheLockError: ロックを取得できなかった場合
            CacheIOError: 記録ファイルの読み書きに失敗した場合
        """
        command = PlaywrightCommand.model_validate(playwright_command)
        step = ActionStepData(
            url=url,
            playwright_command=command,
            component_string=component_string,
            xpaths=list(xpaths),
            new_step_string=new_step_string,
            completed=completed,
            previous_selectors=list(previous_selectors),
            action=action,
        )

        self.log(
            "adding action step to recorder",
            action=action,
            requestId=request_id,
            url=url,
            previousSelectors=list(previous_selectors),
            playwrightCommand=command.model_dump(),
        )

        await self.set(
            self._key_fields(url, action, previous_selectors),
            step.model_dump(by_alias=True),
            request_id,
        )

    async def get_action_step(
        self,
        *,
        url: str,
        action: str,
        previous_selectors: Sequence[str],
        request_id: str,
    ) -> Optional[ActionStepData]:
        """記録済みステップを返す。見つからない場合は None。"""
        data = await self.get(self._key_fields(url, action, previous_selectors), request_id)
        if not data:
            return None

        try:
            return ActionStepData.model_validate(data)
        except ValidationError as exc:
            self.log(
                "Recorded action step is malformed",
                level=logging.WARNING,
                requestId=request_id,
                error=str(exc),
            )
            return None

    async def remove_action_step(
        self,
        *,
        url: str,
        action: str,
        previous_selectors: Sequence[str],
        request_id: Optional[str] = None,
    ) -> bool:
        """記録済みステップを削除する。

        request_id はキーに含めない（同じ操作は request_id に関係なく1件）。

        Returns:
            削除した場合 True
        """
        return await self.delete(self._key_fields(url, action, previous_selectors))

    async def clear_action(self, request_id: str) -> int:
        """指定リクエスト ID で記録したステップをすべて削除する。

        Returns:
            削除したステップ数
        """
        removed = await self.delete_for_request_id(request_id)
        self.log("cleared action for ID", requestId=request_id, count=removed)
        return removed

    async def get_all_actions(self) -> list[ActionRecorderEntry]:
        """記録済みの全ステップをタイムスタンプの昇順で返す。

        ロック取得失敗・読み込みエラーの場合は警告ログを出して空リストを返す。
        """
        try:
            async with self.locked():
                cache = self.read_cache()
                entries = [ActionRecorderEntry.model_validate(entry) for entry in cache.values()]
        except CacheLockError:
            self.log("Failed to acquire lock for getting all actions", level=logging.WARNING)
            return []
        except (CacheError, ValidationError) as exc:
            self.log(
                "Error getting all actions",
                level=logging.WARNING,
                error=str(exc),
                trace=traceback.format_exc(),
            )
            return []

        return sorted(entries, key=lambda entry: entry.timestamp)

    async def reset_cache(self) -> None:
        """記録をすべて破棄する。"""
        await super().reset_cache()
        self.log("Action recorder has been reset.")

    def reset_cache_blocking(self) -> None:
        """reset_cache の同期版。"""
        super().reset_cache_blocking()
        self.log("Action recorder has been reset.")
