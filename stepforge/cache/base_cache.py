"""
BaseCache — ファイルベースのキー/値ストア（アドバイザリロック付き）

複合キー（小さな辞書）をハッシュ化したキーで、タイムスタンプ付きのエントリを
1つの JSON ファイルに保存する。すべての操作はファイル全体の
読み込み → 変更 → 書き戻し で行うため、ロックファイルによる排他で
同時に実行される read-modify-write を常に1つに制限する。

主な機能:
  - 複合キーの正規化ハッシュ（キー順序に依存しない）
  - set / get / delete / delete_for_request_id / reset_cache
  - ロックファイルの取得・解放（待ち時間の上限付き、古いロックの除去）

読み込み系の操作はロック取得失敗・I/O エラー時に警告ログを出して
空の結果を返す。書き込み系の操作は CacheLockError / CacheIOError を送出する。
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..core.logline import LoggerCallback, LogLine, aux, emit, stdlib_logger

# ---------------------------------------------------------------------------
# 定数
# ---------------------------------------------------------------------------

DEFAULT_CACHE_FILE = "cache.json"
_LOCK_RETRY_INTERVAL = 0.005
_MAX_CONSECUTIVE_LOCK_FAILURES = 3


# ---------------------------------------------------------------------------
# エラー定義
# ---------------------------------------------------------------------------

class CacheError(Exception):
    """キャッシュ操作に関するエラーの基底クラス。"""


class CacheLockError(CacheError):
    """ロックを待ち時間内に取得できなかった場合のエラー。"""


class CacheIOError(CacheError):
    """キャッシュファイルの読み書きに失敗した場合のエラー。"""


# ---------------------------------------------------------------------------
# エントリモデル
# ---------------------------------------------------------------------------

class CacheEntry(BaseModel):
    """永続化される1エントリ。

    timestamp と requestId は書き込み後に変更されない。
    同じキーへの再書き込みで置き換わるのは data のみ。
    """

    model_config = ConfigDict(populate_by_name=True)

    data: Any = Field(..., description="ペイロード")
    timestamp: int = Field(..., description="書き込み時刻（エポックミリ秒）")
    request_id: str = Field(..., alias="requestId", description="リクエスト単位のグループ ID")


def create_hash(key_fields: Mapping[str, Any]) -> str:
    """複合キーを正規化して SHA-256 ハッシュに変換する。

    キーをソートした JSON に直列化するため、辞書の挿入順序に依存しない。

    Args:
        key_fields: キーを構成するフィールドの辞書

    Returns:
        16進数のハッシュ文字列
    """
    canonical = json.dumps(
        key_fields,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# BaseCache 本体
# ---------------------------------------------------------------------------

class BaseCache:
    """ファイルベースのキー/値ストア。

    Attributes:
        cache_dir: キャッシュディレクトリ
        cache_file: キャッシュファイルのパス
        lock_file: ロックファイルのパス
        lock_timeout: ロック取得の待ち時間（秒）
        stale_lock_age: この秒数より古いロックファイルは放棄されたものとみなす
    """

    category = "base_cache"

    def __init__(
        self,
        logger: Optional[LoggerCallback] = None,
        cache_dir: Optional[str | Path] = None,
        cache_file: str = DEFAULT_CACHE_FILE,
        lock_timeout: float = 1.0,
        stale_lock_age: float = 5.0,
    ) -> None:
        """BaseCache を初期化する。ファイルは最初の書き込み時に作成される。

        Args:
            logger: ログコールバック（None で標準 logging に転送）
            cache_dir: キャッシュディレクトリ（None で ./tmp/.cache）
            cache_file: キャッシュファイル名
            lock_timeout: ロック取得の待ち時間（秒）
            stale_lock_age: 古いロックとみなす経過秒数
        """
        self.logger: LoggerCallback = logger or stdlib_logger(__name__)
        self.cache_dir = Path(cache_dir) if cache_dir else Path.cwd() / "tmp" / ".cache"
        self.cache_file = self.cache_dir / cache_file
        self.lock_file = self.cache_dir / f"{cache_file}.lock"
        self.lock_timeout = lock_timeout
        self.stale_lock_age = stale_lock_age
        self._lock_held = False
        self._lock_failures = 0
        self._lock_token: Optional[str] = None

    @property
    def lock_held(self) -> bool:
        """このインスタンスがロックを保持しているかを返す。"""
        return self._lock_held

    def log(self, message: str, level: int = logging.INFO, **auxiliary: Any) -> None:
        """このストアのカテゴリでログ行を出力する。"""
        emit(
            self.logger,
            LogLine(
                category=self.category,
                message=message,
                level=level,
                auxiliary={key: aux(value) for key, value in auxiliary.items()} or None,
            ),
        )

    @staticmethod
    def create_hash(key_fields: Mapping[str, Any]) -> str:
        """複合キーのハッシュを返す。"""
        return create_hash(key_fields)

    # ------------------------------------------------------------------
    # ロック
    # ------------------------------------------------------------------

    def _try_lock_once(self) -> bool:
        """ロックファイルの排他作成を1回だけ試みる。

        ロックファイルには取得ごとのトークンを書き込み、解放時の所有確認に使う。
        """
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            self._remove_stale_lock()
            fd = os.open(self.lock_file, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            return False
        except OSError as exc:
            raise CacheIOError(f"ロックファイルを作成できません: {self.lock_file}: {exc}") from exc

        token = uuid.uuid4().hex
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(token)
        self._lock_token = token
        self._lock_held = True
        self._lock_failures = 0
        return True

    def _owns_lock_file(self) -> bool:
        """ロックファイルの中身がこのインスタンスのトークンと一致するかを返す。"""
        if self._lock_token is None:
            return False
        try:
            return self.lock_file.read_text(encoding="utf-8") == self._lock_token
        except FileNotFoundError:
            return False

    def _remove_stale_lock(self) -> None:
        """stale_lock_age より古いロックファイルを削除する。"""
        try:
            age = time.time() - self.lock_file.stat().st_mtime
        except FileNotFoundError:
            return
        if age > self.stale_lock_age:
            self.log(
                "Removing stale lock file",
                level=logging.WARNING,
                lockFile=str(self.lock_file),
                age=round(age, 3),
            )
            self.lock_file.unlink(missing_ok=True)

    def _on_lock_timeout(self) -> bool:
        """ロック取得のタイムアウトを記録する。

        保持中のロックは stale_lock_age を過ぎるまで削除しない。
        """
        self._lock_failures += 1
        self.log(
            "Failed to acquire lock",
            level=logging.WARNING,
            lockFile=str(self.lock_file),
            consecutiveFailures=self._lock_failures,
        )
        if self._lock_failures == _MAX_CONSECUTIVE_LOCK_FAILURES:
            self.log(
                f"Failed to acquire lock {_MAX_CONSECUTIVE_LOCK_FAILURES} times in a row. "
                "Lock is still held by another holder.",
                level=logging.WARNING,
                lockFile=str(self.lock_file),
            )
        return False

    async def acquire_lock(self) -> bool:
        """ロックを取得する。

        lock_timeout 秒まで一定間隔で再試行し、取得できなければ False を返す。

        Returns:
            取得できた場合 True
        """
        deadline = time.monotonic() + self.lock_timeout
        while True:
            if self._try_lock_once():
                return True
            if time.monotonic() >= deadline:
                return self._on_lock_timeout()
            await asyncio.sleep(_LOCK_RETRY_INTERVAL)

    def acquire_lock_blocking(self) -> bool:
        """acquire_lock の同期版。コンストラクタなどイベントループ外で使用する。"""
        deadline = time.monotonic() + self.lock_timeout
        while True:
            if self._try_lock_once():
                return True
            if time.monotonic() >= deadline:
                return self._on_lock_timeout()
            time.sleep(_LOCK_RETRY_INTERVAL)

    def release_lock(self) -> None:
        """保持しているロックを解放する。未保持の場合は何もしない。

        ロックファイルが既に他の保持者のものに置き換わっている場合は削除しない。
        """
        if not self._lock_held:
            return
        try:
            if self._owns_lock_file():
                self.lock_file.unlink(missing_ok=True)
            else:
                self.log(
                    "Lock file is owned by another holder, not removing",
                    level=logging.WARNING,
                    lockFile=str(self.lock_file),
                )
        except OSError as exc:
            self.log(
                "Failed to remove lock file",
                level=logging.ERROR,
                lockFile=str(self.lock_file),
                error=str(exc),
            )
        finally:
            self._lock_held = False
            self._lock_token = None

    def break_lock(self) -> None:
        """保持者に関係なくロックファイルを削除する。"""
        self.lock_file.unlink(missing_ok=True)
        self._lock_held = False
        self._lock_token = None

    @asynccontextmanager
    async def locked(self) -> AsyncIterator[None]:
        """ロックを取得し、ブロックを抜けるときに必ず解放する。

        Raises:
            CacheLockError: ロックを取得できなかった場合
        """
        if not await self.acquire_lock():
            raise CacheLockError(f"ロックを取得できませんでした: {self.lock_file}")
        try:
            yield
        finally:
            self.release_lock()

    # ------------------------------------------------------------------
    # ファイル入出力
    # ------------------------------------------------------------------

    def read_cache(self) -> dict[str, Any]:
        """キャッシュファイル全体を読み込む。ファイルが無ければ空の辞書を返す。

        Raises:
            CacheIOError: 読み込み・JSON パースに失敗した場合
        """
        try:
            text = self.cache_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise CacheIOError(f"キャッシュファイルを読み込めません: {self.cache_file}: {exc}") from exc

        if not text.strip():
            return {}

        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise CacheIOError(f"キャッシュファイルが壊れています: {self.cache_file}: {exc}") from exc

        if not isinstance(data, dict):
            raise CacheIOError(f"キャッシュファイルの形式が不正です: {self.cache_file}")
        return data

    def write_cache(self, cache: Mapping[str, Any]) -> None:
        """キャッシュ全体をファイルに書き戻す。

        Raises:
            CacheIOError: 書き込みに失敗した場合
        """
        try:
            payload = json.dumps(cache, ensure_ascii=False, indent=2)
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            self.cache_file.write_text(payload, encoding="utf-8")
        except (OSError, TypeError, ValueError) as exc:
            raise CacheIOError(f"キャッシュファイルに書き込めません: {self.cache_file}: {exc}") from exc

    @staticmethod
    def _next_timestamp(cache: Mapping[str, Any]) -> int:
        """既存エントリより必ず大きいタイムスタンプ（エポックミリ秒）を返す。"""
        now = time.time_ns() // 1_000_000
        latest = max(
            (
                entry.get("timestamp", 0)
                for entry in cache.values()
                if isinstance(entry, dict) and isinstance(entry.get("timestamp"), int)
            ),
            default=0,
        )
        return max(now, latest + 1)

    # ------------------------------------------------------------------
    # キー/値操作
    # ------------------------------------------------------------------

    async def set(self, key_fields: Mapping[str, Any], data: Any, request_id: str) -> None:
        """エントリを書き込む。既存キーの場合は data のみ置き換える。

        Args:
            key_fields: キーを構成するフィールドの辞書
            data: JSON 直列化可能なペイロード
            request_id: リクエスト ID

        Raises:
            CacheLockError: ロックを取得できなかった場合
            CacheIOError: ファイルの読み書きに失敗した場合
        """
        key = self.create_hash(key_fields)
        async with self.locked():
            cache = self.read_cache()
            existing = cache.get(key)
            if isinstance(existing, dict) and "timestamp" in existing:
                existing["data"] = data
            else:
                entry = CacheEntry(
                    data=data,
                    timestamp=self._next_timestamp(cache),
                    request_id=request_id,
                )
                cache[key] = entry.model_dump(by_alias=True)
            self.write_cache(cache)

        self.log("Cache entry written", level=logging.DEBUG, key=key, requestId=request_id)

    async def get(self, key_fields: Mapping[str, Any], request_id: str) -> Optional[Any]:
        """エントリの data を返す。見つからない場合は None。

        ロック取得失敗・読み込みエラーの場合も警告ログを出して None を返す。

        Args:
            key_fields: キーを構成するフィールドの辞書
            request_id: リクエスト ID（ログ用）

        Returns:
            保存されている data、または None
        """
        key = self.create_hash(key_fields)
        try:
            async with self.locked():
                cache = self.read_cache()
        except CacheError as exc:
            self.log(
                "Failed to read cache entry",
                level=logging.WARNING,
                key=key,
                requestId=request_id,
                error=str(exc),
            )
            return None

        entry = cache.get(key)
        if not isinstance(entry, dict) or "data" not in entry:
            return None
        return entry["data"]

    async def delete(self, key_fields: Mapping[str, Any]) -> bool:
        """エントリを削除する。存在しない場合は何もしない。

        Returns:
            削除した場合 True

        Raises:
            CacheLockError: ロックを取得できなかった場合
            CacheIOError: ファイルの読み書きに失敗した場合
        """
        key = self.create_hash(key_fields)
        async with self.locked():
            cache = self.read_cache()
            removed = cache.pop(key, None) is not None
            if removed:
                self.write_cache(cache)

        if removed:
            self.log("Cache entry deleted", level=logging.DEBUG, key=key)
        else:
            self.log("Cache entry not found to delete", level=logging.DEBUG, key=key)
        return removed

    async def delete_for_request_id(self, request_id: str) -> int:
        """指定リクエスト ID で書き込まれたエントリをすべて削除する。

        Returns:
            削除したエントリ数

        Raises:
            CacheLockError: ロックを取得できなかった場合
            CacheIOError: ファイルの読み書きに失敗した場合
        """
        async with self.locked():
            cache = self.read_cache()
            keys = [
                key
                for key, entry in cache.items()
                if isinstance(entry, dict) and entry.get("requestId") == request_id
            ]
            for key in keys:
                del cache[key]
            if keys:
                self.write_cache(cache)

        self.log(
            "Cache entries deleted for request",
            level=logging.DEBUG,
            requestId=request_id,
            count=len(keys),
        )
        return len(keys)

    async def reset_cache(self) -> None:
        """キャッシュを空にする。過去のロック競合状況に関係なく実行する。

        Raises:
            CacheLockError: ロックを強制解除しても取得できなかった場合
            CacheIOError: 書き込みに失敗した場合
        """
        self._lock_failures = 0
        if not await self.acquire_lock():
            self.log("Breaking lock to reset cache", level=logging.WARNING)
            self.break_lock()
            if not await self.acquire_lock():
                raise CacheLockError(f"ロックを取得できませんでした: {self.lock_file}")
        try:
            self.write_cache({})
        finally:
            self.release_lock()

    def reset_cache_blocking(self) -> None:
        """reset_cache の同期版。"""
        self._lock_failures = 0
        if not self.acquire_lock_blocking():
            self.log("Breaking lock to reset cache", level=logging.WARNING)
            self.break_lock()
            if not self.acquire_lock_blocking():
                raise CacheLockError(f"ロックを取得できませんでした: {self.lock_file}")
        try:
            self.write_cache({})
        finally:
            self.release_lock()
