"""
LLM クライアント — 変換に使う LLM の抽象インターフェース

LLM クライアントとプロバイダを Protocol で抽象化し、テスト時や
オフライン実行時にはスタブを注入できるようにする。
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from .prompts import CODE_MARKER

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# LLM クライアント / プロバイダ Protocol
# ---------------------------------------------------------------------------

@runtime_checkable
class LlmClient(Protocol):
    """LLM クライアントの抽象インターフェース。"""

    def generate(self, system_prompt: str, user_prompt: str) -> str:
        """LLM にプロンプトを送信し、テキストレスポンスを返す。

        Args:
            system_prompt: システムプロンプト
            user_prompt: ユーザープロンプト

        Returns:
            LLM のテキストレスポンス
        """
        ...


@runtime_checkable
class LlmProvider(Protocol):
    """モデル名から LLM クライアントを払い出すプロバイダ。"""

    def get_client(self, model_name: str) -> LlmClient:
        """モデル名に対応するクライアントを返す。"""
        ...


# ---------------------------------------------------------------------------
# スタブ実装
# ---------------------------------------------------------------------------

class _StubLlmClient:
    """変換用のスタブ LLM クライアント。

    プロンプトに埋め込まれた Playwright コードをそのまま返す（変換なし）。
    """

    def __init__(self, model_name: str = "stub") -> None:
        self.model_name = model_name

    def generate(self, system_prompt: str, user_prompt: str) -> str:
        idx = user_prompt.find(CODE_MARKER)
        if idx >= 0:
            return user_prompt[idx + len(CODE_MARKER):]
        return user_prompt


class StubLlmProvider:
    """常にスタブクライアントを返すプロバイダ。"""

    def get_client(self, model_name: str) -> LlmClient:
        logger.debug("スタブ LLM クライアントを使用します: model=%s", model_name)
        return _StubLlmClient(model_name)
