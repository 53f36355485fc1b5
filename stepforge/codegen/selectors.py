"""
XPath → Playwright セレクタ変換
"""

from __future__ import annotations

XPATH_PREFIX = "xpath="
_BODY_ROOT = "/html/body"


def xpath_to_playwright_selector(xpath: str) -> str:
    """記録された XPath を Playwright の xpath= セレクタに変換する。

    - /html/body で始まる場合は //body 起点に書き換える
    - 単一の / で始まる絶対パスは // 始まり（任意の位置）に書き換える
    - それ以外（相対パス、// 始まり）はそのまま

    Args:
        xpath: 記録された XPath

    Returns:
        xpath= 接頭辞付きのセレクタ
    """
    if xpath.startswith(_BODY_ROOT):
        selector = "//body" + xpath[len(_BODY_ROOT):]
    elif xpath.startswith("/") and not xpath.startswith("//"):
        selector = "/" + xpath
    else:
        selector = xpath
    return f"{XPATH_PREFIX}{selector}"


def escape_string(s: str) -> str:
    """シングルクォート文字列リテラル用にエスケープする（Python / TypeScript 共通）。

    Args:
        s: エスケープ対象の文字列

    Returns:
        エスケープ済み文字列
    """
    return (
        s.replace("\\", "\\\\")
        .replace("'", "\\'")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )
