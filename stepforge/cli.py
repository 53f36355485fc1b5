"""
CLI エントリポイント — Typer ベースのコマンドラインインターフェース

stepforge コマンドとして以下のサブコマンドを提供する:
  - add-step: 操作ステップを1件記録
  - list-steps: 記録済みステップの一覧
  - export: 記録済みステップを YAML に出力
  - generate: 記録済みステップからテストコードを生成
  - clear: リクエスト ID 単位で記録を削除
  - reset: 記録をすべて破棄

CLI は既存の記録を読むため、レコーダーを reset_on_init=False で開く。
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer

from .core.config import (
    NATIVE_FRAMEWORK,
    StepforgeConfig,
    apply_overrides,
    load_config_from_env,
)
from .core.logline import stdlib_logger

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Typer アプリ定義
# ---------------------------------------------------------------------------

app = typer.Typer(
    help=(
        "stepforge — 記録したブラウザ操作からテストコードを生成するツール\n\n"
        "基本の流れ:\n"
        "  1. 自動操作エンジンが add-step 相当の記録を行う\n"
        "  2. stepforge generate --language python  でコードを生成\n\n"
        "詳しくは各コマンドに --help を付けてください。"
    ),
    no_args_is_help=True,
)

_CACHE_DIR_OPTION = typer.Option(
    None, "--cache-dir", help="記録ファイルのディレクトリ（デフォルト: tmp/.cache）",
)
_CACHE_FILE_OPTION = typer.Option(
    None, "--cache-file", help="記録ファイル名（デフォルト: action_recorder.json）",
)


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="ログレベル (DEBUG/INFO/WARNING/ERROR)",
    ),
) -> None:
    """ログ出力を設定する。"""
    level_name = (log_level or load_config_from_env().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# ヘルパー関数
# ---------------------------------------------------------------------------

def _load_config(**overrides: object) -> StepforgeConfig:
    """環境変数の設定に CLI オプションを上書きして返す。"""
    return apply_overrides(load_config_from_env(), **overrides)


def _open_recorder(config: StepforgeConfig):  # type: ignore[no-untyped-def]
    """既存の記録を保持したまま ActionRecorder を開く。"""
    from .cache import ActionRecorder

    return ActionRecorder(
        logger=stdlib_logger("stepforge"),
        cache_dir=config.cache_dir,
        cache_file=config.cache_file,
        reset_on_init=False,
        lock_timeout=config.lock_timeout,
    )


# ---------------------------------------------------------------------------
# add-step コマンド
# ---------------------------------------------------------------------------

@app.command("add-step")
def add_step(
    url: str = typer.Option(..., "--url", help="操作時のページ URL"),
    action: str = typer.Option(..., "--action", help="操作の説明"),
    method: str = typer.Option(
        ..., "--method", "-m", help="Playwright コマンド (click/fill/press/type/scrollIntoView)",
    ),
    args: Optional[List[str]] = typer.Option(
        None, "--arg", "-a", help="コマンド引数（複数指定可）",
    ),
    xpaths: Optional[List[str]] = typer.Option(
        None, "--xpath", "-x", help="要素の XPath 候補（複数指定可、先頭が正）",
    ),
    previous_selectors: Optional[List[str]] = typer.Option(
        None, "--previous-selector", help="直前のセレクタ（複数指定可）",
    ),
    request_id: str = typer.Option("cli", "--request-id", "-r", help="リクエスト ID"),
    component: str = typer.Option("", "--component", help="対象コンポーネントの説明"),
    new_step: str = typer.Option("", "--new-step", help="ステップの説明"),
    incomplete: bool = typer.Option(False, "--incomplete", help="未完了のステップとして記録する"),
    cache_dir: Optional[str] = _CACHE_DIR_OPTION,
    cache_file: Optional[str] = _CACHE_FILE_OPTION,
) -> None:
    """操作ステップを1件記録する。"""
    try:
        config = _load_config(cache_dir=cache_dir, cache_file=cache_file)
        recorder = _open_recorder(config)
        asyncio.run(recorder.add_action_step(
            url=url,
            action=action,
            previous_selectors=previous_selectors or [],
            playwright_command={"method": method, "args": args or []},
            component_string=component,
            xpaths=xpaths or [],
            new_step_string=new_step,
            completed=not incomplete,
            request_id=request_id,
        ))
        typer.echo(f"ステップを記録しました: {method} ({action})")
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# list-steps コマンド
# ---------------------------------------------------------------------------

@app.command("list-steps")
def list_steps(
    cache_dir: Optional[str] = _CACHE_DIR_OPTION,
    cache_file: Optional[str] = _CACHE_FILE_OPTION,
) -> None:
    """記録済みステップをタイムスタンプ順に表示する。"""
    try:
        config = _load_config(cache_dir=cache_dir, cache_file=cache_file)
        recorder = _open_recorder(config)
        entries = asyncio.run(recorder.get_all_actions())
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)

    for index, entry in enumerate(entries, start=1):
        data = entry.data
        xpath = data.xpaths[0] if data.xpaths else "-"
        args = ", ".join(data.playwright_command.args)
        typer.echo(
            f"{index:3d}. {data.playwright_command.method}({args}) "
            f"{xpath}  [{entry.request_id}] {data.url}"
        )

    typer.echo(f"\n合計: {len(entries)} ステップ")


# ---------------------------------------------------------------------------
# export コマンド
# ---------------------------------------------------------------------------

@app.command()
def export(
    output: Path = typer.Option(..., "--output", "-o", help="出力先 YAML ファイル"),
    cache_dir: Optional[str] = _CACHE_DIR_OPTION,
    cache_file: Optional[str] = _CACHE_FILE_OPTION,
) -> None:
    """記録済みステップを YAML ファイルに出力する。"""
    from ruamel.yaml import YAML

    try:
        config = _load_config(cache_dir=cache_dir, cache_file=cache_file)
        recorder = _open_recorder(config)
        entries = asyncio.run(recorder.get_all_actions())

        yaml = YAML()
        yaml.default_flow_style = False

        document = {
            "source": str(recorder.cache_file),
            "steps": [entry.model_dump(by_alias=True) for entry in entries],
        }

        output.parent.mkdir(parents=True, exist_ok=True)
        with open(output, "w", encoding="utf-8") as f:
            yaml.dump(document, f)

        typer.echo(f"{len(entries)} ステップを出力しました: {output}")
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# generate コマンド
# ---------------------------------------------------------------------------

@app.command()
def generate(
    language: Optional[str] = typer.Option(
        None, "--language", "-l", help="生成言語 (python/typescript, デフォルト: python)",
    ),
    framework: Optional[str] = typer.Option(
        None, "--framework", "-f", help="テストフレームワーク（デフォルト: playwright）",
    ),
    model: Optional[str] = typer.Option(
        None, "--model", help="フレームワーク変換に使う LLM モデル名",
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="出力先ファイル（省略時は標準出力）",
    ),
    cache_dir: Optional[str] = _CACHE_DIR_OPTION,
    cache_file: Optional[str] = _CACHE_FILE_OPTION,
) -> None:
    """記録済みステップからテストコードを生成する。"""
    from .codegen import CodeGenerator

    try:
        config = _load_config(
            cache_dir=cache_dir,
            cache_file=cache_file,
            language=language,
            test_framework=framework,
            model_name=model,
        )
        if config.test_framework.strip().lower() != NATIVE_FRAMEWORK:
            logger.warning(
                "LLM プロバイダが設定されていないためスタブを使用します。"
                "%s への変換は行われず、Playwright コードをそのまま出力します",
                config.test_framework,
            )
        recorder = _open_recorder(config)
        generator = CodeGenerator(
            action_recorder=recorder,
            logger=stdlib_logger("stepforge"),
            model_name=config.model_name,
        )
        code = asyncio.run(generator.generate_code(config.language, config.test_framework))
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)

    if output is None:
        typer.echo(code)
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(code + "\n", encoding="utf-8")
    typer.echo(f"コードを生成しました: {output}")


# ---------------------------------------------------------------------------
# clear / reset コマンド
# ---------------------------------------------------------------------------

@app.command()
def clear(
    request_id: str = typer.Argument(..., help="削除するリクエスト ID"),
    cache_dir: Optional[str] = _CACHE_DIR_OPTION,
    cache_file: Optional[str] = _CACHE_FILE_OPTION,
) -> None:
    """指定リクエスト ID で記録したステップを削除する。"""
    try:
        config = _load_config(cache_dir=cache_dir, cache_file=cache_file)
        recorder = _open_recorder(config)
        removed = asyncio.run(recorder.clear_action(request_id))
        typer.echo(f"{removed} ステップを削除しました: {request_id}")
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)


@app.command()
def reset(
    cache_dir: Optional[str] = _CACHE_DIR_OPTION,
    cache_file: Optional[str] = _CACHE_FILE_OPTION,
) -> None:
    """記録をすべて破棄する。"""
    try:
        config = _load_config(cache_dir=cache_dir, cache_file=cache_file)
        recorder = _open_recorder(config)
        asyncio.run(recorder.reset_cache())
        typer.echo(f"記録をリセットしました: {recorder.cache_file}")
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)
