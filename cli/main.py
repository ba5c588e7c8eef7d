"""CLI entry point — novel-injector 小说注入器。

用法：
  novel-injector ingest 小说.txt       导入小说
  novel-injector list                  查看小说列表
  novel-injector enable <ID>           启用注入
  novel-injector send "你好"           发送一条消息（启用时替换为小说内容）
  novel-injector read <ID> -d 1        自动驾驶连续阅读
  novel-injector --help                查看所有命令
"""

import asyncio
import logging
import os
import sys
from typing import Optional

# Ensure UTF-8 output on Windows to avoid GBK encoding errors with Rich
if sys.platform == "win32":
    os.environ.setdefault("PYTHONIOENCODING", "utf-8")

import click
from rich.markup import escape

from cli.theme import (
    app_header,
    chunk_preview_panel,
    command_panel,
    delivered_panel,
    get_console,
    novel_table,
    options_panel,
    status_panel,
    success_panel,
)
from config.exceptions import InvalidConfigError, NovelInjectorError, NovelNotFoundError
from config.logging_config import setup_logging
from config.settings import Settings
from injection.callbacks import LoggingCallback, RichConsoleCallback
from injection.controller import InjectionController
from injection.scheduler import AsyncioScheduler
from injection.signals import TurnSignal
from models.database import Database, format_bytes
from models.enums import InjectionOutcome
from models.library import NovelLibrary
from tools.text_utils import analyze_text, get_preview

console = get_console()


def _init_logging(verbose: bool):
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.INFO
    settings = Settings()
    setup_logging(level=level, log_dir=settings.log_dir, console_enabled=verbose)


class ConsoleSink:
    """Dispatch boundary for the CLI: prints whatever would be sent."""

    def __init__(self):
        self.delivered: list[str] = []
        self.after_delivery = None

    def __call__(self, text: str) -> None:
        self.delivered.append(text)
        if text:
            console.print(delivered_panel(text))
        else:
            console.print("[muted](空消息)[/]")
        if self.after_delivery is not None:
            self.after_delivery()


def _open_controller(sink: Optional[ConsoleSink] = None) -> tuple[Settings, NovelLibrary, InjectionController]:
    """Build settings, storage, library and controller with persisted state loaded."""
    settings = Settings()
    db = Database(settings.sqlite_db_path)
    library = NovelLibrary(db, settings)
    library.load()
    controller = InjectionController(
        library=library,
        storage=db,
        deliver=sink or ConsoleSink(),
        scheduler=AsyncioScheduler(),
        callbacks=[LoggingCallback(), RichConsoleCallback(console)],
        settings=settings,
    )
    controller.load_state()
    return settings, library, controller


def _require_novel(library: NovelLibrary, novel_id: str):
    try:
        return library.require(novel_id)
    except NovelNotFoundError:
        console.print(f"[error]未找到ID为 {novel_id} 的小说[/]")
        sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose):
    """novel-injector — 把小说分段注入到聊天中逐段阅读

    \b
    常用流程：
      novel-injector ingest 三体.txt
      novel-injector enable <ID>
      novel-injector send
      novel-injector read <ID> --delay 2 --max-chunks 5
    """
    _init_logging(verbose)


# ---------------------------------------------------------------------------
# Library commands
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def ingest(path):
    """导入一个 .txt 小说文件。

    示例：
      novel-injector ingest ./三体.txt
    """
    _, library, _ = _open_controller()

    try:
        novel = library.ingest_file(path)
    except NovelInjectorError as e:
        console.print(f"[error]导入失败: {e}[/]")
        sys.exit(1)

    console.print(success_panel("导入成功", (
        f"  [stat.label]ID:[/] [novel.id]{novel.id}[/]\n"
        f"  [stat.label]标题:[/] [bold]{escape(novel.title)}[/]\n"
        f"  [stat.label]段落:[/] [stat.value]{novel.total_paragraphs}[/]  "
        f"[muted]|[/]  [stat.label]大小:[/] [stat.value]{format_bytes(novel.file_size)}[/]"
    )))
    console.print(f"\n[muted]下一步: novel-injector enable {novel.id}[/]")


@cli.command(name="list")
def list_novels():
    """列出所有已导入的小说及阅读进度。"""
    _, library, controller = _open_controller()

    console.print(app_header())
    console.print()

    novels = library.list_novels()
    if not novels:
        console.print("[warning]暂无小说。使用 [info]novel-injector ingest[/] 导入小说。[/]")
        return
    console.print(novel_table(novels, active_id=controller.active_novel_id))


@cli.command()
@click.argument("novel_id")
def show(novel_id):
    """查看小说统计信息与下一段内容预览。"""
    settings, library, controller = _open_controller()
    novel = _require_novel(library, novel_id)

    try:
        paragraphs = library.reload_content(novel_id)
    except NovelInjectorError as e:
        console.print(f"[error]读取小说内容失败: {e}[/]")
        sys.exit(1)

    stats = analyze_text("\n\n".join(paragraphs), chapter_span=settings.chapter_fallback_span)
    console.print(app_header(novel.title))
    console.print()
    console.print(command_panel("小说信息", {
        "ID": novel.id,
        "文件": novel.original_name,
        "大小": format_bytes(novel.file_size),
        "导入时间": novel.upload_date.replace("T", " "),
        "段落": stats["paragraph_count"],
        "字数": f"{stats['word_count']:,}",
        "章节": stats["chapter_count"],
        "预计阅读": stats["reading_time"]["formatted_time"],
        "进度": f"{novel.progress_label} ({novel.progress_ratio:.0%})",
    }))

    chunk = controller.chunker.next_chunk(
        paragraphs, novel.current_paragraph, controller.options.effective_word_count,
    )
    if chunk is None:
        console.print("\n[warning]已读完。使用 [info]novel-injector reset[/] 从头开始。[/]")
        return
    console.print(chunk_preview_panel(chunk, get_preview(chunk.content, settings.preview_length)))


@cli.command()
@click.argument("novel_id")
def reset(novel_id):
    """重置阅读进度到开头。"""
    _, library, controller = _open_controller()
    novel = _require_novel(library, novel_id)

    controller.reset_progress(novel_id)
    console.print(f"[success]已重置《{escape(novel.title)}》的阅读进度[/]")


@cli.command()
@click.argument("novel_id")
@click.option("--force", "-f", is_flag=True, help="跳过确认直接删除")
def delete(novel_id, force):
    """删除小说（正在阅读的小说会先停用注入）。

    示例：
      novel-injector delete 3f2a9c01b7de
      novel-injector delete 3f2a9c01b7de -f
    """
    _, library, controller = _open_controller()
    novel = _require_novel(library, novel_id)

    console.print(command_panel("删除小说", {
        "标题": novel.title,
        "ID": novel.id,
        "进度": novel.progress_label,
    }))

    if not force:
        confirmed = click.confirm("确认删除？此操作不可撤销", default=False)
        if not confirmed:
            console.print("[warning]已取消[/]")
            return

    controller.remove_novel(novel_id)
    console.print(f"\n[success]已删除《{escape(novel.title)}》[/]")


# ---------------------------------------------------------------------------
# Controller commands
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("novel_id")
def enable(novel_id):
    """启用注入并选择要阅读的小说。"""
    _, library, controller = _open_controller()
    _require_novel(library, novel_id)

    novel = controller.enable(novel_id)
    if novel.is_finished:
        console.print("[warning]这本小说已经读完，使用 reset 重新开始[/]")


@cli.command()
def disable():
    """停用注入，恢复正常发送。"""
    _, _, controller = _open_controller()
    controller.disable()


@cli.command()
def status():
    """查看注入器当前状态。"""
    _, _, controller = _open_controller()
    console.print(status_panel(controller.status()))
    console.print(options_panel(controller.options))


@cli.command()
@click.argument("text", required=False, default="")
def send(text):
    """发送一条消息：启用时替换为下一段小说内容，否则原样发送。

    示例：
      novel-injector send
      novel-injector send "继续"
    """
    _, _, controller = _open_controller()
    outcome = controller.send(text)
    if outcome == InjectionOutcome.FAILED:
        sys.exit(1)


@cli.command()
@click.argument("novel_id")
@click.option("--delay", "-d", type=float, default=None, help="每段之间的延迟秒数（默认使用自动驾驶设置）")
@click.option("--max-chunks", "-m", type=int, default=None, help="最多阅读的段数（默认读到结尾）")
def read(novel_id, delay, max_chunks):
    """自动驾驶连续阅读：每次发送后视为对方回复完成，延迟后自动发送下一段。

    示例：
      novel-injector read 3f2a9c01b7de --delay 1 --max-chunks 5
    """
    if delay is not None and delay < 0:
        console.print("[error]延迟不能为负数[/]")
        sys.exit(1)
    if max_chunks is not None and max_chunks < 1:
        console.print("[error]--max-chunks 必须 >= 1[/]")
        sys.exit(1)

    sink = ConsoleSink()
    _, library, controller = _open_controller(sink)
    novel = _require_novel(library, novel_id)
    if novel.is_finished:
        console.print("[warning]这本小说已经读完，使用 reset 重新开始[/]")
        return

    previous = controller.state.autopilot.model_copy()
    console.print(app_header(novel.title))
    try:
        delivered = asyncio.run(_read_session(controller, sink, novel_id, delay, max_chunks))
    finally:
        controller.set_autopilot(previous.enabled, previous.delay_seconds)

    console.print(f"\n[muted]本次阅读 {delivered} 段，进度 {library.require(novel_id).progress_label}[/]")


async def _read_session(
    controller: InjectionController,
    sink: ConsoleSink,
    novel_id: str,
    delay: Optional[float],
    max_chunks: Optional[int],
) -> int:
    """Drive autopilot until the novel ends, fails, or max_chunks are delivered."""
    loop = asyncio.get_running_loop()
    done = asyncio.Event()
    signal = TurnSignal()
    delivered = 0

    class _SessionWatcher:
        def on_chunk_injected(self, novel, chunk):
            nonlocal delivered
            delivered += 1
            if max_chunks is not None and delivered >= max_chunks:
                done.set()

        def on_exhausted(self, novel_id):
            done.set()

        def on_failure(self, error):
            done.set()

    watcher = _SessionWatcher()
    controller.callbacks.append(watcher)
    # Each delivery stands in for the other party finishing a reply
    sink.after_delivery = lambda: loop.call_soon(signal.emit)
    controller.subscribe(signal)

    controller.enable(novel_id)
    controller.set_autopilot(True, delay)
    try:
        controller.inject_next("")
        await done.wait()
    finally:
        sink.after_delivery = None
        controller.close()
        controller.callbacks.remove(watcher)
    return delivered


@cli.command()
@click.option("--words", "-w", type=int, default=None, help="每段目标字数")
@click.option("--prefix", "-p", type=str, default=None, help="前缀模板，可用 {title} {chapter} {start_para} {end_para} {progress}")
@click.option("--collapse/--no-collapse", default=None, help="是否折叠注入内容")
@click.option("--autopilot/--no-autopilot", default=None, help="开启或关闭自动驾驶")
@click.option("--delay", "-d", type=float, default=None, help="自动驾驶延迟秒数")
def config(words, prefix, collapse, autopilot, delay):
    """查看或修改注入设置。

    示例：
      novel-injector config
      novel-injector config -w 800 --collapse
      novel-injector config --autopilot -d 5
    """
    _, _, controller = _open_controller()

    changes = {}
    if words is not None:
        changes["target_word_count"] = words
    if prefix is not None:
        changes["prefix_template"] = prefix
    if collapse is not None:
        changes["collapse_content"] = collapse

    try:
        if changes:
            controller.update_options(**changes)
        if autopilot is not None or delay is not None:
            enabled = controller.state.autopilot.enabled if autopilot is None else autopilot
            controller.set_autopilot(enabled, delay)
    except InvalidConfigError as e:
        console.print(f"[error]设置无效: {e}[/]")
        sys.exit(1)

    console.print(options_panel(controller.options))
    console.print(command_panel("自动驾驶", {
        "状态": "开启" if controller.state.autopilot.enabled else "关闭",
        "延迟": f"{controller.state.autopilot.delay_seconds:g} 秒",
    }))


def main():
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
