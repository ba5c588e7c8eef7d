"""Unified Rich theme and reusable UI helper functions for the CLI."""

from typing import Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.rule import Rule
from rich.table import Table
from rich.theme import Theme

from models.chunk import Chunk
from models.novel import Novel
from models.state import ControllerStatus, InjectionOptions

INJECTOR_THEME = Theme({
    "app.title": "bold",
    "success": "green",
    "warning": "yellow",
    "error": "red",
    "info": "blue",
    "muted": "dim",
    "accent": "cyan",
    "stat.label": "dim",
    "stat.value": "bold",
    "novel.id": "blue",
    "chapter.label": "bold cyan",
})


def get_console() -> Console:
    """Return a Console instance with the injector theme applied."""
    return Console(theme=INJECTOR_THEME)


def app_header(title: str = "novel-injector") -> Rule:
    """Return a Rule element for the application header banner."""
    return Rule(title=f"[bold]{escape(title)}[/]", style="dim")


def command_panel(title: str, fields: dict[str, str]) -> Panel:
    """Return a Panel displaying label/value pairs.

    Args:
        title: Panel title (e.g. "注入设置").
        fields: Ordered dict of label -> value pairs.
    """
    lines = []
    for label, value in fields.items():
        lines.append(f"  [stat.label]{label}:[/] [stat.value]{escape(str(value))}[/]")
    body = "\n".join(lines)
    return Panel(body, title=f"[bold]{title}[/]", box=box.ROUNDED, border_style="dim", padding=(0, 2))


def success_panel(title: str, body: str) -> Panel:
    """Return a green-bordered Panel for success results."""
    return Panel(body, title=f"[success]{title}[/]", box=box.ROUNDED, border_style="green", padding=(0, 2))


def novel_table(novels: list[Novel], active_id: Optional[str] = None) -> Table:
    """Build a table of novels with a progress bar per row."""
    table = Table(title="小说列表", show_lines=True, border_style="dim")
    table.add_column("ID", style="novel.id")
    table.add_column("标题", style="bold")
    table.add_column("段落", justify="right")
    table.add_column("进度", min_width=24)
    table.add_column("上传时间", style="muted")

    for n in novels:
        marker = " [success]●[/]" if n.id == active_id else ""
        bar = Table.grid(padding=(0, 1))
        bar.add_row(
            ProgressBar(total=max(n.total_paragraphs, 1), completed=n.current_paragraph, width=14),
            f"{n.progress_ratio:.0%}",
        )
        table.add_row(
            f"{n.id}{marker}",
            escape(n.title),
            str(n.total_paragraphs),
            bar,
            n.upload_date.replace("T", " "),
        )
    return table


def status_panel(status: ControllerStatus) -> Panel:
    """Return a Panel summarising the controller state."""
    state = "[success]已启用[/]" if status.enabled else "[muted]已禁用[/]"
    title = escape(status.active_novel_title) if status.active_novel_title else "-"
    autopilot = "开启" if status.autopilot_enabled else "关闭"
    armed = " [warning](计时中)[/]" if status.autopilot_armed else ""
    body = (
        f"  [stat.label]状态:[/] {state}\n"
        f"  [stat.label]当前小说:[/] [stat.value]{title}[/] [muted]{status.active_novel_id or ''}[/]\n"
        f"  [stat.label]进度:[/] [stat.value]{status.current_progress or '-'}[/]\n"
        f"  [stat.label]自动驾驶:[/] [stat.value]{autopilot}[/] "
        f"[muted]延迟 {status.autopilot_delay:g} 秒[/]{armed}"
    )
    return Panel(body, title="[bold]注入状态[/]", box=box.ROUNDED, border_style="dim", padding=(0, 2))


def options_panel(options: InjectionOptions) -> Panel:
    return command_panel("注入设置", {
        "目标字数": options.effective_word_count,
        "前缀模板": options.prefix_template or "(无)",
        "折叠内容": "是" if options.collapse_content else "否",
    })


def chunk_preview_panel(chunk: Chunk, preview: str) -> Panel:
    """Return a Panel previewing the next chunk without delivering it."""
    body = (
        f"  [stat.label]章节:[/] [chapter.label]{escape(chunk.chapter)}[/]\n"
        f"  [stat.label]段落:[/] {chunk.start_paragraph + 1}-{chunk.end_paragraph} "
        f"[muted]({chunk.paragraph_count} 段, {chunk.word_count} 字)[/]\n\n"
        f"{escape(preview)}"
    )
    return Panel(body, title="[bold]下一段内容[/]", box=box.ROUNDED, border_style="cyan", padding=(0, 2))


def delivered_panel(text: str) -> Panel:
    """Return a Panel showing exactly what was sent downstream."""
    return Panel(escape(text), title="[bold]发送内容[/]", box=box.ROUNDED, border_style="green", padding=(0, 1))
