"""
Bangla10 CLI - Ten minutes of Bangla a day.

Commands:
    bangla10 plan              - Show today's session plan
    bangla10 review            - Run today's study session
    bangla10 review --extra    - Extra practice on learned phrases
    bangla10 stats             - Streak, totals, weekly tracker
    bangla10 sync              - Push local progress now
    bangla10 export PATH       - Write a progress backup
    bangla10 import PATH       - Restore a progress backup
    bangla10 prayer status     - Recitation memorisation progress
    bangla10 prayer mark ...   - Set a chunk's status
    bangla10 serve             - Run the progress API
"""

from __future__ import annotations

import asyncio
import sys
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, TypeVar

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from bangla10.config import get_settings
from bangla10.core.context import TrainerContext
from bangla10.core.errors import ValidationError
from bangla10.delivery.catalog import Drill
from bangla10.delivery.prayer import CHUNK_STATUSES
from bangla10.delivery.scheduler import Rating
from bangla10.delivery.session import (
    QUICK_TEST_SECONDS,
    StudySession,
    finalize_session,
    start_session,
    weekly_tracker,
)

T = TypeVar("T")

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="bangla10",
    help="Bangla10 - daily spaced-repetition trainer for spoken Bangla",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

prayer_app = typer.Typer(
    name="prayer",
    help="Prayer recitation memorisation",
    no_args_is_help=True,
)
app.add_typer(prayer_app, name="prayer")

console = Console()

STATUS_STYLES = {
    "new": "dim",
    "practicing": "yellow",
    "memorised": "green",
}


def _run(action: Callable[[TrainerContext], Awaitable[T]]) -> T:
    """Run one command while sync bootstraps in the background, flushing sync on exit."""

    async def runner() -> T:
        ctx = TrainerContext.create(get_settings())
        try:
            await ctx.start()
            return await action(ctx)
        finally:
            await ctx.close()

    return asyncio.run(runner())


def _sync_line(ctx: TrainerContext) -> str:
    status = ctx.orchestrator.status()
    if not status["enabled"]:
        return "[dim]Sync: local only[/]"
    if not status["bootstrapped"]:
        return "[dim]Sync: connecting[/]"
    if status["last_error"]:
        return f"[yellow]Sync: {status['last_error']}[/]"
    pending = " (pending)" if status["dirty"] else ""
    return f"[green]Sync: revision {status['revision']}{pending}[/]"


async def _run_drill(drill: Drill) -> None:
    """Walk through a conversation drill one line at a time."""
    console.print(Panel(f"[bold]{drill.title}[/]\n{drill.description}", title="Conversation drill"))
    for line in drill.lines:
        style = "cyan" if line.speaker == "you" else "magenta"
        console.print(
            f"[{style}]{line.label}:[/] [bold]{line.bangla}[/]  [dim]{line.phonetic}[/]\n    {line.english}"
        )
        await asyncio.to_thread(Prompt.ask, "[dim]Enter for next line[/]", default="", show_default=False)
    console.print(f"[dim]{drill.cultural_note or 'Keep tone warm and respectful.'}[/]")


async def _run_quick_test(session: StudySession) -> None:
    """Ask each quick-test question; answers slower than the time limit count as wrong."""
    console.print(Panel(f"{len(session.questions)} questions, {QUICK_TEST_SECONDS}s each", title="Quick test"))
    for idx, question in enumerate(session.questions, 1):
        prompt = question.prompt
        if question.prompt_secondary:
            prompt += f"  [dim]{question.prompt_secondary}[/]"
        options = Table(show_header=False, box=None)
        options.add_column("Index", style="cyan", justify="right", width=4)
        options.add_column("Option")
        for number, option in enumerate(question.options, 1):
            options.add_row(f"[{number}]", option)
        console.print(Panel(options, title=f"{idx}. {question.instruction}: {prompt}", border_style="yellow"))

        started = time.monotonic()
        answer = await asyncio.to_thread(
            Prompt.ask, "Answer", choices=[str(n) for n in range(1, len(question.options) + 1)]
        )
        in_time = time.monotonic() - started <= QUICK_TEST_SECONDS
        correct = in_time and question.is_correct(question.options[int(answer) - 1])
        session.answer_quick_test(correct)

        if correct:
            console.print("[green]Correct[/]")
        elif not in_time:
            console.print(f"[yellow]Too slow[/] [dim]{question.correct}[/]")
        else:
            console.print(f"[red]Not quite[/] [dim]{question.correct}[/]")


# =============================================================================
# Study Commands
# =============================================================================


@app.command()
def plan(
    extra: Annotated[
        bool, typer.Option("--extra", "-x", help="Extra practice on learned phrases")
    ] = False,
) -> None:
    """Show today's session plan without starting it."""

    async def action(ctx: TrainerContext) -> None:
        session_plan = ctx.planner.build_plan(extra_practice=extra)
        if session_plan.is_empty:
            console.print("[yellow]Nothing to study. Add content or come back tomorrow.[/]")
            return

        table = Table(title=f"Plan for {session_plan.date}")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Kind")
        table.add_column("English", style="cyan")
        table.add_column("Bangla", style="green")

        for idx, item in enumerate(session_plan.items, 1):
            phrase = ctx.catalog.get(item.phrase_id)
            kind = "[magenta]new[/]" if item.kind == "new" else "review"
            table.add_row(str(idx), kind, phrase.english if phrase else item.phrase_id, phrase.bangla if phrase else "")

        console.print(table)
        console.print(
            f"{session_plan.review_count} review + {session_plan.new_count} new, "
            f"about {session_plan.estimated_minutes:g} min"
        )

    _run(action)


@app.command()
def review(
    extra: Annotated[
        bool, typer.Option("--extra", "-x", help="Extra practice on learned phrases")
    ] = False,
) -> None:
    """
    Run today's study session.

    Each card shows one side of a phrase; reveal it, then rate your recall
    (again / hard / good / easy). A conversation drill and a timed
    multiple-choice quick test follow the cards.
    """

    async def action(ctx: TrainerContext) -> None:
        session = start_session(ctx.planner, extra_practice=extra)
        if session is None:
            console.print("[yellow]Nothing to study right now. Great job![/]")
            return

        total = len(session.plan.items)
        console.print(
            Panel(
                f"[bold cyan]{'EXTRA PRACTICE' if extra else 'DAILY SESSION'}[/]\n"
                f"{session.plan.review_count} review + {session.plan.new_count} new",
                border_style="cyan",
            )
        )

        for idx, item in enumerate(session.plan.items, 1):
            phrase = ctx.catalog.get(item.phrase_id)
            if phrase is None:
                continue

            if item.direction == "bn-to-en":
                front = f"[bold]{phrase.bangla}[/]  [dim]{phrase.phonetic}[/]"
                back = f"[bold green]{phrase.english}[/]"
            else:
                front = f"[bold]{phrase.english}[/]"
                back = f"[bold green]{phrase.bangla}[/]  [dim]{phrase.phonetic}[/]"

            console.print(Panel(front, title=f"{idx}/{total} {item.kind}"))
            await asyncio.to_thread(Prompt.ask, "[dim]Enter to reveal[/]", default="", show_default=False)
            console.print(back)

            choice = await asyncio.to_thread(
                Prompt.ask, "Rating", choices=[r.value for r in Rating], default=Rating.GOOD.value
            )
            updated = session.rate(ctx.planner, item.phrase_id, choice)
            console.print(f"[dim]box {updated.box}, next review {updated.next_review}[/]")

        drill = ctx.catalog.get_drill(session.drill_id)
        if drill is not None and drill.lines:
            await _run_drill(drill)

        if session.questions:
            await _run_quick_test(session)

        summary = finalize_session(ctx.store, session)

        table = Table(title="Session Complete")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")
        table.add_row("Minutes", str(summary.elapsed_minutes))
        table.add_row("Reviewed", str(summary.reviewed))
        table.add_row("New", str(summary.new_learned))
        table.add_row("Accuracy", f"{summary.accuracy}%")
        if summary.quick_total:
            table.add_row("Quick test", f"{summary.quick_correct}/{summary.quick_total} ({session.quick_score}%)")
        table.add_row("Streak", str(ctx.store.stats.get("currentStreak", 0)))
        console.print(table)

    _run(action)


@app.command()
def stats() -> None:
    """Show streak, totals, this week's sessions and category progress."""

    async def action(ctx: TrainerContext) -> None:
        s = ctx.store.stats
        table = Table(title="Progress")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")
        table.add_row("Current streak", str(s.get("currentStreak", 0)))
        table.add_row("Longest streak", str(s.get("longestStreak", 0)))
        table.add_row("Sessions", str(s.get("totalSessions", 0)))
        table.add_row("Minutes", str(s.get("totalMinutes", 0)))
        table.add_row("Phrases learned", f"{s.get('phrasesLearned', 0)} / {len(ctx.catalog)}")
        table.add_row("Correct / incorrect", f"{s.get('totalCorrect', 0)} / {s.get('totalIncorrect', 0)}")
        console.print(table)

        week = " ".join(
            f"[green]{day['label']}[/]" if day["done"] else f"[dim]{day['label']}[/]"
            for day in weekly_tracker(ctx.store)
        )
        console.print(f"This week: {week}")

        categories = ctx.catalog.category_stats(ctx.store.phrases)
        if categories:
            cat_table = Table(title="Categories")
            cat_table.add_column("Category", style="cyan")
            cat_table.add_column("Learned", justify="right")
            cat_table.add_column("Mastered", justify="right")
            for row in categories:
                cat_table.add_row(
                    row["title"],
                    f"{row['learnedCount']}/{row['starterCount']}",
                    str(row["masteryCount"]),
                )
            console.print(cat_table)

        console.print(_sync_line(ctx))

    _run(action)


# =============================================================================
# Sync & Backup Commands
# =============================================================================


@app.command()
def sync() -> None:
    """Push unsynced local progress now and show the sync status."""

    async def action(ctx: TrainerContext) -> None:
        ctx.orchestrator.schedule_sync(immediate=True)
        await ctx.orchestrator.drain()

        status = ctx.orchestrator.status()
        table = Table(title="Sync Status")
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="green")
        for key in ("enabled", "can_write", "revision", "last_synced_at", "dirty", "last_error"):
            table.add_row(key, str(status[key]))
        console.print(table)

    _run(action)


@app.command("export")
def export_backup(
    output: Annotated[Path, typer.Argument(help="Backup file to write")],
) -> None:
    """Write the full progress document to a JSON backup file."""

    async def action(ctx: TrainerContext) -> None:
        output.write_text(ctx.store.export_backup(), encoding="utf-8")
        console.print(f"[green]Backup written to {output}[/]")

    _run(action)


@app.command("import")
def import_backup(
    input_file: Annotated[Path, typer.Argument(help="Backup file to restore")],
) -> None:
    """Replace local progress with a JSON backup."""
    if not input_file.exists():
        console.print(f"[red]File not found: {input_file}[/]")
        raise typer.Exit(1)

    text = input_file.read_text(encoding="utf-8")

    async def action(ctx: TrainerContext) -> bool:
        try:
            ctx.store.import_backup(text)
        except ValidationError as e:
            console.print(f"[red]{e}[/]")
            return False
        console.print(f"[green]Imported {len(ctx.store.phrases)} phrase schedules[/]")
        return True

    if not _run(action):
        raise typer.Exit(1)


# =============================================================================
# Prayer Commands
# =============================================================================


@prayer_app.command("status")
def prayer_status() -> None:
    """Show memorisation progress for every recitation."""

    async def action(ctx: TrainerContext) -> None:
        overview = ctx.prayer.overall_progress()
        if not overview["rows"]:
            console.print("[yellow]No recitations loaded.[/]")
            return

        table = Table(title="Recitations")
        table.add_column("ID", style="dim")
        table.add_column("Title", style="cyan")
        table.add_column("Status")
        table.add_column("Memorised", justify="right")
        for recitation, progress in overview["rows"]:
            style = STATUS_STYLES.get(progress.status, "white")
            table.add_row(
                recitation.id,
                recitation.title,
                f"[{style}]{progress.status}[/]",
                f"{progress.memorised}/{progress.total}",
            )
        console.print(table)

        target = ctx.prayer.choose_today_target()
        if target is not None:
            console.print(f"Today: [bold]{target.recitation.title}[/], chunk {target.next_chunk_id}")

    _run(action)


@prayer_app.command("mark")
def prayer_mark(
    recitation_id: Annotated[str, typer.Argument(help="Recitation ID")],
    chunk_id: Annotated[str, typer.Argument(help="Chunk ID")],
    status: Annotated[str, typer.Argument(help="new, practicing or memorised")],
) -> None:
    """Set one chunk's memorisation status."""
    if status not in CHUNK_STATUSES:
        console.print(f"[red]Status must be one of: {', '.join(CHUNK_STATUSES)}[/]")
        raise typer.Exit(1)

    async def action(ctx: TrainerContext) -> bool:
        try:
            ctx.prayer.update_chunk_status(recitation_id, chunk_id, status)
        except KeyError as e:
            console.print(f"[red]{e.args[0]}[/]")
            return False
        console.print(f"[green]{recitation_id}/{chunk_id} -> {status}[/]")
        return True

    if not _run(action):
        raise typer.Exit(1)


# =============================================================================
# Service Commands
# =============================================================================


@app.command()
def serve(
    reload: Annotated[bool, typer.Option("--reload", help="Auto-reload on code changes")] = False,
) -> None:
    """Run the progress API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "bangla10.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """CLI entry point."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=get_settings().log_level,
        format="<level>{message}</level>",
    )

    app()


if __name__ == "__main__":
    main()
