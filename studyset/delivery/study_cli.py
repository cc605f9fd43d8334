"""
studyset: maintenance CLI for study sets, sessions and the audio cache.

Commands:
- studyset sets          - List study sets
- studyset new-set       - Create an empty set
- studyset add           - Append a card to a set
- studyset due           - Show cards due for review
- studyset session       - Show or discard the resumable learn session
- studyset cache-stats   - Show audio cache usage
- studyset cache-clear   - Drop all cached audio
- studyset precache      - Warm the audio cache for a set
- studyset say           - Speak text (cached premium voice or offline)
"""
from __future__ import annotations

import asyncio
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from loguru import logger

from config import Settings, get_settings
from studyset.audio.audio_cache import AudioCache
from studyset.audio.playback import SubprocessAudioPlayer, SystemSpeaker
from studyset.audio.precache import PreCacheCoordinator
from studyset.audio.speech import SpeechService
from studyset.errors import SetFull
from studyset.integrations.elevenlabs_client import ElevenLabsClient
from studyset.study.study_service import StudyService

from .cards import utc_now
from .scheduler import (
    estimate_study_time,
    mastery_label,
    mastery_level,
    next_review_text,
    sort_by_due_date,
)
from .session_store import SessionStore
from .state_store import StateStore

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="studyset",
    help="studyset: flashcard study sets, sessions and speech cache",
    no_args_is_help=True,
)
console = Console()


# =============================================================================
# Component Wiring
# =============================================================================


def _state_store(settings: Settings) -> StateStore:
    return StateStore(settings.get_state_db_path())


def _study_service(settings: Settings) -> StudyService:
    return StudyService(_state_store(settings), SessionStore(settings.get_session_file()))


def _audio_cache(settings: Settings) -> AudioCache:
    return AudioCache.open(settings.get_audio_cache_url(), settings.cache_budget_mb)


def _tts_client(settings: Settings) -> ElevenLabsClient:
    return ElevenLabsClient(
        api_key=settings.elevenlabs_api_key,
        api_url=settings.elevenlabs_api_url,
        model_id=settings.elevenlabs_model_id,
        timeout_ms=settings.tts_timeout_ms,
    )


def _require_set(store: StateStore, set_id: str):
    study_set = store.get_set(set_id)
    if study_set is None:
        console.print(f"[red]Study set not found:[/red] {set_id}")
        raise typer.Exit(1)
    return study_set


# =============================================================================
# Set Commands
# =============================================================================


@app.command()
def sets() -> None:
    """List study sets with due and starred counts."""
    store = _state_store(get_settings())
    all_sets = store.list_sets()

    if not all_sets:
        console.print("[dim]No study sets yet. Create one with 'studyset new-set NAME'.[/dim]")
        return

    table = Table(title="Study Sets")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Cards", justify="right")
    table.add_column("Due", justify="right")
    table.add_column("Starred", justify="right")

    for study_set in all_sets:
        stats = store.get_stats(study_set.id)
        table.add_row(
            study_set.id,
            study_set.name,
            str(stats["total_cards"]),
            f"[yellow]{stats['cards_due']}[/yellow]" if stats["cards_due"] else "0",
            str(stats["cards_starred"]),
        )

    console.print(table)


@app.command("new-set")
def new_set(name: str = typer.Argument(..., help="Name of the study set")) -> None:
    """Create an empty study set."""
    if not name.strip():
        console.print("[red]Set name cannot be empty[/red]")
        raise typer.Exit(1)
    study_set = _state_store(get_settings()).create_set(name)
    console.print(f"[green]Created set[/green] {study_set.name} [dim]({study_set.id})[/dim]")


@app.command()
def add(
    set_id: str = typer.Argument(..., help="Study set ID"),
    term: str = typer.Argument(..., help="Card term"),
    definition: str = typer.Argument(..., help="Card definition"),
) -> None:
    """Append a card to a study set."""
    store = _state_store(get_settings())
    _require_set(store, set_id)
    try:
        card = store.add_card(set_id, term, definition)
    except SetFull as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Added card[/green] {card.term} [dim]({card.id})[/dim]")


@app.command()
def due(
    set_id: str = typer.Argument(..., help="Study set ID"),
    limit: int = typer.Option(20, "--limit", "-l", help="Maximum cards to show"),
) -> None:
    """Show cards due for review, most urgent first."""
    store = _state_store(get_settings())
    study_set = _require_set(store, set_id)

    now = utc_now()
    due_cards = sort_by_due_date(store.get_due_cards(set_id, now))
    cards = store.list_cards(set_id)

    console.print(f"\n[bold cyan]{study_set.name}[/bold cyan]")
    console.print(
        f"{len(due_cards)} of {len(cards)} cards due  |  "
        f"~{estimate_study_time(len(due_cards))} min"
    )

    if not due_cards:
        upcoming = sort_by_due_date(cards)
        if upcoming:
            console.print(
                f"[green]All caught up.[/green] Next review in "
                f"{next_review_text(upcoming[0].stats.due_at if upcoming[0].stats else None, now)}"
            )
        return

    table = Table()
    table.add_column("Term", style="bold")
    table.add_column("Mastery")
    table.add_column("Interval", justify="right")
    table.add_column("Star", justify="center")

    for card in due_cards[:limit]:
        level = mastery_level(card.stats)
        table.add_row(
            card.term,
            f"{mastery_label(level)} ({level})",
            f"{card.stats.interval_days}d" if card.stats else "-",
            "[yellow]*[/yellow]" if card.starred else "",
        )

    console.print(table)


# =============================================================================
# Session Commands
# =============================================================================


@app.command()
def session(
    discard: bool = typer.Option(False, "--discard", help="Discard the saved session"),
) -> None:
    """Show the resumable learn session, if any."""
    service = _study_service(get_settings())
    snapshot = service.resumable_session()

    if snapshot is None:
        console.print("[dim]No resumable learn session.[/dim]")
        return

    if discard:
        service.discard()
        console.print("[yellow]Learn session discarded.[/yellow]")
        return

    study_set = service.state_store.get_set(snapshot.set_id)
    name = study_set.name if study_set else "[red]deleted set[/red]"
    console.print(
        Panel(
            f"Set: {name}\n"
            f"Mode: {snapshot.mode.value}  |  Grading: {snapshot.policy.value}\n"
            f"Answered: {snapshot.questions_answered}  |  Correct: {snapshot.correct_count}\n"
            f"Remaining: {len(snapshot.queue)}  |  Mastered: {len(snapshot.mastered_ids)}\n"
            f"Saved: {snapshot.saved_at.strftime('%Y-%m-%d %H:%M')} UTC",
            title="Learn Session",
            border_style="cyan",
        )
    )


# =============================================================================
# Audio Commands
# =============================================================================


@app.command("cache-stats")
def cache_stats() -> None:
    """Show audio cache usage."""
    settings = get_settings()
    cache = _audio_cache(settings)
    if not cache.available:
        console.print("[yellow]Audio cache unavailable[/yellow]")
        raise typer.Exit(1)

    stats = cache.stats()
    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")
    table.add_row("Entries", str(stats.entries))
    table.add_row("Size", f"{stats.total_bytes / (1024 * 1024):.2f} MB")
    table.add_row("Budget", f"{settings.cache_budget_mb:g} MB")
    table.add_row("Usage", f"{stats.usage_percent:.1f}%")
    console.print(table)


@app.command("cache-clear")
def cache_clear(
    confirm: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Drop all cached audio."""
    if not confirm and not Confirm.ask("Clear the audio cache?", default=False):
        raise typer.Exit(0)

    if not _audio_cache(get_settings()).clear():
        console.print("[red]Could not clear the audio cache[/red]")
        raise typer.Exit(1)
    console.print("[green]Audio cache cleared.[/green]")


@app.command()
def precache(set_id: str = typer.Argument(..., help="Study set ID")) -> None:
    """Warm the audio cache for starred and upcoming cards of a set."""
    settings = get_settings()
    if not settings.has_premium_tts_configured():
        console.print("[yellow]Premium TTS is not configured; nothing to pre-cache.[/yellow]")
        raise typer.Exit(1)

    service = _study_service(settings)
    _require_set(service.state_store, set_id)
    cards = service.precache_candidates(set_id)
    cache = _audio_cache(settings)

    async def _run() -> PreCacheCoordinator:
        async with _tts_client(settings) as client:
            coordinator = PreCacheCoordinator(
                cache,
                client,
                voice_id=settings.selected_voice_id,
                delay_seconds=settings.precache_delay_ms / 1000,
                max_size_mb=settings.cache_budget_mb,
            )
            coordinator.enqueue(cards)
            await coordinator.join()
            return coordinator

    coordinator = asyncio.run(_run())
    console.print(
        f"[green]Pre-cached {coordinator.cached_count} of {len(cards)} cards[/green]"
        + (f"  [red]{coordinator.failed_count} failed[/red]" if coordinator.failed_count else "")
    )


@app.command()
def say(
    text: str = typer.Argument(..., help="Text to speak"),
) -> None:
    """Speak text with the cached premium voice, falling back to offline speech.

    Blocks until playback finishes; Ctrl-C stops it.
    """
    settings = get_settings()
    premium = settings.has_premium_tts_configured()

    async def _run():
        client = _tts_client(settings) if premium else None
        try:
            speech = SpeechService(
                _audio_cache(settings),
                SubprocessAudioPlayer(),
                SystemSpeaker(),
                synthesizer=client,
                voice_id=settings.selected_voice_id,
                use_premium=premium,
                max_size_mb=settings.cache_budget_mb,
            )
            return speech, await speech.speak(text)
        finally:
            if client is not None:
                await client.close()

    speech, handle = asyncio.run(_run())
    if handle is None:
        console.print("[red]No speech output available[/red]")
        raise typer.Exit(1)

    console.print(f"[dim]Speaking ({speech.last_source})...[/dim]")
    try:
        handle.wait()
    except KeyboardInterrupt:
        speech.stop()


# =============================================================================
# Entry Point
# =============================================================================


def configure_logging(level: str = "WARNING", log_file: Optional[str] = None) -> None:
    """Route loguru output to stderr and, optionally, a rotating log file."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<level>{message}</level>",
    )
    if log_file:
        logger.add(
            log_file,
            level="DEBUG",
            rotation="10 MB",
            retention=5,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function} - {message}",
        )


def main() -> None:
    """CLI entry point."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_file)

    app()


if __name__ == "__main__":
    main()
