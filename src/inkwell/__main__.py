"""InkWell CLI - inspect and sync the local poem journal."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .config import Config
from .database import init_db
from .defaults import EVENT_LOG_RETENTION_DAYS, config_dir, ensure_config
from .errors import InkwellError
from .local_storage import ApiKeyVault, LocalStorage, SecureStore, mask_key
from .models import PoemStatus, PromptCategory, RecitationPace, ReviewTone, describe_source
from .observability import get_logger as get_event_log
from .providers import (
    DailyPoemCache,
    PoemReviewer,
    PoetryDbClient,
    RhymeClient,
    SpeechClient,
    review_provider,
)
from .session import InkwellSession
from .text_metrics import (
    count_lines,
    count_syllables_per_line,
    count_words,
    hash_poem_body,
    split_stanzas,
    truncate,
)

# Load environment variables from ~/.config/inkwell/.env
dotenv_path = config_dir() / ".env"
if dotenv_path.exists():
    load_dotenv(dotenv_path)

app = typer.Typer(
    name="inkwell",
    help="InkWell - local-first poem journal",
    add_completion=False,
)
keys_app = typer.Typer(help="Manage provider API keys")
app.add_typer(keys_app, name="keys")

console = Console()
logger = logging.getLogger(__name__)


def load_config() -> Config:
    """Load config and set the log level, exiting with a message on failure."""
    try:
        config = Config.from_file()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    return config


def open_vault() -> ApiKeyVault:
    return ApiKeyVault(SecureStore())


def _short(poem_id: str) -> str:
    return poem_id[:8]


@app.command()
def init() -> None:
    """Create the default config file and the local database."""
    config_file = ensure_config()
    db_path = init_db()
    console.print(f"[green]Config: {config_file}[/green]")
    console.print(f"[green]Database: {db_path}[/green]")
    removed = get_event_log().cleanup_old_files(EVENT_LOG_RETENTION_DAYS)
    if removed:
        console.print(f"Removed {removed} event log files older than {EVENT_LOG_RETENTION_DAYS} days")


@app.command()
def stats(
    file: Path = typer.Argument(..., help="Text file holding one poem"),
) -> None:
    """Show word, line, stanza and syllable counts for a poem file."""
    try:
        body = file.read_text(encoding="utf-8")
    except OSError as e:
        console.print(f"[red]Error: cannot read {file}: {e}[/red]")
        raise typer.Exit(1)

    table = Table(title=file.name)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Line")
    table.add_column("Syllables", justify="right", style="cyan")
    for number, (line, syllables) in enumerate(
        zip(body.split("\n"), count_syllables_per_line(body)), 1
    ):
        table.add_row(str(number), line, str(syllables) if line.strip() else "")

    console.print(table)
    console.print(
        f"Words: {count_words(body)}  Lines: {count_lines(body)}  "
        f"Stanzas: {len(split_stanzas(body))}  Hash: {hash_poem_body(body)}"
    )


@app.command()
def poems(
    status: Optional[PoemStatus] = typer.Option(None, "--status", "-s", help="Filter by status"),
    search: Optional[str] = typer.Option(None, "--search", "-q", help="Search title, body and tags"),
    collection: Optional[str] = typer.Option(None, "--collection", "-c", help="Collection id"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum poems to show"),
) -> None:
    """List poems from the local journal."""
    config = load_config()

    async def run() -> list:
        async with InkwellSession(config) as session:
            store = session.poem_store
            if search:
                found = store.search_poems(search)
            elif collection:
                found = store.get_poems_by_collection(collection)
            elif status:
                found = store.get_poems_by_status(status)
            else:
                found = store.get_recent(limit)
            if status and (search or collection):
                found = [poem for poem in found if poem.status == status]
            return found[:limit]

    found = asyncio.run(run())
    if not found:
        console.print("[yellow]No poems found[/yellow]")
        return

    table = Table(title=f"Poems ({len(found)})")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="cyan")
    table.add_column("Status")
    table.add_column("Words", justify="right")
    table.add_column("Source")
    table.add_column("Fav", justify="center")
    for poem in found:
        table.add_row(
            _short(poem.id),
            truncate(poem.title or "Untitled", 40),
            poem.status.value,
            str(poem.word_count),
            describe_source(poem.source),
            "*" if poem.is_favorite else "",
        )
    console.print(table)


@app.command()
def new(
    title: str = typer.Option("", "--title", "-t", help="Poem title"),
    body_file: Optional[Path] = typer.Option(
        None, "--file", "-f", help="Read the body from a file ('-' for stdin)"
    ),
    tags: Optional[list[str]] = typer.Option(None, "--tag", help="Tag, repeatable"),
    form_type: Optional[str] = typer.Option(None, "--form", help="Poetic form"),
) -> None:
    """Create a draft poem."""
    config = load_config()
    if body_file is None:
        body = ""
    elif str(body_file) == "-":
        body = sys.stdin.read()
    else:
        body = body_file.read_text(encoding="utf-8")

    async def run():
        async with InkwellSession(config) as session:
            created = session.poem_store.create_poem(
                title=title,
                body=body,
                tags=tags or [],
                form_type=form_type,
                user_id=config.user_id,
            )
            # The temporary id is gone once the create reconciles
            await session.drain()
            store = session.poem_store
            return store.get_poem_by_id(store.resolve_id(created.id)) or created

    poem = asyncio.run(run())
    console.print(
        f"[green]Created draft {poem.id}[/green] "
        f"({poem.word_count} words, {poem.line_count} lines)"
    )


@app.command()
def sync() -> None:
    """Replace the local snapshot with the server's poems, collections and settings."""
    config = load_config()
    if not config.remote_enabled:
        console.print("[red]Error: no backend url and anon_key configured[/red]")
        raise typer.Exit(1)

    async def run():
        async with InkwellSession(config) as session:
            results = await session.sync_all()
            errors = {
                "poems": session.poem_store.sync_error,
                "collections": session.collection_store.sync_error,
                "settings": session.settings_store.sync_error,
            }
            return results, errors, len(session.poem_store.poems)

    results, errors, poem_count = asyncio.run(run())
    for name, ok in results.items():
        if ok:
            console.print(f"[green]{name}: synced[/green]")
        else:
            console.print(f"[red]{name}: {errors[name]}[/red]")
    console.print(f"{poem_count} poems on this device")
    if not all(results.values()):
        raise typer.Exit(1)


@app.command()
def review(
    poem_id: str = typer.Argument(..., help="Poem id (prefix accepted)"),
    tone: Optional[ReviewTone] = typer.Option(None, "--tone", help="Review tone"),
) -> None:
    """Generate an AI review for a poem and attach it."""
    config = load_config()
    provider = review_provider(config.review_model)
    if provider not in ApiKeyVault.PROVIDERS:
        console.print(f"[red]Error: no key storage for review model {config.review_model}[/red]")
        raise typer.Exit(1)
    api_key = open_vault().get_key(provider)
    if not api_key:
        console.print(f"[red]Error: no {provider} key. Run 'inkwell keys set {provider} KEY'[/red]")
        raise typer.Exit(1)

    async def run():
        async with InkwellSession(config) as session:
            poem = _find_poem(session, poem_id)
            chosen = tone or session.settings_store.settings.review_tone
            result = await PoemReviewer(config).review(
                poem.id,
                poem.title,
                poem.body,
                tone=chosen,
                form_type=poem.form_type,
                api_key=api_key,
            )
            session.poem_store.attach_review(poem.id, result, user_id=config.user_id)
            return result

    try:
        result = asyncio.run(run())
    except InkwellError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[bold]Summary[/bold]\n{result.summary}\n")
    for theme in result.themes:
        console.print(f"[cyan]{theme.name}[/cyan]: {theme.explanation}")
    console.print(f"\n[bold]Structure[/bold]\n{result.structure_analysis}")
    console.print(f"\n[bold]Interpretation[/bold]\n{result.interpretation}")


@app.command()
def recite(
    poem_id: str = typer.Argument(..., help="Poem id (prefix accepted)"),
    voice_id: Optional[str] = typer.Option(None, "--voice", help="ElevenLabs voice id"),
    pace: Optional[RecitationPace] = typer.Option(None, "--pace", help="Reading pace"),
) -> None:
    """Generate an MP3 recitation of a poem."""
    config = load_config()
    api_key = open_vault().get_key("elevenlabs")
    if not api_key:
        console.print("[red]Error: no elevenlabs key. Run 'inkwell keys set elevenlabs KEY'[/red]")
        raise typer.Exit(1)

    async def run():
        async with InkwellSession(config) as session:
            poem = _find_poem(session, poem_id)
            settings = session.settings_store.settings
            client = SpeechClient(model_id=config.speech_model_id)
            voices = await client.list_voices(api_key)
            wanted = voice_id or settings.recitation_voice_id
            voice = next((v for v in voices if v.voice_id == wanted), None)
            if voice is None:
                if not voices:
                    raise InkwellError("No voices available for this key")
                voice = voices[0]
            recitation = await client.save_recitation(
                api_key,
                poem.id,
                poem.body,
                voice,
                config.recitation_dir,
                pace=pace or settings.recitation_pace,
            )
            session.poem_store.add_recitation(poem.id, recitation, user_id=config.user_id)
            return recitation

    try:
        recitation = asyncio.run(run())
    except InkwellError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(
        f"[green]Saved {recitation.file_uri}[/green] "
        f"({recitation.voice_name}, ~{recitation.duration_seconds:.1f}s)"
    )


@app.command()
def rhymes(word: str = typer.Argument(..., help="Word to rhyme")) -> None:
    """Show perfect and near rhymes for a word."""
    config = load_config()
    client = RhymeClient(LocalStorage(config.db_path))
    try:
        result = asyncio.run(client.suggestions(word))
    except InkwellError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[bold]Perfect:[/bold] {', '.join(r.word for r in result.perfect) or '-'}")
    console.print(f"[bold]Near:[/bold] {', '.join(r.word for r in result.near) or '-'}")


@app.command()
def daily(
    refresh: bool = typer.Option(False, "--refresh", help="Ignore the cached poem"),
) -> None:
    """Show today's classic poem."""
    config = load_config()
    cache = DailyPoemCache(PoetryDbClient(), LocalStorage(config.db_path))
    try:
        poem = asyncio.run(cache.get(force_refresh=refresh))
    except InkwellError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[bold]{poem.title}[/bold]")
    console.print(f"[dim]{poem.author}[/dim]\n")
    console.print(poem.body)


@app.command()
def prompt(
    category: Optional[PromptCategory] = typer.Option(None, "--category", help="Prompt category"),
) -> None:
    """Draw a random writing prompt from the backend."""
    config = load_config()

    async def run():
        async with InkwellSession(config) as session:
            if session.prompts is None:
                raise InkwellError("no backend url and anon_key configured")
            return await session.prompts.random_prompt(category)

    try:
        drawn = asyncio.run(run())
    except InkwellError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if drawn is None:
        console.print("[yellow]No prompts available[/yellow]")
        return
    console.print(f"[dim]{drawn.category.value}[/dim]  {drawn.text}")


@app.command()
def forms(
    slug: Optional[str] = typer.Argument(None, help="Show one form in detail"),
) -> None:
    """List the poetry form reference, or describe one form."""
    config = load_config()

    async def run():
        async with InkwellSession(config) as session:
            if session.forms is None:
                raise InkwellError("no backend url and anon_key configured")
            if slug:
                found = await session.forms.fetch_by_slug(slug)
                return [found] if found else []
            return await session.forms.fetch_forms()

    try:
        found = asyncio.run(run())
    except InkwellError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if not found:
        console.print("[yellow]No forms found[/yellow]")
        return

    if slug:
        form = found[0]
        console.print(f"[bold]{form.name}[/bold] [dim]({form.origin})[/dim]")
        console.print(form.description)
        for rule in form.rules:
            console.print(f"  - {rule}")
        if form.rhyme_scheme:
            console.print(f"Rhyme scheme: {form.rhyme_scheme}")
        return

    table = Table(title=f"Forms ({len(found)})")
    table.add_column("Slug", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Lines", justify="right")
    table.add_column("Rhyme")
    for form in found:
        table.add_row(
            form.slug,
            form.name,
            str(form.line_count) if form.line_count else "-",
            form.rhyme_scheme or "-",
        )
    console.print(table)


def _find_poem(session: InkwellSession, poem_id: str):
    """Look a poem up by full id or unique prefix."""
    poem = session.poem_store.get_poem_by_id(poem_id)
    if poem is not None:
        return poem
    matches = [p for p in session.poem_store.poems if p.id.startswith(poem_id)]
    if len(matches) != 1:
        raise InkwellError(
            f"No poem matches '{poem_id}'" if not matches else f"'{poem_id}' is ambiguous"
        )
    return matches[0]


@keys_app.command("set")
def keys_set(
    provider: str = typer.Argument(..., help="anthropic, openai or elevenlabs"),
    api_key: str = typer.Argument(..., help="The API key"),
) -> None:
    """Store a provider API key in the secure store."""
    try:
        open_vault().set_key(provider, api_key)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Saved {provider} key {mask_key(api_key.strip())}[/green]")


@keys_app.command("clear")
def keys_clear(
    provider: Optional[str] = typer.Argument(None, help="Provider; all keys when omitted"),
) -> None:
    """Remove one provider key, or all of them."""
    vault = open_vault()
    try:
        if provider:
            vault.clear_key(provider)
        else:
            vault.clear_all()
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Cleared {provider or 'all'} keys[/green]")


@keys_app.command("show")
def keys_show() -> None:
    """List stored keys, masked."""
    keys = open_vault().get_keys()
    for provider in ApiKeyVault.PROVIDERS:
        value = keys.get(provider)
        console.print(f"{provider}: {mask_key(value) if value else '[dim]not set[/dim]'}")


@keys_app.command("validate")
def keys_validate(
    provider: str = typer.Argument(..., help="anthropic, openai or elevenlabs"),
) -> None:
    """Check a stored key against its provider."""
    config = load_config()
    try:
        api_key = open_vault().get_key(provider)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    if not api_key:
        console.print(f"[red]Error: no {provider} key stored[/red]")
        raise typer.Exit(1)

    if provider == "elevenlabs":
        check = SpeechClient(model_id=config.speech_model_id).validate_api_key(api_key)
    else:
        reviewer = PoemReviewer(config)
        if reviewer.provider != provider:
            console.print(
                f"[red]Error: review model {config.review_model} does not use {provider}[/red]"
            )
            raise typer.Exit(1)
        check = reviewer.validate_api_key(api_key)

    if not asyncio.run(check):
        console.print(f"[red]{provider} key was rejected[/red]")
        raise typer.Exit(1)
    console.print(f"[green]{provider} key works[/green]")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
