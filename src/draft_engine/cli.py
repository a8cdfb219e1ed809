"""Draft engine CLI using Typer."""

import asyncio
import random
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table
from typing_extensions import Annotated

from .models import Asset, AssetCategory, DraftSession, DraftType, Team, TimerState

app = typer.Typer(help="Live draft turn engine CLI")
console = Console()

SIM_SESSION_ID = 1


def _parse_team_list(value: Optional[str], team_count: int) -> List[int]:
    if not value:
        return []
    if value.strip().lower() == "all":
        return list(range(1, team_count + 1))
    return [int(v) for v in value.split(",") if v.strip()]


def synthetic_assets(per_category: int, seed: int) -> List[Asset]:
    """Scored assets for every category, reproducible for a given seed."""
    rng = random.Random(seed)
    assets = []
    for category in AssetCategory:
        for i in range(1, per_category + 1):
            scored = rng.random() > 0.1
            assets.append(Asset(
                asset_id=i,
                category=category,
                name=f"{category.value.replace('_', ' ').title()} {i}",
                latest_score=round(rng.uniform(0, 100), 1) if scored else None,
            ))
    return assets


@app.command()
def simulate(
    teams: Annotated[int, typer.Option(help="Number of teams")] = 4,
    auto_teams: Annotated[Optional[str], typer.Option("--auto-teams", help="Comma-separated team ids with auto-pick on, or 'all'")] = None,
    time_limit: Annotated[float, typer.Option(help="Seconds per pick")] = 0.05,
    draft_type: Annotated[DraftType, typer.Option(help="Turn rotation")] = DraftType.SNAKE,
    assets_per_category: Annotated[int, typer.Option(help="Synthetic assets per category")] = 12,
    seed: Annotated[int, typer.Option(help="Random seed for synthetic scores")] = 7,
    timeout: Annotated[float, typer.Option(help="Give up after this many seconds")] = 60.0,
):
    """Run a full in-memory draft and print the final board."""
    if teams < 1:
        typer.echo("Error: --teams must be at least 1", err=True)
        raise typer.Exit(1)

    try:
        auto_ids = _parse_team_list(auto_teams, teams)
    except ValueError:
        typer.echo(f"Error: invalid --auto-teams value: {auto_teams}", err=True)
        raise typer.Exit(1)

    typer.echo(f"🏁 Simulating a {draft_type.value} draft for {teams} teams...")
    try:
        board, events, counters = asyncio.run(_run_simulation(
            teams=teams,
            auto_ids=auto_ids,
            time_limit=time_limit,
            draft_type=draft_type,
            assets_per_category=assets_per_category,
            seed=seed,
            timeout=timeout,
        ))
    except asyncio.TimeoutError:
        typer.echo(f"❌ Draft did not complete within {timeout}s", err=True)
        raise typer.Exit(1)

    console.print(board)
    typer.echo("\n📊 Events:")
    for event_type, count in sorted(events.items()):
        typer.echo(f"   {event_type}: {count}")
    typer.echo("\n📈 Metrics:")
    for name, value in sorted(counters.items()):
        typer.echo(f"   {name}: {value}")
    typer.echo("\n🎉 Draft complete!")


async def _run_simulation(teams: int, auto_ids: List[int], time_limit: float, draft_type: DraftType,
                          assets_per_category: int, seed: int, timeout: float):
    from .broadcast import InMemoryBroadcaster
    from .draft_logging import metrics
    from .picks import roster_board
    from .store import InMemoryDraftStore
    from .timer import DraftTimerManager

    session = DraftSession(
        session_id=SIM_SESSION_ID,
        team_ids=list(range(1, teams + 1)),
        pick_time_limit=time_limit,
        draft_type=draft_type,
    )
    store = InMemoryDraftStore()
    store.add_session(session, [
        Team(team_id=t, session_id=SIM_SESSION_ID, name=f"Team {t}", auto_pick_enabled=t in auto_ids)
        for t in session.team_ids
    ])
    store.add_assets(synthetic_assets(assets_per_category, seed))
    broadcaster = InMemoryBroadcaster()
    manager = DraftTimerManager(store, store, broadcaster, tick_interval=max(time_limit / 2, 0.01),
                                restart_delay=0)

    async def wait_for_completion():
        await manager.start_timer(SIM_SESSION_ID)
        while manager.timer_state(SIM_SESSION_ID) != TimerState.COMPLETE:
            await asyncio.sleep(0.01)

    try:
        await asyncio.wait_for(wait_for_completion(), timeout=timeout)
    finally:
        await manager.shutdown()

    board = await roster_board(store, SIM_SESSION_ID)
    table = Table(show_header=True, header_style="bold blue", title="Draft Board")
    table.add_column("Team", style="bold")
    slots = session.slot_config.slot_names()
    for slot in slots:
        table.add_column(slot)
    for team_id, roster in board.items():
        cells = []
        for slot in slots:
            pick = roster[slot]
            if pick is None:
                cells.append("-")
                continue
            asset = await store.get_asset(pick.category, pick.asset_id)
            label = asset.name if asset else str(pick.asset_id)
            cells.append(f"{label} #{pick.pick_number}{' (auto)' if pick.auto else ''}")
        table.add_row(f"Team {team_id}", *cells)

    events = {}
    for event_type in broadcaster.types():
        events[event_type] = events.get(event_type, 0) + 1
    return table, events, metrics.get_metrics()["counters"]


@app.command("init-db")
def init_db(
    db_uri: Annotated[Optional[str], typer.Option("--db-uri", help="Override DB_URI")] = None,
):
    """Create the draft tables."""
    asyncio.run(_init_db(db_uri))


async def _init_db(db_uri: Optional[str]):
    from .config import get_settings
    from .db import close_engine, create_engine_for_url, get_engine
    from .errors import PersistenceError
    from .store import SqlDraftStore

    settings = get_settings()
    url = db_uri or settings.get_database_url()
    engine = create_engine_for_url(url, echo=settings.DB_ECHO) if db_uri else get_engine()
    typer.echo("📡 Creating draft tables...")
    try:
        await SqlDraftStore(engine).create_tables()
    except PersistenceError as e:
        typer.echo(f"❌ Failed to create tables: {e}", err=True)
        raise typer.Exit(1)
    finally:
        if db_uri:
            await engine.dispose()
        else:
            await close_engine()
    typer.echo(f"✅ Tables ready at {url.split('@')[-1]}")


@app.command("show-config")
def show_config():
    """Print the effective settings."""
    from .config import get_settings

    settings = get_settings()
    table = Table(show_header=True, header_style="bold blue", title="Settings")
    table.add_column("Setting")
    table.add_column("Value")
    for name, value in settings.model_dump().items():
        if name == "DB_URI":
            value = str(value).split("@")[-1]
        table.add_row(name, str(value.value if hasattr(value, "value") else value))
    console.print(table)


def main():
    """Entry point for the CLI."""
    from .draft_logging import configure_logging

    configure_logging()
    app()


if __name__ == "__main__":
    app()
