"""Moderation console CLI tool (modctl)."""

import typer

app = typer.Typer(name="modctl", help="Moderation console CLI")
db_app = typer.Typer(help="Database management commands")
audit_app = typer.Typer(help="Audit trail commands")
commands_app = typer.Typer(help="Command catalog")
app.add_typer(db_app, name="db")
app.add_typer(audit_app, name="audit")
app.add_typer(commands_app, name="commands")


@db_app.command("init")
def db_init():
    """Create all tables on the configured database."""
    import modconsole.models  # noqa: F401
    from modconsole.db.base import Base
    from modconsole.db.session import engine

    Base.metadata.create_all(bind=engine)
    typer.echo(f"Tables created on {engine.url.render_as_string(hide_password=True)}")


@db_app.command("seed")
def db_seed(
    name: str = typer.Option("Demo Server", help="Community name"),
    password: str = typer.Option("change-me-now", help="Password for the seeded staff accounts"),
):
    """Seed a demo community and sync built-in roles everywhere."""
    from modconsole.db.session import SessionLocal
    from modconsole.db.seeds.seed_community import seed_community
    from modconsole.db.seeds.seed_roles import seed_roles

    db = SessionLocal()
    try:
        community = seed_community(db, name=name, password=password)
        seed_roles(db)
    finally:
        db.close()
    typer.echo(f"Seeded community {community.slug} ({community.id})")


@audit_app.command("verify")
def audit_verify(
    limit: int = typer.Option(0, help="Only check the newest N entries (0 = whole chain)"),
):
    """Re-hash the audit chain and report the first broken link."""
    from modconsole.db.session import SessionLocal
    from modconsole.services.audit_service import AuditService

    db = SessionLocal()
    try:
        result = AuditService.verify_recent(db, limit or None)
    finally:
        db.close()

    if result.ok:
        scope = " (window)" if result.partial else ""
        typer.echo(f"OK: {result.entries_checked} entries verified{scope}")
        return
    typer.echo(
        f"BROKEN at chain index {result.first_broken_index}: {result.reason}",
        err=True,
    )
    raise typer.Exit(code=1)


@commands_app.command("list")
def commands_list():
    """Print the command catalog."""
    from modconsole.commands.registry import COMMANDS

    for cmd in COMMANDS:
        typer.echo(f"  {cmd.id:<22} {cmd.risk_level.value:<7} {cmd.required_permission:<18} {cmd.name}")


@app.command("health")
def health(url: str = typer.Option("http://localhost:8000", help="API base URL")):
    """Ping a running API."""
    import httpx

    try:
        resp = httpx.get(f"{url}/api/health", timeout=5)
    except httpx.HTTPError as exc:
        typer.echo(f"Unreachable: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(resp.json())


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Host"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(False, help="Auto-reload"),
):
    """Start the FastAPI server."""
    import uvicorn
    uvicorn.run("modconsole.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
