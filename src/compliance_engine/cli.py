"""Typer CLI for Compliance-Engine."""

import asyncio
from typing import Optional

import typer
from rich.console import Console

app = typer.Typer(name="compliance", help="Compliance-Engine: social content approval and audit")
console = Console()


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind host"),
    port: int = typer.Option(8080, help="Bind port"),
):
    """Start the Compliance-Engine API server."""
    import uvicorn
    from compliance_engine.app import create_app

    console.print(f"[bold green]Starting Compliance-Engine on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


@app.command()
def health(
    url: str = typer.Option("http://localhost:8080", help="Server URL"),
):
    """Check Compliance-Engine server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green] v{data['version']}")
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


async def _bootstrap(
    org_name: str, slug: str, email: str, password: str, first_name: str, last_name: str,
):
    from compliance_engine.common.tenancy import Actor, UserRole
    from compliance_engine.deps import get_db, get_organization_service, get_user_service

    db = get_db()
    await db.init()
    await db.create_all()
    try:
        actor = Actor.system()
        async with db.get_session() as session:
            org = await get_organization_service().create_organization(
                session, org_name, slug, actor,
            )
            user = await get_user_service().create_user(
                session, email, password, first_name, actor,
                last_name=last_name,
                role=UserRole.ORGANIZATION_ADMIN,
                organization_id=org.id,
            )
            return org.id, user.id
    finally:
        await db.close()


@app.command()
def bootstrap(
    org_name: str = typer.Argument(..., help="Organization display name"),
    slug: str = typer.Argument(..., help="Unique organization slug"),
    email: str = typer.Option(..., help="Admin user email"),
    password: str = typer.Option(..., prompt=True, hide_input=True, help="Admin password"),
    first_name: str = typer.Option("Admin", help="Admin first name"),
    last_name: str = typer.Option("", help="Admin last name"),
):
    """Create an organization and its first organization admin."""
    from compliance_engine.common.exceptions import ComplianceError

    try:
        org_id, user_id = asyncio.run(
            _bootstrap(org_name, slug, email, password, first_name, last_name)
        )
    except ComplianceError as e:
        console.print(f"[bold red]{e.code}[/bold red] {e.message}")
        raise typer.Exit(1)
    console.print(f"[bold green]Organization[/bold green] {org_id}")
    console.print(f"[bold green]Admin user[/bold green] {user_id}")


async def _purge(days: int | None) -> int:
    from compliance_engine.deps import get_audit_service, get_db

    db = get_db()
    await db.init()
    try:
        async with db.get_session() as session:
            return await get_audit_service().purge_older_than(session, days)
    finally:
        await db.close()


@app.command("purge-audit")
def purge_audit(
    days: Optional[int] = typer.Option(None, help="Retention horizon in days (defaults to settings)"),
):
    """Delete audit entries older than the retention horizon."""
    removed = asyncio.run(_purge(days))
    console.print(f"[bold]Removed {removed} audit entries[/bold]")


if __name__ == "__main__":
    app()
