import asyncio

import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.progress import BarColumn, DownloadColumn, Progress, TextColumn

from coursefs.config import get_config
from coursefs.core import tree as resource_tree
from coursefs.core.models import CascadeResult, UploadEvent
from coursefs.core.walker import LocalDropEntry
from coursefs.errors import ResourceError
from coursefs.service.logging import logger
from coursefs.utils.file_types import format_file_size, get_file_category

console = Console()


async def _with_manager(action):
    """Run `action(manager)` with the database pool open when the backend needs it"""
    from coursefs.dependencies import db_pool, get_resource_manager

    config = get_config()
    if config.resource_backend == "postgres":
        await db_pool.open()
    try:
        return await action(get_resource_manager())
    finally:
        if config.resource_backend == "postgres":
            await db_pool.close()


def _run(action):
    try:
        return asyncio.run(_with_manager(action))
    except ResourceError as e:
        console.print(f"[bold red]Error:[/bold red] {str(e)}")
        raise SystemExit(1)


def display_cascade(result: CascadeResult):
    title = f"{result.operation.capitalize()} {result.source_path}"
    if result.target_path:
        title += f" -> {result.target_path}"

    table = Table(title=title)
    table.add_column("Old path", style="cyan")
    table.add_column("New path", style="green")
    for change in result.applied:
        table.add_row(change.old_path, change.new_path or "[red]deleted[/red]")
    console.print(table)

    if result.dry_run:
        console.print("[yellow]Dry run: nothing was written[/yellow]")
    for failure in result.failed:
        console.print(f"[bold red]Failed:[/bold red] {failure.path}: {failure.error}")


@click.command()
@click.argument('course_id')
@click.argument('path', default="")
def ls(course_id: str, path: str):
    """List a folder's contents, folders first."""
    records = _run(lambda manager: manager.browse(course_id, path))

    table = Table(title=f"{course_id}:/{path}")
    table.add_column("Name", style="green")
    table.add_column("Kind", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Type", style="yellow")
    for record in records:
        table.add_row(
            f"{record.name}/" if record.is_folder else record.name,
            record.kind.value if record.is_folder else get_file_category(record.name, record.mime_type),
            format_file_size(record.size) if record.size is not None else "",
            record.mime_type or "",
        )
    console.print(table)


@click.command()
@click.argument('course_id')
def tree(course_id: str):
    """Print the whole course as an indented tree."""
    nodes = _run(lambda manager: manager.tree(course_id))
    lines = resource_tree.render_text(nodes)
    if not lines:
        console.print(f"Course '{course_id}' has no resources")
        return
    console.print(Panel("\n".join(lines), title=course_id, expand=False))


@click.command()
@click.argument('course_id')
@click.argument('name')
@click.option('--parent', '-p', default="", help='Parent folder path (default: course root)')
def mkdir(course_id: str, name: str, parent: str):
    """Create a folder."""
    record = _run(lambda manager: manager.create_folder(course_id, parent, name))
    console.print(f"[bold green]Created folder '{record.path}'[/bold green]")


@click.command()
@click.argument('course_id')
@click.argument('local_paths', nargs=-1, required=True, type=click.Path(exists=True))
@click.option('--folder', '-f', default="", help='Destination folder path (default: course root)')
def upload(course_id: str, local_paths, folder: str):
    """Upload local files and directories, keeping directory structure."""
    entries = [LocalDropEntry(local_path) for local_path in local_paths]

    with Progress(
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        console=console,
    ) as progress:
        task_id = progress.add_task("Uploading", total=None)

        async def on_event(event: UploadEvent) -> None:
            if event.event == "started":
                progress.update(task_id, total=event.progress.total_bytes, completed=0)
            elif event.event == "progress":
                progress.update(task_id, completed=event.progress.uploaded_bytes)
            elif event.event == "file_failed":
                progress.console.print(f"[bold red]Failed:[/bold red] {event.path}: {event.error}")

        report = _run(lambda manager: manager.upload_drop(course_id, folder, entries, on_event=on_event))

    console.print(
        f"Uploaded {len(report.uploaded)} file(s), "
        f"{format_file_size(report.uploaded_bytes)} of {format_file_size(report.total_bytes)}"
    )
    if not report.ok:
        console.print(f"[bold red]{len(report.failed)} file(s) failed[/bold red]")
        raise SystemExit(1)


@click.command()
@click.argument('course_id')
@click.argument('path')
@click.argument('new_name')
@click.option('--dry-run', is_flag=True, help='Show the affected paths without writing')
def rename(course_id: str, path: str, new_name: str, dry_run: bool):
    """Rename a file or folder; folder contents follow."""
    async def _rename(manager):
        record = await manager.get(course_id, path)
        return await manager.rename(record, new_name, dry_run=dry_run)

    display_cascade(_run(_rename))


@click.command()
@click.argument('course_id')
@click.argument('path')
@click.argument('destination', default="")
@click.option('--dry-run', is_flag=True, help='Show the affected paths without writing')
def mv(course_id: str, path: str, destination: str, dry_run: bool):
    """Move a file or folder into DESTINATION (default: course root)."""
    async def _move(manager):
        record = await manager.get(course_id, path)
        return await manager.move(record, destination, dry_run=dry_run)

    display_cascade(_run(_move))


@click.command()
@click.argument('course_id')
@click.argument('path')
@click.option('--dry-run', is_flag=True, help='Show the affected paths without writing')
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
def rm(course_id: str, path: str, dry_run: bool, yes: bool):
    """Delete a file or folder and everything under it."""
    if not dry_run and not yes:
        click.confirm(f"Delete '{path}' and everything under it?", abort=True)

    async def _delete(manager):
        record = await manager.get(course_id, path)
        return await manager.delete(record, dry_run=dry_run)

    display_cascade(_run(_delete))


@click.command()
@click.option('--host', default="0.0.0.0")
@click.option('--port', default=8000, type=int)
def serve(host: str, port: int):
    """Run the HTTP API."""
    import uvicorn

    logger.info(f"Serving coursefs on {host}:{port}")
    uvicorn.run("coursefs.main:app", host=host, port=port)


@click.group()
def cli():
    pass

cli.add_command(ls)
cli.add_command(tree)
cli.add_command(mkdir)
cli.add_command(upload)
cli.add_command(rename)
cli.add_command(mv)
cli.add_command(rm)
cli.add_command(serve)


if __name__ == '__main__':
    cli()
