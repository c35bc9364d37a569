"""FieldSign CLI — insert values into document fields from the command line.

Usage:
    fieldsign init-db
    fieldsign seed --title "NDA" --recipient "Ada" --field signature --field date
    fieldsign sign <field-id> --token <token> --value "Ada Lovelace"
    fieldsign sign <field-id> --token <token> --value <b64> --base64
    fieldsign show <field-id>
    fieldsign serve [--port 8410]
"""

import logging
import os
import sys
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .config import get_settings
from .db import build_engine, init_db
from .engine import SigningService
from .errors import FieldSignError
from .models import DocumentStatus, FieldRecord, FieldType
from .store import FieldStore

console = Console()


@click.group()
@click.option(
    "--database-url",
    default=None,
    help="SQLAlchemy database URL (default: FIELDSIGN_DATABASE_URL or ~/.fieldsign/fieldsign.db)",
)
@click.pass_context
def main(ctx: click.Context, database_url: Optional[str]) -> None:
    """FieldSign — insert recipient values into document fields."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj["database_url"] = database_url or settings.database_url


def _store(ctx: click.Context) -> FieldStore:
    return FieldStore.from_url(ctx.obj["database_url"], settings=ctx.obj["settings"])


def _field_panel(field: FieldRecord, title: str, border_style: str) -> Panel:
    lines = [
        f"  Field:     {field.id}",
        f"  Type:      {field.field_type.value}",
        f"  Document:  {field.document_id}",
        f"  Recipient: {field.recipient_id if field.recipient_id is not None else '—'}",
        f"  Inserted:  {'yes' if field.inserted else 'no'}",
    ]
    if field.custom_text is not None:
        lines.append(f"  Value:     {escape(field.custom_text)}")
    if field.signature is not None:
        if field.signature.typed_signature:
            lines.append(f"  Signature: {escape(field.signature.typed_signature)} (typed)")
        else:
            size = len(field.signature.signature_image_as_base64 or "")
            lines.append(f"  Signature: image, {size} base64 chars")
    return Panel("\n".join(lines), title=title, border_style=border_style)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@main.command("init-db")
@click.pass_context
def init_db_cmd(ctx: click.Context) -> None:
    """Create the database tables."""
    init_db(build_engine(ctx.obj["database_url"], settings=ctx.obj["settings"]))
    console.print("[bold green]Database ready.[/]")


@main.command()
@click.option("--title", required=True, help="Document title")
@click.option("--recipient", "recipient_name", required=True, help="Recipient display name")
@click.option("--email", default=None, help="Recipient email")
@click.option(
    "--field",
    "field_types",
    multiple=True,
    type=click.Choice([t.value for t in FieldType]),
    help="Field to place for the recipient (repeatable)",
)
@click.pass_context
def seed(
    ctx: click.Context,
    title: str,
    recipient_name: str,
    email: Optional[str],
    field_types: tuple[str, ...],
) -> None:
    """Create a pending document with one recipient and some fields."""
    store = _store(ctx)
    doc = store.create_document(title, status=DocumentStatus.PENDING)
    recipient = store.add_recipient(doc.id, recipient_name, email=email)

    table = Table(title=f"Document {doc.id}: {doc.title}")
    table.add_column("Field", style="cyan", justify="right")
    table.add_column("Type")
    for page, ft in enumerate(field_types or (FieldType.SIGNATURE.value,), start=1):
        field = store.add_field(doc.id, FieldType(ft), recipient_id=recipient.id, page=page)
        table.add_row(str(field.id), field.field_type.value)

    console.print(table)
    console.print(f"Recipient token: [bold]{recipient.token}[/]")


# ---------------------------------------------------------------------------
# Sign
# ---------------------------------------------------------------------------

@main.command()
@click.argument("field_id", type=int)
@click.option("--token", required=True, help="Recipient access token")
@click.option("--value", default="", help="Value, typed signature, or base64 image")
@click.option("--base64", "is_base64", is_flag=True, help="Treat --value as a signature image")
@click.pass_context
def sign(
    ctx: click.Context,
    field_id: int,
    token: str,
    value: str,
    is_base64: bool,
) -> None:
    """Insert a value into a field and mark it signed."""
    service = SigningService(_store(ctx), settings=ctx.obj["settings"])
    try:
        field = service.sign_field(token, field_id, value, is_base64=is_base64)
    except FieldSignError as exc:
        console.print(f"[red]{escape(exc.message)}[/] [dim]({exc.code.value})[/]")
        sys.exit(1)

    console.print(_field_panel(field, "Field signed", "green"))


@main.command()
@click.argument("field_id", type=int)
@click.pass_context
def show(ctx: click.Context, field_id: int) -> None:
    """Show a field and its signature."""
    try:
        field = _store(ctx).get_field(field_id)
    except FieldSignError as exc:
        console.print(f"[red]{escape(exc.message)}[/]")
        sys.exit(1)

    console.print(_field_panel(field, "FieldSign", "cyan"))


# ---------------------------------------------------------------------------
# Serve
# ---------------------------------------------------------------------------

@main.command()
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", default=8410, help="Port")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int) -> None:
    """Start the FieldSign API server."""
    import uvicorn

    # The app builds its own store from settings.
    os.environ["FIELDSIGN_DATABASE_URL"] = ctx.obj["database_url"]
    get_settings.cache_clear()

    console.print(
        f"[bold]FieldSign API[/] listening on [cyan]http://{host}:{port}[/]"
    )
    uvicorn.run(
        "fieldsign.api:app",
        host=host,
        port=port,
        log_level=ctx.obj["settings"].log_level.lower(),
    )


if __name__ == "__main__":
    main()
