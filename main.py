#!/usr/bin/env python3
"""
PO Manager: CLI entry point.

Usage examples:
  python main.py check                              # Verify setup (database, queue cache, mail)
  python main.py vendors import vendors.csv         # Bulk import vendors (duplicates skipped)
  python main.py products add "A4 Paper" --vendor V001 --po-quantity 10
  python main.py queue add <product> --qty 5        # Stage a product for ordering
  python main.py generate                           # One PO per vendor from the queue
  python main.py approve PO-0001 PO-0002
  python main.py reject PO-0003 --reason "Wrong quantity"
  python main.py export PO-0001 --format text --location "Head office"
  python main.py send PO-0001 PO-0002               # One email per vendor
  python main.py whatsapp PO-0001                   # Message and wa.me link

The acting user comes from PO_ACTOR_NAME / PO_ACTOR_ROLE (or --as / --role).
"""
import functools
import json
import logging
import sys
from pathlib import Path

import click

from config import Config
from models.actor import Actor
from postore import permissions as perms
from postore.errors import POStoreError
from postore.store import POStore


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def handle_errors(fn):
    """Print store errors as a one-line message and exit 1."""
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except POStoreError as exc:
            click.echo(f"Error: {exc}", err=True)
            sys.exit(1)
    return wrapper


def _store(ctx: click.Context) -> POStore:
    if ctx.obj.get("store") is None:
        config: Config = ctx.obj["config"]
        config.ensure_output_dir()
        ctx.obj["store"] = POStore(config, actor=ctx.obj["actor"])
        ctx.call_on_close(ctx.obj["store"].close)
    return ctx.obj["store"]


def _require(ctx: click.Context, permission: str) -> Actor:
    return perms.require_permission(ctx.obj["actor"], permission)


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--as", "actor_name", default=None, help="Acting user name (default: PO_ACTOR_NAME)")
@click.option(
    "--role", default=None,
    type=click.Choice(sorted(perms.ROLE_PERMISSIONS)),
    help="Acting user role (default: PO_ACTOR_ROLE or main_admin)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, actor_name: str | None, role: str | None) -> None:
    """PO Manager: queue products, raise purchase orders, approve and export them."""
    ctx.ensure_object(dict)
    _setup_logging(verbose)
    config = Config()
    name = actor_name or config.actor_name
    role = role or config.actor_role
    ctx.obj["config"] = config
    ctx.obj["actor"] = Actor(id=name, name=name, role=role) if name else None
    ctx.obj["store"] = None


# --------------------------------------------------------------------
# check / stats
# --------------------------------------------------------------------

@cli.command()
@click.pass_context
@handle_errors
def check(ctx: click.Context) -> None:
    """Verify that the database, queue cache and mail settings are usable."""
    config: Config = ctx.obj["config"]
    store = _store(ctx)
    actor = ctx.obj["actor"]

    click.echo("\n=== PO Manager Setup Check ===\n")
    click.echo(f"  Database:      {config.db_path}")
    click.echo(f"  Queue cache:   {config.queue_cache_path}  ({len(store.queue)} queued)")
    click.echo(f"  Vendors:       {len(store.vendors())}")
    click.echo(f"  Products:      {len(store.all_products())}")
    click.echo(f"  POs:           {len(store.purchase_orders())}")
    mail = "configured" if config.mail_api_url else "not configured (MAIL_API_URL)"
    click.echo(f"  Mail API:      {mail}")
    who = f"{actor.name} ({actor.role})" if actor else "none (set PO_ACTOR_NAME or --as)"
    click.echo(f"  Acting user:   {who}")
    click.echo()


@cli.command()
@click.pass_context
@handle_errors
def stats(ctx: click.Context) -> None:
    """Dashboard counters."""
    _echo_json(_store(ctx).stats())


# --------------------------------------------------------------------
# vendors
# --------------------------------------------------------------------

@cli.group()
def vendors() -> None:
    """Manage vendors."""


@vendors.command("list")
@click.pass_context
@handle_errors
def vendors_list(ctx: click.Context) -> None:
    for v in _store(ctx).vendors():
        click.echo(f"  {v.display_id or '-':<6} {v.name:<40} {v.contact_person_email}")


@vendors.command("add")
@click.argument("name")
@click.option("--gst", default="")
@click.option("--address", default="")
@click.option("--phone", default="")
@click.option("--contact-name", default="")
@click.option("--contact-email", default="")
@click.pass_context
@handle_errors
def vendors_add(ctx, name, gst, address, phone, contact_name, contact_email) -> None:
    _require(ctx, perms.MANAGE_VENDORS)
    vendor = _store(ctx).add_vendor({
        "name": name, "gst": gst, "address": address, "phone": phone,
        "contact_person_name": contact_name, "contact_person_email": contact_email,
    })
    click.echo(f"✓ Added {vendor.display_id} {vendor.name}")


@vendors.command("import")
@click.argument("csv_path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
@handle_errors
def vendors_import(ctx: click.Context, csv_path: str) -> None:
    """Bulk import vendors from CSV. Names already present are skipped."""
    _require(ctx, perms.MANAGE_VENDORS)
    report = _store(ctx).import_vendors_csv(Path(csv_path))
    click.echo(f"✓ Added {report.added} vendor(s)")
    if report.duplicates:
        click.echo(f"⚠  Skipped {len(report.duplicates)} duplicate(s): {', '.join(report.duplicates)}")


@vendors.command("update")
@click.argument("ref")
@click.option("--name", default=None)
@click.option("--gst", default=None)
@click.option("--address", default=None)
@click.option("--phone", default=None)
@click.option("--contact-name", "contact_person_name", default=None)
@click.option("--contact-email", "contact_person_email", default=None)
@click.pass_context
@handle_errors
def vendors_update(ctx: click.Context, ref: str, **fields) -> None:
    _require(ctx, perms.MANAGE_VENDORS)
    vendor = _store(ctx).update_vendor(ref, {k: v for k, v in fields.items() if v is not None})
    click.echo(f"✓ Updated {vendor.display_id} {vendor.name}")


@vendors.command("delete")
@click.argument("refs", nargs=-1, required=True)
@click.pass_context
@handle_errors
def vendors_delete(ctx: click.Context, refs: tuple[str, ...]) -> None:
    _require(ctx, perms.MANAGE_VENDORS)
    click.echo(f"✓ Deleted {_store(ctx).delete_vendors(refs)} vendor(s)")


# --------------------------------------------------------------------
# products
# --------------------------------------------------------------------

@cli.group()
def products() -> None:
    """Manage products."""


@products.command("list")
@click.option("--view", type=click.Choice(["available", "queued", "low_stock", "all"]), default="available")
@click.option("--vendor", default=None, help="Every product of this vendor (id or V### code)")
@click.pass_context
@handle_errors
def products_list(ctx: click.Context, view: str, vendor: str | None) -> None:
    store = _store(ctx)
    if vendor:
        rows = store.products_for_vendor(vendor)
    else:
        rows = {
            "available": store.products,
            "queued":    store.queued_products,
            "low_stock": store.low_stock_products,
            "all":       store.all_products,
        }[view]()
    for p in rows:
        click.echo(
            f"  {p.id}  {p.display_id or '-':<10} {p.name:<32} "
            f"stock {p.current_stock:>5}/{p.reorder_level:<5} {p.po_status}"
        )


@products.command("add")
@click.argument("name")
@click.option("--vendor", "vendor_id", default=None, help="Vendor id or V### code")
@click.option("--code", "display_id", default=None)
@click.option("--brand", default="")
@click.option("--category", default="")
@click.option("--unit", type=click.Choice(["pcs", "boxes"]), default="pcs")
@click.option("--stock", "current_stock", type=int, default=0)
@click.option("--reorder", "reorder_level", type=int, default=0)
@click.option("--po-quantity", type=int, default=1)
@click.pass_context
@handle_errors
def products_add(ctx: click.Context, name: str, **fields) -> None:
    _require(ctx, perms.MANAGE_PRODUCTS)
    product = _store(ctx).add_product({"name": name, **fields})
    click.echo(f"✓ Added {product.name} ({product.id})")


@products.command("import")
@click.argument("csv_path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
@handle_errors
def products_import(ctx: click.Context, csv_path: str) -> None:
    """Bulk import products from CSV. The vendor column takes an id, V### code or name."""
    _require(ctx, perms.MANAGE_PRODUCTS)
    click.echo(f"✓ Added {_store(ctx).import_products_csv(Path(csv_path))} product(s)")


@products.command("update")
@click.argument("ref")
@click.option("--name", default=None)
@click.option("--vendor", "vendor_id", default=None)
@click.option("--code", "display_id", default=None)
@click.option("--brand", default=None)
@click.option("--category", default=None)
@click.option("--unit", type=click.Choice(["pcs", "boxes"]), default=None)
@click.option("--stock", "current_stock", type=int, default=None)
@click.option("--reorder", "reorder_level", type=int, default=None)
@click.option("--po-quantity", type=int, default=None)
@click.pass_context
@handle_errors
def products_update(ctx: click.Context, ref: str, **fields) -> None:
    _require(ctx, perms.MANAGE_PRODUCTS)
    product = _store(ctx).update_product(ref, {k: v for k, v in fields.items() if v is not None})
    click.echo(f"✓ Updated {product.name}")


@products.command("delete")
@click.argument("refs", nargs=-1, required=True)
@click.pass_context
@handle_errors
def products_delete(ctx: click.Context, refs: tuple[str, ...]) -> None:
    _require(ctx, perms.BULK_DELETE_PRODUCTS if len(refs) > 1 else perms.MANAGE_PRODUCTS)
    click.echo(f"✓ Deleted {_store(ctx).delete_products(refs)} product(s)")


# --------------------------------------------------------------------
# queue
# --------------------------------------------------------------------

@cli.group()
def queue() -> None:
    """Stage products for the next PO run."""


@queue.command("list")
@click.pass_context
@handle_errors
def queue_list(ctx: click.Context) -> None:
    store = _store(ctx)
    for entry in store.queue_entries():
        product = store.product_ids.find(entry.product_id)
        label = product.name if product else entry.product_id
        click.echo(f"  {label:<40} qty {entry.quantity}")
    click.echo(f"\n  {len(store.queue)} product(s) queued; next PO will be {store.next_po_number()}")


@queue.command("add")
@click.argument("refs", nargs=-1, required=True)
@click.option("--qty", type=int, default=None, help="Quantity (default: the product's PO quantity)")
@click.pass_context
@handle_errors
def queue_add(ctx: click.Context, refs: tuple[str, ...], qty: int | None) -> None:
    _require(ctx, perms.CREATE_PO)
    result = _store(ctx).add_batch_to_queue([(ref, qty) for ref in refs])
    click.echo(f"✓ Queued {result.added} product(s), skipped {result.skipped}")


@queue.command("remove")
@click.argument("ref")
@click.pass_context
@handle_errors
def queue_remove(ctx: click.Context, ref: str) -> None:
    _require(ctx, perms.CREATE_PO)
    removed = _store(ctx).remove_from_queue(ref)
    click.echo("✓ Removed" if removed else "Not in queue")


@queue.command("clear")
@click.pass_context
@handle_errors
def queue_clear(ctx: click.Context) -> None:
    _require(ctx, perms.CREATE_PO)
    click.echo(f"✓ Cleared {_store(ctx).clear_queue()} entr(ies)")


# --------------------------------------------------------------------
# purchase orders
# --------------------------------------------------------------------

@cli.command()
@click.option("--only", "selected", multiple=True, help="Only generate for these queued products")
@click.pass_context
@handle_errors
def generate(ctx: click.Context, selected: tuple[str, ...]) -> None:
    """Turn the queue into purchase orders, one per vendor."""
    actor = _require(ctx, perms.CREATE_PO)
    result = _store(ctx).generate_pos(list(selected) or None, actor=actor)
    for order in result.orders:
        click.echo(f"✓ {order.po_number}  {order.vendor_name or '-':<32} {order.total_items} item(s)")
    if result.skipped_product_ids:
        click.echo(
            f"⚠  {len(result.skipped_product_ids)} product(s) left in the queue "
            f"(no vendor): {', '.join(result.skipped_product_ids)}"
        )


@cli.group()
def pos() -> None:
    """Browse and manage purchase orders."""


@pos.command("list")
@click.option("--status", type=click.Choice(["created", "approved", "rejected"]), default=None)
@click.pass_context
@handle_errors
def pos_list(ctx: click.Context, status: str | None) -> None:
    for o in _store(ctx).purchase_orders(status=status):
        click.echo(f"  {o.po_number}  {o.date}  {o.status:<9} {o.vendor_name or '-':<32} {o.total_items} item(s)")


@pos.command("show")
@click.argument("ref")
@click.pass_context
@handle_errors
def pos_show(ctx: click.Context, ref: str) -> None:
    _echo_json(_store(ctx).get_purchase_order(ref).model_dump())


@pos.command("next-number")
@click.pass_context
@handle_errors
def pos_next_number(ctx: click.Context) -> None:
    click.echo(_store(ctx).next_po_number())


@pos.command("delete")
@click.argument("refs", nargs=-1, required=True)
@click.confirmation_option(prompt="Deleting a PO cannot be undone. Continue?")
@click.pass_context
@handle_errors
def pos_delete(ctx: click.Context, refs: tuple[str, ...]) -> None:
    _require(ctx, perms.DELETE_PO)
    report = _store(ctx).delete_purchase_orders(refs)
    for po_number in report.deleted:
        click.echo(f"✓ Deleted {po_number}")
    if report.failed:
        click.echo(f"✗ Could not delete {len(report.failed)}: {', '.join(report.failed)}", err=True)
        sys.exit(1)


@pos.command("logs")
@click.argument("ref", required=False)
@click.pass_context
@handle_errors
def pos_logs(ctx: click.Context, ref: str | None) -> None:
    """Download / send log, for one PO or all."""
    for entry in _store(ctx).download_logs(ref):
        click.echo(f"  {entry.downloaded_at}  {entry.action:<8} {entry.downloaded_by:<20} {entry.location}")


@cli.command()
@click.argument("refs", nargs=-1, required=True)
@click.pass_context
@handle_errors
def approve(ctx: click.Context, refs: tuple[str, ...]) -> None:
    """Approve one or more purchase orders."""
    actor = _require(ctx, perms.BULK_APPROVE_PO if len(refs) > 1 else perms.APPROVE_PO)
    count = _store(ctx).approve_bulk(refs, actor=actor)
    click.echo(f"✓ Approved {count} purchase order(s)")


@cli.command()
@click.argument("ref")
@click.option("--reason", default=None, help="Why the PO was rejected")
@click.pass_context
@handle_errors
def reject(ctx: click.Context, ref: str, reason: str | None) -> None:
    """Reject a purchase order."""
    actor = _require(ctx, perms.APPROVE_PO)
    order = _store(ctx).reject(ref, reason, actor=actor)
    click.echo(f"✓ Rejected {order.po_number}")


@cli.command()
@click.argument("refs", nargs=-1, required=True)
@click.option("--format", "fmt", type=click.Choice(["html", "text"]), default="html")
@click.option("--location", default=None, help="Where the POs are being downloaded to (logged)")
@click.option("--output", "-o", default=None, type=click.Path(), help="Output file (single PO only)")
@click.pass_context
@handle_errors
def export(ctx: click.Context, refs: tuple[str, ...], fmt: str, location: str | None, output: str | None) -> None:
    """Render purchase orders to files and log each download."""
    if output and len(refs) > 1:
        raise click.UsageError("--output can only be used with a single PO")
    actor = _require(ctx, perms.DOWNLOAD_PDF)
    store = _store(ctx)
    documents = store.export_pos(refs, location, fmt, actor=actor)
    suffix = "html" if fmt == "html" else "txt"
    for po_number, document in documents.items():
        out_path = Path(output) if output else store.config.export_dir / f"{po_number}.{suffix}"
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(document, encoding="utf-8")
        click.echo(f"✓ Exported {po_number} to {out_path}")


@cli.command()
@click.argument("refs", nargs=-1, required=True)
@click.pass_context
@handle_errors
def send(ctx: click.Context, refs: tuple[str, ...]) -> None:
    """Email purchase orders to their vendors, one message per vendor."""
    actor = _require(ctx, perms.SEND_MAIL)
    store = _store(ctx)
    if len(refs) == 1:
        result = store.send_po(refs[0], actor=actor)
        results = [{**result, "po_numbers": [refs[0]]}]
    else:
        results = store.send_pos_by_vendor(refs, actor=actor)
    failed = False
    for result in results:
        label = ", ".join(result["po_numbers"])
        if result["status"] == "success":
            click.echo(f"✓ Sent {label}")
        else:
            failed = True
            click.echo(f"✗ Not sent {label}: {result.get('reason') or result.get('error')}", err=True)
    if failed:
        sys.exit(1)


@cli.command()
@click.argument("ref")
@click.pass_context
@handle_errors
def whatsapp(ctx: click.Context, ref: str) -> None:
    """Print the WhatsApp message and wa.me link for a purchase order."""
    _require(ctx, perms.SEND_MAIL)
    share = _store(ctx).whatsapp_message(ref)
    click.echo(share["message"])
    click.echo()
    click.echo(share["url"])


if __name__ == "__main__":
    cli()
