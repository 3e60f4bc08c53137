"""Command-line entrypoints for building, importing, exporting, and paying invoices."""
from __future__ import annotations

import functools
from decimal import Decimal
from pathlib import Path
from typing import Callable, List, Optional

import typer
from rich import print
from rich.console import Console
from rich.table import Table

from . import editor
from .config import get_settings
from .errors import InvoiceBuilderError, ValidationError
from .importer import ImportSession, INVOICE_FIELDS
from .logging_config import setup_logging
from .payment import PaymentBridge, checkout_client_from_settings, payment_link
from .renderer import export_invoice
from .schemas import AppSettings, CustomerType, Invoice, get_currency
from .storage import InvoiceStore, save_invoice, summarize
from .utils import parse_date

app = typer.Typer(add_completion=False, help="Invoice builder CLI")
console = Console()


def _store(ctx: typer.Context) -> InvoiceStore:
    return InvoiceStore.open(ctx.obj["data_dir"])


def _require_invoice(store: InvoiceStore, invoice_number: str) -> Invoice:
    invoice = store.get(invoice_number)
    if invoice is None:
        raise ValidationError(f"Invoice {invoice_number} not found", errors=["missing: invoice"])
    return invoice


def handle_errors(func: Callable) -> Callable:
    """Turn invoice builder errors into a red message and exit code 1."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except InvoiceBuilderError as exc:
            print(f"[red]Error:[/red] {exc.message}")
            for err in getattr(exc, "errors", []):
                print(f"- {err}")
            raise typer.Exit(code=1)

    return wrapper


def _parse_item(text: str) -> dict:
    """``product:quantity:price[:category[:type]]``"""
    parts = text.split(":")
    if len(parts) < 3:
        raise ValidationError(f"Item '{text}' must look like product:quantity:price[:category[:type]]")
    parts += [""] * (5 - len(parts))
    product, quantity, price, category, product_type = parts[:5]
    return {"product": product, "quantity": quantity, "price": price, "category": category, "type": product_type}


def _print_invoice_table(invoices: List[Invoice], settings: AppSettings) -> None:
    if not invoices:
        print("No saved invoices yet")
        return
    table = Table(title=f"Invoices ({len(invoices)})")
    table.add_column("Number")
    table.add_column("Date")
    table.add_column("Customer")
    table.add_column("Status")
    table.add_column("Total", justify="right")
    for inv in invoices:
        table.add_row(
            inv.invoice_number,
            inv.date.isoformat(),
            inv.customer,
            inv.status.value,
            settings.currency.format(inv.total_amount),
        )
    console.print(table)
    summary = summarize(invoices)
    print(
        f"Paid: [green]{summary.paid}[/green]  Pending: [blue]{summary.pending}[/blue]  "
        f"Total revenue: [bold]{settings.currency.format(summary.total_revenue)}[/bold]"
    )


@app.callback()
def main_options(
    ctx: typer.Context,
    data_dir: Optional[Path] = typer.Option(None, help="Directory holding invoices.json and app-settings.json"),
    log_level: Optional[str] = typer.Option(None, help="DEBUG, INFO, WARNING, ERROR"),
) -> None:
    setup_logging(log_level)
    ctx.obj = {"data_dir": data_dir or get_settings().data_dir}


@app.command()
@handle_errors
def new(
    ctx: typer.Context,
    customer: str = typer.Option(..., help="Customer name"),
    item: List[str] = typer.Option(..., help="product:quantity:price[:category[:type]], repeatable"),
    email: str = typer.Option("", help="Customer email"),
    address: str = typer.Option("", help="Customer address"),
    customer_type: CustomerType = typer.Option(CustomerType.INDIVIDUAL, help="Customer type"),
    tax_rate: Optional[float] = typer.Option(None, help="Tax rate in percent"),
    production_cost: Optional[float] = typer.Option(None, help="Production cost"),
    due: Optional[str] = typer.Option(None, help="Due date"),
    platform: Optional[str] = typer.Option(None, help="Sales platform"),
    notes: Optional[str] = typer.Option(None, help="Notes printed on the invoice"),
) -> None:
    """Create and save a new invoice."""
    store = _store(ctx)
    state = editor.AppState.initial(store.load_settings())
    actions: list = [
        editor.SetCustomer(customer),
        editor.SetCustomerEmail(email),
        editor.SetCustomerAddress(address),
        editor.SetCustomerType(customer_type),
        editor.SetPlatform(platform),
        editor.SetNotes(notes),
    ]
    if tax_rate is not None:
        actions.append(editor.SetTaxRate(Decimal(str(tax_rate))))
    if production_cost is not None:
        actions.append(editor.SetProductionCost(Decimal(str(production_cost))))
    if due:
        due_date = parse_date(due)
        if due_date is None:
            raise ValidationError(f"Could not read due date '{due}'")
        actions.append(editor.SetDueDate(due_date))
    for state_action in actions:
        state = editor.reduce(state, state_action)

    for index, entry in enumerate(item):
        fields = _parse_item(entry)
        if index > 0:
            state = editor.reduce(state, editor.AddItem())
        item_id = state.invoice.items[-1].id
        for state_action in (
            editor.SetItemProduct(item_id, fields["product"]),
            editor.SetItemQuantity(item_id, fields["quantity"]),
            editor.SetItemPrice(item_id, fields["price"]),
            editor.SetItemCategory(item_id, fields["category"]),
            editor.SetItemProductType(item_id, fields["type"]),
        ):
            state = editor.reduce(state, state_action)

    saved = save_invoice(store, state.invoice)
    print(f"Saved invoice [bold]{saved.invoice_number}[/bold] total {state.settings.currency.format(saved.total_amount)}")


@app.command("list")
@handle_errors
def list_invoices(ctx: typer.Context) -> None:
    """List saved invoices, newest first."""
    store = _store(ctx)
    _print_invoice_table(store.load(), store.load_settings())


@app.command()
@handle_errors
def show(ctx: typer.Context, invoice_number: str = typer.Argument(..., help="Invoice number")) -> None:
    """Print one invoice as JSON."""
    invoice = _require_invoice(_store(ctx), invoice_number)
    console.print_json(data=invoice.to_json_dict())


@app.command()
@handle_errors
def delete(ctx: typer.Context, invoice_number: str = typer.Argument(..., help="Invoice number")) -> None:
    """Delete an invoice by number."""
    store = _store(ctx)
    before = len(store.load())
    remaining = store.delete(invoice_number)
    if len(remaining) == before:
        print(f"[yellow]Invoice {invoice_number} not found[/yellow]")
    else:
        print(f"Invoice {invoice_number} has been deleted.")


def _run_import(session: ImportSession, mapping: List[str]) -> None:
    table = session.parse()
    print(f"Parsed {len(table.rows)} row(s), dropped {table.dropped}")
    overrides = dict(session.mapping)
    for pair in mapping:
        key, _, column = pair.partition("=")
        if key not in {f.key for f in INVOICE_FIELDS}:
            raise ValidationError(f"Unknown field '{key}'", errors=[f"format: mapping {pair}"])
        overrides[key] = column
    for key, column in session.map(overrides).items():
        print(f"  {key} <- {column}")
    outcome = session.run()
    colour = "green" if outcome.success else "red"
    print(f"[{colour}]{outcome.title}:[/{colour}] {outcome.message}")
    if not outcome.success:
        raise typer.Exit(code=1)


@app.command("import-csv")
@handle_errors
def import_csv(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="CSV file with a header row"),
    map_: List[str] = typer.Option([], "--map", help="field=Column overrides, e.g. customer='Client'"),
    quoted: bool = typer.Option(False, help="Honour quoted fields containing commas"),
) -> None:
    """Import one invoice per CSV row."""
    store = _store(ctx)
    session = ImportSession(store=store, settings=store.load_settings(), quoted=quoted)
    session.select_file(path)
    _run_import(session, map_)


@app.command("import-sheet")
@handle_errors
def import_sheet(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Shareable Google Sheets link"),
    sheet: str = typer.Option("Sheet1", help="Sheet tab name"),
    map_: List[str] = typer.Option([], "--map", help="field=Column overrides"),
) -> None:
    """Import one invoice per row of a public Google Sheet."""
    store = _store(ctx)
    session = ImportSession(store=store, settings=store.load_settings())
    session.select_sheet(url, sheet)
    _run_import(session, map_)


@app.command()
@handle_errors
def render(
    ctx: typer.Context,
    invoice_number: str = typer.Argument(..., help="Invoice number"),
    output_dir: Path = typer.Option(Path("."), help="Where to write the document"),
    language: str = typer.Option("en", help="en or pt"),
    html: bool = typer.Option(False, "--html", help="Write HTML instead of PDF"),
) -> None:
    """Export an invoice; a draft is marked as sent."""
    store = _store(ctx)
    invoice = _require_invoice(store, invoice_number)
    path = export_invoice(store, invoice, store.load_settings().currency, output_dir, language=language, as_pdf=not html)
    print(f"Wrote {path}")


@app.command()
@handle_errors
def pay(ctx: typer.Context, invoice_number: str = typer.Argument(..., help="Invoice number")) -> None:
    """Open a checkout session for an invoice."""
    store = _store(ctx)
    invoice = _require_invoice(store, invoice_number)
    with checkout_client_from_settings(get_settings()) as client:
        session = PaymentBridge(client, store).create_session(invoice)
    store.upsert(invoice.model_copy(update={"checkout_session_id": session.session_id}))
    print(f"Checkout session: [bold]{session.session_id}[/bold]")
    print(f"Payment link: {payment_link(get_settings().public_base_url, invoice_number)}")


@app.command()
@handle_errors
def status(
    ctx: typer.Context,
    invoice_number: str = typer.Argument(..., help="Invoice number"),
    session_id: Optional[str] = typer.Option(None, help="Checkout session id (defaults to the last one)"),
) -> None:
    """Check a checkout session and mark the invoice paid when it is."""
    store = _store(ctx)
    invoice = _require_invoice(store, invoice_number)
    session_id = session_id or invoice.checkout_session_id
    if not session_id:
        raise ValidationError(f"Invoice {invoice_number} has no checkout session")
    with checkout_client_from_settings(get_settings()) as client:
        updated = PaymentBridge(client, store).reconcile(invoice, session_id)
    print(f"Invoice {invoice_number}: [bold]{updated.status.value}[/bold]")


@app.command("settings")
@handle_errors
def settings_command(
    ctx: typer.Context,
    currency: Optional[str] = typer.Option(None, help="Currency code, e.g. EUR"),
    prefix: Optional[str] = typer.Option(None, help="Invoice number prefix"),
) -> None:
    """Show or update currency and invoice prefix."""
    store = _store(ctx)
    current = store.load_settings()
    if currency is None and prefix is None:
        print(f"Currency: {current.currency.code} ({current.currency.symbol})  Prefix: {current.invoice_prefix}")
        return
    updates: dict = {}
    if currency is not None:
        found = get_currency(currency)
        if found is None:
            raise ValidationError(f"Unknown currency '{currency}'")
        updates["currency"] = found
    if prefix is not None:
        updates["invoice_prefix"] = prefix
    store.save_settings(current.model_copy(update=updates))
    print("Your invoice preferences have been saved.")


def main():
    app()


if __name__ == "__main__":
    main()
