"""
Command-line interface for invoice normalization and reporting.
"""

import json
import logging
import os
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List

import typer

from invoice_ops.invoice_adapter import build_invoice_payload, map_invoice_from_api
from invoice_ops.report import generate_report_data

logger = logging.getLogger(__name__)

LOG_LEVEL_ENV = "INVOICE_OPS_LOG_LEVEL"

app = typer.Typer()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log defaulted and dropped fields")
):
    """
    Normalize invoices and build reports from JSON exports.
    """
    level_name = "DEBUG" if verbose else os.getenv(LOG_LEVEL_ENV, "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _json_default(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _read_json(path_str: str) -> Any:
    """Read a JSON file, exiting with code 1 on a missing file or bad JSON."""
    path = Path(path_str)

    if not path.exists():
        typer.echo(f"Error: Input file '{path_str}' does not exist", err=True)
        raise typer.Exit(code=1)

    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        typer.echo(f"Error: Invalid JSON in '{path_str}': {e}", err=True)
        raise typer.Exit(code=1)
    except OSError as e:
        typer.echo(f"Error reading '{path_str}': {e}", err=True)
        raise typer.Exit(code=1)


def _read_records(path_str: str) -> List[Dict[str, Any]]:
    """Read a JSON list of objects; a single object is treated as a list of one."""
    data = _read_json(path_str)

    if isinstance(data, dict):
        return [data]
    if not isinstance(data, list):
        typer.echo(f"Error: '{path_str}' must contain a JSON object or a list of objects", err=True)
        raise typer.Exit(code=1)
    return data


def _write_json(path_str: str, data: Any) -> Path:
    output_path = Path(path_str)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False, default=_json_default)
    return output_path


def _print_summary(summary: Dict[str, Any], top_customers: List[Dict[str, Any]]):
    """Print human-readable report summary to stdout."""
    print(f"\n{'='*60}")
    print("Report summary")
    print(f"{'='*60}")
    print(f"Total invoices: {summary['totalInvoices']}")
    print(f"Total revenue: {summary['totalRevenue']:.2f}")
    print(f"Paid: {summary['paidInvoices']}  Pending: {summary['pendingInvoices']}  "
          f"Overdue: {summary['overdueInvoices']}  Draft: {summary['draftInvoices']}")
    print(f"Customers: {summary['totalCustomers']} "
          f"(active {summary['activeCustomers']}, new {summary['newCustomersLast30Days']})")

    if top_customers:
        print("\nTop 3 customers:")
        for entry in top_customers[:3]:
            print(f"  {entry['name']}: {entry['totalAmount']:.2f} ({entry['totalInvoices']} invoices)")
    print(f"{'='*60}\n")


@app.command()
def normalize(
    input: str = typer.Option(..., "--input", help="JSON file with invoices as returned by the API"),
    output: str = typer.Option(..., "--output", help="Output JSON file path")
):
    """
    Map API invoices to the normalized form/table shape.
    """
    invoices = _read_records(input)
    typer.echo(f"Normalizing {len(invoices)} invoice(s)...")

    normalized = [map_invoice_from_api(invoice) for invoice in invoices]

    output_path = _write_json(output, normalized)
    typer.echo(f"Normalized invoices written to: {output_path}")


@app.command()
def build_payload(
    input: str = typer.Option(..., "--input", help="JSON file with normalized or form invoices"),
    output: str = typer.Option(..., "--output", help="Output JSON file path")
):
    """
    Build API payloads from normalized invoices.
    """
    invoices = _read_records(input)
    typer.echo(f"Building {len(invoices)} payload(s)...")

    payloads = [build_invoice_payload(invoice) for invoice in invoices]

    output_path = _write_json(output, payloads)
    typer.echo(f"Invoice payloads written to: {output_path}")


@app.command()
def report(
    invoices: str = typer.Option(..., "--invoices", help="JSON file with invoices"),
    customers: str = typer.Option(..., "--customers", help="JSON file with customers"),
    output: str = typer.Option(..., "--output", help="Output report JSON file path"),
    title: str = typer.Option(None, "--title", help="Report title"),
    report_type: str = typer.Option(None, "--type", help="Report type"),
    report_format: str = typer.Option(None, "--format", help="Report format"),
    date_range: str = typer.Option(None, "--date-range", help="Date range label"),
):
    """
    Generate summary statistics from invoice and customer exports.
    """
    invoice_records = _read_records(invoices)
    customer_records = _read_records(customers)
    logger.info("Loaded %d invoices and %d customers", len(invoice_records), len(customer_records))

    report_meta = {
        'title': title,
        'type': report_type,
        'format': report_format,
        'dateRange': date_range,
    }
    data = generate_report_data(invoice_records, customer_records, report_meta)

    output_path = _write_json(output, data)

    _print_summary(data['summary'], data['breakdown']['byCustomer'])
    typer.echo(f"Report written to: {output_path}")


if __name__ == "__main__":
    app()
