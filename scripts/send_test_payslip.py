#!/usr/bin/env python3
"""
Dev helper: post a test payslip to a running Payslip Mailer instance.

Attaches a real PDF (or a one-page sample built with reportlab) and POST-s it with a
name and email to the /send-email endpoint, then prints the JSON response.

Usage
-----
# Generated PDF, sent to yourself via localhost:5000
python scripts/send_test_payslip.py --email you@example.com

# Send a specific file
python scripts/send_test_payslip.py --email you@example.com --file march.pdf

# Check validation without a real PDF
python scripts/send_test_payslip.py --email you@example.com --file notes.txt

# Only check relay connectivity
python scripts/send_test_payslip.py --health

Environment / .env
------------------
PORT    Port of the local server (default: 5000). Overridden by --url.
"""

import argparse
import json
import mimetypes
import os
import sys
import textwrap
from io import BytesIO
from pathlib import Path

import httpx
from dotenv import load_dotenv
from reportlab.lib import colors
from reportlab.lib.pagesizes import LETTER
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle


# ---------------------------------------------------------------------------
# Sample PDF
# ---------------------------------------------------------------------------

def _make_sample_pdf(name: str) -> bytes:
    """Return a single-page sample payslip for ``name``."""
    buf = BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=LETTER,
        leftMargin=0.75 * inch,
        rightMargin=0.75 * inch,
        topMargin=0.75 * inch,
        bottomMargin=0.75 * inch,
        title="Payslip",
    )
    styles = getSampleStyleSheet()

    rows = [
        ["Employee", name],
        ["Period", "Sample period"],
        ["Gross pay", "0.00"],
        ["Deductions", "0.00"],
        ["Net pay", "0.00"],
    ]
    table = Table(rows, colWidths=[2.0 * inch, 4.0 * inch])
    table.setStyle(TableStyle([
        ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
        ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
        ("PADDING", (0, 0), (-1, -1), 6),
    ]))

    story = [
        Paragraph("PAYSLIP (TEST)", styles["Title"]),
        Spacer(1, 0.3 * inch),
        table,
    ]
    doc.build(story)
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Pretty printer
# ---------------------------------------------------------------------------

def _print_response(response: httpx.Response) -> None:
    status = response.status_code
    symbol = "OK" if status == 200 else "FAIL"
    print(f"\n[{symbol}] HTTP {status}")
    try:
        print(json.dumps(response.json(), indent=2))
    except ValueError:
        print(response.text)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> int:
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    load_dotenv(project_root / "backend" / ".env")

    parser = argparse.ArgumentParser(
        prog="send_test_payslip.py",
        description="Send a test payslip through a running Payslip Mailer.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Examples:
              python scripts/send_test_payslip.py --email you@example.com
              python scripts/send_test_payslip.py --email you@example.com --file march.pdf
              python scripts/send_test_payslip.py --health
        """),
    )
    parser.add_argument(
        "--url",
        default=f"http://localhost:{os.getenv('PORT', '5000')}",
        help="Server base URL (default: http://localhost:$PORT or 5000)",
    )
    parser.add_argument("--name", default="Test Employee", help='Recipient name (default: "Test Employee")')
    parser.add_argument("--email", default=None, help="Recipient email address")
    parser.add_argument(
        "--file",
        default=None,
        metavar="PATH",
        help="File to attach as the payslip. A sample PDF is generated if omitted.",
    )
    parser.add_argument(
        "--health",
        action="store_true",
        help="Only call /health/smtp to check the relay handshake.",
    )
    args = parser.parse_args()
    base_url = args.url.rstrip("/")

    if args.health:
        try:
            response = httpx.get(f"{base_url}/health/smtp", timeout=60)
        except httpx.ConnectError:
            print(f"ERROR: Could not connect to {base_url}", file=sys.stderr)
            return 1
        _print_response(response)
        return 0 if response.status_code == 200 else 1

    if not args.email:
        parser.error("--email is required unless --health is given")

    if args.file:
        file_path = Path(args.file)
        if not file_path.exists():
            print(f"ERROR: File not found: {file_path}", file=sys.stderr)
            return 1
        content = file_path.read_bytes()
        filename = file_path.name
        content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        print(f"Attaching file: {file_path} ({len(content):,} bytes, {content_type})")
    else:
        content = _make_sample_pdf(args.name)
        filename = "sample_payslip.pdf"
        content_type = "application/pdf"
        print(f"No --file specified; using generated sample PDF ({len(content)} bytes)")

    endpoint = f"{base_url}/send-email"
    print(f"\nEndpoint  : {endpoint}")
    print(f"Name      : {args.name}")
    print(f"Email     : {args.email}")
    print(f"Attachment: {filename}")

    try:
        response = httpx.post(
            endpoint,
            data={"name": args.name, "email": args.email},
            files={"payslip": (filename, content, content_type)},
            timeout=90,
        )
    except httpx.ConnectError:
        print(
            f"\nERROR: Could not connect to {endpoint}\n"
            "Is the server running? Start it with:\n"
            "  payslip-mailer   (or: uvicorn payslip_mailer.main:app --app-dir backend)",
            file=sys.stderr,
        )
        return 1

    _print_response(response)
    return 0 if response.status_code == 200 else 1


if __name__ == "__main__":
    sys.exit(main())
