from __future__ import annotations

import argparse
import json
import logging
import os
from dataclasses import asdict
from pathlib import Path

from dotenv import load_dotenv

_REPO_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(_REPO_ROOT / ".env", override=False)

from signed_recon.container import build_services
from signed_recon.domain.models import ProcessRequest


def _result_row(result) -> dict:
    row = asdict(result)
    row["mode"] = result.mode.value
    row["reason"] = result.reason.value if result.reason else None
    if result.decision is not None:
        row["decision"] = {
            "state": result.decision.state.value,
            "best_candidate": result.decision.best_candidate,
            "trust_score": result.decision.trust_score,
            "reasons": result.decision.reasons_text,
            "candidates": result.decision.candidates_text,
        }
    return row


def main() -> None:
    parser = argparse.ArgumentParser(description="Process signed work order PDFs.")
    parser.add_argument("pdfs", nargs="+", help="Paths to signed PDF files.")
    parser.add_argument("--sender", required=True, help="Sender key of the template to use.")
    parser.add_argument("--page", type=int, default=None, help="Override the template page.")
    parser.add_argument("--wo", default=None, help="Work order number entered by hand.")
    parser.add_argument("--verbose", action="store_true", help="Log pipeline details.")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    access_token = os.getenv("GOOGLE_DRIVE_ACCESS_TOKEN", "")
    sqlite_path = os.getenv("SQLITE_PATH", "./signed_recon.db")
    if not access_token:
        raise SystemExit("Missing GOOGLE_DRIVE_ACCESS_TOKEN in .env or environment.")

    services = build_services(access_token, sqlite_path)
    processor = services["signed_processor"]

    requests = []
    for pdf in args.pdfs:
        path = Path(pdf)
        if not path.exists():
            raise SystemExit(f"File not found: {path}")
        requests.append(
            ProcessRequest(
                pdf_bytes=path.read_bytes(),
                filename=path.name,
                sender_key=args.sender,
                page_override=args.page,
                work_order_override=args.wo,
                source_metadata={"path": str(path.resolve())},
            )
        )

    results = processor.process_batch(requests)
    for request, result in zip(requests, results):
        print(f"{request.filename}: {result.mode.value}")
        print(json.dumps(_result_row(result), indent=2, default=str))


if __name__ == "__main__":
    main()
