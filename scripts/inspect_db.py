from __future__ import annotations

import os
import sqlite3
from pathlib import Path

from dotenv import load_dotenv

_REPO_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(_REPO_ROOT / ".env", override=False)


def main() -> None:
    db_path = os.getenv("SQLITE_PATH", "./signed_recon.db")
    conn = sqlite3.connect(db_path)
    try:
        print("DB:", db_path)
        print("Tables:")
        for row in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
        ):
            print("-", row[0])

        print("\nTemplates:")
        for row in conn.execute(
            "SELECT sender_key, template_id, page, dpi, expected_digits FROM templates ORDER BY sender_key"
        ):
            print(row)

        print("\nMatches:")
        for row in conn.execute(
            """
            SELECT m.match_id, j.work_order_number, m.decision_state, m.trust_score
            FROM matches m JOIN jobs j ON j.job_id = m.job_id
            ORDER BY m.created_at DESC LIMIT 10
            """
        ):
            print(row)

        print("\nNeeds review:")
        for row in conn.execute(
            """
            SELECT review_id, sender_key, reason, chosen_candidate, trust_score
            FROM needs_review ORDER BY created_at DESC LIMIT 10
            """
        ):
            print(row)

        row = conn.execute("SELECT COUNT(*) FROM signed_documents").fetchone()
        print("\nSigned documents:", row[0] if row else 0)
    finally:
        conn.close()


if __name__ == "__main__":
    main()
