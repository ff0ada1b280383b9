from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from uuid import uuid4

from signed_recon.domain.models import (
    DedupResult,
    JobRecord,
    MatchConflictError,
    MatchRecord,
    NeedsReviewRecord,
    SignedDocumentRecord,
    TemplateConfig,
)
from signed_recon.domain.reasons import ReviewReason
from signed_recon.ports.storage_port import StoragePort

_TEMPLATE_COLUMNS = (
    "sender_key",
    "template_id",
    "page",
    "dpi",
    "expected_digits",
    "regex",
    "x_pct",
    "y_pct",
    "w_pct",
    "h_pct",
    "x_pt",
    "y_pt",
    "w_pt",
    "h_pt",
    "page_width_pt",
    "page_height_pt",
    "updated_at",
)

_REVIEW_COLUMNS = (
    "review_id",
    "review_dedupe_key",
    "file_hash",
    "sender_key",
    "reason",
    "raw_text",
    "confidence",
    "candidates_json",
    "chosen_candidate",
    "trust_score",
    "decision_state",
    "decision_reasons",
    "extraction_method",
    "confidence_raw",
    "pass_agreement",
    "manual_override",
    "message",
    "snippet_url",
    "source_metadata_json",
    "created_at",
)

_JOB_COLUMNS = (
    "job_id, work_order_number, sender_key, issuer, status, signed_url, confidence, signed_at"
)


class SQLiteStorage(StoragePort):
    def __init__(self, sqlite_path: str) -> None:
        self._sqlite_path = sqlite_path
        self._ensure_schema()

    def find_processed_file(self, file_hash: str) -> DedupResult:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    SELECT m.match_id
                    FROM signed_documents d
                    JOIN matches m ON m.document_id = d.document_id
                    WHERE d.file_hash = ?
                    """,
                    (file_hash,),
                ).fetchone()
                if row is not None:
                    return DedupResult(exists=True, found_in="CONFIRMED", ref=row[0])
                row = conn.execute(
                    """
                    SELECT review_id
                    FROM needs_review
                    WHERE file_hash = ? AND reason != ?
                    ORDER BY created_at ASC
                    LIMIT 1
                    """,
                    (file_hash, ReviewReason.PROCESSING_FAILED.value),
                ).fetchone()
            if row is not None:
                return DedupResult(exists=True, found_in="REVIEW", ref=row[0])
            return DedupResult(exists=False)
        except sqlite3.Error as exc:
            raise RuntimeError("Failed to look up processed file") from exc

    def save_signed_document(self, record: SignedDocumentRecord) -> SignedDocumentRecord:
        created_at = record.created_at or datetime.utcnow().isoformat()
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO signed_documents(
                        document_id, file_hash, storage_url, sender_key,
                        extraction_method, extraction_confidence, extraction_rationale,
                        work_order_number, source_metadata_json, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(file_hash)
                    DO UPDATE SET
                        storage_url = COALESCE(excluded.storage_url, signed_documents.storage_url),
                        extraction_method = excluded.extraction_method,
                        extraction_confidence = excluded.extraction_confidence,
                        extraction_rationale = excluded.extraction_rationale,
                        work_order_number = excluded.work_order_number
                    """,
                    (
                        record.document_id or str(uuid4()),
                        record.file_hash,
                        record.storage_url,
                        record.sender_key,
                        record.extraction_method,
                        record.extraction_confidence,
                        record.extraction_rationale,
                        record.work_order_number,
                        json.dumps(record.source_metadata, sort_keys=True),
                        created_at,
                    ),
                )
        except sqlite3.Error as exc:
            raise RuntimeError("Failed to save signed document") from exc
        stored = self.get_signed_document_by_hash(record.file_hash)
        if stored is None:
            raise RuntimeError("Signed document missing after save")
        return stored

    def get_signed_document_by_hash(self, file_hash: str) -> SignedDocumentRecord | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    SELECT document_id, file_hash, sender_key, extraction_method, storage_url,
                           extraction_confidence, extraction_rationale, work_order_number,
                           source_metadata_json, created_at
                    FROM signed_documents
                    WHERE file_hash = ?
                    """,
                    (file_hash,),
                ).fetchone()
            if row is None:
                return None
            return SignedDocumentRecord(
                document_id=row[0],
                file_hash=row[1],
                sender_key=row[2],
                extraction_method=row[3],
                storage_url=row[4],
                extraction_confidence=row[5],
                extraction_rationale=row[6] or "",
                work_order_number=row[7],
                source_metadata=json.loads(row[8] or "{}"),
                created_at=row[9],
            )
        except (sqlite3.Error, json.JSONDecodeError) as exc:
            raise RuntimeError("Failed to fetch signed document") from exc

    def create_job(
        self,
        work_order_number: str,
        sender_key: str | None = None,
        issuer: str | None = None,
    ) -> JobRecord:
        job = JobRecord(
            job_id=str(uuid4()),
            work_order_number=work_order_number,
            sender_key=sender_key,
            issuer=issuer,
        )
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO jobs(job_id, work_order_number, sender_key, issuer, status, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        job.job_id,
                        job.work_order_number,
                        job.sender_key,
                        job.issuer,
                        job.status,
                        datetime.utcnow().isoformat(),
                    ),
                )
            return job
        except sqlite3.Error as exc:
            raise RuntimeError("Failed to create job") from exc

    def get_job(self, job_id: str) -> JobRecord | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    f"SELECT {_JOB_COLUMNS} FROM jobs WHERE job_id = ?",
                    (job_id,),
                ).fetchone()
            return self._job_from_row(row) if row is not None else None
        except sqlite3.Error as exc:
            raise RuntimeError("Failed to fetch job") from exc

    def find_job_by_work_order_number(self, work_order_number: str) -> JobRecord | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    f"SELECT {_JOB_COLUMNS} FROM jobs WHERE work_order_number = ?",
                    (work_order_number,),
                ).fetchone()
            return self._job_from_row(row) if row is not None else None
        except sqlite3.Error as exc:
            raise RuntimeError("Failed to find job by work order number") from exc

    def update_job_status(
        self,
        job_id: str,
        status: str,
        signed_url: str | None,
        confidence: str | None,
        signed_at: str | None,
    ) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    UPDATE jobs
                    SET status = ?, signed_url = ?, confidence = ?, signed_at = ?
                    WHERE job_id = ?
                    """,
                    (status, signed_url, confidence, signed_at, job_id),
                )
        except sqlite3.Error as exc:
            raise RuntimeError("Failed to update job status") from exc

    def last_matched_work_order_number(self, sender_key: str) -> str | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    SELECT j.work_order_number
                    FROM matches m
                    JOIN jobs j ON j.job_id = m.job_id
                    JOIN signed_documents d ON d.document_id = m.document_id
                    WHERE d.sender_key = ?
                    ORDER BY CAST(j.work_order_number AS INTEGER) DESC
                    LIMIT 1
                    """,
                    (sender_key,),
                ).fetchone()
            return row[0] if row is not None else None
        except sqlite3.Error as exc:
            raise RuntimeError("Failed to fetch last matched work order number") from exc

    def find_match_by_job(self, job_id: str) -> MatchRecord | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    SELECT match_id, job_id, document_id, decision_state, trust_score,
                           decision_reasons, candidates, extraction_method, confidence_raw,
                           pass_agreement, chosen_candidate, created_at
                    FROM matches
                    WHERE job_id = ?
                    """,
                    (job_id,),
                ).fetchone()
            if row is None:
                return None
            return MatchRecord(
                match_id=row[0],
                job_id=row[1],
                document_id=row[2],
                decision_state=row[3],
                trust_score=row[4],
                decision_reasons=row[5] or "",
                candidates=row[6] or "",
                extraction_method=row[7] or "",
                confidence_raw=row[8],
                pass_agreement=None if row[9] is None else bool(row[9]),
                chosen_candidate=row[10],
                created_at=row[11],
            )
        except sqlite3.Error as exc:
            raise RuntimeError("Failed to fetch match") from exc

    def create_match(self, record: MatchRecord) -> MatchRecord:
        record.match_id = record.match_id or str(uuid4())
        record.created_at = record.created_at or datetime.utcnow().isoformat()
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO matches(
                        match_id, job_id, document_id, decision_state, trust_score,
                        decision_reasons, candidates, extraction_method, confidence_raw,
                        pass_agreement, chosen_candidate, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.match_id,
                        record.job_id,
                        record.document_id,
                        record.decision_state,
                        record.trust_score,
                        record.decision_reasons,
                        record.candidates,
                        record.extraction_method,
                        record.confidence_raw,
                        None if record.pass_agreement is None else int(record.pass_agreement),
                        record.chosen_candidate,
                        record.created_at,
                    ),
                )
            return record
        except sqlite3.IntegrityError as exc:
            raise MatchConflictError(
                f"Job {record.job_id} or document {record.document_id} is already matched"
            ) from exc
        except sqlite3.Error as exc:
            raise RuntimeError("Failed to create match") from exc

    def append_needs_review(self, record: NeedsReviewRecord) -> NeedsReviewRecord:
        record.review_id = record.review_id or str(uuid4())
        record.created_at = record.created_at or datetime.utcnow().isoformat()
        values = (
            record.review_id,
            record.review_dedupe_key,
            record.file_hash,
            record.sender_key,
            record.reason.value,
            record.raw_text,
            record.confidence,
            json.dumps(record.candidates),
            record.chosen_candidate,
            record.trust_score,
            record.decision_state,
            record.decision_reasons,
            record.extraction_method,
            record.confidence_raw,
            None if record.pass_agreement is None else int(record.pass_agreement),
            record.manual_override,
            record.message,
            record.snippet_url,
            json.dumps(record.source_metadata, sort_keys=True),
            record.created_at,
        )
        # A stored review only gives way when it recorded a processing failure.
        updates = ", ".join(
            f"{column} = excluded.{column}"
            for column in _REVIEW_COLUMNS
            if column not in {"review_id", "review_dedupe_key"}
        )
        try:
            with self._connect() as conn:
                conn.execute(
                    f"""
                    INSERT INTO needs_review({", ".join(_REVIEW_COLUMNS)})
                    VALUES ({", ".join("?" for _ in _REVIEW_COLUMNS)})
                    ON CONFLICT(review_dedupe_key)
                    DO UPDATE SET {updates}
                    WHERE needs_review.reason = '{ReviewReason.PROCESSING_FAILED.value}'
                    """,
                    values,
                )
                row = conn.execute(
                    f"""
                    SELECT {", ".join(_REVIEW_COLUMNS)}
                    FROM needs_review
                    WHERE review_dedupe_key = ?
                    """,
                    (record.review_dedupe_key,),
                ).fetchone()
            return self._review_from_row(row)
        except (sqlite3.Error, json.JSONDecodeError) as exc:
            raise RuntimeError("Failed to append needs-review record") from exc

    def list_needs_review(self, sender_key: str | None = None) -> list[NeedsReviewRecord]:
        query = f"SELECT {', '.join(_REVIEW_COLUMNS)} FROM needs_review"
        params: tuple = ()
        if sender_key is not None:
            query += " WHERE sender_key = ?"
            params = (sender_key,)
        query += " ORDER BY created_at DESC, review_id ASC"
        try:
            with self._connect() as conn:
                rows = conn.execute(query, params).fetchall()
            return [self._review_from_row(row) for row in rows]
        except (sqlite3.Error, json.JSONDecodeError) as exc:
            raise RuntimeError("Failed to list needs-review records") from exc

    def get_template(self, sender_key: str) -> TemplateConfig | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    f"SELECT {', '.join(_TEMPLATE_COLUMNS)} FROM templates WHERE sender_key = ?",
                    (sender_key,),
                ).fetchone()
            if row is None:
                return None
            return TemplateConfig(**dict(zip(_TEMPLATE_COLUMNS, row)))
        except sqlite3.Error as exc:
            raise RuntimeError("Failed to fetch template") from exc

    def save_template(self, template: TemplateConfig) -> TemplateConfig:
        template.updated_at = datetime.utcnow().isoformat()
        updates = ", ".join(
            f"{column} = excluded.{column}"
            for column in _TEMPLATE_COLUMNS
            if column != "sender_key"
        )
        try:
            with self._connect() as conn:
                conn.execute(
                    f"""
                    INSERT INTO templates({", ".join(_TEMPLATE_COLUMNS)})
                    VALUES ({", ".join("?" for _ in _TEMPLATE_COLUMNS)})
                    ON CONFLICT(sender_key)
                    DO UPDATE SET {updates}
                    """,
                    tuple(getattr(template, column) for column in _TEMPLATE_COLUMNS),
                )
            return template
        except sqlite3.Error as exc:
            raise RuntimeError("Failed to save template") from exc

    def list_templates(self) -> list[TemplateConfig]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    f"SELECT {', '.join(_TEMPLATE_COLUMNS)} FROM templates ORDER BY sender_key ASC"
                ).fetchall()
            return [TemplateConfig(**dict(zip(_TEMPLATE_COLUMNS, row))) for row in rows]
        except sqlite3.Error as exc:
            raise RuntimeError("Failed to list templates") from exc

    def count_templates(self) -> int:
        try:
            with self._connect() as conn:
                row = conn.execute("SELECT COUNT(*) FROM templates").fetchone()
            return int(row[0]) if row else 0
        except sqlite3.Error as exc:
            raise RuntimeError("Failed to count templates") from exc

    @staticmethod
    def _job_from_row(row: tuple) -> JobRecord:
        return JobRecord(
            job_id=row[0],
            work_order_number=row[1],
            sender_key=row[2],
            issuer=row[3],
            status=row[4],
            signed_url=row[5],
            confidence=row[6],
            signed_at=row[7],
        )

    @staticmethod
    def _review_from_row(row: tuple) -> NeedsReviewRecord:
        data = dict(zip(_REVIEW_COLUMNS, row))
        return NeedsReviewRecord(
            review_id=data["review_id"],
            file_hash=data["file_hash"],
            sender_key=data["sender_key"],
            reason=ReviewReason(data["reason"]),
            raw_text=data["raw_text"] or "",
            confidence=data["confidence"],
            candidates=json.loads(data["candidates_json"] or "[]"),
            chosen_candidate=data["chosen_candidate"],
            trust_score=data["trust_score"],
            decision_state=data["decision_state"],
            decision_reasons=data["decision_reasons"] or "",
            extraction_method=data["extraction_method"],
            confidence_raw=data["confidence_raw"],
            pass_agreement=None
            if data["pass_agreement"] is None
            else bool(data["pass_agreement"]),
            manual_override=data["manual_override"],
            message=data["message"],
            snippet_url=data["snippet_url"],
            source_metadata=json.loads(data["source_metadata_json"] or "{}"),
            created_at=data["created_at"],
        )

    def _ensure_schema(self) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS signed_documents(
                        document_id TEXT PRIMARY KEY,
                        file_hash TEXT NOT NULL UNIQUE,
                        storage_url TEXT,
                        sender_key TEXT,
                        extraction_method TEXT,
                        extraction_confidence REAL,
                        extraction_rationale TEXT,
                        work_order_number TEXT,
                        source_metadata_json TEXT,
                        created_at TEXT
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS jobs(
                        job_id TEXT PRIMARY KEY,
                        work_order_number TEXT UNIQUE,
                        sender_key TEXT,
                        issuer TEXT,
                        status TEXT,
                        signed_url TEXT,
                        confidence TEXT,
                        signed_at TEXT,
                        created_at TEXT
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS matches(
                        match_id TEXT PRIMARY KEY,
                        job_id TEXT NOT NULL UNIQUE,
                        document_id TEXT NOT NULL UNIQUE,
                        decision_state TEXT,
                        trust_score INTEGER,
                        decision_reasons TEXT,
                        candidates TEXT,
                        extraction_method TEXT,
                        confidence_raw REAL,
                        pass_agreement INTEGER,
                        chosen_candidate TEXT,
                        created_at TEXT
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS needs_review(
                        review_id TEXT PRIMARY KEY,
                        review_dedupe_key TEXT NOT NULL UNIQUE,
                        file_hash TEXT,
                        sender_key TEXT,
                        reason TEXT,
                        raw_text TEXT,
                        confidence REAL,
                        candidates_json TEXT,
                        chosen_candidate TEXT,
                        trust_score INTEGER,
                        decision_state TEXT,
                        decision_reasons TEXT,
                        extraction_method TEXT,
                        confidence_raw REAL,
                        pass_agreement INTEGER,
                        manual_override TEXT,
                        message TEXT,
                        snippet_url TEXT,
                        source_metadata_json TEXT,
                        created_at TEXT
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS templates(
                        sender_key TEXT PRIMARY KEY,
                        template_id TEXT,
                        page INTEGER,
                        dpi INTEGER,
                        expected_digits INTEGER,
                        regex TEXT,
                        x_pct REAL,
                        y_pct REAL,
                        w_pct REAL,
                        h_pct REAL,
                        x_pt REAL,
                        y_pt REAL,
                        w_pt REAL,
                        h_pt REAL,
                        page_width_pt REAL,
                        page_height_pt REAL,
                        updated_at TEXT
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_needs_review_file_hash
                    ON needs_review(file_hash)
                    """
                )
        except sqlite3.Error as exc:
            raise RuntimeError("Failed to initialize storage schema") from exc

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self._sqlite_path)
