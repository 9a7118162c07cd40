import logging
import sqlite3
import uuid
from datetime import datetime
from typing import Any

from linkforge.db.connection import from_json, get_connection, to_json
from linkforge.models.submission import Source, Submission
from linkforge.repositories.base import AbstractSubmissionRepository
from linkforge.schemas.tutorial import Classification, GeneratedTutorialData

logger = logging.getLogger(__name__)

_JSON_COLUMNS = {"classification", "generated_tutorial"}

_UPDATABLE_COLUMNS = {
    "status",
    "retry_count",
    "max_retries",
    "last_step",
    "last_error",
    "extracted_text",
    "classification",
    "generated_tutorial",
    "tutorial_id",
    "started_at",
    "completed_at",
}


def _parse_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _row_to_submission(row: sqlite3.Row) -> Submission:
    classification = from_json(row["classification"])
    generated = from_json(row["generated_tutorial"])
    return Submission(
        id=row["id"],
        url=row["url"],
        source_type=row["source_type"],
        status=row["status"],
        phone_number=row["phone_number"],
        raw_message=row["raw_message"],
        retry_count=row["retry_count"],
        max_retries=row["max_retries"],
        last_step=row["last_step"],
        last_error=row["last_error"],
        extracted_text=row["extracted_text"],
        classification=Classification.model_validate(classification) if classification else None,
        generated_tutorial=GeneratedTutorialData.model_validate(generated) if generated else None,
        tutorial_id=row["tutorial_id"],
        started_at=_parse_datetime(row["started_at"]),
        completed_at=_parse_datetime(row["completed_at"]),
        created_at=_parse_datetime(row["created_at"]),
    )


def _to_column_value(column: str, value: Any) -> Any:
    if column in _JSON_COLUMNS:
        return to_json(value)
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    return value


class SubmissionRepository(AbstractSubmissionRepository):
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def create(
        self,
        url: str,
        source_type: str,
        phone_number: str | None = None,
        raw_message: str | None = None,
        max_retries: int = 3,
    ) -> Submission:
        submission_id = str(uuid.uuid4())
        with get_connection(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO submissions
                    (id, url, source_type, status, phone_number, raw_message, max_retries)
                VALUES (?, ?, ?, 'received', ?, ?, ?)
                """,
                (submission_id, url, source_type, phone_number, raw_message, max_retries),
            )
            conn.commit()
        logger.info("[submissions] created | id=%s | type=%s | url=%s", submission_id, source_type, url)
        return self.get(submission_id)

    def get(self, submission_id: str) -> Submission | None:
        with get_connection(self._db_path) as conn:
            row = conn.execute(
                "SELECT * FROM submissions WHERE id = ?", (submission_id,)
            ).fetchone()
        return _row_to_submission(row) if row else None

    def update(self, submission_id: str, fields: dict[str, Any]) -> None:
        unknown = set(fields) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update submission columns: {sorted(unknown)}")
        if not fields:
            return
        assignments = ", ".join(f"{column} = ?" for column in fields)
        values = [_to_column_value(column, value) for column, value in fields.items()]
        with get_connection(self._db_path) as conn:
            conn.execute(
                f"UPDATE submissions SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (*values, submission_id),
            )
            conn.commit()

    def list_retryable(self, limit: int) -> list[Submission]:
        with get_connection(self._db_path) as conn:
            rows = conn.execute(
                """
                SELECT * FROM submissions
                WHERE status = 'failed' AND retry_count < max_retries
                ORDER BY created_at ASC, rowid ASC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [_row_to_submission(row) for row in rows]

    def reset_for_retry(self, submission_id: str, clear_payloads: bool = False) -> None:
        """
        Re-arm a failed/dead submission. last_step is kept so the next run resumes
        at the step that failed. Intermediate payloads survive unless clear_payloads
        is set, in which case the submission restarts from 'received'.
        """
        with get_connection(self._db_path) as conn:
            if clear_payloads:
                conn.execute(
                    """
                    UPDATE submissions
                    SET status = 'received', retry_count = 0, last_step = NULL, last_error = NULL,
                        extracted_text = NULL, classification = NULL, generated_tutorial = NULL,
                        updated_at = CURRENT_TIMESTAMP
                    WHERE id = ? AND status IN ('failed', 'dead')
                    """,
                    (submission_id,),
                )
            else:
                conn.execute(
                    """
                    UPDATE submissions
                    SET status = 'failed', retry_count = 0, last_error = NULL,
                        updated_at = CURRENT_TIMESTAMP
                    WHERE id = ? AND status IN ('failed', 'dead')
                    """,
                    (submission_id,),
                )
            conn.commit()

    def insert_source(self, submission_id: str, url: str, source_type: str, raw_text: str) -> None:
        with get_connection(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO sources (submission_id, url, source_type, raw_text)
                VALUES (?, ?, ?, ?)
                """,
                (submission_id, url, source_type, raw_text),
            )
            conn.commit()

    def list_sources(self, submission_id: str) -> list[Source]:
        with get_connection(self._db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM sources WHERE submission_id = ? ORDER BY id ASC", (submission_id,)
            ).fetchall()
        return [
            Source(
                submission_id=row["submission_id"],
                url=row["url"],
                source_type=row["source_type"],
                raw_text=row["raw_text"],
                tutorial_id=row["tutorial_id"],
                extracted_at=_parse_datetime(row["extracted_at"]),
            )
            for row in rows
        ]

    def link_sources(self, submission_id: str, tutorial_id: str) -> None:
        with get_connection(self._db_path) as conn:
            conn.execute(
                "UPDATE sources SET tutorial_id = ? WHERE submission_id = ?",
                (tutorial_id, submission_id),
            )
            conn.commit()
