import logging
import sqlite3
import uuid
from datetime import datetime
from typing import Any

from linkforge.db.connection import from_json, get_connection, to_json
from linkforge.models.tutorial import Tutorial
from linkforge.repositories.base import AbstractTutorialRepository, SlugConflictError

logger = logging.getLogger(__name__)

_LIST_COLUMNS = {"topics", "tags", "tools_mentioned", "action_items", "source_urls"}

_WRITABLE_COLUMNS = _LIST_COLUMNS | {
    "slug",
    "title",
    "summary",
    "body",
    "maturity_level",
    "level_relation",
    "difficulty",
    "source_count",
    "image_url",
    "audio_url",
    "is_published",
    "is_hot_news",
    "hot_news_headline",
    "hot_news_teaser",
}


def _row_to_tutorial(row: sqlite3.Row) -> Tutorial:
    return Tutorial(
        id=row["id"],
        slug=row["slug"],
        title=row["title"],
        summary=row["summary"],
        body=row["body"],
        maturity_level=row["maturity_level"],
        level_relation=row["level_relation"],
        difficulty=row["difficulty"],
        topics=from_json(row["topics"], []),
        tags=from_json(row["tags"], []),
        tools_mentioned=from_json(row["tools_mentioned"], []),
        action_items=from_json(row["action_items"], []),
        source_urls=from_json(row["source_urls"], []),
        source_count=row["source_count"],
        image_url=row["image_url"],
        audio_url=row["audio_url"],
        is_published=bool(row["is_published"]),
        is_hot_news=bool(row["is_hot_news"]),
        hot_news_headline=row["hot_news_headline"],
        hot_news_teaser=row["hot_news_teaser"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _column_values(fields: dict[str, Any]) -> tuple[list[str], list[Any]]:
    unknown = set(fields) - _WRITABLE_COLUMNS
    if unknown:
        raise ValueError(f"Cannot write tutorial columns: {sorted(unknown)}")
    columns = list(fields)
    values = [
        to_json(value) if column in _LIST_COLUMNS else value
        for column, value in fields.items()
    ]
    return columns, values


class TutorialRepository(AbstractTutorialRepository):
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def get(self, tutorial_id: str) -> Tutorial | None:
        with get_connection(self._db_path) as conn:
            row = conn.execute("SELECT * FROM tutorials WHERE id = ?", (tutorial_id,)).fetchone()
        return _row_to_tutorial(row) if row else None

    def get_by_slug(self, slug: str) -> Tutorial | None:
        with get_connection(self._db_path) as conn:
            row = conn.execute("SELECT * FROM tutorials WHERE slug = ?", (slug,)).fetchone()
        return _row_to_tutorial(row) if row else None

    def find_merge_candidates(self, maturity_level: int, topics: list[str]) -> list[Tutorial]:
        if not topics:
            return []
        placeholders = ", ".join("?" for _ in topics)
        with get_connection(self._db_path) as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM tutorials t
                WHERE t.maturity_level = ?
                  AND t.is_published = 1
                  AND EXISTS (
                      SELECT 1 FROM json_each(t.topics) j WHERE j.value IN ({placeholders})
                  )
                ORDER BY t.created_at ASC, t.rowid ASC
                """,
                (maturity_level, *topics),
            ).fetchall()
        return [_row_to_tutorial(row) for row in rows]

    def create(self, fields: dict[str, Any]) -> str:
        tutorial_id = str(uuid.uuid4())
        columns, values = _column_values(fields)
        placeholders = ", ".join("?" for _ in columns)
        try:
            with get_connection(self._db_path) as conn:
                conn.execute(
                    f"INSERT INTO tutorials (id, {', '.join(columns)}) VALUES (?, {placeholders})",
                    (tutorial_id, *values),
                )
                conn.commit()
        except sqlite3.IntegrityError as exc:
            if "tutorials.slug" in str(exc):
                raise SlugConflictError(f"Tutorial slug already exists: {fields.get('slug')}") from exc
            raise
        logger.info("[tutorials] created | id=%s | slug=%s", tutorial_id, fields.get("slug"))
        return tutorial_id

    def apply_merge(
        self,
        tutorial_id: str,
        body: str,
        summary: str,
        action_items: list[str],
        source_url: str,
    ) -> None:
        """
        Replace the merged content and append source_url in one statement so
        source_urls/source_count stay consistent with each other.
        """
        with get_connection(self._db_path) as conn:
            conn.execute(
                """
                UPDATE tutorials
                SET body = ?, summary = ?, action_items = ?,
                    source_urls = json_insert(source_urls, '$[#]', ?),
                    source_count = source_count + 1,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                (body, summary, to_json(action_items), source_url, tutorial_id),
            )
            conn.commit()
        logger.info("[tutorials] merged | id=%s | source=%s", tutorial_id, source_url)

    def update(self, tutorial_id: str, fields: dict[str, Any]) -> None:
        if not fields:
            return
        columns, values = _column_values(fields)
        assignments = ", ".join(f"{column} = ?" for column in columns)
        with get_connection(self._db_path) as conn:
            conn.execute(
                f"UPDATE tutorials SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (*values, tutorial_id),
            )
            conn.commit()
