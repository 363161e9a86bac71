"""
Doubts feature: Relational store access (doubts, contents, courses, users).
"""

import logging
import re
from datetime import datetime, timezone

from supabase import Client

from app.features.doubts.schemas import ContentRecord

logger = logging.getLogger(__name__)

_LIKE_WILDCARDS = re.compile(r"[%_*\\]")


def _escape_like(value: str) -> str:
    return _LIKE_WILDCARDS.sub(lambda m: "\\" + m.group(0), value)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class DoubtRepository:
    """CRUD on the `doubts` table."""

    def __init__(self, db: Client):
        self.db = db

    def create(self, data: dict) -> dict:
        result = self.db.table("doubts").insert(data).execute()
        return result.data[0]

    def get(self, doubt_id: str) -> dict | None:
        result = self.db.table("doubts").select("*").eq("id", doubt_id).execute()
        return result.data[0] if result.data else None

    def update(self, doubt_id: str, data: dict) -> dict | None:
        data = {**data, "updated_at": utc_now_iso()}
        result = self.db.table("doubts").update(data).eq("id", doubt_id).execute()
        return result.data[0] if result.data else None

    def list_for_student(self, student_id: str) -> list[dict]:
        result = (
            self.db.table("doubts")
            .select("*")
            .eq("student_id", student_id)
            .order("created_at", desc=True)
            .execute()
        )
        return result.data

    def list_escalated(self, course_id: str) -> list[dict]:
        result = (
            self.db.table("doubts")
            .select("*")
            .eq("course_id", course_id)
            .eq("status", "escalated")
            .order("created_at", desc=True)
            .execute()
        )
        return result.data

    def fail_stale_processing(self, cutoff_iso: str) -> int:
        """Mark doubts stuck in `processing` since before the cutoff as failed."""
        result = (
            self.db.table("doubts")
            .update({"status": "failed", "updated_at": utc_now_iso()})
            .eq("status", "processing")
            .lt("created_at", cutoff_iso)
            .execute()
        )
        return len(result.data or [])


class ContentRepository:
    """Read-only access to content items, their course and concept links."""

    def __init__(self, db: Client):
        self.db = db

    def get_content(self, content_id: str) -> ContentRecord | None:
        result = (
            self.db.table("contents")
            .select("id, course_id, title, type, file_url, extracted_text, courses(name)")
            .eq("id", content_id)
            .execute()
        )
        if not result.data:
            return None

        row = result.data[0]
        course = row.get("courses") or {}
        return ContentRecord(
            id=str(row["id"]),
            course_id=row.get("course_id"),
            course_name=course.get("name"),
            title=row.get("title"),
            type=row.get("type") or "video",
            file_url=row.get("file_url"),
            extracted_text=row.get("extracted_text") or "",
        )

    def get_related_concepts(self, content_id: str) -> list[str]:
        """Concept names the content covers/teaches (graph collaborator)."""
        result = (
            self.db.table("content_concepts")
            .select("concept_name")
            .eq("content_id", content_id)
            .limit(5)
            .execute()
        )
        return [r["concept_name"] for r in result.data or []]

    def get_course(self, course_id: str) -> dict | None:
        result = (
            self.db.table("courses")
            .select("id, name, faculty_ids")
            .eq("id", course_id)
            .execute()
        )
        return result.data[0] if result.data else None

    def find_institution_concepts(self, institution_code: str, query: str) -> list[str]:
        """Curriculum concepts of an institution that the query mentions."""
        # Two plain filters: the code is guest input and must not reach an or_() expression.
        by_id = (
            self.db.table("institution_concepts")
            .select("concept_name")
            .eq("institution_id", institution_code)
            .execute()
        )
        by_name = (
            self.db.table("institution_concepts")
            .select("concept_name")
            .ilike("institution_name", f"%{_escape_like(institution_code)}%")
            .execute()
        )
        rows = (by_id.data or []) + (by_name.data or [])
        query_lower = query.lower()
        first_word = query_lower.split()[0] if query_lower.split() else ""

        names: list[str] = []
        for row in rows:
            name = row.get("concept_name") or ""
            name_lower = name.lower()
            if not name_lower:
                continue
            if (first_word and first_word in name_lower) or name_lower in query_lower:
                if name not in names:
                    names.append(name)
            if len(names) >= 5:
                break
        return names


class UserRepository:
    """Per-user settings the engine needs (learner-supplied model key)."""

    def __init__(self, db: Client):
        self.db = db

    def get_encrypted_api_key(self, user_id: str) -> str | None:
        result = (
            self.db.table("users")
            .select("llm_api_key_encrypted")
            .eq("id", user_id)
            .execute()
        )
        if not result.data:
            return None
        return result.data[0].get("llm_api_key_encrypted")

    def set_encrypted_api_key(self, user_id: str, encrypted: str) -> None:
        self.db.table("users").update(
            {"llm_api_key_encrypted": encrypted}
        ).eq("id", user_id).execute()
