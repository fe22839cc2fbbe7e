"""
SQLite-backed store for Contact records.

Every method opens its own connection and commits on its own, so a
multi-step flow built on top of the store is never one transaction.
"""
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from db_setup import get_db_connection, init_db
from errors import StoreFailure

logger = logging.getLogger(__name__)

_UNSET = object()


class LinkPrecedence(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value) -> Optional[datetime]:
    """Parse a stored timestamp; naive values are taken as UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Union[datetime, str, None]) -> str:
    """Stored form of a timestamp. Always UTC, so text order is time order."""
    if value is None:
        return utc_now()
    return parse_timestamp(value).astimezone(timezone.utc).isoformat(timespec="microseconds")


@dataclass
class Contact:
    """One identity fact: an email and/or phone number plus its linkage."""

    id: int
    email: Optional[str]
    phone_number: Optional[str]
    linked_id: Optional[int]
    link_precedence: LinkPrecedence
    created_at: datetime
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @property
    def is_primary(self) -> bool:
        return self.link_precedence == LinkPrecedence.PRIMARY

    @property
    def is_secondary(self) -> bool:
        return self.link_precedence == LinkPrecedence.SECONDARY

    @property
    def is_empty(self) -> bool:
        return self.email is None and self.phone_number is None

    @property
    def seniority(self) -> tuple:
        """Sort key: creation time, then id."""
        return (self.created_at, self.id)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Contact":
        return cls(
            id=row['id'],
            email=row['email'],
            phone_number=row['phoneNumber'],
            linked_id=row['linkedId'],
            link_precedence=LinkPrecedence(row['linkPrecedence'] or LinkPrecedence.PRIMARY.value),
            created_at=parse_timestamp(row['createdAt']),
            updated_at=parse_timestamp(row['updatedAt']),
            deleted_at=parse_timestamp(row['deletedAt']),
        )


class ContactStore:
    """Store for Contact rows in the sqlite Contact table."""

    def __init__(self, db_path: Path = None):
        self.db_path = db_path
        init_db(self.db_path)

    @contextmanager
    def _connect(self, operation: str):
        """Open a connection, commit on success, wrap sqlite errors."""
        conn = None
        try:
            conn = get_db_connection(self.db_path)
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Store operation {operation} failed: {e}")
            raise StoreFailure(operation, e) from e
        finally:
            if conn is not None:
                conn.close()

    def _fetch_one(self, conn, contact_id: int, include_deleted: bool = False) -> Optional[Contact]:
        query = "SELECT * FROM Contact WHERE id = ?"
        if not include_deleted:
            query += " AND deletedAt IS NULL"
        row = conn.execute(query, (contact_id,)).fetchone()
        return Contact.from_row(row) if row else None

    def create_contact(
        self,
        email: Optional[str] = None,
        phone_number: Optional[str] = None,
        linked_id: Optional[int] = None,
        link_precedence: LinkPrecedence = LinkPrecedence.PRIMARY,
        contact_id: Optional[int] = None,
        created_at: Union[datetime, str, None] = None,
    ) -> Contact:
        """Insert a contact and return it as stored."""
        now = utc_now()
        created = format_timestamp(created_at) if created_at else now
        precedence = LinkPrecedence(link_precedence).value

        with self._connect("create_contact") as conn:
            if contact_id:
                conn.execute("""
                    INSERT INTO Contact (id, phoneNumber, email, linkedId, linkPrecedence, createdAt, updatedAt)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                """, (contact_id, phone_number, email, linked_id, precedence, created, now))
                new_id = contact_id
            else:
                cursor = conn.execute("""
                    INSERT INTO Contact (phoneNumber, email, linkedId, linkPrecedence, createdAt, updatedAt)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (phone_number, email, linked_id, precedence, created, now))
                new_id = cursor.lastrowid
            contact = self._fetch_one(conn, new_id)

        logger.debug(f"Created {precedence} contact {new_id} (linkedId={linked_id})")
        return contact

    def find_by_id(self, contact_id: int) -> Optional[Contact]:
        """Get an active contact by id."""
        with self._connect("find_by_id") as conn:
            return self._fetch_one(conn, contact_id)

    def find_by_email_or_phone(
        self,
        email: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> list[Contact]:
        """
        Find active contacts sharing the email OR the phone number.

        A clause is skipped when its value is absent. Results are ordered
        oldest first.
        """
        clauses = []
        params = []
        if email is not None:
            clauses.append("email = ?")
            params.append(email)
        if phone_number is not None:
            clauses.append("phoneNumber = ?")
            params.append(phone_number)
        if not clauses:
            return []

        query = f"""
            SELECT * FROM Contact
            WHERE deletedAt IS NULL
            AND ({' OR '.join(clauses)})
            ORDER BY createdAt ASC, id ASC
        """
        with self._connect("find_by_email_or_phone") as conn:
            rows = conn.execute(query, params).fetchall()
        return [Contact.from_row(row) for row in rows]

    def find_by_linked_id(self, primary_id: int) -> list[Contact]:
        """Get active contacts whose linkedId points at primary_id, oldest first."""
        with self._connect("find_by_linked_id") as conn:
            rows = conn.execute("""
                SELECT * FROM Contact
                WHERE linkedId = ? AND deletedAt IS NULL
                ORDER BY createdAt ASC, id ASC
            """, (primary_id,)).fetchall()
        return [Contact.from_row(row) for row in rows]

    def update_linkage(
        self,
        contact_id: int,
        linked_id=_UNSET,
        link_precedence: Optional[LinkPrecedence] = None,
        email=_UNSET,
        phone_number=_UNSET,
    ) -> Contact:
        """
        Update linkage and/or attribute columns of a contact.

        Only the arguments that are passed are written; linked_id=None
        clears the link.
        """
        assignments = []
        params = []
        if linked_id is not _UNSET:
            assignments.append("linkedId = ?")
            params.append(linked_id)
        if link_precedence is not None:
            assignments.append("linkPrecedence = ?")
            params.append(LinkPrecedence(link_precedence).value)
        if email is not _UNSET:
            assignments.append("email = ?")
            params.append(email)
        if phone_number is not _UNSET:
            assignments.append("phoneNumber = ?")
            params.append(phone_number)
        assignments.append("updatedAt = ?")
        params.append(utc_now())
        params.append(contact_id)

        with self._connect("update_linkage") as conn:
            cursor = conn.execute(
                f"UPDATE Contact SET {', '.join(assignments)} WHERE id = ?",
                params,
            )
            if cursor.rowcount == 0:
                raise StoreFailure("update_linkage", LookupError(f"contact {contact_id} not found"))
            return self._fetch_one(conn, contact_id, include_deleted=True)

    def soft_delete(self, contact_id: int) -> Contact:
        """Mark a contact deleted without removing the row."""
        now = utc_now()
        with self._connect("soft_delete") as conn:
            cursor = conn.execute(
                "UPDATE Contact SET deletedAt = ?, updatedAt = ? WHERE id = ?",
                (now, now, contact_id),
            )
            if cursor.rowcount == 0:
                raise StoreFailure("soft_delete", LookupError(f"contact {contact_id} not found"))
            return self._fetch_one(conn, contact_id, include_deleted=True)

    def count(self) -> int:
        """Number of active contacts."""
        with self._connect("count") as conn:
            row = conn.execute("SELECT COUNT(*) FROM Contact WHERE deletedAt IS NULL").fetchone()
        return row[0]

    def list_primaries(self) -> list[Contact]:
        with self._connect("list_primaries") as conn:
            rows = conn.execute("""
                SELECT * FROM Contact
                WHERE linkPrecedence = 'primary' AND deletedAt IS NULL
                ORDER BY createdAt ASC, id ASC
            """).fetchall()
        return [Contact.from_row(row) for row in rows]

    def list_active(self) -> list[Contact]:
        with self._connect("list_active") as conn:
            rows = conn.execute("""
                SELECT * FROM Contact
                WHERE deletedAt IS NULL
                ORDER BY createdAt ASC, id ASC
            """).fetchall()
        return [Contact.from_row(row) for row in rows]

    def count_deleted(self) -> int:
        """Number of soft-deleted contacts."""
        with self._connect("count_deleted") as conn:
            row = conn.execute("SELECT COUNT(*) FROM Contact WHERE deletedAt IS NOT NULL").fetchone()
        return row[0]

    def last_created_at(self) -> Optional[datetime]:
        with self._connect("last_created_at") as conn:
            row = conn.execute("SELECT MAX(createdAt) FROM Contact WHERE deletedAt IS NULL").fetchone()
        return parse_timestamp(row[0])

    def purge(self) -> int:
        """
        Hard-delete every row, deleted or not, and restart id numbering.

        Development use only; returns the number of rows removed.
        """
        with self._connect("purge") as conn:
            removed = conn.execute("DELETE FROM Contact").rowcount
            conn.execute("DELETE FROM sqlite_sequence WHERE name = 'Contact'")
        logger.warning(f"Purged {removed} contact row(s)")
        return removed
