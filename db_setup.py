import sqlite3
from pathlib import Path
from typing import Optional

from config import settings


def resolve_db_path(db_path: Optional[Path] = None) -> Path:
    return Path(db_path) if db_path else settings.db_path


def init_db(db_path: Optional[Path] = None):
    conn = sqlite3.connect(resolve_db_path(db_path))
    cursor = conn.cursor()

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS Contact (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            phoneNumber TEXT,
            email TEXT,
            linkedId INTEGER,
            linkPrecedence TEXT CHECK(linkPrecedence IN ('secondary', 'primary')),
            createdAt DATETIME DEFAULT CURRENT_TIMESTAMP,
            updatedAt DATETIME DEFAULT CURRENT_TIMESTAMP,
            deletedAt DATETIME,
            FOREIGN KEY (linkedId) REFERENCES Contact (id)
        )
    ''')
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_contact_email ON Contact(email)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_contact_phone ON Contact(phoneNumber)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_contact_linked ON Contact(linkedId)")
    conn.commit()

    conn.close()


def get_db_connection(db_path: Optional[Path] = None):
    conn = sqlite3.connect(resolve_db_path(db_path))
    conn.row_factory = sqlite3.Row
    return conn
