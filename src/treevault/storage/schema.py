"""
Database schema management for the TreeVault record store.

This module handles:
- Table creation (people, relationships, users, suggestions, settings, audit)
- Uniqueness constraints the importer must respect
- Index creation for natural-key lookups
- WAL mode configuration
- Foreign key constraints
"""

import sqlite3


def init_database(conn: sqlite3.Connection, enable_wal: bool = True) -> None:
    """
    Initialize database schema with constraints and indexes.

    Args:
        conn: SQLite connection object
        enable_wal: Enable WAL mode for concurrent reads (default: True)
    """
    if enable_wal:
        conn.execute("PRAGMA journal_mode=WAL")

    conn.execute("PRAGMA foreign_keys=ON")

    conn.executescript("""
        CREATE TABLE IF NOT EXISTS people (
            id TEXT PRIMARY KEY,
            first_name TEXT NOT NULL,
            last_name TEXT NOT NULL,
            maiden_name TEXT,
            date_of_birth TEXT,  -- YYYY-MM-DD
            date_of_passing TEXT,
            birth_place TEXT,
            native_place TEXT,
            gender TEXT CHECK(gender IN ('MALE','FEMALE','OTHER','PREFER_NOT_TO_SAY')),
            photo_url TEXT,
            bio TEXT,
            email TEXT,
            phone TEXT,
            current_address TEXT,  -- JSON
            work_address TEXT,  -- JSON
            profession TEXT,
            employer TEXT,
            social_links TEXT,  -- JSON
            is_living INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            email TEXT NOT NULL UNIQUE,
            name TEXT,
            person_id TEXT UNIQUE,
            role TEXT NOT NULL DEFAULT 'VIEWER' CHECK(role IN ('ADMIN','MEMBER','VIEWER')),
            is_active INTEGER NOT NULL DEFAULT 1,
            must_change_password INTEGER NOT NULL DEFAULT 0,
            invited_by_id TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            last_login_at TEXT,
            FOREIGN KEY (person_id) REFERENCES people(id) ON DELETE SET NULL
        );

        CREATE TABLE IF NOT EXISTS relationships (
            id TEXT PRIMARY KEY,
            person_id TEXT NOT NULL,
            related_person_id TEXT NOT NULL,
            type TEXT NOT NULL CHECK(type IN ('PARENT','CHILD','SPOUSE','SIBLING')),
            marriage_date TEXT,
            divorce_date TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE (person_id, related_person_id, type),
            FOREIGN KEY (person_id) REFERENCES people(id) ON DELETE CASCADE,
            FOREIGN KEY (related_person_id) REFERENCES people(id) ON DELETE CASCADE
        );

        CREATE TABLE IF NOT EXISTS suggestions (
            id TEXT PRIMARY KEY,
            type TEXT NOT NULL CHECK(type IN ('CREATE','UPDATE','DELETE','ADD_RELATIONSHIP')),
            target_person_id TEXT,
            suggested_data TEXT,  -- JSON
            reason TEXT,
            status TEXT NOT NULL DEFAULT 'PENDING' CHECK(status IN ('PENDING','APPROVED','REJECTED')),
            submitted_by_id TEXT NOT NULL,
            reviewed_by_id TEXT,
            review_note TEXT,
            submitted_at TEXT NOT NULL,
            reviewed_at TEXT,
            FOREIGN KEY (target_person_id) REFERENCES people(id) ON DELETE CASCADE,
            FOREIGN KEY (submitted_by_id) REFERENCES users(id) ON DELETE CASCADE
        );

        CREATE TABLE IF NOT EXISTS family_settings (
            id TEXT PRIMARY KEY,
            family_name TEXT NOT NULL DEFAULT 'Our Family',
            description TEXT,
            locale TEXT NOT NULL DEFAULT 'en',
            custom_labels TEXT,  -- JSON
            default_privacy TEXT NOT NULL DEFAULT 'MEMBERS_ONLY'
                CHECK(default_privacy IN ('PUBLIC','MEMBERS_ONLY','ADMIN_ONLY')),
            allow_self_registration INTEGER NOT NULL DEFAULT 1,
            require_approval_for_edits INTEGER NOT NULL DEFAULT 1,
            created_at TEXT,
            updated_at TEXT
        );

        CREATE TABLE IF NOT EXISTS audit_logs (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            action TEXT NOT NULL CHECK(action IN ('CREATE','UPDATE','DELETE','LOGIN','LOGOUT','APPROVE','REJECT')),
            entity_type TEXT NOT NULL,
            entity_id TEXT,
            previous_data TEXT,  -- JSON
            new_data TEXT,  -- JSON
            ip_address TEXT,
            user_agent TEXT,
            created_at TEXT NOT NULL,
            FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
        );

        -- Indexes for natural-key lookups
        CREATE INDEX IF NOT EXISTS idx_people_name ON people(last_name, first_name);
        CREATE INDEX IF NOT EXISTS idx_people_email ON people(email);
        CREATE INDEX IF NOT EXISTS idx_relationships_person ON relationships(person_id);
        CREATE INDEX IF NOT EXISTS idx_relationships_related ON relationships(related_person_id);
        CREATE INDEX IF NOT EXISTS idx_suggestions_status ON suggestions(status);
        CREATE INDEX IF NOT EXISTS idx_suggestions_submitted_by ON suggestions(submitted_by_id);
        CREATE INDEX IF NOT EXISTS idx_audit_logs_user ON audit_logs(user_id);
        CREATE INDEX IF NOT EXISTS idx_audit_logs_entity ON audit_logs(entity_type, entity_id);
        CREATE INDEX IF NOT EXISTS idx_audit_logs_created_at ON audit_logs(created_at);
    """)

    conn.commit()
