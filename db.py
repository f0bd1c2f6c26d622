import sqlite3
import json
import uuid
from datetime import datetime, timezone

from loguru import logger

import config
from schemas import QueryStatus


def _connect():
    conn = sqlite3.connect(config.get_db_path())
    conn.row_factory = sqlite3.Row
    return conn


def _now():
    return datetime.now(timezone.utc).isoformat()


def _new_id():
    return str(uuid.uuid4())


def init_db():
    """Create the users, sessions, data_sources, search_queries and reports tables"""
    conn = _connect()
    try:
        cursor = conn.cursor()

        cursor.execute('''
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        ''')

        cursor.execute('''
        CREATE TABLE IF NOT EXISTS sessions (
            token TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        ''')

        cursor.execute('''
        CREATE TABLE IF NOT EXISTS data_sources (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            name TEXT NOT NULL,
            type TEXT NOT NULL,
            url TEXT,
            description TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL
        )
        ''')

        # selected_sources holds plain ids so deleting a source never touches queries
        cursor.execute('''
        CREATE TABLE IF NOT EXISTS search_queries (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            query_text TEXT NOT NULL,
            search_type TEXT NOT NULL,
            selected_sources TEXT NOT NULL DEFAULT '[]',
            status TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        ''')

        cursor.execute('''
        CREATE TABLE IF NOT EXISTS reports (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            query_id TEXT NOT NULL,
            title TEXT NOT NULL,
            summary TEXT,
            full_content TEXT,
            created_at TEXT NOT NULL
        )
        ''')

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_data_sources_user ON data_sources(user_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_search_queries_user ON search_queries(user_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_reports_user ON reports(user_id)")

        conn.commit()
    finally:
        conn.close()
    logger.info(f"Database initialized at {config.get_db_path()}")


# --------------------------------------------------------
# Users & sessions
# --------------------------------------------------------

def create_user(email, password_hash):
    user = {"id": _new_id(), "email": email, "created_at": _now()}
    conn = _connect()
    try:
        conn.execute('''
        INSERT INTO users (id, email, password_hash, created_at)
        VALUES (?, ?, ?, ?)
        ''', (user["id"], email, password_hash, user["created_at"]))
        conn.commit()
    finally:
        conn.close()
    logger.info(f"Created user {user['id']}")
    return user


def get_user_by_email(email):
    conn = _connect()
    try:
        row = conn.execute(
            "SELECT id, email, password_hash, created_at FROM users WHERE email = ?", (email,)
        ).fetchone()
    finally:
        conn.close()
    return dict(row) if row else None


def create_session(user_id, token):
    conn = _connect()
    try:
        conn.execute(
            "INSERT INTO sessions (token, user_id, created_at) VALUES (?, ?, ?)",
            (token, user_id, _now()),
        )
        conn.commit()
    finally:
        conn.close()


def get_session_user(token):
    conn = _connect()
    try:
        row = conn.execute('''
        SELECT users.id, users.email, users.created_at
        FROM sessions JOIN users ON users.id = sessions.user_id
        WHERE sessions.token = ?
        ''', (token,)).fetchone()
    finally:
        conn.close()
    return dict(row) if row else None


def delete_session(token):
    conn = _connect()
    try:
        conn.execute("DELETE FROM sessions WHERE token = ?", (token,))
        conn.commit()
    finally:
        conn.close()


# --------------------------------------------------------
# Data sources
# --------------------------------------------------------

def _source_from_row(row):
    source = dict(row)
    source["is_active"] = bool(source["is_active"])
    return source


def create_data_source(user_id, name, source_type, url=None, description=""):
    source = {
        "id": _new_id(),
        "user_id": user_id,
        "name": name,
        "type": source_type,
        "url": url,
        "description": description,
        "is_active": True,
        "created_at": _now(),
    }
    conn = _connect()
    try:
        conn.execute('''
        INSERT INTO data_sources (id, user_id, name, type, url, description, is_active, created_at)
        VALUES (?, ?, ?, ?, ?, ?, 1, ?)
        ''', (source["id"], user_id, name, source_type, url, description, source["created_at"]))
        conn.commit()
    finally:
        conn.close()
    logger.info(f"Added data source {source['id']} ({source_type}) for user {user_id}")
    return source


def list_data_sources(user_id, active_only=False):
    """Data sources owned by the user, newest first"""
    sql = "SELECT * FROM data_sources WHERE user_id = ?"
    if active_only:
        sql += " AND is_active = 1"
    sql += " ORDER BY created_at DESC, rowid DESC"

    conn = _connect()
    try:
        rows = conn.execute(sql, (user_id,)).fetchall()
    finally:
        conn.close()
    return [_source_from_row(r) for r in rows]


def delete_data_source(user_id, source_id):
    """Delete one of the user's data sources. Returns False if nothing matched."""
    conn = _connect()
    try:
        cursor = conn.execute(
            "DELETE FROM data_sources WHERE id = ? AND user_id = ?", (source_id, user_id)
        )
        conn.commit()
        deleted = cursor.rowcount > 0
    finally:
        conn.close()
    if deleted:
        logger.info(f"Deleted data source {source_id}")
    return deleted


# --------------------------------------------------------
# Search queries
# --------------------------------------------------------

def _query_from_row(row):
    query = dict(row)
    query["selected_sources"] = json.loads(query["selected_sources"] or "[]")
    return query


def create_search_query(user_id, query_text, search_type, selected_sources):
    query = {
        "id": _new_id(),
        "user_id": user_id,
        "query_text": query_text,
        "search_type": search_type,
        "selected_sources": list(selected_sources),
        "status": QueryStatus.PROCESSING.value,
        "created_at": _now(),
    }
    conn = _connect()
    try:
        conn.execute('''
        INSERT INTO search_queries (id, user_id, query_text, search_type, selected_sources, status, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        ''', (query["id"], user_id, query_text, search_type, json.dumps(query["selected_sources"]),
              query["status"], query["created_at"]))
        conn.commit()
    finally:
        conn.close()
    logger.info(f"Created search query {query['id']} ({search_type})")
    return query


def get_search_query(query_id):
    conn = _connect()
    try:
        row = conn.execute("SELECT * FROM search_queries WHERE id = ?", (query_id,)).fetchone()
    finally:
        conn.close()
    return _query_from_row(row) if row else None


def mark_query_completed(query_id):
    """Flip processing -> completed. Completed queries are left untouched."""
    conn = _connect()
    try:
        cursor = conn.execute(
            "UPDATE search_queries SET status = ? WHERE id = ? AND status = ?",
            (QueryStatus.COMPLETED.value, query_id, QueryStatus.PROCESSING.value),
        )
        conn.commit()
        return cursor.rowcount > 0
    finally:
        conn.close()


def list_search_queries(user_id, limit=50):
    conn = _connect()
    try:
        rows = conn.execute('''
        SELECT * FROM search_queries
        WHERE user_id = ?
        ORDER BY created_at DESC, rowid DESC
        LIMIT ?
        ''', (user_id, limit)).fetchall()
    finally:
        conn.close()
    return [_query_from_row(r) for r in rows]


# --------------------------------------------------------
# Reports
# --------------------------------------------------------

def _report_from_row(row):
    report = dict(row)
    report["full_content"] = json.loads(report["full_content"] or "{}")
    return report


def create_report(user_id, query_id, title, summary, full_content):
    report = {
        "id": _new_id(),
        "user_id": user_id,
        "query_id": query_id,
        "title": title,
        "summary": summary,
        "full_content": full_content,
        "created_at": _now(),
    }
    conn = _connect()
    try:
        conn.execute('''
        INSERT INTO reports (id, user_id, query_id, title, summary, full_content, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        ''', (report["id"], user_id, query_id, title, summary, json.dumps(full_content), report["created_at"]))
        conn.commit()
    finally:
        conn.close()
    logger.info(f"Report created successfully: {report['id']}")
    return report


def get_report(user_id, report_id):
    conn = _connect()
    try:
        row = conn.execute(
            "SELECT * FROM reports WHERE id = ? AND user_id = ?", (report_id, user_id)
        ).fetchone()
    finally:
        conn.close()
    return _report_from_row(row) if row else None


def list_reports(user_id):
    """The user's reports, newest first, joined with their originating query"""
    conn = _connect()
    try:
        rows = conn.execute('''
        SELECT reports.*,
               search_queries.query_text AS q_query_text,
               search_queries.search_type AS q_search_type,
               search_queries.created_at AS q_created_at
        FROM reports
        LEFT JOIN search_queries ON search_queries.id = reports.query_id
        WHERE reports.user_id = ?
        ORDER BY reports.created_at DESC, reports.rowid DESC
        ''', (user_id,)).fetchall()
    finally:
        conn.close()

    reports = []
    for row in rows:
        data = dict(row)
        query_text = data.pop("q_query_text")
        search_type = data.pop("q_search_type")
        query_created_at = data.pop("q_created_at")
        report = _report_from_row(data)
        report["search_query"] = None
        if query_text is not None:
            report["search_query"] = {
                "query_text": query_text,
                "search_type": search_type,
                "created_at": query_created_at,
            }
        reports.append(report)
    return reports
