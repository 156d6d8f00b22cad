"""
ELP Green: Database Layer
File-based JSON store with PostgreSQL upgrade path.
"""
import os, json, uuid, math
from datetime import datetime
from elpgreen.config import DB_PATH, REPORTS_DIR, PERSIST_DATA

# ============================================================
# DATABASE URL (PostgreSQL optional, file-based default)
# ============================================================
DATABASE_URL = os.environ.get("DATABASE_URL")

# ============================================================
# EMPTY DB SCHEMA
# ============================================================
EMPTY_DB = {
    "users": [], "leads": [], "feasibility_studies": [],
    "aml_screening_reports": [], "aml_screening_matches": [],
    "aml_screened_lists": [], "aml_screening_history": [],
    "cnpj_cache": [], "cpf_cache": [], "cgu_sanctions_cache": [],
    "generated_documents": [], "signature_log": [], "email_outbox": [],
    "analyses": [], "activity_log": [],
}

def _fresh_db():
    """Return a fresh empty database."""
    return json.loads(json.dumps(EMPTY_DB))

# ============================================================
# FILE BACKEND
# ============================================================
_db_cache = None

def _file_load():
    global _db_cache
    if PERSIST_DATA and DB_PATH.exists():
        try:
            with open(DB_PATH) as f:
                _db_cache = json.load(f)
                for k, v in EMPTY_DB.items():
                    if k not in _db_cache:
                        _db_cache[k] = type(v)()
        except (json.JSONDecodeError, IOError):
            _db_cache = _fresh_db()
    else:
        _db_cache = _fresh_db()
    return _db_cache

def _file_save(db):
    global _db_cache
    _db_cache = db
    if PERSIST_DATA:
        with open(DB_PATH, "w") as f:
            json.dump(db, f, indent=2, default=str)

def _file_get():
    global _db_cache
    if _db_cache is None:
        return _file_load()
    return _db_cache

# ============================================================
# POSTGRES BACKEND (optional)
# ============================================================
_pg_pool = None

def _pg_connect():
    """Initialize PostgreSQL connection pool."""
    global _pg_pool
    if DATABASE_URL and not _pg_pool:
        try:
            from psycopg2.pool import SimpleConnectionPool
            _pg_pool = SimpleConnectionPool(1, 5, DATABASE_URL)
            _pg_init()
            print("[DB] Connected to PostgreSQL")
        except Exception as e:
            print(f"[DB] PostgreSQL connection failed: {e}")
            raise

def _pg_init():
    """Create the state table if it doesn't exist."""
    conn = _pg_pool.getconn()
    try:
        cur = conn.cursor()
        cur.execute("""
            CREATE TABLE IF NOT EXISTS app_state (
                id TEXT PRIMARY KEY DEFAULT 'main',
                data JSONB NOT NULL DEFAULT '{}',
                updated_at TIMESTAMP DEFAULT NOW()
            )
        """)
        cur.execute("INSERT INTO app_state (id, data) VALUES ('main', %s) ON CONFLICT DO NOTHING",
                    (json.dumps(EMPTY_DB),))
        conn.commit()
    except Exception as e:
        print(f"[DB] pg_init error: {e}")
        conn.rollback()
        raise
    finally:
        _pg_pool.putconn(conn)

def _pg_load():
    if not _pg_pool:
        return _fresh_db()
    conn = _pg_pool.getconn()
    try:
        cur = conn.cursor()
        cur.execute("SELECT data FROM app_state WHERE id='main'")
        row = cur.fetchone()
        db = row[0] if row else _fresh_db()
        for k, v in EMPTY_DB.items():
            db.setdefault(k, type(v)())
        return db
    finally:
        _pg_pool.putconn(conn)

def _pg_save(db):
    if not _pg_pool:
        return
    conn = _pg_pool.getconn()
    try:
        cur = conn.cursor()
        cur.execute("UPDATE app_state SET data=%s, updated_at=NOW() WHERE id='main'",
                    (json.dumps(db, default=str),))
        conn.commit()
    finally:
        _pg_pool.putconn(conn)

# ============================================================
# PUBLIC API
# ============================================================
if DATABASE_URL:
    print("[DB] Using PostgreSQL backend")
    _pg_connect()
    load_db = _pg_load
    save_db = _pg_save
    get_db = _pg_load
else:
    print("[DB] Using file backend (db.json)")
    load_db = _file_load
    save_db = _file_save
    get_db = _file_get


def reset_db() -> dict:
    """Wipe every collection. Used by /api/reset and tests."""
    db = _fresh_db()
    save_db(db)
    return db


def log_activity(db: dict, action: str, **details) -> None:
    """Append an activity entry. Caller is responsible for save_db."""
    db["activity_log"].append({
        "id": str(uuid.uuid4())[:8], "action": action,
        "timestamp": datetime.now().isoformat(), **details,
    })

# ============================================================
# REPORT FILE STORAGE
# ============================================================
def save_report_file(filename: str, content: bytes) -> str:
    """Save a generated report to local filesystem, return its path."""
    path = REPORTS_DIR / filename
    path.write_bytes(content)
    return str(path)

# ============================================================
# UTILITIES
# ============================================================
def _n(val, default=0):
    """Safe numeric conversion: None/empty/non-finite → default, strings → float."""
    if val is None or val == "" or isinstance(val, bool):
        return float(default)
    try:
        num = float(val)
    except (ValueError, TypeError):
        return float(default)
    return num if math.isfinite(num) else float(default)
