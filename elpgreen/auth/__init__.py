"""
ELP Green: Authentication & RBAC
JWT tokens, password hashing, role-based access control, user store.
"""
import uuid
from datetime import datetime, timedelta, timezone
from fastapi import Request, HTTPException

from elpgreen.config import (
    JWT_SECRET, JWT_ALGORITHM, JWT_EXPIRY_HOURS, AUTH_ENABLED,
    AUTHORITY_MATRIX, DEFAULT_ROLE
)

# ============================================================
# PASSWORD HASHING
# ============================================================
import bcrypt

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()

def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode(), hashed.encode())

# ============================================================
# JWT
# ============================================================
import jwt as pyjwt

def create_jwt(user: dict) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user["id"], "email": user["email"], "name": user["name"],
        "role": user["role"],
        "exp": now + timedelta(hours=JWT_EXPIRY_HOURS),
        "iat": now,
    }
    return pyjwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)

def decode_jwt(token: str) -> dict:
    try:
        return pyjwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except pyjwt.ExpiredSignatureError:
        raise HTTPException(401, "Token expired")
    except pyjwt.InvalidTokenError:
        raise HTTPException(401, "Invalid token")

# ============================================================
# USER STORE (stored in main DB for consistency with reset/export)
# ============================================================
def _get_users() -> list:
    from elpgreen.db import get_db
    return get_db().get("users", [])

def _public(user: dict) -> dict:
    return {k: v for k, v in user.items() if k != "passwordHash"}

def register_user(email: str, password: str, name: str) -> dict:
    """Create a user. The first registered user becomes admin, later ones get DEFAULT_ROLE."""
    from elpgreen.db import get_db, save_db, log_activity
    email = email.strip().lower() if isinstance(email, str) else ""
    if "@" not in email:
        raise ValueError("A valid email is required")
    if not isinstance(password, str) or len(password) < 8:
        raise ValueError("Password must be at least 8 characters")
    db = get_db()
    if any(u["email"] == email for u in db["users"]):
        raise ValueError(f"User {email} already exists")
    role = "admin" if not db["users"] else DEFAULT_ROLE
    user = {
        "id": str(uuid.uuid4())[:8], "email": email, "name": name or email.split("@")[0],
        "role": role, "passwordHash": hash_password(password),
        "createdAt": datetime.now().isoformat(),
    }
    db["users"].append(user)
    log_activity(db, "user_registered", email=email, role=role)
    save_db(db)
    print(f"[Auth] Registered {email} as {role}")
    return _public(user)

def list_users() -> list:
    return [_public(u) for u in _get_users()]

def set_user_role(user_id: str, role: str, by: str = "System") -> dict:
    """Change a user's role. Raises KeyError for an unknown user."""
    from elpgreen.db import get_db, save_db, log_activity
    if not isinstance(role, str) or role not in AUTHORITY_MATRIX:
        raise ValueError(f"Unknown role: {role}. Valid: {list(AUTHORITY_MATRIX)}")
    db = get_db()
    user = next((u for u in db["users"] if u["id"] == user_id), None)
    if not user:
        raise KeyError(user_id)
    previous, user["role"] = user["role"], role
    log_activity(db, "user_role_changed", email=user["email"], previous=previous, role=role, by=by)
    save_db(db)
    print(f"[Auth] {user['email']} role {previous} -> {role} by {by}")
    return _public(user)

def authenticate(email: str, password: str) -> dict:
    """Return {token, user} for valid credentials, raise 401 otherwise."""
    email = (email or "").strip().lower()
    user = next((u for u in _get_users() if u["email"] == email), None)
    if not user or not verify_password(password or "", user["passwordHash"]):
        raise HTTPException(401, "Invalid email or password")
    return {"token": create_jwt(user), "user": _public(user)}

# ============================================================
# REQUEST HELPERS
# ============================================================
def _user_from_request(request: Request) -> dict:
    """Extract user from JWT in Authorization header. Returns empty dict if no auth."""
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        try:
            payload = decode_jwt(auth[7:])
            return {"id": payload["sub"], "email": payload["email"],
                    "name": payload["name"], "role": payload["role"], "authenticated": True}
        except HTTPException:
            pass
    return {}

async def get_current_user(request: Request) -> dict:
    """Dependency: require authenticated user."""
    if not AUTH_ENABLED:
        return {"id": "local", "email": "", "name": "Local Admin", "role": "admin", "authenticated": False}
    user = _user_from_request(request)
    if user:
        return user
    if request.headers.get("Authorization", "").startswith("Bearer "):
        raise HTTPException(401, "Invalid or expired token")
    raise HTTPException(401, "Authentication required")

async def get_optional_user(request: Request) -> dict:
    """Dependency: return user if authenticated, else anonymous viewer."""
    user = _user_from_request(request)
    if user:
        return user
    return {"id": "anonymous", "email": "", "name": "Anonymous",
            "role": DEFAULT_ROLE, "authenticated": False}

def get_user_display(request: Request) -> tuple:
    """Get (name, email) for audit trail."""
    user = _user_from_request(request)
    if user:
        return user.get("name", "Unknown"), user.get("email", "")
    return "System", ""

# ============================================================
# RBAC DECORATOR
# ============================================================
def require_role(min_level: int):
    """Dependency: require minimum role level."""
    async def checker(request: Request):
        user = await get_current_user(request)
        role_info = AUTHORITY_MATRIX.get(user["role"], AUTHORITY_MATRIX[DEFAULT_ROLE])
        if role_info["level"] < min_level:
            raise HTTPException(403, f"Requires role level {min_level}+. Your role: {user['role']}")
        return user
    return checker
