"""
ELP Green: Policy Engine Module

Centralized screening and analysis policy. Single source of truth for match
thresholds, risk cutoffs, cache lifetimes, and rate limits.

Architecture:
  - DEFAULT_POLICY: Immutable base policy with env var overrides
  - _active_policy: Mutable runtime state, updated via API
  - get_policy() / update_policy(): accessors
  - POLICY_PRESETS: Named preset configurations (standard, strict_compliance, fast_track)

Every module that needs a policy value calls get_policy() or uses an accessor.
No module stores a stale copy.
"""

import os
import copy as _copy


# ============================================================
# DEFAULT POLICY: base configuration with env var overrides
# ============================================================
DEFAULT_POLICY = {
    # ── AML MATCHING ──
    "match_rate_threshold": float(os.environ.get("AML_MATCH_THRESHOLD", "70")),
    "critical_match_rate": float(os.environ.get("AML_CRITICAL_MATCH_RATE", "95")),
    "high_match_rate": float(os.environ.get("AML_HIGH_MATCH_RATE", "90")),
    "medium_match_rate": float(os.environ.get("AML_MEDIUM_MATCH_RATE", "80")),
    "max_matches": int(os.environ.get("AML_MAX_MATCHES", "10")),
    "default_jurisdictions": ["ALL"],
    "default_screening_types": ["sanctions", "pep"],

    # ── CACHE LIFETIMES ──
    "cnpj_cache_days": int(os.environ.get("CNPJ_CACHE_DAYS", "7")),
    "cpf_cache_days": int(os.environ.get("CPF_CACHE_DAYS", "30")),
    "cgu_cache_days": int(os.environ.get("CGU_CACHE_DAYS", "1")),

    # ── RATE LIMITING ──
    "rate_limit_window_seconds": int(os.environ.get("RATE_LIMIT_WINDOW_SECONDS", "60")),
    "rate_limit_max_requests": int(os.environ.get("RATE_LIMIT_MAX_REQUESTS", "30")),

    # ── LEAD CLASSIFICATION ──
    "classification_min_confidence_pct": float(os.environ.get("LEAD_MIN_CONFIDENCE_PCT", "50")),

    # ── FEASIBILITY ANALYSIS ──
    "default_analysis_model": os.environ.get("ANALYSIS_MODEL", "local"),
}

VALID_ANALYSIS_MODELS = ("local", "flash", "pro", "collaborative", "advanced")


# ============================================================
# RUNTIME STATE: mutable, updated via API
# ============================================================
_active_policy = _copy.deepcopy(DEFAULT_POLICY)


def get_policy() -> dict:
    """Get the active policy configuration."""
    return _active_policy


def update_policy(updates: dict) -> dict:
    """Update specific policy fields. Returns the full updated policy."""
    PCT_FIELDS = {k for k, v in DEFAULT_POLICY.items()
                  if isinstance(v, (int, float)) and ('rate' in k or 'pct' in k or 'threshold' in k)
                  and 'limit' not in k}
    DAY_FIELDS = {k for k in DEFAULT_POLICY if 'days' in k or 'seconds' in k or 'max_' in k}

    for key, value in updates.items():
        if key in _active_policy:
            if key == "default_analysis_model" and value not in VALID_ANALYSIS_MODELS:
                continue
            expected_type = type(DEFAULT_POLICY[key])
            if isinstance(value, bool) and expected_type is not bool:
                continue
            if isinstance(value, expected_type) or (expected_type in (int, float) and isinstance(value, (int, float))):
                if key in PCT_FIELDS:
                    value = max(0, min(100, float(value)))
                elif key in DAY_FIELDS:
                    value = max(0, int(value))
                _active_policy[key] = value
            elif expected_type == list and isinstance(value, list):
                _active_policy[key] = list(value)
    return _active_policy


def reset_policy():
    """Reset policy to defaults. Used in testing."""
    _active_policy.clear()
    _active_policy.update(_copy.deepcopy(DEFAULT_POLICY))


def apply_preset(name: str) -> dict:
    """Apply a named preset on top of the defaults."""
    if name not in POLICY_PRESETS:
        raise ValueError(f"Unknown preset '{name}'. Available: {list(POLICY_PRESETS)}")
    reset_policy()
    return update_policy({k: v for k, v in POLICY_PRESETS[name].items()
                          if k not in ("name", "description")})


# ============================================================
# ACCESSORS: read from live policy
# ============================================================
def get_match_threshold(): return _active_policy["match_rate_threshold"]
def get_max_matches(): return _active_policy["max_matches"]


def get_cache_days(kind: str) -> int:
    return _active_policy[f"{kind}_cache_days"]


# ============================================================
# POLICY PRESETS
# ============================================================
POLICY_PRESETS = {
    "standard": {
        "name": "Standard Due Diligence",
        "description": "Default thresholds for commercial counterparties",
        "match_rate_threshold": 70, "critical_match_rate": 95,
        "high_match_rate": 90, "medium_match_rate": 80, "max_matches": 10,
    },
    "strict_compliance": {
        "name": "Strict Compliance / Government Tenders",
        "description": "Lower match threshold, more matches kept, fresher caches",
        "match_rate_threshold": 60, "critical_match_rate": 90,
        "high_match_rate": 85, "medium_match_rate": 70, "max_matches": 25,
        "cnpj_cache_days": 1, "cgu_cache_days": 0,
        "default_screening_types": ["sanctions", "pep", "watchlist", "criminal"],
    },
    "fast_track": {
        "name": "Fast Track / Low-Risk Suppliers",
        "description": "Only near-exact name matches, long-lived caches",
        "match_rate_threshold": 85, "max_matches": 5,
        "cnpj_cache_days": 30, "cgu_cache_days": 7,
    },
}
