"""
ELP Green: Lead Records & AI Triage

Leads come from two channels: website contacts and marketplace
registrations. Triage combines two signals per message:
  - Sentiment (1..5 stars) -> urgency score
  - Intent classification  -> suggested priority and lead level

Batch triage writes back only the priority; lead_level is left to
manual qualification.
"""
import uuid, asyncio
from datetime import datetime

from elpgreen.db import log_activity
from elpgreen.policy import get_policy
from elpgreen.analysis import analyze_sentiment, classify_text

LEAD_TYPES = ["contact", "marketplace"]
LEAD_STATUSES = ["new", "contacted", "qualified", "proposal", "negotiation", "won", "lost"]
LEAD_PRIORITIES = ["low", "medium", "high", "urgent"]
LEAD_LEVELS = ["initial", "qualified", "opportunity", "customer"]

_REQUIRED = {
    "contact": ("name", "email", "message"),
    "marketplace": ("company_name", "contact_name", "email", "country", "company_type"),
}
UNCLASSIFIED = "não classificado"


# ============================================================
# CRUD
# ============================================================
def create_lead(db: dict, data: dict, user_name: str = "system") -> dict:
    lead_type = data.get("type", "contact")
    if lead_type not in LEAD_TYPES:
        raise ValueError(f"Invalid lead type '{lead_type}'. Allowed: {LEAD_TYPES}")
    missing = [f for f in _REQUIRED[lead_type] if not data.get(f)]
    if missing:
        raise ValueError(f"Missing required fields: {', '.join(missing)}")
    if "@" not in data["email"]:
        raise ValueError("email is invalid")
    now = datetime.now().isoformat()
    lead = {
        "status": "new", "priority": "medium", "lead_level": "initial",
        "assigned_to": None, "next_action": None, "next_action_date": None,
        **{k: v for k, v in data.items() if k not in ("id", "created_at", "updated_at")},
        "type": lead_type, "id": str(uuid.uuid4())[:8], "created_at": now, "updated_at": now,
    }
    if lead_type == "marketplace":
        lead.setdefault("products_interest", [])
    db["leads"].append(lead)
    log_activity(db, "lead_created", leadId=lead["id"], leadType=lead_type, by=user_name)
    print(f"[Leads] Created {lead_type} lead {lead['id']}")
    return lead


def get_lead(db: dict, lead_id: str):
    return next((l for l in db["leads"] if l["id"] == lead_id), None)


def update_lead(db: dict, lead_id: str, updates: dict, user_name: str = "system") -> dict:
    lead = get_lead(db, lead_id)
    if not lead:
        raise KeyError(lead_id)
    for field, allowed in (("status", LEAD_STATUSES), ("priority", LEAD_PRIORITIES), ("lead_level", LEAD_LEVELS)):
        if field in updates and updates[field] not in allowed:
            raise ValueError(f"Invalid {field} '{updates[field]}'. Allowed: {allowed}")
    changed = {k: v for k, v in updates.items() if k not in ("id", "type", "created_at") and lead.get(k) != v}
    lead.update(changed)
    lead["updated_at"] = datetime.now().isoformat()
    if changed:
        log_activity(db, "lead_updated", leadId=lead_id, fields=sorted(changed), by=user_name)
    return lead


def list_leads(db: dict, lead_type: str = None, status: str = None, priority: str = None,
               country: str = None, search: str = None) -> list:
    leads = db["leads"]
    if lead_type:
        leads = [l for l in leads if l.get("type") == lead_type]
    if status:
        leads = [l for l in leads if l.get("status") == status]
    if priority:
        leads = [l for l in leads if l.get("priority") == priority]
    if country:
        leads = [l for l in leads if (l.get("country") or "").lower() == country.lower()]
    if search:
        q = search.lower()
        leads = [l for l in leads if any(q in str(l.get(f) or "").lower()
                 for f in ("name", "contact_name", "company", "company_name", "email", "message", "subject"))]
    return sorted(leads, key=lambda l: l.get("created_at", ""), reverse=True)


# ============================================================
# TRIAGE RULES
# ============================================================
def urgency_from_sentiment(sentiment: list) -> int:
    """1 star = very negative (urgent), 5 stars = very positive (low priority)."""
    if not sentiment:
        return 50
    top = max(sentiment, key=lambda r: r.get("score", 0))
    label = str(top.get("label", ""))
    for star, score in (("1", 95), ("2", 75), ("3", 50), ("4", 30), ("5", 15)):
        if star in label:
            return score
    return 50


def priority_from_classification(classifications: list) -> tuple:
    """Return (priority, level) from the top label when it clears the confidence threshold."""
    threshold = get_policy()["classification_min_confidence_pct"] / 100
    if not classifications:
        return "medium", "initial"
    top = max(classifications, key=lambda r: r.get("score", 0))
    if top.get("score", 0) <= threshold:
        return "medium", "initial"
    label = top.get("label", "").lower()
    if "urgente" in label or "investimento" in label:
        return "urgent", "qualified"
    if "parceria" in label:
        return "high", "qualified"
    if "fornecedor" in label:
        return "high", "initial"
    if "reclamação" in label:
        return "urgent", "initial"
    if "concorrente" in label:
        return "low", "initial"
    return "medium", "initial"


# ============================================================
# AI TRIAGE
# ============================================================
async def analyze_lead(text: str, labels: list = None, client=None) -> dict:
    sentiment, classification = await asyncio.gather(
        analyze_sentiment(text, client=client), classify_text(text, labels, client=client))
    priority, level = priority_from_classification(classification["classifications"])
    return {
        "sentiment": sentiment["sentiment"],
        "urgencyScore": urgency_from_sentiment(sentiment["sentiment"]),
        "classifications": classification["classifications"],
        "suggestedPriority": priority, "suggestedLevel": level,
        "provider": classification["provider"],
    }


async def batch_analyze_leads(db: dict, lead_ids: list = None, client=None, user_name: str = "system") -> list:
    if lead_ids is not None and not isinstance(lead_ids, list):
        raise ValueError("ids must be a list of lead ids")
    leads = [l for l in db["leads"] if lead_ids is None or l["id"] in lead_ids]
    results = []
    for lead in leads:
        if not lead.get("message"):
            continue
        try:
            analysis = await analyze_lead(lead["message"], client=client)
        except Exception as e:
            print(f"[Leads] Error analyzing lead {lead['id']}: {e}")
            continue
        classifications = analysis["classifications"]
        results.append({
            "id": lead["id"], "type": lead.get("type", "contact"),
            "urgencyScore": analysis["urgencyScore"],
            "suggestedPriority": analysis["suggestedPriority"],
            "suggestedLevel": analysis["suggestedLevel"],
            "topClassification": classifications[0]["label"] if classifications else UNCLASSIFIED,
        })
        lead["priority"] = analysis["suggestedPriority"]
        lead["updated_at"] = datetime.now().isoformat()
    log_activity(db, "leads_batch_analyzed", count=len(results), by=user_name)
    print(f"[Leads] Batch analyzed {len(results)} leads")
    return results
