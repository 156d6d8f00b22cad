"""
ELP Green Technology: Back Office API
v1.4: feasibility studies, benchmark alerts, AI analysis, AML/KYC screening,
      lead triage, document signatures, semantic search, PDF reports
"""

import os, time
from datetime import datetime

from fastapi import FastAPI, HTTPException, Request, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from elpgreen.config import USE_REAL_API, VERSION, PRODUCT_NAME, RATE_LIMIT_ENABLED, RESET_ON_START
from elpgreen.db import get_db, save_db, reset_db, log_activity, DATABASE_URL
from elpgreen.auth import (register_user, authenticate, get_current_user, get_user_display, require_role,
                           list_users, set_user_role)
from elpgreen.policy import get_policy, update_policy, reset_policy, apply_preset, POLICY_PRESETS
from elpgreen import feasibility, benchmarks, incentives, tires, trade, screening, leads, documents, search, reports
from elpgreen.analysis import analyze_feasibility, analyze_market_intelligence, generate_document_draft

app = FastAPI(title=f"{PRODUCT_NAME} Back Office", version=VERSION)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_credentials=True, allow_methods=["*"], allow_headers=["*"])

# Injected by tests: httpx.AsyncClient for sanctions/registry/embeddings, Anthropic client for AI.
app.state.http_client = None
app.state.ai_client = None

EDITOR = require_role(2)
ADMIN = require_role(3)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


# ============================================================
# RATE LIMITING (fixed window, per client)
# ============================================================
_rate_buckets = {}


def reset_rate_limits():
    _rate_buckets.clear()


def rate_limited(request: Request):
    if not RATE_LIMIT_ENABLED:
        return
    policy = get_policy()
    window, limit = policy["rate_limit_window_seconds"], policy["rate_limit_max_requests"]
    auth = request.headers.get("Authorization", "")
    key = auth[7:].strip() if auth.startswith("Bearer ") else (request.client.host if request.client else "unknown")
    now = time.time()
    count, started = _rate_buckets.get(key, (0, now))
    if now - started > window:
        count, started = 0, now
    if count >= limit:
        print(f"[RateLimit] {key[:12]} exceeded {limit}/{window}s")
        raise HTTPException(429, "Rate limit exceeded. Please wait a minute.", headers={"Retry-After": "60"})
    _rate_buckets[key] = (count + 1, started)


def _client_meta(request: Request) -> tuple:
    ip = request.headers.get("x-forwarded-for", "").split(",")[0].strip() or (request.client.host if request.client else None)
    return ip, request.headers.get("user-agent")


# ============================================================
# HEALTH & AUTH
# ============================================================
@app.get("/api/health")
async def health():
    return {"status": "ok", "product": PRODUCT_NAME, "version": VERSION,
            "claude_api": "connected" if USE_REAL_API else "mock_mode",
            "database": "postgres" if DATABASE_URL else "file"}


@app.post("/api/auth/register")
async def register(payload: dict):
    return register_user(payload.get("email", ""), payload.get("password", ""), payload.get("name", ""))


@app.post("/api/auth/login")
async def login(payload: dict):
    return authenticate(payload.get("email", ""), payload.get("password", ""))


@app.get("/api/auth/me")
async def me(user: dict = Depends(get_current_user)):
    return user


@app.get("/api/auth/users")
async def users(user: dict = Depends(ADMIN)):
    return list_users()


@app.put("/api/auth/users/{uid}/role")
async def change_role(uid: str, payload: dict, request: Request, user: dict = Depends(ADMIN)):
    try:
        return set_user_role(uid, payload.get("role"), get_user_display(request)[0])
    except KeyError:
        raise HTTPException(404, "User not found")


# ============================================================
# FEASIBILITY STUDIES
# ============================================================
@app.get("/api/studies/default")
async def study_defaults():
    study = feasibility.default_study()
    return {**study, **feasibility.calculate_financials(study)}


@app.post("/api/studies/calculate")
async def calculate_study(payload: dict):
    return feasibility.calculate_financials(payload)


@app.get("/api/studies")
async def list_studies(country: str = None, status: str = None, user: dict = Depends(get_current_user)):
    return feasibility.list_studies(get_db(), country, status)


@app.post("/api/studies")
async def create_study(payload: dict, request: Request, user: dict = Depends(EDITOR)):
    db = get_db()
    study = feasibility.save_study(db, {k: v for k, v in payload.items() if k != "id"}, get_user_display(request)[0])
    save_db(db)
    return study


@app.get("/api/studies/{sid}")
async def get_study(sid: str, user: dict = Depends(get_current_user)):
    study = feasibility.get_study(get_db(), sid)
    if not study: raise HTTPException(404, "Study not found")
    return study


@app.put("/api/studies/{sid}")
async def update_study(sid: str, payload: dict, request: Request, user: dict = Depends(EDITOR)):
    db = get_db()
    if not feasibility.get_study(db, sid): raise HTTPException(404, "Study not found")
    study = feasibility.save_study(db, {**payload, "id": sid}, get_user_display(request)[0])
    save_db(db)
    return study


@app.delete("/api/studies/{sid}")
async def delete_study(sid: str, request: Request, user: dict = Depends(EDITOR)):
    db = get_db()
    if not feasibility.delete_study(db, sid, get_user_display(request)[0]):
        raise HTTPException(404, "Study not found")
    save_db(db)
    return {"success": True}


@app.post("/api/studies/{sid}/apply-template/{template_id}")
async def apply_study_template(sid: str, template_id: str, request: Request, user: dict = Depends(EDITOR)):
    db = get_db()
    study = feasibility.get_study(db, sid)
    if not study: raise HTTPException(404, "Study not found")
    merged = feasibility.apply_template(study, template_id)
    study = feasibility.save_study(db, {**merged, "id": sid}, get_user_display(request)[0])
    save_db(db)
    return study


@app.get("/api/studies/{sid}/alerts")
async def study_alerts(sid: str, user: dict = Depends(get_current_user)):
    study = feasibility.get_study(get_db(), sid)
    if not study: raise HTTPException(404, "Study not found")
    alerts = benchmarks.validate_feasibility(study)
    return {"alerts": alerts, "summary": benchmarks.summarize_alerts(alerts)}


@app.get("/api/studies/{sid}/partnership-impact")
async def study_partnership_impact(sid: str, user: dict = Depends(get_current_user)):
    study = feasibility.get_study(get_db(), sid)
    if not study: raise HTTPException(404, "Study not found")
    return feasibility.partnership_impact(study.get("annual_revenue") or 0, feasibility.annual_tonnage(study),
                                          study.get("government_royalties_percent") or 0,
                                          study.get("environmental_bonus_per_ton") or 0)


@app.get("/api/studies/{sid}/pdf")
async def study_pdf(sid: str, user: dict = Depends(get_current_user)):
    db = get_db()
    study = feasibility.get_study(db, sid)
    if not study: raise HTTPException(404, "Study not found")
    analysis = next((a for a in reversed(db["analyses"]) if a.get("studyId") == sid), None)
    content, digest = reports.study_pdf(study, benchmarks.validate_feasibility(study),
                                        analysis["analysis"] if analysis else None)
    reports.save_pdf("study", sid, content)
    return Response(content, media_type="application/pdf", headers={
        "Content-Disposition": f'attachment; filename="feasibility_{sid}.pdf"', "X-Content-Hash": digest})


@app.get("/api/templates")
async def list_templates():
    return feasibility.FEASIBILITY_TEMPLATES


@app.get("/api/templates/{template_id}")
async def get_template(template_id: str):
    template = feasibility.get_template(template_id)
    if not template: raise HTTPException(404, "Template not found")
    return template


@app.get("/api/regulations/{country}")
async def regulations(country: str):
    return feasibility.get_regulations(country)


@app.post("/api/alerts/validate")
async def validate_inputs(payload: dict):
    alerts = benchmarks.validate_feasibility(payload)
    return {"alerts": alerts, "summary": benchmarks.summarize_alerts(alerts)}


@app.get("/api/benchmarks")
async def get_benchmarks():
    return {"plant": benchmarks.BENCHMARKS, "countryOpex": benchmarks.COUNTRY_OPEX_BENCHMARKS,
            "productPrices": benchmarks.PRODUCT_PRICE_BENCHMARKS, "regionalPlants": benchmarks.REGIONAL_PLANT_BENCHMARKS}


@app.get("/api/benchmarks/infrastructure/countries")
async def infrastructure_countries():
    return benchmarks.industrial_cost_countries()


@app.post("/api/benchmarks/infrastructure")
async def infrastructure_costs(payload: dict):
    return benchmarks.calculate_infrastructure_costs(
        payload.get("country_code"), payload.get("daily_capacity_tons"), payload.get("equipment_cost"),
        payload.get("plant_size"), payload.get("land_plot_id"), payload.get("operating_days_per_month") or 26)


# ============================================================
# AI ANALYSIS
# ============================================================
@app.post("/api/analysis/feasibility", dependencies=[Depends(rate_limited)])
async def feasibility_analysis(payload: dict, request: Request, user: dict = Depends(get_current_user)):
    study = payload.get("study")
    model = payload.get("model") or get_policy()["default_analysis_model"]
    result = await analyze_feasibility(study, model, payload.get("otrReference"), payload.get("fiscalIncentives"),
                                       payload.get("enabledSpecialists"), client=request.app.state.ai_client)
    db = get_db()
    db["analyses"].append({"id": os.urandom(4).hex(), "studyId": study.get("id"), "model": result["model_used"],
                           "didFallback": result["did_fallback"], "analysis": result["analysis"],
                           "createdAt": datetime.now().isoformat(), "by": user.get("name")})
    log_activity(db, "feasibility_analyzed", studyId=study.get("id"), model=result["model_used"])
    save_db(db)
    return result


@app.post("/api/analysis/market-intelligence", dependencies=[Depends(rate_limited)])
async def market_intelligence(payload: dict, request: Request, user: dict = Depends(get_current_user)):
    result = await analyze_market_intelligence(payload.get("text"), payload.get("prompt"),
                                               bool(payload.get("fast")), client=request.app.state.ai_client)
    if result.get("_source") == "no_api_key":
        raise HTTPException(503, result["_error"])
    if not result.get("success"):
        raise HTTPException(502, result.get("_error", "AI call failed"))
    return result


# ============================================================
# INCENTIVES, TIRES, TRADE
# ============================================================
@app.get("/api/incentives/{country}/regions")
async def incentive_regions(country: str):
    return {"regions": incentives.get_regions_for_country(country),
            "corporateTax": incentives.get_base_tax_rate(country)}


@app.get("/api/incentives/{country}/regions/{region_id}")
async def incentive_region(country: str, region_id: str):
    details = incentives.get_region_incentive_details(country, region_id)
    if not details: raise HTTPException(404, "Region not found")
    return details


@app.get("/api/partnerships/{country}")
async def partnership_data(country: str, collection_model: str = None):
    data = incentives.get_government_partnership_data(country)
    if not data: raise HTTPException(404, "No partnership data for country")
    if collection_model:
        return {**data, "recommended": incentives.get_recommended_partnership_terms(country, collection_model)}
    return data


@app.get("/api/tires/categories")
async def tire_categories():
    return tires.TIRE_CATEGORIES


@app.get("/api/tires/categories/{category_id}")
async def tire_category(category_id: str, country: str = None):
    category = tires.get_tire_category(category_id)
    if not category: raise HTTPException(404, "Tire category not found")
    out = {**category, "opexAdjustments": tires.get_tire_category_opex_adjustments(category_id),
           "yields": tires.get_tire_category_yields(category_id)}
    if country:
        out["bonusAdjustment"] = tires.get_regional_tire_bonus_adjustments(country, category_id)
    return out


@app.get("/api/tires/models")
async def tire_models():
    return {"models": tires.OTR_TIRE_MODELS, "marketPrices": tires.OTR_MARKET_PRICES}


@app.post("/api/tires/value")
async def tire_value(payload: dict):
    value = tires.calculate_tire_value(payload.get("model"), payload.get("prices"))
    if not value: raise HTTPException(404, "Tire model not found")
    return value


@app.get("/api/trade/countries")
async def trade_countries():
    return trade.get_destination_countries()


@app.get("/api/trade/countries/{code}")
async def trade_country(code: str):
    summary = trade.get_country_tax_summary(code)
    if not summary: raise HTTPException(404, "Country not found")
    return summary


@app.post("/api/trade/export-price")
async def export_price(payload: dict):
    return trade.calculate_export_price(payload.get("basePrice"), payload.get("quantity"), payload.get("product"),
                                        payload.get("incoterm"), payload.get("destination"), payload.get("origin") or "BR")


@app.post("/api/trade/compare")
async def compare_destinations(payload: dict):
    return trade.compare_destinations(payload.get("basePrice"), payload.get("quantity"), payload.get("product"),
                                      payload.get("incoterm"), payload.get("destinations") or [])


# ============================================================
# AML / KYC SCREENING
# ============================================================
@app.get("/api/screening/sources")
async def screening_sources(jurisdictions: str = "ALL"):
    return screening.sources_for_jurisdictions(jurisdictions.split(","))


@app.post("/api/screening", dependencies=[Depends(rate_limited)])
async def run_screening(payload: dict, request: Request, user: dict = Depends(EDITOR)):
    ip, ua = _client_meta(request)
    db = get_db()
    result = await screening.run_screening(payload, db, client=request.app.state.http_client,
                                           ip_address=ip, user_agent=ua)
    save_db(db)
    return result


@app.get("/api/screening/reports")
async def screening_reports(risk_level: str = None, limit: int = None, user: dict = Depends(get_current_user)):
    return screening.list_reports(get_db(), risk_level, limit)


@app.get("/api/screening/reports/{rid}")
async def screening_report(rid: str, user: dict = Depends(get_current_user)):
    report = screening.get_report(get_db(), rid)
    if not report: raise HTTPException(404, "Report not found")
    return report


@app.get("/api/screening/shared/{token}")
async def shared_screening_report(token: str):
    db = get_db()
    report = screening.get_report_by_token(db, token)
    if not report: raise HTTPException(404, "Report not found")
    save_db(db)
    return report


@app.post("/api/screening/reports/{rid}/status")
async def screening_report_status(rid: str, payload: dict, request: Request, user: dict = Depends(EDITOR)):
    db = get_db()
    try:
        report = screening.update_report_status(db, rid, payload.get("status"), get_user_display(request)[0],
                                                payload.get("notes", ""))
    except KeyError:
        raise HTTPException(404, "Report not found")
    save_db(db)
    return report


@app.get("/api/screening/reports/{rid}/pdf")
async def screening_report_pdf(rid: str, user: dict = Depends(get_current_user)):
    report = screening.get_report(get_db(), rid)
    if not report: raise HTTPException(404, "Report not found")
    content, digest = reports.aml_report_pdf(report)
    reports.save_pdf("aml", rid, content)
    return Response(content, media_type="application/pdf", headers={
        "Content-Disposition": f'attachment; filename="aml_report_{rid}.pdf"', "X-Content-Hash": digest})


# ============================================================
# LEADS
# ============================================================
@app.get("/api/leads")
async def list_leads(type: str = None, status: str = None, priority: str = None, country: str = None,
                     search: str = None, user: dict = Depends(get_current_user)):
    return leads.list_leads(get_db(), type, status, priority, country, search)


@app.post("/api/leads")
async def create_lead(payload: dict, request: Request):
    db = get_db()
    lead = leads.create_lead(db, payload, get_user_display(request)[0])
    save_db(db)
    return lead


@app.get("/api/leads/{lid}")
async def get_lead(lid: str, user: dict = Depends(get_current_user)):
    lead = leads.get_lead(get_db(), lid)
    if not lead: raise HTTPException(404, "Lead not found")
    return lead


@app.patch("/api/leads/{lid}")
async def update_lead(lid: str, payload: dict, request: Request, user: dict = Depends(EDITOR)):
    db = get_db()
    try:
        lead = leads.update_lead(db, lid, payload, get_user_display(request)[0])
    except KeyError:
        raise HTTPException(404, "Lead not found")
    save_db(db)
    return lead


@app.post("/api/leads/analyze", dependencies=[Depends(rate_limited)])
async def analyze_lead_text(payload: dict, request: Request, user: dict = Depends(get_current_user)):
    return await leads.analyze_lead(payload.get("text"), payload.get("labels"), client=request.app.state.ai_client)


@app.post("/api/leads/batch-analyze", dependencies=[Depends(rate_limited)])
async def batch_analyze(payload: dict, request: Request, user: dict = Depends(EDITOR)):
    db = get_db()
    results = await leads.batch_analyze_leads(db, payload.get("ids"), client=request.app.state.ai_client,
                                              user_name=get_user_display(request)[0])
    save_db(db)
    return {"analyzed": len(results), "results": results}


# ============================================================
# DOCUMENTS & SIGNATURES
# ============================================================
def _document_or_404(db: dict, did: str) -> dict:
    doc = documents.get_document(db, did)
    if not doc: raise HTTPException(404, "Document not found")
    return doc


@app.get("/api/documents")
async def list_documents(document_type: str = None, status: str = None, lead_id: str = None,
                         user: dict = Depends(get_current_user)):
    return documents.list_documents(get_db(), document_type, status, lead_id)


@app.post("/api/documents")
async def create_document(payload: dict, request: Request, user: dict = Depends(EDITOR)):
    db = get_db()
    doc = documents.create_document(db, payload, get_user_display(request)[0])
    save_db(db)
    return doc


@app.post("/api/documents/generate", dependencies=[Depends(rate_limited)])
async def generate_document(payload: dict, request: Request, user: dict = Depends(EDITOR)):
    draft = await generate_document_draft(payload, client=request.app.state.ai_client)
    if not payload.get("save"):
        return draft
    db = get_db()
    doc_type = payload["template_type"].lower()
    partner = payload.get("partner_name") or "ELP"
    name = payload.get("document_name") or f"{doc_type.replace('_', ' ').upper()} - {partner}"
    draft["document"] = documents.create_document(db, {
        "document_name": name, "document_type": doc_type, "language": payload.get("language") or "en",
        "content": draft["documentContent"], "lead_id": payload.get("lead_id"), "lead_type": payload.get("lead_type"),
        "field_values": {**draft["fields"], "signers": payload.get("signers")},
        "required_signatures": payload.get("required_signatures"),
    }, get_user_display(request)[0])
    save_db(db)
    return draft


@app.get("/api/documents/{did}")
async def get_document(did: str, user: dict = Depends(get_current_user)):
    return _document_or_404(get_db(), did)


@app.post("/api/documents/{did}/notify-next-signer")
async def notify_next_signer(did: str, request: Request, user: dict = Depends(EDITOR)):
    db = get_db()
    notification = documents.notify_next_signer(_document_or_404(db, did), get_user_display(request)[0])
    documents.queue_email(db, documents.next_signer_email(notification))
    log_activity(db, "signer_notified", documentId=did, email=notification["nextSignerEmail"])
    save_db(db)
    return notification


@app.post("/api/documents/{did}/sign")
async def sign_document(did: str, payload: dict, request: Request):
    db = get_db()
    ip, ua = _client_meta(request)
    doc = documents.sign_document(db, _document_or_404(db, did), payload.get("signer_email"),
                                  payload.get("signature_type") or "simple", ip, ua)
    save_db(db)
    return doc


@app.get("/api/documents/{did}/emails")
async def document_emails(did: str, user: dict = Depends(EDITOR)):
    db = get_db()
    _document_or_404(db, did)
    return documents.list_emails(db, did)


@app.post("/api/documents/{did}/cancel")
async def cancel_document(did: str, payload: dict, request: Request, user: dict = Depends(EDITOR)):
    db = get_db()
    doc = documents.cancel_document(_document_or_404(db, did), get_user_display(request)[0], payload.get("reason", ""))
    save_db(db)
    return doc


# ============================================================
# SEMANTIC SEARCH
# ============================================================
def _searchable(db: dict, source: str) -> list:
    if source == "leads":
        return [{"id": l["id"], "content": l.get("message") or ""} for l in db["leads"]]
    if source == "studies":
        return [{"id": s["id"], "content": f"{s.get('study_name')} {s.get('location') or ''} {s.get('notes') or ''}"}
                for s in db["feasibility_studies"]]
    return [{"id": d["id"], "content": d.get("content") or d["document_name"]} for d in db["generated_documents"]]


def _top_k(payload: dict) -> int:
    top_k = payload.get("top_k") or 10
    if isinstance(top_k, bool) or not isinstance(top_k, int) or top_k < 1:
        raise ValueError("top_k must be a positive integer")
    return top_k


@app.post("/api/search")
async def semantic_search(payload: dict, request: Request, user: dict = Depends(get_current_user)):
    docs = payload.get("documents")
    if docs is None:
        docs = _searchable(get_db(), payload.get("source", "documents"))
    return await search.semantic_search(payload.get("query"), docs, _top_k(payload),
                                        client=request.app.state.http_client)


@app.post("/api/search/index")
async def index_for_search(payload: dict, request: Request, user: dict = Depends(EDITOR)):
    source = payload.get("source", "documents")
    return await search.index_documents(_searchable(get_db(), source), kind=source,
                                        client=request.app.state.http_client)


@app.post("/api/search/query")
async def query_index(payload: dict, request: Request, user: dict = Depends(get_current_user)):
    return await search.search_index(payload.get("query"), _top_k(payload), payload.get("kind"),
                                     client=request.app.state.http_client)


@app.get("/api/search/stats")
async def search_stats():
    return search.store.stats()


# ============================================================
# POLICY
# ============================================================
@app.get("/api/policy")
async def read_policy():
    return {"policy": get_policy(), "presets": {k: {"name": v["name"], "description": v["description"]}
                                                for k, v in POLICY_PRESETS.items()}}


@app.put("/api/policy")
async def write_policy(payload: dict, user: dict = Depends(ADMIN)):
    return update_policy(payload)


@app.post("/api/policy/preset/{name}")
async def use_preset(name: str, user: dict = Depends(ADMIN)):
    return apply_preset(name)


# ============================================================
# ADMIN
# ============================================================
@app.post("/api/reset")
async def reset(user: dict = Depends(ADMIN)):
    reset_db()
    reset_policy()
    reset_rate_limits()
    search.store.clear()
    return {"success": True}


@app.get("/api/export")
async def export(user: dict = Depends(ADMIN)):
    db = get_db()
    return {**db, "users": [{k: v for k, v in u.items() if k != "passwordHash"} for u in db["users"]]}


if RESET_ON_START:
    print("[Server] RESET_ON_START enabled, wiping data")
    reset_db()


def main():
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    print(f"Starting {PRODUCT_NAME} back office v{VERSION} on port {port}")
    print(f"Claude API: {'Connected' if USE_REAL_API else 'Mock Mode'}")
    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
