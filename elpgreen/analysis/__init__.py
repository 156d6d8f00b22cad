"""
ELP Green: AI Analysis Layer

Three analysis families, all through Claude (AsyncAnthropic) with a
deterministic local path when no API key is configured or a call fails:

  Feasibility analysis
    local          deterministic template from the study metrics
    flash          single call, 6-section report
    pro            single call, 10-section report
    collaborative  4 perspectives in parallel + executive synthesis
    advanced       7 specialists in parallel (math, industrial, economic,
                   market search, probability, legal, sustainability)

  Market intelligence
    Competitor site text -> JSON insights + executive summary.

  Lead text analysis
    Sentiment (1..5 stars) and zero-shot intent classification.
    Keyword scorer fallback.

  Document drafting
    Type + country + language -> full draft with the local legal
    framework. Section-template fallback.
"""
import re, json, asyncio
import time as _time
import anthropic

from elpgreen.config import USE_REAL_API, PRIMARY_MODEL, FAST_MODEL, AI_TIMEOUT_SECONDS, MARKET_TEXT_MAX_CHARS
from elpgreen.feasibility import validate_study_payload, analysis_metrics, viability_rating, get_regulations, safe_num
from elpgreen.policy import VALID_ANALYSIS_MODELS
from elpgreen.documents import (DOCUMENT_TYPES, DOCUMENT_SECTIONS, DOCUMENT_KEY_FIELDS, LANGUAGE_NAMES,
                                TEMPLATE_CONTENT_MAX_CHARS, legal_framework, render_template)

SECTION_RULE = "=" * 80


# ============================================================
# MODEL CALLS
# ============================================================
def _client(client=None):
    return client or anthropic.AsyncAnthropic(timeout=AI_TIMEOUT_SECONDS)


def _ai_available(client) -> bool:
    return client is not None or USE_REAL_API


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        first_nl = text.index("\n") if "\n" in text else len(text)
        text = text[first_nl + 1:]
        if text.endswith("```"): text = text[:-3]
        text = text.strip()
    return text


async def _call_model(client, model: str, prompt: str, label: str,
                      max_tokens: int = 4000, temperature: float = None) -> dict:
    """One Claude call. Returns {"text", "_model", "_latency_ms", "_usage"} or {"_error", "_model"}."""
    try:
        print(f"[Analysis:{label}] Calling {model.split('-')[1]}...")
        t0 = _time.time()
        kwargs = {"temperature": temperature} if temperature is not None else {}
        msg = await client.messages.create(model=model, max_tokens=max_tokens,
            messages=[{"role": "user", "content": prompt}], **kwargs)
        text = msg.content[0].text.strip()
        elapsed = round((_time.time() - t0) * 1000)
        usage = getattr(msg, "usage", None)
        print(f"[Analysis:{label}] OK in {elapsed}ms, {len(text)} chars")
        return {"text": text, "_model": model, "_latency_ms": elapsed,
                "_usage": {"input_tokens": getattr(usage, "input_tokens", None),
                           "output_tokens": getattr(usage, "output_tokens", None)} if usage else None}
    except Exception as e:
        print(f"[Analysis:{label}] API error: {type(e).__name__}: {e}")
        return {"_error": str(e), "_model": model}


async def _call_json(client, model: str, prompt: str, label: str, max_tokens: int = 1000) -> dict:
    result = await _call_model(client, model, prompt, label, max_tokens=max_tokens, temperature=0)
    if "_error" in result:
        return result
    try:
        parsed = json.loads(_strip_fences(result["text"]))
        return {"data": parsed, "_model": model, "_latency_ms": result["_latency_ms"]}
    except json.JSONDecodeError as e:
        print(f"[Analysis:{label}] JSON parse error: {e}")
        return {"_error": f"JSON parse: {e}", "_model": model}


# ============================================================
# FEASIBILITY: LOCAL TEMPLATE
# ============================================================
def generate_local_analysis(study: dict, metrics: dict, regulations: dict) -> dict:
    """Deterministic analysis built only from the study numbers and country regulations."""
    roi = safe_num(study.get("roi_percentage"))
    irr = safe_num(study.get("irr_percentage"))
    payback = safe_num(study.get("payback_months"), 60)
    npv = safe_num(study.get("npv_10_years"))
    investment = safe_num(study.get("total_investment"), 5000000)
    country = study.get("country") or "the target country"
    location = study.get("location") or country
    rating = viability_rating(roi, irr, payback, npv)
    tonnage = metrics["annualTonnage"]
    margin = metrics["ebitdaMargin"]

    product_total = metrics["rubberRevenue"] + metrics["steelRevenue"] + metrics["fiberRevenue"]
    rubber_share = metrics["rubberRevenue"] / product_total * 100 if product_total else 0
    steel_share = metrics["steelRevenue"] / product_total * 100 if product_total else 0

    justification = (
        f'Project "{study.get("study_name")}" shows **{rating}** viability with ROI {roi:.1f}%, '
        f"IRR {irr:.1f}%, payback {payback / 12:.1f} years and investment of USD {investment / 1e6:.2f}M. "
        + ("The indicators point to strong return potential. " if rating in ("Excellent", "Good")
           else "The indicators point to a need for optimization before investment. ")
        + f"The EBITDA margin of {margin:.1f}% "
        + ("exceeds industry standards." if margin >= 30 else "is within the sector average.")
    )

    strengths = [
        f"Processing capacity of {safe_num(study.get('daily_capacity_tons'), 50):.0f} t/day ({tonnage:,.0f} t/year)",
        f"Diversified revenue: rubber granules {rubber_share:.0f}% and steel {steel_share:.0f}% of product sales",
        f"Revenue of USD {metrics['revenuePerTon']:.0f}/t against OPEX of USD {metrics['opexPerTon']:.0f}/t",
        "Smart Line technology with high recovery of rubber, steel and textile from OTR tires",
        "Technology partnership with TOPS Recycling (ELP/TOPS) and proven plant references",
        f"Environmental impact: diverts {tonnage:,.0f} t/year of end-of-life tires from landfill and burning",
        f"ROI of {roi:.1f}% " + ("is attractive for industrial infrastructure" if roi >= 20
                                 else "leaves room for optimization potential"),
        f"10-year NPV of USD {npv / 1e6:.2f}M " + ("is positive" if npv > 0 else "requires attention"),
        "Growing market for recycled rubber, rCB and steel driven by circular economy regulation",
        f"Tax incentives available: {regulations['taxIncentives'][0]}",
    ]

    risks = [
        f"Regulatory: licensing in {country} may take 6-18 months ({', '.join(regulations['licenses'])})",
        "Price volatility of recovered rubber, steel scrap and carbon black",
        "Supply dependency on mining companies and tire collectors for OTR feedstock",
        "Operational: giant OTR tires require specialized cutting and trained personnel",
        "Currency exposure between USD-priced equipment and local-currency revenue",
        f"EBITDA margin of {margin:.1f}% " + ("requires strict cost control" if margin < 25
                                             else "must be maintained through operational discipline"),
    ]

    recommendations = [
        f"Phase 1, Licensing (months 0-6): obtain {regulations['licenses'][0]} with {regulations['agency']}",
        "Phase 2, Engineering (months 3-9): detailed plant design and equipment procurement",
        "Phase 3, Construction (months 6-15): civil works, installation and utilities",
        "Phase 4, Commissioning (months 12-18): ramp-up, quality certification and first sales",
        f"Secure long-term supply contracts for {tonnage:,.0f} t/year of tires",
        "Sign off-take agreements for granules, steel and rCB before construction",
        f"Apply for incentives: {regulations['taxIncentives'][0]}",
        f"Training program aligned with {regulations['laborRegulations'][0]}",
    ]

    market = (
        f"The {location} market offers demand for rubber granules (reference USD "
        f"{safe_num(study.get('rubber_granules_price'), 350):.0f}/t) in asphalt, sports surfaces and molded "
        f"products, and for recovered steel (USD {safe_num(study.get('steel_wire_price'), 200):.0f}/t) in steel "
        "mills and foundries. Mining operations nearby provide a steady supply of OTR tires."
    )
    esg = (
        "The project contributes to SDG 12 (responsible consumption and production), SDG 13 (climate action) "
        "and SDG 9 (industry, innovation and infrastructure) by replacing landfill and open burning with "
        "material recovery. Expected ESG rating: A-."
    )

    return {
        "viabilityRating": rating, "viabilityJustification": justification,
        "strengths": strengths, "risks": risks, "recommendations": recommendations,
        "marketAnalysis": market, "esgAnalysis": esg,
    }


def format_analysis_markdown(study: dict, analysis: dict) -> str:
    lines = [f"# Feasibility Analysis: {study.get('study_name')}", "",
             f"**Viability: {analysis['viabilityRating']}**", "", analysis["viabilityJustification"], ""]
    for title, key in (("Strengths", "strengths"), ("Risks", "risks"), ("Recommendations", "recommendations")):
        lines.append(f"## {title}")
        lines.extend(f"{i}. {item}" for i, item in enumerate(analysis[key], 1))
        lines.append("")
    lines += ["## Market Analysis", analysis["marketAnalysis"], "", "## ESG Analysis", analysis["esgAnalysis"]]
    return "\n".join(lines)


# ============================================================
# FEASIBILITY: PROMPTS
# ============================================================
FLASH_SECTIONS = ["Executive Summary", "Financial Analysis", "Regulatory & Licensing",
                  "Market Analysis", "Risks & Mitigation", "Recommendations"]
PRO_SECTIONS = FLASH_SECTIONS[:4] + ["Technology & Operations", "ESG & Sustainability",
                                     "Sensitivity Analysis", "Implementation Timeline"] + FLASH_SECTIONS[4:]

COLLABORATIVE_PERSPECTIVES = {
    "financial": ("SECTION 1: FINANCIAL ANALYSIS",
                  "You are a project finance analyst. Assess ROI, IRR, NPV, payback, margins and financing structure."),
    "regulatory": ("SECTION 2: REGULATORY ANALYSIS",
                   "You are an environmental licensing lawyer. Assess permits, timelines, tax incentives and labor rules."),
    "market": ("SECTION 3: MARKET ANALYSIS",
               "You are a commodities market analyst. Assess demand and prices for rubber granules, steel, textile and rCB."),
    "esg": ("SECTION 4: ESG ANALYSIS",
            "You are an ESG auditor. Assess environmental impact, SDG alignment, community and governance aspects."),
}

SPECIALISTS = {
    "mathematical": "You are a Senior Mathematical Engineer specializing in financial modeling. Verify every "
                    "formula (tonnage, revenue, EBITDA, NPV, IRR, payback) and flag inconsistencies.",
    "industrial": "You are an Industrial Engineer for tire recycling plants. Assess capacity, yields, equipment "
                  "sizing, maintenance and OTR processing constraints.",
    "economic": "You are a Development Economist. Assess macroeconomic context, currency, inflation, financing "
                "and government partnership terms.",
    "search": "You are a Market Intelligence Researcher. Summarize competitors, buyers and price references for "
              "recycled rubber, steel and rCB in the region.",
    "probability": "You are a Risk Quant. Estimate probabilities for the main downside scenarios and their "
                   "impact on NPV and payback.",
    "legal": "You are an Environmental and Corporate Lawyer. List licenses, timelines, liabilities and contract "
             "safeguards for the jurisdiction.",
    "sustainability": "You are a Sustainability Specialist. Quantify CO2 avoided, SDG alignment and ESG "
                      "reporting opportunities.",
}


def _study_context(study: dict, metrics: dict, regulations: dict,
                   otr_reference: dict = None, fiscal_incentives: dict = None) -> str:
    s = lambda k, d=0: safe_num(study.get(k), d)
    ctx = f"""PROJECT: {study.get('study_name')} | {study.get('location') or ''} {study.get('country') or ''}
Capacity: {s('daily_capacity_tons', 50):.0f} t/day, {s('operating_days_per_year', 300):.0f} days/year, {s('utilization_rate', 85):.0f}% utilization ({metrics['annualTonnage']:,.0f} t/year)
Investment: USD {s('total_investment'):,.0f}
Annual revenue: USD {s('annual_revenue'):,.0f} | OPEX: USD {s('annual_opex'):,.0f} | EBITDA: USD {s('annual_ebitda'):,.0f} ({metrics['ebitdaMargin']:.1f}% margin)
ROI: {s('roi_percentage'):.1f}% | IRR: {s('irr_percentage'):.1f}% | NPV 10y: USD {s('npv_10_years'):,.0f} | Payback: {s('payback_months'):.0f} months
Revenue/t: USD {metrics['revenuePerTon']:.0f} | OPEX/t: USD {metrics['opexPerTon']:.0f}
Government royalties: USD {metrics['annualRoyalties']:,.0f}/year | Environmental bonus: USD {metrics['annualEnvBonus']:,.0f}/year
Regulatory agency: {regulations['agency']}
Main laws: {'; '.join(regulations['mainLaws'])}
Licenses: {'; '.join(regulations['licenses'])}
Tax incentives: {'; '.join(regulations['taxIncentives'])}"""
    if otr_reference:
        tires = otr_reference.get("tireModels") or []
        ctx += "\nOTR reference tires:\n" + "\n".join(
            f"  {t.get('model')}: {t.get('weight')}kg" for t in tires)
    if fiscal_incentives:
        ctx += f"\nRegional fiscal incentives: {json.dumps(fiscal_incentives, default=str)[:2000]}"
    return ctx


def build_feasibility_prompt(study: dict, metrics: dict, regulations: dict, sections: list,
                             otr_reference: dict = None, fiscal_incentives: dict = None) -> str:
    numbered = "\n".join(f"{i}. {name}" for i, name in enumerate(sections, 1))
    return (
        "You are a senior consultant for OTR tire recycling plant investments. Write a professional "
        f"feasibility analysis in English with exactly these {len(sections)} sections as Markdown headings:\n"
        f"{numbered}\n\nQuote the numbers below. Do not invent figures that are not derivable from them.\n\n"
        + _study_context(study, metrics, regulations, otr_reference, fiscal_incentives)
    )


def _clean_markdown(text: str) -> str:
    if not text:
        return ""
    text = re.sub(r"```[\s\S]*?```", "", text)
    text = re.sub(r"#{1,6}\s*", "", text)
    text = re.sub(r"\*\*([^*]+)\*\*", r"\1", text)
    text = re.sub(r"\*([^*]+)\*", r"\1", text)
    text = re.sub(r"`([^`]+)`", r"\1", text)
    text = re.sub(r"^\s*[-*]\s+", "  - ", text, flags=re.M)
    text = re.sub(r"^\s*>\s*", "", text, flags=re.M)
    text = re.sub(r"\[([^\]]+)\]\([^)]+\)", r"\1", text)
    return text.strip()


# ============================================================
# FEASIBILITY: MULTI-CALL MODES
# ============================================================
async def _run_collaborative(client, study, context) -> dict:
    keys = list(COLLABORATIVE_PERSPECTIVES)
    results = await asyncio.gather(*[
        _call_model(client, PRIMARY_MODEL, f"{COLLABORATIVE_PERSPECTIVES[k][1]}\n\n{context}", f"Collab:{k}")
        for k in keys], return_exceptions=True)
    parts = {}
    for k, r in zip(keys, results):
        if isinstance(r, Exception):
            r = {"_error": str(r)}
        if "_error" not in r:
            parts[k] = r["text"]
    if not parts:
        return {}

    synthesis_prompt = ("Write a one-page executive summary combining these specialist analyses:\n\n"
                        + "\n\n".join(f"[{k}]\n{v}" for k, v in parts.items()))
    synthesis = await _call_model(client, PRIMARY_MODEL, synthesis_prompt, "Collab:synthesis", max_tokens=2000)

    doc = [f"COLLABORATIVE FEASIBILITY REPORT\n\n{study.get('study_name')} | {study.get('location') or study.get('country') or ''}",
           f"Multi-Perspective AI Analysis: {len(parts)}/{len(keys)} successful analyses", SECTION_RULE]
    if "_error" not in synthesis:
        doc += [f"EXECUTIVE SUMMARY\n\n{_clean_markdown(synthesis['text'])}", SECTION_RULE]
    for k in keys:
        if k in parts:
            doc += [f"{COLLABORATIVE_PERSPECTIVES[k][0]}\n\n{_clean_markdown(parts[k])}", SECTION_RULE]
    return {"text": "\n\n".join(doc),
            "stats": {"perspectives": len(keys), "successful": sorted(parts),
                      "synthesis": "_error" not in synthesis}}


async def _run_advanced(client, study, context, enabled: list = None) -> dict:
    active = [s for s in (enabled or list(SPECIALISTS)) if s in SPECIALISTS]
    t0 = _time.time()
    results = await asyncio.gather(*[
        _call_model(client, PRIMARY_MODEL, f"{SPECIALISTS[s]}\n\n{context}", f"Specialist:{s}") for s in active],
        return_exceptions=True)
    specialist_results = {}
    for s, r in zip(active, results):
        if isinstance(r, Exception):
            r = {"_error": str(r)}
        specialist_results[s] = ({"content": r["text"], "success": True, "duration": r["_latency_ms"]}
                                 if "_error" not in r else {"content": None, "success": False, "error": r["_error"]})
    ok = [s for s in active if specialist_results[s]["success"]]
    if not ok:
        return {}
    doc = [f"ADVANCED SPECIALIST ANALYSIS\n\n{study.get('study_name')}",
           f"Specialists used: {len(ok)}/{len(active)}", SECTION_RULE]
    for s in ok:
        doc += [f"{s.upper()} SPECIALIST\n\n{_clean_markdown(specialist_results[s]['content'])}", SECTION_RULE]
    return {"text": "\n\n".join(doc), "specialist_results": specialist_results,
            "stats": {"total_specialists": len(active), "successful": len(ok),
                      "duration_ms": round((_time.time() - t0) * 1000)}}


async def analyze_feasibility(study: dict, model: str = "local", otr_reference: dict = None,
                              fiscal_incentives: dict = None, enabled_specialists: list = None,
                              client=None) -> dict:
    """Analyze a feasibility study. Falls back to the local template on any AI failure."""
    valid, error = validate_study_payload(study)
    if not valid:
        raise ValueError(error)
    if model not in VALID_ANALYSIS_MODELS:
        raise ValueError(f"Unknown model '{model}'. Allowed: {list(VALID_ANALYSIS_MODELS)}")

    metrics = analysis_metrics(study)
    regulations = get_regulations(study.get("country") or "")
    response = {"metrics": metrics, "regulations": regulations,
                "otr_reference_used": bool(otr_reference), "fiscal_incentives_used": bool(fiscal_incentives)}

    def local(fallback: bool) -> dict:
        analysis = generate_local_analysis(study, metrics, regulations)
        return {**response, "analysis": format_analysis_markdown(study, analysis), "structured": analysis,
                "model_used": "local", "did_fallback": fallback}

    if model == "local":
        return local(False)
    if not _ai_available(client):
        print(f"[Analysis] No API key configured, '{model}' falls back to local")
        return local(True)

    client = _client(client)
    context = _study_context(study, metrics, regulations, otr_reference, fiscal_incentives)

    if model == "collaborative":
        result = await _run_collaborative(client, study, context)
        if result:
            return {**response, "analysis": result["text"], "model_used": "collaborative",
                    "did_fallback": False, "collaborative_stats": result["stats"]}
        print("[Analysis] Collaborative analysis failed, falling back to local")
        return local(True)

    if model == "advanced":
        result = await _run_advanced(client, study, context, enabled_specialists)
        if result:
            return {**response, "analysis": result["text"], "model_used": "advanced", "did_fallback": False,
                    "specialist_results": result["specialist_results"], "advanced_stats": result["stats"]}
        print("[Analysis] Advanced analysis failed, falling back to local")
        return local(True)

    sections = PRO_SECTIONS if model == "pro" else FLASH_SECTIONS
    prompt = build_feasibility_prompt(study, metrics, regulations, sections, otr_reference, fiscal_incentives)
    result = await _call_model(client, PRIMARY_MODEL if model == "pro" else FAST_MODEL, prompt, model,
                               max_tokens=8000 if model == "pro" else 4000)
    if "_error" in result:
        return local(True)
    return {**response, "analysis": result["text"], "model_used": model, "did_fallback": False}


# ============================================================
# MARKET INTELLIGENCE
# ============================================================
DEFAULT_MARKET_PROMPT = """You are a senior business intelligence analyst.
Analyze the data collected from competitor websites below.
Extract and structure as valid JSON:
{
  "precos_produtos": [array of objects {produto: string, preco: string, url: string}],
  "estrategias_marketing": [array of strings],
  "reclamacoes_clientes": [array of strings],
  "oportunidades_diferencial": [array of strings]
}
After the JSON, write an executive summary (max 400 words)."""

TRUNCATION_MARKER = "\n\n[... content truncated at token limit ...]"
MARKET_KEYS = ("precos_produtos", "estrategias_marketing", "reclamacoes_clientes", "oportunidades_diferencial")


def truncate_market_text(text: str) -> tuple:
    if len(text) > MARKET_TEXT_MAX_CHARS:
        return text[:MARKET_TEXT_MAX_CHARS] + TRUNCATION_MARKER, True
    return text, False


def parse_market_insights(text: str) -> dict:
    """Split a reply into the leading JSON object and the trailing summary."""
    body = _strip_fences(text)
    start = body.find("{")
    insights = {k: [] for k in MARKET_KEYS}
    if start < 0:
        insights["resumo"] = body
        return insights
    try:
        parsed, end = json.JSONDecoder().raw_decode(body, start)
    except json.JSONDecodeError as e:
        print(f"[Analysis:market] JSON parse error: {e}")
        insights["resumo"] = body
        return insights
    for k in MARKET_KEYS:
        if isinstance(parsed.get(k), list):
            insights[k] = parsed[k]
    insights["resumo"] = _strip_fences(body[end:].strip().lstrip("`").strip()) or parsed.get("resumo", "")
    return insights


async def analyze_market_intelligence(text: str, prompt: str = None, fast: bool = False, client=None) -> dict:
    if not text or not isinstance(text, str):
        raise ValueError("text is required")
    if not _ai_available(client):
        return {"success": False, "_source": "no_api_key", "_error": "ANTHROPIC_API_KEY not configured"}

    truncated, was_truncated = truncate_market_text(text)
    full_prompt = f"{prompt or DEFAULT_MARKET_PROMPT}\n\nWebsite content:\n{truncated}"
    model = FAST_MODEL if fast else PRIMARY_MODEL
    print(f"[Analysis:market] {len(truncated)} chars, fast={fast}")

    result = await _call_model(_client(client), model, full_prompt, "market",
                               max_tokens=2000 if fast else 4000, temperature=0.5 if fast else 0.3)
    if "_error" in result:
        return {"success": False, "_error": result["_error"], "model": model}
    return {"success": True, "insights": parse_market_insights(result["text"]), "raw": result["text"],
            "model": model, "tokens_used": result["_usage"], "elapsed_ms": result["_latency_ms"],
            "truncated": was_truncated}


# ============================================================
# LEAD TEXT ANALYSIS
# ============================================================
DEFAULT_LEAD_LABELS = [
    "interesse urgente em comprar",
    "busca informações",
    "parceria estratégica",
    "investimento",
    "reclamação ou problema",
    "fornecedor de matéria-prima",
    "concorrente pesquisando",
]

STAR_LABELS = ["1 star", "2 stars", "3 stars", "4 stars", "5 stars"]

_NEGATIVE = ("urgent", "urgente", "problem", "problema", "complaint", "reclamação", "reclamacao", "atraso",
             "delay", "cancel", "cancelar", "insatisfeito", "unhappy", "ruim", "bad", "erro", "error", "péssimo")
_POSITIVE = ("obrigado", "thanks", "thank you", "ótimo", "otimo", "excelente", "excellent", "great",
             "parabéns", "interessado", "interested", "gostaria", "would like")

LABEL_KEYWORDS = {
    "interesse urgente em comprar": ("comprar", "compra", "urgente", "buy", "purchase", "orçamento", "quote", "pedido"),
    "busca informações": ("informação", "informações", "information", "details", "detalhes", "como funciona", "how"),
    "parceria estratégica": ("parceria", "partnership", "partner", "joint venture", "colaboração", "acordo"),
    "investimento": ("investimento", "investir", "invest", "investment", "capital", "funding", "fundo"),
    "reclamação ou problema": ("reclamação", "problema", "complaint", "problem", "issue", "defeito", "atraso"),
    "fornecedor de matéria-prima": ("fornecedor", "supplier", "pneus", "tires", "tyres", "otr", "sucata", "supply"),
    "concorrente pesquisando": ("concorrente", "competitor", "preço de vocês", "your prices", "benchmark"),
}


def keyword_sentiment(text: str) -> list:
    """Five-star distribution from negative/positive keyword counts."""
    lower = (text or "").lower()
    neg = sum(lower.count(w) for w in _NEGATIVE)
    pos = sum(lower.count(w) for w in _POSITIVE)
    if neg > pos:
        star = 1 if neg - pos >= 2 else 2
    elif pos > neg:
        star = 5 if pos - neg >= 2 else 4
    else:
        star = 3
    scores = [0.1 / 4] * 5
    scores[star - 1] = 0.9
    return sorted(({"label": STAR_LABELS[i], "score": round(s, 4)} for i, s in enumerate(scores)),
                  key=lambda r: r["score"], reverse=True)


def keyword_classification(text: str, labels: list = None) -> list:
    lower = (text or "").lower()
    labels = labels or DEFAULT_LEAD_LABELS
    raw = {}
    for label in labels:
        words = LABEL_KEYWORDS.get(label) or tuple(w for w in label.lower().split() if len(w) > 3)
        raw[label] = sum(1 for w in words if w in lower) + 0.1
    total = sum(raw.values())
    return sorted(({"label": l, "score": round(v / total, 4)} for l, v in raw.items()),
                  key=lambda r: r["score"], reverse=True)


def _check_text(text) -> None:
    if not isinstance(text, str) or not text.strip():
        raise ValueError("text is required")


def _scored_rows(result: dict, key: str, allowed: list) -> list:
    """Rows {label, score} from a model reply, keeping only known labels with numeric scores."""
    data = result.get("data") if "_error" not in result else None
    rows = data.get(key) if isinstance(data, dict) else None
    if not isinstance(rows, list):
        return []
    kept = [{"label": r["label"], "score": float(r["score"])} for r in rows
            if isinstance(r, dict) and isinstance(r.get("label"), str) and r["label"] in allowed
            and isinstance(r.get("score"), (int, float)) and not isinstance(r["score"], bool)]
    return sorted(kept, key=lambda r: r["score"], reverse=True)


async def analyze_sentiment(text: str, client=None) -> dict:
    _check_text(text)
    if _ai_available(client):
        prompt = (f"Rate the sentiment of this customer message on a 1-5 star scale. Return ONLY JSON: "
                  f'{{"sentiment": [{{"label": "<one of {STAR_LABELS}>", "score": <0..1>}}, ...]}} '
                  f"with all five labels and scores summing to 1.\n\nMessage:\n{text}")
        result = await _call_json(_client(client), FAST_MODEL, prompt, "sentiment")
        sentiment = _scored_rows(result, "sentiment", STAR_LABELS)
        if sentiment:
            return {"sentiment": sentiment, "provider": "claude"}
        print("[Analysis:sentiment] Unusable reply, using keyword scoring")
    return {"sentiment": keyword_sentiment(text), "provider": "keywords"}


async def classify_text(text: str, labels: list = None, client=None) -> dict:
    _check_text(text)
    labels = labels or DEFAULT_LEAD_LABELS
    if not isinstance(labels, list) or not all(isinstance(l, str) and l for l in labels):
        raise ValueError("labels must be a list of strings")
    if _ai_available(client):
        prompt = (f"Classify this message against the labels {json.dumps(labels, ensure_ascii=False)}. "
                  f'Return ONLY JSON: {{"classifications": [{{"label": str, "score": 0..1}}]}} covering every '
                  f"label, scores summing to 1.\n\nMessage:\n{text}")
        result = await _call_json(_client(client), FAST_MODEL, prompt, "classify")
        rows = _scored_rows(result, "classifications", labels)
        if rows:
            return {"classifications": rows, "provider": "claude"}
        print("[Analysis:classify] Unusable reply, using keyword scoring")
    return {"classifications": keyword_classification(text, labels), "provider": "keywords"}


# ============================================================
# DOCUMENT DRAFTING
# ============================================================
def _check_draft_request(data: dict) -> dict:
    if not isinstance(data, dict):
        raise ValueError("Invalid payload: expected object")
    doc_type = data.get("template_type")
    if not isinstance(doc_type, str) or not doc_type:
        raise ValueError("Missing or invalid template_type")
    doc_type = doc_type.lower()
    if doc_type not in DOCUMENT_TYPES:
        raise ValueError(f"Invalid template_type. Valid options: {', '.join(DOCUMENT_TYPES)}")
    for key in ("country", "language", "template_content", "partner_name"):
        if data.get(key) and not isinstance(data[key], str):
            raise ValueError(f"Invalid {key}: expected string")
    if len(data.get("template_content") or "") > TEMPLATE_CONTENT_MAX_CHARS:
        raise ValueError("template_content exceeds maximum size (50KB)")
    fields = data.get("existing_fields") or {}
    if not isinstance(fields, dict):
        raise ValueError("existing_fields must be an object")
    return {"template_type": doc_type, "country": data.get("country") or None,
            "language": data.get("language") or "en", "existing_fields": fields,
            "template_content": data.get("template_content") or None,
            "partner_name": data.get("partner_name") or None}


def build_document_prompt(req: dict, framework: dict) -> str:
    doc_type = req["template_type"]
    output_language = LANGUAGE_NAMES.get(req["language"], "English")
    template = f"\n\nBase template:\n{req['template_content']}" if req["template_content"] else ""
    return f"""You are a legal document generator for ELP Green Technology (ELP Alliance S/A), an OTR tire
recycling technology company. Draft a complete, ready-to-sign {doc_type.upper()} in {output_language}.

Mandatory sections: {', '.join(DOCUMENT_SECTIONS[doc_type])}
Key fields: {', '.join(DOCUMENT_KEY_FIELDS[doc_type])}
Counterparty: {req['partner_name'] or 'to be completed'}

Legal framework for {req['country'] or 'an international agreement'}:
- Data Protection Law: {framework['dataProtection']}
- Contract Law: {framework['contractLaw']}
- Jurisdiction: {framework['jurisdiction']}
- Governing Law: {framework['governingLaw']}
- Arbitration: {framework['arbitration']}
- Tax ID Type: {framework['taxId']}
- Currency: {framework['currency']}
- Witness Requirements: {framework['witnessRequirements']}

Known field values (keep them unchanged):
{json.dumps(req['existing_fields'], ensure_ascii=False, default=str)}{template}

Return ONLY JSON: {{"fields": {{...}}, "documentContent": "<full document text>",
"legalNotes": [str], "jurisdictionInfo": {{"governingLaw": str, "jurisdiction": str, "arbitration": str,
"dataProtection": str}}, "recommendedClauses": [str]}}"""


def _str_list(value) -> list:
    return [v for v in value if isinstance(v, str)] if isinstance(value, list) else []


async def generate_document_draft(data: dict, client=None) -> dict:
    """Draft a document for a type, country and language via Claude, or the local template."""
    req = _check_draft_request(data)
    doc_type = req["template_type"]
    framework = legal_framework(req["country"])
    template_info = {"sections": DOCUMENT_SECTIONS[doc_type], "keyFields": DOCUMENT_KEY_FIELDS[doc_type]}
    print(f"[Analysis:document] {doc_type} for {req['country'] or 'default'} in {req['language']}")

    if _ai_available(client):
        result = await _call_json(_client(client), PRIMARY_MODEL, build_document_prompt(req, framework),
                                  "document", max_tokens=8000)
        reply = result.get("data") if "_error" not in result else None
        if isinstance(reply, dict) and isinstance(reply.get("documentContent"), str) \
                and reply["documentContent"].strip():
            fields = reply.get("fields") if isinstance(reply.get("fields"), dict) else {}
            jurisdiction = reply.get("jurisdictionInfo")
            return {"fields": {**fields, **req["existing_fields"]},
                    "documentContent": reply["documentContent"],
                    "legalNotes": _str_list(reply.get("legalNotes")),
                    "recommendedClauses": _str_list(reply.get("recommendedClauses")),
                    "jurisdictionInfo": jurisdiction if isinstance(jurisdiction, dict) else framework,
                    "countryLegalData": framework, "templateInfo": template_info,
                    "provider": "claude", "model_used": result["_model"]}
        print("[Analysis:document] Unusable reply, using local template")

    content = render_template(doc_type, req["existing_fields"], framework, req["template_content"],
                              req["partner_name"])
    return {"fields": dict(req["existing_fields"]), "documentContent": content,
            "legalNotes": ["AI could not generate fields. Please fill manually."], "recommendedClauses": [],
            "jurisdictionInfo": framework, "countryLegalData": framework, "templateInfo": template_info,
            "provider": "template", "model_used": None}
