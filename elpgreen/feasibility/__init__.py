"""
ELP Green: Feasibility Study Engine

Closed-form plant financials for OTR tire recycling projects:
  1. Annual tonnage = capacity × operating days × utilization
  2. Revenue from four recovered products (granules, steel, textile, rCB)
  3. EBITDA, straight-line depreciation, taxes on positive taxable income
  4. Payback, ROI, 10-year NPV, IRR (Newton-Raphson)

Plus government partnership impact, payload validation for AI analysis,
viability rating, regional templates and country regulation summaries.
Study persistence lives here too; it stores records verbatim with the
computed outputs refreshed on every save.
"""

import math, uuid, copy
from datetime import datetime

from elpgreen.db import _n, log_activity

# ============================================================
# DEFAULT STUDY: reference integrated plant, January 2026 prices
# ============================================================
CAPEX_FIELDS = ("equipment_cost", "installation_cost", "infrastructure_cost", "working_capital", "other_capex")
OPEX_FIELDS = ("raw_material_cost", "labor_cost", "energy_cost", "maintenance_cost",
               "logistics_cost", "administrative_cost", "other_opex")
COMPUTED_FIELDS = ("total_investment", "annual_revenue", "annual_opex", "annual_ebitda",
                   "payback_months", "roi_percentage", "npv_10_years", "irr_percentage")

DEFAULT_STUDY = {
    "study_name": "", "location": "", "country": "", "plant_type": "otr_recycling",
    "daily_capacity_tons": 85, "operating_days_per_year": 300, "utilization_rate": 85,
    "equipment_cost": 3500000, "installation_cost": 600000, "infrastructure_cost": 4500000,
    "working_capital": 800000, "other_capex": 1100000,
    # monthly OPEX, USD
    "raw_material_cost": 0, "labor_cost": 45000, "energy_cost": 28000, "maintenance_cost": 25000,
    "logistics_cost": 22000, "administrative_cost": 18000, "other_opex": 12000,
    # USD/ton and % of processed tonnage
    "rubber_granules_price": 250, "rubber_granules_yield": 43,
    "steel_wire_price": 250, "steel_wire_yield": 25,
    "textile_fiber_price": 120, "textile_fiber_yield": 8,
    "rcb_price": 1050, "rcb_yield": 12,
    "tax_rate": 25, "depreciation_years": 10, "discount_rate": 12, "inflation_rate": 3,
    **{f: 0 for f in COMPUTED_FIELDS},
    "status": "draft", "notes": "", "lead_id": None, "lead_type": None,
    "government_royalties_percent": 0, "environmental_bonus_per_ton": 0,
    "collection_model": "direct",
}

STUDY_STATUSES = ["draft", "in_review", "approved", "rejected", "archived"]

COUNTRIES = ["Brasil", "Australia", "Italy", "Germany", "China", "USA", "Chile",
             "Peru", "South Africa", "Indonesia", "India", "Mexico", "Canada"]

NPV_YEARS = 10


def default_study() -> dict:
    return copy.deepcopy(DEFAULT_STUDY)


def _v(study: dict, key: str, default: float) -> float:
    """Zero or missing falls back to the default, matching the calculator inputs."""
    return _n(study.get(key)) or float(default)


# ============================================================
# CORE FINANCIALS
# ============================================================
def annual_tonnage(study: dict) -> float:
    return (_v(study, "daily_capacity_tons", 50) * _v(study, "operating_days_per_year", 300)
            * _v(study, "utilization_rate", 85) / 100)


def product_revenues(study: dict, tonnage: float) -> dict:
    return {
        "granules": tonnage * _v(study, "rubber_granules_yield", 43) / 100 * _v(study, "rubber_granules_price", 250),
        "steel": tonnage * _v(study, "steel_wire_yield", 25) / 100 * _v(study, "steel_wire_price", 250),
        "textile": tonnage * _v(study, "textile_fiber_yield", 8) / 100 * _v(study, "textile_fiber_price", 120),
        "rcb": tonnage * _v(study, "rcb_yield", 12) / 100 * _v(study, "rcb_price", 1050),
    }


def npv(investment: float, annual_cash_flow: float, rate: float, years: int = NPV_YEARS) -> float:
    if rate <= -1:
        raise ValueError("Discount rate must be greater than -100%")
    value = -investment
    for year in range(1, years + 1):
        value += annual_cash_flow / (1 + rate) ** year
    return value


def irr(investment: float, annual_cash_flow: float, years: int = NPV_YEARS,
        guess: float = 0.15, max_iter: int = 100) -> float:
    """Newton-Raphson on the level-annuity NPV. Returns a fraction (0.18 = 18%)."""
    rate = guess
    for _ in range(max_iter):
        if rate <= -0.99:
            break
        value = -investment
        derivative = 0.0
        for year in range(1, years + 1):
            value += annual_cash_flow / (1 + rate) ** year
            derivative -= year * annual_cash_flow / (1 + rate) ** (year + 1)
        if abs(derivative) < 0.0001:
            break
        next_rate = rate - value / derivative
        if not math.isfinite(next_rate):
            break
        rate = next_rate
        if abs(value) < 100:
            break
    return rate


def calculate_financials(study: dict) -> dict:
    """Compute the eight headline outputs for a study."""
    tonnage = annual_tonnage(study)
    total_investment = sum(_n(study.get(f)) for f in CAPEX_FIELDS)
    annual_revenue = sum(product_revenues(study, tonnage).values())
    annual_opex = sum(_n(study.get(f)) for f in OPEX_FIELDS) * 12
    annual_ebitda = annual_revenue - annual_opex

    depreciation = total_investment / _v(study, "depreciation_years", 10)
    taxes = max(0.0, (annual_ebitda - depreciation) * _v(study, "tax_rate", 25) / 100)
    net_profit = annual_ebitda - taxes

    payback_months = math.ceil(total_investment / net_profit * 12) if net_profit > 0 else 999
    roi = net_profit / total_investment * 100 if total_investment > 0 else 0
    discount = _v(study, "discount_rate", 12) / 100
    if discount <= -1:
        raise ValueError("discount_rate must be greater than -100")

    return {
        "total_investment": total_investment,
        "annual_revenue": annual_revenue,
        "annual_opex": annual_opex,
        "annual_ebitda": annual_ebitda,
        "payback_months": payback_months,
        "roi_percentage": roi,
        "npv_10_years": npv(total_investment, net_profit, discount),
        "irr_percentage": irr(total_investment, net_profit) * 100,
    }


def partnership_impact(annual_revenue: float, tonnage: float, royalty_pct: float, env_bonus_per_ton: float) -> dict:
    """Effect of a government partnership: royalty paid on revenue, bonus earned per ton."""
    royalties = annual_revenue * royalty_pct / 100
    env_bonus = tonnage * env_bonus_per_ton
    net_revenue = annual_revenue - royalties + env_bonus
    return {
        "annualRoyalties": royalties,
        "annualEnvBonus": env_bonus,
        "netRevenue": net_revenue,
        "netImpact": env_bonus - royalties,
        "adjustedRevenuePercent": net_revenue / annual_revenue * 100 if annual_revenue > 0 else 100,
    }


# ============================================================
# AI ANALYSIS INPUTS
# ============================================================
NUMERIC_PAYLOAD_FIELDS = (
    "daily_capacity_tons", "operating_days_per_year", "utilization_rate",
    "total_investment", "annual_revenue", "annual_opex", "annual_ebitda",
    "payback_months", "roi_percentage", "npv_10_years", "irr_percentage",
    "rubber_granules_price", "rubber_granules_yield", "steel_wire_price",
    "steel_wire_yield", "textile_fiber_price", "textile_fiber_yield", "tax_rate",
)


def validate_study_payload(study) -> tuple:
    """Return (valid, error). Numeric fields must be real numbers when present."""
    if not isinstance(study, dict):
        return False, "Study payload is required and must be an object"
    if not study.get("study_name") or not isinstance(study.get("study_name"), str):
        return False, "study_name is required and must be a string"
    for field in NUMERIC_PAYLOAD_FIELDS:
        value = study.get(field)
        if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
            return False, f"{field} must be a number if provided"
    return True, None


def safe_num(value, default=0.0) -> float:
    """Numbers pass through, anything else (including NaN) becomes the default."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        return float(default)
    return float(value)


def analysis_metrics(study: dict) -> dict:
    """Derived metrics quoted in AI and template analyses."""
    tonnage = (safe_num(study.get("daily_capacity_tons"), 50) * safe_num(study.get("operating_days_per_year"), 300)
               * safe_num(study.get("utilization_rate"), 85) / 100)
    revenue = safe_num(study.get("annual_revenue"))
    opex = safe_num(study.get("annual_opex"))
    ebitda = safe_num(study.get("annual_ebitda"))
    royalties = revenue * safe_num(study.get("government_royalties_percent")) / 100
    env_bonus = tonnage * safe_num(study.get("environmental_bonus_per_ton"))
    return {
        "annualTonnage": tonnage,
        "ebitdaMargin": ebitda / revenue * 100 if revenue > 0 else 0,
        "revenuePerTon": revenue / tonnage if tonnage > 0 else 0,
        "opexPerTon": opex / tonnage if tonnage > 0 else 0,
        "rubberRevenue": tonnage * safe_num(study.get("rubber_granules_yield"), 45) / 100 * safe_num(study.get("rubber_granules_price"), 350),
        "steelRevenue": tonnage * safe_num(study.get("steel_wire_yield"), 25) / 100 * safe_num(study.get("steel_wire_price"), 200),
        "fiberRevenue": tonnage * safe_num(study.get("textile_fiber_yield"), 20) / 100 * safe_num(study.get("textile_fiber_price"), 50),
        "annualRoyalties": royalties,
        "annualEnvBonus": env_bonus,
        "netRevenueAfterRoyalties": revenue - royalties - env_bonus,
    }


def viability_rating(roi: float, irr_pct: float, payback_months: float, npv_value: float) -> str:
    if roi >= 30 and irr_pct >= 25 and payback_months <= 36 and npv_value > 0:
        return "Excellent"
    if roi >= 20 and irr_pct >= 18 and payback_months <= 48 and npv_value > 0:
        return "Good"
    if roi >= 12 and irr_pct >= 12 and payback_months <= 60:
        return "Moderate"
    if roi >= 5 and payback_months <= 84:
        return "Risky"
    return "Not Recommended"


# ============================================================
# COUNTRY REGULATIONS
# ============================================================
COUNTRY_REGULATIONS = {
    "Brazil": {
        "agency": "IBAMA, CONAMA, Ministério do Meio Ambiente, Secretarias Estaduais",
        "mainLaws": ["Política Nacional de Resíduos Sólidos (Lei 12.305/2010)", "Resolução CONAMA 416/2009 (Pneus)",
                     "Lei de Crimes Ambientais (Lei 9.605/1998)", "Código Florestal (Lei 12.651/2012)"],
        "environmentalRequirements": ["Licença Prévia (LP), Licença de Instalação (LI), Licença de Operação (LO)",
                                      "Estudo de Impacto Ambiental (EIA/RIMA)", "Cadastro Técnico Federal (CTF/IBAMA)",
                                      "Plano de Gerenciamento de Resíduos Sólidos"],
        "taxIncentives": ["REIDI - Regime Especial de Incentivos para o Desenvolvimento da Infraestrutura",
                          "Lei do Bem (Lei 11.196/2005) - Inovação Tecnológica", "Incentivos estaduais ICMS",
                          "BNDES Finem - Financiamento ambiental"],
        "licenses": ["Licença Ambiental (LP/LI/LO)", "Alvará de Funcionamento", "CNPJ e Inscrição Estadual", "Cadastro CTF/IBAMA"],
        "laborRegulations": ["CLT - Consolidação das Leis do Trabalho", "NR-6 (EPIs), NR-12 (Máquinas), NR-25 (Resíduos)",
                             "PCMSO e PPRA obrigatórios", "FGTS, INSS, férias, 13º salário"],
    },
    "Australia": {
        "agency": "EPA (State-based), Department of Climate Change, Energy, Environment and Water",
        "mainLaws": ["Environment Protection and Biodiversity Conservation Act 1999",
                     "National Environment Protection Measures (NEPMs)", "Product Stewardship Act 2011", "State-based EPA Acts"],
        "environmentalRequirements": ["Environmental Impact Statement (EIS)", "Development Approval from Local Council",
                                      "EPA License for waste processing", "Works Approval for construction"],
        "taxIncentives": ["Instant Asset Write-Off for eligible businesses", "R&D Tax Incentive (43.5% refundable offset)",
                          "Clean Energy Finance Corporation loans", "State-based environmental grants"],
        "licenses": ["EPA License", "Development Approval", "ABN/ACN Registration", "WorkCover/SafeWork Registration"],
        "laborRegulations": ["Fair Work Act 2009", "Work Health and Safety Act 2011",
                             "Superannuation Guarantee (11.5%)", "National Employment Standards"],
    },
    "United States": {
        "agency": "EPA, State DEQs, OSHA",
        "mainLaws": ["Resource Conservation and Recovery Act (RCRA)", "Clean Air Act (CAA)",
                     "Clean Water Act (CWA)", "State-specific scrap tire regulations"],
        "environmentalRequirements": ["RCRA Permit for solid waste processing", "Air Quality Permit (Title V or minor source)",
                                      "NPDES Permit for water discharge", "State-specific tire facility registration"],
        "taxIncentives": ["Section 179 deduction for equipment", "Bonus depreciation for qualified property",
                          "State recycling tax credits", "EPA Brownfields grants"],
        "licenses": ["State Solid Waste Facility Permit", "Air Quality Operating Permit", "Business License", "EPA Generator ID Number"],
        "laborRegulations": ["OSHA General Industry Standards (29 CFR 1910)", "Fair Labor Standards Act (FLSA)",
                             "Workers' Compensation Insurance", "State-specific safety requirements"],
    },
    "Chile": {
        "agency": "Ministerio del Medio Ambiente, Superintendencia del Medio Ambiente (SMA)",
        "mainLaws": ["Ley 19.300 sobre Bases Generales del Medio Ambiente", "Ley REP 20.920 (Responsabilidad Extendida del Productor)",
                     "Decreto Supremo 40/2012 (SEIA)", "Normas de calidad ambiental"],
        "environmentalRequirements": ["Evaluación de Impacto Ambiental (EIA) o Declaración (DIA)",
                                      "Resolución de Calificación Ambiental (RCA)", "Permiso sectorial sanitario",
                                      "Plan de manejo de residuos"],
        "taxIncentives": ["Ley de Donaciones con fines ambientales", "Depreciación acelerada de activos",
                          "CORFO - Financiamiento verde", "Franquicias tributarias zonas extremas"],
        "licenses": ["RCA (Resolución de Calificación Ambiental)", "Patente municipal", "Autorización sanitaria", "Inscripción en SII"],
        "laborRegulations": ["Código del Trabajo", "Ley 16.744 (Accidentes del trabajo)",
                             "AFP, Isapre/Fonasa obligatorios", "Normas de seguridad industrial"],
    },
}

DEFAULT_REGULATIONS = {
    "agency": "National Environmental Agency, Ministry of Environment",
    "mainLaws": ["National Waste Management Act", "Environmental Protection Act",
                 "Industrial Licensing Regulations", "End-of-life Tire Management Regulations"],
    "environmentalRequirements": ["Environmental Impact Assessment (EIA)", "Operating Permit/License",
                                  "Waste Management Plan", "Air Quality Monitoring"],
    "taxIncentives": ["Accelerated depreciation for green investments", "Tax credits for recycling equipment",
                      "Regional development incentives", "Green financing options"],
    "licenses": ["Environmental Operating License", "Industrial Operating Permit",
                 "Business Registration", "Waste Handler License"],
    "laborRegulations": ["National Labor Code", "Occupational Health & Safety regulations",
                         "Personal Protective Equipment requirements", "Workers compensation insurance"],
}

_REGULATION_ALIASES = {"Brasil": "Brazil", "USA": "United States", "Estados Unidos": "United States"}


def get_regulations(country: str) -> dict:
    name = _REGULATION_ALIASES.get(country, country)
    return COUNTRY_REGULATIONS.get(name, DEFAULT_REGULATIONS)


# ============================================================
# REGIONAL TEMPLATES
# ============================================================
_TEMPLATE_KEYS = ("daily_capacity_tons",) + CAPEX_FIELDS + OPEX_FIELDS + (
    "rubber_granules_price", "rubber_granules_yield", "steel_wire_price", "steel_wire_yield",
    "textile_fiber_price", "textile_fiber_yield", "tax_rate")


def _template(template_id, name, country, values, highlights):
    return {"id": template_id, "name": name, "country": country,
            "values": dict(zip(_TEMPLATE_KEYS, values)), "highlightKeys": highlights}


FEASIBILITY_TEMPLATES = [
    _template("brazil-standard-excel", "Brazil Standard (180 t/day)", "Brasil",
              (180, 35000000, 5000000, 6000000, 3500000, 921830, 0, 47000, 80613, 1500, 20000, 10000, 4558,
               290, 70, 480, 20, 410, 10, 34),
              ["daily_capacity_tons", "equipment_cost", "rubber_granules_price"]),
    _template("australia", "Australia Mining Region", "Australia",
              (100, 3200000, 600000, 1500000, 800000, 400000, 0, 85000, 35000, 28000, 45000, 22000, 15000,
               320, 74.7, 280, 15.7, 180, 9.7, 30),
              ["labor_cost", "logistics_cost"]),
    _template("brazil-north", "Brazil North (SUDAM)", "Brasil",
              (85, 2400000, 400000, 900000, 500000, 300000, 0, 28000, 18000, 15000, 35000, 12000, 8000,
               220, 74.7, 200, 15.7, 100, 9.7, 34),
              ["logistics_cost", "tax_rate"]),
    _template("brazil-mining", "Brazil Mining (Minas Gerais / Pará)", "Brasil",
              (120, 3200000, 550000, 1200000, 650000, 400000, -50, 35000, 22000, 20000, 45000, 15000, 10000,
               250, 74.7, 220, 15.7, 120, 9.7, 34),
              ["raw_material_cost", "daily_capacity_tons"]),
    _template("brazil-southeast", "Brazil Southeast", "Brasil",
              (100, 2800000, 500000, 1100000, 600000, 350000, 0, 38000, 25000, 18000, 28000, 14000, 10000,
               280, 74.7, 240, 15.7, 140, 9.7, 34),
              ["rubber_granules_price", "labor_cost"]),
    _template("europe-italy", "Italy (EU)", "Italy",
              (60, 2800000, 550000, 1200000, 600000, 350000, 15000, 55000, 40000, 22000, 25000, 18000, 12000,
               350, 74.7, 300, 15.7, 200, 9.7, 24),
              ["energy_cost", "rubber_granules_price"]),
    _template("europe-germany", "Germany (EU)", "Germany",
              (70, 3500000, 700000, 1800000, 700000, 500000, 10000, 75000, 45000, 25000, 20000, 20000, 15000,
               380, 74.7, 320, 15.7, 220, 9.7, 30),
              ["labor_cost", "energy_cost"]),
    _template("chile-mining", "Chile Mining (Atacama)", "Chile",
              (90, 2600000, 480000, 1000000, 550000, 350000, 0, 38000, 22000, 18000, 40000, 14000, 10000,
               260, 74.7, 230, 15.7, 140, 9.7, 27),
              ["logistics_cost", "daily_capacity_tons"]),
    _template("south-africa", "South Africa Mining", "South Africa",
              (75, 2300000, 380000, 850000, 450000, 280000, 0, 22000, 15000, 14000, 30000, 10000, 8000,
               200, 74.7, 180, 15.7, 90, 9.7, 28),
              ["labor_cost", "equipment_cost"]),
    _template("mexico-mining", "Mexico Mining (Sonora)", "Mexico",
              (80, 2500000, 420000, 950000, 520000, 320000, 0, 25000, 20000, 16000, 32000, 11000, 8000,
               240, 74.7, 210, 15.7, 110, 9.7, 30),
              ["logistics_cost", "tax_rate"]),
]


def get_template(template_id: str):
    return next((t for t in FEASIBILITY_TEMPLATES if t["id"] == template_id), None)


def apply_template(study: dict, template_id: str) -> dict:
    """Overlay a regional template onto a study and recompute its outputs."""
    template = get_template(template_id)
    if not template:
        raise ValueError(f"Unknown template '{template_id}'")
    merged = {**study, **template["values"], "country": template["country"]}
    merged.update(calculate_financials(merged))
    return merged


# ============================================================
# PERSISTENCE
# ============================================================
def save_study(db: dict, data: dict, user_name: str = "system") -> dict:
    """Create or update a study; computed outputs are always recomputed."""
    existing = get_study(db, data["id"]) if data.get("id") else None
    if not (data.get("study_name") or (existing or {}).get("study_name")):
        raise ValueError("study_name is required")
    if data.get("status") and data["status"] not in STUDY_STATUSES:
        raise ValueError(f"Invalid status '{data['status']}'. Allowed: {STUDY_STATUSES}")
    now = datetime.now().isoformat()
    if existing:
        study = {**existing, **{k: v for k, v in data.items() if k not in COMPUTED_FIELDS and k != "created_at"}}
        action = "study_updated"
    else:
        study = {**default_study(), **{k: v for k, v in data.items() if k not in COMPUTED_FIELDS},
                 "id": str(uuid.uuid4())[:8], "created_at": now}
        action = "study_created"
    study.update(calculate_financials(study))
    study["updated_at"] = now
    if existing:
        existing.update(study)
        study = existing
    else:
        db["feasibility_studies"].append(study)
    log_activity(db, action, studyId=study["id"], name=study["study_name"], by=user_name)
    return study


def get_study(db: dict, study_id: str):
    return next((s for s in db["feasibility_studies"] if s["id"] == study_id), None)


def list_studies(db: dict, country: str = None, status: str = None) -> list:
    studies = db["feasibility_studies"]
    if country:
        studies = [s for s in studies if (s.get("country") or "").lower() == country.lower()]
    if status:
        studies = [s for s in studies if s.get("status") == status]
    return sorted(studies, key=lambda s: s.get("updated_at", ""), reverse=True)


def delete_study(db: dict, study_id: str, user_name: str = "system") -> bool:
    study = get_study(db, study_id)
    if not study:
        return False
    db["feasibility_studies"].remove(study)
    log_activity(db, "study_deleted", studyId=study_id, by=user_name)
    return True
