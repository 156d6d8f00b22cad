"""
ELP Green: Industry Benchmarks & Sanity Alerts

OTR tire recycling benchmarks (January 2026) compiled from operating plants
in China, Germany, Australia, Brazil, USA and Chile. validate_feasibility()
compares a study's inputs and outputs against them and returns alerts
levelled error / warning / info / success. calculate_infrastructure_costs()
prices utilities, payroll, land and permits for a plant site in 29 countries.
"""

import math

from elpgreen.db import _n


def _r(lo, hi, typical, **extra):
    return {"min": lo, "max": hi, "typical": typical, **extra}


# ============================================================
# CONSOLIDATED GLOBAL BENCHMARKS
# ============================================================
BENCHMARKS = {
    "investmentPerTon": _r(5000, 180000, 80000),   # USD per t/day of capacity
    "revenuePerTon": _r(200, 450, 310),
    "opexPerTon": _r(15, 120, 55),
    "ebitdaMargin": _r(15, 55, 35),
    "roi": _r(10, 50, 25, extreme=80),
    "payback": _r(18, 72, 36),
    "irr": _r(12, 45, 22, extreme=70),
    "totalYield": _r(80, 95, 88),
    "rubberYield": _r(35, 55, 43),
    "steelYield": _r(18, 35, 25),
    "textileYield": _r(3, 12, 8),
    "rcbYield": _r(8, 20, 12),
    "rubberPrice": _r(180, 350, 250),
    "steelPrice": _r(150, 350, 250),
    "textilePrice": _r(60, 200, 120),
    "rcbPrice": _r(800, 1400, 1050),
}


def _opex(name, source, labor, energy, maintenance_pct, maintenance, logistics, admin, raw, total, per_ton):
    return {
        "name": name, "source": source, "currency": "USD",
        "laborMonthly": _r(*labor), "energyMonthly": _r(*energy),
        "maintenancePercent": maintenance_pct, "maintenanceMonthly": _r(*maintenance),
        "logisticsMonthly": _r(*logistics), "adminMonthly": _r(*admin),
        "rawMaterialMonthly": _r(*raw), "totalMonthlyOpex": _r(*total), "opexPerTon": _r(*per_ton),
    }


COUNTRY_OPEX_BENCHMARKS = {
    "china": _opex("China (TOPS Recycling - Tangshan)", "TOPS Recycling Co. Ltd operational data 2025",
                   (8000, 20000, 12000), (4500, 12000, 7500), 5, (2000, 8000, 4500), (3000, 10000, 5500),
                   (2000, 6000, 3500), (0, 5000, 2000), (20000, 61000, 35000), (15, 40, 25)),
    "germany": _opex("Germany (Genan GmbH - Viborg Model)", "Genan GmbH operational reports, EU Circular Economy benchmarks 2025",
                     (80000, 160000, 110000), (25000, 50000, 35000), 8, (15000, 40000, 25000), (10000, 25000, 16000),
                     (8000, 18000, 12000), (0, 10000, 5000), (138000, 303000, 203000), (60, 120, 85)),
    "australia": _opex("Australia (Tyrecycle - Regional Model)", "Tyrecycle Pty Ltd, Tyre Stewardship Australia 2025",
                       (60000, 120000, 85000), (15000, 35000, 24000), 7, (10000, 25000, 16000), (20000, 45000, 30000),
                       (6000, 14000, 9000), (0, 8000, 3000), (111000, 247000, 167000), (50, 100, 70)),
    "brazil": _opex("Brazil (ELP Integrated Model)", "ELP Green Technology projections, IBAMA data, BNDES financing 2025",
                    (35000, 65000, 48000), (18000, 38000, 26000), 6, (12000, 28000, 18000), (15000, 35000, 22000),
                    (5000, 12000, 8000), (0, 10000, 4000), (85000, 188000, 126000), (40, 80, 55)),
    "usa": _opex("USA (Liberty Tire Model)", "USTMA, EPA RCRA data, IRA Section 45Q projections 2025",
                 (65000, 130000, 92000), (12000, 28000, 19000), 6, (10000, 22000, 15000), (12000, 28000, 18000),
                 (8000, 18000, 12000), (0, 8000, 3000), (107000, 234000, 159000), (45, 95, 65)),
    "chile": _opex("Chile (Mining Hub Model)", "SMA Chile, Ley REP 20.920 compliance data, CORFO 2025",
                   (28000, 55000, 40000), (14000, 30000, 20000), 6, (8000, 20000, 13000), (18000, 40000, 26000),
                   (4000, 10000, 6500), (0, 6000, 2500), (72000, 161000, 108000), (35, 75, 50)),
}


def _market(lo, hi, typical, source):
    return {"min": lo, "max": hi, "typical": typical, "source": source}


PRODUCT_PRICE_BENCHMARKS = {
    "rubberGranules": {
        "name": "Rubber Granules/Crumb", "unit": "USD/ton", "global": _r(180, 350, 250),
        "byMarket": {
            "china": _market(160, 280, 220, "TOPS internal pricing"),
            "europe": _market(220, 380, 290, "Genan commercial data"),
            "usa": _market(200, 340, 260, "Liberty Tire market rates"),
            "brazil": _market(180, 320, 240, "Reciclanip benchmarks"),
            "australia": _market(200, 360, 270, "Tyrecycle commercial"),
        },
        "applications": ["Asphalt modification", "Playground surfaces", "Sports fields", "Molded products"],
    },
    "steelWire": {
        "name": "Recovered Steel Wire", "unit": "USD/ton", "global": _r(150, 350, 250),
        "byMarket": {
            "china": _market(140, 300, 220, "Shanghai Metal Exchange"),
            "europe": _market(180, 380, 280, "LME scrap index"),
            "usa": _market(160, 340, 250, "AMM steel scrap index"),
            "brazil": _market(150, 320, 230, "IABr market data"),
            "australia": _market(170, 350, 260, "Sims Metal"),
        },
        "applications": ["Steel mills", "Foundries", "Construction rebar"],
    },
    "textileFiber": {
        "name": "Textile Fiber/Fluff", "unit": "USD/ton", "global": _r(60, 200, 120),
        "byMarket": {
            "china": _market(50, 160, 100, "Industrial buyers"),
            "europe": _market(80, 220, 140, "EU WtE operators"),
            "usa": _market(60, 180, 110, "TDF facilities"),
            "brazil": _market(50, 160, 100, "Cement kilns"),
            "australia": _market(70, 180, 120, "CSR operators"),
        },
        "applications": ["Cement kilns (TDF)", "Insulation", "Geotextiles"],
    },
    "rcb": {
        "name": "Recovered Carbon Black (rCB)", "unit": "USD/ton", "global": _r(800, 1400, 1050),
        "byMarket": {
            "china": _market(700, 1200, 900, "Bolder Industries data"),
            "europe": _market(900, 1500, 1150, "ASTM D8178 certified"),
            "usa": _market(850, 1400, 1100, "Monolith Materials"),
            "brazil": _market(800, 1300, 1000, "ELP projections"),
            "australia": _market(850, 1350, 1050, "Emerging market"),
        },
        "applications": ["Tire manufacturing", "Plastics", "Coatings", "Inks"],
        "notes": "Premium pricing requires ASTM D8178 or ISO certification",
    },
}

REGIONAL_PLANT_BENCHMARKS = {
    "china": {"name": "China (TOPS Recycling)", "capexRange": {"min": 500000, "max": 1500000},
              "capacityTonsYear": 30000, "investmentPerTonDay": {"min": 5000, "max": 15000},
              "opexPerTon": {"min": 15, "max": 40}, "maintenancePercent": 5,
              "techFocus": "Mechanical Shredding/Grinding"},
    "germany": {"name": "Germany (Genan/EU Standard)", "capexRange": {"min": 5000000, "max": 12000000},
                "capacityTonsYear": 35000, "investmentPerTonDay": {"min": 40000, "max": 100000},
                "opexPerTon": {"min": 60, "max": 120}, "maintenancePercent": 8,
                "techFocus": "High-Purity rCB Pyrolysis"},
    "australia": {"name": "Australia (Tyrecycle)", "capexRange": {"min": 3000000, "max": 8000000},
                  "capacityTonsYear": 25000, "investmentPerTonDay": {"min": 35000, "max": 95000},
                  "opexPerTon": {"min": 50, "max": 100}, "maintenancePercent": 7,
                  "techFocus": "Remote OTR Mobile/Regional Hubs"},
    "brazil": {"name": "Brazil (ELP Model)", "capexRange": {"min": 8000000, "max": 15000000},
               "capacityTonsYear": 25500, "investmentPerTonDay": {"min": 90000, "max": 180000},
               "opexPerTon": {"min": 40, "max": 80}, "maintenancePercent": 6,
               "techFocus": "Integrated Pyrolysis + rCB"},
}


# ============================================================
# VALIDATION
# ============================================================
def _alert(level, category, check, detail, value=None, benchmark_range=None) -> dict:
    a = {"level": level, "category": category, "check": check, "detail": detail, "value": value}
    if benchmark_range:
        a["benchmarkRange"] = benchmark_range
    return a


def validate_feasibility(inputs: dict) -> list:
    """Compare a study against the industry benchmarks.

    Accepts a study record (snake_case fields, outputs included). Checks:
    investment per t/day, ROI, IRR, total yield, opex/ton, revenue/ton,
    rCB price, EBITDA margin, fast payback, low tax with high ROI.
    """
    b = BENCHMARKS
    capacity = _n(inputs.get("daily_capacity_tons"))
    tonnage = capacity * _n(inputs.get("operating_days_per_year")) * _n(inputs.get("utilization_rate")) / 100
    investment = _n(inputs.get("total_investment"))
    revenue = _n(inputs.get("annual_revenue"))
    opex = _n(inputs.get("annual_opex"))
    ebitda = _n(inputs.get("annual_ebitda"))
    roi = _n(inputs.get("roi_percentage"))
    irr = _n(inputs.get("irr_percentage"))
    payback = _n(inputs.get("payback_months"))
    rcb_price = _n(inputs.get("rcb_price"))
    tax_rate = _n(inputs.get("tax_rate"))

    revenue_per_ton = revenue / tonnage if tonnage > 0 else 0
    opex_per_ton = opex / tonnage if tonnage > 0 else 0
    ebitda_margin = ebitda / revenue * 100 if revenue > 0 else 0
    total_yield = sum(_n(inputs.get(f)) for f in
                      ("rubber_granules_yield", "steel_wire_yield", "textile_fiber_yield", "rcb_yield"))

    alerts = []
    inv_range = f"${b['investmentPerTon']['min']:,}-{b['investmentPerTon']['max']:,}/ton/day"
    roi_range = f"{b['roi']['min']}%-{b['roi']['max']}% (typical: {b['roi']['typical']}%)"

    if capacity > 0:
        investment_per_ton = investment / capacity
        value = f"${round(investment_per_ton):,}/ton/day"
        if investment_per_ton < b["investmentPerTon"]["min"]:
            alerts.append(_alert("error", "investment", "lowInvestment",
                                 "Investment per daily ton is below any operating plant; CAPEX is likely incomplete",
                                 value, inv_range))
        elif investment_per_ton > b["investmentPerTon"]["max"] * 1.5:
            alerts.append(_alert("warning", "investment", "highInvestment",
                                 "Investment per daily ton is well above the industry range",
                                 value, inv_range))

    if roi > b["roi"]["extreme"]:
        alerts.append(_alert("error", "roi", "extremeRoi",
                             "ROI is unrealistic for tire recycling; review prices, yields and OPEX",
                             f"{roi:.1f}%", roi_range))
    elif roi > b["roi"]["max"]:
        alerts.append(_alert("warning", "roi", "highRoi",
                             "ROI is above the industry range; validate assumptions", f"{roi:.1f}%", roi_range))
    elif b["roi"]["typical"] <= roi <= b["roi"]["max"]:
        alerts.append(_alert("success", "roi", "healthyRoi",
                             "ROI is within the healthy industry range", f"{roi:.1f}%"))

    if irr > b["irr"]["extreme"]:
        alerts.append(_alert("error", "roi", "extremeIrr", "IRR is unrealistic for this industry", f"{irr:.1f}%",
                             f"{b['irr']['min']}%-{b['irr']['max']}% (typical: {b['irr']['typical']}%)"))

    if total_yield > b["totalYield"]["max"]:
        alerts.append(_alert("warning", "yields", "highYield",
                             "Combined yields leave almost no process loss", f"{total_yield:.1f}%",
                             f"{b['totalYield']['min']}%-{b['totalYield']['max']}% "
                             f"({100 - b['totalYield']['typical']}% typical loss)"))
    elif total_yield < b["totalYield"]["min"]:
        alerts.append(_alert("info", "yields", "lowYield", "Combined yields are conservative", f"{total_yield:.1f}%",
                             f"{b['totalYield']['min']}%-{b['totalYield']['max']}%"))

    if opex_per_ton < b["opexPerTon"]["min"]:
        alerts.append(_alert("warning", "opex", "lowOpex", "OPEX per ton is below the cheapest operating plants",
                             f"${opex_per_ton:.0f}/ton", f"${b['opexPerTon']['min']}-{b['opexPerTon']['max']}/ton"))

    if revenue_per_ton > b["revenuePerTon"]["max"] * 1.3:
        alerts.append(_alert("warning", "revenue", "highRevenue", "Revenue per ton is above market reality",
                             f"${revenue_per_ton:.0f}/ton",
                             f"${b['revenuePerTon']['min']}-{b['revenuePerTon']['max']}/ton"))

    if rcb_price > b["rcbPrice"]["max"]:
        alerts.append(_alert("info", "revenue", "highRcbPrice",
                             "rCB price assumes premium certified product (ASTM D8178)",
                             f"${rcb_price:g}/ton", f"${b['rcbPrice']['min']}-{b['rcbPrice']['max']}/ton"))

    if ebitda_margin > b["ebitdaMargin"]["max"]:
        alerts.append(_alert("warning", "revenue", "highEbitda", "EBITDA margin is above the industry range",
                             f"{ebitda_margin:.1f}%", f"{b['ebitdaMargin']['min']}%-{b['ebitdaMargin']['max']}%"))

    if payback < b["payback"]["min"]:
        alerts.append(_alert("warning", "roi", "fastPayback", "Payback is faster than any reference plant",
                             f"{payback:g} months", f"{b['payback']['min']}-{b['payback']['max']} months"))

    if tax_rate < 10 and roi > b["roi"]["max"]:
        alerts.append(_alert("info", "roi", "lowTaxHighRoi",
                             "A low tax rate is inflating ROI; confirm the incentive is secured", f"{tax_rate:g}%"))

    return alerts


def summarize_alerts(alerts: list) -> dict:
    counts = {"error": 0, "warning": 0, "info": 0, "success": 0}
    for a in alerts:
        counts[a["level"]] = counts.get(a["level"], 0) + 1
    counts["total"] = len(alerts)
    counts["hasBlockingIssues"] = counts["error"] > 0
    return counts


# ============================================================
# SITE INFRASTRUCTURE COSTS (January 2026, USD)
# ============================================================
LAND_PLOT_OPTIONS = [
    {"id": "small", "size_m2": 2000, "buildingArea_m2": 1200, "yardArea_m2": 800, "recommendedCapacity": "50-80 t/day"},
    {"id": "medium", "size_m2": 3000, "buildingArea_m2": 1800, "yardArea_m2": 1200, "recommendedCapacity": "80-150 t/day"},
    {"id": "large", "size_m2": 5000, "buildingArea_m2": 3000, "yardArea_m2": 2000, "recommendedCapacity": "150-250 t/day"},
    {"id": "xlarge", "size_m2": 10000, "buildingArea_m2": 6000, "yardArea_m2": 4000, "recommendedCapacity": "250-400 t/day"},
]

# installed kW, utilization, hours/day, days/month
POWER_CONFIGS = {
    "small": (1200, 0.65, 16, 26),
    "medium": (2650, 0.65, 18, 26),
    "large": (4500, 0.65, 20, 26),
    "xlarge": (7500, 0.65, 22, 28),
}

# factory workers per shift, shifts, office, management, maintenance, security
STAFFING = {
    "small": (10, 2, 8, 3, 4, 4),
    "medium": (15, 2, 12, 4, 6, 6),
    "large": (22, 3, 18, 6, 10, 8),
    "xlarge": (30, 3, 25, 8, 15, 12),
}

WATER_M3_PER_TON = 0.75


def _site(code, name, currency, fx, electricity, water, land, labor, installation):
    return {
        "countryCode": code, "countryName": name, "currency": currency, "exchangeRate": fx,
        "electricity": dict(zip(("pricePerKWh", "demandChargePerKW", "connectionFee"), electricity)),
        "water": dict(zip(("pricePerM3", "connectionFee", "monthlyFixedFee", "industrialMultiplier"), water)),
        "land": dict(zip(("pricePerM2", "rentPerM2Monthly", "constructionPerM2"), land)),
        "labor": dict(zip(("factoryWorker", "officeStaff", "management", "maintenance", "security",
                           "socialChargesPercent"), labor)),
        "installation": dict(zip(("environmentalPermit", "operatingLicense", "constructionPermit",
                                  "electricalPerKW", "equipmentPercent"), installation)),
    }


COUNTRY_INDUSTRIAL_COSTS = {
    "BR": _site("BR", "Brasil", "BRL", 5.20, (0.12, 8.5, 25000), (4.20, 3500, 120, 1.3),
                (85, 4.5, 450), (650, 900, 2500, 850, 600, 68), (45000, 8000, 15000, 95, 12)),
    "US": _site("US", "United States", "USD", 1.0, (0.08, 12, 35000), (2.80, 5000, 85, 1.0),
                (120, 6.5, 850), (3200, 4500, 8500, 4000, 2800, 22), (85000, 15000, 25000, 150, 15)),
    "MX": _site("MX", "Mexico", "MXN", 17.5, (0.095, 7, 18000), (2.50, 2500, 65, 1.2),
                (55, 3.2, 380), (550, 750, 2200, 700, 480, 35), (35000, 6000, 10000, 75, 10)),
    "CL": _site("CL", "Chile", "CLP", 880, (0.11, 10, 22000), (3.50, 4000, 95, 1.25),
                (75, 4.0, 520), (900, 1300, 3500, 1100, 750, 28), (55000, 10000, 12000, 110, 13)),
    "AR": _site("AR", "Argentina", "ARS", 850, (0.045, 3.5, 12000), (0.80, 1500, 35, 1.1),
                (35, 2.0, 280), (450, 600, 1800, 550, 400, 45), (25000, 5000, 8000, 55, 10)),
    "CO": _site("CO", "Colombia", "COP", 4200, (0.14, 9, 20000), (2.20, 2800, 70, 1.15),
                (50, 3.0, 350), (480, 700, 2000, 600, 420, 52), (40000, 7000, 9000, 70, 11)),
    "PE": _site("PE", "Peru", "PEN", 3.75, (0.09, 7.5, 16000), (2.00, 2200, 55, 1.2),
                (45, 2.8, 320), (400, 580, 1700, 500, 380, 40), (30000, 5500, 7000, 65, 10)),
    "CA": _site("CA", "Canada", "CAD", 1.35, (0.085, 11, 40000), (2.50, 6000, 90, 1.0),
                (95, 5.5, 750), (3800, 5000, 9000, 4500, 3200, 18), (75000, 12000, 20000, 140, 14)),
    "DE": _site("DE", "Germany", "EUR", 0.92, (0.22, 15, 55000), (5.50, 8000, 150, 1.1),
                (180, 8.5, 1200), (4200, 5500, 9500, 4800, 3500, 21), (120000, 25000, 35000, 180, 16)),
    "IT": _site("IT", "Italy", "EUR", 0.92, (0.26, 18, 45000), (3.80, 5500, 120, 1.2),
                (140, 7.0, 900), (2800, 3500, 7000, 3200, 2500, 32), (95000, 18000, 28000, 160, 14)),
    "ES": _site("ES", "Spain", "EUR", 0.92, (0.18, 12, 38000), (3.20, 4500, 100, 1.15),
                (90, 5.0, 650), (2200, 2800, 5500, 2500, 2000, 30), (70000, 14000, 20000, 130, 13)),
    "FR": _site("FR", "France", "EUR", 0.92, (0.15, 13, 42000), (4.80, 6500, 130, 1.1),
                (110, 6.0, 850), (3000, 3800, 7500, 3400, 2700, 42), (100000, 20000, 30000, 155, 15)),
    "GB": _site("GB", "United Kingdom", "GBP", 0.79, (0.20, 14, 48000), (4.20, 7000, 140, 1.0),
                (130, 7.5, 950), (3300, 4200, 8000, 3800, 2900, 15), (90000, 16000, 25000, 165, 15)),
    "PL": _site("PL", "Poland", "PLN", 4.05, (0.16, 9, 28000), (2.80, 3500, 75, 1.1),
                (50, 3.5, 450), (1400, 1800, 4000, 1600, 1200, 20), (50000, 10000, 15000, 100, 12)),
    "CN": _site("CN", "China", "CNY", 7.25, (0.10, 6, 15000), (0.85, 2000, 40, 1.3),
                (45, 2.5, 280), (750, 1000, 2500, 900, 600, 38), (35000, 8000, 12000, 55, 8)),
    "AU": _site("AU", "Australia", "AUD", 1.55, (0.14, 12, 42000), (3.50, 5500, 100, 1.15),
                (110, 6.5, 800), (4500, 5800, 10000, 5200, 4000, 15), (95000, 18000, 28000, 145, 14)),
    "JP": _site("JP", "Japan", "JPY", 150, (0.19, 16, 60000), (3.80, 8000, 160, 1.0),
                (200, 10.0, 1100), (3500, 4500, 8500, 4000, 3200, 16), (130000, 28000, 40000, 200, 18)),
    "IN": _site("IN", "India", "INR", 83, (0.085, 4, 12000), (0.60, 1500, 30, 1.5),
                (30, 1.8, 220), (280, 450, 1500, 380, 220, 25), (25000, 5000, 8000, 45, 8)),
    "ID": _site("ID", "Indonesia", "IDR", 15800, (0.095, 5.5, 14000), (0.90, 1800, 45, 1.2),
                (40, 2.2, 250), (320, 500, 1600, 420, 280, 18), (28000, 6000, 9000, 50, 9)),
    "KR": _site("KR", "South Korea", "KRW", 1350, (0.11, 10, 35000), (1.50, 4000, 70, 1.1),
                (120, 6.5, 700), (2800, 3600, 7000, 3200, 2400, 14), (70000, 15000, 22000, 120, 13)),
    "TH": _site("TH", "Thailand", "THB", 35, (0.12, 7, 18000), (1.10, 2200, 50, 1.2),
                (55, 3.0, 320), (450, 650, 1800, 550, 380, 15), (32000, 7000, 10000, 60, 10)),
    "VN": _site("VN", "Vietnam", "VND", 24500, (0.08, 4.5, 12000), (0.70, 1500, 35, 1.3),
                (85, 4.0, 280), (350, 520, 1500, 450, 300, 24), (22000, 5000, 7000, 48, 8)),
    "MY": _site("MY", "Malaysia", "MYR", 4.75, (0.095, 7.5, 20000), (0.95, 2500, 55, 1.1),
                (60, 3.2, 300), (550, 800, 2200, 700, 480, 20), (35000, 8000, 12000, 65, 10)),
    "ZA": _site("ZA", "South Africa", "ZAR", 18.5, (0.095, 8, 22000), (2.20, 3000, 65, 1.2),
                (45, 2.8, 350), (650, 950, 2800, 800, 550, 12), (45000, 9000, 14000, 75, 11)),
    "AE": _site("AE", "United Arab Emirates", "AED", 3.67, (0.08, 10, 30000), (2.80, 4500, 90, 1.0),
                (70, 4.5, 550), (800, 1500, 4500, 1200, 750, 0), (40000, 12000, 18000, 85, 12)),
    "SA": _site("SA", "Saudi Arabia", "SAR", 3.75, (0.05, 4, 20000), (0.80, 3000, 50, 1.5),
                (25, 1.5, 400), (700, 1200, 4000, 1000, 650, 12), (35000, 10000, 15000, 70, 10)),
    "NG": _site("NG", "Nigeria", "NGN", 1400, (0.15, 5, 15000), (0.50, 1200, 25, 1.0),
                (25, 1.5, 200), (180, 300, 1200, 250, 150, 18), (20000, 5000, 8000, 45, 8)),
    "EG": _site("EG", "Egypt", "EGP", 48, (0.065, 5, 14000), (0.45, 1800, 40, 1.3),
                (30, 1.8, 220), (200, 350, 1300, 280, 170, 26), (25000, 6000, 9000, 50, 9)),
    "MA": _site("MA", "Morocco", "MAD", 10.2, (0.11, 8, 18000), (1.80, 2800, 55, 1.2),
                (45, 2.5, 300), (350, 550, 1800, 450, 300, 22), (30000, 7000, 10000, 60, 10)),
}

INDUSTRIAL_REGIONS = {
    "Americas": ["BR", "US", "MX", "CL", "AR", "CO", "PE", "CA"],
    "Europe": ["DE", "IT", "ES", "FR", "GB", "PL"],
    "Asia-Pacific": ["CN", "AU", "JP", "IN", "ID", "KR", "TH", "VN", "MY"],
    "Africa & Middle East": ["ZA", "AE", "SA", "NG", "EG", "MA"],
}


def plant_size_for_capacity(daily_capacity: float) -> str:
    if daily_capacity <= 80:
        return "small"
    if daily_capacity <= 150:
        return "medium"
    if daily_capacity <= 250:
        return "large"
    return "xlarge"


def industrial_cost_countries() -> list:
    return [{"code": code, "name": COUNTRY_INDUSTRIAL_COSTS[code]["countryName"], "region": region,
             "electricityPrice": COUNTRY_INDUSTRIAL_COSTS[code]["electricity"]["pricePerKWh"],
             "laborCost": COUNTRY_INDUSTRIAL_COSTS[code]["labor"]["factoryWorker"]}
            for region, codes in INDUSTRIAL_REGIONS.items() for code in codes]


def _positive(value, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value) or value <= 0:
        raise ValueError(f"{field} must be a positive number")
    return float(value)


def calculate_infrastructure_costs(country_code: str, daily_capacity_tons: float, equipment_cost: float = 0,
                                   plant_size: str = None, land_plot_id: str = None,
                                   operating_days_per_month: int = 26) -> dict:
    """Monthly utilities and payroll plus up-front land, permits and installation for a plant site.

    Electricity is installed power x utilization x hours x days, plus a demand charge
    on installed kW. Water runs at 0.75 m3 per processed ton. An unknown land plot
    falls back to the medium plot.
    """
    country = COUNTRY_INDUSTRIAL_COSTS.get(country_code.strip().upper() if isinstance(country_code, str) else "")
    if not country:
        raise ValueError(f"Country {country_code} not found in industrial cost database")
    capacity = _positive(daily_capacity_tons, "daily_capacity_tons")
    if equipment_cost is None:
        equipment_cost = 0
    if isinstance(equipment_cost, bool) or not isinstance(equipment_cost, (int, float)) \
            or not math.isfinite(equipment_cost) or equipment_cost < 0:
        raise ValueError("equipment_cost must be a non-negative number")
    days = operating_days_per_month
    if isinstance(days, bool) or not isinstance(days, int) or not 1 <= days <= 31:
        raise ValueError("operating_days_per_month must be an integer between 1 and 31")
    size = plant_size or plant_size_for_capacity(capacity)
    if not isinstance(size, str) or size not in POWER_CONFIGS:
        raise ValueError(f"Invalid plant_size. Allowed: {list(POWER_CONFIGS)}")
    plot = next((p for p in LAND_PLOT_OPTIONS if p["id"] == land_plot_id), LAND_PLOT_OPTIONS[1])

    kw, utilization, hours, power_days = POWER_CONFIGS[size]
    workers, shifts, office, management, maintenance, security = STAFFING[size]
    elec, water, land, labor, inst = (country[k] for k in ("electricity", "water", "land", "labor", "installation"))

    consumption_kwh = kw * utilization * hours * power_days
    energy_cost = consumption_kwh * elec["pricePerKWh"]
    demand_cost = kw * elec["demandChargePerKW"]
    monthly_tons = capacity * days

    water_m3 = monthly_tons * WATER_M3_PER_TON
    water_cost = water_m3 * water["pricePerM3"] * water["industrialMultiplier"]

    payroll = {
        "factoryPayroll": workers * shifts * labor["factoryWorker"],
        "officePayroll": office * labor["officeStaff"],
        "managementPayroll": management * labor["management"],
        "maintenancePayroll": maintenance * labor["maintenance"],
        "securityPayroll": security * labor["security"],
    }
    base_payroll = sum(payroll.values())
    social = base_payroll * labor["socialChargesPercent"] / 100

    land_cost = plot["size_m2"] * land["pricePerM2"]
    construction = plot["buildingArea_m2"] * land["constructionPerM2"]
    permits = inst["environmentalPermit"] + inst["operatingLicense"] + inst["constructionPermit"]
    electrical = kw * inst["electricalPerKW"]
    equipment_install = equipment_cost * inst["equipmentPercent"] / 100
    connections = elec["connectionFee"] + water["connectionFee"]

    monthly_opex = energy_cost + demand_cost + water_cost + water["monthlyFixedFee"] + base_payroll + social
    capex = land_cost + construction + permits + electrical + equipment_install + connections
    return {
        "countryCode": country["countryCode"], "plantSize": size, "landPlot": plot["id"],
        "electricity": {
            "monthlyConsumptionKWh": consumption_kwh, "monthlyCost": energy_cost, "demandCost": demand_cost,
            "totalMonthlyCost": energy_cost + demand_cost,
            "costPerTon": (energy_cost + demand_cost) / monthly_tons,
        },
        "water": {
            "monthlyConsumptionM3": water_m3, "monthlyCost": water_cost, "fixedFee": water["monthlyFixedFee"],
            "totalMonthlyCost": water_cost + water["monthlyFixedFee"],
        },
        "labor": {**payroll, "socialCharges": social, "totalMonthlyLabor": base_payroll + social},
        "land": {"purchaseCost": land_cost, "constructionCost": construction,
                 "totalLandInfra": land_cost + construction},
        "installation": {"permits": permits, "electricalInstallation": electrical,
                         "equipmentInstallation": equipment_install,
                         "totalInstallation": permits + electrical + equipment_install + connections},
        "totalMonthlyOpex": monthly_opex,
        "totalCapex": capex,
        "annualOpex": monthly_opex * 12,
    }
