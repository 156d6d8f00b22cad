"""
ELP Green: Tire Category Database

Composition, processing difficulty and recoverable material per tire
category and OTR model. Drives OPEX multipliers, default yields and the
per-tire recovered value used in feasibility studies.

Recoverable masses are kilograms per tire; market prices are USD per ton
of recovered (not virgin) material.
"""

from elpgreen.incentives import country_key


def _tire(model, application, weight, diameter, granules, steel, textile, rcb, composition=None):
    t = {"model": model, "application": application, "weight": weight, "diameter": diameter,
         "recoverable": {"granules": granules, "steel": steel, "textile": textile, "rcb": rcb}}
    if composition:
        t["composition"] = dict(zip(("rubber", "steel", "textile", "other"), composition))
    return t


# ============================================================
# OTR GIANT TIRE MODELS
# ============================================================
OTR_TIRE_MODELS = [
    _tire("27.00R49", "Dump trucks ~100t", 1800, 2.7, 990, 450, 144, 225, (55, 25, 8, 12)),
    _tire("33.00R51", "Dump trucks ~150t", 2500, 3.06, 1350, 650, 175, 350, (54, 26, 7, 13)),
    _tire("40.00R57", "Dump trucks 200t+", 3700, 3.57, 1961, 1036, 222, 555, (53, 28, 6, 13)),
    _tire("46/90R57", "Giant wheel loaders", 4000, 3.56, 2080, 1160, 240, 660, (52, 29, 6, 13)),
    _tire("59/80R63", "Ultra-class 400t+", 5350, 4.03, 2728, 1605, 267, 936, (51, 30, 5, 14)),
]

OTR_MARKET_PRICES = {
    "granules": {"min": 200, "max": 290, "avg": 250},
    "steel": {"min": 150, "max": 350, "avg": 250},
    "textile": {"min": 80, "max": 200, "avg": 120},
    "rcb": {"min": 900, "max": 1200, "avg": 1050},
}

# ============================================================
# TIRE CATEGORIES
# ============================================================
TIRE_CATEGORIES = [
    {
        "id": "otr_mining", "name": "OTR Mining",
        "avgWeight": 3470,
        "composition": {"rubber": 52, "steel": 28, "textile": 6, "other": 14},
        "processingDifficulty": "very_high",
        "processingCostMultiplier": 1.4, "yieldMultiplier": 0.92,
        "recommendedCapacity": 85,
        "typicalSources": ["Vale", "BHP", "Rio Tinto", "Anglo American", "Codelco", "Fortescue"],
        "models": [{k: v for k, v in m.items() if k != "composition"} for m in OTR_TIRE_MODELS],
    },
    {
        "id": "otr_construction", "name": "OTR Construction",
        "avgWeight": 680,
        "composition": {"rubber": 58, "steel": 22, "textile": 10, "other": 10},
        "processingDifficulty": "high",
        "processingCostMultiplier": 1.2, "yieldMultiplier": 0.95,
        "recommendedCapacity": 60,
        "typicalSources": ["Caterpillar dealers", "John Deere dealers", "Construction companies", "Port authorities"],
        "models": [
            _tire("17.5R25", "Wheel loaders", 350, 1.35, 203, 77, 35, 28),
            _tire("20.5R25", "Motor graders", 520, 1.55, 302, 114, 52, 42),
            _tire("23.5R25", "Articulated dumpers", 750, 1.75, 435, 165, 75, 60),
            _tire("26.5R25", "Large wheel loaders", 1100, 1.95, 638, 242, 110, 88),
        ],
    },
    {
        "id": "agricultural", "name": "Agricultural",
        "avgWeight": 258,
        "composition": {"rubber": 62, "steel": 15, "textile": 12, "other": 11},
        "processingDifficulty": "medium",
        "processingCostMultiplier": 1.0, "yieldMultiplier": 0.97,
        "recommendedCapacity": 40,
        "typicalSources": ["Agricultural cooperatives", "Farm equipment dealers", "Tire retreaders", "Rural waste collectors"],
        "models": [
            _tire("380/85R24", "Tractor front", 80, 1.1, 50, 12, 10, 5),
            _tire("520/85R38", "Tractor rear", 200, 1.65, 124, 30, 24, 12),
            _tire("710/70R42", "Large harvester", 400, 2.05, 248, 60, 48, 24),
            _tire("800/65R32", "Combine front", 350, 1.85, 217, 53, 42, 21),
        ],
    },
    {
        "id": "truck_bus", "name": "Truck / Bus",
        "avgWeight": 60,
        "composition": {"rubber": 65, "steel": 20, "textile": 8, "other": 7},
        "processingDifficulty": "low",
        "processingCostMultiplier": 0.8, "yieldMultiplier": 0.98,
        "recommendedCapacity": 100,
        "typicalSources": ["Fleet operators", "Tire retreaders", "Bus companies", "Logistics companies", "Municipal collectors"],
        "models": [
            _tire("295/80R22.5", "Truck steer axle", 55, 1.0, 36, 11, 4, 3),
            _tire("315/80R22.5", "Truck drive axle", 65, 1.08, 42, 13, 5, 4),
            _tire("385/65R22.5", "Trailer wide base", 70, 1.05, 46, 14, 6, 4),
            _tire("275/70R22.5", "Urban bus", 50, 0.92, 33, 10, 4, 3),
        ],
    },
]

# Difficulty → (labor, energy, maintenance, logistics, total) factors applied
# on top of the category's processingCostMultiplier
_DIFFICULTY_FACTORS = {
    "very_high": ((1.3, 1.5, 1.4, 1.2, 1.35), "Giant OTR tires require specialized equipment and trained personnel"),
    "high": ((1.15, 1.25, 1.2, 1.1, 1.18), "Large OTR tires need heavy-duty processing equipment"),
    "medium": ((1.0, 1.05, 1.05, 1.0, 1.03), "Agricultural tires with moderate processing requirements"),
    "low": ((0.9, 0.85, 0.9, 0.95, 0.9), "Standard truck/bus tires - easiest to process"),
}


def get_tire_category(category_id: str):
    return next((c for c in TIRE_CATEGORIES if c["id"] == category_id), None)


def get_tire_category_opex_adjustments(category_id: str) -> dict:
    category = get_tire_category(category_id)
    if not category:
        return {"laborMultiplier": 1, "energyMultiplier": 1, "maintenanceMultiplier": 1,
                "logisticsMultiplier": 1, "totalMultiplier": 1, "description": "Standard processing"}
    base = category["processingCostMultiplier"]
    factors, description = _DIFFICULTY_FACTORS.get(category["processingDifficulty"], _DIFFICULTY_FACTORS["low"])
    labor, energy, maintenance, logistics, total = (round(base * f, 4) for f in factors)
    return {"laborMultiplier": labor, "energyMultiplier": energy,
            "maintenanceMultiplier": maintenance, "logisticsMultiplier": logistics,
            "totalMultiplier": total, "description": description}


def get_tire_category_yields(category_id: str) -> dict:
    """Expected recovery yields (%) for a category. rCB is ~20% of rubber via pyrolysis."""
    category = get_tire_category(category_id)
    if not category:
        return {"rubber": 55, "steel": 25, "textile": 8, "rcb": 12}
    eff = category["yieldMultiplier"]
    comp = category["composition"]
    return {
        "rubber": round(comp["rubber"] * eff),
        "steel": round(comp["steel"] * eff),
        "textile": round(comp["textile"] * eff),
        "rcb": round(comp["rubber"] * 0.2 * eff),
    }


def get_regional_tire_bonus_adjustments(country: str, category_id: str) -> dict:
    if not get_tire_category(category_id):
        return {"bonusMultiplier": 1, "reason": "Standard bonus"}
    key = country_key(country) or ""
    if category_id == "otr_mining" and key in ("australia", "chile", "brazil", "southAfrica"):
        return {"bonusMultiplier": 1.5, "reason": "Mining countries prioritize OTR disposal"}
    if category_id == "agricultural" and key in ("brazil", "usa", "germany"):
        return {"bonusMultiplier": 1.3, "reason": "Agricultural sector environmental programs"}
    if category_id == "truck_bus":
        return {"bonusMultiplier": 1.1, "reason": "High volume EPR programs"}
    return {"bonusMultiplier": 1, "reason": "Standard environmental bonus"}


def calculate_tire_value(tire_model: str, prices: dict = None):
    """Recovered-material value of one OTR tire at average (or custom) market prices."""
    tire = next((t for t in OTR_TIRE_MODELS if t["model"] == tire_model), None)
    if not tire:
        return None
    prices = prices or {k: v["avg"] for k, v in OTR_MARKET_PRICES.items()}
    rec = tire["recoverable"]
    values = {k: (rec[k] / 1000) * prices[k] for k in ("granules", "steel", "textile", "rcb")}
    return {
        "model": tire["model"], "weight": tire["weight"],
        "granuleValue": values["granules"], "steelValue": values["steel"],
        "textileValue": values["textile"], "rcbValue": values["rcb"],
        "totalValue": sum(values.values()),
    }
