"""
ELP Green: Fiscal Incentives & Government Partnership Models

Regional corporate-tax incentives for recycling plants and the government
partnership models (royalty share and environmental bonus per ton) used by
the feasibility calculator. Values reflect January 2026 market data.
"""

# ============================================================
# FISCAL INCENTIVES BY COUNTRY AND REGION
# ============================================================
FISCAL_INCENTIVES_DATA = {
    "brazil": {
        "corporateTax": 34,
        "regions": [
            {"id": "north", "name": "Brazil North (SUDAM)", "effectiveTax": 8.5,
             "incentives": [
                 {"type": "irpj", "value": "-75%", "agency": "SUDAM", "description": "SUDAM income tax reduction"},
                 {"type": "ipi", "value": "0%", "agency": "Receita Federal", "description": "IPI exemption"},
                 {"type": "icms", "value": "-50%", "agency": "SEFAZ PA", "description": "State VAT reduction"},
                 {"type": "environmental", "value": "+R$80/pneu", "agency": "Reciclanip", "description": "Reciclanip disposal bonus"},
             ],
             "regulations": ["PNRS 12.305/2010", "CONAMA 416/2009"]},
            {"id": "northeast", "name": "Brazil Northeast (SUDENE)", "effectiveTax": 10.2,
             "incentives": [
                 {"type": "irpj", "value": "-75%", "agency": "SUDENE", "description": "SUDENE income tax reduction"},
                 {"type": "ipi", "value": "0%", "agency": "Receita Federal", "description": "IPI exemption"},
                 {"type": "icms", "value": "-40%", "agency": "SEFAZ BA/CE", "description": "State VAT reduction"},
                 {"type": "credit", "value": "BNB", "agency": "Banco do Nordeste", "description": "BNB development credit"},
             ],
             "regulations": ["PNRS 12.305/2010", "Lei do Bem 11.196"]},
            {"id": "southeast", "name": "Brazil Southeast", "effectiveTax": 27.2,
             "incentives": [
                 {"type": "irpj", "value": "0%", "agency": "-", "description": "No federal incentive"},
                 {"type": "icms", "value": "-20%", "agency": "SEFAZ SP", "description": "Recycling VAT credit"},
                 {"type": "iss", "value": "-50%", "agency": "Prefeituras", "description": "Green service tax"},
                 {"type": "depreciation", "value": "2x", "agency": "Receita Federal", "description": "Accelerated depreciation"},
             ],
             "regulations": ["PNRS 12.305/2010", "CETESB 001/2021"]},
            {"id": "manaus", "name": "Manaus Free Trade Zone", "effectiveTax": 4.1,
             "incentives": [
                 {"type": "irpj", "value": "-88%", "agency": "SUFRAMA", "description": "Free zone income tax reduction"},
                 {"type": "ipi", "value": "0%", "agency": "SUFRAMA", "description": "IPI exemption"},
                 {"type": "icms", "value": "0%", "agency": "SEFAZ AM", "description": "Free zone VAT exemption"},
                 {"type": "pis_cofins", "value": "0%", "agency": "Receita Federal", "description": "PIS/COFINS exemption"},
             ],
             "regulations": ["Decreto-Lei 288/1967", "SUFRAMA"]},
        ],
    },
    "australia": {
        "corporateTax": 30,
        "regions": [
            {"id": "western", "name": "Western Australia", "effectiveTax": 17.5,
             "incentives": [
                 {"type": "rd", "value": "43.5%", "agency": "ATO", "description": "R&D tax offset"},
                 {"type": "asset", "value": "AUD 150K", "agency": "ATO", "description": "Instant asset write-off"},
                 {"type": "tsa", "value": "Grants", "agency": "TSA", "description": "Tyre Stewardship funding"},
                 {"type": "landfill", "value": "-AUD 200/t", "agency": "EPA WA", "description": "Landfill levy avoided"},
             ],
             "regulations": ["Product Stewardship Act 2011", "TSA Scheme"]},
            {"id": "queensland", "name": "Queensland", "effectiveTax": 18.0,
             "incentives": [
                 {"type": "rd", "value": "43.5%", "agency": "ATO", "description": "R&D tax offset"},
                 {"type": "payroll", "value": "-50%", "agency": "QLD Treasury", "description": "Payroll tax rebate"},
                 {"type": "cefc", "value": "Loans", "agency": "CEFC", "description": "Clean energy finance loans"},
                 {"type": "landfill", "value": "-AUD 170/t", "agency": "EPA QLD", "description": "Landfill levy avoided"},
             ],
             "regulations": ["Waste Reduction Act 2011", "EPA QLD"]},
        ],
    },
    "chile": {
        "corporateTax": 27,
        "regions": [
            {"id": "atacama", "name": "Atacama", "effectiveTax": 18.9,
             "incentives": [
                 {"type": "renta", "value": "-30%", "agency": "SII", "description": "Mining zone income tax reduction"},
                 {"type": "iva", "value": "Defer", "agency": "SII", "description": "VAT deferral"},
                 {"type": "corfo", "value": "Grants", "agency": "CORFO", "description": "CORFO grants"},
                 {"type": "carbon", "value": "USD 20/t", "agency": "Santiago Exchange", "description": "Carbon credits"},
             ],
             "regulations": ["Ley REP 20.920", "DS 40/2012"]},
            {"id": "antofagasta", "name": "Antofagasta", "effectiveTax": 20.3,
             "incentives": [
                 {"type": "renta", "value": "-25%", "agency": "SII", "description": "Extreme zone franchise"},
                 {"type": "mining", "value": "Royalties", "agency": "Mining Ministry", "description": "Mining royalty sharing"},
                 {"type": "proinversion", "value": "Incentives", "agency": "InvestChile", "description": "Investment promotion"},
             ],
             "regulations": ["Ley REP 20.920", "Mining Code"]},
        ],
    },
    "usa": {
        "corporateTax": 21,
        "regions": [
            {"id": "texas", "name": "Texas", "effectiveTax": 17.8,
             "incentives": [
                 {"type": "state", "value": "0%", "agency": "Texas Comptroller", "description": "No state income tax"},
                 {"type": "macrs", "value": "5 years", "agency": "IRS", "description": "Accelerated depreciation"},
                 {"type": "qoz", "value": "-15%", "agency": "IRS", "description": "Opportunity zone"},
                 {"type": "tceq", "value": "Grants", "agency": "TCEQ", "description": "Recycling grants"},
             ],
             "regulations": ["RCRA", "Texas Tire Program"]},
            {"id": "arizona", "name": "Arizona", "effectiveTax": 23.1,
             "incentives": [
                 {"type": "state", "value": "4.9%", "agency": "ADOR", "description": "Low state tax"},
                 {"type": "property", "value": "-80%", "agency": "County", "description": "Property tax abatement"},
                 {"type": "s179", "value": "Full", "agency": "IRS", "description": "Section 179 expensing"},
                 {"type": "adeq", "value": "Incentives", "agency": "ADEQ", "description": "ADEQ recycling program"},
             ],
             "regulations": ["RCRA", "ARS Title 49"]},
        ],
    },
    "italy": {
        "corporateTax": 24,
        "regions": [
            {"id": "lombardy", "name": "Lombardy", "effectiveTax": 20.1,
             "incentives": [
                 {"type": "irap", "value": "-3.9%", "agency": "Regione Lombardia", "description": "IRAP reduction"},
                 {"type": "rd", "value": "50%", "agency": "MISE", "description": "R&D credit"},
                 {"type": "transition", "value": "40%", "agency": "MISE", "description": "Transition 4.0 credit"},
                 {"type": "eco", "value": "Grants", "agency": "Invitalia", "description": "Eco-industry grants"},
             ],
             "regulations": ["TUA D.Lgs 152/2006", "CONAI System"]},
            {"id": "south", "name": "Southern Italy (Mezzogiorno)", "effectiveTax": 13.2,
             "incentives": [
                 {"type": "mezzogiorno", "value": "-45%", "agency": "Invitalia", "description": "Mezzogiorno investment credit"},
                 {"type": "irap", "value": "-50%", "agency": "Regioni Sud", "description": "IRAP reduction"},
                 {"type": "zes", "value": "Bonus", "agency": "ZES Authority", "description": "Special economic zone bonus"},
                 {"type": "training", "value": "70%", "agency": "ANPAL", "description": "Training credit"},
             ],
             "regulations": ["TUA D.Lgs 152/2006", "ZES Law"]},
        ],
    },
    "germany": {
        "corporateTax": 30,
        "regions": [
            {"id": "east", "name": "Eastern Germany", "effectiveTax": 22.5,
             "incentives": [
                 {"type": "investment", "value": "25%", "agency": "BAFA", "description": "East Germany investment grant"},
                 {"type": "rd", "value": "25%", "agency": "BMF", "description": "R&D credit"},
                 {"type": "kfw", "value": "Loans", "agency": "KfW", "description": "KfW green loans"},
                 {"type": "gwr", "value": "-15%", "agency": "Länder", "description": "Trade tax relief"},
             ],
             "regulations": ["KrWG", "VerpackG", "BImSchG"]},
            {"id": "nrw", "name": "North Rhine-Westphalia", "effectiveTax": 30.0,
             "incentives": [
                 {"type": "rd", "value": "25%", "agency": "BMF", "description": "R&D credit"},
                 {"type": "innovation", "value": "Grants", "agency": "NRW.INVEST", "description": "Innovation grants"},
                 {"type": "progres", "value": "50%", "agency": "NRW Energy", "description": "progres.nrw program"},
             ],
             "regulations": ["KrWG", "LAbfG NRW"]},
        ],
    },
    "mexico": {
        "corporateTax": 30,
        "regions": [
            {"id": "sonora", "name": "Sonora", "effectiveTax": 22.0,
             "incentives": [
                 {"type": "immex", "value": "VAT Defer", "agency": "SAT", "description": "IMMEX program"},
                 {"type": "state", "value": "-50%", "agency": "Gobierno Sonora", "description": "State incentives"},
                 {"type": "prosec", "value": "-5% tariff", "agency": "SE", "description": "PROSEC sector program"},
                 {"type": "mining", "value": "20%", "agency": "Federal/State", "description": "Mining royalty"},
             ],
             "regulations": ["LGPGIR", "NOM-161-SEMARNAT"]},
            {"id": "zacatecas", "name": "Zacatecas", "effectiveTax": 21.0,
             "incentives": [
                 {"type": "immex", "value": "VAT Defer", "agency": "SAT", "description": "IMMEX program"},
                 {"type": "state", "value": "-60%", "agency": "Gobierno Zacatecas", "description": "Mining zone state incentive"},
                 {"type": "payroll", "value": "-30%", "agency": "Estado", "description": "Payroll subsidy"},
             ],
             "regulations": ["LGPGIR", "Mining Law"]},
        ],
    },
    "southAfrica": {
        "corporateTax": 28,
        "regions": [
            {"id": "gauteng", "name": "Gauteng", "effectiveTax": 13.0,
             "incentives": [
                 {"type": "sez", "value": "-15%", "agency": "dtic", "description": "SEZ tax reduction"},
                 {"type": "depreciation", "value": "100%", "agency": "SARS", "description": "Full first-year depreciation"},
                 {"type": "bbbee", "value": "Bonus", "agency": "dtic", "description": "B-BBEE bonus"},
                 {"type": "idc", "value": "Funding", "agency": "IDC", "description": "IDC funding"},
             ],
             "regulations": ["NEMA", "Waste Act 59/2008"]},
            {"id": "limpopo", "name": "Limpopo", "effectiveTax": 13.0,
             "incentives": [
                 {"type": "sez", "value": "-15%", "agency": "dtic", "description": "SEZ tax reduction"},
                 {"type": "employment", "value": "R50K/job", "agency": "dtic", "description": "Employment incentive"},
                 {"type": "training", "value": "75%", "agency": "SETA", "description": "Training grant"},
             ],
             "regulations": ["NEMA", "Waste Management Act"]},
        ],
    },
}

# Country display names (English and Portuguese/Spanish/Italian variants) → data key
COUNTRY_KEY_MAP = {
    "Brasil": "brazil", "Brazil": "brazil",
    "Australia": "australia", "Austrália": "australia",
    "Chile": "chile",
    "USA": "usa", "United States": "usa", "Estados Unidos": "usa",
    "Italy": "italy", "Itália": "italy", "Italia": "italy",
    "Germany": "germany", "Alemanha": "germany", "Deutschland": "germany",
    "Mexico": "mexico", "México": "mexico",
    "South Africa": "southAfrica", "África do Sul": "southAfrica",
}


def country_key(country: str):
    return COUNTRY_KEY_MAP.get(country or "")


def _country_data(country: str):
    key = country_key(country)
    return FISCAL_INCENTIVES_DATA.get(key) if key else None


def get_regions_for_country(country: str) -> list:
    data = _country_data(country)
    if not data:
        return []
    return [{"id": r["id"], "name": r["name"], "effectiveTax": r["effectiveTax"]}
            for r in data["regions"]]


def get_effective_tax_rate(country: str, region_id: str):
    data = _country_data(country)
    if not data:
        return None
    region = next((r for r in data["regions"] if r["id"] == region_id), None)
    return region["effectiveTax"] if region else None


def get_base_tax_rate(country: str):
    data = _country_data(country)
    return data["corporateTax"] if data else None


def get_region_incentive_details(country: str, region_id: str):
    """Full incentive breakdown for one region, including savings vs. the base corporate rate."""
    data = _country_data(country)
    if not data:
        return None
    region = next((r for r in data["regions"] if r["id"] == region_id), None)
    if not region:
        return None
    return {
        "incentives": region["incentives"],
        "regulations": region["regulations"],
        "corporateTax": data["corporateTax"],
        "effectiveTax": region["effectiveTax"],
        "savings": round(data["corporateTax"] - region["effectiveTax"], 2),
    }


# ============================================================
# GOVERNMENT PARTNERSHIP MODELS
# ============================================================
# royaltyRange: % of revenue paid to the partner government
# envBonusRange: USD per processed ton received as environmental bonus
def _model(model_id, name, royalty, bonus, description, regulations, benefits, collection):
    return {
        "id": model_id, "name": name,
        "royaltyRange": dict(zip(("min", "max", "recommended"), royalty)),
        "envBonusRange": dict(zip(("min", "max", "recommended"), bonus)),
        "description": description, "regulations": regulations,
        "benefits": benefits, "collectionModels": collection,
    }


GOVERNMENT_PARTNERSHIP_DATA = {
    "brazil": {
        "currency": "BRL", "defaultRoyalty": 5, "defaultEnvBonus": 8,
        "marketReference": "Reciclanip + IBAMA Jan 2026",
        "governmentModels": [
            _model("direct_mining", "Direct mining partnership", (0, 5, 2), (0, 8, 3),
                   "Direct partnership with mining companies: free tire intake plus environmental bonus",
                   ["PNRS 12.305/2010", "CONAMA 416/2009"],
                   ["IBAMA certified disposal", "Carbon credits", "Environmental compliance"],
                   ["direct", "mining"]),
            _model("state_partnership", "State government partnership", (5, 15, 10), (5, 12, 8),
                   "Partnership with the state government (SEMA/IBAMA)",
                   ["PNRS 12.305/2010", "Lei Estadual Resíduos"],
                   ["ICMS incentives", "BNDES credit", "Official reverse logistics"],
                   ["government", "hybrid"]),
            _model("reciclanip_model", "Reciclanip model", (0, 3, 0), (15, 25, 20),
                   "Reciclanip model: environmental bonus per disposed tire (~R$80 per OTR tire)",
                   ["CONAMA 416/2009", "Resolução Reciclanip"],
                   ["Reciclanip certificate", "Approved disposal", "Traceability"],
                   ["direct", "hybrid"]),
        ],
    },
    "australia": {
        "currency": "AUD", "defaultRoyalty": 2, "defaultEnvBonus": 25,
        "marketReference": "TSA + EPA WA Jan 2026",
        "governmentModels": [
            _model("tsa_scheme", "TSA scheme", (0, 5, 2), (15, 35, 25),
                   "Tyre Stewardship Australia levy rebate scheme",
                   ["Product Stewardship Act 2011", "TSA Accreditation"],
                   ["TSA Accreditation", "Landfill levy avoided AUD 200/t", "Carbon credits"],
                   ["direct", "hybrid"]),
            _model("state_epa", "State EPA partnership", (3, 10, 5), (10, 20, 15),
                   "State EPA Partnership - WA/QLD/NSW",
                   ["EPA State Regulations", "Waste Management Act"],
                   ["Landfill diversion credits", "State grants", "Priority permitting"],
                   ["government", "mining"]),
            _model("mining_direct", "Direct mining partnership", (0, 3, 0), (20, 40, 30),
                   "Direct mining partnerships - Rio Tinto, BHP, Fortescue",
                   ["Mining Environmental Obligations"],
                   ["Free tire supply", "Transport included", "Long-term contracts"],
                   ["mining", "direct"]),
        ],
    },
    "chile": {
        "currency": "CLP", "defaultRoyalty": 3, "defaultEnvBonus": 18,
        "marketReference": "CORFO + Codelco Jan 2026",
        "governmentModels": [
            _model("ley_rep", "Ley REP", (0, 8, 5), (10, 25, 18),
                   "Ley REP 20.920 - Extended Producer Responsibility",
                   ["Ley REP 20.920", "DS 40/2012"],
                   ["REP compliance credits", "CORFO grants", "Carbon market access"],
                   ["direct", "government"]),
            _model("codelco_direct", "Codelco direct partnership", (0, 5, 2), (12, 30, 22),
                   "Direct partnership with Codelco/Escondida - free tires plus bonus",
                   ["Mining Environmental Standards"],
                   ["Free OTR supply", "Long-term agreement", "Transport support"],
                   ["mining"]),
        ],
    },
    "usa": {
        "currency": "USD", "defaultRoyalty": 0, "defaultEnvBonus": 12,
        "marketReference": "EPA + State Programs Jan 2026",
        "governmentModels": [
            _model("tceq_texas", "TCEQ Texas", (0, 5, 0), (8, 20, 12),
                   "Texas Commission on Environmental Quality grants",
                   ["RCRA", "Texas Tire Program"],
                   ["State recycling grants", "Tax exemptions", "Tipping fee revenue"],
                   ["direct", "government"]),
            _model("mining_west", "Western mining", (0, 3, 0), (10, 25, 15),
                   "Western mining operations - Nevada, Arizona, Utah",
                   ["EPA RCRA", "State Mining Laws"],
                   ["Free tire collection", "EPA compliance support", "Carbon credits"],
                   ["mining", "direct"]),
        ],
    },
    "italy": {
        "currency": "EUR", "defaultRoyalty": 3, "defaultEnvBonus": 30,
        "marketReference": "Ecopneus + CONAI Jan 2026",
        "governmentModels": [
            _model("ecopneus", "Ecopneus consortium", (0, 5, 3), (20, 40, 30),
                   "Ecopneus Consortium - EUR 30-40/ton environmental contribution",
                   ["TUA D.Lgs 152/2006", "CONAI System"],
                   ["Ecopneus certification", "EU taxonomy alignment", "EPR credits"],
                   ["direct", "government"]),
            _model("south_zes", "Southern Italy ZES", (5, 12, 8), (15, 30, 22),
                   "Southern Italy ZES + Invitalia support",
                   ["ZES Law", "Mezzogiorno Incentives"],
                   ["45% investment credit", "IRAP reduction", "Training grants"],
                   ["government", "hybrid"]),
        ],
    },
    "germany": {
        "currency": "EUR", "defaultRoyalty": 2, "defaultEnvBonus": 35,
        "marketReference": "GRV + BAFA Jan 2026",
        "governmentModels": [
            _model("grv_system", "GRV system", (0, 5, 2), (25, 45, 35),
                   "GRV Tire Recycling System - EUR 35-45/ton contribution",
                   ["KrWG", "VerpackG", "BImSchG"],
                   ["GRV certification", "Waste hierarchy compliance", "CO2 credits"],
                   ["direct", "hybrid"]),
            _model("east_investment", "East Germany investment", (5, 15, 10), (20, 35, 28),
                   "East Germany investment grants + KfW loans",
                   ["BAFA Investment Grant", "KfW Programs"],
                   ["25% investment grant", "KfW green loans", "R&D credits"],
                   ["government"]),
        ],
    },
    "mexico": {
        "currency": "MXN", "defaultRoyalty": 8, "defaultEnvBonus": 10,
        "marketReference": "SEMARNAT + Estado Jan 2026",
        "governmentModels": [
            _model("semarnat", "SEMARNAT program", (5, 15, 10), (5, 15, 10),
                   "SEMARNAT environmental program + state incentives",
                   ["LGPGIR", "NOM-161-SEMARNAT"],
                   ["Environmental permits fast-track", "State tax reductions", "IMMEX benefits"],
                   ["government", "direct"]),
            _model("mining_sonora", "Sonora mining", (0, 8, 5), (8, 18, 12),
                   "Mining partnerships Sonora/Zacatecas",
                   ["Mining Law", "State Environmental Laws"],
                   ["Free tire supply", "Mining royalty sharing", "Transport support"],
                   ["mining"]),
        ],
    },
    "southAfrica": {
        "currency": "ZAR", "defaultRoyalty": 3, "defaultEnvBonus": 20,
        "marketReference": "dtic + Mining Jan 2026",
        "governmentModels": [
            _model("redisa", "REDISA EPR", (0, 8, 5), (15, 30, 22),
                   "REDISA-style EPR scheme + dtic incentives",
                   ["NEMA", "Waste Act 59/2008"],
                   ["EPR compliance", "SEZ tax reduction", "B-BBEE bonus"],
                   ["direct", "government"]),
            _model("mining_gauteng", "Gauteng mining", (0, 5, 2), (12, 25, 18),
                   "Mining partnerships Gauteng/Limpopo - Anglo American, De Beers",
                   ["Mining Charter", "Environmental Obligations"],
                   ["Free OTR tires", "IDC funding access", "Employment incentives R50K/job"],
                   ["mining"]),
        ],
    },
}


def get_government_partnership_data(country: str):
    key = country_key(country)
    return GOVERNMENT_PARTNERSHIP_DATA.get(key) if key else None


def get_recommended_partnership_terms(country: str, collection_model: str):
    """Recommended royalty/bonus for the first model offering the collection model.
    Falls back to the country defaults when no model matches."""
    data = get_government_partnership_data(country)
    if not data:
        return None
    model = next((m for m in data["governmentModels"] if collection_model in m["collectionModels"]), None)
    if not model:
        return {"royalty": data["defaultRoyalty"], "envBonus": data["defaultEnvBonus"],
                "modelName": "default", "regulations": [], "benefits": []}
    return {
        "royalty": model["royaltyRange"]["recommended"],
        "envBonus": model["envBonusRange"]["recommended"],
        "modelName": model["id"],
        "regulations": model["regulations"],
        "benefits": model["benefits"],
    }
