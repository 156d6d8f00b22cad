"""
ELP Green: Export Pricing (Incoterms 2020 + destination taxes)

Landed-cost calculator for recycled tire products shipped from Brazil.
Freight and insurance are modelled as a percentage of EXW value per
Incoterm; duties, VAT and additional taxes come from a per-country table
(WTO tariff data, January 2026).
"""

from elpgreen.db import _n

# ============================================================
# PRODUCT HS CODES
# ============================================================
PRODUCT_HS_CODES = {
    "rubber_granules": "4004.00",
    "crumb_rubber": "4004.00.10",
    "steel_wire": "7204.41",
    "textile_fiber": "6310.90",
    "rcb": "2803.00",
    "pyrolysis_oil": "2710.19",
}

EXPORT_CLEARANCE_PCT = 0.5


def _incoterm(code, full_name, description, freight, insurance, export_clear, import_clear, risk_point):
    return {"id": code, "fullName": full_name, "description": description,
            "freightCostPercent": freight, "insuranceCostPercent": insurance,
            "customsClearanceExport": export_clear, "customsClearanceImport": import_clear,
            "riskTransferPoint": risk_point}


INCOTERMS_2020 = {
    "EXW": _incoterm("EXW", "Ex Works", "Seller makes goods available at their premises.",
                     0, 0, False, False, "Seller premises"),
    "FCA": _incoterm("FCA", "Free Carrier", "Seller delivers to the carrier, export cleared.",
                     2, 0, True, False, "First carrier premises"),
    "FOB": _incoterm("FOB", "Free On Board", "Seller delivers on board the vessel.",
                     5, 0, True, False, "On board vessel at port of shipment"),
    "CFR": _incoterm("CFR", "Cost and Freight", "Seller pays freight to the destination port.",
                     12, 0, True, False, "On board vessel at port of shipment"),
    "CIF": _incoterm("CIF", "Cost, Insurance and Freight", "Seller pays freight and marine insurance.",
                     12, 1.5, True, False, "On board vessel at port of shipment"),
    "DAP": _incoterm("DAP", "Delivered at Place", "Seller delivers ready for unloading, import not cleared.",
                     15, 2, True, False, "Named place of destination"),
    "DDP": _incoterm("DDP", "Delivered Duty Paid", "Seller bears all costs and duties to destination.",
                     15, 2, True, True, "Named place of destination (duties paid)"),
}

# ============================================================
# DESTINATION TAX PROFILES
# ============================================================
_DUTY_KEYS = ("rubber_granules", "crumb_rubber", "steel_wire", "textile_fiber", "rcb", "pyrolysis_oil")


def _country(code, name, currency, fx, duties, vat, additional=(), ftas=(), incentives=(), notes=""):
    return {
        "countryCode": code, "countryName": name, "currency": currency, "exchangeRateToUSD": fx,
        "importDuties": dict(zip(_DUTY_KEYS, duties)), "vatRate": vat,
        "additionalTaxes": [{"name": n, "rate": r, "appliesTo": list(a)} for n, r, a in additional],
        "exportTax": 0, "freeTradeAgreements": list(ftas), "recyclingIncentives": list(incentives),
        "notes": notes,
    }


COUNTRY_TAX_DATABASE = {
    "BR": _country("BR", "Brasil", "BRL", 5.20, (10, 10, 12, 18, 14, 8), 0,
                   [("IPI (Industrial Products Tax)", 5, ("rubber_granules", "crumb_rubber", "rcb")),
                    ("PIS/COFINS", 9.25, ("all",)), ("ICMS (avg)", 18, ("all",))],
                   ["MERCOSUL", "ALADI", "ACE 35 (Chile)", "ACE 58 (Peru)"],
                   ["PNRS Credits", "Reciclanip Partnership", "Green ICMS (some states)"],
                   "Complex tax system. Simples Nacional may reduce burden for smaller operations."),
    "US": _country("US", "United States", "USD", 1.0, (0, 0, 0, 4.5, 3.7, 0.5), 0,
                   [("Harbor Maintenance Fee", 0.125, ("all",)), ("Merchandise Processing Fee", 0.3464, ("all",))],
                   ["USMCA (Mexico/Canada)", "CAFTA-DR", "Chile FTA", "Peru TPA"],
                   ["State recycling credits (varies)", "EPA Green Economy programs"],
                   "Low import duties for recycled materials. Strong demand for crumb rubber in asphalt."),
    "MX": _country("MX", "Mexico", "MXN", 17.5, (15, 15, 10, 20, 10, 5), 16,
                   [("DTA (Customs Processing)", 0.8, ("all",))],
                   ["USMCA", "EU FTA", "Pacific Alliance", "CPTPP"],
                   ["SEMARNAT environmental programs", "Mining sector tire disposal mandates"],
                   "USMCA origin goods enter duty-free. Large mining sector creates OTR demand."),
    "CL": _country("CL", "Chile", "CLP", 880, (6, 6, 6, 6, 6, 6), 19, [],
                   ["EU FTA", "US FTA", "China FTA", "Pacific Alliance", "CPTPP", "Mercosur ACE 35"],
                   ["REP Law (Extended Producer Responsibility)", "Mining sector mandates"],
                   "Largest copper mining country. Strong REP legislation for tires effective 2024."),
    "PE": _country("PE", "Peru", "PEN", 3.75, (6, 6, 6, 11, 6, 6), 18,
                   [("Municipal Tax", 2, ("all",))],
                   ["Pacific Alliance", "US TPA", "EU FTA", "China FTA", "MERCOSUR ACE 58"],
                   ["MINAM recycling programs", "Mining sector environmental obligations"],
                   "Major copper/gold mining country. Large OTR tire market in mining regions."),
    "CA": _country("CA", "Canada", "CAD", 1.35, (0, 0, 0, 6, 0, 0), 5,
                   [("Provincial HST/PST (avg)", 8, ("all",))],
                   ["USMCA", "EU CETA", "CPTPP", "Chile FTA"],
                   ["Provincial tire stewardship programs", "Carbon pricing credits"],
                   "Strict environmental standards. Provincial tire recycling programs well-established."),
    "DE": _country("DE", "Germany", "EUR", 0.92, (0, 0, 0, 4, 2, 0), 19, [],
                   ["EU Single Market", "EU-UK TCA", "EU-Japan EPA", "EU-Canada CETA"],
                   ["Circular Economy Act incentives", "EPR schemes", "CO2 pricing benefits"],
                   "Premium market. Genan operates largest tire recycling plant. High quality standards."),
    "IT": _country("IT", "Italy", "EUR", 0.92, (0, 0, 0, 4, 2, 0), 22, [],
                   ["EU Single Market", "EU FTAs"], ["Ecopneus system", "Superbonus for eco-investments"],
                   "Ecopneus manages tire collection. Strong market for rubber in sports surfaces."),
    "GB": _country("GB", "United Kingdom", "GBP", 0.79, (0, 0, 0, 6.5, 0, 0), 20, [],
                   ["EU-UK TCA", "Australia FTA", "Japan CEPA"], ["WRAP programs", "Landfill tax savings"],
                   "Post-Brexit: EU-UK TCA maintains zero tariffs on most recycled materials."),
    "CN": _country("CN", "China", "CNY", 7.25, (8, 8, 0, 10, 6.5, 6), 13, [],
                   ["RCEP", "ASEAN FTA", "Pakistan FTA"],
                   ["14th Five-Year Plan circular economy", "Green bond incentives"],
                   "TOPS Recycling operates here. Strict import quality standards for waste materials."),
    "AU": _country("AU", "Australia", "AUD", 1.55, (0, 0, 0, 5, 0, 0), 10, [],
                   ["RCEP", "CPTPP", "China-Australia FTA", "UK FTA"],
                   ["Tyre Stewardship Australia (TSA)", "State-based levies on disposal"],
                   "Large mining sector with OTR demand. Tyrecycle is major processor. TSA certification valued."),
    "JP": _country("JP", "Japan", "JPY", 150, (0, 0, 0, 5.8, 3.2, 0), 10, [],
                   ["RCEP", "CPTPP", "EU-Japan EPA"], ["JATMA recycling system", "Top Runner program incentives"],
                   "Mature recycling market. High quality standards required."),
    "IN": _country("IN", "India", "INR", 83, (25, 25, 15, 20, 10, 10), 18,
                   [("Social Welfare Surcharge", 10, ("all",))],
                   ["SAFTA", "ASEAN FTA", "Singapore CECA"],
                   ["EPR rules for tires (2022)", "Make in India incentives"],
                   "High protective tariffs. Local recycling industry protected. EPR rules expanding."),
    "ZA": _country("ZA", "South Africa", "ZAR", 18.5, (0, 0, 0, 15, 0, 5), 15, [],
                   ["SADC", "SACU", "EU EPA", "AfCFTA"],
                   ["REDISA (Recycling and Economic Development)", "Carbon tax credits"],
                   "Major mining sector. AfCFTA expanding intra-African trade opportunities."),
    "AE": _country("AE", "United Arab Emirates", "AED", 3.67, (5, 5, 5, 5, 5, 5), 5, [],
                   ["GCC", "Singapore FTA"], ["UAE Green Agenda incentives", "Free zone benefits"],
                   "Hub for re-export to Africa/Middle East. Free zones offer tax advantages."),
}

REGIONS = {
    "Americas": ["BR", "US", "MX", "CL", "PE", "CA"],
    "Europe": ["DE", "IT", "GB"],
    "Asia-Pacific": ["CN", "AU", "JP", "IN"],
    "Africa & Middle East": ["ZA", "AE"],
}


# ============================================================
# CALCULATIONS
# ============================================================
def _code(value) -> str:
    return value.strip().upper() if isinstance(value, str) else ""


def calculate_export_price(base_price: float, quantity: float, product: str, incoterm: str,
                           destination: str, origin: str = "BR") -> dict:
    """Landed cost of `quantity` tons priced `base_price` USD/ton EXW.

    Duties and VAT are assessed on CIF value; additional taxes on CIF + duty.
    Under DDP the seller carries the duties, otherwise the buyer does.
    """
    terms = INCOTERMS_2020.get(_code(incoterm))
    country = COUNTRY_TAX_DATABASE.get(_code(destination))
    if not terms or not country:
        raise ValueError("Invalid incoterm or country code")
    if not isinstance(product, str) or product not in PRODUCT_HS_CODES:
        raise ValueError(f"Unknown product '{product}'. Allowed: {list(PRODUCT_HS_CODES)}")

    exw_value = _n(base_price) * _n(quantity)
    freight = exw_value * terms["freightCostPercent"] / 100
    insurance = exw_value * terms["insuranceCostPercent"] / 100
    export_clearance = exw_value * EXPORT_CLEARANCE_PCT / 100 if terms["customsClearanceExport"] else 0
    cif_value = exw_value + freight + insurance

    customs_duty = cif_value * country["importDuties"].get(product, 0) / 100
    vatable = cif_value + customs_duty
    vat = vatable * country["vatRate"] / 100
    additional = [{"name": t["name"], "amount": vatable * t["rate"] / 100}
                  for t in country["additionalTaxes"]
                  if "all" in t["appliesTo"] or product in t["appliesTo"]]
    total_duties = customs_duty + vat + sum(t["amount"] for t in additional)

    seller_costs = exw_value + freight + insurance + export_clearance
    if terms["id"] == "DDP":
        final_price = seller_costs + total_duties
        seller_receives = final_price
    else:
        final_price = cif_value + total_duties
        seller_receives = seller_costs

    return {
        "basePrice": _n(base_price), "quantity": _n(quantity), "product": product,
        "hsCode": PRODUCT_HS_CODES[product], "incoterm": terms["id"],
        "origin": origin, "destination": country["countryCode"],
        "incotermCosts": {"freight": freight, "insurance": insurance, "exportClearance": export_clearance},
        "cifPrice": cif_value,
        "importDuties": {"customsDuty": customs_duty, "vatAmount": vat,
                         "additionalTaxes": additional, "totalDuties": total_duties},
        "finalPrice": final_price,
        "marginAnalysis": {
            "grossMargin": seller_receives - exw_value,
            "effectiveTaxRate": total_duties / cif_value * 100 if cif_value else 0,
            "netRevenuePercent": exw_value / final_price * 100 if final_price else 0,
        },
    }


def get_destination_countries() -> list:
    return [{"code": code, "name": COUNTRY_TAX_DATABASE[code]["countryName"], "region": region}
            for region, codes in REGIONS.items() for code in codes if code in COUNTRY_TAX_DATABASE]


def get_country_tax_summary(code: str):
    country = COUNTRY_TAX_DATABASE.get(_code(code))
    if not country:
        return None
    duties = country["importDuties"].values()
    return {**country,
            "averageImportDuty": sum(duties) / len(_DUTY_KEYS),
            "totalTaxBurden": country["vatRate"] + sum(t["rate"] for t in country["additionalTaxes"])}


def compare_destinations(base_price: float, quantity: float, product: str, incoterm: str, codes: list) -> list:
    if not isinstance(codes, list) or not all(isinstance(c, str) for c in codes):
        raise ValueError("destinations must be a list of country codes")
    results = []
    for code in codes:
        calc = calculate_export_price(base_price, quantity, product, incoterm, code)
        calc["countryName"] = COUNTRY_TAX_DATABASE[_code(code)]["countryName"]
        results.append(calc)
    return sorted(results, key=lambda r: r["finalPrice"])
