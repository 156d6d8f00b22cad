"""
ELP Green: AML/KYC Screening

Screens a person or company against:
  1. BrasilAPI CNPJ registry (organizations, Brazil), cached
  2. CPF check-digit validation (individuals, Brazil), cached
  3. CGU Portal da Transparência CEIS / CNEP / CEPIM / CEAF sanctions, cached
  4. OpenSanctions consolidated search (international sanctions, PEPs, crime)

Upstream failures never fail the screening: each lookup logs and returns an
empty result. Thresholds, match caps, risk cutoffs and cache lifetimes come
from the policy engine.

Name similarity is Jaro-Winkler scaled to 0..100.
"""

import re, time, uuid, secrets, string
from contextlib import asynccontextmanager
from datetime import datetime, timedelta

import httpx

from elpgreen.config import (
    OPENSANCTIONS_API, OPENSANCTIONS_API_KEY, BRASIL_API_CNPJ, CGU_API, CGU_API_KEY,
    HTTP_TIMEOUT_SECONDS, SCREENING_USER_AGENT,
)
from elpgreen.db import log_activity
from elpgreen.policy import get_policy, get_match_threshold, get_max_matches, get_cache_days


# ============================================================
# SCREENING SOURCES
# ============================================================
def _src(sid, name, issuer, jurisdiction, kind, url, description):
    return {"id": sid, "name": name, "issuer": issuer, "jurisdiction": jurisdiction,
            "type": kind, "url": url, "description": description}


_CGU = "CGU - Controladoria-Geral da União"
_RFB = "Receita Federal do Brasil"

SCREENING_SOURCES = [
    # Brazil
    _src("br_receita_federal", "Receita Federal do Brasil - CNPJ", _RFB, "BR", "registry",
         "https://solucoes.receita.fazenda.gov.br/Servicos/cnpjreva/cnpjreva_solicitacao.asp",
         "National registry of Brazilian legal entities."),
    _src("br_cvm", "CVM - Comissão de Valores Mobiliários", "CVM Brasil", "BR", "watchlist",
         "https://www.gov.br/cvm/", "Persons and companies restricted in the Brazilian capital market."),
    _src("br_bacen", "BACEN - Banco Central do Brasil", "Banco Central do Brasil", "BR", "watchlist",
         "https://www.bcb.gov.br/", "Financial institution records and restrictions."),
    _src("br_ceis", "CEIS - Cadastro de Empresas Inidôneas e Suspensas", _CGU, "BR", "sanctions",
         "https://portaldatransparencia.gov.br/sancoes/ceis", "Companies barred from public contracting."),
    _src("br_cnep", "CNEP - Cadastro Nacional de Empresas Punidas", _CGU, "BR", "sanctions",
         "https://portaldatransparencia.gov.br/sancoes/cnep", "Companies sanctioned under the Anti-Corruption Law."),
    _src("br_cepim", "CEPIM - Cadastro de Entidades Privadas Sem Fins Lucrativos Impedidas", _CGU, "BR", "sanctions",
         "https://portaldatransparencia.gov.br/sancoes/cepim", "Non-profits barred from public agreements."),
    _src("br_ceaf", "CEAF - Cadastro de Expulsões da Administração Federal", _CGU, "BR", "sanctions",
         "https://portaldatransparencia.gov.br/sancoes/ceaf", "Civil servants expelled from federal administration."),
    _src("br_cpf", "Receita Federal - CPF", _RFB, "BR", "registry",
         "https://servicos.receita.fazenda.gov.br/Servicos/CPF/ConsultaSituacao/ConsultaPublica.asp",
         "Individual taxpayer registry, CPF validation."),
    # United States
    _src("ofac_sdn", "OFAC Specially Designated Nationals (SDN) List",
         "U.S. Department of the Treasury - Office of Foreign Assets Control", "US", "sanctions",
         "https://sanctionssearch.ofac.treas.gov/",
         "Individuals and companies owned or controlled by, or acting for, targeted countries."),
    _src("ofac_cons", "OFAC Consolidated Sanctions List", "U.S. Department of the Treasury - OFAC", "US", "sanctions",
         "https://sanctionssearch.ofac.treas.gov/", "All OFAC sanctions programs including SDN and sectoral sanctions."),
    _src("bis_entity", "BIS Entity List", "U.S. Department of Commerce - Bureau of Industry and Security", "US",
         "sanctions", "https://www.bis.gov/entity-list", "Entities contrary to U.S. national security interests."),
    _src("bis_denied", "BIS Denied Persons List", "U.S. Department of Commerce - Bureau of Industry and Security",
         "US", "sanctions", "https://www.bis.gov/dpl", "Persons denied export privileges."),
    _src("fbi_most_wanted", "FBI Most Wanted Terrorists", "U.S. Federal Bureau of Investigation", "US", "criminal",
         "https://www.fbi.gov/wanted/wanted_terrorists", "FBI list of most wanted terrorists."),
    # United Kingdom
    _src("uk_hmt", "UK HMT Sanctions List", "UK - Her Majesty's Treasury", "GB", "sanctions",
         "https://www.gov.uk/government/publications/financial-sanctions-consolidated-list-of-targets",
         "OFSI consolidated list of financial sanctions targets."),
    _src("uk_fcdo", "UK FCDO Sanctions List", "UK - Foreign, Commonwealth & Development Office", "GB", "sanctions",
         "https://www.gov.uk/government/publications/the-uk-sanctions-list",
         "UK autonomous sanctions under the Sanctions and Anti-Money Laundering Act 2018."),
    # European Union
    _src("eu_fsf", "EU Consolidated Financial Sanctions List", "European Commission - DG FISMA", "EU", "sanctions",
         "https://data.europa.eu/data/datasets/consolidated-list-of-persons-groups-and-entities-subject-to-eu-financial-sanctions",
         "Persons, groups and entities subject to EU financial sanctions."),
    _src("eu_travel", "EU Travel Bans List", "European Council", "EU", "sanctions",
         "https://www.sanctionsmap.eu/", "EU entry and transit restrictions on designated persons."),
    # United Nations
    _src("un_sc", "UN Security Council Consolidated List", "United Nations Security Council", "UN", "sanctions",
         "https://main.un.org/securitycouncil/en/content/un-sc-consolidated-list",
         "Individuals and entities under Security Council sanctions."),
    _src("un_1267", "UN ISIL (Da'esh) & Al-Qaida Sanctions List", "UN Security Council Committee 1267/1989/2253",
         "UN", "sanctions", "https://www.un.org/securitycouncil/sanctions/1267",
         "Sanctions pursuant to resolutions 1267, 1989 and 2253."),
    # China
    _src("cn_mofcom_uel", "MOFCOM Unreliable Entity List", "Ministry of Commerce of the People's Republic of China",
         "CN", "sanctions", "http://www.mofcom.gov.cn/", "Foreign entities that disrupt trade with Chinese entities."),
    _src("cn_mofcom_counter", "MOFCOM Counter Sanctions List", "Ministry of Commerce of China", "CN", "sanctions",
         "http://www.mofcom.gov.cn/", "Counter-sanctions in response to foreign sanctions."),
    # Japan
    _src("jp_meti", "METI End User List", "Ministry of Economy, Trade and Industry of Japan", "JP", "sanctions",
         "https://www.meti.go.jp/policy/anpo/law05.html", "Foreign end-users of concern for export control."),
    _src("jp_mof", "MOF Economic Sanctions List", "Ministry of Finance of Japan", "JP", "sanctions",
         "https://www.mof.go.jp/policy/international_policy/gaitame_kawase/gaitame/economic_sanctions/",
         "Japanese economic sanctions and asset freezes."),
    # Other countries
    _src("ch_seco", "SECO Sanctions List", "State Secretariat for Economic Affairs (Switzerland)", "CH", "sanctions",
         "https://www.seco.admin.ch/", "Swiss sanctions implementing UN, EU and autonomous measures."),
    _src("au_dfat", "DFAT Consolidated Sanctions List", "Department of Foreign Affairs and Trade (Australia)", "AU",
         "sanctions", "https://www.dfat.gov.au/international-relations/security/sanctions/consolidated-list",
         "Australian consolidated list under UN and autonomous sanctions acts."),
    _src("ca_osfi", "Canada OSFI Sanctions List", "Office of the Superintendent of Financial Institutions (Canada)",
         "CA", "sanctions", "https://www.osfi-bsif.gc.ca/", "Canadian consolidated sanctions list."),
    _src("ar_repet", "RePET Sanctions List",
         "Public Registry of Persons and Entities Linked to Terrorism (Argentina)", "AR", "sanctions",
         "https://repet.jus.gob.ar/", "Argentine registry of terrorism-financing designations."),
    _src("mx_uif", "UIF Lista de Personas Bloqueadas", "Unidad de Inteligencia Financiera (México)", "MX",
         "sanctions", "https://www.gob.mx/uif", "Mexican list of persons with blocked assets."),
    # International organizations
    _src("worldbank", "World Bank Debarred Firms & Individuals", "The World Bank Group", "INT", "watchlist",
         "https://www.worldbank.org/en/projects-operations/procurement/debarred-firms",
         "Ineligible for World Bank-financed contracts."),
    _src("interpol", "INTERPOL Red Notices", "International Criminal Police Organization", "INT", "criminal",
         "https://www.interpol.int/How-we-work/Notices/Red-Notices", "Requests to locate and arrest pending extradition."),
    _src("fatf", "FATF High-Risk Jurisdictions", "Financial Action Task Force", "INT", "watchlist",
         "https://www.fatf-gafi.org/en/countries/black-and-grey-lists.html",
         "Jurisdictions under increased monitoring or call for action."),
    # PEP
    _src("pep_global", "Global PEP Database", "Aggregated Government Sources", "INT", "pep",
         "https://opensanctions.org/datasets/peps/", "Politically Exposed Persons from national sources."),
    _src("pep_cia", "CIA World Leaders", "Central Intelligence Agency", "INT", "pep",
         "https://www.cia.gov/resources/world-leaders/", "Chiefs of state and cabinet members of foreign governments."),
]

_SOURCES_BY_ID = {s["id"]: s for s in SCREENING_SOURCES}

# OpenSanctions dataset prefix -> source id, first match wins
DATASET_SOURCE_MAP = [
    ("us_ofac_sdn", "ofac_sdn"), ("us_ofac_cons", "ofac_cons"),
    ("us_bis_entity", "bis_entity"), ("us_bis_denied", "bis_denied"),
    ("gb_hmt_sanctions", "uk_hmt"), ("eu_fsf", "eu_fsf"), ("un_sc_sanctions", "un_sc"),
    ("interpol_red_notices", "interpol"), ("worldbank_debarred", "worldbank"),
    ("br_cgu_ceis", "br_ceis"), ("br_cgu_cnep", "br_cnep"),
]

CGU_ENDPOINTS = [
    ("CEIS", "ceis", "CEIS - Empresas Inidôneas e Suspensas", "br_ceis"),
    ("CNEP", "cnep", "CNEP - Empresas Punidas (Lei Anticorrupção)", "br_cnep"),
    ("CEPIM", "cepim", "CEPIM - Entidades Impedidas", "br_cepim"),
    ("CEAF", "ceaf", "CEAF - Expulsões da Administração Federal", "br_ceaf"),
]

RISK_TAGS = ("SAN", "CRI", "WL")
REPORT_STATUSES = ["completed", "under_review", "cleared", "escalated", "archived"]
_CJK = re.compile(r"[\u4e00-\u9fa5]")
_TOKEN_CHARS = string.ascii_letters + string.digits


def sources_for_jurisdictions(jurisdictions: list) -> list:
    if not jurisdictions or "ALL" in jurisdictions:
        return list(SCREENING_SOURCES)
    return [s for s in SCREENING_SOURCES if s["jurisdiction"] in jurisdictions]


# ============================================================
# PURE HELPERS
# ============================================================
def calculate_similarity(s1: str, s2: str) -> int:
    """Jaro-Winkler similarity, case-insensitive, rounded to 0..100."""
    a = (s1 or "").lower().strip()
    b = (s2 or "").lower().strip()
    if a == b:
        return 100
    if not a or not b:
        return 0

    len1, len2 = len(a), len(b)
    max_dist = max(len1, len2) // 2 - 1
    a_hits = [False] * len1
    b_hits = [False] * len2
    matches = 0
    for i in range(len1):
        for j in range(max(0, i - max_dist), min(i + max_dist + 1, len2)):
            if b_hits[j] or a[i] != b[j]:
                continue
            a_hits[i] = b_hits[j] = True
            matches += 1
            break
    if matches == 0:
        return 0

    transpositions = 0
    k = 0
    for i in range(len1):
        if not a_hits[i]:
            continue
        while not b_hits[k]:
            k += 1
        if a[i] != b[k]:
            transpositions += 1
        k += 1

    jaro = (matches / len1 + matches / len2 + (matches - transpositions / 2) / matches) / 3
    prefix = 0
    for i in range(min(4, len1, len2)):
        if a[i] != b[i]:
            break
        prefix += 1
    return round((jaro + prefix * 0.1 * (1 - jaro)) * 100)


def clean_document(doc: str) -> str:
    return re.sub(r"\D", "", doc or "")


def validate_cpf(cpf: str) -> bool:
    """Receita Federal mod-11 check digits."""
    digits = clean_document(cpf)
    if len(digits) != 11 or len(set(digits)) == 1:
        return False
    for pos in (9, 10):
        total = sum(int(digits[i]) * (pos + 1 - i) for i in range(pos))
        check = total * 10 % 11
        if check == 10:
            check = 0
        if check != int(digits[pos]):
            return False
    return True


def map_dataset_to_source(dataset: str) -> dict:
    for pattern, source_id in DATASET_SOURCE_MAP:
        if pattern in (dataset or ""):
            return _SOURCES_BY_ID[source_id]
    return _SOURCES_BY_ID["ofac_sdn"]


def tag_from_topics(topics: list = None) -> str:
    topics = topics or []
    for topic, tag in (("sanction", "SAN"), ("debarment", "DEB"), ("crime", "CRI"), ("pep", "PEP"), ("poi", "POI")):
        if topic in topics:
            return tag
    return "WL"


def generate_token() -> str:
    return "".join(secrets.choice(_TOKEN_CHARS) for _ in range(32))


def risk_level(matches: list) -> str:
    """Highest match rate among sanction/crime/watchlist hits, bucketed by policy cutoffs."""
    policy = get_policy()
    risky = [m["match_rate"] for m in matches if m.get("tag") in RISK_TAGS]
    if not risky:
        return "low"
    top = max(risky)
    if top >= policy["critical_match_rate"]:
        return "critical"
    if top >= policy["high_match_rate"]:
        return "high"
    if top >= policy["medium_match_rate"]:
        return "medium"
    return "low"


# ============================================================
# CACHE HELPERS
# ============================================================
def _now() -> datetime:
    return datetime.now()


def _cache_get(db: dict, collection: str, key_field: str, key: str):
    for entry in db[collection]:
        if entry.get(key_field) == key:
            if datetime.fromisoformat(entry["expiresAt"]) > _now():
                entry["hitCount"] = entry.get("hitCount", 0) + 1
                entry["lastAccessedAt"] = _now().isoformat()
                return entry
            return None
    return None


def _cache_put(db: dict, collection: str, key_field: str, key: str, days: int, **payload) -> dict:
    db[collection] = [e for e in db[collection] if e.get(key_field) != key]
    entry = {key_field: key, **payload, "hitCount": 0,
             "expiresAt": (_now() + timedelta(days=days)).isoformat(),
             "updatedAt": _now().isoformat()}
    db[collection].append(entry)
    return entry


@asynccontextmanager
async def _http(client: httpx.AsyncClient = None):
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as own:
        yield own


def _headers(extra: dict = None) -> dict:
    return {"Accept": "application/json", "User-Agent": SCREENING_USER_AGENT, **(extra or {})}


# ============================================================
# REMOTE LOOKUPS
# ============================================================
async def search_brazil_cnpj(db: dict, cnpj: str, client: httpx.AsyncClient = None):
    """BrasilAPI company record for a 14-digit CNPJ, or None."""
    cleaned = clean_document(cnpj)
    if len(cleaned) != 14:
        print(f"[AML] Invalid CNPJ format: {cnpj}")
        return None

    cached = _cache_get(db, "cnpj_cache", "cnpj", cleaned)
    if cached:
        print(f"[AML] CNPJ cache HIT for {cleaned}")
        return cached["data"]

    try:
        async with _http(client) as http:
            print(f"[AML] CNPJ cache MISS, fetching BrasilAPI for {cleaned}")
            response = await http.get(f"{BRASIL_API_CNPJ}/{cleaned}", headers=_headers())
            if response.status_code != 200:
                print(f"[AML] BrasilAPI error: {response.status_code}")
                return None
            data = response.json()
    except Exception as e:
        print(f"[AML] BrasilAPI search error: {e}")
        return None

    _cache_put(db, "cnpj_cache", "cnpj", cleaned, get_cache_days("cnpj"), data=data)
    print(f"[AML] BrasilAPI returned {data.get('razao_social')}")
    return data


def lookup_cpf(db: dict, cpf: str):
    """Validate a CPF (check digits) with a cached result, or None if malformed."""
    cleaned = clean_document(cpf)
    if len(cleaned) != 11:
        print(f"[AML] Invalid CPF format: {cpf}")
        return None
    cached = _cache_get(db, "cpf_cache", "cpf", cleaned)
    if cached:
        print(f"[AML] CPF cache HIT for {cleaned}")
        return {"valid": cached["valid"], "nome": cached.get("nome"), "situacao": cached["situacao"]}
    valid = validate_cpf(cleaned)
    situacao = "Regular" if valid else "Inválido"
    _cache_put(db, "cpf_cache", "cpf", cleaned, get_cache_days("cpf"), valid=valid, situacao=situacao)
    return {"valid": valid, "situacao": situacao}


def _cgu_params(endpoint: str, doc: str, name: str) -> dict:
    params = {"pagina": "1"}
    is_cnpj, is_cpf = len(doc) == 14, len(doc) == 11
    if endpoint in ("CEIS", "CNEP"):
        if is_cnpj or is_cpf:
            params["cpfCnpj"] = doc
        elif name:
            params["nomeSancionado"] = name
    elif endpoint == "CEPIM":
        if is_cnpj:
            params["cnpjEntidade"] = doc
        elif name:
            params["nomeEntidade"] = name
    elif endpoint == "CEAF":
        if is_cpf:
            params["cpf"] = doc
        elif name:
            params["nome"] = name
    return params


def _g(item: dict, *path, default=""):
    for key in path:
        if not isinstance(item, dict):
            return default
        item = item.get(key)
    return item if item not in (None, "") else default


def _map_cgu(endpoint: str, kind: str, item: dict, doc: str) -> dict:
    if endpoint in ("CEIS", "CNEP"):
        return {
            "cpfCnpjSancionado": _g(item, "cpfCnpjSancionado") or _g(item, "pessoa", "cpfCnpj") or doc,
            "nomeSancionado": _g(item, "nomeSancionado") or _g(item, "pessoa", "nome") or _g(item, "nomeRazaoSocial"),
            "nomeFantasiaSancionado": _g(item, "nomeFantasiaSancionado") or _g(item, "pessoa", "nomeFantasia"),
            "tipoSancao": kind,
            "dataInicioSancao": _g(item, "dataInicioSancao") or _g(item, "dataReferenciaInicio"),
            "dataFimSancao": _g(item, "dataFinalSancao") or _g(item, "dataReferenciaFim"),
            "orgaoSancionador": _g(item, "orgaoSancionador", "nome") or _g(item, "orgaoLotacao", "nome"),
            "ufSancionador": _g(item, "orgaoSancionador", "uf", "sigla") or _g(item, "ufOrgaoSancionador"),
            "fundamentacaoLegal": _g(item, "fundamentacao", "descricaoFundamentacao") or _g(item, "fundamentacaoLegal"),
            "descricaoFundamentacao": _g(item, "tipoSancao", "descricaoTipoSancao") or _g(item, "descricaoFundamentacao"),
            "numeroProcesso": _g(item, "numeroProcesso"),
            "dataPublicacao": _g(item, "dataPublicacaoSancao") or _g(item, "dataPublicacao"),
            "fonteSancao": endpoint,
        }
    if endpoint == "CEPIM":
        return {
            "cpfCnpjSancionado": _g(item, "cnpjEntidade") or doc,
            "nomeSancionado": _g(item, "nomeEntidade") or _g(item, "razaoSocial"),
            "nomeFantasiaSancionado": _g(item, "nomeFantasia"),
            "tipoSancao": kind, "dataInicioSancao": _g(item, "dataReferencia"), "dataFimSancao": "",
            "orgaoSancionador": _g(item, "orgaoConcedente", "nome"), "ufSancionador": _g(item, "ufConvenente"),
            "fundamentacaoLegal": _g(item, "motivoImpedimento"),
            "descricaoFundamentacao": _g(item, "situacaoConvenio"),
            "numeroProcesso": _g(item, "numeroConvenio"), "dataPublicacao": "", "fonteSancao": endpoint,
        }
    return {
        "cpfCnpjSancionado": _g(item, "cpf") or doc, "nomeSancionado": _g(item, "nome"),
        "nomeFantasiaSancionado": "", "tipoSancao": kind,
        "dataInicioSancao": _g(item, "dataPublicacao"), "dataFimSancao": "",
        "orgaoSancionador": _g(item, "orgaoLotacao", "nome"), "ufSancionador": _g(item, "ufLotacao"),
        "fundamentacaoLegal": _g(item, "fundamentacaoLegal"), "descricaoFundamentacao": _g(item, "tipoPunicao"),
        "numeroProcesso": _g(item, "numeroProcesso"), "dataPublicacao": _g(item, "dataPublicacao"),
        "fonteSancao": endpoint,
    }


async def search_cgu_sanctions(db: dict, cpf_cnpj: str, name: str = None, client: httpx.AsyncClient = None) -> list:
    """Query the four CGU registries. Rate-limited or failing endpoints are skipped."""
    doc = clean_document(cpf_cnpj)
    cached = _cache_get(db, "cgu_sanctions_cache", "cpfCnpj", doc)
    if cached and cached["sanctions"]:
        print(f"[AML] CGU cache HIT for {doc}: {len(cached['sanctions'])} sanctions")
        return cached["sanctions"]

    headers = _headers({"chave-api-dados": CGU_API_KEY} if CGU_API_KEY else None)
    sanctions = []
    async with _http(client) as http:
        for endpoint, path, kind, _source in CGU_ENDPOINTS:
            try:
                response = await http.get(f"{CGU_API}/{path}", params=_cgu_params(endpoint, doc, name),
                                          headers=headers)
                if response.status_code == 429:
                    print(f"[AML] CGU rate limit hit for {endpoint}, skipping")
                    continue
                if response.status_code != 200:
                    print(f"[AML] CGU {endpoint} returned {response.status_code}")
                    continue
                data = response.json()
                results = data if isinstance(data, list) else []
                print(f"[AML] CGU {endpoint}: {len(results)} results")
                sanctions.extend(_map_cgu(endpoint, kind, item, doc) for item in results)
            except Exception as e:
                print(f"[AML] Error fetching CGU {endpoint}: {e}")

    if sanctions:
        _cache_put(db, "cgu_sanctions_cache", "cpfCnpj", doc, get_cache_days("cgu"), sanctions=sanctions)
    return sanctions


async def search_open_sanctions(query: str, client: httpx.AsyncClient = None) -> list:
    headers = _headers({"User-Agent": f"{SCREENING_USER_AGENT} (compliance@elpgreen.com)"})
    if OPENSANCTIONS_API_KEY:
        headers["Authorization"] = f"ApiKey {OPENSANCTIONS_API_KEY}"
    try:
        async with _http(client) as http:
            response = await http.get(f"{OPENSANCTIONS_API}/search/default",
                                      params={"q": query, "limit": 20}, headers=headers)
            if response.status_code != 200:
                print(f"[AML] OpenSanctions returned {response.status_code}, continuing without it")
                return []
            results = response.json().get("results") or []
            print(f"[AML] OpenSanctions returned {len(results)} results for '{query}'")
            return results
    except Exception as e:
        print(f"[AML] OpenSanctions search error (non-blocking): {e}")
        return []


# ============================================================
# MATCH BUILDERS
# ============================================================
def _first(props: dict, key: str):
    values = props.get(key) or []
    return values[0] if values else None


def _cnpj_match(subject_name: str, data: dict) -> dict:
    description = data.get("descricao_situacao_cadastral") or ""
    status = str(data.get("situacao_cadastral") or "")
    suspicious = status.upper() not in ("ATIVA", "2") or any(
        w in description.lower() for w in ("baixada", "inapta", "suspensa"))
    fantasy = data.get("nome_fantasia") or ""
    rate = max(calculate_similarity(subject_name, data.get("razao_social") or ""),
               calculate_similarity(subject_name, fantasy) if fantasy else 0)
    partners = data.get("qsa") or []
    complement = f", {data['complemento']}" if data.get("complemento") else ""
    return {
        "matched_name": data.get("razao_social"), "matched_name_local": fantasy or None,
        "match_rate": rate, "entity_type": "organization", "tag": "WL" if suspicious else "REG",
        "nationality": "Brazil", "id_number": data.get("cnpj"),
        "source_name": "Receita Federal do Brasil - CNPJ", "source_issuer": _RFB,
        "source_url": "https://solucoes.receita.fazenda.gov.br/Servicos/cnpjreva/",
        "source_jurisdiction": "BR",
        "alias": [p.get("nome_socio") for p in partners][:5],
        "role_description": data.get("natureza_juridica"),
        "reason": f"Status: {description or status}. {data.get('cnae_fiscal_descricao') or ''}".strip(),
        "address": (f"{data.get('logradouro')}, {data.get('numero')}{complement} - {data.get('bairro')}, "
                    f"{data.get('municipio')}/{data.get('uf')} - CEP: {data.get('cep')}"),
        "remark": f"Capital Social: R$ {data.get('capital_social') or 0:,.2f}. Porte: {data.get('porte')}",
        "disclosure_date": data.get("data_inicio_atividade"),
        "start_date": data.get("data_inicio_atividade"),
        "associated_companies": [{"name": p.get("nome_socio"), "registration_number": p.get("cnpj_cpf_do_socio") or None}
                                 for p in partners],
    }


def _cgu_match(sanction: dict, entity_type: str) -> dict:
    source_id = next((s for e, _, _, s in CGU_ENDPOINTS if e == sanction["fonteSancao"]), "br_ceis")
    source = _SOURCES_BY_ID[source_id]
    return {
        "matched_name": sanction["nomeSancionado"],
        "matched_name_local": sanction.get("nomeFantasiaSancionado") or None,
        "match_rate": 100, "entity_type": entity_type, "tag": "SAN", "nationality": "Brazil",
        "id_number": sanction["cpfCnpjSancionado"],
        "source_name": source["name"], "source_issuer": source["issuer"], "source_url": source["url"],
        "source_jurisdiction": "BR",
        "reason": f"{sanction['descricaoFundamentacao']}. Processo: {sanction['numeroProcesso']}",
        "remark": f"Órgão Sancionador: {sanction['orgaoSancionador']} ({sanction['ufSancionador']})",
        "disclosure_date": sanction["dataPublicacao"], "start_date": sanction["dataInicioSancao"],
        "delisting_date": sanction["dataFimSancao"],
    }


def _open_sanctions_match(subject_name: str, entity: dict):
    props = entity.get("properties") or {}
    name = entity.get("caption") or _first(props, "name") or ""
    source = map_dataset_to_source((entity.get("datasets") or ["default"])[0])
    first_seen = (entity.get("first_seen") or "").split("T")[0] or None
    notes = props.get("notes") or []
    return source, {
        "matched_name": name,
        "matched_name_local": next((n for n in props.get("name") or [] if _CJK.search(n)), None),
        "match_rate": calculate_similarity(subject_name, name),
        "entity_type": "organization" if entity.get("schema") == "Company" else "individual",
        "tag": tag_from_topics(props.get("topics")),
        "nationality": _first(props, "nationality") or _first(props, "country"),
        "id_number": _first(props, "idNumber"), "date_of_birth": _first(props, "birthDate"),
        "gender": _first(props, "gender"),
        "source_name": source["name"], "source_issuer": source["issuer"],
        "source_url": _first(props, "sourceUrl") or source["url"],
        "source_jurisdiction": source["jurisdiction"],
        "alias": (props.get("alias") or [])[:5],
        "role_description": _first(props, "position"),
        "reason": notes[0] if notes else f"Subject appears in {source['name']} maintained by {source['issuer']}.",
        "address": _first(props, "address"),
        "remark": " ".join(notes[:2]),
        "disclosure_date": first_seen, "start_date": first_seen,
        "associated_companies": [],
    }


# ============================================================
# MAIN SCREENING FLOW
# ============================================================
def _is_brazil_search(request: dict) -> bool:
    jurisdictions = request.get("jurisdictions") or []
    return (request.get("subject_country") in ("Brazil", "Brasil", "BR")
            or "BR" in jurisdictions or "ALL" in jurisdictions)


_STRING_FIELDS = ("subject_name_local", "subject_id_number", "subject_company_registration",
                  "subject_company_name", "subject_country", "subject_date_of_birth", "subject_gender")


def _check_request(request: dict) -> None:
    for field in _STRING_FIELDS:
        if request.get(field) is not None and not isinstance(request[field], str):
            raise ValueError(f"{field} must be a string")
    if request.get("entity_type") not in (None, "", "individual", "entity"):
        raise ValueError("entity_type must be 'individual' or 'entity'")
    for field in ("jurisdictions", "screening_types"):
        value = request.get(field)
        if value is not None and (not isinstance(value, list) or not all(isinstance(v, str) for v in value)):
            raise ValueError(f"{field} must be a list of strings")
    threshold = request.get("match_rate_threshold")
    if threshold is not None and (isinstance(threshold, bool) or not isinstance(threshold, (int, float))
                                  or not 0 <= threshold <= 100):
        raise ValueError("match_rate_threshold must be a number between 0 and 100")


async def run_screening(request: dict, db: dict, client: httpx.AsyncClient = None,
                        ip_address: str = None, user_agent: str = None) -> dict:
    """Screen one subject and persist the report, matches, screened lists and history."""
    started = time.time()
    subject = request.get("subject_name")
    if not isinstance(subject, str) or len(subject.strip()) < 2:
        raise ValueError("Subject name is required (minimum 2 characters)")
    subject = subject.strip()
    _check_request(request)

    policy = get_policy()
    entity_type = request.get("entity_type") or "individual"
    jurisdictions = request.get("jurisdictions") or list(policy["default_jurisdictions"])
    screening_types = request.get("screening_types") or list(policy["default_screening_types"])
    threshold = request.get("match_rate_threshold") or get_match_threshold()
    brazil = _is_brazil_search({**request, "jurisdictions": jurisdictions})
    print(f"[AML] Screening '{subject}' ({entity_type}, country={request.get('subject_country') or 'n/a'})")

    matches, sources_used = [], []
    brazil_data = cpf_result = None

    # 1. CNPJ registry + CGU for organizations
    if brazil and entity_type == "entity" and request.get("subject_company_registration"):
        brazil_data = await search_brazil_cnpj(db, request["subject_company_registration"], client)
        if brazil_data:
            sources_used.append("BrasilAPI (CNPJ) + Cache")
            matches.append(_cnpj_match(subject, brazil_data))
            sanctions = await search_cgu_sanctions(db, brazil_data.get("cnpj") or "", brazil_data.get("razao_social"), client)
            if sanctions:
                sources_used.append("CGU Portal da Transparência")
                matches.extend(_cgu_match(s, "organization") for s in sanctions)

    # 2. CPF + CGU for individuals
    if brazil and entity_type == "individual" and request.get("subject_id_number"):
        cpf_result = lookup_cpf(db, request["subject_id_number"])
        if cpf_result:
            sources_used.append("CPF Validation")
            matches.append({
                "matched_name": cpf_result.get("nome") or subject,
                "match_rate": 100 if cpf_result["valid"] else 0,
                "entity_type": "individual", "tag": "REG" if cpf_result["valid"] else "WL",
                "nationality": "Brazil", "id_number": request["subject_id_number"],
                "source_name": "Receita Federal - CPF", "source_issuer": _RFB,
                "source_url": "https://servicos.receita.fazenda.gov.br/Servicos/CPF/",
                "source_jurisdiction": "BR", "reason": f"Situação Cadastral: {cpf_result['situacao']}",
            })
            sanctions = await search_cgu_sanctions(db, request["subject_id_number"], subject, client)
            if sanctions:
                sources_used.append("CGU Portal da Transparência")
                matches.extend(_cgu_match(s, "individual") for s in sanctions)

    # 3. OpenSanctions on the name and the local-script name
    results = await search_open_sanctions(subject, client)
    if results:
        sources_used.append("OpenSanctions")
    if request.get("subject_name_local"):
        seen = {r.get("id") for r in results}
        for r in await search_open_sanctions(request["subject_name_local"], client):
            if r.get("id") not in seen:
                results.append(r)
                seen.add(r.get("id"))

    for entity in results:
        source, match = _open_sanctions_match(subject, entity)
        if match["match_rate"] < threshold:
            continue
        if "ALL" not in jurisdictions and source["jurisdiction"] not in jurisdictions:
            continue
        matches.append(match)

    matches.sort(key=lambda m: m["match_rate"], reverse=True)
    top = matches[:get_max_matches()]
    level = risk_level(top)
    screened = sources_for_jurisdictions(jurisdictions)
    now = datetime.now().isoformat()

    report = {
        "id": str(uuid.uuid4())[:8],
        "subject_name": subject,
        "subject_name_local": request.get("subject_name_local"),
        "subject_id_number": request.get("subject_id_number"),
        "subject_date_of_birth": request.get("subject_date_of_birth"),
        "subject_country": request.get("subject_country"),
        "subject_gender": request.get("subject_gender"),
        "subject_company_name": request.get("subject_company_name") or (brazil_data or {}).get("razao_social"),
        "subject_company_registration": request.get("subject_company_registration") or (brazil_data or {}).get("cnpj"),
        "entity_type": entity_type,
        "screening_types": screening_types, "jurisdictions": jurisdictions,
        "match_rate_threshold": threshold,
        "total_matches": len(top), "total_screened_lists": len(screened),
        "risk_level": level, "status": "completed",
        "report_token": generate_token(),
        "ip_address": ip_address, "user_agent": user_agent,
        "created_at": now,
    }
    db["aml_screening_reports"].append(report)
    db["aml_screening_matches"].extend({**m, "id": str(uuid.uuid4())[:8], "report_id": report["id"], "match_rank": i + 1}
                                       for i, m in enumerate(top))

    list_rows = [{
        "name": s["name"], "issuer": s["issuer"], "issuer_description": s["description"],
        "jurisdiction": s["jurisdiction"], "type": s["type"], "url": s["url"],
        "matches_found": sum(1 for m in top if m["source_name"] == s["name"]),
    } for s in screened]
    db["aml_screened_lists"].extend({**row, "report_id": report["id"]} for row in list_rows)

    record_history(db, report["id"], "created", {
        "subject_name": subject, "matches_found": len(top), "sources_used": sources_used,
        "brazil_data_found": bool(brazil_data), "cpf_validated": bool(cpf_result),
        "api_results": len(results),
    }, ip_address=ip_address, user_agent=user_agent)
    log_activity(db, "aml_screening", reportId=report["id"], subject=subject, riskLevel=level, matches=len(top))

    elapsed = int((time.time() - started) * 1000)
    print(f"[AML] Completed in {elapsed}ms: {len(top)} matches, risk={level}")

    return {
        "success": True,
        "report_id": report["id"],
        "report_token": report["report_token"],
        "summary": {
            "subject_name": subject,
            "total_matches": len(top),
            "total_screened_lists": len(screened),
            "risk_level": level,
            "screening_types": screening_types,
            "jurisdictions": jurisdictions,
            "match_rate_threshold": threshold,
            "api_sources": sources_used or ["OpenSanctions"],
            "cache_hit": bool(brazil_data),
            "brazil_company_data": _company_summary(brazil_data) if brazil_data else None,
            "cpf_validation": cpf_result,
        },
        "matches": top,
        "screened_lists": list_rows,
        "elapsed_ms": elapsed,
    }


def _company_summary(data: dict) -> dict:
    return {
        "razao_social": data.get("razao_social"), "nome_fantasia": data.get("nome_fantasia"),
        "cnpj": data.get("cnpj"), "situacao": data.get("situacao_cadastral"),
        "descricao_situacao": data.get("descricao_situacao_cadastral"),
        "data_abertura": data.get("data_inicio_atividade"), "capital_social": data.get("capital_social"),
        "porte": data.get("porte"), "natureza_juridica": data.get("natureza_juridica"),
        "cnae": data.get("cnae_fiscal_descricao"),
        "endereco": (f"{data.get('logradouro')}, {data.get('numero')} - {data.get('bairro')}, "
                     f"{data.get('municipio')}/{data.get('uf')}"),
        "socios": [{"nome": p.get("nome_socio"), "qualificacao": p.get("qualificacao_socio")}
                   for p in data.get("qsa") or []],
    }


# ============================================================
# REPORT QUERIES
# ============================================================
def record_history(db: dict, report_id: str, action: str, details: dict = None,
                   ip_address: str = None, user_agent: str = None) -> dict:
    entry = {"id": str(uuid.uuid4())[:8], "report_id": report_id, "action": action,
             "details": details or {}, "ip_address": ip_address, "user_agent": user_agent,
             "created_at": datetime.now().isoformat()}
    db["aml_screening_history"].append(entry)
    return entry


def list_reports(db: dict, risk_level: str = None, limit: int = None) -> list:
    reports = db["aml_screening_reports"]
    if risk_level:
        reports = [r for r in reports if r["risk_level"] == risk_level]
    reports = sorted(reports, key=lambda r: r["created_at"], reverse=True)
    return reports[:limit] if limit else reports


def get_report(db: dict, report_id: str):
    report = next((r for r in db["aml_screening_reports"] if r["id"] == report_id), None)
    if not report:
        return None
    return {
        **report,
        "matches": sorted((m for m in db["aml_screening_matches"] if m["report_id"] == report_id),
                          key=lambda m: m["match_rank"]),
        "screened_lists": [l for l in db["aml_screened_lists"] if l["report_id"] == report_id],
        "history": [h for h in db["aml_screening_history"] if h["report_id"] == report_id],
    }


def get_report_by_token(db: dict, token: str):
    report = next((r for r in db["aml_screening_reports"] if r["report_token"] == token), None)
    if not report:
        return None
    record_history(db, report["id"], "viewed_by_token")
    return get_report(db, report["id"])


def update_report_status(db: dict, report_id: str, status: str, by: str = "system", notes: str = "") -> dict:
    if status not in REPORT_STATUSES:
        raise ValueError(f"Invalid status '{status}'. Allowed: {REPORT_STATUSES}")
    report = next((r for r in db["aml_screening_reports"] if r["id"] == report_id), None)
    if not report:
        raise KeyError(report_id)
    previous = report["status"]
    report["status"] = status
    report["updated_at"] = datetime.now().isoformat()
    record_history(db, report_id, "status_changed", {"from": previous, "to": status, "by": by, "notes": notes})
    log_activity(db, "aml_status_changed", reportId=report_id, status=status, by=by)
    return report
