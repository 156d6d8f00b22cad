"""Test fixtures for the ELP Green back office."""

import os
import tempfile
from types import SimpleNamespace

# Isolated, non-persistent data directory; set before any elpgreen import.
os.environ["ELP_DATA_DIR"] = tempfile.mkdtemp(prefix="elpgreen-tests-")
os.environ["PERSIST_DATA"] = "false"
os.environ["AUTH_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-secret"
for _key in ("ANTHROPIC_API_KEY", "VOYAGE_API_KEY", "DATABASE_URL", "OPENSANCTIONS_API_KEY", "CGU_API_KEY"):
    os.environ.pop(_key, None)

import httpx
import pytest
import pytest_asyncio

from elpgreen import server, search, auth
from elpgreen.db import reset_db, get_db
from elpgreen.policy import reset_policy
from elpgreen.feasibility import default_study, calculate_financials


@pytest.fixture(autouse=True)
def clean_state():
    """Fresh database, policy, rate limits and search index for every test."""
    reset_db()
    reset_policy()
    server.reset_rate_limits()
    search.store.clear()
    server.app.state.http_client = None
    server.app.state.ai_client = None
    yield
    server.app.state.http_client = None
    server.app.state.ai_client = None


@pytest.fixture
def db():
    """The live in-memory database."""
    return get_db()


@pytest_asyncio.fixture
async def client():
    """HTTP client bound to the FastAPI app."""
    transport = httpx.ASGITransport(app=server.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_enabled(monkeypatch):
    """Turn JWT enforcement on; returns a factory of Authorization headers per role."""
    monkeypatch.setattr(auth, "AUTH_ENABLED", True)

    def headers(role: str, uid: str = None) -> dict:
        token = auth.create_jwt({"id": uid or role, "email": f"{role}@elpgreen.com", "name": role.title(), "role": role})
        return {"Authorization": f"Bearer {token}"}

    return headers


@pytest.fixture
def sample_study():
    """Default plant with computed outputs."""
    study = {**default_study(), "study_name": "Pilbara OTR Plant", "country": "Australia", "location": "Karratha"}
    study.update(calculate_financials(study))
    return study


# ============================================================
# FAKE ANTHROPIC CLIENT
# ============================================================
class FakeMessages:
    def __init__(self, responder):
        self.responder = responder
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.responder(kwargs) if callable(self.responder) else self.responder
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(content=[SimpleNamespace(text=reply)],
                               usage=SimpleNamespace(input_tokens=120, output_tokens=480))


class FakeAnthropic:
    """Stands in for anthropic.AsyncAnthropic: only messages.create is used."""

    def __init__(self, responder):
        self.messages = FakeMessages(responder)

    @property
    def calls(self):
        return self.messages.calls


@pytest.fixture
def fake_ai():
    """Factory: fake_ai("text") or fake_ai(lambda kwargs: "text")."""
    return FakeAnthropic


# ============================================================
# MOCK HTTP
# ============================================================
@pytest.fixture
def mock_http():
    """Factory returning an httpx.AsyncClient whose requests go to `handler`."""
    clients = []

    def build(handler):
        c = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(c)
        return c

    return build


@pytest.fixture
def sample_cnpj_response():
    """BrasilAPI CNPJ payload."""
    return {
        "cnpj": "33000167000101",
        "razao_social": "PETROLEO BRASILEIRO S A PETROBRAS",
        "nome_fantasia": "PETROBRAS",
        "situacao_cadastral": 2,
        "descricao_situacao_cadastral": "ATIVA",
        "data_inicio_atividade": "1966-09-28",
        "natureza_juridica": "Sociedade de Economia Mista",
        "cnae_fiscal_descricao": "Extração de petróleo e gás natural",
        "logradouro": "AVENIDA HENRIQUE VALADARES", "numero": "28", "complemento": "",
        "bairro": "CENTRO", "municipio": "RIO DE JANEIRO", "uf": "RJ", "cep": "20231030",
        "capital_social": 205431960490.52, "porte": "DEMAIS",
        "qsa": [{"nome_socio": "JEAN PAUL PRATES", "qualificacao_socio": "Presidente", "cnpj_cpf_do_socio": "***123456**"}],
    }


@pytest.fixture
def sample_opensanctions_response():
    """OpenSanctions /search payload with one sanctioned company and one weak hit."""
    return {
        "results": [
            {
                "id": "NK-abc123",
                "caption": "Acme Rubber Trading LLC",
                "schema": "Company",
                "datasets": ["us_ofac_sdn"],
                "first_seen": "2021-04-12T10:00:00",
                "properties": {
                    "name": ["Acme Rubber Trading LLC"],
                    "topics": ["sanction"],
                    "country": ["ir"],
                    "notes": ["Designated for sanctions evasion."],
                    "alias": ["Acme Rubber"],
                },
            },
            {
                "id": "NK-zzz999",
                "caption": "Zephyr Holdings",
                "schema": "Company",
                "datasets": ["gb_hmt_sanctions"],
                "properties": {"name": ["Zephyr Holdings"], "topics": ["sanction"]},
            },
        ]
    }
