"""API tests against the FastAPI app."""

import httpx
import jwt
import pytest

from elpgreen import server
from elpgreen.policy import update_policy


def opensanctions_only(payload):
    """Mock upstream that answers OpenSanctions and 404s everything else."""
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.opensanctions.org":
            return httpx.Response(200, json=payload)
        return httpx.Response(404)
    return handler


class TestHealthAndAdmin:
    """Tests for health, reset and export."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        """Test mock mode and file backend are reported."""
        response = await client.get("/api/health")

        assert response.status_code == 200
        body = response.json()
        assert (body["status"], body["claude_api"], body["database"]) == ("ok", "mock_mode", "file")

    @pytest.mark.asyncio
    async def test_export_hides_password_hashes_and_reset_clears(self, client):
        """Test export strips credentials and reset wipes collections."""
        await client.post("/api/auth/register", json={"email": "ana@elpgreen.com", "password": "battery-staple",
                                                      "name": "Ana"})
        await client.post("/api/leads", json={"name": "Carlos", "email": "c@x.com", "message": "Olá"})

        exported = (await client.get("/api/export")).json()
        assert exported["users"][0]["email"] == "ana@elpgreen.com"
        assert "passwordHash" not in exported["users"][0]
        assert len(exported["leads"]) == 1

        assert (await client.post("/api/reset")).json() == {"success": True}
        assert (await client.get("/api/leads")).json() == []

    @pytest.mark.asyncio
    async def test_login(self, client):
        """Test register then login returns a token."""
        await client.post("/api/auth/register", json={"email": "ana@elpgreen.com", "password": "battery-staple"})

        ok = await client.post("/api/auth/login", json={"email": "ana@elpgreen.com", "password": "battery-staple"})
        bad = await client.post("/api/auth/login", json={"email": "ana@elpgreen.com", "password": "nope"})

        assert ok.json()["user"]["role"] == "admin"
        assert ok.json()["token"]
        assert bad.status_code == 401


class TestStudiesApi:
    """Tests for study endpoints."""

    @pytest.mark.asyncio
    async def test_crud_alerts_and_pdf(self, client):
        """Test create, read, update, alerts, pdf and delete."""
        created = (await client.post("/api/studies", json={"study_name": "Pilbara", "country": "Australia"})).json()
        sid = created["id"]
        assert created["total_investment"] > 0

        updated = await client.put(f"/api/studies/{sid}", json={"status": "approved", "roi_percentage": 1})
        assert updated.json()["status"] == "approved"
        assert updated.json()["roi_percentage"] == created["roi_percentage"]

        alerts = (await client.get(f"/api/studies/{sid}/alerts")).json()
        assert set(alerts) == {"alerts", "summary"}

        pdf = await client.get(f"/api/studies/{sid}/pdf")
        assert pdf.status_code == 200
        assert pdf.content.startswith(b"%PDF")
        assert len(pdf.headers["x-content-hash"]) == 16
        assert f"feasibility_{sid}.pdf" in pdf.headers["content-disposition"]

        assert (await client.delete(f"/api/studies/{sid}")).json() == {"success": True}
        assert (await client.get(f"/api/studies/{sid}")).status_code == 404

    @pytest.mark.asyncio
    async def test_validation_errors_are_400(self, client):
        """Test ValueError from the domain maps to 400."""
        response = await client.post("/api/studies", json={"country": "Chile"})

        assert response.status_code == 400
        assert response.json()["detail"] == "study_name is required"

    @pytest.mark.asyncio
    async def test_template_and_lookups(self, client):
        """Test template application and reference lookups."""
        sid = (await client.post("/api/studies", json={"study_name": "Atacama"})).json()["id"]

        applied = (await client.post(f"/api/studies/{sid}/apply-template/chile-mining")).json()
        assert (applied["country"], applied["daily_capacity_tons"]) == ("Chile", 90)
        assert (await client.post(f"/api/studies/{sid}/apply-template/moon")).status_code == 400
        assert (await client.get("/api/templates/moon")).status_code == 404
        assert (await client.get("/api/trade/countries/ZZ")).status_code == 404
        assert (await client.get("/api/tires/categories/none")).status_code == 404


class TestAnalysisApi:
    """Tests for AI endpoints."""

    @pytest.mark.asyncio
    async def test_local_feasibility_analysis_is_stored(self, client, sample_study, db):
        """Test the analysis is returned and recorded."""
        response = await client.post("/api/analysis/feasibility", json={"study": sample_study, "model": "local"})

        assert response.status_code == 200
        assert response.json()["model_used"] == "local"
        assert db["analyses"][-1]["model"] == "local"

    @pytest.mark.asyncio
    async def test_market_intelligence_without_key(self, client):
        """Test 503 when no AI is configured."""
        response = await client.post("/api/analysis/market-intelligence", json={"text": "competitor site"})

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_market_intelligence_with_client(self, client, fake_ai):
        """Test the injected AI client is used."""
        server.app.state.ai_client = fake_ai('{"estrategias_marketing": ["SEO"]}')
        response = await client.post("/api/analysis/market-intelligence", json={"text": "competitor site"})

        assert response.json()["insights"]["estrategias_marketing"] == ["SEO"]

    @pytest.mark.asyncio
    async def test_rate_limit(self, client):
        """Test the per-client window returns 429 with Retry-After."""
        update_policy({"rate_limit_max_requests": 2})
        payload = {"text": "Quero comprar granulado"}

        statuses = [(await client.post("/api/leads/analyze", json=payload)).status_code for _ in range(3)]
        assert statuses == [200, 200, 429]
        limited = await client.post("/api/leads/analyze", json=payload)
        assert limited.headers["retry-after"] == "60"

        other = await client.post("/api/leads/analyze", json=payload, headers={"Authorization": "Bearer other"})
        assert other.status_code == 200

    @pytest.mark.asyncio
    async def test_malformed_ai_rows_fall_back_to_keywords(self, client, fake_ai):
        """Test string rows from the model are scored by keywords instead of failing."""
        server.app.state.ai_client = fake_ai('{"sentiment": ["5 stars"], "classifications": ["investimento"]}')
        await client.post("/api/leads", json={"name": "A", "email": "a@x.com", "message": "Quero investir capital"})

        single = await client.post("/api/leads/analyze", json={"text": "Quero investir capital"})
        batch = await client.post("/api/leads/batch-analyze", json={})

        assert single.status_code == 200
        assert single.json()["provider"] == "keywords"
        assert single.json()["suggestedPriority"] == "urgent"
        assert batch.json()["analyzed"] == 1
        assert (await client.post("/api/leads/analyze", json={"text": 42})).status_code == 400
        assert (await client.post("/api/leads/batch-analyze", json={"ids": "abc"})).status_code == 400


class TestScreeningApi:
    """Tests for screening endpoints."""

    @pytest.mark.asyncio
    async def test_screen_fetch_share_and_pdf(self, client, sample_opensanctions_response, mock_http):
        """Test a screening run through the API."""
        server.app.state.http_client = mock_http(opensanctions_only(sample_opensanctions_response))

        result = (await client.post("/api/screening", json={"subject_name": "Acme Rubber Trading LLC"})).json()
        rid = result["report_id"]
        assert result["summary"]["risk_level"] == "critical"

        report = (await client.get(f"/api/screening/reports/{rid}")).json()
        assert report["matches"][0]["tag"] == "SAN"

        shared = await client.get(f"/api/screening/shared/{result['report_token']}")
        assert shared.status_code == 200
        assert (await client.get("/api/screening/shared/unknown")).status_code == 404

        status = await client.post(f"/api/screening/reports/{rid}/status", json={"status": "cleared"})
        assert status.json()["status"] == "cleared"
        missing = await client.post("/api/screening/reports/missing/status", json={"status": "cleared"})
        assert missing.status_code == 404

        pdf = await client.get(f"/api/screening/reports/{rid}/pdf")
        assert pdf.content.startswith(b"%PDF")

    @pytest.mark.asyncio
    async def test_sources(self, client):
        """Test the source catalog filter."""
        sources = (await client.get("/api/screening/sources", params={"jurisdictions": "BR"})).json()

        assert sources and all(s["jurisdiction"] == "BR" for s in sources)


class TestLeadsAndDocumentsApi:
    """Tests for leads, documents and search endpoints."""

    @pytest.mark.asyncio
    async def test_lead_lifecycle(self, client):
        """Test create, patch, batch analysis and 404s."""
        lead = (await client.post("/api/leads", json={
            "name": "Carlos", "email": "c@x.com",
            "message": "Precisamos comprar 500 toneladas, pedido urgente, favor enviar orçamento"})).json()

        patched = await client.patch(f"/api/leads/{lead['id']}", json={"status": "contacted"})
        assert patched.json()["status"] == "contacted"
        assert (await client.patch("/api/leads/missing", json={"status": "won"})).status_code == 404
        assert (await client.patch(f"/api/leads/{lead['id']}", json={"status": "bogus"})).status_code == 400

        batch = (await client.post("/api/leads/batch-analyze", json={})).json()
        assert batch["analyzed"] == 1
        assert (await client.get(f"/api/leads/{lead['id']}")).json()["priority"] == "urgent"
        assert (await client.get("/api/leads/missing")).status_code == 404

    @pytest.mark.asyncio
    async def test_document_signing(self, client, db):
        """Test notify and sign through the API."""
        doc = (await client.post("/api/documents", json={
            "document_name": "NDA", "document_type": "nda",
            "signers": [{"name": "Ann", "email": "ann@x.com"}]})).json()

        notice = (await client.post(f"/api/documents/{doc['id']}/notify-next-signer")).json()
        assert notice["nextSignerEmail"] == "ann@x.com"

        wrong = await client.post(f"/api/documents/{doc['id']}/sign", json={"signer_email": "bob@x.com"})
        assert wrong.status_code == 400

        signed = await client.post(f"/api/documents/{doc['id']}/sign", json={"signer_email": "ann@x.com"},
                                   headers={"User-Agent": "pytest", "X-Forwarded-For": "203.0.113.7, 10.0.0.1"})
        assert signed.json()["signature_status"] == "completed"
        assert (db["signature_log"][0]["ip_address"], db["signature_log"][0]["user_agent"]) == ("203.0.113.7", "pytest")

        cancel = await client.post(f"/api/documents/{doc['id']}/cancel", json={"reason": "late"})
        assert cancel.status_code == 400
        assert (await client.get("/api/documents/missing")).status_code == 404

    @pytest.mark.asyncio
    async def test_generate_document(self, client, db, fake_ai):
        """Test drafting with the template fallback, then saving a Claude draft with signers."""
        draft = (await client.post("/api/documents/generate", json={"template_type": "kyc", "country": "Italy"})).json()
        assert draft["provider"] == "template"
        assert "document" not in draft
        assert db["generated_documents"] == []

        server.app.state.ai_client = fake_ai('{"fields": {"jv_name": "Atacama JV"}, "documentContent": "JV TERMS"}')
        saved = (await client.post("/api/documents/generate", json={
            "template_type": "joint_venture", "country": "Chile", "language": "es", "partner_name": "Neumáticos SA",
            "save": True, "signers": [{"name": "Ann", "email": "ann@x.com"}]})).json()
        doc = saved["document"]
        assert (doc["document_name"], doc["content"], doc["language"]) == ("JOINT VENTURE - Neumáticos SA",
                                                                            "JV TERMS", "es")
        assert doc["field_values"]["jv_name"] == "Atacama JV"
        assert doc["required_signatures"] == 1
        assert (await client.get(f"/api/documents/{doc['id']}")).status_code == 200
        bad = await client.post("/api/documents/generate", json={"template_type": "will", "save": True})
        assert bad.status_code == 400

    @pytest.mark.asyncio
    async def test_document_emails(self, client):
        """Test notify and sign queue emails listed per document."""
        doc = (await client.post("/api/documents", json={
            "document_name": "MOU", "document_type": "mou", "language": "it",
            "signers": [{"name": "Ann", "email": "ann@x.com"}, {"name": "Bo", "email": "bo@x.com"}]})).json()
        await client.post(f"/api/documents/{doc['id']}/notify-next-signer")
        await client.post(f"/api/documents/{doc['id']}/sign", json={"signer_email": "ann@x.com"})

        emails = (await client.get(f"/api/documents/{doc['id']}/emails")).json()
        assert sorted(e["kind"] for e in emails) == ["next_signer", "signature_admin", "signature_confirmation"]
        hand_off = next(e for e in emails if e["kind"] == "next_signer")
        assert hand_off["subject"] == 'Il tuo turno di firmare: "MOU"'
        assert (await client.get("/api/documents/missing/emails")).status_code == 404

    @pytest.mark.asyncio
    async def test_search_over_leads(self, client):
        """Test ad-hoc search over lead messages and the persistent index."""
        await client.post("/api/leads", json={"name": "A", "email": "a@x.com", "message": "granulated rubber for asphalt"})
        await client.post("/api/leads", json={"name": "B", "email": "b@x.com", "message": "pyrolysis oil offer"})

        hits = (await client.post("/api/search", json={"query": "rubber asphalt", "source": "leads"})).json()
        assert hits[0]["content"] == "granulated rubber for asphalt"

        indexed = (await client.post("/api/search/index", json={"source": "leads"})).json()
        assert indexed["kinds"] == {"leads": 2}
        queried = (await client.post("/api/search/query", json={"query": "pyrolysis", "kind": "leads"})).json()
        assert queried[0]["content"] == "pyrolysis oil offer"
        assert (await client.get("/api/search/stats")).json()["total_documents"] == 2
        assert (await client.post("/api/search", json={"query": ""})).status_code == 400

    @pytest.mark.asyncio
    async def test_policy_endpoints(self, client):
        """Test reading, updating and presets."""
        assert "strict_compliance" in (await client.get("/api/policy")).json()["presets"]
        assert (await client.put("/api/policy", json={"max_matches": 3})).json()["max_matches"] == 3
        assert (await client.post("/api/policy/preset/fast_track")).json()["max_matches"] == 5
        assert (await client.post("/api/policy/preset/unknown")).status_code == 400


class TestAuthApi:
    """Tests for JWT enforcement and role guards with AUTH_ENABLED on."""

    @pytest.mark.asyncio
    async def test_self_registration_cannot_claim_admin(self, client, auth_enabled):
        """Test a requested role is ignored and only an admin can promote."""
        await client.post("/api/auth/register", json={"email": "owner@elpgreen.com", "password": "correct-horse"})
        evil = (await client.post("/api/auth/register", json={"email": "evil@x.com", "password": "battery-staple",
                                                               "role": "admin"})).json()
        assert evil["role"] == "viewer"

        evil_token = (await client.post("/api/auth/login", json={"email": "evil@x.com",
                                                                 "password": "battery-staple"})).json()["token"]
        evil_headers = {"Authorization": f"Bearer {evil_token}"}
        assert (await client.put("/api/policy", json={"max_matches": 1}, headers=evil_headers)).status_code == 403
        assert (await client.put(f"/api/auth/users/{evil['id']}/role", json={"role": "admin"},
                                 headers=evil_headers)).status_code == 403

        owner_token = (await client.post("/api/auth/login", json={"email": "owner@elpgreen.com",
                                                                  "password": "correct-horse"})).json()["token"]
        owner_headers = {"Authorization": f"Bearer {owner_token}"}
        promoted = await client.put(f"/api/auth/users/{evil['id']}/role", json={"role": "editor"},
                                    headers=owner_headers)
        assert promoted.json()["role"] == "editor"
        missing = await client.put("/api/auth/users/missing/role", json={"role": "editor"}, headers=owner_headers)
        assert missing.status_code == 404
        bogus = await client.put(f"/api/auth/users/{evil['id']}/role", json={"role": "root"}, headers=owner_headers)
        assert bogus.status_code == 400

        relogged = (await client.post("/api/auth/login", json={"email": "evil@x.com",
                                                               "password": "battery-staple"})).json()
        assert relogged["user"]["role"] == "editor"
        editor_headers = {"Authorization": f"Bearer {relogged['token']}"}
        assert (await client.post("/api/studies", json={"study_name": "Atacama"},
                                  headers=editor_headers)).status_code == 200
        assert (await client.put("/api/policy", json={"max_matches": 1}, headers=editor_headers)).status_code == 403
        assert [u["email"] for u in (await client.get("/api/auth/users", headers=owner_headers)).json()] == [
            "owner@elpgreen.com", "evil@x.com"]

    @pytest.mark.asyncio
    async def test_missing_and_invalid_tokens(self, client, auth_enabled):
        """Test 401 without a token, with garbage and with a foreign signature."""
        forged = jwt.encode({"sub": "x", "email": "x@x.com", "name": "X", "role": "admin"}, "another-secret",
                            algorithm="HS256")

        assert (await client.get("/api/studies")).status_code == 401
        assert (await client.get("/api/auth/me")).json()["detail"] == "Authentication required"
        garbage = await client.get("/api/studies", headers={"Authorization": "Bearer garbage"})
        assert (garbage.status_code, garbage.json()["detail"]) == (401, "Invalid or expired token")
        assert (await client.post("/api/reset", headers={"Authorization": f"Bearer {forged}"})).status_code == 401
        me = (await client.get("/api/auth/me", headers=auth_enabled("viewer"))).json()
        assert (me["role"], me["authenticated"]) == ("viewer", True)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method,path,payload", [
        ("post", "/api/studies", {"study_name": "Atacama"}),
        ("post", "/api/documents", {"document_name": "NDA", "document_type": "nda",
                                    "signers": [{"name": "Ann", "email": "ann@x.com"}]}),
        ("post", "/api/leads/batch-analyze", {}),
        ("post", "/api/search/index", {"source": "leads"}),
        ("post", "/api/documents/generate", {"template_type": "loi"}),
    ])
    async def test_editor_routes(self, client, auth_enabled, method, path, payload):
        """Test viewers are refused and editors and admins pass."""
        denied = await client.request(method.upper(), path, json=payload, headers=auth_enabled("viewer"))
        assert denied.status_code == 403
        assert "Your role: viewer" in denied.json()["detail"]

        for role in ("editor", "admin"):
            allowed = await client.request(method.upper(), path, json=payload, headers=auth_enabled(role))
            assert allowed.status_code == 200

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method,path,payload", [
        ("put", "/api/policy", {"max_matches": 3}),
        ("post", "/api/policy/preset/fast_track", None),
        ("get", "/api/export", None),
        ("get", "/api/auth/users", None),
        ("post", "/api/reset", None),
    ])
    async def test_admin_routes(self, client, auth_enabled, method, path, payload):
        """Test viewers and editors are refused and admins pass."""
        for role in ("viewer", "editor"):
            denied = await client.request(method.upper(), path, json=payload, headers=auth_enabled(role))
            assert denied.status_code == 403

        allowed = await client.request(method.upper(), path, json=payload, headers=auth_enabled("admin"))
        assert allowed.status_code == 200


class TestMalformedInputsApi:
    """Tests that wrongly shaped payloads are 400s, not server errors."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {"query": "pneu", "documents": [{"content": "pneu OTR reciclagem"}]},
        {"query": "pneu", "documents": ["pneu OTR"]},
        {"query": "pneu", "documents": [{"id": "a", "content": 7}]},
        {"query": 42, "documents": [{"id": "a", "content": "pneu"}]},
        {"query": "pneu", "documents": [{"id": "a", "content": "pneu"}], "top_k": "many"},
        {"query": "pneu", "documents": [{"id": "a", "content": "pneu"}], "top_k": 0},
    ])
    async def test_search(self, client, payload):
        """Test ad-hoc search payloads."""
        assert (await client.post("/api/search", json=payload)).status_code == 400

    @pytest.mark.asyncio
    async def test_document_signature_counts(self, client):
        """Test impossible signature counts are refused at creation."""
        signer = [{"name": "Ann", "email": "ann@x.com"}]
        too_many = await client.post("/api/documents", json={"document_name": "NDA", "document_type": "nda",
                                                             "signers": signer, "required_signatures": 3})
        text = await client.post("/api/documents", json={"document_name": "NDA", "document_type": "nda",
                                                         "signers": signer, "required_signatures": "all"})
        unsigned = (await client.post("/api/documents", json={"document_name": "Report",
                                                              "document_type": "report"})).json()

        assert too_many.status_code == 400
        assert "between 1 and 1" in too_many.json()["detail"]
        assert text.status_code == 400
        sign = await client.post(f"/api/documents/{unsigned['id']}/sign", json={"signer_email": "ann@x.com"})
        assert (sign.status_code, sign.json()["detail"]) == (400, "Document has no signers")

    @pytest.mark.asyncio
    async def test_partial_signature_advances_pending_signer(self, client):
        """Test the document names the next signer right after a signature."""
        doc = (await client.post("/api/documents", json={
            "document_name": "JV", "document_type": "joint_venture",
            "signers": [{"name": "Ann", "email": "ann@x.com"}, {"name": "Bob", "email": "bob@x.com"}]})).json()

        signed = (await client.post(f"/api/documents/{doc['id']}/sign", json={"signer_email": "ann@x.com"})).json()

        assert (signed["pending_signer_email"], signed["pending_signer_name"]) == ("bob@x.com", "Bob")

    @pytest.mark.asyncio
    async def test_discount_rate(self, client):
        """Test a -100% discount rate is a 400 on calculate and create."""
        calc = await client.post("/api/studies/calculate", json={"discount_rate": -100})
        create = await client.post("/api/studies", json={"study_name": "Atacama", "discount_rate": -120})

        assert calc.status_code == 400
        assert calc.json()["detail"] == "discount_rate must be greater than -100"
        assert create.status_code == 400

    @pytest.mark.asyncio
    async def test_screening_and_trade(self, client):
        """Test non-string names, thresholds and destination codes."""
        assert (await client.post("/api/screening", json={"subject_name": 12345})).status_code == 400
        assert (await client.post("/api/screening", json={"subject_name": "Acme",
                                                          "match_rate_threshold": "80"})).status_code == 400
        compare = await client.post("/api/trade/compare", json={"basePrice": 300, "quantity": 10,
                                                                "product": "rcb", "incoterm": "FOB",
                                                                "destinations": [76, "US"]})
        assert compare.status_code == 400
        price = await client.post("/api/trade/export-price", json={"basePrice": 300, "quantity": 10,
                                                                   "product": "rcb", "incoterm": 1,
                                                                   "destination": "US"})
        assert price.status_code == 400
