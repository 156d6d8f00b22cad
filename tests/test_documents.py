"""Tests for generated documents and sequential signatures."""

import pytest

from elpgreen.documents import (
    DOCUMENT_SECTIONS, LEGAL_FRAMEWORKS, cancel_document, content_hash, create_document, get_document, legal_framework,
    list_documents, list_emails, next_signer_email, notify_next_signer, queue_email, render_template, sign_document,
)

SIGNERS = [
    {"name": "Ericson Piccoli", "email": "Ericson@ELPGreen.com", "order": 2, "role": "ELP"},
    {"name": "Ann Lee", "email": "ann@tyrecycle.au", "order": 1, "role": "Partner"},
]


def _nda(db, **extra):
    return create_document(db, {"document_name": "NDA Tyrecycle", "document_type": "NDA",
                                "content": "Confidential terms", "field_values": {"signers": SIGNERS},
                                **extra}, "Ana")


class TestCreateDocument:
    """Tests for document creation."""

    def test_signers_ordered_and_normalised(self, db):
        """Test signers are sorted by order and emails lowercased."""
        doc = _nda(db, lead_id="L1")

        assert doc["document_type"] == "nda"
        assert [s["email"] for s in doc["field_values"]["signers"]] == ["ann@tyrecycle.au", "ericson@elpgreen.com"]
        assert doc["required_signatures"] == 2
        assert doc["signature_status"] == "draft"
        assert doc["content_hash"] == content_hash("Confidential terms")
        assert len(doc["content_hash"]) == 16
        assert get_document(db, doc["id"]) is doc

    def test_document_without_signers_is_not_signable(self, db):
        """Test a document with no signers needs no signatures and refuses signing."""
        doc = create_document(db, {"document_name": "KYC", "document_type": "kyc"})

        assert doc["required_signatures"] == 0
        assert doc["field_values"]["signers"] == []
        with pytest.raises(ValueError, match="no signers"):
            sign_document(db, doc, "ann@x.com")
        with pytest.raises(ValueError, match="no signers"):
            notify_next_signer(doc)
        assert doc["signature_status"] == "draft"

    def test_required_signatures_coerced(self, db):
        """Test numeric strings and integral floats are accepted."""
        assert _nda(db, required_signatures="1")["required_signatures"] == 1
        assert _nda(db, required_signatures=2.0)["required_signatures"] == 2

    def test_validation(self, db):
        """Test name, type and signer checks."""
        with pytest.raises(ValueError, match="document_name"):
            create_document(db, {"document_type": "nda"})
        with pytest.raises(ValueError, match="document_type"):
            create_document(db, {"document_name": "X", "document_type": "invoice"})
        with pytest.raises(ValueError, match="signer"):
            create_document(db, {"document_name": "X", "document_type": "nda", "signers": [{"name": "No Email"}]})
        with pytest.raises(ValueError, match="signer"):
            create_document(db, {"document_name": "X", "document_type": "nda", "signers": ["ann@x.com"]})
        with pytest.raises(ValueError, match="signers must be a list"):
            create_document(db, {"document_name": "X", "document_type": "nda", "signers": {"name": "Ann"}})
        with pytest.raises(ValueError, match="order"):
            create_document(db, {"document_name": "X", "document_type": "nda",
                                 "signers": [{"name": "Ann", "email": "ann@x.com", "order": "first"}]})
        with pytest.raises(ValueError, match="document_type"):
            create_document(db, {"document_name": "X", "document_type": 7})
        with pytest.raises(ValueError, match="document_name"):
            create_document(db, {"document_name": ["X"], "document_type": "nda"})

    @pytest.mark.parametrize("required,message", [
        (3, "between 1 and 2"),
        (0, "between 1 and 2"),
        (-1, "between 1 and 2"),
        ("two", "must be an integer"),
        (1.5, "must be an integer"),
        (True, "must be an integer"),
        ([2], "must be an integer"),
    ])
    def test_required_signatures_bounds(self, db, required, message):
        """Test required_signatures must fit the signer list."""
        with pytest.raises(ValueError, match=message):
            _nda(db, required_signatures=required)
        with pytest.raises(ValueError, match="at least one signer"):
            create_document(db, {"document_name": "X", "document_type": "kyc", "required_signatures": 1})
        assert db["generated_documents"] == []

    def test_list_filters(self, db):
        """Test type, status and lead filters."""
        nda = _nda(db, lead_id="L1")
        create_document(db, {"document_name": "MoU", "document_type": "mou"})

        assert [d["id"] for d in list_documents(db, document_type="nda")] == [nda["id"]]
        assert [d["id"] for d in list_documents(db, lead_id="L1")] == [nda["id"]]
        assert len(list_documents(db, status="draft")) == 2


class TestSignatureFlow:
    """Tests for the ordered signing workflow."""

    def test_full_flow(self, db):
        """Test notify, sign in order and completion."""
        doc = _nda(db)

        first = notify_next_signer(doc, "Ana")
        assert first["nextSignerEmail"] == "ann@tyrecycle.au"
        assert first["signatureLink"].endswith(f"/sign/{doc['id']}")
        assert first["previousSignerName"] is None
        assert (first["currentSignatureNumber"], first["totalSignatures"]) == (1, 2)
        assert doc["signature_status"] == "awaiting_signature"

        with pytest.raises(ValueError, match="turn to sign"):
            sign_document(db, doc, "ericson@elpgreen.com")

        sign_document(db, doc, "ANN@tyrecycle.au", "typed", ip_address="10.1.1.1")
        assert doc["current_signatures"] == 1
        assert doc["signature_status"] == "awaiting_signature"
        assert (doc["pending_signer_email"], doc["pending_signer_name"]) == ("ericson@elpgreen.com", "Ericson Piccoli")

        second = notify_next_signer(doc)
        assert second["nextSignerName"] == "Ericson Piccoli"
        assert second["previousSignerName"] == "Ann Lee"

        sign_document(db, doc, "ericson@elpgreen.com", "drawn")
        assert doc["signature_status"] == "completed"
        assert doc["is_signed"] is True
        assert doc["pending_signer_email"] is None
        assert [e["signer_email"] for e in db["signature_log"]] == ["ann@tyrecycle.au", "ericson@elpgreen.com"]
        assert db["signature_log"][0]["metadata"] == {"order": 1, "content_hash": doc["content_hash"]}
        assert [h["status"] for h in doc["statusHistory"]] == ["draft", "awaiting_signature", "completed"]

        with pytest.raises(ValueError, match="completed"):
            sign_document(db, doc, "ann@tyrecycle.au")
        with pytest.raises(ValueError, match="No pending signers"):
            notify_next_signer(doc)

    def test_sign_from_draft(self, db):
        """Test the first signature on a draft moves it to pending_signature."""
        doc = _nda(db)
        sign_document(db, doc, "ann@tyrecycle.au")

        assert doc["signature_status"] == "pending_signature"
        assert doc["pending_signer_email"] == "ericson@elpgreen.com"

    def test_partial_requirement_completes_early(self, db):
        """Test a 1-of-2 document completes after the first signer and clears the pending signer."""
        doc = _nda(db, required_signatures=1)
        sign_document(db, doc, "ann@tyrecycle.au")

        assert doc["signature_status"] == "completed"
        assert doc["pending_signer_email"] is None

    def test_non_string_signer_email(self, db):
        """Test a non-string signer email is refused as out of turn."""
        with pytest.raises(ValueError, match="turn to sign"):
            sign_document(db, _nda(db), ["ann@tyrecycle.au"])

    def test_single_signer_completes_from_draft(self, db):
        """Test a one-signer document completes directly."""
        doc = create_document(db, {"document_name": "Consent", "document_type": "consent",
                                   "signers": [{"name": "Ann", "email": "ann@x.com"}]})
        sign_document(db, doc, "ann@x.com")

        assert [h["status"] for h in doc["statusHistory"]] == ["draft", "pending_signature", "completed"]

    def test_invalid_signature_type(self, db):
        """Test unknown signature types are rejected."""
        with pytest.raises(ValueError, match="signature_type"):
            sign_document(db, _nda(db), "ann@tyrecycle.au", "fingerprint")

    def test_cancel(self, db):
        """Test cancellation and the terminal states."""
        doc = _nda(db)
        notify_next_signer(doc)
        cancel_document(doc, "Ana", "Partner withdrew")

        assert doc["signature_status"] == "cancelled"
        assert doc["pending_signer_email"] is None
        assert doc["statusHistory"][-1]["reason"] == "Partner withdrew"
        with pytest.raises(ValueError, match="Cannot transition"):
            cancel_document(doc, "Ana")

    def test_completed_cannot_be_cancelled(self, db):
        """Test completed documents stay completed."""
        doc = create_document(db, {"document_name": "LOI", "document_type": "loi",
                                   "signers": [{"name": "Ann", "email": "ann@x.com"}]})
        sign_document(db, doc, "ann@x.com")

        with pytest.raises(ValueError, match="Cannot transition"):
            cancel_document(doc, "Ana")


class TestTemplates:
    """Tests for legal frameworks and the local template renderer."""

    def test_legal_framework_lookup(self):
        """Test country names are matched case and space insensitively."""
        assert legal_framework("Brazil")["dataProtection"] == "LGPD (Lei 13.709/2018)"
        assert legal_framework(" U S A ") is LEGAL_FRAMEWORKS["usa"]
        assert legal_framework("New Zealand") is LEGAL_FRAMEWORKS["default"]
        assert legal_framework(None)["arbitration"] == "ICC International Court of Arbitration"

    def test_sections_layout(self):
        """Test the section skeleton, framework clauses and known fields."""
        content = render_template("nda", {"purpose": "OTR plant evaluation", "unused": None},
                                  legal_framework("brazil"), partner_name="Tyrecycle Pty")

        assert content.startswith("NDA\n\nELP Alliance S/A and Tyrecycle Pty")
        assert f"{len(DOCUMENT_SECTIONS['nda'])}. Signatures" in content
        assert "Leis da República Federativa do Brasil. Jurisdiction: Foro da Comarca de São Paulo/SP." in content
        assert "purpose: OTR plant evaluation" in content
        assert "unused" not in content

    def test_placeholders(self):
        """Test placeholders are filled from fields and the framework, unknown ones kept."""
        template = "Between ELP and {{ partner_name }} under {{governing_law}} in {{currency}}. {{signed_on}}"

        content = render_template("contract", {}, legal_framework("italy"), template, "Gomme SpA")

        assert content == "Between ELP and Gomme SpA under Leggi della Repubblica Italiana in EUR. {{signed_on}}"


class TestSignerEmails:
    """Tests for queued signer notifications."""

    def test_signature_queues_confirmation_and_admin_notice(self, db):
        """Test each signature queues a localized confirmation and an admin notice."""
        doc = _nda(db)
        sign_document(db, doc, "ann@tyrecycle.au", "typed")

        confirmation, admin = db["email_outbox"]
        assert confirmation["to"] == ["ann@tyrecycle.au"]
        assert confirmation["subject"] == "Confirmação de Assinatura Digital - ELP Alliance"
        assert confirmation["status"] == "queued"
        assert db["signature_log"][0]["signature_hash"] in confirmation["text"]
        assert f"/sign?doc={doc['id']}" in confirmation["html"]
        assert admin["to"] == ["info@elpgreen.com"]
        assert "Assinaturas: 1/2" in admin["text"]
        assert {e["kind"] for e in list_emails(db, doc["id"])} == {"signature_confirmation", "signature_admin"}

    def test_next_signer_email(self, db):
        """Test the hand-off email names the previous signer and the progress."""
        doc = _nda(db, language="en")
        notify_next_signer(doc)
        sign_document(db, doc, "ann@tyrecycle.au")

        email = next_signer_email(notify_next_signer(doc))

        assert email["to"] == ["ericson@elpgreen.com"]
        assert email["subject"] == 'Your turn to sign: "NDA Tyrecycle"'
        assert "Ann Lee has already signed this document." in email["text"]
        assert "Signature 2 of 2" in email["text"]
        assert email["html"].count("&quot;NDA Tyrecycle&quot;") == 1

    def test_unknown_language_uses_portuguese(self, db):
        """Test documents in other languages fall back to Portuguese copy."""
        doc = _nda(db, language="de")

        email = next_signer_email(notify_next_signer(doc))

        assert email["subject"] == 'Sua vez de assinar: "NDA Tyrecycle"'

    def test_html_is_escaped(self, db):
        """Test names are escaped in the html body but kept verbatim in text."""
        doc = create_document(db, {"document_name": "<b>MOU</b>", "document_type": "mou", "language": "en",
                                   "signers": [{"name": "Ann & Co", "email": "ann@x.com"}]})

        queued = queue_email(db, next_signer_email(notify_next_signer(doc)))

        assert "Ann &amp; Co" in queued["html"]
        assert "<b>MOU</b>" not in queued["html"]
        assert "Dear Ann & Co," in queued["text"]
        assert list_emails(db, "other") == []
