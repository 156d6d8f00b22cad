"""
ELP Green: Generated Documents & Sequential Signatures

Lifecycle:
  draft -> pending_signature -> awaiting_signature -> completed
     \\             \\                    \\
      +-------------+--------------------+--> cancelled (terminal)

Signers are ordered by `order`; each signature unlocks the next signer.
Every signature appends an entry to signature_log with a content hash.
Signatures and signer hand-offs queue localized emails in email_outbox.
Drafting tables: per-type sections and key fields, per-country legal frameworks.
"""
import re, html, uuid, hashlib
from datetime import datetime

from elpgreen.config import SITE_URL, EMAIL_FROM, ADMIN_NOTIFY_EMAIL
from elpgreen.db import log_activity

DOCUMENT_TYPES = ["nda", "nda_bilateral", "joint_venture", "kyc", "consent",
                  "contract", "report", "proposal", "loi", "mou"]
SIGNATURE_TYPES = ["simple", "drawn", "typed", "certificate"]

ALLOWED_TRANSITIONS = {
    "draft":              ["pending_signature", "awaiting_signature", "cancelled"],
    "pending_signature":  ["awaiting_signature", "completed", "cancelled"],
    "awaiting_signature": ["completed", "cancelled"],
    "completed":          [],
    "cancelled":          [],
}


# ============================================================
# TEMPLATES & LEGAL FRAMEWORKS
# ============================================================
DOCUMENT_SECTIONS = {
    "nda": ["Parties", "Purpose", "Confidential Information Definition", "Obligations", "Exclusions", "Term",
            "Return of Information", "Remedies", "Governing Law", "Signatures"],
    "nda_bilateral": ["Parties", "Recitals", "Mutual Confidentiality", "Definition of Confidential Information",
                      "Obligations of Both Parties", "Exclusions", "Term and Termination", "Return of Materials",
                      "Remedies", "Non-Solicitation", "Governing Law", "Entire Agreement", "Signatures"],
    "joint_venture": ["Parties and Recitals", "Definitions", "Formation and Purpose", "Capital Contributions",
                      "Management Structure", "Profit and Loss Sharing", "Intellectual Property", "Confidentiality",
                      "Non-Competition", "Term and Termination", "Dispute Resolution", "Exit Strategy",
                      "Representations and Warranties", "Governing Law", "Signatures"],
    "kyc": ["Company Information", "Beneficial Ownership", "Directors and Officers", "Financial Information",
            "Business Activities", "AML/CFT Compliance", "Source of Funds", "Risk Assessment", "Declaration",
            "Supporting Documents"],
    "consent": ["Data Controller Information", "Purpose of Processing", "Categories of Data", "Legal Basis",
                "Data Recipients", "International Transfers", "Retention Period", "Your Rights",
                "Consent Declaration", "Withdrawal of Consent"],
    "contract": ["Parties", "Recitals", "Definitions", "Scope of Work", "Deliverables", "Timeline", "Payment Terms",
                 "Intellectual Property", "Warranties", "Limitation of Liability", "Indemnification",
                 "Confidentiality", "Term and Termination", "Force Majeure", "Dispute Resolution",
                 "General Provisions", "Signatures"],
    "report": ["Executive Summary", "Introduction", "Environmental Impact", "Social Responsibility",
               "Governance Practices", "Sustainability Metrics", "Carbon Footprint", "Waste Management",
               "Community Engagement", "Future Goals", "Conclusion"],
    "proposal": ["Cover Page", "Executive Summary", "Company Overview", "Understanding of Needs", "Proposed Solution",
                 "Technical Specifications", "Implementation Plan", "Timeline", "Investment Summary",
                 "Terms and Conditions", "Why Choose Us", "Appendices"],
    "loi": ["Parties", "Purpose", "Transaction Overview", "Key Terms", "Exclusivity Period", "Due Diligence",
            "Confidentiality", "Non-Binding Nature", "Binding Provisions", "Governing Law", "Signatures"],
    "mou": ["Parties", "Background and Purpose", "Areas of Cooperation", "Responsibilities", "Financial Arrangements",
            "Intellectual Property", "Confidentiality", "Term and Termination", "Dispute Resolution",
            "General Provisions", "Signatures"],
}

DOCUMENT_KEY_FIELDS = {
    "nda": ["disclosing_party", "receiving_party", "purpose", "duration", "effective_date", "contact_name",
            "company_name", "email", "address"],
    "nda_bilateral": ["party_a", "party_b", "party_a_address", "party_b_address", "purpose", "duration",
                      "effective_date", "party_a_representative", "party_b_representative"],
    "joint_venture": ["partner_a", "partner_b", "jv_name", "jv_purpose", "partner_a_contribution",
                      "partner_b_contribution", "profit_share_a", "profit_share_b", "duration", "effective_date",
                      "location", "governing_law"],
    "kyc": ["company_name", "registration_number", "incorporation_date", "registered_address", "business_address",
            "beneficial_owners", "directors", "annual_revenue", "employees", "industry", "source_of_funds"],
    "consent": ["data_subject_name", "data_subject_email", "controller_name", "controller_address", "purposes",
                "data_categories", "retention_period", "effective_date"],
    "contract": ["client_name", "provider_name", "scope", "deliverables", "total_value", "payment_schedule",
                 "start_date", "end_date", "governing_law"],
    "report": ["report_period", "company_name", "co2_reduction", "waste_processed", "jobs_created", "investments",
               "certifications"],
    "proposal": ["client_name", "project_name", "total_investment", "duration", "deliverables", "payment_terms",
                 "valid_until"],
    "loi": ["buyer", "seller", "transaction_type", "transaction_value", "exclusivity_period", "due_diligence_period",
            "target_closing_date"],
    "mou": ["party_a", "party_b", "purpose", "cooperation_areas", "duration", "effective_date", "responsibilities_a",
            "responsibilities_b"],
}


def _framework(data_protection, contract_law, jurisdiction, language, currency, governing_law, arbitration,
               tax_id, witnesses):
    return {"dataProtection": data_protection, "contractLaw": contract_law, "jurisdiction": jurisdiction,
            "language": language, "currency": currency, "governingLaw": governing_law,
            "arbitration": arbitration, "taxId": tax_id, "witnessRequirements": witnesses}


LEGAL_FRAMEWORKS = {
    "brazil": _framework("LGPD (Lei 13.709/2018)", "Código Civil Brasileiro (Lei 10.406/2002)",
                         "Foro da Comarca de São Paulo/SP", "pt", "BRL", "Leis da República Federativa do Brasil",
                         "Câmara de Comércio Brasil-Itália (CCBI)", "CNPJ", "Duas testemunhas com CPF"),
    "italy": _framework("GDPR (Reg. UE 2016/679) e D.Lgs. 196/2003", "Codice Civile Italiano", "Foro di Milano",
                        "it", "EUR", "Leggi della Repubblica Italiana", "Camera Arbitrale di Milano", "Partita IVA",
                        "Non richiesto per contratti commerciali standard"),
    "germany": _framework("DSGVO (EU-DSGVO) und BDSG", "Bürgerliches Gesetzbuch (BGB)",
                          "Landgericht Frankfurt am Main", "de", "EUR", "Deutsches Recht",
                          "Deutsche Institution für Schiedsgerichtsbarkeit (DIS)", "Steuernummer",
                          "Nicht erforderlich"),
    "usa": _framework("CCPA, HIPAA (where applicable), State Privacy Laws", "Uniform Commercial Code (UCC)",
                      "State of Delaware", "en", "USD", "Laws of the State of Delaware, United States",
                      "American Arbitration Association (AAA)", "EIN (Employer Identification Number)",
                      "Notarization recommended for major contracts"),
    "australia": _framework("Privacy Act 1988 and Australian Privacy Principles",
                            "Australian Contract Law (Common Law)", "Courts of New South Wales", "en", "AUD",
                            "Laws of New South Wales, Australia",
                            "Australian Centre for International Commercial Arbitration",
                            "ABN (Australian Business Number)", "Witness signature recommended for deeds"),
    "mexico": _framework("Ley Federal de Protección de Datos Personales (LFPDPPP)",
                         "Código de Comercio y Código Civil Federal", "Tribunales de la Ciudad de México", "es",
                         "MXN", "Leyes de los Estados Unidos Mexicanos", "Centro de Arbitraje de México (CAM)",
                         "RFC (Registro Federal de Contribuyentes)", "Dos testigos con identificación oficial"),
    "china": _framework("中华人民共和国个人信息保护法 (PIPL)", "中华人民共和国民法典", "深圳市人民法院", "zh", "CNY",
                        "中华人民共和国法律", "中国国际经济贸易仲裁委员会 (CIETAC)", "统一社会信用代码", "不需要见证人"),
    "default": _framework("Applicable data protection laws", "International Commercial Law",
                          "Courts of the agreed jurisdiction", "en", "USD", "Laws agreed by the parties",
                          "ICC International Court of Arbitration", "Tax ID", "As required by applicable law"),
}

LANGUAGE_NAMES = {"pt": "Portuguese (Brazilian)", "en": "English", "es": "Spanish",
                  "zh": "Chinese (Simplified)", "it": "Italian", "de": "German"}

TEMPLATE_CONTENT_MAX_CHARS = 50000
PLACEHOLDER_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def legal_framework(country: str = None) -> dict:
    """Framework for a country name ("Brazil", "usa", "New Zealand"), default when unknown."""
    key = re.sub(r"\s+", "", (country or "default").lower())
    return LEGAL_FRAMEWORKS.get(key) or LEGAL_FRAMEWORKS["default"]


def render_template(doc_type: str, fields: dict, framework: dict, template_content: str = None,
                    partner_name: str = None) -> str:
    """Fill {{field}} placeholders, or lay out the type's sections when there is no template."""
    values = {**{k: str(v) for k, v in fields.items() if v is not None},
              "governing_law": fields.get("governing_law") or framework["governingLaw"],
              "jurisdiction": framework["jurisdiction"], "currency": framework["currency"]}
    if partner_name:
        values.setdefault("partner_name", partner_name)
    if template_content:
        return PLACEHOLDER_RE.sub(lambda m: values.get(m.group(1), m.group(0)), template_content)

    lines = [doc_type.replace("_", " ").upper(), ""]
    if partner_name:
        lines += [f"ELP Alliance S/A and {partner_name}", ""]
    for i, section in enumerate(DOCUMENT_SECTIONS[doc_type], 1):
        lines.append(f"{i}. {section}")
        if section == "Governing Law":
            lines.append(f"   {values['governing_law']}. Jurisdiction: {framework['jurisdiction']}.")
        elif section == "Dispute Resolution":
            lines.append(f"   {framework['arbitration']}.")
        lines.append("")
    filled = [f"{k}: {values[k]}" for k in DOCUMENT_KEY_FIELDS[doc_type] if values.get(k)]
    if filled:
        lines += ["Fields", *filled, ""]
    lines.append(f"Data protection: {framework['dataProtection']}")
    return "\n".join(lines)


def content_hash(content) -> str:
    if not isinstance(content, (bytes, bytearray)):
        content = str(content or "").encode("utf-8")
    return hashlib.sha256(content).hexdigest()[:16]


def transition_document(doc: dict, new_status: str, by: str, reason: str = "") -> dict:
    """Move a document to a new signature status, or raise ValueError."""
    current = doc["signature_status"]
    if new_status not in ALLOWED_TRANSITIONS.get(current, []):
        raise ValueError(f"Cannot transition from '{current}' to '{new_status}'. Allowed: {ALLOWED_TRANSITIONS.get(current, [])}")
    now = datetime.now().isoformat()
    doc["signature_status"] = new_status
    doc["statusHistory"].append({"status": new_status, "at": now, "by": by, "reason": reason})
    if new_status == "completed":
        doc["is_signed"] = True
        doc["signed_at"] = now
    return doc


# ============================================================
# CRUD
# ============================================================
def _normalize_signers(signers: list) -> list:
    if signers is None:
        return []
    if not isinstance(signers, list):
        raise ValueError("signers must be a list")
    out = []
    for i, s in enumerate(signers):
        if not isinstance(s, dict) or not isinstance(s.get("email"), str) or not isinstance(s.get("name"), str) \
                or "@" not in s["email"] or not s["name"].strip():
            raise ValueError("Each signer needs name and email")
        order = s.get("order", i + 1)
        if isinstance(order, bool) or not isinstance(order, int):
            raise ValueError("Signer order must be an integer")
        out.append({"name": s["name"], "email": s["email"].strip().lower(), "order": order,
                    "role": s.get("role"), "status": "pending", "signed_at": None})
    return sorted(out, key=lambda s: s["order"])


def _required_signatures(value, signer_count: int) -> int:
    """Signatures needed to complete: defaults to every signer, bounded by the signer count."""
    if value is None or value == "":
        return signer_count
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValueError("required_signatures must be an integer")
    try:
        required = int(value)
    except (TypeError, ValueError):
        raise ValueError("required_signatures must be an integer")
    if not signer_count:
        raise ValueError("required_signatures needs at least one signer")
    if not 1 <= required <= signer_count:
        raise ValueError(f"required_signatures must be between 1 and {signer_count} (the number of signers)")
    return required


def create_document(db: dict, data: dict, user_name: str = "system") -> dict:
    if not isinstance(data.get("document_name"), str) or not data["document_name"].strip():
        raise ValueError("document_name is required")
    doc_type = data.get("document_type")
    doc_type = doc_type.lower() if isinstance(doc_type, str) else ""
    if doc_type not in DOCUMENT_TYPES:
        raise ValueError(f"Invalid document_type. Valid options: {', '.join(DOCUMENT_TYPES)}")
    field_values = data.get("field_values") or {}
    if not isinstance(field_values, dict):
        raise ValueError("field_values must be an object")
    signers = _normalize_signers(field_values.get("signers") or data.get("signers"))
    required = _required_signatures(data.get("required_signatures"), len(signers))
    now = datetime.now().isoformat()
    content = data.get("content") or ""
    doc = {
        "id": str(uuid.uuid4())[:8],
        "document_name": data["document_name"], "document_type": doc_type,
        "template_id": data.get("template_id"), "language": data.get("language", "pt"),
        "lead_id": data.get("lead_id"), "lead_type": data.get("lead_type"),
        "content": content, "content_hash": content_hash(content),
        "field_values": {**field_values, "signers": signers},
        "required_signatures": required,
        "current_signatures": 0, "signature_status": "draft", "is_signed": False,
        "pending_signer_email": None, "pending_signer_name": None,
        "signed_at": None, "generated_by": user_name, "created_at": now,
        "statusHistory": [{"status": "draft", "at": now, "by": user_name, "reason": "Document created"}],
    }
    db["generated_documents"].append(doc)
    log_activity(db, "document_created", documentId=doc["id"], documentType=doc_type, by=user_name)
    print(f"[Docs] Created {doc_type} '{doc['document_name']}' ({len(signers)} signers)")
    return doc


def get_document(db: dict, doc_id: str):
    return next((d for d in db["generated_documents"] if d["id"] == doc_id), None)


def list_documents(db: dict, document_type: str = None, status: str = None, lead_id: str = None) -> list:
    docs = db["generated_documents"]
    if document_type:
        docs = [d for d in docs if d["document_type"] == document_type]
    if status:
        docs = [d for d in docs if d["signature_status"] == status]
    if lead_id:
        docs = [d for d in docs if d.get("lead_id") == lead_id]
    return sorted(docs, key=lambda d: d["created_at"], reverse=True)


# ============================================================
# SIGNATURE FLOW
# ============================================================
def signers_of(doc: dict) -> list:
    return sorted((doc.get("field_values") or {}).get("signers") or [], key=lambda s: s["order"])


def next_signer(doc: dict):
    current = doc.get("current_signatures") or 0
    return next((s for i, s in enumerate(signers_of(doc)) if i >= current and s["status"] == "pending"), None)


def _require_signers(doc: dict) -> None:
    if not signers_of(doc) or not doc.get("required_signatures"):
        raise ValueError("Document has no signers")


def notify_next_signer(doc: dict, by: str = "system") -> dict:
    """Prepare the notification for the next pending signer and mark the document as awaiting."""
    _require_signers(doc)
    signer = next_signer(doc)
    if not signer:
        raise ValueError("No pending signers")
    signers = signers_of(doc)
    current = doc.get("current_signatures") or 0
    notification = {
        "documentId": doc["id"], "documentName": doc["document_name"],
        "nextSignerEmail": signer["email"], "nextSignerName": signer["name"],
        "signatureLink": f"{SITE_URL}/sign/{doc['id']}",
        "previousSignerName": signers[current - 1]["name"] if current > 0 else None,
        "currentSignatureNumber": current + 1,
        "totalSignatures": doc["required_signatures"],
        "language": doc.get("language") or "pt",
    }
    doc["pending_signer_email"] = signer["email"]
    doc["pending_signer_name"] = signer["name"]
    if doc["signature_status"] != "awaiting_signature":
        transition_document(doc, "awaiting_signature", by, f"Waiting for {signer['name']}")
    doc["sent_at"] = datetime.now().isoformat()
    print(f"[Docs] Next signer for {doc['id']}: {signer['email']} ({notification['currentSignatureNumber']}/{notification['totalSignatures']})")
    return notification


def sign_document(db: dict, doc: dict, signer_email: str, signature_type: str = "simple",
                  ip_address: str = None, user_agent: str = None) -> dict:
    if doc["signature_status"] in ("completed", "cancelled"):
        raise ValueError(f"Document is {doc['signature_status']}")
    if signature_type not in SIGNATURE_TYPES:
        raise ValueError(f"Invalid signature_type. Allowed: {SIGNATURE_TYPES}")
    _require_signers(doc)
    expected = next_signer(doc)
    email = signer_email.strip().lower() if isinstance(signer_email, str) else ""
    if not expected:
        raise ValueError("No pending signers")
    if expected["email"] != email:
        raise ValueError(f"It is not {email}'s turn to sign")

    now = datetime.now().isoformat()
    signature_hash = hashlib.sha256(f"{doc['content_hash']}|{email}|{now}".encode()).hexdigest()
    expected["status"] = "signed"
    expected["signed_at"] = now
    doc["current_signatures"] = (doc.get("current_signatures") or 0) + 1
    doc["signer_email"], doc["signer_name"] = expected["email"], expected["name"]
    doc["signature_hash"] = signature_hash
    entry = {
        "id": str(uuid.uuid4())[:8], "document_id": doc["id"],
        "signer_email": expected["email"], "signer_name": expected["name"],
        "signature_type": signature_type, "signature_hash": signature_hash,
        "ip_address": ip_address, "user_agent": user_agent, "timestamp": now,
        "metadata": {"order": expected["order"], "content_hash": doc["content_hash"]},
    }
    db["signature_log"].append(entry)

    if doc["current_signatures"] >= doc["required_signatures"]:
        doc["pending_signer_email"] = doc["pending_signer_name"] = None
        if doc["signature_status"] == "draft":
            transition_document(doc, "pending_signature", expected["email"], "Signing started")
        transition_document(doc, "completed", expected["email"], "All required signatures collected")
    else:
        upcoming = next_signer(doc)
        doc["pending_signer_email"] = upcoming["email"] if upcoming else None
        doc["pending_signer_name"] = upcoming["name"] if upcoming else None
        if doc["signature_status"] == "draft":
            transition_document(doc, "pending_signature", expected["email"], "First signature collected")
    log_activity(db, "document_signed", documentId=doc["id"], signer=expected["email"],
                 signatures=doc["current_signatures"], required=doc["required_signatures"])
    queue_email(db, signature_confirmation_email(doc, entry))
    queue_email(db, signature_admin_email(doc, entry))
    print(f"[Docs] {doc['id']} signed by {expected['email']} ({doc['current_signatures']}/{doc['required_signatures']})")
    return doc


def cancel_document(doc: dict, by: str, reason: str = "") -> dict:
    transition_document(doc, "cancelled", by, reason or "Cancelled")
    doc["pending_signer_email"] = doc["pending_signer_name"] = None
    return doc


# ============================================================
# SIGNER EMAILS
# ============================================================
# Payloads are queued in db["email_outbox"]; delivery is left to the mail relay.
CONFIRMATION_TEXT = {
    "pt": {"subject": "Confirmação de Assinatura Digital - ELP Alliance", "greeting": "Prezado(a)",
           "intro": "Sua assinatura digital foi registrada com sucesso.", "document": "Documento",
           "date": "Data/Hora", "type": "Tipo de Assinatura", "hash": "Hash de Verificação",
           "access": "Acessar Documento"},
    "en": {"subject": "Digital Signature Confirmation - ELP Alliance", "greeting": "Dear",
           "intro": "Your digital signature has been successfully recorded.", "document": "Document",
           "date": "Date/Time", "type": "Signature Type", "hash": "Verification Hash",
           "access": "Access Document"},
    "es": {"subject": "Confirmación de Firma Digital - ELP Alliance", "greeting": "Estimado(a)",
           "intro": "Su firma digital ha sido registrada con éxito.", "document": "Documento",
           "date": "Fecha/Hora", "type": "Tipo de Firma", "hash": "Hash de Verificación",
           "access": "Acceder al Documento"},
    "it": {"subject": "Conferma Firma Digitale - ELP Alliance", "greeting": "Gentile",
           "intro": "La tua firma digitale è stata registrata con successo.", "document": "Documento",
           "date": "Data/Ora", "type": "Tipo di Firma", "hash": "Hash di Verifica",
           "access": "Accedi al Documento"},
    "zh": {"subject": "数字签名确认 - ELP Alliance", "greeting": "尊敬的", "intro": "您的数字签名已成功记录。",
           "document": "文件", "date": "日期/时间", "type": "签名类型", "hash": "验证哈希", "access": "访问文件"},
}

NEXT_SIGNER_TEXT = {
    "pt": {"subject": 'Sua vez de assinar: "{doc}"', "greeting": "Prezado(a) {name},",
           "message": 'O documento "{doc}" está aguardando sua assinatura digital.',
           "previous": "{name} já assinou este documento.", "progress": "Assinatura {current} de {total}",
           "cta": "Assinar Documento Agora"},
    "en": {"subject": 'Your turn to sign: "{doc}"', "greeting": "Dear {name},",
           "message": 'The document "{doc}" is waiting for your digital signature.',
           "previous": "{name} has already signed this document.", "progress": "Signature {current} of {total}",
           "cta": "Sign Document Now"},
    "es": {"subject": 'Tu turno de firmar: "{doc}"', "greeting": "Estimado/a {name},",
           "message": 'El documento "{doc}" está esperando tu firma digital.',
           "previous": "{name} ya ha firmado este documento.", "progress": "Firma {current} de {total}",
           "cta": "Firmar Documento Ahora"},
    "it": {"subject": 'Il tuo turno di firmare: "{doc}"', "greeting": "Gentile {name},",
           "message": 'Il documento "{doc}" è in attesa della tua firma digitale.',
           "previous": "{name} ha già firmato questo documento.", "progress": "Firma {current} di {total}",
           "cta": "Firma Documento Ora"},
    "zh": {"subject": '轮到您签署了："{doc}"', "greeting": "尊敬的 {name}，",
           "message": '文件 "{doc}" 正在等待您的数字签名。', "previous": "{name} 已签署此文件。",
           "progress": "签名 {current}/{total}", "cta": "立即签署文件"},
}


def _email(to: str, subject: str, lines: list, link: str, link_label: str, kind: str, document_id: str) -> dict:
    paragraphs = "".join(f"<p>{html.escape(line)}</p>" for line in lines)
    body = f'{paragraphs}<p><a href="{html.escape(link, quote=True)}">{html.escape(link_label)}</a></p>'
    return {"from": EMAIL_FROM, "to": [to], "subject": subject, "kind": kind, "documentId": document_id,
            "text": "\n\n".join(lines + [f"{link_label}: {link}"]), "html": f"<html><body>{body}</body></html>"}


def signature_confirmation_email(doc: dict, entry: dict) -> dict:
    """Confirmation for the signer of a signature_log entry, in the document's language (pt default)."""
    t = CONFIRMATION_TEXT.get(doc.get("language") or "pt", CONFIRMATION_TEXT["pt"])
    lines = [f"{t['greeting']} {entry['signer_name']},", t["intro"],
             f"{t['document']}: {doc['document_name']}", f"{t['date']}: {entry['timestamp']}",
             f"{t['type']}: {entry['signature_type']}", f"{t['hash']}: {entry['signature_hash']}"]
    return _email(entry["signer_email"], t["subject"], lines, f"{SITE_URL}/sign?doc={doc['id']}", t["access"],
                  "signature_confirmation", doc["id"])


def signature_admin_email(doc: dict, entry: dict) -> dict:
    lines = [f"Documento: {doc['document_name']}", f"Assinante: {entry['signer_name']}",
             f"Email: {entry['signer_email']}", f"Data/Hora: {entry['timestamp']}",
             f"Assinaturas: {doc['current_signatures']}/{doc['required_signatures']}"]
    return _email(ADMIN_NOTIFY_EMAIL, f"Nova assinatura: {doc['document_name']}", lines,
                  f"{SITE_URL}/admin/documents/{doc['id']}", "Abrir no painel", "signature_admin", doc["id"])


def next_signer_email(notification: dict) -> dict:
    t = NEXT_SIGNER_TEXT.get(notification.get("language") or "pt", NEXT_SIGNER_TEXT["pt"])
    doc_name = notification["documentName"]
    lines = [t["greeting"].format(name=notification["nextSignerName"]), t["message"].format(doc=doc_name)]
    if notification.get("previousSignerName"):
        lines.append(t["previous"].format(name=notification["previousSignerName"]))
    lines.append(t["progress"].format(current=notification["currentSignatureNumber"],
                                      total=notification["totalSignatures"]))
    return _email(notification["nextSignerEmail"], t["subject"].format(doc=doc_name), lines,
                  notification["signatureLink"], t["cta"], "next_signer", notification["documentId"])


def queue_email(db: dict, payload: dict) -> dict:
    queued = {"id": str(uuid.uuid4())[:8], "status": "queued", "created_at": datetime.now().isoformat(), **payload}
    db["email_outbox"].append(queued)
    print(f"[Docs] Queued {payload['kind']} email to {', '.join(payload['to'])}")
    return queued


def list_emails(db: dict, document_id: str = None) -> list:
    emails = db["email_outbox"]
    if document_id:
        emails = [e for e in emails if e.get("documentId") == document_id]
    return sorted(emails, key=lambda e: e["created_at"], reverse=True)
