"""
ELP Green Technology: Back-Office Service Package (v1.4.0)

Architecture:
  elpgreen/
  ├── config/       Constants, feature flags, endpoints, authority matrix
  ├── db/           JSON document store with PostgreSQL upgrade path
  ├── auth/         JWT, RBAC, user management
  ├── policy/       Screening and analysis policy, presets
  ├── feasibility/  Plant financials (ROI, NPV, IRR), templates, regulations
  ├── benchmarks/   Industry benchmarks and feasibility validation alerts
  ├── incentives/   Regional fiscal incentives, government partnership models
  ├── tires/        Tire categories, OTR models, recovered-material value
  ├── trade/        Incoterms 2020, import duties, export price calculator
  ├── screening/    AML/KYC screening against sanctions lists and registries
  ├── analysis/     AI feasibility analysis, market intelligence, lead NLP
  ├── leads/        CRM lead records and AI-assisted prioritization
  ├── documents/    Generated documents and multi-signer workflow
  ├── search/       Semantic document search (TF-IDF / Voyage embeddings)
  ├── reports/      PDF reports for studies and screenings
  └── server.py     FastAPI routing layer

Each module is self-contained with clear imports and no circular dependencies.
"""
