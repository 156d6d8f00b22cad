"""
ELP Green: Semantic Search
==========================

Architecture:
  1. INDEX: documents (generated contracts, lead messages, study notes) are
     embedded and stored in a local vector store (JSON + numpy).
  2. SEARCH: a query is embedded the same way and ranked by cosine
     similarity against either the index or an ad-hoc document list.

Embedding options:
  - Voyage (voyage-3-lite) over HTTP when VOYAGE_API_KEY is set
  - Local TF-IDF fallback, 512 dimensions, works offline

Relevance labels:  >= 0.8 very relevant | >= 0.6 relevant | >= 0.4 partial | low
"""
import re, json, math
from datetime import datetime

import httpx
import numpy as np

from elpgreen.config import DATA_DIR, VOYAGE_API_KEY, VOYAGE_MODEL, HTTP_TIMEOUT_SECONDS

SEARCH_DIR = DATA_DIR / "search"
SEARCH_DIR.mkdir(parents=True, exist_ok=True)
VECTOR_STORE_PATH = SEARCH_DIR / "vectors.json"
CHUNK_STORE_PATH = SEARCH_DIR / "chunks.json"

VOYAGE_URL = "https://api.voyageai.com/v1/embeddings"
VOYAGE_BATCH = 128
DOC_EMBED_CHARS = 500


def relevance_label(similarity: float) -> str:
    if similarity >= 0.8: return "very relevant"
    if similarity >= 0.6: return "relevant"
    if similarity >= 0.4: return "partial"
    return "low"


# ============================================================
# VECTOR STORE: Local JSON + numpy
# ============================================================
class VectorStore:
    """Local vector store for indexed documents. Persisted as two JSON files."""

    def __init__(self, persist: bool = True):
        self.persist = persist
        self.chunks = self._load(CHUNK_STORE_PATH, []) if persist else []
        self.vectors = self._load_vectors() if persist else {}

    def _load(self, path, default):
        if path.exists():
            with open(path) as f:
                return json.load(f)
        return default

    def _load_vectors(self):
        if VECTOR_STORE_PATH.exists():
            with open(VECTOR_STORE_PATH) as f:
                return {k: np.array(v) for k, v in json.load(f).items()}
        return {}

    def save(self):
        if not self.persist:
            return
        with open(CHUNK_STORE_PATH, "w") as f:
            json.dump(self.chunks, f, indent=2, default=str)
        with open(VECTOR_STORE_PATH, "w") as f:
            json.dump({k: v.tolist() for k, v in self.vectors.items()}, f)

    def add(self, doc_id: str, text: str, embedding: list, metadata: dict = None):
        self.chunks = [c for c in self.chunks if c["id"] != doc_id]
        self.chunks.append({"id": doc_id, "text": text, "metadata": metadata or {},
                            "addedAt": datetime.now().isoformat()})
        self.vectors[doc_id] = np.array(embedding, dtype=float)

    def search(self, query_embedding: list, top_k: int = 5, filter_fn=None) -> list:
        """Cosine similarity search. Returns [(similarity, chunk)] best first."""
        qv = np.array(query_embedding, dtype=float)
        return rank_by_cosine(qv, [(c, self.vectors.get(c["id"])) for c in self.chunks
                                   if filter_fn is None or filter_fn(c)], top_k)

    def remove(self, doc_id: str):
        self.chunks = [c for c in self.chunks if c["id"] != doc_id]
        self.vectors.pop(doc_id, None)

    def stats(self):
        kinds = [c.get("metadata", {}).get("kind", "") for c in self.chunks]
        return {"total_documents": len(self.chunks), "total_vectors": len(self.vectors),
                "kinds": {k: kinds.count(k) for k in set(kinds)}}

    def clear(self):
        self.chunks = []
        self.vectors = {}
        self.save()


def rank_by_cosine(query: np.ndarray, items: list, top_k: int = None) -> list:
    q_norm = np.linalg.norm(query)
    if q_norm == 0:
        return []
    scored = []
    for item, vec in items:
        if vec is None or vec.shape != query.shape:
            continue
        v_norm = np.linalg.norm(vec)
        if v_norm == 0:
            continue
        scored.append((float(np.dot(query, vec) / (q_norm * v_norm)), item))
    scored.sort(key=lambda x: x[0], reverse=True)
    return scored[:top_k] if top_k else scored


store = VectorStore()


# ============================================================
# EMBEDDINGS
# ============================================================
class TFIDFEmbedder:
    """Local TF-IDF embeddings. Vocabulary capped at 512 terms, L2-normalized."""

    def __init__(self, dim: int = 512):
        self.vocab = {}
        self.idf = {}
        self.dim = dim

    def _tokenize(self, text: str) -> list:
        return re.findall(r"\w+", (text or "").lower())

    def fit(self, corpus: list):
        doc_count = len(corpus) + 1
        word_doc_count = {}
        for text in corpus:
            for w in set(self._tokenize(text)):
                word_doc_count[w] = word_doc_count.get(w, 0) + 1
        top = sorted(word_doc_count.items(), key=lambda x: (-x[1], x[0]))[:self.dim]
        self.vocab = {w: i for i, (w, _) in enumerate(top)}
        self.idf = {w: math.log(doc_count / c) + 1.0 for w, c in word_doc_count.items() if w in self.vocab}
        return self

    def embed(self, text: str) -> list:
        tokens = self._tokenize(text)
        vec = np.zeros(self.dim)
        if not tokens:
            return vec.tolist()
        tf = {}
        for t in tokens:
            tf[t] = tf.get(t, 0) + 1
        max_tf = max(tf.values())
        for word, count in tf.items():
            if word in self.vocab:
                vec[self.vocab[word]] = (0.5 + 0.5 * count / max_tf) * self.idf.get(word, 1.0)
        norm = np.linalg.norm(vec)
        return (vec / norm if norm > 0 else vec).tolist()

    def embed_batch(self, texts: list) -> list:
        return [self.embed(t) for t in texts]


async def embed_with_voyage(texts: list, client: httpx.AsyncClient = None) -> list:
    """Voyage embeddings in batches of 128. Returns None on any failure."""
    out = []
    try:
        http = client or httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS)
        try:
            for i in range(0, len(texts), VOYAGE_BATCH):
                response = await http.post(VOYAGE_URL,
                    headers={"Authorization": f"Bearer {VOYAGE_API_KEY}", "Content-Type": "application/json"},
                    json={"model": VOYAGE_MODEL, "input": texts[i:i + VOYAGE_BATCH]})
                if response.status_code != 200:
                    print(f"[Search] Voyage returned {response.status_code}, falling back to TF-IDF")
                    return None
                out.extend(d["embedding"] for d in response.json()["data"])
        finally:
            if client is None:
                await http.aclose()
    except Exception as e:
        print(f"[Search] Voyage embedding error: {e}, falling back to TF-IDF")
        return None
    return out


async def embed_texts(texts: list, corpus: list = None, client: httpx.AsyncClient = None) -> tuple:
    """Embed texts. Returns (vectors, provider). TF-IDF is fitted on corpus (default: texts)."""
    if VOYAGE_API_KEY or client is not None:
        vectors = await embed_with_voyage(texts, client)
        if vectors is not None:
            return vectors, "voyage"
    embedder = TFIDFEmbedder().fit(corpus or texts)
    return embedder.embed_batch(texts), "tfidf"


# ============================================================
# SEARCH
# ============================================================
def _result(similarity: float, doc_id: str, content: str, metadata: dict = None) -> dict:
    row = {"id": doc_id, "similarity": round(similarity, 4), "content": content,
           "relevance": relevance_label(similarity)}
    if metadata:
        row["metadata"] = metadata
    return row


def _check_query(query) -> str:
    if not isinstance(query, str) or not query.strip():
        raise ValueError("query is required")
    return query


def _check_documents(documents) -> list:
    """Documents must be a list of {id: str, content: str, ...}; empty content is skipped."""
    if documents is None:
        return []
    if not isinstance(documents, list):
        raise ValueError("documents must be a list")
    for i, d in enumerate(documents):
        if not isinstance(d, dict):
            raise ValueError(f"documents[{i}] must be an object")
        if not isinstance(d.get("id"), str) or not d["id"]:
            raise ValueError(f"documents[{i}].id must be a non-empty string")
        if not isinstance(d.get("content"), str):
            raise ValueError(f"documents[{i}].content must be a string")
    return [d for d in documents if d["content"].strip()]


async def semantic_search(query: str, documents: list, top_k: int = 10,
                          client: httpx.AsyncClient = None) -> list:
    """Rank ad-hoc documents [{id, content}] against the query."""
    _check_query(query)
    docs = _check_documents(documents)
    if not docs:
        return []
    texts = [query] + [d["content"][:DOC_EMBED_CHARS] for d in docs]
    vectors, provider = await embed_texts(texts, client=client)
    ranked = rank_by_cosine(np.array(vectors[0], dtype=float),
                            [(d, np.array(v, dtype=float)) for d, v in zip(docs, vectors[1:])], top_k)
    print(f"[Search] '{query[:40]}' over {len(docs)} documents via {provider}")
    return [_result(sim, d["id"], d["content"]) for sim, d in ranked]


async def index_documents(documents: list, kind: str = "document", client: httpx.AsyncClient = None,
                          vector_store: VectorStore = None) -> dict:
    """Add [{id, content, ...}] to the index. Vectors are refit over the whole corpus."""
    vs = vector_store or store
    documents = _check_documents(documents)
    for d in documents:
        vs.add(d["id"], d["content"][:DOC_EMBED_CHARS], [],
               {"kind": kind, **{k: v for k, v in d.items() if k not in ("id", "content")}})
    texts = [c["text"] for c in vs.chunks]
    if not texts:
        return {"indexed": 0, "provider": None, **vs.stats()}
    vectors, provider = await embed_texts(texts, client=client)
    for chunk, vec in zip(vs.chunks, vectors):
        vs.vectors[chunk["id"]] = np.array(vec, dtype=float)
    vs.save()
    print(f"[Search] Indexed {len(documents)} {kind} documents ({provider})")
    return {"indexed": len(documents), "provider": provider, **vs.stats()}


async def search_index(query: str, top_k: int = 10, kind: str = None, client: httpx.AsyncClient = None,
                       vector_store: VectorStore = None) -> list:
    _check_query(query)
    vs = vector_store or store
    if not vs.chunks:
        return []
    corpus = [c["text"] for c in vs.chunks]
    vectors, _ = await embed_texts([query], corpus=corpus, client=client)
    hits = vs.search(vectors[0], top_k, filter_fn=(lambda c: c["metadata"].get("kind") == kind) if kind else None)
    return [_result(sim, c["id"], c["text"], c["metadata"]) for sim, c in hits]
