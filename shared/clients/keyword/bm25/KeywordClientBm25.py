import bisect
import re

import numpy as np
from rank_bm25 import BM25Plus

from shared.clients.keyword.KeywordClientInterface import KeywordClientInterface
from shared.exceptions import IndexUnavailable, IndexWriteFailed
from shared.helper.HelperConfig import HelperConfig
from shared.helper.Tokenizer import tokenize
from shared.models.config import EnvConfig
from shared.models.document import ChunkRecord, IndexHit

_HEADING_PATTERN = re.compile(r"^(#{1,3})\s+(.+)$", re.MULTILINE)


class _KeywordEntry:
    """One indexed chunk together with its boosted token list."""

    __slots__ = ("record", "tokens", "token_set")

    def __init__(self, record: ChunkRecord, tokens: list[str]):
        self.record = record
        self.tokens = tokens
        self.token_set = frozenset(tokens)


class KeywordClientBm25(KeywordClientInterface):
    """In-process BM25 keyword index.

    Documents are kept in insertion order; re-indexing a document moves it to
    the end. The BM25 model is rebuilt lazily on the first search after a
    write. BM25+ is used so term weights stay positive even on tiny corpora
    where a term occurs in every chunk.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._k1 = float(self.get_config_val("K1", default=1.5, val_type="number"))
        self._b = float(self.get_config_val("B", default=0.75, val_type="number"))
        self._boost_tags = int(self.get_config_val("BOOST_TAGS", default=5, val_type="number"))
        self._boost_title = int(self.get_config_val("BOOST_TITLE", default=3, val_type="number"))
        self._boost_headings = {
            1: int(self.get_config_val("BOOST_H1", default=3, val_type="number")),
            2: int(self.get_config_val("BOOST_H2", default=2, val_type="number")),
            3: int(self.get_config_val("BOOST_H3", default=1, val_type="number")),
        }
        self._min_prefix = int(self.get_config_val("MIN_PREFIX", default=2, val_type="number"))
        self._max_prefix_terms = int(self.get_config_val("MAX_PREFIX_TERMS", default=50, val_type="number"))

        self._docs: dict[str, list[_KeywordEntry]] = {}
        self._entries: list[_KeywordEntry] = []
        self._scored_entries: list[_KeywordEntry] = []
        self._bm25: BM25Plus | None = None
        self._vocabulary: list[str] = []
        self._dirty = True
        self._booted = False

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Bm25"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="K1", val_type="number", default=1.5),
            EnvConfig(env_key="B", val_type="number", default=0.75),
            EnvConfig(env_key="BOOST_TAGS", val_type="number", default=5),
            EnvConfig(env_key="BOOST_TITLE", val_type="number", default=3),
            EnvConfig(env_key="BOOST_H1", val_type="number", default=3),
            EnvConfig(env_key="BOOST_H2", val_type="number", default=2),
            EnvConfig(env_key="BOOST_H3", val_type="number", default=1),
            EnvConfig(env_key="MIN_PREFIX", val_type="number", default=2),
            EnvConfig(env_key="MAX_PREFIX_TERMS", val_type="number", default=50),
        ]

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def boot(self) -> None:
        self._booted = True

    async def close(self) -> None:
        self._booted = False
        self._docs.clear()
        self._dirty = True

    def is_booted(self) -> bool:
        return self._booted

    async def do_healthcheck(self) -> bool:
        return self._booted

    ##########################################
    ############### TOKENIZING ###############
    ##########################################

    def build_tokens(self, record: ChunkRecord) -> list[str]:
        """Tokenize a chunk for indexing, repeating metadata and heading tokens by their boost factor.

        Args:
            record (ChunkRecord): The chunk to tokenize.

        Returns:
            list[str]: The boosted token list.
        """
        tokens = tokenize(record.text)
        for heading in _HEADING_PATTERN.finditer(record.text):
            level = len(heading.group(1))
            # the heading text already counts once as body text
            tokens.extend(tokenize(heading.group(2)) * max(0, self._boost_headings[level] - 1))
        tokens.extend(tokenize(record.metadata.title) * self._boost_title)
        for tag in record.metadata.tags:
            tokens.extend(tokenize(tag) * self._boost_tags)
        return tokens

    def _make_entry(self, record: ChunkRecord) -> _KeywordEntry:
        stored = record.model_copy(update={"vector": None})
        return _KeywordEntry(stored, self.build_tokens(stored))

    def _ensure_model(self) -> None:
        if not self._dirty:
            return
        self._entries = [entry for entries in self._docs.values() for entry in entries]
        # chunks without tokens can never match and would break the average length
        self._scored_entries = [entry for entry in self._entries if entry.tokens]
        if self._scored_entries:
            self._bm25 = BM25Plus([entry.tokens for entry in self._scored_entries], k1=self._k1, b=self._b)
        else:
            self._bm25 = None
        self._vocabulary = sorted({token for entry in self._scored_entries for token in entry.token_set})
        self._dirty = False
        self.logging.debug("Rebuilt BM25 model over %d chunk(s).", len(self._scored_entries))

    def expand_prefix(self, query_tokens: list[str]) -> list[str]:
        """Treat the last query token as a prefix when it is not an indexed term itself.

        Lets search-as-you-type match a word the user has only partly typed. The
        token is replaced by the indexed terms that start with it, in vocabulary
        order and capped at MAX_PREFIX_TERMS. Tokens shorter than MIN_PREFIX,
        such as single CJK ideographs, are never expanded.

        Args:
            query_tokens (list[str]): Tokenized query.

        Returns:
            list[str]: The query tokens with the last one expanded, or unchanged.
        """
        prefix = query_tokens[-1]
        if len(prefix) < self._min_prefix:
            return query_tokens
        start = bisect.bisect_left(self._vocabulary, prefix)
        if start < len(self._vocabulary) and self._vocabulary[start] == prefix:
            return query_tokens
        completions: list[str] = []
        for term in self._vocabulary[start:]:
            if not term.startswith(prefix) or len(completions) >= self._max_prefix_terms:
                break
            completions.append(term)
        if not completions:
            return query_tokens
        return query_tokens[:-1] + completions

    def _require_booted(self, error_cls: type) -> None:
        if not self._booted:
            raise error_cls("Keyword index is not available.")

    ##########################################
    ############ INDEX OPERATIONS ############
    ##########################################

    async def upsert_chunks(self, doc_id: str, records: list[ChunkRecord]) -> int:
        self._require_booted(IndexWriteFailed)
        entries = [self._make_entry(record) for record in sorted(records, key=lambda r: r.chunk_index)]
        self._docs.pop(doc_id, None)
        if entries:
            self._docs[doc_id] = entries
        self._dirty = True
        return len(entries)

    async def delete(self, doc_id: str) -> None:
        self._require_booted(IndexWriteFailed)
        if self._docs.pop(doc_id, None) is not None:
            self._dirty = True

    async def search(self, query: str, k: int) -> list[IndexHit]:
        self._require_booted(IndexUnavailable)
        query_tokens = tokenize(query)
        if not query_tokens or k <= 0:
            return []

        self._ensure_model()
        if self._bm25 is None:
            return []

        query_tokens = self.expand_prefix(query_tokens)
        query_set = set(query_tokens)
        scores = self._bm25.get_scores(query_tokens)
        hits: list[IndexHit] = []
        # stable sort keeps insertion order among equal scores
        for idx in np.argsort(-scores, kind="stable"):
            entry = self._scored_entries[int(idx)]
            if not (entry.token_set & query_set):
                continue
            record = entry.record
            hits.append(IndexHit(
                doc_id=record.doc_id,
                chunk_index=record.chunk_index,
                text=record.text,
                metadata=record.metadata,
                score=float(scores[idx]),
            ))
            if len(hits) >= k:
                break
        return hits

    async def check_missing(self, doc_ids: list[str]) -> list[str]:
        self._require_booted(IndexUnavailable)
        return [doc_id for doc_id in dict.fromkeys(doc_ids) if doc_id not in self._docs]

    async def count(self) -> int:
        self._require_booted(IndexUnavailable)
        return sum(len(entries) for entries in self._docs.values())

    async def list_doc_ids(self) -> set[str]:
        self._require_booted(IndexUnavailable)
        return set(self._docs.keys())

    async def hydrate(self, records: list[ChunkRecord]) -> int:
        self._require_booted(IndexWriteFailed)
        grouped: dict[str, list[_KeywordEntry]] = {}
        for record in records:
            grouped.setdefault(record.doc_id, []).append(self._make_entry(record))
        for entries in grouped.values():
            entries.sort(key=lambda e: e.record.chunk_index)
        self._docs = grouped
        self._dirty = True
        self.logging.info("Keyword index hydrated with %d document(s), %d chunk(s).", len(grouped), len(records))
        return len(grouped)
