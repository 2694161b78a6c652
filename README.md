# memorize

Recall for session memory and indexed source code. Two ranked streams,
BM25 keyword search and vector similarity, are merged with Reciprocal Rank
Fusion. The merged list is then diversified so that one chatty session or
file cannot crowd out everything else.

The package also holds the pieces used to measure recall quality: metrics,
report writers, an embedding cache, dataset loading and code-recall scoring.
It also has a small MCP server that lets an agent query a running memorize
HTTP service over stdio.

## What is inside

| Module | Purpose |
|---|---|
| `memorize.recall_config` | `Mode` (`HYBRID`, `BM25_ONLY`, `VECTOR_ONLY`) and `RecallConfig`. The defaults are `rrf_k=60.0`, `per_stream_top_k=50`, `diversify_cap=3` and `use_synonyms=True` |
| `memorize.rrf` | `Hit`, `Fused` and `fuse(bm25, vec, k)`, which fuses two ranked hit lists with Reciprocal Rank Fusion |
| `memorize.diversify` | `diversify_by_session(fused, limit, max_per_session)`, a per-session cap that backfills with the skipped hits |
| `memorize.expand` | `tokenize(query)` and `build_fts_query(original_query, store)`, used for synonym expansion |
| `memorize.pipeline` | `Recalled`, `recall(...)` and `recall_with_config(...)`, which run observation recall from start to finish |
| `memorize.code_recall` | `CodeRecallConfig`, `CodeRecalled`, `FileMeta`, `recall_code(...)`, `fused_search(...)`, `diversify(...)`, the path-segment boost helpers and the staleness checks `is_stale` and `stat_for_compare` |
| `memorize.dataset` | `Question`, `Turn`, `fetch()`, `verify_sha()`, `parse_questions()` and `load()` for the LongMemEval-S question set |
| `memorize.metrics` | `PerQuestion`, `PhaseTimings`, recall@K, NDCG@K, MRR, precision@K, `aggregate`, `by_type`, `summarize_phases` and `percentile` |
| `memorize.report` | `write_all(...)`, which writes `report.md` and `report.json` and appends a row to `summary.csv` |
| `memorize.cache` | `Cache`, an SQLite-backed embedding cache with little-endian float32 blobs, and `hash_text(text, model_tag)` for its keys |
| `memorize.code_eval` | Helpers for scoring code recall: query banks in TOML, synthetic queries, an int8-quantized vector index (`Int8Index`, `quantize_i8`, `dot_i8`), the int8-only and int8-hybrid rankings, `ModeStats`, `accumulate` and `render_report` |
| `memorize.mcp` | The MCP stdio server and its `main` entry point |

## Stores are supplied by the caller

The recall functions do not keep an index themselves. They call methods on a
store object that you pass in:

- `recall` / `recall_with_config` need `expand_synonyms(tokens)`,
  `search_bm25(query, limit)`, `search_vector(embedding, limit)` and
  `get_obs_by_ids(ids)`. The two searches return lists of `Hit`.
- `recall_code` needs `search_code_bm25(query, limit, language, path_prefix)`,
  `search_code_vector(embedding, limit, language, path_prefix)`,
  `get_code_chunks_by_ids(ids)` and `get_file_meta(path)`. Chunk rows carry
  `id`, `path`, `language`, `line_start`, `line_end`, `kind` and `qualified`.
  Each chunk's body is sliced from the file on disk. `stale` is true when the
  file's mtime or size differs from its `FileMeta`, or when either the file
  or its `FileMeta` is missing.
- `Int8Index.load` and `sample_synthetic` in `memorize.code_eval` also need
  `code_vectors()` and `sample_code_chunks(n)`.

The query embedding comes from the caller as well.

## Fusing ranked lists

```python
from memorize.rrf import Hit, fuse
from memorize.diversify import diversify_by_session

bm25 = [Hit(id=2, session="s1", score=1.0), Hit(id=1, session="s1", score=0.5)]
vec = [Hit(id=1, session="s1", score=0.9), Hit(id=3, session="s2", score=0.5)]

fused = fuse(bm25, vec, 60.0)      # id 1 is in both streams and ranks first
top = diversify_by_session(fused, 10, 3)
```

A document scores `sum(1 / (k + rank))` over the streams it appears in,
counting ranks from 1. The raw scores of the two streams are never compared,
so they need no normalising.

In code recall, each query token that is also a segment of a chunk's path
adds `path_boost` (default 0.02) to the chunk's score. Paths are split into
segments on `/`, `_`, `-` and `.`. No file may place more than `max_per_file`
(default 2) chunks in the ranking until it has been filled up to the limit.

## Scoring retrieval runs

```python
from memorize.metrics import PerQuestion, aggregate, ndcg_at

record = PerQuestion(
    question_id="q1",
    question_type="single-session-user",
    gold_total=2,
    gold_ranks=[1, 4],
)
print(ndcg_at(record, 10))
print(aggregate([record]).recall_at_5)
```

`gold_ranks` holds the 1-based positions at which gold items appeared.
`recall_any_at` counts a question as a hit when any gold item is within the
top K.

`memorize.report.write_all` also takes the model tag and the embedding
dimension to print in the report. It records the short git commit hash by
running `git rev-parse --short HEAD`, or writes `unknown` when that fails.

## Embedding cache

`Cache()` opens `$MEMORIZE_EVAL_CACHE` when that is set, and otherwise
`~/.memorize/eval-cache.db`. A path can also be passed in. The cache offers
`get_many(keys)`, `put_many(entries)` (keys that are already stored keep their
old value), `count()` and `close()`, and it works as a context manager. Keys
made with `hash_text(text, model_tag)` include the model tag, so a different
model never reads another model's entries.

## Dataset

`memorize.dataset.fetch()` downloads the LongMemEval-S JSON unless it is
already present. It then checks the byte count and the SHA-256 against the
expected values and raises `DatasetError` on a mismatch. `load()` reads and
parses the file, and sanity-checks the shape of its first record.

## MCP server

```
memorize-mcp [--url http://127.0.0.1:3111]
```

The server reads JSON-RPC requests from stdin, one per line, and writes its
responses to stdout. It answers `initialize`, `tools/list`, `tools/call` and
`ping`. Malformed lines and notifications get no response. It offers two tools:

- `session_recall` searches past session memory. It takes a `query` and an
  optional `limit` (default 10). `memory_recall` is accepted under the same
  terms.
- `code_recall` searches the indexed codebase. It takes a `query` and
  optionally `limit`, `language`, `path` and `scope`. The working directory
  is sent along as `cwd`.

Both tools forward the request to the HTTP service (`/recall` and
`/code/search`) and turn its JSON reply into a short text listing. If the
service cannot be reached, the tool returns a result with `isError: true`
that says how to start the service. It does not return a protocol error.

## What this package does not do

- It has no storage or index of its own. There is no BM25 engine, no vector
  store and no synonyms table; these come from the store object you supply.
- It computes no embeddings. Every query and document vector is passed in.
- It has no HTTP service. `memorize-mcp` only forwards requests to a
  memorize HTTP service that is already running elsewhere.
- It has no command that runs a full LongMemEval or code-recall evaluation.
  The metrics, reports, cache, dataset and scoring helpers are building
  blocks for such a run.

## Tests

Install the `test` extra and run `pytest`.