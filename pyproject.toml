[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "memorize"
version = "0.1.0"
description = "Hybrid BM25 + vector recall over session memory and code, with retrieval metrics, evaluation helpers and an MCP stdio bridge"
requires-python = ">=3.11"
dependencies = []
keywords = [
    "recall",
    "retrieval",
    "bm25",
    "reciprocal-rank-fusion",
    "embeddings",
    "evaluation",
    "mcp",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Text Processing :: Indexing",
    "Topic :: Scientific/Engineering :: Information Analysis",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
memorize-mcp = "memorize.mcp:main"

[tool.hatch.build.targets.wheel]
packages = ["memorize"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
warn_redundant_casts = true
