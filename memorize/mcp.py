"""A minimal MCP stdio server that answers from the memorize HTTP service.

It speaks the JSON-RPC subset an MCP client needs: ``initialize``,
``notifications/initialized``, ``tools/list``, ``tools/call`` and ``ping``.
Two tools forward to the HTTP server's session-recall and code-search
endpoints and render the answers as compact text for a model to read.
"""

from __future__ import annotations

import argparse
import http.client
import json
import os
import sys
import urllib.request
from typing import Any, TextIO

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "memorize"
SERVER_VERSION = "0.1.0"
DEFAULT_URL = "http://127.0.0.1:3111"

_DEFAULT_LIMIT = 10
_HTTP_TIMEOUT_S = 30.0

_UNREACHABLE_MARKERS = (
    "connection refused",
    "connection reset",
    "connect error",
    "tcp connect error",
    "connection closed",
    "transport error",
    "os error 61",
    "dns",
    "timed out",
)


class RpcError(Exception):
    """A JSON-RPC error to be sent back to the client."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def to_json(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


def _str_field(obj: Any, key: str) -> str | None:
    value = obj.get(key) if isinstance(obj, dict) else None
    return value if isinstance(value, str) else None


def _int_field(obj: Any, key: str) -> int | None:
    value = obj.get(key) if isinstance(obj, dict) else None
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _float_field(obj: Any, key: str) -> float | None:
    value = obj.get(key) if isinstance(obj, dict) else None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None


def _limit_arg(args: Any) -> int:
    limit = _int_field(args, "limit")
    return limit if limit is not None and limit >= 0 else _DEFAULT_LIMIT


def run_stdio(http_url: str, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
    """Serve requests line by line until the input ends.

    Malformed lines, non-2.0 messages and notifications get no response.
    """
    stdin = stdin if stdin is not None else sys.stdin
    stdout = stdout if stdout is not None else sys.stdout
    for line in stdin:
        if not line.strip():
            continue
        try:
            request = json.loads(line)
        except ValueError:
            continue
        if not isinstance(request, dict):
            continue
        if request.get("jsonrpc") != "2.0" or not isinstance(request.get("method"), str):
            continue
        if request.get("id") is None:
            # Notifications (including notifications/initialized) need no reply.
            continue
        response = dispatch(request, http_url)
        stdout.write(json.dumps(response, ensure_ascii=False, separators=(",", ":")) + "\n")
        stdout.flush()


def dispatch(request: dict[str, Any], http_url: str) -> dict[str, Any]:
    """Answer one request with a JSON-RPC response object."""
    request_id = request.get("id")
    method = request.get("method")
    try:
        if method == "initialize":
            result = handle_initialize()
        elif method == "tools/list":
            result = handle_tools_list()
        elif method == "tools/call":
            result = handle_tools_call(request.get("params"), http_url)
        elif method == "ping":
            result = {}
        else:
            raise RpcError(-32601, f"method not found: {method}")
    except RpcError as err:
        return {"jsonrpc": "2.0", "id": request_id, "error": err.to_json()}
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def handle_initialize() -> dict[str, Any]:
    return {
        "protocolVersion": PROTOCOL_VERSION,
        "capabilities": {"tools": {}},
        "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
    }


def handle_tools_list() -> dict[str, Any]:
    return {
        "tools": [
            {
                "name": "session_recall",
                "description": (
                    "Search past session memory (user prompts, assistant messages, "
                    "subagent results, and compact tool references) for relevant "
                    "context. Use when the user's question references prior work, "
                    "decisions, or things \"we\" did — before exploring from scratch."
                ),
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "query": {
                            "type": "string",
                            "description": "Search query (keywords, file names, concepts)",
                        },
                        "limit": {
                            "type": "number",
                            "description": "Max results to return (default 10)",
                        },
                    },
                    "required": ["query"],
                },
            },
            {
                "name": "code_recall",
                "description": (
                    "Search the indexed local codebase for semantically relevant "
                    "functions, classes, or code blocks. AST-chunked via tree-sitter, "
                    "hybrid BM25 + vector. Returns {path, line_start, line_end, "
                    "qualified, body}.\n\nResults are scoped to the indexed root "
                    "containing your current working directory. If that's not the "
                    "repo you want to search, pass `scope=\"all\"` (cross-root) or "
                    "`path` (a specific subtree). If cwd is outside every indexed "
                    "root, no results are returned — pass `scope=\"all\"` explicitly "
                    "to broaden."
                ),
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "query": {
                            "type": "string",
                            "description": "Search query (function names, type names, concepts)",
                        },
                        "limit": {
                            "type": "number",
                            "description": "Max results to return (default 10)",
                        },
                        "language": {
                            "type": "string",
                            "description": (
                                "Filter by language: rust | typescript | javascript "
                                "| python | go | bash"
                            ),
                        },
                        "path": {
                            "type": "string",
                            "description": (
                                "Narrow to files under this path prefix. Must be under "
                                "an indexed root, or no results are returned."
                            ),
                        },
                        "scope": {
                            "type": "string",
                            "description": (
                                "current (default) — scope to the indexed root "
                                "containing cwd; outside-root → empty. all — search "
                                "every indexed root, ignoring cwd."
                            ),
                        },
                    },
                    "required": ["query"],
                },
            },
        ]
    }


def handle_tools_call(params: Any, http_url: str) -> dict[str, Any]:
    """Route a ``tools/call`` to the named tool."""
    name = _str_field(params, "name")
    if name is None:
        raise RpcError(-32602, "missing tool name")
    arguments = params.get("arguments") if isinstance(params, dict) else None
    if arguments is None:
        arguments = {}
    if name in ("session_recall", "memory_recall"):
        return call_recall(arguments, http_url)
    if name == "code_recall":
        return call_code_recall(arguments, http_url)
    raise RpcError(-32602, f"unknown tool: {name}")


def _post_and_render(tool: str, url: str, body: dict[str, Any], render, http_url: str):
    try:
        raw = http_post(url, json.dumps(body))
    except (OSError, http.client.HTTPException, ValueError) as exc:
        msg = str(exc)
        if classify_unreachable(msg):
            return tool_result_text(unreachable_message(http_url), True)
        return tool_result_text(f"{tool} failed: {msg}", True)
    return tool_result_text(render(raw), False)


def call_recall(args: Any, http_url: str) -> dict[str, Any]:
    """Forward a session-recall query to the HTTP server."""
    query = _str_field(args, "query")
    if query is None:
        raise RpcError(-32602, "memory_recall: missing `query`")
    body = {"query": query, "limit": _limit_arg(args)}
    return _post_and_render(
        "session_recall", f"{http_url}/recall", body, format_recall, http_url
    )


def call_code_recall(args: Any, http_url: str) -> dict[str, Any]:
    """Forward a code-search query, with the working directory, to the server."""
    query = _str_field(args, "query")
    if query is None:
        raise RpcError(-32602, "code_recall: missing `query`")
    body: dict[str, Any] = {"query": query, "limit": _limit_arg(args)}
    for key in ("language", "path", "scope"):
        value = _str_field(args, key)
        if value is not None:
            body[key] = value
    # The server derives an automatic scope from the launch directory.
    try:
        body["cwd"] = os.getcwd()
    except OSError:
        pass
    return _post_and_render(
        "code_recall", f"{http_url}/code/search", body, format_code_recall, http_url
    )


def format_code_recall(raw: str) -> str:
    """Render a code-search response as compact text, warnings first."""
    try:
        parsed = json.loads(raw)
    except ValueError:
        return raw
    results = parsed.get("results") if isinstance(parsed, dict) else None
    results = results if isinstance(results, list) else None
    warnings = parsed.get("warnings") if isinstance(parsed, dict) else None
    warnings = warnings if isinstance(warnings, list) else None
    hits = results if results is not None else (parsed if isinstance(parsed, list) else None)

    out = ""
    if warnings is not None:
        out += "".join(f"⚠ {w}\n" for w in warnings if isinstance(w, str))
        if warnings and results is not None:
            out += "\n"

    if hits is None:
        return out + raw
    if not hits:
        return "(no code matches)" if not out else out + "(no code matches)\n"

    for hit in hits:
        path = _str_field(hit, "path") or "?"
        if _str_field(hit, "path") == "":
            path = ""
        line_start = _int_field(hit, "line_start") or 0
        line_end = _int_field(hit, "line_end") or 0
        qualified = _str_field(hit, "qualified") or ""
        body = _str_field(hit, "body") or ""
        score = _float_field(hit, "score") or 0.0
        qual = f" {qualified}" if qualified else ""
        out += f"─── {path}:{line_start}-{line_end}{qual} (rrf {score:.3f}) ───\n{body}\n\n"
    return out


def tool_result_text(text: str, is_error: bool) -> dict[str, Any]:
    """An MCP tool result holding one text item."""
    return {"content": [{"type": "text", "text": text}], "isError": is_error}


def format_recall(raw: str) -> str:
    """Render a session-recall response as one line per hit."""
    try:
        parsed = json.loads(raw)
    except ValueError:
        return raw
    if not isinstance(parsed, list):
        return raw
    if not parsed:
        return "(no relevant memory)"
    lines = []
    for hit in parsed:
        obs = hit.get("obs") if isinstance(hit, dict) else None
        kind = _str_field(obs, "kind")
        session = _str_field(obs, "session")
        kind = "?" if kind is None else kind
        session = "?" if session is None else session
        body = _str_field(obs, "body") or ""
        score = _float_field(hit, "score") or 0.0
        lines.append(
            f"- [{kind} | sess {session[:8]} | rrf {score:.3f}] {trim_oneline(body, 240)}\n"
        )
    return "".join(lines)


def trim_oneline(s: str, max_len: int) -> str:
    """First line of ``s``, stripped, cut to ``max_len`` UTF-8 bytes with an ellipsis."""
    first = s.split("\n", 1)[0]
    if first.endswith("\r"):
        first = first[:-1]
    first = first.strip()
    encoded = first.encode("utf-8")
    if len(encoded) <= max_len:
        return first
    return encoded[:max_len].decode("utf-8", "ignore") + "…"


def http_post(url: str, body: str) -> str:
    """POST a JSON body and return the response text; HTTP errors raise."""
    request = urllib.request.Request(
        url,
        data=body.encode("utf-8"),
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    with urllib.request.urlopen(request, timeout=_HTTP_TIMEOUT_S) as resp:
        return resp.read().decode("utf-8")


def classify_unreachable(err_msg: str) -> bool:
    """True if the error means the server is not reachable at all."""
    lowered = err_msg.lower()
    return any(marker in lowered for marker in _UNREACHABLE_MARKERS)


def unreachable_message(http_url: str) -> str:
    return (
        f"`memorize serve` is not running at {http_url}. "
        "Memory recall is unavailable until it's started. "
        "Start it with `memorize serve` (foreground) or load its launchd "
        "service with `launchctl load`."
    )


def main(argv: list[str] | None = None) -> int:
    """Run the stdio server against the HTTP service at ``--url``."""
    parser = argparse.ArgumentParser(prog="memorize-mcp", description="MCP stdio server")
    parser.add_argument("--url", default=DEFAULT_URL, help="base URL of the HTTP server")
    args = parser.parse_args(argv)
    run_stdio(args.url, sys.stdin, sys.stdout)
    return 0