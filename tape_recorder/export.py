"""Export a tape file to Markdown or a compact JSON index."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from tape_recorder.tape import load_tape

BODY_PREVIEW_CHARS = 2000


def export_main(argv: list[str] | None = None) -> int:
    """Entry point for the export subcommand."""
    parser = argparse.ArgumentParser(
        prog="tape-recorder export",
        description="Export a recorded tape to Markdown or JSON.",
    )
    parser.add_argument("tape_file", type=Path, help="Path to the .json tape file")
    parser.add_argument("-o", "--output", type=Path, help="Output file path (default: stdout)")
    parser.add_argument(
        "--format",
        choices=["markdown", "json"],
        default=None,
        help="Output format (default: inferred from -o extension, or markdown)",
    )

    args = parser.parse_args(argv)

    if not args.tape_file.exists():
        print(f"Error: tape file not found: {args.tape_file}", file=sys.stderr)
        return 1

    interactions = [i for i in load_tape(args.tape_file) if isinstance(i, dict)]
    if not interactions:
        print("Error: no interactions found in tape file", file=sys.stderr)
        return 1

    # Determine format
    fmt = args.format
    if fmt is None:
        if args.output and args.output.suffix == ".json":
            fmt = "json"
        else:
            fmt = "markdown"

    if fmt == "json":
        output = _export_json(interactions)
    else:
        output = _export_markdown(args.tape_file.stem, interactions)

    if args.output:
        args.output.write_text(output, encoding="utf-8")
        print(f"Exported {len(interactions)} interactions to {args.output}")
    else:
        print(output)

    return 0


def _status_code(interaction: dict) -> str:
    parts = interaction.get("response", {}).get("status", "").split(" ", 2)
    return parts[1] if len(parts) > 1 else "?"


def _preview(text: str) -> str:
    if len(text) > BODY_PREVIEW_CHARS:
        return text[:BODY_PREVIEW_CHARS] + f"\n... ({len(text) - BODY_PREVIEW_CHARS} more chars)"
    return text


def _export_markdown(tape_name: str, interactions: list[dict]) -> str:
    """Export interactions as Markdown."""
    lines: list[str] = []
    lines.append(f"# Tape: {tape_name}\n")

    methods: dict[str, int] = {}
    codes: dict[str, int] = {}
    for i in interactions:
        method = i.get("request", {}).get("method", "?")
        methods[method] = methods.get(method, 0) + 1
        code = _status_code(i)
        codes[code] = codes.get(code, 0) + 1

    lines.append("## Summary\n")
    lines.append(f"- **Interactions**: {len(interactions)}")
    lines.append(f"- **Methods**: {', '.join(f'{m} ({n})' for m, n in sorted(methods.items()))}")
    lines.append(f"- **Status codes**: {', '.join(f'{c} ({n})' for c, n in sorted(codes.items()))}")
    first = interactions[0].get("timestamp")
    last = interactions[-1].get("timestamp")
    if first and last:
        lines.append(f"- **Recorded**: {first} → {last}")
    lines.append("")

    for idx, i in enumerate(interactions, 1):
        req = i.get("request", {})
        resp = i.get("response", {})

        lines.append(f"---\n\n## {idx}. {req.get('method', '?')} {req.get('url', '')}\n")
        lines.append(f"**Status**: `{resp.get('status', '')}` | **Recorded**: {i.get('timestamp', '?')}\n")

        headers = req.get("headers") or {}
        if headers:
            lines.append("### Request headers\n")
            for name, value in headers.items():
                lines.append(f"- `{name}: {value}`")
            lines.append("")

        data = req.get("data") or ""
        if data:
            lines.append("### Request body\n")
            lines.append(f"```\n{_preview(data)}\n```\n")

        resp_headers = [h for h in resp.get("headers", []) if not h.startswith("HTTP/")]
        if resp_headers:
            lines.append("### Response headers\n")
            for h in resp_headers:
                lines.append(f"- `{h}`")
            lines.append("")

        body = resp.get("body") or ""
        if body:
            lines.append("### Response body\n")
            lines.append(f"```\n{_preview(body)}\n```\n")

    return "\n".join(lines)


def _export_json(interactions: list[dict]) -> str:
    """Export a compact index of the tape."""
    index = []
    for i in interactions:
        req = i.get("request", {})
        resp = i.get("response", {})
        index.append(
            {
                "timestamp": i.get("timestamp"),
                "method": req.get("method"),
                "url": req.get("url"),
                "status": resp.get("status"),
                "request_bytes": len((req.get("data") or "").encode("utf-8")),
                "response_bytes": len((resp.get("body") or "").encode("utf-8")),
            }
        )

    return json.dumps(index, indent=2, ensure_ascii=False)
