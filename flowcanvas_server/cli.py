#!/usr/bin/env python3
"""FlowCanvas CLI - serve the canvas and manage stored workflows."""

import argparse
import json
import logging
import sys
from pathlib import Path

import httpx

from flowcanvas.validation import (
    InvalidWorkflowError,
    parse_workflow,
    validate_workflow,
    validation_summary,
)

from .config import load_settings


def _json_out(data, code: int = 0):
    print(json.dumps(data))
    sys.exit(code)


def _api_base(args) -> str:
    return f"{args.url.rstrip('/')}/api"


def api_request(args, method: str, endpoint: str, **kwargs) -> httpx.Response:
    """Make a request to the FlowCanvas server, exiting with a JSON error on failure."""
    url = f"{_api_base(args)}{endpoint}"
    try:
        with httpx.Client(timeout=30.0) as client:
            response = client.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        _json_out({"status": "error", "error": f"Connection failed: {e}. Is the server running?"}, 1)

    if response.status_code >= 400:
        try:
            detail = response.json().get("detail", "Unknown error")
        except ValueError:
            detail = response.text
        _json_out({"status": "error", "error": f"API error ({response.status_code}): {detail}"}, 1)
    return response


# ── Service ──────────────────────────────────────────────────────────────────

def cmd_serve(args):
    import uvicorn

    from .main import app

    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=args.host or settings.host, port=args.port or settings.port)


# ── Workflows ────────────────────────────────────────────────────────────────

def cmd_list(args):
    _json_out(api_request(args, "GET", "/workflows").json())


def cmd_new(args):
    _json_out(api_request(args, "POST", "/workflows", params={"title": args.title}).json())


def cmd_open(args):
    _json_out(api_request(args, "POST", f"/workflows/{args.workflow_id}/open").json())


def cmd_delete(args):
    _json_out(api_request(args, "DELETE", f"/workflows/{args.workflow_id}").json())


def cmd_export(args):
    text = api_request(args, "GET", "/canvas/export").text
    if args.output:
        Path(args.output).write_text(text)
        _json_out({"status": "exported", "file_path": args.output})
    print(text)
    sys.exit(0)


def cmd_import(args):
    try:
        text = Path(args.file_path).read_text()
    except OSError as e:
        _json_out({"status": "error", "error": str(e)}, 1)
    _json_out(api_request(args, "POST", "/canvas/import", content=text.encode("utf-8"),
                          headers={"Content-Type": "application/json"}).json())


# ── Local ────────────────────────────────────────────────────────────────────

def cmd_validate(args):
    try:
        text = Path(args.file_path).read_text()
    except OSError as e:
        _json_out({"status": "error", "error": str(e)}, 1)

    try:
        workflow = parse_workflow(text)
    except InvalidWorkflowError as e:
        _json_out({"status": "error", "error": str(e)}, 1)

    issues = validate_workflow(workflow)
    summary = validation_summary(issues)
    _json_out({
        "status": "ok" if summary["valid"] else "invalid",
        "workflow_id": workflow.id,
        "issues": [issue.to_dict() for issue in issues],
        "summary": summary,
    }, 0 if summary["valid"] else 1)


def build_parser() -> argparse.ArgumentParser:
    settings = load_settings()
    parser = argparse.ArgumentParser(description="FlowCanvas CLI")
    parser.add_argument("--url", default=settings.api_url, help="Server base URL")
    sub = parser.add_subparsers(dest="command", required=True)

    # Service
    p = sub.add_parser("serve")
    p.add_argument("--host", default=None)
    p.add_argument("--port", type=int, default=None)

    # Workflows
    sub.add_parser("list")

    p = sub.add_parser("new")
    p.add_argument("--title", default="New Workflow")

    p = sub.add_parser("open")
    p.add_argument("workflow_id")

    p = sub.add_parser("delete")
    p.add_argument("workflow_id")

    p = sub.add_parser("export")
    p.add_argument("--output", "-o", default=None)

    p = sub.add_parser("import")
    p.add_argument("file_path")

    # Local
    p = sub.add_parser("validate")
    p.add_argument("file_path")

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    cmd_map = {
        "serve": cmd_serve,
        "list": cmd_list,
        "new": cmd_new,
        "open": cmd_open,
        "delete": cmd_delete,
        "export": cmd_export,
        "import": cmd_import,
        "validate": cmd_validate,
    }
    cmd_map[args.command](args)


if __name__ == "__main__":
    main()
