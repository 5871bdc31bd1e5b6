#!/usr/bin/env python3
"""
Command-line front end for mediafetch.
- info: resolve metadata through the provider chain and print the canonical JSON.
- download: stream yt-dlp output for a URL into a file (or stdout).
- providers: print the configured provider order.
- serve: run the HTTP API with uvicorn.
"""

import argparse
import json
import logging
import os
import sys

from engine.errors import AllProvidersExhausted, MediafetchError, RegistryConfigError
from engine.extractor import resolve_ytdlp_binary
from engine.registry import load_registry
from engine.resolver import MetadataResolver
from engine.streaming import ExtractorProcess, copy_to, format_from_request, plan_download


def _setup_console_logging(verbose):
    root = logging.getLogger("")
    for handler in list(root.handlers):
        if handler.get_name() == "mediafetch-console":
            root.removeHandler(handler)
    console = logging.StreamHandler(sys.stderr)
    console.set_name("mediafetch-console")
    console.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.addHandler(console)


def cmd_info(args):
    registry = load_registry(args.providers)
    resolver = MetadataResolver(registry, extractor_binary=resolve_ytdlp_binary())
    try:
        info = resolver.resolve(args.url)
    except AllProvidersExhausted as exc:
        logging.error("Failed to fetch video info: %s", exc)
        return 1
    print(json.dumps(info.to_payload(), indent=2, ensure_ascii=False))
    return 0


def cmd_download(args):
    fmt = format_from_request(args.type, args.quality)
    plan = plan_download(args.url, fmt, binary=resolve_ytdlp_binary())
    output = args.output or plan.filename
    try:
        with ExtractorProcess(plan.argv) as process:
            if output == "-":
                written = copy_to(process, sys.stdout.buffer)
            else:
                with open(output, "wb") as f:
                    written = copy_to(process, f)
    except MediafetchError as exc:
        logging.error("Download failed: %s", exc)
        if output != "-" and os.path.exists(output):
            os.remove(output)
        return 1
    logging.info("Saved %d bytes to %s", written, output)
    return 0


def cmd_providers(args):
    registry = load_registry(args.providers)
    print(json.dumps(registry.describe(), indent=2))
    return 0


def cmd_serve(args):
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=False)
    return 0


def build_parser():
    parser = argparse.ArgumentParser(prog="mediafetch")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    info = sub.add_parser("info", help="Resolve metadata and available formats for a URL.")
    info.add_argument("url")
    info.add_argument("--providers", help="Provider config JSON (defaults to CONFIG_DIR/providers.json).")
    info.set_defaults(func=cmd_info)

    download = sub.add_parser("download", help="Download a URL through yt-dlp.")
    download.add_argument("url")
    download.add_argument("--type", choices=["mp3", "mp4"], default="mp4")
    download.add_argument("--quality", default="best", help="1080p, 720p, 480p or best.")
    download.add_argument("-o", "--output", help="Output file, or '-' for stdout.")
    download.set_defaults(func=cmd_download)

    providers = sub.add_parser("providers", help="Print the provider order.")
    providers.add_argument("--providers", help="Provider config JSON (defaults to CONFIG_DIR/providers.json).")
    providers.set_defaults(func=cmd_providers)

    serve = sub.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", default=os.environ.get("MEDIAFETCH_HOST") or "127.0.0.1")
    serve.add_argument("--port", type=int, default=int(os.environ.get("MEDIAFETCH_PORT") or "8000"))
    serve.set_defaults(func=cmd_serve)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    _setup_console_logging(args.verbose)
    try:
        code = args.func(args)
    except RegistryConfigError as exc:
        logging.error("Invalid provider config: %s", exc)
        code = 2
    sys.exit(code)


if __name__ == "__main__":
    main()
