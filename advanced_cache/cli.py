from __future__ import annotations

import argparse
import asyncio
import json
import sys
import uuid
from pathlib import Path
from typing import Any, Sequence
from urllib.parse import quote

import aiohttp

from advanced_cache.infrastructure.tls import build_tls_client_context

REQUEST_ID_HEADER = "x-request-id"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="advanced-cache")
    parser.add_argument(
        "--target",
        default="127.0.0.1:8080",
        help="cache service address (host:port)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=5.0,
        help="per-request timeout in seconds",
    )
    parser.add_argument(
        "--request-id",
        default=None,
        help="override request id sent as x-request-id",
    )
    parser.add_argument(
        "--show-request-id",
        action="store_true",
        help="print the server x-request-id response header to stderr",
    )
    parser.add_argument(
        "--tls",
        action="store_true",
        help="use https when connecting",
    )
    parser.add_argument(
        "--tls-ca",
        default=None,
        help="path to PEM-encoded CA bundle (optional)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    get_parser = subparsers.add_parser("get", help="get a value")
    get_parser.add_argument("key")
    get_parser.add_argument(
        "--format",
        choices=("json", "text"),
        default="json",
        help="print the value as JSON, or strings verbatim with text",
    )
    get_parser.add_argument(
        "--output",
        default=None,
        help="write the JSON value to a file instead of printing",
    )

    set_parser = subparsers.add_parser("set", help="set a value")
    set_parser.add_argument("key")
    set_parser.add_argument("value", nargs="?", help="value as text")
    set_parser.add_argument("--ttl-ms", type=int, default=None, help="ttl in milliseconds (default: cache default)")
    set_group = set_parser.add_mutually_exclusive_group(required=False)
    set_group.add_argument("--json", dest="value_json", default=None, help="value as a JSON document")
    set_group.add_argument("--value-file", default=None, help="read a JSON value from a file")

    delete_parser = subparsers.add_parser("delete", help="delete a key")
    delete_parser.add_argument("key")

    subparsers.add_parser("keys", help="list live keys, one per line")
    subparsers.add_parser("clear", help="remove every entry")
    subparsers.add_parser("stats", help="print cache statistics as json")

    return parser


def _parse_set_value(args: argparse.Namespace) -> Any:
    if args.value_file:
        return json.loads(Path(args.value_file).read_text(encoding="utf-8"))
    if args.value_json is not None:
        return json.loads(args.value_json)
    if args.value is not None:
        return args.value
    raise ValueError("set requires a value (positional, --json, or --value-file)")


def _validate_set_args(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    if args.command != "set":
        return
    if args.value is not None and any([args.value_file, args.value_json]):
        parser.error("set: positional value cannot be combined with --json/--value-file")


def _format_value(value: Any, fmt: str) -> str:
    if fmt == "text" and isinstance(value, str):
        return value
    return json.dumps(value)


def _base_url(args: argparse.Namespace) -> str:
    scheme = "https" if args.tls else "http"
    return f"{scheme}://{args.target}"


def _key_url(args: argparse.Namespace, key: str) -> str:
    return f"{_base_url(args)}/cache/{quote(key, safe='')}"


def _report_request_id(args: argparse.Namespace, response: aiohttp.ClientResponse) -> None:
    response_request_id = response.headers.get(REQUEST_ID_HEADER)
    if args.show_request_id and response_request_id:
        print(f"{REQUEST_ID_HEADER}={response_request_id}", file=sys.stderr)


async def run(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    _validate_set_args(parser, args)

    request_id = args.request_id or uuid.uuid4().hex
    headers = {REQUEST_ID_HEADER: request_id}
    ssl_context = build_tls_client_context(args.tls_ca) if args.tls else None
    timeout = aiohttp.ClientTimeout(total=args.timeout)

    try:
        async with aiohttp.ClientSession(
            headers=headers,
            timeout=timeout,
            connector=aiohttp.TCPConnector(ssl=ssl_context) if ssl_context else None,
        ) as session:
            if args.command == "get":
                async with session.get(_key_url(args, args.key)) as response:
                    _report_request_id(args, response)
                    if response.status == 404:
                        return 1
                    if response.status != 200:
                        print(f"ERROR: {await response.text()}", file=sys.stderr)
                        return 2
                    payload = await response.json()

                if args.output:
                    Path(args.output).write_text(json.dumps(payload["value"]), encoding="utf-8")
                    return 0

                print(_format_value(payload["value"], args.format))
                return 0

            if args.command == "set":
                body: dict[str, Any] = {"value": _parse_set_value(args)}
                if args.ttl_ms is not None:
                    body["ttl_ms"] = args.ttl_ms
                async with session.put(_key_url(args, args.key), json=body) as response:
                    _report_request_id(args, response)
                    if response.status != 200:
                        print(f"ERROR: {await response.text()}", file=sys.stderr)
                        return 2

                print("OK")
                return 0

            if args.command == "delete":
                async with session.delete(_key_url(args, args.key)) as response:
                    _report_request_id(args, response)
                    if response.status == 404:
                        return 1
                    if response.status != 200:
                        print(f"ERROR: {await response.text()}", file=sys.stderr)
                        return 2

                print("OK")
                return 0

            if args.command == "clear":
                async with session.post(f"{_base_url(args)}/cache/clear") as response:
                    _report_request_id(args, response)
                    if response.status != 200:
                        print(f"ERROR: {await response.text()}", file=sys.stderr)
                        return 2

                print("OK")
                return 0

            if args.command == "keys":
                async with session.get(f"{_base_url(args)}/cache") as response:
                    _report_request_id(args, response)
                    if response.status != 200:
                        print(f"ERROR: {await response.text()}", file=sys.stderr)
                        return 2
                    payload = await response.json()

                for key in payload["keys"]:
                    print(key)
                return 0

            if args.command == "stats":
                async with session.get(f"{_base_url(args)}/stats") as response:
                    _report_request_id(args, response)
                    if response.status != 200:
                        print(f"ERROR: {await response.text()}", file=sys.stderr)
                        return 2
                    payload = await response.json()

                stats = {
                    k: payload[k]
                    for k in ("size", "max_size", "total_hits", "avg_hits", "hit_rate")
                    if k in payload
                }
                print(json.dumps(stats))
                return 0

            parser.error(f"unknown command: {args.command}")
            return 2
    except aiohttp.ClientError as exc:
        print(f"request failed: {exc}", file=sys.stderr)
        return 2
    except Exception as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


def main() -> None:
    raise SystemExit(asyncio.run(run()))


if __name__ == "__main__":
    main()
