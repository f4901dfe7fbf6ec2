from __future__ import annotations

import argparse
import asyncio
import json
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Sequence

from app import build_facade
from domain.models import AppConfig
from domain.services import FormDetector, PreferenceService
from domain.utils import to_plain_data
from infra.answers import HttpAnswerService
from infra.browser import PlaywrightPage, StaticHtmlPage
from infra.config import FileSystemConfigProvider
from infra.persistence import SQLiteKeyValueStore
from infra.runtime import StructuredLogger, SystemClock, UuidIdGenerator

_PREF_KEYS = ("auto_fill", "min_confidence", "user_id")
_TRUE_WORDS = {"1", "true", "yes", "on"}
_FALSE_WORDS = {"0", "false", "no", "off"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="autofill-cli")
    parser.add_argument("--db-path", default="autofill.db")
    parser.add_argument("--config-dir", default="./config", help="Path to config folder")
    sub = parser.add_subparsers(dest="command", required=True)

    detect_p = sub.add_parser("detect", help="Print the forms detected on a page")
    _add_page_args(detect_p)

    fill_p = sub.add_parser("fill", help="Fill the primary form on a page")
    _add_page_args(fill_p)
    fill_p.add_argument("--retry", action="store_true", help="Validate and retry unresolved fields")
    fill_p.add_argument("--advance", action="store_true", help="Click a safe next-step control when clean")
    fill_p.add_argument("--job-id", default=None)

    watch_p = sub.add_parser("watch", help="Auto-fill forms as they appear on a live page")
    watch_p.add_argument("url")
    watch_p.add_argument("--duration", type=float, default=60.0, help="Seconds to keep watching")
    watch_p.add_argument("--advance", action="store_true")
    watch_p.add_argument("--headless", action="store_true", default=True)
    watch_p.add_argument("--no-headless", dest="headless", action="store_false")

    prefs_p = sub.add_parser("prefs", help="Read or change stored preferences")
    prefs_p.add_argument("action", choices=["get", "set"])
    prefs_p.add_argument("key", choices=_PREF_KEYS)
    prefs_p.add_argument("value", nargs="?")

    sub.add_parser("validate-config")
    return parser


def _add_page_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("url")
    parser.add_argument("--html", default=None, help="Read the page from a local HTML file instead")
    parser.add_argument("--headless", action="store_true", default=True)
    parser.add_argument("--no-headless", dest="headless", action="store_false")


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logger = StructuredLogger(component="autofill-cli")

    if args.command == "validate-config":
        return _handle_validate_config(args)

    if args.command == "prefs":
        with SQLiteKeyValueStore(db_path=args.db_path) as store:
            return _handle_prefs(args, PreferenceService(store=store, clock=SystemClock()))

    if args.command == "detect":
        return asyncio.run(_detect(args, logger))

    if args.command in ("fill", "watch"):
        config_provider = FileSystemConfigProvider(args.config_dir)
        errors = config_provider.validate()
        if errors:
            _print_errors(errors)
            return 1
        cfg = config_provider.get_config()
        if args.command == "fill":
            return asyncio.run(_fill(args, cfg, logger))
        return asyncio.run(_watch(args, cfg, logger))

    raise SystemExit(f"Unsupported command: {args.command}")


def _handle_validate_config(args: argparse.Namespace) -> int:
    config_provider = FileSystemConfigProvider(args.config_dir)
    errors = config_provider.validate()
    if errors:
        _print_errors(errors)
        return 1
    cfg = config_provider.get_config()
    key_hint = f"***{cfg.answer_service_key[-4:]}" if cfg.answer_service_key else "none"
    print(f"Config OK: answer_service={cfg.answer_service_url} key={key_hint}")
    print(f"Retry rounds: {cfg.max_retry_rounds}, request timeout: {cfg.request_timeout}s")
    return 0


def _handle_prefs(args: argparse.Namespace, prefs: PreferenceService) -> int:
    if args.action == "get":
        current = prefs.get_preferences()
        values: dict[str, Any] = {
            "auto_fill": current.auto_fill_enabled,
            "min_confidence": current.min_confidence,
            "user_id": prefs.get_user_id(),
        }
        print(json.dumps(values[args.key]))
        return 0

    if args.value is None:
        raise SystemExit("prefs set requires a value")
    if args.key == "auto_fill":
        word = args.value.strip().lower()
        if word not in _TRUE_WORDS | _FALSE_WORDS:
            raise SystemExit(f"auto_fill expects true/false, got {args.value!r}")
        prefs.set_auto_fill(word in _TRUE_WORDS)
    elif args.key == "min_confidence":
        try:
            prefs.set_min_confidence(float(args.value))
        except ValueError as exc:
            raise SystemExit(str(exc)) from exc
    else:
        prefs.set_user_id(args.value)
    print(f"updated {args.key}")
    return 0


def _print_errors(errors: Sequence[str]) -> None:
    print("Config validation failed:")
    for err in errors:
        print(f"  - {err}")


@asynccontextmanager
async def _open_page(args: argparse.Namespace) -> AsyncIterator[Any]:
    if getattr(args, "html", None):
        yield StaticHtmlPage(Path(args.html).read_text(encoding="utf-8"), url=args.url)
        return
    page = PlaywrightPage(headless=args.headless)
    await page.launch()
    try:
        await page.goto(args.url)
        yield page
    finally:
        await page.close()


async def _detect(args: argparse.Namespace, logger: StructuredLogger) -> int:
    async with _open_page(args) as page:
        snapshot = await page.snapshot()
    result = FormDetector(clock=SystemClock(), logger=logger).detect(snapshot)
    print(json.dumps(to_plain_data(result), indent=2))
    return 0 if result is not None else 1


async def _fill(args: argparse.Namespace, cfg: AppConfig, logger: StructuredLogger) -> int:
    with SQLiteKeyValueStore(db_path=args.db_path) as store:
        async with _open_page(args) as page:
            facade = build_facade(
                page=page,
                answer_service=_answer_service(cfg, logger),
                store=store,
                config=cfg,
                clock=SystemClock(),
                id_generator=UuidIdGenerator(),
                logger=logger,
            )
            command = "fill_with_retry" if args.retry else "fill_application"
            response = await facade.handle(command, {"job_id": args.job_id, "advance": args.advance})
    print(json.dumps(to_plain_data(response), indent=2))
    return 0 if response.success else 1


async def _watch(args: argparse.Namespace, cfg: AppConfig, logger: StructuredLogger) -> int:
    with SQLiteKeyValueStore(db_path=args.db_path) as store:
        async with _open_page(args) as page:
            facade = build_facade(
                page=page,
                answer_service=_answer_service(cfg, logger),
                store=store,
                config=cfg,
                clock=SystemClock(),
                id_generator=UuidIdGenerator(),
                logger=logger,
                mutations=page,
                advance=args.advance,
            )
            scheduler = facade.scheduler
            assert scheduler is not None
            await facade.handle("enable_auto_fill")
            await scheduler.start()
            try:
                await asyncio.sleep(args.duration)
            finally:
                await scheduler.close()
            response = await facade.handle("get_forms")
    print(json.dumps(to_plain_data(response), indent=2))
    return 0


def _answer_service(cfg: AppConfig, logger: StructuredLogger) -> HttpAnswerService:
    return HttpAnswerService(
        base_url=cfg.answer_service_url,
        api_key=cfg.answer_service_key,
        timeout=cfg.request_timeout,
        logger=logger,
    )


if __name__ == "__main__":
    raise SystemExit(main())
