from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Sequence

from .config import load_config, resolve_runtime_secrets
from .config_schema import AppConfig
from .cookies import audit_session_cookies, normalize_cookies, parse_cookie_input
from .errors import BrowserError, ConfigError, SinkError, StorageError
from .retry import RetryEvent
from .run_log import RunLogger
from .runner import run_harvest
from .sink import ApifyDatasetSink, JsonlSink, MemorySink

_DRY_RUN_MAX_RESULTS = 5


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fb_search")

    subparsers = parser.add_subparsers(dest="command", required=True)

    dry = subparsers.add_parser(
        "dry-run",
        help="Run one small harvest into memory and print what was collected.",
    )
    dry.add_argument(
        "--config",
        required=True,
        help="Path to YAML config file.",
    )
    dry.add_argument(
        "--offline",
        action="store_true",
        help="Run without network calls against a canned search page.",
    )
    dry.set_defaults(_handler=_cmd_dry_run)

    run = subparsers.add_parser(
        "run",
        help="Harvest search results into the configured sink.",
    )
    run.add_argument(
        "--config",
        required=True,
        help="Path to YAML config file.",
    )
    run.add_argument(
        "--out",
        required=True,
        help="Output directory for posts, session state and logs.",
    )
    run.set_defaults(_handler=_cmd_run)

    check = subparsers.add_parser(
        "check-cookies",
        help="Normalize the configured cookies and report problems without a browser.",
    )
    check.add_argument(
        "--config",
        required=True,
        help="Path to YAML config file.",
    )
    check.set_defaults(_handler=_cmd_check_cookies)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def _cmd_dry_run(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    small = cfg.input.model_copy(update={"max_results": min(cfg.input.max_results, _DRY_RUN_MAX_RESULTS)})
    cfg = cfg.model_copy(update={"input": small})

    if bool(getattr(args, "offline", False)):
        from .offline import OfflineBrowser

        browser = OfflineBrowser()
    else:
        from .playwright_driver import PlaywrightBrowser

        browser = PlaywrightBrowser(cfg.browser)

    sink = MemorySink()
    log = RunLogger(None, echo=sys.stderr)
    result = asyncio.run(run_harvest(cfg, sink=sink, browser=browser, logger=log))

    posts = [r for r in sink.records if "_summary" not in r]
    print(f"status={result.status}")
    print(f"query={cfg.input.query}")
    print(f"collected_count={len(posts)}")
    print(f"rounds={result.rounds}")
    print(f"stop_reason={result.stop_reason}")
    print("example_post=")
    print(json.dumps(posts[0] if posts else None, indent=2, ensure_ascii=False, sort_keys=True))

    return 0


def _apify_retry_logger(log: RunLogger):
    def _on_retry(event: RetryEvent) -> None:
        log.warning(
            "sink_retry",
            operation=event.operation,
            attempt=event.failure_attempt,
            delay_seconds=round(event.delay_seconds, 2),
            reason=event.reason,
            error=event.error_message,
        )

    return _on_retry


def _open_sink(cfg: AppConfig, out_dir: Path, log: RunLogger) -> JsonlSink | ApifyDatasetSink:
    secrets = resolve_runtime_secrets(cfg)
    if cfg.sink.kind == "apify":
        return ApifyDatasetSink(
            secrets.apify_token or "",
            cfg.sink.dataset_id or "",
            on_retry=_apify_retry_logger(log),
        )
    return JsonlSink(out_dir / cfg.sink.jsonl_filename, overwrite=True)


def _cmd_run(args: argparse.Namespace) -> int:
    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)

    log_path = out_dir / "run.log"
    with RunLogger.open(log_path, overwrite=True) as log:
        log.info(
            "run_command_started",
            config_path=str(args.config),
            out_dir=str(out_dir),
        )

        try:
            cfg = load_config(args.config)
            sink = _open_sink(cfg, out_dir, log)

            log.info(
                "config_loaded",
                config_path=str(args.config),
                sink=cfg.sink.kind,
                headless=cfg.browser.headless,
            )

            from .playwright_driver import PlaywrightBrowser

            state_path = out_dir / "session_pool.json"
            try:
                result = asyncio.run(
                    run_harvest(
                        cfg,
                        sink=sink,
                        browser=PlaywrightBrowser(cfg.browser),
                        logger=log,
                        state_path=state_path,
                    )
                )
            finally:
                sink.close()

            print(f"status={result.status}")
            print(f"run_id={result.run_id}")
            print(f"total={result.total}")
            print(f"rounds={result.rounds}")
            print(f"stop_reason={result.stop_reason}")
            print(f"identity_retired={str(result.identity_retired).lower()}")
            if isinstance(sink, JsonlSink):
                print(f"posts_jsonl={sink.path}")
            print(f"run_log={log_path}")

            return 0
        except Exception as e:
            log.exception("run_command_failed", exc=e)
            raise


def _cmd_check_cookies(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    parsed = parse_cookie_input(cfg.input.cookies, cfg.input.cookies_json)
    cookies = normalize_cookies(parsed.raw)

    for warning in parsed.warnings:
        _eprint(f"warning: {warning}")

    print(f"source={parsed.source}")
    print(f"parsed_count={len(parsed.raw)}")
    print(f"cookie_count={len(cookies)}")
    for c in cookies:
        print(
            f"cookie={c.name} domain={c.domain} path={c.path} "
            f"httpOnly={str(c.http_only).lower()} secure={str(c.secure).lower()} sameSite={c.same_site}"
        )

    problems = audit_session_cookies([c.to_browser() for c in cookies])
    for problem in problems:
        print(f"problem={problem}")

    return 0 if cookies and not problems else 4


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        handler = getattr(args, "_handler")
        return int(handler(args))
    except ConfigError as e:
        _eprint(str(e))
        return 2
    except (BrowserError, SinkError, StorageError) as e:
        _eprint(str(e))
        return 3
    except KeyboardInterrupt:
        _eprint("Interrupted")
        return 130
    except Exception as e:
        _eprint(f"Unexpected error: {e}")
        return 1
