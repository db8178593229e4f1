from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import time
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .browser.flow import perform_social_login
from .config import AppConfig, load_config, validate_credentials
from .logging_config import configure_logging
from .models import ExtractionResult
from .util.debug_bundle import create_debug_bundle


logger = logging.getLogger("social_login")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="social_login")
    p.add_argument(
        "--env-file",
        default=".env",
        help="Path to a dotenv file (default: .env). If missing, env vars must already be set.",
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    login = sub.add_parser("login", help="Run the social login in a browser and save cookies + web storage")
    login.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")
    login.add_argument("--headless", action="store_true", help="Run the browser headless (overrides config)")
    login.add_argument("--logs", action="store_true", help="Log extracted cookies and storage (contains secrets)")
    login.add_argument(
        "--out",
        default="",
        help="Where to write the extraction result JSON (default: output.result_path, data/session.json)",
    )
    login.add_argument(
        "--storage-state-out",
        default="",
        help="Also write a Playwright storage_state JSON for reusing the session in a new browser context.",
    )

    check = sub.add_parser(
        "check-config",
        help="Validate configuration and print it with secrets redacted. Does not start a browser.",
    )
    check.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")
    return p


def _write_json(path: str, data: object) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
    return out


def _save_outputs(cfg: AppConfig, result: ExtractionResult, *, out: str, storage_state_out: str) -> None:
    result_path = out or cfg.output.result_path
    if result_path:
        p = _write_json(result_path, result.model_dump())
        logger.info("Wrote extraction result: %s", p)

    state_path = storage_state_out or cfg.output.storage_state_path
    if state_path:
        p = _write_json(state_path, result.to_storage_state())
        logger.info("Wrote Playwright storage state: %s", p)


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)

    # Default logging: can be overridden once config is loaded.
    configure_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    if args.cmd == "check-config":
        cfg = load_config(args.config)
        validate_credentials(cfg.login)
        print(json.dumps({"login": cfg.login.redacted(), "output": cfg.output.model_dump()}, indent=2))
        return 0

    if args.cmd == "login":
        cfg = load_config(args.config)
        configure_logging(level=cfg.logging.level, file_path=cfg.logging.file_path, secrets=[cfg.login.password])

        updates = {}
        if args.headless:
            updates["headless"] = True
        if args.logs:
            updates["logs"] = True
        login_cfg = cfg.login.model_copy(update=updates) if updates else cfg.login

        logger.info("Starting social login (url=%s headless=%s popup=%s)", login_cfg.login_url, login_cfg.headless, login_cfg.is_popup)
        t0 = time.time()
        try:
            result = asyncio.run(perform_social_login(login_cfg))
        except Exception:
            logger.error("Social login failed (seconds=%.2f)", time.time() - t0)
            try:
                bundle = create_debug_bundle(
                    debug_dir=login_cfg.debug_dir,
                    log_file=cfg.logging.file_path,
                    out_dir="data",
                    label="social_login",
                    extra_paths=[login_cfg.screenshot_path],
                )
                logger.error("Wrote debug bundle: %s", bundle)
            except Exception:
                logger.debug("Failed to create debug bundle.", exc_info=True)
            raise

        logger.info(
            "Social login complete (seconds=%.2f cookies=%d local_storage=%d session_storage=%d)",
            time.time() - t0,
            len(result.cookies),
            len(result.local_storage),
            len(result.session_storage),
        )
        _save_outputs(cfg, result, out=args.out, storage_state_out=args.storage_state_out)
        return 0

    raise SystemExit(f"Unknown command: {args.cmd}")
