from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import livegrid
from livegrid.config import ensure_device_id, load_settings, save_settings

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> Optional[Path]:
    level_name = "DEBUG" if debug else os.environ.get("LOGLEVEL", "WARNING").upper()
    level = getattr(logging, level_name, logging.WARNING)

    try:
        from platformdirs import user_cache_dir

        logs_dir = Path(user_cache_dir("livegrid")) / "logs"
        logs_dir.mkdir(parents=True, exist_ok=True)
    except Exception:  # noqa: BLE001
        logging.basicConfig(level=level)
        return None

    try:
        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        log_path = logs_dir / f"livegrid-{timestamp}.log"

        # The TUI owns the terminal, so the file is the only handler.
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))

        logging.basicConfig(level=level, handlers=[file_handler])
        logger.info("Writing log to %s", log_path)
        return log_path
    except Exception:  # noqa: BLE001
        logging.basicConfig(level=level)
        return None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="livegrid", description="Live TV guide for Jellyfin")
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("--version", action="store_true")
    parser.add_argument("--server", help="Jellyfin server URL")
    parser.add_argument("--user", help="Jellyfin user id")
    parser.add_argument("--token", help="Jellyfin access token")
    parser.add_argument("--save", action="store_true", help="Persist --server/--user/--token to the config file")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.version:
        print(f"livegrid {livegrid.__version__} ({livegrid.__file__})")
        return 0

    _configure_logging(debug=args.debug)

    settings = load_settings()
    if args.server:
        settings.server_url = args.server
    if args.user:
        settings.user_id = args.user
    if args.token:
        settings.access_token = args.token
    fresh_device = not settings.device_id
    ensure_device_id(settings)
    if args.save or fresh_device:
        save_settings(settings)

    if not settings.is_configured():
        print(
            "livegrid: no server configured. Run with --server URL --user ID --token TOKEN --save",
            file=sys.stderr,
        )
        return 2

    from livegrid.api.client import JellyfinClient
    from livegrid.api.server import ThreadedMediaServer
    from livegrid.tui import LiveGridApp

    client = JellyfinClient(
        server_url=settings.server_url,
        user_id=settings.user_id,
        access_token=settings.access_token,
        device_id=settings.device_id,
        device_name=settings.device_name,
        client_name=settings.client_name,
        version=livegrid.__version__,
    )

    def load_image(item_id: str) -> bytes:
        return client.fetch_image_bytes(client.image_url(item_id, max_width=400))

    app = LiveGridApp(
        ThreadedMediaServer(client),
        settings,
        image_loader=load_image,
        stream_url=client.live_stream_url,
        debug=args.debug,
    )
    app.run()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
