from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from dataclasses import dataclass
from typing import List, Optional

from platformdirs import user_cache_dir

logger = logging.getLogger(__name__)


@dataclass
class PlayerCommand:
    argv: List[str]


def build_player_command(url: str) -> Optional[PlayerCommand]:
    if shutil.which("mpv"):
        return PlayerCommand(argv=["mpv", "--no-terminal", "--msg-level=all=fatal", url])

    if shutil.which("ffplay"):
        return PlayerCommand(argv=["ffplay", "-autoexit", "-loglevel", "error", url])

    return None


def build_player_command_with_preference(
    url: str, *, preference: str = "auto", debug: bool = False
) -> Optional[PlayerCommand]:
    pref = (preference or "auto").strip().lower()
    cmd: Optional[PlayerCommand] = None
    if pref == "mpv" and shutil.which("mpv"):
        cmd = PlayerCommand(argv=["mpv", "--no-terminal", "--msg-level=all=fatal", url])
    elif pref == "ffplay" and shutil.which("ffplay"):
        cmd = PlayerCommand(argv=["ffplay", "-autoexit", "-loglevel", "error", url])
    else:
        # Unknown or missing preference: fall back to whatever is installed.
        cmd = build_player_command(url)

    if cmd is None or not debug:
        return cmd

    try:
        log_dir = user_cache_dir("livegrid")
        os.makedirs(log_dir, exist_ok=True)
        ts = time.strftime("%Y%m%d-%H%M%S", time.localtime())
        log_path = os.path.join(log_dir, f"player-{ts}.log")
    except OSError:
        log_path = f"player-{int(time.time())}.log"

    argv = list(cmd.argv)
    if argv and argv[0].endswith("mpv"):
        argv = ["mpv", "--no-terminal", "--msg-level=all=info", f"--log-file={log_path}", url]
    elif argv and argv[0].endswith("ffplay"):
        argv = ["ffplay", "-autoexit", "-loglevel", "info", url]
    return PlayerCommand(argv=argv)


def run_player(cmd: PlayerCommand) -> subprocess.Popen:
    logger.info("Starting player: %s", cmd.argv[0])
    proc = subprocess.Popen(
        cmd.argv,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )

    # If the player dies immediately, surface the reason.
    time.sleep(0.6)
    rc = proc.poll()
    if rc is not None and rc != 0:
        out, err = proc.communicate(timeout=2)
        msg = (err or out or "").strip()
        msg = msg[-1200:] if len(msg) > 1200 else msg
        raise RuntimeError(f"Player exited immediately (code {rc}). {msg}")

    return proc


def watch_channel(stream_url: str, *, preference: str = "auto", debug: bool = False) -> subprocess.Popen:
    cmd = build_player_command_with_preference(stream_url, preference=preference, debug=debug)
    if cmd is None:
        raise RuntimeError("No player found (install mpv or ffplay)")
    return run_player(cmd)
