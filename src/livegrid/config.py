import json
import uuid
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional

from platformdirs import user_config_dir


@dataclass
class Settings:
    server_url: str = ""
    user_id: str = ""
    access_token: str = ""
    device_id: str = ""
    device_name: str = "livegrid"
    client_name: str = "livegrid"

    # Guide geometry. Pixels are the engine's unit; the terminal grid maps
    # pixels_per_column pixels onto one character cell.
    channels_per_batch: int = 50
    hours_to_display: int = 6
    pixels_per_hour: int = 600
    extend_hours: int = 3
    pixels_per_column: int = 20

    vertical_threshold_rows: int = 10
    horizontal_threshold_pixels: int = 1000
    number_debounce_seconds: float = 2.0

    player_preference: str = "auto"

    def is_configured(self) -> bool:
        return bool(self.server_url and self.user_id and self.access_token)


def config_path() -> Path:
    cfg_dir = Path(user_config_dir("livegrid"))
    cfg_dir.mkdir(parents=True, exist_ok=True)
    return cfg_dir / "config.json"


def load_settings(path: Optional[Path] = None) -> Settings:
    path = path or config_path()
    if not path.exists():
        return Settings()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        return Settings(**{k: v for k, v in raw.items() if k in Settings.__annotations__})
    except Exception:
        return Settings()


def save_settings(settings: Settings, path: Optional[Path] = None) -> None:
    path = path or config_path()
    path.write_text(json.dumps(asdict(settings), indent=2) + "\n", encoding="utf-8")


def ensure_device_id(settings: Settings) -> str:
    if not settings.device_id:
        settings.device_id = uuid.uuid4().hex
    return settings.device_id
