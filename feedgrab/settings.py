from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class Timings:
    """Every fixed pause the engine uses, in seconds."""

    settle_delay: float = 15.0                    # After each scroll to the bottom
    nudge_delay: float = 2.0                      # Between the two halves of a nudge
    resume_backoff: float = 60.0                  # Operator chose "resume" at the stagnation prompt
    snapshot_retry_delay: float = 1.0             # Page markup was unavailable
    captcha_poll: float = 1.0                     # Captcha marker re-check period
    captcha_wait: float = 3.0                     # Sleep step while the captcha is up
    retry_delay: float = 3.0                      # Between download attempts
    container_check_delay: float = 2.0            # Between checks for the feed container


@dataclass
class Settings:
    output_root: Path = Path("videos")
    save_json: bool = False
    cookie_file: Path = Path("cookies.txt")
    tool: str = "yt-dlp"
    fragments: int = 4
    max_attempts: int = 7
    storage_state: str = "auth.json"
    headless: bool = False
    auto_finish: bool = False
    timings: Timings = field(default_factory=Timings)

    @property
    def metadata_dir(self) -> Optional[Path]:
        """Sidecar info-json directory; None unless metadata is being kept."""
        return self.output_root / "jsons" if self.save_json else None
