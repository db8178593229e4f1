import logging
import os
import re
from pathlib import Path
from typing import Iterable, Optional


# Secrets shorter than this are not masked: they would match inside ordinary words and URLs.
MIN_SECRET_LENGTH = 4


class RedactSecretsFilter(logging.Filter):
    """
    Masks known secrets (the login password) in formatted log messages.

    Only whole-token occurrences are replaced, so a secret embedded in a longer word is left alone.
    """

    def __init__(self, secrets: Iterable[str]) -> None:
        super().__init__()
        usable = [s for s in secrets if s and len(s) >= MIN_SECRET_LENGTH]
        self._pattern: Optional[re.Pattern[str]] = None
        if usable:
            alternatives = "|".join(re.escape(s) for s in sorted(usable, key=len, reverse=True))
            self._pattern = re.compile(rf"(?<!\w)(?:{alternatives})(?!\w)")

    def filter(self, record: logging.LogRecord) -> bool:
        if self._pattern is None:
            return True
        msg = record.getMessage()
        masked = self._pattern.sub("***", msg)
        if masked != msg:
            record.msg = masked
            record.args = None
        return True


def configure_logging(level: str = "INFO", file_path: Optional[str] = None, secrets: Iterable[str] = ()) -> None:
    numeric_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if file_path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    redact = RedactSecretsFilter(secrets)
    for h in handlers:
        h.addFilter(redact)

    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        handlers=handlers,
        force=True,  # the CLI reconfigures once the config file has been read
    )

    # Playwright and asyncio get chatty at DEBUG
    for noisy in ("playwright", "asyncio"):
        logging.getLogger(noisy).setLevel(os.getenv("NOISY_LOG_LEVEL", "WARNING"))
