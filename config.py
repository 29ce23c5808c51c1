import logging
import os
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

_ENV_PATH = Path(__file__).resolve().parent / ".env"

load_dotenv(dotenv_path=_ENV_PATH, override=False)


def _to_int(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    text = value.strip()
    if not text:
        return default
    try:
        return int(text)
    except ValueError:
        return default


def _to_minutes(value: Optional[str], default: int) -> int:
    minutes = _to_int(value, default)
    return default if minutes < 0 else minutes


TIMEZONE_NAME = (os.getenv("FOLHA_TIMEZONE") or "America/Sao_Paulo").strip()
REFERENCE_TZ = ZoneInfo(TIMEZONE_NAME)

LUNCH_DEDUCTION_MINUTES = _to_minutes(os.getenv("FOLHA_LUNCH_DEDUCTION_MINUTES"), 60)
# 0 means any worked day gets the deduction
LUNCH_THRESHOLD_MINUTES = _to_minutes(os.getenv("FOLHA_LUNCH_THRESHOLD_MINUTES"), 0)
EXPECTED_MINUTES_PER_DAY = _to_minutes(os.getenv("FOLHA_EXPECTED_MINUTES_PER_DAY"), 480)
LATENESS_TOLERANCE_MINUTES = _to_minutes(os.getenv("FOLHA_LATENESS_TOLERANCE_MINUTES"), 10)
BATCH_CONCURRENCY = max(1, _to_int(os.getenv("FOLHA_BATCH_CONCURRENCY"), 5))

LOG_LEVEL = (os.getenv("FOLHA_LOG_LEVEL") or "INFO").strip().upper()


def setup_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
