import asyncio
import logging
import time
from pathlib import Path
from typing import Optional

from kyc_workflow.core import settings

logger = logging.getLogger(__name__)


def sweep_temp_dir(temp_dir: Optional[str] = None, max_age_seconds: Optional[int] = None, now: Optional[float] = None) -> int:
    """Delete scratch files older than ``max_age_seconds``; returns how many."""
    directory = Path(temp_dir or settings.TEMP_DIR)
    max_age = settings.TEMP_FILE_MAX_AGE_SECONDS if max_age_seconds is None else max_age_seconds
    now = time.time() if now is None else now

    if not directory.is_dir():
        return 0

    removed = 0
    for path in directory.iterdir():
        if not path.is_file():
            continue
        try:
            if now - path.stat().st_mtime > max_age:
                path.unlink()
                removed += 1
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning(f"Could not remove temp file {path.name}: {e}")
    if removed:
        logger.info(f"Temp sweep removed {removed} file(s) from {directory}")
    return removed


async def run_temp_sweeper(interval_seconds: Optional[int] = None) -> None:
    interval = interval_seconds or settings.TEMP_SWEEP_INTERVAL_SECONDS
    logger.info(f"Temp file sweeper started (every {interval}s)")
    while True:
        try:
            await asyncio.to_thread(sweep_temp_dir)
        except Exception as e:
            logger.error(f"Temp sweep failed: {e}")
        await asyncio.sleep(interval)
