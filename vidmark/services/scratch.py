import logging
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path

logger = logging.getLogger(__name__)


def run_scratch_cleanup(root: str | Path, max_age_hours: int) -> int:
    base = Path(root)
    if not base.exists():
        return 0
    cutoff = datetime.now(timezone.utc) - timedelta(hours=max_age_hours)
    deleted = 0
    for entry in base.iterdir():
        if not entry.is_dir():
            continue
        modified = datetime.fromtimestamp(entry.stat().st_mtime, tz=timezone.utc)
        if modified < cutoff:
            shutil.rmtree(entry, ignore_errors=True)
            deleted += 1
    if deleted:
        logger.info("scratch_swept", extra={"deleted": deleted, "root": str(base)})
    return deleted
