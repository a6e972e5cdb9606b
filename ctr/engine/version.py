"""Version resolution after a put"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ctr.models import Version

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def fallback_version_id(now: Optional[datetime] = None) -> str:
    """Current UTC time in a sortable format"""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def read_version_id(version_file: Path) -> Optional[str]:
    """Return the version written by the playbook, or None if there is none"""
    try:
        version_id = version_file.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("No version artifact at %s: %s", version_file, e)
        return None
    return version_id or None


def resolve_version(workdir: str, key: str, version_file: str = "version_id") -> Version:
    """Build the response version from the playbook's artifact

    A missing artifact is not an error: the version falls back to a timestamp.
    """
    version_id = read_version_id(Path(workdir) / version_file)
    if version_id is None:
        version_id = fallback_version_id()
        logger.info("No %s written by playbook, using %s", version_file, version_id)
    return Version(key=key, version_id=version_id)
