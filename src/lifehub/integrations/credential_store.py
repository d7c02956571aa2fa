# Credential Store: keyed upsert of OAuth credentials into a .env file.
# Created: 2026-10-18

from __future__ import annotations

import logging
import os
import stat
from collections.abc import Mapping
from pathlib import Path

from dotenv import dotenv_values, set_key, unset_key

from lifehub.config import get_settings

logger = logging.getLogger(__name__)


class CredentialStore:
    """File-based credential store in .env format (``NAME='value'`` lines).

    Writes only touch the keys being set; unrelated entries are preserved.
    The file is chmod 0600 (owner-only read/write).
    """

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path is not None else get_settings().credentials_file

    def set_many(self, values: Mapping[str, str]) -> None:
        """Insert or overwrite each named value."""
        if not values:
            return

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch(exist_ok=True)
        for key, value in values.items():
            set_key(self.path, key, value)
        os.chmod(self.path, stat.S_IRUSR | stat.S_IWUSR)
        logger.info("Saved %s to %s", ", ".join(values), self.path)

    def load(self) -> dict[str, str]:
        """Load all entries. Returns an empty dict if the file is missing."""
        if not self.path.exists():
            return {}
        return {k: v for k, v in dotenv_values(self.path).items() if v is not None}

    def get(self, key: str) -> str | None:
        return self.load().get(key)

    def delete(self, *keys: str) -> bool:
        """Remove the given keys. Returns True if any were present."""
        present = self.load()
        removed = False
        for key in keys:
            if key in present:
                unset_key(self.path, key)
                removed = True
        if removed:
            os.chmod(self.path, stat.S_IRUSR | stat.S_IWUSR)
            logger.info("Deleted %s from %s", ", ".join(k for k in keys if k in present), self.path)
        return removed
