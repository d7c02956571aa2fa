# Browser launch for the OAuth consent page.
# Created: 2026-10-18

from __future__ import annotations

import logging
import webbrowser

logger = logging.getLogger(__name__)


def open_in_browser(url: str) -> bool:
    """Open ``url`` in the user's default browser.

    Best-effort: returns False instead of raising when no browser can be
    launched, so the caller can fall back to printing the URL.
    """
    try:
        opened = webbrowser.open(url)
    except webbrowser.Error as e:
        logger.warning("Could not open browser: %s", e)
        return False

    if not opened:
        logger.warning("No browser available to open the authorization URL")
    return opened
