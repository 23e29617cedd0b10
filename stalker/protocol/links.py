"""
Stream link normalisation.

``create_link`` answers with a ``cmd`` string that is sometimes a bare
URL and sometimes a player invocation such as ``"ffmpeg http://..."``.
Only the URL may be handed to a player.
"""

from __future__ import annotations

import re
from typing import Optional

_FFMPEG_PREFIX = re.compile(r"^ffmpeg\s+", re.IGNORECASE)
_STREAM_URL = re.compile(r"https?://\S+", re.IGNORECASE)


def normalize_stream_url(cmd: Optional[str]) -> Optional[str]:
    """Extract the playable URL from a portal ``cmd`` string.

    Steps, in order: trim, drop a leading ``ffmpeg `` (any case), take
    the first ``http(s)://`` token. Returns ``None`` when no URL-shaped
    content is present.

    >>> normalize_stream_url("ffmpeg http://x/y.m3u8")
    'http://x/y.m3u8'
    >>> normalize_stream_url("FFMPEG http://x/y.m3u8 extra")
    'http://x/y.m3u8'
    >>> normalize_stream_url("rtmp://x/live") is None
    True
    """
    if not cmd or not isinstance(cmd, str):
        return None
    cleaned = _FFMPEG_PREFIX.sub("", cmd.strip(), count=1)
    match = _STREAM_URL.search(cleaned)
    return match.group(0) if match else None
