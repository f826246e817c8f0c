"""Handle Identity Codec — port key <-> connection-endpoint token.

The canvas addresses each connection endpoint by a single string token (the
"handle"). Port keys are user-editable and may contain characters that are
unsafe in that addressing scheme (spaces, ``-``-delimited ids, slashes, CJK),
so keys are percent-encoded into tokens and decoded back on the way in.

Encoding matches JavaScript's ``encodeURIComponent``: ASCII letters, digits and
``-_.!~*'()`` pass through, everything else is UTF-8 percent-encoded. This
keeps tokens written by the browser editor and by this package identical.

Both directions are lenient:
  encode_handle(None)  → None (absence is preserved, never coerced to "")
  decode_handle(bad)   → bad  (malformed tokens come back unchanged)
"""

from __future__ import annotations

import logging
import re
from typing import Any
from urllib.parse import quote, unquote

logger = logging.getLogger("pipeline_studio.workflow.handles")

_SAFE_CHARS = "-_.!~*'()"

# A '%' not followed by two hex digits makes the whole token malformed.
_BAD_ESCAPE_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def encode_handle(key: str | None) -> str | None:
    """Percent-encode a port key into a handle token."""
    if key is None:
        return None
    return quote(str(key), safe=_SAFE_CHARS)


def decode_handle(token: Any) -> Any:
    """Decode a handle token back into a port key.

    Returns the token unchanged when it is not a valid percent-encoding
    (stray ``%``, an escape sequence that is not valid UTF-8, or not a string
    at all).
    """
    if not isinstance(token, str):
        if token is not None:
            logger.debug("Non-string handle token %r kept verbatim", token)
        return token
    if _BAD_ESCAPE_RE.search(token):
        logger.debug("Malformed handle token %r kept verbatim", token)
        return token
    try:
        return unquote(token, encoding="utf-8", errors="strict")
    except UnicodeDecodeError:
        logger.debug("Handle token %r is not valid UTF-8; kept verbatim", token)
        return token
