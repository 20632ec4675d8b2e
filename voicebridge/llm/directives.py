"""
Inline directive parsing for raw model output.

Models are prompted to signal out-of-band instructions inline, one per line:

    Thanks for calling, goodbye!
    @HANGUP

    Your table is booked.
    @DATA: {"date": "2024-03-01", "covers": 4}

A directive is ``@`` followed by an uppercase name of at least two letters and a
payload running to the end of the line, optionally introduced by ``:``. Payloads
are decoded as JSON where possible. The free text before each directive becomes
the speech text; anything after the last directive is dropped. Newlines are
rewritten as SSML breaks.
"""

import json
import logging
import re
from typing import Any, Optional

from voicebridge.config.constants import LOGGER_NAME
from voicebridge.exceptions import DirectiveDecodeError
from voicebridge.models.completion import Directive, DirectiveKind, DirectiveMap

logger = logging.getLogger(LOGGER_NAME)

DIRECTIVE_PATTERN = re.compile(r"@([A-Z][A-Z]+)(?::[ \t]*)?([^\n]*)")

STRONG_BREAK = '<break strength="strong" />'
MEDIUM_BREAK = '<break strength="medium" />'


def to_ssml_breaks(text: Optional[str]) -> Optional[str]:
    """Rewrite paragraph breaks and line breaks as SSML break markup."""
    if not text:
        return text
    return text.replace("\n\n", STRONG_BREAK).replace("\n", MEDIUM_BREAK)


def decode_payload(name: str, payload: Optional[str]) -> Any:
    """
    Decode a directive payload.

    Returns True when there is no payload, the decoded JSON value when the payload
    is valid JSON, and the raw payload string otherwise.
    """
    if payload is None or not payload.strip():
        return True
    payload = payload.strip()
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        error = DirectiveDecodeError(f"@{name.upper()} payload is not valid JSON: {e}")
        logger.error(f"{error} (payload kept as text: {payload!r})")
        return payload


def parse_directives(raw: Optional[str]) -> DirectiveMap:
    """
    Split raw model output into speech text and decoded directives.

    Args:
        raw: Raw completion text

    Returns:
        DirectiveMap with the clean text and a directive per lower-cased name.
        When a name repeats, the last occurrence wins.
    """
    if not raw:
        return DirectiveMap(text=raw)

    directives = {}
    segments = []
    position = 0
    for match in DIRECTIVE_PATTERN.finditer(raw):
        segments.append(raw[position:match.start()])
        name = match.group(1).lower()
        directives[name] = Directive(
            kind=DirectiveKind.from_name(name),
            name=name,
            value=decode_payload(name, match.group(2)),
        )
        position = match.end()

    if directives:
        # Only text leading up to a directive is spoken
        text = "".join(segments)
        logger.debug(f"Parsed directives {sorted(directives)} from completion")
    else:
        text = raw

    return DirectiveMap(text=to_ssml_breaks(text), directives=directives)
