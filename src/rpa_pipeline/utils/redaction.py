# ABOUTME: Masks credential values in text before it is stored or sent downstream
# ABOUTME: Applied to step errors, job error messages and notification payloads

import re
from collections.abc import Iterable

MASK = "***"

# Inline "password: value" pairs that may appear in driver exception text
_INLINE_SECRET = re.compile(r"(?i)\b(password|pass|pwd)(\s*[:=]\s*)(\S+)")


def redact(text: str, secrets: Iterable[str | None] = ()) -> str:
    """Replace every known secret and inline password value with a mask.

    Known secrets are only masked where they stand as a whole token, so a short
    secret never eats into step numbers or timings.
    """
    redacted = text
    # Longest first so a secret containing another is masked whole
    for secret in sorted({s for s in secrets if s}, key=len, reverse=True):
        redacted = re.sub(rf"(?<![A-Za-z0-9]){re.escape(secret)}(?![A-Za-z0-9])", MASK, redacted)
    return _INLINE_SECRET.sub(lambda m: f"{m.group(1)}{m.group(2)}{MASK}", redacted)
