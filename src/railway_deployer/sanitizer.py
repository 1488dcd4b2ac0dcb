"""Secret stripping for Railway CLI output.

Every line captured from the CLI passes through ``sanitize_line`` before it
is buffered, handed to a callback or logged.
"""

import re

_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"RAILWAY_TOKEN=\S+"), "RAILWAY_TOKEN=***"),
    (re.compile(r"Bearer\s+[A-Za-z0-9\-._~+/]+=*"), "Bearer ***"),
    (re.compile(r"postgres(?:ql)?://[^@\s]+@\S+"), "postgresql://***:***@***"),
    (re.compile(r"redis://[^@\s]+@\S+"), "redis://***:***@***"),
    (re.compile(r"variable\s+set\s+(\w+)=\S+"), r"variable set \1=***"),
)


def sanitize_line(line: str) -> str:
    """Mask tokens, credentialed connection strings and variable values in a line."""
    for pattern, replacement in _RULES:
        line = pattern.sub(replacement, line)
    return line


def sanitize_text(text: str) -> str:
    return "\n".join(sanitize_line(line) for line in text.split("\n"))
