"""
Normalization of PGP ASCII-armored blocks.

Keys and messages pasted into chat or settings fields tend to pick up stray
whitespace and lose the blank line that separates the armor header from the
body. normalize() rebuilds the block into the layout the engine's armor parser
accepts.
"""

import re

MESSAGE_MARKER = "-----BEGIN PGP MESSAGE-----"

# The END line must name the same block kind as the BEGIN line.
ARMORED_BLOCK_RE = re.compile(
    r"(-----BEGIN PGP (PUBLIC KEY BLOCK|PRIVATE KEY BLOCK|MESSAGE BLOCK|MESSAGE)-----)"
    r"(.*?)"
    r"(-----END PGP \2-----)",
    re.DOTALL,
)

# Armor headers ("Version: ...", "Comment: ...") never occur in base64 data.
ARMOR_HEADER_RE = re.compile(r"^[A-Za-z][A-Za-z0-9-]*: .*$")


def _split_armor_headers(body: str):
    lines = body.split("\n")
    count = 0
    while count < len(lines) and ARMOR_HEADER_RE.match(lines[count].strip()):
        count += 1
    headers = [line.strip() for line in lines[:count]]
    return headers, "\n".join(lines[count:]).strip()


def normalize(raw) -> str:
    """
    Canonicalize an armored key or message.

    Args:
        raw: Free-form text that may contain an armored block

    Returns:
        "" for empty or non-string input, the rebuilt block
        (header, blank line, body, footer) when one is found, otherwise the
        trimmed input. Text around the block is dropped. Idempotent.
    """
    if not raw or not isinstance(raw, str):
        return ""
    text = raw.strip()

    match = ARMORED_BLOCK_RE.search(text)
    if not match:
        return text

    header = match.group(1).strip()
    body = match.group(3).strip()
    footer = match.group(4).strip()

    headers, body = _split_armor_headers(body)
    if headers:
        header = header + "\n" + "\n".join(headers)

    return f"{header}\n\n{body}\n{footer}"


def is_encrypted_message(content) -> bool:
    """Literal check for the PGP MESSAGE begin marker."""
    return isinstance(content, str) and MESSAGE_MARKER in content
