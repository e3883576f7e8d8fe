"""
Opaque object names and playlist reference rewriting.
"""

import re
import secrets
import string
from typing import Dict, Optional, Set

OPAQUE_NAME_LENGTH = 12
OPAQUE_ALPHABET = string.ascii_letters + string.digits


def generate_opaque_name(extension: str, taken: Optional[Set[str]] = None) -> str:
    """
    Return a random 12-character alphanumeric base name plus ``extension``.

    When ``taken`` is given, the name is guaranteed not to be in it and is
    added to it, so one upload batch never reuses a name.
    """
    if extension and not extension.startswith("."):
        extension = f".{extension}"

    while True:
        base = "".join(secrets.choice(OPAQUE_ALPHABET) for _ in range(OPAQUE_NAME_LENGTH))
        name = f"{base}{extension}"
        if taken is None:
            return name
        if name not in taken:
            taken.add(name)
            return name


def rewrite_references(playlist_text: str, mapping: Dict[str, str]) -> str:
    """
    Replace every literal occurrence of each old name with its new name.

    Single pass, longest names first, so a name that is a prefix of another
    is never matched inside it and replaced text is never rewritten again.
    """
    names = [name for name in mapping if name]
    if not names:
        return playlist_text

    names.sort(key=len, reverse=True)
    pattern = re.compile("|".join(re.escape(name) for name in names))
    return pattern.sub(lambda match: mapping[match.group(0)], playlist_text)
