# quickattend/backend/tools/codes.py

import secrets
from typing import Dict, Optional
from urllib.parse import parse_qs, urlencode, urlsplit

from .validators import CODE_LENGTH

# Uppercase letters and digits without the look-alikes O, I, 0 and 1.
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def generate_code() -> str:
    """Returns a random 6-character check-in code, e.g. 'A3B7K9'."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def get_base_url(full_url: str) -> str:
    """Strips the query string and fragment from a URL."""
    return full_url.split("?")[0].split("#")[0]


def build_checkin_url(base_url: str, code: str) -> str:
    """
    Builds the URL encoded in the session QR code. Opening it lands the
    student on the check-in form with the code already filled in.
    """
    query = urlencode({"mode": "student", "code": code})
    return f"{get_base_url(base_url)}?{query}"


def parse_checkin_params(query: Optional[str]) -> Dict[str, Optional[str]]:
    """Reads `mode` and `code` back from a check-in URL query string."""
    params = parse_qs((query or "").lstrip("?"))
    return {
        "mode": params.get("mode", [None])[0],
        "code": params.get("code", [None])[0],
    }


def code_from_scan(value: str) -> str:
    """
    Returns the code carried by a scanned check-in URL, or the value itself
    when it was typed in by hand.
    """
    if "?" not in value:
        return value
    return parse_checkin_params(urlsplit(value.strip()).query)["code"] or ""
