import re
import secrets
import string

from .exceptions import InvalidAlias

ALPHABET = string.ascii_letters + string.digits

MAX_CODE_LENGTH = 50
CODE_PATTERN = re.compile(r"[a-zA-Z0-9_-]{1,%d}" % MAX_CODE_LENGTH)

# Top-level paths served by the app itself; a code equal to one of these
# could never be redirected to.
RESERVED_CODES = frozenset({"api", "health", "metrics", "docs", "redoc"})

def generate_random_code(length: int = 7) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))

def is_well_formed_code(code: str) -> bool:
    return CODE_PATTERN.fullmatch(code) is not None

def validate_alias(alias: str) -> str:
    """Return ``alias`` if it may be used as a short code, else raise InvalidAlias.

    Uniqueness is not checked here.
    """
    if not is_well_formed_code(alias):
        raise InvalidAlias(
            f"Custom alias must be 1-{MAX_CODE_LENGTH} characters of letters, digits, '_' or '-'"
        )
    if alias.lower() in RESERVED_CODES:
        raise InvalidAlias(f"Custom alias '{alias}' is reserved")
    return alias
