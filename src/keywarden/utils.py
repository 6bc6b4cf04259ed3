import re
from datetime import UTC, datetime

# npub1 + 58 bech32 characters
NPUB_RE = re.compile(r"^npub1[02-9ac-hj-np-z]{58}$")


def is_npub(value: str) -> bool:
    return bool(NPUB_RE.fullmatch(value))


def now() -> datetime:
    return datetime.now(UTC)
