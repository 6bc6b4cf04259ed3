from keywarden.errors import ValidationError
from keywarden.utils import is_npub


def validate_npub(npub: str) -> str:
    """Validate npub format.

    Requirements:
    - Starts with "npub1"
    - Exactly 63 characters of lowercase bech32

    Raises:
        ValidationError: If the value is not a valid npub
    """
    npub = npub.strip()
    if not is_npub(npub):
        raise ValidationError("Invalid public key format. Must be a valid npub1 key.")
    return npub


def validate_nip05(nip05: str | None) -> str | None:
    """Accept `name@domain` or `_@domain`; empty values are treated as absent."""
    if nip05 is None or not nip05.strip():
        return None
    nip05 = nip05.strip().lower()
    local, sep, domain = nip05.partition("@")
    if not sep or not local or "." not in domain or any(c.isspace() for c in nip05):
        raise ValidationError(f"Invalid NIP-05 identifier: '{nip05}'")
    return nip05
