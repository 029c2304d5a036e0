"""Job identifier generation."""
import string

from nanoid import generate

ID_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase
ID_LENGTH = 12


def generate_id(length: int = ID_LENGTH) -> str:
    """Random URL-safe job id, e.g. ``"a8Xk20QmZp1B"``."""
    return generate(ID_ALPHABET, length)
