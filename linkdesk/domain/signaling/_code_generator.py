import random
import secrets
import string

CODE_LENGTH = 6
CODE_ALPHABET = string.digits + string.ascii_uppercase


class CodeGenerator:
    """Produces short session codes a person can read aloud or type.

    Codes are not unique by themselves; the registry retries on collision.
    """

    def __init__(self, rng: random.Random | None = None, length: int = CODE_LENGTH) -> None:
        self._rng = rng or secrets.SystemRandom()
        self._length = length

    def generate(self) -> str:
        return "".join(self._rng.choice(CODE_ALPHABET) for _ in range(self._length))


def normalize_code(code: object) -> str | None:
    """Upper-case a client supplied code.

    A missing code becomes "" so a join can still answer `join-failed`; any
    other non-string value gives None.
    """
    if code is None:
        return ""
    if not isinstance(code, str):
        return None
    return code.upper()
