# Room codes are the only credential needed to join, so they come from `secrets`

import re
import secrets
import string

ROOM_CODE_LENGTH = 6
ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
ROOM_CODE_PATTERN = re.compile(r'^[A-Z0-9]{6}$')


def generate_room_code():
    return ''.join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


def is_valid_room_code(code):
    return isinstance(code, str) and ROOM_CODE_PATTERN.fullmatch(code) is not None


def format_room_code(code: str, separator: str = '-') -> str:
    """Split a code into two groups of three for display, e.g. ``ABC-123``.

    Raises ValueError for anything that is not a valid room code.
    """
    if not is_valid_room_code(code):
        raise ValueError(f'Invalid room code format: {code!r}')
    return f'{code[:3]}{separator}{code[3:]}'


def normalize_room_code(code):
    """Uppercase and strip user input; validity is checked separately."""
    if not isinstance(code, str):
        return ''
    return code.strip().upper()
