import pytest

from pixeltrivia.services.rooms.codes import (
    ROOM_CODE_ALPHABET,
    format_room_code,
    generate_room_code,
    is_valid_room_code,
    normalize_room_code,
)


def test_generated_codes_are_six_uppercase_alphanumerics():
    for _ in range(200):
        code = generate_room_code()
        assert len(code) == 6
        assert all(ch in ROOM_CODE_ALPHABET for ch in code)
        assert is_valid_room_code(code)


def test_generated_codes_are_not_sequential():
    codes = [generate_room_code() for _ in range(50)]
    assert len(set(codes)) == len(codes)
    shared_prefixes = sum(1 for a, b in zip(codes, codes[1:]) if a[:4] == b[:4])
    assert shared_prefixes <= 1


@pytest.mark.parametrize('code', ['abc123', 'ABC12', 'ABC1234', 'ABC-12', '', None, 123456])
def test_invalid_codes_rejected(code):
    assert not is_valid_room_code(code)


def test_format_room_code():
    assert format_room_code('ABC123') == 'ABC-123'
    assert format_room_code('ABC123', separator=' ') == 'ABC 123'
    with pytest.raises(ValueError):
        format_room_code('abc')


def test_normalize_room_code():
    assert normalize_room_code('  abc123 ') == 'ABC123'
    assert normalize_room_code(None) == ''
