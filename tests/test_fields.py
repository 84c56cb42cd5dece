# tests/test_fields.py
"""Tests for word, limb and base64url helpers."""

import pytest

from zkjwt.utils.fields import (
    BN254_SCALAR_MODULUS,
    b64url_decode,
    b64url_encode,
    b64url_to_int,
    from_word,
    int_to_b64url,
    is_field_element,
    join_limbs,
    split_limbs,
    to_word,
)


def test_to_word_is_big_endian_and_fixed_width() -> None:
    word = to_word(0x0102)
    assert len(word) == 32
    assert word[-2:] == b"\x01\x02"
    assert from_word(word) == 0x0102


@pytest.mark.parametrize("value", [-1, 1 << 256])
def test_to_word_rejects_out_of_range(value: int) -> None:
    with pytest.raises(ValueError):
        to_word(value)


def test_from_word_rejects_wrong_length() -> None:
    with pytest.raises(ValueError):
        from_word(b"\x00" * 31)


def test_split_limbs_is_little_endian() -> None:
    value = (3 << 240) | (2 << 120) | 1
    assert split_limbs(value, 120, 18)[:3] == [1, 2, 3]
    assert join_limbs(split_limbs(value, 120, 18), 120) == value


def test_split_limbs_rejects_oversized_values() -> None:
    with pytest.raises(ValueError):
        split_limbs(1 << (120 * 18), 120, 18)


def test_join_limbs_rejects_wide_limb() -> None:
    with pytest.raises(ValueError):
        join_limbs([1 << 120], 120)


def test_field_element_bounds() -> None:
    assert is_field_element(0)
    assert is_field_element(BN254_SCALAR_MODULUS - 1)
    assert not is_field_element(BN254_SCALAR_MODULUS)
    assert not is_field_element(-1)


def test_b64url_handles_missing_padding() -> None:
    assert b64url_decode("AQAB") == b"\x01\x00\x01"
    assert b64url_to_int("AQAB") == 65537
    assert b64url_encode(b"\xff\xfe") == "__4"
    assert int_to_b64url(65537) == "AQAB"


@pytest.mark.parametrize("bad", ["", "ab+c", "ab/c", "abc\n", "!!!!", "a"])
def test_b64url_decode_rejects_invalid_text(bad: str) -> None:
    with pytest.raises(ValueError):
        b64url_decode(bad)
