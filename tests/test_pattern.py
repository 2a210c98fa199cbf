import pytest

from avsig.pattern import ANY_GAP, NO_GAP, UNBOUNDED, Fragment, Pattern, Qualifier


def frag(hex_text: str, qualifier: Qualifier = NO_GAP, **kwargs) -> Fragment:
    return Fragment(bytes.fromhex(hex_text), qualifier, **kwargs)


def test_qualifier_rejects_inverted_ranges() -> None:
    with pytest.raises(ValueError):
        Qualifier(-1, 0)
    with pytest.raises(ValueError):
        Qualifier(3, 2)
    assert Qualifier(5, UNBOUNDED).is_unbounded


def test_qualifier_span_folds_removed_bytes() -> None:
    assert Qualifier(2, 2).span(2, Qualifier(3, 5)) == Qualifier(7, 9)
    assert Qualifier(2, 2).span(2, ANY_GAP) == Qualifier(4, UNBOUNDED)
    assert NO_GAP.is_empty and not Qualifier(0, 1).is_empty


def test_fragment_validates_nibble_indices_and_weight() -> None:
    with pytest.raises(ValueError):
        Fragment(b"\xde", masked_nibbles={2})
    with pytest.raises(ValueError):
        Fragment(b"\xde", weight=-1)


def test_fragment_hex_digits_mask_nibbles() -> None:
    fragment = frag("dead", masked_nibbles={1})
    assert fragment.hex_digits() == "D?AD"
    assert fragment.hex_digits(upper=False) == "d?ad"
    assert list(fragment.nibbles()) == [0xD, None, 0xA, 0xD]


def test_pattern_total_length_counts_masked_bytes() -> None:
    pattern = Pattern((frag("aabb", Qualifier(2, 2)), frag("ccddee", masked_nibbles={0, 1})))
    assert pattern.total_length == 5
    assert len(pattern) == 2


def test_without_middle_fragment_widens_previous_gap() -> None:
    pattern = Pattern(
        (
            frag("aabb", Qualifier(2, 2)),
            frag("ccdd", Qualifier(3, 5)),
            frag("eeff"),
        )
    )
    trimmed = pattern.without(1)
    assert [fragment.data for fragment in trimmed] == [b"\xaa\xbb", b"\xee\xff"]
    assert trimmed[0].qualifier == Qualifier(7, 9)


def test_without_last_fragment_inherits_trailing_gap() -> None:
    pattern = Pattern((frag("aabb", Qualifier(2, 2)), frag("ccdd", ANY_GAP)))
    trimmed = pattern.without(1)
    assert len(trimmed) == 1
    assert trimmed[0].qualifier == ANY_GAP


def test_without_first_fragment_drops_leading_gap() -> None:
    pattern = Pattern((frag("aabb", Qualifier(2, 2)), frag("ccdd")))
    trimmed = pattern.without(0)
    assert [fragment.data for fragment in trimmed] == [b"\xcc\xdd"]
    assert trimmed[0].qualifier == NO_GAP


def test_content_hash_tracks_masks_and_qualifiers() -> None:
    base = Pattern((frag("aabb", Qualifier(2, 2)), frag("ccdd")))
    assert base.content_hash() == Pattern((frag("aabb", Qualifier(2, 2)), frag("ccdd"))).content_hash()
    masked = Pattern((frag("aabb", Qualifier(2, 2)), frag("ccdd", masked_nibbles={3})))
    wider = Pattern((frag("aabb", Qualifier(2, 3)), frag("ccdd")))
    assert base.content_hash() != masked.content_hash()
    assert base.content_hash() != wider.content_hash()


def test_check_invariants_only_allows_trailing_unbounded_gap() -> None:
    Pattern((frag("aabb", Qualifier(1, 1)), frag("ccdd", ANY_GAP))).check_invariants()
    with pytest.raises(ValueError):
        Pattern((frag("aabb", ANY_GAP), frag("ccdd"))).check_invariants()
