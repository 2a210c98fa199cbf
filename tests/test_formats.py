import pytest

from avsig import InvalidPolicy, UnsupportedConstruct
from avsig.formats import (
    ClamAvFormatter,
    RawFormatter,
    YaraFormatter,
    decode_clamav,
    decode_yara,
    formatter_for,
)
from avsig.formats.base import detection_name, parse_range
from avsig.formats.clamav import CLAMAV_MAX_JUMP, clamav_name, render_clamav_gap
from avsig.formats.raw import render_raw, render_raw_gap
from avsig.formats.yara import (
    YARA_MAX_JUMP,
    render_yara_gap,
    render_yara_hex,
    yara_identifier,
    yara_string,
)
from avsig.pattern import ANY_GAP, NO_GAP, UNBOUNDED, Fragment, Pattern, Qualifier
from avsig.policy import GenerationPolicy, MetaEntry
from avsig.signature import ClamAvSignature, RawSignature, SignatureType, YaraSignature


def frag(hex_text: str, qualifier: Qualifier = NO_GAP, masked=()) -> Fragment:
    return Fragment(bytes.fromhex(hex_text), qualifier, masked_nibbles=frozenset(masked))


def sample_pattern() -> Pattern:
    return Pattern(
        (
            frag("aabb", Qualifier(2, 2)),
            frag("ccdd", Qualifier(0, 5)),
            frag("eeff", ANY_GAP),
        )
    )


def policy(**kwargs) -> GenerationPolicy:
    kwargs.setdefault("item_ids", ("sample",))
    return GenerationPolicy(**kwargs)


def test_raw_rendering() -> None:
    body = RawFormatter().format(sample_pattern(), policy())
    assert isinstance(body, RawSignature)
    assert body.text == "AABB{2,2}CCDD{0,5}EEFF*"
    assert body.pattern == sample_pattern()


@pytest.mark.parametrize(
    "qualifier, expected",
    [
        (NO_GAP, ""),
        (ANY_GAP, "*"),
        (Qualifier(3, UNBOUNDED), "{3,}"),
        (Qualifier(4, 4), "{4,4}"),
        (Qualifier(1, 9), "{1,9}"),
    ],
)
def test_raw_gap_tokens(qualifier, expected) -> None:
    assert render_raw_gap(qualifier) == expected


def test_raw_masked_nibbles() -> None:
    pattern = Pattern((frag("dead", masked={1}),))
    assert render_raw(pattern) == "D?AD"


def test_clamav_rendering() -> None:
    body = ClamAvFormatter().format(sample_pattern(), policy(detection_name="Win.Trojan.Test"))
    assert isinstance(body, ClamAvSignature)
    assert body.data == "Win.Trojan.Test:0:*:aabb{2}ccdd{-5}eeff*"


@pytest.mark.parametrize(
    "qualifier, expected",
    [
        (NO_GAP, ""),
        (ANY_GAP, "*"),
        (Qualifier(6, UNBOUNDED), "{6-}"),
        (Qualifier(8, 8), "{8}"),
        (Qualifier(0, 12), "{-12}"),
        (Qualifier(2, 12), "{2-12}"),
    ],
)
def test_clamav_gap_tokens(qualifier, expected) -> None:
    assert render_clamav_gap(qualifier) == expected


def test_clamav_name_replaces_separators() -> None:
    assert clamav_name(policy(detection_name="Bad Name:x")) == "Bad_Name_x"


def test_clamav_masked_nibbles_are_lowercase() -> None:
    body = ClamAvFormatter().format(Pattern((frag("dead", masked={1}),)), policy(detection_name="X"))
    assert body.data == "X:0:*:d?ad"


def test_clamav_jump_limit() -> None:
    pattern = Pattern((frag("aabbccdd", Qualifier(0, CLAMAV_MAX_JUMP + 1)), frag("11223344")))
    with pytest.raises(UnsupportedConstruct) as excinfo:
        ClamAvFormatter().format(pattern, policy())
    assert excinfo.value.context == "fragment 0"


def test_yara_rule_text() -> None:
    rule_policy = policy(
        detection_name="Test Sig",
        tags=("alpha", "beta"),
        meta=(
            MetaEntry("author", "analyst"),
            MetaEntry("revision", 3),
            MetaEntry("active", True),
        ),
    )
    body = YaraFormatter().format(sample_pattern(), rule_policy)
    assert isinstance(body, YaraSignature)
    assert body.data == (
        "rule Test_Sig : alpha beta\n"
        "{\n"
        "  meta:\n"
        '    author = "analyst"\n'
        "    revision = 3\n"
        "    active = true\n"
        "  strings:\n"
        "    $ = {\n"
        "      AA BB [2] CC DD [0-5] EE FF [-]\n"
        "    }\n"
        "  condition:\n"
        "    all of them\n"
        "}\n"
    )


def test_yara_rule_without_meta_or_tags() -> None:
    body = YaraFormatter().format(
        Pattern((frag("8bff558bec"),)), policy(unique_signature_id="42")
    )
    assert body.data.splitlines()[:3] == ["rule avsig_42", "{", "  strings:"]


def test_yara_masked_nibbles() -> None:
    pattern = Pattern((frag("dead", masked={1}),))
    assert render_yara_hex(pattern) == "      D? AD"


def test_yara_hex_wraps_long_strings() -> None:
    pattern = Pattern((frag("00" * 20),))
    lines = render_yara_hex(pattern).splitlines()
    assert len(lines) == 2
    assert len(lines[0].split()) == 16
    assert len(lines[1].split()) == 4


@pytest.mark.parametrize(
    "qualifier, expected",
    [
        (NO_GAP, ""),
        (ANY_GAP, "[-]"),
        (Qualifier(6, UNBOUNDED), "[6-]"),
        (Qualifier(8, 8), "[8]"),
        (Qualifier(0, 12), "[0-12]"),
    ],
)
def test_yara_gap_tokens(qualifier, expected) -> None:
    assert render_yara_gap(qualifier) == expected


@pytest.mark.parametrize(
    "qualifier",
    [Qualifier(0, YARA_MAX_JUMP + 1), Qualifier(YARA_MAX_JUMP + 1, UNBOUNDED)],
)
def test_yara_jump_limit(qualifier) -> None:
    pattern = Pattern((frag("aabbccdd", qualifier), frag("11223344")))
    with pytest.raises(UnsupportedConstruct):
        YaraFormatter().format(pattern, policy())


def test_yara_accepts_jump_at_limit() -> None:
    pattern = Pattern((frag("aabbccdd", Qualifier(0, YARA_MAX_JUMP)), frag("11223344")))
    assert f"[0-{YARA_MAX_JUMP}]" in YaraFormatter().format(pattern, policy()).data


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Trojan.Win32", "Trojan_Win32"),
        ("rule", "_rule"),
        ("1st_stage", "_1st_stage"),
        ("", "_"),
        ("a-b c", "a_b_c"),
    ],
)
def test_yara_identifier(name, expected) -> None:
    assert yara_identifier(name) == expected


def test_yara_string_escapes() -> None:
    assert yara_string('say "hi"\n') == '"say \\"hi\\"\\n"'


def test_yara_rejects_unsupported_meta_value() -> None:
    bad = policy(meta=(MetaEntry("ratio", 0.5),))
    with pytest.raises(InvalidPolicy):
        YaraFormatter().format(sample_pattern(), bad)


def test_unbounded_trailing_gap_in_all_dialects() -> None:
    pattern = Pattern((frag("11223344", ANY_GAP),))
    assert RawFormatter().format(pattern, policy()).text == "11223344*"
    assert ClamAvFormatter().format(pattern, policy(detection_name="N")).data.endswith(":11223344*")
    assert "11 22 33 44 [-]" in YaraFormatter().format(pattern, policy()).data


@pytest.mark.parametrize("formatter", [ClamAvFormatter(), YaraFormatter()])
def test_empty_pattern_is_rejected(formatter) -> None:
    with pytest.raises(UnsupportedConstruct):
        formatter.format(Pattern(), policy())


def test_raw_accepts_empty_pattern() -> None:
    assert RawFormatter().format(Pattern(), policy()).text == ""


def test_detection_name_defaults() -> None:
    assert detection_name(policy(detection_name="Named")) == "Named"
    assert detection_name(policy(unique_signature_id="abc")) == "avsig_abc"
    assert detection_name(policy()) == "avsig_unnamed"


def test_formatter_for() -> None:
    assert isinstance(formatter_for(SignatureType.RAW), RawFormatter)
    assert isinstance(formatter_for("clamav"), ClamAvFormatter)
    assert isinstance(formatter_for(2), YaraFormatter)
    with pytest.raises(ValueError):
        formatter_for(SignatureType.INVALID)
    with pytest.raises(ValueError):
        formatter_for("snort")


def test_decode_clamav_line() -> None:
    pattern = decode_clamav("Name:0:*:aabb{2}cc?d{-5}eeff*")
    assert [fragment.data.hex() for fragment in pattern] == ["aabb", "cc0d", "eeff"]
    assert [fragment.qualifier for fragment in pattern] == [
        Qualifier(2, 2),
        Qualifier(0, 5),
        ANY_GAP,
    ]
    assert pattern[1].masked_nibbles == frozenset({2})


def test_clamav_output_decodes_to_same_pattern() -> None:
    pattern = Pattern(
        (
            frag("aabb", Qualifier(2, 2)),
            frag("c0dd", Qualifier(3, UNBOUNDED), masked={1}),
        )
    )
    text = ClamAvFormatter().format(pattern, policy(detection_name="N")).data
    assert decode_clamav(text) == pattern


def test_yara_output_decodes_to_same_pattern() -> None:
    pattern = Pattern(
        (
            frag("8bff55", Qualifier(4, 4)),
            frag("5080ec", Qualifier(0, 9), masked={3}),
            frag("00" * 18),
        )
    )
    text = YaraFormatter().format(pattern, policy(tags=("t",))).data
    assert decode_yara(text) == pattern


def test_decode_rejects_odd_nibbles() -> None:
    with pytest.raises(ValueError):
        decode_clamav("aab{2}cc")
    with pytest.raises(ValueError):
        decode_yara("{ AA B [2] CC }")


def test_decode_rejects_leading_gap() -> None:
    with pytest.raises(ValueError):
        decode_clamav("*aabb")


@pytest.mark.parametrize(
    "text, expected",
    [
        ("7", Qualifier(7, 7)),
        ("2-9", Qualifier(2, 9)),
        ("-9", Qualifier(0, 9)),
        ("3-", Qualifier(3, UNBOUNDED)),
        ("-", ANY_GAP),
    ],
)
def test_parse_range(text, expected) -> None:
    assert parse_range(text, "-") == expected
