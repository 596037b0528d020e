"""Tests for encoding and decoding canonical character sources."""

from __future__ import annotations

import copy
from typing import Any

import pytest

from starguide.codec import (
    EncodeError,
    RecordCodec,
    decode_record,
    encode_record,
    export_name,
)
from starguide.errors import MalformedDocumentError


def test_round_trip_preserves_the_record(kafka_record: dict[str, Any]) -> None:
    original = copy.deepcopy(kafka_record)

    assert decode_record(encode_record(kafka_record)) == original
    assert kafka_record == original


@pytest.mark.parametrize(
    "value",
    [
        "it's a 'quote' and a \\ backslash",
        "line one\nline two\r\n\ttabbed",
        "separators \u2028 and \u2029",
        "control \x00\x01\x1f\x7f",
        "astral \U0001F600 and accents é",
        "Ka\ud83dfka",
        "trailing low half \udc00",
        "",
    ],
)
def test_round_trip_preserves_strings(value: str) -> None:
    record = {"id": "kafka", "description": value}

    assert decode_record(encode_record(record)) == record


def test_round_trip_preserves_awkward_keys_and_numbers() -> None:
    record = {
        "id": "silver-wolf",
        "synergy-notes": {"0": "zero", "with space": True},
        "scores": [0, -1, 2.5, 1e-07, 12345678901234567890],
        "nested": [[1, 2], [], {}, [{"deep": None}]],
    }

    assert decode_record(encode_record(record)) == record


def test_encode_layout(kafka_record: dict[str, Any]) -> None:
    text = encode_record(kafka_record)
    lines = text.splitlines()

    assert lines[0] == "// frontend/src/data/characters/kafka.ts"
    assert lines[2] == "import type { Character } from '../../types';"
    assert lines[4] == "export const kafka: Character = {"
    assert lines[5] == "  id: 'kafka',"
    assert lines[6] == "  name: 'Kafka',"
    assert text.endswith("};\n")
    assert "  // INVESTMENT DATA" in lines
    assert "        penalties: { s1: 0, s5: 0 }," in lines
    assert "  roles: ['DPS', 'Sub-DPS']," in lines


def test_encode_orders_known_fields_before_unknown_fields() -> None:
    text = encode_record({"zeta": 1, "name": "Kafka", "alpha": 2, "id": "kafka"})
    body = text.splitlines()[5:9]

    assert body == ["  id: 'kafka',", "  name: 'Kafka',", "  alpha: 2,", "  zeta: 1,"]


def test_encode_is_deterministic(kafka_record: dict[str, Any]) -> None:
    shuffled = dict(reversed(list(kafka_record.items())))

    assert encode_record(shuffled) == encode_record(kafka_record)


def test_encode_uses_explicit_header_path() -> None:
    text = encode_record({"id": "kafka"}, header_path="data/kafka.ts")

    assert text.startswith("// data/kafka.ts\n")


def test_custom_codec_settings() -> None:
    codec = RecordCodec(type_name="Hero", types_import="@/types", character_dir="heroes")
    text = codec.encode({"id": "march-7th", "name": "March 7th"})

    assert text.startswith("// heroes/march-7th.ts\n")
    assert "import type { Hero } from '@/types';" in text
    assert "export const march7th: Hero = {" in text
    assert codec.decode(text) == {"id": "march-7th", "name": "March 7th"}
    with pytest.raises(MalformedDocumentError):
        RecordCodec().decode(text)


@pytest.mark.parametrize(
    ("character_id", "expected"),
    [
        ("kafka", "kafka"),
        ("silver-wolf", "silverWolf"),
        ("dan-heng-imbibitor-lunae", "danHengImbibitorLunae"),
        ("march-7th", "march7th"),
    ],
)
def test_export_name(character_id: str, expected: str) -> None:
    assert export_name(character_id) == expected


@pytest.mark.parametrize(
    "record",
    [
        {"name": "No id"},
        {"id": ""},
        {"id": 5},
        {"id": "kafka", "rating": float("nan")},
        {"id": "kafka", "rating": float("inf")},
        {"id": "kafka", "tags": {"dot", "fua"}},
        {"id": "kafka", "nested": {1: "numeric key"}},
    ],
)
def test_encode_rejects_unrepresentable_records(record: dict[Any, Any]) -> None:
    with pytest.raises(EncodeError):
        encode_record(record)


def test_encode_rejects_non_mapping() -> None:
    with pytest.raises(EncodeError):
        encode_record(["kafka"])  # type: ignore[arg-type]


def test_decode_accepts_hand_written_sources() -> None:
    source = r"""// frontend/src/data/characters/silver-wolf.ts
import type { Character } from '../../types';

/* Generated once, then edited by hand. */
export const silverWolf: Character = {
  id: "silver-wolf", // trailing comment
  /* block */ name: `Silver Wolf`,
  rarity: 0x5,
  tags: ['a', "b",],
  score: -1.5e2,
  fraction: .5,
  extra: undefined,
  'quoted-key': true,
  1: null,
  text: 'it\'s A\x42 \u{1F600} 😀',
  continued: 'one \
two',
};
"""

    assert decode_record(source) == {
        "id": "silver-wolf",
        "name": "Silver Wolf",
        "rarity": 5,
        "tags": ["a", "b"],
        "score": -150.0,
        "fraction": 0.5,
        "extra": None,
        "quoted-key": True,
        "1": None,
        "text": "it's AB \U0001F600 \U0001F600",
        "continued": "one two",
    }


@pytest.mark.parametrize(
    "source",
    [
        "const kafka = { id: 'kafka' };",
        "export const kafka: Character = loadCharacter('kafka');",
        "export const kafka: Character = { id: 'kafka', name: process.env.NAME };",
        "export const kafka: Character = { id: `kafka-${suffix}` };",
        "export const kafka: Character = { id: 'kafka'",
        "export const kafka: Character = { id: 'kafka\n' };",
        "export const kafka: Character = { id 'kafka' };",
        "export const kafka: Character = [1, 2];",
        "export const kafka: Character = { /* unterminated };",
    ],
)
def test_decode_rejects_malformed_sources(source: str) -> None:
    with pytest.raises(MalformedDocumentError):
        decode_record(source)


def test_lone_surrogates_are_escaped() -> None:
    text = encode_record({"id": "kafka", "name": "Ka\ud83dfka"})

    assert "name: 'Ka\\ud83dfka'," in text
    text.encode("utf-8")


def test_escaped_surrogate_pairs_decode_to_one_code_point() -> None:
    source = "export const kafka: Character = { id: 'kafka', mood: '\\uD83D\\uDE00' };"

    assert decode_record(source) == {"id": "kafka", "mood": "\U0001F600"}


def test_none_is_written_as_null() -> None:
    text = encode_record({"id": "kafka", "restrictions": None})

    assert "  restrictions: null," in text.splitlines()
    assert decode_record(text) == {"id": "kafka", "restrictions": None}
