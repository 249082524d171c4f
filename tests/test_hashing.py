"""Tests for canonical forms and conversation identities."""

import pytest

from chatworkspace.errors import MalformedIdentityError
from chatworkspace.hashing import (
    InputShape,
    canonicalize_chat,
    classify_input,
    coerce_messages,
    hash_chat,
    is_valid_identity,
    validate_identity,
)
from chatworkspace.models import Turn
from chatworkspace.parser import extract_turns

from .conftest import HI_HELLO_ID

HI = {"role": "user", "text": "Hi"}
HI_ID = "bd57f54d0ff7a8ace2d23336208ec54a41fcc7f839d3ccc9f89528eea5b0de71"
EMPTY_ID = "94f2eddbd109978c2652890ca9da8b4b7d413ec311b39f895b9a80e9fe72ab65"


class TestCanonicalize:
    def test_canonical_form(self):
        messages = [HI, {"role": "assistant", "text": "Hello"}]

        assert canonicalize_chat(messages) == (
            '{"v":1,"count":2,"messages":'
            '[{"role":"user","text":"Hi"},{"role":"assistant","text":"Hello"}]}'
        )

    def test_whitespace_is_collapsed_and_trimmed(self):
        messages = [{"role": " user ", "text": "  Hello \n\n  world\t"}]

        assert coerce_messages(messages) == [{"role": "user", "text": "Hello world"}]

    def test_missing_fields_become_empty_strings(self):
        assert coerce_messages([{"role": "user"}, {"text": "x"}, {"role": None}]) == [
            {"role": "user", "text": ""},
            {"role": "", "text": "x"},
            {"role": "", "text": ""},
        ]

    def test_non_ascii_kept_verbatim(self):
        assert '"text":"héllo ✓"' in canonicalize_chat([{"role": "user", "text": "héllo ✓"}])

    def test_legacy_field_names(self):
        legacy = [{"type": "user", "content": "Hi"}]

        assert coerce_messages(legacy) == [HI]

    def test_turn_objects(self):
        turns = [Turn(id="m1", role="user", text="Hi", source_fragment="<p>Hi</p>")]

        assert coerce_messages(turns) == [HI]


class TestInputShapes:
    @pytest.mark.parametrize(
        "data,shape",
        [
            ([HI], InputShape.LIST),
            ((HI,), InputShape.LIST),
            ({"messages": [HI]}, InputShape.WRAPPER),
            (HI, InputShape.SINGLE),
            ({"type": "user"}, InputShape.SINGLE),
            ({"0": HI}, InputShape.KEYED),
            ({}, InputShape.KEYED),
            (42, InputShape.UNSUPPORTED),
            ("Hi", InputShape.UNSUPPORTED),
            (None, InputShape.UNSUPPORTED),
        ],
    )
    def test_classify(self, data, shape):
        assert classify_input(data) is shape

    def test_shape_equivalence(self):
        digests = {
            hash_chat([HI]),
            hash_chat({"messages": [HI]}),
            hash_chat({0: HI}),
            hash_chat({"0": HI}),
            hash_chat(HI),
        }

        assert digests == {HI_ID}

    def test_keyed_mapping_order(self):
        a = {"role": "user", "text": "a"}
        b = {"role": "user", "text": "b"}
        c = {"role": "user", "text": "c"}

        assert coerce_messages({"10": a, "2": b, "x": c}) == [
            {"role": "user", "text": "b"},
            {"role": "user", "text": "a"},
            {"role": "user", "text": "c"},
        ]

    def test_keyed_mapping_non_canonical_integers_sort_as_strings(self):
        data = {
            "b": {"text": "b"},
            "07": {"text": "07"},
            "-1": {"text": "-1"},
            "3": {"text": "3"},
            "a": {"text": "a"},
        }

        assert [m["text"] for m in coerce_messages(data)] == ["-1", "3", "07", "a", "b"]

    def test_unsupported_input_is_empty(self):
        assert coerce_messages(42) == []
        assert hash_chat(None) == EMPTY_ID


class TestHashChat:
    def test_reference_digest(self):
        messages = [HI, {"role": "assistant", "text": "Hello"}]

        assert hash_chat(messages) == HI_HELLO_ID

    def test_extracted_turns_hash_to_reference_digest(self, chat_html: str):
        assert hash_chat(extract_turns(chat_html)) == HI_HELLO_ID

    def test_deterministic(self):
        messages = [HI, {"role": "assistant", "text": "Hello"}]

        assert hash_chat(messages, "s") == hash_chat(messages, "s") == hash_chat(list(messages), "s")

    def test_digest_is_lowercase_hex(self):
        digest = hash_chat([HI])

        assert len(digest) == 64
        assert digest == digest.lower()
        int(digest, 16)

    def test_salt_changes_digest(self):
        assert hash_chat([HI], "team-a") != hash_chat([HI])

    def test_single_character_change(self):
        assert hash_chat([{"role": "user", "text": "Hi!"}]) != HI_ID
        assert hash_chat([{"role": "users", "text": "Hi"}]) != HI_ID

    def test_count_distinguishes_extra_empty_message(self):
        assert hash_chat([HI, {}]) != hash_chat([HI])

    def test_whitespace_only_differences_share_identity(self):
        assert hash_chat([{"role": "user", "text": "  Hi \n"}]) == HI_ID


class TestIdentityFormat:
    @pytest.mark.parametrize("token", [HI_ID, "A" * 32, "z9" * 64])
    def test_valid(self, token: str):
        assert is_valid_identity(token)
        assert validate_identity(token) == token

    @pytest.mark.parametrize(
        "token", ["", "a" * 31, "a" * 129, "../etc/passwd" + "a" * 32, HI_ID + "\n", None, 123]
    )
    def test_invalid(self, token):
        assert not is_valid_identity(token)
        with pytest.raises(MalformedIdentityError):
            validate_identity(token)

    def test_malformed_identity_is_value_error(self):
        with pytest.raises(ValueError):
            validate_identity("nope")
