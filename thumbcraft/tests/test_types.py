"""Tests for the provider-agnostic types."""

import base64

import pytest

from thumbcraft.types import (
    FunctionCall,
    InlineImage,
    Message,
    ParsedResult,
    Part,
    Role,
    ToolOutcome,
)


class TestMessage:

    def test_text_joins_non_empty(self):
        message = Message(role=Role.MODEL, parts=[
            Part.from_text("a"), Part.from_text(""), Part(thought="hidden"), Part.from_text("b"),
        ])
        assert message.text == "a\nb"

    def test_text_none_without_text_parts(self):
        assert Message(role=Role.MODEL, parts=[Part.from_inline("image/png", b"x")]).text is None

    def test_from_text_accepts_string_role(self):
        assert Message.from_text("model", "hi").role == Role.MODEL

    @pytest.mark.parametrize("parts,informative", [
        ([Part.from_text("hello")], True),
        ([Part.from_inline("image/png", b"x")], True),
        ([Part.from_function_call(FunctionCall(name="t"))], True),
        ([Part.from_text("", thought_signature=b"s")], True),
        ([Part(thought="thinking")], False),
        ([Part.from_text("")], False),
        ([], False),
    ])
    def test_model_turn_informative(self, parts, informative):
        assert Message(role=Role.MODEL, parts=parts).is_informative() is informative

    def test_user_turn_informative_when_non_empty(self):
        assert Message.from_text(Role.USER, "hi").is_informative()
        assert not Message(role=Role.USER).is_informative()


class TestToolOutcome:

    def test_success_response(self):
        outcome = ToolOutcome.ok(FunctionCall(name="t", index=2), {"content": []})
        assert outcome.index == 2
        assert outcome.to_response() == {"result": {"content": []}}

    def test_failure_response(self):
        outcome = ToolOutcome.failed(FunctionCall(name="t"), 'Tool "t" failed')
        assert outcome.to_response() == {"error": 'Tool "t" failed'}


class TestInlineImage:

    def test_from_data_uri(self):
        payload = base64.b64encode(b"jpeg").decode()
        image = InlineImage.from_dict({"data": f"data:image/jpeg;base64,{payload}"})
        assert image.mime_type == "image/jpeg"
        assert image.data == payload
        assert image.decode() == b"jpeg"

    def test_default_mime_type(self):
        assert InlineImage.from_dict({"data": "QUJD"}).mime_type == "image/png"

    @pytest.mark.parametrize("entry", [{}, {"data": ""}, {"data": 7}])
    def test_missing_data(self, entry):
        with pytest.raises(ValueError):
            InlineImage.from_dict(entry)

    def test_invalid_base64(self):
        with pytest.raises(ValueError):
            InlineImage("image/png", "not base64!").decode()

    def test_signature_round_trip(self):
        image = InlineImage.from_bytes("image/png", b"png", thought_signature=b"sig")
        wire = image.to_dict()
        assert wire["thoughtSignature"] == base64.b64encode(b"sig").decode()
        assert InlineImage.from_dict(wire).thought_signature == b"sig"


class TestParsedResult:

    def test_to_dict(self):
        result = ParsedResult(
            text="done",
            images=[InlineImage("image/png", "QUJD")],
            text_thought_signature=b"sig",
        )
        assert result.to_dict() == {
            "text": "done",
            "images": [{"mimeType": "image/png", "data": "QUJD"}],
            "textThoughtSignature": base64.b64encode(b"sig").decode(),
        }

    def test_budget_flag_only_when_exhausted(self):
        assert "roundBudgetExhausted" not in ParsedResult().to_dict()
        assert ParsedResult(round_budget_exhausted=True).to_dict()["roundBudgetExhausted"] is True
