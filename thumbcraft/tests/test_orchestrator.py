"""Tests for the iterative orchestration loop."""

import asyncio
import base64
from unittest.mock import AsyncMock

import pytest

from thumbcraft.converters import history_from_wire
from thumbcraft.errors import (
    ModelContentBlocked,
    ModelRateLimited,
    ToolError,
    ValidationError,
)
from thumbcraft.orchestrator import MAX_TOOL_ROUNDS, Orchestrator
from thumbcraft.types import FunctionCall, Message, ParsedResult, PartKind, Role


def _tool_client(handlers):
    """Fake tool client; handlers map tool name -> result, exception or coroutine fn."""
    async def execute(name, args):
        handler = handlers[name]
        if isinstance(handler, BaseException):
            raise handler
        if callable(handler):
            return await handler(args)
        return handler

    client = AsyncMock()
    client.execute = AsyncMock(side_effect=execute)
    return client


def _ok(text):
    return {"content": [{"type": "text", "text": text}], "isError": False}


def _last_turn(provider):
    return provider.generate.await_args.args[0][-1]


class TestRunIterative:
    """Test the single-session tool loop."""

    @pytest.mark.asyncio
    async def test_no_tool_calls_returns_final(self, config, tools, make_provider, responses):
        provider = make_provider(responses.text("  A thumbnail  "))
        orchestrator = Orchestrator(provider, config, tools=tools)

        result = await orchestrator.run("Blue-Eyes thumbnail")

        assert isinstance(result, ParsedResult)
        assert result.text == "A thumbnail"
        assert result.tool_rounds == 0
        assert provider.generate.await_count == 1
        sent_config = provider.generate.await_args.args[1]
        assert sent_config.tools == tools
        assert sent_config.response_modalities == []

    @pytest.mark.asyncio
    async def test_message_is_trimmed(self, config, tools, make_provider, responses):
        provider = make_provider(responses.text("ok"))
        await Orchestrator(provider, config, tools=tools).run("  hello  ")
        assert _last_turn(provider).parts[0].text == "hello"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", ["", "   ", None, 42])
    async def test_invalid_message_rejected_before_model(self, config, tools, make_provider, message):
        provider = make_provider()
        with pytest.raises(ValidationError):
            await Orchestrator(provider, config, tools=tools).run(message)
        provider.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_order(self, config, tools, make_provider, responses):
        provider = make_provider(
            responses.calls(("first", {"q": 1}), "second", "third"),
            responses.text("done"),
        )
        client = _tool_client({
            "first": _ok("one"),
            "second": ToolError("second", "ConnectionError: reset", attempts=3),
            "third": _ok("three"),
        })
        orchestrator = Orchestrator(provider, config, tool_client=client, tools=tools)

        result = await orchestrator.run("go")

        assert result.text == "done"
        assert result.tool_rounds == 1
        tool_turn = _last_turn(provider)
        assert tool_turn.role == Role.TOOL
        outcomes = [p.function_response for p in tool_turn.parts]
        assert [o.name for o in outcomes] == ["first", "second", "third"]
        assert [o.success for o in outcomes] == [True, False, True]
        assert "second" in outcomes[1].error
        assert outcomes[0].result["content"][0]["text"] == "one"
        client.execute.assert_any_await("first", {"q": 1})

    @pytest.mark.asyncio
    async def test_dispatch_runs_concurrently_with_ordered_fan_in(self, config, tools, make_provider):
        started = []

        async def slow(args):
            started.append("slow")
            await asyncio.sleep(0.05)
            return _ok("slow")

        async def fast(args):
            started.append("fast")
            return _ok("fast")

        orchestrator = Orchestrator(make_provider(), config,
                                    tool_client=_tool_client({"slow": slow, "fast": fast}), tools=tools)
        outcomes = await orchestrator.dispatch_tool_calls([
            FunctionCall(name="slow", index=0),
            FunctionCall(name="fast", index=1),
        ])

        assert started == ["slow", "fast"]
        assert [(o.name, o.index, o.success) for o in outcomes] == [("slow", 0, True), ("fast", 1, True)]

    @pytest.mark.asyncio
    async def test_unexpected_tool_exception_becomes_outcome(self, config, tools, make_provider):
        orchestrator = Orchestrator(make_provider(), config,
                                    tool_client=_tool_client({"t": RuntimeError("kaboom")}), tools=tools)
        outcomes = await orchestrator.dispatch_tool_calls([FunctionCall(name="t")])

        assert outcomes[0].success is False
        assert '"t"' in outcomes[0].error
        assert "kaboom" in outcomes[0].error

    @pytest.mark.asyncio
    async def test_no_tool_server_answers_every_call_in_one_round(
        self, config, tools, make_provider, responses,
    ):
        provider = make_provider(
            responses.calls("search_card_images", "search_card_images"),
            responses.text("Generated without references"),
        )
        orchestrator = Orchestrator(provider, config, tool_client=None, tools=tools)

        result = await orchestrator.run("Dark Magician thumbnail")

        assert result.text == "Generated without references"
        assert result.tool_rounds == 1
        assert provider.generate.await_count == 2
        outcomes = [p.function_response for p in _last_turn(provider).parts]
        assert len(outcomes) == 2
        assert all(not o.success for o in outcomes)
        assert all("not configured" in o.error for o in outcomes)

    @pytest.mark.asyncio
    async def test_round_budget_is_never_exceeded(self, config, tools, make_provider, responses):
        provider = make_provider(lambda contents, cfg: responses.calls("search_card_images"))
        client = _tool_client({"search_card_images": _ok("more")})
        orchestrator = Orchestrator(provider, config, tool_client=client, tools=tools)

        result = await orchestrator.run("loop forever")

        assert MAX_TOOL_ROUNDS == 10
        assert result.round_budget_exhausted is True
        assert result.tool_rounds == 10
        assert client.execute.await_count == 10
        assert provider.generate.await_count == 11
        assert result.text == ""

    @pytest.mark.asyncio
    async def test_custom_round_budget(self, config, tools, make_provider, responses):
        config.max_tool_rounds = 2
        provider = make_provider(lambda contents, cfg: responses.calls("t"))
        client = _tool_client({"t": _ok("x")})

        result = await Orchestrator(provider, config, tool_client=client, tools=tools).run("go")

        assert result.tool_rounds == 2
        assert result.round_budget_exhausted is True

    @pytest.mark.asyncio
    async def test_references_attached_to_user_turn(self, config, tools, make_provider, responses):
        image = base64.b64encode(b"card-art").decode()
        provider = make_provider(responses.calls("search_card_images"), responses.text("done"))
        client = _tool_client({"search_card_images": {
            "content": [
                {"type": "text", "text": '```json\n{"file_uri": "gs://cards/be.jpg"}\n```'},
                {"type": "image", "data": image, "mimeType": "image/png"},
            ],
            "isError": False,
        }})
        orchestrator = Orchestrator(provider, config, tool_client=client, tools=tools)

        await orchestrator.run("Blue-Eyes")

        contents = provider.generate.await_args.args[0]
        user_turn = contents[0]
        assert user_turn.role == Role.USER
        assert [p.kind for p in user_turn.parts] == [
            PartKind.TEXT, PartKind.FILE_DATA, PartKind.INLINE_DATA,
        ]
        assert user_turn.parts[2].inline_data.data == b"card-art"

        tool_turn = contents[-1]
        sent = tool_turn.parts[0].function_response.result
        assert sent["content"][1] == {"type": "image", "mimeType": "image/png", "attached": True}
        assert all(p.kind == PartKind.FUNCTION_RESPONSE for p in tool_turn.parts)

    @pytest.mark.asyncio
    async def test_prior_history_windowed(self, config, tools, make_provider, responses):
        history = [
            Message.from_text(Role.USER if i % 2 == 0 else Role.MODEL, f"old {i}")
            for i in range(30)
        ]
        provider = make_provider(responses.text("ok"))

        await Orchestrator(provider, config, tools=tools).run("new", history)

        contents = provider.generate.await_args.args[0]
        assert len(contents) <= config.history_window + 1
        assert contents[0].role == Role.USER
        assert contents[-1].text == "new"

    @pytest.mark.asyncio
    async def test_window_never_starts_with_orphaned_tool_result(
        self, config, tools, make_provider, responses,
    ):
        config.history_window = 2
        history = history_from_wire([
            {"role": "user", "parts": [{"text": "find Blue-Eyes"}]},
            {"role": "model", "parts": [{"functionCall": {"name": "search", "args": {}}}]},
            {"role": "user", "parts": [{"functionResponse": {"name": "search", "response": {"result": {}}}}]},
            {"role": "model", "parts": [{"text": "found it"}]},
        ])
        provider = make_provider(responses.text("ok"))

        await Orchestrator(provider, config, tools=tools).run("new", history)

        contents = provider.generate.await_args.args[0]
        assert [m.text for m in contents] == ["new"]
        assert all(p.kind != PartKind.FUNCTION_RESPONSE for m in contents for p in m.parts)

    @pytest.mark.asyncio
    async def test_tools_discovered_from_client(self, config, make_provider, responses, tools):
        provider = make_provider(responses.text("ok"))
        client = _tool_client({})
        client.list_tools = AsyncMock(return_value=tools)
        orchestrator = Orchestrator(provider, config, tool_client=client)

        await orchestrator.run("hi")
        await orchestrator.tool_schemas()

        assert provider.generate.await_args.args[1].tools == tools
        client.list_tools.assert_awaited_once()


class TestFailures:
    """Test model failure classification at the run boundary."""

    @pytest.mark.asyncio
    async def test_rate_limit_classified(self, config, tools, make_provider):
        original = RuntimeError("429 Too Many Requests: quota exceeded")
        provider = make_provider(original)

        with pytest.raises(ModelRateLimited) as exc_info:
            await Orchestrator(provider, config, tools=tools).run("hi")

        assert exc_info.value.status == 429
        assert exc_info.value.__cause__ is original
        assert "quota exceeded" in exc_info.value.details

    @pytest.mark.asyncio
    async def test_classified_errors_pass_through(self, config, tools, make_provider):
        blocked = ModelContentBlocked(details="prompt blocked: SAFETY")
        provider = make_provider(blocked)

        with pytest.raises(ModelContentBlocked) as exc_info:
            await Orchestrator(provider, config, tools=tools).run("hi")
        assert exc_info.value is blocked

    @pytest.mark.asyncio
    async def test_model_error_mid_loop_aborts(self, config, tools, make_provider, responses):
        provider = make_provider(responses.calls("t"), TimeoutError("deadline exceeded"))
        client = _tool_client({"t": _ok("x")})

        with pytest.raises(Exception) as exc_info:
            await Orchestrator(provider, config, tool_client=client, tools=tools).run("hi")
        assert exc_info.value.kind == "timeout"
        assert exc_info.value.status == 504
