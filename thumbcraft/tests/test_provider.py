"""Tests for the Gemini provider."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from google.genai import types

from thumbcraft.errors import ConfigurationError
from thumbcraft.provider import GeminiProvider, build_generate_config, create_provider
from thumbcraft.session import SessionConfig, generation_session_config, tool_session_config
from thumbcraft.types import Message, Role


def _client(response):
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(return_value=response)
    return client


class TestBuildGenerateConfig:

    def test_generation_flavor(self, config):
        sdk_config = build_generate_config(generation_session_config(config))

        assert sdk_config.system_instruction == "Make thumbnails."
        assert sdk_config.response_modalities == ["TEXT", "IMAGE"]
        assert sdk_config.image_config.aspect_ratio == "16:9"
        assert sdk_config.image_config.image_size == "1K"
        assert sdk_config.tools is None
        assert sdk_config.automatic_function_calling.disable is True

    def test_tool_flavor(self, config, tools):
        sdk_config = build_generate_config(tool_session_config(config, tools))

        assert sdk_config.tools[0].function_declarations[0].name == "search_card_images"
        assert sdk_config.response_modalities is None
        assert sdk_config.image_config is None
        assert sdk_config.automatic_function_calling.disable is True


class TestGeminiProvider:

    def test_requires_key_or_client(self):
        with pytest.raises(ConfigurationError):
            GeminiProvider()

    def test_create_provider_builds_client_from_key(self, config):
        with patch("thumbcraft.provider.get_genai") as get_genai:
            provider = create_provider(config)
        get_genai.return_value.Client.assert_called_once_with(api_key="test-key")
        assert provider.client is get_genai.return_value.Client.return_value

    @pytest.mark.asyncio
    async def test_generate_converts_request_and_response(self, config):
        sdk_response = types.GenerateContentResponse(candidates=[
            types.Candidate(
                content=types.Content(role="model", parts=[types.Part(text="done", thought_signature=b"s")]),
                finish_reason=types.FinishReason.STOP,
            ),
        ])
        client = _client(sdk_response)
        provider = GeminiProvider(client=client)
        session_config = SessionConfig(model="image-model", system_instruction="sys")

        response = await provider.generate(
            [Message.from_text(Role.USER, "hi"), Message.from_text(Role.MODEL, "hello"),
             Message.from_text(Role.USER, "again")],
            session_config,
        )

        kwargs = client.aio.models.generate_content.await_args.kwargs
        assert kwargs["model"] == "image-model"
        assert [c.role for c in kwargs["contents"]] == ["user", "model", "user"]
        assert kwargs["contents"][2].parts[0].text == "again"
        assert kwargs["config"].system_instruction == "sys"

        assert response.parts[0].text == "done"
        assert response.parts[0].thought_signature == b"s"
        assert response.raw is sdk_response

    @pytest.mark.asyncio
    async def test_sdk_errors_propagate(self):
        client = MagicMock()
        client.aio.models.generate_content = AsyncMock(side_effect=RuntimeError("boom"))
        provider = GeminiProvider(client=client)

        with pytest.raises(RuntimeError):
            await provider.generate([Message.from_text(Role.USER, "hi")], SessionConfig(model="m"))
