"""Tests for header image generation with Gemini."""

import base64
from unittest.mock import MagicMock, patch

import pytest

from batch_article_agent.errors import ConfigurationError
from batch_article_agent.image_generator import (
    generate_image_async,
    generate_image_gemini,
    to_data_url,
)


def _mock_client(parts):
    mock_client = MagicMock()
    mock_response = MagicMock()
    mock_response.candidates = [MagicMock()]
    mock_response.candidates[0].content.parts = parts
    mock_client.models.generate_content.return_value = mock_response
    return mock_client


def _image_part(data: bytes):
    part = MagicMock()
    part.inline_data = MagicMock()
    part.inline_data.data = data
    return part


def test_generate_image_returns_bytes_and_uses_model():
    """generate_image_gemini returns raw bytes from the first inline part."""
    text_part = MagicMock()
    text_part.inline_data = None
    mock_client = _mock_client([text_part, _image_part(b"\x89PNG_fake")])

    with patch("batch_article_agent.image_generator.genai") as mock_genai:
        mock_genai.Client.return_value = mock_client
        result = generate_image_gemini("a calm desk", api_key="fake-key", model="img-model")

    assert result == b"\x89PNG_fake"
    assert mock_client.models.generate_content.call_args.kwargs["model"] == "img-model"
    mock_genai.Client.assert_called_once_with(api_key="fake-key")


def test_generate_image_without_image_part_raises():
    text_part = MagicMock()
    text_part.inline_data = None

    with patch("batch_article_agent.image_generator.genai") as mock_genai:
        mock_genai.Client.return_value = _mock_client([text_part])
        with pytest.raises(ValueError):
            generate_image_gemini("prompt", api_key="fake-key")


def test_generate_image_without_key_raises():
    with pytest.raises(ConfigurationError):
        generate_image_gemini("prompt", api_key="")


def test_to_data_url():
    url = to_data_url(b"abc")
    assert url == "data:image/png;base64," + base64.b64encode(b"abc").decode()


@pytest.mark.asyncio
async def test_generate_image_async_returns_data_url():
    with patch("batch_article_agent.image_generator.genai") as mock_genai:
        mock_genai.Client.return_value = _mock_client([_image_part(b"img")])
        url = await generate_image_async("prompt", api_key="fake-key", model="img-model")

    assert url.startswith("data:image/png;base64,")
    assert base64.b64decode(url.split(",", 1)[1]) == b"img"
