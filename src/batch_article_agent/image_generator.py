"""Gemini image generation for article header images.

The google-genai call is synchronous, so ``generate_image_async`` runs it in
the default thread pool to keep the event loop free for the other jobs of
the wave.
"""

import asyncio
import base64
import functools
import logging

from google import genai
from google.genai import types

from batch_article_agent.errors import ConfigurationError

logger = logging.getLogger(__name__)

_IMAGE_MODEL = "gemini-2.5-flash-image"


def generate_image_gemini(
    prompt: str,
    api_key: str,
    model: str = _IMAGE_MODEL,
    aspect_ratio: str = "16:9",
) -> bytes:
    """Generate a single image using the synchronous Gemini API.

    Args:
        prompt: Generation prompt text.
        api_key: Gemini API key.
        model: Gemini image model name.
        aspect_ratio: Image aspect ratio; blog headers are landscape.

    Returns:
        Raw image bytes.

    Raises:
        ConfigurationError: If no API key is available.
        ValueError: If no image was returned.
    """
    if not api_key:
        raise ConfigurationError("GEMINI_API_KEY not set")

    client = genai.Client(api_key=api_key)
    response = client.models.generate_content(
        model=model,
        contents=[prompt],
        config=types.GenerateContentConfig(
            response_modalities=["TEXT", "IMAGE"],
            image_config=types.ImageConfig(aspect_ratio=aspect_ratio),
        ),
    )

    for part in response.candidates[0].content.parts:
        if part.inline_data is not None:
            return part.inline_data.data

    raise ValueError("No image generated in response")


def to_data_url(image_bytes: bytes, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"


async def generate_image_async(prompt: str, api_key: str, model: str = _IMAGE_MODEL) -> str:
    """Generate an image off the event loop and return it as a data URL."""
    loop = asyncio.get_running_loop()
    image_bytes = await loop.run_in_executor(
        None,
        functools.partial(generate_image_gemini, prompt=prompt, api_key=api_key, model=model),
    )
    logger.info("Generated image (%.1f KB)", len(image_bytes) / 1024)
    return to_data_url(image_bytes)
