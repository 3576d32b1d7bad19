"""
Gemini Image Service for the Emoji Generator
Builds the emoji prompt and calls the Gemini image model
"""

import os
import base64
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from utils.errors import ExternalServiceError

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image-preview"

SQUARE_REQUIREMENTS = (
    'IMPORTANT: The output image MUST be: '
    '- Exactly square dimensions (1:1 aspect ratio - same width and height) '
    '- Do not preserve the original aspect ratio '
    '- Force the image into a perfect square format '
    '- Clear and recognizable at small sizes '
    '- Simple, clean design with minimal details '
    '- High contrast colors '
    '- Professional quality'
)

EMOJIFY_INSTRUCTION = (
    'Make it look like a typical emoji with cute, cartoon-style features, bold simple lines, '
    'bright vibrant colors, and a friendly expressive appearance. '
)

REMOVE_BACKGROUND_INSTRUCTION = (
    'Remove the background completely and make it transparent, focusing only on the main subject. '
)


def build_prompt(
    description: Optional[str],
    remove_background: bool = False,
    emojify: bool = False,
    text_to_image_only: bool = False
) -> str:
    """
    Build the generation prompt from the user's options.

    Text-only requests describe the emoji from scratch; image requests
    transform the uploaded picture.
    """
    if text_to_image_only:
        prompt = 'Generate an emoji image that represents: '
    else:
        prompt = 'Using the provided image, '

    if description:
        prompt += f'{description}. ' if text_to_image_only else f'create an image that represents: {description}. '
    else:
        prompt += 'a generic image. ' if text_to_image_only else 'transform this image into a square format. '

    if emojify:
        prompt += EMOJIFY_INSTRUCTION

    if remove_background:
        prompt += REMOVE_BACKGROUND_INSTRUCTION

    return prompt + SQUARE_REQUIREMENTS


@dataclass
class GeneratedImage:
    data: bytes
    mime_type: str
    text: str = ""


def extract_image(response) -> GeneratedImage:
    """
    Pull the first inline image out of a generate_content response.

    Raises ExternalServiceError when the model answered with text only.
    """
    text_parts = []
    candidates = getattr(response, "candidates", None) or []
    parts = []
    if candidates and getattr(candidates[0], "content", None) is not None:
        parts = candidates[0].content.parts or []

    for part in parts:
        inline = getattr(part, "inline_data", None)
        if inline is not None and getattr(inline, "data", None):
            data = inline.data
            if isinstance(data, str):
                data = base64.b64decode(data)
            return GeneratedImage(
                data=data,
                mime_type=getattr(inline, "mime_type", None) or "image/png",
                text="".join(text_parts),
            )
        if getattr(part, "text", None):
            text_parts.append(part.text)

    logger.warning(f"Gemini returned no image. Text: {''.join(text_parts)[:200]}")
    raise ExternalServiceError("No image data found in response. Response was text only.")


class EmojiGenerator:
    """Gemini image model wrapper used for emoji generation"""

    def __init__(self, api_key: Optional[str] = None, model_name: Optional[str] = None):
        self.api_key = api_key or os.environ.get("GEMINI_API_KEY")
        self.model_name = model_name or os.environ.get("GEMINI_IMAGE_MODEL", DEFAULT_IMAGE_MODEL)
        self._model = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _get_model(self):
        """Initialize and return the Gemini model"""
        if self._model is None:
            import google.generativeai as genai
            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(model_name=self.model_name)
        return self._model

    async def generate(
        self,
        prompt: str,
        image_bytes: Optional[bytes] = None,
        mime_type: Optional[str] = None
    ) -> GeneratedImage:
        """
        Generate an emoji image.

        Args:
            prompt: Prompt from build_prompt
            image_bytes: Optional source image
            mime_type: MIME type of the source image

        Returns:
            GeneratedImage with raw PNG bytes
        """
        if not self.configured:
            raise ExternalServiceError("Gemini service not available. Please check your API key configuration.")

        contents = [prompt]
        if image_bytes:
            contents.append({"mime_type": mime_type or "image/jpeg", "data": image_bytes})

        logger.info(f"Generating emoji with {self.model_name} (with_image={bool(image_bytes)})")

        try:
            model = self._get_model()
            response = await asyncio.to_thread(model.generate_content, contents)
        except Exception as e:
            logger.error(f"Gemini API error: {e}")
            raise ExternalServiceError(str(e)) from e

        return extract_image(response)


_generator: Optional[EmojiGenerator] = None


def get_emoji_generator() -> EmojiGenerator:
    """Process-wide generator, created on first use"""
    global _generator
    if _generator is None:
        _generator = EmojiGenerator()
        if not _generator.configured:
            logger.warning("GEMINI_API_KEY not set - emoji generation will be unavailable")
    return _generator
