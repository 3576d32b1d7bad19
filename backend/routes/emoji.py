"""
Emoji routes - generation and per-user gallery
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from services.emoji_storage import EmojiStorage, get_emoji_storage, get_mime_type
from services.gemini_service import EmojiGenerator, build_prompt, get_emoji_generator
from token_wallet.guard import GenerationFailed, GenerationGuard
from token_wallet.routes import get_generation_guard
from utils.errors import ExternalServiceError, ValidationError

logger = logging.getLogger(__name__)

emoji_router = APIRouter(tags=["Emoji"])


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() == "true"


@emoji_router.post("/generate-emoji")
async def generate_emoji(
    image: Optional[UploadFile] = File(None),
    description: Optional[str] = Form(None),
    userEmail: Optional[str] = Form(None),
    removeBackground: Optional[str] = Form(None),
    emojify: Optional[str] = Form(None),
    generator: EmojiGenerator = Depends(get_emoji_generator),
    storage: EmojiStorage = Depends(get_emoji_storage),
    guard: GenerationGuard = Depends(get_generation_guard)
):
    """
    Generate an emoji from an uploaded image, a description, or both.

    Costs one token. The token is refunded when generation fails.
    """
    description = (description or "").strip()
    has_image = image is not None and bool(image.filename)

    if not has_image and not description:
        raise ValidationError("Please provide either an image file or a description")

    if not userEmail:
        raise ValidationError("User email is required")
    storage.user_folder(userEmail)

    if not generator.configured:
        raise ExternalServiceError("Gemini service not available. Please check your API key configuration.")

    image_bytes = None
    mime_type = None
    if has_image:
        mime_type = image.content_type or get_mime_type(image.filename)
        storage.validate_upload(mime_type, image.size or 0)
        image_bytes = await image.read()
        storage.validate_upload(mime_type, len(image_bytes))

    remove_background = _flag(removeBackground)
    make_emoji = _flag(emojify)
    prompt = build_prompt(description, remove_background, make_emoji, text_to_image_only=not has_image)

    logger.info(
        f"Generating emoji for {userEmail}: image={image.filename if has_image else 'text-only'}, "
        f"removeBackground={remove_background}, emojify={make_emoji}"
    )

    # Runs only after the token is deducted
    async def generate_and_save():
        original_image = None
        if has_image:
            original_image = f"/{storage.save_upload(image.filename, image_bytes, mime_type)}"

        generated = await generator.generate(prompt, image_bytes, mime_type)
        saved = storage.save_emoji(userEmail, generated.data, {
            "description": description or "Generated emoji",
            "prompt": prompt,
            "removeBackground": remove_background,
            "emojify": make_emoji,
            "originalImage": original_image,
        })
        return {**saved, "original_image": original_image}

    try:
        result = await guard.run(userEmail, generate_and_save)
    except GenerationFailed as e:
        raise ExternalServiceError(f"Failed to generate emoji: {e}") from e

    return {
        "success": True,
        "message": "Emoji generated successfully!",
        "originalImage": result.value["original_image"],
        "generatedImage": f"/{result.value['user_path']}",
        "filename": result.value["filename"],
        "prompt": prompt,
        "tokensRemaining": result.tokens_remaining,
    }


@emoji_router.get("/my-emojis/{email}")
async def get_my_emojis(email: str, storage: EmojiStorage = Depends(get_emoji_storage)):
    """Get a user's generated emojis, newest first"""
    if not email or not email.strip():
        raise ValidationError("Email is required")

    return {"emojis": storage.list_emojis(email)}
