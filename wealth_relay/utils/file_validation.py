"""
File upload validation utilities.
"""
from fastapi import UploadFile
from pathlib import Path
from typing import Optional
import logging

from wealth_relay.config import settings
from wealth_relay.exceptions import ValidationError

logger = logging.getLogger(__name__)

IMAGE_MIME_PREFIX = "image/"


class FileValidator:
    """Payment-proof validation: image content type and a size ceiling."""

    @staticmethod
    def is_image(content_type: Optional[str]) -> bool:
        return bool(content_type) and content_type.lower().startswith(IMAGE_MIME_PREFIX)

    @staticmethod
    def measure(file: UploadFile) -> int:
        file.file.seek(0, 2)  # Seek to end
        size = file.file.tell()
        file.file.seek(0)  # Reset to beginning
        return size

    @staticmethod
    async def validate_image(file: Optional[UploadFile], max_size: Optional[int] = None) -> dict:
        """
        Validate an uploaded image and read it into memory.

        Args:
            file: The uploaded file, or None if the field was missing
            max_size: Maximum size in bytes (defaults to MAX_UPLOAD_SIZE)

        Returns:
            dict with original name, content type, size and the raw bytes

        Raises:
            ValidationError: If validation fails. Nothing is written.
        """
        if file is None or not file.filename:
            raise ValidationError("No file uploaded")

        if not FileValidator.is_image(file.content_type):
            logger.warning(f"Rejected non-image upload: {file.filename} ({file.content_type})")
            raise ValidationError(
                "Only image files are allowed!",
                details={"content_type": file.content_type},
            )

        max_allowed_size = max_size or settings.MAX_UPLOAD_SIZE
        size = FileValidator.measure(file)
        if size > max_allowed_size:
            size_mb = max_allowed_size / (1024 * 1024)
            raise ValidationError(
                f"File too large. Maximum size: {size_mb:.1f}MB",
                details={"size": size, "max_size": max_allowed_size},
            )
        if size == 0:
            raise ValidationError("File is empty")

        data = await file.read()
        await file.seek(0)
        return {
            "original_name": FileValidator.sanitize_filename(file.filename),
            "content_type": file.content_type,
            "size": len(data),
            "data": data,
        }

    @staticmethod
    def sanitize_filename(filename: str) -> str:
        """
        Sanitize filename to prevent path traversal and other attacks.

        Args:
            filename: Original filename

        Returns:
            Sanitized filename
        """
        # Get just the filename (remove any path components)
        filename = Path(filename.replace("\\", "/")).name

        # Remove or replace dangerous characters
        dangerous_chars = ['..', '/', '\\', '<', '>', ':', '"', '|', '?', '*', '\x00']
        for char in dangerous_chars:
            filename = filename.replace(char, '_')

        # Limit length
        if len(filename) > 255:
            ext = Path(filename).suffix
            name = Path(filename).stem[:255 - len(ext)]
            filename = f"{name}{ext}"

        return filename
