"""
Media Infrastructure Module

Product image hosting on the Cloudinary CDN.
"""

from app.infrastructure.media.cloudinary_service import (
    CloudinaryService,
    get_cloudinary_service,
)

__all__ = ["CloudinaryService", "get_cloudinary_service"]
