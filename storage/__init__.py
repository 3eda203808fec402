"""Storage collaborators for the relay hub."""

from .images import ImageStore, decode_image, detect_image_type

__all__ = ["ImageStore", "decode_image", "detect_image_type"]
