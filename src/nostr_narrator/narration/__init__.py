"""Event-to-text narration: author metadata cache and text transformer."""
from .metadata_cache import MetadataCache
from .transformer import Transformer

__all__ = ["MetadataCache", "Transformer"]
