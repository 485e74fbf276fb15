from .normalizer import NormalizedImage, normalize_image, parse_data_url, target_size

__all__ = ["NormalizedImage", "normalize_image", "parse_data_url", "target_size"]
