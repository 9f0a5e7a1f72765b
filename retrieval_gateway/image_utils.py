"""Image payload utilities: decoding uploads and checking indexability."""
from io import BytesIO
from PIL import Image
from retrieval_gateway.settings import settings


def open_image_from_bytes(data: bytes) -> Image.Image:
    """
    Open and fully decode a PIL Image from bytes.

    Args:
        data: Image bytes

    Returns:
        PIL Image object with pixel data loaded

    Raises:
        ValueError: If the bytes are not a supported raster image
    """
    if not data:
        raise ValueError("Invalid image data: empty payload")
    try:
        image = Image.open(BytesIO(data))
        image.load()  # Image.open is lazy; force decoding of truncated files
        return image
    except Exception as e:
        raise ValueError(f"Invalid image data: {str(e)}")


def is_indexable(image: Image.Image, min_dimension: int = None) -> bool:
    """
    Check whether an image is large enough to be indexed.

    Args:
        image: PIL Image object
        min_dimension: Minimum width and height in pixels (default from settings)

    Returns:
        True if both sides reach the minimum
    """
    if min_dimension is None:
        min_dimension = settings.MIN_IMAGE_DIMENSION

    width, height = image.size
    return width >= min_dimension and height >= min_dimension
