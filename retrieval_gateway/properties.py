"""Delimited key/value property encoding."""
from typing import Dict, Optional, Tuple

from retrieval_gateway.errors import MalformedProperties
from retrieval_gateway.settings import settings


def decode_properties(
    keys: Optional[str],
    values: Optional[str],
    delimiter: str = None
) -> Dict[str, str]:
    """
    Pair the i-th key token with the i-th value token.

    Tokens keep their encounter order. A repeated key keeps the last value.

    Args:
        keys: Keys joined by the delimiter (e.g. "author;date")
        values: Values joined by the delimiter (e.g. "bob;2015")
        delimiter: Token separator (default from settings)

    Returns:
        Ordered property mapping, empty when keys is None

    Raises:
        MalformedProperties: If the token counts differ
    """
    if delimiter is None:
        delimiter = settings.PROPERTY_DELIMITER

    if keys is None:
        return {}

    keys_array = keys.split(delimiter)
    values_array = values.split(delimiter) if values is not None else []

    if len(keys_array) != len(values_array):
        raise MalformedProperties(
            f"keys.size()!=values.size() ({len(keys_array)}!={len(values_array)})"
        )

    return dict(zip(keys_array, values_array))


def encode_properties(properties: Dict[str, str], delimiter: str = None) -> Tuple[str, str]:
    """Join a property mapping back into its (keys, values) encoding."""
    if delimiter is None:
        delimiter = settings.PROPERTY_DELIMITER
    return delimiter.join(properties.keys()), delimiter.join(properties.values())
