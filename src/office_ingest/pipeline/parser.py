"""
Assistant response parser.

The assistant is asked for a JSON array of transactions. It usually wraps
the array in a ```json fence, sometimes surrounded by prose. When no fence
is present the whole response must be the array.
"""

import json
import logging
import re

from ..schemas import AmountFormatError, RawTransaction
from .errors import ParseError

logger = logging.getLogger(__name__)

# First fenced block wins; non-greedy, spans newlines
JSON_FENCE_PATTERN = re.compile(r"```json\s*(\[.*?\])\s*```", re.DOTALL)


def extract_json_candidate(text: str) -> str:
    """Return the fenced JSON array if present, else the trimmed text."""
    match = JSON_FENCE_PATTERN.search(text)
    if match:
        return match.group(1)
    return text.strip()


def parse_response(text: str | None) -> list[RawTransaction]:
    """
    Parse one chunk's response into raw transactions.

    An empty response, or a literal JSON null, yields no transactions.

    Raises:
        ParseError: If the candidate is not a JSON array of objects or an
            amount field is not numeric. The original exception is chained.
    """
    if text is None or not text.strip():
        return []

    candidate = extract_json_candidate(text)
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.debug("Unparseable response: %s", candidate[:200])
        raise ParseError(f"Error al extraer transacciones: {e}") from e

    if data is None:
        return []
    if not isinstance(data, list):
        raise ParseError(
            f"Error al extraer transacciones: expected a JSON array, got {type(data).__name__}"
        )

    try:
        return [RawTransaction.from_dict(item) for item in data]
    except (AmountFormatError, TypeError) as e:
        raise ParseError(f"Error al extraer transacciones: {e}") from e
