"""
Common utility functions for Lambda handlers.
"""
import hashlib
import json
import math
import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict

from shared.errors import ChaptursError
from shared.logging import logger


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal types from DynamoDB."""

    def default(self, o):
        if isinstance(o, Decimal):
            # Convert to int if it's a whole number, otherwise float
            if o % 1 == 0:
                return int(o)
            return float(o)
        if isinstance(o, (set, frozenset, tuple)):
            return list(o)
        return super().default(o)


def format_response(
    status_code: int,
    body: Any,
    headers: Dict[str, str] = None
) -> Dict[str, Any]:
    """
    Format a standard API Gateway response with CORS headers.

    Args:
        status_code: HTTP status code
        body: Response body (will be JSON serialized)
        headers: Additional headers to include

    Returns:
        API Gateway response dict
    """
    default_headers = {
        'Access-Control-Allow-Origin': '*',
        'Access-Control-Allow-Credentials': True,
        'Content-Type': 'application/json'
    }

    if headers:
        default_headers.update(headers)

    return {
        'statusCode': status_code,
        'headers': default_headers,
        'body': json.dumps(body, cls=DecimalEncoder)
    }


def error_response(error: Exception, action: str) -> Dict[str, Any]:
    """
    Turn an exception raised inside a handler into an API response.
    Pipeline errors keep their status code; anything else is logged as a 500.
    """
    if isinstance(error, ChaptursError):
        if error.status_code >= 500:
            logger.error(f"{action} failed: {error}")
        return format_response(error.status_code, error.to_dict())
    logger.exception(f"Unexpected error during {action}: {error}")
    return format_response(500, {'message': f'Failed to {action}'})


def parse_body(event: dict) -> dict:
    """
    Safely parse JSON body from API Gateway event.

    Args:
        event: API Gateway Lambda proxy event

    Returns:
        Parsed body dict or empty dict if invalid
    """
    try:
        body = event.get('body') or '{}'
        if isinstance(body, str):
            parsed = json.loads(body)
            return parsed if isinstance(parsed, dict) else {}
        return body or {}
    except (json.JSONDecodeError, TypeError):
        return {}


def get_path_param(event: dict, param_name: str) -> str:
    """Extract path parameter from event."""
    try:
        return event['pathParameters'][param_name]
    except (KeyError, TypeError):
        return None


def get_query_param(event: dict, param_name: str, default: str = None) -> str:
    """Extract query string parameter from event."""
    try:
        params = event.get('queryStringParameters') or {}
        return params.get(param_name, default)
    except (KeyError, TypeError, AttributeError):
        return default


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string (sorts lexicographically)."""
    return utc_now().isoformat()


def to_decimal(value: float) -> Decimal:
    """DynamoDB rejects floats; store numbers as Decimal."""
    return Decimal(str(value))


def normalize_text(text: str) -> str:
    """
    Normalize text for comparison.
    Removes punctuation, extra whitespace, and converts to lowercase.

    Args:
        text: Raw text input

    Returns:
        Normalized text string
    """
    if not text:
        return ''
    text = str(text).lower().strip()
    text = re.sub(r'[^\w\s]', '', text)  # Remove punctuation
    text = re.sub(r'\s+', ' ', text)     # Normalize whitespace
    return text


def word_frequency(text: str) -> Dict[str, int]:
    """Frequency of words longer than two characters in normalized text."""
    frequency: Dict[str, int] = {}
    for word in normalize_text(text).split(' '):
        if len(word) > 2:
            frequency[word] = frequency.get(word, 0) + 1
    return frequency


def cosine_similarity(text1: str, text2: str) -> float:
    """
    Cosine similarity of the word-frequency vectors of two texts (0.0 - 1.0).

    Args:
        text1: First text to compare
        text2: Second text to compare

    Returns:
        0.0 when either text has no countable words
    """
    freq1 = word_frequency(text1)
    freq2 = word_frequency(text2)
    if not freq1 or not freq2:
        return 0.0

    dot = sum(count * freq2.get(word, 0) for word, count in freq1.items())
    norm1 = math.sqrt(sum(c * c for c in freq1.values()))
    norm2 = math.sqrt(sum(c * c for c in freq2.values()))
    return dot / (norm1 * norm2)


def content_hash(text: str) -> str:
    """SHA-256 of the normalized text, used for exact-duplicate detection."""
    return hashlib.sha256(normalize_text(text).encode('utf-8')).hexdigest()


def extract_text(content: Any) -> str:
    """
    Flatten a chapter document into plain text.

    Accepts plain strings, JSON strings, or dicts with a `blocks` or `content`
    list of prose / narration / heading / dialogue / chat / phone blocks.
    Image and divider blocks carry no text.
    """
    if content is None:
        return ''
    if isinstance(content, str):
        stripped = content.strip()
        if not stripped.startswith('{'):
            return content
        try:
            content = json.loads(stripped)
        except json.JSONDecodeError:
            return content
    if not isinstance(content, dict):
        return str(content)

    if isinstance(content.get('text'), str) and not content.get('blocks'):
        return content['text']

    blocks = content.get('blocks') or content.get('content') or []
    if not isinstance(blocks, list):
        return ''

    parts = []
    for block in blocks:
        if not isinstance(block, dict):
            continue
        block_type = block.get('type')
        if block_type in ('prose', 'narration', 'heading'):
            parts.append(block.get('text') or '')
        elif block_type == 'dialogue':
            lines = []
            for line in block.get('lines') or []:
                speaker = f"{line['speaker']}: " if line.get('speaker') else ''
                lines.append(speaker + (line.get('text') or ''))
            parts.append('\n'.join(lines))
        elif block_type in ('chat', 'phone'):
            messages = block.get('messages') if block_type == 'chat' else block.get('content')
            parts.append('\n'.join(
                f"{msg.get('user', '')}: {msg.get('text', '')}" for msg in messages or []
            ))

    return '\n\n'.join(part for part in parts if part)


def to_dynamo(value: Any) -> Any:
    """Deep-convert floats to Decimal so nested maps can be written to DynamoDB."""
    return json.loads(json.dumps(value, cls=DecimalEncoder), parse_float=Decimal)
