"""
Image-analysis collaborator for cover and thumbnail safety.
Uses Amazon Rekognition moderation labels for objects in the media bucket;
other URLs only get URL and format validation.

Unreachable service -> TransientCollaboratorError. The validation engine
treats that as "could not be evaluated", never as a failed image.
"""
import re
import boto3
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse
from botocore.exceptions import BotoCoreError, ClientError
from shared.config import config
from shared.errors import TransientCollaboratorError
from shared.logging import logger

ALLOWED_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.webp', '.gif')

# Rekognition errors caused by the image itself rather than the service
IMAGE_ERRORS = {
    'InvalidImageFormatException': 'invalid_image_format',
    'ImageTooLargeException': 'image_too_large',
    'InvalidS3ObjectException': 'image_not_found',
}

# Initialize AWS client lazily
_rekognition_client = None


def get_rekognition_client():
    """Get or create Rekognition client."""
    global _rekognition_client
    if _rekognition_client is None:
        _rekognition_client = boto3.client('rekognition', region_name=config.AWS_REGION)
    return _rekognition_client


def extract_s3_key_from_url(url: str) -> Optional[str]:
    """
    Extract the S3 key from a media-bucket URL.

    Examples:
        https://bucket.s3.amazonaws.com/covers/a.jpg -> covers/a.jpg
        https://bucket.s3.us-east-1.amazonaws.com/covers/a.jpg -> covers/a.jpg
        covers/a.jpg -> covers/a.jpg
        https://example.com/a.jpg -> None (not ours)
    """
    if not url:
        return None

    url = str(url)
    if not url.startswith('http'):
        return url.lstrip('/') or None

    bucket = config.MEDIA_BUCKET
    parsed = urlparse(url)
    if not bucket or not parsed.netloc.startswith(f"{bucket}.s3"):
        return None
    path = parsed.path.lstrip('/')
    return path or None


def _label_flag(name: str) -> str:
    return 'image_' + re.sub(r'[^a-z0-9]+', '_', name.lower()).strip('_')


def detect_moderation_labels(bucket: str, key: str) -> List[Dict[str, Any]]:
    """
    Run Rekognition content moderation on an S3 image.

    Returns:
        List of {'Name', 'ParentName', 'Confidence'} labels

    Raises:
        ClientError / BotoCoreError from the Rekognition client
    """
    response = get_rekognition_client().detect_moderation_labels(
        Image={
            'S3Object': {
                'Bucket': bucket,
                'Name': key
            }
        },
        MinConfidence=config.REKOGNITION_MIN_CONFIDENCE
    )
    labels = response.get('ModerationLabels', [])
    logger.info(f"Rekognition returned {len(labels)} moderation labels for s3://{bucket}/{key}")
    return [
        {
            'Name': label['Name'],
            'ParentName': label.get('ParentName', ''),
            'Confidence': float(label.get('Confidence', 0))
        }
        for label in labels
    ]


def check_image_safety(url: str) -> Dict[str, Any]:
    """
    Check an image reference for unsafe content.

    Args:
        url: media-bucket key or URL, or an external image URL

    Returns:
        {'passed': bool, 'score': float 0-1, 'flags': [...], 'analysis': str}

    Raises:
        TransientCollaboratorError: if Rekognition cannot be reached
    """
    flags: List[str] = []
    parsed = urlparse(str(url or ''))
    is_url = parsed.scheme in ('http', 'https') and bool(parsed.netloc)
    path = parsed.path if is_url else str(url or '')

    if not url or (parsed.scheme and not is_url):
        return {'passed': False, 'score': 0.0, 'flags': ['invalid_image_url'], 'analysis': 'url_validation'}

    if not path.lower().endswith(ALLOWED_EXTENSIONS):
        flags.append('invalid_image_format')

    key = extract_s3_key_from_url(url)
    if flags or not key or not config.MEDIA_BUCKET:
        return {
            'passed': not flags,
            'score': 0.0 if flags else 1.0,
            'flags': flags,
            'analysis': 'url_validation'
        }

    try:
        labels = detect_moderation_labels(config.MEDIA_BUCKET, key)
    except ClientError as e:
        code = e.response.get('Error', {}).get('Code', '')
        if code in IMAGE_ERRORS:
            return {'passed': False, 'score': 0.0, 'flags': [IMAGE_ERRORS[code]], 'analysis': 'rekognition'}
        raise TransientCollaboratorError('image-analysis', code or str(e)) from e
    except BotoCoreError as e:
        raise TransientCollaboratorError('image-analysis', str(e)) from e

    # Top-level categories only; child labels repeat their parent
    top_level = [l for l in labels if not l['ParentName']] or labels
    flags = sorted({_label_flag(l['Name']) for l in top_level})
    worst = max((l['Confidence'] for l in labels), default=0.0)

    return {
        'passed': not flags,
        'score': round(1.0 - worst / 100.0, 4) if flags else 1.0,
        'flags': flags,
        'analysis': 'rekognition'
    }
