"""
Configuration module for Lambda handlers.
Loads all environment variables needed by the moderation pipeline.
"""
import os


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes')


class Config:
    """Centralized configuration from environment variables."""

    # AWS Region
    AWS_REGION = os.environ.get('AWS_REGION', 'us-east-1')

    # DynamoDB Tables
    VALIDATION_RULES_TABLE = os.environ.get('VALIDATION_RULES_TABLE', '')
    VALIDATION_RESULTS_TABLE = os.environ.get('VALIDATION_RESULTS_TABLE', '')
    MODERATION_QUEUE_TABLE = os.environ.get('MODERATION_QUEUE_TABLE', '')
    ASSESSMENT_JOBS_TABLE = os.environ.get('ASSESSMENT_JOBS_TABLE', '')
    WORKS_TABLE = os.environ.get('WORKS_TABLE', '')
    SECTIONS_TABLE = os.environ.get('SECTIONS_TABLE', '')
    FAN_TRANSLATIONS_TABLE = os.environ.get('FAN_TRANSLATIONS_TABLE', '')
    FAN_AUDIOBOOKS_TABLE = os.environ.get('FAN_AUDIOBOOKS_TABLE', '')
    FAN_VOTES_TABLE = os.environ.get('FAN_VOTES_TABLE', '')
    FAN_CONTENT_SETTINGS_TABLE = os.environ.get('FAN_CONTENT_SETTINGS_TABLE', '')
    TIER3_DEALS_TABLE = os.environ.get('TIER3_DEALS_TABLE', '')

    # S3 Buckets
    MEDIA_BUCKET = os.environ.get('MEDIA_BUCKET', '')

    # Image safety (Rekognition moderation labels, 0-100)
    REKOGNITION_MIN_CONFIDENCE = float(os.environ.get('REKOGNITION_MIN_CONFIDENCE', '80'))

    # Safety rules
    SAFETY_BLOCK_SEVERITY = os.environ.get('SAFETY_BLOCK_SEVERITY', 'high')
    RULE_CACHE_TTL_SECONDS = float(os.environ.get('RULE_CACHE_TTL_SECONDS', '60'))

    # Plagiarism / duplicate detection
    SIMILARITY_FLAG_THRESHOLD = float(os.environ.get('SIMILARITY_FLAG_THRESHOLD', '0.7'))
    SIMILARITY_FAIL_THRESHOLD = float(os.environ.get('SIMILARITY_FAIL_THRESHOLD', '0.8'))
    SIMILARITY_CORPUS_LIMIT = int(os.environ.get('SIMILARITY_CORPUS_LIMIT', '100'))

    # Quality heuristics
    QUALITY_MIN_WORDS = int(os.environ.get('QUALITY_MIN_WORDS', '10'))
    QUALITY_MAX_CHARS = int(os.environ.get('QUALITY_MAX_CHARS', '50000'))
    QUALITY_REPETITION_RATIO = float(os.environ.get('QUALITY_REPETITION_RATIO', '0.15'))

    # Quality-assessment batch processing
    MAX_ASSESSMENT_ATTEMPTS = int(os.environ.get('MAX_ASSESSMENT_ATTEMPTS', '3'))
    ASSESSMENT_BATCH_SIZE = int(os.environ.get('ASSESSMENT_BATCH_SIZE', '10'))
    BATCH_TIME_BUDGET_SECONDS = float(os.environ.get('BATCH_TIME_BUDGET_SECONDS', '240'))
    JOB_LEASE_SECONDS = int(os.environ.get('JOB_LEASE_SECONDS', '900'))
    REASSESSMENT_COOLDOWN_DAYS = int(os.environ.get('REASSESSMENT_COOLDOWN_DAYS', '7'))

    # Moderation
    REQUIRE_VALIDATION_BEFORE_APPROVAL = _env_bool('REQUIRE_VALIDATION_BEFORE_APPROVAL')

    # Shared secret for scheduler / manual batch triggers
    CRON_SECRET = os.environ.get('CRON_SECRET', '')


config = Config()
