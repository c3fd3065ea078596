"""
Similarity collaborator for first-chapter plagiarism and duplicate checks.
Compares submitted text against already published sections of other works.
"""
from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import Attr, Key

from shared import dynamo
from shared.config import config
from shared.errors import PersistenceError, TransientCollaboratorError
from shared.logging import logger
from shared.models import PublishStatus
from shared.utils import content_hash, cosine_similarity, extract_text


def _published_elsewhere(exclude_work_id: Optional[str]):
    condition = Attr('status').eq(PublishStatus.PUBLISHED)
    if exclude_work_id:
        condition = condition & Attr('workId').ne(exclude_work_id)
    return condition


def check_similarity(text: str, exclude_work_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Compare text against a bounded corpus of published sections.

    Args:
        text: Flattened text of the submission
        exclude_work_id: The submission's own work, never compared with itself

    Returns:
        {'isDuplicate': bool, 'matches': [{'workId', 'sectionId', 'similarity'}],
         'maxSimilarity': float}
        `isDuplicate` is True at or above the flag threshold; matches are sorted
        most similar first.

    Raises:
        TransientCollaboratorError: if the corpus cannot be read
    """
    try:
        corpus = dynamo.scan(
            config.SECTIONS_TABLE,
            filter_expression=_published_elsewhere(exclude_work_id),
            limit=config.SIMILARITY_CORPUS_LIMIT
        )
    except PersistenceError as e:
        raise TransientCollaboratorError('similarity', str(e)) from e

    matches: List[Dict[str, Any]] = []
    max_similarity = 0.0
    for section in corpus:
        similarity = cosine_similarity(text, extract_text(section.get('content')))
        max_similarity = max(max_similarity, similarity)
        if similarity >= config.SIMILARITY_FLAG_THRESHOLD:
            matches.append({
                'workId': section.get('workId'),
                'sectionId': section.get('sectionId'),
                'similarity': round(similarity, 4)
            })

    matches.sort(key=lambda m: m['similarity'], reverse=True)
    if matches:
        logger.info(f"Similarity check found {len(matches)} similar sections (max {max_similarity:.2f})")

    return {
        'isDuplicate': bool(matches),
        'matches': matches,
        'maxSimilarity': round(max_similarity, 4)
    }


def check_duplicate(text: str, exclude_work_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Look for a published section of another work with exactly the same text.

    Returns:
        {'isDuplicate': bool, 'contentHash': str, 'matches': [{'workId', 'sectionId'}]}

    Raises:
        TransientCollaboratorError: if the hash index cannot be queried
    """
    digest = content_hash(text)
    try:
        items = dynamo.query(
            config.SECTIONS_TABLE,
            index_name='byContentHash',
            key_condition=Key('contentHash').eq(digest),
            filter_expression=_published_elsewhere(exclude_work_id)
        )
    except PersistenceError as e:
        raise TransientCollaboratorError('duplicate-detection', str(e)) from e

    matches = [{'workId': i.get('workId'), 'sectionId': i.get('sectionId')} for i in items]
    return {
        'isDuplicate': bool(matches),
        'contentHash': digest,
        'matches': matches
    }
