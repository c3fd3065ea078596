"""
Validate Section Handler.
POST /works/{workId}/sections/{sectionId}/validate

Lets a creator validate a chapter before publishing. The result is recorded;
a failed first chapter is queued for moderation automatically.
"""
from shared import assessment_jobs, dynamo
from shared.auth import get_actor, is_moderator
from shared.config import config
from shared.context import get_validator
from shared.errors import AuthorizationError, NotFoundError
from shared.logging import log_event, logger
from shared.utils import error_response, format_response, get_path_param
from shared.validation import ValidationOptions


def handler(event, context):
    log_event(event)
    try:
        actor = get_actor(event)
        work_id = get_path_param(event, 'workId')
        section_id = get_path_param(event, 'sectionId')

        work = dynamo.get_item(config.WORKS_TABLE, {'workId': work_id})
        if not work:
            raise NotFoundError(f"Work {work_id} not found")
        if work.get('authorId') != actor['userId'] and not is_moderator(actor):
            raise AuthorizationError('Only the author can validate this work')

        loaded = assessment_jobs.load_job_content({'workId': work_id, 'sectionId': section_id})
        result = get_validator().validate(
            loaded['content'],
            ValidationOptions(is_first_chapter=loaded['isFirstChapter']),
            target=loaded['target'],
            current_rating=loaded['currentRating']
        )
        logger.info(f"Section {section_id} validated by {actor['userId']}")

        return format_response(200, {'success': True, 'validation': result.to_public()})

    except Exception as e:
        return error_response(e, 'validate section')
