"""
Assessment Stats Handler.
GET /quality-assessment/stats
"""
from shared import assessment_jobs
from shared.auth import get_actor, require_moderator
from shared.logging import log_event
from shared.utils import error_response, format_response


def handler(event, context):
    log_event(event)
    try:
        require_moderator(get_actor(event))

        counts = assessment_jobs.count_by_status()
        triage = assessment_jobs.list_needing_triage()

        return format_response(200, {
            'queue': counts,
            'remaining': counts.get('pending', 0),
            'needsTriage': [
                {
                    'jobId': job['jobId'],
                    'sectionId': job.get('sectionId'),
                    'attempts': job.get('attempts'),
                    'lastError': job.get('lastError')
                }
                for job in triage
            ]
        })

    except Exception as e:
        return error_response(e, 'get assessment stats')
