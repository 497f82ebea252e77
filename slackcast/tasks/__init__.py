"""RQ task definitions.

All RQ enqueue calls MUST import from this module (not services.*)
so that the worker resolves functions as `slackcast.tasks.<name>`.

The wrappers stay thin and import lazily so a worker only loads the
delivery stack when a job actually runs.
"""


def fire_repeatable_task(key: str) -> str | None:
    from slackcast.services.queue import get_repeat_store
    from slackcast.services.registry import ScheduleRegistry

    return ScheduleRegistry(get_repeat_store()).fire(key)


def process_slack_message_task(job_data: dict) -> dict:
    from rq import get_current_job

    from slackcast.services.processor import processor_for_process

    job = get_current_job()
    run_at = job.enqueued_at.replace(tzinfo=None) if job is not None and job.enqueued_at else None
    return processor_for_process().process(job_data, run_at=run_at)
