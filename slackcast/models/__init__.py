"""SQLAlchemy models — re-export all."""

from slackcast.models.workspace import Workspace, SlackToken  # noqa: F401
from slackcast.models.message import Template, Message  # noqa: F401
from slackcast.models.schedule import Schedule  # noqa: F401
from slackcast.models.job_run import JobRun  # noqa: F401
