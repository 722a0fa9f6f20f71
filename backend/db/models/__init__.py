"""Database models for the workflow automation engine.

This module imports all models to ensure they are registered
with SQLAlchemy's declarative base.
"""

from db.models.workflow import Workflow
from db.models.execution import WorkflowExecution
from db.models.execution_log import WorkflowExecutionLog
from db.models.ticket import Ticket
from db.models.contact import Contact
from db.models.submission import Submission
from db.models.notification import Notification

__all__ = [
    "Workflow",
    "WorkflowExecution",
    "WorkflowExecutionLog",
    "Ticket",
    "Contact",
    "Submission",
    "Notification",
]
