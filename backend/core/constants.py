"""Constants and enums for the workflow automation engine."""

from enum import Enum


class ExecutionStatus(str, Enum):
    """Workflow execution status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"


class StepType(str, Enum):
    """Kind of unit recorded in the execution step log."""

    CONDITION = "condition"
    ACTION = "action"


class StepStatus(str, Enum):
    """Status of one step log entry."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ConditionLogic(str, Enum):
    """How a workflow's conditions are combined."""

    AND = "AND"
    OR = "OR"


class ConditionOperator(str, Enum):
    """Operators a workflow condition may use."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    MATCHES_REGEX = "matches_regex"
    IN = "in"
    NOT_IN = "not_in"


# Symbolic spellings accepted from the workflow builder
OPERATOR_ALIASES: dict[str, ConditionOperator] = {
    "==": ConditionOperator.EQUALS,
    "!=": ConditionOperator.NOT_EQUALS,
    ">": ConditionOperator.GREATER_THAN,
    "<": ConditionOperator.LESS_THAN,
    ">=": ConditionOperator.GREATER_THAN_OR_EQUAL,
    "<=": ConditionOperator.LESS_THAN_OR_EQUAL,
}


class ActionType(str, Enum):
    """Action types the dispatcher can execute."""

    SEND_EMAIL = "send_email"
    CREATE_TICKET = "create_ticket"
    UPDATE_FIELD = "update_field"
    SEND_NOTIFICATION = "send_notification"
    WEBHOOK = "webhook"
    CALL_WEBHOOK = "call_webhook"
    UPDATE_CONTACT = "update_contact"
    ADD_TAG = "add_tag"
    DELAY = "delay"
    SYNC_INTEGRATION = "sync_integration"


class TriggerType(str, Enum):
    """Business events and derived semantic triggers workflows subscribe to."""

    SUBMISSION_COMPLETED = "submission_completed"
    SURVEY_STARTED = "survey_started"
    SURVEY_ABANDONED = "survey_abandoned"

    NPS_DETRACTOR_DETECTED = "nps_detractor_detected"
    NPS_PROMOTER_DETECTED = "nps_promoter_detected"
    LOW_SCORE_DETECTED = "low_score_detected"
    HIGH_SCORE_DETECTED = "high_score_detected"

    URGENT_KEYWORD_DETECTED = "urgent_keyword_detected"
    COMPLAINT_KEYWORD_DETECTED = "complaint_keyword_detected"
    CANCELLATION_KEYWORD_DETECTED = "cancellation_keyword_detected"
    COMPETITOR_MENTIONED = "competitor_mentioned"
    PRAISE_KEYWORD_DETECTED = "praise_keyword_detected"
    BUG_KEYWORD_DETECTED = "bug_keyword_detected"

    NEGATIVE_SENTIMENT_DETECTED = "negative_sentiment_detected"
    POSITIVE_SENTIMENT_DETECTED = "positive_sentiment_detected"
    FRUSTRATED_CUSTOMER_DETECTED = "frustrated_customer_detected"
    DELIGHTED_CUSTOMER_DETECTED = "delighted_customer_detected"

    TICKET_CREATED = "ticket_created"
    TICKET_UPDATED = "ticket_updated"
    TICKET_OVERDUE = "ticket_overdue"

    CONTACT_CREATED = "contact_created"
    CONTACT_UPDATED = "contact_updated"


TRIGGER_DESCRIPTIONS: dict[TriggerType, str] = {
    TriggerType.SUBMISSION_COMPLETED: "Form submission completed",
    TriggerType.SURVEY_STARTED: "Survey started but not completed",
    TriggerType.SURVEY_ABANDONED: "Survey started but abandoned",
    TriggerType.NPS_DETRACTOR_DETECTED: "NPS score ≤ 6",
    TriggerType.NPS_PROMOTER_DETECTED: "NPS score ≥ 9",
    TriggerType.LOW_SCORE_DETECTED: "Low CSAT/CES/Rating score",
    TriggerType.HIGH_SCORE_DETECTED: "High CSAT/CES/Rating score",
    TriggerType.URGENT_KEYWORD_DETECTED: "Urgent keywords detected",
    TriggerType.COMPLAINT_KEYWORD_DETECTED: "Complaint keywords detected",
    TriggerType.CANCELLATION_KEYWORD_DETECTED: "Cancellation intent detected",
    TriggerType.COMPETITOR_MENTIONED: "Competitor mentioned",
    TriggerType.PRAISE_KEYWORD_DETECTED: "Praise keywords detected",
    TriggerType.BUG_KEYWORD_DETECTED: "Bug/error keywords detected",
    TriggerType.NEGATIVE_SENTIMENT_DETECTED: "Negative sentiment (score ≤ -0.5)",
    TriggerType.POSITIVE_SENTIMENT_DETECTED: "Positive sentiment (score ≥ 0.5)",
    TriggerType.FRUSTRATED_CUSTOMER_DETECTED: "Frustrated/angry emotion detected",
    TriggerType.DELIGHTED_CUSTOMER_DETECTED: "Happy/satisfied emotion detected",
    TriggerType.TICKET_CREATED: "Support ticket created",
    TriggerType.TICKET_UPDATED: "Support ticket updated",
    TriggerType.TICKET_OVERDUE: "Support ticket overdue",
    TriggerType.CONTACT_CREATED: "New contact created",
    TriggerType.CONTACT_UPDATED: "Contact information updated",
}
