"""Action dispatcher: executes the side effects a workflow declares.

Each action is ``{"type": ..., "config": {...}, "critical": bool}``. The
config is template-resolved against the trigger data, then routed to a
handler through a fixed table keyed by ``ActionType``.

Entity/column identifiers coming from workflow configs are never used to
build SQL. They are looked up in ``ENTITY_MODELS`` / ``UPDATABLE_FIELDS``
and anything outside that allowlist raises ``ActionConfigError``.
"""

import asyncio
import ipaddress
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlparse

import httpx
import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings, get_settings
from core.constants import ActionType
from core.exceptions import ActionConfigError, UnknownActionTypeError
from core.utils import safe_serialize, utc_now_naive
from db.models.contact import Contact
from db.models.notification import Notification
from db.models.submission import Submission
from db.models.ticket import Ticket
from services.email_service import EmailService
from workflow.expressions import resolve_config

logger = structlog.get_logger(__name__)

ActionHandler = Callable[[dict, dict, str], Awaitable[dict]]


# ─── Entity allowlist ──────────────────────────────────────────

ENTITY_MODELS = {
    "ticket": Ticket,
    "contact": Contact,
    "submission": Submission,
}

UPDATABLE_FIELDS = {
    Ticket: {"title", "description", "priority", "status", "assigned_to"},
    Contact: {
        "email", "first_name", "last_name", "phone", "company",
        "status", "segment", "custom_fields",
    },
    Submission: {"status", "follow_up_status", "sentiment", "score"},
}


def resolve_entity(entity: Any):
    """Map an entity name (``ticket`` / ``tickets``) to its ORM model."""
    if not isinstance(entity, str):
        raise ActionConfigError(f"Invalid entity: {entity!r}")
    key = entity.strip().lower()
    model = ENTITY_MODELS.get(key) or ENTITY_MODELS.get(key.rstrip("s"))
    if model is None:
        raise ActionConfigError(f"Entity not allowed: {entity}")
    return model


def check_field(model, field: Any) -> str:
    if not isinstance(field, str) or field not in UPDATABLE_FIELDS[model]:
        raise ActionConfigError(f"Field not allowed on {model.__tablename__}: {field}")
    return field


def _require(config: dict, key: str) -> Any:
    value = config.get(key)
    if value is None or value == "":
        raise ActionConfigError(f"Missing required action config: {key}")
    return value


# ─── Webhook URL safety ────────────────────────────────────────

_FORBIDDEN_PORTS = (5432, 6379)  # postgres, redis


def validate_webhook_url(url: Any) -> None:
    """Reject non-HTTP(S) schemes, loopback/private hosts and internal ports.

    Raises:
        ActionConfigError: If the URL is unsafe
    """
    if not isinstance(url, str) or not url:
        raise ActionConfigError("Webhook url is required")

    parsed = urlparse(url)
    if parsed.scheme.lower() not in ("http", "https"):
        raise ActionConfigError(f"Unsupported scheme: {parsed.scheme or '(none)'}. Only HTTP and HTTPS allowed.")

    hostname = parsed.hostname
    if not hostname:
        raise ActionConfigError("URL must have a valid hostname")
    if hostname.lower() in ("localhost", "localhost.localdomain"):
        raise ActionConfigError("Connections to localhost are not allowed")

    try:
        ip = ipaddress.ip_address(hostname)
    except ValueError:
        ip = None  # domain name; not resolved here
    if ip is not None and (ip.is_private or ip.is_loopback or ip.is_reserved or ip.is_link_local):
        raise ActionConfigError(f"Connections to private IP {hostname} are not allowed")

    if parsed.port in _FORBIDDEN_PORTS:
        raise ActionConfigError(f"Connections to internal port {parsed.port} are not allowed")


# ─── Dispatcher ────────────────────────────────────────────────

class ActionDispatcher:
    """Executes workflow actions for one tenant at a time.

    Args:
        session_factory: Async session factory used for entity writes
        email_service: Collaborator for ``send_email``
        http_transport: Optional httpx transport (tests inject a MockTransport)
        settings: Application settings
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        email_service: Optional[EmailService] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.email_service = email_service or EmailService(self.settings)
        self._http_transport = http_transport
        self._handlers: dict[ActionType, ActionHandler] = {
            ActionType.SEND_EMAIL: self._send_email,
            ActionType.CREATE_TICKET: self._create_ticket,
            ActionType.UPDATE_FIELD: self._update_field,
            ActionType.SEND_NOTIFICATION: self._send_notification,
            ActionType.WEBHOOK: self._call_webhook,
            ActionType.CALL_WEBHOOK: self._call_webhook,
            ActionType.UPDATE_CONTACT: self._update_contact,
            ActionType.ADD_TAG: self._add_tag,
            ActionType.DELAY: self._delay,
            ActionType.SYNC_INTEGRATION: self._sync_integration,
        }

    @property
    def supported_types(self) -> list[str]:
        return [t.value for t in self._handlers]

    async def execute(self, action: dict, trigger_data: dict, tenant_id: str) -> dict:
        """Resolve templates in ``action["config"]`` and run its handler.

        Raises:
            UnknownActionTypeError: ``action["type"]`` has no handler
            ActionConfigError: Config is incomplete or names a disallowed entity/field
        """
        raw_type = action.get("type")
        try:
            action_type = ActionType(raw_type)
        except ValueError:
            raise UnknownActionTypeError(raw_type)

        config = resolve_config(action.get("config") or {}, trigger_data or {})
        handler = self._handlers[action_type]
        return await handler(config, trigger_data or {}, tenant_id)

    # ── Handlers ──

    async def _send_email(self, config: dict, data: dict, tenant_id: str) -> dict:
        to = _require(config, "to")
        subject = config.get("subject", "")
        await self.email_service.send_transactional_email(
            to=to,
            subject=subject,
            body=config.get("body", ""),
            from_address=config.get("from") or None,
            tenant_id=tenant_id,
        )
        return {"sent": True, "to": to, "subject": subject}

    async def _create_ticket(self, config: dict, data: dict, tenant_id: str) -> dict:
        title = _require(config, "title")
        ticket = Ticket(
            tenant_id=tenant_id,
            title=str(title),
            description=config.get("description"),
            priority=config.get("priority") or "medium",
            assigned_to=config.get("assignee") or config.get("assigned_to"),
            contact_id=config.get("contact_id"),
            submission_id=config.get("submission_id"),
            status="open",
            source="workflow",
        )
        async with self.session_factory() as session:
            session.add(ticket)
            await session.commit()

        logger.info("Ticket created by workflow", ticket_id=ticket.id, tenant_id=tenant_id)
        return {"ticketId": ticket.id, "title": ticket.title}

    async def _update_field(self, config: dict, data: dict, tenant_id: str) -> dict:
        model = resolve_entity(_require(config, "entity"))
        field = check_field(model, config.get("field"))
        entity_id = _require(config, "entityId")
        value = config.get("value")

        async with self.session_factory() as session:
            result = await session.execute(
                update(model)
                .where(model.id == str(entity_id), model.tenant_id == tenant_id)
                .values({field: value, "updated_at": utc_now_naive()})
            )
            await session.commit()

        updated = result.rowcount > 0
        if not updated:
            logger.warning("update_field matched no rows", entity=model.__tablename__, entity_id=entity_id)
        return {
            "updated": updated,
            "entity": config.get("entity"),
            "entityId": entity_id,
            "field": field,
            "value": safe_serialize(value),
        }

    async def _send_notification(self, config: dict, data: dict, tenant_id: str) -> dict:
        title = _require(config, "title")
        user_id = config.get("userId")
        notification = Notification(
            tenant_id=tenant_id,
            user_id=str(user_id) if user_id is not None else None,
            title=str(title),
            message=config.get("message"),
            notification_type=config.get("type") or "info",
            priority=config.get("priority") or "normal",
            is_read=False,
        )
        async with self.session_factory() as session:
            session.add(notification)
            await session.commit()

        return {"sent": True, "userId": user_id, "title": notification.title}

    async def _call_webhook(self, config: dict, data: dict, tenant_id: str) -> dict:
        url = config.get("url")
        if not self.settings.WEBHOOK_ALLOW_PRIVATE_NETWORKS:
            validate_webhook_url(url)
        elif not url:
            raise ActionConfigError("Webhook url is required")

        method = str(config.get("method") or "POST").upper()
        headers = config.get("headers") or {"Content-Type": "application/json"}
        body = config.get("body") if config.get("body") is not None else data
        timeout = float(config.get("timeout") or self.settings.WEBHOOK_TIMEOUT_SECONDS)

        client_kwargs = {"timeout": timeout}
        if self._http_transport is not None:
            client_kwargs["transport"] = self._http_transport

        async with httpx.AsyncClient(**client_kwargs) as client:
            request_kwargs = {"headers": headers}
            if method not in ("GET", "HEAD", "DELETE"):
                request_kwargs["json"] = safe_serialize(body)
            response = await client.request(method, url, **request_kwargs)
            response.raise_for_status()

        try:
            response_data = response.json()
        except ValueError:
            response_data = response.text[:10000]

        logger.info("Webhook called", url=url, method=method, status=response.status_code)
        return {"status": response.status_code, "data": response_data}

    async def _update_contact(self, config: dict, data: dict, tenant_id: str) -> dict:
        contact_id = _require(config, "contactId")
        updates = config.get("updates")
        if not isinstance(updates, dict) or not updates:
            raise ActionConfigError("update_contact requires a non-empty 'updates' object")
        for field in updates:
            check_field(Contact, field)

        async with self.session_factory() as session:
            result = await session.execute(
                update(Contact)
                .where(Contact.id == str(contact_id), Contact.tenant_id == tenant_id)
                .values(**updates, updated_at=utc_now_naive())
            )
            await session.commit()

        return {"updated": result.rowcount > 0, "contactId": contact_id, "fields": list(updates)}

    async def _add_tag(self, config: dict, data: dict, tenant_id: str) -> dict:
        model = resolve_entity(_require(config, "entity"))
        entity_id = str(_require(config, "entityId"))
        tag = str(_require(config, "tag"))

        async with self.session_factory() as session:
            row = (
                await session.execute(
                    select(model).where(model.id == entity_id, model.tenant_id == tenant_id)
                )
            ).scalar_one_or_none()

            added = False
            if row is not None:
                tags = list(row.tags or [])
                if tag not in tags:
                    row.tags = tags + [tag]
                    added = True
                    await session.commit()

        return {"added": added, "entity": config.get("entity"), "entityId": entity_id, "tag": tag}

    async def _delay(self, config: dict, data: dict, tenant_id: str) -> dict:
        try:
            duration = max(0, int(config.get("duration") or 0))
        except (TypeError, ValueError):
            raise ActionConfigError(f"Invalid delay duration: {config.get('duration')!r}")
        await asyncio.sleep(duration / 1000)
        return {"delayed": True, "duration": duration}

    async def _sync_integration(self, config: dict, data: dict, tenant_id: str) -> dict:
        integration = config.get("integration")
        integration_action = config.get("action")
        # TODO: dispatch to CRM connectors once they are exposed to the engine
        logger.info(
            "Integration sync triggered",
            integration=integration,
            action=integration_action,
            tenant_id=tenant_id,
        )
        return {"synced": True, "integration": integration, "action": integration_action}
