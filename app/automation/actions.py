"""
Step actions - one handler per StepAction member.

Handlers return True when the action was performed and False for a no-op or a
recoverable failure (missing config key, external call failed). They only add
data: new activities, changed lead fields. Nothing is deleted or rewritten.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Any, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from app.ai.message_service import MessageService
from app.core.base import coerce_enum
from app.core.config import settings
from app.models.activity import LeadActivity, ActivityType
from app.models.enrollment import LeadSequenceEnrollment
from app.models.lead import Lead, LeadStatus
from app.models.sequence import SequenceStep, StepAction
from app.repositories.activity_repo import ActivityRepository
from app.repositories.lead_repo import LeadRepository
from app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

DEFAULT_AGENT_MESSAGE = "Review this lead for follow-up"


@dataclass
class ActionContext:
    session: AsyncSession
    lead: Lead
    step: SequenceStep
    enrollment: LeadSequenceEnrollment
    config: dict[str, Any] = field(default_factory=dict)

    @property
    def activities(self) -> ActivityRepository:
        return ActivityRepository(self.session)

    @property
    def leads(self) -> LeadRepository:
        return LeadRepository(self.session)

    def log_extra(self) -> dict:
        return {
            "lead_id": self.lead.id,
            "sequence_id": self.enrollment.sequence_id,
            "enrollment_id": self.enrollment.id,
            "step_id": self.step.id,
        }


class StepHandler:
    action: StepAction

    async def run(self, ctx: ActionContext) -> bool:
        raise NotImplementedError


class SendMessageHandler(StepHandler):
    """Generates a follow-up message and records it on the lead."""
    action = StepAction.SEND_MESSAGE

    def __init__(self, message_service: MessageService):
        self.message_service = message_service

    async def run(self, ctx: ActionContext) -> bool:
        message_type = ctx.config.get("message_type") or "follow_up"
        result = await self.message_service.generate_follow_up(
            ctx.lead,
            {
                "language": ctx.config.get("language") or "english",
                "tone": ctx.config.get("tone") or "friendly",
            },
        )
        if not result.success:
            logger.warning(
                f"Message generation failed for lead {ctx.lead.id}: {result.error}",
                extra=ctx.log_extra(),
            )
            return False

        await ctx.activities.add(
            LeadActivity(
                lead_id=ctx.lead.id,
                type=ActivityType.MESSAGE,
                title="Automated message generated",
                description=result.message,
                details={"source": "sequence", "message_type": message_type},
                created_by="automation",
            )
        )
        return True


class UpdateStatusHandler(StepHandler):
    action = StepAction.UPDATE_STATUS

    async def run(self, ctx: ActionContext) -> bool:
        raw_status = ctx.config.get("status")
        new_status = coerce_enum(LeadStatus, raw_status)
        if new_status is None:
            logger.warning(
                f"update_status step {ctx.step.id} has invalid status {raw_status!r}",
                extra=ctx.log_extra(),
            )
            return False

        old_status = coerce_enum(LeadStatus, ctx.lead.status)
        ctx.lead.status = new_status
        await ctx.leads.save(ctx.lead)

        old_value = old_status.value if old_status else None
        await ctx.activities.add(
            LeadActivity(
                lead_id=ctx.lead.id,
                type=ActivityType.STATUS_CHANGE,
                title="Status updated by automation",
                description=f"Status changed from {old_value} to {new_status.value}",
                details={
                    "old_status": old_value,
                    "new_status": new_status.value,
                    "source": "sequence",
                },
                created_by="automation",
            )
        )
        return True


class WaitHandler(StepHandler):
    """Nothing to do; the delay lives in delay_hours of the step."""
    action = StepAction.WAIT

    async def run(self, ctx: ActionContext) -> bool:
        return True


class NotifyAgentHandler(StepHandler):
    """Leaves a note on the lead and, when Telegram is configured, pings the admins."""
    action = StepAction.NOTIFY_AGENT

    def __init__(self, notifier: Optional[NotificationService] = None):
        self.notifier = notifier

    async def run(self, ctx: ActionContext) -> bool:
        message = ctx.config.get("message") or DEFAULT_AGENT_MESSAGE
        await ctx.activities.add(
            LeadActivity(
                lead_id=ctx.lead.id,
                type=ActivityType.NOTE,
                title="Agent notification",
                description=message,
                details={"source": "sequence", "notification_type": "agent_alert"},
                created_by="automation",
            )
        )

        if self.notifier is not None and self.notifier.enabled:
            text = f"🔔 <b>{ctx.lead.name}</b> (lead #{ctx.lead.id})\n{message}"
            try:
                await self.notifier.notify_admins(text)
            except Exception as e:
                # aiogram can fail before sending (bad token, session errors)
                logger.warning(f"Agent alert for lead {ctx.lead.id} not delivered: {e}", extra=ctx.log_extra())

        return True


class AddTagHandler(StepHandler):
    action = StepAction.ADD_TAG

    async def run(self, ctx: ActionContext) -> bool:
        tag = ctx.config.get("tag")
        if not isinstance(tag, str) or not tag.strip():
            logger.warning(f"add_tag step {ctx.step.id} has no tag", extra=ctx.log_extra())
            return False

        tag = tag.strip()
        tags = list(ctx.lead.tags or [])
        if tag not in tags:
            # Assign a new list so the JSON column is flagged dirty
            ctx.lead.tags = tags + [tag]
            await ctx.leads.save(ctx.lead)
        return True


class WebhookHandler(StepHandler):
    """POSTs a lead snapshot to the configured URL. Success means a 2xx response."""
    action = StepAction.WEBHOOK

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self.http_client = http_client

    @staticmethod
    def build_payload(lead: Lead, now: Optional[datetime] = None) -> dict:
        status = coerce_enum(LeadStatus, lead.status)
        return {
            "lead_id": lead.id,
            "lead_name": lead.name,
            "lead_email": lead.email,
            "lead_phone": lead.phone,
            "lead_status": status.value if status else None,
            "lead_score": lead.score,
            "timestamp": (now or datetime.now(UTC)).isoformat(),
        }

    async def _post(self, client: httpx.AsyncClient, url: str, payload: dict) -> httpx.Response:
        return await client.post(url, json=payload, timeout=settings.WEBHOOK_TIMEOUT_SECONDS)

    async def run(self, ctx: ActionContext) -> bool:
        url = ctx.config.get("url")
        if not url:
            logger.warning(f"webhook step {ctx.step.id} has no url", extra=ctx.log_extra())
            return False

        payload = self.build_payload(ctx.lead)
        try:
            if self.http_client is not None:
                response = await self._post(self.http_client, url, payload)
            else:
                async with httpx.AsyncClient(timeout=settings.WEBHOOK_TIMEOUT_SECONDS) as client:
                    response = await self._post(client, url, payload)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"Webhook to {url} failed: {e!r}", extra=ctx.log_extra())
            return False

        if not response.is_success:
            logger.warning(
                f"Webhook to {url} returned HTTP {response.status_code}",
                extra=ctx.log_extra(),
            )
            return False
        return True


def build_handlers(
    message_service: Optional[MessageService] = None,
    notifier: Optional[NotificationService] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> dict[StepAction, StepHandler]:
    handlers = [
        SendMessageHandler(message_service or MessageService()),
        UpdateStatusHandler(),
        WaitHandler(),
        NotifyAgentHandler(notifier),
        AddTagHandler(),
        WebhookHandler(http_client),
    ]
    return {handler.action: handler for handler in handlers}
