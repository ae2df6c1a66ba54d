"""AI client — lead scoring and outreach drafting over an OpenAI-compatible chat API.

Every call degrades to a deterministic fallback when no API key is
configured, so the rest of the system works offline.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Optional

import httpx
from pydantic import BaseModel, ValidationError

from leadcrm.config import Settings, get_settings
from leadcrm.exceptions import AiClientError
from leadcrm.models import MessageAngle, MessageLanguage, MessageTone
from leadcrm.schemas import AiScore, MessageVariant
from leadcrm.services.lead_quality import clamp_score

logger = logging.getLogger(__name__)

AGENT_NAME = "Jay"
AGENCY_NAME = "J-Digital Solutions"

UNCONFIGURED_SCORE = 50
NON_CONFORMING_SCORE = 55


@dataclass
class LeadContext:
    """What the model is told about a lead besides its own fields."""

    category_name: str = "Business"
    location_name: str = "your area"
    language: str = MessageLanguage.TAGLISH.value
    tone: str = MessageTone.SOFT.value
    angle: str = MessageAngle.BOOKING.value
    heuristic_reasons: list[str] = field(default_factory=list)
    template_hint: Optional[str] = None


class _VariantsPayload(BaseModel):
    variants: list[MessageVariant]


def lead_payload(lead) -> dict:
    return {
        "business_name": lead.business_name,
        "website_url": lead.website_url,
        "facebook_url": lead.facebook_url,
        "phone": lead.phone,
        "email": lead.email,
        "address": lead.address,
        "status": lead.status,
    }


# ── Fallback templates ─────────────────────────────────
def fallback_outreach_variants(lead, ctx: LeadContext) -> list[MessageVariant]:
    name = lead.business_name
    category = ctx.category_name.lower()
    return [
        MessageVariant(
            variant_label="A",
            message_text=(
                f"Hi! {AGENT_NAME} here from {AGENCY_NAME}. Napansin ko ang {name or 'business'} ninyo sa "
                f"{ctx.location_name}. Curious lang, paano niyo currently mina-manage ang inquiries from "
                f"Facebook? We help local {category} teams improve response flow and booking follow-ups. "
                "If open ka, I can share a quick idea tailored to your page."
            ),
        ),
        MessageVariant(
            variant_label="B",
            message_text=(
                f"Hello, this is {AGENT_NAME} from {AGENCY_NAME}. I came across {name or 'your business'} and "
                "wanted to ask: are Facebook inquiries turning into consistent bookings right now? We support "
                f"{category} owners with better lead handling and organized follow-up. If helpful, I can send "
                "a short recommendation."
            ),
        ),
        MessageVariant(
            variant_label="C",
            message_text=(
                f"Hi po, {AGENT_NAME} from {AGENCY_NAME} here. I noticed your {category} presence in "
                f"{ctx.location_name}. Quick question: who handles incoming inquiries during busy hours? We "
                "help teams respond faster and avoid missed leads through a simple workflow. Open ka ba to a "
                "quick suggestion?"
            ),
        ),
    ]


def fallback_follow_up_variants(lead, ctx: LeadContext) -> list[MessageVariant]:
    name = lead.business_name or "your business"
    category = ctx.category_name.lower()
    return [
        MessageVariant(
            variant_label="A",
            message_text=(
                f"Hi again! {AGENT_NAME} from {AGENCY_NAME}. Just following up on my message about "
                f"{name}. Kumusta ang inquiries niyo this week? Happy to share a quick idea if useful."
            ),
        ),
        MessageVariant(
            variant_label="B",
            message_text=(
                f"Hello, {AGENT_NAME} here from {AGENCY_NAME}. Checking in on my last note. Are booking "
                f"follow-ups still handled manually at {name}? I can send a short suggestion for "
                f"{category} teams if that helps."
            ),
        ),
        MessageVariant(
            variant_label="C",
            message_text=(
                f"Hi po, quick follow-up from {AGENT_NAME} of {AGENCY_NAME}. If now is not a good time, no "
                f"worries. If you want a simple way to keep {ctx.location_name} inquiries organized, just "
                "reply and I'll send details."
            ),
        ),
    ]


# ── Client ─────────────────────────────────────────────
class AiClient:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    @property
    def configured(self) -> bool:
        return self.settings.ai_configured

    async def _complete(self, system_prompt: str, user_payload: dict, temperature: float) -> dict:
        """One chat-completions call returning the parsed JSON object the model wrote."""
        url = f"{self.settings.openai_base_url.rstrip('/')}/v1/chat/completions"
        body = {
            "model": self.settings.openai_model,
            "temperature": temperature,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": json.dumps(user_payload, indent=2, default=str)},
            ],
        }
        headers = {"Authorization": f"Bearer {self.settings.openai_api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.settings.ai_timeout_seconds) as client:
                resp = await client.post(url, json=body, headers=headers)
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise AiClientError(f"AI request failed: {exc}") from exc

        try:
            content = data["choices"][0]["message"]["content"]
            return json.loads(content)
        except (KeyError, IndexError, TypeError, json.JSONDecodeError) as exc:
            raise AiClientError("AI returned a malformed completion") from exc

    async def score_lead(self, lead, ctx: LeadContext) -> AiScore:
        if not self.configured:
            return AiScore(
                score=UNCONFIGURED_SCORE,
                reasons=["AI scoring is not configured, using fallback score."],
                opportunity_summary="Configure the AI provider for richer lead intent analysis.",
                suggested_angle=MessageAngle.ORGANIZATION,
            )

        system_prompt = "\n".join([
            "You score lead quality for a local digital agency.",
            "Return strict JSON only. No markdown.",
            'Schema: {"score": number 0-100, "reasons": string[], "opportunity_summary": string, '
            '"suggested_angle": "booking"|"low_volume"|"organization"}',
            "Avoid guarantees or unrealistic claims.",
        ])
        payload = {
            "lead": lead_payload(lead),
            "category": ctx.category_name,
            "location": ctx.location_name,
            "heuristic_reasons": ctx.heuristic_reasons,
        }
        try:
            raw = await self._complete(system_prompt, payload, temperature=0.2)
            if isinstance(raw, dict) and isinstance(raw.get("score"), (int, float)):
                raw["score"] = clamp_score(raw["score"])
            return AiScore.model_validate(raw)
        except (AiClientError, ValidationError) as exc:
            logger.warning(f"AI score unavailable for lead {lead.id}: {exc}")
            return AiScore(
                score=NON_CONFORMING_SCORE,
                reasons=["AI returned non-conforming response; fallback score applied."],
                opportunity_summary="Lead likely has potential but needs manual review.",
                suggested_angle=MessageAngle.ORGANIZATION,
            )

    async def _generate_variants(self, system_prompt: str, lead, ctx: LeadContext, purpose: str) -> list[MessageVariant]:
        payload = {
            "lead": lead_payload(lead),
            "category": ctx.category_name,
            "location": ctx.location_name,
            "language": ctx.language,
            "tone": ctx.tone,
            "angle": ctx.angle,
            "purpose": purpose,
            "template_hint": ctx.template_hint,
        }
        raw = await self._complete(system_prompt, payload, temperature=0.7)
        try:
            return _VariantsPayload.model_validate(raw).variants
        except ValidationError as exc:
            raise AiClientError("AI returned non-conforming variants") from exc

    async def generate_outreach_variants(self, lead, ctx: LeadContext) -> list[MessageVariant]:
        """Three first-touch drafts. Falls back to fixed templates on any AI failure."""
        if not self.configured:
            return fallback_outreach_variants(lead, ctx)
        system_prompt = "\n".join([
            "You write compliant outreach messages for manual Facebook Page messaging.",
            "Never claim guaranteed results. Avoid spam phrasing.",
            f"Each message must include: friendly intro as {AGENT_NAME} from {AGENCY_NAME}, business context, "
            "one qualifying question, clear value, soft CTA.",
            "Return strict JSON only with 3 variants A/B/C.",
            'Schema: {"variants":[{"variant_label":"A|B|C","message_text":"..."}]}',
        ])
        try:
            return await self._generate_variants(system_prompt, lead, ctx, "First outreach message.")
        except AiClientError as exc:
            logger.warning(f"Outreach drafting fell back to templates for lead {lead.id}: {exc}")
            return fallback_outreach_variants(lead, ctx)

    async def generate_follow_up_variants(self, lead, ctx: LeadContext) -> list[MessageVariant]:
        """Three follow-up drafts.

        Templates are used only when AI is not configured; provider failures
        raise ``AiClientError`` so batch callers can count the lead as skipped.
        """
        if not self.configured:
            return fallback_follow_up_variants(lead, ctx)
        system_prompt = "\n".join([
            "You write short, friendly follow-up messages for manual Facebook Page messaging.",
            "The lead already received a first message and has not replied.",
            "Never claim guaranteed results. No pressure or urgency phrasing.",
            "Return strict JSON only with 3 variants A/B/C.",
            'Schema: {"variants":[{"variant_label":"A|B|C","message_text":"..."}]}',
        ])
        return await self._generate_variants(
            system_prompt, lead, ctx, "Follow-up outreach draft. Keep tone friendly and concise."
        )
