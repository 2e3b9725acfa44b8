"""
Prompts for lead message generation.

Prompt builders take a plain context dict (see build_lead_context) so they can be
unit tested without a database.
"""
from typing import Any, Optional

from app.core.base import coerce_enum
from app.models.lead import LeadIntent


# ──────────────────────────────────────────────
# System Prompts
# ──────────────────────────────────────────────

MESSAGE_SYSTEM_PROMPT = "You are a helpful real estate assistant. Write natural, personalized messages."

INTENT_DESCRIPTIONS = {
    LeadIntent.INVESTOR: "interested in real estate investment opportunities with good ROI",
    LeadIntent.END_BUYER: "looking to purchase a property for personal use",
    LeadIntent.RENTER: "looking to rent a property",
    LeadIntent.DEVELOPER: "interested in development opportunities",
}
DEFAULT_INTENT_DESCRIPTION = "interested in real estate in the Riviera Maya"


def _value(field: Any) -> Optional[str]:
    if field is None:
        return None
    return getattr(field, "value", field)


def build_lead_context(lead: Any) -> dict:
    """Flatten the lead fields the prompts use."""
    name = (lead.name or "").strip()
    return {
        "name": name,
        "first_name": name.split(" ")[0] if name else "there",
        "intent": _value(lead.intent) or "potential buyer",
        "budget_min": lead.budget_min,
        "budget_max": lead.budget_max,
        "source": _value(lead.source),
        "preferences": lead.preferences or {},
        "tags": lead.tags or [],
        "status": _value(lead.status),
    }


# ──────────────────────────────────────────────
# Prompt Builders
# ──────────────────────────────────────────────

def build_follow_up_prompt(
    context: dict,
    language: str,
    tone: str,
    days_since_contact: int,
    previous_context: str = "",
) -> str:
    return f"""You are a real estate agent following up with a lead. Write a warm follow-up message.

LEAD INFO:
- Name: {context['first_name']}
- Intent: {context['intent']}
- Days since last contact: {days_since_contact}

PREVIOUS CONTEXT (if any):
{previous_context}

REQUIREMENTS:
- Language: {language}
- Tone: {tone} but not pushy
- Acknowledge it's a follow-up
- Add value (market update, new listing, etc.)
- Soft call to action
- Maximum 100 words

Write ONLY the message:"""


def build_outreach_prompt(context: dict, language: str, tone: str, platform: str) -> str:
    intent = coerce_enum(LeadIntent, context.get("intent"))
    intent_description = INTENT_DESCRIPTIONS.get(intent, DEFAULT_INTENT_DESCRIPTION)

    budget_info = ""
    if context.get("budget_max"):
        budget_info = f"They have a budget of up to ${float(context['budget_max']):,.0f} USD."

    location_prefs = ""
    locations = context.get("preferences", {}).get("locations")
    if locations:
        location_prefs = f"Preferred locations: {', '.join(locations)}."

    return f"""You are a real estate agent at a luxury agency in the Riviera Maya, Mexico. Write a personalized first outreach message.

LEAD INFO:
- Name: {context['name']} (use first name: {context['first_name']})
- Intent: {intent_description}
{budget_info}
{location_prefs}
- Source: They connected via {context['source']}

REQUIREMENTS:
- Language: {language}
- Tone: {tone}
- Platform: {platform} (keep it concise if WhatsApp)
- DO NOT include subject lines or email headers
- Be genuine, not salesy
- Include a soft call to action
- Maximum 150 words

Write ONLY the message, no explanations:"""
