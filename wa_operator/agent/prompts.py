"""Prompt construction for replies, analysis and background extraction."""

from collections.abc import Iterable

from wa_operator.config.schema import PersonaConfig
from wa_operator.store.models import ContactProfile, StoredMessage

INTENT_LABELS = (
    "general",
    "question",
    "schedule",
    "followup",
    "urgent",
    "knowledge",
    "command",
    "media",
    "greeting",
    "farewell",
    "gratitude",
    "complaint",
)

MOOD_LABELS = (
    "happy",
    "sad",
    "angry",
    "anxious",
    "excited",
    "frustrated",
    "neutral",
    "confused",
    "grateful",
    "urgent",
)

ANALYZE_PROMPT = f"""Analyze this WhatsApp message and provide a structured JSON response.
1. intent: ONE from [{", ".join(INTENT_LABELS)}]
2. confidence: 0.0 to 1.0
3. mood: ONE from [{", ".join(MOOD_LABELS)}]
4. moodIntensity: 0.0 to 1.0
5. language: 2-letter code (e.g. en, ne, hi)

Return ONLY a single valid JSON object. No markdown, no backticks.
Schema: {{"intent": "...", "confidence": 0.5, "mood": "...", "moodIntensity": 0.5, "language": "..."}}

Message: """

COMPRESS_PROMPT = """Summarize this WhatsApp conversation between a user and a bot. Keep it under 150 words. Preserve: key topics discussed, any promises made, important facts mentioned, and the overall tone. This summary will be used as context for future conversations.

Conversation:
"""

FOLLOW_UP_PROMPT = (
    "Analyze this message and determine if it contains a promise or commitment to follow up "
    "later. If yes, extract: what was promised, any deadline mentioned, and priority "
    "(1=low, 4=urgent). Respond in JSON format: "
    '{"hasFollowUp": boolean, "description": string, "dueHours": number, "priority": number}. '
    'If no follow-up, respond: {"hasFollowUp": false}'
)

LEARN_PROMPT = """Analyze this owner's reply to a WhatsApp message and extract the response pattern.
Return JSON: {{"style": "<brief description of tone/style>", "key_phrases": ["<characteristic phrases>"], "approach": "<how they handle this type of message>"}}

Context (what the user said before):
"{context}"

Owner's reply:
"{reply}\""""

SCHEDULE_PROMPT = """Extract scheduling information from this message. Return JSON:
{{"title": "<event title>", "date": "<ISO 8601 datetime>", "remindBefore": "<minutes before to remind, default 30>", "recurrence": "<none|daily|weekly|monthly>"}}
If the message is not about scheduling, return: {{"isSchedule": false}}

Current date/time: {now}

Message: "{text}\""""


def transcript_lines(messages: Iterable[StoredMessage], bot_name: str = "Bot") -> list[str]:
    """Render stored messages as `Speaker: text` lines."""
    lines = []
    for message in messages:
        if message.direction == "inbound":
            speaker = "User"
        elif message.direction == "owner_manual":
            speaker = "Owner"
        else:
            speaker = bot_name
        lines.append(f"{speaker}: {message.content}")
    return lines


class PromptBuilder:
    """
    Builds per-contact system instructions and enriched user prompts.

    The system instruction is built once per chat session; per-message
    context (summaries, knowledge hits, learned style) goes into the user
    prompt so it never pollutes the cached instruction.
    """

    def __init__(self, persona: PersonaConfig | None = None):
        self.persona = persona or PersonaConfig()

    @property
    def base_persona(self) -> str:
        bot, owner = self.persona.bot_name, self.persona.owner_name
        return (
            f"You are {bot}, {owner}'s personal assistant. You respond to WhatsApp messages "
            f"sent to {owner}. Stay in character as {bot}. Respond casually and helpfully to "
            "the sender, under 50 words.\n\n"
            "Never mention AI, Google, training, or technology.\n\n"
            "Keep responses natural, witty, and concise."
        )

    def build_system_prompt(self, profile: ContactProfile | None) -> str:
        parts = [self.base_persona]
        if profile is None:
            return "\n".join(parts)

        owner = self.persona.owner_name
        if profile.relationship_type and profile.relationship_type != "unknown":
            parts.append(f"The sender's relationship with {owner}: {profile.relationship_type}.")
        if profile.display_name:
            parts.append(f"The sender's name is {profile.display_name}.")
        if profile.vip_tier >= 2:
            parts.append(
                f"This is a VIP contact (tier {profile.vip_tier}). "
                "Be extra attentive and prioritize their requests."
            )
        if profile.custom_tone:
            if profile.custom_tone.get("style"):
                parts.append(f"Communication style preference: {profile.custom_tone['style']}.")
            if profile.custom_tone.get("formality"):
                parts.append(f"Formality level: {profile.custom_tone['formality']}.")
        if profile.preferred_language and profile.preferred_language != self.persona.default_language:
            parts.append(
                f"Respond in {profile.preferred_language} unless the sender writes in a "
                "different language."
            )
        if profile.last_mood:
            parts.append(
                f"The sender's recent mood was: {profile.last_mood}. Adjust your tone accordingly."
            )
        return "\n".join(parts)

    def build_user_prompt(
        self,
        text: str,
        *,
        conversation_summary: str = "",
        knowledge_hits: list[str] | None = None,
        learned_patterns: list[str] | None = None,
        pending_follow_ups: str = "",
    ) -> str:
        parts = []
        if conversation_summary:
            parts.append(f"[Previous conversation context: {conversation_summary}]")
        if knowledge_hits:
            parts.append(f"[Relevant knowledge: {' | '.join(knowledge_hits)}]")
        if learned_patterns:
            parts.append(
                f"[{self.persona.owner_name}'s usual response style for this type of message: "
                f"{'; '.join(learned_patterns)}]"
            )
        if pending_follow_ups:
            parts.append(f"[You previously promised to follow up: {pending_follow_ups}]")
        parts.append(text)
        return "\n\n".join(parts)

    def build_follow_up_prompt(self, reply: str) -> str:
        return f'{FOLLOW_UP_PROMPT}\n\nMessage: "{reply}"'

    def build_compress_prompt(self, lines: list[str]) -> str:
        return COMPRESS_PROMPT + "\n".join(lines)

    def build_merge_prompt(self, existing_summary: str, lines: list[str]) -> str:
        return (
            f'Here is a summary of past conversations:\n"{existing_summary}"\n\n'
            f"Here are new messages:\n" + "\n".join(lines) + "\n\n"
            "Create an updated summary (under 150 words) that combines both. "
            "Preserve key facts, promises, and tone."
        )

    def build_owner_summary_prompt(self, messages: list[StoredMessage], names: dict[str, str]) -> str:
        """Briefing request over messages from many contacts, grouped by the model."""
        owner = self.persona.owner_name
        lines = []
        for message in messages:
            name = names.get(message.contact_id, message.contact_id)
            if message.direction == "inbound":
                speaker = f"{name} said"
            elif message.direction == "owner_manual":
                speaker = f"{owner} told {name}"
            else:
                speaker = f"{self.persona.bot_name} replied to {name}"
            lines.append(f'- {speaker}: "{message.content}"')
        return (
            f"Summarize the following WhatsApp conversations for {owner}. Group by contact. "
            f"Highlight anything that seems urgent or needs {owner}'s personal attention. "
            "Be concise.\n\n" + "\n".join(lines)
        )
