"""
CoachBot - Prompt Templates & Canned Responses
================================================
Centralised prompt management for the coach pipeline.  All prompts and
deterministic answers live here so they can be versioned, reviewed,
and A/B-tested independently of application logic.

Exports
-------
DIET_TYPE_NAMES, DEFAULT_SYSTEM_PROMPT, FULL_PROMPT_*,
SUMMARIZATION_PROMPT, TEMPLATED_SUMMARY,
QUESTION_PREFIX, DIET_LEAD_INS, DIET_GUIDANCE, GENERIC_GUIDANCE,
NO_CONTEXT_RESPONSE, BASIC_FALLBACK_RESPONSES, USER_ERROR_MESSAGES.
"""

# ══════════════════════════════════════════════════════════════════════
#  COACH IDENTITY
# ══════════════════════════════════════════════════════════════════════

DIET_TYPE_NAMES: dict[str, str] = {"carnivore": "Carnivore", "paleo": "Paleo", "lowcarb": "Low Carb", "keto": "Ketogenic", "ketovore": "Ketovore", "lion": "Lion Diet"}

# Placeholders accepted inside a coach's stored system prompt.
PROMPT_PLACEHOLDER_DIET_NAME: str = "{{dietName}}"
PROMPT_PLACEHOLDER_DIET_TYPE: str = "{{dietType}}"
PROMPT_PLACEHOLDER_SPECIALTIES: str = "{{specialties}}"


# ══════════════════════════════════════════════════════════════════════
#  SYSTEM PROMPT
# ══════════════════════════════════════════════════════════════════════

DEFAULT_SYSTEM_PROMPT: str = """You are a {diet_name} Coach, an AI health advisor specializing in the {diet_name_lower} diet.

Your responses should be:
- Concise and to the point (2-3 short paragraphs max)
- Focused on practical, actionable advice
- Specific to the {diet_name_lower} approach

Start with a brief acknowledgment of the question, then provide clear, helpful guidance.
Keep your response conversational and friendly, like texting with a knowledgeable friend.
Base your responses on the knowledge provided from the RAG system and your training."""


# ══════════════════════════════════════════════════════════════════════
#  GENERATION PROMPT LAYOUT
# ══════════════════════════════════════════════════════════════════════

FULL_PROMPT_SYSTEM_BLOCK: str = "SYSTEM INSTRUCTIONS:\n{system_prompt}\n\n---\n\n"
FULL_PROMPT_KNOWLEDGE_BLOCK: str = "RELEVANT KNOWLEDGE:\n{knowledge_context}\n\n"
FULL_PROMPT_QUERY_BLOCK: str = "User: {query}\nAssistant:"


# ══════════════════════════════════════════════════════════════════════
#  CONTEXT FORMATTING
# ══════════════════════════════════════════════════════════════════════

KNOWLEDGE_HEADER: str = "Based on the following knowledge from our database:\n\n"
KEY_POINTS_HEADER: str = "Key relevant points:\n"
KNOWLEDGE_PREVIEW_CHARS: int = 400

MEMORY_SUMMARY_LABEL: str = "Previous Conversation Summary: {summary}\n\n"
MEMORY_FACTS_LABEL: str = "Known Facts About User:\n{facts}\n\n"
MEMORY_TOPICS_LABEL: str = "Previously Discussed Topics: {topics}\n\n"
MEMORY_RECENT_LABEL: str = "Recent Conversation:\n"


# ══════════════════════════════════════════════════════════════════════
#  SUMMARIZATION
# ══════════════════════════════════════════════════════════════════════

TEMPLATED_SUMMARY: str = "User discussed {topics}. Key questions included: {questions}. Coach provided guidance on these topics."

SUMMARIZATION_PROMPT: str = """Summarize the following coaching conversation concisely in 3-5 sentences.

PRESERVE:
- Stated personal facts (age, weight, goals, diet, conditions, allergies)
- Topics discussed and any advice given
- Open questions the user still has

REMOVE:
- Greetings and pleasantries
- Repeated information

CONVERSATION:
{conversation}"""


# ══════════════════════════════════════════════════════════════════════
#  DETERMINISTIC ANSWERS (generation unavailable)
# ══════════════════════════════════════════════════════════════════════

QUESTION_PREFIX: str = 'Regarding your question: "{message}"\n\n'

DIET_LEAD_INS: dict[str, str] = {"carnivore": "Based on the carnivore diet principles: ", "paleo": "Following Paleo principles: ", "keto": "For ketogenic success: ", "ketovore": "On a Ketovore approach: ", "lowcarb": "Following a low-carb approach: ", "lion": "On the Lion Diet protocol: "}

DIET_GUIDANCE: dict[str, str] = {
    "carnivore": "Focus on fatty ruminant meats, salt to taste, and allow time for adaptation.",
    "keto": "Keep carbs under 20-30g, prioritize healthy fats, and monitor your ketone levels.",
    "paleo": "Eat whole foods our ancestors would recognize - meat, vegetables, fruits, nuts.",
    "lowcarb": "Limit carbs to 50-150g daily based on your activity level and goals.",
    "ketovore": "Combine the best of carnivore and keto - mostly meat with select low-carb plants.",
    "lion": "Stick to ruminant meat, salt, and water for the elimination phase.",
}

GENERIC_GUIDANCE: str = "I recommend following the core principles of your chosen dietary approach. Would you like specific guidance on any aspect?"

NO_CONTEXT_RESPONSE: str = """I understand you're asking about "{message}". While I'm still learning about this specific topic, I can help you with:

• Getting started with the {coach_type} diet
• Food choices and meal planning
• Common challenges and solutions
• Health benefits and considerations

What specific aspect would you like to explore?"""


# ══════════════════════════════════════════════════════════════════════
#  BASIC (PATTERN-MATCHING) COACH FALLBACKS
# ══════════════════════════════════════════════════════════════════════

BASIC_FALLBACK_RESPONSES: tuple[str, ...] = (
    "That's an interesting question! While I'm a basic health coach with general knowledge, I'd recommend consulting with a healthcare professional for specific medical advice. Is there something else I can help you with regarding general health and wellness?",
    "I understand you're asking about {topic}. For the most accurate guidance on this topic, I'd suggest upgrading to one of our specialized Pro coaches who can provide more detailed, personalized advice.",
    "I'm here to help with general health topics! Could you rephrase your question or ask about nutrition, exercise, sleep, or general wellness?",
)


# ══════════════════════════════════════════════════════════════════════
#  USER-FACING ERROR MESSAGES
# ══════════════════════════════════════════════════════════════════════
# Keyed by ``FailureKind.value``.  Raw provider text never reaches users.

USER_ERROR_MESSAGES: dict[str, str] = {
    "network": "Connection issue. Please check your internet and try again.",
    "auth": "Please sign in to continue.",
    "rate_limited": "Too many requests. Please wait a moment and try again.",
    "quota": "Daily limit reached. Please try again tomorrow.",
    "invalid_response": "Received an invalid response. Please try again.",
    "generic": "Something went wrong. Please try again.",
}
