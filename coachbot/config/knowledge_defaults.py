"""
CoachBot - Keyword Taxonomies & Default Knowledge
===================================================
Static tables consumed by the relevance extractor, the fact/topic
extractor and the pattern-matching coach.

SYNONYM_CLUSTERS
    A query word that belongs to a cluster activates every member.
TOPIC_KEYWORDS
    Topic bucket → keywords; a message belongs to a bucket when any
    keyword is a substring of the lower-cased message.
FALLBACK_TOPICS
    Topic names the basic coach can echo back in a fallback answer.
DEFAULT_KNOWLEDGE_ENTRIES
    Used when a coach's knowledge base cannot be loaded.
"""

SYNONYM_CLUSTERS: tuple[frozenset[str], ...] = (
    frozenset({"start", "begin", "beginning", "first", "initial"}),
    frozenset({"eat", "food", "meal", "diet", "consume"}),
    frozenset({"benefit", "help", "good", "improve", "better"}),
    frozenset({"avoid", "dont", "shouldnt", "cant", "stop"}),
    frozenset({"symptom", "feel", "feeling", "side", "effect"}),
    frozenset({"how", "way", "method", "approach", "technique"}),
)

TOPIC_KEYWORDS: dict[str, tuple[str, ...]] = {
    "diet": ("diet", "eating", "food", "meal", "nutrition", "carnivore", "keto", "calories"),
    "exercise": ("workout", "exercise", "training", "gym", "fitness", "strength"),
    "weight": ("weight", "pounds", "kg", "loss", "gain", "scale"),
    "health": ("health", "condition", "symptom", "pain", "energy", "sleep"),
    "supplements": ("supplement", "vitamin", "mineral", "electrolyte"),
    "fasting": ("fast", "fasting", "omad", "intermittent"),
    "progress": ("progress", "results", "plateau", "stall"),
}

FALLBACK_TOPICS: tuple[str, ...] = ("nutrition", "exercise", "sleep", "stress", "diet", "fitness")
DEFAULT_FALLBACK_TOPIC: str = "health"

DEFAULT_KNOWLEDGE_ENTRIES: tuple[dict, ...] = (
    {
        "entry_id": "default-greeting",
        "category": "greeting",
        "trigger_patterns": ("hello", "hi", "hey", "good morning", "good afternoon"),
        "answer_template": "Hello! I'm your Basic Health Coach. How can I help you with your health journey today?",
        "min_confidence": 0.5,
        "priority": 10,
    },
    {
        "entry_id": "default-help",
        "category": "help",
        "trigger_patterns": ("help", "what can you do", "capabilities", "features"),
        "answer_template": "I can provide general health advice on nutrition, fitness, sleep, and wellness. I'm here to support your health goals! What specific area would you like to explore?",
        "min_confidence": 0.6,
        "priority": 9,
    },
    {
        "entry_id": "default-nutrition",
        "category": "nutrition",
        "trigger_patterns": ("diet", "food", "eat", "nutrition", "meal", "hungry"),
        "answer_template": "For optimal health, focus on whole foods including lean proteins, vegetables, fruits, and healthy fats. Stay hydrated and minimize processed foods. Would you like specific meal suggestions?",
        "min_confidence": 0.6,
        "priority": 5,
    },
    {
        "entry_id": "default-exercise",
        "category": "exercise",
        "trigger_patterns": ("exercise", "workout", "fitness", "gym", "training"),
        "answer_template": "Regular exercise is crucial for health. Aim for at least 150 minutes of moderate activity weekly, including both cardio and strength training. What's your current fitness level?",
        "min_confidence": 0.6,
        "priority": 5,
    },
    {
        "entry_id": "default-sleep",
        "category": "sleep",
        "trigger_patterns": ("sleep", "tired", "rest", "insomnia", "fatigue"),
        "answer_template": "Good sleep is essential. Aim for 7-9 hours nightly. Create a consistent bedtime routine, keep your room cool and dark, and avoid screens before bed. Are you having specific sleep issues?",
        "min_confidence": 0.6,
        "priority": 5,
    },
)
