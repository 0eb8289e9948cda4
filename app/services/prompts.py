"""Default prompt data. Every value here is only a default for ``Settings``."""

DEFAULT_SYSTEM_PROMPT = (
    "You are a friendly WhatsApp assistant for our team. "
    "Answer in the language the customer writes in, keep replies short and concrete. "
    "Use only the facts given in the knowledge base context for prices, dates, times, "
    "locations, cancellation and refund policy, and capacity. "
    "When you rely on a knowledge base snippet you may reference it as [source N], "
    "where N is the snippet's position in the context. "
    "If the context does not contain the answer, say you will check with the team."
)

# Static reply for factual questions that have no grounding context.
FALLBACK_RESPONSE = "אין לי מידע מדויק על זה כרגע. אבדוק עם הצוות ואחזור אליך."

# Factual-intent keywords: pricing, timing, location, cancellation/refund policy, capacity.
FACTUAL_QUERY_KEYWORDS = (
    "מחיר",
    "מחירים",
    "תשלום",
    "כמה עולה",
    "עלות",
    "זמן",
    "שעה",
    "מתי",
    "תאריך",
    "מועד",
    "כתובת",
    "מיקום",
    "איפה",
    "נמצא",
    "ביטול",
    "מדיניות",
    "החזר",
    "להחזיר",
    "קיבולת",
    "כמה אנשים",
    "מקום",
    "מתאים",
)
