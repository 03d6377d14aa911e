"""
Prompt templates used by the provider adapters.

Kept separate from the adapters so wording can change without touching
request/response mapping code.
"""

# Prepended for the citation-capable provider so answers end with a list
# of full URLs that line up with the inline [n] markers.
SOURCES_SYSTEM_PROMPT = (
    "You are a helpful assistant. Always include a 'Sources:' section at the end "
    "of your response with the full URLs of the websites you referenced, numbered "
    "to match your citations."
)

APPOINTMENT_SCHEMA = (
    '{"fields": {"title"?: string, "date"?: "YYYY-MM-DD", "time"?: "HH:MM", '
    '"venueName"?: string, "address"?: string, "contactName"?: string, '
    '"phone"?: string, "notes"?: string}, "confidence"?: object}'
)


def build_appointment_prompt(text: str = "") -> str:
    """
    Build the extraction prompt for text or image input.

    Args:
        text: Free text to parse; empty when the content is an attached image

    Returns:
        Prompt string asking for strict JSON
    """
    source = "the text below" if text else "the attached image"
    prompt = (
        f"Extract appointment fields from {source}. Return STRICT JSON only. "
        f"Schema: {APPOINTMENT_SCHEMA}. "
        "Use 24h time. Omit unknown fields. No markdown."
    )
    if text:
        prompt += "\n\nText:\n" + text
    return prompt
