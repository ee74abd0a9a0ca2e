"""
AI Prompt Templates
Centralized prompt templates for AI services.
"""


DATE_EXTRACTION_SYSTEM_PROMPT = (
    "You are a date extraction expert. Extract only explicit dates mentioned in queries."
)


def get_date_extraction_prompt(query: str) -> str:
    """
    Get the structured date-extraction prompt for a comparison query.

    Args:
        query: Raw user query

    Returns:
        Formatted prompt string
    """
    return f"""
Extract the compared periods from this query: "{query}"

Return ONLY a JSON object with this exact structure:
{{
  "dateRanges": ["Month YYYY", "Month YYYY"],
  "intent": "year_over_year"
}}

RULES:
- Only return REAL dates mentioned in the query
- Do NOT hallucinate or make up dates
- Only extract dates that are explicitly stated
- Each entry is either "Month YYYY" or a bare "YYYY"
- Month must be the full name (January, February, etc.)
- Year must be 4 digits (2024, 2025, etc.)
- intent: "year_over_year", "month_over_month", "week_over_week" or "period_comparison"
- If no clear dates are found, return {{"dateRanges": [], "intent": "period_comparison"}}

EXAMPLES:
- "Compare October 2025 vs October 2024" → {{"dateRanges": ["October 2025", "October 2024"], "intent": "year_over_year"}}
- "November 2025 and November 2024 yoy" → {{"dateRanges": ["November 2025", "November 2024"], "intent": "year_over_year"}}
- "Show 2025 compared to 2024" → {{"dateRanges": ["2025", "2024"], "intent": "year_over_year"}}
- "Compare last month vs same month last year" → {{"dateRanges": [], "intent": "year_over_year"}} (no explicit dates)

Return ONLY the JSON object, no other text.
"""
