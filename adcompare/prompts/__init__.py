"""Prompt templates for the comparison core."""

from .ai_prompts import DATE_EXTRACTION_SYSTEM_PROMPT, get_date_extraction_prompt

__all__ = [
    'DATE_EXTRACTION_SYSTEM_PROMPT',
    'get_date_extraction_prompt',
]
