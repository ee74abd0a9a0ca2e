"""
AI Extraction Service
Uses an LLM to pull the compared periods out of a query, then keeps only the
dates that have literal evidence in the query text.
"""

import inspect
import json
import re
from typing import Any, Awaitable, Callable, Optional, Union

import structlog

from .config_service import ConfigService
from .error_handling_service import (
    ErrorCategory,
    ErrorHandlingService,
    HallucinatedDateRejected,
    MalformedAIResponse,
)
from .prompts.ai_prompts import DATE_EXTRACTION_SYSTEM_PROMPT, get_date_extraction_prompt
from .query_plan_service import TimeRange
from .time_resolver import MONTH_NAMES, month_range, year_in_bounds, year_range

logger = structlog.get_logger(__name__)

LLMCapability = Callable[[str, str], Union[str, Awaitable[str]]]

TOKEN_RE = re.compile(r"^\s*(?:(?P<month>[A-Za-z]+)\s+)?(?P<year>\d{4})\s*$")


class AIExtractionValidator:
    """Service for AI date extraction with hallucination protection."""

    def __init__(self, llm: Optional[LLMCapability] = None):
        self.llm = llm

    async def extract(self, query: str) -> Optional[tuple[list[TimeRange], str]]:
        """
        Ask the LLM for the compared periods and validate them.

        Args:
            query: Raw user query

        Returns:
            Tuple of (two validated ranges, intent label), or None when the
            model was unavailable, unparseable, or not trustworthy
        """
        if self.llm is None:
            return None

        try:
            raw = self.llm(DATE_EXTRACTION_SYSTEM_PROMPT, get_date_extraction_prompt(query))
            if inspect.isawaitable(raw):
                raw = await raw
        except Exception as e:
            error_info = ErrorHandlingService.process_error(
                e,
                context='ai_date_extraction',
                category=ErrorCategory.API,
                details={'query': query[:100]}
            )
            ErrorHandlingService.log_error(error_info, log_level="WARNING")
            return None

        try:
            tokens, intent = self.parse_response(raw)
        except MalformedAIResponse as e:
            logger.warning("AI returned an unusable answer", error=str(e), raw=(e.raw or "")[:200])
            return None

        return self.validate(query, tokens, intent)

    @staticmethod
    def parse_response(raw: Any) -> tuple[list, Optional[str]]:
        """
        Parse the model answer into (date tokens, intent).

        Accepts the JSON object alone, wrapped in a markdown code block, or
        embedded in prose. A bare JSON array is read as the date tokens.

        Raises:
            MalformedAIResponse: If no usable JSON shape is found
        """
        if not isinstance(raw, str):
            raise MalformedAIResponse("AI response is not text", raw=repr(raw))

        text = raw.strip()
        if text.startswith('```'):
            # Remove markdown code blocks
            parts = text.split('```')
            text = parts[1] if len(parts) > 1 else ""
            if text.startswith('json'):
                text = text[4:]
            text = text.strip()

        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            match = re.search(r"\{[\s\S]*\}", text)
            if not match:
                raise MalformedAIResponse("AI response is not JSON", raw=raw)
            try:
                data = json.loads(match.group(0))
            except json.JSONDecodeError:
                raise MalformedAIResponse("AI response is not JSON", raw=raw)

        if isinstance(data, list):
            return data, None

        if not isinstance(data, dict):
            raise MalformedAIResponse("AI response has an unexpected shape", raw=raw)

        tokens = data.get('dateRanges', data.get('date_ranges'))
        if not isinstance(tokens, list):
            raise MalformedAIResponse("AI response has no dateRanges list", raw=raw)

        intent = data.get('intent')
        if not isinstance(intent, str) or not intent.strip():
            intent = None
        return tokens, intent

    @staticmethod
    def parse_token(token: Any) -> Optional[tuple[Optional[int], int]]:
        """
        Parse a 'Month YYYY' or 'YYYY' token.

        Returns:
            Tuple of (month number or None, year), or None if the token is
            not syntactically valid
        """
        if not isinstance(token, str):
            return None
        match = TOKEN_RE.match(token)
        if not match:
            return None

        month = None
        if match.group('month'):
            name = match.group('month').lower()
            if name not in MONTH_NAMES:
                return None
            month = MONTH_NAMES.index(name) + 1
        return month, int(match.group('year'))

    @staticmethod
    def check_evidence(query: str, token: str, month: Optional[int], year: int) -> None:
        """
        Require literal evidence of the candidate in the source query.

        Raises:
            HallucinatedDateRejected: If the year is out of bounds or absent,
                or the month has neither a name nor an M/D/YYYY date in the query
        """
        if not year_in_bounds(year):
            raise HallucinatedDateRejected(token, "year out of bounds")

        if str(year) not in query:
            raise HallucinatedDateRejected(token, f"year {year} not found in query")

        if month is None:
            return

        name = MONTH_NAMES[month - 1]
        variants = {name, name[:3]}
        if month == 9:
            variants.add('sept')
        alternatives = "|".join(sorted(variants, key=len, reverse=True))
        if re.search(rf"\b(?:{alternatives})\b", query, re.IGNORECASE):
            return

        if re.search(rf"(?<!\d)0?{month}/\d{{1,2}}/{year}(?!\d)", query):
            return

        raise HallucinatedDateRejected(token, f"month {name.capitalize()} not found in query")

    def validate(
        self,
        query: str,
        tokens: list,
        intent: Optional[str] = None
    ) -> Optional[tuple[list[TimeRange], str]]:
        """
        Validate model tokens against the query.

        Args:
            query: Raw user query (the evidence)
            tokens: Date tokens returned by the model
            intent: Intent returned by the model, if any

        Returns:
            Tuple of (first two accepted ranges, intent label) or None
        """
        candidates = []
        for token in tokens:
            parsed = self.parse_token(token)
            if parsed is not None:
                candidates.append((token, parsed))

        if len(candidates) < 2:
            logger.info("AI returned too few valid date tokens", valid_tokens=len(candidates), required=2)
            return None

        accepted: list[TimeRange] = []
        for token, (month, year) in candidates:
            try:
                self.check_evidence(query, token, month, year)
            except HallucinatedDateRejected as e:
                logger.warning("AI hallucinated date", candidate=e.candidate, reason=e.reason, query=query)
                continue

            if month is None:
                resolved = year_range(year)
            else:
                resolved = month_range(year, month, f"{MONTH_NAMES[month - 1].capitalize()} {year}")
            if resolved is None or resolved in accepted:
                continue
            accepted.append(resolved)
            if len(accepted) == 2:
                break

        if len(accepted) < 2:
            return None

        logger.info("AI successfully extracted dates", periods=[r.display_label for r in accepted])
        return accepted, intent or ConfigService.DEFAULT_INTENT_LABEL
