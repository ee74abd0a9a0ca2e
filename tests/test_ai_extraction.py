import json

import pytest
from structlog.testing import capture_logs

from adcompare.ai_extraction_service import AIExtractionValidator
from adcompare.config_service import ConfigService
from adcompare.error_handling_service import HallucinatedDateRejected, MalformedAIResponse
from adcompare.prompts import DATE_EXTRACTION_SYSTEM_PROMPT, get_date_extraction_prompt
from adcompare.query_plan_service import TimeRange


class FakeLLM:
    """Records prompts and replays a canned answer."""

    def __init__(self, answer):
        self.answer = answer
        self.calls = []

    def __call__(self, system_prompt, user_prompt):
        self.calls.append((system_prompt, user_prompt))
        if isinstance(self.answer, Exception):
            raise self.answer
        return self.answer


class AsyncFakeLLM(FakeLLM):
    async def __call__(self, system_prompt, user_prompt):
        return super().__call__(system_prompt, user_prompt)


def _answer(*tokens, intent=None):
    payload = {"dateRanges": list(tokens)}
    if intent:
        payload["intent"] = intent
    return json.dumps(payload)


@pytest.mark.asyncio
async def test_extracts_two_month_periods():
    llm = FakeLLM(_answer("October 2025", "October 2024", intent="year_over_year"))
    validator = AIExtractionValidator(llm)

    ranges, intent = await validator.extract("Compare October 2025 vs October 2024")

    assert ranges == [
        TimeRange.from_iso("2025-10-01", "2025-10-31"),
        TimeRange.from_iso("2024-10-01", "2024-10-31"),
    ]
    assert intent == "year_over_year"
    system_prompt, user_prompt = llm.calls[0]
    assert system_prompt == DATE_EXTRACTION_SYSTEM_PROMPT
    assert "Compare October 2025 vs October 2024" in user_prompt


@pytest.mark.asyncio
async def test_async_llm_is_awaited():
    validator = AIExtractionValidator(AsyncFakeLLM(_answer("2025", "2024")))

    ranges, intent = await validator.extract("Compare 2025 vs 2024")

    assert ranges == [
        TimeRange.from_iso("2025-01-01", "2025-12-31"),
        TimeRange.from_iso("2024-01-01", "2024-12-31"),
    ]
    assert intent == ConfigService.DEFAULT_INTENT_LABEL


@pytest.mark.asyncio
@pytest.mark.parametrize("query", [
    "Compare last month vs same month last year",
    "Compare this quarter against the previous one",
    "how did we do versus before",
])
async def test_years_absent_from_query_are_rejected(query):
    validator = AIExtractionValidator(FakeLLM(_answer("October 2025", "October 2024")))

    assert await validator.extract(query) is None


@pytest.mark.asyncio
async def test_hallucinated_candidate_is_dropped_but_valid_ones_survive():
    llm = FakeLLM(_answer("October 2025", "October 2023", "October 2024"))
    validator = AIExtractionValidator(llm)

    with capture_logs() as logs:
        ranges, _ = await validator.extract("Compare October 2025 vs October 2024")

    assert [r.start.year for r in ranges] == [2025, 2024]
    rejected = [entry for entry in logs if entry["event"] == "AI hallucinated date"]
    assert [entry["candidate"] for entry in rejected] == ["October 2023"]


@pytest.mark.asyncio
async def test_month_without_textual_evidence_is_rejected():
    validator = AIExtractionValidator(FakeLLM(_answer("October 2025", "October 2024")))

    assert await validator.extract("Compare 2025 vs 2024") is None


@pytest.mark.asyncio
async def test_slash_dates_count_as_month_evidence():
    validator = AIExtractionValidator(FakeLLM(_answer("October 2025", "October 2024")))

    ranges, _ = await validator.extract("Compare 10/1/2025 - 10/31/2025 vs 10/1/2024 - 10/31/2024")

    assert ranges == [
        TimeRange.from_iso("2025-10-01", "2025-10-31"),
        TimeRange.from_iso("2024-10-01", "2024-10-31"),
    ]


@pytest.mark.asyncio
async def test_fewer_than_two_tokens_is_not_enough():
    validator = AIExtractionValidator(FakeLLM(_answer("October 2025")))

    assert await validator.extract("Compare October 2025 vs October 2024") is None


@pytest.mark.asyncio
async def test_duplicate_tokens_count_once():
    validator = AIExtractionValidator(FakeLLM(_answer("October 2025", "October 2025")))

    assert await validator.extract("Compare October 2025 vs October 2025") is None


@pytest.mark.asyncio
async def test_malformed_answer_produces_nothing():
    validator = AIExtractionValidator(FakeLLM("I think you mean October"))

    assert await validator.extract("Compare October 2025 vs October 2024") is None


@pytest.mark.asyncio
async def test_llm_failure_produces_nothing():
    validator = AIExtractionValidator(FakeLLM(RuntimeError("Gemini API unavailable")))

    assert await validator.extract("Compare October 2025 vs October 2024") is None


@pytest.mark.asyncio
async def test_no_llm_produces_nothing():
    assert await AIExtractionValidator().extract("Compare October 2025 vs October 2024") is None


def test_parse_response_accepts_code_fence():
    raw = '```json\n{"dateRanges": ["October 2025", "October 2024"], "intent": "yoy"}\n```'

    assert AIExtractionValidator.parse_response(raw) == (["October 2025", "October 2024"], "yoy")


def test_parse_response_accepts_json_in_prose():
    raw = 'Here you go: {"date_ranges": ["2025", "2024"]} Hope that helps.'

    assert AIExtractionValidator.parse_response(raw) == (["2025", "2024"], None)


def test_parse_response_accepts_bare_list():
    assert AIExtractionValidator.parse_response('["2025", "2024"]') == (["2025", "2024"], None)


@pytest.mark.parametrize("raw", [
    "not json at all",
    '{"intent": "yoy"}',
    '"October 2025"',
    None,
])
def test_parse_response_rejects_unusable_shapes(raw):
    with pytest.raises(MalformedAIResponse):
        AIExtractionValidator.parse_response(raw)


@pytest.mark.parametrize("token,expected", [
    ("October 2025", (10, 2025)),
    ("october 2025", (10, 2025)),
    ("2024", (None, 2024)),
    ("Octobr 2025", None),
    ("Oct 2025", None),
    ("2025-10", None),
    (2025, None),
])
def test_parse_token(token, expected):
    assert AIExtractionValidator.parse_token(token) == expected


def test_check_evidence_rejects_out_of_bounds_year():
    with pytest.raises(HallucinatedDateRejected):
        AIExtractionValidator.check_evidence("results for 3500", "3500", None, 3500)


def test_check_evidence_accepts_abbreviated_month():
    AIExtractionValidator.check_evidence("Sept 2025 vs Sep 2024", "September 2025", 9, 2025)


def test_check_evidence_reports_missing_year():
    with pytest.raises(HallucinatedDateRejected) as exc_info:
        AIExtractionValidator.check_evidence("Compare October vs September", "October 2025", 10, 2025)

    assert "2025" in str(exc_info.value)


def test_prompt_includes_query():
    assert "Q1 2025 vs Q2 2025" in get_date_extraction_prompt("Q1 2025 vs Q2 2025")
