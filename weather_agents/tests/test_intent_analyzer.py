"""
Tests for Intent Analysis

Keyword heuristics (Korean and English), LLM classification, and the
fallback from one to the other.
"""

import json
import pytest
from datetime import date, datetime
from zoneinfo import ZoneInfo


TODAY = date(2025, 6, 15)


@pytest.fixture
def clock():
    from weather_agents.common.clock import FixedClock
    return FixedClock(datetime(2025, 6, 15, 10, 0, tzinfo=ZoneInfo("Asia/Seoul")))


class FakeLLM:
    """Stands in for LLMClient; returns a canned reply or raises."""

    def __init__(self, reply="", error=None, available=True):
        self.reply = reply
        self.error = error
        self.is_available = available
        self.prompts = []

    async def complete(self, prompt, **kwargs):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.reply


class TestHeuristicIntentClassifier:
    @pytest.fixture
    def classifier(self, clock):
        from weather_agents.retriever.intent_analyzer import HeuristicIntentClassifier
        return HeuristicIntentClassifier(clock)

    def test_tomorrow_korean(self, classifier):
        from weather_agents.retriever.intent_analyzer import PrimaryIntent, Timeframe, ResponseType
        from weather_agents.common.schemas import ContentType

        intent = classifier.analyze("내일 날씨 어때?", "Seoul")

        assert intent.timeframe == Timeframe.TOMORROW
        assert intent.primary_intent == PrimaryIntent.FORECAST
        assert intent.specific_date == date(2025, 6, 16)
        assert intent.location == "Seoul"
        assert intent.expected_response_type == ResponseType.SIMPLE
        assert intent.suggested_data_types == [ContentType.DAILY, ContentType.FORECAST]
        assert intent.locale == "ko"
        assert intent.source == "heuristic"
        assert intent.confidence == pytest.approx(0.8)

    def test_rain_today_is_condition(self, classifier):
        from weather_agents.retriever.intent_analyzer import PrimaryIntent, Timeframe, WeatherAspect

        intent = classifier.analyze("Will it rain today?", "Seoul")

        assert intent.timeframe == Timeframe.TODAY
        assert intent.primary_intent == PrimaryIntent.CONDITION
        assert WeatherAspect.PRECIPITATION in intent.weather_aspects
        assert intent.specific_date == TODAY
        assert intent.locale == "en"

    def test_now(self, classifier):
        from weather_agents.retriever.intent_analyzer import PrimaryIntent, Timeframe, Urgency
        from weather_agents.common.schemas import ContentType

        intent = classifier.analyze("지금 서울 기온 몇 도야?", "Busan")

        assert intent.timeframe == Timeframe.NOW
        assert intent.primary_intent == PrimaryIntent.CURRENT
        assert intent.urgency == Urgency.HIGH
        assert intent.location == "서울"
        assert ContentType.CURRENT in intent.suggested_data_types

    def test_week_has_no_single_date(self, classifier):
        from weather_agents.retriever.intent_analyzer import Timeframe, Urgency

        intent = classifier.analyze("이번 주 날씨 알려줘", "Seoul")

        assert intent.timeframe == Timeframe.WEEK
        assert intent.specific_date is None
        assert intent.urgency == Urgency.LOW

    def test_day_after_tomorrow(self, classifier):
        from weather_agents.retriever.intent_analyzer import Timeframe

        intent = classifier.analyze("모레 부산 날씨는?", "Seoul")

        assert intent.timeframe == Timeframe.SPECIFIC_DATE
        assert intent.specific_date == date(2025, 6, 17)
        assert intent.location == "부산"

    def test_explicit_korean_date(self, classifier):
        from weather_agents.retriever.intent_analyzer import PrimaryIntent, Timeframe, Specificity

        intent = classifier.analyze("6월 20일 날씨", "Seoul")

        assert intent.timeframe == Timeframe.SPECIFIC_DATE
        assert intent.specific_date == date(2025, 6, 20)
        assert intent.primary_intent == PrimaryIntent.FORECAST
        assert intent.specificity == Specificity.DETAILED

    def test_explicit_iso_date(self, classifier):
        intent = classifier.analyze("weather on 2025-07-01 in Busan", "Seoul")

        assert intent.specific_date == date(2025, 7, 1)
        assert intent.location == "Busan"

    def test_advisory_with_activity(self, classifier):
        from weather_agents.retriever.intent_analyzer import (
            ActivityContext, PrimaryIntent, ResponseType, WeatherAspect,
        )

        intent = classifier.analyze("Should I bring an umbrella for my walk?", "Seoul")

        assert intent.primary_intent == PrimaryIntent.ADVISORY
        assert intent.expected_response_type == ResponseType.ADVISORY
        assert intent.context == ActivityContext.OUTING
        assert WeatherAspect.PRECIPITATION in intent.weather_aspects
        assert intent.confidence == pytest.approx(0.7)

    def test_laundry_context_korean(self, classifier):
        from weather_agents.retriever.intent_analyzer import ActivityContext, PrimaryIntent

        intent = classifier.analyze("오늘 빨래 널어도 될까? 습도 어때", "Seoul")

        assert intent.context == ActivityContext.LAUNDRY
        assert intent.primary_intent == PrimaryIntent.ADVISORY

    def test_comparison(self, classifier):
        from weather_agents.retriever.intent_analyzer import PrimaryIntent, ResponseType, WeatherAspect

        intent = classifier.analyze("Is it cold today compared to yesterday?", "Seoul")

        assert intent.primary_intent == PrimaryIntent.COMPARISON
        assert intent.expected_response_type == ResponseType.COMPARATIVE
        assert WeatherAspect.TEMPERATURE in intent.weather_aspects

    def test_detailed_request(self, classifier):
        from weather_agents.retriever.intent_analyzer import ResponseType

        intent = classifier.analyze("Give me an hourly breakdown of the weather tomorrow", "Seoul")

        assert intent.expected_response_type == ResponseType.DETAILED

    def test_time_of_day(self, classifier):
        assert classifier.analyze("내일 오후 날씨", "Seoul").time_of_day == "afternoon"
        assert classifier.analyze("weather tonight", "Seoul").time_of_day == "night"

    def test_non_weather_question_has_low_confidence(self, classifier):
        intent = classifier.analyze("hello there", "Seoul")
        assert intent.confidence == pytest.approx(0.5)

    def test_confidence_never_exceeds_cap(self, classifier):
        questions = [
            "내일 날씨 어때?", "Will it rain today?", "지금 바람 세?", "이번 주 기온",
            "hello", "", "tomorrow weather temperature rain wind humidity right now",
        ]
        for q in questions:
            assert 0.0 <= classifier.analyze(q, "Seoul").confidence <= 0.8

    @pytest.mark.asyncio
    async def test_classify_is_async_analyze(self, classifier):
        intent = await classifier.classify("내일 날씨", "Seoul")
        assert intent.specific_date == date(2025, 6, 16)


class TestLLMIntentClassifier:
    def test_date_for_timeframe(self):
        from weather_agents.retriever.intent_analyzer import Timeframe, date_for_timeframe

        assert date_for_timeframe(Timeframe.NOW, TODAY) == TODAY
        assert date_for_timeframe(Timeframe.TOMORROW, TODAY) == date(2025, 6, 16)
        assert date_for_timeframe(Timeframe.WEEK, TODAY) is None

    @pytest.mark.asyncio
    async def test_parses_llm_json(self, clock):
        from weather_agents.retriever.intent_analyzer import (
            ActivityContext, LLMIntentClassifier, PrimaryIntent, ResponseType, Timeframe, WeatherAspect,
        )
        from weather_agents.common.schemas import ContentType

        reply = "```json\n" + json.dumps({
            "primaryIntent": "forecast",
            "timeframe": "tomorrow",
            "specificDate": None,
            "timeOfDay": "morning",
            "location": None,
            "weatherAspects": ["precipitation", "bogus"],
            "context": "going out with friends",
            "expectedResponseType": "advisory",
            "confidence": 0.95,
            "suggestedDataTypes": ["daily", "weird"],
        }) + "\n```"
        llm = FakeLLM(reply=reply)

        intent = await LLMIntentClassifier(llm, clock).classify("내일 아침 친구랑 나가는데 비 와?", "Seoul")

        assert intent.source == "llm"
        assert intent.primary_intent == PrimaryIntent.FORECAST
        assert intent.timeframe == Timeframe.TOMORROW
        assert intent.specific_date == date(2025, 6, 16)
        assert intent.time_of_day == "morning"
        assert intent.location == "Seoul"
        assert intent.weather_aspects == [WeatherAspect.PRECIPITATION]
        assert intent.context == ActivityContext.OUTING
        assert intent.expected_response_type == ResponseType.ADVISORY
        assert intent.suggested_data_types == [ContentType.DAILY]
        assert intent.confidence == pytest.approx(0.95)
        assert "2025-06-15" in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_defaults_for_missing_fields(self, clock):
        from weather_agents.retriever.intent_analyzer import LLMIntentClassifier, Timeframe, WeatherAspect

        intent = await LLMIntentClassifier(FakeLLM(reply='{"confidence": "high"}'), clock).classify("q", "Seoul")

        assert intent.timeframe == Timeframe.TODAY
        assert intent.specific_date == TODAY
        assert intent.weather_aspects == [WeatherAspect.GENERAL]
        assert intent.confidence == pytest.approx(0.7)

    @pytest.mark.asyncio
    async def test_confidence_is_clamped(self, clock):
        from weather_agents.retriever.intent_analyzer import LLMIntentClassifier

        intent = await LLMIntentClassifier(FakeLLM(reply='{"confidence": 1.7}'), clock).classify("q", "Seoul")
        assert intent.confidence == 1.0

    @pytest.mark.asyncio
    async def test_unavailable_raises(self, clock):
        from weather_agents.retriever.intent_analyzer import IntentClassificationError, LLMIntentClassifier

        with pytest.raises(IntentClassificationError):
            await LLMIntentClassifier(FakeLLM(available=False), clock).classify("q", "Seoul")

    @pytest.mark.asyncio
    async def test_non_json_raises(self, clock):
        from weather_agents.retriever.intent_analyzer import IntentClassificationError, LLMIntentClassifier

        with pytest.raises(IntentClassificationError, match="JSON"):
            await LLMIntentClassifier(FakeLLM(reply="sunny!"), clock).classify("q", "Seoul")


class TestIntentAnalyzer:
    @pytest.mark.asyncio
    async def test_llm_failure_falls_back_to_heuristics(self, clock, caplog):
        import logging
        from weather_agents.retriever.intent_analyzer import IntentAnalyzer, Timeframe

        analyzer = IntentAnalyzer(llm_client=FakeLLM(error=TimeoutError("slow")), clock=clock)
        with caplog.at_level(logging.WARNING, logger="weather.retriever.intent_analyzer"):
            intent = await analyzer.analyze("내일 날씨 어때?", "Seoul")

        assert intent.source == "heuristic"
        assert intent.timeframe == Timeframe.TOMORROW
        assert intent.confidence <= 0.8
        assert "fell back" in caplog.text

    @pytest.mark.asyncio
    async def test_without_llm_uses_heuristics(self, clock):
        from weather_agents.retriever.intent_analyzer import IntentAnalyzer

        intent = await IntentAnalyzer(clock=clock).analyze("Will it rain today?", "Seoul")
        assert intent.source == "heuristic"

    @pytest.mark.asyncio
    async def test_llm_result_used_when_available(self, clock):
        from weather_agents.retriever.intent_analyzer import IntentAnalyzer, Timeframe

        llm = FakeLLM(reply='{"timeframe": "week", "confidence": 0.9}')
        intent = await IntentAnalyzer(llm_client=llm, clock=clock).analyze("this week?", "Seoul")

        assert intent.source == "llm"
        assert intent.timeframe == Timeframe.WEEK
        assert intent.specific_date is None

    def test_summary_mentions_fields(self, clock):
        from weather_agents.retriever.intent_analyzer import HeuristicIntentClassifier

        summary = HeuristicIntentClassifier(clock).analyze("내일 날씨", "Seoul").summary()
        assert "timeframe=tomorrow" in summary
        assert "date=2025-06-16" in summary
