"""
Intent Analyzer

Turns a free-form weather question into a structured Intent: what is asked
(current/forecast/comparison/condition/advisory), about when, where, which
weather aspects, and what shape of answer is expected.

Two classifiers share one interface:
- LLMIntentClassifier: asks the model for a JSON analysis; raises on failure
- HeuristicIntentClassifier: Korean/English keyword rules; never raises

FallbackIntentClassifier composes them so that every question gets an Intent.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import List, Optional

from ..common.clock import Clock
from ..common.language import LanguageInfo, detect_language
from ..common.llm_client import LLMClient
from ..common.llm_utils import parse_llm_json
from ..common.schemas import ContentType

logger = logging.getLogger("weather.retriever.intent_analyzer")


class PrimaryIntent(str, Enum):
    """What the question is after"""
    CURRENT = "current"          # "지금 날씨 어때?"
    FORECAST = "forecast"        # "내일 날씨는?"
    COMPARISON = "comparison"    # "어제보다 추워?"
    CONDITION = "condition"      # "Will it rain today?"
    ADVISORY = "advisory"        # "우산 챙겨야 해?"


class Timeframe(str, Enum):
    NOW = "now"
    TODAY = "today"
    TOMORROW = "tomorrow"
    WEEK = "week"
    SPECIFIC_DATE = "specific_date"


class WeatherAspect(str, Enum):
    TEMPERATURE = "temperature"
    PRECIPITATION = "precipitation"
    WIND = "wind"
    HUMIDITY = "humidity"
    GENERAL = "general"


class ResponseType(str, Enum):
    """Expected shape of the answer"""
    SIMPLE = "simple"
    DETAILED = "detailed"
    COMPARATIVE = "comparative"
    ADVISORY = "advisory"


class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Specificity(str, Enum):
    GENERAL = "general"
    SPECIFIC = "specific"
    DETAILED = "detailed"


class ActivityContext(str, Enum):
    """Activity the user is planning around"""
    GENERAL = "general"
    OUTING = "outing"
    EXERCISE = "exercise"
    LAUNDRY = "laundry"
    TRAVEL = "travel"


@dataclass
class Intent:
    """Structured interpretation of one question; never persisted"""
    question: str
    primary_intent: PrimaryIntent
    timeframe: Timeframe
    location: str
    specific_date: Optional[date] = None
    time_of_day: Optional[str] = None  # morning, afternoon, evening, night
    weather_aspects: List[WeatherAspect] = field(default_factory=lambda: [WeatherAspect.GENERAL])
    urgency: Urgency = Urgency.MEDIUM
    specificity: Specificity = Specificity.GENERAL
    context: ActivityContext = ActivityContext.GENERAL
    expected_response_type: ResponseType = ResponseType.SIMPLE
    confidence: float = 0.7
    analysis_reason: str = ""
    suggested_data_types: List[ContentType] = field(default_factory=list)
    priority_factors: List[str] = field(default_factory=list)
    language: Optional[LanguageInfo] = None
    source: str = "heuristic"  # "llm" or "heuristic"

    @property
    def locale(self) -> str:
        return self.language.locale if self.language else "en"

    def summary(self) -> str:
        """One-line description used in prompts and logs"""
        parts = [
            f"intent={self.primary_intent.value}",
            f"timeframe={self.timeframe.value}",
            f"location={self.location}",
        ]
        if self.specific_date:
            parts.append(f"date={self.specific_date.isoformat()}")
        if self.time_of_day:
            parts.append(f"time_of_day={self.time_of_day}")
        parts.append("aspects=" + ",".join(a.value for a in self.weather_aspects))
        if self.context != ActivityContext.GENERAL:
            parts.append(f"context={self.context.value}")
        parts.append(f"response={self.expected_response_type.value}")
        return " ".join(parts)


class IntentClassificationError(Exception):
    """The primary classifier could not produce an Intent"""


# Content types worth searching for each timeframe
TIMEFRAME_CONTENT_TYPES = {
    Timeframe.NOW: [ContentType.HOURLY, ContentType.CURRENT],
    Timeframe.TODAY: [ContentType.HOURLY, ContentType.CURRENT],
    Timeframe.TOMORROW: [ContentType.DAILY, ContentType.FORECAST],
    Timeframe.WEEK: [ContentType.DAILY, ContentType.FORECAST],
}
DEFAULT_CONTENT_TYPES = [ContentType.HOURLY, ContentType.DAILY, ContentType.FORECAST]


def content_types_for(timeframe: Timeframe) -> List[ContentType]:
    return list(TIMEFRAME_CONTENT_TYPES.get(timeframe, DEFAULT_CONTENT_TYPES))


def date_for_timeframe(timeframe: Timeframe, today: date) -> Optional[date]:
    """Target date implied by a relative timeframe; None for a whole week"""
    if timeframe in (Timeframe.NOW, Timeframe.TODAY):
        return today
    if timeframe == Timeframe.TOMORROW:
        return today + timedelta(days=1)
    return None


# ============================================================================
# Classifiers
# ============================================================================

class IntentClassifier(ABC):
    """classify(question) -> Intent, or raise"""

    @abstractmethod
    async def classify(self, question: str, default_location: str) -> Intent:
        ...


class HeuristicIntentClassifier(IntentClassifier):
    """
    Deterministic keyword rules for Korean and English questions.

    Always returns an Intent, with confidence at most 0.8.
    """

    MAX_CONFIDENCE = 0.8

    WEATHER_KEYWORDS = [
        "날씨", "기온", "온도", "비", "눈", "바람", "습도", "강수", "맑", "흐림", "흐려",
        "우산", "미세먼지", "weather", "temperature", "rain", "snow", "wind", "humid",
        "forecast", "sunny", "cloudy", "umbrella", "hot", "cold", "warm",
    ]

    ASPECT_PATTERNS = {
        WeatherAspect.PRECIPITATION: [
            r"(^|\s)비($|\s|[가는도와올오?])", r"우산", r"강수", r"눈(이|은|올|와|오)",
            r"\brain", r"\bsnow", r"umbrella", r"precipitation", r"shower", r"drizzle",
        ],
        WeatherAspect.TEMPERATURE: [
            r"온도", r"기온", r"춥", r"덥", r"추워", r"더워", r"쌀쌀", r"몇\s*도",
            r"temperature", r"\btemp\b", r"\bhot\b", r"\bcold\b", r"\bwarm", r"chilly", r"degrees?",
        ],
        WeatherAspect.WIND: [r"바람", r"풍속", r"\bwind"],
        WeatherAspect.HUMIDITY: [r"습도", r"습하", r"습해", r"humid"],
    }

    CONTEXT_PATTERNS = {
        ActivityContext.OUTING: [r"외출", r"나가", r"산책", r"나들이", r"go(ing)? out", r"outside", r"\bwalk", r"picnic"],
        ActivityContext.EXERCISE: [r"운동", r"조깅", r"러닝", r"등산", r"자전거", r"exercise", r"\bjog", r"\brun(ning)?\b", r"workout", r"hik(e|ing)", r"cycling"],
        ActivityContext.LAUNDRY: [r"빨래", r"세탁", r"laundry", r"dry (the )?clothes"],
        ActivityContext.TRAVEL: [r"여행", r"출장", r"travel", r"\btrip\b", r"vacation", r"flight"],
    }

    COMPARISON_PATTERNS = [r"비교", r"보다", r"어제", r"compare", r"\bvs\.?\b", r"than (yesterday|today)", r"difference"]
    ADVISORY_PATTERNS = [
        r"우산", r"옷", r"입을까", r"입어야", r"챙겨", r"해도 (될|돼)", r"할까", r"괜찮을까",
        r"should i", r"do i need", r"what (should|to) wear", r"is it (ok|okay|safe|good) to", r"umbrella",
    ]
    DETAIL_PATTERNS = [r"자세히", r"상세", r"시간별", r"detail", r"hourly", r"hour by hour", r"breakdown"]
    URGENT_PATTERNS = [r"지금", r"당장", r"급", r"right now", r"urgent", r"immediately"]

    TIME_OF_DAY_PATTERNS = [
        ("morning", [r"아침", r"오전", r"morning"]),
        ("afternoon", [r"오후", r"점심", r"afternoon"]),
        ("evening", [r"저녁", r"퇴근", r"evening"]),
        ("night", [r"밤", r"새벽", r"night", r"tonight"]),
    ]

    LOCATIONS = [
        "서울", "부산", "대구", "인천", "광주", "대전", "울산", "세종",
        "경기", "강원", "충북", "충남", "전북", "전남", "경북", "경남", "제주",
        "강남", "강북", "송파", "마포", "영등포", "용산", "종로",
        "운정", "일산", "파주", "고양", "수원", "성남", "안양", "부천",
        "Seoul", "Busan", "Daegu", "Incheon", "Gwangju", "Daejeon", "Ulsan", "Sejong",
        "Jeju", "Suwon", "Seongnam", "Goyang", "Paju", "Bucheon", "Anyang",
    ]

    _ISO_DATE_RE = re.compile(r"(\d{4})-(\d{1,2})-(\d{1,2})")
    _KO_DATE_RE = re.compile(r"(\d{1,2})월\s*(\d{1,2})일")
    _SLASH_DATE_RE = re.compile(r"\b(\d{1,2})/(\d{1,2})\b")

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or Clock()

    async def classify(self, question: str, default_location: str) -> Intent:
        return self.analyze(question, default_location)

    def analyze(self, question: str, default_location: str) -> Intent:
        """Synchronous rule-based analysis"""
        text = (question or "").strip()
        lowered = text.lower()
        today = self._clock.today()

        timeframe, primary, specific_date, has_time_keyword = self._detect_timeframe(lowered, today)
        aspects = self._detect_aspects(lowered)
        context = self._match_first(lowered, self.CONTEXT_PATTERNS, ActivityContext.GENERAL)
        has_weather_keyword = any(k in lowered for k in self.WEATHER_KEYWORDS)

        if self._matches(lowered, self.COMPARISON_PATTERNS):
            primary = PrimaryIntent.COMPARISON
        elif self._matches(lowered, self.ADVISORY_PATTERNS) or context != ActivityContext.GENERAL:
            primary = PrimaryIntent.ADVISORY
        elif primary == PrimaryIntent.CURRENT and any(
            a in aspects for a in (WeatherAspect.PRECIPITATION, WeatherAspect.WIND)
        ):
            primary = PrimaryIntent.CONDITION

        if primary == PrimaryIntent.COMPARISON:
            response_type = ResponseType.COMPARATIVE
        elif primary == PrimaryIntent.ADVISORY:
            response_type = ResponseType.ADVISORY
        elif self._matches(lowered, self.DETAIL_PATTERNS):
            response_type = ResponseType.DETAILED
        else:
            response_type = ResponseType.SIMPLE

        if self._matches(lowered, self.URGENT_PATTERNS):
            urgency = Urgency.HIGH
        elif timeframe == Timeframe.WEEK:
            urgency = Urgency.LOW
        else:
            urgency = Urgency.MEDIUM

        time_of_day = None
        for label, patterns in self.TIME_OF_DAY_PATTERNS:
            if self._matches(lowered, patterns):
                time_of_day = label
                break

        if time_of_day or timeframe == Timeframe.SPECIFIC_DATE:
            specificity = Specificity.DETAILED
        elif len(aspects) > 1:
            specificity = Specificity.SPECIFIC
        else:
            specificity = Specificity.GENERAL

        if not has_weather_keyword:
            confidence = 0.5
        elif has_time_keyword:
            confidence = 0.8
        else:
            confidence = 0.7

        return Intent(
            question=question,
            primary_intent=primary,
            timeframe=timeframe,
            location=self._extract_location(text) or default_location,
            specific_date=specific_date,
            time_of_day=time_of_day,
            weather_aspects=aspects,
            urgency=urgency,
            specificity=specificity,
            context=context,
            expected_response_type=response_type,
            confidence=min(confidence, self.MAX_CONFIDENCE),
            analysis_reason="keyword rules",
            suggested_data_types=content_types_for(timeframe),
            priority_factors=[a.value for a in aspects if a != WeatherAspect.GENERAL],
            language=detect_language(text),
            source="heuristic",
        )

    def _detect_timeframe(self, text: str, today: date):
        explicit = self._parse_explicit_date(text, today)
        if explicit:
            primary = PrimaryIntent.FORECAST if explicit > today else PrimaryIntent.CURRENT
            return Timeframe.SPECIFIC_DATE, primary, explicit, True
        if "모레" in text or "day after tomorrow" in text:
            return Timeframe.SPECIFIC_DATE, PrimaryIntent.FORECAST, today + timedelta(days=2), True
        if "내일" in text or "tomorrow" in text:
            return Timeframe.TOMORROW, PrimaryIntent.FORECAST, today + timedelta(days=1), True
        if re.search(r"이번\s*주|주간|일주일|7일|this week|next week|weekly|7.day|\bweek\b", text):
            return Timeframe.WEEK, PrimaryIntent.FORECAST, None, True
        if re.search(r"지금|현재|right now|\bnow\b|currently", text):
            return Timeframe.NOW, PrimaryIntent.CURRENT, today, True
        has_today = "오늘" in text or "today" in text or "tonight" in text
        return Timeframe.TODAY, PrimaryIntent.CURRENT, today, has_today

    def _parse_explicit_date(self, text: str, today: date) -> Optional[date]:
        m = self._ISO_DATE_RE.search(text)
        if m:
            try:
                return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
            except ValueError:
                return None

        m = self._KO_DATE_RE.search(text) or self._SLASH_DATE_RE.search(text)
        if not m:
            return None
        try:
            candidate = date(today.year, int(m.group(1)), int(m.group(2)))
        except ValueError:
            return None
        # "1/3" asked in late December means next year
        if (today - candidate).days > 180:
            candidate = candidate.replace(year=today.year + 1)
        return candidate

    def _detect_aspects(self, text: str) -> List[WeatherAspect]:
        aspects = [WeatherAspect.GENERAL]
        for aspect, patterns in self.ASPECT_PATTERNS.items():
            if self._matches(text, patterns):
                aspects.append(aspect)
        return aspects

    def _extract_location(self, text: str) -> Optional[str]:
        lowered = text.lower()
        for location in self.LOCATIONS:
            if location.lower() in lowered:
                return location
        return None

    @staticmethod
    def _matches(text: str, patterns: List[str]) -> bool:
        return any(re.search(p, text, re.IGNORECASE) for p in patterns)

    def _match_first(self, text: str, table: dict, default):
        for key, patterns in table.items():
            if self._matches(text, patterns):
                return key
        return default


class LLMIntentClassifier(IntentClassifier):
    """
    Model-based intent analysis.

    Raises IntentClassificationError when the model is unavailable, fails, or
    returns something that is not a JSON object.
    """

    PROMPT = """You analyze weather questions. Work out exactly what the user wants to know.

Current local time: {now}
Default location: {location}
Question: "{question}"

Classify along these axes:
1. primaryIntent: current | forecast | comparison | condition | advisory
2. timeframe: now | today | tomorrow | week | specific_date
3. weatherAspects: any of temperature, precipitation, wind, humidity, general
4. urgency: low | medium | high
5. specificity: general | specific | detailed
6. context: the activity behind the question (outing, exercise, laundry, travel, general)
7. expectedResponseType: simple | detailed | comparative | advisory

Respond with a valid JSON object only:
{{
  "primaryIntent": "...",
  "timeframe": "...",
  "specificDate": "YYYY-MM-DD or null",
  "timeOfDay": "morning | afternoon | evening | night | null",
  "location": "place named in the question, or null",
  "weatherAspects": ["..."],
  "urgency": "...",
  "specificity": "...",
  "context": "...",
  "expectedResponseType": "...",
  "confidence": 0.0-1.0,
  "analysisReason": "short explanation",
  "suggestedDataTypes": ["hourly", "daily", "current", "forecast"],
  "priorityFactors": ["..."]
}}"""

    # Free-text context labels the model tends to produce
    CONTEXT_ALIASES = {
        ActivityContext.OUTING: ("outing", "outdoor", "going out", "walk", "외출", "산책", "나들이"),
        ActivityContext.EXERCISE: ("exercise", "sport", "running", "jogging", "hiking", "운동", "조깅", "등산"),
        ActivityContext.LAUNDRY: ("laundry", "빨래", "세탁"),
        ActivityContext.TRAVEL: ("travel", "trip", "vacation", "여행", "출장"),
    }

    def __init__(
        self,
        llm_client: LLMClient,
        clock: Optional[Clock] = None,
        temperature: float = 0.1,
        max_tokens: int = 1000,
    ):
        self._llm = llm_client
        self._clock = clock or Clock()
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def classify(self, question: str, default_location: str) -> Intent:
        if not self._llm or not self._llm.is_available:
            raise IntentClassificationError("LLM client is not available")

        now = self._clock.now()
        prompt = self.PROMPT.format(
            now=now.strftime("%Y-%m-%d %H:%M (%A)"),
            location=default_location,
            question=question,
        )
        try:
            raw = await self._llm.complete(
                prompt, temperature=self._temperature, max_tokens=self._max_tokens
            )
        except Exception as e:
            raise IntentClassificationError(f"LLM call failed: {e}") from e

        data = parse_llm_json(raw)
        if not data:
            raise IntentClassificationError("LLM returned no JSON object")
        return self._to_intent(question, default_location, data, now.date())

    def _to_intent(self, question: str, default_location: str, data: dict, today: date) -> Intent:
        primary = _enum_or(PrimaryIntent, data.get("primaryIntent"), PrimaryIntent.CURRENT)
        timeframe = _enum_or(Timeframe, data.get("timeframe"), Timeframe.TODAY)
        specific_date = _parse_iso_date(data.get("specificDate")) or date_for_timeframe(timeframe, today)

        aspects = [
            a for a in (_enum_or(WeatherAspect, v, None) for v in data.get("weatherAspects") or [])
            if a is not None
        ]
        aspects = list(dict.fromkeys(aspects)) or [WeatherAspect.GENERAL]

        suggested = [
            t for t in (_enum_or(ContentType, v, None) for v in data.get("suggestedDataTypes") or [])
            if t is not None
        ] or content_types_for(timeframe)

        try:
            confidence = float(data.get("confidence", 0.7))
        except (TypeError, ValueError):
            confidence = 0.7

        time_of_day = data.get("timeOfDay")
        if time_of_day not in ("morning", "afternoon", "evening", "night"):
            time_of_day = None

        location = data.get("location")
        if not isinstance(location, str) or not location.strip() or location.lower() == "null":
            location = default_location

        return Intent(
            question=question,
            primary_intent=primary,
            timeframe=timeframe,
            location=location.strip(),
            specific_date=specific_date,
            time_of_day=time_of_day,
            weather_aspects=aspects,
            urgency=_enum_or(Urgency, data.get("urgency"), Urgency.MEDIUM),
            specificity=_enum_or(Specificity, data.get("specificity"), Specificity.GENERAL),
            context=self._parse_context(data.get("context")),
            expected_response_type=_enum_or(
                ResponseType, data.get("expectedResponseType"), ResponseType.SIMPLE
            ),
            confidence=max(0.0, min(1.0, confidence)),
            analysis_reason=str(data.get("analysisReason") or ""),
            suggested_data_types=suggested,
            priority_factors=[str(p) for p in data.get("priorityFactors") or []],
            language=detect_language(question),
            source="llm",
        )

    def _parse_context(self, raw) -> ActivityContext:
        if not isinstance(raw, str):
            return ActivityContext.GENERAL
        lowered = raw.lower()
        for context, aliases in self.CONTEXT_ALIASES.items():
            if any(alias in lowered for alias in aliases):
                return context
        return ActivityContext.GENERAL


class FallbackIntentClassifier(IntentClassifier):
    """Try the primary classifier; on any error use the fallback."""

    def __init__(self, primary: IntentClassifier, fallback: IntentClassifier):
        self.primary = primary
        self.fallback = fallback

    async def classify(self, question: str, default_location: str) -> Intent:
        try:
            return await self.primary.classify(question, default_location)
        except Exception as e:
            logger.warning("Intent classification fell back to heuristics: %s", e)
            return await self.fallback.classify(question, default_location)


class IntentAnalyzer:
    """
    Entry point for intent analysis.

    Usage:
        analyzer = IntentAnalyzer(llm_client=client)
        intent = await analyzer.analyze("내일 날씨 어때?", "Seoul")
    """

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        clock: Optional[Clock] = None,
        temperature: float = 0.1,
        max_tokens: int = 1000,
        classifier: Optional[IntentClassifier] = None,
    ):
        clock = clock or Clock()
        heuristic = HeuristicIntentClassifier(clock)
        if classifier is not None:
            self._classifier = classifier
        elif llm_client is not None:
            self._classifier = FallbackIntentClassifier(
                LLMIntentClassifier(llm_client, clock, temperature, max_tokens),
                heuristic,
            )
        else:
            self._classifier = heuristic

    async def analyze(self, question: str, default_location: str) -> Intent:
        intent = await self._classifier.classify(question, default_location)
        logger.info(
            "Intent (%s, confidence %.2f): %s", intent.source, intent.confidence, intent.summary()
        )
        return intent


def _enum_or(enum_cls, value, default):
    try:
        return enum_cls(str(value).strip().lower())
    except (ValueError, AttributeError):
        return default


def _parse_iso_date(value) -> Optional[date]:
    if not isinstance(value, str):
        return None
    try:
        return datetime.strptime(value.strip()[:10], "%Y-%m-%d").date()
    except ValueError:
        return None
