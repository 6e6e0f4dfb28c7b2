"""
RAG Agent

Judges how well the retrieved facts answer the question, picks a response
strategy, and drafts a grounded answer.

Quality signals (all in [0, 1]):
- relevance: mean score of the ranked facts
- completeness: share of requested weather aspects the facts mention
- freshness: share of facts dated within a day of the target date
  (0.8 when the question names no date)

Strategies:
- direct: relevance > 0.8 and completeness > 0.8
- fallback: relevance < 0.3 or completeness < 0.3, or nothing retrieved;
  the orchestrator is told to consult live data
- interpolation: some requested aspects are missing
- synthesis: everything else
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Sequence, Set

from .intent_analyzer import Intent, Timeframe, WeatherAspect
from .searcher import ScoredFact
from .synthesizer import Synthesizer, no_evidence_message
from ..common.schemas import ContentType

logger = logging.getLogger("weather.retriever.rag_agent")


class ResponseStrategy(str, Enum):
    DIRECT = "direct"
    SYNTHESIS = "synthesis"
    INTERPOLATION = "interpolation"
    FALLBACK = "fallback"


# Substrings that show a fact mentions an aspect (lowercased text)
ASPECT_KEYWORDS = {
    WeatherAspect.TEMPERATURE: ("°c", "temperature", "temp", "기온", "온도", "최고", "최저"),
    WeatherAspect.PRECIPITATION: ("precipitation", "rain", "snow", "shower", "강수", "비", "눈"),
    WeatherAspect.WIND: ("wind", "바람", "풍속"),
    WeatherAspect.HUMIDITY: ("humidity", "humid", "습도"),
}

NEUTRAL_FRESHNESS = 0.8
STRONGEST_MATCH_COUNT = 3

SUGGESTIONS = {
    "en": {
        "more_specific": "Try asking a more specific question.",
        "check_live": "Stored information is thin; check real-time data.",
        "missing": "Missing information: {gaps}",
    },
    "ko": {
        "more_specific": "더 구체적인 질문으로 다시 시도해보세요.",
        "check_live": "관련 정보가 부족합니다. 실시간 데이터를 확인해보세요.",
        "missing": "다음 정보가 부족합니다: {gaps}",
    },
}


@dataclass
class RetrievalAnalysis:
    """Quality analysis of one ranked result list"""
    relevance_score: float = 0.0
    completeness: float = 0.0
    freshness: float = 0.0
    coverage: Set[WeatherAspect] = field(default_factory=set)
    available_timeframes: List[str] = field(default_factory=list)
    data_gaps: List[str] = field(default_factory=list)
    aspect_gaps: List[WeatherAspect] = field(default_factory=list)
    strongest_matches: List[ScoredFact] = field(default_factory=list)
    response_strategy: ResponseStrategy = ResponseStrategy.FALLBACK
    confidence_level: float = 0.0
    source_count: int = 0

    @classmethod
    def empty(cls) -> "RetrievalAnalysis":
        return cls(data_gaps=["no stored data"])

    def to_dict(self) -> dict:
        return {
            "relevance_score": round(self.relevance_score, 4),
            "completeness": round(self.completeness, 4),
            "freshness": round(self.freshness, 4),
            "coverage": sorted(a.value for a in self.coverage),
            "available_timeframes": self.available_timeframes,
            "data_gaps": self.data_gaps,
            "response_strategy": self.response_strategy.value,
            "confidence_level": round(self.confidence_level, 4),
            "source_count": self.source_count,
        }


@dataclass
class AgentResponse:
    """Draft answer and the analysis behind it"""
    answer: str
    confidence: float
    sources: List[ScoredFact]
    analysis: RetrievalAnalysis
    reasoning: str = ""
    suggestions: List[str] = field(default_factory=list)
    used_llm: bool = False

    @property
    def needs_live_data(self) -> bool:
        """True when stored facts cannot carry the answer alone"""
        return self.analysis.response_strategy == ResponseStrategy.FALLBACK


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class RAGAgent:
    """
    Retrieval-quality analysis plus grounded answer drafting.

    Usage:
        agent = RAGAgent(Synthesizer(llm_client))
        response = await agent.process(question, intent, ranked, owner)
    """

    def __init__(self, synthesizer: Synthesizer):
        self._synthesizer = synthesizer

    async def process(
        self,
        question: str,
        intent: Intent,
        ranked_facts: Sequence[ScoredFact],
        owner: str,
    ) -> AgentResponse:
        """
        Analyze ranked facts and draft an answer.

        With no facts, no synthesis is attempted: the analysis signals
        fallback and the answer is the no-evidence message.
        """
        analysis = self.analyze(intent, ranked_facts)
        logger.info(
            "RAG analysis for %s: strategy=%s relevance=%.2f completeness=%.2f freshness=%.2f",
            owner,
            analysis.response_strategy.value,
            analysis.relevance_score,
            analysis.completeness,
            analysis.freshness,
        )

        if not ranked_facts:
            return AgentResponse(
                answer=no_evidence_message(intent.locale),
                confidence=0.0,
                sources=[],
                analysis=analysis,
                reasoning=self._reasoning(intent, analysis),
                suggestions=self._suggestions(intent, analysis),
            )

        synthesized = await self._synthesizer.synthesize(question, intent, ranked_facts, analysis)
        return AgentResponse(
            answer=synthesized.answer,
            confidence=analysis.confidence_level,
            sources=list(ranked_facts),
            analysis=analysis,
            reasoning=self._reasoning(intent, analysis),
            suggestions=self._suggestions(intent, analysis),
            used_llm=synthesized.used_llm,
        )

    def analyze(self, intent: Intent, ranked_facts: Sequence[ScoredFact]) -> RetrievalAnalysis:
        """Score a ranked list against the intent; pure, never calls a model."""
        if not ranked_facts:
            return RetrievalAnalysis.empty()

        relevance = _clamp(sum(r.score for r in ranked_facts) / len(ranked_facts))

        requested = list(dict.fromkeys(intent.weather_aspects)) or [WeatherAspect.GENERAL]
        coverage = self._coverage(ranked_facts, requested)
        completeness = _clamp(len(coverage) / len(requested))

        freshness = self._freshness(ranked_facts, intent)
        timeframes = self._available_timeframes(ranked_facts)

        aspect_gaps = [a for a in requested if a not in coverage]
        data_gaps = self._timeframe_gaps(ranked_facts, intent)
        data_gaps.extend(f"{a.value} information missing" for a in aspect_gaps)

        if relevance > 0.8 and completeness > 0.8:
            strategy = ResponseStrategy.DIRECT
        elif relevance < 0.3 or completeness < 0.3:
            strategy = ResponseStrategy.FALLBACK
        elif aspect_gaps:
            strategy = ResponseStrategy.INTERPOLATION
        else:
            strategy = ResponseStrategy.SYNTHESIS

        strongest = sorted(ranked_facts, key=lambda r: r.score, reverse=True)[:STRONGEST_MATCH_COUNT]

        return RetrievalAnalysis(
            relevance_score=relevance,
            completeness=completeness,
            freshness=freshness,
            coverage=coverage,
            available_timeframes=timeframes,
            data_gaps=data_gaps,
            aspect_gaps=aspect_gaps,
            strongest_matches=strongest,
            response_strategy=strategy,
            confidence_level=_clamp((relevance + completeness + freshness) / 3),
            source_count=len(ranked_facts),
        )

    def _coverage(self, ranked_facts: Sequence[ScoredFact], requested: List[WeatherAspect]) -> Set[WeatherAspect]:
        coverage = set()
        if WeatherAspect.GENERAL in requested:
            coverage.add(WeatherAspect.GENERAL)
        texts = [r.fact.text.lower() for r in ranked_facts]
        for aspect in requested:
            keywords = ASPECT_KEYWORDS.get(aspect)
            if keywords and any(k in text for text in texts for k in keywords):
                coverage.add(aspect)
        return coverage

    def _freshness(self, ranked_facts: Sequence[ScoredFact], intent: Intent) -> float:
        target = intent.specific_date
        if target is None:
            return NEUTRAL_FRESHNESS
        near = sum(
            1 for r in ranked_facts
            if r.fact.forecast_date is not None and abs((r.fact.forecast_date - target).days) <= 1
        )
        return near / len(ranked_facts)

    @staticmethod
    def _available_timeframes(ranked_facts: Sequence[ScoredFact]) -> List[str]:
        present = {r.fact.content_type for r in ranked_facts}
        return [t.value for t in ContentType if t in present]

    @staticmethod
    def _timeframe_gaps(ranked_facts: Sequence[ScoredFact], intent: Intent) -> List[str]:
        types = {r.fact.content_type for r in ranked_facts}
        gaps = []
        if intent.timeframe == Timeframe.NOW and ContentType.HOURLY not in types and ContentType.CURRENT not in types:
            gaps.append("real-time data missing")
        if intent.timeframe == Timeframe.WEEK and ContentType.DAILY not in types:
            gaps.append("weekly forecast data missing")
        return gaps

    @staticmethod
    def _reasoning(intent: Intent, analysis: RetrievalAnalysis) -> str:
        return "\n".join([
            f"Intent confidence: {intent.confidence:.1%}",
            f"Relevance: {analysis.relevance_score:.1%}",
            f"Completeness: {analysis.completeness:.1%}",
            f"Freshness: {analysis.freshness:.1%}",
            f"Strategy: {analysis.response_strategy.value}",
            f"Sources: {analysis.source_count}",
        ])

    @staticmethod
    def _suggestions(intent: Intent, analysis: RetrievalAnalysis) -> List[str]:
        table = SUGGESTIONS.get(intent.locale, SUGGESTIONS["en"])
        suggestions = []
        if analysis.relevance_score < 0.7:
            suggestions.append(table["more_specific"])
        if analysis.completeness < 0.5:
            suggestions.append(table["check_live"])
        if analysis.data_gaps:
            suggestions.append(table["missing"].format(gaps=", ".join(analysis.data_gaps)))
        return suggestions
