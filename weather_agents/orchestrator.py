"""
Weather Agent Orchestrator

Runs the question-answering pipeline in a fixed order:

    intent-analysis -> vector-search -> rag-analysis -> optimization -> quality-scoring

Each stage is timed and appends one immutable DecisionPoint to the request's
decision log. When the RAG agent reports that stored facts cannot carry the
answer, the orchestrator (and only the orchestrator) consults the live
WeatherProvider and has the synthesizer merge live and stored data.

answer_weather_question never raises: any stage failure becomes a degraded
result with a fixed apology and confidence 0.3.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .common.clock import Clock
from .common.config import WeatherAgentsConfig
from .common.fact_builder import render_fact
from .common.fact_store import FactStore
from .common.language import detect_language
from .common.schemas import ContentType, WeatherFact
from .common.weather_provider import WeatherProvider
from .retriever.intent_analyzer import ActivityContext, Intent, IntentAnalyzer, Timeframe, WeatherAspect
from .retriever.rag_agent import AgentResponse, RAGAgent, RetrievalAnalysis
from .retriever.searcher import ScoredFact, Searcher, search_limit_for
from .retriever.synthesizer import Synthesizer

logger = logging.getLogger("weather.orchestrator")


STAGE_INTENT = "intent-analysis"
STAGE_SEARCH = "vector-search"
STAGE_RAG = "rag-analysis"
STAGE_LIVE = "live-fallback"
STAGE_OPTIMIZE = "optimization"
STAGE_QUALITY = "quality-scoring"

DEGRADED_CONFIDENCE = 0.3
LIVE_DATA_CONFIDENCE = 0.7

# Optimization event kinds, in the order they are applied
CONFIDENCE_CAVEAT = "confidence-caveat"
DATA_GAP_CAVEAT = "data-gap-caveat"
CONTEXTUAL_ADVICE = "contextual-advice"

MESSAGES = {
    "en": {
        "degraded": (
            "Sorry, something went wrong while processing the weather information. "
            "Please try again shortly."
        ),
        "confidence_caveat": "This is based on forecast data, so the actual weather may differ.",
        "data_gap_caveat": "Some information may be missing, so please check the latest forecast too.",
        "aspect_gap_caveat": "Information on {aspects} may be missing, so please check the latest forecast too.",
        "aspects": {
            WeatherAspect.TEMPERATURE: "temperature",
            WeatherAspect.PRECIPITATION: "precipitation",
            WeatherAspect.WIND: "wind",
            WeatherAspect.HUMIDITY: "humidity",
            WeatherAspect.GENERAL: "general conditions",
        },
        "advice": {
            ActivityContext.OUTING: "If you're heading out, bring an umbrella or dress for the weather.",
            ActivityContext.EXERCISE: "Check that it's good weather for exercise and stay hydrated.",
            ActivityContext.LAUNDRY: "Consider whether it's good weather for drying laundry.",
            ActivityContext.TRAVEL: "Allow for changes in the weather when planning your trip.",
        },
    },
    "ko": {
        "degraded": "죄송합니다. 현재 날씨 정보 처리 중 문제가 발생했습니다. 잠시 후 다시 시도해주세요.",
        "confidence_caveat": "이 정보는 예측 데이터를 기반으로 하므로 실제 날씨와 다를 수 있습니다.",
        "data_gap_caveat": "일부 정보가 부족할 수 있으니 최신 날씨 정보도 확인해보세요.",
        "aspect_gap_caveat": "{aspects} 정보가 부족할 수 있으니 최신 날씨 정보도 확인해보세요.",
        "aspects": {
            WeatherAspect.TEMPERATURE: "기온",
            WeatherAspect.PRECIPITATION: "강수",
            WeatherAspect.WIND: "바람",
            WeatherAspect.HUMIDITY: "습도",
            WeatherAspect.GENERAL: "전반적인 날씨",
        },
        "advice": {
            ActivityContext.OUTING: "외출 시 우산이나 적절한 옷차림을 준비하세요.",
            ActivityContext.EXERCISE: "운동하기에 좋은 날씨인지 확인하고 수분 섭취에 주의하세요.",
            ActivityContext.LAUNDRY: "빨래 건조에 적합한 날씨인지 고려해보세요.",
            ActivityContext.TRAVEL: "여행 계획에 날씨 변화를 미리 고려하시기 바랍니다.",
        },
    },
}


def _messages(locale: str) -> dict:
    return MESSAGES.get(locale, MESSAGES["en"])


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


# ============================================================================
# Result types
# ============================================================================

@dataclass(frozen=True)
class DecisionPoint:
    """One stage's decision; appended once per stage, never modified"""
    stage: str
    decision: Mapping[str, Any]
    elapsed_ms: float
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "decision": dict(self.decision),
            "elapsed_ms": round(self.elapsed_ms, 2),
            "timestamp": self.timestamp.isoformat(),
        }


class DecisionLog:
    """Ordered, append-only record of the decisions made for one request"""

    def __init__(self) -> None:
        self._points: List[DecisionPoint] = []

    def record(self, stage: str, decision: Dict[str, Any], elapsed_ms: float) -> DecisionPoint:
        point = DecisionPoint(
            stage=stage,
            decision=MappingProxyType(dict(decision)),
            elapsed_ms=elapsed_ms,
            timestamp=datetime.now(timezone.utc),
        )
        self._points.append(point)
        return point

    @property
    def points(self) -> Tuple[DecisionPoint, ...]:
        return tuple(self._points)

    def __len__(self) -> int:
        return len(self._points)


@dataclass(frozen=True)
class OptimizationEvent:
    """A post-hoc addition to the answer"""
    kind: str
    applied_text: str

    def to_dict(self) -> dict:
        return {"kind": self.kind, "applied_text": self.applied_text}


@dataclass
class OrchestrationResult:
    """Final answer with scores and the trail that produced it"""
    answer: str
    confidence: float
    overall_quality: float
    user_satisfaction_prediction: float
    pipeline: List[str]
    sources: List[WeatherFact] = field(default_factory=list)
    intent: Optional[Intent] = None
    analysis: Optional[RetrievalAnalysis] = None
    response_strategy: str = "fallback"
    decision_log: List[DecisionPoint] = field(default_factory=list)
    optimizations: List[OptimizationEvent] = field(default_factory=list)
    used_live_data: bool = False
    degraded: bool = False
    processing_ms: float = 0.0
    debug_error: Optional[str] = field(default=None, repr=False)

    @property
    def optimization_kinds(self) -> List[str]:
        return [o.kind for o in self.optimizations]

    def to_dict(self) -> dict:
        return {
            "answer": self.answer,
            "confidence": round(self.confidence, 4),
            "overall_quality": round(self.overall_quality, 4),
            "user_satisfaction_prediction": round(self.user_satisfaction_prediction, 4),
            "pipeline": list(self.pipeline),
            "response_strategy": self.response_strategy,
            "used_live_data": self.used_live_data,
            "degraded": self.degraded,
            "sources": [
                fact.model_dump(mode="json", exclude={"vector", "owner"}) for fact in self.sources
            ],
            "intent": self._intent_dict(),
            "analysis": self.analysis.to_dict() if self.analysis else None,
            "optimizations": [o.to_dict() for o in self.optimizations],
            "decision_log": [p.to_dict() for p in self.decision_log],
            "processing_ms": round(self.processing_ms, 2),
        }

    def _intent_dict(self) -> Optional[dict]:
        if self.intent is None:
            return None
        i = self.intent
        return {
            "primary_intent": i.primary_intent.value,
            "timeframe": i.timeframe.value,
            "location": i.location,
            "specific_date": i.specific_date.isoformat() if i.specific_date else None,
            "weather_aspects": [a.value for a in i.weather_aspects],
            "context": i.context.value,
            "expected_response_type": i.expected_response_type.value,
            "confidence": round(i.confidence, 4),
            "source": i.source,
        }


@dataclass
class _OptimizedAnswer:
    answer: str
    confidence: float
    events: List[OptimizationEvent]


# ============================================================================
# Orchestrator
# ============================================================================

class WeatherAgentOrchestrator:
    """
    Sequences the agents and guarantees a well-formed result.

    Usage:
        orchestrator = WeatherAgentOrchestrator.from_config(load_config())
        result = await orchestrator.answer_weather_question("내일 날씨 어때?", "user-1")
    """

    def __init__(
        self,
        intent_analyzer: IntentAnalyzer,
        searcher: Searcher,
        rag_agent: RAGAgent,
        synthesizer: Optional[Synthesizer] = None,
        weather_provider: Optional[WeatherProvider] = None,
        clock: Optional[Clock] = None,
        default_location: str = "Seoul",
        timeout_seconds: float = 30.0,
    ):
        self._intent_analyzer = intent_analyzer
        self._searcher = searcher
        self._rag_agent = rag_agent
        self._synthesizer = synthesizer or Synthesizer()
        self._provider = weather_provider
        self._clock = clock or Clock()
        self._default_location = default_location
        self._timeout = timeout_seconds

    @classmethod
    def from_config(
        cls,
        config: WeatherAgentsConfig,
        fact_store: Optional[FactStore] = None,
        weather_provider: Optional[WeatherProvider] = None,
    ) -> "WeatherAgentOrchestrator":
        """Wire the full pipeline from configuration."""
        from .common.embedding_service import get_embedding_service
        from .common.fact_store import JsonFileFactStore
        from .common.llm_client import LLMClient

        llm = LLMClient.from_config(config.llm)
        clock = Clock(config.orchestrator.timezone)
        embedding = get_embedding_service(
            mode=config.embedding.mode,
            model=config.embedding.model,
            openai_api_key=config.llm.openai_api_key or None,
        )
        store = fact_store or JsonFileFactStore(config.fact_store.path)
        synthesizer = Synthesizer(
            llm,
            temperature=config.llm.answer_temperature,
            max_tokens=config.llm.answer_max_tokens,
        )
        return cls(
            intent_analyzer=IntentAnalyzer(
                llm_client=llm,
                clock=clock,
                temperature=config.llm.intent_temperature,
                max_tokens=config.llm.intent_max_tokens,
            ),
            searcher=Searcher(
                store,
                embedding,
                window=config.retriever.window,
                widen_on_empty=config.retriever.widen_on_empty,
            ),
            rag_agent=RAGAgent(synthesizer),
            synthesizer=synthesizer,
            weather_provider=weather_provider,
            clock=clock,
            default_location=config.orchestrator.default_location,
            timeout_seconds=config.orchestrator.timeout_seconds,
        )

    async def answer_weather_question(
        self,
        question: str,
        owner: str,
        default_location: Optional[str] = None,
    ) -> OrchestrationResult:
        """
        Answer one question for one owner. Never raises.

        Args:
            question: Free-form question, Korean or English
            owner: Opaque user id; only this owner's facts are searched
            default_location: Used when the question names no place
        """
        started = time.perf_counter()
        location = default_location or self._default_location
        log = DecisionLog()
        pipeline: List[str] = []

        try:
            # 1. Intent analysis
            t0 = time.perf_counter()
            intent = await self._intent_analyzer.analyze(question, location)
            pipeline.append(STAGE_INTENT)
            log.record(STAGE_INTENT, self._evaluate_intent(intent), _elapsed(t0))

            # 2. Vector search, sized by intent confidence
            t0 = time.perf_counter()
            results = await self._search(intent, owner)
            pipeline.append(STAGE_SEARCH)
            log.record(STAGE_SEARCH, self._evaluate_results(results), _elapsed(t0))

            # 3. RAG analysis and draft answer
            t0 = time.perf_counter()
            response = await self._rag_agent.process(question, intent, results, owner)
            pipeline.append(STAGE_RAG)
            log.record(
                STAGE_RAG,
                {
                    "strategy": response.analysis.response_strategy.value,
                    "confidence": round(response.confidence, 4),
                    "needs_live_data": response.needs_live_data,
                },
                _elapsed(t0),
            )

            answer, confidence, grounded, used_live = response.answer, response.confidence, True, False
            live_facts: List[WeatherFact] = []
            # Not one of the five stages: an extra step run only by the
            # orchestrator, between rag-analysis and optimization.
            if response.needs_live_data:
                t0 = time.perf_counter()
                live = await self._live_fallback(question, intent, owner, results)
                if self._provider is not None:
                    pipeline.append(STAGE_LIVE)
                log.record(
                    STAGE_LIVE,
                    {"provider": self._provider is not None, "records": len(live[1]) if live else 0},
                    _elapsed(t0),
                )
                if live is not None:
                    answer, live_facts = live
                    confidence = max(confidence, LIVE_DATA_CONFIDENCE)
                    used_live = True
                elif not results:
                    answer, confidence, grounded = response.answer, DEGRADED_CONFIDENCE, False

            # 4. Optimization
            t0 = time.perf_counter()
            optimized = self._optimize_response(answer, confidence, intent, response, grounded, used_live)
            pipeline.append(STAGE_OPTIMIZE)
            log.record(
                STAGE_OPTIMIZE,
                {"applied": [e.kind for e in optimized.events]},
                _elapsed(t0),
            )

            # 5. Quality scoring
            t0 = time.perf_counter()
            overall, satisfaction = self._calculate_quality_metrics(intent, response, optimized)
            pipeline.append(STAGE_QUALITY)
            log.record(
                STAGE_QUALITY,
                {"overall_quality": round(overall, 4), "user_satisfaction_prediction": round(satisfaction, 4)},
                _elapsed(t0),
            )

            result = OrchestrationResult(
                answer=optimized.answer,
                confidence=_clamp(optimized.confidence),
                overall_quality=overall,
                user_satisfaction_prediction=satisfaction,
                pipeline=pipeline,
                sources=[r.fact for r in results] + live_facts,
                intent=intent,
                analysis=response.analysis,
                response_strategy=response.analysis.response_strategy.value,
                decision_log=list(log.points),
                optimizations=optimized.events,
                used_live_data=used_live,
                processing_ms=_elapsed(started),
            )
            logger.info(
                "Answered for %s in %.0fms: strategy=%s confidence=%.2f quality=%.2f",
                owner, result.processing_ms, result.response_strategy, result.confidence, overall,
            )
            return result

        except Exception as e:
            logger.error("Orchestration failed after %s: %s", pipeline or "start", e, exc_info=True)
            return self._degraded_result(question, e, log, started)

    async def answer_with_timeout(
        self,
        question: str,
        owner: str,
        default_location: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> OrchestrationResult:
        """answer_weather_question bounded by a timeout; expiry yields the degraded result."""
        timeout = timeout if timeout is not None else self._timeout
        try:
            return await asyncio.wait_for(
                self.answer_weather_question(question, owner, default_location),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning("Orchestration timed out after %.1fs", timeout)
            return self._degraded_result(question, e, DecisionLog(), None)

    # ------------------------------------------------------------------
    # Stage helpers
    # ------------------------------------------------------------------

    def _evaluate_intent(self, intent: Intent) -> Dict[str, Any]:
        """Quality gate on the intent's confidence"""
        c = intent.confidence
        if c < 0.6:
            band, recommendation = "clarification-needed", "request-more-specific-query"
        elif c < 0.8:
            band, recommendation = "proceed-with-caution", "use-multiple-strategies"
        else:
            band, recommendation = "high-confidence", "proceed-optimally"
        return {
            "confidence": round(c, 4),
            "band": band,
            "recommendation": recommendation,
            "source": intent.source,
        }

    def _search_plan(self, intent: Intent) -> Tuple[int, Optional[List[ContentType]]]:
        """
        Result limit and content-type filter for an intent.

        Less certain intents get a larger limit; the least certain are
        searched across all content types.
        """
        base = search_limit_for(intent.expected_response_type)
        types = list(intent.suggested_data_types) or None
        if intent.confidence < 0.6:
            return base + 3, []
        if intent.confidence < 0.8:
            return base + 2, types
        return base, types

    async def _search(self, intent: Intent, owner: str) -> List[ScoredFact]:
        limit, types = self._search_plan(intent)
        return await self._searcher.search_for_intent(intent, owner, limit=limit, content_types=types)

    @staticmethod
    def _evaluate_results(results: Sequence[ScoredFact]) -> Dict[str, Any]:
        if not results:
            return {"result_count": 0, "quality": "poor", "recommendation": "fallback-to-live-api"}
        avg = sum(r.score for r in results) / len(results)
        if avg < 0.3:
            quality, recommendation = "low", "supplement-with-live-data"
        elif avg < 0.6:
            quality, recommendation = "medium", "proceed-with-synthesis"
        else:
            quality, recommendation = "high", "optimal-processing"
        return {
            "result_count": len(results),
            "average_score": round(avg, 4),
            "quality": quality,
            "recommendation": recommendation,
        }

    async def _live_fallback(
        self,
        question: str,
        intent: Intent,
        owner: str,
        stored: Sequence[ScoredFact],
    ) -> Optional[Tuple[str, List[WeatherFact]]]:
        """
        Fetch live records and synthesize a hybrid answer.

        Returns None when there is no provider, the provider fails, or it
        returns nothing usable.
        """
        if self._provider is None:
            logger.info("Stored facts insufficient and no live provider configured")
            return None

        start = intent.specific_date or self._clock.today()
        end = start + timedelta(days=6) if intent.timeframe == Timeframe.WEEK else start
        try:
            records = await self._provider.fetch(intent.location, start, end)
        except Exception as e:
            logger.warning("Live provider failed for %s: %s", intent.location, e)
            return None

        live_facts = []
        for record in records or []:
            try:
                content_type = ContentType(record.get("contentType", record.get("content_type", "forecast")))
                live_facts.append(render_fact(owner, content_type, record, location=intent.location))
            except (ValueError, TypeError) as e:
                logger.warning("Skipping malformed live record: %s", e)

        if not live_facts:
            logger.info("Live provider returned no usable records for %s", intent.location)
            return None

        synthesized = await self._synthesizer.synthesize_hybrid(question, intent, live_facts, stored)
        return synthesized.answer, live_facts

    def _optimize_response(
        self,
        answer: str,
        confidence: float,
        intent: Intent,
        response: AgentResponse,
        grounded: bool = True,
        used_live: bool = False,
    ) -> _OptimizedAnswer:
        """
        Apply caveats and advice in a fixed order:
        confidence caveat, data-gap caveat, contextual advice.

        The no-evidence apology is left as is.
        """
        if not grounded:
            return _OptimizedAnswer(answer=answer, confidence=confidence, events=[])

        msg = _messages(intent.locale)
        events: List[OptimizationEvent] = []

        if confidence < 0.7:
            events.append(OptimizationEvent(CONFIDENCE_CAVEAT, msg["confidence_caveat"]))

        completeness = 1.0 if used_live else response.analysis.completeness
        if completeness < 0.8:
            gaps = response.analysis.aspect_gaps
            if gaps:
                names = ", ".join(msg["aspects"][a] for a in gaps)
                text = msg["aspect_gap_caveat"].format(aspects=names)
            else:
                text = msg["data_gap_caveat"]
            events.append(OptimizationEvent(DATA_GAP_CAVEAT, text))

        advice = msg["advice"].get(intent.context)
        if advice:
            events.append(OptimizationEvent(CONTEXTUAL_ADVICE, advice))

        final = answer
        for event in events:
            final = f"{final}\n\n{event.applied_text}"
        return _OptimizedAnswer(answer=final, confidence=confidence, events=events)

    @staticmethod
    def _calculate_quality_metrics(
        intent: Intent,
        response: AgentResponse,
        optimized: _OptimizedAnswer,
    ) -> Tuple[float, float]:
        """(overall_quality, user_satisfaction_prediction), both in [0, 1]"""
        overall = _clamp(
            (intent.confidence + response.analysis.confidence_level + optimized.confidence) / 3
        )
        satisfaction = overall
        if not 50 <= len(optimized.answer) <= 1000:
            satisfaction *= 0.9
        if intent.context != ActivityContext.GENERAL:
            satisfaction *= 1.1
        return overall, _clamp(satisfaction)

    def _degraded_result(
        self,
        question: str,
        error: BaseException,
        log: DecisionLog,
        started: Optional[float],
    ) -> OrchestrationResult:
        try:
            locale = detect_language(question if isinstance(question, str) else "").locale
        except Exception:
            locale = "en"
        return OrchestrationResult(
            answer=_messages(locale)["degraded"],
            confidence=DEGRADED_CONFIDENCE,
            overall_quality=DEGRADED_CONFIDENCE,
            user_satisfaction_prediction=0.2,
            pipeline=["fallback"],
            response_strategy="fallback",
            decision_log=list(log.points),
            optimizations=[OptimizationEvent("error-handling", "")],
            degraded=True,
            processing_ms=_elapsed(started) if started is not None else 0.0,
            debug_error=f"{type(error).__name__}: {error}",
        )


def _elapsed(since: float) -> float:
    return (time.perf_counter() - since) * 1000
