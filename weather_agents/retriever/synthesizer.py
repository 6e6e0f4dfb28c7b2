"""
Synthesizer

LLM-based answer synthesis from retrieved weather facts.

Key principle: answers are grounded in the supplied facts only.
- When the model is unavailable or fails, a templated answer is built from
  the best-ranked fact's metadata, so there is always a non-empty answer
- Answers follow the question's language (Korean or English)
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, List, Optional, Sequence

from ..common.llm_client import LLMClient
from ..common.schemas import ContentType, WeatherFact
from .intent_analyzer import Intent, ResponseType, WeatherAspect

if TYPE_CHECKING:
    from .rag_agent import RetrievalAnalysis
    from .searcher import ScoredFact

logger = logging.getLogger("weather.retriever.synthesizer")


@dataclass
class SynthesizedAnswer:
    """Answer text plus how it was produced"""
    answer: str
    used_llm: bool
    warnings: List[str] = field(default_factory=list)


SYNTHESIS_PROMPT = """You answer personal weather questions using stored weather facts.

{language_instruction}

Follow these rules strictly:
1. ONLY use the facts listed below. Do NOT invent numbers, places, or dates.
2. If the facts do not cover part of the question, say so briefly.
3. Do not add warnings the facts do not support (no rain warning at 0% precipitation).
4. {style_instruction}

Question: {question}

Intent: {intent_summary}
Retrieval: strategy={strategy}, relevance={relevance:.2f}, completeness={completeness:.2f}{gaps}

Facts (best match first):
{facts}

Answer:"""


HYBRID_PROMPT = """You answer personal weather questions. Stored facts were not good enough,
so fresh readings were fetched from a live weather service.

{language_instruction}

Rules:
1. Prefer the live readings; use stored facts only where live readings are silent.
2. ONLY use the data below. Do NOT invent numbers, places, or dates.
3. {style_instruction}

Question: {question}

Intent: {intent_summary}

Live readings:
{live_facts}

Stored facts:
{stored_facts}

Answer:"""


STYLE_INSTRUCTIONS = {
    ResponseType.SIMPLE: "Answer in one or two short sentences.",
    ResponseType.DETAILED: "Give a detailed answer, covering the time periods and numbers available.",
    ResponseType.COMPARATIVE: "Compare the periods or places asked about, pointing out the differences.",
    ResponseType.ADVISORY: "Give practical advice for the user's plans, grounded in the numbers.",
}

LANGUAGE_INSTRUCTIONS = {
    "ko": "IMPORTANT: The user asked in Korean. Respond in natural, friendly Korean.",
    "en": "Respond in English.",
}


# Localized strings for answers built without the LLM
MESSAGES = {
    "en": {
        "no_evidence": (
            "Sorry, I couldn't find weather information for that. "
            "Please try another date or location."
        ),
        "unknown_place": "your area",
        "now": "now",
        "hour": "{hour}:00",
        "conditions": "{conditions}",
        "temperature": "{value}°C",
        "high_low": "high {high}°C, low {low}°C",
        "precipitation": "{value}% chance of precipitation",
        "humidity": "humidity {value}%",
        "wind": "wind {value} m/s",
        "sentence": "{place} {when}: {details}.",
        "match": " (from stored data, {percent:.0f}% match)",
        "live": " (live data)",
    },
    "ko": {
        "no_evidence": "죄송합니다. 해당 날씨 정보를 찾을 수 없습니다. 다른 날짜나 지역을 시도해보세요.",
        "unknown_place": "요청하신 지역",
        "now": "현재",
        "hour": "{hour}시",
        "conditions": "날씨 {conditions}",
        "temperature": "기온 {value}도",
        "high_low": "최고기온 {high}도, 최저기온 {low}도",
        "precipitation": "강수확률 {value}%",
        "humidity": "습도 {value}%",
        "wind": "풍속 {value}m/s",
        "sentence": "{place}의 {when} {details}입니다.",
        "match": " (저장된 데이터 기준, 일치도 {percent:.0f}%)",
        "live": " (실시간 데이터)",
    },
}


def messages_for(locale: str) -> dict:
    return MESSAGES.get(locale, MESSAGES["en"])


def no_evidence_message(locale: str) -> str:
    return messages_for(locale)["no_evidence"]


def _num(value: float) -> str:
    return f"{value:g}"


class Synthesizer:
    """
    Synthesizes answers from ranked facts using an LLM.

    Falls back to a metadata template if the LLM is not available or fails.
    """

    MAX_PROMPT_FACTS = 10

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        temperature: float = 0.3,
        max_tokens: int = 500,
    ):
        """
        Args:
            llm_client: Provider-agnostic client (optional)
            temperature: Sampling temperature for answers
            max_tokens: Answer length cap
        """
        self._llm = llm_client
        self._temperature = temperature
        self._max_tokens = max_tokens

    @property
    def has_llm(self) -> bool:
        return self._llm is not None and self._llm.is_available

    async def synthesize(
        self,
        question: str,
        intent: Intent,
        results: Sequence["ScoredFact"],
        analysis: "RetrievalAnalysis",
    ) -> SynthesizedAnswer:
        """
        Produce an answer grounded in the ranked facts.

        Args:
            question: Original question
            intent: Analyzed intent
            results: Ranked facts, best first
            analysis: Retrieval-quality analysis of the same facts
        """
        if not results:
            return SynthesizedAnswer(
                answer=no_evidence_message(intent.locale),
                used_llm=False,
                warnings=["No stored facts matched"],
            )

        if self.has_llm:
            try:
                prompt = SYNTHESIS_PROMPT.format(
                    language_instruction=self._language_instruction(intent),
                    style_instruction=self._style_instruction(intent),
                    question=question,
                    intent_summary=intent.summary(),
                    strategy=analysis.response_strategy.value,
                    relevance=analysis.relevance_score,
                    completeness=analysis.completeness,
                    gaps=f", gaps={'; '.join(analysis.data_gaps)}" if analysis.data_gaps else "",
                    facts=self._format_scored_facts(results),
                )
                answer = await self._llm.complete(
                    prompt, temperature=self._temperature, max_tokens=self._max_tokens
                )
                if answer.strip():
                    return SynthesizedAnswer(answer=answer.strip(), used_llm=True)
                logger.warning("LLM returned an empty answer")
            except Exception as e:
                logger.warning("LLM synthesis failed: %s", e)

        best = results[0]
        return SynthesizedAnswer(
            answer=self.template_answer(best.fact, intent, match=best.score),
            used_llm=False,
            warnings=["LLM not available - templated answer from best match"],
        )

    async def synthesize_hybrid(
        self,
        question: str,
        intent: Intent,
        live_facts: Sequence[WeatherFact],
        stored: Sequence["ScoredFact"] = (),
    ) -> SynthesizedAnswer:
        """Answer from live provider records, supplemented by stored facts."""
        if not live_facts and not stored:
            return SynthesizedAnswer(
                answer=no_evidence_message(intent.locale),
                used_llm=False,
                warnings=["No live or stored data"],
            )

        if self.has_llm:
            try:
                prompt = HYBRID_PROMPT.format(
                    language_instruction=self._language_instruction(intent),
                    style_instruction=self._style_instruction(intent),
                    question=question,
                    intent_summary=intent.summary(),
                    live_facts=self._format_facts(live_facts) or "(none)",
                    stored_facts=self._format_scored_facts(stored) or "(none)",
                )
                answer = await self._llm.complete(
                    prompt, temperature=self._temperature, max_tokens=self._max_tokens
                )
                if answer.strip():
                    return SynthesizedAnswer(answer=answer.strip(), used_llm=True)
            except Exception as e:
                logger.warning("LLM hybrid synthesis failed: %s", e)

        if live_facts:
            best = self._closest_to_target(live_facts, intent.specific_date)
            return SynthesizedAnswer(
                answer=self.template_answer(best, intent, live=True),
                used_llm=False,
                warnings=["LLM not available - templated answer from live data"],
            )
        best_stored = stored[0]
        return SynthesizedAnswer(
            answer=self.template_answer(best_stored.fact, intent, match=best_stored.score),
            used_llm=False,
            warnings=["LLM not available - templated answer from best match"],
        )

    def template_answer(
        self,
        fact: WeatherFact,
        intent: Intent,
        match: Optional[float] = None,
        live: bool = False,
    ) -> str:
        """
        One-sentence answer built from a fact's metadata.

        Falls back to the fact text when the metadata carries no numbers.
        """
        msg = messages_for(intent.locale)
        meta = fact.metadata
        details = []

        if meta.conditions:
            details.append(msg["conditions"].format(conditions=meta.conditions))
        if meta.high_temp is not None and meta.low_temp is not None:
            details.append(msg["high_low"].format(high=_num(meta.high_temp), low=_num(meta.low_temp)))
        elif meta.temperature is not None:
            details.append(msg["temperature"].format(value=_num(meta.temperature)))
        if meta.precipitation_probability is not None:
            details.append(msg["precipitation"].format(value=_num(meta.precipitation_probability)))
        wants = set(intent.weather_aspects)
        if meta.humidity is not None and WeatherAspect.HUMIDITY in wants:
            details.append(msg["humidity"].format(value=_num(meta.humidity)))
        if meta.wind_speed is not None and WeatherAspect.WIND in wants:
            details.append(msg["wind"].format(value=_num(meta.wind_speed)))

        if details:
            answer = msg["sentence"].format(
                place=fact.location or intent.location or msg["unknown_place"],
                when=self._describe_when(fact, msg),
                details=", ".join(details),
            )
        else:
            answer = fact.text[:200]

        if live:
            answer += msg["live"]
        elif match is not None:
            answer += msg["match"].format(percent=max(0.0, min(1.0, match)) * 100)
        return answer

    def _describe_when(self, fact: WeatherFact, msg: dict) -> str:
        if fact.content_type == ContentType.CURRENT:
            return msg["now"]
        parts = []
        if fact.forecast_date:
            parts.append(fact.forecast_date.isoformat())
        if fact.forecast_hour is not None:
            parts.append(msg["hour"].format(hour=fact.forecast_hour))
        return " ".join(parts) or msg["now"]

    def _language_instruction(self, intent: Intent) -> str:
        return LANGUAGE_INSTRUCTIONS.get(intent.locale, LANGUAGE_INSTRUCTIONS["en"])

    def _style_instruction(self, intent: Intent) -> str:
        return STYLE_INSTRUCTIONS.get(intent.expected_response_type, STYLE_INSTRUCTIONS[ResponseType.SIMPLE])

    def _format_scored_facts(self, results: Sequence["ScoredFact"]) -> str:
        lines = []
        for i, r in enumerate(results[: self.MAX_PROMPT_FACTS], 1):
            lines.append(f"{i}. {self._fact_header(r.fact)} (similarity {r.score:.3f})")
            lines.append(f"   {r.fact.text[:300]}")
        return "\n".join(lines)

    def _format_facts(self, facts: Sequence[WeatherFact]) -> str:
        lines = []
        for i, fact in enumerate(facts[: self.MAX_PROMPT_FACTS], 1):
            lines.append(f"{i}. {self._fact_header(fact)}")
            lines.append(f"   {fact.text[:300]}")
        return "\n".join(lines)

    @staticmethod
    def _fact_header(fact: WeatherFact) -> str:
        when = fact.forecast_date.isoformat() if fact.forecast_date else "undated"
        if fact.forecast_hour is not None:
            when += f" {fact.forecast_hour}h"
        return f"[{fact.content_type.value}] {when}"

    @staticmethod
    def _closest_to_target(facts: Sequence[WeatherFact], target: Optional[date]) -> WeatherFact:
        if target is None:
            return facts[0]
        dated = [f for f in facts if f.forecast_date is not None]
        if not dated:
            return facts[0]
        return min(dated, key=lambda f: abs((f.forecast_date - target).days))
