"""
Retriever - Weather Question Answering over Stored Facts

Key Components:
- IntentAnalyzer: Classifies the question (LLM with keyword fallback)
- Searcher: Cosine search over the owner's recent facts
- RAGAgent: Judges retrieval quality and drafts a grounded answer
- Synthesizer: LLM answer synthesis with a templated fallback

Pipeline:
1. Analyze intent (type, timeframe, date, aspects, expected answer shape)
2. Search the owner's facts, boosted by date proximity
3. Analyze coverage/freshness/relevance and pick a strategy
4. Synthesize an answer from the selected facts
"""

from .intent_analyzer import Intent, IntentAnalyzer
from .rag_agent import AgentResponse, RAGAgent, ResponseStrategy, RetrievalAnalysis
from .searcher import ScoredFact, Searcher
from .synthesizer import SynthesizedAnswer, Synthesizer

__all__ = [
    "Intent",
    "IntentAnalyzer",
    "AgentResponse",
    "RAGAgent",
    "ResponseStrategy",
    "RetrievalAnalysis",
    "ScoredFact",
    "Searcher",
    "SynthesizedAnswer",
    "Synthesizer",
]
