"""
Weather Agents

Personal weather question answering over previously stored weather facts.

Components:
- retriever: intent analysis, semantic search, RAG analysis and synthesis
- orchestrator: sequences the agents and never raises to the caller
- common: configuration, fact store, embeddings, LLM client
- server: MCP server exposing the pipeline as tools
"""

__version__ = "0.1.0"
