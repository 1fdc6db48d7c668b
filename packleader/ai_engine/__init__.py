"""
packleader AI Engine Module
===========================

LLM integration for the conversational analyst.

Components:
- llm_client.py: Async tool-calling client for Anthropic and OpenAI
- reasoner.py: System prompt and the tool-calling agent loop

Design Philosophy:
- AI is optional: every tool also runs from the CLI without a model
- The model chooses tools; queries stay deterministic
"""

from .llm_client import LLMClient, LLMResponse, ToolCall, ToolOutcome
from .reasoner import AttackPathAgent, AgentReply, build_system_prompt
