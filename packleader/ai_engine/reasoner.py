"""
Attack Path Reasoner
====================

Runs the analyst chat: the LLM reads the conversation, calls analytical tools,
and answers once it has enough data.

This module:
- Builds the system prompt, including the objects the analyst pinned
- Drives the tool-calling loop with a step cap
- Executes server-side tools through the ToolCatalog
- Forwards client-side tools (highlight, remediation) to a callback

Design Decisions:
-----------------
1. The model selects tools; it never writes the queries behind them
2. Tool failures are sent back to the model as {"error": ...} so it can
   recover, and are logged
3. The loop stops after max_steps model calls even if the model keeps
   requesting tools
"""

import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from ..analysis.tool_catalog import ToolCatalog
from ..errors import PackLeaderError
from .llm_client import LLMClient, ToolCall, ToolOutcome


logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You are **Pack Leader**, an Active Directory attack path analyst working \
on live BloodHound data. You talk to security professionals: be direct and technical.

## Methodology
1. **Enumerate**: identify high-value targets and entry points
2. **Analyze**: map attack paths and privilege escalation chains
3. **Prioritize**: rank findings by exploitability and impact
4. **Remediate**: give specific, actionable fixes

## Tool Usage
- Start with `search_nodes` to resolve names to objectIds
- Prefer the structured tools (`find_choke_points`, `calculate_blast_radius`, \
`simulate_remediation`, `find_kerberoastable_users`, ...) over `run_cypher_query`
- After finding attack paths or risky objects, call `highlight_graph_elements`
- Record every confirmed issue with `add_remediation_item`, including the \
quantitative impact and MITRE mapping the tools returned
- Reference objects by their full names (e.g. USER@DOMAIN.CORP)"""


def build_system_prompt(context_chips: Optional[list] = None) -> str:
    """Return the system prompt, with a Current Context section when objects are pinned.

    Args:
        context_chips: ContextChip objects selected on the canvas
    """
    prompt = SYSTEM_PROMPT
    if context_chips:
        lines = [
            f"- **{chip.label}** ({chip.kind}, ObjectID: {chip.object_id})"
            for chip in context_chips
        ]
        prompt += (
            "\n\n## Current Context\n"
            "The user has selected the following objects on the graph canvas. "
            "Reference these in your analysis when relevant:\n" + "\n".join(lines)
        )
    return prompt


@dataclass
class AgentReply:
    """Outcome of one user turn.

    Attributes:
        content: Final assistant text
        tool_trace: One entry per tool call: name, arguments, ok, result or error
        steps: Number of model calls made
        messages: Conversation including this turn, in provider format
        step_limit_reached: True when the loop was cut off
    """
    content: str = ""
    tool_trace: list = field(default_factory=list)
    steps: int = 0
    messages: list = field(default_factory=list)
    step_limit_reached: bool = False


class AttackPathAgent:
    """Tool-calling chat agent over the analytical tool catalog.

    Usage:
        agent = AttackPathAgent(catalog, LLMClient(config.llm), on_client_tool=session.apply_client_tool)
        reply = await agent.run([{"role": "user", "content": "Who can reach DA?"}])
        print(reply.content)
    """

    def __init__(
        self,
        catalog: ToolCatalog,
        llm: LLMClient,
        max_steps: int = 10,
        on_client_tool: Optional[Callable[[str, dict], Any]] = None
    ):
        """Initialize the agent.

        Args:
            catalog: Tool catalog bound to a BloodHound client
            llm: LLM client (or any object with the same interface)
            max_steps: Maximum model calls per user turn
            on_client_tool: Called with (tool name, validated arguments) for
                client-side tools; may be a coroutine function
        """
        self.catalog = catalog
        self.llm = llm
        self.max_steps = max_steps
        self.on_client_tool = on_client_tool

    async def run(self, messages: list, context_chips: Optional[list] = None) -> AgentReply:
        """Answer the latest user message, calling tools as the model requests."""
        reply = AgentReply(messages=list(messages))
        system_prompt = build_system_prompt(context_chips)
        tools = self.catalog.definitions()

        while reply.steps < self.max_steps:
            response = await self.llm.complete_with_tools(reply.messages, system_prompt, tools)
            reply.steps += 1
            reply.messages.append(self.llm.assistant_message(response))
            reply.content = response.content

            if not response.tool_calls:
                return reply

            outcomes = []
            for call in response.tool_calls:
                outcome = await self._run_tool(call)
                outcomes.append(outcome)
                reply.tool_trace.append({
                    "name": call.name,
                    "arguments": call.arguments,
                    "ok": not outcome.is_error,
                    "result": json.loads(outcome.content),
                })
            reply.messages.extend(self.llm.tool_result_messages(outcomes))

        logger.warning("Agent stopped after %d steps", self.max_steps)
        reply.step_limit_reached = True
        if not reply.content:
            reply.content = (
                "I reached the analysis step limit before finishing. "
                "Ask me to continue, or narrow the question."
            )
        return reply

    async def _run_tool(self, call: ToolCall) -> ToolOutcome:
        try:
            result = await self.catalog.invoke(call.name, call.arguments)
        except PackLeaderError as e:
            logger.warning("Tool %s failed: %s", call.name, e)
            return ToolOutcome(call, json.dumps({"error": str(e)}), is_error=True)

        if self.catalog.get_spec(call.name).client_side and self.on_client_tool:
            applied = self.on_client_tool(call.name, result.get("arguments", {}))
            if inspect.isawaitable(applied):
                await applied

        return ToolOutcome(call, json.dumps(result, default=str))
