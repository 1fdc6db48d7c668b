"""
Tests for the tool-calling agent loop, driven by a scripted LLM.
"""

import pytest

from packleader.ai_engine.llm_client import LLMClient, LLMResponse, ToolCall
from packleader.ai_engine.reasoner import AttackPathAgent, build_system_prompt
from packleader.analysis.tool_catalog import ToolCatalog
from packleader.config import LLMConfig, PackLeaderConfig
from packleader.errors import LLMError
from packleader.gui_integration.bridge import ExploreSession
from packleader.model.schemas import ContextChip


class ScriptedLLM(LLMClient):
    """LLMClient that replays canned responses instead of calling a provider."""

    def __init__(self, responses):
        super().__init__(LLMConfig(enabled=False, provider="anthropic", api_key="test"))
        self.responses = list(responses)
        self.prompts = []

    @property
    def is_available(self) -> bool:
        return True

    async def complete_with_tools(self, messages, system_prompt, tools):
        self.prompts.append((list(messages), system_prompt, tools))
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        return LLMResponse(tool_calls=[ToolCall(id="loop", name="get_domain_info")])


def tool_turn(*calls):
    return LLMResponse(tool_calls=[
        ToolCall(id=f"call-{i}", name=name, arguments=arguments)
        for i, (name, arguments) in enumerate(calls)
    ])


def test_system_prompt_lists_context_chips():
    prompt = build_system_prompt([
        ContextChip(object_id="S-1-5-21-1001", label="ALICE@CORP.LOCAL", kind="User"),
    ])

    assert "## Current Context" in prompt
    assert "- **ALICE@CORP.LOCAL** (User, ObjectID: S-1-5-21-1001)" in prompt


def test_system_prompt_without_context():
    assert "Current Context" not in build_system_prompt([])


@pytest.mark.asyncio
async def test_agent_runs_tools_then_answers(populated_client):
    llm = ScriptedLLM([
        tool_turn(("find_kerberoastable_users", {})),
        LLMResponse(content="Two service accounts are kerberoastable."),
    ])
    agent = AttackPathAgent(ToolCatalog(populated_client), llm)

    reply = await agent.run([{"role": "user", "content": "Any kerberoastable users?"}])

    assert reply.content == "Two service accounts are kerberoastable."
    assert reply.steps == 2
    assert reply.tool_trace[0]["name"] == "find_kerberoastable_users"
    assert reply.tool_trace[0]["ok"] is True
    assert reply.tool_trace[0]["result"]["count"] == 2

    tool_message = reply.messages[2]
    assert tool_message["content"][0]["type"] == "tool_result"
    assert tool_message["content"][0]["tool_use_id"] == "call-0"
    assert len(llm.prompts[0][2]) == 17


@pytest.mark.asyncio
async def test_tool_errors_are_returned_to_the_model(fake_client):
    llm = ScriptedLLM([
        tool_turn(("run_cypher_query", {"query": "MATCH (n) DELETE n", "description": "x"})),
        LLMResponse(content="I can only run read-only queries."),
    ])
    agent = AttackPathAgent(ToolCatalog(fake_client), llm)

    reply = await agent.run([{"role": "user", "content": "delete everything"}])

    trace = reply.tool_trace[0]
    assert trace["ok"] is False
    assert "Write operations are not permitted" in trace["result"]["error"]
    assert reply.messages[2]["content"][0]["is_error"] is True
    assert fake_client.calls == []


@pytest.mark.asyncio
async def test_step_limit_stops_the_loop(fake_client):
    llm = ScriptedLLM([])
    agent = AttackPathAgent(ToolCatalog(fake_client), llm, max_steps=3)

    reply = await agent.run([{"role": "user", "content": "loop forever"}])

    assert reply.step_limit_reached
    assert reply.steps == 3
    assert "step limit" in reply.content


@pytest.mark.asyncio
async def test_client_tools_are_forwarded(fake_client):
    applied = []
    llm = ScriptedLLM([
        tool_turn(("highlight_graph_elements", {"node_ids": ["S-1"]})),
        LLMResponse(content="Highlighted."),
    ])
    agent = AttackPathAgent(
        ToolCatalog(fake_client), llm,
        on_client_tool=lambda name, args: applied.append((name, args)),
    )

    await agent.run([{"role": "user", "content": "show S-1"}])

    assert applied == [("highlight_graph_elements", {"node_ids": ["S-1"], "edge_ids": [], "clear": False})]


@pytest.mark.asyncio
async def test_session_chat_records_remediation_and_keeps_history(populated_client, da_path_payload):
    llm = ScriptedLLM([
        tool_turn(
            ("find_da_paths", {"limit": 5}),
            ("add_remediation_item", {
                "title": "Remove GenericAll from HELPDESK",
                "severity": "critical",
                "description": "HELPDESK has GenericAll on Domain Admins.",
                "recommendation": "Remove the ACE.",
                "affected_objects": ["HELPDESK@CORP.LOCAL"],
            }),
        ),
        LLMResponse(content="Recorded one critical finding."),
        LLMResponse(content="Nothing else stands out."),
    ])
    session = ExploreSession(populated_client, PackLeaderConfig(), llm=llm)
    session.graph.merge(da_path_payload)
    session.select_node("S-1-5-21-2001")

    reply = await session.chat("What should I fix first?")

    assert reply.content == "Recorded one critical finding."
    assert [i.title for i in session.remediation.items] == ["Remove GenericAll from HELPDESK"]
    assert "HELPDESK@CORP.LOCAL" in llm.prompts[0][1]

    await session.chat("Anything else?")
    history = llm.prompts[-1][0]
    assert history[0] == {"role": "user", "content": "What should I fix first?"}
    assert history[-1] == {"role": "user", "content": "Anything else?"}


@pytest.mark.asyncio
async def test_chat_without_llm(fake_client):
    session = ExploreSession(fake_client)

    with pytest.raises(LLMError):
        await session.chat("hello")


@pytest.mark.asyncio
async def test_failed_chat_turn_is_not_kept_in_history(fake_client):
    llm = ScriptedLLM([
        LLMError("provider unavailable"),
        LLMResponse(content="Back online."),
    ])
    session = ExploreSession(fake_client, PackLeaderConfig(), llm=llm)

    with pytest.raises(LLMError):
        await session.chat("First try")
    assert session.messages == []

    await session.chat("Second try")

    assert llm.prompts[-1][0] == [{"role": "user", "content": "Second try"}]
    assert session.messages[0] == {"role": "user", "content": "Second try"}
