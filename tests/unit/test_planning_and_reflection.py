"""Unit tests for the complexity classifier, plan generator and reflection gate."""

import asyncio

import pytest

from aegisAgent.agents.classifier import ComplexityClassifier
from aegisAgent.agents.planner import MAX_PLAN_STEPS, PlanGenerator, parse_plan
from aegisAgent.agents.prompts import build_execution_prompt, build_revision_prompt
from aegisAgent.agents.reflection import ReflectionGate, parse_verdict

from fakes import FakeProvider, echo


class SlowProvider(FakeProvider):
    async def generate(self, system_prompt, messages, tools=(), model=None):
        await asyncio.sleep(1)
        return await super().generate(system_prompt, messages, tools, model)


class TestComplexityClassifier:

    @pytest.fixture
    def classifier(self):
        return ComplexityClassifier()

    def test_greeting_is_direct(self, classifier):
        assert classifier.requires_planning("Hello") is False

    def test_research_request_is_planned(self, classifier):
        prompt = "Research the latest X and create a detailed summary document with examples"
        assert classifier.requires_planning(prompt) is True

    def test_short_request_with_keyword_is_direct(self, classifier):
        """Fewer than five words never plans."""
        assert classifier.requires_planning("fix this") is False

    def test_keyword_must_be_whole_word(self, classifier):
        assert classifier.requires_planning("what a wonderful reading day it is") is False

    def test_enumerated_deliverables(self, classifier):
        prompt = "I would like these please:\n1. a poem about autumn\n2. a haiku about rain"
        assert classifier.requires_planning(prompt) is True

    def test_long_request_without_keywords(self, classifier):
        prompt = " ".join(["word"] * 25)
        assert classifier.requires_planning(prompt) is True

    def test_custom_keywords(self):
        classifier = ComplexityClassifier(keywords=["translate"])
        assert classifier.requires_planning("Please translate this short note for me") is True
        assert classifier.requires_planning("Please create this short note for me") is False


class TestParsePlan:

    def test_step_lines(self):
        plan = parse_plan("q", "STEP 1: search the web using web_search\nSTEP 2: write summary (needs: step 1)")

        assert plan.steps == ["search the web using web_search", "write summary (needs: step 1)"]
        assert plan.source_prompt == "q"

    def test_simple_response_means_no_plan(self):
        assert parse_plan("q", "SIMPLE_RESPONSE") is None
        assert parse_plan("q", "  simple_response: just answer") is None

    def test_empty_output_means_no_plan(self):
        assert parse_plan("q", "   ") is None

    def test_free_form_lines(self):
        plan = parse_plan("q", "- look it up\n\n- write it down")

        assert plan.steps == ["- look it up", "- write it down"]

    def test_capped_at_max_steps(self):
        text = "\n".join(f"STEP {i}: do thing {i}" for i in range(1, 9))

        plan = parse_plan("q", text)

        assert len(plan.steps) == MAX_PLAN_STEPS


class TestPlanGenerator:

    @pytest.mark.asyncio
    async def test_generates_plan_with_tool_descriptions(self):
        provider = FakeProvider(["STEP 1: echo the input using echo"])
        planner = PlanGenerator(provider, tools=[echo])

        plan = await planner.generate("Echo hello back to me please")

        assert plan.steps == ["echo the input using echo"]
        assert "- echo: Echo the text back." in provider.calls[0]["system_prompt"]
        assert provider.calls[0]["messages"][0].content == "Echo hello back to me please"

    @pytest.mark.asyncio
    async def test_provider_failure_falls_back(self):
        planner = PlanGenerator(FakeProvider([RuntimeError("boom")]))

        assert await planner.generate("anything at all here") is None

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self):
        planner = PlanGenerator(SlowProvider(["STEP 1: too late"]), timeout=0.01)

        assert await planner.generate("anything at all here") is None

    def test_execution_prompt_folds_plan(self):
        prompt = build_execution_prompt("Do it", "STEP 1: a")

        assert prompt.startswith("Do it\n\nFollow this execution plan:\nSTEP 1: a")
        assert build_execution_prompt("Do it", None) == "Do it"


class TestReflection:

    @pytest.mark.parametrize("text,approved,feedback", [
        ("APPROVED: looks right", True, "looks right"),
        ("approved: fine", True, "fine"),
        ("NEEDS_REVISION: missing the second example", False, "missing the second example"),
        ('"NEEDS_REVISION: quoted"', False, "quoted"),
        ("I think this is fine", True, "I think this is fine"),
        ("", True, ""),
    ])
    def test_parse_verdict(self, text, approved, feedback):
        verdict = parse_verdict(text)

        assert verdict.approved is approved
        assert verdict.feedback == feedback

    @pytest.mark.asyncio
    async def test_gate_sends_query_and_response(self):
        provider = FakeProvider(["NEEDS_REVISION: too short"])
        gate = ReflectionGate(provider)

        verdict = await gate.critique("42", "What is six times seven?")

        assert verdict.approved is False
        sent = provider.calls[0]["messages"][0].content
        assert "User query: What is six times seven?" in sent
        assert "AI response: 42" in sent

    @pytest.mark.asyncio
    async def test_gate_fails_open(self):
        gate = ReflectionGate(FakeProvider([RuntimeError("down")]))

        verdict = await gate.critique("answer", "question")

        assert verdict.approved is True

    def test_revision_prompt_carries_feedback(self):
        prompt = build_revision_prompt("Write a poem", "too short", "Roses.")

        assert "Original request: Write a poem" in prompt
        assert "too short" in prompt
        assert "Roses." in prompt
