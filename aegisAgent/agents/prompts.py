"""Prompt templates for the agent personas and loop prompts."""

from __future__ import annotations

from typing import Iterable, Optional

DEFAULT_SYSTEM_PROMPT = """You are Aegis, a capable AI assistant.
Use the available tools when a request needs them, report tool errors honestly,
and give the user a complete final answer."""

PLANNING_SYSTEM_PROMPT = """You are a planning assistant. Given a user request, create a concise execution plan.

Available tools the executor can use:
{tool_descriptions}

Rules:
1. Each step must be one atomic action
2. Reference specific tools when a step requires one
3. Mark dependencies between steps (e.g., "needs step 1 result")
4. Maximum 5 steps. If more needed, group related actions.
5. For simple clarifications or conversations, output: SIMPLE_RESPONSE

Output format:
STEP 1: [action] using [tool_name]
STEP 2: [action] using [tool_name] (needs: step 1)
..."""

REFLECTION_SYSTEM_PROMPT = """You are a quality reviewer. Given a user query and an AI response, evaluate if the response is correct and complete.
Reply with exactly one of:
- "APPROVED: <brief reason>" if the response is acceptable
- "NEEDS_REVISION: <specific issue>" if the response has problems
Be concise. Only output one line."""

SIMPLE_RESPONSE_MARKER = "SIMPLE_RESPONSE"
APPROVED_MARKER = "APPROVED:"
NEEDS_REVISION_MARKER = "NEEDS_REVISION:"


def describe_tools(tools: Iterable) -> str:
    lines = [f"- {tool.name}: {tool.description}" for tool in tools]
    return "\n".join(lines) if lines else "- (no tools available)"


def build_planning_system_prompt(tools: Iterable) -> str:
    return PLANNING_SYSTEM_PROMPT.format(tool_descriptions=describe_tools(tools))


def build_reflection_prompt(original_prompt: str, response: str) -> str:
    return f"User query: {original_prompt}\n\nAI response: {response}"


def build_execution_prompt(prompt: str, plan_text: Optional[str]) -> str:
    """Fold a plan into the user prompt; no plan leaves the prompt untouched."""
    if not plan_text:
        return prompt
    return "\n\n".join([
        prompt,
        f"Follow this execution plan:\n{plan_text}",
        "Execute each step thoroughly. Provide the complete final result to the user.",
    ])


def build_revision_prompt(original_prompt: str, feedback: str, previous_response: str) -> str:
    return "\n\n".join([
        f"Original request: {original_prompt}",
        f"Your previous response had issues:\n{feedback}",
        f"Previous response for reference:\n{previous_response}",
        "Please provide an improved, complete response addressing the feedback above.",
    ])


def build_task_prompt(title: str, description: str = "") -> str:
    parts = ["You have been assigned a task:", f"Title: {title}"]
    if description:
        parts.append(f"Description: {description}")
    parts.append("Complete this task and provide your output.")
    return "\n\n".join(parts)
