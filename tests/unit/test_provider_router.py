"""Unit tests for provider failover and rate limiting."""

import pytest
from langchain_core.messages import HumanMessage

from aegisAgent.models.providers import parse_provider_spec, simulate_stream, split_for_streaming
from aegisAgent.models.router import ProviderRouter, RateLimiter
from aegisAgent.utils.error_handler import ProviderFailureError, RateLimitedError

from fakes import FakeProvider, StreamFailure, tool_call_message

MESSAGES = [HumanMessage(content="hi")]


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


async def collect(stream):
    return [chunk async for chunk in stream]


class TestRateLimiter:

    def test_window_slides(self):
        clock = FakeClock()
        limiter = RateLimiter(window_seconds=10, max_requests=2, clock=clock)

        assert limiter.try_acquire("a")
        assert limiter.try_acquire("a")
        assert not limiter.try_acquire("a")
        assert limiter.is_limited("a")

        clock.now = 10.0
        assert limiter.try_acquire("a")

    def test_providers_counted_separately(self):
        limiter = RateLimiter(window_seconds=60, max_requests=1)

        assert limiter.try_acquire("a")
        assert limiter.try_acquire("b")
        assert limiter.count("a") == 1

    def test_reset(self):
        limiter = RateLimiter(window_seconds=60, max_requests=1)
        limiter.try_acquire("a")

        limiter.reset("a")

        assert limiter.try_acquire("a")


class TestProviderRouterGenerate:

    @pytest.mark.asyncio
    async def test_primary_answers(self):
        primary = FakeProvider(["from primary"], name="primary")
        backup = FakeProvider(["from backup"], name="backup")
        router = ProviderRouter({"primary": primary, "backup": backup}, failover_chain=["backup"])

        reply = await router.generate("sys", MESSAGES)

        assert reply.content == "from primary"
        assert backup.calls == []

    @pytest.mark.asyncio
    async def test_fails_over_to_next_provider(self):
        primary = FakeProvider([RuntimeError("503")], name="primary")
        backup = FakeProvider(["from backup"], name="backup")
        router = ProviderRouter({"primary": primary, "backup": backup}, failover_chain=["backup"])

        reply = await router.generate("sys", MESSAGES, model="big-model")

        assert reply.content == "from backup"
        assert primary.calls[0]["model"] == "big-model"
        assert backup.calls[0]["model"] is None

    @pytest.mark.asyncio
    async def test_all_providers_fail(self):
        router = ProviderRouter(
            {
                "a": FakeProvider([RuntimeError("first")], name="a"),
                "b": FakeProvider([RuntimeError("second")], name="b"),
            },
            failover_chain=["b"],
        )

        with pytest.raises(ProviderFailureError, match="second"):
            await router.generate("sys", MESSAGES)

    @pytest.mark.asyncio
    async def test_rate_limited_provider_is_skipped(self):
        primary = FakeProvider(["primary"], name="primary")
        backup = FakeProvider(["backup"], name="backup")
        limiter = RateLimiter(window_seconds=60, max_requests=1)
        limiter.try_acquire("primary")
        router = ProviderRouter(
            {"primary": primary, "backup": backup},
            failover_chain=["backup"],
            rate_limiter=limiter,
        )

        reply = await router.generate("sys", MESSAGES)

        assert reply.content == "backup"
        assert primary.calls == []

    @pytest.mark.asyncio
    async def test_all_limited_raises_without_calling(self):
        provider = FakeProvider(name="only")
        limiter = RateLimiter(window_seconds=60, max_requests=1)
        limiter.try_acquire("only")
        router = ProviderRouter({"only": provider}, rate_limiter=limiter)

        with pytest.raises(RateLimitedError):
            await router.generate("sys", MESSAGES)
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_explicit_provider_goes_first(self):
        a = FakeProvider(["a"], name="a")
        b = FakeProvider(["b"], name="b")
        router = ProviderRouter({"a": a, "b": b}, primary="a", failover_chain=["b"])

        reply = await router.generate("sys", MESSAGES, provider="b")

        assert reply.content == "b"
        assert router.candidates("b") == ["b"]

    def test_unknown_chain_entries_are_skipped(self):
        router = ProviderRouter({"a": FakeProvider(name="a")}, failover_chain=["ghost", "a"])

        assert router.candidates() == ["a"]

    def test_unknown_primary_rejected(self):
        with pytest.raises(ValueError):
            ProviderRouter({"a": FakeProvider(name="a")}, primary="b")

    def test_resolve_unknown_provider(self):
        router = ProviderRouter({"a": FakeProvider(name="a", context_window=4096)})

        assert router.resolve().context_window == 4096
        with pytest.raises(ProviderFailureError):
            router.resolve("b")


class TestProviderRouterStream:

    @pytest.mark.asyncio
    async def test_stream_fails_over_before_first_chunk(self):
        primary = FakeProvider([RuntimeError("connect failed")], name="primary")
        backup = FakeProvider(["streamed answer"], name="backup")
        router = ProviderRouter({"primary": primary, "backup": backup}, failover_chain=["backup"])

        chunks = await collect(router.stream("sys", MESSAGES))

        assert "".join(c.content for c in chunks) == "streamed answer"

    @pytest.mark.asyncio
    async def test_stream_failure_after_output_propagates(self):
        primary = FakeProvider([StreamFailure("partial text", RuntimeError("reset"))], name="primary")
        backup = FakeProvider(["never used"], name="backup")
        router = ProviderRouter({"primary": primary, "backup": backup}, failover_chain=["backup"])

        with pytest.raises(ProviderFailureError, match="mid-stream"):
            await collect(router.stream("sys", MESSAGES))
        assert backup.calls == []


class TestStreamingHelpers:

    def test_split_round_trips(self):
        text = "Hello  world,\nthis is  a test "

        assert "".join(split_for_streaming(text)) == text

    @pytest.mark.asyncio
    async def test_simulated_stream_rebuilds_tool_calls(self):
        message = tool_call_message("echo", {"text": "hi"}, call_id="call_9", content="Let me check")

        chunks = await collect(simulate_stream(message))
        merged = chunks[0]
        for chunk in chunks[1:]:
            merged = merged + chunk

        assert merged.content == "Let me check"
        assert merged.tool_calls[0]["name"] == "echo"
        assert merged.tool_calls[0]["args"] == {"text": "hi"}
        assert merged.tool_calls[0]["id"] == "call_9"

    def test_parse_provider_spec(self):
        assert parse_provider_spec("backup=gpt-4o@https://example.test/v1") == (
            "backup", "gpt-4o", "https://example.test/v1",
        )
        assert parse_provider_spec("local=llama3") == ("local", "llama3", None)
        with pytest.raises(ValueError):
            parse_provider_spec("no-equals")
