"""
Tests for voice session wiring and lifecycle.

Covers:
1. create_voice_session builds components from settings
2. Start/stop lifecycle and background tasks
3. Speech in, reply out through the whole pipeline
4. SessionRegistry
"""

import asyncio
from unittest.mock import patch

import pytest

from conftest import FakeGenerator, FakeTransport
from mimic_brain.voice.launcher import SessionRegistry
from mimic_brain.voice.orchestrator import ReplyMode
from mimic_brain.voice.playback import PlaybackPolicy
from mimic_brain.voice.transport import PlayerState


class TestCreateVoiceSession:
    def test_components_follow_settings(self, make_session, session_settings):
        session = make_session()

        assert session.key == "guild-1"
        assert session.orchestrator.bot_id == "bot-a"
        assert session.orchestrator.state.mode is ReplyMode.GENERATE
        assert session.orchestrator.state.persona_key == "connor"
        assert session.playback.policy is PlaybackPolicy.DROP
        assert session.lock.path == session_settings.lock.lock_dir / "response-guild-1.lock"
        assert session.running is False

    def test_queue_policy(self, make_session, session_settings):
        session_settings.conversation.playback_policy = "queue"
        assert make_session().playback.policy is PlaybackPolicy.QUEUE


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_registers_listeners_and_tasks(self, make_session):
        transport = FakeTransport()
        session = make_session(transport=transport)

        await session.start()
        try:
            assert session.running
            assert len(transport.speaking_listeners) == 1
            names = {task.get_name() for task in session._tasks}
            assert names == {"consumer-guild-1", "lock-sweep-guild-1", "temp-cleanup-guild-1"}

            await session.start()
            assert len(transport.speaking_listeners) == 1
        finally:
            await session.stop()

        assert not session.running
        assert session._tasks == []

    @pytest.mark.asyncio
    async def test_temp_cleanup_survives_errors(self, make_session):
        session = make_session()
        session.temp_cleanup_interval_s = 0.01
        calls = []

        def flaky_cleanup(directory, max_age_seconds):
            calls.append(directory)
            if len(calls) == 1:
                raise PermissionError("temp dir unreadable")
            return 0

        with patch("mimic_brain.voice.session.cleanup_stale_files", side_effect=flaky_cleanup):
            await session.start()
            try:
                await asyncio.sleep(0.1)
                cleanup_task = next(t for t in session._tasks if t.get_name() == "temp-cleanup-guild-1")
                assert not cleanup_task.done()
            finally:
                await session.stop()

        assert len(calls) >= 2

    @pytest.mark.asyncio
    async def test_stop_resets_conversation_state(self, make_session):
        generator = FakeGenerator()
        session = make_session(generator=generator)
        await session.start()
        await session.stop()

        assert generator.clear_all_calls == 1
        assert session.orchestrator.state.in_progress == set()

        # Stopping twice is harmless
        await session.stop()
        assert generator.clear_all_calls == 1


class TestPipeline:
    @pytest.mark.asyncio
    async def test_speech_produces_reply(self, make_session, make_pcm):
        transport = FakeTransport()
        generator = FakeGenerator("ha, nice")
        session = make_session(transport=transport, generator=generator)
        await session.start()
        on_start, on_end = transport.speaking_listeners[0]

        try:
            on_start("user-1")
            transport.push("user-1", make_pcm(1.0))
            await asyncio.sleep(0.01)
            on_end("user-1")
            await asyncio.sleep(0.2)

            assert generator.calls and generator.calls[0][:2] == ("user-1", "hello there")
            assert len(transport.sink.played) == 1
            assert session.lock.current() is None
        finally:
            await session.stop()

        # Stop cuts playback and removes the synthesized file
        assert transport.sink.stopped == 1
        assert not transport.sink.played[0].exists()

    @pytest.mark.asyncio
    async def test_noise_produces_nothing(self, make_session, make_pcm):
        transport = FakeTransport()
        generator = FakeGenerator()
        session = make_session(transport=transport, generator=generator)
        await session.start()
        on_start, on_end = transport.speaking_listeners[0]

        try:
            on_start("user-1")
            transport.push("user-1", make_pcm(0.2, amplitude=5000))
            transport.end_stream("user-1")
            await asyncio.sleep(0.2)
        finally:
            await session.stop()

        assert generator.calls == []
        assert transport.sink.played == []

    @pytest.mark.asyncio
    async def test_playback_finish_frees_the_slot(self, make_session):
        transport = FakeTransport()
        session = make_session(transport=transport)
        await session.start()
        try:
            assert await session.orchestrator.say("first")
            assert not await session.orchestrator.say("second")
            transport.sink.finish(PlayerState.IDLE)
            assert await session.orchestrator.say("third")
        finally:
            await session.stop()


class TestSessionRegistry:
    @pytest.mark.asyncio
    async def test_open_get_close(self, make_session):
        registry = SessionRegistry()
        session = make_session()

        await registry.open(session)
        assert registry.get("guild-1") is session
        assert registry.list() == [session]
        assert session.running

        assert await registry.close("guild-1") is True
        assert not session.running
        assert registry.get("guild-1") is None
        assert await registry.close("guild-1") is False

    @pytest.mark.asyncio
    async def test_duplicate_key_rejected(self, make_session):
        registry = SessionRegistry()
        await registry.open(make_session())
        try:
            with pytest.raises(ValueError):
                await registry.open(make_session())
        finally:
            await registry.close_all()
        assert registry.list() == []

    @pytest.mark.asyncio
    async def test_close_all(self, make_session):
        registry = SessionRegistry()
        a = await registry.open(make_session(transport=FakeTransport("guild-a")))
        b = await registry.open(make_session(transport=FakeTransport("guild-b")))

        await registry.close_all()
        assert not a.running and not b.running
        assert registry.list() == []
