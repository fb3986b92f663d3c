"""Tests for ContextStore — ordering, isolation, snapshots and concurrency."""

import asyncio
import threading

import pytest

from relaybot.handler.messages import Channel, ContextEntry, Role
from relaybot.handler.session.session import ContextStore


class TestAppendAndRead:
    def test_unknown_user_reads_empty(self):
        store = ContextStore()
        assert store.read(Channel.TELEGRAM, "nobody") == ()
        assert store.active_contexts == 0

    def test_entries_keep_append_order(self):
        store = ContextStore()
        store.append(Channel.TELEGRAM, "1", Role.USER, "hi")
        store.append(Channel.TELEGRAM, "1", Role.ASSISTANT, "hello")
        store.append(Channel.TELEGRAM, "1", Role.USER, "hi")

        assert list(store.read(Channel.TELEGRAM, "1")) == [
            ContextEntry(Role.USER, "hi"),
            ContextEntry(Role.ASSISTANT, "hello"),
            ContextEntry(Role.USER, "hi"),  # duplicates are kept
        ]

    def test_read_is_repeatable_and_non_consuming(self):
        store = ContextStore()
        store.append(Channel.WHATSAPP, "1", Role.USER, "a")
        assert store.read(Channel.WHATSAPP, "1") == store.read(Channel.WHATSAPP, "1")
        assert list(store.iter_entries(Channel.WHATSAPP, "1")) == list(store.iter_entries(Channel.WHATSAPP, "1"))

    def test_snapshot_is_not_affected_by_later_appends(self):
        store = ContextStore()
        store.append(Channel.TELEGRAM, "1", Role.USER, "a")
        snapshot = store.read(Channel.TELEGRAM, "1")
        store.append(Channel.TELEGRAM, "1", Role.ASSISTANT, "b")
        assert len(snapshot) == 1
        assert len(store.read(Channel.TELEGRAM, "1")) == 2

    def test_same_user_id_on_different_channels_is_separate(self):
        store = ContextStore()
        store.append(Channel.TELEGRAM, "42", Role.USER, "tg")
        store.append(Channel.WHATSAPP, "42", Role.USER, "wa")
        assert [e.text for e in store.read(Channel.TELEGRAM, "42")] == ["tg"]
        assert [e.text for e in store.read(Channel.WHATSAPP, "42")] == ["wa"]
        assert store.active_contexts == 2

    def test_accepts_string_role_and_channel(self):
        store = ContextStore()
        store.append("telegram", "1", "user", "x")
        assert store.read(Channel.TELEGRAM, "1")[0].role is Role.USER


class TestRetention:
    def test_unbounded_by_default(self):
        store = ContextStore()
        for i in range(500):
            store.append(Channel.TELEGRAM, "1", Role.USER, str(i))
        assert len(store.read(Channel.TELEGRAM, "1")) == 500

    def test_max_history_drops_oldest(self):
        store = ContextStore(max_history=3)
        for i in range(5):
            store.append(Channel.TELEGRAM, "1", Role.USER, str(i))
        assert [e.text for e in store.read(Channel.TELEGRAM, "1")] == ["2", "3", "4"]

    def test_rejects_non_positive_bound(self):
        with pytest.raises(ValueError):
            ContextStore(max_history=0)


class TestConcurrency:
    def test_threaded_appends_lose_nothing(self):
        store = ContextStore()
        per_thread = 200

        def writer(tag: str):
            for i in range(per_thread):
                store.append(Channel.TELEGRAM, "shared", Role.USER, f"{tag}-{i}")

        threads = [threading.Thread(target=writer, args=(str(t),)) for t in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        entries = store.read(Channel.TELEGRAM, "shared")
        assert len(entries) == 8 * per_thread
        # each writer's own entries stay in its append order
        for tag in range(8):
            mine = [e.text for e in entries if e.text.startswith(f"{tag}-")]
            assert mine == [f"{tag}-{i}" for i in range(per_thread)]

    @pytest.mark.asyncio
    async def test_interleaved_tasks_keep_every_entry(self):
        store = ContextStore()

        async def exchange(n: int):
            store.append(Channel.WHATSAPP, "u", Role.USER, f"q{n}")
            await asyncio.sleep(0)
            store.append(Channel.WHATSAPP, "u", Role.ASSISTANT, f"a{n}")

        await asyncio.gather(*(exchange(n) for n in range(10)))

        texts = [e.text for e in store.read(Channel.WHATSAPP, "u")]
        assert sorted(texts) == sorted([f"q{n}" for n in range(10)] + [f"a{n}" for n in range(10)])
