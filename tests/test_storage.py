import threading

import pytest

from extclip.storage import ClipStore, ClipStoreError


class TestAddAndRetrieve:
    def test_add_clip(self, store):
        clip_id = store.add_clip("test text", "Safari")
        assert clip_id > 0

    def test_get_recent_newest_first(self, store):
        store.add_clip("first")
        store.add_clip("second")
        clips = store.get_recent_clips()
        assert [c.content for c in clips] == ["second", "first"]

    def test_get_recent_limit(self, store):
        for i in range(10):
            store.add_clip(f"item {i}")
        assert len(store.get_recent_clips(3)) == 3

    def test_get_clip(self, store):
        clip_id = store.add_clip("find me", "Notes")
        clip = store.get_clip(clip_id)
        assert clip.content == "find me"
        assert clip.from_app_name == "Notes"

    def test_get_clip_not_found(self, store):
        assert store.get_clip(99999) is None

    def test_empty_clip_rejected(self, store):
        with pytest.raises(ClipStoreError):
            store.add_clip("")

    def test_oversized_clip_rejected(self, store):
        with pytest.raises(ClipStoreError):
            store.add_clip("x" * 1_000_001)


class TestDeduplication:
    def test_repeat_moves_clip_to_top(self, store):
        first_id = store.add_clip("repeat")
        store.add_clip("other")
        again_id = store.add_clip("repeat")

        assert again_id == first_id
        assert store.get_num_clips() == 2
        assert store.get_recent_clips()[0].id == first_id

    def test_repeat_updates_source_app(self, store):
        clip_id = store.add_clip("repeat", "Safari")
        store.add_clip("repeat", "Terminal")
        assert store.get_clip(clip_id).from_app_name == "Terminal"

    def test_repeat_without_app_keeps_previous(self, store):
        clip_id = store.add_clip("repeat", "Safari")
        store.add_clip("repeat")
        assert store.get_clip(clip_id).from_app_name == "Safari"


class TestSearch:
    def test_search_content(self, store):
        store.add_clip("the quick brown fox")
        store.add_clip("lazy dog")
        results = store.search("quick")
        assert [c.content for c in results] == ["the quick brown fox"]

    def test_search_by_app_name(self, store):
        store.add_clip("one", "Terminal")
        store.add_clip("two", "Safari")
        assert [c.content for c in store.search("Terminal")] == ["one"]

    def test_search_after_app_update(self, store):
        store.add_clip("moved", "Safari")
        store.add_clip("moved", "Terminal")
        assert [c.content for c in store.search("Terminal")] == ["moved"]

    def test_special_characters_do_not_break_query(self, store):
        store.add_clip('say "hi" (now)')
        assert store.search('"hi" (now') != []

    def test_empty_query(self, store):
        store.add_clip("anything")
        assert store.search("   ") == []

    def test_search_after_delete(self, store):
        clip_id = store.add_clip("ephemeral")
        store.delete_clip(clip_id)
        assert store.search("ephemeral") == []


class TestApps:
    def test_distinct_sorted_sources(self, store):
        store.add_clip("a", "Terminal")
        store.add_clip("b", "Safari")
        store.add_clip("c", "Terminal")
        store.add_clip("d")
        store.add_clip("e", "   ")
        assert store.get_all_from_apps() == ["Safari", "Terminal"]


    def test_clips_from_one_app(self, store):
        store.add_clip("a", "Terminal")
        store.add_clip("b", "Safari")
        store.add_clip("c", " Terminal ")
        store.add_clip("d")
        assert [c.content for c in store.get_clips_from_app("Terminal")] == ["c", "a"]
        assert store.get_clips_from_app("Terminal", limit=1)[0].content == "c"
        assert store.get_clips_from_app("Mail") == []


class TestDeletion:
    def test_delete_clip(self, store):
        clip_id = store.add_clip("bye")
        store.delete_clip(clip_id)
        assert store.get_clip(clip_id) is None

    def test_delete_all(self, store):
        store.add_clip("one")
        store.add_clip("two")
        store.delete_all_clips()
        assert store.get_num_clips() == 0


class TestPurge:
    def test_purge_keeps_newest(self, store):
        for i in range(5):
            store.add_clip(f"clip {i}")
        assert store.purge_old(keep_count=2) == 3
        assert [c.content for c in store.get_recent_clips()] == ["clip 4", "clip 3"]

    def test_add_enforces_max_entries(self):
        with ClipStore(db_path=":memory:", max_entries=3) as small:
            for i in range(6):
                small.add_clip(f"clip {i}")
            assert small.get_num_clips() == 3


class TestThreadSafety:
    def test_concurrent_adds(self, store):
        def worker(n):
            for i in range(20):
                store.add_clip(f"worker {n} clip {i}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert store.get_num_clips() == 80
