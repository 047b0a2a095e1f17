"""
Tests for scriptreel.pipeline.storage (Supabase client mocked)
"""

from unittest.mock import MagicMock

import pytest

from scriptreel.pipeline.models import ScriptVariant, VideoJob, VideoStatus
from scriptreel.pipeline.storage import ScriptStore


def _supabase(data=None):
    """Supabase client mock whose query builder chains and returns `data`."""
    query = MagicMock()
    for method in ("insert", "select", "eq", "order", "update", "delete"):
        getattr(query, method).return_value = query
    query.execute.return_value = MagicMock(data=data if data is not None else [])
    client = MagicMock()
    client.table.return_value = query
    return client, query


def _row(user_id="user-1"):
    return {
        "id": "set-1",
        "user_id": user_id,
        "topic": "tips",
        "scripts": [{"id": 1, "content": "One"}, {"id": 2, "content": "Two"}],
        "created_at": "2025-01-01T00:00:00+00:00",
    }


class TestScriptSets:
    def test_save_returns_row_id(self):
        client, query = _supabase([{"id": "set-9"}])
        store = ScriptStore(client)

        set_id = store.save_script_set("user-1", "tips", [ScriptVariant(id=1, content="One")])

        assert set_id == "set-9"
        client.table.assert_called_with("script_sets")
        inserted = query.insert.call_args.args[0]
        assert inserted["user_id"] == "user-1"
        assert inserted["scripts"] == [{"id": 1, "content": "One"}]

    def test_list_newest_first(self):
        client, query = _supabase([_row()])

        sets = ScriptStore(client).list_script_sets("user-1")

        assert sets[0].topic == "tips"
        assert len(sets[0].scripts) == 2
        query.order.assert_called_once_with("created_at", desc=True)

    def test_get_missing(self):
        client, _ = _supabase([])
        with pytest.raises(LookupError):
            ScriptStore(client).get_script_set("nope", "user-1")

    def test_get_not_owner(self):
        client, _ = _supabase([_row(user_id="someone-else")])
        with pytest.raises(PermissionError):
            ScriptStore(client).get_script_set("set-1", "user-1")

    def test_update_script_replaces_one_variant(self):
        client, query = _supabase([_row()])

        updated = ScriptStore(client).update_script("set-1", "user-1", ScriptVariant(id=2, content="Edited"))

        assert [s.content for s in updated.scripts] == ["One", "Edited"]
        written = query.update.call_args.args[0]["scripts"]
        assert written == [{"id": 1, "content": "One"}, {"id": 2, "content": "Edited"}]

    def test_update_unknown_variant(self):
        client, query = _supabase([_row()])

        with pytest.raises(LookupError):
            ScriptStore(client).update_script("set-1", "user-1", ScriptVariant(id=7, content="x"))
        query.update.assert_not_called()

    def test_delete_checks_ownership(self):
        client, query = _supabase([_row(user_id="someone-else")])

        with pytest.raises(PermissionError):
            ScriptStore(client).delete_script_set("set-1", "user-1")
        query.delete.assert_not_called()


class TestVideos:
    def test_save_video(self):
        client, query = _supabase([{"id": "row-1"}])
        job = VideoJob(
            source_script_id=2,
            sanitized_text="Hi there",
            external_video_id="vid-1",
            status=VideoStatus.COMPLETED,
            asset_url="https://cdn/x.mp4",
        )

        row_id = ScriptStore(client).save_video("user-1", job)

        assert row_id == "row-1"
        client.table.assert_called_with("videos")
        inserted = query.insert.call_args.args[0]
        assert inserted["script"] == "Hi there"
        assert inserted["aspect_ratio"] == "vertical"

    def test_save_unfinished_video_rejected(self):
        client, _ = _supabase()
        with pytest.raises(ValueError):
            ScriptStore(client).save_video("user-1", VideoJob(external_video_id="vid-1"))

    def test_list_videos(self):
        client, _ = _supabase([{
            "id": "row-1", "user_id": "user-1", "external_video_id": "vid-1",
            "asset_url": "https://cdn/x.mp4", "script": "Hi",
        }])

        videos = ScriptStore(client).list_videos("user-1")

        assert videos[0].asset_url == "https://cdn/x.mp4"
        assert videos[0].thumbnail_url is None
