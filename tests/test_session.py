"""
Tests for session.py - viewport queries, reconciliation into markers,
verification, votes and deletes, driven through the in-memory map.
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from pm.core.models import ApiResult, LatLng, VoteDirection
from pm.core.session import MapSession
from pm.core.config import normalize_config


def _markers(widget):
    return list(widget.markers.values())


class TestViewportQueries:
    def test_start_checks_verification_and_queries(self, session, api, widget):
        session.start()
        api.is_verified.assert_called_once()
        bounds, requested_by = api.fetch_points.call_args.args
        assert requested_by == "sess-1"
        assert bounds == widget.bounds()

    def test_every_move_and_zoom_end_queries(self, session, api, widget):
        session.start()
        widget.move_to(LatLng(44.95, -93.20))             # moveend
        widget.move_to(LatLng(44.95, -93.20), zoom=13)    # moveend + zoomend
        assert api.fetch_points.call_count == 4

    def test_location_follows_the_map(self, session, widget):
        session.start()
        widget.move_to(LatLng(45.0, -93.0), zoom=14)
        assert session.current_url == "http://localhost:8999/?lat=45.0&lng=-93.0&zm=14"

    def test_failed_query_changes_nothing(self, session, api, widget):
        api.fetch_points.return_value = ApiResult.failure("status 500", status=500)
        session.start()
        assert widget.markers == {}
        assert len(session.store) == 0

    def test_overlapping_queries_render_once(self, session, api, widget, make_feature):
        api.fetch_points.return_value = ApiResult.success(200, [make_feature(1), make_feature(2)])
        session.start()
        api.fetch_points.return_value = ApiResult.success(200, [make_feature(2), make_feature(3)])
        widget.move_to(LatLng(44.94, -93.26))
        assert sorted(session.markers) == ["1", "2", "3"]
        assert len(widget.markers) == 3

    def test_malformed_features_skipped(self, session, api, widget, make_feature):
        bad = {"properties": {"point_id": "x"}}
        api.fetch_points.return_value = ApiResult.success(200, [bad, make_feature(1)])
        session.start()
        assert list(session.markers) == ["1"]

    def test_one_bad_feature_does_not_drop_the_batch(self, session, api, widget, make_feature):
        bad_coords = make_feature(9)
        bad_coords["geometry"]["coordinates"] = [None, 44.9]
        bad_geometry = make_feature(8)
        bad_geometry["geometry"] = ["x"]
        api.fetch_points.return_value = ApiResult.success(
            200, [make_feature(1), bad_coords, bad_geometry, make_feature(2)])
        session.start()
        assert sorted(session.markers) == ["1", "2"]
        assert len(widget.markers) == 2


class TestRendering:
    def test_other_users_point(self, session, api, widget, make_feature):
        """5h old, not ours: faded by the age law, vote controls only."""
        api.fetch_points.return_value = ApiResult.success(200, [make_feature(1, hours_old=5)])
        session.start()

        (marker,) = _markers(widget)
        assert marker.opacity == 5 * 3600000 * (-1 / 36000000) + 1.3
        assert marker.icon == "🚧"
        assert (marker.lat, marker.lng) == (44.95, -93.25)

        popup = widget.open_popup(session.markers["1"])
        assert popup.control_names == ["upvote", "downvote"]
        assert popup.control("delete") is None

    def test_own_point_gets_delete_only(self, session, api, widget, make_feature):
        api.fetch_points.return_value = ApiResult.success(200, [make_feature(1, hours_old=5, can_delete=True)])
        session.start()
        popup = widget.open_popup(session.markers["1"])
        assert popup.control_names == ["delete"]

    def test_vote_controls_follow_verification_at_open_time(self, session, api, widget, make_feature):
        api.fetch_points.return_value = ApiResult.success(200, [make_feature(1)])
        session.start()
        handle = session.markers["1"]

        popup = widget.open_popup(handle)
        assert not popup.control("upvote").enabled
        assert popup.note == "Verify your email before rating points"

        session.mark_verified()
        popup = widget.open_popup(handle)
        assert popup.control("upvote").enabled
        assert popup.note is None

    def test_geojson_export(self, session, api, widget, make_feature):
        api.fetch_points.return_value = ApiResult.success(200, [make_feature(1, hours_old=12)])
        session.start()
        fc = widget.to_geojson()
        assert fc["type"] == "FeatureCollection"
        (feat,) = fc["features"]
        assert feat["geometry"]["coordinates"] == [-93.25, 44.95]
        assert feat["properties"]["opacity"] == pytest.approx(0.1)
        assert feat["properties"]["controls"] == ["upvote", "downvote"]


class TestVerification:
    def test_verified_from_backend(self, session, api):
        api.is_verified.return_value = ApiResult.success(200, {"verified": True})
        session.start()
        assert session.verified

    def test_not_verified_on_failure(self, session, api):
        api.is_verified.return_value = ApiResult.failure("transport: down")
        session.start()
        assert not session.verified

    def test_request_verification_sends_current_url(self, session, api, widget):
        session.start()
        session.request_verification("me@example.org")
        api.send_verification.assert_called_once_with("me@example.org", session.current_url)
        assert "lat=44.9343" in session.current_url


class TestVoteAndDelete:
    def test_vote_blocked_when_unverified(self, session, api, widget):
        session.start()
        assert session.vote("1", VoteDirection.UPVOTE) is None
        api.vote.assert_not_called()
        assert widget.prompts == ["rating points"]

    def test_blocked_vote_logs_level_once(self, session, capsys):
        session.vote("1", VoteDirection.UPVOTE)
        line = capsys.readouterr().out.strip().splitlines()[-1]
        assert " - WARN | upvote blocked | point=1" in line
        assert line.count("WARN") == 1

    def test_vote_sent_when_verified(self, verified_session, api):
        fut = verified_session.vote("1", VoteDirection.DOWNVOTE)
        assert fut.result().ok
        api.vote.assert_called_once_with("1", VoteDirection.DOWNVOTE, "sess-1")

    def test_vote_accepts_string_direction(self, verified_session, api):
        verified_session.vote("1", "upvote")
        api.vote.assert_called_once_with("1", VoteDirection.UPVOTE, "sess-1")

    def test_cannot_vote_on_own_point(self, verified_session, api, make_feature):
        verified_session.add_points([make_feature(1, can_delete=True)])
        assert verified_session.vote("1", VoteDirection.UPVOTE) is None
        api.vote.assert_not_called()

    def test_delete_removes_marker_but_store_remembers(self, session, api, widget, make_feature):
        api.fetch_points.return_value = ApiResult.success(200, [make_feature(1, can_delete=True)])
        session.start()
        assert len(widget.markers) == 1

        fut = session.delete("1")
        assert fut.result().ok
        api.delete_point.assert_called_once_with("1", "sess-1")
        assert widget.markers == {}
        assert "1" not in session.markers
        assert session.verified

        # Re-querying does not bring the point back within this session.
        widget.move_to(LatLng(44.94, -93.26))
        assert widget.markers == {}

    def test_failed_delete_keeps_marker(self, session, api, widget, make_feature):
        api.fetch_points.return_value = ApiResult.success(200, [make_feature(1, can_delete=True)])
        api.delete_point.return_value = ApiResult.failure("status 500", status=500)
        session.start()
        session.delete("1")
        assert len(widget.markers) == 1
        assert not session.verified

    def test_delete_refused_for_others_points(self, session, api, make_feature):
        session.add_points([make_feature(1, can_delete=False)])
        assert session.delete("1") is None
        api.delete_point.assert_not_called()


class TestIndependentSessions:
    def test_sessions_do_not_share_state(self, api, widget, make_feature):
        cfg = normalize_config({"max_in_flight": 0})
        a = MapSession(cfg, widget, api=api)
        b = MapSession(cfg, widget, api=api)
        assert a.session_id != b.session_id
        a.add_points([make_feature(1)])
        assert b.add_points([make_feature(1)])  # b has never seen it


class TestThreadedQueries:
    def test_concurrent_responses_render_each_point_once(self, api, widget, make_feature):
        api.fetch_points.side_effect = lambda bounds, sid: ApiResult.success(
            200, [make_feature(i) for i in range(30)]
        )
        with ThreadPoolExecutor(max_workers=8) as pool:
            session = MapSession(normalize_config({}), widget, api=api, executor=pool)
            futures = [session.refresh_points() for _ in range(20)]
            for f in futures:
                assert f.result().ok
        assert len(widget.markers) == 30
        assert len(session.markers) == 30

    def test_close_stops_own_workers(self, api, widget):
        session = MapSession(normalize_config({"max_in_flight": 2}), widget, api=api)
        assert session.refresh_points().result().ok
        session.close()
        with pytest.raises(RuntimeError):
            session.refresh_points()

    def test_close_leaves_injected_executor_running(self, api, widget):
        with ThreadPoolExecutor(max_workers=2) as pool:
            session = MapSession(normalize_config({}), widget, api=api, executor=pool)
            session.close()
            assert session.refresh_points().result().ok
