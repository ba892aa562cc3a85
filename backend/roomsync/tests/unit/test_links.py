import pytest

from roomsync.session.links import join_link, parse_join_fragment


class TestParseJoinFragment:
    def test_uuid_room_id(self):
        room_id = "3f2b6c1e-8a4d-4e2b-9c7f-0d1e2f3a4b5c"
        assert parse_join_fragment(f"#join:{room_id}") == room_id

    @pytest.mark.parametrize("fragment", [None, "", "#", "#about", "#join:", "#join:XYZ", "#join:abc/def"])
    def test_non_join_fragments(self, fragment):
        assert parse_join_fragment(fragment) is None

    def test_anchored_at_end(self):
        assert parse_join_fragment("#join:abc def") is None


class TestJoinLink:
    def test_builds_fragment_link(self):
        assert join_link("https://example.org", "abc-1") == "https://example.org/#join:abc-1"

    def test_trailing_slash_on_origin(self):
        assert join_link("https://example.org/", "abc-1") == "https://example.org/#join:abc-1"

    def test_link_round_trips_through_parser(self):
        link = join_link("https://example.org", "0a-1b")
        assert parse_join_fragment(link[link.index("#") :]) == "0a-1b"
