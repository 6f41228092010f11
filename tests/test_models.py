from datetime import datetime, timezone

from livegrid.epg.models import (
    Channel,
    Program,
    RecordingTimer,
    find_timer,
    format_server_datetime,
    parse_server_datetime,
)

from fakes import at, make_program


def test_parse_server_datetime_handles_seven_digit_fractions() -> None:
    dt = parse_server_datetime("2024-01-15T18:00:00.1234567Z")

    assert dt == datetime(2024, 1, 15, 18, 0, 0, 123456, tzinfo=timezone.utc)


def test_parse_server_datetime_naive_is_utc_and_garbage_is_none() -> None:
    assert parse_server_datetime("2024-01-15T18:00:00") == at(18)
    assert parse_server_datetime("not a date") is None
    assert parse_server_datetime(None) is None


def test_format_server_datetime_is_utc_z() -> None:
    assert format_server_datetime(at(18)) == "2024-01-15T18:00:00Z"


def test_channel_from_api() -> None:
    ch = Channel.from_api(
        {
            "Id": "abc",
            "Name": "News",
            "ChannelNumber": "4.1",
            "ImageTags": {"Primary": "tag"},
            "UserData": {"IsFavorite": True},
        }
    )

    assert ch == Channel(id="abc", name="News", number="4.1", logo_tag="tag", favorite=True)
    assert Channel.from_api({"Name": "no id"}) is None


def test_program_from_api() -> None:
    p = Program.from_api(
        {
            "Id": "p1",
            "ChannelId": "abc",
            "StartDate": "2024-01-15T18:00:00.0000000Z",
            "EndDate": "2024-01-15T19:00:00.0000000Z",
            "Name": "Evening News",
            "EpisodeTitle": "Monday",
            "Genres": ["News"],
            "ProductionYear": "2024",
            "ParentIndexNumber": 3,
            "IndexNumber": 7,
        }
    )

    assert p is not None
    assert p.start == at(18)
    assert p.end == at(19)
    assert p.genres == ["News"]
    assert p.production_year == 2024
    assert (p.season_number, p.episode_number) == (3, 7)
    assert Program.from_api({"Id": "p2", "ChannelId": "abc"}) is None


def test_is_airing_excludes_end_instant() -> None:
    p = make_program("p1", "ch1", at(17), 60)

    assert p.is_airing(at(17))
    assert p.is_airing(at(17, 59))
    assert not p.is_airing(at(18))


def test_find_timer_prefers_program_id_then_channel_and_start() -> None:
    program = make_program("p1", "ch1", at(18))
    by_slot = RecordingTimer(id="t1", channel_id="ch1", start=at(18))
    by_id = RecordingTimer(id="t2", channel_id="other", start=None, program_id="p1")
    unrelated = RecordingTimer(id="t3", channel_id="ch1", start=at(19))

    assert find_timer([by_slot, by_id], program) is by_id
    assert find_timer([unrelated, by_slot], program) is by_slot
    assert find_timer([unrelated], program) is None


def test_cancelled_timers_do_not_count() -> None:
    program = make_program("p1", "ch1", at(18))
    cancelled = RecordingTimer(id="t1", channel_id="ch1", start=at(18), program_id="p1", status="Cancelled")
    live = RecordingTimer(id="t2", channel_id="ch1", start=at(18), status="InProgress")

    assert not cancelled.is_scheduled
    assert live.is_scheduled
    assert find_timer([cancelled], program) is None
    assert find_timer([cancelled, live], program) is live
