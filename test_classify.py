"""Series / saga grouping, ordering and naming."""
import random

import pytest

from watchoffline.classify import (
    RawMediaItem,
    classify,
    looks_like_part,
    movie_order,
    parse_episode,
    parse_season_episode,
    plan_batch,
    saga_name,
    season_from_folder,
    series_key,
    unique_name,
)
from watchoffline.schemas import Playlist, VideoItem

POSTER = "https://img.test/p.png"


def item(path, title=None, skip=0):
    return RawMediaItem(
        path=path,
        title=title if title is not None else path.rsplit("/", 1)[-1].rsplit(".", 1)[0],
        poster_url=POSTER,
        playable_url=f"http://127.0.0.1:8081/smb/id/share/{path}",
        skip_seconds=skip,
    )


@pytest.mark.parametrize("name,expected", [
    ("Show.S01E02.mkv", (1, 2)),
    ("Show.1x02.mkv", (1, 2)),
    ("Show.S1.2.mkv", (1, 2)),
    ("show s03 e10.mp4", (3, 10)),
    ("Show_s02_e07.avi", (2, 7)),
    ("Movie.2019.1080p.mkv", None),
])
def test_parse_season_episode(name, expected):
    assert parse_season_episode(name) == expected


def test_first_pattern_wins_over_later_ones():
    # both SxxEyy and NxM are present; SxxEyy is tried first
    assert parse_season_episode("Show.S02E05.1x09.mkv") == (2, 5)


@pytest.mark.parametrize("name,expected", [
    ("Episode 7.mkv", 7),
    ("cap_12.mp4", 12),
    ("Foo - 03.mkv", 3),
    ("05.mkv", 5),
    ("Pilot.mkv", None),
])
def test_episode_only_fallback(name, expected):
    assert parse_episode(name) == expected


@pytest.mark.parametrize("folder,expected", [
    ("Season 1", 1),
    ("Temporada 3", 3),
    ("Temp 2", 2),
    ("S04", 4),
    ("7", 7),
    ("Specials", None),
    ("Movies", None),
])
def test_season_folders(folder, expected):
    assert season_from_folder(folder) == expected


def test_series_key_needs_three_segments():
    assert series_key("Shows/Foo/Season 1/Foo.S01E01.mkv") == ("foo", 1)
    assert series_key("Season 1/Foo.S01E01.mkv") is None
    assert series_key("Movies/Foo/Foo.mkv") is None


def test_saga_inference():
    assert saga_name("Movies/Trilogy/Part 2/Movie.mkv") == "Trilogy"
    assert saga_name("Movies/Standalone/Movie.mkv") == "Standalone"
    assert saga_name("Movie.mkv") == "Movies"
    assert saga_name("Vol 2/Movie.mkv") == "Movies"


@pytest.mark.parametrize("folder,expected", [
    ("Part 2", True),
    ("parte 3", True),
    ("II", True),
    ("12", True),
    ("Departed", False),
    ("I Am Legend", False),
    ("Saga", False),
])
def test_part_markers(folder, expected):
    assert looks_like_part(folder) is expected


def test_movie_order_keys():
    assert movie_order("[2] B.mkv") == 2
    assert movie_order("3 - Return.mkv") == 3
    assert movie_order("Story Part 4.mkv") == 4
    assert movie_order("Untitled.mkv") is None


def test_series_scenario_orders_episodes():
    out = classify([
        item("Shows/Foo/Season 1/Foo.S01E02.mkv"),
        item("Shows/Foo/Season 1/Foo.S01E01.mkv"),
    ])
    assert [p.file_name for p in out] == ["foo_s01.json"]
    titles = [v.title for v in out[0].videos]
    assert titles[0].startswith("S01 E01")
    assert titles[1].startswith("S01 E02")
    assert out[0].videos[0].playable_url.endswith("Foo.S01E01.mkv")


def test_saga_scenario_orders_by_bracket_number():
    out = classify([
        item("Movies/Saga/[2] B.mkv", title="B"),
        item("Movies/Saga/[1] A.mkv", title="A"),
    ])
    assert [p.file_name for p in out] == ["saga_saga.json"]
    assert [v.title for v in out[0].videos] == ["A", "B"]


def test_single_movie_named_after_title():
    out = classify([item("Movies/Alone/The Thing.mkv", title="The Thing")])
    assert [p.file_name for p in out] == ["the_thing.json"]


def test_missing_episode_numbers_sort_last():
    out = classify([
        item("Foo/Season 2/Pilot.mkv"),
        item("Foo/Season 2/Foo.S02E03.mkv"),
        item("Foo/Season 2/Foo.S02E01.mkv"),
    ])
    urls = [v.playable_url.rsplit("/", 1)[-1] for v in out[0].videos]
    assert urls == ["Foo.S02E01.mkv", "Foo.S02E03.mkv", "Pilot.mkv"]


def test_series_before_movies_and_sorted_within_kind():
    out = classify([
        item("Movies/Zeta/[1] z1.mkv"),
        item("Movies/Zeta/[2] z2.mkv"),
        item("Movies/Alpha/[1] a1.mkv"),
        item("Movies/Alpha/[2] a2.mkv"),
        item("TV/Bar/Season 2/Bar.S02E01.mkv"),
        item("TV/Bar/Season 1/Bar.S01E01.mkv"),
        item("TV/Abc/Season 1/Abc.S01E01.mkv"),
    ])
    assert [p.file_name for p in out] == [
        "abc_s01.json", "bar_s01.json", "bar_s02.json", "saga_alpha.json", "saga_zeta.json",
    ]


def test_movies_carry_no_skip_but_episodes_do():
    out = classify([
        item("Foo/Season 1/Foo.S01E01.mkv", skip=80),
        item("Films/Solo/Film.mkv", title="Film", skip=80),
    ])
    assert out[0].videos[0].skip_seconds == 80
    assert out[1].videos[0].skip_seconds == 0


def test_duplicate_urls_collapse():
    a = item("Foo/Season 1/Foo.S01E01.mkv")
    out = classify([a, a])
    assert len(out[0].videos) == 1


def test_classification_is_order_independent():
    items = [
        item("Shows/Foo/Season 1/Foo.S01E01.mkv"),
        item("Shows/Foo/Season 1/Foo.S01E02.mkv"),
        item("Movies/Saga/[1] A.mkv"),
        item("Movies/Saga/[2] B.mkv"),
        item("Movies/Other/Other.mkv"),
    ]
    first = classify(items)
    shuffled = items[:]
    random.Random(7).shuffle(shuffled)
    second = classify(shuffled)
    assert [p.model_dump() for p in first] == [p.model_dump() for p in second]


def test_unique_name_suffixes():
    taken = {"X.json"}
    assert unique_name("X.json", taken) == "X_2.json"
    taken.add("X_2.json")
    assert unique_name("X.json", taken) == "X_3.json"
    assert unique_name("Y.json", taken) == "Y.json"


def _pl(name):
    return Playlist(file_name=name, videos=[VideoItem(
        title="t", poster_url=POSTER, background_url=POSTER, playable_url="http://x/" + name,
    )])


def test_plan_batch_drops_existing_and_suffixes_clashes():
    batch = plan_batch([_pl("a.json"), _pl("b.json"), _pl("b.json")], existing=["a.json"])
    assert [p.file_name for p in batch] == ["b.json", "b_2.json"]


def test_plan_batch_second_run_is_empty():
    first = plan_batch([_pl("a.json"), _pl("a.json")], existing=[])
    names = [p.file_name for p in first]
    assert plan_batch([_pl("a.json"), _pl("a.json")], existing=names) == []
