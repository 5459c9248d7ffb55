"""Playlist repository semantics, legacy field names and damaged storage."""
import json
import random

from sqlalchemy import text

from conftest import PLACEHOLDER
from watchoffline.database import create_engine_for, make_sessionmaker
from watchoffline.mixes import create_random, delete_all_random, delete_random, reshuffle_random
from watchoffline.models import PlaylistRecord
from watchoffline.playlists import PlaylistRepository, load_legacy_folder
from watchoffline.schemas import VideoItem, normalize_record


def video(n, poster="https://img.test/p.png", skip=0):
    return VideoItem(title=f"v{n}", skip_seconds=skip, poster_url=poster,
                     background_url=poster, playable_url=f"http://127.0.0.1:8081/v{n}.mkv")


async def test_add_is_non_overwriting(repo):
    assert await repo.add("a.json", [video(1)])
    assert not await repo.add("a.json", [video(2), video(3)])
    stored = await repo.get("a.json")
    assert [v.title for v in stored.videos] == ["v1"]


async def test_upsert_replaces_or_creates(repo):
    await repo.upsert("a.json", [video(1)])
    await repo.upsert("a.json", [video(2)])
    await repo.upsert("b.json", [video(3)])
    listed = await repo.list()
    assert [p.file_name for p in listed] == ["a.json", "b.json"]
    assert listed[0].videos[0].title == "v2"


async def test_remove_exists_and_remove_all(repo):
    await repo.add("a.json", [video(1)])
    await repo.add("b.json", [video(2)])
    assert await repo.exists("a.json")
    assert await repo.remove("a.json")
    assert not await repo.remove("a.json")
    assert not await repo.exists("a.json")
    await repo.remove_all()
    assert await repo.list() == []


async def test_videos_round_trip_in_current_field_names(repo, sessionmaker):
    await repo.add("a.json", [video(1, skip=42)])
    async with sessionmaker() as db:
        row = (await db.execute(text("SELECT videos FROM playlists"))).scalar_one()
    stored = json.loads(row) if isinstance(row, str) else row
    assert stored[0]["skip"] == 42
    assert stored[0]["videoUrl"].endswith("v1.mkv")


def test_legacy_aliases_map_to_fields():
    raw = {"title": "Old", "skipToSecond": 30, "delaySeconds": 5, "imgSml": "https://p",
           "imgBig": "https://b", "videoSrc": "http://x/old.mkv"}
    item = VideoItem.from_record(raw, PLACEHOLDER)
    assert item.skip_seconds == 30
    assert item.delay_seconds == 5
    assert item.poster_url == "https://p"
    assert item.background_url == "https://b"
    assert item.playable_url == "http://x/old.mkv"


def test_current_name_wins_over_alias():
    assert normalize_record({"skip": 10, "skipToSecond": 99})["skip_seconds"] == 10


def test_blank_posters_fall_back_to_placeholder():
    item = VideoItem.from_record({"videoUrl": "http://x/a.mkv", "cardImageUrl": "  "}, PLACEHOLDER)
    assert item.poster_url == PLACEHOLDER
    assert item.background_url == PLACEHOLDER


async def test_corrupt_rows_are_skipped(repo, sessionmaker):
    await repo.add("good.json", [video(1)])
    async with sessionmaker() as db:
        db.add(PlaylistRecord(file_name="bad.json", videos={"not": "a list"}))
        db.add(PlaylistRecord(file_name="partial.json", videos=[
            {"title": "no url"},
            video(2).to_record(),
            7,
            {"title": "odd poster", "videoUrl": "http://x/a.mkv", "cardImageUrl": 5, "imgBig": ["x"]},
        ]))
        await db.commit()
        await db.execute(text("INSERT INTO playlists (file_name, videos) VALUES ('garbled.json', '{not json')"))
        await db.commit()

    listed = {p.file_name: p for p in await repo.list()}
    assert set(listed) == {"good.json", "partial.json"}
    partial = listed["partial.json"].videos
    assert [v.title for v in partial] == ["v2", "odd poster"]
    assert partial[1].poster_url == PLACEHOLDER
    assert partial[1].background_url == PLACEHOLDER
    assert await repo.get("garbled.json") is None
    assert await repo.names() == ["good.json", "bad.json", "partial.json", "garbled.json"]


async def test_missing_store_lists_empty(tmp_path):
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    try:
        repo = PlaylistRepository(make_sessionmaker(engine), PLACEHOLDER)
        assert await repo.list() == []
        assert await repo.names() == []
    finally:
        await engine.dispose()


async def test_load_legacy_folder(repo, tmp_path):
    (tmp_path / "old.json").write_text(json.dumps({
        "fileName": "old_s01.json",
        "videos": [{"title": "E1", "videoSrc": "http://x/1.mkv", "imgSml": "https://p"}],
    }), encoding="utf-8")
    (tmp_path / "broken.json").write_text("{nope", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("ignore me", encoding="utf-8")

    assert await load_legacy_folder(repo, str(tmp_path)) == 1
    assert await load_legacy_folder(repo, str(tmp_path)) == 0
    stored = await repo.get("old_s01.json")
    assert stored.videos[0].playable_url == "http://x/1.mkv"


# ---- shuffled playlists ----

async def _seed(repo):
    await repo.add("foo_s01.json", [video(1, skip=30), video(2, skip=30)])
    await repo.add("saga_matrix.json", [video(3, poster="https://img.test/m.png")])


async def test_random_from_everything(repo):
    await _seed(repo)
    name = await create_random(repo, rng=random.Random(1))
    assert name == "RANDOM ALL 2"
    mix = await repo.get(name)
    assert sorted(v.title for v in mix.videos) == ["v1", "v2", "v3"]
    assert all(v.skip_seconds == 0 for v in mix.videos)
    assert len({v.poster_url for v in mix.videos}) == 1


async def test_random_names_are_unique_and_skip_other_mixes(repo):
    await _seed(repo)
    first = await create_random(repo, ["foo_s01.json"], no_skip=False)
    second = await create_random(repo, ["foo_s01.json"], no_skip=False)
    assert first == "RANDOM FOO"
    assert second == "RANDOM FOO (2)"
    mix = await repo.get(second)
    assert len(mix.videos) == 2
    assert all(v.skip_seconds == 30 for v in mix.videos)


async def test_reshuffle_and_delete(repo):
    await _seed(repo)
    name = await create_random(repo)
    assert await reshuffle_random(repo, name, random.Random(3))
    assert len((await repo.get(name)).videos) == 3
    assert not await delete_random(repo, "foo_s01.json")
    await create_random(repo, ["saga_matrix.json"])
    assert await delete_all_random(repo) == 2
    assert [p.file_name for p in await repo.list()] == ["foo_s01.json", "saga_matrix.json"]


async def test_nothing_to_mix(repo):
    assert await create_random(repo) is None
