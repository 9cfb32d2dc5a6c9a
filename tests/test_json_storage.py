import asyncio

from harvester.storage.factory import build_storage
from harvester.storage.json_file import JsonFileStorage
from harvester.config import Settings


def _run(coro):
    return asyncio.run(coro)


def test_save_get_delete(tmp_path):
    storage = JsonFileStorage(str(tmp_path))

    async def scenario():
        await storage.initialize()
        await storage.save("job:1", {"status": "pending"})
        assert await storage.get("job:1") == {"status": "pending"}
        assert await storage.exists("job:1")

        await storage.delete("job:1")
        assert await storage.get("job:1") is None
        assert not await storage.exists("job:1")
        # deleting twice is fine
        await storage.delete("job:1")

    _run(scenario())
    assert (tmp_path / "job").is_dir()


def test_keys_with_free_text_segments_round_trip(tmp_path):
    storage = JsonFileStorage(str(tmp_path))
    keys = [
        "cache:campaign:ABC123:Casa e Cozinha:Utilidades/Organização",
        "cache:campaign:ABC123:..",
        "cache:campaign:ABC123:Casa:",
        "job:42",
    ]

    async def scenario():
        for index, key in enumerate(keys):
            await storage.save(key, {"index": index})
        listed = await storage.list_keys("cache:")
        values = [await storage.get(key) for key in keys]
        return listed, values

    listed, values = _run(scenario())

    assert sorted(listed) == sorted(keys[:3])
    assert values == [{"index": i} for i in range(len(keys))]
    assert (tmp_path / "cache" / "campaign" / "ABC123" / "%2E%2E.json").is_file()


def test_clear_by_prefix(tmp_path):
    storage = JsonFileStorage(str(tmp_path))

    async def scenario():
        await storage.save("cache:a", 1)
        await storage.save("cache:b", 2)
        await storage.save("job:1", 3)
        await storage.clear("cache:")
        return await storage.list_keys()

    assert _run(scenario()) == ["job:1"]


def test_build_storage_selects_backend(tmp_path):
    assert isinstance(build_storage(Settings(STORAGE_BACKEND="json", STORAGE_PATH=str(tmp_path))), JsonFileStorage)
    assert build_storage(Settings(STORAGE_BACKEND="none")) is None
