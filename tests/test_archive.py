import httpx
import pytest

from unchive.ingestion import ArchiveIngestor, IngestionIOError
from unchive.ingestion.archive import ArchiveEntry


@pytest.mark.asyncio
async def test_open_bytes_and_classify(make_archive):
    data = make_archive(
        {
            "youngandroidproject/project.properties": "main=Screen1",
            "src/appinventor/ai_dev/App/Screen1.scm": "#|\n$JSON\n{}\n|#",
            "src/appinventor/ai_dev/App/Screen1.bky": "<xml></xml>",
            "assets/a.png": b"a",
            "assets/sub/b.png": b"b",
            "assets/external_comps/com.ex.Pack/components.json": "[]",
        }
    )
    ingestor = ArchiveIngestor()
    with await ingestor.open(data) as handle:
        classified = ingestor.classify(handle.entries)
        assert [e.filename for e in classified.schemes] == ["src/appinventor/ai_dev/App/Screen1.scm"]
        assert [e.filename for e in classified.blocks] == ["src/appinventor/ai_dev/App/Screen1.bky"]
        assert [e.basename for e in classified.assets] == ["a.png"]
        assert [e.filename for e in classified.extension_json] == [
            "assets/external_comps/com.ex.Pack/components.json"
        ]
        assert await handle.read_bytes(classified.assets[0]) == b"a"


@pytest.mark.asyncio
async def test_open_from_path(tmp_path, make_archive):
    path = tmp_path / "Demo.aia"
    path.write_bytes(make_archive({"assets/a.png": b"a"}))
    with await ArchiveIngestor().open(path) as handle:
        assert handle.source_name == str(path)
        assert [e.filename for e in handle.entries] == ["assets/a.png"]


@pytest.mark.asyncio
async def test_open_missing_path_raises(tmp_path):
    with pytest.raises(IngestionIOError):
        await ArchiveIngestor().open(tmp_path / "missing.aia")


@pytest.mark.asyncio
async def test_open_invalid_and_empty_archives(make_archive):
    ingestor = ArchiveIngestor()
    with pytest.raises(IngestionIOError):
        await ingestor.open(b"definitely not a zip file")
    with pytest.raises(IngestionIOError):
        await ingestor.open(make_archive({}))


@pytest.mark.asyncio
async def test_open_url_uses_http_client(make_archive):
    data = make_archive({"assets/a.png": b"a"})

    def handler(request):
        if request.url.path == "/Demo.aia":
            return httpx.Response(200, content=data)
        return httpx.Response(404)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        ingestor = ArchiveIngestor(client=client)
        with await ingestor.open("https://example.test/Demo.aia") as handle:
            assert len(handle.entries) == 1
        with pytest.raises(IngestionIOError):
            await ingestor.open("https://example.test/missing.aia")


def test_entry_name_helpers():
    entry = ArchiveEntry("assets/external_comps/com.ex.Pack/files/component_build_infos.json")
    assert entry.basename == "component_build_infos.json"
    assert entry.stem == "component_build_infos"
    assert entry.file_type == "json"
    assert ArchiveEntry("assets/LICENSE").file_type == ""
