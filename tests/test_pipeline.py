import asyncio
import gc
import json

import pytest

from unchive.config import IngestionConfig
from unchive.ingestion import (
    ComponentOrigin,
    DescriptorCatalog,
    FormatError,
    IngestionIOError,
    ProjectIngestor,
    ValidationError,
    project_to_dict,
    summarize,
)
from unchive.ingestion.catalog import BundledDescriptorFetcher
from unchive.ingestion.pipeline import derive_project_name


@pytest.fixture
def ingestor(catalog):
    with ProjectIngestor(catalog=catalog, config=IngestionConfig(resolver_workers=2)) as ingestor:
        yield ingestor


def screen_root(name: str) -> dict:
    return {
        "$Name": name,
        "$Type": "Form",
        "Uuid": "0",
        "$Components": [{"$Name": "Button1", "$Type": "Button", "Uuid": "1"}],
    }


@pytest.mark.asyncio
async def test_ingest_project(ingestor, project_archive):
    data = project_archive(
        extra={
            "assets/sub/ignored.png": b"nested",
            "assets/external_comps/com.ex.Speaker/files/component_build_infos.json": json.dumps(
                [{"type": "com.ex.Speaker"}]
            ),
            "assets/external_comps/com.ex.Speaker/components.json": json.dumps(
                [{"type": "com.ex.Speaker", "name": "Speaker", "properties": []}]
            ),
        }
    )
    project = await ingestor.ingest(data, name="Demo")

    assert project.name == "Demo"
    assert [s.name for s in project.screens] == ["Screen1"]
    assert [e.type for e in project.extensions] == ["com.ex.Speaker"]
    assert [(a.name, a.type, a.size) for a in project.assets] == [("kitty.png", "png", len(b"\x89PNG fake image"))]
    assert len(list(project.get_screen("Screen1").form.walk())) == 4
    assert project.diagnostics == []


@pytest.mark.asyncio
async def test_screen_count_matches_pairs_and_keeps_order(ingestor, project_archive):
    roots = {name: screen_root(name) for name in ("Screen1", "Settings", "About")}
    project = await ingestor.ingest(project_archive(screens=roots))
    assert [s.name for s in project.screens] == ["Screen1", "Settings", "About"]
    assert project.name == "Project"


@pytest.mark.asyncio
async def test_missing_block_file_is_rejected(ingestor, make_archive, scheme_text):
    data = make_archive({"src/appinventor/ai_dev/Demo/Screen1.scm": scheme_text(screen_root("Screen1"))})
    with pytest.raises(ValidationError):
        await ingestor.ingest(data)


@pytest.mark.asyncio
async def test_broken_archive_is_rejected(ingestor):
    with pytest.raises(IngestionIOError):
        await ingestor.ingest(b"PK but not really")


@pytest.mark.asyncio
async def test_unknown_component_is_degraded_not_fatal(ingestor, project_archive):
    root = screen_root("Screen1")
    root["$Components"].append({"$Name": "Ghost1", "$Type": "GhostComponent", "Uuid": "2"})
    project = await ingestor.ingest(project_archive(screens={"Screen1": root}))

    ghost = project.screens[0].form.children[-1]
    assert ghost.faulty and ghost.properties == []
    assert ghost.origin == ComponentOrigin.BUILT_IN
    assert [d.source for d in project.diagnostics] == ["Ghost1"]


@pytest.mark.asyncio
async def test_ingest_from_path_names_project_after_file(ingestor, project_archive, tmp_path):
    path = tmp_path / "HelloPurr.aia"
    path.write_bytes(project_archive())
    project = await ingestor.ingest(path)
    assert project.name == "HelloPurr"

    payload = project_to_dict(project)
    assert payload["screens"][0]["form"]["children"][0]["name"] == "HorizontalArrangement1"
    assert payload["assets"] == [{"name": "kitty.png", "type": "png", "size": len(b"\x89PNG fake image")}]


def test_derive_project_name():
    assert derive_project_name("https://example.test/files/Demo.aia?x=1") == "Demo"
    assert derive_project_name(b"data") == "Project"
    assert derive_project_name("C:\\Users\\me\\Game.aia") == "Game"


@pytest.mark.asyncio
async def test_asset_url_lifecycle(ingestor, project_archive):
    project = await ingestor.ingest(project_archive())
    asset = project.assets[0]
    assert asset.url == ""
    url = asset.get_url()
    assert url.startswith("file://") and asset.get_url() == url
    project.release_assets()
    assert asset.url == ""


@pytest.mark.asyncio
async def test_summary_counts(ingestor, project_archive):
    project = await ingestor.ingest(project_archive())
    summary = summarize(project)

    assert summary.screen_count == 1
    assert summary.block_count == 3
    assert summary.blocks_by_kind["events"] == 1
    assert summary.blocks_by_kind["properties"] == 1
    assert summary.blocks_by_kind["variables"] == 1
    assert summary.most_used_components[0] == ("Button", 2)
    assert summary.components_by_origin == {"BUILT_IN": 4, "EXTENSION": 0}
    assert summary.assets_by_type == {"png": 1}
    assert summary.malformed_screens == []


@pytest.mark.asyncio
async def test_summary_flags_malformed_blocks(ingestor, project_archive):
    project = await ingestor.ingest(project_archive(blocks="<xml><block"))
    summary = summarize(project)
    assert summary.malformed_screens == ["Screen1"]
    assert summary.block_count == 0


@pytest.mark.asyncio
async def test_failed_screen_cancels_sibling_builds(ingestor, make_archive, scheme_text, project_archive):
    base = "src/appinventor/ai_dev/Demo"
    files = {}
    for index in range(1, 6):
        name = f"Screen{index}"
        files[f"{base}/{name}.scm"] = scheme_text(screen_root(name))
        files[f"{base}/{name}.bky"] = ""
    files[f"{base}/Broken.scm"] = "#|\n$JSON\n{not json}\n|#"
    files[f"{base}/Broken.bky"] = ""

    loop = asyncio.get_running_loop()
    unhandled = []
    loop.set_exception_handler(lambda _loop, context: unhandled.append(context))
    try:
        with pytest.raises(FormatError):
            await ingestor.ingest(make_archive(files))
        await asyncio.sleep(0.05)
        gc.collect()
    finally:
        loop.set_exception_handler(None)
    assert unhandled == []

    project = await ingestor.ingest(project_archive())
    assert [s.name for s in project.screens] == ["Screen1"]


BUILT_IN_SPREAD = {
    "$Name": "Screen1",
    "$Type": "Form",
    "Uuid": "0",
    "$Components": [
        {
            "$Name": "VerticalScrollArrangement1",
            "$Type": "VerticalScrollArrangement",
            "Uuid": "1",
            "$Components": [
                {"$Name": "Slider1", "$Type": "Slider", "Uuid": "2", "MaxValue": "100"},
                {"$Name": "Spinner1", "$Type": "Spinner", "Uuid": "3"},
                {"$Name": "Switch1", "$Type": "Switch", "Uuid": "4", "On": "True"},
                {"$Name": "PasswordTextBox1", "$Type": "PasswordTextBox", "Uuid": "5"},
                {"$Name": "ListPicker1", "$Type": "ListPicker", "Uuid": "6"},
                {"$Name": "DatePicker1", "$Type": "DatePicker", "Uuid": "7"},
            ],
        },
        {
            "$Name": "Canvas1",
            "$Type": "Canvas",
            "Uuid": "8",
            "$Components": [
                {"$Name": "Ball1", "$Type": "Ball", "Uuid": "9"},
                {"$Name": "ImageSprite1", "$Type": "ImageSprite", "Uuid": "10"},
            ],
        },
        {
            "$Name": "Map1",
            "$Type": "Map",
            "Uuid": "11",
            "$Components": [{"$Name": "Marker1", "$Type": "Marker", "Uuid": "12"}],
        },
        {"$Name": "TableArrangement1", "$Type": "TableArrangement", "Uuid": "13"},
        {"$Name": "WebViewer1", "$Type": "WebViewer", "Uuid": "14"},
        {"$Name": "Player1", "$Type": "Player", "Uuid": "15"},
        {"$Name": "Sound1", "$Type": "Sound", "Uuid": "16"},
        {"$Name": "TextToSpeech1", "$Type": "TextToSpeech", "Uuid": "17"},
        {"$Name": "LocationSensor1", "$Type": "LocationSensor", "Uuid": "18"},
        {"$Name": "AccelerometerSensor1", "$Type": "AccelerometerSensor", "Uuid": "19"},
        {"$Name": "TinyWebDB1", "$Type": "TinyWebDB", "Uuid": "20"},
        {"$Name": "File1", "$Type": "File", "Uuid": "21"},
        {"$Name": "BluetoothClient1", "$Type": "BluetoothClient", "Uuid": "22"},
        {"$Name": "ActivityStarter1", "$Type": "ActivityStarter", "Uuid": "23"},
        {"$Name": "Texting1", "$Type": "Texting", "Uuid": "24"},
        {"$Name": "Chart1", "$Type": "Chart", "Uuid": "25"},
        {"$Name": "FirebaseDB1", "$Type": "FirebaseDB", "Uuid": "26"},
        {"$Name": "NxtDrive1", "$Type": "NxtDrive", "Uuid": "27"},
    ],
}


@pytest.mark.asyncio
async def test_bundled_catalog_resolves_common_built_ins(project_archive):
    catalog = DescriptorCatalog(BundledDescriptorFetcher())
    with ProjectIngestor(catalog=catalog, config=IngestionConfig(resolver_workers=2)) as ingestor:
        project = await ingestor.ingest(project_archive(screens={"Screen1": BUILT_IN_SPREAD}))

    nodes = list(project.screens[0].form.walk())
    assert len(nodes) == 28
    assert [n.name for n in nodes if n.faulty] == []
    assert project.diagnostics == []
    assert all(n.properties for n in nodes)

    slider = next(n for n in nodes if n.type == "Slider")
    values = {p.name: p for p in slider.properties}
    assert values["MaxValue"].value == "100"
    assert (values["ThumbPosition"].value, values["ThumbPosition"].editor_type) == ("30.0", "float")
    date_picker = next(n for n in nodes if n.type == "DatePicker")
    assert {p.name: p.value for p in date_picker.properties}["Text"] == "Text for DatePicker1"
