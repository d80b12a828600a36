import io
import json
import zipfile

import pytest

from unchive.config import DEFAULT_NAMESPACE_PREFIX
from unchive.ingestion import DescriptorCatalog

PREFIX = DEFAULT_NAMESPACE_PREFIX

TEST_DESCRIPTORS = [
    {
        "type": f"{PREFIX}.Form",
        "name": "Form",
        "properties": [
            {"name": "AppName", "editorType": "string", "defaultValue": ""},
            {"name": "BackgroundColor", "editorType": "color", "defaultValue": "&HFFFFFFFF"},
            {"name": "Title", "editorType": "string", "defaultValue": ""},
        ],
    },
    {
        "type": f"{PREFIX}.Button",
        "name": "Button",
        "properties": [
            {"name": "Enabled", "editorType": "boolean", "defaultValue": "True"},
            {"name": "Text", "editorType": "string", "defaultValue": "Text for Button1"},
        ],
    },
    {
        "type": f"{PREFIX}.HorizontalArrangement",
        "name": "HorizontalArrangement",
        "properties": [{"name": "Width", "editorType": "length", "defaultValue": "-1"}],
    },
]

SCREEN1 = {
    "$Name": "Screen1",
    "$Type": "Form",
    "Uuid": "0",
    "AppName": "Demo",
    "Title": "Screen1",
    "$Components": [
        {
            "$Name": "HorizontalArrangement1",
            "$Type": "HorizontalArrangement",
            "Uuid": "11",
            "$Components": [{"$Name": "Button1", "$Type": "Button", "Uuid": "12", "Text": "Go"}],
        },
        {"$Name": "Button2", "$Type": "Button", "Uuid": "13"},
    ],
}

BLOCKS = (
    '<xml xmlns="http://www.w3.org/1999/xhtml">'
    '<block type="component_event" id="a"><statement name="DO">'
    '<block type="component_set_get" id="b"></block>'
    "</statement></block>"
    '<block type="global_declaration" id="c"></block>'
    "</xml>"
)


class StaticFetcher:
    def __init__(self, text: str):
        self.text = text
        self.calls = 0

    async def fetch(self) -> str:
        self.calls += 1
        return self.text


def frame(root: dict) -> str:
    return "#|\n$JSON\n" + json.dumps({"authURL": ["localhost"], "YaVersion": "208", "Properties": root}) + "\n|#"


@pytest.fixture
def make_archive():
    def _make(files: dict) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            for name, content in files.items():
                zf.writestr(name, content)
        return buffer.getvalue()

    return _make


@pytest.fixture
def scheme_text():
    return frame


@pytest.fixture
def screen1():
    return json.loads(json.dumps(SCREEN1))


@pytest.fixture
def catalog():
    return DescriptorCatalog(StaticFetcher(json.dumps(TEST_DESCRIPTORS)))


@pytest.fixture
def project_archive(make_archive):
    """
    Builds an .aia with one (.scm, .bky) pair per screen plus any extra entries.
    """

    def _make(screens=None, extra=None, blocks=BLOCKS) -> bytes:
        screens = screens if screens is not None else {"Screen1": SCREEN1}
        files = {"youngandroidproject/project.properties": "main=appinventor.ai_dev.Demo.Screen1\n"}
        for name, root in screens.items():
            files[f"src/appinventor/ai_dev/Demo/{name}.scm"] = frame(root)
            files[f"src/appinventor/ai_dev/Demo/{name}.bky"] = blocks
        files["assets/kitty.png"] = b"\x89PNG fake image"
        files.update(extra or {})
        return make_archive(files)

    return _make
