# tests/test_transfer.py

from __future__ import annotations

import base64
import json
import re

import pytest

from ai_canvas.images.store import ImageStore
from ai_canvas.images.transfer import (
    ImportFormatError,
    default_export_name,
    export_to_file,
    import_from_file,
    import_images,
)

from .fakes import make_image, png_bytes


def test_default_export_name_has_ms_timestamp() -> None:
    assert re.fullmatch(r"ai-canvas-export-\d{13}\.json", default_export_name())


def test_export_then_import_into_fresh_store(tmp_path) -> None:
    src = ImageStore(tmp_path / "src.sqlite3")
    a = src.add_image(make_image("first", tags=["one"]))
    src.add_image(make_image("second", checkpoint_model="ckpt"))
    src.toggle_favorite(a)

    out = tmp_path / "out" / "export.json"
    assert export_to_file(src, out) == 2

    payload = json.loads(out.read_text("utf-8"))
    assert [p["prompt"] for p in payload] == ["first", "second"]
    assert payload[0]["isFavorite"] == 1
    assert payload[0]["dataUrl"].startswith("data:image/png;base64,")
    assert payload[1]["checkpointModel"] == "ckpt"

    dst = ImageStore(tmp_path / "dst.sqlite3")
    ids = import_from_file(dst, out)
    assert len(ids) == 2

    imported = {i.prompt: i for i in dst.list_images()}
    assert imported["first"].is_favorite is True
    assert imported["first"].tags == ["one"]
    assert imported["second"].checkpoint_model == "ckpt"
    assert imported["first"].data == src.get_image(a).data


def test_import_appends_to_existing_history(tmp_path) -> None:
    store = ImageStore(tmp_path / "images.sqlite3")
    store.add_image(make_image("already here"))
    entry = {
        "name": "fox...",
        "prompt": "fox",
        "model": "Gemini Flash",
        "createdAt": 1700000000000,
        "dataUrl": "data:image/png;base64," + base64.b64encode(png_bytes(10, 20)).decode(),
    }
    import_images(store, [entry])

    assert store.count_images() == 2
    fox = store.list_images(search="fox")[0]
    # Resolution is read from the bytes when the entry does not carry one.
    assert str(fox.resolution) == "10x20"
    assert fox.created_at.year == 2023


_PNG_URL = "data:image/png;base64," + base64.b64encode(png_bytes(4, 4)).decode()


@pytest.mark.parametrize(
    "payload",
    [
        {"not": "a list"},
        [{"prompt": "x", "dataUrl": "not a data url"}],
        [{"prompt": "", "dataUrl": "data:image/png;base64,AAAA"}],
        ["just a string"],
        [{"prompt": "x", "resolution": {"width": "wide", "height": 10}, "dataUrl": _PNG_URL}],
        [{"prompt": "x", "createdAt": 1e300, "dataUrl": _PNG_URL}],
    ],
)
def test_import_rejects_invalid_payloads(tmp_path, payload) -> None:
    store = ImageStore(tmp_path / "images.sqlite3")
    with pytest.raises(ImportFormatError):
        import_images(store, payload)
    assert store.count_images() == 0


def test_import_from_file_rejects_non_json(tmp_path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{ nope", "utf-8")
    with pytest.raises(ImportFormatError):
        import_from_file(ImageStore(tmp_path / "images.sqlite3"), path)


def test_import_from_file_rejects_non_utf8(tmp_path) -> None:
    path = tmp_path / "binary.json"
    path.write_bytes(b"\xff\xfe\x00garbage")
    with pytest.raises(ImportFormatError):
        import_from_file(ImageStore(tmp_path / "images.sqlite3"), path)
