from __future__ import annotations

import io
from dataclasses import replace
from typing import Callable

import fitz  # PyMuPDF
import pytest


def _upload(client, data: bytes, pages_per_sheet: object = None, name: str = "report.pdf",
            mimetype: str = "application/pdf"):
    form = {"file": (io.BytesIO(data), name, mimetype)}
    if pages_per_sheet is not None:
        form["pages_per_sheet"] = str(pages_per_sheet)
    return client.post("/upload", data=form, content_type="multipart/form-data")


def test_index_renders_mode_choices(client) -> None:
    response = client.get("/")

    assert response.status_code == 200
    body = response.get_data(as_text=True)
    for value in ("1", "2", "4"):
        assert f'name="pages_per_sheet" value="{value}"' in body


def test_upload_composes_document(client, pdf_factory: Callable[..., bytes]) -> None:
    response = _upload(client, pdf_factory(3), pages_per_sheet=2)

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["pages"] == 3
    assert payload["pages_per_sheet"] == 2
    assert payload["sheets"] == 2
    assert payload["name"] == "report.pdf"
    assert payload["reference"]


def test_preview_and_download(client, pdf_factory: Callable[..., bytes]) -> None:
    payload = _upload(client, pdf_factory(4), pages_per_sheet=4).get_json()

    preview = client.get(f"/preview/{payload['id']}/{payload['reference']}")
    assert preview.status_code == 200
    assert preview.mimetype == "application/pdf"
    assert "attachment" not in preview.headers.get("Content-Disposition", "")
    with fitz.open(stream=preview.data, filetype="pdf") as doc:
        assert doc.page_count == 1
        assert doc[0].rect == fitz.Rect(0, 0, 400, 600)

    download = client.get(f"/download/{payload['id']}/{payload['reference']}")
    assert download.status_code == 200
    disposition = download.headers["Content-Disposition"]
    assert "attachment" in disposition
    assert "report_4up.pdf" in disposition


def test_single_page_download_keeps_name(client, pdf_factory: Callable[..., bytes]) -> None:
    payload = _upload(client, pdf_factory(1), pages_per_sheet=1).get_json()

    download = client.get(f"/download/{payload['id']}/{payload['reference']}")

    assert "report.pdf" in download.headers["Content-Disposition"]


def test_mode_change_invalidates_old_reference(client, pdf_factory: Callable[..., bytes]) -> None:
    first = _upload(client, pdf_factory(5)).get_json()
    assert first["pages_per_sheet"] == 1
    assert first["sheets"] == 5

    response = client.post(
        f"/sessions/{first['id']}/pages-per-sheet", json={"pages_per_sheet": 2}
    )

    assert response.status_code == 200
    second = response.get_json()
    assert second["sheets"] == 3
    assert second["reference"] != first["reference"]
    assert client.get(f"/preview/{first['id']}/{first['reference']}").status_code == 404
    assert client.get(f"/preview/{second['id']}/{second['reference']}").status_code == 200


@pytest.mark.parametrize("value", [3, 6, "many"])
def test_unsupported_mode_is_rejected(client, pdf_factory: Callable[..., bytes], value: object) -> None:
    payload = _upload(client, pdf_factory(2), pages_per_sheet=2).get_json()

    response = client.post(
        f"/sessions/{payload['id']}/pages-per-sheet", json={"pages_per_sheet": value}
    )

    assert response.status_code == 400
    assert "error" in response.get_json()
    assert client.get(f"/sessions/{payload['id']}").get_json()["pages_per_sheet"] == 2


def test_upload_with_unsupported_mode(client, pdf_factory: Callable[..., bytes]) -> None:
    response = _upload(client, pdf_factory(2), pages_per_sheet=3)

    assert response.status_code == 400


def test_upload_requires_file(client) -> None:
    response = client.post("/upload", data={}, content_type="multipart/form-data")

    assert response.status_code == 400


def test_upload_rejects_non_pdf(client) -> None:
    response = _upload(client, b"hello", name="notes.txt", mimetype="text/plain")

    assert response.status_code == 400


def test_upload_rejects_corrupt_pdf(client) -> None:
    response = _upload(client, b"this is not a pdf")

    assert response.status_code == 422
    assert "error" in response.get_json()


def test_unknown_session(client) -> None:
    assert client.get("/preview/missing/ref").status_code == 404
    assert client.post("/sessions/missing/pages-per-sheet", json={"pages_per_sheet": 2}).status_code == 404
    assert client.delete("/sessions/missing").status_code == 404


def test_delete_session(client, pdf_factory: Callable[..., bytes]) -> None:
    payload = _upload(client, pdf_factory(1)).get_json()

    response = client.delete(f"/sessions/{payload['id']}")

    assert response.status_code == 200
    assert client.get(f"/preview/{payload['id']}/{payload['reference']}").status_code == 404


@pytest.mark.parametrize("body", [[2], 2, "2"])
def test_mode_body_must_be_an_object(client, pdf_factory: Callable[..., bytes], body: object) -> None:
    payload = _upload(client, pdf_factory(2), pages_per_sheet=2).get_json()

    response = client.post(f"/sessions/{payload['id']}/pages-per-sheet", json=body)

    assert response.status_code == 400
    assert response.get_json()["error"] == "Request body must be a JSON object"
    assert client.get(f"/sessions/{payload['id']}").get_json()["pages_per_sheet"] == 2


def test_oldest_session_is_evicted_over_the_limit(client, pdf_factory: Callable[..., bytes]) -> None:
    import app as web_app

    web_app.app.config["NUPSHEET_SETTINGS"] = replace(web_app.SETTINGS, max_sessions=2)
    data = pdf_factory(1)
    first, second, third = (_upload(client, data).get_json() for _ in range(3))

    assert len(web_app.SESSIONS) == 2
    assert client.get(f"/sessions/{first['id']}").status_code == 404
    assert client.get(f"/sessions/{second['id']}").status_code == 200
    assert client.get(f"/sessions/{third['id']}").status_code == 200


def test_recently_used_session_survives_the_limit(client, pdf_factory: Callable[..., bytes]) -> None:
    import app as web_app

    web_app.app.config["NUPSHEET_SETTINGS"] = replace(web_app.SETTINGS, max_sessions=2)
    data = pdf_factory(1)
    first = _upload(client, data).get_json()
    second = _upload(client, data).get_json()
    web_app.LAST_SEEN[first["id"]] = web_app.LAST_SEEN[second["id"]] + 1

    _upload(client, data)

    assert client.get(f"/sessions/{first['id']}").status_code == 200
    assert client.get(f"/sessions/{second['id']}").status_code == 404


def test_idle_session_expires(client, pdf_factory: Callable[..., bytes]) -> None:
    import app as web_app

    web_app.app.config["NUPSHEET_SETTINGS"] = replace(web_app.SETTINGS, session_ttl_seconds=60)
    payload = _upload(client, pdf_factory(1)).get_json()
    session = web_app.SESSIONS[payload["id"]]
    web_app.LAST_SEEN[payload["id"]] -= 61

    response = client.get(f"/preview/{payload['id']}/{payload['reference']}")

    assert response.status_code == 404
    assert payload["id"] not in web_app.LAST_SEEN
    assert session.source is None
