import os
from fastapi import status


def test_list_files_empty(test_client):
    response = test_client.get("/api/files")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"files": []}


def test_list_files_after_merge_and_finish(test_client, start_upload, send_chunk):
    """Both the merge and live paths publish exactly one entry each."""
    session_id = start_upload("upload.bin", total_chunks=1)
    merged = send_chunk(session_id, 0, b"12345").json()["output"]

    files = test_client.get("/api/files").json()["files"]
    assert [(f["name"], f["sizeBytes"]) for f in files] == [(merged, 5)]

    stream_id = test_client.post("/api/streams/init", json={"filename": "live.webm"}).json()["streamId"]
    test_client.post(f"/api/streams/{stream_id}/chunk", files={"chunk": ("p", b"abc")})
    finished = test_client.post(f"/api/streams/{stream_id}/finish").json()["output"]

    files = test_client.get("/api/files").json()["files"]
    assert len(files) == 2
    assert {f["name"]: f["sizeBytes"] for f in files} == {merged: 5, finished: 3}


def test_list_files_sorted_most_recent_first(test_client, test_settings):
    for age, name in ((300, "100-old.bin"), (100, "200-new.bin"), (200, "150-middle.bin")):
        path = test_settings.FINAL_DIR / name
        path.write_bytes(b"x" * age)
        mtime = 1_700_000_000 - age
        os.utime(path, (mtime, mtime))

    files = test_client.get("/api/files").json()["files"]

    assert [f["name"] for f in files] == ["200-new.bin", "150-middle.bin", "100-old.bin"]
    assert files[0]["modifiedAt"].startswith("2023-11-14T22:11:")


def test_download_file(test_client, start_upload, send_chunk):
    session_id = start_upload("doc.txt", total_chunks=2)
    send_chunk(session_id, 0, b"Hello, ")
    name = send_chunk(session_id, 1, b"world").json()["output"]

    response = test_client.get(f"/api/files/{name}")

    assert response.status_code == status.HTTP_200_OK
    assert response.content == b"Hello, world"
    assert response.headers["Accept-Ranges"] == "bytes"


def test_partial_download(test_client, test_settings):
    """Test downloading a partial file using Range header."""
    original_content = b"ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    (test_settings.FINAL_DIR / "1-partial_test.txt").write_bytes(original_content)

    headers = {"Range": "bytes=5-15"}
    response = test_client.get("/api/files/1-partial_test.txt", headers=headers)

    assert response.status_code == status.HTTP_206_PARTIAL_CONTENT
    assert response.content == original_content[5:16]  # End is inclusive
    assert response.headers["Content-Range"] == f"bytes 5-15/{len(original_content)}"


def test_suffix_range_download(test_client, test_settings):
    (test_settings.FINAL_DIR / "1-tail.txt").write_bytes(b"0123456789")

    response = test_client.get("/api/files/1-tail.txt", headers={"Range": "bytes=-3"})

    assert response.status_code == status.HTTP_206_PARTIAL_CONTENT
    assert response.content == b"789"


def test_unsatisfiable_range(test_client, test_settings):
    (test_settings.FINAL_DIR / "1-short.txt").write_bytes(b"abc")

    response = test_client.get("/api/files/1-short.txt", headers={"Range": "bytes=10-20"})
    assert response.status_code == status.HTTP_416_RANGE_NOT_SATISFIABLE

    response = test_client.get("/api/files/1-short.txt", headers={"Range": "items=0-1"})
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_download_missing_file(test_client):
    response = test_client.get("/api/files/nope.bin")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["error"]["kind"] == "NotFound"
