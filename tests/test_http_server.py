import time
import dataclasses

import pytest
from fastapi.testclient import TestClient

from vodserver.service import create_app

from conftest import CLIP_BYTES, COPY_SCRIPT, FAIL_SCRIPT, HANG_SCRIPT, ScriptedRunner


def poll_status(client, job_id, states, timeout=10.0):
    deadline = time.monotonic() + timeout
    while True:
        status = client.get(f"/transcode/status/{job_id}").json()
        if status["state"] in states:
            return status
        if time.monotonic() > deadline:
            raise AssertionError(f"job {job_id} stuck in {status['state']}")
        time.sleep(0.05)


@pytest.fixture
def client(config):
    with TestClient(create_app(config, runner=ScriptedRunner(COPY_SCRIPT))) as c:
        yield c


class TestStreaming:

    def test_seek_then_resume(self, client):
        response = client.get("/stream/clip.mp4", headers={"Range": "bytes=0-999"})
        assert response.status_code == 206
        assert response.headers["content-range"] == "bytes 0-999/10000"
        assert response.headers["accept-ranges"] == "bytes"
        assert response.headers["content-length"] == "1000"
        assert response.headers["content-type"] == "video/mp4"
        assert response.content == CLIP_BYTES[:1000]

        response = client.post("/save-playback", json={"video": "clip.mp4", "position": 42.5})
        assert response.status_code == 200
        assert response.json() == {"message": "Playback position saved"}

        response = client.get("/get-playback/clip.mp4")
        assert response.json() == {"position": 42.5}

    def test_full_content(self, client):
        response = client.get("/stream/clip.mp4")
        assert response.status_code == 200
        assert response.headers["content-length"] == "10000"
        assert response.headers["accept-ranges"] == "bytes"
        assert "content-range" not in response.headers
        assert response.content == CLIP_BYTES

    @pytest.mark.parametrize("start,end", [(0, 0), (1, 1024), (1023, 1025), (5000, 9999), (9999, 9999)])
    def test_partial_spans(self, client, start, end):
        response = client.get("/stream/clip.mp4", headers={"Range": f"bytes={start}-{end}"})
        assert response.status_code == 206
        assert response.headers["content-range"] == f"bytes {start}-{end}/10000"
        assert int(response.headers["content-length"]) == end - start + 1
        assert response.content == CLIP_BYTES[start:end + 1]

    def test_open_ended_and_suffix(self, client):
        response = client.get("/stream/clip.mp4", headers={"Range": "bytes=9000-"})
        assert response.headers["content-range"] == "bytes 9000-9999/10000"
        assert response.content == CLIP_BYTES[9000:]

        response = client.get("/stream/clip.mp4", headers={"Range": "bytes=-100"})
        assert response.headers["content-range"] == "bytes 9900-9999/10000"
        assert response.content == CLIP_BYTES[-100:]

    def test_end_past_eof_is_clamped(self, client):
        response = client.get("/stream/clip.mp4", headers={"Range": "bytes=9990-20000"})
        assert response.status_code == 206
        assert response.headers["content-range"] == "bytes 9990-9999/10000"
        assert response.content == CLIP_BYTES[9990:]

    @pytest.mark.parametrize("header", ["bytes=10000-", "bytes=20000-30000", "bytes=500-400", "bytes=junk"])
    def test_unsatisfiable(self, client, header):
        response = client.get("/stream/clip.mp4", headers={"Range": header})
        assert response.status_code == 416
        assert response.headers["content-range"] == "bytes */10000"
        assert response.content == b""

    def test_empty_file(self, client, video_dir):
        (video_dir / "empty.mp4").write_bytes(b"")

        response = client.get("/stream/empty.mp4")
        assert response.status_code == 200
        assert response.content == b""

        response = client.get("/stream/empty.mp4", headers={"Range": "bytes=0-"})
        assert response.status_code == 416
        assert response.headers["content-range"] == "bytes */0"

    @pytest.mark.parametrize("name", ["missing.mp4", "notes.txt", "nested"])
    def test_not_found(self, client, name):
        response = client.get(f"/stream/{name}")
        assert response.status_code == 404
        assert response.json() == {"error": "Video not found"}

    def test_mime_type_follows_extension(self, client):
        response = client.get("/stream/show.mkv", headers={"Range": "bytes=0-9"})
        assert response.headers["content-type"] == "video/x-matroska"


class TestCatalogRoutes:

    def test_list_videos(self, client):
        response = client.get("/videos")
        assert response.status_code == 200
        assert response.json() == [
            {"original": "clip.mp4", "transcoded": "clip.mp4.mp4", "isTranscoded": False, "transcodeStatus": "none"},
            {"original": "movie.MP4", "transcoded": "movie.MP4.mp4", "isTranscoded": False, "transcodeStatus": "none"},
            {"original": "show.mkv", "transcoded": "show.mkv.mp4", "isTranscoded": False, "transcodeStatus": "none"},
        ]

    def test_metadata(self, client):
        response = client.get("/metadata/clip.mp4")
        assert response.status_code == 200
        assert response.json() == {"subtitles": ["English", "Spanish"], "audioTracks": ["English", "Hindi"]}

        assert client.get("/metadata/missing.mp4").status_code == 404

    def test_download(self, client):
        response = client.get("/download/clip.mp4")
        assert response.status_code == 200
        assert response.content == CLIP_BYTES
        assert response.headers["content-disposition"].startswith("attachment")
        assert "clip.mp4" in response.headers["content-disposition"]

        assert client.get("/download/notes.txt").status_code == 404

    def test_health(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["transcode"]["jobs_started"] == 0

    def test_static_files(self, config, tmp_path):
        static = tmp_path / "public"
        static.mkdir()
        (static / "index.html").write_text("<h1>player</h1>")

        with TestClient(create_app(config, runner=ScriptedRunner(COPY_SCRIPT))) as client:
            assert "player" in client.get("/").text
            assert client.get("/videos").status_code == 200


class TestPlayback:

    @pytest.mark.parametrize("body", [
        {"position": 10},
        {"video": "clip.mp4"},
        {"video": "", "position": 10},
        {"video": "clip.mp4", "position": -5},
        {"video": "clip.mp4", "position": "later"},
        {"video": "clip.mp4", "position": "12"},
        {"video": "clip.mp4", "position": True},
        ["clip.mp4", 10],
    ])
    def test_invalid_body(self, client, body):
        response = client.post("/save-playback", json=body)
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid data"}

    def test_invalid_json(self, client):
        response = client.post(
            "/save-playback", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400

    def test_unknown_position_is_zero(self, client):
        assert client.get("/get-playback/clip.mp4").json() == {"position": 0}

    def test_position_is_overwritten(self, client):
        client.post("/save-playback", json={"video": "clip.mp4", "position": 10})
        client.post("/save-playback", json={"video": "clip.mp4", "position": 0})
        assert client.get("/get-playback/clip.mp4").json() == {"position": 0}

    def test_header_identity(self, config):
        config = dataclasses.replace(config, CLIENT_KEY_MODE="header")
        with TestClient(create_app(config, runner=ScriptedRunner(COPY_SCRIPT))) as client:
            client.post(
                "/save-playback",
                json={"video": "clip.mp4", "position": 12},
                headers={"X-Client-Id": "alice"},
            )
            alice = client.get("/get-playback/clip.mp4", headers={"X-Client-Id": "alice"})
            bob = client.get("/get-playback/clip.mp4", headers={"X-Client-Id": "bob"})
            assert alice.json() == {"position": 12}
            assert bob.json() == {"position": 0}


class TestTranscodeRoutes:

    def test_transcode_and_wait(self, client):
        response = client.post("/transcode/show.mkv", params={"wait": "true"})
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Video transcoded successfully"
        assert body["transcodedFilename"] == "show.mkv.mp4"

        # Playback now prefers the transcoded output
        response = client.get("/stream/show.mkv", headers={"Range": "bytes=0-9"})
        assert response.status_code == 206
        assert response.headers["content-type"] == "video/mp4"

        listed = {v["original"]: v for v in client.get("/videos").json()}
        assert listed["show.mkv"]["isTranscoded"] is True
        assert listed["show.mkv"]["transcodeStatus"] == "ready"

        response = client.post("/transcode/show.mkv")
        assert response.json() == {"message": "Video already transcoded", "transcodedFilename": "show.mkv.mp4"}

    def test_transcode_in_background(self, client):
        response = client.post("/transcode/clip.mp4")
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Transcoding started"
        assert body["status"] in ("queued", "running")

        status = poll_status(client, body["jobId"], ("succeeded", "failed"))
        assert status["state"] == "succeeded"

        jobs = client.get("/transcode/jobs").json()
        assert [job["id"] for job in jobs["jobs"]] == [body["jobId"]]
        assert jobs["summary"]["jobs_succeeded"] == 1

    def test_duplicate_requests_join(self, client):
        first = client.post("/transcode/clip.mp4").json()
        second = client.post("/transcode/clip.mp4").json()
        assert first["jobId"] == second["jobId"]
        poll_status(client, first["jobId"], ("succeeded",))

    def test_transcode_unknown_video(self, client):
        response = client.post("/transcode/missing.mp4")
        assert response.status_code == 404
        assert response.json() == {"error": "Video not found"}

    def test_transcode_failure(self, config):
        with TestClient(create_app(config, runner=ScriptedRunner(FAIL_SCRIPT))) as client:
            response = client.post("/transcode/clip.mp4", params={"wait": "true"})
            assert response.status_code == 500
            body = response.json()
            assert body["error"] == "Failed to transcode video"
            assert "boom" in body["details"]

            listed = {v["original"]: v for v in client.get("/videos").json()}
            assert listed["clip.mp4"]["transcodeStatus"] == "failed"

            # Playback still serves the original
            assert client.get("/stream/clip.mp4").content == CLIP_BYTES

    def test_stop_job(self, config):
        with TestClient(create_app(config, runner=ScriptedRunner(HANG_SCRIPT))) as client:
            job_id = client.post("/transcode/clip.mp4").json()["jobId"]
            poll_status(client, job_id, ("running",))
            # let the encoder process come up
            time.sleep(0.3)

            response = client.post(f"/transcode/stop/{job_id}")
            assert response.status_code == 200
            body = response.json()
            assert body["message"] == "Transcode stopped"
            assert body["job"]["state"] == "failed"
            assert body["job"]["error"] == "Stopped by request"

            response = client.post(f"/transcode/stop/{job_id}")
            assert response.json()["message"] == "Transcode already finished"

    def test_unknown_job(self, client):
        assert client.get("/transcode/status/nope").status_code == 404
        assert client.post("/transcode/stop/nope").status_code == 404

    def test_same_stem_sources_stay_separate(self, client, video_dir):
        (video_dir / "clip.mkv").write_bytes(b"K" * 3000)

        response = client.post("/transcode/clip.mp4", params={"wait": "true"})
        assert response.json()["transcodedFilename"] == "clip.mp4.mp4"

        listed = {v["original"]: v for v in client.get("/videos").json()}
        assert listed["clip.mkv"]["isTranscoded"] is False
        assert listed["clip.mkv"]["transcodeStatus"] == "none"
        assert listed["clip.mkv"]["transcoded"] == "clip.mkv.mp4"

        response = client.get("/stream/clip.mkv")
        assert response.content == b"K" * 3000
        assert response.headers["content-type"] == "video/x-matroska"

        response = client.post("/transcode/clip.mkv", params={"wait": "true"})
        assert response.json()["message"] == "Video transcoded successfully"
        assert response.json()["transcodedFilename"] == "clip.mkv.mp4"
        assert client.get("/stream/clip.mkv").content == b"K" * 3000
        assert client.get("/stream/clip.mp4").content == CLIP_BYTES
