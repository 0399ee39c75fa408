import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import httpx
import pytest

from song_service.clients.render_backend import RenderBackendClient, select_endpoint
from song_service.errors import InvalidArgument, RenderBackendError, RenderTimeout, RenderTransportError
from song_service.models.domain import GenerationInputs, RenderEndpoint

from conftest import RENDER_URLS


def test_full_description_wins_over_lyrics():
    inputs = GenerationInputs(full_described_song="a happy tune", lyrics="la la la", described_lyrics="about rain")
    assert select_endpoint(inputs) == RenderEndpoint.DESCRIPTION


def test_described_lyrics_endpoint():
    assert select_endpoint(GenerationInputs(described_lyrics="about rain")) == RenderEndpoint.DESCRIBED_LYRICS


def test_plain_lyrics_is_default():
    assert select_endpoint(GenerationInputs(prompt="lofi, piano", lyrics="[verse] hello")) == RenderEndpoint.LYRICS
    assert select_endpoint(GenerationInputs(full_described_song="  ")) == RenderEndpoint.LYRICS


def test_build_request_payload(render_client):
    request = render_client.build_request(GenerationInputs(prompt="lofi", lyrics="hello"), guidance_scale=7.5)
    assert request.endpoint == RenderEndpoint.LYRICS
    assert request.payload == {
        "prompt": "lofi",
        "lyrics": "hello",
        "instrumental": False,
        "guidance_scale": 7.5,
        "audio_duration": 180,
        "seed": -1,
        "infer_step": 60,
    }


def test_invoke_posts_to_selected_endpoint(render_client, render_server):
    request = render_client.build_request(GenerationInputs(full_described_song="a happy tune"), 7.5)
    result = render_client.invoke(request, deadline=5)

    assert len(render_server.requests) == 1
    sent = render_server.requests[0]
    assert str(sent.url) == RENDER_URLS[RenderEndpoint.DESCRIPTION]
    assert sent.method == "POST"
    assert json.loads(sent.content)["full_described_song"] == "a happy tune"
    assert "Modal-Key" not in sent.headers
    assert result.audio_ref == "music-generator/audio/song-1"
    assert result.audio_url == "https://cdn.test/video/song-1.mp3"
    assert result.cover_ref == "music-generator/covers/song-1"
    assert result.categories == ["pop", "upbeat"]


def test_invoke_sends_modal_credentials_when_configured(render_server):
    client = RenderBackendClient(
        endpoints=RENDER_URLS,
        modal_key="mk",
        modal_secret="ms",
        transport=httpx.MockTransport(render_server.handler),
    )
    client.invoke(client.build_request(GenerationInputs(lyrics="hi"), 7.5))
    headers = render_server.requests[0].headers
    assert headers["Modal-Key"] == "mk"
    assert headers["Modal-Secret"] == "ms"


def test_empty_result_is_not_an_error(render_client, render_server):
    render_server.payload = {}
    result = render_client.invoke(render_client.build_request(GenerationInputs(lyrics="hi"), 7.5))
    assert not result.has_audio()
    assert result.cover_url is None


def test_non_2xx_maps_to_backend_error(render_client, render_server):
    render_server.status_code = 500
    render_server.payload = {"detail": "gpu on fire"}
    with pytest.raises(RenderBackendError) as excinfo:
        render_client.invoke(render_client.build_request(GenerationInputs(lyrics="hi"), 7.5))
    assert excinfo.value.status == 500
    assert "gpu on fire" in excinfo.value.body


def test_non_object_body_maps_to_backend_error(render_client, render_server):
    render_server.payload = ["not", "an", "object"]
    with pytest.raises(RenderBackendError):
        render_client.invoke(render_client.build_request(GenerationInputs(lyrics="hi"), 7.5))


def test_transport_timeout_maps_to_timeout(render_client, render_server):
    render_server.error = httpx.ReadTimeout("no response", request=None)
    with pytest.raises(RenderTimeout):
        render_client.invoke(render_client.build_request(GenerationInputs(lyrics="hi"), 7.5), deadline=120)


def test_connection_error_maps_to_transport(render_client, render_server):
    render_server.error = httpx.ConnectError("connection refused")
    with pytest.raises(RenderTransportError):
        render_client.invoke(render_client.build_request(GenerationInputs(lyrics="hi"), 7.5))


def test_slow_body_is_cut_at_deadline():
    def slow_chunks():
        yield b'{"audio_url": '
        time.sleep(0.2)
        yield b'"https://cdn.test/late.mp3"}'

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=slow_chunks())

    client = RenderBackendClient(endpoints=RENDER_URLS, transport=httpx.MockTransport(handler))
    with pytest.raises(RenderTimeout):
        client.invoke(client.build_request(GenerationInputs(lyrics="hi"), 7.5), deadline=0.05)


def test_missing_endpoint_is_invalid_argument(render_server):
    client = RenderBackendClient(
        endpoints={RenderEndpoint.LYRICS: ""},
        transport=httpx.MockTransport(render_server.handler),
    )
    with pytest.raises(InvalidArgument):
        client.invoke(client.build_request(GenerationInputs(lyrics="hi"), 7.5))
    assert render_server.requests == []


class StallingHandler(BaseHTTPRequestHandler):
    header_delay = 0.0
    body_delay = 0.0

    def do_POST(self):
        self.rfile.read(int(self.headers.get("Content-Length", 0)))
        time.sleep(self.header_delay)
        try:
            self.send_response(200)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", "2")
            self.end_headers()
            time.sleep(self.body_delay)
            self.wfile.write(b"{}")
        except (BrokenPipeError, ConnectionResetError):
            pass

    def log_message(self, format, *args):
        pass


@pytest.fixture
def stalling_server():
    servers = []

    def start(header_delay: float, body_delay: float) -> str:
        handler = type("Handler", (StallingHandler,), {"header_delay": header_delay, "body_delay": body_delay})
        server = ThreadingHTTPServer(("127.0.0.1", 0), handler)
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        return f"http://127.0.0.1:{server.server_address[1]}/generate"

    yield start
    for server in servers:
        server.shutdown()
        server.server_close()


@pytest.mark.parametrize("header_delay, body_delay", [(0.45, 0.45), (1.0, 0.0)])
def test_deadline_bounds_the_whole_exchange(stalling_server, header_delay, body_delay):
    url = stalling_server(header_delay, body_delay)
    client = RenderBackendClient(endpoints={RenderEndpoint.LYRICS: url})

    started = time.monotonic()
    with pytest.raises(RenderTimeout):
        client.invoke(client.build_request(GenerationInputs(lyrics="hi"), 7.5), deadline=0.5)

    assert time.monotonic() - started < 0.75


def test_prompt_backend_answers_within_deadline(stalling_server):
    client = RenderBackendClient(endpoints={RenderEndpoint.LYRICS: stalling_server(0.0, 0.0)})
    result = client.invoke(client.build_request(GenerationInputs(lyrics="hi"), 7.5), deadline=5)
    assert not result.has_audio()
