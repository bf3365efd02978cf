import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest
import requests

from golem.sraix import (
    SRAIXConfig,
    SRAIXGateway,
    SRAIXRequest,
    extract_json_path,
    extract_xml_path,
    substitute_env,
)


class FakeResponse:
    def __init__(self, text, status_code=200):
        self.text = text
        self.status_code = status_code


class RecordingHTTP:
    """Stands in for ``requests`` and records every call."""

    def __init__(self, text="", status_code=200, exc=None):
        self.text = text
        self.status_code = status_code
        self.exc = exc
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.exc is not None:
            raise self.exc
        return FakeResponse(self.text, self.status_code)


@pytest.fixture()
def gateway():
    instance = SRAIXGateway(default_timeout=5)
    yield instance
    instance.close()


def _use(gateway, http):
    gateway._http = http
    return http


# ──────────────────────────────────────────────────────────────────
# Local HTTP service
# ──────────────────────────────────────────────────────────────────

class _Handler(BaseHTTPRequestHandler):
    received = []

    def do_POST(self):
        length = int(self.headers.get("Content-Length", 0))
        body = json.loads(self.rfile.read(length) or b"{}")
        _Handler.received.append(body)
        if self.path == "/slow":
            time.sleep(3)
        payload = json.dumps({"reply": {"text": f"echo {body.get('input', '')}"}}).encode()
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        try:
            self.wfile.write(payload)
        except (BrokenPipeError, ConnectionResetError):
            pass

    def log_message(self, *args):
        pass


@pytest.fixture()
def service_url():
    server = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    _Handler.received = []
    yield f"http://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


def test_sraix_posts_json_and_extracts_reply(bot, evaluate, service_url):
    bot.add_sraix_config(SRAIXConfig(
        name="echo",
        base_url=f"{service_url}/echo",
        response_format="json",
        response_path="reply.text",
        include_wildcards=True,
    ))
    assert evaluate('<sraix service="echo">hello <star/></sraix>', stars=["there"]) == "echo hello there"
    assert _Handler.received[-1] == {"input": "hello there", "wildcards": {"star1": "there"}}


def test_slow_service_times_out_to_default(bot, evaluate, service_url):
    bot.add_sraix_config(SRAIXConfig(
        name="slow",
        base_url=f"{service_url}/slow",
        timeout=1,
        response_format="json",
        response_path="reply.text",
    ))
    started = time.monotonic()
    assert evaluate('<sraix service="slow" default="busy">hi</sraix>') == "busy"
    assert time.monotonic() - started < 2.5


# ──────────────────────────────────────────────────────────────────
# Resolution and fallbacks
# ──────────────────────────────────────────────────────────────────

def test_unconfigured_service_returns_content(evaluate):
    assert evaluate('<sraix service="nope">hello there</sraix>') == "hello there"
    assert evaluate('<sraix service="nope" default="sorry">hello</sraix>') == "sorry"


def test_http_error_uses_config_fallback(gateway):
    http = _use(gateway, RecordingHTTP("boom", status_code=500))
    gateway.add_config(SRAIXConfig(name="svc", base_url="http://svc", fallback_response="offline"))
    result = gateway.invoke("svc", "hi")
    assert result.handled
    assert result.text == "offline"
    assert "HTTP 500" in result.error
    assert len(http.calls) == 1


def test_tag_default_wins_over_config_fallback(gateway):
    _use(gateway, RecordingHTTP(exc=requests.ConnectionError("refused")))
    gateway.add_config(SRAIXConfig(name="svc", base_url="http://svc", fallback_response="offline"))
    result = gateway.invoke("svc", "hi", SRAIXRequest(default="try later"))
    assert result.text == "try later"


def test_failure_without_any_fallback_is_unhandled(gateway):
    _use(gateway, RecordingHTTP(exc=requests.ConnectionError("refused")))
    gateway.add_config(SRAIXConfig(name="svc", base_url="http://svc"))
    result = gateway.invoke("svc", "hi")
    assert not result.handled
    assert "refused" in result.error


def test_unparseable_json_falls_back(gateway):
    _use(gateway, RecordingHTTP("not json"))
    gateway.add_config(SRAIXConfig(
        name="svc", base_url="http://svc", response_format="json", response_path="a", fallback_response="bad"
    ))
    assert gateway.invoke("svc", "hi").text == "bad"


# ──────────────────────────────────────────────────────────────────
# Request construction
# ──────────────────────────────────────────────────────────────────

def test_get_without_template_sends_query_param(gateway):
    http = _use(gateway, RecordingHTTP("sunny"))
    gateway.add_config(SRAIXConfig(name="weather", base_url="http://wx/api", method="get", query_param="q"))
    assert gateway.invoke("weather", "paris today").text == "sunny"
    method, url, kwargs = http.calls[0]
    assert (method, url) == ("GET", "http://wx/api")
    assert kwargs["params"] == {"q": "paris today"}
    assert kwargs["data"] is None


def test_url_template_placeholders(gateway, monkeypatch):
    monkeypatch.setenv("WX_HOST", "wx.example")
    http = _use(gateway, RecordingHTTP("ok"))
    gateway.add_config(SRAIXConfig(
        name="wx",
        url_template="https://${WX_HOST}/at/{lat}/{lon}?q={input}&k={apikey}",
        method="GET",
        headers={"Authorization": "secret"},
    ))
    gateway.invoke("wx", "rain tomorrow", SRAIXRequest(hint="48.85, 2.35"))
    _, url, kwargs = http.calls[0]
    assert url == "https://wx.example/at/48.85/2.35?q=rain+tomorrow&k=secret"
    assert kwargs["params"] is None
    assert kwargs["headers"]["Authorization"] == "secret"


def test_json_input_is_passed_through(gateway):
    http = _use(gateway, RecordingHTTP("ok"))
    gateway.add_config(SRAIXConfig(name="svc", base_url="http://svc"))
    gateway.invoke("svc", '{"list_id": 1}')
    _, _, kwargs = http.calls[0]
    assert json.loads(kwargs["data"]) == {"list_id": 1}
    assert kwargs["headers"]["Content-Type"] == "application/json"


def test_form_body_is_sent_verbatim(gateway):
    http = _use(gateway, RecordingHTTP("ok"))
    gateway.add_config(SRAIXConfig(
        name="todo",
        url_template="http://todo/lists/{list_id}",
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    ))
    gateway.invoke("todo", "list_id=7&content=milk")
    _, url, kwargs = http.calls[0]
    assert url == "http://todo/lists/7"
    assert kwargs["data"] == b"list_id=7&content=milk"


def test_form_content_type_matches_any_header_case(gateway):
    http = _use(gateway, RecordingHTTP("ok"))
    gateway.add_config(SRAIXConfig.from_dict({
        "name": "todo",
        "base_url": "http://todo/items",
        "headers": {"content-type": "application/x-www-form-urlencoded; charset=utf-8"},
    }))
    gateway.invoke("todo", "item=eggs")
    headers = http.calls[0][2]["headers"]
    assert http.calls[0][2]["data"] == b"item=eggs"
    assert list(headers) == ["content-type"]


def test_properties_configured_form_service_sends_body_verbatim(bot):
    http = _use(bot.gateway, RecordingHTTP("added"))
    bot.load_properties({
        "service.lists.urltemplate": "http://lists/{list_id}/items",
        "service.lists.header.Content-Type": "application/x-www-form-urlencoded",
    })
    assert bot.gateway.get_config("lists").headers == {"Content-Type": "application/x-www-form-urlencoded"}

    result = bot.gateway.invoke("lists", "list_id=1&content=milk")
    assert result.text == "added"
    method, url, kwargs = http.calls[0]
    assert (method, url) == ("POST", "http://lists/1/items")
    assert kwargs["data"] == b"list_id=1&content=milk"
    assert dict(kwargs["headers"]) == {"Content-Type": "application/x-www-form-urlencoded"}


def test_botid_and_host_are_added_to_the_envelope(gateway):
    http = _use(gateway, RecordingHTTP("ok"))
    gateway.add_config(SRAIXConfig(name="svc", base_url="http://svc"))
    gateway.invoke("svc", "hi", SRAIXRequest(botid="b1", host="h1"))
    assert json.loads(http.calls[0][2]["data"]) == {"input": "hi", "botid": "b1", "host": "h1"}


# ──────────────────────────────────────────────────────────────────
# Configuration and extraction
# ──────────────────────────────────────────────────────────────────

def test_config_validation():
    with pytest.raises(ValueError):
        SRAIXConfig(name="x").validate()
    with pytest.raises(ValueError):
        SRAIXConfig.from_dict({"base_url": "http://x"})
    with pytest.raises(ValueError):
        SRAIXConfig.from_dict({"name": "x", "base_url": "http://x", "response_format": "yaml"})
    config = SRAIXConfig.from_dict({"name": "x", "base_url": "http://x", "timeout": "2.5", "extra": 1})
    assert config.timeout == 2.5
    assert config.method == "POST"


def test_configure_from_properties(gateway):
    added = gateway.configure_from_properties({
        "name": "Golem",
        "sraix.weather.baseurl": "http://wx",
        "sraix.weather.method": "get",
        "sraix.weather.apikey": "k",
        "service.pannous.urltemplate": "http://p?q={input}",
        "service.pannous.header.X-Trace": "1",
        "sraix.broken.method": "get",
    })
    assert sorted(added) == ["pannous", "weather"]
    weather = gateway.get_config("weather")
    assert weather.method == "GET"
    assert weather.headers == {"Authorization": "k"}
    assert gateway.get_config("pannous").headers == {"X-Trace": "1"}


def test_extract_json_path():
    data = {"results": [{"name": "Paris", "ok": True}], "count": 1}
    assert extract_json_path(data, "results.0.name") == "Paris"
    assert extract_json_path(data, "results.0.ok") == "true"
    assert extract_json_path(data, "results.5.name") == ""
    assert extract_json_path(data, "missing") == ""
    assert json.loads(extract_json_path(data, "results")) == data["results"]


def test_extract_xml_path():
    body = "<weather><now><temp>21</temp></now></weather>"
    assert extract_xml_path(body, "weather.now.temp") == "21"
    assert extract_xml_path(body, "now/temp") == "21"
    assert extract_xml_path(body, "") == "21"
    assert extract_xml_path(body, "later") == ""


def test_substitute_env(monkeypatch):
    monkeypatch.setenv("TOKEN", "abc")
    monkeypatch.delenv("ABSENT", raising=False)
    assert substitute_env("Bearer ${TOKEN}") == "Bearer abc"
    assert substitute_env("x${ABSENT}y") == "xy"
