"""Tests for the httpx transport, driven by httpx.MockTransport."""
import httpx
import pytest

from bidsnipr.core import TransportError
from bidsnipr.fetchers.http import HttpTransport, meta_refresh_target


def _transport(handler, **kwargs):
    return HttpTransport(transport=httpx.MockTransport(handler), clock=lambda: 42.0, **kwargs)


def test_fetch_returns_content_and_first_byte_time():
    t = _transport(lambda request: httpx.Response(200, content=b"<html>ok</html>"))
    page = t.fetch("http://offer.example/page")
    assert page.content == b"<html>ok</html>"
    assert page.url == "http://offer.example/page"
    assert page.time_to_first_byte == 42.0


def test_headers_are_sent():
    seen = {}

    def handler(request):
        seen.update(request.headers)
        return httpx.Response(200, content=b"x")

    _transport(handler, headers={"Accept": "text/*"}).fetch("http://offer.example/")
    assert seen["accept"] == "text/*"


def test_meta_refresh_is_followed():
    def handler(request):
        if request.url.path == "/start":
            return httpx.Response(
                200,
                content=b'<html><head><meta http-equiv="Refresh" '
                b'content="0; url=/next"></head></html>',
            )
        return httpx.Response(200, content=b"<html>landed</html>")

    page = _transport(handler).fetch("http://signin.example/start")
    assert page.content == b"<html>landed</html>"
    assert page.url == "http://signin.example/next"


def test_endless_meta_refresh_gives_up():
    refresh = b'<meta http-equiv="refresh" content="0;URL=\'/again\'">'
    t = _transport(lambda request: httpx.Response(200, content=refresh))
    with pytest.raises(TransportError, match="too many"):
        t.fetch("http://signin.example/again")


def test_meta_refresh_target_absent():
    assert meta_refresh_target(b"<html><body>plain</body></html>", "http://x/") is None


@pytest.mark.parametrize("status, unavailable", [(503, True), (429, True), (404, False)])
def test_http_errors(status, unavailable):
    t = _transport(lambda request: httpx.Response(status, content=b"nope"))
    with pytest.raises(TransportError) as exc:
        t.fetch("http://offer.example/secret?pass=pw", log_url="http://offer.example/secret?pass=*****")
    assert exc.value.unavailable is unavailable
    assert "pw" not in str(exc.value).replace("*****", "")


def test_connection_failure():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(TransportError) as exc:
        _transport(handler).fetch("http://offer.example/")
    assert not exc.value.unavailable
    assert "refused" in exc.value.reason


def test_reset_drops_cookies():
    cookies = []

    def handler(request):
        cookies.append(request.headers.get("cookie"))
        return httpx.Response(200, content=b"x", headers={"Set-Cookie": "session=1; Path=/"})

    t = _transport(handler)
    t.fetch("http://offer.example/a")
    t.fetch("http://offer.example/b")
    t.reset()
    t.fetch("http://offer.example/c")
    assert cookies == [None, "session=1", None]
