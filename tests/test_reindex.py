import httpx

from crvs_bridge.services import reindex


def test_no_url_skips_request(monkeypatch):
    """An empty reindex URL makes no request."""
    monkeypatch.setattr(reindex.httpx, "post", lambda *a, **kw: (_ for _ in ()).throw(AssertionError))
    assert reindex.trigger_reindex(url="") is False


def test_success(monkeypatch):
    seen = {}

    def fake_post(url, **kwargs):
        seen["url"] = url
        seen["timeout"] = kwargs["timeout"]
        return httpx.Response(200, request=httpx.Request("POST", url))

    monkeypatch.setattr(reindex.httpx, "post", fake_post)
    assert reindex.trigger_reindex(url="http://search/reindex", timeout=2.5) is True
    assert seen == {"url": "http://search/reindex", "timeout": 2.5}


def test_http_error_status_is_reported_not_raised(monkeypatch):
    """A non-2xx response is reported as False."""
    monkeypatch.setattr(
        reindex.httpx, "post",
        lambda url, **kw: httpx.Response(503, request=httpx.Request("POST", url)),
    )
    assert reindex.trigger_reindex(url="http://search/reindex") is False


def test_connection_error_is_swallowed(monkeypatch):
    """A connection failure never escapes the trigger."""
    def refuse(url, **kwargs):
        raise httpx.ConnectError("refused", request=httpx.Request("POST", url))

    monkeypatch.setattr(reindex.httpx, "post", refuse)
    assert reindex.trigger_reindex(url="http://search/reindex") is False
