"""
Tests for forward/response header policy.
"""

import httpx
import pytest

from ua_proxy.proxy.headers import (
    ACCEPT_ENCODING,
    build_forward_headers,
    build_response_headers,
    relayed_cookies,
    rewrite_set_cookie,
)
from ua_proxy.vars import DESKTOP_UA

PROXY_BASE = "http://localhost:7891"


class TestBuildForwardHeaders:
    def test_user_agent_forced(self):
        headers = build_forward_headers(
            {"User-Agent": "Mozilla/5.0 (iPhone) Mobile"},
            "https://www.bilibili.com/",
            PROXY_BASE,
        )

        assert headers["user-agent"] == DESKTOP_UA

    def test_dropped_headers(self):
        inbound = {
            "host": "localhost:7891",
            "connection": "keep-alive",
            "content-length": "12",
            "transfer-encoding": "chunked",
            "upgrade": "h2c",
            "accept": "text/html",
        }

        headers = build_forward_headers(inbound, "https://example.com/", PROXY_BASE)

        for name in ("host", "connection", "content-length", "transfer-encoding", "upgrade"):
            assert name not in headers
        assert headers["accept"] == "text/html"

    def test_proxied_referer_is_unwrapped(self):
        headers = build_forward_headers(
            {"referer": "http://localhost:7891/https://www.bilibili.com/video/BV1"},
            "https://api.bilibili.com/x/web",
            PROXY_BASE,
        )

        assert headers["referer"] == "https://www.bilibili.com/video/BV1"

    def test_missing_referer_defaults_to_target_origin(self):
        headers = build_forward_headers({}, "https://example.com/a/b?c=1", PROXY_BASE)

        assert headers["referer"] == "https://example.com/"

    def test_foreign_referer_defaults_to_target_origin(self):
        headers = build_forward_headers(
            {"referer": "https://elsewhere.example/page"},
            "https://example.com/a",
            PROXY_BASE,
        )

        assert headers["referer"] == "https://example.com/"

    def test_cdn_referer_override(self):
        headers = build_forward_headers(
            {"referer": "http://localhost:7891/https://space.bilibili.com/1"},
            "https://i0.hdslb.com/bfs/face/x.jpg",
            PROXY_BASE,
        )

        assert headers["referer"] == "https://www.bilibili.com/"

    def test_proxy_origin_rewritten_to_target(self):
        headers = build_forward_headers(
            {"origin": "http://localhost:7891"},
            "https://example.com/api",
            PROXY_BASE,
        )

        assert headers["origin"] == "https://example.com"

    def test_origin_prefers_family_referer(self):
        headers = build_forward_headers(
            {
                "origin": "http://localhost:7891",
                "referer": "http://localhost:7891/https://www.bilibili.com/video/BV1",
            },
            "https://api.bilibili.com/x/player",
            PROXY_BASE,
        )

        assert headers["origin"] == "https://www.bilibili.com"

    def test_foreign_origin_untouched(self):
        headers = build_forward_headers(
            {"origin": "https://other.example"}, "https://example.com/", PROXY_BASE
        )

        assert headers["origin"] == "https://other.example"

    def test_cross_site_fetch_downgraded(self):
        headers = build_forward_headers(
            {"sec-fetch-site": "cross-site", "sec-fetch-mode": "cors"},
            "https://example.com/",
            PROXY_BASE,
        )

        assert headers["sec-fetch-site"] == "same-site"
        assert headers["sec-fetch-mode"] == "cors"

    def test_accept_encoding_normalized(self):
        headers = build_forward_headers(
            {"accept-encoding": "gzip, deflate, br, zstd"}, "https://example.com/", PROXY_BASE
        )

        assert headers["accept-encoding"] == ACCEPT_ENCODING


class TestSetCookie:
    def test_domain_and_secure_removed(self):
        assert (
            rewrite_set_cookie("sid=1; Domain=.bilibili.com; Path=/; Secure; HttpOnly")
            == "sid=1; Path=/; HttpOnly"
        )

    def test_case_insensitive_attributes(self):
        assert (
            rewrite_set_cookie("a=b; DOMAIN=x.com; SECURE; SameSite=None")
            == "a=b; SameSite=None"
        )

    def test_cookie_named_like_attribute_kept(self):
        assert rewrite_set_cookie("domain=abc; Path=/") == "domain=abc; Path=/"

    def test_expires_with_comma_kept(self):
        value = "a=b; Expires=Wed, 21 Oct 2026 07:28:00 GMT; Secure"

        assert rewrite_set_cookie(value) == "a=b; Expires=Wed, 21 Oct 2026 07:28:00 GMT"

    def test_every_cookie_relayed(self):
        upstream = httpx.Headers(
            [("set-cookie", "a=1; Secure"), ("set-cookie", "b=2; Domain=x.com")]
        )

        assert relayed_cookies(upstream.get_list("set-cookie")) == ["a=1", "b=2"]


class TestBuildResponseHeaders:
    def test_safelist_and_cors(self):
        upstream = httpx.Headers(
            {
                "content-type": "image/png",
                "cache-control": "max-age=60",
                "expires": "0",
                "etag": "abc",
            }
        )

        headers = build_response_headers(upstream)

        assert headers["content-type"] == "image/png"
        assert headers["cache-control"] == "max-age=60"
        assert headers["expires"] == "0"
        assert "etag" not in headers
        assert headers["Access-Control-Allow-Origin"] == "*"
        assert headers["Access-Control-Allow-Methods"] == "GET, POST, OPTIONS, PUT, DELETE"
        assert headers["Access-Control-Allow-Headers"] == "*"
        assert headers["Access-Control-Allow-Credentials"] == "true"

    @pytest.mark.parametrize(
        "name",
        [
            "content-security-policy",
            "content-security-policy-report-only",
            "x-content-security-policy",
            "x-webkit-csp",
            "x-frame-options",
        ],
    )
    def test_security_policies_never_relayed(self, name):
        headers = build_response_headers(httpx.Headers({name: "deny"}))

        assert name not in {key.lower() for key in headers}
