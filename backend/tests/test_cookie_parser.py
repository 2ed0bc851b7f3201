"""
Bhavin API — Cookie Parsing Tests
==================================

What:  Tests for Cookie header decoding and signed cookies.

What we test:
    ✅ Plain, URL-encoded and "j:" JSON cookies
    ✅ Signed cookies verified with the secret; tampered ones become False
    ✅ Without a secret, "s:" values are ordinary cookies
    ✅ Oversized or control-character headers → 400
"""

import json

import pytest
from starlette.responses import JSONResponse

from bhavin_api.exceptions import ValidationError
from bhavin_api.middleware.cookie_parser import (
    CookieParserMiddleware,
    json_cookie,
    parse_cookie_header,
    sign_cookie,
    unsign_cookie,
)

from conftest import asgi_request, make_client

SECRET = "cookie-secret"


async def cookie_echo(scope, receive, send):
    state = scope["state"]
    response = JSONResponse(
        {"cookies": state["cookies"], "signed": state["signed_cookies"]}
    )
    await response(scope, receive, send)


class TestSigning:

    def test_sign_and_verify(self):
        signed = sign_cookie("user-1", SECRET)

        assert signed.startswith("s:user-1.")
        assert unsign_cookie(signed, SECRET) == "user-1"

    def test_tampered_value_is_false(self):
        signed = sign_cookie("user-1", SECRET)
        tampered = signed.replace("user-1", "user-2")

        assert unsign_cookie(tampered, SECRET) is False

    def test_wrong_secret_is_false(self):
        assert unsign_cookie(sign_cookie("x", SECRET), "other-secret") is False


class TestParseCookieHeader:

    def test_plain_cookies(self):
        cookies, signed = parse_cookie_header("theme=dark; lang=en")

        assert cookies == {"theme": "dark", "lang": "en"}
        assert signed == {}

    def test_values_are_unquoted(self):
        cookies, _ = parse_cookie_header("greeting=hello%20world")
        assert cookies["greeting"] == "hello world"

    def test_json_cookie(self):
        cookies, _ = parse_cookie_header('prefs=j:{"a":1}')
        assert cookies["prefs"] == {"a": 1}

    def test_invalid_json_cookie_kept_as_string(self):
        assert json_cookie("j:{oops") == "j:{oops"

    def test_signed_cookie_moves_to_signed(self):
        header = f"session={sign_cookie('user-1', SECRET)}; theme=dark"

        cookies, signed = parse_cookie_header(header, secret=SECRET)

        assert cookies == {"theme": "dark"}
        assert signed == {"session": "user-1"}

    def test_signed_json_cookie(self):
        value = sign_cookie("j:" + json.dumps({"id": 7}, separators=(",", ":")), SECRET)

        _, signed = parse_cookie_header(f"session={value}", secret=SECRET)

        assert signed == {"session": {"id": 7}}

    def test_tampered_signed_cookie_is_false(self):
        value = sign_cookie("user-1", SECRET).replace("s:user-1.", "s:admin.")

        cookies, signed = parse_cookie_header(f"session={value}", secret=SECRET)

        assert signed == {"session": False}
        assert "session" not in cookies

    def test_without_secret_signed_values_stay_plain(self):
        value = sign_cookie("user-1", SECRET)

        cookies, signed = parse_cookie_header(f"session={value}")

        assert cookies == {"session": value}
        assert signed == {}

    def test_oversized_header_rejected(self):
        with pytest.raises(ValidationError):
            parse_cookie_header("a=" + "x" * 300, max_header_size=256)

    def test_control_characters_rejected(self):
        with pytest.raises(ValidationError):
            parse_cookie_header("a=b\x01c")


class TestCookieStage:

    @pytest.mark.asyncio
    async def test_cookies_on_request_state(self):
        app = CookieParserMiddleware(cookie_echo, secret=SECRET)
        header = f"theme=dark; session={sign_cookie('u', SECRET)}"

        async with make_client(app) as client:
            response = await client.get("/", headers={"Cookie": header})

        assert response.json() == {"cookies": {"theme": "dark"}, "signed": {"session": "u"}}

    @pytest.mark.asyncio
    async def test_no_cookie_header_gives_empty_dicts(self):
        app = CookieParserMiddleware(cookie_echo)

        async with make_client(app) as client:
            response = await client.get("/")

        assert response.json() == {"cookies": {}, "signed": {}}

    @pytest.mark.asyncio
    async def test_oversized_header_is_400(self):
        app = CookieParserMiddleware(cookie_echo, max_header_size=256)

        async with make_client(app) as client:
            response = await client.get("/", headers={"Cookie": "big=" + "x" * 500})

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "cookie"

    @pytest.mark.asyncio
    async def test_control_characters_are_400(self):
        app = CookieParserMiddleware(cookie_echo)

        sent, _ = await asgi_request(app, headers=[(b"cookie", b"a=b\x01c")])

        assert sent[0]["type"] == "http.response.start"
        assert sent[0]["status"] == 400

    @pytest.mark.asyncio
    async def test_pipeline_rejects_oversized_cookie_header(self, test_client):
        response = await test_client.get("/", headers={"Cookie": "big=" + "x" * 9000})

        assert response.status_code == 400
        assert response.headers["x-content-type-options"] == "nosniff"
