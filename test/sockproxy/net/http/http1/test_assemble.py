import pytest
from hypothesis import given
from hypothesis import strategies as st

from sockproxy.http import Headers
from sockproxy.net.http.http1 import read
from sockproxy.net.http.http1.assemble import _assemble_request_line
from sockproxy.net.http.http1.assemble import assemble_request
from sockproxy.net.http.http1.assemble import assemble_request_head
from sockproxy.options import ProxyConfig
from sockproxy.test.tutils import request_headers
from sockproxy.test.tutils import treq


def test_assemble_request():
    assert bytes(assemble_request(treq(), ProxyConfig())) == (
        b"GET /path HTTP/1.1\r\n"
        b"header: qvalue\r\n"
        b"Host: localhost\r\n"
        b"Content-Length: 7\r\n"
        b"\r\n"
        b"content"
    )


def test_assemble_request_parts():
    msg = assemble_request(treq(body=b"foo"), ProxyConfig())
    assert msg.head.endswith(b"\r\n\r\n")
    assert b"foo" not in msg.head
    assert msg.body == b"foo"
    assert len(msg) == len(bytes(msg))


def test_assemble_request_head():
    c = assemble_request_head(treq(body=b"foo"), ProxyConfig())
    assert b"GET" in c
    assert b"qvalue" in c
    assert b"Content-Length: 3" in c
    assert b"foo" not in c


def test_assemble_request_line():
    assert _assemble_request_line(treq()) == b"GET /path HTTP/1.1"
    assert (
        _assemble_request_line(treq(method="POST", target="/containers/create?name=x"))
        == b"POST /containers/create?name=x HTTP/1.1"
    )


def test_empty_body_has_no_content_length():
    msg = assemble_request(treq(body=b""), ProxyConfig())
    assert b"content-length" not in msg.head.lower()
    assert msg.body == b""
    assert msg.head.endswith(b"Host: localhost\r\n\r\n")


@pytest.mark.parametrize("body", [b"x", b"\x00\xff" * 100, "Grüße".encode()])
def test_content_length_is_byte_length(body):
    fields = request_headers(bytes(assemble_request(treq(body=body), ProxyConfig())))
    assert (b"Content-Length", b"%d" % len(body)) in fields


def test_api_key():
    msg = assemble_request(treq(), ProxyConfig(api_key="s3cret"))
    fields = request_headers(bytes(msg))
    assert fields == [
        (b"header", b"qvalue"),
        (b"x-api-key", b"s3cret"),
        (b"Host", b"localhost"),
        (b"Content-Length", b"7"),
    ]

    msg = assemble_request(treq(), ProxyConfig())
    assert b"x-api-key" not in msg.head

    msg = assemble_request(treq(), ProxyConfig(api_key=""))
    assert b"x-api-key" not in msg.head


def test_api_key_does_not_replace_client_key():
    req = treq(headers=Headers([(b"X-Api-Key", b"client")]))
    fields = request_headers(bytes(assemble_request(req, ProxyConfig(api_key="proxy"))))
    assert fields[:2] == [(b"X-Api-Key", b"client"), (b"x-api-key", b"proxy")]


def test_client_host_is_forwarded_verbatim():
    req = treq(headers=Headers([(b"Host", b"example.com:3277")]), body=b"")
    fields = request_headers(bytes(assemble_request(req, ProxyConfig())))
    assert fields == [(b"Host", b"example.com:3277"), (b"Host", b"localhost")]


def test_non_printable_header_is_dropped(caplog):
    req = treq(
        headers=Headers(
            [
                (b"Accept", b"*/*"),
                (b"X-Binary", b"caf\xc3\xa9"),
                (b"X-Control", b"a\x01b"),
                (b"X-Trailing-Lf", b"v\n"),
                (b"X-Split", b"a\r\nB: c"),
                (b"User-Agent", b"curl/8.0"),
            ]
        )
    )
    msg = assemble_request(req, ProxyConfig())
    assert msg.head == (
        b"GET /path HTTP/1.1\r\n"
        b"Accept: */*\r\n"
        b"User-Agent: curl/8.0\r\n"
        b"Host: localhost\r\n"
        b"Content-Length: 7\r\n"
        b"\r\n"
    )
    for name in ("X-Binary", "X-Control", "X-Trailing-Lf", "X-Split"):
        assert f"Skipping header {name}" in caplog.text
    assert all(r.levelname == "WARNING" for r in caplog.records if "Skipping" in r.message)


def test_original_casing_and_duplicates():
    req = treq(
        headers=Headers(
            [(b"X-Thing", b"1"), (b"x-thing", b"2"), (b"Accept-Encoding", b"gzip")]
        ),
        body=b"",
    )
    assert assemble_request_head(req, ProxyConfig()) == (
        b"GET /path HTTP/1.1\r\n"
        b"X-Thing: 1\r\n"
        b"x-thing: 2\r\n"
        b"Accept-Encoding: gzip\r\n"
        b"Host: localhost\r\n"
        b"\r\n"
    )


_token = st.text(
    alphabet="!#$%&'*+-.^_`|~0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ",
    min_size=1,
    max_size=20,
)
_value = st.text(
    alphabet=st.characters(min_codepoint=0x21, max_codepoint=0x7E), max_size=40
)


@given(fields=st.lists(st.tuples(_token, _value), max_size=10))
def test_headers_survive_round_trip(fields):
    raw = [(k.encode(), v.encode()) for k, v in fields]
    msg = assemble_request(treq(headers=Headers(raw), body=b""), ProxyConfig())
    # A request head has the same shape as a response head, so the response reader
    # can parse it back.
    parsed = read.read_response(bytes(msg))
    assert parsed.headers.fields[: len(raw)] == tuple(raw)
    assert parsed.headers.fields[len(raw) :] == ((b"Host", b"localhost"),)
