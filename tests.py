"""Tests for Accept-Encoding negotiation and the demo site routes."""

import functools
import gzip
import importlib
import warnings
import zlib
from concurrent.futures import ThreadPoolExecutor

import brotli
import pytest

from starlette.testclient import TestClient

try:
    from compression import zstd
except ImportError:
    from backports import zstd

from webperf import (
    ContentPayload,
    FileSource,
    Negotiator,
    NegotiatorConfig,
    SourceReadFailure,
    negotiate,
)
from webperf import config as config_module
from webperf import negotiation
from webperf.__main__ import parse_args, settings_from_args
from webperf.app import create_app
from webperf.compression import DECOMPRESSORS, compress, decompress
from webperf.config import Settings
from webperf.headers import get_preferred_encoding, parse_tokens, rank
from webperf.responses import cache_control_for

CSS = "body{color:red}\n" * 200
JS = "console.log('loaded');\n" * 200
FONT = bytes(range(256)) * 16


@pytest.fixture
def test_client_factory(anyio_backend_name, anyio_backend_options):
    return functools.partial(
        TestClient,
        backend=anyio_backend_name,
        backend_options=anyio_backend_options,
    )


@pytest.fixture
def site_dir(tmp_path):
    (tmp_path / "bad.html").write_text("<html>bad</html>")
    (tmp_path / "good.html").write_text("<html>good</html>")
    (tmp_path / "styles.css").write_text(CSS)
    (tmp_path / "app.js").write_text(JS)
    fonts = tmp_path / "assets" / "fonts"
    fonts.mkdir(parents=True)
    (fonts / "Roboto.ttf").write_bytes(FONT)
    return tmp_path


@pytest.fixture
def client(test_client_factory, site_dir):
    return test_client_factory(create_app(Settings(site_dir=site_dir)))


def raw_get(client, path, **headers):
    """Returns the response and its body exactly as sent, before any decoding."""
    with client.stream("GET", path, headers=headers) as response:
        body = b"".join(response.iter_raw())
    return response, body


# --- Encoding selection ------------------------------------------------------


@pytest.mark.parametrize(
    "accept_encoding, expected_encoding",
    [
        # zstd wins whatever else is present
        ("zstd", "zstd"),
        ("gzip, deflate, br, zstd", "zstd"),
        ("br;q=1.0, zstd;q=0.1", "zstd"),
        # q=0 is not honoured, the token is simply present
        ("zstd;q=0, gzip", "zstd"),
        # br beats gzip and deflate
        ("gzip, deflate, br", "br"),
        ("br", "br"),
        # gzip beats deflate
        ("deflate, gzip", "gzip"),
        ("gzip;q=0.1, deflate;q=1.0", "gzip"),
        # everything else falls back to deflate
        ("deflate", "deflate"),
        ("identity", "deflate"),
        ("*", "deflate"),
        ("", "deflate"),
        # raw substring containment
        ("x-gzip-custom", "gzip"),
        ("Gzip", "deflate"),
        ("GZIP, BR", "deflate"),
    ],
)
def test_default_selection(accept_encoding, expected_encoding):
    assert Negotiator().select(accept_encoding) == expected_encoding
    result = negotiate(ContentPayload(b"x" * 100, "text/plain"), accept_encoding)
    assert result.headers["Content-Encoding"] == expected_encoding


@pytest.mark.parametrize(
    "accept_encoding, expected_encoding",
    [
        ("Gzip", "gzip"),
        ("GZIP, BR", "br"),
        ("x-gzip-custom", "deflate"),
        ("gzip;q=0.5 zstd", "zstd"),
        ("gzip; q=0.5", "gzip"),
        ("", "deflate"),
    ],
)
def test_token_selection(accept_encoding, expected_encoding):
    negotiator = Negotiator(NegotiatorConfig(match="token"))
    assert negotiator.select(accept_encoding) == expected_encoding


def test_parse_tokens():
    assert parse_tokens("gzip, deflate,BR;q=0.5  zstd") == frozenset(
        {"gzip", "deflate", "br", "zstd"}
    )
    assert parse_tokens("") == frozenset()


def test_rank_orders_by_priority():
    assert rank({"gzip": 2, "zstd": 0, "br": 1, "deflate": 3}) == (
        "zstd",
        "br",
        "gzip",
        "deflate",
    )


def test_preferred_encoding_is_cached():
    get_preferred_encoding.cache_clear()
    get_preferred_encoding("gzip, br")
    get_preferred_encoding("gzip, br")
    assert get_preferred_encoding.cache_info().hits == 1


def test_custom_priorities():
    config = NegotiatorConfig(priorities={"gzip": 0, "br": 1}, fallback="gzip")
    negotiator = Negotiator(config)
    assert negotiator.select("br, gzip") == "gzip"
    assert negotiator.select("zstd, br") == "br"
    assert negotiator.select("zstd") == "gzip"


# --- Configuration -----------------------------------------------------------


@pytest.mark.parametrize(
    "kwargs",
    [
        {"priorities": {"lzma": 0}},
        {"fallback": "identity"},
        {"match": "regex"},
        {"levels": {"lzma": 9}},
    ],
)
def test_invalid_config(kwargs):
    with pytest.raises(ValueError):
        NegotiatorConfig(**kwargs)


def test_config_is_immutable():
    priorities = {"gzip": 0}
    config = NegotiatorConfig(priorities=priorities)
    priorities["br"] = 1

    assert dict(config.priorities) == {"gzip": 0}
    with pytest.raises(TypeError):
        config.priorities["br"] = 1
    with pytest.raises(TypeError):
        config.levels["gzip"] = 1


def test_config_levels_override_defaults():
    config = NegotiatorConfig(levels={"gzip": 9})
    assert config.levels["gzip"] == 9
    assert config.levels["br"] == 11

    payload = ContentPayload(CSS, "text/css")
    body, _ = Negotiator(config).negotiate(payload, "gzip")
    assert body == gzip.compress(CSS.encode(), compresslevel=9, mtime=0)


# --- Negotiation results -----------------------------------------------------


def test_css_scenario():
    result = negotiate(ContentPayload(b"body{color:red}", "text/css"), "gzip, deflate, br")
    assert result.headers == {"Content-Encoding": "br", "Content-Type": "text/css"}
    assert brotli.decompress(result.body) == b"body{color:red}"


def test_empty_font_scenario():
    body, headers = negotiate(ContentPayload(b"", "font/ttf"), "")
    assert headers == {"Content-Encoding": "deflate", "Content-Type": "font/ttf"}
    assert body
    assert body == zlib.compress(b"", 6)
    assert zlib.decompress(body) == b""


def test_text_html_zstd_scenario():
    text = "<html><body>héllo wörld</body></html>"
    body, headers = negotiate(ContentPayload(text, "text/html"), "zstd")
    assert headers["Content-Encoding"] == "zstd"
    assert zstd.decompress(body).decode("utf-8") == text


def test_mixed_case_gzip_falls_back_to_deflate():
    body, headers = negotiate(ContentPayload(b"x" * 100, "text/plain"), "Gzip")
    assert headers["Content-Encoding"] == "deflate"
    assert zlib.decompress(body) == b"x" * 100


@pytest.mark.parametrize("encoding", ["zstd", "br", "gzip", "deflate"])
@pytest.mark.parametrize(
    "payload",
    [
        ContentPayload(CSS, "text/css"),
        ContentPayload(FONT, "font/ttf"),
        ContentPayload(b"", "application/octet-stream"),
    ],
)
def test_decompresses_to_original(encoding, payload):
    body, headers = negotiate(payload, encoding)
    assert headers["Content-Encoding"] == encoding
    assert headers["Content-Type"] == payload.media_type
    assert DECOMPRESSORS[encoding](body) == payload.to_bytes()


@pytest.mark.parametrize("encoding", ["zstd", "br", "gzip", "deflate"])
def test_text_and_bytes_compress_alike(encoding):
    as_text = negotiate(ContentPayload(CSS, "text/css"), encoding)
    as_bytes = negotiate(ContentPayload(CSS.encode("utf-8"), "text/css"), encoding)
    assert as_text == as_bytes


def test_negotiation_is_deterministic():
    payload = ContentPayload(JS, "text/javascript")
    assert negotiate(payload, "gzip") == negotiate(payload, "gzip")


def test_concurrent_negotiation():
    cases = [
        ("gzip, deflate, br, zstd", "zstd"),
        ("gzip, deflate, br", "br"),
        ("gzip", "gzip"),
        ("", "deflate"),
    ] * 25
    payload = ContentPayload(CSS, "text/css")

    with ThreadPoolExecutor(max_workers=8) as executor:
        results = list(
            executor.map(lambda case: negotiate(payload, case[0]), cases)
        )

    for (_, expected_encoding), (body, headers) in zip(cases, results):
        assert headers["Content-Encoding"] == expected_encoding
        assert decompress(expected_encoding, body) == CSS.encode()


def test_compression_errors_propagate(monkeypatch):
    def broken(encoding, data, level=None):
        raise zlib.error("corrupted state")

    monkeypatch.setattr(negotiation, "compress", broken)
    with pytest.raises(zlib.error):
        negotiate(ContentPayload(b"abc", "text/plain"), "")


def test_compress_uses_default_level():
    assert compress("deflate", b"abc") == zlib.compress(b"abc", 6)
    assert decompress("deflate", compress("deflate", b"abc")) == b"abc"


def test_negotiation_logs_sizes(caplog):
    with caplog.at_level("DEBUG", logger="webperf.negotiation"):
        negotiate(ContentPayload(CSS, "text/css"), "br")

    record = caplog.records[-1]
    assert record.encoding == "br"
    assert record.media_type == "text/css"
    assert record.original_size == len(CSS)
    assert record.compressed_size < len(CSS)


# --- Content sources ---------------------------------------------------------


@pytest.mark.parametrize(
    "filename, media_type",
    [
        ("styles.css", "text/css"),
        ("app.js", "text/javascript"),
        ("index.html", "text/html"),
        ("Roboto.ttf", "font/ttf"),
        ("photo.png", "image/png"),
        ("blob.unknownext", "application/octet-stream"),
    ],
)
def test_file_source_media_type(tmp_path, filename, media_type):
    assert FileSource(tmp_path / filename).media_type == media_type


def test_text_source_is_read_as_text(site_dir):
    payload = ContentPayload.from_source(FileSource(site_dir / "styles.css"))
    assert payload.is_text
    assert payload.body == CSS


def test_binary_source_is_read_as_bytes(site_dir):
    payload = ContentPayload.from_source(
        FileSource(site_dir / "assets" / "fonts" / "Roboto.ttf")
    )
    assert not payload.is_text
    assert payload.body == FONT


def test_text_source_keeps_line_endings(tmp_path):
    path = tmp_path / "styles.css"
    path.write_bytes(b"body{color:red}\r\nh1{margin:0}\r\n")

    payload = ContentPayload.from_source(FileSource(path))
    body, _ = negotiate(payload, "gzip")
    assert gzip.decompress(body) == path.read_bytes()


def test_text_source_with_invalid_utf8(tmp_path):
    path = tmp_path / "styles.css"
    path.write_bytes(b"body{content:'caf\xe9'}")

    payload = ContentPayload.from_source(FileSource(path))
    assert payload.body == "body{content:'caf\ufffd'}"


def test_missing_source(tmp_path):
    with pytest.raises(SourceReadFailure) as exc_info:
        ContentPayload.from_source(FileSource(tmp_path / "missing.css"))
    assert exc_info.value.path == tmp_path / "missing.css"
    assert isinstance(exc_info.value.__cause__, FileNotFoundError)


# --- Demo site ---------------------------------------------------------------


@pytest.mark.parametrize(
    "path, expected_body, cache_control",
    [
        ("/", "<html>bad</html>", "no-cache"),
        ("/bad", "<html>bad</html>", "no-cache"),
        ("/bad.html", "<html>bad</html>", "no-cache"),
        ("/good", "<html>good</html>", "public, max-age=300"),
        ("/good.html", "<html>good</html>", "public, max-age=300"),
    ],
)
def test_pages(client, path, expected_body, cache_control):
    response = client.get(path, headers={"accept-encoding": "gzip"})
    assert response.status_code == 200
    assert response.text == expected_body
    assert response.headers["Cache-Control"] == cache_control
    assert "Content-Encoding" not in response.headers


@pytest.mark.parametrize(
    "accept_encoding, expected_encoding",
    [
        ("gzip, deflate, br, zstd", "zstd"),
        ("gzip, deflate, br", "br"),
        ("gzip, deflate", "gzip"),
        ("", "deflate"),
    ],
)
def test_stylesheet_is_negotiated(client, accept_encoding, expected_encoding):
    response, body = raw_get(client, "/styles.css", **{"accept-encoding": accept_encoding})
    assert response.status_code == 200
    assert response.headers["Content-Encoding"] == expected_encoding
    assert response.headers["Content-Type"] == "text/css"
    assert response.headers["Vary"] == "Accept-Encoding"
    assert int(response.headers["Content-Length"]) == len(body)
    assert decompress(expected_encoding, body) == CSS.encode()


def test_script_cache_follows_referer(client):
    response, body = raw_get(
        client,
        "/app.js",
        **{"accept-encoding": "br", "referer": "http://testserver/good"},
    )
    assert response.headers["Cache-Control"] == "public, max-age=31536000"
    assert response.headers["Content-Type"] == "text/javascript"
    assert brotli.decompress(body) == JS.encode()

    response, _ = raw_get(
        client,
        "/app.js",
        **{"accept-encoding": "br", "referer": "http://testserver/bad"},
    )
    assert response.headers["Cache-Control"] == "no-cache"


def test_font(client):
    response, body = raw_get(
        client,
        "/assets/fonts/Roboto.ttf",
        **{"accept-encoding": "zstd", "referer": "http://testserver/good"},
    )
    assert response.status_code == 200
    assert response.headers["Content-Encoding"] == "zstd"
    assert response.headers["Content-Type"] == "font/ttf"
    assert response.headers["Cache-Control"] == "public, max-age=31536000, immutable"
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert zstd.decompress(body) == FONT


def test_font_without_caching_keeps_cors(client):
    response, _ = raw_get(client, "/assets/fonts/Roboto.ttf", **{"accept-encoding": "gzip"})
    assert response.headers["Cache-Control"] == "no-cache"
    assert response.headers["Access-Control-Allow-Origin"] == "*"


@pytest.mark.parametrize(
    "path",
    ["/missing", "/assets/fonts/Missing.ttf", "/assets/fonts/Roboto.woff"],
)
def test_not_found(client, path):
    response = client.get(path, headers={"accept-encoding": "gzip"})
    assert response.status_code == 404
    assert response.text == "Page not found"


def test_latin1_stylesheet_is_served(client, site_dir):
    (site_dir / "styles.css").write_bytes(b"body{content:'caf\xe9'}\r\n")

    response, body = raw_get(client, "/styles.css", **{"accept-encoding": "gzip"})
    assert response.status_code == 200
    assert gzip.decompress(body) == "body{content:'caf\ufffd'}\r\n".encode("utf-8")


def test_missing_asset_file(test_client_factory, site_dir):
    (site_dir / "styles.css").unlink()
    (site_dir / "good.html").unlink()
    client = test_client_factory(create_app(Settings(site_dir=site_dir)))

    for path in ("/styles.css", "/good"):
        response = client.get(path, headers={"accept-encoding": "br"})
        assert response.status_code == 404
        assert response.text == "Page not found"


def test_compression_fault_is_server_error(test_client_factory, site_dir, monkeypatch):
    def broken(encoding, data, level=None):
        raise zlib.error("corrupted state")

    monkeypatch.setattr(negotiation, "compress", broken)
    client = test_client_factory(
        create_app(Settings(site_dir=site_dir)), raise_server_exceptions=False
    )
    response = client.get("/styles.css", headers={"accept-encoding": "gzip"})
    assert response.status_code == 500

    # Other requests are unaffected
    assert client.get("/bad").status_code == 200


def test_token_match_setting(test_client_factory, site_dir):
    app = create_app(Settings(site_dir=site_dir, match="token"))
    client = test_client_factory(app)
    response, body = raw_get(client, "/styles.css", **{"accept-encoding": "GZIP"})
    assert response.headers["Content-Encoding"] == "gzip"
    assert gzip.decompress(body) == CSS.encode()


@pytest.mark.parametrize(
    "media_type, good, is_font, expected",
    [
        ("text/css", False, False, "no-cache"),
        ("font/ttf", False, True, "no-cache"),
        ("text/html", True, False, "public, max-age=300"),
        ("text/css", True, False, "public, max-age=31536000"),
        ("font/ttf", True, True, "public, max-age=31536000, immutable"),
    ],
)
def test_cache_control_for(media_type, good, is_font, expected):
    assert cache_control_for(media_type, good, is_font) == expected


def test_cli_overrides_settings(tmp_path):
    base = Settings(site_dir=tmp_path, port=3001)
    args = parse_args(["--port", "8080", "--match", "token"])
    settings = settings_from_args(args, base)

    assert settings.port == 8080
    assert settings.match == "token"
    assert settings.site_dir == tmp_path
    assert settings.host == base.host


def test_config_without_env_file_does_not_warn(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        importlib.reload(config_module)
    assert [str(w.message) for w in caught] == []
