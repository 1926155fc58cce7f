import logging
import pytest

from htm.config.routes import ConfigReadError, load_route_table, parse_route_lines


def test_each_hostname_becomes_a_route():
    table = parse_route_lines([
        "http://127.0.0.1:9001 api.example.com",
        "http://127.0.0.1:9002 www.example.com example.org",
    ])

    assert set(table) == {"api.example.com", "www.example.com", "example.org"}
    assert table["api.example.com"].port == 9001
    assert table["example.org"].port == 9002
    assert table["www.example.com"] is table["example.org"]


def test_blank_lines_and_comments_are_skipped(caplog):
    caplog.set_level(logging.WARNING)
    table = parse_route_lines([
        "",
        "   ",
        "# http://127.0.0.1:1 commented.example",
        "   # indented comment",
        "http://127.0.0.1:9001 api.example.com",
    ])

    assert list(table) == ["api.example.com"]
    assert caplog.text == ""


def test_inline_comment_stops_hostnames():
    table = parse_route_lines(["http://10.0.0.1:80 foo # bar baz"])

    assert list(table) == ["foo"]
    assert table["foo"].host == "10.0.0.1"


def test_hash_glued_to_token_starts_comment():
    table = parse_route_lines(["http://10.0.0.1 foo #bar baz"])
    assert list(table) == ["foo"]


def test_insufficient_fields_warns_and_continues(caplog):
    caplog.set_level(logging.WARNING)
    table = parse_route_lines(
        ["http://127.0.0.1:9001", "http://127.0.0.1:9002 ok.example"],
        source="htm.conf",
    )

    assert list(table) == ["ok.example"]
    assert "Ignoring invalid line htm.conf:1 (insufficient fields)" in caplog.text


@pytest.mark.parametrize("token", [
    "127.0.0.1:9001",
    "/just/a/path",
    "http://",
    "http://host:notaport",
])
def test_invalid_url_warns_and_continues(caplog, token):
    caplog.set_level(logging.WARNING)
    table = parse_route_lines(
        [f"{token} bad.example", "http://127.0.0.1:9002 ok.example"],
        source="htm.conf",
    )

    assert "bad.example" not in table
    assert "ok.example" in table
    assert "Ignoring invalid line htm.conf:1 (invalid url)" in caplog.text


def test_later_duplicate_wins_with_warning(caplog):
    caplog.set_level(logging.WARNING)
    table = parse_route_lines([
        "http://127.0.0.1:9001 dup.example",
        "http://127.0.0.1:9002 dup.example",
    ])

    assert table["dup.example"].port == 9002
    assert "Hostname 'dup.example' was assigned multiple ports, using http://127.0.0.1:9002" in caplog.text


def test_upstream_path_is_kept():
    table = parse_route_lines(["https://backend.internal:8443/prefix app.example"])
    upstream = table["app.example"]

    assert upstream.scheme == "https"
    assert upstream.host == "backend.internal"
    assert upstream.port == 8443
    assert upstream.path == "/prefix"


def test_load_from_file_is_repeatable(tmp_path):
    conf = tmp_path / "htm.conf"
    conf.write_text(
        "# htm routes\n"
        "http://127.0.0.1:9001 api.example.com\n"
        "http://127.0.0.1:9002 www.example.com  # main site\n"
        "http://127.0.0.1:9003 api.example.com\n"
    )

    first = load_route_table(conf)
    second = load_route_table(conf)

    assert first.as_dict() == second.as_dict()
    assert first["api.example.com"].port == 9003


def test_missing_file_is_fatal(tmp_path):
    missing = tmp_path / "nope.conf"
    with pytest.raises(ConfigReadError) as excinfo:
        load_route_table(missing)

    assert excinfo.value.source == str(missing)
    assert isinstance(excinfo.value.cause, FileNotFoundError)
    assert isinstance(excinfo.value, OSError)
    assert str(excinfo.value).startswith(f"could not read {missing}")


def test_read_error_mid_stream_is_fatal():
    def broken_lines():
        yield "http://127.0.0.1:9001 api.example.com"
        raise OSError("disk went away")

    with pytest.raises(ConfigReadError):
        parse_route_lines(broken_lines())


def test_undecodable_file_is_fatal(tmp_path):
    conf = tmp_path / "htm.conf"
    conf.write_bytes(b"http://127.0.0.1:9001 \xff\xfe.example\n")

    with pytest.raises(ConfigReadError):
        load_route_table(conf)
