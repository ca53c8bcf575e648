import pytest

from vara.url import DialURL, parse_url


def test_parse_hf_url_with_params():
    url = parse_url("varahf:///LA1B?bw=2300&p2p=true")
    assert url.scheme == "varahf"
    assert url.target == "LA1B"
    assert url.host == ""
    assert url.param("bw") == "2300"
    assert url.param("p2p") == "true"


def test_missing_param_is_empty():
    url = parse_url("varafm:///LA1B")
    assert url.param("bw") == ""
    assert url.params == {}


def test_first_value_wins():
    url = parse_url("varafm:///LA1B?bw=500&bw=2750")
    assert url.param("bw") == "500"
    assert url.params["bw"] == ("500", "2750")


def test_host_is_parsed():
    url = parse_url("varafm://localhost/LA1B")
    assert url.host == "localhost"
    assert url.target == "LA1B"


def test_blank_value_is_kept():
    url = parse_url("varahf:///LA1B?p2p=")
    assert "p2p" in url.params
    assert url.param("p2p") == ""


def test_constructed_url_param():
    url = DialURL(scheme="varafm", target="N0CALL", params={"bw": ("2300",)})
    assert url.param("bw") == "2300"


@pytest.mark.parametrize("text", ["LA1B", "/LA1B", "varahf://", "varahf:///", "varahf:///?bw=500"])
def test_invalid_urls_raise(text):
    with pytest.raises(ValueError):
        parse_url(text)