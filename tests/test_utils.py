from suns_reader.utils import get_domain, normalize_url


class TestNormalizeUrl:
    def test_equivalent_urls_normalize_identically(self) -> None:
        a = normalize_url("https://WWW.Example.com/a/?b=2&a=1#frag")
        b = normalize_url("https://example.com/a?a=1&b=2")
        assert a == b == "https://example.com/a?a=1&b=2"

    def test_strips_utm_and_tracking_params(self) -> None:
        assert normalize_url("https://x.com/?utm_source=x&gclid=1&q=2") == "https://x.com/?q=2"

    def test_tracking_param_names_are_case_insensitive(self) -> None:
        url = "https://x.com/story?UTM_Medium=email&FBCLID=abc&Ref=home&s=1&id=7"
        assert normalize_url(url) == "https://x.com/story?id=7"

    def test_all_known_trackers_removed(self) -> None:
        url = "https://x.com/p?mc_cid=1&mc_eid=2&ref_src=3&cmpid=4&utm_campaign=5"
        assert normalize_url(url) == "https://x.com/p"

    def test_sorts_by_name_then_value(self) -> None:
        assert normalize_url("https://x.com/p?b=1&a=2&a=1") == "https://x.com/p?a=1&a=2&b=1"

    def test_root_path_keeps_slash(self) -> None:
        assert normalize_url("https://example.com/") == "https://example.com/"
        assert normalize_url("https://example.com") == "https://example.com/"

    def test_trailing_slash_removed(self) -> None:
        assert normalize_url("https://example.com/news/suns/") == "https://example.com/news/suns"

    def test_is_idempotent(self) -> None:
        urls = [
            "https://WWW.Example.com/a/?b=2&a=1#frag",
            "http://www.www.example.com/a//",
            "https://example.com:8443/x?q=hello+world&z=%2F",
            "https://news.example.com/?utm_source=rss",
            "https://user@Example.com/p/?k=",
        ]
        for url in urls:
            once = normalize_url(url)
            assert normalize_url(once) == once

    def test_default_port_dropped_custom_port_kept(self) -> None:
        assert normalize_url("https://example.com:443/a") == "https://example.com/a"
        assert normalize_url("https://example.com:8443/a") == "https://example.com:8443/a"

    def test_blank_values_preserved(self) -> None:
        assert normalize_url("https://example.com/a?k=") == "https://example.com/a?k="

    def test_unparsable_input_returned_unchanged(self) -> None:
        assert normalize_url("not a url") == "not a url"
        assert normalize_url("/relative/path?utm_source=x") == "/relative/path?utm_source=x"
        assert normalize_url("http://[::1") == "http://[::1"


class TestGetDomain:
    def test_lowercases_and_strips_www(self) -> None:
        assert get_domain("https://WWW.ESPN.com/nba/story") == "espn.com"

    def test_unknown_for_garbage(self) -> None:
        assert get_domain("nonsense") == "unknown"
