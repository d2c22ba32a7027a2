"""Tests for snippet download naming."""

from snipshare.services.snippet import download_filename, sanitize_filename


class TestDownloadFilename:
    """Tests for snippet download names."""

    def test_sanitize(self):
        assert sanitize_filename("Hello World") == "Hello_World"
        assert sanitize_filename("../../etc/passwd") == ".._.._etc_passwd"
        assert sanitize_filename('quote"and;semicolon') == "quote_and_semicolon"
        assert sanitize_filename("한글 제목") == "snippet"
        assert sanitize_filename("") == "snippet"

    def test_extension(self):
        class _Snippet:
            title = "main"
            language = "Rust"

        assert download_filename(_Snippet()) == "main.rs"
        _Snippet.language = None
        assert download_filename(_Snippet()) == "main.txt"
