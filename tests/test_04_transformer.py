"""
Tests for narration text transformation.

Tests cover:
- Name resolution (display_name > name > none, literal empty-string check)
- Note prefix and reaction sentence
- URL substitution (scheme and bare-domain forms)
- NIP-19 identifier compaction
- Character-based truncation
"""
import pytest

from nostr_narrator.core.config import TransformConfig
from nostr_narrator.narration.transformer import Transformer, find_links
from nostr_narrator.nostr.event import Event, EventKind, ProfileMetadata

NPUB = "npub1xajyg2w6kvslletelz9z94jecdsjmg7jqgrgcn8zvjz78k2sq5fslch3pq"


def make_event(content: str = "", kind: int = 1) -> Event:
    return Event(id="e" * 64, pubkey="a" * 64, created_at=1_700_000_000, kind=kind, content=content)


@pytest.fixture
def transformer():
    return Transformer(TransformConfig())


class TestNameResolution:

    def test_display_name_preferred(self, transformer):
        md = ProfileMetadata(display_name="アリス", name="alice")
        assert transformer.resolve_name(md) == "アリス"

    def test_falls_back_to_name(self, transformer):
        assert transformer.resolve_name(ProfileMetadata(display_name="", name="alice")) == "alice"
        assert transformer.resolve_name(ProfileMetadata(name="alice")) == "alice"

    def test_no_name(self, transformer):
        assert transformer.resolve_name(None) is None
        assert transformer.resolve_name(ProfileMetadata()) is None
        assert transformer.resolve_name(ProfileMetadata(display_name="", name="")) is None

    def test_whitespace_name_is_kept(self, transformer):
        """Only the literal empty string counts as missing."""
        assert transformer.resolve_name(ProfileMetadata(display_name=" ", name="alice")) == " "

    def test_read_name_disabled(self):
        t = Transformer(TransformConfig(read_name=False))
        assert t.resolve_name(ProfileMetadata(name="alice")) is None
        assert t.transform_note(make_event("hi"), ProfileMetadata(name="alice")) == "hi"


class TestNote:

    def test_prefix_with_name(self, transformer):
        text = transformer.transform_note(make_event("おはよう"), ProfileMetadata(name="alice"))
        assert text == "aliceさん、おはよう"

    def test_no_prefix_without_metadata(self, transformer):
        assert transformer.transform_note(make_event("おはよう"), None) == "おはよう"

    def test_empty_content(self, transformer):
        assert transformer.transform_note(make_event(""), None) == ""

    def test_prefix_not_counted_in_truncation(self):
        t = Transformer(TransformConfig(max_length=3, ellipsis_text="…"))
        assert t.transform_note(make_event("abcdef"), ProfileMetadata(name="bob")) == "bobさん、abc…"


class TestReaction:

    def test_fixed_sentence_with_name(self, transformer):
        md = ProfileMetadata(display_name="アリス")
        assert transformer.transform_reaction(make_event("+", kind=7), md) == "アリスさんからリアクション受信。"

    @pytest.mark.parametrize("content", ["+", "-", "🤙", "https://example.com/" + "x" * 500, NPUB])
    def test_content_never_read(self, transformer, content):
        md = ProfileMetadata(name="bob")
        assert transformer.transform_reaction(make_event(content, kind=7), md) == "bobさんからリアクション受信。"

    def test_without_name(self, transformer):
        assert transformer.transform_reaction(make_event("+", kind=7), None) == "リアクション受信。"

    def test_not_truncated(self):
        t = Transformer(TransformConfig(max_length=2))
        assert t.transform_reaction(make_event("+", kind=7), ProfileMetadata(name="alice")) == \
            "aliceさんからリアクション受信。"


class TestLinks:

    def test_scheme_url_replaced(self, transformer):
        assert transformer.transform_note(make_event("check http://x.test/y now"), None) == "check URL省略 now"

    def test_placeholder_idempotent(self, transformer):
        assert transformer.replace_urls("URL省略") == "URL省略"
        assert transformer.transform_note(make_event("URL省略"), None) == "URL省略"

    def test_bare_domain_replaced(self, transformer):
        assert transformer.replace_urls("see example.com/page for more") == "see URL省略 for more"

    def test_every_occurrence_replaced(self, transformer):
        text = "https://a.example/1 and https://a.example/1 and https://b.example"
        assert transformer.replace_urls(text) == "URL省略 and URL省略 and URL省略"

    def test_japanese_around_url(self, transformer):
        assert transformer.replace_urls("これ見てhttps://nostr.example/p/1です") == "これ見てURL省略です"

    def test_trailing_punctuation_kept(self, transformer):
        assert transformer.replace_urls("read https://x.test/a.") == "read URL省略."
        assert transformer.replace_urls("(https://x.test/a)") == "(URL省略)"

    def test_custom_placeholder(self):
        t = Transformer(TransformConfig(url_alternative_text="リンク"))
        assert t.replace_urls("go https://x.test") == "go リンク"

    def test_email_is_not_a_link(self):
        assert find_links("mail me at someone@example.com") == []

    def test_links_in_order(self):
        assert find_links("https://b.example then nostr.com") == ["https://b.example", "nostr.com"]

    @pytest.mark.parametrize("text", [
        "Mr.Smith です",
        "node.jsで書いた",
        "README.mdを読んで",
        "version.upしました",
        "main.py を直した",
        "user.name is empty",
    ])
    def test_dotted_words_are_not_links(self, transformer, text):
        assert find_links(text) == []
        assert transformer.replace_urls(text) == text

    def test_bare_domain_needs_known_tld(self):
        assert find_links("nostr.example.co.jp/p/1 と damus.io") == ["nostr.example.co.jp/p/1", "damus.io"]

    def test_www_prefix_accepts_any_tld(self):
        assert find_links("see www.example.md") == ["www.example.md"]

    def test_scheme_accepts_any_tld(self):
        assert find_links("see https://docs.rs/tokio") == ["https://docs.rs/tokio"]


class TestIdentifiers:

    def test_npub_compacted(self, transformer):
        assert transformer.transform_note(make_event(f"hello {NPUB} test"), None) == "hello npub test"

    @pytest.mark.parametrize("prefix", ["nsec", "npub", "note", "nprofile", "nevent", "nrelay", "naddr"])
    def test_all_prefixes(self, prefix):
        assert Transformer.compact_identifiers(f"x {prefix}1qqqqq y") == f"x {prefix} y"

    def test_nostr_uri_compacted(self):
        assert Transformer.compact_identifiers("nostr:note1qqqq") == "nostr:note"

    def test_plain_words_untouched(self):
        assert Transformer.compact_identifiers("notebook note npub") == "notebook note npub"


class TestTruncation:

    def test_truncate(self):
        t = Transformer(TransformConfig(max_length=5, ellipsis_text="…"))
        assert t.transform_note(make_event("abcdefgh"), None) == "abcde…"

    def test_exact_length_untouched(self):
        t = Transformer(TransformConfig(max_length=5, ellipsis_text="…"))
        assert t.truncate("abcde") == "abcde"

    def test_counts_characters_not_bytes(self):
        t = Transformer(TransformConfig(max_length=3, ellipsis_text="以下略"))
        assert t.truncate("あいうえお") == "あいう以下略"
        assert t.truncate("あいう") == "あいう"

    def test_applied_after_substitution(self):
        t = Transformer(TransformConfig(max_length=10, ellipsis_text="…"))
        # the raw URL is long, the placeholder is short
        assert t.transform_note(make_event("https://example.com/" + "x" * 80), None) == "URL省略"


def test_event_kind_mapping():
    assert make_event(kind=1).event_kind is EventKind.TEXT_NOTE
    assert make_event(kind=7).event_kind is EventKind.REACTION
    assert make_event(kind=42).event_kind is EventKind.OTHER
