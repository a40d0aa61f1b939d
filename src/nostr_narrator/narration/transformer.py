"""
Narration Text Transformer.

Turns an event plus (optional) author metadata into the sentence that is
sent to the speech backend. Pure and never raises.

Text note pipeline (fixed order):
    1. Name resolution     display_name, else name, else nothing
    2. Author prefix       "<name>さん、"
    3. Link substitution   every detected URL → url_alternative_text
    4. Identifier compaction  npub1qqq... → "npub"
    5. Truncation          > max_length chars → first max_length + ellipsis_text

Reactions never read their content:
    "<name>さんからリアクション受信。" or "リアクション受信。"

Example:
    >>> t = Transformer(TransformConfig())
    >>> t.transform_note(event, ProfileMetadata(name="alice"))
    'aliceさん、check URL省略 now'
"""
from __future__ import annotations

import re
from typing import List, Optional

from nostr_narrator.core.config import TransformConfig
from nostr_narrator.nostr.event import Event, ProfileMetadata

# Scheme + authority: http://..., https://..., ftp://...
# Bare domain: example.com, www.example.co.jp/path (not part of an e-mail address)
_URL_RE = re.compile(
    r"""
    (?:
        [A-Za-z][A-Za-z0-9+.\-]*://[A-Za-z0-9\-._~:/?#\[\]@!$&'()*+,;=%]+
    |
        (?<![A-Za-z0-9_@.\-/])
        (?:[A-Za-z0-9](?:[A-Za-z0-9\-]{0,61}[A-Za-z0-9])?\.)+[A-Za-z]{2,63}
        (?::\d{1,5})?
        (?:/[A-Za-z0-9\-._~:/?#\[\]@!$&'()*+,;=%]*)?
        (?![A-Za-z0-9_@])
    )
    """,
    re.VERBOSE,
)

_TRAILING_PUNCT = ".,:;!?'\""

# Bare domains only count when the last label is one of these. TLDs that
# double as file extensions (md, py, rs, sh, pl) or everyday words (in, to,
# name, page) are left out; those need a scheme or a www. prefix.
_BARE_TLDS = frozenset("""
    com net org edu gov mil info biz io co me tv fm ly gg ai dev app xyz
    club blog cloud social moe tokyo jp us uk de fr eu ca au nz cn kr tw hk
    sg th vn ph ru ua br ar mx cl es nl be ch se fi dk ie cz sk hu ro bg gr
    tr il za
""".split())

# NIP-19 bech32 entities
_NIP19_RE = re.compile(r"(nsec|npub|note|nprofile|nevent|nrelay|naddr)1[0-9ac-hj-np-z]+")


def _trim_link(link: str) -> str:
    """Drop sentence punctuation and unbalanced closing brackets from a match."""
    while link:
        last = link[-1]
        if last in _TRAILING_PUNCT:
            link = link[:-1]
        elif last == ")" and link.count("(") < link.count(")"):
            link = link[:-1]
        elif last == "]" and link.count("[") < link.count("]"):
            link = link[:-1]
        else:
            break
    return link


def _is_link(candidate: str) -> bool:
    if "://" in candidate:
        return True
    host = re.split(r"[:/]", candidate, maxsplit=1)[0].lower()
    if host.startswith("www."):
        return True
    return host.rsplit(".", 1)[-1] in _BARE_TLDS


def find_links(text: str) -> List[str]:
    """URLs in `text`, in order of appearance."""
    links = []
    for m in _URL_RE.finditer(text):
        link = _trim_link(m.group(0))
        if link and _is_link(link):
            links.append(link)
    return links


class Transformer:
    """Builds narration text from events."""

    def __init__(self, config: Optional[TransformConfig] = None):
        self.config = config or TransformConfig()

    def resolve_name(self, metadata: Optional[ProfileMetadata]) -> Optional[str]:
        """
        Name to read for an author.

        Only the empty string counts as missing; whitespace-only names are
        read as they are.
        """
        if metadata is None or not self.config.read_name:
            return None
        if metadata.display_name is not None and metadata.display_name != "":
            return metadata.display_name
        if metadata.name is not None and metadata.name != "":
            return metadata.name
        return None

    def transform_note(self, event: Event, metadata: Optional[ProfileMetadata]) -> str:
        name = self.resolve_name(metadata)
        prefix = f"{name}さん、" if name is not None else ""

        text = self.replace_urls(event.content)
        text = self.compact_identifiers(text)
        text = self.truncate(text)
        return prefix + text

    def transform_reaction(self, event: Event, metadata: Optional[ProfileMetadata]) -> str:
        name = self.resolve_name(metadata)
        sender = f"{name}さんから" if name is not None else ""
        return f"{sender}リアクション受信。"

    def replace_urls(self, text: str) -> str:
        for link in find_links(text):
            text = text.replace(link, self.config.url_alternative_text)
        return text

    @staticmethod
    def compact_identifiers(text: str) -> str:
        return _NIP19_RE.sub(r"\1", text)

    def truncate(self, text: str) -> str:
        # str length counts code points, so multi-byte characters count once
        if len(text) > self.config.max_length:
            return text[: self.config.max_length] + self.config.ellipsis_text
        return text
