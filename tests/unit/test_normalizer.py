"""Unit tests for entry normalization."""

import random
import string
from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from sieve.ingestion.interfaces import RawEntry
from sieve.ingestion.normalizer import normalize, identity_key, content_hash


class TestIdentityKey:
    """Tests for identity key precedence."""

    def test_guid_takes_precedence(self, sample_raw_entry):
        """Entries with a guid are keyed by it alone."""
        moved = replace(sample_raw_entry, link="https://mirror.example.com/x", title="Renamed")
        assert normalize("f", sample_raw_entry).identity_key == normalize("f", moved).identity_key

    def test_link_and_date_without_guid(self, sample_raw_entry):
        """Without a guid, link and published date form the key."""
        raw = replace(sample_raw_entry, guid=None)
        same = replace(raw, title="Edited title", content="Edited body")
        later = replace(raw, published=raw.published + timedelta(days=1))

        key = normalize("f", raw).identity_key
        assert normalize("f", same).identity_key == key
        assert normalize("f", later).identity_key != key

    def test_title_and_content_fallback(self):
        """With no guid or link, the visible text is the key."""
        a = RawEntry(title="Hello", content="World")
        b = RawEntry(title="Hello", content="World!")
        assert normalize("f", a).identity_key == normalize("f", RawEntry(title="Hello", content="World")).identity_key
        assert normalize("f", a).identity_key != normalize("f", b).identity_key

    def test_paths_do_not_collide(self):
        """A guid equal to a link does not produce the link-path key."""
        by_guid = identity_key("https://x.com/a", "", None, "", "")
        by_link = identity_key("", "https://x.com/a", None, "", "")
        assert by_guid != by_link

    def test_summary_markup_does_not_change_key(self, sample_raw_entry):
        """Cosmetic summary changes keep the key stable."""
        restyled = replace(sample_raw_entry, summary="<b>Test Company</b> raises $50M")
        assert normalize("f", restyled).identity_key == normalize("f", sample_raw_entry).identity_key

    def test_whitespace_around_guid_ignored(self, sample_raw_entry):
        padded = replace(sample_raw_entry, guid=f"  {sample_raw_entry.guid}\n")
        assert normalize("f", padded).identity_key == normalize("f", sample_raw_entry).identity_key

    def test_key_format(self, sample_raw_entry):
        key = normalize("f", sample_raw_entry).identity_key
        assert len(key) == 64
        assert all(c in string.hexdigits for c in key)


class TestNormalize:
    """Tests for normalize()."""

    def test_fields_copied(self, sample_raw_entry):
        entry = normalize("techcrunch", sample_raw_entry)
        assert entry.feed_id == "techcrunch"
        assert entry.title == sample_raw_entry.title
        assert entry.link == sample_raw_entry.link
        assert entry.published_at == sample_raw_entry.published
        assert len(entry.content_hash) == 32

    def test_content_hash_tracks_edits(self, sample_raw_entry):
        """An edited body keeps the key but changes the content hash."""
        edited = replace(sample_raw_entry, content="Correction: $60 million.")
        a, b = normalize("f", sample_raw_entry), normalize("f", edited)
        assert a.identity_key == b.identity_key
        assert a.content_hash != b.content_hash

    def test_summary_used_when_no_content(self):
        raw = RawEntry(title="T", summary="S")
        assert normalize("f", raw).content_hash == content_hash("T", "S")

    def test_empty_entry_does_not_raise(self):
        entry = normalize("f", RawEntry())
        assert entry.title == ""
        assert entry.link == ""
        assert entry.published_at is None
        assert entry.identity_key

    def test_odd_field_types_do_not_raise(self):
        """Non-string values from a sloppy parser are coerced, not rejected."""
        raw = RawEntry(guid=12345, title=None, link=b"https://example.com/b", published="yesterday")
        entry = normalize("f", raw)
        assert entry.link == "https://example.com/b"
        assert entry.title == ""
        assert entry.published_at is None
        assert entry.identity_key == normalize("f", RawEntry(guid="12345")).identity_key

    def test_payload_is_json(self, sample_raw_entry):
        import json
        payload = json.loads(normalize("f", sample_raw_entry).to_payload())
        assert payload["feed_id"] == "f"
        assert payload["published_at"] == "2024-01-01T12:00:00"
        assert set(payload) == {"feed_id", "identity_key", "title", "link", "published_at", "content_hash"}


def _random_text(rng: random.Random, max_len: int = 40):
    choice = rng.random()
    if choice < 0.15:
        return None
    if choice < 0.25:
        return ""
    alphabet = string.ascii_letters + string.digits + " <>/&\"'éü漢\n\t"
    return "".join(rng.choice(alphabet) for _ in range(rng.randint(1, max_len)))


def _random_entry(rng: random.Random) -> RawEntry:
    published = None
    if rng.random() < 0.6:
        published = datetime(2020, 1, 1) + timedelta(seconds=rng.randint(0, 10 ** 8))
    return RawEntry(
        guid=_random_text(rng),
        title=_random_text(rng),
        link=_random_text(rng),
        published=published,
        summary=_random_text(rng, 200),
        content=_random_text(rng, 200),
    )


@pytest.mark.parametrize("seed", range(25))
def test_normalize_is_deterministic(seed):
    """Fuzzed entries always normalize to the same Entry."""
    rng = random.Random(seed)
    for _ in range(20):
        raw = _random_entry(rng)
        first = normalize("fuzz", raw)
        copy = replace(raw)
        assert normalize("fuzz", copy) == first
        assert normalize("fuzz", raw).identity_key == first.identity_key
