"""Tests for the command-line interface."""

import json
from datetime import datetime
from pathlib import Path

import click
import pytest
from click.testing import CliRunner

from sitch.cli import SINCE_TIME, _find_source, main, sources_from_edit
from sitch.errors import ConfigError
from sitch.models import SourceKind, ensure_utc
from sitch.sources.base import new_source


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    """A config file pointing at a temporary file store."""
    monkeypatch.delenv("YOUTUBE_API_KEY", raising=False)
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"store_type": "file", "store_path": str(tmp_path / "data")}))
    return path


@pytest.fixture
def sitch(config_path):
    """Invoke sitch with the temporary config."""
    runner = CliRunner()

    def invoke(*args, **kwargs):
        return runner.invoke(main, ["-c", str(config_path), *args], **kwargs)

    return invoke


class TestSourceCommands:
    """Tests for the per-kind add/list/remove commands."""

    def test_add_list_remove(self, sitch):
        """A source can be added, listed and removed."""
        result = sitch("rss", "add", "https://example.com/feed.xml", "-n", "Example Feed")
        assert result.exit_code == 0, result.output
        assert "Added RSS source: Example Feed" in result.output

        result = sitch("rss", "list")
        assert result.exit_code == 0
        assert "Example Feed" in result.output
        assert "Feed URL" in result.output
        assert "https://example.com/feed.xml" in result.output

        result = sitch("rss", "remove", "1")
        assert result.exit_code == 0
        assert "Removed RSS source: Example Feed" in result.output

        result = sitch("rss", "list")
        assert "No RSS sources" in result.output

    def test_add_duplicate_fails(self, sitch):
        """Following the same source twice is an error."""
        sitch("rss", "add", "https://example.com/feed.xml")

        result = sitch("rss", "add", "https://example.com/feed.xml")

        assert result.exit_code == 1
        assert "already" in result.output

    def test_add_invalid_youtube_channel(self, sitch):
        """YouTube sources must be channel IDs."""
        result = sitch("youtube", "add", "northernlion")

        assert result.exit_code == 1
        assert "channel ID" in result.output

    def test_list_is_per_kind(self, sitch):
        """Each kind lists only its own sources."""
        sitch("anime", "add", "5114", "-n", "Fullmetal Alchemist: Brotherhood")

        listing = sitch("anime", "list").output
        assert "Fullmetal" in listing
        assert "Catalog ID" in listing
        assert "Fullmetal" not in sitch("rss", "list").output

    def test_remove_unknown(self, sitch):
        """Removing something that isn't followed is an error."""
        result = sitch("manga", "remove", "nothing")

        assert result.exit_code == 1
        assert "No Manga source matches 'nothing'" in result.output

    def test_edit(self, sitch, monkeypatch):
        """Editing replaces the kind's sources with the edited list."""
        sitch("rss", "add", "https://example.com/feed.xml", "-n", "Old Name")

        def fake_edit(text, extension=None):
            entries = json.loads(text)
            entries[0]["name"] = "New Name"
            entries.append({"identity": "https://other.com/rss", "name": "Other"})
            return json.dumps(entries)

        monkeypatch.setattr(click, "edit", fake_edit)
        result = sitch("rss", "edit")
        assert result.exit_code == 0, result.output
        assert "Saved 2 RSS sources" in result.output

        listing = sitch("rss", "list").output
        assert "New Name" in listing
        assert "Other" in listing

    def test_edit_invalid_json(self, sitch, monkeypatch):
        """Unparseable edits are rejected without changes."""
        sitch("rss", "add", "https://example.com/feed.xml", "-n", "Kept")
        monkeypatch.setattr(click, "edit", lambda text, extension=None: "[{")

        result = sitch("rss", "edit")

        assert result.exit_code == 1
        assert "Kept" in sitch("rss", "list").output


class TestApiKey:
    """Tests for the YouTube API key commands."""

    def test_set_show_clear(self, sitch, config_path):
        """The key is stored in the config file."""
        assert sitch("youtube", "apikey", "set", "-k", "secret-key").exit_code == 0
        assert json.loads(config_path.read_text())["credentials"] == {"youtube": "secret-key"}

        result = sitch("youtube", "apikey", "show")
        assert result.output.strip() == "secret-key"

        assert sitch("youtube", "apikey", "clear").exit_code == 0
        assert sitch("youtube", "apikey", "show").exit_code == 1

    def test_environment_wins(self, sitch, monkeypatch):
        """YOUTUBE_API_KEY overrides the stored key."""
        sitch("youtube", "apikey", "set", "-k", "stored")
        monkeypatch.setenv("YOUTUBE_API_KEY", "from-env")

        assert sitch("youtube", "apikey", "show").output.strip() == "from-env"


class TestRun:
    """Tests for the main aggregation command."""

    def test_empty_run(self, sitch):
        """With nothing followed a run prints nothing and succeeds."""
        result = sitch()

        assert result.exit_code == 0
        assert result.output == ""

    def test_last_checked(self, sitch):
        """-L fails before the first run and prints a time after it."""
        result = sitch("-L")
        assert result.exit_code == 1
        assert "hasn't successfully checked" in result.output

        sitch()

        result = sitch("-L")
        assert result.exit_code == 0
        datetime.strptime(result.output.strip(), "%H:%M:%S %m/%d/%y")

    def test_skips_youtube_without_key(self, sitch):
        """YouTube sources are skipped with a warning without an API key."""
        sitch("youtube", "add", "UC3tNpTOHsTnkmbwztCs30sA", "-n", "Northernlion")

        result = sitch()

        assert result.exit_code == 0
        assert "Skipping YouTube sources" in result.output
        assert "The following" not in result.output

    def test_malformed_config(self, tmp_path):
        """A broken config file exits with an error."""
        path = Path(tmp_path, "config.json")
        path.write_text("{not json")

        result = CliRunner().invoke(main, ["-c", str(path)])

        assert result.exit_code == 1
        assert "Malformed config file" in result.output

    def test_bad_since_time(self, sitch):
        """-t rejects times it can't parse."""
        result = sitch("-t", "last tuesday")

        assert result.exit_code == 2


class TestSinceTime:
    """Tests for -t/--since-time parsing."""

    def test_date(self):
        """A date means local midnight."""
        assert SINCE_TIME.convert("03/01/2024", None, None) == ensure_utc(datetime(2024, 3, 1).astimezone())

    def test_time_and_date(self):
        """A 12-hour time before the date, any case."""
        expected = ensure_utc(datetime(2024, 3, 1, 15, 7).astimezone())
        assert SINCE_TIME.convert("3:07 pm 03/01/2024", None, None) == expected

    def test_today_and_yesterday(self):
        """today and yesterday are a day apart."""
        today = SINCE_TIME.convert("today", None, None)
        yesterday = SINCE_TIME.convert("Yesterday", None, None)

        assert today.tzinfo is not None
        assert (today - yesterday).days in (0, 1)
        assert today > yesterday

    def test_invalid(self):
        """Anything else is a bad parameter."""
        with pytest.raises(click.BadParameter):
            SINCE_TIME.convert("03-01-2024", None, None)


class TestEditing:
    """Tests for turning edited JSON back into sources."""

    @pytest.fixture
    def existing(self):
        return [
            new_source(SourceKind.RSS, "https://a.com/rss", "A"),
            new_source(SourceKind.RSS, "https://b.com/rss", "B"),
        ]

    def test_keeps_ids_of_unchanged_identities(self, existing):
        """Renamed entries keep their ID and creation time."""
        data = [{"id": existing[0].id, "identity": "https://a.com/rss", "name": "A, renamed"}]

        sources = sources_from_edit(SourceKind.RSS, data, existing)

        assert sources[0].id == existing[0].id
        assert sources[0].created_at == existing[0].created_at
        assert sources[0].name == "A, renamed"

    def test_changed_identity_is_new(self, existing):
        """Changing an entry's identity makes it a new source."""
        data = [{"id": existing[0].id, "identity": "https://c.com/rss", "name": "C"}]

        sources = sources_from_edit(SourceKind.RSS, data, existing)

        assert sources[0].id != existing[0].id

    def test_disable(self, existing):
        """Entries can be disabled."""
        data = [{"id": existing[1].id, "identity": "https://b.com/rss", "name": "B", "enabled": False}]

        assert not sources_from_edit(SourceKind.RSS, data, existing)[0].enabled

    @pytest.mark.parametrize("data", [
        {"identity": "x", "name": "y"},
        [{"identity": "", "name": "Blank"}],
        [{"identity": "https://a.com/rss"}],
        [{"identity": "https://a.com/rss", "name": "A", "params": []}],
        [{"identity": "https://a.com/rss", "name": "A"}, {"identity": "https://a.com/rss", "name": "A again"}],
        ["https://a.com/rss"],
    ])
    def test_invalid(self, existing, data):
        """Invalid edits raise ConfigError."""
        with pytest.raises(ConfigError):
            sources_from_edit(SourceKind.RSS, data, existing)

    def test_find_source(self, existing):
        """Sources can be referenced by position, ID, identity or name."""
        assert _find_source(existing, "2") is existing[1]
        assert _find_source(existing, existing[0].id) is existing[0]
        assert _find_source(existing, "https://b.com/rss") is existing[1]
        assert _find_source(existing, "A") is existing[0]
        assert _find_source(existing, "3") is None
