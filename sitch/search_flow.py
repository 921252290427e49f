"""Interactive search-and-pick flow for adding sources.

    AWAITING_QUERY -> SHOWING_RESULTS -> AWAITING_SELECTION -> ADDED
          ^                                     |
          +------ no results / search error     +--> CANCELLED

Typing "q" or "quit" (or closing the input) at any prompt cancels.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from enum import Enum

import click
from rich.console import Console
from rich.text import Text

from sitch.errors import ConfigError, ProviderError
from sitch.models import Source, SourceKind, utcnow
from sitch.sources.base import SearchCandidate, SourcePlugin
from sitch.store.base import Store

logger = logging.getLogger(__name__)


MIN_QUERY_LENGTH = 4
QUIT_WORDS = {"q", "quit"}

_SEARCH_NOUNS = {
    SourceKind.YOUTUBE: "a YouTube channel",
    SourceKind.RSS: "an RSS feed",
    SourceKind.ANIME: "an anime",
    SourceKind.MANGA: "a manga",
    SourceKind.BANDCAMP: "a Bandcamp artist",
}


class FlowState(Enum):
    AWAITING_QUERY = "awaiting_query"
    SHOWING_RESULTS = "showing_results"
    AWAITING_SELECTION = "awaiting_selection"
    ADDED = "added"
    CANCELLED = "cancelled"


class PromptPort(ABC):
    """Terminal I/O for the flow."""

    @abstractmethod
    def ask(self, prompt: str) -> str | None:
        """Read one line of input. Returns None at end of input."""
        pass

    @abstractmethod
    def say(self, message: str) -> None:
        pass


class TerminalPrompt(PromptPort):
    """PromptPort reading with click and printing with rich."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console(soft_wrap=True)

    def ask(self, prompt: str) -> str | None:
        try:
            return click.prompt(prompt, default="", show_default=False, prompt_suffix="")
        except click.Abort:
            self.console.print()
            return None

    def say(self, message: str) -> None:
        self.console.print(Text(message))


class InteractiveSearchFlow:
    """Turns a search query into a newly followed source.

    The new source's watermark is set to the moment it was added, so it only
    reports items published afterwards.
    """

    def __init__(
        self,
        plugin: SourcePlugin,
        store: Store,
        prompt: PromptPort,
        limit: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ):
        if plugin.search is None:
            raise ConfigError(f"{plugin.kind.label} sources can't be searched")
        self.plugin = plugin
        self.store = store
        self.prompt = prompt
        self.limit = limit
        self.clock = clock

        self.state = FlowState.AWAITING_QUERY
        self.results: list[SearchCandidate] = []
        self.added: Source | None = None

    def _ask(self, prompt: str) -> str | None:
        """Ask, treating end of input and quit words as cancellation."""
        answer = self.prompt.ask(prompt)
        if answer is None or answer.strip() in QUIT_WORDS:
            self.state = FlowState.CANCELLED
            return None
        return answer.strip()

    def _search(self, query: str) -> None:
        try:
            self.results = asyncio.run(self.plugin.search.search(query, self.limit))
        except ProviderError as e:
            logger.debug(f"Search for {query!r} failed: {e}")
            self.prompt.say(f"Search failed: {e}")
            return

        if not self.results:
            self.prompt.say("No results found, please try again.")
            return
        self.state = FlowState.SHOWING_RESULTS

    def _await_query(self, initial: str | None) -> None:
        query = initial
        if query is None:
            query = self._ask(f"Search for {_SEARCH_NOUNS[self.plugin.kind]} by name: ")
            if query is None:
                return

        if len(query) < MIN_QUERY_LENGTH:
            self.prompt.say(f"Search term must be longer than {MIN_QUERY_LENGTH - 1} characters.")
            return
        self._search(query)

    def _show_results(self) -> None:
        if len(self.results) == 1:
            only = self.results[0]
            self.prompt.say(f'Found 1 result: "{only.name}" (id = {only.id})')
        else:
            self.prompt.say(f"Found {len(self.results)} results:")
            for index, candidate in enumerate(self.results, start=1):
                self.prompt.say(f'{index}: "{candidate.name}" (id = {candidate.id})')
        self.state = FlowState.AWAITING_SELECTION

    def _confirm(self) -> SearchCandidate | None:
        while self.state == FlowState.AWAITING_SELECTION:
            answer = self._ask("Add it to sitch? [Y/n] ")
            if answer is None:
                return None
            if answer.lower() in ("", "y", "yes"):
                return self.results[0]
            if answer.lower() in ("n", "no"):
                self.state = FlowState.CANCELLED
                return None
            self.prompt.say("Please respond with a yes or no.")
        return None

    def _pick(self) -> SearchCandidate | None:
        count = len(self.results)
        while self.state == FlowState.AWAITING_SELECTION:
            answer = self._ask(f"Pick a result to add [1 to {count}]: ")
            if answer is None:
                return None
            try:
                index = int(answer)
            except ValueError:
                self.prompt.say("The value wasn't an integer.")
                continue
            if not 1 <= index <= count:
                self.prompt.say("The specified index was out of bounds.")
                continue
            return self.results[index - 1]
        return None

    def _add(self, candidate: SearchCandidate) -> None:
        try:
            source = self.plugin.adapter.source_from_candidate(candidate)
            self.store.add_source(source, watermark=self.clock())
        except (ConfigError, ProviderError) as e:
            self.prompt.say(str(e))
            self.state = FlowState.CANCELLED
            return

        self.added = source
        self.state = FlowState.ADDED
        logger.info(f"Added {source.kind.label} source {source.name} ({source.identity})")
        self.prompt.say(f'Added "{source.name}" to sitch.')

    def run(self, query: str | None = None) -> Source | None:
        """Drive the flow to completion. Returns the added source, if any.

        Raises:
            Unavailable: If the provider can't search right now.
        """
        self.plugin.search.ensure_available()

        initial = query
        while self.state not in (FlowState.ADDED, FlowState.CANCELLED):
            match self.state:
                case FlowState.AWAITING_QUERY:
                    self._await_query(initial)
                    initial = None
                case FlowState.SHOWING_RESULTS:
                    self._show_results()
                case FlowState.AWAITING_SELECTION:
                    picked = self._confirm() if len(self.results) == 1 else self._pick()
                    if picked is not None:
                        self._add(picked)
        return self.added
