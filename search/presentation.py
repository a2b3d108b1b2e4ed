"""Search page rendering: a pure function of session state and cached data."""

from search.models import Playlist, SearchHistoryEntry, SearchPageView
from search.session import SearchSession

EMPTY_PROMPT = "Search for your favorite music"


def no_results_message(query: str) -> str:
    return f'No results found for "{query}".'


def build_search_page(
    session: SearchSession,
    history: list[SearchHistoryEntry],
    playlists: list[Playlist] | None = None,
) -> SearchPageView:
    """Decide what the search page shows.

    Results and history are mutually exclusive: history is only shown while
    no result set is active.
    """
    common = dict(
        query=session.query,
        is_searching=session.is_searching,
        submit_label="Searching..." if session.is_searching else "Search",
        submit_disabled=session.is_searching,
        can_clear_history=bool(history),
    )

    if session.results is not None:
        if session.results.is_empty:
            return SearchPageView(
                mode="no_results",
                message=no_results_message(session.query),
                results=session.results,
                **common,
            )
        return SearchPageView(
            mode="results",
            results=session.results,
            playlists=(playlists or []) if session.results.songs else [],
            **common,
        )

    if history:
        return SearchPageView(mode="history", history=history, **common)

    return SearchPageView(mode="empty", message=EMPTY_PROMPT, **common)
