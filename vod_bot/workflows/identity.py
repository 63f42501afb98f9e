from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from .results import VODResult

SXXEYY_TOKEN = re.compile(r"(?i)^s(\d{1,2})e(\d{1,2})$")
SEASON_TOKEN = re.compile(r"(?i)^s(\d{1,2})$")
EPISODE_TOKEN = re.compile(r"(?i)^e(\d{1,2})$")

# Series name, optional "(...)" group and quality tags, then the season
# marker, an episode separator (E, x or ×) and an optional trailing episode
# title after a dash or colon.
SERIES_TITLE_PATTERN = re.compile(
    r"""(?ix)
    ^(?P<name>.*?)\s*
    (?:\([^)]*\)\s*)?
    (?:(?:FHD|UHD|HD|4K|2160p|1080p|720p|480p|MULTI|x264|x265|HEVC)\s*)*
    [\s._-]*
    (?<![a-z0-9])S(?P<season>\d{1,2})\s*[Ex×](?P<episode>\d{1,2})(?!\d)
    (?:\s*[-–—:]\s*(?P<episode_title>.*))?
    """
)
_NAME_NOISE = re.compile(r"[\s._\-–—:|\[(]+$")


@dataclass(frozen=True)
class QueryFilters:
    """Filter terms extracted from a free-text search query."""

    tokens: list[str] = field(default_factory=list)
    season: int = 0
    episode: int = 0

    @property
    def has_text(self) -> bool:
        return bool(self.tokens)

    @property
    def is_empty(self) -> bool:
        return not self.tokens and not self.season and not self.episode


@dataclass(frozen=True)
class SeriesIdentity:
    series_title: str
    season: int
    episode: int
    episode_title: str = ""


def parse_query_filters(query: str) -> QueryFilters:
    """
    Splits a query into lowercase filter tokens plus season/episode numbers.

    A combined ``SxxEyy`` token wins; otherwise separate ``Sxx`` and ``Eyy``
    tokens are honoured. Season/episode tokens are matched numerically and
    are left out of the text tokens.
    """
    tokens: list[str] = []
    season = 0
    episode = 0
    for raw in (query or "").lower().split():
        combined = SXXEYY_TOKEN.match(raw)
        if combined:
            season = int(combined.group(1))
            episode = int(combined.group(2))
            continue
        season_only = SEASON_TOKEN.match(raw)
        if season_only:
            if not season:
                season = int(season_only.group(1))
            continue
        episode_only = EPISODE_TOKEN.match(raw)
        if episode_only:
            if not episode:
                episode = int(episode_only.group(1))
            continue
        tokens.append(raw)
    return QueryFilters(tokens=tokens, season=season, episode=episode)


def infer_series_from_title(title: str) -> SeriesIdentity | None:
    """
    Best-effort split of a release title into series name, season, episode
    and episode title. Returns None when no season/episode marker is found.
    """
    text = (title or "").strip()
    if not text:
        return None
    match = SERIES_TITLE_PATTERN.match(text)
    if not match:
        return None
    name = _NAME_NOISE.sub("", match.group("name")).strip()
    return SeriesIdentity(
        series_title=name,
        season=int(match.group("season")),
        episode=int(match.group("episode")),
        episode_title=(match.group("episode_title") or "").strip(),
    )


def _haystack(result: VODResult) -> str:
    return " ".join(
        (
            result.series_title,
            result.title,
            result.episode_title,
            result.category,
            result.year,
        )
    ).lower()


def matches_filters(result: VODResult, filters: QueryFilters) -> bool:
    haystack = _haystack(result)
    if any(token not in haystack for token in filters.tokens):
        return False
    # Unknown (0) values on the result never exclude it
    if filters.season and result.season and result.season != filters.season:
        return False
    if filters.episode and result.episode and result.episode != filters.episode:
        return False
    return True


def filter_results(
    results: Sequence[VODResult], filters: QueryFilters
) -> list[VODResult]:
    """
    Applies query filters, falling back to the unfiltered list when nothing
    would survive.
    """
    if filters.is_empty:
        return list(results)
    filtered = [r for r in results if matches_filters(r, filters)]
    return filtered or list(results)
