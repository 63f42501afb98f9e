from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Literal, Mapping, Sequence

from ..config import logger
from ..utils import coerce_int, get_str
from .identity import infer_series_from_title

StreamType = Literal["movie", "series"]


@dataclass(frozen=True)
class VODResult:
    """One discoverable movie or episode as returned by the VOD search."""

    id: str = ""
    title: str = ""
    category: str = ""
    duration: str = ""
    year: str = ""
    rating: str = ""
    stream_id: str = ""
    size_bytes: int = 0
    size: str = ""
    stream_type: StreamType = "movie"
    series_title: str = ""
    season: int = 0
    episode: int = 0
    episode_title: str = ""

    def __post_init__(self) -> None:
        # Negative numbers from the API mean "unknown" just like 0 does.
        if self.season < 0:
            object.__setattr__(self, "season", 0)
        if self.episode < 0:
            object.__setattr__(self, "episode", 0)

    @property
    def is_series(self) -> bool:
        return self.stream_type == "series"

    @property
    def is_actionable(self) -> bool:
        """A result can only be downloaded or cached with a stream id."""
        return bool(self.stream_id.strip())

    @property
    def display_title(self) -> str:
        if self.series_title and self.episode > 0:
            base = f"{self.series_title} — S{self.season:02d}E{self.episode:02d}"
            return f"{base} {self.episode_title}".rstrip()
        return self.title

    def to_payload(self) -> dict[str, Any]:
        """Wire form understood by the internal API (PascalCase keys)."""
        return {
            "ID": self.id,
            "Title": self.title,
            "Category": self.category,
            "Duration": self.duration,
            "Year": self.year,
            "Rating": self.rating,
            "StreamID": self.stream_id,
            "SizeBytes": self.size_bytes,
            "Size": self.size,
            "StreamType": self.stream_type,
            "SeriesTitle": self.series_title,
            "Season": self.season,
            "Episode": self.episode,
            "EpisodeTitle": self.episode_title,
        }


@dataclass(frozen=True)
class ShowHierarchy:
    """Series title -> season -> episodes, with shows in display order."""

    order: list[str] = field(default_factory=list)
    data: dict[str, dict[int, list[VODResult]]] = field(default_factory=dict)

    def seasons(self, show: str) -> list[int]:
        return sorted(self.data.get(show, {}))

    def episodes(self, show: str, season: int) -> list[VODResult]:
        return self.data.get(show, {}).get(season, [])


def _normalize_stream_type(raw: str) -> str:
    lowered = raw.strip().lower()
    if lowered in ("tv", "show", "episode"):
        return "series"
    return lowered


def to_vod_result(record: Mapping[str, Any]) -> VODResult:
    """Converts one loosely typed API record into a VODResult."""
    stream_type = _normalize_stream_type(get_str(record, "StreamType"))
    series_title = get_str(record, "SeriesTitle")
    season = coerce_int(record.get("Season"))
    episode = coerce_int(record.get("Episode"))
    episode_title = get_str(record, "EpisodeTitle")
    title = get_str(record, "Title")

    if stream_type != "movie":
        identity = infer_series_from_title(title)
        if identity is not None:
            series_title = series_title or identity.series_title
            season = season or identity.season
            episode = episode or identity.episode
            episode_title = episode_title or identity.episode_title
            stream_type = stream_type or "series"

    if stream_type not in ("movie", "series"):
        stream_type = "movie"

    return VODResult(
        id=get_str(record, "ID"),
        title=title,
        category=get_str(record, "Category"),
        duration=get_str(record, "Duration"),
        year=get_str(record, "Year"),
        rating=get_str(record, "Rating"),
        stream_id=get_str(record, "StreamID"),
        size_bytes=coerce_int(record.get("SizeBytes")),
        size=get_str(record, "Size"),
        stream_type=stream_type,  # type: ignore[arg-type]
        series_title=series_title,
        season=season,
        episode=episode,
        episode_title=episode_title,
    )


def to_vod_results(
    records: Iterable[Any], *, limit: int | None = None
) -> list[VODResult]:
    """
    Converts the raw `results` array of a search response.

    Entries that are not JSON objects are skipped. `limit` caps the output
    for flows that cannot paginate.
    """
    results: list[VODResult] = []
    skipped = 0
    for record in records or []:
        if not isinstance(record, Mapping):
            skipped += 1
            continue
        results.append(to_vod_result(record))
        if limit is not None and len(results) >= limit:
            break
    if skipped:
        logger.warning(f"[RESULTS] Skipped {skipped} malformed search record(s).")
    return results


def _sort_key(result: VODResult) -> tuple:
    if result.is_series:
        return (
            0,
            result.series_title.casefold(),
            result.season,
            result.episode,
            result.title.casefold(),
            result.id,
            result.stream_id,
        )
    # id and stream id break ties between otherwise identical records
    return (1, result.title.casefold(), result.year, result.id, result.stream_id)


def sort_vod_results(results: Sequence[VODResult]) -> list[VODResult]:
    """Series first (by show, season, episode, title), then movies (title, year)."""
    return sorted(results, key=_sort_key)


def group_by_show(results: Sequence[VODResult]) -> ShowHierarchy:
    """
    Buckets series results by show and season.

    Results without a series title fall back to their own title so that
    loosely tagged items still appear somewhere.
    """
    order: list[str] = []
    data: dict[str, dict[int, list[VODResult]]] = {}
    for result in sort_vod_results(results):
        show = result.series_title or result.title
        if not show:
            continue
        if show not in data:
            order.append(show)
            data[show] = {}
        data[show].setdefault(result.season, []).append(result)

    for seasons in data.values():
        for season, episodes in seasons.items():
            seasons[season] = sorted(
                episodes, key=lambda r: (r.episode, r.title.casefold())
            )
    return ShowHierarchy(order=order, data=data)


def apply_enrichment(
    results: Sequence[VODResult], records: Sequence[Any]
) -> list[VODResult]:
    """
    Merges size data returned by the enrich endpoint.

    The endpoint answers with the full list in the same order; anything else
    is ignored and the original list returned.
    """
    if len(records) != len(results):
        return list(results)
    merged: list[VODResult] = []
    for result, record in zip(results, records):
        if not isinstance(record, Mapping):
            merged.append(result)
            continue
        size = get_str(record, "Size") or result.size
        size_bytes = coerce_int(record.get("SizeBytes")) or result.size_bytes
        merged.append(replace(result, size=size, size_bytes=size_bytes))
    return merged
