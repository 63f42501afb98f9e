from vod_bot.ui.messages import (
    format_cached_lines,
    format_download_ready,
    format_notice,
    humanize_time_left,
    md,
    progress_percent,
    render_bar,
)
from vod_bot.workflows.results import VODResult


def test_md_escapes_markdown_v2():
    assert md("a.b (c)") == "a\\.b \\(c\\)"
    assert md(5) == "5"


def test_format_notice_escapes_title_and_body():
    text = format_notice("❌", "Search Failed", "Try again.")
    assert text == "❌ *Search Failed*\n\nTry again\\."
    assert format_notice("🔎", "No Results") == "🔎 *No Results*"


def test_progress_percent_prefers_byte_counters():
    assert progress_percent(50, 200, reported=90) == 25
    assert progress_percent(0, 0, reported=40) == 40
    assert progress_percent(0, 0, reported=140) == 100
    assert progress_percent(300, 200) == 100


def test_render_bar_half_done():
    bar = render_bar(512, 1024)
    assert "`[" + "█" * 10 + "░" * 10 + "]`" in bar
    assert "50%" in bar


def test_render_bar_without_sizes():
    assert "starting…" in render_bar(0, 0)


def test_humanize_time_left():
    assert humanize_time_left(0) == "expired"
    assert humanize_time_left(60) == "1 hour"
    assert humanize_time_left(3601) == "2 hours"
    assert humanize_time_left(86400) == "1 day"
    assert humanize_time_left(3 * 86400 + 5) == "3 days"


def test_format_cached_lines():
    lines = format_cached_lines(
        [
            {
                "type": "series",
                "series_title": "Lost",
                "season": 1,
                "episode": 2,
                "requested_by": "bob",
                "time_left_seconds": 2 * 86400,
            },
            {"type": "movie", "time_left_seconds": 0},
        ]
    )
    assert lines[0] == "• Lost S01E02 — by bob — expires in 2 days"
    assert lines[1] == "• Unknown title — expires in expired"


def test_format_download_ready_lists_details():
    result = VODResult(title="Heat", year="1995", rating="8.3", size="2 GB")
    text = format_download_ready(result, "24 hours")

    assert text.startswith("✅ *Download Ready — Heat*")
    assert "This link will expire after 24 hours" in text
    assert "*Rating:* ⭐ 8\\.3" in text
