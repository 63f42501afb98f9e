"""Environment flags for python-telegram-bot.

Must be imported before anything from ``telegram`` so the flags are seen when
PTB loads. The bot entrypoint imports it first.
"""

from __future__ import annotations

import os

# RetryAfter.retry_after as timedelta; utils.py handles both forms
os.environ.setdefault("PTB_TIMEDELTA", "1")
