"""
Append-only usage ledger backed by usage.jsonl.

One compact JSON object per line. Appends are single-line writes, so
interleaved appends from separate processes stay line-aligned.
"""

import json
import logging
from datetime import datetime
from typing import List, Optional

from xc.config.loader import ConfigContext
from xc.core.pricing import estimate_cost, infer_method
from .models import UsageEntry

logger = logging.getLogger(__name__)


def log_call(ctx: ConfigContext, endpoint: str, now: Optional[datetime] = None) -> UsageEntry:
    """Append a single usage entry to the ledger.

    Cost and method are looked up from the static endpoint tables.

    Args:
        ctx: Config context locating usage.jsonl
        endpoint: Namespaced endpoint identifier, e.g. ``posts.create``
        now: Timestamp override (defaults to the current time)

    Returns:
        The entry that was written
    """
    entry = UsageEntry(
        timestamp=now or datetime.now().astimezone(),
        endpoint=endpoint,
        method=infer_method(endpoint),
        estimated_cost=estimate_cost(endpoint),
    )
    ctx.ensure_dir()
    line = json.dumps(entry.to_dict(), separators=(",", ":")) + "\n"
    with open(ctx.usage_path, "a", encoding="utf-8") as f:
        f.write(line)
    logger.debug("Logged %s %s ($%.4f)", entry.method, endpoint, entry.estimated_cost)
    return entry


def parse_entries(text: str) -> List[UsageEntry]:
    """Decode ledger text, skipping any line that is not a valid entry.

    Corruption on one line (a torn append, manual edits) must never cost
    the other entries, so bad lines are dropped rather than raised.
    """
    entries = []
    for number, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            entries.append(UsageEntry.from_dict(json.loads(line)))
        except ValueError:
            # json.JSONDecodeError is a ValueError subclass
            logger.debug("Skipping malformed usage line %d", number)
    return entries


def load_entries(ctx: ConfigContext) -> List[UsageEntry]:
    """Read every valid entry in append order. Missing file yields []."""
    if not ctx.usage_path.exists():
        return []
    # undecodable bytes only spoil their own line, which then fails to parse
    return parse_entries(ctx.usage_path.read_text(encoding="utf-8", errors="replace"))
