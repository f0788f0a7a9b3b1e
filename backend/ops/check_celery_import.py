from __future__ import annotations

import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

REQUIRED_BEAT_ENTRIES = ("order-unpaid-expiry", "order-auto-confirm")


def main() -> int:
    try:
        from celery_app import celery
    except Exception as exc:
        print(f"error: failed to import celery_app:celery -> {exc}", file=sys.stderr)
        return 1

    schedule = dict(celery.conf.beat_schedule or {})
    missing = [name for name in REQUIRED_BEAT_ENTRIES if name not in schedule]
    if missing:
        print(f"error: beat schedule missing {', '.join(missing)}", file=sys.stderr)
        return 1
    for name in REQUIRED_BEAT_ENTRIES:
        entry = schedule[name]
        print(f"ok: {name} -> {entry['task']} every {int(entry['schedule'])}s")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
