"""CLI helper that loads a racetime category and prints its head-to-head matrix."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from h2h_core import Head2HeadService, SessionState
from h2h_core.ranking import format_record


def render_matrix(svc: Head2HeadService, width: int = 12) -> str:
    ranking = svc.current_ranking()
    table = svc.current_table()
    lines = ["Left vs Top".ljust(width) + "".join(name[: width - 1].ljust(width) for name in ranking)]
    for name in ranking:
        row = table.get(name, {})
        cells = "".join(format_record(row.get(opponent)).ljust(width) for opponent in ranking)
        lines.append(name[: width - 1].ljust(width) + cells)
    return "\n".join(lines)


async def run(slug: str, goal: str) -> int:
    svc = Head2HeadService()
    if not await svc.is_valid_category(slug):
        print(f"ERROR: unknown category '{slug}'", file=sys.stderr)
        return 1

    state = await svc.load_category(slug)
    svc.set_active_goal(goal)

    category = svc.category()
    title = category.name if category else slug
    print(f"{title} - {svc.race_count()} recorded races, {svc.participant_count()} players on {goal}")
    if state is SessionState.FAILED:
        print(f"ERROR: {svc.notice()}", file=sys.stderr)
        return 1

    if not svc.participant_count():
        options = ", ".join(f"{name} ({count})" for name, count in svc.goal_options())
        print(f"No races for goal '{goal}'. Goals: {options}")
        return 0

    print()
    print(render_matrix(svc))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("slug", help="category slug, e.g. lozssr")
    parser.add_argument("goal", help="goal name to build the matrix for")
    parser.add_argument("-v", "--verbose", action="store_true", help="log page progress")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(run(args.slug, args.goal))


if __name__ == "__main__":
    raise SystemExit(main())
