"""OpsDeck MCP diagnostics CLI."""

from __future__ import annotations

import argparse
import json
import random

from opsdeck_mcp.categories import Category, coerce_category
from opsdeck_mcp.config import OpsDeckSettings
from opsdeck_mcp.policies import PolicyLoadError, load_policy_book
from opsdeck_mcp.retry import RetryPolicyBook


def load_book(settings: OpsDeckSettings) -> RetryPolicyBook:
    try:
        return load_policy_book(settings)
    except PolicyLoadError as exc:
        print(f"Policy overrides invalid: {exc}")
        raise SystemExit(1)


def cmd_policies(args: argparse.Namespace) -> None:
    settings = OpsDeckSettings()
    book = load_book(settings)
    described = book.describe()
    if getattr(args, "category", None):
        category = coerce_category(args.category).value
        described = {category: described[category]}
    print(json.dumps(described, indent=2))


def cmd_backoff(args: argparse.Namespace) -> None:
    settings = OpsDeckSettings()
    book = load_book(settings)
    category = coerce_category(args.category)
    policy = book.policy_for(
        category,
        priority=getattr(args, "priority", None),
        sensitive=bool(getattr(args, "sensitive", False)),
    )
    rng = random.Random(args.seed)
    attempts = args.attempts or policy.max_attempts

    schedule = []
    for attempt in range(1, attempts):
        schedule.append(
            {
                "after_attempt": attempt,
                "base_delay": policy.backoff.base_delay(attempt),
                "delay": round(policy.backoff.delay_for(attempt, rng), 3),
            }
        )

    print(
        json.dumps(
            {
                "category": category.value,
                "max_attempts": policy.max_attempts,
                "backoff": policy.backoff.describe(),
                "schedule": schedule,
                "total_wait": round(sum(item["delay"] for item in schedule), 3),
            },
            indent=2,
        )
    )


def cmd_settings(args: argparse.Namespace) -> None:
    settings = OpsDeckSettings()
    print(json.dumps(settings.model_dump(mode="json"), indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="OpsDeck MCP diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    categories = [item.value for item in Category]

    p_policies = sub.add_parser("policies", help="Show effective retry policies")
    p_policies.add_argument("--category", choices=categories)
    p_policies.set_defaults(func=cmd_policies)

    p_backoff = sub.add_parser("backoff", help="Preview the retry delay schedule for a category")
    p_backoff.add_argument("--category", choices=categories, default="general")
    p_backoff.add_argument(
        "--attempts",
        type=int,
        default=None,
        help="Number of attempts to preview (defaults to the policy maximum)",
    )
    p_backoff.add_argument("--seed", type=int, default=None, help="Seed for the jitter source")
    p_backoff.add_argument("--priority", choices=["low", "medium", "high", "critical"])
    p_backoff.add_argument("--sensitive", action="store_true")
    p_backoff.set_defaults(func=cmd_backoff)

    p_settings = sub.add_parser("settings", help="Show effective settings")
    p_settings.set_defaults(func=cmd_settings)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
