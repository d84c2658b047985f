from __future__ import annotations

import argparse
import logging

from prompt_ab.config import get_settings
from prompt_ab.pricing import CostCalculator


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main(argv: list[str] | None = None) -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Prompt A/B testing ledger and API")
    parser.add_argument("--server", action="store_true", help="Start the API server")
    parser.add_argument(
        "--host", default=settings.api_host, help="Host to bind the server to"
    )
    parser.add_argument(
        "--port", type=int, default=settings.api_port, help="Port to run the server on"
    )
    parser.add_argument("--reload", action="store_true", help="Enable hot reloading")
    parser.add_argument(
        "--list-pricing",
        action="store_true",
        help="Print the per-model pricing table (USD per 1K tokens)",
    )
    parser.add_argument(
        "--estimate",
        metavar="PROMPT",
        help="Estimate the cost of sending PROMPT to --model",
    )
    parser.add_argument("--model", default="gpt-4o-mini", help="Model used by --estimate")
    parser.add_argument(
        "--max-tokens",
        type=int,
        default=100,
        help="Completion tokens assumed by --estimate",
    )
    parser.add_argument(
        "--log-level", default=settings.log_level, help="Logging level (default from LOG_LEVEL)"
    )
    args = parser.parse_args(argv)

    _configure_logging(args.log_level)

    if args.server:
        import uvicorn

        print(
            f"Starting server on {args.host}:{args.port} (reload={'on' if args.reload else 'off'})"
        )
        if args.reload:
            # When reloading, pass the import string instead of the app object
            uvicorn.run("prompt_ab.api:app", host=args.host, port=args.port, reload=True)
        else:
            from prompt_ab.api import app

            uvicorn.run(app, host=args.host, port=args.port)
        return

    calculator = CostCalculator()

    if args.list_pricing:
        for model, tier in calculator.get_all_pricing().items():
            flag = " (deprecated)" if tier.deprecated else ""
            print(f"- {model}: input ${tier.input}/1K, output ${tier.output}/1K{flag}")
        return

    if args.estimate:
        cost = calculator.estimate_cost(args.estimate, args.model, args.max_tokens)
        print(
            f"{cost.model}: prompt {calculator.format_cost(cost.prompt)}, "
            f"completion {calculator.format_cost(cost.completion)}, "
            f"total {calculator.format_cost(cost.total)}"
        )
        return

    raise SystemExit("Provide --server, --list-pricing or --estimate PROMPT")


if __name__ == "__main__":
    main()
