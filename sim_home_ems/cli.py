from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Dict, Sequence, Union

from .application import SimulationApplication
from .config import configure_logging, get_scenario_path
from .scenario_setup import SCENARIO_PRESETS
from .simulation import ConfigurationError, available_strategies


def build_argument_parser() -> argparse.ArgumentParser:
    """
    Build the CLI argument parser used by entry points.

    Returns:
        Configured argparse.ArgumentParser instance.
    """
    parser = argparse.ArgumentParser(description="Residential energy A/B strategy simulator")
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Simulate a scenario under strategies A and B")
    run.add_argument(
        "--scenario-file",
        type=str,
        default=None,
        help="Path to a JSON scenario (default: SIM_HOME_EMS_SCENARIO or the built-in scenario)",
    )
    run.add_argument(
        "--preset",
        choices=sorted(SCENARIO_PRESETS),
        default=None,
        help="Simulate a built-in scenario preset instead of a file",
    )
    run.add_argument(
        "--strategy-a",
        choices=available_strategies(),
        default=None,
        help="Strategy of variant A (overrides the scenario)",
    )
    run.add_argument(
        "--strategy-b",
        choices=available_strategies(),
        default=None,
        help="Strategy of variant B (overrides the scenario)",
    )
    run.add_argument("--threshold-a", type=float, default=None, help="SOC threshold (%%) of mix_soc_threshold for A")
    run.add_argument("--threshold-b", type=float, default=None, help="SOC threshold (%%) of mix_soc_threshold for B")
    run.add_argument("--window-start", type=float, default=None, help="KPI window start (hours, inclusive)")
    run.add_argument("--window-end", type=float, default=None, help="KPI window end (hours, inclusive)")
    run.add_argument(
        "--include-trace",
        action="store_true",
        help="Embed the full versioned trace in the output",
    )

    sub.add_parser("strategies", help="List the available strategies")
    sub.add_parser("devices", help="List device types with their default parameters")
    sub.add_parser("presets", help="List the built-in scenario presets")
    scenario = sub.add_parser("scenario", help="Print the built-in default scenario or a preset")
    scenario.add_argument("--preset", choices=sorted(SCENARIO_PRESETS), default=None, help="Preset to print")
    return parser


def _load_json_file(path: str | Path) -> Dict[str, Any]:
    file_path = Path(path)
    if not file_path.exists():
        raise SystemExit(f"File not found: {file_path}")
    try:
        return json.loads(file_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Invalid JSON file ({file_path}): {exc}") from exc


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str, ensure_ascii=False))


def _scenario_payload(args: argparse.Namespace) -> Union[str, Dict[str, Any], None]:
    if args.preset and args.scenario_file:
        raise SystemExit("Use either --preset or --scenario-file, not both")
    if args.preset:
        return args.preset
    if args.scenario_file:
        return _load_json_file(args.scenario_file)
    configured = get_scenario_path()
    if configured is not None:
        return _load_json_file(configured)
    return None


def main(argv: Sequence[str] | None = None) -> None:
    """
    CLI entry point.

    Args:
        argv: Optional sequence of CLI args (defaults to sys.argv).
    """
    parser = build_argument_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    configure_logging()
    app = SimulationApplication(include_trace=getattr(args, "include_trace", False))

    if args.command == "strategies":
        _print_json(app.list_strategies())
        return

    if args.command == "devices":
        _print_json(app.list_device_types())
        return

    if args.command == "presets":
        _print_json(app.list_presets())
        return

    if args.command == "scenario":
        _print_json(app.preset(args.preset) if args.preset else app.default_scenario())
        return

    if args.command == "run":
        window = None
        if args.window_start is not None or args.window_end is not None:
            window = (args.window_start, args.window_end)
        try:
            summary = app.run_comparison(
                scenario_data=_scenario_payload(args),
                window=window,
                strategy_a=args.strategy_a,
                strategy_b=args.strategy_b,
                threshold_a=args.threshold_a,
                threshold_b=args.threshold_b,
            )
        except ConfigurationError as exc:
            raise SystemExit(f"Invalid configuration: {exc}") from exc
        _print_json(summary)
        return

    parser.error(f"Unknown command {args.command!r}")


if __name__ == "__main__":  # pragma: no cover
    main()
