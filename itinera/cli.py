"""CLI entrypoint for indicator calculation."""

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
import warnings
from pathlib import Path

from dotenv import load_dotenv

# Load .env before the config module reads provider settings
load_dotenv()

# Suppress LiteLLM's direct prints (must be before import)
os.environ["LITELLM_LOG"] = "ERROR"

warnings.filterwarnings("ignore", message="Pydantic serializer warnings")
warnings.filterwarnings("ignore", message="Unclosed client session")
warnings.filterwarnings("ignore", category=ResourceWarning)

for logger_name in ["httpx", "httpcore", "litellm", "LiteLLM",
                    "LiteLLM Proxy", "LiteLLM Router", "aiohttp", "asyncio"]:
    logging.getLogger(logger_name).setLevel(logging.ERROR)

import litellm  # noqa: E402 - must be after logging config

from itinera.core.config import (  # noqa: E402
    API_KEY_ENV_VAR,
    DEFAULT_MODEL,
    LLM_PROVIDER,
    BatchConfig,
)

litellm.suppress_debug_info = True


def _check_api_key() -> bool:
    if os.environ.get(API_KEY_ENV_VAR):
        return True
    print(f"Error: {API_KEY_ENV_VAR} not set")
    if LLM_PROVIDER == "azure":
        print("For Azure, set: AZURE_API_KEY, AZURE_API_BASE, AZURE_API_VERSION")
    else:
        print(f"Set it in .env or export {API_KEY_ENV_VAR}=...")
    return False


def _write_output(system, input_path: Path, output: str | None) -> Path:
    from itinera.core.value_store import save_system

    out_path = Path(output) if output else input_path
    save_system(system, out_path)
    print(f"\n[OUTPUT] {out_path}")
    return out_path


def _print_progress(current: int, total: int, key: str, step_name: str, intervention_name: str):
    from itinera.core import get_logger

    get_logger().debug(f"[{current}/{total}] {key} - {step_name} / {intervention_name}")


async def calculate_missing(
    system_path: str,
    output: str | None = None,
    max_parallel: int = BatchConfig.MAX_PARALLEL,
    recalculate_all: bool = False,
    model: str | None = None,
    verbose: bool = False,
    log_dir: str | None = None,
) -> bool:
    """Run calculate_all_missing on a JSON rotation document.

    Ctrl-C requests cancellation: the running chunk finishes and the partial
    result is saved.

    Returns:
        True if every scheduled target was calculated.
    """
    from itinera.core import CancellationToken, CostTracker, LLMClient, get_logger, load_system
    from itinera.engine import CalculationEngine
    from itinera.orchestrator import BatchOrchestrator

    path = Path(system_path)
    if not path.exists():
        print(f"Error: File not found: {path}")
        return False
    if not _check_api_key():
        return False

    system = load_system(path)
    cost_tracker = CostTracker()
    client = LLMClient(model=model, cost_tracker=cost_tracker)
    orchestrator = BatchOrchestrator(
        CalculationEngine(client),
        name=path.name,
        logger=get_logger(verbose=verbose, log_dir=log_dir),
    )

    print(f"\n{'='*50}")
    print(f"Calculating: {path.name}")
    print(f"{'='*50}")
    print(f"  Provider: {LLM_PROVIDER}")
    print(f"  Model: {client.model}")
    print(f"  Max parallel: {max_parallel}")
    print(f"  Mode: {'recalculate all' if recalculate_all else 'missing only'}")
    print()

    token = CancellationToken()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel)
    except NotImplementedError:
        pass  # Windows event loops: Ctrl-C stops the process instead

    try:
        result = await orchestrator.calculate_all_missing(
            system,
            max_parallel=max_parallel,
            on_progress=_print_progress,
            cancellation=token,
            recalculate_all=recalculate_all,
        )
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except NotImplementedError:
            pass

    _write_output(result.system_data, path, output)
    print(f"\n{result.report()}")
    if cost_tracker.call_count > 0:
        print(f"\n{cost_tracker.summary()}")
    return not result.cancelled and result.failed_count == 0


def prepare(system_path: str) -> bool:
    """Print the pre-run estimate for a rotation document."""
    from itinera.core import load_system
    from itinera.orchestrator import prepare_calculation

    path = Path(system_path)
    if not path.exists():
        print(f"Error: File not found: {path}")
        return False

    estimate = prepare_calculation(load_system(path))
    print(json.dumps(estimate.to_dict(), indent=2))
    return True


async def calculate_one(
    system_path: str,
    step_index: int,
    intervention_index: int,
    key: str,
    message: str | None = None,
    output: str | None = None,
    model: str | None = None,
) -> bool:
    """Calculate (or, with ``message``, refine) one cell and save it."""
    from itinera.core import ItineraError, LLMClient, find_entry, get_values, load_system
    from itinera.engine import CalculationEngine, apply_result

    path = Path(system_path)
    if not path.exists():
        print(f"Error: File not found: {path}")
        return False
    if not _check_api_key():
        return False

    system = load_system(path)
    engine = CalculationEngine(LLMClient(model=model))

    try:
        if message is None:
            result = await engine.calculate(system, step_index, intervention_index, key)
        else:
            entry = find_entry(get_values(system, step_index, intervention_index), key)
            conversation = entry.conversation if entry else []
            result = await engine.refine(
                system, step_index, intervention_index, key, message, conversation,
            )
    except ItineraError as e:
        print(f"\n[ERROR] {step_index}.{intervention_index}/{key}: {e}")
        return False

    _write_output(apply_result(system, step_index, intervention_index, key, result), path, output)
    print(f"{key} = {result.value} ({result.status}, confidence {result.confidence})")
    if result.conversation:
        print(f"\n{result.conversation[-1].content}")
    return True


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {text!r}") from None
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return value


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="itinera",
        description="Crop-rotation indicator calculation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  itinera prepare rotation.json
  itinera calculate-missing rotation.json -o rotation.filled.json
  itinera calculate rotation.json 0 2 ift
  itinera refine rotation.json 0 2 ift "Demi-dose d'herbicide"
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    batch = sub.add_parser("calculate-missing", help="Calculate every missing indicator")
    batch.add_argument("system", help="Path to the rotation JSON document")
    batch.add_argument("-o", "--output", default=None, help="Output file (default: overwrite input)")
    batch.add_argument(
        "-p", "--max-parallel",
        type=_positive_int,
        default=BatchConfig.MAX_PARALLEL,
        help=f"Concurrent calls per chunk (default: {BatchConfig.MAX_PARALLEL})",
    )
    batch.add_argument(
        "--recalculate-all",
        action="store_true",
        help="Also recalculate reviewed values not entered by a user",
    )
    batch.add_argument("--model", default=None, help=f"Model (default: {DEFAULT_MODEL})")
    batch.add_argument("-v", "--verbose", action="store_true", help="DEBUG level logging")
    batch.add_argument("--log-dir", default=None, help="Directory for run log files")

    prep = sub.add_parser("prepare", help="Show what calculate-missing would do")
    prep.add_argument("system", help="Path to the rotation JSON document")

    for name, help_text in (("calculate", "Calculate one indicator"), ("refine", "Refine one indicator")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("system", help="Path to the rotation JSON document")
        cmd.add_argument("step", type=int, help="Step index (0-based)")
        cmd.add_argument("intervention", type=int, help="Intervention index (0-based)")
        cmd.add_argument("key", help="Indicator key (e.g. ift, gnr)")
        if name == "refine":
            cmd.add_argument("message", help="Refinement request")
        cmd.add_argument("-o", "--output", default=None, help="Output file (default: overwrite input)")
        cmd.add_argument("--model", default=None, help=f"Model (default: {DEFAULT_MODEL})")

    return parser


def main(argv: list[str] | None = None):
    args = _build_parser().parse_args(argv)

    if args.command == "calculate-missing":
        ok = asyncio.run(calculate_missing(
            system_path=args.system,
            output=args.output,
            max_parallel=args.max_parallel,
            recalculate_all=args.recalculate_all,
            model=args.model,
            verbose=args.verbose,
            log_dir=args.log_dir,
        ))
    elif args.command == "prepare":
        ok = prepare(args.system)
    else:
        ok = asyncio.run(calculate_one(
            system_path=args.system,
            step_index=args.step,
            intervention_index=args.intervention,
            key=args.key,
            message=getattr(args, "message", None),
            output=args.output,
            model=args.model,
        ))

    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
