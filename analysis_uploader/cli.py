"""Command line interface for analysis_uploader package."""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from rich.logging import RichHandler

from .cli_progress import JobProgressDisplay, render_configuration_summary, render_result
from .models import JobAttributes, OrchestratorState, UploadConfig
from .orchestrator import AnalysisOrchestrator


class CLIError(RuntimeError):
    """Raised when CLI validation/execution fails."""


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Default behavior is silent unless --debug or --log-level (or LOG_LEVEL) is provided.
    Returns a string describing effective mode.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    logging.disable(logging.NOTSET)

    env_level = os.getenv("LOG_LEVEL")
    if silent or (not debug and not log_level and not env_level):
        logging.disable(logging.CRITICAL)
        root_logger.setLevel(logging.CRITICAL + 1)
        return "silent"

    if debug:
        level = logging.DEBUG
    else:
        level = getattr(logging, (log_level or env_level).upper(), logging.INFO)

    handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    # keep request-level chatter out of the progress display
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
    return logging.getLevelName(level)


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path, override: bool = False) -> None:
    if not path.exists():
        raise CLIError(f"env file not found: {path}")
    if not path.is_file():
        raise CLIError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = _strip_optional_quotes(value.strip())
        if override or key not in os.environ:
            os.environ[key] = value


def _resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.exists() and default_env.is_file() else None


def _build_config(args: argparse.Namespace) -> UploadConfig:
    endpoint = args.resumable_endpoint or os.getenv("RESUMABLE_UPLOAD_URL")
    kwargs = {
        "strategy": args.strategy,
        "resumable_endpoint": endpoint,
        "record_failure_policy": "fail" if args.require_record else "continue",
    }
    if args.poll_interval is not None:
        kwargs["poll_interval"] = args.poll_interval
    try:
        return UploadConfig(**kwargs)
    except ValueError as exc:
        raise CLIError(str(exc)) from exc


async def _run_analysis(
    source: Path,
    attributes: JobAttributes,
    config: UploadConfig,
    api_url: str,
    token: Optional[str],
    as_json: bool,
) -> int:
    display = None if as_json else JobProgressDisplay()

    async with AnalysisOrchestrator(api_url, config, token=token) as orchestrator:
        if display is not None:
            orchestrator.subscribe(display)
        try:
            snapshot = orchestrator.select(source)
            if snapshot.state is OrchestratorState.SELECTING:
                orchestrator.submit(attributes)
                snapshot = await orchestrator.wait()
        finally:
            if display is not None:
                display.close()

    render_result(snapshot, as_json=as_json)
    return 0 if snapshot.state is OrchestratorState.COMPLETE else 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="analysis-upload",
        description="Upload an exercise video and wait for its AI analysis.",
    )
    parser.add_argument("source", nargs="?", type=Path, help="Video file to analyze")
    parser.add_argument("-e", "--email", default=None, help="Owner email (default from ANALYSIS_EMAIL)")
    parser.add_argument("-w", "--weight", type=float, default=None, help="Body weight (kg)")
    parser.add_argument("--height", type=float, default=None, help="Body height (cm)")
    parser.add_argument("-l", "--load", type=float, default=None, help="Load lifted (kg)")
    parser.add_argument(
        "-s",
        "--strategy",
        choices=["direct", "resumable"],
        default="direct",
        help="Transfer strategy: pre-authorized URL (direct) or tus chunks (resumable)",
    )
    parser.add_argument(
        "--resumable-endpoint",
        default=None,
        help="tus endpoint for --strategy resumable (default from RESUMABLE_UPLOAD_URL)",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=None,
        help="Seconds between processing status queries (default 5)",
    )
    parser.add_argument(
        "--require-record",
        action="store_true",
        help="Fail the job when the video info cannot be saved",
    )
    parser.add_argument("--api-url", default=None, help="Analysis API URL (default from ANALYSIS_API_URL)")
    parser.add_argument("--token", default=None, help="Bearer token (default from ANALYSIS_API_TOKEN)")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--json", action="store_true", help="Print the final result as JSON")
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print errors")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version="analysis-upload (from analysis_uploader)",
    )
    return parser


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    used_env_file = args.env_file or _resolve_default_env_file()
    if used_env_file is not None:
        try:
            _load_env_file(Path(used_env_file))
        except CLIError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    if args.source is None:
        parser.print_help()
        return 0

    source = Path(args.source).expanduser()
    if not source.exists():
        print(f"ERROR: source does not exist: {source}", file=sys.stderr)
        return 1

    api_url = args.api_url or os.getenv("ANALYSIS_API_URL")
    email = args.email or os.getenv("ANALYSIS_EMAIL")
    token = args.token or os.getenv("ANALYSIS_API_TOKEN")

    try:
        if not api_url:
            raise CLIError("ANALYSIS_API_URL environment variable is not set (or pass --api-url)")
        if not email:
            raise CLIError("an owner email is required (--email or ANALYSIS_EMAIL)")
        config = _build_config(args)
    except CLIError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    if not args.json:
        render_configuration_summary(
            {
                "Source": str(source),
                "Email": email,
                "Weight": args.weight,
                "Height": args.height,
                "Load": args.load,
                "Strategy": config.strategy,
                "Resumable Endpoint": config.resumable_endpoint or "-",
                "Analysis API": api_url,
                "Auth": "bearer token" if token else "none",
                "Poll Interval": f"{config.poll_interval:g}s",
                "Env File": str(used_env_file) if used_env_file else "-",
                "Logging": effective_log_mode,
            }
        )

    attributes = JobAttributes(email=email, weight=args.weight, height=args.height, load=args.load)
    try:
        return asyncio.run(
            _run_analysis(
                source=source,
                attributes=attributes,
                config=config,
                api_url=api_url,
                token=token,
                as_json=args.json,
            )
        )
    except CLIError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return 130


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
