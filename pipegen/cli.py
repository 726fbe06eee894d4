"""CLI entrypoint for pipegen."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Callable, TextIO

from .classifier import Confirmer, accept
from .config import PipegenConfig, load_config
from .errors import PipegenError
from .logging import configure_logging, get_logger
from .orchestrator import GenerationOutcome, GenerationRequest, Orchestrator

_LOGGER = get_logger("cli")


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=argparse.SUPPRESS if suppress_default else False,
        help="Log every stage decision (DEBUG level).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pipegen",
        description=(
            "Inspect a repository, detect its ecosystem and write a CI pipeline "
            "definition with resource and port settings."
        ),
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only log warnings and errors.",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write a detailed log to this file.",
    )

    source = parser.add_mutually_exclusive_group()
    source.add_argument("--repo", help="Git URL of the repository to clone.")
    source.add_argument("--dir", help="Local repository directory to inspect in place.")
    parser.add_argument("--branch", help="Branch or ref to check out (default: main).")
    parser.add_argument(
        "--lang",
        help="Declared language; confirmed when it differs from the detected one.",
    )
    parser.add_argument("--port", help="Preferred application port (default: 3000).")
    parser.add_argument(
        "--output",
        type=Path,
        help="Where to write the pipeline definition (default: pipeline.yaml).",
    )
    parser.add_argument(
        "--report",
        type=Path,
        help="Optional path for a plain-text dependency detection report.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("."),
        help="Path to .pipegen.yml or the directory holding it (default: cwd).",
    )
    parser.add_argument(
        "-y",
        "--yes",
        action="store_true",
        help="Use --lang without prompting when it conflicts with detection.",
    )

    subparsers = parser.add_subparsers(dest="command")
    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP service (requires the 'service' extra).",
    )
    _add_verbose_option(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address.")
    serve_parser.add_argument(
        "--port",
        dest="service_port",
        type=int,
        default=8000,
        help="Bind port for the service.",
    )
    return parser


def prompt_confirmer(
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
    ask: Callable[[str], str] = input,
) -> Confirmer:
    """Return a confirmer asking y/N on the terminal; non-interactive runs decline."""

    def confirm(detected: str, hinted: str) -> bool:
        stream_in = stdin or sys.stdin
        if not stream_in.isatty():
            _LOGGER.info("Not a terminal; keeping detected language '%s'", detected)
            return False
        out = stdout or sys.stdout
        out.write(
            f"Detected language is '{detected}' but --lang says '{hinted}'.\n"
        )
        out.flush()
        try:
            answer = ask(f"Use '{hinted}' instead? (y/N): ")
        except EOFError:
            return False
        return answer.strip().lower() in {"y", "yes"}

    return confirm


def _build_request(
    args: argparse.Namespace, config: PipegenConfig, parser: argparse.ArgumentParser
) -> GenerationRequest:
    config_defaults = config.defaults
    source = args.repo or args.dir
    if not source:
        parser.error("one of --repo or --dir is required")
    report = args.report
    if report is None and config_defaults.report:
        report = Path(config_defaults.report)
    return GenerationRequest(
        source=source,
        branch=args.branch or config_defaults.branch,
        lang=args.lang,
        port=args.port if args.port is not None else config_defaults.port,
        output=args.output or Path(config_defaults.output),
        report=report,
    )


def _print_summary(outcome: GenerationOutcome) -> None:
    allocation = outcome.allocation
    estimate = outcome.estimate
    print(f"Language: {outcome.classification.ecosystem} ({outcome.classification.provenance})")
    if allocation.moved:
        print(
            f"Port {allocation.requested_port} is in use; using {allocation.resolved_port}"
        )
    else:
        print(f"Port: {allocation.resolved_port}")
    print(
        f"Estimated disk: {estimate.disk_required_mb} MB "
        f"({estimate.disk_usage_level} disk usage), memory: {estimate.memory_required_mb} MB"
    )
    print(f"Pipeline written to {_relativize(outcome.path)}")
    if outcome.report_path is not None:
        print(f"Report written to {_relativize(outcome.report_path)}")


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for pipegen."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(
        verbose=bool(args.verbose),
        quiet=bool(args.quiet),
        log_file=args.log_file,
    )

    if args.command == "serve":
        try:
            from .service.app import run_service
        except ModuleNotFoundError as exc:
            parser.exit(
                1,
                f"Service mode needs the 'service' extra ({exc.name} is missing). "
                "Install it with `pip install 'pipegen[service]'`.\n",
            )
        run_service(host=args.host, port=args.service_port)
        return

    try:
        config = load_config(args.config)
    except PipegenError as exc:
        parser.exit(exc.exit_code, f"pipegen: {exc}\n")

    request = _build_request(args, config, parser)
    confirmer = accept if args.yes else prompt_confirmer()
    try:
        orchestrator = Orchestrator(config, confirmer=confirmer)
        outcome = orchestrator.run(request)
    except PipegenError as exc:
        parser.exit(exc.exit_code, f"pipegen: {exc}\n")
    except OSError as exc:
        parser.exit(1, f"pipegen failed: {exc}\nRun with --verbose for more details.\n")
    _print_summary(outcome)


def _relativize(path: Path) -> str:
    try:
        return str(Path(path).resolve().relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
