"""
Command-line interface for fconfig.

    fconfig project.json -m compress -m net --disable header_sys_mman_h

Exit codes:
    0    configured (possibly with optional modules dropped)
    1    unsatisfied dependency, dependency cycle or catalog error
    2    unusable toolchain or invalid command line
    130  interrupted
"""

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from rich.console import Console

from fconfig import __version__
from fconfig.build.profiles import BuildProfile, parse_profile
from fconfig.catalog.features import builtin_catalog
from fconfig.catalog.loader import load_catalog_file
from fconfig.config import EngineSettings
from fconfig.detect import PlatformFacts
from fconfig.engine import ConfigureRequest, ConfigureResult, configure
from fconfig.errors import BuildEnvironmentError, CatalogError, CyclicDependencyError, UnsatisfiedDependencyError
from fconfig.output import TimedPhase, init_timer, is_verbose, log, log_detail, log_error, log_header, log_warning, set_verbose
from fconfig.probe.models import ProbeResult
from fconfig.probe.display import ProbeProgressDisplay

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_ENVIRONMENT_ERROR = 2
EXIT_INTERRUPTED = 130

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATEFMT = "%H:%M:%S"


@dataclass
class ConfigureArgs:
    """Arguments for a configure run."""

    catalog: Optional[Path] = None
    modules: list[str] = field(default_factory=list)
    enable: list[str] = field(default_factory=list)
    disable: list[str] = field(default_factory=list)
    profile: BuildProfile = BuildProfile.RELEASE
    build_dir: str = "build"
    plan: Optional[Path] = None
    header: Optional[Path] = None
    output: str = "app"
    jobs: Optional[int] = None
    compiler: Optional[str] = None
    save_facts: Optional[Path] = None
    load_facts: Optional[Path] = None
    progress: bool = True


def _is_tty() -> bool:
    try:
        return sys.stdout.isatty()
    except (AttributeError, ValueError):
        return False


_log_handler: Optional[logging.Handler] = None


def setup_logging(verbose: bool) -> None:
    """Route library logging to stderr (warnings only unless verbose)."""
    global _log_handler
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if _log_handler is None:
        _log_handler = logging.StreamHandler(sys.stderr)
        _log_handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
        root.addHandler(_log_handler)


class LogProgress:
    """Probe callback for non-interactive output: one line per finished probe in verbose mode."""

    def on_probe_started(self, feature_id: str) -> None:
        pass

    def on_probe_finished(self, result: ProbeResult) -> None:
        status = "yes" if result.succeeded else ("timed out" if result.timed_out else "no")
        log_detail(f"{result.feature_id}: {status}", verbose_only=True)


def load_facts(path: Path) -> PlatformFacts:
    """Load platform facts saved with --save-facts.

    Raises:
        ValueError: If the file cannot be read or is not a valid facts document
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ValueError(f"Cannot read platform facts file {path}: {e.strerror or e}") from e
    try:
        return PlatformFacts.from_dict(json.loads(text))
    except (KeyError, TypeError, AttributeError) as e:
        raise ValueError(f"Invalid platform facts file {path}: {e}") from e


def _report(result: ConfigureResult, phase: TimedPhase) -> None:
    facts = result.facts
    phase.detail(f"{facts.os_family} {facts.architecture}, {facts.compiler_id} {facts.compiler_version} ({facts.word_size}-bit)")
    found = [r for r in facts.probe_results if r.succeeded]
    phase.detail(f"{len(found)}/{len(facts.probe_results)} probes succeeded")
    phase.detail(f"Modules: {', '.join(result.graph.order) or '(none)'}")
    for dropped in result.dropped:
        log_warning(f"Optional module '{dropped.name}' dropped: {dropped.reason}")
    for path in result.written:
        phase.detail(f"Wrote {path}")
    if is_verbose():
        log(result.diagnostics.format_report())


def configure_command(args: ConfigureArgs) -> int:
    """Run fconfig and map failures to exit codes.

    Returns:
        Process exit code
    """
    build_dir = Path(args.build_dir)
    try:
        settings = EngineSettings.from_env(compiler=args.compiler, jobs=args.jobs)
        facts = None
        if args.load_facts is not None:
            facts = load_facts(args.load_facts)

        request = ConfigureRequest(
            requested=tuple(args.modules),
            catalog_paths=(args.catalog,) if args.catalog else (),
            force_enable=tuple(args.enable),
            force_disable=tuple(args.disable),
            profile=args.profile,
            build_dir=args.build_dir,
            output_name=args.output,
            plan_path=args.plan or build_dir / "build.mk",
            header_path=args.header or build_dir / "config.h",
            facts=facts,
        )

        with TimedPhase(1, 1, f"Configuring with {settings.compiler}") as phase:
            if args.progress and facts is None and _is_tty():
                with ProbeProgressDisplay(Console(), "Probing toolchain") as display:
                    result = configure(request, settings, callback=display)
            else:
                result = configure(request, settings, callback=LogProgress())
            _report(result, phase)

        if args.save_facts is not None:
            args.save_facts.parent.mkdir(parents=True, exist_ok=True)
            args.save_facts.write_text(json.dumps(result.facts.to_dict(), indent=2) + "\n", encoding="utf-8")
            log_detail(f"Saved platform facts to {args.save_facts}")
        log("Configuration complete" + (" (some optional modules dropped)" if result.partial else ""))
        return EXIT_OK

    except BuildEnvironmentError as e:
        log_error(str(e))
        if e.diagnostic.strip():
            log(e.diagnostic.strip())
        return EXIT_ENVIRONMENT_ERROR
    except UnsatisfiedDependencyError as e:
        log_error(str(e))
        log(e.format_detail(), verbose_only=True)
        return EXIT_CONFIG_ERROR
    except (CyclicDependencyError, CatalogError) as e:
        log_error(str(e))
        return EXIT_CONFIG_ERROR
    except ValueError as e:
        # Invalid settings, profile or path that cannot be rendered
        log_error(str(e))
        return EXIT_ENVIRONMENT_ERROR
    except OSError as e:
        log_error(f"Cannot write configuration: {e}")
        return EXIT_ENVIRONMENT_ERROR
    except KeyboardInterrupt:
        log_warning("Interrupted")
        return EXIT_INTERRUPTED


def list_features_command(catalog: Optional[Path]) -> int:
    """Print every known feature id with its header symbol."""
    try:
        features = builtin_catalog()
        if catalog is not None:
            features = features.merged(load_catalog_file(catalog).features)
    except CatalogError as e:
        log_error(str(e))
        return EXIT_CONFIG_ERROR
    console = Console()
    for feature in features:
        families = ",".join(feature.os_families) or "any"
        console.print(f"{feature.feature_id:<28} {feature.header_symbol:<28} [dim]{families}  {feature.description}[/dim]")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fconfig",
        description="fconfig - probe the toolchain and emit a build plan and capability header",
    )
    parser.add_argument("--version", action="version", version=f"fconfig {__version__}")
    parser.add_argument(
        "catalog",
        nargs="?",
        type=Path,
        default=None,
        help="Project catalog JSON file",
    )
    parser.add_argument(
        "-m",
        "--module",
        dest="modules",
        action="append",
        default=[],
        help="Module to build (repeatable)",
    )
    parser.add_argument("--enable", action="append", default=[], metavar="FEATURE", help="Force a feature on (repeatable)")
    parser.add_argument("--disable", action="append", default=[], metavar="FEATURE", help="Force a feature off (repeatable, wins over --enable)")
    parser.add_argument(
        "--profile",
        default="release",
        choices=[p.value for p in BuildProfile],
        help="Build profile (default: release)",
    )
    parser.add_argument("--build-dir", default="build", help="Relative build directory (default: build)")
    parser.add_argument("--plan", type=Path, default=None, help="Plan file (default: <build-dir>/build.mk)")
    parser.add_argument("--header", type=Path, default=None, help="Header file (default: <build-dir>/config.h)")
    parser.add_argument("-o", "--output", default="app", help="Name of the linked program (default: app)")
    parser.add_argument("-j", "--jobs", type=int, default=None, help="Parallel probes (default: CPU count)")
    parser.add_argument("--cc", dest="compiler", default=None, help="Compiler command (default: $FCONFIG_CC, $CC or cc)")
    parser.add_argument("--save-facts", type=Path, default=None, help="Write detected platform facts as JSON")
    parser.add_argument("--load-facts", type=Path, default=None, help="Replay platform facts from JSON instead of probing")
    parser.add_argument("--no-progress", action="store_true", help="Disable the live probe table")
    parser.add_argument("--list-features", action="store_true", help="List known features and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show verbose output")
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """fconfig entry point."""
    parsed = build_parser().parse_args(argv)

    init_timer()
    set_verbose(parsed.verbose)
    setup_logging(parsed.verbose)

    if parsed.list_features:
        sys.exit(list_features_command(parsed.catalog))

    log_header("fconfig", __version__)
    args = ConfigureArgs(
        catalog=parsed.catalog,
        modules=parsed.modules,
        enable=parsed.enable,
        disable=parsed.disable,
        profile=parse_profile(parsed.profile),
        build_dir=parsed.build_dir,
        plan=parsed.plan,
        header=parsed.header,
        output=parsed.output,
        jobs=parsed.jobs,
        compiler=parsed.compiler,
        save_facts=parsed.save_facts,
        load_facts=parsed.load_facts,
        progress=not parsed.no_progress,
    )
    sys.exit(configure_command(args))


if __name__ == "__main__":
    main()
