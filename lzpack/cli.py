from __future__ import annotations

import argparse
import getpass as _getpass
import sys
from typing import List, Optional

from lzpack.constants import CODEC_NAMES, SUFFIX
from lzpack.errors import AuthenticationError, ConfigError, LzpackError
from lzpack.kdf import Password
from lzpack.options import EXISTS_POLICIES, Options, load_config, parse_size
from lzpack.pipeline import Pipeline, Report


def _read_password(password: Optional[str], *, confirm: bool) -> Password:
    """Use the given password, or prompt for one (twice when ``confirm``)."""
    if password is not None:
        return Password(password)
    first = _getpass.getpass("Password: ")
    if confirm:
        second = _getpass.getpass("Repeat password: ")
        if first != second:
            raise ConfigError("passwords do not match")
    return Password(first)


def _summarize(report: Report, *, quiet: bool) -> None:
    failed = [o for o in report.failures if not o.cancelled]
    cancelled = len(report.failures) - len(failed)
    dt = max(0.000001, report.elapsed)
    line = (
        f"Done: {len(report.succeeded)} unit(s) ok, {len(failed)} failed"
        + (f", {cancelled} cancelled" if cancelled else "")
        + f"; wrote {len(report.written)}, removed {len(report.removed)}"
        + f", skipped {len(report.skipped)} in {dt:.1f}s"
    )
    if not quiet or report.failures:
        print(line)
    if any(isinstance(o.error, AuthenticationError) for o in failed):
        print(
            "Hint: authentication failed for at least one artifact; the password is wrong "
            "or the artifact is corrupted. Those artifacts were left untouched.",
            file=sys.stderr,
        )


def cmd_compress(paths: List[str], *, password: Password, options: Optional[Options] = None) -> bool:
    """Compress and encrypt every file under ``paths`` in place.

    Args:
        paths: Files and/or directories to process recursively.
        password: Password to derive the encryption key from.
        options: Bundling, codec, concurrency and KDF settings.

    Returns:
        True when every bundle was packed.
    """
    opts = (options or Options()).validate()
    report = Pipeline(password, opts).pack(paths)
    _summarize(report, quiet=opts.quiet)
    return report.ok


def cmd_decompress(paths: List[str], *, password: Password, options: Optional[Options] = None) -> bool:
    """Restore every ``.lzpk`` artifact under ``paths`` in place."""
    opts = (options or Options()).validate()
    report = Pipeline(password, opts).load(paths)
    _summarize(report, quiet=opts.quiet)
    return report.ok


def _add_common(ap: argparse.ArgumentParser) -> None:
    ap.add_argument("paths", nargs="+", help="Files and/or directories to process recursively")
    ap.add_argument("--password", help="Password (prompted for when omitted)")
    ap.add_argument("--jobs", "-j", type=int, help="Worker threads (default: number of CPUs)")
    ap.add_argument("--fail-fast", action="store_true", default=None, help="Stop starting new work after the first failure")
    ap.add_argument("--quiet", "-q", action="store_true", default=None, help="limit outputs to summaries only")
    ap.add_argument("--verbose", "-v", action="store_true", default=None, help="Also report skipped paths")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="lz",
        description="compress|decompress every file in a path",
        epilog=f"Artifacts are named *{SUFFIX}; sources are deleted only after their artifact is written.",
    )
    ap.add_argument("--config", help="TOML config file with default options")
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_c = sub.add_parser("compress", aliases=["c"], help="compress every file in a path")
    _add_common(ap_c)
    ap_c.add_argument("--keep-name", "-k", action="store_true", default=None, help=f"One file per artifact, named <file>{SUFFIX}")
    ap_c.add_argument("--bundle-count", "-n", type=int, help="Max files per artifact (default 2)")
    ap_c.add_argument("--bundle-size", "-s", help="Advisory artifact size, e.g. 512K, 1M, 2G (default 1M)")
    ap_c.add_argument("--strict-size", action="store_true", default=None, help="Treat --bundle-size as a hard cap")
    ap_c.add_argument("--codec", choices=sorted(CODEC_NAMES), help="Compression codec (default xz)")
    ap_c.add_argument("--no-verify", dest="verify", action="store_false", default=None, help="Skip reading each artifact back before deleting sources")

    ap_d = sub.add_parser("decompress", aliases=["d"], help="decompress every file in a path")
    _add_common(ap_d)
    ap_d.add_argument(
        "--exists",
        choices=list(EXISTS_POLICIES),
        help=(
            "What to do if a restored file already exists: rename (append ' (n)' before extension), "
            "overwrite, skip (keeps the artifact), or fail. Default: rename"
        ),
    )
    return ap


def _options_from_args(args: argparse.Namespace) -> Options:
    base = load_config(args.config) if args.config else Options()
    overrides = {
        "jobs": args.jobs,
        "fail_fast": args.fail_fast,
        "quiet": args.quiet,
        "verbose": args.verbose,
        "keep_name": getattr(args, "keep_name", None),
        "bundle_count": getattr(args, "bundle_count", None),
        "strict_size": getattr(args, "strict_size", None),
        "codec": getattr(args, "codec", None),
        "verify": getattr(args, "verify", None),
        "exists": getattr(args, "exists", None),
    }
    size = getattr(args, "bundle_size", None)
    if size is not None:
        overrides["bundle_size"] = parse_size(size)
    return base.merged(**overrides).validate()


def main(argv: List[str] | None = None):
    ap = build_parser()
    args = ap.parse_args(argv)
    compressing = args.cmd in ("compress", "c")
    try:
        options = _options_from_args(args)
        password = _read_password(args.password, confirm=compressing)
        if compressing:
            ok = cmd_compress(args.paths, password=password, options=options)
        else:
            ok = cmd_decompress(args.paths, password=password, options=options)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (LzpackError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        sys.exit(130)
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
