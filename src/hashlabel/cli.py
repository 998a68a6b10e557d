from __future__ import annotations

import argparse
import logging
import sys
from functools import partial
from typing import List

from .batch import Outcome, run_batch
from .cas import ContentHasher
from .config import Settings
from .errors import (
    EXIT_INTEGRITY_MISMATCH,
    EXIT_INTERNAL_ERROR,
    EXIT_INTERRUPTED,
    EXIT_OK,
    EXIT_USAGE,
)
from .lifecycle import bundle, label, restore, unbundle
from .verify import verify


def _print_failure(o: Outcome) -> None:
    print(f"{o.path}: {o.error}", file=sys.stderr)


def _show_transition(o: Outcome) -> None:
    if not o.ok:
        _print_failure(o)
    elif not o.result.skipped:
        print(f'"{o.result.source}" -> "{o.result.target}"')


def cmd_hash(args: argparse.Namespace, hasher: ContentHasher, settings: Settings) -> int:
    def show(o: Outcome) -> None:
        if o.ok:
            print(f"{o.result}  {o.path}")
        else:
            _print_failure(o)

    r = run_batch(hasher.hash_file, args.files, keep_going=settings.keep_going, on_outcome=show)
    return r.exit_code


def cmd_label(args: argparse.Namespace, hasher: ContentHasher, settings: Settings) -> int:
    r = run_batch(partial(label, hasher=hasher), args.files, keep_going=settings.keep_going, on_outcome=_show_transition)
    return r.exit_code


def cmd_restore(args: argparse.Namespace, hasher: ContentHasher, settings: Settings) -> int:
    r = run_batch(partial(restore, hasher=hasher), args.files, keep_going=settings.keep_going, on_outcome=_show_transition)
    return r.exit_code


def cmd_unbundle(args: argparse.Namespace, hasher: ContentHasher, settings: Settings) -> int:
    r = run_batch(partial(unbundle, hasher=hasher), args.files, keep_going=settings.keep_going, on_outcome=_show_transition)
    return r.exit_code


def cmd_bundle(args: argparse.Namespace, hasher: ContentHasher, settings: Settings) -> int:
    def show(o: Outcome) -> None:
        if not o.ok:
            _print_failure(o)
        elif not o.result.skipped:
            print(f'"{o.result.target}": Created')

    r = run_batch(partial(bundle, hasher=hasher), args.files, keep_going=settings.keep_going, on_outcome=show)
    return r.exit_code


def cmd_verify(args: argparse.Namespace, hasher: ContentHasher, settings: Settings) -> int:
    mismatches: List[str] = []

    def show(o: Outcome) -> None:
        if not o.ok:
            _print_failure(o)
            return
        v = o.result
        if not v.ok:
            mismatches.append(v.original_name)
            print(f"{v.original_name}: The sum does not match")
            if v.quarantined is not None:
                print(f"{v.original_name}: moved to {v.quarantined}")
        elif not args.only_show_mismatches:
            print(f"{v.original_name}: The sum matches")

    op = partial(verify, hasher=hasher, separate_mismatches=args.separate_mismatches)
    r = run_batch(op, args.files, keep_going=settings.keep_going, on_outcome=show)
    if r.exit_code != EXIT_OK:
        return r.exit_code
    if args.strict and mismatches:
        return EXIT_INTEGRITY_MISMATCH
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="hashlabel",
        description="Rename files to their content digest, keep a sidecar record, and bundle/restore them.",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Log every filesystem step to stderr.")
    p.add_argument("--algorithm", help="hashlib digest name (default: $HASHLABEL_ALGORITHM or md5).")
    p.add_argument(
        "--keep-going",
        action="store_true",
        default=None,
        help="Continue with the remaining files after a failure (default: stop at the first one).",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    p_hash = sub.add_parser("hash", help="Print the digest of each file.")
    p_hash.add_argument("files", nargs="+", metavar="FILE")
    p_hash.set_defaults(fn=cmd_hash)

    p_lab = sub.add_parser("label", help="Rename each file to its digest and write a .record sidecar.")
    p_lab.add_argument("files", nargs="+", metavar="FILE")
    p_lab.set_defaults(fn=cmd_label)

    p_res = sub.add_parser(
        "restore", help="Return .record sidecars or .packaged-record containers to the original file."
    )
    p_res.add_argument("files", nargs="+", metavar="FILE")
    p_res.set_defaults(fn=cmd_restore)

    p_ver = sub.add_parser("verify", help="Check labeled or bundled files against their recorded digest.")
    p_ver.add_argument(
        "-o",
        "--only-show-mismatches",
        action="store_true",
        help="Do not print files whose digest matches.",
    )
    p_ver.add_argument(
        "-s",
        "--separate-mismatches",
        action="store_true",
        help="Move mismatching files into a directory named after the recorded digest.",
    )
    p_ver.add_argument(
        "--strict",
        action="store_true",
        help=f"Exit with status {EXIT_INTEGRITY_MISMATCH} when any file mismatches.",
    )
    p_ver.add_argument("files", nargs="+", metavar="FILE")
    p_ver.set_defaults(fn=cmd_verify)

    p_bun = sub.add_parser("bundle", help="Pack original files or .record sidecars into .packaged-record containers.")
    p_bun.add_argument("files", nargs="+", metavar="FILE")
    p_bun.set_defaults(fn=cmd_bundle)

    p_unb = sub.add_parser("unbundle", help="Extract .packaged-record containers, verifying their content.")
    p_unb.add_argument("files", nargs="+", metavar="FILE")
    p_unb.set_defaults(fn=cmd_unbundle)

    return p


def main(argv: List[str] | None = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = Settings.from_env().override(algorithm=args.algorithm, keep_going=args.keep_going)
        hasher = settings.hasher()
    except ValueError as e:
        print(f"configuration error: {e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        return args.fn(args, hasher, settings)
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    except Exception as e:
        print(f"INTERNAL_ERROR: {e}", file=sys.stderr)
        return EXIT_INTERNAL_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
