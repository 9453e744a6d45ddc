from __future__ import annotations

import sys


def _print_help() -> None:
    print(
        "splicekit\n\n"
        "Usage:\n"
        "  splicekit edit <cmd> <args>    (one-shot edits: crop, fade, crossfade, reverse, normalize, markers)\n"
        "  splicekit export <args>        (re-encode to an export preset, keeping cue points)\n"
        "  splicekit slices <args>        (write one WAV per slice)\n"
        "  splicekit concat <args>        (join WAVs with boundary markers)\n\n"
        "Help:\n"
        "  splicekit edit --help\n"
        "  splicekit export --help\n"
        "  splicekit slices --help\n"
        "  splicekit concat --help\n"
    )


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv:
        _print_help()
        return 0

    cmd = str(argv[0]).strip().lower()
    rest = [str(x) for x in argv[1:]]

    if cmd in {"-h", "--help", "help"}:
        _print_help()
        return 0

    if cmd in {"edit", "export", "slices", "concat"}:
        from .runtime_config import configure_runtime

        configure_runtime()

    if cmd == "edit":
        from .editops import main as edit_main

        return int(edit_main(rest))

    if cmd == "export":
        from .export import run_export

        return int(run_export(rest))

    if cmd == "slices":
        from .slice_export import main as slices_main

        return int(slices_main(rest))

    if cmd == "concat":
        from .concat import run_concat

        return int(run_concat(rest))

    # Unknown subcommand.
    _print_help()
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
