"""
chatlens/cli.py
Command-line interface for chatlens.

USAGE:
  chatlens --transcript chat.txt
  chatlens --transcript chat.txt --health-score 72 --tier pro
  chatlens --transcript chat.txt --quotes quotes.json --participants Alex Jamie --tier personal
  chatlens --transcript chat.txt --output report.json
  chatlens --transcript chat.txt --json

EXAMPLES:
  # Red flags only, defaults from chatlens_config.json
  python -m chatlens.cli -t ./exports/WhatsApp_Chat.txt

  # Key quotes from an upstream step: a JSON list of
  # {"speaker": ..., "quote": ..., "analysis": ...} or {"keyQuotes": [...]}
  python -m chatlens.cli -t chat.txt -q quotes.json --tier pro
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, List

from chatlens import __version__
from chatlens.analysis import analyze_transcript
from chatlens.config import detector_settings, load_config
from chatlens.parsers.transcript_parser import parse_transcript_file
from chatlens.report_export import export_to_json

logger = logging.getLogger(__name__)

# ANSI colors
GREEN  = '\033[92m'
YELLOW = '\033[93m'
RED    = '\033[91m'
CYAN   = '\033[96m'
RESET  = '\033[0m'
BOLD   = '\033[1m'

TENDENCY_COLORS = {
    'escalates':    RED,
    'de-escalates': GREEN,
    'mixed':        YELLOW,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog        = 'chatlens',
        description = 'chatlens — red-flag and conflict-dynamics analysis for chat transcripts',
        formatter_class = argparse.RawDescriptionHelpFormatter,
        epilog = """
NOTE:
  Flags and scores are keyword heuristics, not clinical or legal findings.
  All processing is local.
        """
    )

    parser.add_argument(
        '--transcript', '-t',
        required = True,
        type     = Path,
        help     = 'Transcript file ("Speaker: message" lines or a WhatsApp export)',
    )
    parser.add_argument(
        '--health-score', '-s',
        type    = float,
        default = None,
        help    = 'Upstream health score 0-100; at/above the configured threshold flags are skipped',
    )
    parser.add_argument(
        '--quotes', '-q',
        type    = Path,
        default = None,
        help    = 'JSON file with key quotes for conflict-dynamics scoring',
    )
    parser.add_argument(
        '--participants', '-p',
        nargs   = '+',
        default = None,
        help    = 'Participant names (default: speakers found in the transcript)',
    )
    parser.add_argument(
        '--tier',
        default = None,
        help    = 'free / personal / pro / instant (default: from config)',
    )
    parser.add_argument(
        '--output', '-o',
        type    = Path,
        default = None,
        help    = 'Write a hashed JSON export to this path',
    )
    parser.add_argument(
        '--json',
        action  = 'store_true',
        help    = 'Print the raw result as JSON instead of the summary',
    )
    parser.add_argument(
        '--verbose', '-v',
        action  = 'store_true',
        help    = 'Enable debug logging (shows which suppression stage dropped each match)',
    )
    parser.add_argument(
        '--version',
        action  = 'version',
        version = f'chatlens {__version__}',
    )
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    config = load_config()

    # ── LOGGING SETUP ────────────────────────────────────────
    if args.verbose:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, str(config.get('log_level', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(
        level   = log_level,
        format  = '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt = '%H:%M:%S',
    )

    # ── VALIDATE INPUT ───────────────────────────────────────
    if not args.transcript.is_file():
        _print(f"{RED}Error: Transcript not found: {args.transcript}{RESET}")
        return 1

    key_quotes: List[Dict[str, Any]] = []
    if args.quotes is not None:
        try:
            key_quotes = load_quotes(args.quotes)
        except (OSError, json.JSONDecodeError, ValueError) as e:
            _print(f"{RED}Error: Could not read quotes from {args.quotes}: {e}{RESET}")
            return 1

    tier     = args.tier or config.get('default_tier')
    settings = detector_settings(config)

    if not args.json:
        _banner()
        _print(f"Transcript  : {CYAN}{args.transcript}{RESET}")
        _print(f"Tier        : {CYAN}{tier}{RESET}")
        if args.health_score is not None:
            _print(f"Health score: {CYAN}{args.health_score:g}{RESET}")
        _print("")

    # ── ANALYSIS ─────────────────────────────────────────────
    t0 = time.time()
    conversation = parse_transcript_file(args.transcript)
    result = analyze_transcript(
        conversation,
        key_quotes        = key_quotes,
        participant_names = args.participants,
        tier              = tier,
        health_score      = args.health_score,
        settings          = settings,
    )

    if args.json:
        print(json.dumps(result, indent=2))
    else:
        _ok(f"Analysis complete in {_elapsed(t0)}")
        print_summary(result)

    # ── EXPORT ───────────────────────────────────────────────
    if args.output is not None:
        parameters = {
            'transcript':   args.transcript.name,
            'tier':         tier,
            'health_score': args.health_score,
        }
        args.output.write_text(export_to_json(result, parameters), encoding='utf-8')
        if not args.json:
            _ok(f"Export written → {args.output}")

    return 0


def load_quotes(path: Path) -> List[Dict[str, Any]]:
    data = json.loads(Path(path).read_text(encoding='utf-8'))
    if isinstance(data, dict):
        data = data.get('keyQuotes', [])
    if not isinstance(data, list):
        raise ValueError('expected a list of quotes or {"keyQuotes": [...]}')
    return data


def print_summary(result: Dict[str, Any]) -> None:
    flags = result.get('redFlags') or []
    _print(f"\n{BOLD}Red flags ({len(flags)}){RESET}")
    if not flags:
        _print("  none")
    for flag in sorted(flags, key=lambda f: -int(f.get('severity') or 0)):
        sev   = int(flag.get('severity') or 0)
        color = RED if sev >= 8 else YELLOW
        _print(f"  {color}[{sev:>2}]{RESET} {flag.get('type')} ({flag.get('participant', '')})")
        for ex in (flag.get('examples') or [])[:1]:
            _print(f"       \"{ex.get('text')}\"")

    dynamics = result.get('conflictDynamics')
    if dynamics:
        _print(f"\n{BOLD}Conflict dynamics{RESET}")
        _print(f"  {dynamics['summary']}")
        for name, p in dynamics['participants'].items():
            color = TENDENCY_COLORS.get(p['tendency'], RESET)
            _print(f"    {name:<16} {color}{p['tendency']:<13}{RESET} score {p['score']}")
        if dynamics.get('interaction'):
            _print(f"\n  {dynamics['interaction']}")
        for rec in dynamics.get('recommendations') or []:
            _print(f"    • {rec}")

    evasion = result.get('evasionDetection')
    if evasion and evasion.get('detected'):
        _print(f"\n{BOLD}Evasion{RESET}")
        for pattern in evasion.get('patterns') or []:
            _print(f"    • {pattern}")
        for bucket, instances in (evasion.get('details') or {}).items():
            if instances:
                _print(f"    • {bucket}: {len(instances)}")

    _print(f"\n{YELLOW}NOTE: heuristic output only, review the quoted context yourself.{RESET}\n")


# ── PRINT HELPERS ────────────────────────────────────────────

def _banner():
    _print(f"""
{BOLD}{CYAN}  chatlens {__version__}
  Red flags · Conflict dynamics · Evasion{RESET}""")

def _ok(msg):    _print(f"  {GREEN}✓{RESET} {msg}")
def _print(msg): print(msg)

def _elapsed(t0: float) -> str:
    s = time.time() - t0
    return f"{s:.1f}s" if s < 60 else f"{int(s//60)}m {int(s%60)}s"


if __name__ == '__main__':
    sys.exit(main())
