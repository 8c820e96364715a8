#!/usr/bin/env python3
"""PII gate for runtime sources.

Fails if, anywhere under src/:
- print( is used instead of the JSON logger
- a logger call mentions a guest contact field without going through
  safe_log_context/redact_value/redact_string

Usage:
    python scripts/gate_security_pii.py [SRC_DIR]
"""

import re
import sys
from pathlib import Path

# Guest contact fields and request bodies that may carry them
SENSITIVE_KEYWORDS = (
    "guest_name",
    "guest_email",
    "guest_phone",
    "special_requests",
    "body",
)

PRINT_PATTERN = re.compile(r"\bprint\s*\(")

LOGGER_CALL_PATTERN = re.compile(r"logger\.(debug|info|warning|error|critical|exception)\s*\(")

REDACTION_PATTERNS = (
    "safe_log_context",
    "redact_value",
    "redact_string",
)

# Lines of a logger call inspected after the call opens (extra= usually spans several)
_CALL_WINDOW = 12


def _logger_call_text(lines: list[str], start: int) -> str:
    """Text of the logger call opening at lines[start], up to its closing paren."""
    depth = 0
    chunk: list[str] = []
    for line in lines[start : start + _CALL_WINDOW]:
        chunk.append(line)
        depth += line.count("(") - line.count(")")
        if depth <= 0:
            break
    return "\n".join(chunk)


def check_file(filepath: Path) -> list[str]:
    """Check a single file. Returns error messages."""
    try:
        content = filepath.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return []

    errors = []
    lines = content.splitlines()

    for index, line in enumerate(lines):
        lineno = index + 1
        code_part = line.split("#")[0]
        if not code_part.strip():
            continue

        if PRINT_PATTERN.search(code_part):
            errors.append(f"{filepath}:{lineno}: print() not allowed in runtime code")

        if LOGGER_CALL_PATTERN.search(code_part):
            call = _logger_call_text(lines, index)
            if any(rp in call for rp in REDACTION_PATTERNS):
                continue
            call_lower = call.lower()
            for keyword in SENSITIVE_KEYWORDS:
                if keyword in call_lower:
                    errors.append(
                        f"{filepath}:{lineno}: logger call with '{keyword}' "
                        "must use redaction (safe_log_context/redact_value)"
                    )

    return errors


def main(argv: list[str]) -> int:
    src_dir = Path(argv[1]) if len(argv) > 1 else Path(__file__).resolve().parent.parent / "src"
    if not src_dir.exists():
        sys.stderr.write(f"Error: {src_dir} not found\n")
        return 1

    all_errors: list[str] = []
    for pyfile in sorted(src_dir.rglob("*.py")):
        all_errors.extend(check_file(pyfile))

    if all_errors:
        sys.stderr.write("PII gate FAILED:\n")
        for err in all_errors:
            sys.stderr.write(f"  {err}\n")
        return 1

    sys.stdout.write("PII gate passed\n")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
