"""
src/agent/rule_syntax.py

Purpose: Structural helpers for Suricata rule lines
Context: The control API accepts rules from operators and stores them in a
         flat rules file. These helpers catch typos before a rule reaches
         Suricata, derive a stable identifier for each line, and pull out
         the options shown in listings.

Rule layout:
    action proto src_ip src_port (->|<>) dst_ip dst_port (option; option; ...)

The checks are structural only; Suricata remains the authority on whether
a rule actually compiles.
"""

import re
from typing import Optional

from agent_errors import RuleValidationError

VALID_ACTIONS = ('alert', 'drop', 'reject', 'pass', 'log')
VALID_DIRECTIONS = ('->', '<>')

SID_PATTERN = re.compile(r'[0-9]+')

# FNV-1a 64-bit parameters
FNV64_OFFSET_BASIS = 0xcbf29ce484222325
FNV64_PRIME = 0x100000001b3
FNV64_MASK = 0xffffffffffffffff


def validate_rule_syntax(rule: str) -> None:
    """
    Check a rule line for structural correctness

    Comment lines (starting with '#') are always accepted.

    Args:
        rule: Raw rule text

    Raises:
        RuleValidationError: On the first failed check, with a message
                             describing what is wrong
    """
    rule = rule.strip()

    if not rule:
        raise RuleValidationError("Rule cannot be empty")

    if rule.startswith('#'):
        return

    parts = rule.split('(', 1)
    if len(parts) != 2:
        raise RuleValidationError(
            "Rule must contain header and options parts separated by '('"
        )

    header = parts[0].strip()
    options = parts[1].strip()

    header_parts = header.split()
    if len(header_parts) < 7:
        raise RuleValidationError(
            "Header must contain at least: action, proto, src_ip, src_port, "
            "direction, dst_ip, dst_port"
        )

    action = header_parts[0]
    if action not in VALID_ACTIONS:
        raise RuleValidationError(
            f"Invalid action: {action}. Must be one of: {', '.join(VALID_ACTIONS)}"
        )

    direction = header_parts[4]
    if direction not in VALID_DIRECTIONS:
        raise RuleValidationError(
            f"Invalid direction operator: {direction}. Must be -> or <>"
        )

    if not options.endswith(')'):
        raise RuleValidationError("Options must end with ')'")

    option_parts = [opt.strip() for opt in options[:-1].split(';')]
    if not any(option_parts):
        raise RuleValidationError("At least one option is required")

    if not any(opt.startswith('sid:') for opt in option_parts):
        raise RuleValidationError("Missing required option: sid")

    if not any(opt.startswith('msg:') for opt in option_parts):
        raise RuleValidationError("Missing required option: msg")

    for opt in option_parts:
        if opt.startswith('sid:'):
            sid_value = opt[4:].strip()
            if not SID_PATTERN.fullmatch(sid_value):
                raise RuleValidationError(
                    f"Invalid sid format: {sid_value}. Must be a number"
                )


def fnv1a_64(data: bytes) -> int:
    """64-bit FNV-1a hash"""
    h = FNV64_OFFSET_BASIS
    for byte in data:
        h ^= byte
        h = (h * FNV64_PRIME) & FNV64_MASK
    return h


def generate_rule_id(rule_content: str) -> str:
    """
    Derive the stable ID of a rule line

    Same text always gives the same ID, across restarts and hosts.
    Callers pass the trimmed line.
    """
    return f"rule_{fnv1a_64(rule_content.encode('utf-8')):x}"


def extract_option(rule: str, option_name: str) -> Optional[str]:
    """
    Return the value of a named rule option, or None

    Surrounding double quotes are removed, so `msg:"hello"` yields `hello`.

    Args:
        rule: Rule line
        option_name: Option keyword without the colon (e.g. 'sid', 'msg')
    """
    start = rule.find('(')
    end = rule.rfind(')')
    if start == -1 or end <= start:
        return None

    prefix = f"{option_name}:"
    for option in rule[start + 1:end].split(';'):
        option = option.strip()
        if not option.startswith(prefix):
            continue

        value = option[len(prefix):]
        if not value:
            continue
        if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
            return value[1:-1]
        return value

    return None


def rule_action(rule: str) -> Optional[str]:
    """First whitespace token of the line (alert, drop, ...)"""
    tokens = rule.split()
    return tokens[0] if tokens else None
